import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from emr_scheduling.modules.visits.models import Visit

class VisitRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, org_id: uuid.UUID, **data) -> Visit:
        obj = Visit(org_id=org_id, **data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, org_id: uuid.UUID, visit_id: uuid.UUID) -> Visit | None:
        q = select(Visit).where(
            Visit.id == visit_id,
            Visit.org_id == org_id,
            Visit.deleted_at.is_(None),
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def for_appointment(self, org_id: uuid.UUID, appointment_id: uuid.UUID) -> Visit | None:
        q = select(Visit).where(
            Visit.appointment_id == appointment_id,
            Visit.org_id == org_id,
            Visit.deleted_at.is_(None),
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()
