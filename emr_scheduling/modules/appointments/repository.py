import uuid
import datetime as dt
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_, or_
from emr_scheduling.core.base import utcnow
from emr_scheduling.modules.appointments.models import Appointment, AppointmentStatus

ACTIVE_STATUSES = (
    AppointmentStatus.SCHEDULED.value,
    AppointmentStatus.CHECKED_IN.value,
    AppointmentStatus.IN_PROGRESS.value,
)

class AppointmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, org_id: uuid.UUID, **data) -> Appointment:
        obj = Appointment(org_id=org_id, **data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, org_id: uuid.UUID, appt_id: uuid.UUID, *, for_update: bool = False) -> Appointment | None:
        q = select(Appointment).where(
            and_(Appointment.id == appt_id,
                 Appointment.org_id == org_id,
                 Appointment.deleted_at.is_(None))
        )
        if for_update:
            q = q.with_for_update().execution_options(populate_existing=True)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_blocking(self, org_id: uuid.UUID, doctor_id: uuid.UUID, day: dt.date, *, exclude_id: uuid.UUID | None = None) -> Sequence[Appointment]:
        """Non-cancelled appointments that occupy the doctor's time on ``day``."""
        cond = [
            Appointment.org_id == org_id,
            Appointment.doctor_id == doctor_id,
            Appointment.date == day,
            Appointment.deleted_at.is_(None),
            Appointment.status != AppointmentStatus.CANCELLED.value,
        ]
        if exclude_id is not None:
            cond.append(Appointment.id != exclude_id)
        q = select(Appointment).where(and_(*cond)).order_by(Appointment.start_min.asc())
        res = await self.session.execute(q)
        return res.scalars().all()

    async def list(self, org_id: uuid.UUID, *, day: dt.date | None = None, start: dt.date | None = None, end: dt.date | None = None,
                   doctor_id: uuid.UUID | None = None, status: str | None = None, limit: int = 20,
                   after: tuple[dt.date, int, uuid.UUID] | None = None) -> Sequence[Appointment]:
        """Keyset page ordered by (date, start_min, id); fetches ``limit`` rows after ``after``."""
        cond = [Appointment.org_id == org_id, Appointment.deleted_at.is_(None)]
        if day:
            cond.append(Appointment.date == day)
        else:
            if start:
                cond.append(Appointment.date >= start)
            if end:
                cond.append(Appointment.date <= end)
        if doctor_id:
            cond.append(Appointment.doctor_id == doctor_id)
        if status:
            cond.append(Appointment.status == status)
        if after:
            a_date, a_start, a_id = after
            cond.append(or_(
                Appointment.date > a_date,
                and_(Appointment.date == a_date, Appointment.start_min > a_start),
                and_(Appointment.date == a_date, Appointment.start_min == a_start, Appointment.id > a_id),
            ))
        q = (select(Appointment).where(and_(*cond))
             .order_by(Appointment.date.asc(), Appointment.start_min.asc(), Appointment.id.asc())
             .limit(limit))
        res = await self.session.execute(q)
        return res.scalars().all()

    async def list_active_between(self, org_id: uuid.UUID, doctor_id: uuid.UUID, start: dt.date, end: dt.date) -> Sequence[Appointment]:
        """Scheduled/checked-in/in-progress appointments with start <= date < end."""
        q = select(Appointment).where(
            Appointment.org_id == org_id,
            Appointment.doctor_id == doctor_id,
            Appointment.deleted_at.is_(None),
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.date >= start,
            Appointment.date < end,
        ).order_by(Appointment.date.asc(), Appointment.start_min.asc())
        res = await self.session.execute(q)
        return res.scalars().all()

    async def set_status(self, org_id: uuid.UUID, appt_id: uuid.UUID, *, expected: str, status: str, cancel_reason: str | None) -> bool:
        """Compare-and-set; False when the row is no longer in ``expected``."""
        q = (
            update(Appointment)
            .where(
                Appointment.id == appt_id,
                Appointment.org_id == org_id,
                Appointment.deleted_at.is_(None),
                Appointment.status == expected,
            )
            .values(status=status, cancel_reason=cancel_reason, updated_at=utcnow(), version=Appointment.version + 1)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(q)
        return res.rowcount == 1

    async def soft_delete(self, obj: Appointment) -> None:
        obj.deleted_at = utcnow()
        obj.version += 1
        await self.session.flush()
