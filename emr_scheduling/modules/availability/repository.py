import uuid
import datetime as dt
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from emr_scheduling.core.base import utcnow
from emr_scheduling.modules.availability.models import AvailabilityWindow, BlackoutPeriod

class AvailabilityRepository:
    def __init__(self, s: AsyncSession): self.s = s

    # windows
    async def create_window(self, org: uuid.UUID, **data) -> AvailabilityWindow:
        obj = AvailabilityWindow(org_id=org, **data); self.s.add(obj); await self.s.flush(); return obj

    async def get_window(self, org: uuid.UUID, doctor_id: uuid.UUID, window_id: uuid.UUID) -> AvailabilityWindow | None:
        res = await self.s.execute(select(AvailabilityWindow).where(
            AvailabilityWindow.org_id==org,
            AvailabilityWindow.id==window_id,
            AvailabilityWindow.doctor_id==doctor_id,
            AvailabilityWindow.deleted_at.is_(None)
        ))
        return res.scalar_one_or_none()

    async def list_windows(self, org: uuid.UUID, doctor_id: uuid.UUID, day_of_week: int | None = None) -> Sequence[AvailabilityWindow]:
        q = select(AvailabilityWindow).where(
            AvailabilityWindow.org_id==org,
            AvailabilityWindow.doctor_id==doctor_id,
            AvailabilityWindow.deleted_at.is_(None)
        )
        if day_of_week is not None:
            q = q.where(AvailabilityWindow.day_of_week==day_of_week)
        res = await self.s.execute(q.order_by(AvailabilityWindow.day_of_week, AvailabilityWindow.start_min))
        return res.scalars().all()

    async def find_overlapping_window(self, org: uuid.UUID, doctor_id: uuid.UUID, day_of_week: int, start_min: int, end_min: int) -> AvailabilityWindow | None:
        res = await self.s.execute(select(AvailabilityWindow).where(
            AvailabilityWindow.org_id==org,
            AvailabilityWindow.doctor_id==doctor_id,
            AvailabilityWindow.day_of_week==day_of_week,
            AvailabilityWindow.deleted_at.is_(None),
            AvailabilityWindow.start_min < end_min,
            AvailabilityWindow.end_min > start_min
        ).limit(1))
        return res.scalars().first()

    # blackouts
    async def create_blackout(self, org: uuid.UUID, **data) -> BlackoutPeriod:
        obj = BlackoutPeriod(org_id=org, **data); self.s.add(obj); await self.s.flush(); return obj

    async def get_blackout(self, org: uuid.UUID, doctor_id: uuid.UUID, blackout_id: uuid.UUID) -> BlackoutPeriod | None:
        res = await self.s.execute(select(BlackoutPeriod).where(
            BlackoutPeriod.org_id==org,
            BlackoutPeriod.id==blackout_id,
            BlackoutPeriod.doctor_id==doctor_id,
            BlackoutPeriod.deleted_at.is_(None)
        ))
        return res.scalar_one_or_none()

    async def list_blackouts(self, org: uuid.UUID, doctor_id: uuid.UUID, start: dt.date, end: dt.date) -> Sequence[BlackoutPeriod]:
        """Blackouts with start <= date <= end."""
        res = await self.s.execute(select(BlackoutPeriod).where(
            BlackoutPeriod.org_id==org,
            BlackoutPeriod.doctor_id==doctor_id,
            BlackoutPeriod.deleted_at.is_(None),
            BlackoutPeriod.date >= start,
            BlackoutPeriod.date <= end
        ).order_by(BlackoutPeriod.date, BlackoutPeriod.start_min))
        return res.scalars().all()

    async def soft_delete(self, obj: AvailabilityWindow | BlackoutPeriod):
        obj.deleted_at = utcnow(); obj.version += 1; await self.s.flush()
