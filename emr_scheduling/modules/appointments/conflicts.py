import logging
import uuid
import datetime as dt
from sqlalchemy.ext.asyncio import AsyncSession
from emr_scheduling.core.errors import SlotUnavailable
from emr_scheduling.modules.appointments.blocking import BlockedTimeAggregator, BlockedEntry
from emr_scheduling.modules.appointments.intervals import Interval, covers
from emr_scheduling.modules.availability.resolver import AvailabilityResolver

logger = logging.getLogger(__name__)

class ConflictGuard:
    """
    Checks a proposed interval against the doctor's blocked time.

    Callers hold the schedule lock for (doctor, date) before asking; otherwise the
    answer can be stale by the time the row is written.
    """

    def __init__(self, session: AsyncSession, resolver: AvailabilityResolver | None = None):
        self.aggregator = BlockedTimeAggregator(session)
        self.resolver = resolver or AvailabilityResolver(session)

    async def conflicts(self, org_id: uuid.UUID, doctor_id: uuid.UUID, day: dt.date, start_min: int, end_min: int,
                        exclude_appointment_id: uuid.UUID | None = None) -> list[BlockedEntry]:
        target = Interval(start_min, end_min)
        entries = await self.aggregator.entries(org_id, doctor_id, day, exclude_appointment_id=exclude_appointment_id)
        return [e for e in entries if e.interval.overlaps(target)]

    async def has_conflict(self, org_id: uuid.UUID, doctor_id: uuid.UUID, day: dt.date, start_min: int, end_min: int,
                           exclude_appointment_id: uuid.UUID | None = None) -> bool:
        return bool(await self.conflicts(org_id, doctor_id, day, start_min, end_min, exclude_appointment_id))

    async def ensure_free(self, org_id: uuid.UUID, doctor_id: uuid.UUID, day: dt.date, start_min: int, end_min: int,
                          exclude_appointment_id: uuid.UUID | None = None) -> None:
        found = await self.conflicts(org_id, doctor_id, day, start_min, end_min, exclude_appointment_id)
        if found:
            logger.info(f"Slot [{start_min}, {end_min}) for doctor {doctor_id} on {day} conflicts with {len(found)} entries")
            raise SlotUnavailable(
                "Requested time overlaps an existing appointment or blackout",
                conflicts=[e.as_dict() for e in found],
            )

    async def ensure_within_availability(self, org_id: uuid.UUID, doctor_id: uuid.UUID, day: dt.date, start_min: int, end_min: int) -> None:
        windows = await self.resolver.resolve(org_id, doctor_id, day)
        if not covers(windows, Interval(start_min, end_min)):
            raise SlotUnavailable(
                "Requested time is outside the doctor's availability",
                reason="outside_availability",
                conflicts=[w.as_dict() for w in windows],
            )
