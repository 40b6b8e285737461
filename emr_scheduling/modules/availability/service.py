import logging
import uuid
import datetime as dt
from sqlalchemy.ext.asyncio import AsyncSession
from emr_scheduling.core.errors import NotFound, OverlappingWindow, ValidationError
from emr_scheduling.modules.appointments.locks import ScheduleLocker
from emr_scheduling.modules.availability.repository import AvailabilityRepository
from emr_scheduling.modules.availability.resolver import default_window_from_settings
from emr_scheduling.modules.availability.schemas import WindowCreate, BlackoutCreate
from emr_scheduling.modules.directory.repository import DirectoryRepository
from emr_scheduling.modules.events.outbox import OutboxService

logger = logging.getLogger(__name__)

MAX_BLACKOUT_RANGE_DAYS = 366

class AvailabilityService:
    """Administration of the recurring windows and blackouts that feed slot resolution."""

    def __init__(self, s: AsyncSession):
        self.s = s
        self.repo = AvailabilityRepository(s)
        self.directory = DirectoryRepository(s)

    # windows
    async def list_windows(self, org: uuid.UUID, doctor_id: uuid.UUID) -> dict:
        await self.directory.require_doctor(org, doctor_id)
        windows = await self.repo.list_windows(org, doctor_id)
        default = default_window_from_settings()
        return {
            "doctor_id": doctor_id,
            "availability": windows,
            "default_availability": [default.as_dict()] if default else [],
        }

    async def create_window(self, org: uuid.UUID, doctor_id: uuid.UUID, payload: WindowCreate):
        await self.directory.require_doctor(org, doctor_id)
        # serializes the overlap check against other admins editing the same weekday
        await ScheduleLocker(self.s).acquire_weekday(org, doctor_id, payload.day_of_week)
        clash = await self.repo.find_overlapping_window(org, doctor_id, payload.day_of_week, payload.start_min, payload.end_min)
        if clash:
            raise OverlappingWindow(
                "Availability overlaps with an existing window",
                details={"window_id": str(clash.id), "start_min": clash.start_min, "end_min": clash.end_min},
            )
        obj = await self.repo.create_window(org, doctor_id=doctor_id, **payload.model_dump())
        await OutboxService(self.s).enqueue(org, "AVAILABILITY_WINDOW_CREATED", "doctor", doctor_id, payload.model_dump())
        await self.s.commit()
        logger.info(f"Availability window {obj.id} created for doctor {doctor_id}")
        return obj

    async def delete_window(self, org: uuid.UUID, doctor_id: uuid.UUID, window_id: uuid.UUID) -> None:
        obj = await self.repo.get_window(org, doctor_id, window_id)
        if not obj:
            raise NotFound("AvailabilityWindow", window_id)
        await self.repo.soft_delete(obj)
        await OutboxService(self.s).enqueue(org, "AVAILABILITY_WINDOW_DELETED", "doctor", doctor_id, {"window_id": str(window_id)})
        await self.s.commit()

    # blackouts
    async def list_blackouts(self, org: uuid.UUID, doctor_id: uuid.UUID, start: dt.date, end: dt.date):
        if end < start:
            raise ValidationError("'to' must not be before 'from'", field="to")
        if (end - start).days > MAX_BLACKOUT_RANGE_DAYS:
            raise ValidationError(f"range may span at most {MAX_BLACKOUT_RANGE_DAYS} days", field="to")
        await self.directory.require_doctor(org, doctor_id)
        return await self.repo.list_blackouts(org, doctor_id, start, end)

    async def create_blackout(self, org: uuid.UUID, doctor_id: uuid.UUID, payload: BlackoutCreate):
        await self.directory.require_doctor(org, doctor_id)
        # blackouts add blocked time, so they queue behind bookings for the same day
        await ScheduleLocker(self.s).acquire(org, doctor_id, payload.date)
        obj = await self.repo.create_blackout(org, doctor_id=doctor_id, **payload.model_dump())
        await OutboxService(self.s).enqueue(org, "BLACKOUT_CREATED", "doctor", doctor_id, payload.model_dump(mode="json"))
        await self.s.commit()
        return obj

    async def delete_blackout(self, org: uuid.UUID, doctor_id: uuid.UUID, blackout_id: uuid.UUID) -> None:
        obj = await self.repo.get_blackout(org, doctor_id, blackout_id)
        if not obj:
            raise NotFound("BlackoutPeriod", blackout_id)
        await self.repo.soft_delete(obj)
        await OutboxService(self.s).enqueue(org, "BLACKOUT_DELETED", "doctor", doctor_id, {"blackout_id": str(blackout_id)})
        await self.s.commit()
