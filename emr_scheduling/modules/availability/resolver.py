import logging
import uuid
import datetime as dt
from sqlalchemy.ext.asyncio import AsyncSession
from emr_scheduling.core.config import settings
from emr_scheduling.modules.appointments.intervals import Interval, merge
from emr_scheduling.modules.availability.repository import AvailabilityRepository

logger = logging.getLogger(__name__)

def day_of_week(day: dt.date) -> int:
    """Weekday index used by availability windows: 0=Sunday .. 6=Saturday."""
    return day.isoweekday() % 7

def default_window_from_settings() -> Interval | None:
    if settings.DEFAULT_AVAILABILITY_WINDOW is None:
        return None
    return Interval(*settings.DEFAULT_AVAILABILITY_WINDOW)

class AvailabilityResolver:
    """
    Turns a doctor's recurring weekly windows into the availability of one date.

    ``default_window`` applies when the doctor has no window on that weekday.
    Pass ``None`` to treat unconfigured doctors as unbookable.
    """

    _UNSET = object()

    def __init__(self, s: AsyncSession, default_window: Interval | None | object = _UNSET):
        self.repo = AvailabilityRepository(s)
        self.default_window = default_window_from_settings() if default_window is self._UNSET else default_window

    async def resolve(self, org: uuid.UUID, doctor_id: uuid.UUID, day: dt.date) -> list[Interval]:
        rows = await self.repo.list_windows(org, doctor_id, day_of_week(day))
        windows = merge(Interval(r.start_min, r.end_min) for r in rows)
        if windows:
            return windows
        if self.default_window is None:
            logger.debug(f"No availability configured for doctor {doctor_id} on {day}; default disabled")
            return []
        return [self.default_window]
