"""
Write-intent lock on one doctor's schedule for one date.

The lock is a sentinel ``ScheduleLock`` row: it is upserted and then updated at
the start of the transaction, so the row lock (PostgreSQL) or the database write
lock (SQLite) is held until commit or rollback. Any writer that wants to add
time to the same doctor/date queues behind it, which makes the conflict check
that follows authoritative. Works across stateless replicas because the lock
lives in the database.
"""
import logging
import uuid
import datetime as dt
from sqlalchemy import update, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from emr_scheduling.core.base import utcnow
from emr_scheduling.core.config import settings
from emr_scheduling.core.errors import SlotLocked
from emr_scheduling.modules.appointments.models import ScheduleLock

logger = logging.getLogger(__name__)

PG_LOCK_NOT_AVAILABLE = "55P03"
# weekly template locks live on the dates of this week, which no booking uses
WEEKLY_ANCHOR = dt.date(1970, 1, 4)  # a Sunday

def is_lock_timeout(exc: BaseException) -> bool:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code == PG_LOCK_NOT_AVAILABLE:
        return True
    return "database is locked" in str(orig or exc).lower()

class ScheduleLocker:
    def __init__(self, session: AsyncSession, timeout_ms: int | None = None):
        self.session = session
        self.timeout_ms = settings.SCHEDULE_LOCK_TIMEOUT_MS if timeout_ms is None else timeout_ms

    @property
    def dialect(self) -> str:
        return self.session.get_bind().dialect.name

    async def bound_wait(self) -> None:
        """Cap how long this transaction waits on row locks (PostgreSQL only; SQLite uses the busy timeout)."""
        if self.dialect == "postgresql":
            await self.session.execute(text(f"SET LOCAL lock_timeout = '{int(self.timeout_ms)}ms'"))

    async def acquire(self, org_id: uuid.UUID, doctor_id: uuid.UUID, day: dt.date) -> None:
        """Take the lock for (doctor, day); held until the transaction ends."""
        insert_fn = pg_insert if self.dialect == "postgresql" else sqlite_insert
        now = utcnow()
        upsert = insert_fn(ScheduleLock).values(
            id=uuid.uuid4(), org_id=org_id, doctor_id=doctor_id, date=day,
            generation=0, version=1, created_at=now, updated_at=now,
        ).on_conflict_do_nothing(index_elements=["org_id", "doctor_id", "date"])
        bump = (
            update(ScheduleLock)
            .where(ScheduleLock.org_id == org_id, ScheduleLock.doctor_id == doctor_id, ScheduleLock.date == day)
            .values(generation=ScheduleLock.generation + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        try:
            await self.bound_wait()
            await self.session.execute(upsert)
            await self.session.execute(bump)
        except DBAPIError as e:
            if is_lock_timeout(e):
                logger.warning(f"Schedule lock timeout for doctor {doctor_id} on {day}")
                raise SlotLocked() from e
            raise
        logger.debug(f"Schedule lock held for doctor {doctor_id} on {day}")

    async def acquire_weekday(self, org_id: uuid.UUID, doctor_id: uuid.UUID, day_of_week: int) -> None:
        """Take the lock on the doctor's recurring template for one weekday (0=Sunday)."""
        await self.acquire(org_id, doctor_id, WEEKLY_ANCHOR + dt.timedelta(days=day_of_week))
