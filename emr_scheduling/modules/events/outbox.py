import uuid
import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import TIMESTAMP, text, String, Integer, Text, JSON, select, and_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from emr_scheduling.core.base import Base, TimestampedTenantMixin
from emr_scheduling.platform.provider_registry import registry

log = logging.getLogger("event.outbox")

EVENTS_TOPIC = "emr.events"

class EventOutbox(Base, TimestampedTenantMixin):
    event_type: Mapped[str] = mapped_column(String(64))
    subject_type: Mapped[str] = mapped_column(String(32))
    subject_id: Mapped[str] = mapped_column(String(64))
    payload: Mapped[dict] = mapped_column(JSON)

    occurred_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"))

    status: Mapped[str] = mapped_column(String(16), default="pending")  # pending | processing | sent
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    next_attempt_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"))
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

class OutboxRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def enqueue(self, org_id: uuid.UUID, *, event_type: str, subject_type: str, subject_id: str, payload: dict, occurred_at: datetime | None = None) -> EventOutbox:
        now = datetime.now(timezone.utc)
        obj = EventOutbox(
            org_id=org_id,
            event_type=event_type,
            subject_type=subject_type,
            subject_id=str(subject_id),
            payload=payload,
            occurred_at=occurred_at or now,
            status="pending",
            attempts=0,
            next_attempt_at=now,
        )
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def claim_batch(self, limit: int = 50) -> list[EventOutbox]:
        # SELECT ... FOR UPDATE SKIP LOCKED
        q = (
            select(EventOutbox)
            .where(
                and_(
                    EventOutbox.deleted_at.is_(None),
                    EventOutbox.status == "pending",
                    EventOutbox.next_attempt_at <= datetime.now(timezone.utc),
                )
            )
            .order_by(EventOutbox.created_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        res = await self.session.execute(q)
        rows = list(res.scalars().all())
        for r in rows:
            r.status = "processing"
        await self.session.flush()
        return rows

    async def list_for_subject(self, org_id: uuid.UUID, subject_id: str | uuid.UUID) -> list[EventOutbox]:
        q = (
            select(EventOutbox)
            .where(EventOutbox.org_id == org_id, EventOutbox.subject_id == str(subject_id))
            .order_by(EventOutbox.occurred_at.asc())
        )
        res = await self.session.execute(q)
        return list(res.scalars().all())

    async def mark_sent(self, obj: EventOutbox):
        obj.status = "sent"
        obj.last_error = None
        await self.session.flush()

    async def mark_failed(self, obj: EventOutbox, error: str):
        obj.status = "pending"  # retry
        obj.attempts = (obj.attempts or 0) + 1
        backoff = min(60, 2 ** min(obj.attempts, 6))  # 2,4,8,16,32,60s
        obj.next_attempt_at = datetime.now(timezone.utc) + timedelta(seconds=backoff)
        obj.last_error = error[:2000]  # truncate
        await self.session.flush()

class OutboxService:
    """Records state-change events in the caller's transaction; they commit or roll back with it."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = OutboxRepository(session)

    async def enqueue(self, org_id: uuid.UUID, event_type: str, subject_type: str, subject_id: str | uuid.UUID, payload: dict, occurred_at: datetime | None = None) -> EventOutbox:
        return await self.repo.enqueue(org_id, event_type=event_type, subject_type=subject_type, subject_id=str(subject_id), payload=payload, occurred_at=occurred_at)

# ---- Background relay ----

async def relay_once(session_factory: async_sessionmaker, limit: int = 50) -> int:
    """Publish one batch of pending events; returns how many were claimed."""
    bus = registry.event_bus()
    async with session_factory() as session:
        repo = OutboxRepository(session)
        try:
            batch = await repo.claim_batch(limit=limit)
            for ev in batch:
                try:
                    await bus.publish(topic=EVENTS_TOPIC, key=ev.subject_id or "-", value={
                        "org_id": str(ev.org_id),
                        "event_type": ev.event_type,
                        "subject": {"type": ev.subject_type, "id": ev.subject_id},
                        "payload": ev.payload,
                        "occurred_at": ev.occurred_at.isoformat(),
                        "outbox_id": str(ev.id),
                    })
                    await repo.mark_sent(ev)
                except Exception as ex:  # noqa
                    log.exception("Publish failed")
                    await repo.mark_failed(ev, error=str(ex))
            await session.commit()
            return len(batch)
        except Exception:
            await session.rollback()
            raise

async def run_outbox_relay(session_factory: async_sessionmaker, poll_interval_seconds: float = 1.0):
    log.info("Outbox relay started with bus=%s", registry.event_bus().__class__.__name__)
    try:
        while True:
            try:
                claimed = await relay_once(session_factory)
            except Exception:
                log.exception("Outbox relay iteration failed")
                claimed = 0
            await asyncio.sleep(poll_interval_seconds if not claimed else 0)
    except asyncio.CancelledError:
        log.info("Outbox relay cancelled; shutting down")
        raise
