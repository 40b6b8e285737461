import uuid
import datetime as dt
from dataclasses import dataclass
from sqlalchemy.ext.asyncio import AsyncSession
from emr_scheduling.modules.appointments.intervals import Interval, merge, subtract, bookable_slots
from emr_scheduling.modules.appointments.repository import AppointmentRepository
from emr_scheduling.modules.availability.repository import AvailabilityRepository
from emr_scheduling.modules.availability.resolver import AvailabilityResolver


@dataclass(frozen=True)
class BlockedEntry:
    """One source of blocked time, kept unmerged so conflicts can be named."""
    interval: Interval
    source: str  # appointment | blackout
    source_id: uuid.UUID

    def as_dict(self) -> dict:
        return {**self.interval.as_dict(), "source": self.source, "id": str(self.source_id)}


class BlockedTimeAggregator:
    """Blackouts plus non-cancelled bookings for a doctor on one date."""

    def __init__(self, session: AsyncSession):
        self.appointments = AppointmentRepository(session)
        self.availability = AvailabilityRepository(session)

    async def entries(self, org_id: uuid.UUID, doctor_id: uuid.UUID, day: dt.date, *, exclude_appointment_id: uuid.UUID | None = None) -> list[BlockedEntry]:
        blackouts = await self.availability.list_blackouts(org_id, doctor_id, day, day)
        booked = await self.appointments.list_blocking(org_id, doctor_id, day, exclude_id=exclude_appointment_id)
        out = [BlockedEntry(Interval(b.start_min, b.end_min), "blackout", b.id) for b in blackouts]
        out += [BlockedEntry(Interval(a.start_min, a.end_min), "appointment", a.id) for a in booked]
        return sorted(out, key=lambda e: (e.interval, e.source))

    async def blocked(self, org_id: uuid.UUID, doctor_id: uuid.UUID, day: dt.date, *, exclude_appointment_id: uuid.UUID | None = None) -> list[Interval]:
        entries = await self.entries(org_id, doctor_id, day, exclude_appointment_id=exclude_appointment_id)
        return merge(e.interval for e in entries)


@dataclass(frozen=True)
class DayAvailability:
    availability: list[Interval]
    blocked: list[Interval]
    free_slots: list[Interval]

    def bookable(self, duration: int, step: int | None = None, align: int = 5) -> list[Interval]:
        return bookable_slots(self.free_slots, duration, step=step, align=align)

    def as_dict(self) -> dict:
        return {
            "availability": [i.as_dict() for i in self.availability],
            "blocked": [i.as_dict() for i in self.blocked],
            "free_slots": [i.as_dict() for i in self.free_slots],
        }


class FreeSlotCalculator:
    """
    free = availability - blocked, computed on every call.

    Nothing here is cached: a booking or blackout written a moment ago must show
    up in the next read.
    """

    def __init__(self, session: AsyncSession, resolver: AvailabilityResolver | None = None):
        self.resolver = resolver or AvailabilityResolver(session)
        self.aggregator = BlockedTimeAggregator(session)

    async def compute(self, org_id: uuid.UUID, doctor_id: uuid.UUID, day: dt.date) -> DayAvailability:
        availability = await self.resolver.resolve(org_id, doctor_id, day)
        blocked = await self.aggregator.blocked(org_id, doctor_id, day)
        return DayAvailability(availability, blocked, subtract(availability, blocked))
