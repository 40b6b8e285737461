import uuid
import logging
import datetime as dt
from contextlib import asynccontextmanager
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from emr_scheduling.core.config import settings
from emr_scheduling.core.errors import NotFound, ValidationError, ImmutableState, InvalidTransition, SlotLocked
from emr_scheduling.core.paging import encode_cursor, decode_cursor
from emr_scheduling.modules.appointments.blocking import FreeSlotCalculator
from emr_scheduling.modules.appointments.conflicts import ConflictGuard
from emr_scheduling.modules.appointments.locks import ScheduleLocker, is_lock_timeout
from emr_scheduling.modules.appointments.models import Appointment, AppointmentStatus
from emr_scheduling.modules.appointments.repository import AppointmentRepository
from emr_scheduling.modules.appointments.schemas import (
    AppointmentCreate, AppointmentUpdate, StatusChange, AppointmentResult, VisitCreated,
)
from emr_scheduling.modules.appointments.state_machine import validate_transition, is_terminal
from emr_scheduling.modules.directory.repository import DirectoryRepository
from emr_scheduling.modules.events.outbox import OutboxService
from emr_scheduling.modules.visits.repository import VisitRepository

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("doctor_id", "patient_id", "guest_name", "department", "date", "start_min", "end_min", "reason", "location")
SLOT_FIELDS = ("doctor_id", "date", "start_min", "end_min")
MAX_PAGE_SIZE = 100
MAX_QUEUE_DAYS = 7

def _snapshot(obj: Appointment) -> dict:
    return {
        "doctor_id": str(obj.doctor_id),
        "patient_id": str(obj.patient_id) if obj.patient_id else None,
        "date": obj.date.isoformat(),
        "start_min": obj.start_min,
        "end_min": obj.end_min,
        "status": obj.status,
    }

def _clean_name(value: str | None) -> str | None:
    # blank names are stored as missing
    value = (value or "").strip()
    return value or None

class SchedulingService:
    """
    Entry point for every scheduling read and write.

    Each write runs in one transaction on ``session``: it commits when the
    operation finishes and rolls back entirely on any error, so a failed booking
    leaves neither an appointment, a visit nor an outbox event behind.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.appts = AppointmentRepository(session)
        self.directory = DirectoryRepository(session)
        self.visits = VisitRepository(session)
        self.locker = ScheduleLocker(session)
        self.guard = ConflictGuard(session)
        self.slots = FreeSlotCalculator(session)
        self.outbox = OutboxService(session)

    @asynccontextmanager
    async def _transaction(self):
        try:
            yield
            await self.session.commit()
        except DBAPIError as e:
            await self.session.rollback()
            # the lock can also time out on the flush that commit triggers
            if is_lock_timeout(e):
                raise SlotLocked() from e
            raise
        except Exception:
            await self.session.rollback()
            raise

    # ---- Writes ----
    async def create(self, org_id: uuid.UUID, payload: AppointmentCreate) -> Appointment:
        data = payload.model_dump()
        data["guest_name"] = _clean_name(data.get("guest_name"))
        async with self._transaction():
            await self.directory.require_doctor(org_id, payload.doctor_id)
            if payload.patient_id:
                await self.directory.require_patient(org_id, payload.patient_id)
            await self.locker.acquire(org_id, payload.doctor_id, payload.date)
            await self.guard.ensure_within_availability(org_id, payload.doctor_id, payload.date, payload.start_min, payload.end_min)
            await self.guard.ensure_free(org_id, payload.doctor_id, payload.date, payload.start_min, payload.end_min)
            obj = await self.appts.create(org_id, status=AppointmentStatus.SCHEDULED.value, **data)
            await self.outbox.enqueue(org_id, "APPT_CREATED", "appointment", obj.id, _snapshot(obj))
        logger.info(f"Appointment {obj.id} booked for doctor {obj.doctor_id} on {obj.date} [{obj.start_min}, {obj.end_min})")
        return obj

    async def update(self, org_id: uuid.UUID, appt_id: uuid.UUID, payload: AppointmentUpdate) -> Appointment:
        async with self._transaction():
            await self.locker.bound_wait()
            obj = await self.appts.get(org_id, appt_id, for_update=True)
            if not obj:
                raise NotFound("Appointment", appt_id)
            if is_terminal(obj.status):
                raise ImmutableState(obj.status)

            changes = payload.model_dump(exclude_unset=True)
            if "guest_name" in changes:
                changes["guest_name"] = _clean_name(changes["guest_name"])
            merged = {k: changes.get(k, getattr(obj, k)) for k in EDITABLE_FIELDS}
            self._validate_merged(merged)

            if merged["doctor_id"] != obj.doctor_id:
                await self.directory.require_doctor(org_id, merged["doctor_id"])
            if merged["patient_id"] and merged["patient_id"] != obj.patient_id:
                await self.directory.require_patient(org_id, merged["patient_id"])

            moved = any(merged[k] != getattr(obj, k) for k in SLOT_FIELDS)
            if moved:
                # lock the destination schedule; leaving the old slot can't create a conflict
                await self.locker.acquire(org_id, merged["doctor_id"], merged["date"])
                await self.guard.ensure_within_availability(org_id, merged["doctor_id"], merged["date"], merged["start_min"], merged["end_min"])
                await self.guard.ensure_free(org_id, merged["doctor_id"], merged["date"], merged["start_min"], merged["end_min"], exclude_appointment_id=obj.id)

            before = _snapshot(obj)
            for k in changes:
                setattr(obj, k, merged[k])
            obj.version += 1
            await self.session.flush()
            await self.outbox.enqueue(org_id, "APPT_UPDATED", "appointment", obj.id,
                                      {"before": before, "after": _snapshot(obj), "fields": sorted(changes)})
        logger.info(f"Appointment {obj.id} updated ({', '.join(sorted(changes)) or 'no fields'})")
        return obj

    def _validate_merged(self, merged: dict) -> None:
        for key in ("doctor_id", "date", "start_min", "end_min"):
            if merged[key] is None:
                raise ValidationError(f"{key} cannot be cleared", field=key)
        if not (merged["department"] or "").strip():
            raise ValidationError("department cannot be empty", field="department")
        if merged["end_min"] <= merged["start_min"]:
            raise ValidationError("end_min must be greater than start_min", field="end_min")
        if merged["patient_id"] is None and not (merged["guest_name"] or "").strip():
            raise ValidationError("either patient_id or guest_name is required", field="patient_id")

    async def patch_status(self, org_id: uuid.UUID, appt_id: uuid.UUID, payload: StatusChange) -> AppointmentResult | VisitCreated:
        visit = None
        async with self._transaction():
            await self.locker.bound_wait()
            obj = await self.appts.get(org_id, appt_id, for_update=True)
            if not obj:
                raise NotFound("Appointment", appt_id)
            current = obj.status
            reason = validate_transition(current, payload.status, payload.cancel_reason)
            completing = payload.status == AppointmentStatus.COMPLETED.value
            if completing and obj.patient_id is None:
                raise ValidationError("Guest appointments must be linked to a patient before completion", field="patient_id")

            # compare-and-set: a concurrent writer that moved the row first wins
            if not await self.appts.set_status(org_id, obj.id, expected=current, status=payload.status, cancel_reason=reason):
                raise InvalidTransition(current, payload.status)
            await self.session.refresh(obj)
            await self.outbox.enqueue(org_id, "APPT_STATUS_CHANGED", "appointment", obj.id,
                                      {"from": current, "to": payload.status, "cancel_reason": reason})

            if completing:
                visit = await self.visits.for_appointment(org_id, obj.id)
                if visit is None:
                    visit = await self.visits.create(
                        org_id,
                        appointment_id=obj.id,
                        patient_id=obj.patient_id,
                        doctor_id=obj.doctor_id,
                        visit_date=obj.date,
                        department=obj.department,
                        reason=obj.reason,
                    )
                    await self.outbox.enqueue(org_id, "VISIT_CREATED", "visit", visit.id,
                                              {"appointment_id": str(obj.id), "visit_date": obj.date.isoformat()})
        logger.info(f"Appointment {obj.id} moved {current} -> {payload.status}")
        if visit is not None:
            return VisitCreated(visit_id=visit.id, appointment_id=obj.id)
        return AppointmentResult.model_validate(obj)

    async def delete(self, org_id: uuid.UUID, appt_id: uuid.UUID) -> None:
        async with self._transaction():
            await self.locker.bound_wait()
            obj = await self.appts.get(org_id, appt_id, for_update=True)
            if not obj:
                raise NotFound("Appointment", appt_id)
            await self.appts.soft_delete(obj)
            await self.outbox.enqueue(org_id, "APPT_DELETED", "appointment", obj.id, _snapshot(obj))
        logger.info(f"Appointment {appt_id} deleted")

    # ---- Reads ----
    async def get(self, org_id: uuid.UUID, appt_id: uuid.UUID) -> Appointment:
        obj = await self.appts.get(org_id, appt_id)
        if not obj:
            raise NotFound("Appointment", appt_id)
        return obj

    async def list(self, org_id: uuid.UUID, *, day: dt.date | None = None, start: dt.date | None = None, end: dt.date | None = None,
                   doctor_id: uuid.UUID | None = None, status: str | None = None, limit: int = 20, cursor: str | None = None) -> dict:
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")
        if start and end and end < start:
            raise ValidationError("'to' must not be before 'from'", field="to")
        if status and status not in {s.value for s in AppointmentStatus}:
            raise ValidationError(f"Unknown status {status}", field="status")
        after = None
        c = decode_cursor(cursor)
        if c is not None:
            try:
                after = (dt.date.fromisoformat(c["d"]), int(c["s"]), uuid.UUID(c["i"]))
            except (KeyError, TypeError, ValueError):
                raise ValidationError("Malformed pagination cursor", field="cursor")
        rows = list(await self.appts.list(org_id, day=day, start=start, end=end, doctor_id=doctor_id,
                                          status=status, limit=limit + 1, after=after))
        next_cursor = None
        if len(rows) > limit:
            rows = rows[:limit]
            last = rows[-1]
            next_cursor = encode_cursor({"d": last.date.isoformat(), "s": last.start_min, "i": str(last.id)})
        return {"data": rows, "next_cursor": next_cursor}

    async def queue(self, org_id: uuid.UUID, doctor_id: uuid.UUID, days: int = 1, today: dt.date | None = None) -> dict:
        if not 1 <= days <= MAX_QUEUE_DAYS:
            raise ValidationError(f"days must be between 1 and {MAX_QUEUE_DAYS}", field="days")
        await self.directory.require_doctor(org_id, doctor_id)
        start = today or dt.date.today()
        end = start + dt.timedelta(days=days)
        rows = await self.appts.list_active_between(org_id, doctor_id, start, end)
        return {"doctor_id": doctor_id, "start": start, "end": end, "data": list(rows)}

    async def availability(self, org_id: uuid.UUID, doctor_id: uuid.UUID, day: dt.date, duration: int | None = None) -> dict:
        if duration is not None and not 0 < duration <= 24 * 60:
            raise ValidationError("duration must be between 1 and 1440 minutes", field="duration")
        await self.directory.require_doctor(org_id, doctor_id)
        view = await self.slots.compute(org_id, doctor_id, day)
        out = {"doctor_id": doctor_id, "date": day, **view.as_dict()}
        if duration is not None:
            out["bookable"] = [s.as_dict() for s in view.bookable(duration, align=settings.SLOT_ALIGN_MINUTES)]
        return out
