"""
SchedulingService against a real (SQLite) database.

Covers the booking walk-through for a doctor with a Monday morning window:
free slots, booking, conflict rejection, the full status lifecycle and the
visit created on completion.
"""

import datetime as dt

import pytest
from sqlalchemy import select, func

from emr_scheduling.core.errors import (
    SlotUnavailable, InvalidTransition, ImmutableState, NotFound, ValidationError, ReasonRequired,
)
from emr_scheduling.modules.appointments.conflicts import ConflictGuard
from emr_scheduling.modules.appointments.models import Appointment
from emr_scheduling.modules.appointments.schemas import AppointmentCreate, AppointmentUpdate, StatusChange, VisitCreated
from emr_scheduling.modules.appointments.service import SchedulingService
from emr_scheduling.modules.availability.repository import AvailabilityRepository
from emr_scheduling.modules.events.outbox import OutboxRepository
from emr_scheduling.modules.visits.models import Visit
from scheduling_fixtures import ORG_ID, MONDAY

pytestmark = pytest.mark.integration


def booking(doctor, patient=None, start=600, end=660, day=MONDAY, **extra) -> AppointmentCreate:
    data = dict(doctor_id=doctor.id, department="Cardiology", date=day, start_min=start, end_min=end)
    if patient is not None:
        data["patient_id"] = patient.id
    else:
        data["guest_name"] = "Walk-in Guest"
    data.update(extra)
    return AppointmentCreate(**data)


async def advance(service: SchedulingService, appt_id, *statuses):
    result = None
    for status in statuses:
        result = await service.patch_status(ORG_ID, appt_id, StatusChange(status=status))
    return result


# ============================================================================
# Free slots
# ============================================================================


@pytest.mark.asyncio
async def test_free_slots_equal_window_when_nothing_booked(session, doctor, monday_morning):
    view = await SchedulingService(session).availability(ORG_ID, doctor.id, MONDAY)
    assert view["availability"] == [{"start_min": 540, "end_min": 720}]
    assert view["blocked"] == []
    assert view["free_slots"] == [{"start_min": 540, "end_min": 720}]


@pytest.mark.asyncio
async def test_booking_splits_free_slots(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    await service.create(ORG_ID, booking(doctor, patient))

    view = await service.availability(ORG_ID, doctor.id, MONDAY)
    assert view["blocked"] == [{"start_min": 600, "end_min": 660}]
    assert view["free_slots"] == [{"start_min": 540, "end_min": 600}, {"start_min": 660, "end_min": 720}]


@pytest.mark.asyncio
async def test_blackouts_and_bookings_are_both_blocked(session, doctor, patient, monday_morning):
    async with session.begin():
        await AvailabilityRepository(session).create_blackout(ORG_ID, doctor_id=doctor.id, date=MONDAY, start_min=540, end_min=570, reason="Staff meeting")
    service = SchedulingService(session)
    await service.create(ORG_ID, booking(doctor, patient, start=570, end=600))

    view = await service.availability(ORG_ID, doctor.id, MONDAY, duration=30)
    assert view["blocked"] == [{"start_min": 540, "end_min": 600}]
    assert view["free_slots"] == [{"start_min": 600, "end_min": 720}]
    assert [s["start_min"] for s in view["bookable"]] == [600, 630, 660, 690]


@pytest.mark.asyncio
async def test_cancelled_appointment_frees_its_time(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    appt = await service.create(ORG_ID, booking(doctor, patient))
    await service.patch_status(ORG_ID, appt.id, StatusChange(status="Cancelled", cancel_reason="Patient called"))

    view = await service.availability(ORG_ID, doctor.id, MONDAY)
    assert view["free_slots"] == [{"start_min": 540, "end_min": 720}]
    # and the slot can be booked again
    again = await service.create(ORG_ID, booking(doctor, patient))
    assert again.status == "Scheduled"


@pytest.mark.asyncio
async def test_availability_reads_are_idempotent(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    await service.create(ORG_ID, booking(doctor, patient))
    first = await service.availability(ORG_ID, doctor.id, MONDAY)
    second = await service.availability(ORG_ID, doctor.id, MONDAY)
    assert first == second


@pytest.mark.asyncio
async def test_default_window_applies_without_configured_availability(session, doctor):
    tuesday = MONDAY + dt.timedelta(days=1)
    view = await SchedulingService(session).availability(ORG_ID, doctor.id, tuesday)
    assert view["availability"] == [{"start_min": 540, "end_min": 1020}]


@pytest.mark.asyncio
async def test_availability_unknown_doctor(session, doctor):
    with pytest.raises(NotFound):
        await SchedulingService(session).availability(ORG_ID, ORG_ID, MONDAY)


# ============================================================================
# Create
# ============================================================================


@pytest.mark.asyncio
async def test_overlapping_booking_is_rejected(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    first = await service.create(ORG_ID, booking(doctor, patient))
    first_id = first.id

    with pytest.raises(SlotUnavailable) as exc:
        await service.create(ORG_ID, booking(doctor, patient, start=630, end=690))
    assert exc.value.reason == "conflict"
    assert exc.value.conflicts == [{"start_min": 600, "end_min": 660, "source": "appointment", "id": str(first_id)}]

    count = await session.scalar(select(func.count()).select_from(Appointment))
    assert count == 1


@pytest.mark.asyncio
async def test_back_to_back_bookings_are_allowed(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    await service.create(ORG_ID, booking(doctor, patient, start=600, end=660))
    second = await service.create(ORG_ID, booking(doctor, patient, start=660, end=690))
    assert (second.start_min, second.end_min) == (660, 690)


@pytest.mark.asyncio
async def test_booking_outside_availability_is_rejected(session, doctor, patient, monday_morning):
    with pytest.raises(SlotUnavailable) as exc:
        await SchedulingService(session).create(ORG_ID, booking(doctor, patient, start=700, end=760))
    assert exc.value.reason == "outside_availability"


@pytest.mark.asyncio
async def test_other_doctors_do_not_conflict(session, doctor, other_doctor, patient, monday_morning):
    service = SchedulingService(session)
    await service.create(ORG_ID, booking(doctor, patient))
    # other_doctor falls back to the 09:00-17:00 default
    appt = await service.create(ORG_ID, booking(other_doctor, patient, department="Dermatology"))
    assert appt.doctor_id == other_doctor.id


@pytest.mark.asyncio
async def test_create_requires_existing_doctor_and_patient(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    missing = booking(doctor, patient).model_copy(update={"doctor_id": ORG_ID})
    with pytest.raises(NotFound) as exc:
        await service.create(ORG_ID, missing)
    assert exc.value.entity_type == "Doctor"

    missing = booking(doctor, patient).model_copy(update={"patient_id": ORG_ID})
    with pytest.raises(NotFound) as exc:
        await service.create(ORG_ID, missing)
    assert exc.value.entity_type == "Patient"


@pytest.mark.asyncio
async def test_create_records_outbox_event(session, doctor, patient, monday_morning):
    appt = await SchedulingService(session).create(ORG_ID, booking(doctor, patient))
    events = await OutboxRepository(session).list_for_subject(ORG_ID, appt.id)
    assert [e.event_type for e in events] == ["APPT_CREATED"]
    assert events[0].payload["start_min"] == 600


# ============================================================================
# Status lifecycle
# ============================================================================


@pytest.mark.asyncio
async def test_full_lifecycle_creates_visit(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    appt = await service.create(ORG_ID, booking(doctor, patient))

    checked_in = await service.patch_status(ORG_ID, appt.id, StatusChange(status="CheckedIn"))
    assert checked_in.kind == "appointment"
    assert checked_in.status == "CheckedIn"

    result = await advance(service, appt.id, "InProgress", "Completed")
    assert isinstance(result, VisitCreated)
    assert result.appointment_id == appt.id

    visit = await session.get(Visit, result.visit_id)
    assert visit.visit_date == MONDAY
    assert visit.patient_id == patient.id
    assert visit.doctor_id == doctor.id

    stored = await service.get(ORG_ID, appt.id)
    assert stored.status == "Completed"

    events = await OutboxRepository(session).list_for_subject(ORG_ID, appt.id)
    assert [e.event_type for e in events] == ["APPT_CREATED"] + ["APPT_STATUS_CHANGED"] * 3


@pytest.mark.asyncio
async def test_completed_appointment_cannot_be_cancelled(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    appt = await service.create(ORG_ID, booking(doctor, patient))
    await advance(service, appt.id, "CheckedIn", "InProgress", "Completed")

    with pytest.raises(InvalidTransition) as exc:
        await service.patch_status(ORG_ID, appt.id, StatusChange(status="Cancelled", cancel_reason="late"))
    assert exc.value.current == "Completed"


@pytest.mark.asyncio
async def test_skipping_a_state_is_rejected(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    appt = await service.create(ORG_ID, booking(doctor, patient))
    appt_id = appt.id
    with pytest.raises(InvalidTransition):
        await service.patch_status(ORG_ID, appt.id, StatusChange(status="Completed"))
    assert (await service.get(ORG_ID, appt_id)).status == "Scheduled"


@pytest.mark.asyncio
async def test_cancel_without_reason(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    appt = await service.create(ORG_ID, booking(doctor, patient))
    appt_id = appt.id
    with pytest.raises(ReasonRequired):
        await service.patch_status(ORG_ID, appt.id, StatusChange(status="Cancelled"))

    result = await service.patch_status(ORG_ID, appt_id, StatusChange(status="Cancelled", cancel_reason="Rescheduling"))
    assert result.status == "Cancelled"
    assert result.cancel_reason == "Rescheduling"


@pytest.mark.asyncio
async def test_guest_appointment_cannot_complete(session, doctor, monday_morning):
    service = SchedulingService(session)
    appt = await service.create(ORG_ID, booking(doctor))
    appt_id = appt.id
    await advance(service, appt.id, "CheckedIn", "InProgress")

    with pytest.raises(ValidationError):
        await service.patch_status(ORG_ID, appt.id, StatusChange(status="Completed"))

    assert (await service.get(ORG_ID, appt_id)).status == "InProgress"
    assert await session.scalar(select(func.count()).select_from(Visit)) == 0


@pytest.mark.asyncio
async def test_patch_status_unknown_appointment(session, doctor):
    with pytest.raises(NotFound):
        await SchedulingService(session).patch_status(ORG_ID, ORG_ID, StatusChange(status="CheckedIn"))


# ============================================================================
# Update
# ============================================================================


@pytest.mark.asyncio
async def test_update_can_move_within_own_slot(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    appt = await service.create(ORG_ID, booking(doctor, patient))
    # overlaps only itself
    moved = await service.update(ORG_ID, appt.id, AppointmentUpdate(start_min=630, end_min=690))
    assert (moved.start_min, moved.end_min) == (630, 690)
    assert moved.version == 2


@pytest.mark.asyncio
async def test_update_into_conflict_is_rejected(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    await service.create(ORG_ID, booking(doctor, patient, start=540, end=600))
    second = await service.create(ORG_ID, booking(doctor, patient, start=660, end=720))
    second_id = second.id

    with pytest.raises(SlotUnavailable):
        await service.update(ORG_ID, second.id, AppointmentUpdate(start_min=570, end_min=630))
    stored = await service.get(ORG_ID, second_id)
    assert (stored.start_min, stored.end_min) == (660, 720)


@pytest.mark.asyncio
async def test_update_non_time_fields_skips_conflict_check(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    appt = await service.create(ORG_ID, booking(doctor, patient))
    updated = await service.update(ORG_ID, appt.id, AppointmentUpdate(reason="Follow-up", location="Room 4"))
    assert updated.reason == "Follow-up"
    assert updated.location == "Room 4"


@pytest.mark.asyncio
async def test_guest_name_is_trimmed_on_create_and_update(session, doctor, monday_morning):
    service = SchedulingService(session)
    appt = await service.create(ORG_ID, booking(doctor, guest_name="  Sam Lee  "))
    assert appt.guest_name == "Sam Lee"
    appt_id = appt.id

    updated = await service.update(ORG_ID, appt_id, AppointmentUpdate(guest_name="  Sam Lee Jr.  "))
    assert updated.guest_name == "Sam Lee Jr."

    # a blank name leaves a guest booking with nobody attached
    with pytest.raises(ValidationError) as exc:
        await service.update(ORG_ID, appt_id, AppointmentUpdate(guest_name="   "))
    assert exc.value.field == "patient_id"


@pytest.mark.asyncio
async def test_update_validates_merged_interval(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    appt = await service.create(ORG_ID, booking(doctor, patient))
    with pytest.raises(ValidationError) as exc:
        await service.update(ORG_ID, appt.id, AppointmentUpdate(start_min=700))
    assert exc.value.field == "end_min"


@pytest.mark.asyncio
async def test_terminal_appointment_is_immutable(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    appt = await service.create(ORG_ID, booking(doctor, patient))
    await service.patch_status(ORG_ID, appt.id, StatusChange(status="Cancelled", cancel_reason="Duplicate"))

    # ImmutableState wins over the invalid interval in the same payload
    with pytest.raises(ImmutableState):
        await service.update(ORG_ID, appt.id, AppointmentUpdate(start_min=700))


@pytest.mark.asyncio
async def test_update_unknown_appointment(session, doctor):
    with pytest.raises(NotFound):
        await SchedulingService(session).update(ORG_ID, ORG_ID, AppointmentUpdate(reason="x"))


# ============================================================================
# Delete / list / queue
# ============================================================================


@pytest.mark.asyncio
async def test_delete_is_soft_and_frees_time(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    appt = await service.create(ORG_ID, booking(doctor, patient))
    await service.delete(ORG_ID, appt.id)

    with pytest.raises(NotFound):
        await service.get(ORG_ID, appt.id)
    row = await session.get(Appointment, appt.id)
    assert row.deleted_at is not None
    view = await service.availability(ORG_ID, doctor.id, MONDAY)
    assert view["free_slots"] == [{"start_min": 540, "end_min": 720}]


@pytest.mark.asyncio
async def test_list_pages_with_cursor(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    for start in (540, 600, 660):
        await service.create(ORG_ID, booking(doctor, patient, start=start, end=start + 30))

    page = await service.list(ORG_ID, doctor_id=doctor.id, limit=2)
    assert [a.start_min for a in page["data"]] == [540, 600]
    assert page["next_cursor"]

    rest = await service.list(ORG_ID, doctor_id=doctor.id, limit=2, cursor=page["next_cursor"])
    assert [a.start_min for a in rest["data"]] == [660]
    assert rest["next_cursor"] is None


@pytest.mark.asyncio
async def test_list_filters(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    first = await service.create(ORG_ID, booking(doctor, patient, start=540, end=570))
    await service.create(ORG_ID, booking(doctor, patient, start=600, end=630, day=MONDAY + dt.timedelta(days=7)))
    await service.patch_status(ORG_ID, first.id, StatusChange(status="CheckedIn"))

    assert len((await service.list(ORG_ID, day=MONDAY))["data"]) == 1
    assert len((await service.list(ORG_ID, start=MONDAY, end=MONDAY + dt.timedelta(days=7)))["data"]) == 2
    checked_in = (await service.list(ORG_ID, status="CheckedIn"))["data"]
    assert [a.id for a in checked_in] == [first.id]


@pytest.mark.asyncio
async def test_list_rejects_bad_input(session):
    service = SchedulingService(session)
    with pytest.raises(ValidationError):
        await service.list(ORG_ID, limit=500)
    with pytest.raises(ValidationError):
        await service.list(ORG_ID, cursor="not-a-cursor")


@pytest.mark.asyncio
async def test_queue_lists_active_appointments_in_range(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    done = await service.create(ORG_ID, booking(doctor, patient, start=540, end=570))
    waiting = await service.create(ORG_ID, booking(doctor, patient, start=600, end=630))
    later = await service.create(ORG_ID, booking(doctor, patient, start=600, end=630, day=MONDAY + dt.timedelta(days=7)))
    await advance(service, done.id, "CheckedIn", "InProgress", "Completed")

    today = await service.queue(ORG_ID, doctor.id, days=1, today=MONDAY)
    assert [a.id for a in today["data"]] == [waiting.id]

    week = await service.queue(ORG_ID, doctor.id, days=7, today=MONDAY + dt.timedelta(days=1))
    assert [a.id for a in week["data"]] == [later.id]

    with pytest.raises(ValidationError):
        await service.queue(ORG_ID, doctor.id, days=8, today=MONDAY)


@pytest.mark.asyncio
async def test_conflict_guard_excludes_the_edited_appointment(session, doctor, patient, monday_morning):
    appt = await SchedulingService(session).create(ORG_ID, booking(doctor, patient))
    guard = ConflictGuard(session)
    assert await guard.has_conflict(ORG_ID, doctor.id, MONDAY, 630, 690)
    assert not await guard.has_conflict(ORG_ID, doctor.id, MONDAY, 630, 690, exclude_appointment_id=appt.id)
    assert not await guard.has_conflict(ORG_ID, doctor.id, MONDAY, 660, 720)


@pytest.mark.asyncio
async def test_edit_reports_validation_before_conflict(session, doctor, patient, monday_morning):
    service = SchedulingService(session)
    await service.create(ORG_ID, booking(doctor, patient, start=540, end=600))
    second = await service.create(ORG_ID, booking(doctor, patient, start=660, end=720))
    # overlaps the first booking and is also inverted
    with pytest.raises(ValidationError):
        await service.update(ORG_ID, second.id, AppointmentUpdate(start_min=570, end_min=560))
