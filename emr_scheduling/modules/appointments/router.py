import uuid
import datetime as dt
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from emr_scheduling.core.db import get_session
from emr_scheduling.core.security import get_principal, Principal, require_scopes, ensure_own_doctor, ensure_clinical_role
from emr_scheduling.modules.appointments.models import AppointmentStatus
from emr_scheduling.modules.appointments.schemas import (
    AppointmentCreate, AppointmentUpdate, StatusChange, AppointmentOut, StatusResult,
    AppointmentPage, QueueOut, AvailabilityOut,
)
from emr_scheduling.modules.appointments.service import SchedulingService

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session)) -> SchedulingService:
    return SchedulingService(session)

# ---- Schedule views ----
# declared before /appointments/{appointment_id} so the literal paths win

@router.get("/appointments/availability", response_model=AvailabilityOut, response_model_exclude_none=True,
            dependencies=[Depends(require_scopes("appointments:read"))])
async def get_availability(
    doctor_id: uuid.UUID,
    date: dt.date,
    duration: int | None = Query(default=None, ge=1, le=24*60),
    principal: Principal = Depends(get_principal),
    service: SchedulingService = Depends(svc),
):
    ensure_own_doctor(principal, doctor_id)
    return await service.availability(principal.org_id, doctor_id, date, duration)

@router.get("/appointments/queue", response_model=QueueOut, dependencies=[Depends(require_scopes("appointments:read"))])
async def get_queue(
    doctor_id: uuid.UUID,
    days: int = Query(default=1, ge=1, le=7),
    principal: Principal = Depends(get_principal),
    service: SchedulingService = Depends(svc),
):
    ensure_own_doctor(principal, doctor_id)
    return await service.queue(principal.org_id, doctor_id, days)

# ---- Appointments ----

@router.post("/appointments", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(require_scopes("appointments:write"))])
async def create_appointment(
    payload: AppointmentCreate,
    principal: Principal = Depends(get_principal),
    service: SchedulingService = Depends(svc),
):
    return await service.create(principal.org_id, payload)

@router.get("/appointments", response_model=AppointmentPage, dependencies=[Depends(require_scopes("appointments:read"))])
async def list_appointments(
    date: dt.date | None = None,
    from_: dt.date | None = Query(default=None, alias="from"),
    to: dt.date | None = None,
    doctor_id: uuid.UUID | None = None,
    status: str | None = Query(default=None, pattern="^(Scheduled|CheckedIn|InProgress|Completed|Cancelled)$"),
    limit: int = Query(default=20, ge=1, le=100),
    cursor: str | None = None,
    principal: Principal = Depends(get_principal),
    service: SchedulingService = Depends(svc),
):
    if principal.is_doctor:
        # doctors only ever see their own schedule
        ensure_own_doctor(principal, doctor_id or principal.doctor_id)
        doctor_id = principal.doctor_id
    return await service.list(principal.org_id, day=date, start=from_, end=to, doctor_id=doctor_id,
                              status=status, limit=limit, cursor=cursor)

@router.get("/appointments/{appointment_id}", response_model=AppointmentOut, dependencies=[Depends(require_scopes("appointments:read"))])
async def get_appointment(
    appointment_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: SchedulingService = Depends(svc),
):
    appt = await service.get(principal.org_id, appointment_id)
    ensure_own_doctor(principal, appt.doctor_id)
    return appt

@router.put("/appointments/{appointment_id}", response_model=AppointmentOut, dependencies=[Depends(require_scopes("appointments:write"))])
async def update_appointment(
    appointment_id: uuid.UUID,
    payload: AppointmentUpdate,
    principal: Principal = Depends(get_principal),
    service: SchedulingService = Depends(svc),
):
    appt = await service.get(principal.org_id, appointment_id)
    ensure_own_doctor(principal, appt.doctor_id)
    if payload.doctor_id is not None:
        ensure_own_doctor(principal, payload.doctor_id)
    return await service.update(principal.org_id, appointment_id, payload)

@router.patch("/appointments/{appointment_id}/status", response_model=StatusResult, dependencies=[Depends(require_scopes("appointments:write"))])
async def change_appointment_status(
    appointment_id: uuid.UUID,
    payload: StatusChange,
    principal: Principal = Depends(get_principal),
    service: SchedulingService = Depends(svc),
):
    appt = await service.get(principal.org_id, appointment_id)
    ensure_own_doctor(principal, appt.doctor_id)
    if payload.status in (AppointmentStatus.IN_PROGRESS.value, AppointmentStatus.COMPLETED.value):
        ensure_clinical_role(principal)
    return await service.patch_status(principal.org_id, appointment_id, payload)

@router.delete("/appointments/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_scopes("appointments:write"))])
async def delete_appointment(
    appointment_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: SchedulingService = Depends(svc),
):
    appt = await service.get(principal.org_id, appointment_id)
    ensure_own_doctor(principal, appt.doctor_id)
    await service.delete(principal.org_id, appointment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
