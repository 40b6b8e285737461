import uuid
import datetime as dt
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from emr_scheduling.core.db import get_session
from emr_scheduling.core.security import get_principal, require_scopes, ensure_own_doctor, Principal
from emr_scheduling.modules.availability.service import AvailabilityService
from emr_scheduling.modules.availability.schemas import WindowCreate, WindowOut, DoctorAvailabilityOut, BlackoutCreate, BlackoutOut

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session)) -> AvailabilityService:
    return AvailabilityService(s)

# Recurring weekly windows
@router.get("/doctors/{doctor_id}/availability", response_model=DoctorAvailabilityOut, dependencies=[Depends(require_scopes("availability:read"))])
async def list_windows(doctor_id: uuid.UUID, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    return await service.list_windows(principal.org_id, doctor_id)

@router.post("/doctors/{doctor_id}/availability", response_model=WindowOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_scopes("availability:write"))])
async def create_window(doctor_id: uuid.UUID, payload: WindowCreate, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    ensure_own_doctor(principal, doctor_id)
    return await service.create_window(principal.org_id, doctor_id, payload)

@router.delete("/doctors/{doctor_id}/availability/{window_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_scopes("availability:write"))])
async def delete_window(doctor_id: uuid.UUID, window_id: uuid.UUID, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    ensure_own_doctor(principal, doctor_id)
    await service.delete_window(principal.org_id, doctor_id, window_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# Blackouts
@router.get("/doctors/{doctor_id}/blackouts", response_model=list[BlackoutOut], dependencies=[Depends(require_scopes("availability:read"))])
async def list_blackouts(
    doctor_id: uuid.UUID,
    from_: dt.date = Query(alias="from"),
    to: dt.date | None = None,
    principal: Principal = Depends(get_principal),
    service: AvailabilityService = Depends(svc),
):
    return await service.list_blackouts(principal.org_id, doctor_id, from_, to or from_)

@router.post("/doctors/{doctor_id}/blackouts", response_model=BlackoutOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_scopes("availability:write"))])
async def create_blackout(doctor_id: uuid.UUID, payload: BlackoutCreate, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    ensure_own_doctor(principal, doctor_id)
    return await service.create_blackout(principal.org_id, doctor_id, payload)

@router.delete("/doctors/{doctor_id}/blackouts/{blackout_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_scopes("availability:write"))])
async def delete_blackout(doctor_id: uuid.UUID, blackout_id: uuid.UUID, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    ensure_own_doctor(principal, doctor_id)
    await service.delete_blackout(principal.org_id, doctor_id, blackout_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
