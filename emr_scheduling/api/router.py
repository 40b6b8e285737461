from fastapi import APIRouter
from emr_scheduling.modules.appointments.router import router as appointments_router
from emr_scheduling.modules.availability.router import router as availability_router

api_router = APIRouter()
api_router.include_router(appointments_router, tags=["appointments"])
# /doctors/{doctor_id}/availability and /doctors/{doctor_id}/blackouts
api_router.include_router(availability_router, tags=["availability"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
