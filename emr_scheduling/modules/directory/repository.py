import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from emr_scheduling.core.errors import NotFound
from emr_scheduling.modules.directory.models import Doctor, Patient

class DirectoryRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_doctor(self, org_id: uuid.UUID, **data) -> Doctor:
        obj = Doctor(org_id=org_id, **data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def create_patient(self, org_id: uuid.UUID, **data) -> Patient:
        obj = Patient(org_id=org_id, **data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get_doctor(self, org_id: uuid.UUID, doctor_id: uuid.UUID) -> Doctor | None:
        q = select(Doctor).where(
            Doctor.id == doctor_id,
            Doctor.org_id == org_id,
            Doctor.deleted_at.is_(None),
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_patient(self, org_id: uuid.UUID, patient_id: uuid.UUID) -> Patient | None:
        q = select(Patient).where(
            Patient.id == patient_id,
            Patient.org_id == org_id,
            Patient.deleted_at.is_(None),
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def require_doctor(self, org_id: uuid.UUID, doctor_id: uuid.UUID) -> Doctor:
        doctor = await self.get_doctor(org_id, doctor_id)
        if not doctor:
            raise NotFound("Doctor", doctor_id)
        return doctor

    async def require_patient(self, org_id: uuid.UUID, patient_id: uuid.UUID) -> Patient:
        patient = await self.get_patient(org_id, patient_id)
        if not patient:
            raise NotFound("Patient", patient_id)
        return patient
