from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Literal, Annotated, Union
import uuid
import datetime as dt
from emr_scheduling.modules.availability.schemas import SlotOut

# ---- Appointments ----

class AppointmentCreate(BaseModel):
    doctor_id: uuid.UUID
    patient_id: uuid.UUID | None = None
    # walk-in without a chart yet
    guest_name: str | None = Field(default=None, max_length=200)
    department: str = Field(min_length=1, max_length=120)
    date: dt.date
    start_min: int = Field(ge=0, le=24*60-1)
    end_min: int = Field(ge=1, le=24*60)
    reason: str | None = None
    location: str | None = Field(default=None, max_length=120)

    @model_validator(mode="after")
    def _check(self):
        if self.end_min <= self.start_min:
            raise ValueError("end_min must be greater than start_min")
        if self.patient_id is None and not (self.guest_name or "").strip():
            raise ValueError("either patient_id or guest_name is required")
        return self

class AppointmentUpdate(BaseModel):
    # any subset; the merged result is validated by the service
    doctor_id: uuid.UUID | None = None
    patient_id: uuid.UUID | None = None
    guest_name: str | None = Field(default=None, max_length=200)
    department: str | None = Field(default=None, min_length=1, max_length=120)
    date: dt.date | None = None
    start_min: int | None = Field(default=None, ge=0, le=24*60-1)
    end_min: int | None = Field(default=None, ge=1, le=24*60)
    reason: str | None = None
    location: str | None = Field(default=None, max_length=120)

class StatusChange(BaseModel):
    status: Literal["Scheduled", "CheckedIn", "InProgress", "Completed", "Cancelled"]
    cancel_reason: str | None = None

class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    org_id: uuid.UUID
    doctor_id: uuid.UUID
    patient_id: uuid.UUID | None = None
    guest_name: str | None = None
    department: str
    date: dt.date
    start_min: int
    end_min: int
    status: str
    cancel_reason: str | None = None
    reason: str | None = None
    location: str | None = None
    version: int
    created_at: dt.datetime
    updated_at: dt.datetime

class AppointmentResult(AppointmentOut):
    kind: Literal["appointment"] = "appointment"

class VisitCreated(BaseModel):
    kind: Literal["visit"] = "visit"
    visit_id: uuid.UUID
    appointment_id: uuid.UUID

StatusResult = Annotated[Union[AppointmentResult, VisitCreated], Field(discriminator="kind")]

class AppointmentPage(BaseModel):
    data: list[AppointmentOut]
    next_cursor: str | None = None

class QueueOut(BaseModel):
    doctor_id: uuid.UUID
    start: dt.date
    end: dt.date
    data: list[AppointmentOut]

# ---- Availability view ----

class AvailabilityOut(BaseModel):
    doctor_id: uuid.UUID
    date: dt.date
    availability: list[SlotOut]
    blocked: list[SlotOut]
    free_slots: list[SlotOut]
    bookable: list[SlotOut] | None = None
