import uuid
import datetime as dt
from pydantic import BaseModel, ConfigDict, Field, model_validator

class SlotOut(BaseModel):
    start_min: int
    end_min: int

class WindowCreate(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_min: int = Field(ge=0, le=24*60-1)
    end_min: int = Field(ge=1, le=24*60)

    @model_validator(mode="after")
    def _ordered(self):
        if self.end_min <= self.start_min:
            raise ValueError("end_min must be greater than start_min")
        return self

class WindowOut(WindowCreate):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    doctor_id: uuid.UUID

class DoctorAvailabilityOut(BaseModel):
    doctor_id: uuid.UUID
    availability: list[WindowOut]
    default_availability: list[SlotOut]

class BlackoutCreate(BaseModel):
    date: dt.date
    start_min: int = Field(ge=0, le=24*60-1)
    end_min: int = Field(ge=1, le=24*60)
    reason: str | None = None

    @model_validator(mode="after")
    def _ordered(self):
        if self.end_min <= self.start_min:
            raise ValueError("end_min must be greater than start_min")
        return self

class BlackoutOut(BlackoutCreate):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    doctor_id: uuid.UUID
