import enum
import uuid
import datetime as dt
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Date, Text, ForeignKey, Index, CheckConstraint, UniqueConstraint
from emr_scheduling.core.base import Base, TimestampedTenantMixin

class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "Scheduled"
    CHECKED_IN = "CheckedIn"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

class Appointment(Base, TimestampedTenantMixin):
    __tablename__ = "appointment"
    __table_args__ = (
        CheckConstraint("start_min >= 0 AND start_min < end_min AND end_min <= 1440", name="ck_appointment_minutes"),
        Index("ix_appointment_doctor_date_slot", "doctor_id", "date", "start_min", "end_min"),
        Index("ix_appointment_patient_date", "patient_id", "date"),
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("doctor.id"))
    # nullable: walk-in guests are booked by name and linked to a patient later
    patient_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("patient.id"), nullable=True)
    guest_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    department: Mapped[str] = mapped_column(String(120))

    date: Mapped[dt.date] = mapped_column(Date)
    start_min: Mapped[int] = mapped_column(Integer)
    end_min: Mapped[int] = mapped_column(Integer)

    status: Mapped[str] = mapped_column(String(24), default=AppointmentStatus.SCHEDULED.value)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(120), nullable=True)

# Sentinel row per doctor/day; updating it serializes writers for that schedule
class ScheduleLock(Base, TimestampedTenantMixin):
    __tablename__ = "schedulelock"
    __table_args__ = (
        UniqueConstraint("org_id", "doctor_id", "date", name="uq_schedulelock_doctor_date"),
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column()
    date: Mapped[dt.date] = mapped_column(Date)
    generation: Mapped[int] = mapped_column(Integer, default=0)
