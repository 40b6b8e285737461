import uuid
import datetime as dt
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Date, Text, ForeignKey
from emr_scheduling.core.base import Base, TimestampedTenantMixin

# Clinical encounter opened when an appointment completes; its content belongs to
# clinical documentation, scheduling only creates the row.
class Visit(Base, TimestampedTenantMixin):
    __tablename__ = "visit"
    appointment_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("appointment.id"), unique=True, nullable=True)
    patient_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("patient.id"))
    doctor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("doctor.id"))
    visit_date: Mapped[dt.date] = mapped_column(Date)
    department: Mapped[str] = mapped_column(String(120))
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
