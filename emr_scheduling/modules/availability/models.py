import uuid
import datetime as dt
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Date, ForeignKey, Index, CheckConstraint
from emr_scheduling.core.base import Base, TimestampedTenantMixin

# Recurring weekly window: day_of_week 0=Sun..6=Sat, minutes past midnight
class AvailabilityWindow(Base, TimestampedTenantMixin):
    __tablename__ = "availabilitywindow"
    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_window_day_of_week"),
        CheckConstraint("start_min >= 0 AND start_min < end_min AND end_min <= 1440", name="ck_window_minutes"),
        Index("ix_window_doctor_day", "doctor_id", "day_of_week"),
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("doctor.id"))
    day_of_week: Mapped[int] = mapped_column(Integer)  # 0..6
    start_min: Mapped[int] = mapped_column(Integer)  # e.g., 9*60
    end_min: Mapped[int] = mapped_column(Integer)    # e.g., 17*60

# Ad hoc unavailability (time off, training) on a single date
class BlackoutPeriod(Base, TimestampedTenantMixin):
    __tablename__ = "blackoutperiod"
    __table_args__ = (
        CheckConstraint("start_min >= 0 AND start_min < end_min AND end_min <= 1440", name="ck_blackout_minutes"),
        Index("ix_blackout_doctor_date", "doctor_id", "date"),
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("doctor.id"))
    date: Mapped[dt.date] = mapped_column(Date)
    start_min: Mapped[int] = mapped_column(Integer)
    end_min: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
