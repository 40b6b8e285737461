from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String
from emr_scheduling.core.base import Base, TimestampedTenantMixin

# Identity records owned by the clinic directory; scheduling only looks them up.

class Doctor(Base, TimestampedTenantMixin):
    __tablename__ = "doctor"
    name: Mapped[str] = mapped_column(String(160), index=True)
    department: Mapped[str | None] = mapped_column(String(120), nullable=True)
    active: Mapped[bool] = mapped_column(default=True)

class Patient(Base, TimestampedTenantMixin):
    __tablename__ = "patient"
    legal_name: Mapped[str] = mapped_column(String(200))
    primary_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
