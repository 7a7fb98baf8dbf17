# barberbook/models/appointment.py
from sqlalchemy import Column, String, Integer, Numeric, Text, DateTime, ForeignKey, Index, Uuid, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import timedelta
import enum
import uuid
from barberbook.models.base import Base


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    PIX = "pix"
    TRANSFER = "transfer"


class BookingSource(str, enum.Enum):
    MANUAL = "manual"
    ONLINE = "online"
    WHATSAPP = "whatsapp"
    PHONE = "phone"
    MONTHLY_PLAN = "monthly_plan"


# Prefix written into notes of appointments generated from a monthly plan
PLAN_NOTE_MARKER = "[monthly-plan]"

_NOT_CANCELLED = text("status != 'cancelled'")


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # One live booking per start instant; a lost race surfaces as IntegrityError
        Index(
            "uq_appointments_business_slot",
            "business_id",
            "scheduled_at",
            unique=True,
            postgresql_where=_NOT_CANCELLED,
            sqlite_where=_NOT_CANCELLED,
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # References
    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id"), nullable=True, index=True)  # NULL = walk-in
    service_id = Column(Uuid(as_uuid=True), ForeignKey("services.id"), nullable=False)

    # Appointment details
    service_name = Column(String(200), nullable=False)
    scheduled_at = Column(DateTime, nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False, default=30)
    price = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text, nullable=True)

    # Status tracking
    status = Column(String(20), nullable=False, default=AppointmentStatus.SCHEDULED.value)
    booking_source = Column(String(20), nullable=False, default=BookingSource.MANUAL.value)
    payment_method = Column(String(20), nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client")
    service = relationship("Service")

    @property
    def ends_at(self):
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    @property
    def is_plan_generated(self) -> bool:
        return (self.notes or "").startswith(PLAN_NOTE_MARKER)

    def __repr__(self):
        return f"<Appointment(id={self.id}, scheduled_at={self.scheduled_at}, status={self.status})>"
