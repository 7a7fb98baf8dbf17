# barberbook/models/monthly_plan.py
"""
MonthlyPlan Model - a client's recurring subscription and its weekly slots
"""
from sqlalchemy import Column, String, Integer, Numeric, Text, Date, Time, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from dataclasses import dataclass
from decimal import Decimal
import enum
import uuid
from barberbook.models.base import Base


class PlanStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


class PaymentStatus(str, enum.Enum):
    PAID = "paid"
    PENDING = "pending"
    OVERDUE = "overdue"


class PlanTier(str, enum.Enum):
    BASIC = "basic"
    PREMIUM = "premium"
    VIP = "vip"


@dataclass(frozen=True)
class TierRule:
    min_entries: int
    max_entries: int
    default_price: Decimal


TIER_RULES = {
    PlanTier.BASIC: TierRule(min_entries=1, max_entries=1, default_price=Decimal("80.00")),
    PlanTier.PREMIUM: TierRule(min_entries=2, max_entries=2, default_price=Decimal("150.00")),
    PlanTier.VIP: TierRule(min_entries=2, max_entries=4, default_price=Decimal("250.00")),
}


class MonthlyPlan(Base):
    __tablename__ = "monthly_plans"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)

    tier = Column(String(20), nullable=False)
    monthly_price = Column(Numeric(10, 2), nullable=False)
    start_date = Column(Date, nullable=False)

    status = Column(String(20), nullable=False, default=PlanStatus.ACTIVE.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    next_payment_date = Column(Date, nullable=True)
    last_payment_date = Column(Date, nullable=True)

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client")
    entries = relationship(
        "WeeklyScheduleEntry",
        back_populates="plan",
        order_by="WeeklyScheduleEntry.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<MonthlyPlan(id={self.id}, tier={self.tier}, status={self.status})>"

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            "id": str(self.id),
            "client_id": str(self.client_id),
            "client_name": self.client.name if self.client else None,
            "tier": self.tier,
            "monthly_price": float(self.monthly_price),
            "start_date": self.start_date.isoformat(),
            "status": self.status,
            "payment_status": self.payment_status,
            "next_payment_date": self.next_payment_date.isoformat() if self.next_payment_date else None,
            "last_payment_date": self.last_payment_date.isoformat() if self.last_payment_date else None,
            "notes": self.notes,
            "schedule": [entry.to_dict() for entry in self.entries],
        }


class WeeklyScheduleEntry(Base):
    """One recurring slot of a plan"""
    __tablename__ = "weekly_schedule_entries"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    plan_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("monthly_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    position = Column(Integer, nullable=False, default=0)

    day_of_week = Column(Integer, nullable=False)  # 0=Sunday, 6=Saturday
    time_of_day = Column(Time, nullable=False)
    service_id = Column(Uuid(as_uuid=True), ForeignKey("services.id"), nullable=False)
    scheduled_date = Column(Date, nullable=True)  # operator-picked date for this cycle

    plan = relationship("MonthlyPlan", back_populates="entries")

    def __repr__(self):
        return f"<WeeklyScheduleEntry(day={self.day_of_week}, time={self.time_of_day})>"

    def to_dict(self):
        return {
            "day_of_week": self.day_of_week,
            "time": self.time_of_day.strftime("%H:%M"),
            "service_id": str(self.service_id),
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
        }
