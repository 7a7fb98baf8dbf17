# barberbook/models/__init__.py
from .base import Base
from .business import Business
from .client import Client
from .service import Service
from .appointment import Appointment, AppointmentStatus, PaymentMethod, BookingSource, PLAN_NOTE_MARKER
from .monthly_plan import (
    MonthlyPlan,
    WeeklyScheduleEntry,
    PlanStatus,
    PaymentStatus,
    PlanTier,
    TierRule,
    TIER_RULES,
)
from .loyalty import LoyaltySettings, LoyaltyAccount, LoyaltyHistory, LoyaltyAction, RewardDraw

__all__ = [
    "Base",
    "Business",
    "Client",
    "Service",
    "Appointment",
    "AppointmentStatus",
    "PaymentMethod",
    "BookingSource",
    "PLAN_NOTE_MARKER",
    "MonthlyPlan",
    "WeeklyScheduleEntry",
    "PlanStatus",
    "PaymentStatus",
    "PlanTier",
    "TierRule",
    "TIER_RULES",
    "LoyaltySettings",
    "LoyaltyAccount",
    "LoyaltyHistory",
    "LoyaltyAction",
    "RewardDraw",
]
