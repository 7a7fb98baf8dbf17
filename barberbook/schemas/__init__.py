# barberbook/schemas/__init__.py
from .appointment import (
    AppointmentCreateRequest,
    AppointmentUpdateRequest,
    AppointmentCompleteRequest,
    AppointmentCancelRequest,
)
from .monthly_plan import ScheduleEntrySchema, MonthlyPlanCreateRequest, ScheduleUpdateRequest, MarkPaidRequest
from .loyalty import LoyaltySettingsUpdateRequest, PointsAdjustRequest

__all__ = [
    "AppointmentCreateRequest",
    "AppointmentUpdateRequest",
    "AppointmentCompleteRequest",
    "AppointmentCancelRequest",
    "ScheduleEntrySchema",
    "MonthlyPlanCreateRequest",
    "ScheduleUpdateRequest",
    "MarkPaidRequest",
    "LoyaltySettingsUpdateRequest",
    "PointsAdjustRequest",
]
