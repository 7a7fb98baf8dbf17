"""
Pydantic schemas for monthly plan requests
"""
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import date, time
from decimal import Decimal
from uuid import UUID

from barberbook.models.monthly_plan import PlanTier
from barberbook.services.monthly_plan.schedule_expansion import ScheduleEntryInput


class ScheduleEntrySchema(BaseModel):
    """One weekly slot; ``scheduled_date`` pins it to a single day"""
    day_of_week: Optional[int] = Field(None, ge=0, le=6, description="0=Sunday, 6=Saturday")
    time: str = Field(..., description="HH:MM")
    service_id: UUID
    scheduled_date: Optional[date] = None

    @field_validator("time")
    @classmethod
    def validate_time(cls, v):
        try:
            hours, minutes = v.split(":")
            time(int(hours), int(minutes))
        except ValueError:
            raise ValueError("time must be in HH:MM format")
        return v

    def to_input(self) -> ScheduleEntryInput:
        hours, minutes = self.time.split(":")
        return ScheduleEntryInput(
            time_of_day=time(int(hours), int(minutes)),
            service_id=self.service_id,
            day_of_week=self.day_of_week,
            scheduled_date=self.scheduled_date,
        )


class BillingWindow(BaseModel):
    start: date
    end: date


class MonthlyPlanCreateRequest(BaseModel):
    client_id: UUID
    tier: PlanTier
    schedule: List[ScheduleEntrySchema] = Field(..., min_length=1)
    monthly_price: Optional[Decimal] = Field(None, ge=0)
    start_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=1000)
    window: Optional[BillingWindow] = None


class ScheduleUpdateRequest(BaseModel):
    schedule: List[ScheduleEntrySchema] = Field(..., min_length=1)
    window: Optional[BillingWindow] = None


class MarkPaidRequest(BaseModel):
    paid_on: Optional[date] = None
