"""
Pydantic schemas for appointment requests
"""
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from barberbook.models.appointment import BookingSource
from barberbook.utils import time_window


class AppointmentCreateRequest(BaseModel):
    """Book a slot. ``client_id`` may only be omitted for walk-ins."""
    service_id: UUID
    scheduled_at: datetime = Field(..., description="Business local time, or any ISO-8601 instant with an offset")
    client_id: Optional[UUID] = None
    walk_in: bool = False
    price: Optional[Decimal] = Field(None, ge=0)
    booking_source: BookingSource = BookingSource.MANUAL
    notes: Optional[str] = Field(None, max_length=1000)
    allow_past: bool = False

    @field_validator("scheduled_at")
    @classmethod
    def to_business_time(cls, v):
        return time_window.to_business_time(v)

    @model_validator(mode="after")
    def require_client_or_walk_in(self):
        if self.client_id is None and not self.walk_in:
            raise ValueError("client_id is required unless walk_in is true")
        return self


class AppointmentUpdateRequest(BaseModel):
    """All fields optional - only send what changes"""
    scheduled_at: Optional[datetime] = None
    service_id: Optional[UUID] = None
    price: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=1000)
    allow_past: bool = False

    @field_validator("scheduled_at")
    @classmethod
    def to_business_time(cls, v):
        return time_window.to_business_time(v) if v is not None else v


class AppointmentCompleteRequest(BaseModel):
    payment_method: str = Field(..., min_length=1, description="cash, card, pix or transfer")
    final_price: Optional[Decimal] = Field(None, ge=0)


class AppointmentCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
