"""
Pydantic schemas for loyalty program requests
"""
from pydantic import BaseModel, Field
from typing import Optional


class LoyaltySettingsUpdateRequest(BaseModel):
    cuts_for_free: Optional[int] = Field(None, ge=1)
    program_active: Optional[bool] = None


class PointsAdjustRequest(BaseModel):
    points_change: int
    reason: str = Field(..., min_length=1, max_length=500)
