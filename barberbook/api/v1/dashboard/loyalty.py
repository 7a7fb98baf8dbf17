# ============================================================================
# barberbook/api/v1/dashboard/loyalty.py
# Loyalty program and reward draw endpoints
# ============================================================================
from fastapi import APIRouter, Depends, HTTPException, Query, Path
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from barberbook.api.dependencies import get_business_id
from barberbook.config.database import get_db
from barberbook.core.exceptions import SchedulingError
from barberbook.schemas.loyalty import LoyaltySettingsUpdateRequest, PointsAdjustRequest
from barberbook.services.loyalty.loyalty_service import LoyaltyService
from barberbook.services.loyalty.reward_draw_service import RewardDrawService

router = APIRouter(prefix="/loyalty", tags=["dashboard-loyalty"])


@router.get("/settings")
async def get_loyalty_settings(
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    return LoyaltyService.get_loyalty_settings(db, business_id).to_dict()


@router.put("/settings")
async def update_loyalty_settings(
        request: LoyaltySettingsUpdateRequest,
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    """Changing the threshold only affects future accruals."""
    try:
        program = LoyaltyService.update_loyalty_settings(
            db, business_id,
            cuts_for_free=request.cuts_for_free,
            program_active=request.program_active,
        )
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return program.to_dict()


@router.get("/accounts")
async def list_accounts(
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    accounts = LoyaltyService.list_accounts(db, business_id)
    return {
        "business_id": str(business_id),
        "total_accounts": len(accounts),
        "accounts": [account.to_dict() for account in accounts],
    }


@router.get("/history")
async def get_history(
        client_id: Optional[UUID] = Query(None, description="Only this client's entries"),
        limit: int = Query(100, ge=1, le=500),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    history = LoyaltyService.get_history(db, business_id, client_id=client_id, limit=limit)
    return {"history": [entry.to_dict() for entry in history]}


@router.get("/stats")
async def get_stats(
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    return LoyaltyService.get_stats(db, business_id)


@router.post("/draw", status_code=201)
async def run_draw(
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    """Draw a winner among clients who visited in the last week."""
    try:
        draw = RewardDrawService.run_draw(db, business_id)
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return draw.to_dict()


@router.get("/draws")
async def recent_draws(
        limit: int = Query(10, ge=1, le=100),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    draws = RewardDrawService.recent_draws(db, business_id, limit=limit)
    return {"draws": [draw.to_dict() for draw in draws]}


@router.post("/{client_id}/redeem")
async def redeem(
        client_id: UUID = Path(..., description="The client ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    try:
        account = LoyaltyService.redeem(db, business_id, client_id)
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return account.to_dict()


@router.post("/{client_id}/adjust")
async def adjust_points(
        request: PointsAdjustRequest,
        client_id: UUID = Path(..., description="The client ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    try:
        account = LoyaltyService.adjust_points(
            db, business_id, client_id,
            points_change=request.points_change,
            reason=request.reason,
        )
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return account.to_dict()
