# ============================================================================
# barberbook/api/v1/dashboard/monthly_plans.py
# Monthly plan endpoints
# ============================================================================
from fastapi import APIRouter, Depends, HTTPException, Query, Path
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from barberbook.api.dependencies import get_business_id
from barberbook.config.database import get_db
from barberbook.core.exceptions import SchedulingError
from barberbook.schemas.monthly_plan import MarkPaidRequest, MonthlyPlanCreateRequest, ScheduleUpdateRequest
from barberbook.services.appointment.appointment_query_service import AppointmentQueryService
from barberbook.services.monthly_plan.monthly_plan_service import MonthlyPlanService

router = APIRouter(prefix="/monthly-plans", tags=["dashboard-monthly-plans"])


def _plan_response(plan, appointments=None):
    body = plan.to_dict()
    if appointments is not None:
        body["generated_appointments"] = [
            AppointmentQueryService.serialize_appointment(appt) for appt in appointments
        ]
    return body


@router.get("")
async def list_plans(
        status: Optional[str] = Query(None, description="Filter by status (active, suspended, inactive)"),
        payment_status: Optional[str] = Query(None, description="Filter by payment status (paid, pending, overdue)"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    plans = MonthlyPlanService.list_plans(db, business_id, status=status, payment_status=payment_status)
    return {
        "business_id": str(business_id),
        "total_plans": len(plans),
        "plans": [plan.to_dict() for plan in plans],
    }


@router.get("/stats")
async def get_plan_stats(
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    """Active count, monthly revenue and open payment counts."""
    return MonthlyPlanService.get_stats(db, business_id)


@router.get("/{plan_id}")
async def get_plan(
        plan_id: UUID = Path(..., description="The plan ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    try:
        plan = MonthlyPlanService.get_plan(db, business_id, plan_id)
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return _plan_response(plan, MonthlyPlanService.generated_appointments(db, plan))


@router.post("", status_code=201)
async def enroll(
        request: MonthlyPlanCreateRequest,
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    """
    Enroll a client and generate the appointments of the billing window.
    Nothing is saved if any generated slot is rejected.
    """
    try:
        plan, appointments = MonthlyPlanService.enroll(
            db,
            business_id=business_id,
            client_id=request.client_id,
            tier=request.tier.value,
            entries=[entry.to_input() for entry in request.schedule],
            monthly_price=request.monthly_price,
            start_date=request.start_date,
            notes=request.notes,
            window=(request.window.start, request.window.end) if request.window else None,
        )
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return _plan_response(plan, appointments)


@router.put("/{plan_id}/schedule")
async def update_schedule(
        request: ScheduleUpdateRequest,
        plan_id: UUID = Path(..., description="The plan ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    try:
        plan, appointments = MonthlyPlanService.update_schedule(
            db,
            business_id=business_id,
            plan_id=plan_id,
            entries=[entry.to_input() for entry in request.schedule],
            window=(request.window.start, request.window.end) if request.window else None,
        )
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return _plan_response(plan, appointments)


@router.post("/{plan_id}/suspend")
async def suspend_plan(
        plan_id: UUID = Path(..., description="The plan ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    try:
        plan = MonthlyPlanService.suspend(db, business_id, plan_id)
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return plan.to_dict()


@router.post("/{plan_id}/reactivate")
async def reactivate_plan(
        plan_id: UUID = Path(..., description="The plan ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    try:
        plan, appointments = MonthlyPlanService.reactivate(db, business_id, plan_id)
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return _plan_response(plan, appointments)


@router.post("/{plan_id}/cancel")
async def cancel_plan(
        plan_id: UUID = Path(..., description="The plan ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    try:
        plan, removed = MonthlyPlanService.cancel(db, business_id, plan_id)
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    body = plan.to_dict()
    body["removed_appointments"] = removed
    return body


@router.post("/{plan_id}/mark-paid")
async def mark_paid(
        request: Optional[MarkPaidRequest] = None,
        plan_id: UUID = Path(..., description="The plan ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    try:
        plan = MonthlyPlanService.mark_paid(db, business_id, plan_id, paid_on=request.paid_on if request else None)
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return plan.to_dict()


@router.post("/{plan_id}/mark-pending")
async def mark_pending(
        plan_id: UUID = Path(..., description="The plan ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    try:
        plan = MonthlyPlanService.mark_pending(db, business_id, plan_id)
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return plan.to_dict()


@router.post("/{plan_id}/mark-overdue")
async def mark_overdue(
        plan_id: UUID = Path(..., description="The plan ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    try:
        plan = MonthlyPlanService.mark_overdue(db, business_id, plan_id)
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return plan.to_dict()
