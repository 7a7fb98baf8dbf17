# ============================================================================
# barberbook/api/v1/dashboard/appointments.py
# Appointment endpoints - thin HTTP layer
# ============================================================================
from fastapi import APIRouter, Depends, HTTPException, Query, Path
from sqlalchemy.orm import Session
from datetime import date
from typing import Optional
from uuid import UUID

from barberbook.api.dependencies import get_business_id
from barberbook.config.database import get_db
from barberbook.core.exceptions import SchedulingError
from barberbook.schemas.appointment import (
    AppointmentCancelRequest,
    AppointmentCompleteRequest,
    AppointmentCreateRequest,
    AppointmentUpdateRequest,
)
from barberbook.services.appointment.appointment_query_service import AppointmentQueryService
from barberbook.services.appointment.appointment_service import AppointmentService
from barberbook.services.availability.availability_service import AvailabilityService

router = APIRouter(prefix="/appointments", tags=["dashboard-appointments"])


@router.get("")
async def list_appointments(
        start_date: Optional[date] = Query(None, description="Filter appointments on or after this date"),
        end_date: Optional[date] = Query(None, description="Filter appointments on or before this date"),
        status: Optional[str] = Query(None,
                                      description="Filter by status (scheduled, in_progress, completed, cancelled, no_show)"),
        client_id: Optional[UUID] = Query(None, description="Filter by client"),
        skip: int = Query(0, ge=0, description="Number of records to skip"),
        limit: int = Query(50, ge=1, le=100, description="Number of records to return"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    """Paginated appointment list for the business."""
    return AppointmentQueryService.list_appointments(
        db=db,
        business_id=business_id,
        start_date=start_date,
        end_date=end_date,
        status=status,
        client_id=client_id,
        skip=skip,
        limit=limit
    )


@router.get("/upcoming/today")
async def get_todays_appointments(
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    """Today's non-cancelled appointments, in start order."""
    return AppointmentQueryService.get_todays_appointments(db=db, business_id=business_id)


@router.get("/calendar")
async def get_calendar(
        start_date: date = Query(..., description="First day shown"),
        end_date: date = Query(..., description="Last day shown"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    """Appointments grouped by day for the calendar view."""
    if end_date < start_date:
        raise HTTPException(status_code=422, detail="end_date must not be before start_date")
    return AppointmentQueryService.get_calendar(db, business_id, start_date, end_date)


@router.get("/stats/revenue")
async def get_revenue_summary(
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    return AppointmentQueryService.get_revenue_summary(db=db, business_id=business_id)


@router.get("/availability")
async def get_availability(
        day: date = Query(..., description="Day to list free slots for"),
        duration_minutes: int = Query(30, ge=5, le=480, description="Length of the visit"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    """Free slot starts for a day, plus the starts already taken."""
    return {
        "date": day.isoformat(),
        "duration_minutes": duration_minutes,
        "available_slots": AvailabilityService.get_available_slots(db, business_id, day, duration_minutes),
        "occupied_times": AvailabilityService.get_occupied_times(db, business_id, day),
    }


@router.get("/{appointment_id}")
async def get_appointment(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    result = AppointmentQueryService.get_appointment_by_id(
        db=db,
        business_id=business_id,
        appointment_id=appointment_id
    )

    if not result:
        raise HTTPException(
            status_code=404,
            detail=f"Appointment {appointment_id} not found"
        )

    return result


@router.post("", status_code=201)
async def create_appointment(
        request: AppointmentCreateRequest,
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    """
    Book a slot. Returns 409 when the slot overlaps another booking and
    422 when it is outside business hours or in the past.
    """
    try:
        appointment = AppointmentService.create_appointment(
            db,
            business_id=business_id,
            service_id=request.service_id,
            scheduled_at=request.scheduled_at,
            client_id=request.client_id,
            walk_in=request.walk_in,
            price=request.price,
            booking_source=request.booking_source.value,
            notes=request.notes,
            allow_past=request.allow_past,
        )
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return AppointmentQueryService.serialize_appointment(appointment, detailed=True)


@router.patch("/{appointment_id}")
async def update_appointment(
        request: AppointmentUpdateRequest,
        appointment_id: UUID = Path(..., description="The appointment ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    try:
        appointment = AppointmentService.update_appointment(
            db,
            business_id=business_id,
            appointment_id=appointment_id,
            scheduled_at=request.scheduled_at,
            service_id=request.service_id,
            price=request.price,
            notes=request.notes,
            allow_past=request.allow_past,
        )
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return AppointmentQueryService.serialize_appointment(appointment, detailed=True)


@router.post("/{appointment_id}/start")
async def start_appointment(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    try:
        appointment = AppointmentService.start_appointment(db, business_id, appointment_id)
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return AppointmentQueryService.serialize_appointment(appointment, detailed=True)


@router.post("/{appointment_id}/complete")
async def complete_appointment(
        request: AppointmentCompleteRequest,
        appointment_id: UUID = Path(..., description="The appointment ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    """
    Complete the visit. The completion stands even if the client totals or
    the loyalty point fail; those failures are listed in ``side_effect_errors``.
    """
    try:
        result = AppointmentService.complete_appointment(
            db,
            business_id=business_id,
            appointment_id=appointment_id,
            payment_method=request.payment_method,
            final_price=request.final_price,
        )
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return {
        "appointment": AppointmentQueryService.serialize_appointment(result.appointment, detailed=True),
        "side_effect_errors": result.side_effect_errors,
    }


@router.post("/{appointment_id}/cancel")
async def cancel_appointment(
        request: AppointmentCancelRequest,
        appointment_id: UUID = Path(..., description="The appointment ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    try:
        appointment = AppointmentService.cancel_appointment(
            db, business_id, appointment_id, reason=request.reason
        )
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return AppointmentQueryService.serialize_appointment(appointment, detailed=True)


@router.post("/{appointment_id}/no-show")
async def mark_no_show(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        business_id: UUID = Depends(get_business_id),
        db: Session = Depends(get_db)
):
    try:
        appointment = AppointmentService.mark_no_show(db, business_id, appointment_id)
    except SchedulingError as e:
        raise HTTPException(status_code=e.http_status, detail=str(e))

    return AppointmentQueryService.serialize_appointment(appointment, detailed=True)
