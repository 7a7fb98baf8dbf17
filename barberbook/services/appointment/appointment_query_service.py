# ============================================================================
# barberbook/services/appointment/appointment_query_service.py
# Read-side queries - no FastAPI dependencies, fully testable
# ============================================================================
from sqlalchemy.orm import Session
from datetime import datetime, date, timedelta
from decimal import Decimal
from typing import Optional, Dict, Any, List
from uuid import UUID

from barberbook.models.appointment import Appointment, AppointmentStatus
from barberbook.utils import time_window


class AppointmentQueryService:
    """Service layer for appointment listings and revenue figures."""

    @staticmethod
    def list_appointments(
            db: Session,
            business_id: UUID,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            status: Optional[str] = None,
            client_id: Optional[UUID] = None,
            skip: int = 0,
            limit: int = 50
    ) -> Dict[str, Any]:
        """Get paginated list of appointments with filters."""
        query = db.query(Appointment).filter(Appointment.business_id == business_id)

        if start_date:
            query = query.filter(Appointment.scheduled_at >= datetime.combine(start_date, datetime.min.time()))
        if end_date:
            query = query.filter(Appointment.scheduled_at < datetime.combine(end_date + timedelta(days=1), datetime.min.time()))
        if status:
            query = query.filter(Appointment.status == status)
        if client_id:
            query = query.filter(Appointment.client_id == client_id)

        query = query.order_by(Appointment.scheduled_at.asc())
        total = query.count()
        appointments = query.offset(skip).limit(limit).all()

        return {
            "business_id": str(business_id),
            "total_appointments": total,
            "page": {
                "skip": skip,
                "limit": limit,
                "total_pages": (total + limit - 1) // limit if total > 0 else 0
            },
            "filters": {
                "start_date": start_date.isoformat() if start_date else None,
                "end_date": end_date.isoformat() if end_date else None,
                "status": status,
                "client_id": str(client_id) if client_id else None,
            },
            "appointments": [AppointmentQueryService.serialize_appointment(appt) for appt in appointments]
        }

    @staticmethod
    def get_appointment_by_id(
            db: Session,
            business_id: UUID,
            appointment_id: UUID
    ) -> Optional[Dict[str, Any]]:
        """Get a single appointment by ID. Returns None if not found."""
        appointment = db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.business_id == business_id
        ).first()

        if not appointment:
            return None

        return AppointmentQueryService.serialize_appointment(appointment, detailed=True)

    @staticmethod
    def get_todays_appointments(
            db: Session,
            business_id: UUID,
            today: Optional[date] = None
    ) -> Dict[str, Any]:
        """Get all non-cancelled appointments for today."""
        today = today or time_window.business_now().date()
        day_start = datetime.combine(today, datetime.min.time())

        appointments = db.query(Appointment).filter(
            Appointment.business_id == business_id,
            Appointment.scheduled_at >= day_start,
            Appointment.scheduled_at < day_start + timedelta(days=1),
            Appointment.status != AppointmentStatus.CANCELLED.value
        ).order_by(Appointment.scheduled_at.asc()).all()

        return {
            "business_id": str(business_id),
            "date": today.isoformat(),
            "total_appointments": len(appointments),
            "completed": sum(1 for appt in appointments if appt.status == AppointmentStatus.COMPLETED.value),
            "scheduled": sum(1 for appt in appointments if appt.status == AppointmentStatus.SCHEDULED.value),
            "appointments": [AppointmentQueryService.serialize_appointment(appt) for appt in appointments]
        }

    @staticmethod
    def group_by_date(appointments: List[Appointment]) -> Dict[str, List[Appointment]]:
        """Bucket appointments by YYYY-MM-DD, each bucket sorted by start."""
        grouped: Dict[str, List[Appointment]] = {}
        for appointment in sorted(appointments, key=lambda a: a.scheduled_at):
            grouped.setdefault(appointment.scheduled_at.date().isoformat(), []).append(appointment)
        return grouped

    @staticmethod
    def get_calendar(
            db: Session,
            business_id: UUID,
            start_date: date,
            end_date: date
    ) -> Dict[str, Any]:
        """Non-cancelled appointments in [start_date, end_date], keyed by day."""
        appointments = db.query(Appointment).filter(
            Appointment.business_id == business_id,
            Appointment.scheduled_at >= datetime.combine(start_date, datetime.min.time()),
            Appointment.scheduled_at < datetime.combine(end_date + timedelta(days=1), datetime.min.time()),
            Appointment.status != AppointmentStatus.CANCELLED.value
        ).all()

        grouped = AppointmentQueryService.group_by_date(appointments)
        return {
            "business_id": str(business_id),
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "total_appointments": len(appointments),
            "days": {
                day: [AppointmentQueryService.serialize_appointment(appt) for appt in day_appointments]
                for day, day_appointments in grouped.items()
            }
        }

    @staticmethod
    def get_revenue_summary(
            db: Session,
            business_id: UUID,
            now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Completed-appointment revenue for today, the trailing week and the month."""
        now = now or time_window.business_now()
        today_start = datetime.combine(now.date(), datetime.min.time())
        week_start = today_start - timedelta(days=7)
        month_start = today_start.replace(day=1)
        range_start = min(week_start, month_start)

        completed = db.query(Appointment).filter(
            Appointment.business_id == business_id,
            Appointment.status == AppointmentStatus.COMPLETED.value,
            Appointment.scheduled_at >= range_start,
            Appointment.scheduled_at < today_start + timedelta(days=1)
        ).all()

        def total_since(start: datetime) -> Decimal:
            return sum((appt.price for appt in completed if appt.scheduled_at >= start), Decimal("0"))

        by_payment_method: Dict[str, Dict[str, Any]] = {}
        for appt in completed:
            if appt.scheduled_at < month_start:
                continue
            method = appt.payment_method or "unknown"
            bucket = by_payment_method.setdefault(method, {"count": 0, "total": Decimal("0")})
            bucket["count"] += 1
            bucket["total"] += appt.price

        return {
            "business_id": str(business_id),
            "as_of": now.isoformat(),
            "today": float(total_since(today_start)),
            "week": float(total_since(week_start)),
            "month": float(total_since(month_start)),
            "by_payment_method": {
                method: {"count": bucket["count"], "total": float(bucket["total"])}
                for method, bucket in by_payment_method.items()
            }
        }

    @staticmethod
    def serialize_appointment(appointment: Appointment, detailed: bool = False) -> Dict[str, Any]:
        """Convert Appointment model to dictionary."""
        base = {
            "id": str(appointment.id),
            "client_id": str(appointment.client_id) if appointment.client_id else None,
            "client_name": appointment.client.name if appointment.client else None,
            "service_id": str(appointment.service_id),
            "service_name": appointment.service_name,
            "scheduled_at": appointment.scheduled_at.isoformat(),
            "ends_at": appointment.ends_at.isoformat(),
            "duration_minutes": appointment.duration_minutes,
            "price": float(appointment.price),
            "status": appointment.status,
            "booking_source": appointment.booking_source,
            "plan_generated": appointment.is_plan_generated,
            "payment_method": appointment.payment_method,
            "notes": appointment.notes,
            "completed_at": appointment.completed_at.isoformat() if appointment.completed_at else None,
        }

        if detailed:
            base.update({
                "started_at": appointment.started_at.isoformat() if appointment.started_at else None,
                "cancelled_at": appointment.cancelled_at.isoformat() if appointment.cancelled_at else None,
                "cancellation_reason": appointment.cancellation_reason,
                "created_at": appointment.created_at.isoformat() if appointment.created_at else None,
                "updated_at": appointment.updated_at.isoformat() if appointment.updated_at else None,
            })

        return base
