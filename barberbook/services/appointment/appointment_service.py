# ============================================================================
# barberbook/services/appointment/appointment_service.py
# ============================================================================
"""Appointment lifecycle: booking, edits and status transitions"""
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from barberbook.config.settings import get_settings
from barberbook.core.exceptions import InvalidPaymentMethod, InvalidTransition, NotFound, SlotConflict
from barberbook.models.appointment import Appointment, AppointmentStatus, BookingSource, PaymentMethod
from barberbook.models.client import Client
from barberbook.models.service import Service
from barberbook.services.availability.availability_service import AvailabilityService
from barberbook.services.loyalty.loyalty_service import LoyaltyService
from barberbook.utils import time_window

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: {
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    },
    AppointmentStatus.IN_PROGRESS: {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    },
}

# Legacy spellings still sent by older front-ends
PAYMENT_METHOD_ALIASES = {
    "dinheiro": PaymentMethod.CASH,
    "cartao": PaymentMethod.CARD,
    "transferencia": PaymentMethod.TRANSFER,
}


def normalize_payment_method(value) -> PaymentMethod:
    """Map a user-supplied payment method onto the closed enumeration."""
    if isinstance(value, PaymentMethod):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidPaymentMethod("Payment method is required")

    decomposed = unicodedata.normalize("NFKD", value.strip().lower())
    key = "".join(ch for ch in decomposed if not unicodedata.combining(ch))

    if key in PAYMENT_METHOD_ALIASES:
        return PAYMENT_METHOD_ALIASES[key]
    try:
        return PaymentMethod(key)
    except ValueError:
        allowed = ", ".join(method.value for method in PaymentMethod)
        raise InvalidPaymentMethod(f"Invalid payment method '{value}'. Must be one of: {allowed}")


@dataclass
class CompletionResult:
    """Completed appointment plus any side effects that failed after commit"""
    appointment: Appointment
    side_effect_errors: List[str] = field(default_factory=list)


class AppointmentService:
    """Handles appointment operations"""

    @staticmethod
    def get_appointment(db: Session, business_id: UUID, appointment_id: UUID) -> Appointment:
        appointment = db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.business_id == business_id
        ).first()
        if not appointment:
            raise NotFound(f"Appointment {appointment_id} not found")
        return appointment

    @staticmethod
    def _resolve_service(db: Session, business_id: UUID, service_id: UUID) -> Service:
        service = db.query(Service).filter(
            Service.id == service_id,
            Service.business_id == business_id,
            Service.is_active == True
        ).first()
        if not service:
            raise NotFound(f"Service {service_id} not found")
        return service

    @staticmethod
    def _resolve_client(
            db: Session,
            business_id: UUID,
            client_id: Optional[UUID],
            walk_in: bool
    ) -> Optional[Client]:
        if client_id is None:
            if not walk_in:
                raise NotFound("A client is required unless the booking is marked as walk-in")
            return None

        client = db.query(Client).filter(
            Client.id == client_id,
            Client.business_id == business_id
        ).first()
        if not client:
            raise NotFound(f"Client {client_id} not found")
        return client

    @staticmethod
    def _service_duration(service: Service) -> int:
        return service.duration or get_settings().DEFAULT_SERVICE_DURATION_MINUTES

    @staticmethod
    def _save(db: Session, appointment: Appointment, commit: bool) -> None:
        """Commit (or flush); a lost race on the slot index becomes SlotConflict."""
        slot = appointment.scheduled_at
        try:
            if commit:
                db.commit()
                db.refresh(appointment)
            else:
                db.flush()
        except IntegrityError:
            db.rollback()
            logger.warning(f"Concurrent booking detected for {slot.isoformat()}")
            raise SlotConflict(f"{slot:%Y-%m-%d %H:%M} was just booked by another request")

    @staticmethod
    def create_appointment(
            db: Session,
            business_id: UUID,
            service_id: UUID,
            scheduled_at: datetime,
            client_id: Optional[UUID] = None,
            walk_in: bool = False,
            price: Optional[Decimal] = None,
            booking_source: str = BookingSource.MANUAL.value,
            notes: Optional[str] = None,
            allow_past: bool = False,
            now: Optional[datetime] = None,
            commit: bool = True
    ) -> Appointment:
        """
        Book a new appointment.

        Args:
            walk_in: explicit marker allowing ``client_id`` to be None
            price: overrides the service's default price
            allow_past: skip the "in the past" rule for historical entries
            commit: False leaves the row flushed inside the caller's transaction

        Raises:
            NotFound, OutOfBusinessHours, InPast, SlotConflict
        """
        service = AppointmentService._resolve_service(db, business_id, service_id)
        client = AppointmentService._resolve_client(db, business_id, client_id, walk_in)
        duration = AppointmentService._service_duration(service)

        AvailabilityService.check_slot(
            db, business_id, scheduled_at, duration,
            allow_past=allow_past,
            now=now,
        )

        appointment = Appointment(
            business_id=business_id,
            client_id=client.id if client else None,
            service_id=service.id,
            service_name=service.name,
            scheduled_at=scheduled_at,
            duration_minutes=duration,
            price=Decimal(price) if price is not None else service.price,
            status=AppointmentStatus.SCHEDULED.value,
            booking_source=BookingSource(booking_source).value,
            notes=notes,
        )
        db.add(appointment)
        AppointmentService._save(db, appointment, commit)

        logger.info(f"Created appointment {appointment.id} at {scheduled_at.isoformat()} ({service.name})")
        return appointment

    @staticmethod
    def update_appointment(
            db: Session,
            business_id: UUID,
            appointment_id: UUID,
            scheduled_at: Optional[datetime] = None,
            service_id: Optional[UUID] = None,
            price: Optional[Decimal] = None,
            notes: Optional[str] = None,
            allow_past: bool = False,
            now: Optional[datetime] = None
    ) -> Appointment:
        """Edit a still-scheduled appointment, re-checking its slot against everyone else."""
        appointment = AppointmentService.get_appointment(db, business_id, appointment_id)
        if appointment.status != AppointmentStatus.SCHEDULED.value:
            raise InvalidTransition(f"Only scheduled appointments can be edited (status: {appointment.status})")

        service = None
        if service_id is not None and service_id != appointment.service_id:
            service = AppointmentService._resolve_service(db, business_id, service_id)

        new_start = scheduled_at or appointment.scheduled_at
        new_duration = AppointmentService._service_duration(service) if service else appointment.duration_minutes

        if scheduled_at is not None or service is not None:
            AvailabilityService.check_slot(
                db, business_id, new_start, new_duration,
                exclude_appointment_id=appointment.id,
                allow_past=allow_past,
                now=now,
            )

        if service is not None:
            appointment.service_id = service.id
            appointment.service_name = service.name
            appointment.duration_minutes = new_duration
            if price is None:
                appointment.price = service.price
        appointment.scheduled_at = new_start

        if price is not None:
            appointment.price = Decimal(price)
        if notes is not None:
            appointment.notes = notes

        AppointmentService._save(db, appointment, commit=True)
        logger.info(f"Updated appointment {appointment.id}")
        return appointment

    @staticmethod
    def _transition(appointment: Appointment, target: AppointmentStatus) -> None:
        current = AppointmentStatus(appointment.status)
        if target not in ALLOWED_TRANSITIONS.get(current, set()):
            raise InvalidTransition(f"Cannot move appointment from {current.value} to {target.value}")
        appointment.status = target.value

    @staticmethod
    def start_appointment(
            db: Session,
            business_id: UUID,
            appointment_id: UUID,
            now: Optional[datetime] = None
    ) -> Appointment:
        appointment = AppointmentService.get_appointment(db, business_id, appointment_id)
        AppointmentService._transition(appointment, AppointmentStatus.IN_PROGRESS)
        appointment.started_at = now or time_window.business_now()
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def complete_appointment(
            db: Session,
            business_id: UUID,
            appointment_id: UUID,
            payment_method,
            final_price: Optional[Decimal] = None,
            now: Optional[datetime] = None
    ) -> CompletionResult:
        """
        Mark the visit done and apply its side effects.

        The status write is committed first and is authoritative. Client totals
        and loyalty accrual run afterwards; each failure is logged and returned
        in ``side_effect_errors`` without undoing the completion.
        """
        method = normalize_payment_method(payment_method)
        appointment = AppointmentService.get_appointment(db, business_id, appointment_id)
        AppointmentService._transition(appointment, AppointmentStatus.COMPLETED)

        completed_at = now or time_window.business_now()
        appointment.payment_method = method.value
        appointment.completed_at = completed_at
        if final_price is not None:
            appointment.price = Decimal(final_price)

        db.commit()
        db.refresh(appointment)
        logger.info(f"Completed appointment {appointment.id} ({method.value}, {appointment.price})")

        result = CompletionResult(appointment=appointment)
        if appointment.client_id is None:
            return result

        try:
            AppointmentService._apply_client_stats(db, appointment)
        except Exception as e:
            db.rollback()
            logger.error(f"Error updating client stats for appointment {appointment.id}: {e}")
            result.side_effect_errors.append(f"client_stats: {e}")

        try:
            LoyaltyService.accrue(db, business_id, appointment.client_id, appointment_id=appointment.id)
        except Exception as e:
            db.rollback()
            logger.error(f"Error accruing loyalty point for appointment {appointment.id}: {e}")
            result.side_effect_errors.append(f"loyalty: {e}")

        return result

    @staticmethod
    def _apply_client_stats(db: Session, appointment: Appointment) -> None:
        client = db.query(Client).filter(Client.id == appointment.client_id).first()
        if not client:
            raise NotFound(f"Client {appointment.client_id} not found")

        client.total_visits = (client.total_visits or 0) + 1
        client.total_spent = (client.total_spent or Decimal("0")) + appointment.price
        client.last_visit = appointment.completed_at
        db.commit()

    @staticmethod
    def cancel_appointment(
            db: Session,
            business_id: UUID,
            appointment_id: UUID,
            reason: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Appointment:
        appointment = AppointmentService.get_appointment(db, business_id, appointment_id)
        AppointmentService._transition(appointment, AppointmentStatus.CANCELLED)
        appointment.cancelled_at = now or time_window.business_now()
        appointment.cancellation_reason = reason
        db.commit()
        db.refresh(appointment)
        logger.info(f"Cancelled appointment {appointment.id}")
        return appointment

    @staticmethod
    def mark_no_show(db: Session, business_id: UUID, appointment_id: UUID) -> Appointment:
        appointment = AppointmentService.get_appointment(db, business_id, appointment_id)
        AppointmentService._transition(appointment, AppointmentStatus.NO_SHOW)
        db.commit()
        db.refresh(appointment)
        logger.info(f"Marked appointment {appointment.id} as no-show")
        return appointment
