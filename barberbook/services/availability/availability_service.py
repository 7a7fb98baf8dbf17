# ===== barberbook/services/availability/availability_service.py =====
from typing import List, Dict, Optional
from datetime import date, datetime, timedelta
from uuid import UUID
from sqlalchemy.orm import Session
from barberbook.config.settings import Settings, get_settings
from barberbook.core.exceptions import InPast, OutOfBusinessHours, SlotConflict
from barberbook.models.appointment import Appointment, AppointmentStatus
from barberbook.utils import time_window
import logging

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Decides whether a proposed time slot is free. Read-only."""

    @staticmethod
    def overlaps(
            start_a: datetime,
            duration_a: int,
            start_b: datetime,
            duration_b: int
    ) -> bool:
        """Half-open interval overlap: [a, a_end) and [b, b_end)"""
        end_a = start_a + timedelta(minutes=duration_a)
        end_b = start_b + timedelta(minutes=duration_b)
        return start_a < end_b and end_a > start_b

    @staticmethod
    def _booked_appointments(
            db: Session,
            business_id: UUID,
            range_start: datetime,
            range_end: datetime,
            exclude_appointment_id: Optional[UUID] = None
    ) -> List[Appointment]:
        """Non-cancelled appointments that could overlap [range_start, range_end)"""
        # Nothing booked more than a day earlier can still be running
        query = db.query(Appointment).filter(
            Appointment.business_id == business_id,
            Appointment.status != AppointmentStatus.CANCELLED.value,
            Appointment.scheduled_at < range_end,
            Appointment.scheduled_at >= range_start - timedelta(days=1),
        )
        if exclude_appointment_id:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query.all()

    @staticmethod
    def find_conflict(
            db: Session,
            business_id: UUID,
            proposed_start: datetime,
            duration_minutes: int,
            exclude_appointment_id: Optional[UUID] = None
    ) -> Optional[Appointment]:
        """First booked appointment overlapping the proposed interval, if any"""
        proposed_end = proposed_start + timedelta(minutes=duration_minutes)
        booked = AvailabilityService._booked_appointments(
            db, business_id, proposed_start, proposed_end, exclude_appointment_id
        )
        for appointment in booked:
            if AvailabilityService.overlaps(
                    proposed_start, duration_minutes,
                    appointment.scheduled_at, appointment.duration_minutes
            ):
                return appointment
        return None

    @staticmethod
    def check_slot(
            db: Session,
            business_id: UUID,
            proposed_start: datetime,
            duration_minutes: int,
            exclude_appointment_id: Optional[UUID] = None,
            allow_past: bool = False,
            now: Optional[datetime] = None,
            settings: Optional[Settings] = None
    ) -> None:
        """
        Validate a proposed booking, raising on the first failed rule.

        Raises:
            OutOfBusinessHours: start is before opening or at/after closing
            InPast: start is earlier than now minus the grace window
            SlotConflict: interval overlaps a non-cancelled appointment
        """
        settings = settings or get_settings()

        if not time_window.is_within_business_hours(proposed_start, settings):
            raise OutOfBusinessHours(
                f"{proposed_start:%H:%M} is outside business hours "
                f"({settings.BUSINESS_OPEN_TIME}-{settings.BUSINESS_CLOSE_TIME})"
            )

        if not allow_past and time_window.is_in_past(proposed_start, now=now, settings=settings):
            raise InPast(f"{proposed_start.isoformat()} is in the past")

        conflict = AvailabilityService.find_conflict(
            db, business_id, proposed_start, duration_minutes, exclude_appointment_id
        )
        if conflict:
            logger.info(
                f"Slot {proposed_start.isoformat()} ({duration_minutes}m) conflicts with appointment {conflict.id}"
            )
            raise SlotConflict(
                f"{proposed_start:%Y-%m-%d %H:%M} overlaps an appointment at {conflict.scheduled_at:%H:%M}"
            )

    @staticmethod
    def is_available(
            db: Session,
            business_id: UUID,
            proposed_start: datetime,
            duration_minutes: int,
            exclude_appointment_id: Optional[UUID] = None,
            allow_past: bool = False,
            now: Optional[datetime] = None,
            settings: Optional[Settings] = None
    ) -> bool:
        """Boolean form of check_slot"""
        try:
            AvailabilityService.check_slot(
                db, business_id, proposed_start, duration_minutes,
                exclude_appointment_id=exclude_appointment_id,
                allow_past=allow_past,
                now=now,
                settings=settings,
            )
        except (OutOfBusinessHours, InPast, SlotConflict):
            return False
        return True

    @staticmethod
    def get_available_slots(
            db: Session,
            business_id: UUID,
            day: date,
            duration_minutes: int,
            now: Optional[datetime] = None,
            settings: Optional[Settings] = None
    ) -> List[Dict]:
        """Candidate slots for a day that are still bookable"""
        settings = settings or get_settings()
        now = now or time_window.business_now(settings)

        opens_at, closes_at = time_window.opening_bounds(day, settings)
        booked = AvailabilityService._booked_appointments(
            db, business_id, opens_at, closes_at + timedelta(minutes=duration_minutes)
        )

        slots = []
        for slot_start in time_window.generate_slots(day, settings=settings):
            if time_window.is_in_past(slot_start, now=now, settings=settings):
                continue

            taken = any(
                AvailabilityService.overlaps(
                    slot_start, duration_minutes,
                    appointment.scheduled_at, appointment.duration_minutes
                )
                for appointment in booked
            )
            if taken:
                continue

            slots.append({
                'start': slot_start.isoformat(),
                'end': (slot_start + timedelta(minutes=duration_minutes)).isoformat(),
                'duration_minutes': duration_minutes
            })

        return slots

    @staticmethod
    def get_occupied_times(db: Session, business_id: UUID, day: date) -> List[str]:
        """Sorted HH:MM starts already booked on a day"""
        day_start = datetime.combine(day, datetime.min.time())
        appointments = db.query(Appointment).filter(
            Appointment.business_id == business_id,
            Appointment.status != AppointmentStatus.CANCELLED.value,
            Appointment.scheduled_at >= day_start,
            Appointment.scheduled_at < day_start + timedelta(days=1),
        ).all()
        return sorted({appointment.scheduled_at.strftime("%H:%M") for appointment in appointments})
