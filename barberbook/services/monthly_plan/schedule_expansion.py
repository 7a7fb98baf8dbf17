# barberbook/services/monthly_plan/schedule_expansion.py
"""Turns a plan's weekly schedule into dated appointments for one billing window"""
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple
from uuid import UUID
from sqlalchemy.orm import Session
import logging

from barberbook.core.exceptions import SchedulingError
from barberbook.models.appointment import Appointment, BookingSource, PLAN_NOTE_MARKER
from barberbook.models.monthly_plan import MonthlyPlan, WeeklyScheduleEntry
from barberbook.services.appointment.appointment_service import AppointmentService
from barberbook.utils import time_window

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class ScheduleEntryInput:
    """One requested weekly slot, optionally pinned to a specific date"""
    time_of_day: time
    service_id: UUID
    day_of_week: Optional[int] = None  # 0=Sunday, 6=Saturday
    scheduled_date: Optional[date] = None

    def resolved_day_of_week(self) -> int:
        if self.scheduled_date is not None:
            weekday = time_window.day_of_week(self.scheduled_date)
            if self.day_of_week is not None and self.day_of_week != weekday:
                raise SchedulingError(
                    f"{self.scheduled_date.isoformat()} is not on day_of_week {self.day_of_week}"
                )
            return weekday
        if self.day_of_week is None or not 0 <= self.day_of_week <= 6:
            raise SchedulingError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
        return self.day_of_week

    @property
    def key(self) -> Tuple[int, time, Optional[date]]:
        return self.resolved_day_of_week(), self.time_of_day, self.scheduled_date


def build_entries(entries: List[ScheduleEntryInput]) -> List[WeeklyScheduleEntry]:
    return [
        WeeklyScheduleEntry(
            position=position,
            day_of_week=entry.resolved_day_of_week(),
            time_of_day=entry.time_of_day,
            service_id=entry.service_id,
            scheduled_date=entry.scheduled_date,
        )
        for position, entry in enumerate(entries)
    ]


def price_per_visit(monthly_price: Decimal, entry_count: int) -> Decimal:
    """Monthly price split evenly across the schedule entries, in cents"""
    return (Decimal(monthly_price) / entry_count).quantize(CENTS, rounding=ROUND_HALF_UP)


def plan_note(plan: MonthlyPlan) -> str:
    note = f"{PLAN_NOTE_MARKER} {plan.tier} plan"
    if plan.notes:
        note += f" - {plan.notes}"
    return note


def default_window(plan: MonthlyPlan, now: datetime) -> Tuple[date, date]:
    """
    The current billing cycle: the calendar month of ``now``, or of the start
    date when the plan has not started yet.
    """
    anchor = max(now.date(), plan.start_date)
    return time_window.month_window(anchor.year, anchor.month)


def entry_dates(
        entry: WeeklyScheduleEntry,
        window: Tuple[date, date],
        not_before: date
) -> List[date]:
    """Operator-picked date if set, otherwise every matching weekday in the window"""
    if entry.scheduled_date is not None:
        return [entry.scheduled_date]

    window_start, window_end = window
    return time_window.dates_matching_weekday(max(window_start, not_before), window_end, entry.day_of_week)


def expand_schedule(
        db: Session,
        plan: MonthlyPlan,
        window: Optional[Tuple[date, date]] = None,
        now: Optional[datetime] = None,
        skip_past_pinned: bool = False
) -> List[Appointment]:
    """
    Create one appointment per (entry, matching date), inside the caller's
    transaction. Any rejection propagates so the caller can roll back the whole
    submission.

    Weekday entries never produce dates that have gone by. Pinned dates in the
    past are rejected unless ``skip_past_pinned`` is set, as when a suspended
    plan is regenerated.
    """
    now = now or time_window.business_now()
    window = window or default_window(plan, now)
    visit_price = price_per_visit(plan.monthly_price, len(plan.entries))
    note = plan_note(plan)

    created = []
    for entry in plan.entries:
        for day in entry_dates(entry, window, not_before=plan.start_date):
            scheduled_at = datetime.combine(day, entry.time_of_day)

            pinned = entry.scheduled_date is not None
            if (skip_past_pinned or not pinned) and time_window.is_in_past(scheduled_at, now=now):
                continue

            created.append(AppointmentService.create_appointment(
                db,
                business_id=plan.business_id,
                service_id=entry.service_id,
                scheduled_at=scheduled_at,
                client_id=plan.client_id,
                price=visit_price,
                booking_source=BookingSource.MONTHLY_PLAN.value,
                notes=note,
                now=now,
                commit=False,
            ))

    logger.info(f"Expanded plan {plan.id} into {len(created)} appointments ({visit_price} each)")
    return created
