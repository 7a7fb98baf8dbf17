# ============================================================================
# barberbook/services/monthly_plan/monthly_plan_service.py
# Recurring monthly plans: enrollment, schedule edits and plan lifecycle
# ============================================================================
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID
from sqlalchemy.orm import Session
import logging

from barberbook.config.settings import Settings, get_settings
from barberbook.core.exceptions import (
    CapacityExceeded,
    DuplicateSlot,
    InvalidTransition,
    NotFound,
    ScheduleConflict,
    SchedulingError,
)
from barberbook.models.appointment import Appointment, AppointmentStatus, BookingSource, PLAN_NOTE_MARKER
from barberbook.models.client import Client
from barberbook.models.monthly_plan import (
    MonthlyPlan,
    PaymentStatus,
    PlanStatus,
    PlanTier,
    TIER_RULES,
    WeeklyScheduleEntry,
)
from barberbook.models.service import Service
from barberbook.services.monthly_plan.schedule_expansion import (
    ScheduleEntryInput,
    build_entries,
    expand_schedule,
)
from barberbook.utils import time_window

logger = logging.getLogger(__name__)

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


class MonthlyPlanService:
    """Owns plan definitions and keeps their generated appointments in step"""

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def get_plan(db: Session, business_id: UUID, plan_id: UUID) -> MonthlyPlan:
        plan = db.query(MonthlyPlan).filter(
            MonthlyPlan.id == plan_id,
            MonthlyPlan.business_id == business_id
        ).first()
        if not plan:
            raise NotFound(f"Monthly plan {plan_id} not found")
        return plan

    @staticmethod
    def list_plans(
            db: Session,
            business_id: UUID,
            status: Optional[str] = None,
            payment_status: Optional[str] = None
    ) -> List[MonthlyPlan]:
        query = db.query(MonthlyPlan).filter(MonthlyPlan.business_id == business_id)
        if status:
            query = query.filter(MonthlyPlan.status == status)
        if payment_status:
            query = query.filter(MonthlyPlan.payment_status == payment_status)
        return query.order_by(MonthlyPlan.created_at.desc()).all()

    @staticmethod
    def get_stats(db: Session, business_id: UUID) -> Dict[str, Any]:
        """
        Dashboard figures: active plans, the monthly revenue they bring in and
        how many open plans are pending or overdue. Cancelled plans only count
        towards ``total_plans``.
        """
        plans = db.query(MonthlyPlan).filter(MonthlyPlan.business_id == business_id).all()
        active = [plan for plan in plans if plan.status == PlanStatus.ACTIVE.value]
        open_plans = [plan for plan in plans if plan.status != PlanStatus.INACTIVE.value]

        return {
            "business_id": str(business_id),
            "total_plans": len(plans),
            "active_plans": len(active),
            "suspended_plans": sum(1 for plan in plans if plan.status == PlanStatus.SUSPENDED.value),
            "monthly_revenue": float(sum((plan.monthly_price for plan in active), Decimal("0"))),
            "pending_payments": sum(1 for plan in open_plans if plan.payment_status == PaymentStatus.PENDING.value),
            "overdue_payments": sum(1 for plan in open_plans if plan.payment_status == PaymentStatus.OVERDUE.value),
        }

    @staticmethod
    def generated_appointments(
            db: Session,
            plan: MonthlyPlan,
            upcoming_only: bool = False,
            now: Optional[datetime] = None
    ) -> List[Appointment]:
        """
        Plan-originated appointments of the plan's client. ``upcoming_only``
        keeps scheduled ones that expansion would still generate, i.e. not
        earlier than now minus the booking grace window.
        """
        query = db.query(Appointment).filter(
            Appointment.business_id == plan.business_id,
            Appointment.client_id == plan.client_id,
            Appointment.booking_source == BookingSource.MONTHLY_PLAN.value,
            Appointment.notes.like(f"{PLAN_NOTE_MARKER}%"),
        )
        if upcoming_only:
            query = query.filter(
                Appointment.status == AppointmentStatus.SCHEDULED.value,
                Appointment.scheduled_at >= time_window.past_cutoff(now),
            )
        return query.order_by(Appointment.scheduled_at.asc()).all()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_tier(tier) -> PlanTier:
        try:
            return PlanTier(tier)
        except ValueError:
            raise SchedulingError(f"Unknown plan tier '{tier}'")

    @staticmethod
    def blocking_statuses(settings: Optional[Settings] = None) -> List[str]:
        """Plan statuses whose weekly slots are unavailable to other plans"""
        settings = settings or get_settings()
        statuses = [PlanStatus.ACTIVE.value]
        if settings.SUSPENDED_PLANS_RESERVE_SLOTS:
            statuses.append(PlanStatus.SUSPENDED.value)
        return statuses

    @staticmethod
    def _check_conflicts(
            db: Session,
            business_id: UUID,
            slots: List[Tuple[int, object]],
            exclude_plan_id: Optional[UUID] = None
    ) -> None:
        """Reject any (day_of_week, time) already held by another blocking plan"""
        query = db.query(WeeklyScheduleEntry).join(MonthlyPlan).filter(
            MonthlyPlan.business_id == business_id,
            MonthlyPlan.status.in_(MonthlyPlanService.blocking_statuses()),
        )
        if exclude_plan_id:
            query = query.filter(MonthlyPlan.id != exclude_plan_id)

        taken = {(entry.day_of_week, entry.time_of_day) for entry in query.all()}
        for day_of_week, time_of_day in slots:
            if (day_of_week, time_of_day) in taken:
                logger.warning(f"Schedule conflict on {DAY_NAMES[day_of_week]} {time_of_day:%H:%M}")
                raise ScheduleConflict(
                    f"{DAY_NAMES[day_of_week]} at {time_of_day:%H:%M} is already held by another monthly plan"
                )

    @staticmethod
    def _validate_entries(
            db: Session,
            business_id: UUID,
            tier: PlanTier,
            entries: List[ScheduleEntryInput],
            exclude_plan_id: Optional[UUID] = None
    ) -> None:
        rule = TIER_RULES[tier]
        if not rule.min_entries <= len(entries) <= rule.max_entries:
            raise CapacityExceeded(
                f"The {tier.value} plan takes {rule.min_entries}-{rule.max_entries} schedule entries, "
                f"got {len(entries)}"
            )

        seen = set()
        for entry in entries:
            if entry.key in seen:
                raise DuplicateSlot(
                    f"{DAY_NAMES[entry.key[0]]} at {entry.time_of_day:%H:%M} was selected more than once"
                )
            seen.add(entry.key)

        for entry in entries:
            service = db.query(Service).filter(
                Service.id == entry.service_id,
                Service.business_id == business_id,
                Service.is_active == True
            ).first()
            if not service:
                raise NotFound(f"Service {entry.service_id} not found")

        MonthlyPlanService._check_conflicts(
            db, business_id,
            [(entry.resolved_day_of_week(), entry.time_of_day) for entry in entries],
            exclude_plan_id=exclude_plan_id,
        )

    # ------------------------------------------------------------------
    # Enrollment and schedule edits
    # ------------------------------------------------------------------

    @staticmethod
    def enroll(
            db: Session,
            business_id: UUID,
            client_id: UUID,
            tier,
            entries: List[ScheduleEntryInput],
            monthly_price: Optional[Decimal] = None,
            start_date: Optional[date] = None,
            notes: Optional[str] = None,
            window: Optional[Tuple[date, date]] = None,
            now: Optional[datetime] = None
    ) -> Tuple[MonthlyPlan, List[Appointment]]:
        """
        Enroll a client in a monthly plan and generate its appointments.

        Everything is validated before the first write; if expansion hits a
        booked slot the whole enrollment is rolled back.

        Returns:
            (plan, generated appointments)
        """
        now = now or time_window.business_now()
        plan_tier = MonthlyPlanService._parse_tier(tier)

        client = db.query(Client).filter(
            Client.id == client_id,
            Client.business_id == business_id
        ).first()
        if not client:
            raise NotFound(f"Client {client_id} not found")

        existing = db.query(MonthlyPlan).filter(
            MonthlyPlan.business_id == business_id,
            MonthlyPlan.client_id == client_id,
            MonthlyPlan.status != PlanStatus.INACTIVE.value
        ).first()
        if existing:
            raise InvalidTransition(f"Client {client_id} already has a {existing.status} monthly plan")

        MonthlyPlanService._validate_entries(db, business_id, plan_tier, entries)

        start_date = start_date or now.date()
        plan = MonthlyPlan(
            business_id=business_id,
            client_id=client_id,
            tier=plan_tier.value,
            monthly_price=Decimal(monthly_price) if monthly_price is not None else TIER_RULES[plan_tier].default_price,
            start_date=start_date,
            status=PlanStatus.ACTIVE.value,
            payment_status=PaymentStatus.PENDING.value,
            next_payment_date=time_window.add_one_month(start_date),
            notes=notes,
        )
        plan.entries = build_entries(entries)
        db.add(plan)

        try:
            db.flush()
            appointments = expand_schedule(db, plan, window=window, now=now)
            db.commit()
        except SchedulingError:
            db.rollback()
            raise

        db.refresh(plan)
        logger.info(
            f"Enrolled monthly plan {plan.id} ({plan.tier}) for client {client_id} "
            f"with {len(appointments)} appointments"
        )
        return plan, appointments

    @staticmethod
    def _remove_upcoming_generated(db: Session, plan: MonthlyPlan, now: datetime) -> int:
        upcoming = MonthlyPlanService.generated_appointments(db, plan, upcoming_only=True, now=now)
        for appointment in upcoming:
            db.delete(appointment)
        db.flush()
        return len(upcoming)

    @staticmethod
    def update_schedule(
            db: Session,
            business_id: UUID,
            plan_id: UUID,
            entries: List[ScheduleEntryInput],
            window: Optional[Tuple[date, date]] = None,
            now: Optional[datetime] = None
    ) -> Tuple[MonthlyPlan, List[Appointment]]:
        """
        Replace a plan's schedule.

        Upcoming generated appointments are deleted and regenerated from the
        new entries; past and completed ones are left alone.
        """
        now = now or time_window.business_now()
        plan = MonthlyPlanService.get_plan(db, business_id, plan_id)
        if plan.status == PlanStatus.INACTIVE.value:
            raise InvalidTransition("Cancelled plans cannot be edited")

        MonthlyPlanService._validate_entries(
            db, business_id, PlanTier(plan.tier), entries, exclude_plan_id=plan.id
        )

        try:
            removed = MonthlyPlanService._remove_upcoming_generated(db, plan, now)
            plan.entries = build_entries(entries)
            db.flush()
            appointments = expand_schedule(db, plan, window=window, now=now)
            db.commit()
        except SchedulingError:
            db.rollback()
            raise

        db.refresh(plan)
        logger.info(
            f"Updated schedule of plan {plan.id}: removed {removed}, generated {len(appointments)} appointments"
        )
        return plan, appointments

    # ------------------------------------------------------------------
    # Plan lifecycle
    # ------------------------------------------------------------------

    @staticmethod
    def suspend(
            db: Session,
            business_id: UUID,
            plan_id: UUID,
            now: Optional[datetime] = None,
            settings: Optional[Settings] = None
    ) -> MonthlyPlan:
        """
        Pause the plan.

        When suspended plans free their slots, the upcoming generated
        appointments are removed too so the slots can be booked by anyone.
        When they reserve their slots, the appointments are kept.
        """
        settings = settings or get_settings()
        plan = MonthlyPlanService.get_plan(db, business_id, plan_id)
        if plan.status != PlanStatus.ACTIVE.value:
            raise InvalidTransition(f"Only active plans can be suspended (status: {plan.status})")

        removed = 0
        if not settings.SUSPENDED_PLANS_RESERVE_SLOTS:
            removed = MonthlyPlanService._remove_upcoming_generated(db, plan, now or time_window.business_now())

        plan.status = PlanStatus.SUSPENDED.value
        db.commit()
        db.refresh(plan)
        logger.info(f"Suspended monthly plan {plan.id}, released {removed} upcoming appointments")
        return plan

    @staticmethod
    def reactivate(
            db: Session,
            business_id: UUID,
            plan_id: UUID,
            now: Optional[datetime] = None
    ) -> Tuple[MonthlyPlan, List[Appointment]]:
        """
        Resume the plan if nobody took its slots in the meantime.

        The upcoming appointments of the current billing cycle are generated
        again; a slot booked by someone else while the plan was suspended
        fails the reactivation and the plan stays suspended.

        Returns:
            (plan, generated appointments)
        """
        now = now or time_window.business_now()
        plan = MonthlyPlanService.get_plan(db, business_id, plan_id)
        if plan.status != PlanStatus.SUSPENDED.value:
            raise InvalidTransition(f"Only suspended plans can be reactivated (status: {plan.status})")

        MonthlyPlanService._check_conflicts(
            db, business_id,
            [(entry.day_of_week, entry.time_of_day) for entry in plan.entries],
            exclude_plan_id=plan.id,
        )

        try:
            MonthlyPlanService._remove_upcoming_generated(db, plan, now)
            plan.status = PlanStatus.ACTIVE.value
            appointments = expand_schedule(db, plan, now=now, skip_past_pinned=True)
            db.commit()
        except SchedulingError:
            db.rollback()
            raise

        db.refresh(plan)
        logger.info(f"Reactivated monthly plan {plan.id} with {len(appointments)} upcoming appointments")
        return plan, appointments

    @staticmethod
    def cancel(
            db: Session,
            business_id: UUID,
            plan_id: UUID,
            now: Optional[datetime] = None
    ) -> Tuple[MonthlyPlan, int]:
        """
        Soft-delete the plan and drop its upcoming generated appointments.

        Returns:
            (plan, number of appointments removed)
        """
        now = now or time_window.business_now()
        plan = MonthlyPlanService.get_plan(db, business_id, plan_id)
        if plan.status == PlanStatus.INACTIVE.value:
            raise InvalidTransition("Plan is already cancelled")

        removed = MonthlyPlanService._remove_upcoming_generated(db, plan, now)
        plan.status = PlanStatus.INACTIVE.value
        db.commit()
        db.refresh(plan)
        logger.info(f"Cancelled monthly plan {plan.id}, removed {removed} upcoming appointments")
        return plan, removed

    # ------------------------------------------------------------------
    # Payment status
    # ------------------------------------------------------------------

    @staticmethod
    def mark_paid(
            db: Session,
            business_id: UUID,
            plan_id: UUID,
            paid_on: Optional[date] = None
    ) -> MonthlyPlan:
        """
        Record a payment and move the due date one billing cycle forward,
        keeping it on the day of month the plan started.
        """
        plan = MonthlyPlanService.get_plan(db, business_id, plan_id)
        if plan.status == PlanStatus.INACTIVE.value:
            raise InvalidTransition("Cannot record payments on a cancelled plan")

        paid_on = paid_on or time_window.business_now().date()
        plan.payment_status = PaymentStatus.PAID.value
        plan.last_payment_date = paid_on
        plan.next_payment_date = time_window.add_one_month(
            plan.next_payment_date or paid_on, anchor_day=plan.start_date.day
        )

        db.commit()
        db.refresh(plan)
        logger.info(f"Plan {plan.id} paid on {paid_on.isoformat()}, next due {plan.next_payment_date.isoformat()}")
        return plan

    @staticmethod
    def _set_payment_flag(db: Session, business_id: UUID, plan_id: UUID, status: PaymentStatus) -> MonthlyPlan:
        plan = MonthlyPlanService.get_plan(db, business_id, plan_id)
        plan.payment_status = status.value
        db.commit()
        db.refresh(plan)
        logger.info(f"Plan {plan.id} payment status set to {status.value}")
        return plan

    @staticmethod
    def mark_pending(db: Session, business_id: UUID, plan_id: UUID) -> MonthlyPlan:
        return MonthlyPlanService._set_payment_flag(db, business_id, plan_id, PaymentStatus.PENDING)

    @staticmethod
    def mark_overdue(db: Session, business_id: UUID, plan_id: UUID) -> MonthlyPlan:
        """Only stores the flag; deciding when a plan is overdue happens outside."""
        return MonthlyPlanService._set_payment_flag(db, business_id, plan_id, PaymentStatus.OVERDUE)
