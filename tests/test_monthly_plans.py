import pytest
from datetime import date, datetime, time
from decimal import Decimal

from barberbook.core.exceptions import (
    CapacityExceeded,
    DuplicateSlot,
    InvalidTransition,
    ScheduleConflict,
    SchedulingError,
    SlotConflict,
)
from barberbook.models import Appointment, AppointmentStatus, MonthlyPlan, PLAN_NOTE_MARKER
from barberbook.services.appointment.appointment_service import AppointmentService
from barberbook.services.monthly_plan.monthly_plan_service import MonthlyPlanService
from barberbook.services.monthly_plan.schedule_expansion import ScheduleEntryInput, price_per_visit

TUESDAY = 2
THURSDAY = 4
FRIDAY = 5
SATURDAY = 6
APRIL = (date(2025, 4, 1), date(2025, 4, 30))


def weekly(service, day_of_week, hour, minute=0):
    return ScheduleEntryInput(time_of_day=time(hour, minute), service_id=service.id, day_of_week=day_of_week)


def pinned(service, day, hour, minute=0):
    return ScheduleEntryInput(time_of_day=time(hour, minute), service_id=service.id, scheduled_date=day)


@pytest.fixture
def enroll(db_session, business, now):
    def _enroll(client, tier, entries, **kwargs):
        kwargs.setdefault("now", now)
        return MonthlyPlanService.enroll(db_session, business.id, client.id, tier, entries, **kwargs)

    return _enroll


@pytest.mark.unit
class TestEntryInput:

    def test_pinned_date_derives_weekday(self):
        entry = ScheduleEntryInput(time_of_day=time(10, 0), service_id=None, scheduled_date=date(2025, 3, 12))
        assert entry.resolved_day_of_week() == 3

    def test_sunday_is_day_zero(self):
        sunday = ScheduleEntryInput(time_of_day=time(10, 0), service_id=None, scheduled_date=date(2025, 3, 16))
        saturday = ScheduleEntryInput(time_of_day=time(10, 0), service_id=None, scheduled_date=date(2025, 3, 15))

        assert sunday.resolved_day_of_week() == 0
        assert saturday.resolved_day_of_week() == 6

    def test_pinned_date_must_match_weekday(self):
        entry = ScheduleEntryInput(
            time_of_day=time(10, 0), service_id=None, day_of_week=0, scheduled_date=date(2025, 3, 12)
        )
        with pytest.raises(SchedulingError):
            entry.resolved_day_of_week()

    def test_weekday_out_of_range(self):
        with pytest.raises(SchedulingError):
            ScheduleEntryInput(time_of_day=time(10, 0), service_id=None, day_of_week=7).resolved_day_of_week()

    def test_price_per_visit_rounds_to_cents(self):
        assert price_per_visit(Decimal("250.00"), 3) == Decimal("83.33")
        assert price_per_visit(Decimal("150.00"), 2) == Decimal("75.00")


@pytest.mark.integration
class TestEnrollment:

    def test_pinned_entries_expand_deterministically(self, enroll, clients, services):
        plan, appointments = enroll(
            clients["alice"], "premium",
            [pinned(services["haircut"], date(2025, 3, 12), 10), pinned(services["haircut"], date(2025, 3, 19), 10)],
            monthly_price=Decimal("150.00"),
        )

        assert len(appointments) == 2
        assert [a.scheduled_at for a in appointments] == [datetime(2025, 3, 12, 10, 0), datetime(2025, 3, 19, 10, 0)]
        assert all(a.price == Decimal("75.00") for a in appointments)
        assert all(a.booking_source == "monthly_plan" for a in appointments)
        assert all(a.notes.startswith(PLAN_NOTE_MARKER) for a in appointments)
        assert all(a.is_plan_generated for a in appointments)

    def test_weekly_entry_fills_rest_of_month(self, enroll, clients, services):
        plan, appointments = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])

        assert [a.scheduled_at.day for a in appointments] == [11, 18, 25]
        assert all(a.price == Decimal("80.00") for a in appointments)

    def test_future_start_expands_its_own_month(self, enroll, clients, services):
        plan, appointments = enroll(
            clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)], start_date=date(2025, 4, 1),
        )

        assert [a.scheduled_at.date() for a in appointments] == [
            date(2025, 4, 1), date(2025, 4, 8), date(2025, 4, 15), date(2025, 4, 22), date(2025, 4, 29),
        ]

    def test_new_plan_state(self, enroll, clients, services):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])

        assert plan.status == "active"
        assert plan.payment_status == "pending"
        assert plan.monthly_price == Decimal("80.00")
        assert plan.start_date == date(2025, 3, 10)
        assert plan.next_payment_date == date(2025, 4, 10)
        assert len(plan.entries) == 1

    @pytest.mark.parametrize("tier,count", [("basic", 2), ("premium", 1), ("premium", 3), ("vip", 5)])
    def test_entry_count_outside_tier_bounds(self, enroll, clients, services, tier, count):
        entries = [weekly(services["haircut"], day, 10) for day in range(count)]

        with pytest.raises(CapacityExceeded):
            enroll(clients["alice"], tier, entries)

    def test_duplicate_entries_rejected(self, enroll, clients, services):
        entries = [weekly(services["haircut"], TUESDAY, 10), weekly(services["haircut"], TUESDAY, 10)]

        with pytest.raises(DuplicateSlot):
            enroll(clients["alice"], "vip", entries)

    def test_unknown_tier(self, enroll, clients, services):
        with pytest.raises(SchedulingError):
            enroll(clients["alice"], "platinum", [weekly(services["haircut"], TUESDAY, 10)])

    def test_weekly_slot_taken_by_other_plan(self, enroll, clients, services):
        enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])

        with pytest.raises(ScheduleConflict):
            enroll(clients["bruno"], "basic", [weekly(services["haircut"], TUESDAY, 10)], window=APRIL)

    def test_one_open_plan_per_client(self, enroll, clients, services):
        enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])

        with pytest.raises(InvalidTransition):
            enroll(clients["alice"], "basic", [weekly(services["haircut"], THURSDAY, 10)])

    def test_expansion_failure_rolls_back_everything(self, db_session, business, enroll, clients, services, now):
        AppointmentService.create_appointment(
            db_session, business.id, services["haircut"].id, datetime(2025, 3, 18, 10, 0),
            client_id=clients["carla"].id, now=now,
        )

        with pytest.raises(SlotConflict):
            enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])

        assert db_session.query(MonthlyPlan).count() == 0
        assert db_session.query(Appointment).count() == 1


@pytest.mark.integration
class TestScheduleChanges:

    def test_update_schedule_regenerates_upcoming(self, db_session, business, enroll, clients, services, now):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])

        plan, appointments = MonthlyPlanService.update_schedule(
            db_session, business.id, plan.id, [weekly(services["haircut"], THURSDAY, 15)], now=now,
        )

        assert [a.scheduled_at for a in appointments] == [
            datetime(2025, 3, 13, 15, 0), datetime(2025, 3, 20, 15, 0), datetime(2025, 3, 27, 15, 0),
        ]
        generated = MonthlyPlanService.generated_appointments(db_session, plan)
        assert len(generated) == 3
        assert plan.entries[0].day_of_week == THURSDAY

    def test_update_schedule_keeps_own_slot(self, db_session, business, enroll, clients, services, now):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])

        plan, appointments = MonthlyPlanService.update_schedule(
            db_session, business.id, plan.id, [weekly(services["combo"], TUESDAY, 10)], now=now,
        )

        assert len(appointments) == 3
        assert all(a.duration_minutes == 45 for a in appointments)

    def test_update_schedule_in_later_month_uses_current_cycle(self, db_session, business, enroll, clients, services):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])

        plan, appointments = MonthlyPlanService.update_schedule(
            db_session, business.id, plan.id, [weekly(services["haircut"], THURSDAY, 15)],
            now=datetime(2025, 4, 7, 9, 0),
        )

        assert [a.scheduled_at for a in appointments] == [
            datetime(2025, 4, 10, 15, 0), datetime(2025, 4, 17, 15, 0), datetime(2025, 4, 24, 15, 0),
        ]
        # March visits have gone by and are left alone
        assert len(MonthlyPlanService.generated_appointments(db_session, plan)) == 6

    def test_update_schedule_replaces_visit_inside_grace_window(self, db_session, business, enroll, clients, services):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])

        plan, appointments = MonthlyPlanService.update_schedule(
            db_session, business.id, plan.id, [weekly(services["combo"], TUESDAY, 10)],
            now=datetime(2025, 3, 11, 10, 15),
        )

        assert [a.scheduled_at.day for a in appointments] == [11, 18, 25]
        generated = MonthlyPlanService.generated_appointments(db_session, plan)
        assert len(generated) == 3
        assert all(a.duration_minutes == 45 for a in generated)

    def test_cancel_removes_only_upcoming_scheduled(self, db_session, business, enroll, clients, services, now):
        plan, appointments = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])
        AppointmentService.complete_appointment(db_session, business.id, appointments[0].id, "cash", now=now)

        plan, removed = MonthlyPlanService.cancel(db_session, business.id, plan.id, now=datetime(2025, 3, 15, 9, 0))

        assert removed == 2
        assert plan.status == "inactive"
        remaining = db_session.query(Appointment).all()
        assert len(remaining) == 1
        assert remaining[0].status == AppointmentStatus.COMPLETED.value

    def test_cancelled_plan_is_terminal(self, db_session, business, enroll, clients, services, now):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])
        MonthlyPlanService.cancel(db_session, business.id, plan.id, now=now)

        with pytest.raises(InvalidTransition):
            MonthlyPlanService.cancel(db_session, business.id, plan.id, now=now)
        with pytest.raises(InvalidTransition):
            MonthlyPlanService.reactivate(db_session, business.id, plan.id)
        with pytest.raises(InvalidTransition):
            MonthlyPlanService.update_schedule(
                db_session, business.id, plan.id, [weekly(services["haircut"], THURSDAY, 10)], now=now,
            )

    def test_cancelled_plan_frees_its_slot(self, db_session, business, enroll, clients, services, now):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])
        MonthlyPlanService.cancel(db_session, business.id, plan.id, now=now)

        other, appointments = enroll(clients["bruno"], "basic", [weekly(services["haircut"], TUESDAY, 10)])

        assert other.status == "active"
        assert len(appointments) == 3


@pytest.mark.integration
class TestSuspendedPlanPolicy:
    """By default a suspended plan frees its slots; SUSPENDED_PLANS_RESERVE_SLOTS keeps them"""

    @pytest.fixture
    def reserve_slots(self, app_settings, monkeypatch):
        monkeypatch.setattr(app_settings, "SUSPENDED_PLANS_RESERVE_SLOTS", True)

    def test_suspend_releases_upcoming_appointments(self, db_session, business, enroll, clients, services, now):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])

        plan = MonthlyPlanService.suspend(db_session, business.id, plan.id, now=now)

        assert plan.status == "suspended"
        assert MonthlyPlanService.generated_appointments(db_session, plan) == []

    def test_suspend_keeps_past_visits(self, db_session, business, enroll, clients, services, now):
        plan, appointments = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])
        AppointmentService.complete_appointment(db_session, business.id, appointments[0].id, "pix", now=now)

        MonthlyPlanService.suspend(db_session, business.id, plan.id, now=datetime(2025, 3, 15, 9, 0))

        remaining = MonthlyPlanService.generated_appointments(db_session, plan)
        assert [a.status for a in remaining] == [AppointmentStatus.COMPLETED.value]

    def test_only_active_plans_can_be_suspended(self, db_session, business, enroll, clients, services, now):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])
        MonthlyPlanService.suspend(db_session, business.id, plan.id, now=now)

        with pytest.raises(InvalidTransition):
            MonthlyPlanService.suspend(db_session, business.id, plan.id, now=now)

    def test_freed_slot_can_be_enrolled_in_same_cycle(self, db_session, business, enroll, clients, services, now):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])
        MonthlyPlanService.suspend(db_session, business.id, plan.id, now=now)

        other, appointments = enroll(clients["bruno"], "basic", [weekly(services["haircut"], TUESDAY, 10)])

        assert [a.scheduled_at.day for a in appointments] == [11, 18, 25]
        assert all(a.client_id == clients["bruno"].id for a in appointments)

    def test_freed_slot_can_be_booked_ad_hoc(self, db_session, business, enroll, clients, services, now):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])
        MonthlyPlanService.suspend(db_session, business.id, plan.id, now=now)

        walk_in = AppointmentService.create_appointment(
            db_session, business.id, services["haircut"].id, datetime(2025, 3, 18, 10, 0), walk_in=True, now=now,
        )

        assert walk_in.status == AppointmentStatus.SCHEDULED.value

    def test_reserved_slot_keeps_appointments(self, db_session, business, enroll, clients, services, now, reserve_slots):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])

        plan = MonthlyPlanService.suspend(db_session, business.id, plan.id, now=now)

        assert plan.status == "suspended"
        assert len(MonthlyPlanService.generated_appointments(db_session, plan)) == 3

    def test_reserved_slot_blocks_other_plans(self, db_session, business, enroll, clients, services, now, reserve_slots):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])
        MonthlyPlanService.suspend(db_session, business.id, plan.id, now=now)

        with pytest.raises(ScheduleConflict):
            enroll(clients["bruno"], "basic", [weekly(services["haircut"], TUESDAY, 10)])
        with pytest.raises(ScheduleConflict):
            enroll(clients["bruno"], "basic", [weekly(services["haircut"], TUESDAY, 10)], window=APRIL)

    def test_reactivate_detects_plan_holding_slot(self, db_session, business, enroll, clients, services, now):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])
        MonthlyPlanService.suspend(db_session, business.id, plan.id, now=now)
        enroll(clients["bruno"], "basic", [weekly(services["haircut"], TUESDAY, 10)])

        with pytest.raises(ScheduleConflict):
            MonthlyPlanService.reactivate(db_session, business.id, plan.id, now=now)

        db_session.refresh(plan)
        assert plan.status == "suspended"

    def test_reactivate_detects_booking_in_freed_slot(self, db_session, business, enroll, clients, services, now):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])
        MonthlyPlanService.suspend(db_session, business.id, plan.id, now=now)
        AppointmentService.create_appointment(
            db_session, business.id, services["haircut"].id, datetime(2025, 3, 18, 10, 0),
            client_id=clients["carla"].id, now=now,
        )

        with pytest.raises(SlotConflict):
            MonthlyPlanService.reactivate(db_session, business.id, plan.id, now=now)

        db_session.refresh(plan)
        assert plan.status == "suspended"
        assert MonthlyPlanService.generated_appointments(db_session, plan) == []

    def test_reactivate_regenerates_upcoming(self, db_session, business, enroll, clients, services, now):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])
        MonthlyPlanService.suspend(db_session, business.id, plan.id, now=now)

        plan, appointments = MonthlyPlanService.reactivate(
            db_session, business.id, plan.id, now=datetime(2025, 3, 14, 9, 0),
        )

        assert plan.status == "active"
        assert [a.scheduled_at.day for a in appointments] == [18, 25]

    def test_reactivate_with_reserved_slots(self, db_session, business, enroll, clients, services, now, reserve_slots):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])
        MonthlyPlanService.suspend(db_session, business.id, plan.id, now=now)

        plan, appointments = MonthlyPlanService.reactivate(db_session, business.id, plan.id, now=now)

        assert plan.status == "active"
        assert len(appointments) == 3
        assert len(MonthlyPlanService.generated_appointments(db_session, plan)) == 3

    def test_reactivate_skips_pinned_dates_gone_by(self, db_session, business, enroll, clients, services, now):
        plan, _ = enroll(
            clients["alice"], "premium",
            [pinned(services["haircut"], date(2025, 3, 12), 10), pinned(services["haircut"], date(2025, 3, 19), 10)],
        )
        MonthlyPlanService.suspend(db_session, business.id, plan.id, now=now)

        plan, appointments = MonthlyPlanService.reactivate(
            db_session, business.id, plan.id, now=datetime(2025, 3, 15, 9, 0),
        )

        assert [a.scheduled_at for a in appointments] == [datetime(2025, 3, 19, 10, 0)]


@pytest.mark.integration
class TestPayments:

    def test_mark_paid_keeps_start_day_after_short_month(self, db_session, business, enroll, clients, services):
        plan, _ = enroll(
            clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)], start_date=date(2025, 1, 31),
        )
        assert plan.next_payment_date == date(2025, 2, 28)

        plan = MonthlyPlanService.mark_paid(db_session, business.id, plan.id, paid_on=date(2025, 2, 27))

        assert plan.payment_status == "paid"
        assert plan.last_payment_date == date(2025, 2, 27)
        assert plan.next_payment_date == date(2025, 3, 31)

        plan = MonthlyPlanService.mark_paid(db_session, business.id, plan.id, paid_on=date(2025, 3, 30))
        assert plan.next_payment_date == date(2025, 4, 30)

    def test_payment_flags(self, db_session, business, enroll, clients, services):
        plan, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])

        assert MonthlyPlanService.mark_overdue(db_session, business.id, plan.id).payment_status == "overdue"
        assert MonthlyPlanService.mark_pending(db_session, business.id, plan.id).payment_status == "pending"

    def test_list_plans_by_status(self, db_session, business, enroll, clients, services, now):
        enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])
        plan, _ = enroll(clients["bruno"], "basic", [weekly(services["haircut"], THURSDAY, 10)])
        MonthlyPlanService.suspend(db_session, business.id, plan.id, now=now)

        assert len(MonthlyPlanService.list_plans(db_session, business.id)) == 2
        suspended = MonthlyPlanService.list_plans(db_session, business.id, status="suspended")
        assert [p.id for p in suspended] == [plan.id]


@pytest.mark.integration
class TestPlanStats:

    @pytest.fixture
    def plans(self, db_session, business, enroll, clients, services, now):
        """alice active and overdue, bruno suspended and pending, carla cancelled"""
        alice, _ = enroll(clients["alice"], "basic", [weekly(services["haircut"], TUESDAY, 10)])
        bruno, _ = enroll(
            clients["bruno"], "premium",
            [weekly(services["haircut"], THURSDAY, 10), weekly(services["haircut"], FRIDAY, 10)],
        )
        carla, _ = enroll(clients["carla"], "basic", [weekly(services["haircut"], SATURDAY, 10)])

        MonthlyPlanService.mark_overdue(db_session, business.id, alice.id)
        MonthlyPlanService.suspend(db_session, business.id, bruno.id, now=now)
        MonthlyPlanService.cancel(db_session, business.id, carla.id, now=now)
        return {"alice": alice, "bruno": bruno, "carla": carla}

    def test_stats(self, db_session, business, plans):
        stats = MonthlyPlanService.get_stats(db_session, business.id)

        assert stats["total_plans"] == 3
        assert stats["active_plans"] == 1
        assert stats["suspended_plans"] == 1
        assert stats["monthly_revenue"] == 80.0
        assert stats["pending_payments"] == 1
        assert stats["overdue_payments"] == 1

    def test_filter_by_payment_status(self, db_session, business, plans):
        overdue = MonthlyPlanService.list_plans(db_session, business.id, payment_status="overdue")
        pending = MonthlyPlanService.list_plans(db_session, business.id, payment_status="pending")

        assert [p.id for p in overdue] == [plans["alice"].id]
        assert {p.id for p in pending} == {plans["bruno"].id, plans["carla"].id}

    def test_stats_without_plans(self, db_session, business):
        stats = MonthlyPlanService.get_stats(db_session, business.id)

        assert stats["total_plans"] == 0
        assert stats["monthly_revenue"] == 0.0
