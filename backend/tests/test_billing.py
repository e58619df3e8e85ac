from datetime import date, datetime, timedelta

import pytest

from subtally.schemas.enums import BillingCycle
from subtally.services.billing import (
    billing_date,
    clamp_day,
    days_until_payment,
    generate_payment_events,
    generate_upcoming_events,
    is_in_free_trial,
    is_paid_occurrence,
    next_payment_date,
    occurrences_in_range,
)


def yearly(make_sub, month, day, **overrides):
    return make_sub(billing_cycle=BillingCycle.YEARLY, billing_month=month, billing_day=day, **overrides)


class TestClamp:
    def test_short_months(self):
        assert clamp_day(2024, 2, 31) == 29
        assert clamp_day(2023, 2, 31) == 28
        assert clamp_day(2024, 4, 31) == 30
        assert clamp_day(2024, 1, 31) == 31

    def test_billing_date(self):
        assert billing_date(2023, 2, 30) == date(2023, 2, 28)


class TestNextPaymentDate:
    def test_day_31_in_leap_february(self, make_sub):
        sub = make_sub(billing_day=31)
        assert next_payment_date(sub, date(2024, 2, 10)) == date(2024, 2, 29)

    def test_day_31_in_common_february(self, make_sub):
        sub = make_sub(billing_day=31)
        assert next_payment_date(sub, date(2023, 2, 10)) == date(2023, 2, 28)

    def test_billing_day_is_not_upcoming(self, make_sub):
        sub = make_sub(billing_day=15)
        assert next_payment_date(sub, date(2024, 3, 15)) == date(2024, 4, 15)
        assert next_payment_date(sub, date(2024, 3, 14)) == date(2024, 3, 15)

    def test_clamped_day_steps_to_next_month(self, make_sub):
        sub = make_sub(billing_day=31)
        assert next_payment_date(sub, date(2024, 1, 31)) == date(2024, 2, 29)
        assert next_payment_date(sub, date(2023, 2, 28)) == date(2023, 3, 31)

    def test_december_rolls_over(self, make_sub):
        sub = make_sub(billing_day=10)
        assert next_payment_date(sub, date(2024, 12, 20)) == date(2025, 1, 10)

    def test_yearly(self, make_sub):
        sub = yearly(make_sub, 3, 15)
        assert next_payment_date(sub, date(2024, 3, 14)) == date(2024, 3, 15)
        assert next_payment_date(sub, date(2024, 3, 15)) == date(2025, 3, 15)
        assert next_payment_date(sub, date(2024, 11, 1)) == date(2025, 3, 15)

    def test_yearly_leap_day(self, make_sub):
        sub = yearly(make_sub, 2, 29)
        assert next_payment_date(sub, date(2024, 3, 1)) == date(2025, 2, 28)
        assert next_payment_date(sub, date(2027, 3, 1)) == date(2028, 2, 29)

    def test_datetime_reference(self, make_sub):
        sub = make_sub(billing_day=15)
        assert next_payment_date(sub, datetime(2024, 3, 15, 23, 59)) == date(2024, 4, 15)

    @pytest.mark.parametrize("billing_day", [1, 15, 28, 29, 30, 31])
    def test_always_strictly_after(self, make_sub, billing_day):
        subs = [make_sub(billing_day=billing_day), yearly(make_sub, 2, billing_day)]
        day = date(2023, 12, 1)
        while day < date(2025, 1, 1):
            for sub in subs:
                assert next_payment_date(sub, day) > day
            day += timedelta(days=1)


class TestOccurrencesInRange:
    def test_three_months(self, make_sub):
        sub = make_sub(billing_day=15)
        assert occurrences_in_range(sub, date(2024, 1, 1), date(2024, 3, 31)) == [
            date(2024, 1, 15), date(2024, 2, 15), date(2024, 3, 15),
        ]

    def test_end_of_month_clamping(self, make_sub):
        sub = make_sub(billing_day=31)
        assert occurrences_in_range(sub, date(2024, 1, 1), date(2024, 4, 30)) == [
            date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30),
        ]

    def test_bounds_are_inclusive(self, make_sub):
        sub = make_sub(billing_day=15)
        assert occurrences_in_range(sub, date(2024, 1, 15), date(2024, 2, 15)) == [
            date(2024, 1, 15), date(2024, 2, 15),
        ]

    def test_same_result_on_repeat(self, make_sub):
        sub = make_sub(billing_day=30)
        first = occurrences_in_range(sub, date(2024, 1, 1), date(2024, 12, 31))
        assert occurrences_in_range(sub, date(2024, 1, 1), date(2024, 12, 31)) == first
        assert len(first) == 12

    def test_yearly_leap_day_over_years(self, make_sub):
        sub = yearly(make_sub, 2, 29)
        assert occurrences_in_range(sub, date(2024, 1, 1), date(2029, 12, 31)) == [
            date(2024, 2, 29), date(2025, 2, 28), date(2026, 2, 28),
            date(2027, 2, 28), date(2028, 2, 29), date(2029, 2, 28),
        ]

    def test_started_at_floors_range(self, make_sub):
        sub = make_sub(billing_day=15, started_at=date(2024, 2, 20))
        assert occurrences_in_range(sub, date(2024, 1, 1), date(2024, 4, 30)) == [
            date(2024, 3, 15), date(2024, 4, 15),
        ]

    def test_started_on_billing_day(self, make_sub):
        sub = make_sub(billing_day=15, started_at=date(2024, 2, 15))
        assert occurrences_in_range(sub, date(2024, 1, 1), date(2024, 3, 31)) == [
            date(2024, 2, 15), date(2024, 3, 15),
        ]

    def test_created_at_used_without_started_at(self, make_sub):
        created = datetime(2024, 2, 10, 9, 0)
        sub = make_sub(billing_day=15, created_at=created, updated_at=created)
        assert occurrences_in_range(sub, date(2024, 1, 1), date(2024, 4, 30)) == [
            date(2024, 2, 15), date(2024, 3, 15), date(2024, 4, 15),
        ]

    def test_ended_at_truncates(self, make_sub):
        sub = make_sub(billing_day=15, is_active=False, ended_at=datetime(2024, 3, 1, 12, 0))
        assert occurrences_in_range(sub, date(2024, 1, 1), date(2024, 6, 30)) == [
            date(2024, 1, 15), date(2024, 2, 15),
        ]
        assert occurrences_in_range(sub, date(2024, 4, 1), date(2024, 6, 30)) == []

    def test_ended_on_billing_day_includes_it(self, make_sub):
        sub = make_sub(billing_day=15, is_active=False, ended_at=datetime(2024, 3, 15, 10, 0))
        assert occurrences_in_range(sub, date(2024, 3, 1), date(2024, 3, 31)) == [date(2024, 3, 15)]

    def test_empty_when_start_after_end(self, make_sub):
        sub = make_sub(billing_day=15)
        assert occurrences_in_range(sub, date(2024, 5, 1), date(2024, 4, 1)) == []


class TestFreeTrial:
    def test_first_paid_day_is_billed(self, make_sub):
        sub = make_sub(billing_day=15, free_until=date(2024, 3, 15))
        events = generate_payment_events(sub, date(2024, 1, 1), date(2024, 4, 30))
        assert [e.date for e in events] == [date(2024, 3, 15), date(2024, 4, 15)]

    def test_payments_before_free_until_are_dropped(self, make_sub):
        sub = make_sub(billing_day=15, free_until=date(2024, 3, 16))
        events = generate_payment_events(sub, date(2024, 1, 1), date(2024, 4, 30))
        assert [e.date for e in events] == [date(2024, 4, 15)]

    def test_is_paid_occurrence(self, make_sub):
        sub = make_sub(free_until=date(2024, 3, 15))
        assert not is_paid_occurrence(sub, date(2024, 3, 14))
        assert is_paid_occurrence(sub, date(2024, 3, 15))
        assert is_paid_occurrence(make_sub(), date(2000, 1, 1))

    def test_is_in_free_trial(self, make_sub):
        sub = make_sub(free_until=date(2024, 3, 15))
        assert is_in_free_trial(sub, date(2024, 3, 14))
        assert not is_in_free_trial(sub, date(2024, 3, 15))
        assert not is_in_free_trial(make_sub(), date(2024, 3, 14))


class TestEvents:
    def test_event_fields(self, make_sub):
        sub = make_sub(name="Netflix", billing_day=5)
        [event] = generate_payment_events(sub, date(2024, 6, 1), date(2024, 6, 30))
        assert event.subscription_id == sub.id
        assert event.name == "Netflix"
        assert event.amount == sub.amount
        assert event.currency == sub.currency
        assert event.billing_cycle == BillingCycle.MONTHLY
        assert event.date == date(2024, 6, 5)

    def test_upcoming_sorted_and_active_only(self, make_sub):
        subs = [
            make_sub(name="Zeta", billing_day=20),
            make_sub(name="Alpha", billing_day=20),
            make_sub(name="Beta", billing_day=5),
            make_sub(name="Gone", billing_day=6, is_active=False, ended_at=datetime(2024, 1, 1)),
        ]
        events = generate_upcoming_events(subs, 30, date(2024, 6, 1))
        assert [(e.name, e.date) for e in events] == [
            ("Beta", date(2024, 6, 5)),
            ("Alpha", date(2024, 6, 20)),
            ("Zeta", date(2024, 6, 20)),
        ]

    def test_upcoming_includes_today_and_horizon(self, make_sub):
        subs = [make_sub(name="Today", billing_day=1), make_sub(name="Edge", billing_day=11)]
        events = generate_upcoming_events(subs, 10, date(2024, 6, 1))
        assert [e.date for e in events] == [date(2024, 6, 1), date(2024, 6, 11)]

    def test_days_until_payment(self, make_sub):
        sub = make_sub(billing_day=15)
        assert days_until_payment(sub, date(2024, 6, 10)) == 5
        assert days_until_payment(sub, date(2024, 6, 15)) == 30
