from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal

from subtally.schemas.calendar import CalendarMonth, PaymentEvent
from subtally.schemas.dashboard import (
    CardSpending, CategorySpending, DashboardSummary, UpcomingPayment,
)
from subtally.schemas.enums import Currency
from subtally.schemas.fx import FxRates
from subtally.schemas.payment_method import PaymentMethodRecord
from subtally.schemas.subscription import SubscriptionRecord
from subtally.services.billing import as_date, generate_payment_events, generate_upcoming_events, month_bounds
from subtally.services.calc import (
    calculate_current_month_total,
    calculate_ytd,
    category_monthly_totals,
    category_percentages,
    count_active_subscriptions,
    monthly_equivalent_amount_converted,
    total_yearly_amount,
)
from subtally.services.fx import convert_currency


def build_dashboard_summary(
    subscriptions: Sequence[SubscriptionRecord],
    payment_methods: Sequence[PaymentMethodRecord],
    display_currency: Currency,
    rates: FxRates,
    now: date | datetime,
    upcoming_days: int = 30,
) -> DashboardSummary:
    today = as_date(now)

    category_totals = category_monthly_totals(subscriptions, display_currency, rates, today)
    total_monthly = sum(category_totals.values(), Decimal("0"))

    upcoming_list = [
        UpcomingPayment(
            subscription_id=e.subscription_id,
            subscription_name=e.name,
            amount=e.amount,
            currency=e.currency,
            converted_amount=convert_currency(e.amount, e.currency, display_currency, rates),
            days_until=(e.date - today).days,
            date=e.date,
        )
        for e in generate_upcoming_events(subscriptions, upcoming_days, today)
    ]

    percentages = category_percentages(subscriptions, display_currency, rates, today)
    category_breakdown = [
        CategorySpending(category=category, total_amount=amount, percentage=percentages[category])
        for category, amount in category_totals.items()
    ]

    # Card breakdown, by payment method
    methods = {pm.id: pm for pm in payment_methods}
    card_map: dict[str, dict] = {}
    for s in subscriptions:
        if not s.is_active or s.payment_method_id not in methods:
            continue
        if s.payment_method_id not in card_map:
            card_map[s.payment_method_id] = {"total": Decimal("0"), "count": 0}
        card_map[s.payment_method_id]["total"] += monthly_equivalent_amount_converted(
            s, display_currency, rates
        )
        card_map[s.payment_method_id]["count"] += 1
    card_breakdown = [
        CardSpending(
            payment_method_id=pm_id,
            card_name=methods[pm_id].name,
            card_last4=methods[pm_id].last4,
            total_amount=data["total"],
            subscription_count=data["count"],
        )
        for pm_id, data in card_map.items()
    ]

    return DashboardSummary(
        currency=display_currency,
        total_monthly_cost=total_monthly,
        total_yearly_cost=total_yearly_amount(subscriptions, display_currency, rates),
        current_month_total=calculate_current_month_total(subscriptions, display_currency, rates, today),
        ytd_total=calculate_ytd(subscriptions, display_currency, rates, today),
        active_count=count_active_subscriptions(subscriptions),
        upcoming_payments=upcoming_list,
        category_breakdown=category_breakdown,
        card_breakdown=card_breakdown,
        fx_is_stale=rates.is_stale,
        fx_is_fallback=rates.is_fallback,
    )


def build_calendar_month(
    subscriptions: Sequence[SubscriptionRecord],
    year: int,
    month: int,
    display_currency: Currency,
    rates: FxRates,
) -> CalendarMonth:
    """Every paid payment in one calendar month, active and ended subscriptions alike."""
    first, last = month_bounds(year, month)

    events: list[PaymentEvent] = []
    total = Decimal("0")
    for sub in subscriptions:
        if not sub.is_active and sub.ended_at is None:
            continue
        for event in generate_payment_events(sub, first, last):
            events.append(event)
            total += convert_currency(event.amount, event.currency, display_currency, rates)

    events.sort(key=lambda e: (e.date, e.name, e.subscription_id))
    return CalendarMonth(year=year, month=month, events=events, total_amount=total, currency=display_currency)
