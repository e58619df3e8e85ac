from datetime import date
from decimal import Decimal

from pydantic import BaseModel

from subtally.schemas.enums import Category, Currency


class UpcomingPayment(BaseModel):
    subscription_id: str
    subscription_name: str
    amount: Decimal
    currency: Currency
    converted_amount: Decimal
    days_until: int
    date: date


class CategorySpending(BaseModel):
    category: Category
    total_amount: Decimal
    percentage: float


class CardSpending(BaseModel):
    payment_method_id: str
    card_name: str
    card_last4: str | None
    total_amount: Decimal
    subscription_count: int


class DashboardSummary(BaseModel):
    currency: Currency
    total_monthly_cost: Decimal
    total_yearly_cost: Decimal
    current_month_total: Decimal
    ytd_total: Decimal
    active_count: int
    upcoming_payments: list[UpcomingPayment]
    category_breakdown: list[CategorySpending]
    card_breakdown: list[CardSpending]
    fx_is_stale: bool = False
    fx_is_fallback: bool = False


class MonthlyBreakdownItem(BaseModel):
    month: int
    total: Decimal
    categories: dict[Category, Decimal]
