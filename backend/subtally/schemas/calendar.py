from datetime import date
from decimal import Decimal

from pydantic import BaseModel

from subtally.schemas.enums import BillingCycle, Category, Currency


class PaymentEvent(BaseModel):
    subscription_id: str
    name: str
    category: Category
    amount: Decimal
    currency: Currency
    billing_cycle: BillingCycle
    date: date


class CalendarMonth(BaseModel):
    year: int
    month: int
    events: list[PaymentEvent]
    total_amount: Decimal
    currency: Currency
