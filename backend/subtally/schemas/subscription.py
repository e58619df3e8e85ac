from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from subtally.schemas.enums import BillingCycle, Category, Currency


class SubscriptionBase(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    category: Category = Category.OTHER
    amount: Decimal = Field(gt=0)
    currency: Currency = Currency.USD
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    billing_day: int = Field(ge=1, le=31)
    billing_month: int | None = Field(default=None, ge=1, le=12)
    free_until: date | None = None
    started_at: date | None = None
    promo_amount: Decimal | None = Field(default=None, ge=0)
    promo_until: date | None = None
    payment_method_id: str | None = None
    service_url: str | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def _yearly_needs_month(self):
        if self.billing_cycle == BillingCycle.YEARLY and self.billing_month is None:
            raise ValueError("billing_month is required for YEARLY subscriptions")
        return self


class SubscriptionCreate(SubscriptionBase):
    pass


class SubscriptionUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    category: Category | None = None
    amount: Decimal | None = Field(default=None, gt=0)
    currency: Currency | None = None
    billing_cycle: BillingCycle | None = None
    billing_day: int | None = Field(default=None, ge=1, le=31)
    billing_month: int | None = Field(default=None, ge=1, le=12)
    free_until: date | None = None
    started_at: date | None = None
    promo_amount: Decimal | None = Field(default=None, ge=0)
    promo_until: date | None = None
    payment_method_id: str | None = None
    service_url: str | None = None
    notes: str | None = None


class SubscriptionRecord(SubscriptionBase):
    """Read-only snapshot handed to the billing and aggregation services."""

    id: str
    is_active: bool = True
    created_at: datetime
    updated_at: datetime
    ended_at: datetime | None = None

    model_config = {"from_attributes": True, "frozen": True}


class SubscriptionWithDetails(SubscriptionRecord):
    payment_method_name: str | None = None
    payment_method_last4: str | None = None
