from datetime import datetime

from pydantic import BaseModel, Field

from subtally.schemas.enums import PaymentMethodType


class PaymentMethodBase(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    type: PaymentMethodType = PaymentMethodType.CREDIT_CARD
    last4: str | None = Field(default=None, pattern=r"^\d{4}$")
    color: str | None = None


class PaymentMethodCreate(PaymentMethodBase):
    pass


class PaymentMethodUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    type: PaymentMethodType | None = None
    last4: str | None = Field(default=None, pattern=r"^\d{4}$")
    color: str | None = None


class PaymentMethodRecord(PaymentMethodBase):
    id: str
    created_at: datetime

    model_config = {"from_attributes": True, "frozen": True}


class MigrationResult(BaseModel):
    migrated: int
    from_payment_method_id: str
    to_payment_method_id: str
