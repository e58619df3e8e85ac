from enum import Enum
from typing import Literal


class Category(str, Enum):
    AI = "AI"
    ENTERTAIN = "ENTERTAIN"
    MEMBERSHIP = "MEMBERSHIP"
    OTHER = "OTHER"


class Currency(str, Enum):
    USD = "USD"
    KRW = "KRW"


class BillingCycle(str, Enum):
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class PaymentMethodType(str, Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_ACCOUNT = "bank_account"
    OTHER = "other"


Language = Literal["en", "ko"]

SortOption = Literal[
    "amount-desc", "amount-asc", "name", "next-payment", "category", "currency", "start-date",
]
