"""Display formatting. The only place amounts are rounded."""

from decimal import ROUND_HALF_UP, Decimal

from subtally.schemas.enums import Currency

SYMBOLS = {Currency.USD: "$", Currency.KRW: "₩"}


def currency_symbol(currency: Currency) -> str:
    return SYMBOLS.get(currency, "")


def _round(amount: Decimal, places: int) -> Decimal:
    return Decimal(amount).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def format_currency(amount: Decimal, currency: Currency = Currency.USD) -> str:
    if currency == Currency.KRW:
        return f"₩{_round(amount, 0):,.0f}"
    return f"${_round(amount, 2):,.2f}"


def format_currency_compact(amount: Decimal, currency: Currency = Currency.USD) -> str:
    return f"{currency_symbol(currency)}{_round(amount, 0):,.0f}"


def format_krw_compact(amount: Decimal) -> str:
    """1,234,567 -> ₩123만"""
    if amount >= 10000:
        return f"₩{_round(Decimal(amount) / 10000, 0):,.0f}만"
    return f"₩{_round(amount, 0):,.0f}"
