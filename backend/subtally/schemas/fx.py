from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class FxRates(BaseModel):
    usd_to_krw: Decimal
    krw_to_usd: Decimal
    last_updated: datetime
    source: str
    # Cache older than the refresh interval and the fetch failed
    is_stale: bool = False
    # No cache and no fetch; hardcoded approximate rate
    is_fallback: bool = False

    model_config = {"frozen": True}
