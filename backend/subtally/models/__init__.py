from subtally.models.payment_method import PaymentMethod
from subtally.models.subscription import Subscription
from subtally.models.fx_rate_cache import FxRateCache
from subtally.models.preferences import Preferences

__all__ = [
    "PaymentMethod",
    "Subscription",
    "FxRateCache",
    "Preferences",
]
