from subtally.schemas.enums import BillingCycle, Category, Currency, PaymentMethodType
from subtally.schemas.payment_method import (
    PaymentMethodBase, PaymentMethodCreate, PaymentMethodUpdate,
    PaymentMethodRecord, MigrationResult,
)
from subtally.schemas.subscription import (
    SubscriptionBase, SubscriptionCreate, SubscriptionUpdate,
    SubscriptionRecord, SubscriptionWithDetails,
)
from subtally.schemas.fx import FxRates
from subtally.schemas.calendar import CalendarMonth, PaymentEvent
from subtally.schemas.dashboard import (
    DashboardSummary, UpcomingPayment, CategorySpending, CardSpending, MonthlyBreakdownItem,
)
from subtally.schemas.preferences import PreferencesRecord, PreferencesUpdate
