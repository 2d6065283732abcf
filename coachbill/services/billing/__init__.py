from coachbill.services.billing.invoices import InvoiceLifecycle, is_overdue
from coachbill.services.billing.payment_settings import (
    PaymentSettingsService,
    payment_settings,
)
from coachbill.services.billing.plans import PricingPlans, pricing_plans
from coachbill.services.billing.reminders import ReminderScheduler, classify
from coachbill.services.billing.reporting import (
    FinancialAggregator,
    monthly_revenue,
    overdue_amount,
    overdue_count,
    payment_rate,
    recurring_revenue,
    service_breakdown,
    top_clients,
)
from coachbill.services.billing.settlement import SettlementEngine
from coachbill.services.billing.subscriptions import Subscriptions, subscriptions

__all__ = [
    "FinancialAggregator",
    "InvoiceLifecycle",
    "PaymentSettingsService",
    "PricingPlans",
    "ReminderScheduler",
    "SettlementEngine",
    "Subscriptions",
    "classify",
    "is_overdue",
    "monthly_revenue",
    "overdue_amount",
    "overdue_count",
    "payment_rate",
    "payment_settings",
    "pricing_plans",
    "recurring_revenue",
    "service_breakdown",
    "subscriptions",
    "top_clients",
]
