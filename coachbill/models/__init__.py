from coachbill.models.billing import (  # noqa: F401
    REMINDER_TIERS,
    BillingInterval,
    Invoice,
    InvoiceCounter,
    InvoiceStatus,
    Payment,
    PaymentMethodKind,
    PaymentReminder,
    PaymentSettings,
    PaymentStatus,
    PricingPlan,
    ReminderTier,
    Subscription,
    SubscriptionStatus,
)
