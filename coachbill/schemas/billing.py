from datetime import date, datetime
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from coachbill.models.billing import (
    BillingInterval,
    InvoiceStatus,
    PaymentMethodKind,
    PaymentStatus,
    ReminderTier,
    SubscriptionStatus,
)


def _upper_currency(value: str | None) -> str | None:
    return value.upper() if value else value


# ── Pricing Plan ─────────────────────────────────────────


class PricingPlanBase(BaseModel):
    coach_id: UUID
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    price: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    billing_interval: BillingInterval
    session_count: int | None = Field(default=None, ge=1)
    features: list[str] = Field(default_factory=list)
    is_active: bool = True

    normalize_currency = field_validator("currency")(_upper_currency)


class PricingPlanCreate(PricingPlanBase):
    pass


class PricingPlanUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    description: str | None = None
    price: int | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    billing_interval: BillingInterval | None = None
    session_count: int | None = Field(default=None, ge=1)
    features: list[str] | None = None
    is_active: bool | None = None

    normalize_currency = field_validator("currency")(_upper_currency)


class PricingPlanRead(PricingPlanBase):
    model_config = ConfigDict(from_attributes=True, frozen=True)
    id: UUID
    features: list[str] | None = None  # type: ignore[assignment]
    created_at: datetime
    updated_at: datetime


# ── Subscription ─────────────────────────────────────────


class SubscriptionBase(BaseModel):
    client_id: UUID
    coach_id: UUID
    pricing_plan_id: UUID
    status: SubscriptionStatus = SubscriptionStatus.active
    next_billing_date: date | None = None
    sessions_remaining: int | None = Field(default=None, ge=0)


class SubscriptionCreate(SubscriptionBase):
    pass


class SubscriptionUpdate(BaseModel):
    status: SubscriptionStatus | None = None
    next_billing_date: date | None = None
    sessions_remaining: int | None = Field(default=None, ge=0)


class SubscriptionRead(SubscriptionBase):
    model_config = ConfigDict(from_attributes=True, frozen=True)
    id: UUID
    created_at: datetime
    updated_at: datetime


# ── Invoice ──────────────────────────────────────────────


class InvoiceItemIn(BaseModel):
    """A line item as submitted; checked by the invoice lifecycle."""

    description: str = ""
    quantity: int
    unit_price: int


class InvoiceItem(BaseModel):
    """A stored line item. ``total`` is always ``quantity * unit_price``."""

    model_config = ConfigDict(frozen=True)
    description: str = ""
    quantity: int = Field(ge=1)
    unit_price: int = Field(ge=0)
    total: int

    @model_validator(mode="after")
    def _check_total(self) -> "InvoiceItem":
        if self.total != self.quantity * self.unit_price:
            raise ValueError("total must equal quantity * unit_price")
        return self


class InvoiceCreate(BaseModel):
    coach_id: UUID
    client_id: UUID
    items: list[InvoiceItemIn]
    due_date: date
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    subscription_id: UUID | None = None
    notes: str | None = None


class InvoiceItemsReplace(BaseModel):
    items: list[InvoiceItemIn]


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)
    id: UUID
    coach_id: UUID
    client_id: UUID
    subscription_id: UUID | None = None
    invoice_number: str
    currency: str
    amount_total: int
    amount_paid: int
    status: InvoiceStatus
    due_date: date
    paid_at: datetime | None = None
    notes: str | None = None
    items: list[InvoiceItem]
    created_at: datetime
    updated_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining(self) -> int:
        return self.amount_total - self.amount_paid


class MarkPaidRequest(BaseModel):
    paid_at: datetime | None = None


# ── Payment ──────────────────────────────────────────────


class SettleRequest(BaseModel):
    amount: int
    method: PaymentMethodKind = PaymentMethodKind.card
    currency: str | None = Field(default=None, min_length=3, max_length=3)


class SettleFullRequest(BaseModel):
    method: PaymentMethodKind = PaymentMethodKind.card


class PaymentFailureRequest(BaseModel):
    reason: str = Field(default="Card declined", min_length=1)
    method: PaymentMethodKind = PaymentMethodKind.card


class PaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)
    id: UUID
    invoice_id: UUID
    amount: int
    currency: str
    method: PaymentMethodKind
    status: PaymentStatus
    failure_reason: str | None = None
    processed_at: datetime
    created_at: datetime


# ── Reminders ────────────────────────────────────────────


class ReminderSchedule(BaseModel):
    """Day offsets from the due date at which each reminder tier applies."""

    model_config = ConfigDict(frozen=True)
    first_reminder_days: int = Field(ge=0)
    second_reminder_days: int = Field(ge=0)
    final_reminder_days: int = Field(ge=0)
    overdue_suspension_days: int = Field(ge=0)

    @model_validator(mode="after")
    def _strictly_increasing(self) -> "ReminderSchedule":
        offsets = self.offsets()
        if any(b <= a for a, b in zip(offsets, offsets[1:])):
            raise ValueError("reminder day offsets must be strictly increasing")
        return self

    def offsets(self) -> list[int]:
        return [
            self.first_reminder_days,
            self.second_reminder_days,
            self.final_reminder_days,
            self.overdue_suspension_days,
        ]

    def threshold(self, tier: ReminderTier) -> int:
        return {
            ReminderTier.first: self.first_reminder_days,
            ReminderTier.second: self.second_reminder_days,
            ReminderTier.final: self.final_reminder_days,
            ReminderTier.suspension: self.overdue_suspension_days,
        }[tier]


class PaymentReminderCreate(BaseModel):
    tier: ReminderTier
    sent_at: datetime | None = None


class PaymentReminderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)
    id: UUID
    invoice_id: UUID
    tier: ReminderTier
    sent_at: datetime


class ReminderClassification(BaseModel):
    invoice_id: UUID
    tier: ReminderTier | None = None
    days_past_due: int


class DueReminder(BaseModel):
    invoice: InvoiceRead
    tier: ReminderTier


class ReminderRunResult(BaseModel):
    sent: int = 0
    failed: int = 0
    skipped: int = 0


# ── Payment Settings ─────────────────────────────────────


class CompanyInfo(BaseModel):
    name: str = ""
    address: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = "FR"
    vat_number: str = ""
    phone: str = ""
    email: str = ""


class PaymentSettingsUpsert(BaseModel):
    gateway_account_id: str | None = Field(default=None, max_length=255)
    gateway_publishable_key: str | None = Field(default=None, max_length=255)
    payment_methods_enabled: list[PaymentMethodKind] | None = None
    reminder_schedule: ReminderSchedule | None = None
    company_info: CompanyInfo | None = None
    auto_invoice_generation: bool | None = None


class PaymentSettingsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)
    id: UUID
    coach_id: UUID
    gateway_account_id: str | None = None
    gateway_publishable_key: str | None = None
    payment_methods_enabled: list[PaymentMethodKind] | None = None
    first_reminder_days: int
    second_reminder_days: int
    final_reminder_days: int
    overdue_suspension_days: int
    company_info: dict | None = None
    auto_invoice_generation: bool
    created_at: datetime
    updated_at: datetime

    @property
    def reminder_schedule(self) -> ReminderSchedule:
        return ReminderSchedule(
            first_reminder_days=self.first_reminder_days,
            second_reminder_days=self.second_reminder_days,
            final_reminder_days=self.final_reminder_days,
            overdue_suspension_days=self.overdue_suspension_days,
        )


# ── Reporting ────────────────────────────────────────────


class MonthlyRevenue(BaseModel):
    month: str  # YYYY-MM
    amount: int


class ClientRevenue(BaseModel):
    client_id: UUID
    revenue: int
    invoice_count: int


class FinancialSummary(BaseModel):
    coach_id: UUID
    invoice_count: int
    total_invoiced: int
    total_collected: int
    monthly_revenue: list[MonthlyRevenue]
    recurring_revenue: int
    payment_rate: float
    overdue_amount: int
    overdue_count: int
    top_clients: list[ClientRevenue]
