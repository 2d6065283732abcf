import enum
import uuid
from datetime import UTC, date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coachbill.db import Base, TimestampMixin

# ── Enums ────────────────────────────────────────────────


class BillingInterval(str, enum.Enum):
    one_time = "one_time"
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class SubscriptionStatus(str, enum.Enum):
    active = "active"
    paused = "paused"
    cancelled = "cancelled"


class InvoiceStatus(str, enum.Enum):
    draft = "draft"
    sent = "sent"
    paid = "paid"
    overdue = "overdue"


class PaymentMethodKind(str, enum.Enum):
    card = "card"
    bank_transfer = "bank_transfer"
    sepa = "sepa"
    apple_pay = "apple_pay"
    google_pay = "google_pay"
    cash = "cash"


class PaymentStatus(str, enum.Enum):
    succeeded = "succeeded"
    failed = "failed"


class ReminderTier(str, enum.Enum):
    first = "first"
    second = "second"
    final = "final"
    suspension = "suspension"


# Escalation order, lowest first.
REMINDER_TIERS: tuple[ReminderTier, ...] = (
    ReminderTier.first,
    ReminderTier.second,
    ReminderTier.final,
    ReminderTier.suspension,
)


# ── Catalog ──────────────────────────────────────────────


class PricingPlan(TimestampMixin, Base):
    __tablename__ = "pricing_plans"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    coach_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    billing_interval: Mapped[BillingInterval] = mapped_column(
        Enum(BillingInterval), nullable=False
    )
    session_count: Mapped[int | None] = mapped_column(Integer)
    features: Mapped[list | None] = mapped_column(JSON)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    subscriptions = relationship("Subscription", back_populates="pricing_plan")


class Subscription(TimestampMixin, Base):
    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )
    coach_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )
    pricing_plan_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("pricing_plans.id"), nullable=False, index=True
    )
    status: Mapped[SubscriptionStatus] = mapped_column(
        Enum(SubscriptionStatus), default=SubscriptionStatus.active
    )
    next_billing_date: Mapped[date | None] = mapped_column(Date)
    sessions_remaining: Mapped[int | None] = mapped_column(Integer)

    pricing_plan = relationship("PricingPlan", back_populates="subscriptions")
    invoices = relationship("Invoice", back_populates="subscription")


# ── Invoicing ────────────────────────────────────────────


class Invoice(TimestampMixin, Base):
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint(
            "coach_id", "invoice_number", name="uq_invoices_coach_number"
        ),
        CheckConstraint(
            "amount_paid >= 0 AND amount_paid <= amount_total",
            name="ck_invoices_amount_paid_range",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    coach_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )
    subscription_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("subscriptions.id"), index=True
    )
    invoice_number: Mapped[str] = mapped_column(String(80), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    amount_total: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_paid: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus), default=InvoiceStatus.draft
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)
    items: Mapped[list] = mapped_column(JSON, nullable=False)

    subscription = relationship("Subscription", back_populates="invoices")
    payments = relationship("Payment", back_populates="invoice")
    reminders = relationship("PaymentReminder", back_populates="invoice")


class InvoiceCounter(Base):
    """Per-coach sequence behind invoice numbering. Never decremented."""

    __tablename__ = "invoice_counters"

    coach_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


# ── Payments ─────────────────────────────────────────────


class Payment(TimestampMixin, Base):
    __tablename__ = "payments"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_payments_amount_positive"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    method: Mapped[PaymentMethodKind] = mapped_column(
        Enum(PaymentMethodKind), nullable=False
    )
    status: Mapped[PaymentStatus] = mapped_column(Enum(PaymentStatus), nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    invoice = relationship("Invoice", back_populates="payments")


class PaymentReminder(Base):
    __tablename__ = "payment_reminders"
    __table_args__ = (
        UniqueConstraint("invoice_id", "tier", name="uq_payment_reminders_invoice_tier"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=False, index=True
    )
    tier: Mapped[ReminderTier] = mapped_column(Enum(ReminderTier), nullable=False)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    invoice = relationship("Invoice", back_populates="reminders")


# ── Coach settings ───────────────────────────────────────


class PaymentSettings(TimestampMixin, Base):
    __tablename__ = "payment_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    coach_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, unique=True
    )
    gateway_account_id: Mapped[str | None] = mapped_column(String(255))
    gateway_publishable_key: Mapped[str | None] = mapped_column(String(255))
    payment_methods_enabled: Mapped[list | None] = mapped_column(JSON)
    first_reminder_days: Mapped[int] = mapped_column(Integer, nullable=False)
    second_reminder_days: Mapped[int] = mapped_column(Integer, nullable=False)
    final_reminder_days: Mapped[int] = mapped_column(Integer, nullable=False)
    overdue_suspension_days: Mapped[int] = mapped_column(Integer, nullable=False)
    company_info: Mapped[dict | None] = mapped_column(JSON)
    auto_invoice_generation: Mapped[bool] = mapped_column(Boolean, default=True)
