"""billing schema

Revision ID: 001_billing
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "001_billing"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Pricing plans
    op.create_table(
        "pricing_plans",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("coach_id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column(
            "billing_interval",
            sa.Enum(
                "one_time",
                "weekly",
                "monthly",
                "quarterly",
                "yearly",
                name="billinginterval",
            ),
            nullable=False,
        ),
        sa.Column("session_count", sa.Integer(), nullable=True),
        sa.Column("features", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pricing_plans_coach_id", "pricing_plans", ["coach_id"])

    # Subscriptions
    op.create_table(
        "subscriptions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("client_id", sa.UUID(), nullable=False),
        sa.Column("coach_id", sa.UUID(), nullable=False),
        sa.Column("pricing_plan_id", sa.UUID(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "paused", "cancelled", name="subscriptionstatus"),
            nullable=True,
        ),
        sa.Column("next_billing_date", sa.Date(), nullable=True),
        sa.Column("sessions_remaining", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["pricing_plan_id"], ["pricing_plans.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_subscriptions_client_id", "subscriptions", ["client_id"])
    op.create_index("ix_subscriptions_coach_id", "subscriptions", ["coach_id"])
    op.create_index("ix_subscriptions_pricing_plan_id", "subscriptions", ["pricing_plan_id"])

    # Invoices
    op.create_table(
        "invoices",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("coach_id", sa.UUID(), nullable=False),
        sa.Column("client_id", sa.UUID(), nullable=False),
        sa.Column("subscription_id", sa.UUID(), nullable=True),
        sa.Column("invoice_number", sa.String(length=80), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("amount_total", sa.Integer(), nullable=False),
        sa.Column("amount_paid", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("draft", "sent", "paid", "overdue", name="invoicestatus"),
            nullable=True,
        ),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["subscription_id"], ["subscriptions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("coach_id", "invoice_number", name="uq_invoices_coach_number"),
        sa.CheckConstraint(
            "amount_paid >= 0 AND amount_paid <= amount_total",
            name="ck_invoices_amount_paid_range",
        ),
    )
    op.create_index("ix_invoices_coach_id", "invoices", ["coach_id"])
    op.create_index("ix_invoices_client_id", "invoices", ["client_id"])
    op.create_index("ix_invoices_subscription_id", "invoices", ["subscription_id"])

    # Invoice counters
    op.create_table(
        "invoice_counters",
        sa.Column("coach_id", sa.UUID(), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("coach_id"),
    )

    # Payments
    op.create_table(
        "payments",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("invoice_id", sa.UUID(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column(
            "method",
            sa.Enum(
                "card",
                "bank_transfer",
                "sepa",
                "apple_pay",
                "google_pay",
                "cash",
                name="paymentmethodkind",
            ),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("succeeded", "failed", name="paymentstatus"),
            nullable=False,
        ),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
    )
    op.create_index("ix_payments_invoice_id", "payments", ["invoice_id"])

    # Payment reminders
    op.create_table(
        "payment_reminders",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("invoice_id", sa.UUID(), nullable=False),
        sa.Column(
            "tier",
            sa.Enum("first", "second", "final", "suspension", name="remindertier"),
            nullable=False,
        ),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invoice_id", "tier", name="uq_payment_reminders_invoice_tier"),
    )
    op.create_index("ix_payment_reminders_invoice_id", "payment_reminders", ["invoice_id"])

    # Payment settings
    op.create_table(
        "payment_settings",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("coach_id", sa.UUID(), nullable=False),
        sa.Column("gateway_account_id", sa.String(length=255), nullable=True),
        sa.Column("gateway_publishable_key", sa.String(length=255), nullable=True),
        sa.Column("payment_methods_enabled", sa.JSON(), nullable=True),
        sa.Column("first_reminder_days", sa.Integer(), nullable=False),
        sa.Column("second_reminder_days", sa.Integer(), nullable=False),
        sa.Column("final_reminder_days", sa.Integer(), nullable=False),
        sa.Column("overdue_suspension_days", sa.Integer(), nullable=False),
        sa.Column("company_info", sa.JSON(), nullable=True),
        sa.Column("auto_invoice_generation", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("coach_id"),
    )


def downgrade() -> None:
    op.drop_table("payment_settings")

    op.drop_index("ix_payment_reminders_invoice_id", table_name="payment_reminders")
    op.drop_table("payment_reminders")

    op.drop_index("ix_payments_invoice_id", table_name="payments")
    op.drop_table("payments")

    op.drop_table("invoice_counters")

    op.drop_index("ix_invoices_subscription_id", table_name="invoices")
    op.drop_index("ix_invoices_client_id", table_name="invoices")
    op.drop_index("ix_invoices_coach_id", table_name="invoices")
    op.drop_table("invoices")

    op.drop_index("ix_subscriptions_pricing_plan_id", table_name="subscriptions")
    op.drop_index("ix_subscriptions_coach_id", table_name="subscriptions")
    op.drop_index("ix_subscriptions_client_id", table_name="subscriptions")
    op.drop_table("subscriptions")

    op.drop_index("ix_pricing_plans_coach_id", table_name="pricing_plans")
    op.drop_table("pricing_plans")

    for enum_name in [
        "remindertier",
        "paymentstatus",
        "paymentmethodkind",
        "invoicestatus",
        "subscriptionstatus",
        "billinginterval",
    ]:
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
