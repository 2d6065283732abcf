"""Tests for pricing plans, subscriptions and payment settings."""

import uuid

import pytest

from coachbill.errors import NotFoundError, ValidationError
from coachbill.models import PaymentMethodKind, SubscriptionStatus
from coachbill.schemas.billing import (
    CompanyInfo,
    PaymentSettingsUpsert,
    PricingPlanCreate,
    PricingPlanUpdate,
    ReminderSchedule,
    SubscriptionCreate,
    SubscriptionUpdate,
)
from coachbill.services import billing as billing_service

# ── Pricing Plans ────────────────────────────────────────


def test_create_plan_normalizes_currency(plan):
    assert plan.currency == "EUR"
    assert plan.is_active is True
    assert plan.features == ["Weekly check-in", "Training plan"]


def test_get_plan_not_found(db_session):
    with pytest.raises(NotFoundError):
        billing_service.pricing_plans.get(db_session, str(uuid.uuid4()))


def test_list_plans_filters_by_coach(db_session, plan, coach_id):
    billing_service.pricing_plans.create(
        db_session,
        PricingPlanCreate(
            coach_id=uuid.uuid4(),
            name="Other coach",
            price=5000,
            currency="EUR",
            billing_interval="one_time",
        ),
    )
    items, total = billing_service.pricing_plans.list(
        db_session, str(coach_id), None, "created_at", "desc", 50, 0
    )
    assert total == 1
    assert items[0].id == plan.id


def test_list_plans_rejects_unknown_ordering(db_session):
    with pytest.raises(ValidationError):
        billing_service.pricing_plans.list(db_session, None, None, "secret", "asc", 10, 0)


def test_update_and_retire_plan(db_session, plan):
    updated = billing_service.pricing_plans.update(
        db_session, str(plan.id), PricingPlanUpdate(price=15000)
    )
    assert updated.price == 15000
    billing_service.pricing_plans.delete(db_session, str(plan.id))
    assert billing_service.pricing_plans.get(db_session, str(plan.id)).is_active is False


# ── Subscriptions ────────────────────────────────────────


def test_subscription_inherits_session_count(subscription):
    assert subscription.status == SubscriptionStatus.active
    assert subscription.sessions_remaining == 4


def test_subscription_requires_plan_of_same_coach(db_session, plan, client_id):
    with pytest.raises(ValidationError):
        billing_service.subscriptions.create(
            db_session,
            SubscriptionCreate(
                client_id=client_id, coach_id=uuid.uuid4(), pricing_plan_id=plan.id
            ),
        )


def test_subscription_on_retired_plan(db_session, plan, coach_id, client_id):
    billing_service.pricing_plans.delete(db_session, str(plan.id))
    with pytest.raises(ValidationError):
        billing_service.subscriptions.create(
            db_session,
            SubscriptionCreate(client_id=client_id, coach_id=coach_id, pricing_plan_id=plan.id),
        )


def test_pause_resume_cancel(db_session, subscription):
    item_id = str(subscription.id)
    assert billing_service.subscriptions.pause(db_session, item_id).status == "paused"
    assert billing_service.subscriptions.resume(db_session, item_id).status == "active"
    assert billing_service.subscriptions.cancel(db_session, item_id).status == "cancelled"
    with pytest.raises(ValidationError):
        billing_service.subscriptions.resume(db_session, item_id)


def test_update_subscription_checks_transition(db_session, subscription):
    billing_service.subscriptions.cancel(db_session, str(subscription.id))
    with pytest.raises(ValidationError):
        billing_service.subscriptions.update(
            db_session, str(subscription.id), SubscriptionUpdate(status="active")
        )


def test_list_subscriptions_by_status(db_session, subscription, coach_id):
    items, total = billing_service.subscriptions.list(
        db_session, str(coach_id), None, "active", "created_at", "desc", 50, 0
    )
    assert total == 1
    response = billing_service.subscriptions.list_response(
        db_session, str(coach_id), None, "paused", "created_at", "desc", 50, 0
    )
    assert response["count"] == 0
    assert response["limit"] == 50


# ── Payment Settings ─────────────────────────────────────


def test_payment_settings_not_found(db_session, coach_id):
    with pytest.raises(NotFoundError):
        billing_service.payment_settings.get(db_session, str(coach_id))


def test_upsert_creates_with_default_schedule(db_session, coach_id):
    item = billing_service.payment_settings.upsert(
        db_session,
        str(coach_id),
        PaymentSettingsUpsert(company_info=CompanyInfo(name="Studio Move")),
    )
    assert (
        item.first_reminder_days,
        item.second_reminder_days,
        item.final_reminder_days,
        item.overdue_suspension_days,
    ) == (3, 7, 15, 30)
    assert item.company_info["name"] == "Studio Move"
    assert item.payment_methods_enabled is None


def test_upsert_updates_existing_row(db_session, coach_id):
    first = billing_service.payment_settings.upsert(
        db_session, str(coach_id), PaymentSettingsUpsert(auto_invoice_generation=False)
    )
    second = billing_service.payment_settings.upsert(
        db_session,
        str(coach_id),
        PaymentSettingsUpsert(
            payment_methods_enabled=[PaymentMethodKind.card, PaymentMethodKind.sepa],
            reminder_schedule=ReminderSchedule(
                first_reminder_days=2,
                second_reminder_days=5,
                final_reminder_days=10,
                overdue_suspension_days=20,
            ),
        ),
    )
    assert second.id == first.id
    assert second.auto_invoice_generation is False
    assert second.payment_methods_enabled == ["card", "sepa"]
    assert second.second_reminder_days == 5
