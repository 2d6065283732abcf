"""Tests for reminder classification and the reminder log."""

import uuid
from datetime import UTC, date, datetime, timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from coachbill.errors import ConflictError, NotFoundError
from coachbill.models import InvoiceStatus, ReminderTier
from coachbill.schemas.billing import PaymentSettingsUpsert, ReminderSchedule
from coachbill.services import billing as billing_service
from coachbill.services.billing import ReminderScheduler, classify

SCHEDULE = ReminderSchedule(
    first_reminder_days=3,
    second_reminder_days=7,
    final_reminder_days=15,
    overdue_suspension_days=30,
)
DUE = date(2026, 1, 10)


def _at(days_after_due: int) -> datetime:
    return datetime.combine(DUE + timedelta(days=days_after_due), datetime.min.time(), UTC)


# ── Schedule ─────────────────────────────────────────────


def test_schedule_must_increase():
    with pytest.raises(PydanticValidationError):
        ReminderSchedule(
            first_reminder_days=7,
            second_reminder_days=7,
            final_reminder_days=15,
            overdue_suspension_days=30,
        )


def test_schedule_rejects_negative_offsets():
    with pytest.raises(PydanticValidationError):
        ReminderSchedule(
            first_reminder_days=-1,
            second_reminder_days=7,
            final_reminder_days=15,
            overdue_suspension_days=30,
        )


# ── classify ─────────────────────────────────────────────


def test_first_tier_exactly_at_offset(make_invoice_value):
    invoice = make_invoice_value(due_date=DUE)
    assert classify(invoice, SCHEDULE, _at(3)) == ReminderTier.first


def test_nothing_before_first_offset(make_invoice_value):
    invoice = make_invoice_value(due_date=DUE)
    assert classify(invoice, SCHEDULE, _at(2)) is None
    assert classify(invoice, SCHEDULE, _at(-4)) is None


def test_second_after_first_logged(make_invoice_value):
    invoice = make_invoice_value(due_date=DUE)
    assert classify(invoice, SCHEDULE, _at(7), [ReminderTier.first]) == ReminderTier.second


def test_same_tier_not_repeated(make_invoice_value):
    invoice = make_invoice_value(due_date=DUE)
    assert classify(invoice, SCHEDULE, _at(5), ["first"]) is None


def test_highest_crossed_tier_wins(make_invoice_value):
    invoice = make_invoice_value(due_date=DUE)
    assert classify(invoice, SCHEDULE, _at(16)) == ReminderTier.final
    assert classify(invoice, SCHEDULE, _at(45)) == ReminderTier.suspension


def test_none_once_every_tier_logged(make_invoice_value):
    invoice = make_invoice_value(due_date=DUE, status=InvoiceStatus.overdue)
    logged = [ReminderTier.first, ReminderTier.second, ReminderTier.final, ReminderTier.suspension]
    assert classify(invoice, SCHEDULE, _at(60), logged) is None


def test_paid_invoice_gets_nothing(make_invoice_value):
    invoice = make_invoice_value(
        due_date=DUE, amount_paid=10000, status=InvoiceStatus.paid
    )
    assert classify(invoice, SCHEDULE, _at(20)) is None


# ── ReminderScheduler ────────────────────────────────────


def _past_due_invoice(lifecycle, coach_id, client_id, days_late: int):
    due = datetime.now(UTC).date() - timedelta(days=days_late)
    invoice = lifecycle.create_invoice(
        coach_id, client_id, [{"quantity": 1, "unit_price": 5000}], due, "EUR"
    )
    return lifecycle.mark_sent(invoice.id)


def test_record_is_unique_per_tier(ledger, invoice):
    scheduler = ReminderScheduler(ledger)
    reminder = scheduler.record(invoice.id, "first")
    assert reminder.tier == ReminderTier.first
    with pytest.raises(ConflictError):
        scheduler.record(invoice.id, ReminderTier.first)
    scheduler.record(invoice.id, ReminderTier.second)
    assert [r.tier for r in scheduler.history(invoice.id)] == [
        ReminderTier.first,
        ReminderTier.second,
    ]


def test_record_missing_invoice(ledger):
    with pytest.raises(NotFoundError):
        ReminderScheduler(ledger).record(uuid.uuid4(), ReminderTier.first)


def test_classify_invoice_uses_coach_schedule(
    ledger, db_session, lifecycle, coach_id, client_id
):
    invoice = _past_due_invoice(lifecycle, coach_id, client_id, days_late=2)
    scheduler = ReminderScheduler(ledger)
    assert scheduler.classify_invoice(invoice.id).tier is None

    billing_service.payment_settings.upsert(
        db_session,
        coach_id,
        PaymentSettingsUpsert(
            reminder_schedule=ReminderSchedule(
                first_reminder_days=1,
                second_reminder_days=2,
                final_reminder_days=5,
                overdue_suspension_days=10,
            )
        ),
    )
    result = scheduler.classify_invoice(invoice.id)
    assert result.tier == ReminderTier.second
    assert result.days_past_due == 2


def test_due_reminders_skip_drafts_and_paid(
    ledger, lifecycle, settlement, coach_id, client_id
):
    late = _past_due_invoice(lifecycle, coach_id, client_id, days_late=8)
    paid = _past_due_invoice(lifecycle, coach_id, client_id, days_late=8)
    settlement.settle_full(paid.id)
    lifecycle.create_invoice(
        coach_id,
        client_id,
        [{"quantity": 1, "unit_price": 100}],
        datetime.now(UTC).date() - timedelta(days=8),
        "EUR",
    )
    due = ReminderScheduler(ledger).due_reminders(coach_id)
    assert [(d.invoice.id, d.tier) for d in due] == [(late.id, ReminderTier.second)]


def test_send_due_reminders_logs_each_sent_tier(ledger, lifecycle, coach_id, client_id):
    first = _past_due_invoice(lifecycle, coach_id, client_id, days_late=4)
    _past_due_invoice(lifecycle, coach_id, client_id, days_late=1)
    sent = []

    result = ReminderScheduler(ledger).send_due_reminders(
        coach_id, lambda invoice, tier: sent.append((invoice.id, tier))
    )
    assert (result.sent, result.failed, result.skipped) == (1, 0, 1)
    assert sent == [(first.id, ReminderTier.first)]

    again = ReminderScheduler(ledger).send_due_reminders(coach_id, lambda i, t: None)
    assert again.sent == 0


def test_notifier_failure_records_nothing(ledger, lifecycle, coach_id, client_id):
    invoice = _past_due_invoice(lifecycle, coach_id, client_id, days_late=4)

    def broken(invoice, tier):
        raise RuntimeError("smtp down")

    scheduler = ReminderScheduler(ledger)
    result = scheduler.send_due_reminders(coach_id, broken)
    assert result.failed == 1
    assert scheduler.history(invoice.id) == []
