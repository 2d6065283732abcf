"""Tests for payment settlement."""

import uuid

import pytest
from prometheus_client import REGISTRY

from coachbill.errors import (
    AlreadySettledError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from coachbill.models import InvoiceStatus, PaymentMethodKind, PaymentStatus
from coachbill.schemas.billing import PaymentSettingsUpsert
from coachbill.services import billing as billing_service
from coachbill.services.ledger import SqlLedgerStore


def _conflicts():
    return REGISTRY.get_sample_value(
        "billing_settlements_total", {"outcome": "conflict"}
    ) or 0.0


def _succeeded(settlement, invoice_id):
    return [
        payment
        for payment in settlement.list_payments(invoice_id)
        if payment.status == PaymentStatus.succeeded
    ]


def _assert_balance_invariants(lifecycle, invoice_id):
    current = lifecycle.get(invoice_id)
    assert 0 <= current.amount_paid <= current.amount_total
    assert (current.status == InvoiceStatus.paid) == (
        current.amount_paid == current.amount_total
    )
    return current


def test_partial_then_full(settlement, lifecycle, invoice):
    payment = settlement.settle(invoice.id, 4000, PaymentMethodKind.bank_transfer)
    assert payment.amount == 4000
    assert payment.status == PaymentStatus.succeeded
    current = _assert_balance_invariants(lifecycle, invoice.id)
    assert current.amount_paid == 4000
    assert current.status == InvoiceStatus.sent

    settlement.settle(invoice.id, 6000)
    current = _assert_balance_invariants(lifecycle, invoice.id)
    assert current.status == InvoiceStatus.paid
    assert current.paid_at is not None


def test_invariants_hold_over_any_sequence(settlement, lifecycle, invoice):
    for amount in (1, 2500, 999, 10000, 50):
        try:
            settlement.settle(invoice.id, amount)
        except AlreadySettledError:
            pass
        _assert_balance_invariants(lifecycle, invoice.id)
    assert lifecycle.get(invoice.id).amount_paid == 10000


def test_overpayment_is_clamped(settlement, lifecycle, invoice):
    payment = settlement.settle(invoice.id, 15000)
    assert payment.amount == 10000
    assert lifecycle.get(invoice.id).status == InvoiceStatus.paid
    assert len(_succeeded(settlement, invoice.id)) == 1


def test_settle_full_twice(settlement, invoice):
    settlement.settle_full(invoice.id)
    with pytest.raises(AlreadySettledError):
        settlement.settle_full(invoice.id)
    assert len(_succeeded(settlement, invoice.id)) == 1


def test_settle_missing_invoice(settlement):
    with pytest.raises(NotFoundError):
        settlement.settle(uuid.uuid4(), 100)


@pytest.mark.parametrize("amount", [0, -100])
def test_non_positive_amount(settlement, invoice, amount):
    with pytest.raises(ValidationError):
        settlement.settle(invoice.id, amount)
    assert settlement.list_payments(invoice.id) == []


def test_already_settled_checked_before_amount(settlement, invoice):
    settlement.settle_full(invoice.id)
    with pytest.raises(AlreadySettledError):
        settlement.settle(invoice.id, 0)


def test_currency_mismatch(settlement, invoice):
    with pytest.raises(ValidationError):
        settlement.settle(invoice.id, 100, currency="USD")
    payment = settlement.settle(invoice.id, 100, currency="eur")
    assert payment.currency == "EUR"


def test_unknown_method(settlement, invoice):
    with pytest.raises(ValidationError):
        settlement.settle(invoice.id, 100, "cheque")


def test_method_must_be_enabled(settlement, db_session, invoice, coach_id):
    billing_service.payment_settings.upsert(
        db_session,
        coach_id,
        PaymentSettingsUpsert(payment_methods_enabled=[PaymentMethodKind.sepa]),
    )
    with pytest.raises(ValidationError):
        settlement.settle(invoice.id, 100, PaymentMethodKind.card)
    assert settlement.settle(invoice.id, 100, "sepa").method == PaymentMethodKind.sepa


def test_settle_partial_rejects_excess(settlement, lifecycle, invoice):
    with pytest.raises(ValidationError) as exc_info:
        settlement.settle_partial(invoice.id, 15000)
    assert exc_info.value.details == {"remaining": 10000, "requested": 15000}
    assert lifecycle.get(invoice.id).amount_paid == 0

    payment = settlement.settle_partial(invoice.id, 10000)
    assert payment.amount == 10000


def test_record_failure_leaves_balance(settlement, lifecycle, invoice):
    settlement.settle(invoice.id, 3000)
    failed = settlement.record_failure(invoice.id)
    assert failed.status == PaymentStatus.failed
    assert failed.failure_reason == "Card declined"
    assert failed.amount == 7000
    current = lifecycle.get(invoice.id)
    assert current.amount_paid == 3000
    assert current.status == InvoiceStatus.sent


def test_record_failure_on_settled_invoice(settlement, invoice):
    settlement.settle_full(invoice.id)
    with pytest.raises(AlreadySettledError):
        settlement.record_failure(invoice.id, "Insufficient funds")


def test_list_payments_newest_first(settlement, invoice):
    first = settlement.settle(invoice.id, 1000)
    second = settlement.settle(invoice.id, 2000)
    assert [p.id for p in settlement.list_payments(invoice.id)] == [second.id, first.id]


def test_lost_race_raises_conflict_and_leaves_no_orphan(
    db_session, ledger, settlement, lifecycle, invoice, monkeypatch
):
    """A competing settlement lands between our read and our write."""
    original = ledger.select_by_id
    raced = []

    def read_then_race(table, item_id):
        snapshot = original(table, item_id)
        if table == "invoices" and not raced:
            raced.append(True)
            rival = billing_service.SettlementEngine(SqlLedgerStore(db_session))
            rival.settle_full(item_id)
        return snapshot

    monkeypatch.setattr(ledger, "select_by_id", read_then_race)
    conflicts_before = _conflicts()

    with pytest.raises(ConflictError):
        settlement.settle(invoice.id, 10000)

    monkeypatch.undo()
    current = _assert_balance_invariants(lifecycle, invoice.id)
    assert current.amount_paid == current.amount_total
    succeeded = _succeeded(settlement, invoice.id)
    assert len(succeeded) == 1
    assert succeeded[0].amount == 10000
    assert _conflicts() == conflicts_before + 1


def test_retry_after_conflict_sees_settled_invoice(
    db_session, ledger, settlement, invoice, monkeypatch
):
    original = ledger.select_by_id
    raced = []

    def read_then_race(table, item_id):
        snapshot = original(table, item_id)
        if table == "invoices" and not raced:
            raced.append(True)
            billing_service.SettlementEngine(SqlLedgerStore(db_session)).settle(
                item_id, 2500
            )
        return snapshot

    monkeypatch.setattr(ledger, "select_by_id", read_then_race)
    with pytest.raises(ConflictError):
        settlement.settle(invoice.id, 10000)

    # Re-reading sees the smaller balance and clamps to it.
    payment = settlement.settle(invoice.id, 10000)
    assert payment.amount == 7500
