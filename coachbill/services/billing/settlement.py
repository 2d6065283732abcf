"""Payment settlement against a single invoice.

The payment insert and the ``amount_paid`` increment share one transaction.
The increment is a compare-and-set on the balance read at load time, so two
settlements racing on the same invoice cannot both apply: the loser gets a
ConflictError and its payment row is rolled back with it.
"""

import logging
from typing import Any

from coachbill.errors import (
    AlreadySettledError,
    BillingError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from coachbill.metrics import SETTLED_AMOUNT, SETTLEMENTS
from coachbill.models.billing import PaymentMethodKind, PaymentStatus
from coachbill.schemas.billing import InvoiceRead, PaymentRead
from coachbill.services.billing.invoices import InvoiceLifecycle
from coachbill.services.common import utcnow, validate_enum
from coachbill.services.ledger import LedgerStore

logger = logging.getLogger(__name__)


def _rejected(exc: BillingError) -> BillingError:
    SETTLEMENTS.labels(outcome="rejected").inc()
    return exc


class SettlementEngine:
    def __init__(self, ledger: LedgerStore) -> None:
        self.ledger = ledger
        self.invoices = InvoiceLifecycle(ledger)

    def _load(self, invoice_id: Any) -> InvoiceRead:
        invoice = self.ledger.select_by_id("invoices", invoice_id)
        if invoice is None:
            raise _rejected(NotFoundError("Invoice not found"))
        return invoice

    def _check_method(self, invoice: InvoiceRead, method: PaymentMethodKind) -> None:
        found = self.ledger.select_where("payment_settings", coach_id=invoice.coach_id)
        if not found or found[0].payment_methods_enabled is None:
            return
        enabled = found[0].payment_methods_enabled
        if method not in enabled:
            raise _rejected(
                ValidationError(
                    f"Payment method '{method.value}' is not enabled for this coach",
                    details={"enabled": [m.value for m in enabled]},
                )
            )

    # ── Settlement ───────────────────────────────────────

    def settle(
        self,
        invoice_id: Any,
        requested_amount: int,
        method: PaymentMethodKind | str = PaymentMethodKind.card,
        currency: str | None = None,
    ) -> PaymentRead:
        """Pay up to the remaining balance. Requests above it are clamped."""
        invoice = self._load(invoice_id)
        return self._settle(invoice, requested_amount, method, currency)

    def settle_full(
        self, invoice_id: Any, method: PaymentMethodKind | str = PaymentMethodKind.card
    ) -> PaymentRead:
        invoice = self._load(invoice_id)
        return self._settle(invoice, invoice.amount_total - invoice.amount_paid, method)

    def settle_partial(
        self,
        invoice_id: Any,
        amount: int,
        method: PaymentMethodKind | str = PaymentMethodKind.card,
        currency: str | None = None,
    ) -> PaymentRead:
        """Like :meth:`settle`, but an amount above the balance is rejected."""
        invoice = self._load(invoice_id)
        return self._settle(invoice, amount, method, currency, strict=True)

    def _settle(
        self,
        invoice: InvoiceRead,
        requested_amount: int,
        method: PaymentMethodKind | str,
        currency: str | None = None,
        strict: bool = False,
    ) -> PaymentRead:
        if invoice.amount_paid >= invoice.amount_total:
            raise _rejected(
                AlreadySettledError(
                    "Invoice is already settled",
                    details={"invoice_id": str(invoice.id)},
                )
            )
        if isinstance(requested_amount, bool) or not isinstance(requested_amount, int):
            raise _rejected(ValidationError("Settlement amount must be an integer"))
        remaining = invoice.amount_total - invoice.amount_paid
        applied = min(requested_amount, remaining)
        if requested_amount <= 0:
            raise _rejected(ValidationError("Settlement amount must be greater than zero"))
        if strict and requested_amount > remaining:
            raise _rejected(
                ValidationError(
                    "Payment exceeds the remaining balance",
                    details={"remaining": remaining, "requested": requested_amount},
                )
            )
        try:
            method = validate_enum(method, PaymentMethodKind, "method")
        except ValidationError as exc:
            raise _rejected(exc) from exc
        if currency is not None and currency.upper() != invoice.currency:
            raise _rejected(
                ValidationError(
                    f"Currency {currency.upper()} does not match invoice currency "
                    f"{invoice.currency}"
                )
            )
        self._check_method(invoice, method)

        now = utcnow()
        with self.ledger.atomic():
            payment = self.ledger.insert(
                "payments",
                {
                    "invoice_id": invoice.id,
                    "amount": applied,
                    "currency": invoice.currency,
                    "method": method,
                    "status": PaymentStatus.succeeded,
                    "processed_at": now,
                },
            )
            updated = self.ledger.compare_and_set(
                "invoices",
                invoice.id,
                {"amount_paid": invoice.amount_paid},
                {"amount_paid": invoice.amount_paid + applied},
            )
            if updated is None:
                SETTLEMENTS.labels(outcome="conflict").inc()
                logger.warning(
                    "Lost settlement race on invoice %s",
                    invoice.id,
                    extra={"invoice_id": invoice.id},
                )
                raise ConflictError(
                    "Invoice balance changed during settlement, re-read and retry",
                    details={"invoice_id": str(invoice.id)},
                )
            if updated.amount_paid >= updated.amount_total:
                self.invoices.mark_paid(invoice.id, paid_at=now)

        SETTLEMENTS.labels(outcome="succeeded").inc()
        SETTLED_AMOUNT.labels(currency=invoice.currency).inc(applied)
        if applied < requested_amount:
            logger.info(
                "Clamped settlement on invoice %s from %d to %d",
                invoice.id,
                requested_amount,
                applied,
                extra={"invoice_id": invoice.id},
            )
        logger.info(
            "Settled payment %s on invoice %s",
            payment.id,
            invoice.id,
            extra={"invoice_id": invoice.id, "payment_id": payment.id},
        )
        return payment

    # ── Failures and history ─────────────────────────────

    def record_failure(
        self,
        invoice_id: Any,
        reason: str = "Card declined",
        method: PaymentMethodKind | str = PaymentMethodKind.card,
    ) -> PaymentRead:
        """Log a declined attempt for the remaining balance. The balance is untouched."""
        invoice = self._load(invoice_id)
        remaining = invoice.amount_total - invoice.amount_paid
        if remaining <= 0:
            raise AlreadySettledError("Invoice is already settled")
        method = validate_enum(method, PaymentMethodKind, "method")
        payment = self.ledger.insert(
            "payments",
            {
                "invoice_id": invoice.id,
                "amount": remaining,
                "currency": invoice.currency,
                "method": method,
                "status": PaymentStatus.failed,
                "failure_reason": reason,
                "processed_at": utcnow(),
            },
        )
        SETTLEMENTS.labels(outcome="failed").inc()
        logger.warning(
            "Payment %s failed on invoice %s: %s",
            payment.id,
            invoice.id,
            reason,
            extra={"invoice_id": invoice.id, "payment_id": payment.id},
        )
        return payment

    def list_payments(self, invoice_id: Any) -> list[PaymentRead]:
        invoice = self._load(invoice_id)
        return self.ledger.select_where(
            "payments", order_by="processed_at", descending=True, invoice_id=invoice.id
        )
