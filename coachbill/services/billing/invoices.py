"""Invoice lifecycle: creation, item replacement and status transitions."""

import logging
from collections.abc import Iterable
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel

from coachbill.config import settings
from coachbill.errors import ConflictError, NotFoundError, ValidationError
from coachbill.models.billing import InvoiceStatus
from coachbill.schemas.billing import InvoiceItem, InvoiceRead
from coachbill.services.common import ensure_utc, require_uuid, utcnow, validate_enum
from coachbill.services.ledger import LedgerStore

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[InvoiceStatus, set[InvoiceStatus]] = {
    InvoiceStatus.draft: {InvoiceStatus.sent, InvoiceStatus.paid, InvoiceStatus.overdue},
    InvoiceStatus.sent: {InvoiceStatus.paid, InvoiceStatus.overdue},
    InvoiceStatus.overdue: {InvoiceStatus.paid},
    InvoiceStatus.paid: set(),
}

EDITABLE_STATUSES = {InvoiceStatus.draft, InvoiceStatus.sent}


def _validate_transition(current: InvoiceStatus, target: InvoiceStatus) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise ValidationError(
            f"Cannot transition invoice from '{current.value}' to '{target.value}'"
        )


def build_items(items: Iterable[Any]) -> tuple[list[InvoiceItem], int]:
    """Validate submitted line items and compute each total and the invoice total."""
    built: list[InvoiceItem] = []
    for index, raw in enumerate(items or []):
        data = raw.model_dump() if isinstance(raw, BaseModel) else dict(raw)
        quantity = data.get("quantity")
        unit_price = data.get("unit_price")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(
                "Item quantity must be a whole number of at least 1",
                details={"index": index, "quantity": quantity},
            )
        if isinstance(unit_price, bool) or not isinstance(unit_price, int) or unit_price < 0:
            raise ValidationError(
                "Item unit_price must be a non-negative amount in minor units",
                details={"index": index, "unit_price": unit_price},
            )
        built.append(
            InvoiceItem(
                description=data.get("description") or "",
                quantity=quantity,
                unit_price=unit_price,
                total=quantity * unit_price,
            )
        )
    if not built:
        raise ValidationError("An invoice needs at least one item")
    total = sum(item.total for item in built)
    if total <= 0:
        raise ValidationError("Invoice total must be greater than zero")
    return built, total


def is_overdue(invoice: InvoiceRead, now: datetime | None = None) -> bool:
    """Unpaid and strictly past the due date, compared by calendar date."""
    now = now or utcnow()
    return now.date() > invoice.due_date and invoice.status != InvoiceStatus.paid


class InvoiceLifecycle:
    def __init__(self, ledger: LedgerStore) -> None:
        self.ledger = ledger

    is_overdue = staticmethod(is_overdue)

    def get(self, invoice_id: Any) -> InvoiceRead:
        invoice = self.ledger.select_by_id("invoices", invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found")
        return invoice

    def list_for_coach(
        self, coach_id: Any, status: str | InvoiceStatus | None = None
    ) -> list[InvoiceRead]:
        filters: dict[str, Any] = {"coach_id": require_uuid(coach_id)}
        if status:
            filters["status"] = validate_enum(status, InvoiceStatus, "status")
        return self.ledger.select_where(
            "invoices", order_by="created_at", descending=True, **filters
        )

    def list_for_client(self, client_id: Any) -> list[InvoiceRead]:
        return self.ledger.select_where(
            "invoices",
            order_by="created_at",
            descending=True,
            client_id=require_uuid(client_id),
        )

    # ── Creation ─────────────────────────────────────────

    def create_invoice(
        self,
        coach_id: Any,
        client_id: Any,
        items: Iterable[Any],
        due_date: date,
        currency: str | None = None,
        subscription_id: Any = None,
        notes: str | None = None,
    ) -> InvoiceRead:
        coach_uuid = require_uuid(coach_id)
        client_uuid = require_uuid(client_id)
        built, total = build_items(items)
        currency = (currency or settings.default_currency).upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError(f"Invalid currency code: {currency!r}")
        if isinstance(due_date, datetime):
            due_date = due_date.date()

        if subscription_id is not None:
            subscription = self.ledger.select_by_id("subscriptions", subscription_id)
            if subscription is None:
                raise NotFoundError("Subscription not found")
            if subscription.coach_id != coach_uuid or subscription.client_id != client_uuid:
                raise ValidationError("Subscription belongs to another coach or client")
            subscription_id = subscription.id

        with self.ledger.atomic():
            number = self.ledger.call_procedure("generate_invoice_number", coach_uuid)
            invoice = self.ledger.insert(
                "invoices",
                {
                    "coach_id": coach_uuid,
                    "client_id": client_uuid,
                    "subscription_id": subscription_id,
                    "invoice_number": number,
                    "currency": currency,
                    "amount_total": total,
                    "amount_paid": 0,
                    "status": InvoiceStatus.draft,
                    "due_date": due_date,
                    "notes": notes,
                    "items": [item.model_dump() for item in built],
                },
            )
        logger.info(
            "Created invoice %s (%s) for %d %s",
            invoice.id,
            invoice.invoice_number,
            total,
            currency,
            extra={"invoice_id": invoice.id, "coach_id": coach_uuid},
        )
        return invoice

    def replace_items(self, invoice_id: Any, items: Iterable[Any]) -> InvoiceRead:
        """Swap the line items and recompute the total. Only before any money is collected."""
        invoice = self.get(invoice_id)
        if invoice.status not in EDITABLE_STATUSES:
            raise ValidationError(
                f"Items of a '{invoice.status.value}' invoice cannot be changed"
            )
        if invoice.amount_paid > 0:
            raise ValidationError("Items cannot be changed once a payment was collected")
        built, total = build_items(items)
        updated = self.ledger.compare_and_set(
            "invoices",
            invoice.id,
            {"amount_paid": 0, "status": invoice.status},
            {"items": [item.model_dump() for item in built], "amount_total": total},
        )
        if updated is None:
            raise ConflictError("Invoice changed while its items were being replaced")
        logger.info(
            "Replaced items on invoice %s, new total %d",
            invoice.id,
            total,
            extra={"invoice_id": invoice.id},
        )
        return updated

    # ── Transitions ──────────────────────────────────────

    def mark_sent(self, invoice_id: Any) -> InvoiceRead:
        invoice = self.get(invoice_id)
        _validate_transition(invoice.status, InvoiceStatus.sent)
        updated = self.ledger.update("invoices", invoice.id, {"status": InvoiceStatus.sent})
        logger.info("Invoice %s sent", invoice.id, extra={"invoice_id": invoice.id})
        return updated

    def mark_paid(self, invoice_id: Any, paid_at: datetime | None = None) -> InvoiceRead:
        invoice = self.get(invoice_id)
        if invoice.status == InvoiceStatus.paid:
            return invoice
        _validate_transition(invoice.status, InvoiceStatus.paid)
        # Manual reconciliation closes the balance too.
        updated = self.ledger.update(
            "invoices",
            invoice.id,
            {
                "status": InvoiceStatus.paid,
                "paid_at": ensure_utc(paid_at) if paid_at else utcnow(),
                "amount_paid": invoice.amount_total,
            },
        )
        logger.info("Invoice %s marked paid", invoice.id, extra={"invoice_id": invoice.id})
        return updated

    def mark_overdue(self, invoice_id: Any, now: datetime | None = None) -> InvoiceRead:
        invoice = self.get(invoice_id)
        if invoice.status in (InvoiceStatus.paid, InvoiceStatus.overdue):
            return invoice
        if not is_overdue(invoice, now):
            raise ValidationError(
                "Invoice is not past due",
                details={"due_date": invoice.due_date.isoformat()},
            )
        updated = self.ledger.compare_and_set(
            "invoices",
            invoice.id,
            {"status": invoice.status},
            {"status": InvoiceStatus.overdue},
        )
        if updated is None:
            raise ConflictError("Invoice changed while being marked overdue")
        logger.info("Invoice %s marked overdue", invoice.id, extra={"invoice_id": invoice.id})
        return updated

    def sweep_overdue(self, coach_id: Any, now: datetime | None = None) -> list[InvoiceRead]:
        """Mark every sent, past-due invoice of the coach overdue."""
        now = now or utcnow()
        marked: list[InvoiceRead] = []
        for invoice in self.ledger.select_where(
            "invoices", coach_id=require_uuid(coach_id), status=InvoiceStatus.sent
        ):
            if is_overdue(invoice, now):
                marked.append(self.mark_overdue(invoice.id, now))
        if marked:
            logger.info(
                "Overdue sweep flagged %d invoices", len(marked), extra={"coach_id": coach_id}
            )
        return marked
