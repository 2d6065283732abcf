"""Read-only financial rollups over a coach's invoices and payments.

The module-level folds are pure: any iterable of ``InvoiceRead`` or
``PaymentRead`` values in, plain values out. Empty input yields zero or an
empty collection.
"""

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any
from uuid import UUID

from coachbill.config import settings
from coachbill.models.billing import InvoiceStatus, PaymentStatus
from coachbill.schemas.billing import (
    ClientRevenue,
    FinancialSummary,
    InvoiceRead,
    MonthlyRevenue,
    PaymentRead,
)
from coachbill.services.billing.invoices import is_overdue
from coachbill.services.common import ensure_utc, require_uuid, utcnow
from coachbill.services.ledger import LedgerStore

logger = logging.getLogger(__name__)


def monthly_revenue(payments: Iterable[PaymentRead]) -> list[MonthlyRevenue]:
    totals: dict[str, int] = defaultdict(int)
    for payment in payments:
        if payment.status != PaymentStatus.succeeded:
            continue
        totals[ensure_utc(payment.processed_at).strftime("%Y-%m")] += payment.amount
    return [MonthlyRevenue(month=month, amount=totals[month]) for month in sorted(totals)]


def recurring_revenue(invoices: Iterable[InvoiceRead]) -> int:
    return sum(invoice.amount_paid for invoice in invoices if invoice.subscription_id)


def payment_rate(invoices: Iterable[InvoiceRead]) -> float:
    """Share of issued invoices paid on or before their due date. Drafts are not issued."""
    issued = 0
    on_time = 0
    for invoice in invoices:
        if invoice.status == InvoiceStatus.draft:
            continue
        issued += 1
        if (
            invoice.status == InvoiceStatus.paid
            and invoice.paid_at is not None
            and ensure_utc(invoice.paid_at).date() <= invoice.due_date
        ):
            on_time += 1
    if not issued:
        return 0.0
    return on_time / issued


def _overdue(invoices: Iterable[InvoiceRead], now: datetime | None) -> list[InvoiceRead]:
    now = now or utcnow()
    return [
        invoice
        for invoice in invoices
        if invoice.status != InvoiceStatus.draft and is_overdue(invoice, now)
    ]


def overdue_amount(invoices: Iterable[InvoiceRead], now: datetime | None = None) -> int:
    return sum(invoice.amount_total - invoice.amount_paid for invoice in _overdue(invoices, now))


def overdue_count(invoices: Iterable[InvoiceRead], now: datetime | None = None) -> int:
    return len(_overdue(invoices, now))


def top_clients(invoices: Iterable[InvoiceRead], limit: int = 5) -> list[ClientRevenue]:
    """Clients ranked by collected revenue, ties broken by client id."""
    revenue: dict[UUID, int] = defaultdict(int)
    counts: dict[UUID, int] = defaultdict(int)
    for invoice in invoices:
        revenue[invoice.client_id] += invoice.amount_paid
        counts[invoice.client_id] += 1
    ranked = sorted(revenue, key=lambda client_id: (-revenue[client_id], str(client_id)))
    return [
        ClientRevenue(
            client_id=client_id,
            revenue=revenue[client_id],
            invoice_count=counts[client_id],
        )
        for client_id in ranked[: max(limit, 0)]
    ]


def service_breakdown(
    invoices: Iterable[InvoiceRead], key: Callable[[InvoiceRead], str]
) -> dict[str, int]:
    breakdown: dict[str, int] = defaultdict(int)
    for invoice in invoices:
        breakdown[key(invoice)] += invoice.amount_paid
    return dict(breakdown)


def _in_range(value: datetime, start: datetime | None, end: datetime | None) -> bool:
    value = ensure_utc(value)
    if start is not None and value < ensure_utc(start):
        return False
    if end is not None and value > ensure_utc(end):
        return False
    return True


class FinancialAggregator:
    def __init__(self, ledger: LedgerStore) -> None:
        self.ledger = ledger

    def summary(
        self,
        coach_id: Any,
        start: datetime | None = None,
        end: datetime | None = None,
        now: datetime | None = None,
    ) -> FinancialSummary:
        coach_uuid = require_uuid(coach_id)
        coach_invoices = self.ledger.select_where("invoices", coach_id=coach_uuid)
        invoices = [
            invoice
            for invoice in coach_invoices
            if _in_range(invoice.created_at, start, end)
        ]
        # Cash collected in the window counts whenever its invoice was issued.
        payments: list[PaymentRead] = []
        if coach_invoices:
            payments = [
                payment
                for payment in self.ledger.select_where(
                    "payments",
                    invoice_id=[invoice.id for invoice in coach_invoices],
                    status=PaymentStatus.succeeded,
                )
                if _in_range(payment.processed_at, start, end)
            ]
        summary = FinancialSummary(
            coach_id=coach_uuid,
            invoice_count=len(invoices),
            total_invoiced=sum(invoice.amount_total for invoice in invoices),
            total_collected=sum(invoice.amount_paid for invoice in invoices),
            monthly_revenue=monthly_revenue(payments),
            recurring_revenue=recurring_revenue(invoices),
            payment_rate=payment_rate(invoices),
            overdue_amount=overdue_amount(invoices, now),
            overdue_count=overdue_count(invoices, now),
            top_clients=top_clients(invoices, settings.top_clients_limit),
        )
        logger.info(
            "Built financial summary over %d invoices",
            summary.invoice_count,
            extra={"coach_id": coach_uuid},
        )
        return summary

    def stats(
        self,
        coach_id: Any,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict:
        return self.ledger.call_procedure(
            "get_coach_financial_stats", coach_id, start=start, end=end
        )
