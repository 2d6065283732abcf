"""Ledger store: the persistence boundary of the billing core.

Every billing component receives a :class:`LedgerStore` in its constructor
instead of reaching for a session on its own. Records crossing the boundary
are frozen pydantic values (``*Read`` schemas), never live ORM objects, so a
value read before a concurrent write stays exactly what was read.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Protocol

from pydantic import BaseModel
from sqlalchemy import and_, case, func, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coachbill.config import settings
from coachbill.db import Base
from coachbill.errors import ConflictError, NotFoundError, ValidationError
from coachbill.models.billing import (
    Invoice,
    InvoiceCounter,
    InvoiceStatus,
    Payment,
    PaymentReminder,
    PaymentSettings,
    PaymentStatus,
    PricingPlan,
    Subscription,
    SubscriptionStatus,
)
from coachbill.schemas.billing import (
    InvoiceRead,
    PaymentReminderRead,
    PaymentRead,
    PaymentSettingsRead,
    PricingPlanRead,
    SubscriptionRead,
)
from coachbill.services.common import require_uuid

logger = logging.getLogger(__name__)

TABLES: dict[str, tuple[type[Base], type[BaseModel], str]] = {
    "pricing_plans": (PricingPlan, PricingPlanRead, "Pricing plan"),
    "subscriptions": (Subscription, SubscriptionRead, "Subscription"),
    "invoices": (Invoice, InvoiceRead, "Invoice"),
    "payments": (Payment, PaymentRead, "Payment"),
    "payment_reminders": (PaymentReminder, PaymentReminderRead, "Payment reminder"),
    "payment_settings": (PaymentSettings, PaymentSettingsRead, "Payment settings"),
}

# Dialects that take INSERT ... ON CONFLICT DO UPDATE for the invoice counter.
_UPSERT_INSERTS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


class LedgerStore(Protocol):
    def insert(self, table: str, row: dict[str, Any]) -> Any: ...

    def update(self, table: str, item_id: Any, patch: dict[str, Any]) -> Any: ...

    def select_by_id(self, table: str, item_id: Any) -> Any | None: ...

    def select_where(
        self,
        table: str,
        order_by: str | None = None,
        descending: bool = False,
        **filters: Any,
    ) -> list[Any]: ...

    def compare_and_set(
        self,
        table: str,
        item_id: Any,
        expected: dict[str, Any],
        patch: dict[str, Any],
    ) -> Any | None: ...

    def call_procedure(self, name: str, *args: Any, **kwargs: Any) -> Any: ...

    def atomic(self) -> Any: ...


def _table(table: str) -> tuple[type[Base], type[BaseModel], str]:
    try:
        return TABLES[table]
    except KeyError:
        raise ValidationError(f"Unknown ledger table: {table}") from None


class SqlLedgerStore:
    """SQLAlchemy-backed ledger.

    Writes outside an :meth:`atomic` block commit immediately; writes inside
    one are flushed and committed together when the outermost block exits.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self._depth = 0
        self._procedures = {
            "generate_invoice_number": self._generate_invoice_number,
            "get_coach_financial_stats": self._coach_financial_stats,
        }

    # ── Transactions ─────────────────────────────────────

    @contextmanager
    def atomic(self) -> Iterator[SqlLedgerStore]:
        self._depth += 1
        try:
            yield self
        except Exception:
            self._depth -= 1
            if self._depth == 0:
                self.db.rollback()
            raise
        self._depth -= 1
        if self._depth == 0:
            try:
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

    def _commit_unless_atomic(self) -> None:
        if self._depth == 0:
            self.db.commit()

    def _flush(self, label: str) -> None:
        try:
            self.db.flush()
        except IntegrityError as exc:
            if self._depth == 0:
                self.db.rollback()
            logger.warning("Integrity violation writing %s: %s", label, exc.orig)
            raise ConflictError(f"{label} conflicts with existing ledger state") from exc

    # ── Row operations ───────────────────────────────────

    def insert(self, table: str, row: dict[str, Any]) -> Any:
        model, read, label = _table(table)
        item = model(**row)
        self.db.add(item)
        self._flush(label)
        item_id = item.id
        self._commit_unless_atomic()
        return self.select_by_id(table, item_id)

    def update(self, table: str, item_id: Any, patch: dict[str, Any]) -> Any:
        model, read, label = _table(table)
        item = self.db.get(model, require_uuid(item_id), populate_existing=True)
        if not item:
            raise NotFoundError(f"{label} not found")
        for key, value in patch.items():
            setattr(item, key, value)
        self._flush(label)
        self._commit_unless_atomic()
        return self.select_by_id(table, item_id)

    def select_by_id(self, table: str, item_id: Any) -> Any | None:
        model, read, _ = _table(table)
        item = self.db.get(model, require_uuid(item_id), populate_existing=True)
        if item is None:
            return None
        return read.model_validate(item)

    def select_where(
        self,
        table: str,
        order_by: str | None = None,
        descending: bool = False,
        **filters: Any,
    ) -> list[Any]:
        model, read, _ = _table(table)
        stmt = select(model)
        for key, value in filters.items():
            column = getattr(model, key)
            if isinstance(value, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_(list(value)))
            else:
                stmt = stmt.where(column == value)
        if order_by:
            column = getattr(model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        rows = self.db.scalars(stmt.execution_options(populate_existing=True)).all()
        return [read.model_validate(row) for row in rows]

    def compare_and_set(
        self,
        table: str,
        item_id: Any,
        expected: dict[str, Any],
        patch: dict[str, Any],
    ) -> Any | None:
        """Apply ``patch`` only if every ``expected`` column still holds its value.

        Returns the updated record, or None when another writer got there first.
        """
        model, _, label = _table(table)
        item_uuid = require_uuid(item_id)
        guards = [getattr(model, key) == value for key, value in expected.items()]
        stmt = (
            update(model)
            .where(model.id == item_uuid, *guards)
            .values(**patch)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except IntegrityError as exc:
            if self._depth == 0:
                self.db.rollback()
            raise ConflictError(f"{label} conflicts with existing ledger state") from exc
        if result.rowcount != 1:
            return None
        self._commit_unless_atomic()
        return self.select_by_id(table, item_uuid)

    # ── Server-side procedures ───────────────────────────

    def call_procedure(self, name: str, *args: Any, **kwargs: Any) -> Any:
        procedure = self._procedures.get(name)
        if procedure is None:
            raise NotFoundError(f"Unknown procedure: {name}")
        return procedure(*args, **kwargs)

    def _generate_invoice_number(
        self, coach_id: Any, issued_at: datetime | None = None
    ) -> str:
        coach_uuid = require_uuid(coach_id)
        sequence = self._next_counter_value(coach_uuid)
        self._commit_unless_atomic()
        year = (issued_at or datetime.now(UTC)).year
        return f"{settings.invoice_number_prefix}-{year}-{sequence:05d}"

    def _next_counter_value(self, coach_uuid: uuid.UUID) -> int:
        """Bump the coach's counter in one statement, creating it on first use.

        The upsert holds the row lock for the rest of the transaction, so
        concurrent first invoices for a coach queue instead of colliding.
        """
        dialect_insert = _UPSERT_INSERTS.get(self.db.get_bind().dialect.name)
        if dialect_insert is not None:
            stmt = (
                dialect_insert(InvoiceCounter)
                .values(coach_id=coach_uuid, last_value=1)
                .on_conflict_do_update(
                    index_elements=[InvoiceCounter.coach_id],
                    set_={"last_value": InvoiceCounter.last_value + 1},
                )
                .returning(InvoiceCounter.last_value)
            )
            return self.db.execute(stmt).scalar_one()

        bumped = self.db.execute(
            update(InvoiceCounter)
            .where(InvoiceCounter.coach_id == coach_uuid)
            .values(last_value=InvoiceCounter.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount == 0:
            self.db.add(InvoiceCounter(coach_id=coach_uuid, last_value=1))
            self._flush("Invoice counter")
        return self.db.scalar(
            select(InvoiceCounter.last_value).where(InvoiceCounter.coach_id == coach_uuid)
        )

    def _coach_financial_stats(
        self,
        coach_id: Any,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Any]:
        coach_uuid = require_uuid(coach_id)
        conditions = [Invoice.coach_id == coach_uuid]
        if start is not None:
            conditions.append(Invoice.created_at >= start)
        if end is not None:
            conditions.append(Invoice.created_at <= end)

        balance = Invoice.amount_total - Invoice.amount_paid
        # Same rule as is_overdue(): issued, unpaid and due before today.
        past_due = and_(
            Invoice.status.in_([InvoiceStatus.sent, InvoiceStatus.overdue]),
            Invoice.due_date < datetime.now(UTC).date(),
        )
        row = self.db.execute(
            select(
                func.count(Invoice.id),
                func.coalesce(func.sum(Invoice.amount_total), 0),
                func.coalesce(func.sum(Invoice.amount_paid), 0),
                func.coalesce(
                    func.sum(
                        case(
                            (
                                Invoice.status.in_(
                                    [InvoiceStatus.sent, InvoiceStatus.overdue]
                                ),
                                balance,
                            ),
                            else_=0,
                        )
                    ),
                    0,
                ),
                func.coalesce(
                    func.sum(
                        case((past_due, balance), else_=0)
                    ),
                    0,
                ),
                func.coalesce(
                    func.sum(case((Invoice.status == InvoiceStatus.paid, 1), else_=0)),
                    0,
                ),
                func.coalesce(
                    func.sum(case((Invoice.status != InvoiceStatus.draft, 1), else_=0)),
                    0,
                ),
            ).where(*conditions)
        ).one()
        (
            invoice_count,
            total_invoiced,
            total_collected,
            pending_amount,
            overdue_amount,
            paid_count,
            issued_count,
        ) = row

        now = datetime.now(UTC)
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        monthly_revenue = self.db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0))
            .join(Invoice, Payment.invoice_id == Invoice.id)
            .where(
                Invoice.coach_id == coach_uuid,
                Payment.status == PaymentStatus.succeeded,
                Payment.processed_at >= month_start,
            )
        )
        active_subscriptions = self.db.scalar(
            select(func.count(Subscription.id)).where(
                Subscription.coach_id == coach_uuid,
                Subscription.status == SubscriptionStatus.active,
            )
        )
        payment_rate = round(paid_count * 100.0 / issued_count, 2) if issued_count else 0.0
        return {
            "coach_id": str(coach_uuid),
            "invoice_count": invoice_count,
            "total_invoiced": int(total_invoiced),
            "total_collected": int(total_collected),
            "pending_amount": int(pending_amount),
            "overdue_amount": int(overdue_amount),
            "monthly_revenue": int(monthly_revenue or 0),
            "payment_rate": payment_rate,
            "active_subscriptions": active_subscriptions or 0,
        }
