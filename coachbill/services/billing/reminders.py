"""Reminder tier classification and the reminder log."""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from coachbill.config import settings
from coachbill.errors import ConflictError, NotFoundError
from coachbill.models.billing import REMINDER_TIERS, InvoiceStatus, ReminderTier
from coachbill.schemas.billing import (
    DueReminder,
    InvoiceRead,
    PaymentReminderRead,
    ReminderClassification,
    ReminderRunResult,
    ReminderSchedule,
)
from coachbill.services.common import ensure_utc, require_uuid, utcnow, validate_enum
from coachbill.services.ledger import LedgerStore

logger = logging.getLogger(__name__)

# Only invoices the client has actually received get reminders.
REMINDABLE_STATUSES = [InvoiceStatus.sent, InvoiceStatus.overdue]

Notifier = Callable[[InvoiceRead, ReminderTier], None]


def default_schedule() -> ReminderSchedule | None:
    """Schedule built from configuration, or None when the offsets are invalid."""
    try:
        return ReminderSchedule(
            first_reminder_days=settings.first_reminder_days,
            second_reminder_days=settings.second_reminder_days,
            final_reminder_days=settings.final_reminder_days,
            overdue_suspension_days=settings.overdue_suspension_days,
        )
    except PydanticValidationError:
        logger.warning("Configured reminder offsets are invalid, no default schedule")
        return None


def days_past_due(invoice: InvoiceRead, now: datetime) -> int:
    return (now.date() - invoice.due_date).days


def classify(
    invoice: InvoiceRead,
    schedule: ReminderSchedule,
    now: datetime | None = None,
    sent_tiers: Iterable[ReminderTier | str] = (),
) -> ReminderTier | None:
    """Return the highest crossed tier above every tier already logged.

    None when the invoice is paid, not yet due, or nothing new is due.
    """
    if invoice.status == InvoiceStatus.paid or invoice.amount_paid >= invoice.amount_total:
        return None
    days = days_past_due(invoice, now or utcnow())
    if days < 0:
        return None
    crossed = [tier for tier in REMINDER_TIERS if days >= schedule.threshold(tier)]
    if not crossed:
        return None
    logged = {validate_enum(tier, ReminderTier, "tier") for tier in sent_tiers}
    highest_logged = max((REMINDER_TIERS.index(tier) for tier in logged), default=-1)
    candidate = crossed[-1]
    if REMINDER_TIERS.index(candidate) <= highest_logged:
        return None
    return candidate


class ReminderScheduler:
    def __init__(self, ledger: LedgerStore) -> None:
        self.ledger = ledger

    def schedule_for(self, coach_id: Any) -> ReminderSchedule | None:
        found = self.ledger.select_where("payment_settings", coach_id=require_uuid(coach_id))
        if found:
            return found[0].reminder_schedule
        return default_schedule()

    def history(self, invoice_id: Any) -> list[PaymentReminderRead]:
        return self.ledger.select_where(
            "payment_reminders", order_by="sent_at", invoice_id=require_uuid(invoice_id)
        )

    def _invoice(self, invoice_id: Any) -> InvoiceRead:
        invoice = self.ledger.select_by_id("invoices", invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found")
        return invoice

    def classify_invoice(
        self, invoice_id: Any, now: datetime | None = None
    ) -> ReminderClassification:
        invoice = self._invoice(invoice_id)
        now = now or utcnow()
        schedule = self.schedule_for(invoice.coach_id)
        tier = None
        if schedule is not None:
            sent = [reminder.tier for reminder in self.history(invoice.id)]
            tier = classify(invoice, schedule, now, sent)
        return ReminderClassification(
            invoice_id=invoice.id, tier=tier, days_past_due=days_past_due(invoice, now)
        )

    def record(
        self,
        invoice_id: Any,
        tier: ReminderTier | str,
        sent_at: datetime | None = None,
    ) -> PaymentReminderRead:
        invoice = self._invoice(invoice_id)
        tier = validate_enum(tier, ReminderTier, "tier")
        if any(reminder.tier == tier for reminder in self.history(invoice.id)):
            raise ConflictError(
                f"Reminder '{tier.value}' was already recorded for this invoice",
                details={"invoice_id": str(invoice.id), "tier": tier.value},
            )
        reminder = self.ledger.insert(
            "payment_reminders",
            {
                "invoice_id": invoice.id,
                "tier": tier,
                "sent_at": ensure_utc(sent_at) if sent_at else utcnow(),
            },
        )
        logger.info(
            "Recorded %s reminder for invoice %s",
            tier.value,
            invoice.id,
            extra={"invoice_id": invoice.id},
        )
        return reminder

    def due_reminders(self, coach_id: Any, now: datetime | None = None) -> list[DueReminder]:
        now = now or utcnow()
        schedule = self.schedule_for(coach_id)
        if schedule is None:
            return []
        due: list[DueReminder] = []
        for invoice in self.ledger.select_where(
            "invoices",
            order_by="due_date",
            coach_id=require_uuid(coach_id),
            status=REMINDABLE_STATUSES,
        ):
            sent = [reminder.tier for reminder in self.history(invoice.id)]
            tier = classify(invoice, schedule, now, sent)
            if tier is not None:
                due.append(DueReminder(invoice=invoice, tier=tier))
        return due

    def send_due_reminders(
        self, coach_id: Any, notify: Notifier, now: datetime | None = None
    ) -> ReminderRunResult:
        """Notify each client with a reminder due, then log the tier.

        A notifier failure is counted and leaves the log untouched, so the
        same tier is picked up again on the next run.
        """
        now = now or utcnow()
        result = ReminderRunResult()
        open_invoices = self.ledger.select_where(
            "invoices", coach_id=require_uuid(coach_id), status=REMINDABLE_STATUSES
        )
        due = self.due_reminders(coach_id, now)
        result.skipped = len(open_invoices) - len(due)
        for entry in due:
            try:
                notify(entry.invoice, entry.tier)
            except Exception:
                logger.exception(
                    "Reminder notification failed for invoice %s",
                    entry.invoice.id,
                    extra={"invoice_id": entry.invoice.id},
                )
                result.failed += 1
                continue
            try:
                self.record(entry.invoice.id, entry.tier, sent_at=now)
            except ConflictError:
                result.skipped += 1
                continue
            result.sent += 1
        logger.info(
            "Reminder run: %d sent, %d failed, %d skipped",
            result.sent,
            result.failed,
            result.skipped,
            extra={"coach_id": coach_id},
        )
        return result
