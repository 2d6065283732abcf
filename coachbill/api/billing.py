from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from coachbill.api.deps import get_db, get_ledger
from coachbill.schemas.billing import (
    DueReminder,
    FinancialSummary,
    InvoiceCreate,
    InvoiceItemsReplace,
    InvoiceRead,
    MarkPaidRequest,
    PaymentReminderCreate,
    PaymentReminderRead,
    PaymentSettingsRead,
    PaymentSettingsUpsert,
    PricingPlanCreate,
    PricingPlanRead,
    PricingPlanUpdate,
    ReminderClassification,
    SubscriptionCreate,
    SubscriptionRead,
    SubscriptionUpdate,
)
from coachbill.schemas.common import ERROR_RESPONSES, ListResponse
from coachbill.services import billing as billing_service
from coachbill.services.ledger import SqlLedgerStore

router = APIRouter(tags=["billing"], responses=ERROR_RESPONSES)


# ── Pricing Plans ────────────────────────────────────────


@router.post("/plans", response_model=PricingPlanRead, status_code=status.HTTP_201_CREATED)
def create_plan(payload: PricingPlanCreate, db: Session = Depends(get_db)):
    return billing_service.pricing_plans.create(db, payload)


@router.get("/plans/{item_id}", response_model=PricingPlanRead)
def get_plan(item_id: str, db: Session = Depends(get_db)):
    return billing_service.pricing_plans.get(db, item_id)


@router.get("/plans", response_model=ListResponse[PricingPlanRead])
def list_plans(
    coach_id: str | None = None,
    is_active: bool | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return billing_service.pricing_plans.list_response(
        db, coach_id, is_active, order_by, order_dir, limit, offset
    )


@router.patch("/plans/{item_id}", response_model=PricingPlanRead)
def update_plan(item_id: str, payload: PricingPlanUpdate, db: Session = Depends(get_db)):
    return billing_service.pricing_plans.update(db, item_id, payload)


@router.delete("/plans/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_plan(item_id: str, db: Session = Depends(get_db)):
    billing_service.pricing_plans.delete(db, item_id)


# ── Subscriptions ────────────────────────────────────────


@router.post(
    "/subscriptions", response_model=SubscriptionRead, status_code=status.HTTP_201_CREATED
)
def create_subscription(payload: SubscriptionCreate, db: Session = Depends(get_db)):
    return billing_service.subscriptions.create(db, payload)


@router.get("/subscriptions/{item_id}", response_model=SubscriptionRead)
def get_subscription(item_id: str, db: Session = Depends(get_db)):
    return billing_service.subscriptions.get(db, item_id)


@router.get("/subscriptions", response_model=ListResponse[SubscriptionRead])
def list_subscriptions(
    coach_id: str | None = None,
    client_id: str | None = None,
    status: str | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return billing_service.subscriptions.list_response(
        db, coach_id, client_id, status, order_by, order_dir, limit, offset
    )


@router.patch("/subscriptions/{item_id}", response_model=SubscriptionRead)
def update_subscription(
    item_id: str, payload: SubscriptionUpdate, db: Session = Depends(get_db)
):
    return billing_service.subscriptions.update(db, item_id, payload)


@router.post("/subscriptions/{item_id}/pause", response_model=SubscriptionRead)
def pause_subscription(item_id: str, db: Session = Depends(get_db)):
    return billing_service.subscriptions.pause(db, item_id)


@router.post("/subscriptions/{item_id}/resume", response_model=SubscriptionRead)
def resume_subscription(item_id: str, db: Session = Depends(get_db)):
    return billing_service.subscriptions.resume(db, item_id)


@router.post("/subscriptions/{item_id}/cancel", response_model=SubscriptionRead)
def cancel_subscription(item_id: str, db: Session = Depends(get_db)):
    return billing_service.subscriptions.cancel(db, item_id)


# ── Payment Settings ─────────────────────────────────────


@router.get("/coaches/{coach_id}/payment-settings", response_model=PaymentSettingsRead)
def get_payment_settings(coach_id: str, db: Session = Depends(get_db)):
    return billing_service.payment_settings.get(db, coach_id)


@router.put("/coaches/{coach_id}/payment-settings", response_model=PaymentSettingsRead)
def upsert_payment_settings(
    coach_id: str, payload: PaymentSettingsUpsert, db: Session = Depends(get_db)
):
    return billing_service.payment_settings.upsert(db, coach_id, payload)


# ── Invoices ─────────────────────────────────────────────


@router.post("/invoices", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
def create_invoice(payload: InvoiceCreate, ledger: SqlLedgerStore = Depends(get_ledger)):
    return billing_service.InvoiceLifecycle(ledger).create_invoice(
        payload.coach_id,
        payload.client_id,
        payload.items,
        payload.due_date,
        currency=payload.currency,
        subscription_id=payload.subscription_id,
        notes=payload.notes,
    )


@router.get("/invoices/{invoice_id}", response_model=InvoiceRead)
def get_invoice(invoice_id: str, ledger: SqlLedgerStore = Depends(get_ledger)):
    return billing_service.InvoiceLifecycle(ledger).get(invoice_id)


@router.get("/coaches/{coach_id}/invoices", response_model=list[InvoiceRead])
def list_coach_invoices(
    coach_id: str,
    status: str | None = None,
    ledger: SqlLedgerStore = Depends(get_ledger),
):
    return billing_service.InvoiceLifecycle(ledger).list_for_coach(coach_id, status)


@router.get("/clients/{client_id}/invoices", response_model=list[InvoiceRead])
def list_client_invoices(client_id: str, ledger: SqlLedgerStore = Depends(get_ledger)):
    return billing_service.InvoiceLifecycle(ledger).list_for_client(client_id)


@router.put("/invoices/{invoice_id}/items", response_model=InvoiceRead)
def replace_invoice_items(
    invoice_id: str,
    payload: InvoiceItemsReplace,
    ledger: SqlLedgerStore = Depends(get_ledger),
):
    return billing_service.InvoiceLifecycle(ledger).replace_items(invoice_id, payload.items)


@router.post("/invoices/{invoice_id}/send", response_model=InvoiceRead)
def send_invoice(invoice_id: str, ledger: SqlLedgerStore = Depends(get_ledger)):
    return billing_service.InvoiceLifecycle(ledger).mark_sent(invoice_id)


@router.post("/invoices/{invoice_id}/mark-paid", response_model=InvoiceRead)
def mark_invoice_paid(
    invoice_id: str,
    payload: MarkPaidRequest | None = None,
    ledger: SqlLedgerStore = Depends(get_ledger),
):
    paid_at = payload.paid_at if payload else None
    return billing_service.InvoiceLifecycle(ledger).mark_paid(invoice_id, paid_at)


@router.post("/invoices/{invoice_id}/mark-overdue", response_model=InvoiceRead)
def mark_invoice_overdue(invoice_id: str, ledger: SqlLedgerStore = Depends(get_ledger)):
    return billing_service.InvoiceLifecycle(ledger).mark_overdue(invoice_id)


@router.post("/coaches/{coach_id}/invoices/sweep-overdue", response_model=list[InvoiceRead])
def sweep_overdue_invoices(coach_id: str, ledger: SqlLedgerStore = Depends(get_ledger)):
    return billing_service.InvoiceLifecycle(ledger).sweep_overdue(coach_id)


# ── Reminders ────────────────────────────────────────────


@router.get("/invoices/{invoice_id}/reminders", response_model=list[PaymentReminderRead])
def list_invoice_reminders(invoice_id: str, ledger: SqlLedgerStore = Depends(get_ledger)):
    return billing_service.ReminderScheduler(ledger).history(invoice_id)


@router.get(
    "/invoices/{invoice_id}/reminders/classify", response_model=ReminderClassification
)
def classify_invoice_reminder(invoice_id: str, ledger: SqlLedgerStore = Depends(get_ledger)):
    return billing_service.ReminderScheduler(ledger).classify_invoice(invoice_id)


@router.post(
    "/invoices/{invoice_id}/reminders",
    response_model=PaymentReminderRead,
    status_code=status.HTTP_201_CREATED,
)
def record_invoice_reminder(
    invoice_id: str,
    payload: PaymentReminderCreate,
    ledger: SqlLedgerStore = Depends(get_ledger),
):
    return billing_service.ReminderScheduler(ledger).record(
        invoice_id, payload.tier, payload.sent_at
    )


@router.get("/coaches/{coach_id}/reminders/due", response_model=list[DueReminder])
def list_due_reminders(coach_id: str, ledger: SqlLedgerStore = Depends(get_ledger)):
    return billing_service.ReminderScheduler(ledger).due_reminders(coach_id)


# ── Reports ──────────────────────────────────────────────


@router.get("/coaches/{coach_id}/reports/summary", response_model=FinancialSummary)
def financial_summary(
    coach_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    ledger: SqlLedgerStore = Depends(get_ledger),
):
    return billing_service.FinancialAggregator(ledger).summary(coach_id, start, end)


@router.get("/coaches/{coach_id}/reports/stats")
def financial_stats(
    coach_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    ledger: SqlLedgerStore = Depends(get_ledger),
) -> dict:
    return billing_service.FinancialAggregator(ledger).stats(coach_id, start, end)
