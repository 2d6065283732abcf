"""Settlement routes: pay, pay in full, pay a strict partial amount, record a decline."""

from fastapi import APIRouter, Depends, status

from coachbill.api.deps import get_ledger
from coachbill.schemas.billing import (
    PaymentFailureRequest,
    PaymentRead,
    SettleFullRequest,
    SettleRequest,
)
from coachbill.schemas.common import ERROR_RESPONSES
from coachbill.services.billing import SettlementEngine
from coachbill.services.ledger import SqlLedgerStore

router = APIRouter(
    prefix="/invoices/{invoice_id}/payments", tags=["payments"], responses=ERROR_RESPONSES
)


@router.post("", response_model=PaymentRead, status_code=status.HTTP_201_CREATED)
def settle_invoice(
    invoice_id: str, payload: SettleRequest, ledger: SqlLedgerStore = Depends(get_ledger)
):
    return SettlementEngine(ledger).settle(
        invoice_id, payload.amount, payload.method, payload.currency
    )


@router.post("/full", response_model=PaymentRead, status_code=status.HTTP_201_CREATED)
def settle_invoice_in_full(
    invoice_id: str,
    payload: SettleFullRequest | None = None,
    ledger: SqlLedgerStore = Depends(get_ledger),
):
    payload = payload or SettleFullRequest()
    return SettlementEngine(ledger).settle_full(invoice_id, payload.method)


@router.post("/partial", response_model=PaymentRead, status_code=status.HTTP_201_CREATED)
def settle_invoice_partially(
    invoice_id: str, payload: SettleRequest, ledger: SqlLedgerStore = Depends(get_ledger)
):
    return SettlementEngine(ledger).settle_partial(
        invoice_id, payload.amount, payload.method, payload.currency
    )


@router.post("/failures", response_model=PaymentRead, status_code=status.HTTP_201_CREATED)
def record_payment_failure(
    invoice_id: str,
    payload: PaymentFailureRequest,
    ledger: SqlLedgerStore = Depends(get_ledger),
):
    return SettlementEngine(ledger).record_failure(
        invoice_id, payload.reason, payload.method
    )


@router.get("", response_model=list[PaymentRead])
def list_invoice_payments(invoice_id: str, ledger: SqlLedgerStore = Depends(get_ledger)):
    return SettlementEngine(ledger).list_payments(invoice_id)
