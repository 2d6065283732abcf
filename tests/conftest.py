import os
import uuid
from datetime import UTC, date, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

# Must be set before coachbill.db builds its engine.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"

from coachbill.db import Base, engine as _engine  # noqa: E402
from coachbill.models import InvoiceStatus  # noqa: E402
from coachbill.schemas.billing import (  # noqa: E402
    InvoiceItem,
    InvoiceRead,
    PricingPlanCreate,
    SubscriptionCreate,
)
from coachbill.services import billing as billing_service  # noqa: E402
from coachbill.services.ledger import SqlLedgerStore  # noqa: E402


@pytest.fixture(scope="session")
def engine():
    return _engine


@pytest.fixture(autouse=True)
def _schema(engine):
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture()
def db_session(engine):
    """Session on the shared in-memory StaticPool connection."""
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = Session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def ledger(db_session):
    return SqlLedgerStore(db_session)


@pytest.fixture()
def coach_id():
    return uuid.uuid4()


@pytest.fixture()
def client_id():
    return uuid.uuid4()


@pytest.fixture()
def today():
    return datetime.now(UTC).date()


@pytest.fixture()
def plan(db_session, coach_id):
    return billing_service.pricing_plans.create(
        db_session,
        PricingPlanCreate(
            coach_id=coach_id,
            name="Monthly coaching",
            price=12000,
            currency="eur",
            billing_interval="monthly",
            session_count=4,
            features=["Weekly check-in", "Training plan"],
        ),
    )


@pytest.fixture()
def subscription(db_session, plan, coach_id, client_id):
    return billing_service.subscriptions.create(
        db_session,
        SubscriptionCreate(client_id=client_id, coach_id=coach_id, pricing_plan_id=plan.id),
    )


@pytest.fixture()
def lifecycle(ledger):
    return billing_service.InvoiceLifecycle(ledger)


@pytest.fixture()
def settlement(ledger):
    return billing_service.SettlementEngine(ledger)


@pytest.fixture()
def invoice(lifecycle, coach_id, client_id, today):
    """A sent invoice of 100.00 EUR due in a week."""
    created = lifecycle.create_invoice(
        coach_id,
        client_id,
        [{"description": "Coaching session", "quantity": 1, "unit_price": 10000}],
        today + timedelta(days=7),
        "EUR",
    )
    return lifecycle.mark_sent(created.id)


@pytest.fixture()
def make_invoice_value():
    """Build detached InvoiceRead values for the pure functions."""

    def _make(
        amount_total: int = 10000,
        amount_paid: int = 0,
        status: InvoiceStatus = InvoiceStatus.sent,
        due_date: date = date(2026, 1, 10),
        client_id: uuid.UUID | None = None,
        subscription_id: uuid.UUID | None = None,
        paid_at: datetime | None = None,
        created_at: datetime | None = None,
        notes: str | None = None,
    ) -> InvoiceRead:
        created = created_at or datetime(2026, 1, 1, tzinfo=UTC)
        return InvoiceRead(
            id=uuid.uuid4(),
            coach_id=uuid.uuid4(),
            client_id=client_id or uuid.uuid4(),
            subscription_id=subscription_id,
            invoice_number="INV-2026-00001",
            currency="EUR",
            amount_total=amount_total,
            amount_paid=amount_paid,
            status=status,
            due_date=due_date,
            paid_at=paid_at,
            notes=notes,
            items=[
                InvoiceItem(
                    description="Session",
                    quantity=1,
                    unit_price=amount_total,
                    total=amount_total,
                )
            ],
            created_at=created,
            updated_at=created,
        )

    return _make


# ============ FastAPI Test Client Fixtures ============


@pytest.fixture()
def client(db_session):
    """Create a test client with database dependency override."""
    from coachbill.api.deps import get_db
    from coachbill.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    app.dependency_overrides.clear()
