"""Tests for the access log and request metrics."""
from __future__ import annotations

import logging
import uuid

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from coachbill.observability import ObservabilityMiddleware


@pytest.fixture
def client() -> TestClient:
    app = FastAPI()
    app.add_middleware(ObservabilityMiddleware)

    @app.get("/coaches/{coach_id}/invoices/{invoice_id}")
    def show(coach_id: str, invoice_id: str):
        return {"ok": True}

    @app.get("/ping")
    def ping():
        return {"ok": True}

    return TestClient(app)


def _completed(caplog) -> logging.LogRecord:
    records = [r for r in caplog.records if r.getMessage() == "request_completed"]
    assert records
    return records[-1]


def test_access_log_carries_billing_ids(client, caplog):
    coach_id, invoice_id = uuid.uuid4(), uuid.uuid4()
    with caplog.at_level(logging.INFO, logger="coachbill.observability"):
        resp = client.get(
            f"/coaches/{coach_id}/invoices/{invoice_id}",
            headers={"X-Request-Id": "req-1"},
        )
    assert resp.status_code == 200
    record = _completed(caplog)
    assert record.coach_id == str(coach_id)
    assert record.invoice_id == str(invoice_id)
    assert record.request_id == "req-1"
    assert record.path == "/coaches/{coach_id}/invoices/{invoice_id}"


def test_access_log_without_billing_ids(client, caplog):
    with caplog.at_level(logging.INFO, logger="coachbill.observability"):
        client.get("/ping")
    assert not hasattr(_completed(caplog), "invoice_id")


def test_metrics_use_route_template(client):
    labels = {
        "method": "GET",
        "path": "/coaches/{coach_id}/invoices/{invoice_id}",
        "status": "200",
    }
    before = REGISTRY.get_sample_value("http_requests_total", labels) or 0.0
    client.get(f"/coaches/{uuid.uuid4()}/invoices/{uuid.uuid4()}")
    client.get(f"/coaches/{uuid.uuid4()}/invoices/{uuid.uuid4()}")
    assert REGISTRY.get_sample_value("http_requests_total", labels) == before + 2
