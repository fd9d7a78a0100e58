"""Redaction tests: customer PII never reaches the logs.

Drives the checkout and job paths with real customer data and inspects the
formatted JSON of every record emitted by the rentally loggers.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from helpers import make_resource

from rentally.api.deps import lock_dep, settings_dep, stores_dep, stripe_client_dep
from rentally.api.factory import create_app
from rentally.domain.jobs import process_work_items
from rentally.domain.job_handlers import ReservationJobExecutor
from rentally.domain.models import NewWorkItem, ReservationStatus, WorkItemType
from rentally.infra.locks import InProcessLock
from rentally.observability.events import LoggingObserver
from rentally.observability.logging import JsonFormatter

EMAIL = "joana.silva@example.com"
PHONE = "+351 912 345 678"
TAX_ID = "501234567"

PII = [EMAIL, "912 345 678", TAX_ID]


class _CaptureHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.setFormatter(JsonFormatter())
        self.lines: list[str] = []

    def emit(self, record):
        self.lines.append(self.format(record))


@pytest.fixture
def captured():
    handler = _CaptureHandler()
    names = [
        "rentally.api.routes.checkout",
        "rentally.test.jobs",
        "rentally.stripe.client",
    ]
    loggers = [logging.getLogger(name) for name in names]
    for logger in loggers:
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG)
    yield handler.lines
    for logger in loggers:
        logger.removeHandler(handler)


def _assert_no_pii(lines):
    assert lines, "expected at least one log line"
    for line in lines:
        for value in PII:
            assert value not in line


def test_checkout_logs_contain_no_pii(db, settings, captured):
    stripe_client = MagicMock()
    stripe_client.create_checkout_session.return_value = {"url": "https://pay.example.com/x"}

    app = create_app(role="public")
    app.dependency_overrides[stores_dep] = db.stores
    app.dependency_overrides[lock_dep] = lambda: InProcessLock()
    app.dependency_overrides[settings_dep] = lambda: settings
    app.dependency_overrides[stripe_client_dep] = lambda: stripe_client
    client = TestClient(app)

    body = {
        "resource_id": 1,
        "start_date": "2030-05-10",
        "end_date": "2030-05-12",
        "customer": {"name": "Joana Silva", "email": EMAIL, "phone": PHONE, "tax_id": TAX_ID},
        "billing": {"is_business": True, "company_name": "Obras Lda", "tax_id": TAX_ID},
    }
    with patch(
        "rentally.api.routes.checkout._load_resources", return_value=(make_resource(), {})
    ), patch("rentally.api.routes.checkout._company_discount", return_value=Decimal("5")):
        response = client.post("/checkout", json=body)

    assert response.status_code == 200
    _assert_no_pii(captured)


def test_job_failure_logs_contain_no_pii(db, settings, invoicing, mailer, captured):
    reservation_id = db.reservations.seed(
        status=ReservationStatus.CONFIRMED,
        email=EMAIL,
        customer_phone=PHONE,
        customer_tax_id=TAX_ID,
    )
    db.work_items.create(
        NewWorkItem(reservation_id, WorkItemType.SEND_CUSTOMER_NOTIFICATION), max_attempts=3
    )
    mailer.fail_times = 1

    process_work_items(
        stores=db.stores(),
        executor=ReservationJobExecutor(
            reservations=db.reservations, invoicing=invoicing, mailer=mailer, settings=settings
        ),
        observe=LoggingObserver(logging.getLogger("rentally.test.jobs")),
    )

    _assert_no_pii(captured)
