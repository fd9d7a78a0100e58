"""End-to-end checks against PostgreSQL (requires a migrated DATABASE_URL).

Run ``alembic upgrade head`` first. Each test works on its own freshly
inserted resource so runs do not interfere.
"""

from __future__ import annotations

import os
import threading
import uuid
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import pytest
from helpers import make_request

from rentally.domain.models import (
    MoneySnapshot,
    ReservationSource,
    ReservationStatus,
    WorkItemStatus,
)
from rentally.domain.payments import (
    PaymentNotification,
    PaymentOutcome,
    ReconcileStatus,
    reconcile_payment,
)
from rentally.domain.reservations import (
    Admitted,
    RejectionKind,
    admit_reservation,
    create_operator_booking,
)
from rentally.infra.db import txn
from rentally.infra.locks import PgAdvisoryLock
from rentally.infra.settings import Settings
from rentally.infra.stores import pg_stores

pytestmark = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL"),
    reason="DATABASE_URL not set - skipping DB integration tests",
)

NOW = datetime(2026, 11, 2, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def resource_id():
    code = f"TEST-{uuid.uuid4().hex[:12]}"
    with txn() as cur:
        cur.execute(
            """
            INSERT INTO resources (code, name, unit_price_cents)
            VALUES (%s, 'Integration excavator', 8500)
            RETURNING id
            """,
            (code,),
        )
        rid = cur.fetchone()[0]
    yield rid
    with txn() as cur:
        cur.execute(
            "DELETE FROM work_items WHERE reservation_id IN "
            "(SELECT id FROM reservations WHERE resource_id = %s)",
            (rid,),
        )
        cur.execute(
            "DELETE FROM payment_events WHERE reservation_id IN "
            "(SELECT id FROM reservations WHERE resource_id = %s)",
            (rid,),
        )
        cur.execute("DELETE FROM reservations WHERE resource_id = %s", (rid,))
        cur.execute("DELETE FROM resources WHERE id = %s", (rid,))


def _admit(resource_id, email, settings):
    request = make_request(resource_id=resource_id, email=email)
    return admit_reservation(
        request,
        store=pg_stores().reservations,
        lock=PgAdvisoryLock(settings),
        settings=settings,
        now=NOW,
    )


def test_concurrent_customers_get_one_hold(resource_id):
    settings = Settings()
    barrier = threading.Barrier(8)
    results = []
    results_lock = threading.Lock()

    def attempt(i):
        barrier.wait()
        result = _admit(resource_id, f"customer{i}@example.com", settings)
        with results_lock:
            results.append(result)

    threads = [threading.Thread(target=attempt, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    admitted = [r for r in results if isinstance(r, Admitted)]
    assert len(admitted) == 1
    assert all(r.kind == RejectionKind.OVERLAP for r in results if r not in admitted)

    with txn() as cur:
        cur.execute(
            "SELECT count(*) FROM reservations WHERE resource_id = %s AND status = 'PENDING'",
            (resource_id,),
        )
        assert cur.fetchone()[0] == 1


def test_same_customer_resubmit_reuses_hold(resource_id):
    settings = Settings()
    first = _admit(resource_id, "ana@example.com", settings)
    second = _admit(resource_id, "ANA@example.com", settings)

    assert first.reservation_id == second.reservation_id
    assert second.created is False


def test_payment_reconciled_once(resource_id):
    settings = Settings()
    admitted = _admit(resource_id, "ana@example.com", settings)
    event_id = f"evt_{uuid.uuid4().hex}"
    notification = PaymentNotification(
        external_event_id=event_id,
        reservation_id=admitted.reservation_id,
        outcome=PaymentOutcome.SUCCEEDED,
        external_payment_id="pi_integration",
        event_type="checkout.session.completed",
    )

    first = reconcile_payment(notification, stores=pg_stores(), settings=settings)
    second = reconcile_payment(notification, stores=pg_stores(), settings=settings)

    assert first.status == ReconcileStatus.CONFIRMED
    assert second.status == ReconcileStatus.DUPLICATE

    stores = pg_stores()
    assert stores.reservations.get(admitted.reservation_id).status == ReservationStatus.CONFIRMED
    items = stores.work_items.list_for_reservation(admitted.reservation_id)
    assert len(items) == 3
    assert all(item.status == WorkItemStatus.PENDING for item in items)


def test_work_item_claimed_once(resource_id):
    settings = Settings()
    admitted = _admit(resource_id, "ana@example.com", settings)
    reconcile_payment(
        PaymentNotification(
            external_event_id=f"evt_{uuid.uuid4().hex}",
            reservation_id=admitted.reservation_id,
            outcome=PaymentOutcome.SUCCEEDED,
            external_payment_id="pi_claim",
        ),
        stores=pg_stores(),
        settings=settings,
    )
    work_items = pg_stores().work_items
    item_id = work_items.list_for_reservation(admitted.reservation_id)[0].id

    assert work_items.try_claim(item_id) is True
    assert work_items.try_claim(item_id) is False


def test_expired_hold_frees_dates(resource_id):
    settings = Settings()
    admitted = _admit(resource_id, "ana@example.com", settings)
    stores = pg_stores()

    expired = stores.reservations.expire_overdue(NOW + timedelta(hours=2))

    assert admitted.reservation_id in expired
    other = admit_reservation(
        make_request(resource_id=resource_id, email="rui@example.com", start=date(2026, 11, 11)),
        store=stores.reservations,
        lock=PgAdvisoryLock(settings),
        settings=settings,
        now=NOW,
    )
    assert isinstance(other, Admitted)


def test_unknown_reservation_event_recorded():
    event_id = f"evt_{uuid.uuid4().hex}"
    notification = PaymentNotification(
        external_event_id=event_id,
        reservation_id=2_000_000_000,
        outcome=PaymentOutcome.SUCCEEDED,
        external_payment_id="pi_orphan",
    )

    result = reconcile_payment(notification, stores=pg_stores(), settings=Settings())

    assert result.status == ReconcileStatus.UNKNOWN_RESERVATION
    with txn() as cur:
        cur.execute("DELETE FROM payment_events WHERE external_event_id = %s", (event_id,))
        assert cur.rowcount == 1


def test_operator_promotion_keeps_customer_totals(resource_id):
    settings = Settings()
    admitted = _admit(resource_id, "ana@example.com", settings)
    operator_request = replace(
        make_request(resource_id=resource_id, email="ana@example.com", name="Operations"),
        money=MoneySnapshot(subtotal_cents=0, discount_cents=0, total_cents=0),
        line_items=(),
        source=ReservationSource.OPERATOR,
    )

    result = create_operator_booking(
        operator_request,
        store=pg_stores().reservations,
        lock=PgAdvisoryLock(settings),
        settings=settings,
        now=NOW,
    )

    assert result.reservation_id == admitted.reservation_id
    stored = pg_stores().reservations.get(admitted.reservation_id)
    assert stored.status == ReservationStatus.CONFIRMED
    assert stored.total_cents == 25500
    assert stored.customer_name == "Ana Costa"
