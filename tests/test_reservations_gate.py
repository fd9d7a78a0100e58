"""Tests for the reservation gate and ledger transitions (in-memory stores)."""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import pytest

from helpers import make_request
from rentally.domain.models import MoneySnapshot, ReservationSource, ReservationStatus
from rentally.domain.reservations import (
    Admitted,
    OverlapError,
    PromoteOutcome,
    Rejected,
    RejectionKind,
    admit_reservation,
    cancel_pending,
    create_operator_booking,
    get_reservation,
    promote_to_confirmed,
)
from rentally.infra.locks import InProcessLock
from rentally.observability.events import RecordingObserver

NOW = datetime(2026, 11, 2, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def lock():
    return InProcessLock()


def _admit(db, lock, settings, request=None, **kwargs):
    return admit_reservation(
        request or make_request(),
        store=db.reservations,
        lock=lock,
        settings=settings,
        now=kwargs.pop("now", NOW),
        **kwargs,
    )


class TestAdmitReservation:
    def test_creates_pending_hold(self, db, lock, settings):
        observer = RecordingObserver()
        result = _admit(db, lock, settings, observe=observer)

        assert isinstance(result, Admitted)
        assert result.created is True
        assert result.hold_expires_at == NOW + timedelta(minutes=30)

        stored = db.reservations.get(result.reservation_id)
        assert stored.status == ReservationStatus.PENDING
        assert stored.total_cents == 25500
        assert observer.names() == ["hold:created"]

    def test_identical_request_extends_existing_hold(self, db, lock, settings):
        first = _admit(db, lock, settings)
        observer = RecordingObserver()
        later = NOW + timedelta(minutes=10)
        second = _admit(db, lock, settings, now=later, observe=observer)

        assert isinstance(second, Admitted)
        assert second.reservation_id == first.reservation_id
        assert second.created is False
        assert second.hold_expires_at == later + timedelta(minutes=30)
        assert db.reservations.insert_count == 1
        assert observer.names() == ["hold:extended"]

    def test_email_match_is_case_insensitive(self, db, lock, settings):
        first = _admit(db, lock, settings, make_request(email="Ana@Example.com"))
        second = _admit(db, lock, settings, make_request(email="ana@example.COM"))
        assert second.reservation_id == first.reservation_id

    def test_extension_never_shortens_hold(self, db, lock, settings):
        first = _admit(db, lock, settings)
        second = _admit(db, lock, settings, now=NOW - timedelta(minutes=5))
        assert second.hold_expires_at == first.hold_expires_at

    def test_overlap_with_other_customer_rejected(self, db, lock, settings):
        _admit(db, lock, settings)
        observer = RecordingObserver()
        result = _admit(
            db,
            lock,
            settings,
            make_request(email="rui@example.com", start=date(2026, 11, 12), end=date(2026, 11, 14)),
            observe=observer,
        )

        assert isinstance(result, Rejected)
        assert result.kind == RejectionKind.OVERLAP
        assert isinstance(result.error, OverlapError)
        assert result.error.resource_id == 1
        assert observer.names() == ["hold:rejected"]
        assert observer.events[0][1]["reason"] == "overlap"

    def test_adjacent_range_admitted(self, db, lock, settings):
        _admit(db, lock, settings)
        result = _admit(
            db,
            lock,
            settings,
            make_request(email="rui@example.com", start=date(2026, 11, 13), end=date(2026, 11, 14)),
        )
        assert isinstance(result, Admitted)

    def test_other_resource_not_blocked(self, db, lock, settings):
        _admit(db, lock, settings)
        result = _admit(db, lock, settings, make_request(resource_id=2, email="rui@example.com"))
        assert isinstance(result, Admitted)

    def test_cancelled_reservation_frees_dates(self, db, lock, settings):
        db.reservations.seed(status=ReservationStatus.CANCELLED, email="old@example.com")
        result = _admit(db, lock, settings)
        assert isinstance(result, Admitted)

    def test_confirmed_reservation_blocks_dates(self, db, lock, settings):
        db.reservations.seed(status=ReservationStatus.CONFIRMED, email="ana@example.com")
        result = _admit(db, lock, settings)
        assert isinstance(result, Rejected)
        assert result.kind == RejectionKind.OVERLAP

    def test_lead_time_rejected_before_touching_store(self, db, lock, settings):
        request = make_request(category="heavy", start=date(2026, 11, 3), end=date(2026, 11, 5))
        result = _admit(db, lock, settings, request)

        assert isinstance(result, Rejected)
        assert result.kind == RejectionKind.LEAD_TIME
        assert result.error.earliest_allowed_day == date(2026, 11, 4)
        assert db.reservations.insert_count == 0

    def test_lead_time_satisfied(self, db, lock, settings):
        request = make_request(category="heavy", start=date(2026, 11, 4), end=date(2026, 11, 5))
        assert isinstance(_admit(db, lock, settings, request), Admitted)

    def test_bypass_lead_time(self, db, lock, settings):
        request = make_request(category="heavy", start=date(2026, 11, 2), end=date(2026, 11, 2))
        result = _admit(db, lock, settings, request, bypass_lead_time=True)
        assert isinstance(result, Admitted)

    def test_invalid_date_order_rejected_at_construction(self):
        with pytest.raises(ValueError):
            make_request(start=date(2026, 11, 12), end=date(2026, 11, 10))


class TestAdmitConcurrency:
    def _run_concurrently(self, n, target):
        barrier = threading.Barrier(n)
        results = [None] * n

        def worker(i):
            barrier.wait()
            results[i] = target(i)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_competing_customers_get_exactly_one_hold(self, db, lock, settings):
        results = self._run_concurrently(
            20,
            lambda i: _admit(db, lock, settings, make_request(email=f"c{i}@example.com")),
        )

        admitted = [r for r in results if isinstance(r, Admitted)]
        rejected = [r for r in results if isinstance(r, Rejected)]
        assert len(admitted) == 1
        assert len(rejected) == 19
        assert all(r.kind == RejectionKind.OVERLAP for r in rejected)
        assert db.reservations.insert_count == 1

    def test_same_customer_retries_share_one_hold(self, db, lock, settings):
        results = self._run_concurrently(10, lambda i: _admit(db, lock, settings))

        assert all(isinstance(r, Admitted) for r in results)
        assert len({r.reservation_id for r in results}) == 1
        assert sum(1 for r in results if r.created) == 1
        assert db.reservations.insert_count == 1


class TestPromoteToConfirmed:
    def test_pending_is_confirmed(self, db):
        reservation_id = db.reservations.seed(hold_expires_at=NOW)
        outcome = promote_to_confirmed(reservation_id, "pi_123", store=db.reservations)

        assert outcome == PromoteOutcome.CONFIRMED
        stored = db.reservations.get(reservation_id)
        assert stored.status == ReservationStatus.CONFIRMED
        assert stored.external_payment_id == "pi_123"
        assert stored.hold_expires_at is None

    def test_second_promotion_is_noop(self, db):
        reservation_id = db.reservations.seed()
        promote_to_confirmed(reservation_id, "pi_123", store=db.reservations)
        observer = RecordingObserver()
        outcome = promote_to_confirmed(
            reservation_id, "pi_123", store=db.reservations, observe=observer
        )
        assert outcome == PromoteOutcome.ALREADY_CONFIRMED
        assert observer.names() == ["promote:noop"]

    def test_cancelled_is_not_promotable(self, db):
        reservation_id = db.reservations.seed(status=ReservationStatus.CANCELLED)
        outcome = promote_to_confirmed(reservation_id, "pi_123", store=db.reservations)
        assert outcome == PromoteOutcome.NOT_PROMOTABLE
        assert db.reservations.get(reservation_id).status == ReservationStatus.CANCELLED

    def test_unknown_is_not_promotable(self, db):
        assert promote_to_confirmed(999, None, store=db.reservations) == PromoteOutcome.NOT_PROMOTABLE


class TestCancelPending:
    def test_pending_is_cancelled_once(self, db):
        reservation_id = db.reservations.seed()
        assert cancel_pending(reservation_id, store=db.reservations) is True
        assert cancel_pending(reservation_id, store=db.reservations) is False
        assert get_reservation(reservation_id, store=db.reservations).status == ReservationStatus.CANCELLED

    def test_confirmed_is_untouched(self, db):
        reservation_id = db.reservations.seed(status=ReservationStatus.CONFIRMED)
        assert cancel_pending(reservation_id, store=db.reservations) is False
        assert db.reservations.get(reservation_id).status == ReservationStatus.CONFIRMED


class TestOperatorBooking:
    def _operator_request(self, **kwargs):
        return replace(make_request(**kwargs), source=ReservationSource.OPERATOR)

    def test_books_and_confirms_without_lead_time(self, db, lock, settings):
        request = self._operator_request(
            category="heavy", start=date(2026, 11, 2), end=date(2026, 11, 3)
        )
        result = create_operator_booking(
            request, store=db.reservations, lock=lock, settings=settings, now=NOW
        )

        assert isinstance(result, Admitted)
        stored = db.reservations.get(result.reservation_id)
        assert stored.status == ReservationStatus.CONFIRMED
        assert stored.source == ReservationSource.OPERATOR

    def test_promotes_identical_customer_hold(self, db, lock, settings):
        hold = _admit(db, lock, settings)
        result = create_operator_booking(
            self._operator_request(),
            store=db.reservations,
            lock=lock,
            settings=settings,
            now=NOW,
        )

        assert result.reservation_id == hold.reservation_id
        assert result.created is False
        assert db.reservations.insert_count == 1
        assert db.reservations.get(hold.reservation_id).status == ReservationStatus.CONFIRMED

    def test_promoted_hold_keeps_customer_snapshot(self, db, lock, settings):
        hold = _admit(db, lock, settings)
        operator_request = replace(
            self._operator_request(name="Operations"),
            money=MoneySnapshot(subtotal_cents=0, discount_cents=0, total_cents=0),
            line_items=(),
        )

        create_operator_booking(
            operator_request, store=db.reservations, lock=lock, settings=settings, now=NOW
        )

        stored = db.reservations.get(hold.reservation_id)
        assert stored.status == ReservationStatus.CONFIRMED
        assert stored.total_cents == 25500
        assert stored.customer_name == "Ana Costa"
        assert [line.item_key for line in stored.line_items] == ["MINI-EX"]

    def test_overlap_rejected(self, db, lock, settings):
        db.reservations.seed(status=ReservationStatus.CONFIRMED, email="rui@example.com")
        result = create_operator_booking(
            self._operator_request(), store=db.reservations, lock=lock, settings=settings, now=NOW
        )
        assert isinstance(result, Rejected)
        assert result.kind == RejectionKind.OVERLAP
