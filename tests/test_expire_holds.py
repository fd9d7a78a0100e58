"""Tests for the hold expiry sweep."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from rentally.domain.expire_holds import sweep_expired_holds
from rentally.domain.models import ReservationStatus
from rentally.domain.reservations import PromoteOutcome, promote_to_confirmed
from rentally.infra.settings import Settings
from rentally.observability.events import RecordingObserver

NOW = datetime(2026, 11, 2, 12, 0, tzinfo=timezone.utc)


def test_expired_holds_cancelled_after_grace(db, settings):
    stale = db.reservations.seed(hold_expires_at=NOW - timedelta(minutes=5))
    observer = RecordingObserver()

    expired = sweep_expired_holds(store=db.reservations, settings=settings, now=NOW, observe=observer)

    assert expired == [stale]
    assert db.reservations.get(stale).status == ReservationStatus.CANCELLED
    assert observer.names() == ["sweep:expired"]
    assert observer.events[0][1]["count"] == 1


def test_hold_within_grace_survives(db, settings):
    # Expired 60s ago, grace is 120s
    recent = db.reservations.seed(hold_expires_at=NOW - timedelta(seconds=60))

    assert sweep_expired_holds(store=db.reservations, settings=settings, now=NOW) == []
    assert db.reservations.get(recent).status == ReservationStatus.PENDING


def test_zero_grace(db):
    held = db.reservations.seed(hold_expires_at=NOW - timedelta(seconds=1))
    settings = Settings(hold_expiry_grace_seconds=0)

    assert sweep_expired_holds(store=db.reservations, settings=settings, now=NOW) == [held]


def test_confirmed_and_live_holds_untouched(db, settings):
    confirmed = db.reservations.seed(
        status=ReservationStatus.CONFIRMED,
        hold_expires_at=NOW - timedelta(hours=1),
    )
    live = db.reservations.seed(
        start=date(2026, 12, 1),
        end=date(2026, 12, 2),
        hold_expires_at=NOW + timedelta(minutes=20),
    )

    assert sweep_expired_holds(store=db.reservations, settings=settings, now=NOW) == []
    assert db.reservations.get(confirmed).status == ReservationStatus.CONFIRMED
    assert db.reservations.get(live).status == ReservationStatus.PENDING


def test_sweep_is_idempotent(db, settings):
    db.reservations.seed(hold_expires_at=NOW - timedelta(hours=1))

    assert len(sweep_expired_holds(store=db.reservations, settings=settings, now=NOW)) == 1
    assert sweep_expired_holds(store=db.reservations, settings=settings, now=NOW) == []


def test_payment_after_sweep_cannot_promote(db, settings):
    reservation_id = db.reservations.seed(hold_expires_at=NOW - timedelta(hours=1))
    sweep_expired_holds(store=db.reservations, settings=settings, now=NOW)

    outcome = promote_to_confirmed(reservation_id, "pi_late", store=db.reservations)

    assert outcome == PromoteOutcome.NOT_PROMOTABLE


def test_promotion_before_sweep_wins(db, settings):
    reservation_id = db.reservations.seed(hold_expires_at=NOW - timedelta(hours=1))
    promote_to_confirmed(reservation_id, "pi_1", store=db.reservations)

    assert sweep_expired_holds(store=db.reservations, settings=settings, now=NOW) == []
    assert db.reservations.get(reservation_id).status == ReservationStatus.CONFIRMED
