"""Tests for the periodic worker loop (in-memory stores)."""

from __future__ import annotations

import threading
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

from rentally.domain.job_handlers import ReservationJobExecutor
from rentally.domain.models import NewWorkItem, ReservationStatus, WorkItemStatus, WorkItemType
from rentally.worker import run_forever, run_once


def _executor(db, invoicing, mailer, settings):
    return ReservationJobExecutor(
        reservations=db.reservations, invoicing=invoicing, mailer=mailer, settings=settings
    )


def test_run_once_sweeps_then_processes(db, settings, invoicing, mailer):
    stale = db.reservations.seed(hold_expires_at=datetime.now(timezone.utc) - timedelta(hours=1))
    confirmed = db.reservations.seed(
        start=date(2026, 12, 1),
        end=date(2026, 12, 3),
        status=ReservationStatus.CONFIRMED,
    )
    db.work_items.create(
        NewWorkItem(confirmed, WorkItemType.SEND_INTERNAL_NOTIFICATION), max_attempts=3
    )

    result = run_once(
        stores=db.stores(), executor=_executor(db, invoicing, mailer, settings), settings=settings
    )

    assert db.reservations.get(stale).status == ReservationStatus.CANCELLED
    assert result.processed == 1
    assert db.work_items.list_for_reservation(confirmed)[0].status == WorkItemStatus.COMPLETED
    assert mailer.sent[0][1]["to"] == "ops@example.com"


def test_run_forever_survives_failing_tick(db, settings, invoicing, mailer):
    stop = threading.Event()
    calls = []

    def tick(**kwargs):
        calls.append(kwargs)
        if len(calls) == 1:
            raise RuntimeError("database unavailable")
        stop.set()

    with patch("rentally.worker.run_once", side_effect=tick):
        run_forever(
            stop,
            stores=db.stores(),
            executor=_executor(db, invoicing, mailer, settings),
            settings=settings,
            interval_s=0,
        )

    assert len(calls) == 2


def test_run_forever_stops_immediately_when_set(db, settings, invoicing, mailer):
    stop = threading.Event()
    stop.set()

    with patch("rentally.worker.run_once") as tick:
        run_forever(
            stop,
            stores=db.stores(),
            executor=_executor(db, invoicing, mailer, settings),
            settings=settings,
        )

    tick.assert_not_called()
