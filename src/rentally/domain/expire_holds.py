"""Expiry sweep - cancel PENDING holds whose window has passed.

Uses the same conditional update as explicit cancellation, so it can race a
payment confirmation safely: whichever transition applies first wins and the
other affects zero rows.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from rentally.infra.settings import Settings
from rentally.infra.time import utc_now
from rentally.observability.events import Observer, null_observer

from .ports import ReservationStore


def sweep_expired_holds(
    *,
    store: ReservationStore,
    settings: Settings,
    now: datetime | None = None,
    observe: Observer = null_observer,
) -> list[int]:
    """Cancel holds that expired more than the grace period ago.

    The grace period leaves room for a payment that completed right at the
    end of the window to be reconciled first.

    Returns:
        Ids of the reservations cancelled by this sweep.
    """
    now = now or utc_now()
    cutoff = now - timedelta(seconds=settings.hold_expiry_grace_seconds)
    expired = store.expire_overdue(cutoff)
    observe("sweep:expired", count=len(expired), cutoff=cutoff)
    return expired
