"""Reservation gate and ledger transitions.

admit_reservation is the only way a hold enters the ledger. It runs the
lead-time pre-check, then, under the per-resource lock, either extends an
identical PENDING hold or inserts a new one. The exclusion constraint in the
store remains the final arbiter: the lock only keeps constraint violations
rare under load.

Promotion and cancellation are compare-and-swap transitions on
``status = 'PENDING'``. Whoever loses the race sees zero affected rows and
treats that as "already done".
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from rentally.infra.settings import Settings
from rentally.infra.time import utc_now
from rentally.observability.events import Observer, null_observer

from .lead_time import LeadTimeError, enforce_lead_time
from .models import Reservation, ReservationRequest, ReservationStatus
from .ports import HoldResult, LockPort, ReservationStore


class OverlapError(Exception):
    """The requested range intersects an active reservation of the resource."""

    def __init__(self, resource_id: int, start_date: date, end_date: date) -> None:
        self.resource_id = resource_id
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"resource {resource_id} is not available "
            f"from {start_date.isoformat()} to {end_date.isoformat()}"
        )


class RejectionKind(str, enum.Enum):
    OVERLAP = "overlap"
    LEAD_TIME = "lead_time"


@dataclass(frozen=True)
class Admitted:
    reservation_id: int
    created: bool
    hold_expires_at: datetime


@dataclass(frozen=True)
class Rejected:
    kind: RejectionKind
    error: OverlapError | LeadTimeError


AdmissionResult = Admitted | Rejected


class PromoteOutcome(str, enum.Enum):
    CONFIRMED = "confirmed"  # this call performed PENDING -> CONFIRMED
    ALREADY_CONFIRMED = "already_confirmed"
    NOT_PROMOTABLE = "not_promotable"  # cancelled or unknown


def admit_reservation(
    request: ReservationRequest,
    *,
    store: ReservationStore,
    lock: LockPort,
    settings: Settings,
    now: datetime | None = None,
    bypass_lead_time: bool = False,
    observe: Observer = null_observer,
) -> AdmissionResult:
    """Place or refresh a hold for ``request``.

    Args:
        request: Resource, inclusive dates, customer and money snapshot.
        store: Reservation store.
        lock: Per-resource lock.
        settings: Hold window, time zone and lead-time policies.
        now: Current instant (timezone-aware). Defaults to utc_now().
        bypass_lead_time: Skip the lead-time rule (operator bookings).
        observe: Event observer.

    Returns:
        Admitted with the reservation id, or Rejected with the reason.

    Raises:
        LockTimeoutError: If the resource lock could not be taken in time.
    """
    now = now or utc_now()

    if not bypass_lead_time:
        try:
            enforce_lead_time(
                request.start_date,
                settings.lead_time_policy(request.resource_category),
                now=now,
                tz_name=settings.local_timezone,
            )
        except LeadTimeError as e:
            observe(
                "hold:rejected",
                reason=RejectionKind.LEAD_TIME.value,
                resource_id=request.resource_id,
                earliest_allowed_day=e.earliest_allowed_day.isoformat(),
            )
            return Rejected(RejectionKind.LEAD_TIME, e)

    hold_window = timedelta(minutes=settings.hold_window_minutes)

    def _place_hold() -> HoldResult:
        return store.create_or_reuse_pending(request, now=now, hold_window=hold_window)

    try:
        hold = lock.with_resource_lock(request.resource_id, _place_hold)
    except OverlapError as e:
        observe(
            "hold:rejected",
            reason=RejectionKind.OVERLAP.value,
            resource_id=request.resource_id,
        )
        return Rejected(RejectionKind.OVERLAP, e)

    observe(
        "hold:created" if hold.created else "hold:extended",
        reservation_id=hold.reservation_id,
        resource_id=request.resource_id,
        hold_expires_at=hold.hold_expires_at,
    )
    return Admitted(hold.reservation_id, hold.created, hold.hold_expires_at)


def promote_to_confirmed(
    reservation_id: int,
    external_payment_id: str | None,
    *,
    store: ReservationStore,
    observe: Observer = null_observer,
) -> PromoteOutcome:
    """PENDING -> CONFIRMED. Re-promoting a confirmed reservation is a no-op."""
    if store.try_promote(reservation_id, external_payment_id):
        observe("promote:confirmed", reservation_id=reservation_id)
        return PromoteOutcome.CONFIRMED

    current = store.get(reservation_id)
    if current is not None and current.status == ReservationStatus.CONFIRMED:
        observe("promote:noop", reservation_id=reservation_id)
        return PromoteOutcome.ALREADY_CONFIRMED

    observe(
        "promote:noop",
        reservation_id=reservation_id,
        status=current.status.value if current else None,
    )
    return PromoteOutcome.NOT_PROMOTABLE


def cancel_pending(
    reservation_id: int,
    *,
    store: ReservationStore,
    observe: Observer = null_observer,
) -> bool:
    """PENDING -> CANCELLED. Returns False (no-op) for any other status."""
    cancelled = store.try_cancel(reservation_id)
    if cancelled:
        observe("cancel:cancelled", reservation_id=reservation_id)
    return cancelled


def get_reservation(reservation_id: int, *, store: ReservationStore) -> Reservation | None:
    return store.get(reservation_id)


def create_operator_booking(
    request: ReservationRequest,
    *,
    store: ReservationStore,
    lock: LockPort,
    settings: Settings,
    now: datetime | None = None,
    observe: Observer = null_observer,
) -> AdmissionResult:
    """Book on behalf of the operations team and confirm immediately.

    The lead-time rule does not apply. An identical PENDING hold placed by
    the customer is promoted as it stands: its money snapshot and line items
    belong to the customer's open checkout and are left untouched. Lookup and
    promotion run under the resource lock so the expiry sweep cannot cancel
    the hold in between.
    """
    now = now or utc_now()
    hold_window = timedelta(minutes=settings.hold_window_minutes)

    def _book() -> HoldResult:
        hold = store.find_pending(request)
        if hold is None:
            hold = store.create_or_reuse_pending(request, now=now, hold_window=hold_window)
        store.try_promote(hold.reservation_id, None)
        return hold

    try:
        hold = lock.with_resource_lock(request.resource_id, _book)
    except OverlapError as e:
        observe(
            "hold:rejected",
            reason=RejectionKind.OVERLAP.value,
            resource_id=request.resource_id,
            source=request.source.value,
        )
        return Rejected(RejectionKind.OVERLAP, e)

    observe(
        "promote:confirmed",
        reservation_id=hold.reservation_id,
        source=request.source.value,
    )
    return Admitted(hold.reservation_id, hold.created, hold.hold_expires_at)
