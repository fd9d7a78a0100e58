"""Payment reconciliation - apply processor events to reservations exactly once.

Implements the idempotent event -> state transition:
1. Record the external event id (duplicate -> stop, success).
2. succeeded: promote PENDING -> CONFIRMED; on the first promotion only,
   create the side-effect work items.
   failed: cancel the PENDING reservation so its dates free up.

All steps run inside one ``stores.atomic()`` block, so a failure anywhere
rolls back the event record and the processor's redelivery retries it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from rentally.infra.settings import Settings
from rentally.observability.events import Observer, null_observer

from .models import NewWorkItem, WorkItemType
from .ports import Stores
from .reservations import PromoteOutcome, cancel_pending, promote_to_confirmed


class PaymentOutcome(str, enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ReconcileStatus(str, enum.Enum):
    DUPLICATE = "duplicate"
    CONFIRMED = "confirmed"
    ALREADY_CONFIRMED = "already_confirmed"
    NOT_PROMOTABLE = "not_promotable"
    CANCELLED = "cancelled"
    NOOP = "noop"
    UNKNOWN_RESERVATION = "unknown_reservation"


@dataclass(frozen=True)
class PaymentNotification:
    """Verified payment notification, already stripped of processor details."""

    external_event_id: str
    reservation_id: int | None
    outcome: PaymentOutcome
    external_payment_id: str | None = None
    event_type: str = ""


@dataclass(frozen=True)
class ReconcileResult:
    status: ReconcileStatus
    reservation_id: int | None = None
    work_items_created: int = 0

    @property
    def first_confirmation(self) -> bool:
        return self.status == ReconcileStatus.CONFIRMED


def confirmation_work_items(
    reservation_id: int, external_payment_id: str
) -> list[NewWorkItem]:
    """Work items created on the first promotion of a reservation."""
    return [
        NewWorkItem(
            reservation_id,
            WorkItemType.ISSUE_INVOICE,
            {"external_payment_id": external_payment_id},
        ),
        NewWorkItem(reservation_id, WorkItemType.SEND_CUSTOMER_NOTIFICATION, {}),
        NewWorkItem(reservation_id, WorkItemType.SEND_INTERNAL_NOTIFICATION, {}),
    ]


def reconcile_payment(
    notification: PaymentNotification,
    *,
    stores: Stores,
    settings: Settings,
    observe: Observer = null_observer,
) -> ReconcileResult:
    """Apply a payment notification to the ledger, at most once per event id.

    Returns:
        ReconcileResult. Duplicates and no-ops are successes.

    Raises:
        Any store error. Nothing is committed in that case.
    """
    with stores.atomic():
        recorded = stores.payment_events.record(
            notification.external_event_id,
            event_type=notification.event_type or notification.outcome.value,
            reservation_id=notification.reservation_id,
        )
        if not recorded:
            observe(
                "payment:duplicate",
                event_id=notification.external_event_id,
                reservation_id=notification.reservation_id,
            )
            return ReconcileResult(
                ReconcileStatus.DUPLICATE, notification.reservation_id
            )

        reservation_id = notification.reservation_id
        if reservation_id is None or stores.reservations.get(reservation_id) is None:
            observe(
                "payment:unknown_reservation",
                event_id=notification.external_event_id,
                reservation_id=reservation_id,
            )
            return ReconcileResult(ReconcileStatus.UNKNOWN_RESERVATION, reservation_id)

        if notification.outcome == PaymentOutcome.FAILED:
            if cancel_pending(reservation_id, store=stores.reservations, observe=observe):
                return ReconcileResult(ReconcileStatus.CANCELLED, reservation_id)
            return ReconcileResult(ReconcileStatus.NOOP, reservation_id)

        outcome = promote_to_confirmed(
            reservation_id,
            notification.external_payment_id,
            store=stores.reservations,
            observe=observe,
        )
        if outcome == PromoteOutcome.ALREADY_CONFIRMED:
            return ReconcileResult(ReconcileStatus.ALREADY_CONFIRMED, reservation_id)
        if outcome == PromoteOutcome.NOT_PROMOTABLE:
            return ReconcileResult(ReconcileStatus.NOT_PROMOTABLE, reservation_id)

        created = 0
        # Invoices need a payment reference; the event id stands in when absent
        payment_ref = notification.external_payment_id or notification.external_event_id
        for item in confirmation_work_items(reservation_id, payment_ref):
            if stores.work_items.create(item, max_attempts=settings.job_max_attempts):
                created += 1
                observe(
                    "job:created",
                    reservation_id=reservation_id,
                    job_type=item.type.value,
                )

    return ReconcileResult(ReconcileStatus.CONFIRMED, reservation_id, created)
