"""Storage and locking ports used by the domain layer.

The PostgreSQL adapters live in ``rentally.infra``; tests use in-memory
fakes. Every state transition is expressed as a boolean "did my conditional
write apply" result so compare-and-swap semantics are visible in the
signatures.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, ContextManager, Protocol, Sequence, TypeVar

from .models import (
    NewWorkItem,
    Reservation,
    ReservationRequest,
    WorkItem,
    WorkItemStatus,
)

T = TypeVar("T")


class LockPort(Protocol):
    """Per-resource mutual exclusion."""

    def with_resource_lock(self, resource_id: int, fn: Callable[[], T]) -> T:
        """Run ``fn`` while holding the lock for ``resource_id``."""
        ...


@dataclass(frozen=True)
class HoldResult:
    reservation_id: int
    created: bool
    hold_expires_at: datetime


class ReservationStore(Protocol):
    def create_or_reuse_pending(
        self,
        request: ReservationRequest,
        *,
        now: datetime,
        hold_window: timedelta,
    ) -> HoldResult:
        """Extend an identical PENDING hold or insert a new one.

        Raises:
            OverlapError: If the insert would overlap an active reservation.
        """
        ...

    def find_pending(self, request: ReservationRequest) -> HoldResult | None:
        """The PENDING hold with the same resource, dates and email, if any."""
        ...

    def try_promote(self, reservation_id: int, external_payment_id: str | None) -> bool:
        """PENDING -> CONFIRMED. False when zero rows were affected."""
        ...

    def try_cancel(self, reservation_id: int) -> bool:
        """PENDING -> CANCELLED. False when zero rows were affected."""
        ...

    def get(self, reservation_id: int) -> Reservation | None: ...

    def expire_overdue(self, cutoff: datetime) -> list[int]:
        """Cancel PENDING holds whose expiry is before ``cutoff``."""
        ...

    def record_invoice(
        self,
        reservation_id: int,
        *,
        provider_id: str,
        number: str,
        pdf_url: str | None,
        tax_validation_code: str | None,
    ) -> None: ...


class PaymentEventStore(Protocol):
    def record(
        self,
        external_event_id: str,
        *,
        event_type: str,
        reservation_id: int | None,
    ) -> bool:
        """Insert the event id. False when it was already recorded."""
        ...


class WorkItemStore(Protocol):
    def create(self, item: NewWorkItem, *, max_attempts: int) -> bool:
        """Create unless ``(reservation_id, type)`` exists. True if created."""
        ...

    def list_pending(self, limit: int) -> list[WorkItem]:
        """Oldest pending items first."""
        ...

    def try_claim(self, work_item_id: int) -> bool:
        """pending -> claimed. False when another worker got there first."""
        ...

    def complete(self, work_item_id: int, result: dict[str, Any]) -> None: ...

    def record_failure(
        self,
        work_item_id: int,
        *,
        attempts: int,
        status: WorkItemStatus,
        result: dict[str, Any],
    ) -> None: ...

    def try_requeue_failed(self, work_item_id: int) -> bool:
        """failed -> pending with attempts reset."""
        ...

    def count_pending(self) -> int: ...

    def get(self, work_item_id: int) -> WorkItem | None: ...

    def list_for_reservation(self, reservation_id: int) -> Sequence[WorkItem]: ...


@dataclass(frozen=True)
class Stores:
    """Bundle of stores sharing one atomic-block factory.

    ``atomic()`` groups calls on any of the stores into one transaction.
    """

    reservations: ReservationStore
    payment_events: PaymentEventStore
    work_items: WorkItemStore
    atomic: Callable[[], ContextManager[Any]]
