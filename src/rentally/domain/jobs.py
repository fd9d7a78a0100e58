"""Durable job queue - claim, execute and retry reservation side effects.

State machine per work item:
    pending -> claimed -> completed
    pending -> claimed -> pending   (failure, attempts < max_attempts)
    pending -> claimed -> failed    (failure, attempts exhausted)

Claiming is a compare-and-swap on status = 'pending', so any number of
workers can run process_work_items concurrently without a lock manager.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Protocol

from rentally.infra.time import utc_now
from rentally.observability.events import Observer, null_observer

from .models import NewWorkItem, WorkItem, WorkItemStatus, WorkItemType
from .ports import Stores, WorkItemStore

DEFAULT_BATCH_LIMIT = 10


class RetryableJobError(Exception):
    """A collaborator failed transiently (timeout, 5xx); retry later."""


class PayloadError(ValueError):
    """Stored payload does not match its job type."""


@dataclass(frozen=True)
class IssueInvoicePayload:
    external_payment_id: str


@dataclass(frozen=True)
class NotificationPayload:
    """Notifications read everything they need from the reservation."""


JobPayload = IssueInvoicePayload | NotificationPayload

_PAYLOAD_TYPES: dict[WorkItemType, type] = {
    WorkItemType.ISSUE_INVOICE: IssueInvoicePayload,
    WorkItemType.SEND_CUSTOMER_NOTIFICATION: NotificationPayload,
    WorkItemType.SEND_INTERNAL_NOTIFICATION: NotificationPayload,
    WorkItemType.SEND_INVOICE_READY: NotificationPayload,
}


def decode_payload(job_type: WorkItemType, raw: dict[str, Any] | None) -> JobPayload:
    """Decode a stored JSON payload into the dataclass for ``job_type``.

    Unknown keys are ignored; missing or empty required keys are errors.

    Raises:
        PayloadError: If a required field is missing.
    """
    payload_cls = _PAYLOAD_TYPES[job_type]
    raw = raw or {}
    kwargs = {}
    for f in fields(payload_cls):
        value = raw.get(f.name)
        if value in (None, ""):
            raise PayloadError(f"{job_type.value} payload is missing {f.name}")
        kwargs[f.name] = value
    return payload_cls(**kwargs)


def encode_payload(payload: JobPayload) -> dict[str, Any]:
    return asdict(payload)


@dataclass(frozen=True)
class JobOutcome:
    """What a successful handler produced.

    ``follow_ups`` are created in the same transaction that marks the item
    completed.
    """

    result: dict[str, Any] = field(default_factory=dict)
    follow_ups: tuple[NewWorkItem, ...] = ()


class JobExecutor(Protocol):
    def execute(self, item: WorkItem, payload: JobPayload) -> JobOutcome:
        """Run the side effect for ``item``. Raise to trigger a retry."""
        ...


@dataclass(frozen=True)
class ProcessResult:
    processed: int
    failed: int
    skipped: int
    remaining_pending: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def _error_message(error: BaseException) -> str:
    message = str(error) or type(error).__name__
    return message[:500]


def process_work_items(
    *,
    stores: Stores,
    executor: JobExecutor,
    limit: int = DEFAULT_BATCH_LIMIT,
    max_attempts: int = 3,
    now: datetime | None = None,
    observe: Observer = null_observer,
) -> ProcessResult:
    """Process up to ``limit`` of the oldest pending work items.

    Args:
        stores: Store bundle (work items, reservations, atomic block).
        executor: Type dispatch for the side effects.
        limit: Batch size.
        max_attempts: Attempt budget for follow-up items created here.
        now: Timestamp recorded with failures. Defaults to utc_now().
        observe: Event observer.

    Returns:
        ProcessResult with counts for this run and the pending backlog.
    """
    work_items = stores.work_items
    processed = failed = skipped = 0

    for item in work_items.list_pending(limit):
        if not work_items.try_claim(item.id):
            skipped += 1
            observe("job:claim_skipped", job_id=item.id, job_type=item.type.value)
            continue

        attempt = item.attempts + 1
        observe(
            "job:claimed",
            job_id=item.id,
            reservation_id=item.reservation_id,
            job_type=item.type.value,
            attempt=attempt,
        )

        try:
            payload = decode_payload(item.type, item.payload)
            outcome = executor.execute(item, payload)
            with stores.atomic():
                work_items.complete(item.id, outcome.result)
                for follow_up in outcome.follow_ups:
                    if work_items.create(follow_up, max_attempts=max_attempts):
                        observe(
                            "job:created",
                            reservation_id=follow_up.reservation_id,
                            job_type=follow_up.type.value,
                        )
        except Exception as e:
            exhausted = attempt >= item.max_attempts
            work_items.record_failure(
                item.id,
                attempts=attempt,
                status=WorkItemStatus.FAILED if exhausted else WorkItemStatus.PENDING,
                result={
                    "error": _error_message(e),
                    "attempted_at": (now or utc_now()).isoformat(),
                },
            )
            failed += 1
            observe(
                "job:failed",
                job_id=item.id,
                reservation_id=item.reservation_id,
                job_type=item.type.value,
                attempt=attempt,
                error_type=type(e).__name__,
                will_retry=not exhausted,
            )
            continue

        processed += 1
        observe(
            "job:completed",
            job_id=item.id,
            reservation_id=item.reservation_id,
            job_type=item.type.value,
        )

    return ProcessResult(
        processed=processed,
        failed=failed,
        skipped=skipped,
        remaining_pending=work_items.count_pending(),
    )


def requeue_failed(
    work_item_id: int,
    *,
    store: WorkItemStore,
    observe: Observer = null_observer,
) -> bool:
    """Operator action: put a failed item back in the queue with a fresh budget."""
    requeued = store.try_requeue_failed(work_item_id)
    if requeued:
        observe("job:requeued", job_id=work_item_id)
    return requeued
