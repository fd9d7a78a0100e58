"""Outbound task delivery to the worker service.

The public service uses this for one thing: after a payment confirms a
reservation it "kicks" the worker so the queued invoice and emails go out
without waiting for the next periodic sweep. The kick is a latency
optimisation only; losing one delays work but never drops it.

TASKS_BACKEND selects delivery:

``inline`` (default)
    Record the task in memory and send nothing. Used in tests and local runs
    where the periodic worker loop drains the queue anyway.
``http``
    POST to the worker (``rentally.tasks.http_backend``).
"""

import os
from collections import OrderedDict, deque
from datetime import datetime

from rentally.observability.logging import get_logger
from rentally.observability.redaction import safe_log_context

logger = get_logger(__name__)

PROCESS_JOBS_PATH = "/tasks/jobs/process"
BACKENDS = ("inline", "http")

# Oldest ids are forgotten first; a forgotten id only costs a redundant kick
MAX_REMEMBERED_TASKS = 1024


class TasksClient:
    """Sends each recently seen task id at most once per client instance.

    Only the last ``max_remembered`` ids (and inline records) are kept, so a
    long-lived client stays bounded.
    """

    def __init__(
        self, backend: str | None = None, *, max_remembered: int = MAX_REMEMBERED_TASKS
    ) -> None:
        self._backend = backend or os.environ.get("TASKS_BACKEND", "inline")
        self._max_remembered = max_remembered
        self._sent: OrderedDict[str, None] = OrderedDict()
        self._recorded: deque[dict] = deque(maxlen=max_remembered)

    @property
    def backend(self) -> str:
        return self._backend

    def _deliver(
        self,
        task_id: str,
        url_path: str,
        payload: dict,
        correlation_id: str | None,
        schedule_time: datetime | None,
    ) -> bool:
        if self._backend == "inline":
            self._recorded.append(
                {
                    "task_id": task_id,
                    "url_path": url_path,
                    "payload": payload,
                    "correlation_id": correlation_id,
                    "schedule_time": schedule_time,
                }
            )
            return True
        if self._backend == "http":
            from rentally.tasks.http_backend import enqueue_http

            return enqueue_http(task_id, url_path, payload, correlation_id, schedule_time)
        raise ValueError(f"Unknown TASKS_BACKEND: {self._backend} (expected one of {BACKENDS})")

    def enqueue_http(
        self,
        task_id: str,
        url_path: str,
        payload: dict,
        correlation_id: str | None = None,
        schedule_time: datetime | None = None,
    ) -> bool:
        """Send a task unless ``task_id`` was already sent.

        ``payload`` travels over the wire and must not contain customer data.

        Returns:
            True when delivered now; False for a repeat id or a failed delivery.

        Raises:
            ValueError: If TASKS_BACKEND is unknown.
        """
        if task_id in self._sent:
            return False
        delivered = self._deliver(task_id, url_path, payload, correlation_id, schedule_time)
        if delivered:
            self._sent[task_id] = None
            while len(self._sent) > self._max_remembered:
                self._sent.popitem(last=False)
        return delivered

    def kick_job_processor(self, *, reservation_id: int, correlation_id: str | None = None) -> bool:
        """Ask the worker to drain the job queue now. Never raises."""
        try:
            return self.enqueue_http(
                f"process-jobs:{reservation_id}",
                PROCESS_JOBS_PATH,
                {"reason": "payment_confirmed", "reservation_id": reservation_id},
                correlation_id=correlation_id,
            )
        except Exception as exc:
            logger.warning(
                "job processor kick failed",
                extra={
                    "extra_fields": safe_log_context(
                        reservation_id=reservation_id, error_type=type(exc).__name__
                    )
                },
            )
            return False

    def was_executed(self, task_id: str) -> bool:
        return task_id in self._sent

    def get_scheduled_tasks(self) -> list[dict]:
        """Most recent tasks recorded by the inline backend."""
        return list(self._recorded)

    def clear(self) -> None:
        self._sent.clear()
        self._recorded.clear()
