"""Observer port for domain events.

Domain code reports what happened through an injected ``Observer`` callable
(``observe("job:claimed", job_id=1)``) instead of a module-level logger, so
tests can capture events and no process-wide singleton is required.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from .redaction import safe_log_context

# Events that indicate something went wrong and deserve a warning level.
_WARNING_EVENTS = frozenset(
    {
        "job:failed",
        "payment:unknown_reservation",
    }
)


class Observer(Protocol):
    """Callable receiving an event name plus structured fields."""

    def __call__(self, event: str, **fields: Any) -> None: ...


def null_observer(event: str, **fields: Any) -> None:
    """Default observer: discard everything."""


class LoggingObserver:
    """Adapts domain events onto a JSON logger.

    The event name becomes both the log message and an ``event`` field;
    the remaining fields pass through ``safe_log_context`` like every other
    log line in the service.
    """

    def __init__(self, logger: logging.Logger, **context: Any) -> None:
        self._logger = logger
        self._context = context

    def __call__(self, event: str, **fields: Any) -> None:
        level = logging.WARNING if event in _WARNING_EVENTS else logging.INFO
        self._logger.log(
            level,
            event,
            extra={
                "extra_fields": safe_log_context(
                    event=event, **self._context, **fields
                )
            },
        )


class RecordingObserver:
    """Keeps every event in memory. Useful in tests and diagnostics."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, event: str, **fields: Any) -> None:
        self.events.append((event, fields))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def count(self, event: str) -> int:
        return sum(1 for name, _ in self.events if name == event)
