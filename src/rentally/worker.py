"""Periodic worker loop for single-process deployments.

Runs the job queue and the hold expiry sweep every ``interval_s`` seconds
(default 60) when no external scheduler calls the worker routes.

Usage:
    python -m rentally.worker
"""

from __future__ import annotations

import os
import signal
import threading

from rentally.domain.expire_holds import sweep_expired_holds
from rentally.domain.job_handlers import ReservationJobExecutor
from rentally.domain.jobs import JobExecutor, ProcessResult, process_work_items
from rentally.domain.ports import Stores
from rentally.infra.settings import Settings, check_required, get_settings
from rentally.infra.stores import pg_stores
from rentally.integrations.invoicing import HttpInvoicingClient
from rentally.integrations.mailer import HttpMailer
from rentally.observability.correlation import correlation_scope
from rentally.observability.events import LoggingObserver
from rentally.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_INTERVAL_S = 60


def run_once(
    *,
    stores: Stores,
    executor: JobExecutor,
    settings: Settings,
) -> ProcessResult:
    """One tick: expire stale holds, then process a batch of jobs."""
    with correlation_scope() as cid:
        observe = LoggingObserver(logger, correlationId=cid)
        sweep_expired_holds(store=stores.reservations, settings=settings, observe=observe)
        return process_work_items(
            stores=stores,
            executor=executor,
            limit=settings.job_batch_limit,
            max_attempts=settings.job_max_attempts,
            observe=observe,
        )


def run_forever(
    stop: threading.Event,
    *,
    stores: Stores,
    executor: JobExecutor,
    settings: Settings,
    interval_s: float = DEFAULT_INTERVAL_S,
) -> None:
    """Tick until ``stop`` is set. A failing tick is logged and retried next time."""
    while not stop.is_set():
        try:
            run_once(stores=stores, executor=executor, settings=settings)
        except Exception:
            logger.exception("worker tick failed")
        stop.wait(interval_s)


def main() -> None:
    check_required("worker")
    settings = get_settings()
    stores = pg_stores()
    executor = ReservationJobExecutor(
        reservations=stores.reservations,
        invoicing=HttpInvoicingClient(),
        mailer=HttpMailer(),
        settings=settings,
    )

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    signal.signal(signal.SIGINT, lambda *_: stop.set())

    interval_s = float(os.environ.get("WORKER_INTERVAL_S", DEFAULT_INTERVAL_S))
    logger.info("worker started", extra={"extra_fields": {"interval_s": str(interval_s)}})
    run_forever(stop, stores=stores, executor=executor, settings=settings, interval_s=interval_s)
    logger.info("worker stopped")


if __name__ == "__main__":
    main()
