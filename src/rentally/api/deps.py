"""Request-scoped collaborators for the routes.

Each getter is a FastAPI dependency so tests can swap it through
``app.dependency_overrides``.
"""

from __future__ import annotations

import logging

from rentally.domain.job_handlers import ReservationJobExecutor
from rentally.domain.ports import LockPort, Stores
from rentally.infra.locks import PgAdvisoryLock
from rentally.infra.settings import Settings, get_settings
from rentally.infra.stores import pg_stores
from rentally.integrations.invoicing import HttpInvoicingClient
from rentally.integrations.mailer import HttpMailer
from rentally.observability.correlation import get_correlation_id
from rentally.observability.events import LoggingObserver, Observer
from rentally.stripe.client import StripeClient
from rentally.tasks.client import TasksClient

_tasks_client: TasksClient | None = None


def settings_dep() -> Settings:
    return get_settings()


def stores_dep() -> Stores:
    return pg_stores()


def lock_dep() -> LockPort:
    return PgAdvisoryLock(get_settings())


def tasks_client_dep() -> TasksClient:
    global _tasks_client
    if _tasks_client is None:
        _tasks_client = TasksClient()
    return _tasks_client


def stripe_client_dep() -> StripeClient:
    return StripeClient()


def executor_dep() -> ReservationJobExecutor:
    return ReservationJobExecutor(
        reservations=pg_stores().reservations,
        invoicing=HttpInvoicingClient(),
        mailer=HttpMailer(),
        settings=get_settings(),
    )


def observer_for(logger: logging.Logger) -> Observer:
    """Observer logging through ``logger`` with the request correlation id."""
    return LoggingObserver(logger, correlationId=get_correlation_id())
