"""Wiring of the PostgreSQL-backed stores."""

from rentally.domain.ports import Stores
from rentally.infra.db import ambient_txn
from rentally.infra.repositories.payment_events_repository import PgPaymentEventStore
from rentally.infra.repositories.reservations_repository import PgReservationStore
from rentally.infra.repositories.work_items_repository import PgWorkItemStore


def pg_stores() -> Stores:
    """Stores whose ``atomic()`` block is one PostgreSQL transaction."""
    return Stores(
        reservations=PgReservationStore(),
        payment_events=PgPaymentEventStore(),
        work_items=PgWorkItemStore(),
        atomic=ambient_txn,
    )
