"""Payment events repository - idempotency records for processor events.

Uses raw SQL with psycopg2 (no ORM).
"""

from psycopg2.extensions import cursor as PgCursor

from rentally.infra.db import ambient_txn


def insert_payment_event(
    cur: PgCursor,
    *,
    external_event_id: str,
    event_type: str,
    reservation_id: int | None,
) -> bool:
    """Record a processor event id.

    Uses ON CONFLICT DO NOTHING; a conflict means the event was already
    processed.

    Returns:
        True if inserted, False if it already existed.
    """
    cur.execute(
        """
        INSERT INTO payment_events (external_event_id, event_type, reservation_id)
        VALUES (%s, %s, %s)
        ON CONFLICT (external_event_id) DO NOTHING
        """,
        (external_event_id, event_type, reservation_id),
    )
    return cur.rowcount > 0


class PgPaymentEventStore:
    def record(
        self,
        external_event_id: str,
        *,
        event_type: str,
        reservation_id: int | None,
    ) -> bool:
        with ambient_txn() as cur:
            return insert_payment_event(
                cur,
                external_event_id=external_event_id,
                event_type=event_type,
                reservation_id=reservation_id,
            )
