"""Work items repository - durable jobs attached to reservations.

Uses raw SQL with psycopg2 (no ORM).
Claiming is a compare-and-swap on status = 'pending'; creation is idempotent
through UNIQUE (reservation_id, type).
"""

import json
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from rentally.domain.models import NewWorkItem, WorkItem, WorkItemStatus, WorkItemType
from rentally.infra.db import ambient_txn

_COLUMNS = """
    id, reservation_id, type, status, attempts, max_attempts,
    payload, result, created_at, processed_at
"""


def _json_value(value: Any) -> Any:
    # JSONB comes back decoded from psycopg2; text columns do not
    if isinstance(value, str):
        return json.loads(value)
    return value


def _row_to_work_item(row: tuple) -> WorkItem:
    return WorkItem(
        id=row[0],
        reservation_id=row[1],
        type=WorkItemType(row[2]),
        status=WorkItemStatus(row[3]),
        attempts=row[4],
        max_attempts=row[5],
        payload=_json_value(row[6]) or {},
        result=_json_value(row[7]),
        created_at=row[8],
        processed_at=row[9],
    )


def insert_work_item(cur: PgCursor, *, item: NewWorkItem, max_attempts: int) -> bool:
    """Create a work item unless one exists for (reservation_id, type).

    Returns:
        True if created, False if it already existed.
    """
    cur.execute(
        """
        INSERT INTO work_items (reservation_id, type, status, attempts, max_attempts, payload)
        VALUES (%s, %s, 'pending', 0, %s, %s)
        ON CONFLICT (reservation_id, type) DO NOTHING
        """,
        (item.reservation_id, item.type.value, max_attempts, json.dumps(item.payload)),
    )
    return cur.rowcount > 0


def select_pending(cur: PgCursor, *, limit: int) -> list[WorkItem]:
    cur.execute(
        f"""
        SELECT {_COLUMNS}
        FROM work_items
        WHERE status = 'pending'
        ORDER BY created_at ASC, id ASC
        LIMIT %s
        """,
        (limit,),
    )
    return [_row_to_work_item(row) for row in cur.fetchall()]


def claim_work_item(cur: PgCursor, *, work_item_id: int) -> bool:
    """pending -> claimed. Zero rows means another worker claimed it."""
    cur.execute(
        """
        UPDATE work_items
        SET status = 'claimed', updated_at = now()
        WHERE id = %s AND status = 'pending'
        """,
        (work_item_id,),
    )
    return cur.rowcount > 0


def mark_completed(cur: PgCursor, *, work_item_id: int, result: dict[str, Any]) -> None:
    cur.execute(
        """
        UPDATE work_items
        SET status = 'completed',
            result = %s,
            processed_at = now(),
            updated_at = now()
        WHERE id = %s
        """,
        (json.dumps(result), work_item_id),
    )


def mark_failure(
    cur: PgCursor,
    *,
    work_item_id: int,
    attempts: int,
    status: WorkItemStatus,
    result: dict[str, Any],
) -> None:
    """Store a failed attempt: back to pending, or failed when exhausted."""
    cur.execute(
        """
        UPDATE work_items
        SET status = %s,
            attempts = %s,
            result = %s,
            updated_at = now()
        WHERE id = %s
        """,
        (status.value, attempts, json.dumps(result), work_item_id),
    )


def requeue_failed(cur: PgCursor, *, work_item_id: int) -> bool:
    """failed -> pending with attempts reset. False unless it was failed."""
    cur.execute(
        """
        UPDATE work_items
        SET status = 'pending', attempts = 0, updated_at = now()
        WHERE id = %s AND status = 'failed'
        """,
        (work_item_id,),
    )
    return cur.rowcount > 0


def count_pending(cur: PgCursor) -> int:
    cur.execute("SELECT count(*) FROM work_items WHERE status = 'pending'")
    return cur.fetchone()[0]


def get_work_item(cur: PgCursor, *, work_item_id: int) -> WorkItem | None:
    cur.execute(f"SELECT {_COLUMNS} FROM work_items WHERE id = %s", (work_item_id,))
    row = cur.fetchone()
    return _row_to_work_item(row) if row else None


def list_for_reservation(cur: PgCursor, *, reservation_id: int) -> list[WorkItem]:
    cur.execute(
        f"""
        SELECT {_COLUMNS}
        FROM work_items
        WHERE reservation_id = %s
        ORDER BY created_at ASC, id ASC
        """,
        (reservation_id,),
    )
    return [_row_to_work_item(row) for row in cur.fetchall()]


class PgWorkItemStore:
    def create(self, item: NewWorkItem, *, max_attempts: int) -> bool:
        with ambient_txn() as cur:
            return insert_work_item(cur, item=item, max_attempts=max_attempts)

    def list_pending(self, limit: int) -> list[WorkItem]:
        with ambient_txn() as cur:
            return select_pending(cur, limit=limit)

    def try_claim(self, work_item_id: int) -> bool:
        with ambient_txn() as cur:
            return claim_work_item(cur, work_item_id=work_item_id)

    def complete(self, work_item_id: int, result: dict[str, Any]) -> None:
        with ambient_txn() as cur:
            mark_completed(cur, work_item_id=work_item_id, result=result)

    def record_failure(
        self,
        work_item_id: int,
        *,
        attempts: int,
        status: WorkItemStatus,
        result: dict[str, Any],
    ) -> None:
        with ambient_txn() as cur:
            mark_failure(
                cur,
                work_item_id=work_item_id,
                attempts=attempts,
                status=status,
                result=result,
            )

    def try_requeue_failed(self, work_item_id: int) -> bool:
        with ambient_txn() as cur:
            return requeue_failed(cur, work_item_id=work_item_id)

    def count_pending(self) -> int:
        with ambient_txn() as cur:
            return count_pending(cur)

    def get(self, work_item_id: int) -> WorkItem | None:
        with ambient_txn() as cur:
            return get_work_item(cur, work_item_id=work_item_id)

    def list_for_reservation(self, reservation_id: int) -> list[WorkItem]:
        with ambient_txn() as cur:
            return list_for_reservation(cur, reservation_id=reservation_id)
