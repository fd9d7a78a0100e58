"""Company discounts repository - read-only lookup by business tax id.

Uses raw SQL with psycopg2 (no ORM).
"""

from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor


def get_active_discount(cur: PgCursor, *, tax_id: str) -> tuple[Decimal, str | None] | None:
    """Active discount for a normalized 9-digit tax id.

    Returns:
        Tuple of (discount_percentage, company_name) or None.
    """
    cur.execute(
        """
        SELECT discount_percentage, company_name
        FROM company_discounts
        WHERE tax_id = %s AND active
        """,
        (tax_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return (Decimal(row[0]), row[1])
