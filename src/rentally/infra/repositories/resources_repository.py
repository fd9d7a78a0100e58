"""Resources repository - read access to the rental catalog.

Uses raw SQL with psycopg2 (no ORM).
"""

from psycopg2.extensions import cursor as PgCursor

from rentally.domain.models import ChargeModel, Resource, TimeUnit

_COLUMNS = """
    id, code, name, category, unit_price_cents,
    charge_model, time_unit, item_type, min_days
"""


def _row_to_resource(row: tuple) -> Resource:
    return Resource(
        id=row[0],
        code=row[1],
        name=row[2],
        category=row[3],
        unit_price_cents=row[4],
        charge_model=ChargeModel(row[5]),
        time_unit=TimeUnit(row[6]),
        is_addon=row[7] == "ADDON",
        min_days=row[8],
    )


def get_resource(cur: PgCursor, *, resource_id: int) -> Resource | None:
    cur.execute(f"SELECT {_COLUMNS} FROM resources WHERE id = %s", (resource_id,))
    row = cur.fetchone()
    return _row_to_resource(row) if row else None


def get_resources_by_code(cur: PgCursor, *, codes: list[str]) -> dict[str, Resource]:
    """Load resources keyed by code. Unknown codes are absent from the result."""
    if not codes:
        return {}
    cur.execute(
        f"SELECT {_COLUMNS} FROM resources WHERE code = ANY(%s)",
        (list(codes),),
    )
    return {resource.code: resource for resource in map(_row_to_resource, cur.fetchall())}
