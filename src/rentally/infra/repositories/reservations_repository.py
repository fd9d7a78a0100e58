"""Reservations repository - persistence for reservations and line items.

Uses raw SQL with psycopg2 (no ORM).
Status transitions are conditional updates on status = 'PENDING'; the
overlap invariant is enforced by the reservations_no_overlap exclusion
constraint.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal

from psycopg2 import errors as pg_errors
from psycopg2.extensions import cursor as PgCursor

from rentally.domain.models import (
    ChargeModel,
    LineItemSnapshot,
    Reservation,
    ReservationRequest,
    ReservationSource,
    ReservationStatus,
    TimeUnit,
)
from rentally.domain.ports import HoldResult
from rentally.domain.reservations import OverlapError
from rentally.infra.db import ambient_txn

_RESERVATION_COLUMNS = """
    id, resource_id, start_date, end_date, status, hold_expires_at,
    customer_name, customer_email, total_cents, customer_phone,
    customer_tax_id, billing_is_business, billing_company_name,
    billing_tax_id, subtotal_cents, discount_cents, discount_percentage,
    external_payment_id, invoice_provider_id, invoice_number,
    invoice_pdf_url, invoice_tax_validation_code, source
"""


def find_pending_hold(
    cur: PgCursor,
    *,
    resource_id: int,
    start_date: date,
    end_date: date,
    customer_email: str,
) -> tuple[int, datetime] | None:
    """Find a PENDING hold with the exact same resource, dates and email.

    Locks the row so concurrent callers that skipped the advisory lock
    still serialize on it.

    Returns:
        Tuple of (reservation_id, hold_expires_at) or None.
    """
    cur.execute(
        """
        SELECT id, hold_expires_at
        FROM reservations
        WHERE resource_id = %s
          AND start_date = %s
          AND end_date = %s
          AND lower(customer_email) = lower(%s)
          AND status = 'PENDING'
        ORDER BY id
        LIMIT 1
        FOR UPDATE
        """,
        (resource_id, start_date, end_date, customer_email),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return (row[0], row[1])


def extend_hold(
    cur: PgCursor,
    *,
    reservation_id: int,
    request: ReservationRequest,
    hold_expires_at: datetime,
) -> datetime:
    """Push hold_expires_at forward (never backward) and refresh the snapshot.

    Returns:
        The stored hold_expires_at after the update.
    """
    money = request.money
    billing = request.billing
    cur.execute(
        """
        UPDATE reservations
        SET hold_expires_at = GREATEST(COALESCE(hold_expires_at, %s), %s),
            customer_name = %s,
            customer_phone = %s,
            customer_tax_id = %s,
            billing_is_business = %s,
            billing_company_name = %s,
            billing_tax_id = %s,
            subtotal_cents = %s,
            discount_cents = %s,
            discount_percentage = %s,
            total_cents = %s,
            updated_at = now()
        WHERE id = %s AND status = 'PENDING'
        RETURNING hold_expires_at
        """,
        (
            hold_expires_at,
            hold_expires_at,
            request.customer.name,
            request.customer.phone,
            request.customer.tax_id,
            billing.is_business,
            billing.company_name,
            billing.tax_id,
            money.subtotal_cents,
            money.discount_cents,
            money.discount_percentage,
            money.total_cents,
            reservation_id,
        ),
    )
    return cur.fetchone()[0]


def insert_pending(
    cur: PgCursor,
    *,
    request: ReservationRequest,
    hold_expires_at: datetime,
) -> int:
    """Insert a new PENDING reservation.

    Raises:
        OverlapError: If the exclusion constraint rejects the range.
    """
    money = request.money
    billing = request.billing
    try:
        cur.execute(
            """
            INSERT INTO reservations (
                resource_id, start_date, end_date, status, hold_expires_at,
                customer_name, customer_email, customer_phone, customer_tax_id,
                billing_is_business, billing_company_name, billing_tax_id,
                subtotal_cents, discount_cents, discount_percentage,
                total_cents, source
            )
            VALUES (%s, %s, %s, 'PENDING', %s, %s, %s, %s, %s,
                    %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                request.resource_id,
                request.start_date,
                request.end_date,
                hold_expires_at,
                request.customer.name,
                request.customer.email,
                request.customer.phone,
                request.customer.tax_id,
                billing.is_business,
                billing.company_name,
                billing.tax_id,
                money.subtotal_cents,
                money.discount_cents,
                money.discount_percentage,
                money.total_cents,
                request.source.value,
            ),
        )
    except pg_errors.ExclusionViolation as e:
        raise OverlapError(
            request.resource_id, request.start_date, request.end_date
        ) from e
    return cur.fetchone()[0]


def replace_line_items(
    cur: PgCursor,
    *,
    reservation_id: int,
    line_items: tuple[LineItemSnapshot, ...] | list[LineItemSnapshot],
) -> None:
    """Replace the line item snapshot of a PENDING reservation."""
    cur.execute(
        "DELETE FROM reservation_line_items WHERE reservation_id = %s",
        (reservation_id,),
    )
    for item in line_items:
        cur.execute(
            """
            INSERT INTO reservation_line_items (
                reservation_id, item_key, resource_id, name, quantity,
                unit_price_cents, charge_model, time_unit, is_primary
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                reservation_id,
                item.item_key,
                item.resource_id,
                item.name,
                item.quantity,
                item.unit_price_cents,
                item.charge_model.value,
                item.time_unit.value,
                item.is_primary,
            ),
        )


def promote_pending(
    cur: PgCursor,
    *,
    reservation_id: int,
    external_payment_id: str | None,
) -> bool:
    """PENDING -> CONFIRMED. Returns True if this call applied the transition."""
    cur.execute(
        """
        UPDATE reservations
        SET status = 'CONFIRMED',
            external_payment_id = COALESCE(%s, external_payment_id),
            hold_expires_at = NULL,
            updated_at = now()
        WHERE id = %s AND status = 'PENDING'
        RETURNING id
        """,
        (external_payment_id, reservation_id),
    )
    return cur.fetchone() is not None


def cancel_pending(cur: PgCursor, *, reservation_id: int) -> bool:
    """PENDING -> CANCELLED. Returns True if this call applied the transition."""
    cur.execute(
        """
        UPDATE reservations
        SET status = 'CANCELLED', updated_at = now()
        WHERE id = %s AND status = 'PENDING'
        RETURNING id
        """,
        (reservation_id,),
    )
    return cur.fetchone() is not None


def cancel_expired(cur: PgCursor, *, cutoff: datetime) -> list[int]:
    """Cancel every PENDING hold that expired before ``cutoff``.

    Returns:
        Ids of the reservations this call cancelled.
    """
    cur.execute(
        """
        UPDATE reservations
        SET status = 'CANCELLED', updated_at = now()
        WHERE status = 'PENDING'
          AND hold_expires_at IS NOT NULL
          AND hold_expires_at < %s
        RETURNING id
        """,
        (cutoff,),
    )
    return sorted(row[0] for row in cur.fetchall())


def update_invoice_fields(
    cur: PgCursor,
    *,
    reservation_id: int,
    provider_id: str,
    number: str,
    pdf_url: str | None,
    tax_validation_code: str | None,
) -> None:
    cur.execute(
        """
        UPDATE reservations
        SET invoice_provider_id = %s,
            invoice_number = %s,
            invoice_pdf_url = %s,
            invoice_tax_validation_code = %s,
            updated_at = now()
        WHERE id = %s
        """,
        (provider_id, number, pdf_url, tax_validation_code, reservation_id),
    )


def _row_to_reservation(row: tuple) -> Reservation:
    return Reservation(
        id=row[0],
        resource_id=row[1],
        start_date=row[2],
        end_date=row[3],
        status=ReservationStatus(row[4]),
        hold_expires_at=row[5],
        customer_name=row[6],
        customer_email=row[7],
        total_cents=row[8],
        customer_phone=row[9],
        customer_tax_id=row[10],
        billing_is_business=bool(row[11]),
        billing_company_name=row[12],
        billing_tax_id=row[13],
        subtotal_cents=row[14],
        discount_cents=row[15],
        discount_percentage=Decimal(row[16] or 0),
        external_payment_id=row[17],
        invoice_provider_id=row[18],
        invoice_number=row[19],
        invoice_pdf_url=row[20],
        invoice_tax_validation_code=row[21],
        source=ReservationSource(row[22]),
    )


def get_reservation(cur: PgCursor, *, reservation_id: int) -> Reservation | None:
    """Load a reservation with its line items, or None."""
    cur.execute(
        f"SELECT {_RESERVATION_COLUMNS} FROM reservations WHERE id = %s",
        (reservation_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    reservation = _row_to_reservation(row)

    cur.execute(
        """
        SELECT item_key, name, quantity, unit_price_cents,
               charge_model, time_unit, is_primary, resource_id
        FROM reservation_line_items
        WHERE reservation_id = %s
        ORDER BY is_primary DESC, item_key ASC
        """,
        (reservation_id,),
    )
    reservation.line_items = [
        LineItemSnapshot(
            item_key=r[0],
            name=r[1],
            quantity=r[2],
            unit_price_cents=r[3],
            charge_model=ChargeModel(r[4]),
            time_unit=TimeUnit(r[5]),
            is_primary=r[6],
            resource_id=r[7],
        )
        for r in cur.fetchall()
    ]
    return reservation


class PgReservationStore:
    """ReservationStore backed by PostgreSQL.

    Every method joins the ambient transaction, so calls made inside
    PgAdvisoryLock.with_resource_lock share the lock's transaction.
    """

    def create_or_reuse_pending(
        self,
        request: ReservationRequest,
        *,
        now: datetime,
        hold_window: timedelta,
    ) -> HoldResult:
        hold_expires_at = now + hold_window
        with ambient_txn() as cur:
            existing = find_pending_hold(
                cur,
                resource_id=request.resource_id,
                start_date=request.start_date,
                end_date=request.end_date,
                customer_email=request.customer.email,
            )
            if existing is not None:
                reservation_id, _ = existing
                stored_expiry = extend_hold(
                    cur,
                    reservation_id=reservation_id,
                    request=request,
                    hold_expires_at=hold_expires_at,
                )
                created = False
            else:
                reservation_id = insert_pending(
                    cur, request=request, hold_expires_at=hold_expires_at
                )
                stored_expiry = hold_expires_at
                created = True

            replace_line_items(
                cur, reservation_id=reservation_id, line_items=request.line_items
            )
        return HoldResult(reservation_id, created, stored_expiry)

    def find_pending(self, request: ReservationRequest) -> HoldResult | None:
        with ambient_txn() as cur:
            existing = find_pending_hold(
                cur,
                resource_id=request.resource_id,
                start_date=request.start_date,
                end_date=request.end_date,
                customer_email=request.customer.email,
            )
        if existing is None:
            return None
        return HoldResult(existing[0], False, existing[1])

    def try_promote(self, reservation_id: int, external_payment_id: str | None) -> bool:
        with ambient_txn() as cur:
            return promote_pending(
                cur,
                reservation_id=reservation_id,
                external_payment_id=external_payment_id,
            )

    def try_cancel(self, reservation_id: int) -> bool:
        with ambient_txn() as cur:
            return cancel_pending(cur, reservation_id=reservation_id)

    def get(self, reservation_id: int) -> Reservation | None:
        with ambient_txn() as cur:
            return get_reservation(cur, reservation_id=reservation_id)

    def expire_overdue(self, cutoff: datetime) -> list[int]:
        with ambient_txn() as cur:
            return cancel_expired(cur, cutoff=cutoff)

    def record_invoice(
        self,
        reservation_id: int,
        *,
        provider_id: str,
        number: str,
        pdf_url: str | None,
        tax_validation_code: str | None,
    ) -> None:
        with ambient_txn() as cur:
            update_invoice_fields(
                cur,
                reservation_id=reservation_id,
                provider_id=provider_id,
                number=number,
                pdf_url=pdf_url,
                tax_validation_code=tax_validation_code,
            )
