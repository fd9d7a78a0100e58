"""Operator routes - direct bookings and work item requeue."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from rentally.api.auth import CurrentOperator, get_current_operator
from rentally.api.deps import lock_dep, observer_for, settings_dep, stores_dep
from rentally.api.errors import lock_timeout_response, rejection_response
from rentally.domain.jobs import requeue_failed
from rentally.domain.models import (
    Customer,
    MoneySnapshot,
    ReservationRequest,
    ReservationSource,
)
from rentally.domain.ports import LockPort, Stores
from rentally.domain.reservations import Rejected, create_operator_booking
from rentally.infra.locks import LockTimeoutError
from rentally.infra.settings import Settings
from rentally.observability.correlation import get_correlation_id
from rentally.observability.logging import get_logger
from rentally.observability.redaction import safe_log_context

router = APIRouter(prefix="/ops", tags=["ops"])

logger = get_logger(__name__)


class OperatorBookingRequest(BaseModel):
    resource_id: int = Field(gt=0)
    start_date: date
    end_date: date
    customer_name: str | None = Field(default=None, max_length=200)
    customer_email: str | None = Field(default=None, max_length=320)
    customer_phone: str | None = Field(default=None, max_length=40)


@router.post("/reservations")
def create_booking(
    body: OperatorBookingRequest,
    operator: CurrentOperator = Depends(get_current_operator),
    stores: Stores = Depends(stores_dep),
    lock: LockPort = Depends(lock_dep),
    settings: Settings = Depends(settings_dep),
) -> JSONResponse:
    """Create a confirmed booking on behalf of the operations team.

    Lead time does not apply and nothing is charged. An identical customer
    hold is promoted instead of duplicated.
    """
    if body.start_date > body.end_date:
        raise HTTPException(status_code=422, detail="start_date must not be after end_date")

    # Operator bookings without a customer email are keyed to the operator
    email = body.customer_email or operator.email or f"operator-{operator.id}@ops.invalid"
    request = ReservationRequest(
        resource_id=body.resource_id,
        start_date=body.start_date,
        end_date=body.end_date,
        customer=Customer(
            name=body.customer_name or operator.name or "Operations",
            email=email,
            phone=body.customer_phone,
        ),
        money=MoneySnapshot(subtotal_cents=0, discount_cents=0, total_cents=0),
        source=ReservationSource.OPERATOR,
    )

    try:
        result = create_operator_booking(
            request,
            store=stores.reservations,
            lock=lock,
            settings=settings,
            observe=observer_for(logger),
        )
    except LockTimeoutError:
        return lock_timeout_response()

    if isinstance(result, Rejected):
        return rejection_response(result)

    logger.info(
        "operator booking created",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                operator_id=operator.id,
                reservation_id=result.reservation_id,
            )
        },
    )
    return JSONResponse(
        status_code=201,
        content={"ok": True, "reservation_id": result.reservation_id, "status": "CONFIRMED"},
    )


@router.post("/work-items/{work_item_id}/requeue")
def requeue_work_item(
    work_item_id: int,
    operator: CurrentOperator = Depends(get_current_operator),
    stores: Stores = Depends(stores_dep),
) -> JSONResponse:
    """Put a failed work item back in the queue with a fresh attempt budget."""
    if requeue_failed(work_item_id, store=stores.work_items, observe=observer_for(logger)):
        return JSONResponse(status_code=200, content={"ok": True, "status": "pending"})

    item = stores.work_items.get(work_item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Work item not found")
    return JSONResponse(
        status_code=409,
        content={"ok": False, "error": "not_failed", "status": item.status.value},
    )
