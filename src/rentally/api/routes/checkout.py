"""Checkout route - price the cart, place the hold, open a Stripe session."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import stripe
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from rentally.api.deps import (
    lock_dep,
    observer_for,
    settings_dep,
    stores_dep,
    stripe_client_dep,
)
from rentally.api.errors import (
    lock_timeout_response,
    pricing_error_response,
    rejection_response,
)
from rentally.domain.checkout import build_checkout_session_params, checkout_idempotency_key
from rentally.domain.discounts import PricingInvariantError, normalize_tax_id
from rentally.domain.models import Billing, Customer, Resource, ReservationRequest
from rentally.domain.ports import LockPort, Stores
from rentally.domain.pricing import CartError, CartSelection, compute_cart
from rentally.domain.reservations import Rejected, admit_reservation
from rentally.infra.db import txn
from rentally.infra.locks import LockTimeoutError
from rentally.infra.repositories.company_discounts_repository import get_active_discount
from rentally.infra.repositories.resources_repository import (
    get_resource,
    get_resources_by_code,
)
from rentally.infra.settings import Settings
from rentally.observability.correlation import get_correlation_id
from rentally.observability.logging import get_logger
from rentally.observability.redaction import safe_log_context
from rentally.stripe.client import StripeClient

router = APIRouter(tags=["checkout"])

logger = get_logger(__name__)


class CustomerIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    phone: str | None = Field(default=None, max_length=40)
    tax_id: str | None = Field(default=None, max_length=20)


class BillingIn(BaseModel):
    is_business: bool = False
    company_name: str | None = Field(default=None, max_length=200)
    tax_id: str | None = Field(default=None, max_length=20)


class AddonIn(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    quantity: int = Field(default=1, ge=1, le=99)


class CheckoutRequest(BaseModel):
    resource_id: int = Field(gt=0)
    start_date: date
    end_date: date
    customer: CustomerIn
    billing: BillingIn = Field(default_factory=BillingIn)
    addons: list[AddonIn] = Field(default_factory=list)
    hours: int | None = Field(default=None, ge=1)


def _load_resources(
    resource_id: int, addon_codes: list[str]
) -> tuple[Resource | None, dict[str, Resource]]:
    with txn() as cur:
        primary = get_resource(cur, resource_id=resource_id)
        addons = get_resources_by_code(cur, codes=addon_codes)
    return primary, addons


def _company_discount(billing: BillingIn) -> Decimal:
    """Discount for a business tax id; unknown or inactive ids get 0."""
    if not billing.is_business:
        return Decimal("0")
    tax_id = normalize_tax_id(billing.tax_id)
    if tax_id is None:
        return Decimal("0")
    with txn() as cur:
        found = get_active_discount(cur, tax_id=tax_id)
    return found[0] if found else Decimal("0")


@router.post("/checkout")
def create_checkout(
    body: CheckoutRequest,
    stores: Stores = Depends(stores_dep),
    lock: LockPort = Depends(lock_dep),
    settings: Settings = Depends(settings_dep),
    stripe_client: StripeClient = Depends(stripe_client_dep),
) -> JSONResponse:
    """Price the selection, hold the dates and return the payment URL.

    Returns:
        200 with reservation_id and url.
        404 if the resource does not exist.
        409 if the dates overlap an active reservation.
        422 if the selection is invalid or violates lead time.
        500 on a pricing invariant violation ("contact support").
        502 if Stripe is unavailable.
        503 if the resource is busy (Retry-After).
    """
    correlation_id = get_correlation_id()
    if body.start_date > body.end_date:
        raise HTTPException(status_code=422, detail="start_date must not be after end_date")

    addon_codes = [addon.code for addon in body.addons]
    primary, addons_by_code = _load_resources(body.resource_id, addon_codes)
    if primary is None or primary.is_addon:
        raise HTTPException(status_code=404, detail="Resource not found")
    unknown = sorted(set(addon_codes) - set(addons_by_code))
    if unknown:
        raise HTTPException(status_code=422, detail=f"Unknown add-ons: {', '.join(unknown)}")

    try:
        cart = compute_cart(
            CartSelection(primary),
            [CartSelection(addons_by_code[a.code], a.quantity) for a in body.addons],
            start_date=body.start_date,
            end_date=body.end_date,
            discount_percentage=_company_discount(body.billing),
            hours=body.hours,
        )
    except CartError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except PricingInvariantError as e:
        logger.error(
            "pricing invariant violated",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    resource_id=body.resource_id,
                    error=str(e),
                )
            },
        )
        return pricing_error_response(correlation_id)

    request = ReservationRequest(
        resource_id=primary.id,
        resource_category=primary.category,
        start_date=body.start_date,
        end_date=body.end_date,
        customer=Customer(
            name=body.customer.name,
            email=body.customer.email,
            phone=body.customer.phone,
            tax_id=normalize_tax_id(body.customer.tax_id),
        ),
        billing=Billing(
            is_business=body.billing.is_business,
            company_name=body.billing.company_name,
            tax_id=normalize_tax_id(body.billing.tax_id),
        ),
        money=cart.money(),
        line_items=cart.snapshots,
    )

    try:
        admission = admit_reservation(
            request,
            store=stores.reservations,
            lock=lock,
            settings=settings,
            observe=observer_for(logger),
        )
    except LockTimeoutError:
        logger.warning(
            "resource lock timeout",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id, resource_id=body.resource_id
                )
            },
        )
        return lock_timeout_response()

    if isinstance(admission, Rejected):
        return rejection_response(admission)

    params = build_checkout_session_params(
        reservation_id=admission.reservation_id,
        resource_id=primary.id,
        start_date=body.start_date,
        end_date=body.end_date,
        lines=cart.lines,
        customer_email=body.customer.email,
        currency=settings.currency,
        app_base_url=settings.app_base_url,
    )
    idempotency_key = checkout_idempotency_key(
        admission.reservation_id,
        start_date=body.start_date,
        end_date=body.end_date,
        lines=cart.lines,
    )

    try:
        session = stripe_client.create_checkout_session(
            params=params, idempotency_key=idempotency_key
        )
    except stripe.StripeError as e:
        logger.error(
            "stripe checkout session failed",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    reservation_id=admission.reservation_id,
                    error_type=type(e).__name__,
                )
            },
        )
        return JSONResponse(
            status_code=502,
            content={"ok": False, "error": "payment_provider_unavailable"},
        )

    return JSONResponse(
        status_code=200,
        content={
            "ok": True,
            "reservation_id": admission.reservation_id,
            "url": session["url"],
            "hold_expires_at": admission.hold_expires_at.isoformat(),
            "subtotal_cents": cart.subtotal_cents,
            "discount_cents": cart.discount_cents,
            "total_cents": cart.total_cents,
        },
    )
