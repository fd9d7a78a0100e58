"""Checkout session parameters for a reservation.

Pure: no network calls. The Stripe session carries the reservation id in
both metadata and client_reference_id so the webhook can correlate it.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from typing import Any

from .discounts import CheckoutLine


def _short_hash(value: Any) -> str:
    raw = value if isinstance(value, str) else json.dumps(value, sort_keys=True)
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]


def checkout_idempotency_key(
    reservation_id: int,
    *,
    start_date: date,
    end_date: date,
    lines: list[CheckoutLine],
) -> str:
    """Deterministic key for the checkout session of a reservation.

    Same selections give the same key (safe resubmit); changing dates,
    add-ons or amounts gives a new key so a new session is allowed.
    """
    fingerprint = _short_hash(
        {
            "reservation_id": reservation_id,
            "start": start_date.isoformat(),
            "end": end_date.isoformat(),
            "lines": [
                [line.key, line.unit_amount_cents, line.quantity] for line in lines
            ],
        }
    )
    return f"reservation-{reservation_id}-checkout-{fingerprint}"


def build_checkout_session_params(
    *,
    reservation_id: int,
    resource_id: int,
    start_date: date,
    end_date: date,
    lines: list[CheckoutLine],
    customer_email: str,
    currency: str,
    app_base_url: str,
) -> dict[str, Any]:
    """Stripe Checkout Session create params for ``lines``."""
    metadata = {
        "reservation_id": str(reservation_id),
        "resource_id": str(resource_id),
        "start_date": start_date.isoformat(),
        "end_date": end_date.isoformat(),
    }

    line_items = []
    for line in lines:
        product_data: dict[str, Any] = {"name": line.name}
        if line.description:
            product_data["description"] = line.description
        line_items.append(
            {
                "price_data": {
                    "currency": currency,
                    "unit_amount": line.unit_amount_cents,
                    "product_data": product_data,
                },
                "quantity": line.quantity,
            }
        )

    return {
        "mode": "payment",
        "customer_email": customer_email,
        "client_reference_id": str(reservation_id),
        "metadata": metadata,
        "payment_intent_data": {"metadata": metadata},
        "line_items": line_items,
        "success_url": (
            f"{app_base_url}/booking/success"
            f"?session_id={{CHECKOUT_SESSION_ID}}&reservation_id={reservation_id}"
        ),
        "cancel_url": f"{app_base_url}/machine/{resource_id}?checkout=cancelled",
    }
