"""Verification and mapping of Stripe webhook events.

``verify_and_extract`` checks the Stripe-Signature header with the endpoint
secret and reduces the event to a ``StripeWebhookEvent``: which reservation
it concerns and whether its payment succeeded or failed. Nothing here logs
the payload or the signature.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import stripe

from rentally.observability.logging import get_logger

logger = get_logger(__name__)

SUCCEEDED = "succeeded"
FAILED = "failed"

# Stripe event type -> payment outcome; other types are acknowledged and ignored
_OUTCOMES: dict[str, str] = {
    "checkout.session.completed": SUCCEEDED,
    "checkout.session.async_payment_succeeded": SUCCEEDED,
    "payment_intent.succeeded": SUCCEEDED,
    "checkout.session.async_payment_failed": FAILED,
    "checkout.session.expired": FAILED,
    "payment_intent.payment_failed": FAILED,
}


class WebhookError(Exception):
    """A webhook request that must be answered with 400."""


class InvalidSignatureError(WebhookError):
    pass


class InvalidPayloadError(WebhookError):
    pass


@dataclass
class StripeWebhookEvent:
    """What the ledger needs from one Stripe event.

    ``outcome`` is None when the event does not settle a payment.
    """

    event_id: str
    event_type: str
    outcome: str | None
    reservation_id: int | None
    payment_intent_id: str | None


def verify_and_extract(
    payload_bytes: bytes,
    signature_header: str,
    webhook_secret: str,
) -> StripeWebhookEvent:
    """Verify the raw body against Stripe-Signature, then map it.

    Raises:
        InvalidSignatureError: The signature does not match ``webhook_secret``.
        InvalidPayloadError: The body is not a well-formed event.
    """
    try:
        event = stripe.Webhook.construct_event(payload_bytes, signature_header, webhook_secret)
    except stripe.SignatureVerificationError as exc:
        logger.warning("stripe signature rejected")
        raise InvalidSignatureError("Invalid signature") from exc
    except ValueError as exc:
        logger.warning("stripe payload unparseable")
        raise InvalidPayloadError("Invalid payload") from exc
    return map_event(event)


def map_event(event: Any) -> StripeWebhookEvent:
    """Map a parsed Stripe event (dict-like) onto StripeWebhookEvent.

    Raises:
        InvalidPayloadError: If the event id or type is missing.
    """
    event_id = event.get("id")
    event_type = event.get("type")
    if not event_id or not event_type:
        raise InvalidPayloadError("Missing event id or type")

    obj = (event.get("data") or {}).get("object") or {}
    outcome = _OUTCOMES.get(event_type)

    # A completed session paid by a delayed method is settled later by
    # async_payment_succeeded / async_payment_failed.
    if event_type == "checkout.session.completed" and obj.get("payment_status") != "paid":
        outcome = None

    return StripeWebhookEvent(
        event_id=event_id,
        event_type=event_type,
        outcome=outcome,
        reservation_id=_extract_reservation_id(obj),
        payment_intent_id=_extract_payment_intent_id(event_type, obj),
    )


def _extract_reservation_id(obj: dict[str, Any]) -> int | None:
    """Reservation id from metadata, falling back to client_reference_id."""
    metadata = obj.get("metadata") or {}
    for raw in (metadata.get("reservation_id"), obj.get("client_reference_id")):
        if raw is None:
            continue
        try:
            value = int(str(raw).strip())
        except ValueError:
            continue
        if value > 0:
            return value
    return None


def _extract_payment_intent_id(event_type: str, obj: dict[str, Any]) -> str | None:
    if event_type.startswith("payment_intent."):
        return obj.get("id")
    payment_intent = obj.get("payment_intent")
    if isinstance(payment_intent, dict):
        return payment_intent.get("id")
    return payment_intent
