"""Stripe webhook endpoint: payment outcomes into the booking ledger.

The handler answers 200 as soon as the event is durably recorded, or is
recognised as already recorded, even when it names no known reservation.
It answers 5xx only when recording failed, which makes Stripe redeliver.
Invoices and emails are never produced here; reconciliation queues them
and the worker is kicked to pick them up.

Neither the payload nor the signature header is ever logged.
"""

from __future__ import annotations

import os

from fastapi import APIRouter, Depends, Header, Request, Response
from fastapi.responses import JSONResponse

from rentally.api.deps import observer_for, settings_dep, stores_dep, tasks_client_dep
from rentally.domain.payments import PaymentNotification, PaymentOutcome, reconcile_payment
from rentally.domain.ports import Stores
from rentally.infra.settings import Settings
from rentally.observability.correlation import get_correlation_id
from rentally.observability.logging import get_logger
from rentally.observability.redaction import id_prefix, safe_log_context
from rentally.stripe.webhook import (
    InvalidPayloadError,
    InvalidSignatureError,
    StripeWebhookEvent,
    verify_and_extract,
)
from rentally.tasks.client import TasksClient

router = APIRouter(tags=["webhooks"])

logger = get_logger(__name__)


def _ack(status: str) -> JSONResponse:
    return JSONResponse(status_code=200, content={"ok": True, "status": status})


def _as_notification(event: StripeWebhookEvent) -> PaymentNotification:
    return PaymentNotification(
        external_event_id=event.event_id,
        reservation_id=event.reservation_id,
        outcome=PaymentOutcome(event.outcome),
        external_payment_id=event.payment_intent_id,
        event_type=event.event_type,
    )


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(..., alias="Stripe-Signature"),
    stores: Stores = Depends(stores_dep),
    settings: Settings = Depends(settings_dep),
    tasks_client: TasksClient = Depends(tasks_client_dep),
) -> Response:
    """Verify, record and acknowledge one Stripe event.

    Returns:
        200 with the reconcile status ("confirmed", "cancelled", "duplicate",
        "unknown_reservation", "ignored", ...); 400 for a bad signature or
        payload; 500 when the secret is missing or the event was not recorded.
    """
    cid = get_correlation_id()

    secret = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    if not secret:
        logger.error(
            "STRIPE_WEBHOOK_SECRET not configured",
            extra={"extra_fields": safe_log_context(correlationId=cid)},
        )
        return Response(status_code=500, content="server configuration error")

    try:
        event = verify_and_extract(await request.body(), stripe_signature, secret)
    except InvalidSignatureError:
        return Response(status_code=400, content="invalid signature")
    except InvalidPayloadError:
        return Response(status_code=400, content="invalid payload")

    log_fields = {"correlationId": cid, "event_id_prefix": id_prefix(event.event_id)}
    logger.info(
        "stripe event verified",
        extra={"extra_fields": safe_log_context(event_type=event.event_type, **log_fields)},
    )

    if event.outcome is None:
        return _ack("ignored")

    try:
        result = reconcile_payment(
            _as_notification(event),
            stores=stores,
            settings=settings,
            observe=observer_for(logger),
        )
    except Exception:
        logger.exception(
            "stripe event not recorded, awaiting redelivery",
            extra={"extra_fields": safe_log_context(**log_fields)},
        )
        return Response(status_code=500, content="event not recorded")

    if result.first_confirmation and result.reservation_id is not None:
        tasks_client.kick_job_processor(reservation_id=result.reservation_id, correlation_id=cid)

    return _ack(result.status.value)
