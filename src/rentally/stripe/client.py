"""Stripe Checkout sessions for reservations.

The only module that calls the Stripe API for outbound requests; domain code
builds plain param dicts (``rentally.domain.checkout``) and never imports
``stripe``. Only session and reservation ids are logged because the params
carry the customer email.
"""

from __future__ import annotations

import os
from typing import Any

import stripe

from rentally.observability.logging import get_logger
from rentally.observability.redaction import id_prefix, safe_log_context

logger = get_logger(__name__)


class StripeClient:
    """Creates Checkout sessions with a caller-supplied idempotency key.

    ``stripe.StripeError`` subclasses propagate unchanged; the checkout route
    turns them into a 502.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        sdk: stripe.StripeClient | None = None,
    ) -> None:
        """
        Raises:
            RuntimeError: If neither ``sdk``, ``api_key`` nor
                STRIPE_SECRET_KEY is available.
        """
        if sdk is None:
            api_key = api_key or os.environ.get("STRIPE_SECRET_KEY")
            if not api_key:
                raise RuntimeError(
                    "Stripe API key not provided. "
                    "Set STRIPE_SECRET_KEY or pass api_key parameter."
                )
            sdk = stripe.StripeClient(api_key)
        self._sdk = sdk

    def create_checkout_session(
        self,
        *,
        params: dict[str, Any],
        idempotency_key: str,
    ) -> dict[str, Any]:
        """Create the session; a repeated key returns the original session.

        Returns:
            Dict with session_id, url and status.
        """
        session = self._sdk.v1.checkout.sessions.create(
            params=params,
            options={"idempotency_key": idempotency_key},
        )

        logger.info(
            "checkout session created",
            extra={
                "extra_fields": safe_log_context(
                    session_id_prefix=id_prefix(session.id, 12),
                    reservation_id=params.get("client_reference_id"),
                )
            },
        )
        return {"session_id": session.id, "url": session.url, "status": session.status}
