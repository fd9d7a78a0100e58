"""Transactional email collaborator.

Templates are rendered by the mail service; the core only sends a template
name and its data.

Configuration:
- MAILER_API_URL: base URL of the mail service
- MAILER_API_KEY: bearer token
- MAILER_TIMEOUT_S: request timeout (default 10)
"""

from __future__ import annotations

import os
from typing import Any, Protocol

import requests

from rentally.domain.jobs import RetryableJobError
from rentally.observability.logging import get_logger
from rentally.observability.redaction import safe_log_context

logger = get_logger(__name__)

TEMPLATE_BOOKING_CONFIRMED_CUSTOMER = "booking_confirmed_customer"
TEMPLATE_BOOKING_CONFIRMED_INTERNAL = "booking_confirmed_internal"
TEMPLATE_INVOICE_READY = "invoice_ready"


class Mailer(Protocol):
    def send(self, template: str, data: dict[str, Any]) -> None: ...


class MailerError(Exception):
    """Mail service rejected the message (not retryable)."""


class HttpMailer:
    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout_s: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = (base_url or os.environ.get("MAILER_API_URL", "")).rstrip("/")
        self._api_key = api_key or os.environ.get("MAILER_API_KEY", "")
        self._timeout_s = timeout_s or float(os.environ.get("MAILER_TIMEOUT_S", "10"))
        self._session = session or requests.Session()

    def send(self, template: str, data: dict[str, Any]) -> None:
        """Send ``template`` with ``data``.

        Raises:
            RetryableJobError: On timeouts, connection errors and 5xx.
            MailerError: On 4xx or missing configuration.
        """
        if not self._base_url:
            raise MailerError("MAILER_API_URL is not configured")

        headers = {}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            response = self._session.post(
                f"{self._base_url}/send",
                json={"template": template, "data": data},
                headers=headers,
                timeout=self._timeout_s,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise RetryableJobError(f"mailer unavailable: {type(e).__name__}") from e

        if response.status_code >= 500:
            raise RetryableJobError(f"mailer returned {response.status_code}")
        if response.status_code >= 400:
            raise MailerError(f"mailer rejected message: {response.status_code}")

        logger.info(
            "email sent",
            extra={
                "extra_fields": safe_log_context(
                    template=template, reservation_id=data.get("reservation_id")
                )
            },
        )
