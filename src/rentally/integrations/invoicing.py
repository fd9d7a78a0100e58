"""Invoicing collaborator.

The core hands over reservation facts and gets back the legal invoice
identifiers. The vendor document API sits behind an HTTP proxy; this module
only speaks to that proxy.

Configuration:
- INVOICING_ENABLED: "true" to issue invoices (anything else: skipped)
- INVOICING_API_URL: base URL of the invoicing proxy
- INVOICING_API_KEY: bearer token for the proxy
- INVOICING_TIMEOUT_S: request timeout (default 15)
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Protocol

import requests

from rentally.domain.jobs import RetryableJobError
from rentally.observability.logging import get_logger
from rentally.observability.redaction import safe_log_context

logger = get_logger(__name__)


@dataclass(frozen=True)
class InvoiceLine:
    name: str
    quantity: int
    unit_price_cents: int


@dataclass(frozen=True)
class InvoiceFacts:
    """Everything the invoice needs, in cents."""

    reservation_id: int
    external_payment_id: str
    customer_name: str
    customer_email: str
    tax_id: str | None
    company_name: str | None
    start_date: date
    end_date: date
    subtotal_cents: int
    discount_cents: int
    total_cents: int
    currency: str = "eur"
    lines: list[InvoiceLine] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        data = asdict(self)
        data["start_date"] = self.start_date.isoformat()
        data["end_date"] = self.end_date.isoformat()
        return data


@dataclass(frozen=True)
class InvoiceRecord:
    provider_id: str
    number: str
    pdf_url: str | None = None
    tax_validation_code: str | None = None


class InvoicingClient(Protocol):
    def issue_invoice(self, facts: InvoiceFacts) -> InvoiceRecord | None:
        """Issue the invoice. None means invoicing is disabled."""
        ...


class InvoicingError(Exception):
    """Invoicing proxy rejected the request (not retryable)."""


class HttpInvoicingClient:
    """InvoicingClient calling the invoicing proxy over HTTP."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        enabled: bool | None = None,
        timeout_s: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = (base_url or os.environ.get("INVOICING_API_URL", "")).rstrip("/")
        self._api_key = api_key or os.environ.get("INVOICING_API_KEY", "")
        if enabled is None:
            enabled = os.environ.get("INVOICING_ENABLED", "").lower() == "true"
        self._enabled = enabled
        self._timeout_s = timeout_s or float(os.environ.get("INVOICING_TIMEOUT_S", "15"))
        self._session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def issue_invoice(self, facts: InvoiceFacts) -> InvoiceRecord | None:
        """Issue an invoice for ``facts``.

        The external payment id is sent as the idempotency key so the proxy
        returns the existing document when a retry repeats the call.

        Raises:
            RetryableJobError: On timeouts, connection errors and 5xx.
            InvoicingError: On 4xx or a malformed response.
        """
        if not self._enabled:
            return None
        if not self._base_url:
            raise InvoicingError("INVOICING_API_URL is not configured")

        headers = {
            "Idempotency-Key": f"invoice-{facts.reservation_id}-{facts.external_payment_id}"
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            response = self._session.post(
                f"{self._base_url}/invoices",
                json=facts.to_json(),
                headers=headers,
                timeout=self._timeout_s,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise RetryableJobError(f"invoicing unavailable: {type(e).__name__}") from e

        if response.status_code >= 500:
            raise RetryableJobError(f"invoicing returned {response.status_code}")
        if response.status_code >= 400:
            raise InvoicingError(f"invoicing rejected request: {response.status_code}")

        try:
            body = response.json()
            record = InvoiceRecord(
                provider_id=str(body["provider_id"]),
                number=str(body["number"]),
                pdf_url=body.get("pdf_url"),
                tax_validation_code=body.get("tax_validation_code"),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise InvoicingError("invoicing returned a malformed response") from e

        logger.info(
            "invoice issued",
            extra={
                "extra_fields": safe_log_context(
                    reservation_id=facts.reservation_id,
                    invoice_number=record.number,
                )
            },
        )
        return record
