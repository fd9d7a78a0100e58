"""Side-effect handlers for each work item type."""

from __future__ import annotations

from typing import Any, Callable

from rentally.infra.settings import Settings
from rentally.integrations.invoicing import InvoiceFacts, InvoiceLine, InvoicingClient
from rentally.integrations.mailer import (
    TEMPLATE_BOOKING_CONFIRMED_CUSTOMER,
    TEMPLATE_BOOKING_CONFIRMED_INTERNAL,
    TEMPLATE_INVOICE_READY,
    Mailer,
)

from .jobs import IssueInvoicePayload, JobOutcome, JobPayload
from .models import NewWorkItem, Reservation, WorkItem, WorkItemType
from .ports import ReservationStore


class ReservationNotFoundError(Exception):
    """Work item points at a reservation that does not exist."""


def _mail_data(reservation: Reservation) -> dict[str, Any]:
    return {
        "reservation_id": reservation.id,
        "resource_id": reservation.resource_id,
        "customer_name": reservation.customer_name,
        "customer_email": reservation.customer_email,
        "start_date": reservation.start_date.isoformat(),
        "end_date": reservation.end_date.isoformat(),
        "subtotal_cents": reservation.subtotal_cents,
        "discount_cents": reservation.discount_cents,
        "total_cents": reservation.total_cents,
        "invoice_number": reservation.invoice_number,
        "invoice_pdf_url": reservation.invoice_pdf_url,
    }


def invoice_facts(reservation: Reservation, external_payment_id: str, currency: str) -> InvoiceFacts:
    return InvoiceFacts(
        reservation_id=reservation.id,
        external_payment_id=external_payment_id,
        customer_name=reservation.customer_name,
        customer_email=reservation.customer_email,
        tax_id=reservation.invoice_tax_id,
        company_name=reservation.billing_company_name if reservation.billing_is_business else None,
        start_date=reservation.start_date,
        end_date=reservation.end_date,
        subtotal_cents=reservation.subtotal_cents,
        discount_cents=reservation.discount_cents,
        total_cents=reservation.total_cents,
        currency=currency,
        lines=[
            InvoiceLine(item.name, item.quantity, item.unit_price_cents)
            for item in reservation.line_items
        ],
    )


class ReservationJobExecutor:
    """Dispatch table from work item type to handler.

    Handlers raise to signal failure; the queue owns attempts and retries.
    """

    def __init__(
        self,
        *,
        reservations: ReservationStore,
        invoicing: InvoicingClient,
        mailer: Mailer,
        settings: Settings,
    ) -> None:
        self._reservations = reservations
        self._invoicing = invoicing
        self._mailer = mailer
        self._settings = settings
        self._handlers: dict[WorkItemType, Callable[[Reservation, JobPayload], JobOutcome]] = {
            WorkItemType.ISSUE_INVOICE: self._issue_invoice,
            WorkItemType.SEND_CUSTOMER_NOTIFICATION: self._notify_customer,
            WorkItemType.SEND_INTERNAL_NOTIFICATION: self._notify_internal,
            WorkItemType.SEND_INVOICE_READY: self._notify_invoice_ready,
        }

    def execute(self, item: WorkItem, payload: JobPayload) -> JobOutcome:
        reservation = self._reservations.get(item.reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(f"reservation {item.reservation_id} not found")
        return self._handlers[item.type](reservation, payload)

    def _issue_invoice(self, reservation: Reservation, payload: JobPayload) -> JobOutcome:
        if not isinstance(payload, IssueInvoicePayload):
            raise TypeError(
                f"issue_invoice expects IssueInvoicePayload, got {type(payload).__name__}"
            )
        follow_up = (NewWorkItem(reservation.id, WorkItemType.SEND_INVOICE_READY, {}),)

        # Issued by an earlier attempt whose completion did not commit
        if reservation.invoice_provider_id:
            return JobOutcome(
                {"invoice_number": reservation.invoice_number, "reused": True},
                follow_up,
            )

        record = self._invoicing.issue_invoice(
            invoice_facts(reservation, payload.external_payment_id, self._settings.currency)
        )
        if record is None:
            return JobOutcome({"skipped": True})

        self._reservations.record_invoice(
            reservation.id,
            provider_id=record.provider_id,
            number=record.number,
            pdf_url=record.pdf_url,
            tax_validation_code=record.tax_validation_code,
        )
        return JobOutcome({"invoice_number": record.number}, follow_up)

    def _notify_customer(self, reservation: Reservation, payload: JobPayload) -> JobOutcome:
        self._mailer.send(
            TEMPLATE_BOOKING_CONFIRMED_CUSTOMER,
            {"to": reservation.customer_email, **_mail_data(reservation)},
        )
        return JobOutcome({"sent": True})

    def _notify_internal(self, reservation: Reservation, payload: JobPayload) -> JobOutcome:
        recipient = self._settings.ops_notification_email
        if not recipient:
            return JobOutcome({"skipped": True})
        self._mailer.send(
            TEMPLATE_BOOKING_CONFIRMED_INTERNAL,
            {"to": recipient, **_mail_data(reservation)},
        )
        return JobOutcome({"sent": True})

    def _notify_invoice_ready(self, reservation: Reservation, payload: JobPayload) -> JobOutcome:
        self._mailer.send(
            TEMPLATE_INVOICE_READY,
            {"to": reservation.customer_email, **_mail_data(reservation)},
        )
        return JobOutcome({"sent": True})
