"""Domain records shared by the ledger, reconciliation and job queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


ACTIVE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


class ChargeModel(str, Enum):
    """Flat per reservation, or multiplied by the selected quantity."""

    PER_BOOKING = "PER_BOOKING"
    PER_UNIT = "PER_UNIT"


class TimeUnit(str, Enum):
    DAY = "DAY"
    HOUR = "HOUR"
    NONE = "NONE"


class ReservationSource(str, Enum):
    CUSTOMER = "customer"
    OPERATOR = "operator"


@dataclass(frozen=True)
class Resource:
    """A rentable machine or add-on as configured in the catalog."""

    id: int
    code: str
    name: str
    category: str | None
    unit_price_cents: int
    charge_model: ChargeModel = ChargeModel.PER_BOOKING
    time_unit: TimeUnit = TimeUnit.DAY
    is_addon: bool = False
    min_days: int = 1


@dataclass(frozen=True)
class LineItemSnapshot:
    """One priced component of a reservation, frozen at hold time."""

    item_key: str
    name: str
    quantity: int
    unit_price_cents: int
    charge_model: ChargeModel
    time_unit: TimeUnit
    is_primary: bool = False
    resource_id: int | None = None


@dataclass(frozen=True)
class Customer:
    name: str
    email: str
    phone: str | None = None
    tax_id: str | None = None


@dataclass(frozen=True)
class Billing:
    is_business: bool = False
    company_name: str | None = None
    tax_id: str | None = None


@dataclass(frozen=True)
class MoneySnapshot:
    """Totals stored with the hold. All values are in cents."""

    subtotal_cents: int
    discount_cents: int
    total_cents: int
    discount_percentage: Decimal = Decimal("0")


@dataclass(frozen=True)
class ReservationRequest:
    """Everything needed to place (or refresh) a hold."""

    resource_id: int
    start_date: date
    end_date: date
    customer: Customer
    money: MoneySnapshot
    resource_category: str | None = None
    billing: Billing = field(default_factory=Billing)
    line_items: tuple[LineItemSnapshot, ...] = ()
    source: ReservationSource = ReservationSource.CUSTOMER

    def __post_init__(self) -> None:
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")


@dataclass
class Reservation:
    id: int
    resource_id: int
    start_date: date
    end_date: date
    status: ReservationStatus
    hold_expires_at: datetime | None
    customer_name: str
    customer_email: str
    total_cents: int
    customer_phone: str | None = None
    customer_tax_id: str | None = None
    billing_is_business: bool = False
    billing_company_name: str | None = None
    billing_tax_id: str | None = None
    subtotal_cents: int = 0
    discount_cents: int = 0
    discount_percentage: Decimal = Decimal("0")
    external_payment_id: str | None = None
    invoice_provider_id: str | None = None
    invoice_number: str | None = None
    invoice_pdf_url: str | None = None
    invoice_tax_validation_code: str | None = None
    source: ReservationSource = ReservationSource.CUSTOMER
    line_items: list[LineItemSnapshot] = field(default_factory=list)

    def overlaps(self, start: date, end: date) -> bool:
        """Inclusive range intersection."""
        return self.start_date <= end and start <= self.end_date

    @property
    def invoice_tax_id(self) -> str | None:
        """Tax id printed on the invoice: business first, then personal."""
        if self.billing_is_business and self.billing_tax_id:
            return self.billing_tax_id
        return self.customer_tax_id


class WorkItemType(str, Enum):
    ISSUE_INVOICE = "issue_invoice"
    SEND_CUSTOMER_NOTIFICATION = "send_customer_notification"
    SEND_INTERNAL_NOTIFICATION = "send_internal_notification"
    SEND_INVOICE_READY = "send_invoice_ready"


class WorkItemStatus(str, Enum):
    PENDING = "pending"
    CLAIMED = "claimed"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class WorkItem:
    id: int
    reservation_id: int
    type: WorkItemType
    status: WorkItemStatus
    attempts: int
    max_attempts: int
    payload: dict[str, Any] = field(default_factory=dict)
    result: dict[str, Any] | None = None
    created_at: datetime | None = None
    processed_at: datetime | None = None


@dataclass(frozen=True)
class NewWorkItem:
    """A work item to create (idempotently) for a reservation."""

    reservation_id: int
    type: WorkItemType
    payload: dict[str, Any] = field(default_factory=dict)
