"""Cart pricing: catalog resources to pre-discount checkout lines."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from rentally.infra.time import rental_days

from .discounts import CheckoutLine, allocate_discount
from .models import ChargeModel, LineItemSnapshot, MoneySnapshot, Resource, TimeUnit


class CartError(ValueError):
    """The selection cannot be priced (bad quantity, too short, ...)."""


@dataclass(frozen=True)
class CartSelection:
    resource: Resource
    quantity: int = 1


@dataclass(frozen=True)
class CartTotals:
    subtotal_cents: int
    discount_cents: int
    total_cents: int
    discount_percentage: Decimal
    lines: list[CheckoutLine]
    snapshots: tuple[LineItemSnapshot, ...]

    def money(self) -> MoneySnapshot:
        return MoneySnapshot(
            subtotal_cents=self.subtotal_cents,
            discount_cents=self.discount_cents,
            total_cents=self.total_cents,
            discount_percentage=self.discount_percentage,
        )


def time_multiplier(time_unit: TimeUnit, *, days: int, hours: int | None) -> int:
    if time_unit == TimeUnit.DAY:
        return days
    if time_unit == TimeUnit.HOUR:
        if hours is None or hours < 1:
            raise CartError("hourly items need a positive number of hours")
        return hours
    return 1


def _snapshot(selection: CartSelection, *, is_primary: bool) -> LineItemSnapshot:
    resource = selection.resource
    return LineItemSnapshot(
        item_key=resource.code,
        name=resource.name,
        quantity=selection.quantity,
        unit_price_cents=resource.unit_price_cents,
        charge_model=resource.charge_model,
        time_unit=resource.time_unit,
        is_primary=is_primary,
        resource_id=resource.id,
    )


def build_cart_lines(
    snapshots: tuple[LineItemSnapshot, ...] | list[LineItemSnapshot],
    *,
    days: int,
    hours: int | None = None,
) -> list[CheckoutLine]:
    """Pre-discount checkout lines for a set of line item snapshots.

    PER_BOOKING lines are one flat line; PER_UNIT lines keep their quantity.
    The unit price is multiplied by days, hours or 1 per the time unit.
    """
    lines: list[CheckoutLine] = []
    for item in snapshots:
        unit = item.unit_price_cents * time_multiplier(
            item.time_unit, days=days, hours=hours
        )
        if item.charge_model == ChargeModel.PER_UNIT:
            quantity = item.quantity
        else:
            quantity = 1
        if unit == 0:
            continue
        description = None
        if item.time_unit == TimeUnit.DAY:
            description = f"{days} day{'s' if days != 1 else ''}"
        elif item.time_unit == TimeUnit.HOUR:
            description = f"{hours} hour{'s' if hours != 1 else ''}"
        lines.append(
            CheckoutLine(
                key=item.item_key,
                name=item.name,
                unit_amount_cents=unit,
                quantity=quantity,
                description=description,
            )
        )
    return lines


def compute_cart(
    primary: CartSelection,
    addons: list[CartSelection],
    *,
    start_date: date,
    end_date: date,
    discount_percentage: Decimal = Decimal("0"),
    hours: int | None = None,
) -> CartTotals:
    """Price a primary resource plus add-ons for an inclusive date range.

    Raises:
        CartError: If the selection is invalid.
        PricingInvariantError: If the discounted lines do not add up.
    """
    days = rental_days(start_date, end_date)
    if days < primary.resource.min_days:
        raise CartError(
            f"{primary.resource.name} requires at least {primary.resource.min_days} days"
        )

    seen = {primary.resource.code}
    snapshots = [_snapshot(primary, is_primary=True)]
    for selection in addons:
        if selection.quantity < 1:
            raise CartError(f"invalid quantity for {selection.resource.code}")
        if selection.resource.code in seen:
            raise CartError(f"duplicate item {selection.resource.code}")
        seen.add(selection.resource.code)
        snapshots.append(_snapshot(selection, is_primary=False))

    pre_lines = build_cart_lines(snapshots, days=days, hours=hours)
    subtotal = sum(line.total_cents for line in pre_lines)
    lines = allocate_discount(pre_lines, discount_percentage)
    total = sum(line.total_cents for line in lines)

    return CartTotals(
        subtotal_cents=subtotal,
        discount_cents=subtotal - total,
        total_cents=total,
        discount_percentage=discount_percentage,
        lines=lines,
        snapshots=tuple(snapshots),
    )
