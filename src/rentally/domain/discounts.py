"""Cent-exact discount allocation for checkout lines.

allocate_discount spreads a percentage discount across lines so that the
discounted lines sum exactly to round(total * (100 - pct) / 100):

1. Each line gets floor(line_total * (100 - pct) / 100).
2. The cents still missing from the target go, one each, to the lines with
   the largest remainders (ties broken by line key).
3. A line whose new total is not divisible by its quantity is collapsed to
   quantity 1 and its display name records the original quantity.

The function is pure. Any violated invariant raises PricingInvariantError:
a mismatched total must never reach the payment processor.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from decimal import Decimal
from fractions import Fraction

# Largest unit_amount the payment processor accepts, in cents
MAX_UNIT_AMOUNT_CENTS = 99_999_999

_NON_DIGITS = re.compile(r"\D")


class PricingInvariantError(Exception):
    """Pricing produced (or was given) amounts that cannot be charged."""


@dataclass(frozen=True)
class CheckoutLine:
    """One line sent to the payment processor."""

    key: str
    name: str
    unit_amount_cents: int
    quantity: int
    description: str | None = None

    @property
    def total_cents(self) -> int:
        return self.unit_amount_cents * self.quantity


def _as_fraction(pct: int | Decimal | Fraction) -> Fraction:
    if isinstance(pct, float):
        raise PricingInvariantError("discount percentage must not be a float")
    value = Fraction(pct)
    if value < 0 or value > 100:
        raise PricingInvariantError(f"discount percentage out of range: {pct}")
    return value


def _round_half_up(value: Fraction) -> int:
    return (2 * value.numerator + value.denominator) // (2 * value.denominator)


def discounted_target(total_cents: int, pct: int | Decimal | Fraction) -> int:
    """round(total_cents * (100 - pct) / 100), halves rounded up."""
    factor = (100 - _as_fraction(pct)) / 100
    return _round_half_up(total_cents * factor)


def _validate_input(lines: list[CheckoutLine]) -> None:
    for line in lines:
        if not isinstance(line.unit_amount_cents, int) or line.unit_amount_cents < 0:
            raise PricingInvariantError(f"invalid unit amount on line {line.key!r}")
        if not isinstance(line.quantity, int) or line.quantity < 1:
            raise PricingInvariantError(f"invalid quantity on line {line.key!r}")


def validate_checkout_lines(lines: list[CheckoutLine], expected_total_cents: int) -> None:
    """Assert the lines can be charged and add up to the expected total.

    Raises:
        PricingInvariantError: On a sum mismatch or an unchargeable unit amount.
    """
    for line in lines:
        unit = line.unit_amount_cents
        if not isinstance(unit, int) or isinstance(unit, bool):
            raise PricingInvariantError(f"non-integer unit amount on line {line.key!r}")
        if unit < 0:
            raise PricingInvariantError(f"negative unit amount on line {line.key!r}")
        if unit > MAX_UNIT_AMOUNT_CENTS:
            raise PricingInvariantError(
                f"unit amount {unit} exceeds processor limit on line {line.key!r}"
            )
    actual = sum(line.total_cents for line in lines)
    if actual != expected_total_cents:
        raise PricingInvariantError(
            f"checkout lines sum to {actual}, expected {expected_total_cents}"
        )


def allocate_discount(
    lines: list[CheckoutLine],
    pct: int | Decimal | Fraction,
) -> list[CheckoutLine]:
    """Apply ``pct`` percent discount across ``lines``, exact to the cent.

    Lines keep their input order. With pct == 0 the lines are returned
    unchanged (after validation).

    Raises:
        PricingInvariantError: On invalid input or a violated invariant.
    """
    _validate_input(lines)
    keep = 100 - _as_fraction(pct)
    num, den = keep.numerator, keep.denominator * 100

    pre_totals = [line.total_cents for line in lines]
    target = _round_half_up(Fraction(sum(pre_totals) * num, den))

    floors = [(total * num) // den for total in pre_totals]
    remainders = [(total * num) % den for total in pre_totals]

    extra = target - sum(floors)
    if extra < 0 or extra > len(lines):
        raise PricingInvariantError(
            f"cannot distribute {extra} cents over {len(lines)} lines"
        )

    order = sorted(
        range(len(lines)),
        key=lambda i: (-remainders[i], lines[i].key, i),
    )
    new_totals = list(floors)
    for i in order[:extra]:
        new_totals[i] += 1

    allocated: list[CheckoutLine] = []
    for line, total in zip(lines, new_totals):
        if total % line.quantity == 0:
            allocated.append(replace(line, unit_amount_cents=total // line.quantity))
        else:
            allocated.append(
                replace(
                    line,
                    name=f"{line.name} (x{line.quantity})",
                    unit_amount_cents=total,
                    quantity=1,
                )
            )

    validate_checkout_lines(allocated, target)
    return allocated


def normalize_tax_id(raw: str | None) -> str | None:
    """Strip non-digits; valid business tax ids have exactly 9 digits."""
    if not raw:
        return None
    digits = _NON_DIGITS.sub("", raw)
    return digits if len(digits) == 9 else None
