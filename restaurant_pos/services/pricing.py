from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from restaurant_pos.models.order import FIXED, PERCENTAGE, Discount, OrderLine, Totals


def line_total(line: OrderLine) -> float:
    modifiers_total = sum(modifier.price * line.quantity for modifier in line.modifiers)
    return line.unit_price * line.quantity + modifiers_total


def discount_amount(subtotal: float, discount: Discount | None) -> float:
    if discount is None or subtotal <= 0:
        return 0.0
    if discount.kind == PERCENTAGE:
        amount = subtotal * discount.value / 100
    elif discount.kind == FIXED:
        amount = discount.value
    else:
        return 0.0
    # a fixed discount outlives line removals, so clamp here rather than at apply time
    return min(max(amount, 0.0), subtotal)


def compute_totals(
    lines: Iterable[OrderLine],
    discount: Discount | None,
    tax_rate: float,
    service_charge_rate: float,
) -> Totals:
    """Price a set of lines.

    Floats all the way through; rounding to cents belongs to presentation
    (``round_currency``), never to the intermediate steps.
    """
    subtotal = sum(line_total(line) for line in lines)
    discount_value = discount_amount(subtotal, discount)
    taxable = subtotal - discount_value
    tax = taxable * tax_rate
    service_charge = taxable * service_charge_rate
    return Totals(
        subtotal=subtotal,
        discount=discount_value,
        taxable=taxable,
        tax=tax,
        service_charge=service_charge,
        total=taxable + tax + service_charge,
    )


def round_currency(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def totals_to_dict(totals: Totals) -> dict[str, float]:
    return {
        "subtotal": round_currency(totals.subtotal),
        "discount": round_currency(totals.discount),
        "taxable": round_currency(totals.taxable),
        "tax": round_currency(totals.tax),
        "service_charge": round_currency(totals.service_charge),
        "total": round_currency(totals.total),
    }
