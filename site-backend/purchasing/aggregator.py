# purchasing/aggregator.py
"""
Purchase aggregation: turn a selection of receipts plus a unit rate per
receipt into purchase totals. Pure computation, no database writes.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from django.core.exceptions import ValidationError

from common.numbers import TWO_PLACES, money, qty, to_decimal

ZERO = Decimal("0")


@dataclass(frozen=True)
class PurchaseTotals:
    material_id: int
    material_name: str
    quantity: Decimal
    total_amount: Decimal
    unit_rate: Decimal
    filled_weight: Decimal
    empty_weight: Decimal
    net_weight: Decimal
    receipt_rates: Dict[str, str] = field(default_factory=dict)


def parse_unit_rates(raw_rates):
    """
    Normalise rate input to ``{receipt_id: Decimal}``.

    Accepts a mapping ``{receipt_id: rate}`` or a list of
    ``{"receipt_id": .., "unit_rate": ..}`` rows.
    """
    rates = {}
    if isinstance(raw_rates, dict):
        items = raw_rates.items()
    else:
        items = [((row or {}).get("receipt_id"), (row or {}).get("unit_rate")) for row in (raw_rates or [])]
    for receipt_id, raw in items:
        try:
            key = int(receipt_id)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid receipt id {receipt_id!r}")
        rates[key] = to_decimal(raw, f"unit_rate for receipt {key}")
    return rates


def compute_from_receipts(receipts, unit_rates):
    """
    Aggregate receipts into purchase totals.

    Args:
        receipts: MaterialReceipt instances (at least one, same material)
        unit_rates: {receipt_id: Decimal}, one positive rate per receipt

    Returns:
        PurchaseTotals

    Raises:
        ValidationError: no receipts, a missing or non-positive rate, mixed
            materials, or a zero total quantity
    """
    receipts = list(receipts)
    if not receipts:
        raise ValidationError("Select at least one receipt")

    first = receipts[0]
    material_ids = {r.material_id for r in receipts}
    if len(material_ids) > 1:
        raise ValidationError("All selected receipts must be for the same material")

    quantity = ZERO
    total = ZERO
    filled = empty = net = ZERO
    rates_used = {}
    for receipt in receipts:
        rate = unit_rates.get(receipt.id)
        if rate is None or rate <= 0:
            raise ValidationError(f"Enter a unit rate greater than zero for receipt {receipt.id}")
        quantity += receipt.quantity
        total += receipt.quantity * rate
        filled += receipt.filled_weight or ZERO
        empty += receipt.empty_weight or ZERO
        net += receipt.net_weight or ZERO
        rates_used[str(receipt.id)] = str(rate)

    if quantity <= 0:
        raise ValidationError("Selected receipts have no quantity to purchase")

    total_amount = money(total)
    unit_rate = (total / quantity).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    return PurchaseTotals(
        material_id=first.material_id,
        material_name=first.material_name,
        quantity=qty(quantity),
        total_amount=total_amount,
        unit_rate=unit_rate,
        filled_weight=qty(filled),
        empty_weight=qty(empty),
        net_weight=qty(net),
        receipt_rates=rates_used,
    )


def derive_remaining(quantity, consumed, override: Optional[Decimal] = None):
    """remaining = quantity - consumed (floored at 0) unless explicitly overridden."""
    if override is not None:
        return override
    return max(ZERO, Decimal(quantity) - Decimal(consumed or ZERO))
