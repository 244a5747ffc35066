# receipts/quantity.py
"""
Receipt quantity input and the default-from-net-weight rule.

A payload can leave ``quantity`` out (UNSET), send null/"" (CLEARED), or
send a number (QuantityValue). The three cases behave differently on edit,
so they are kept apart instead of collapsing to None.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.core.exceptions import ValidationError

from common.numbers import TWO_PLACES, to_decimal


class _Marker:
    def __init__(self, name):
        self.name = name

    def __repr__(self):
        return self.name


UNSET = _Marker("UNSET")
CLEARED = _Marker("CLEARED")


@dataclass(frozen=True)
class QuantityValue:
    amount: Decimal


def parse_quantity_input(payload, key="quantity"):
    """Classify ``payload[key]`` as UNSET, CLEARED or QuantityValue."""
    if key not in payload:
        return UNSET
    raw = payload.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return CLEARED
    amount = to_decimal(raw, key)
    if amount <= 0:
        raise ValidationError("quantity must be greater than zero")
    return QuantityValue(amount)


def default_quantity(net_weight):
    return Decimal(net_weight).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def tracks_net_weight(quantity, net_weight):
    """True while ``quantity`` is still the auto-filled value for ``net_weight``."""
    if quantity is None:
        return True
    epsilon = getattr(settings, "RECEIPT_QUANTITY_EPSILON", Decimal("0.001"))
    return abs(Decimal(quantity) - default_quantity(net_weight)) <= epsilon


def resolve_quantity(quantity_input, new_net_weight, previous_quantity=None, previous_net_weight=None):
    """
    Quantity to store after a create or edit.

    Explicit values win. CLEARED resets to the net-weight default. UNSET on
    create takes the default; UNSET on edit follows the new net weight only
    while the stored quantity still matched the previous default.
    """
    if isinstance(quantity_input, QuantityValue):
        return quantity_input.amount
    if quantity_input is CLEARED or previous_net_weight is None:
        return default_quantity(new_net_weight)
    if tracks_net_weight(previous_quantity, previous_net_weight):
        return default_quantity(new_net_weight)
    return previous_quantity
