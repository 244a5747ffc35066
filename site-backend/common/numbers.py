# common/numbers.py
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.core.exceptions import ValidationError

TWO_PLACES = Decimal("0.01")
THREE_PLACES = Decimal("0.001")


def to_decimal(value, field, *, required=True):
    """
    Parse a request/payload value into a Decimal.

    Returns None for empty input when ``required`` is False.
    Raises ValidationError naming ``field`` for anything unparseable.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not parsed.is_finite():
        raise ValidationError(f"{field} must be a number")
    return parsed


def money(value):
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def qty(value):
    return Decimal(value).quantize(THREE_PLACES, rounding=ROUND_HALF_UP)
