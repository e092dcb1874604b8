from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from savings_group.core.exceptions import ValidationError

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Coerce ints, floats and strings to Decimal without float artefacts.

    Anything that is not a finite number is rejected as invalid input.
    """
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount


def round_money(value) -> Decimal:
    """Round to 2 decimals, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
