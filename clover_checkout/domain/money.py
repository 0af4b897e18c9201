"""Money normalization between decimal store amounts and Clover minor units"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

CENT = Decimal("0.01")


def to_minor_units(amount: str | Decimal | int) -> int:
    """
    Convert a decimal currency amount to integer minor units (cents).

    The amount is rounded to exactly 2 decimal places, half away from zero, before the
    separator is dropped. Both sides of any amount comparison must go through this
    function or spurious mismatches appear ("10.005" vs "10.01").

    Raises:
        ValueError: If the amount is not a decimal number
    """
    try:
        value = Decimal(str(amount).strip() or "0")
    except InvalidOperation as e:
        raise ValueError(f"Invalid decimal amount: {amount!r}") from e

    if not value.is_finite():
        raise ValueError(f"Invalid decimal amount: {amount!r}")

    return int(value.quantize(CENT, rounding=ROUND_HALF_UP).scaleb(2))


def format_minor_units(amount_cents: int) -> str:
    """Render minor units as a 2-decimal string, e.g. 1234 -> "12.34" """
    return str(Decimal(amount_cents).scaleb(-2).quantize(CENT))

