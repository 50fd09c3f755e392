"""Money helpers shared by the engine and the persistence layer."""

from decimal import Decimal, ROUND_HALF_UP


def to_decimal(value) -> Decimal:
    """Coerce floats, ints and numeric strings to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def round_money(amount: Decimal, places: int = 2, rounding: str = ROUND_HALF_UP) -> Decimal:
    """Round to the given number of decimal places.

    Only call this at display or persistence time, never on intermediate
    per-rule amounts.
    """
    quantum = Decimal(1).scaleb(-places)
    return amount.quantize(quantum, rounding=rounding)
