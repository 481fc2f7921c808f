from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Quantize to paise, rounding half up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
