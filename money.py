from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(amount: Decimal) -> int:
    """
    Convert a decimal amount to integer cents. Amounts carrying more than two
    fraction digits are rejected rather than silently rounded.
    """
    value = Decimal(amount)
    if value != value.quantize(CENT):
        raise ValueError("Amount must have at most two decimal places")
    return int(value * 100)


def from_cents(cents: int) -> Decimal:
    return quantize(Decimal(int(cents)) / 100)


def percentage_of(part: Decimal, whole: Decimal) -> float:
    """Share of ``part`` in ``whole`` in percent, capped at 100, two decimals."""
    if whole <= 0:
        return 0.0
    pct = min(Decimal(part) / Decimal(whole) * 100, Decimal(100))
    return float(pct.quantize(CENT, rounding=ROUND_HALF_UP))
