from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

# Largest amount whose cents fit a 32-bit INTEGER column.
MAX_AMOUNT = Decimal("21474836.47")


def to_cents(value: Union[Decimal, int, str]) -> int:
    if isinstance(value, str):
        clean = value.strip().replace("$", "").replace(" ", "").replace(",", ".")
        if clean.count(".") > 1:
            parts = clean.split(".")
            clean = "".join(parts[:-1]) + "." + parts[-1]
        try:
            value = Decimal(clean)
        except InvalidOperation as exc:
            raise ValueError("Invalid amount") from exc
    amount = Decimal(value)
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0:
        raise ValueError("Amount must be positive")
    return cents


def from_cents(cents: int) -> Decimal:
    return Decimal(int(cents or 0)).scaleb(-2)


def percentage(part: Decimal, whole: Decimal) -> float:
    """Share of ``part`` in ``whole`` as a presentation float; callers guard ``whole == 0``."""
    return float(part / whole * 100)
