"""
Money and Rounding Utilities

Every amount in the engine is a Decimal with exactly two decimal places.
Binary floats never enter the arithmetic.

DESIGN DECISION: Splits are computed by rounding every part DOWN to the
cent and then handing out the missing cents one by one, earliest
recipient first. This guarantees:
1. Every part is a valid two-decimal amount
2. The parts sum exactly to the total
3. The result is deterministic for a given recipient order
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Sequence, Union

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0.00")

MoneyLike = Union[Decimal, int, str, float]


def to_money(value: MoneyLike) -> Decimal:
    """
    Convert a value to a two-decimal Decimal.

    Floats are converted through their string form so that 0.1 becomes
    Decimal("0.1") rather than its binary expansion.

    Raises:
        ValueError: If the value is not a finite number, is negative,
                    or carries more than two decimal places.
    """
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Not a monetary amount: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Monetary amount must be finite: {value!r}")
    if amount < 0:
        raise ValueError(f"Monetary amount cannot be negative: {value!r}")
    if amount != amount.quantize(CENT, rounding=ROUND_DOWN):
        raise ValueError(f"Monetary amount has more than two decimal places: {value!r}")

    return amount.quantize(CENT)


def percent_of(part: Decimal, total: Decimal) -> Decimal:
    """Return part as a percentage of total, rounded half-up to two places."""
    if total <= 0:
        raise ValueError("Total must be positive to compute a percentage")
    return (part / total * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def split_evenly(total: MoneyLike, count: int) -> list[Decimal]:
    """
    Split a total into `count` equal parts, penny-perfect.

    The first `leftover` recipients receive one extra cent, so the
    result is non-increasing in list order and parts differ by at most
    one cent. A count of zero returns an empty list.

    Example:
        split_evenly("100.00", 3) -> [33.34, 33.33, 33.33]
    """
    if count < 0:
        raise ValueError("Recipient count cannot be negative")
    if count == 0:
        return []

    total = to_money(total)
    base = (total / count).quantize(CENT, rounding=ROUND_DOWN)
    leftover_cents = int((total - base * count) / CENT)

    return [base + CENT if i < leftover_cents else base for i in range(count)]


def distribute_by_weights(
    total: MoneyLike,
    weights: Sequence[MoneyLike],
) -> list[Decimal]:
    """
    Split a total proportionally to non-negative weights, penny-perfect.

    Each recipient's proportional share is rounded down to the cent;
    the cents still missing from the total are then handed out one at a
    time to recipients with a positive weight, earliest first.

    Args:
        total: Amount to distribute
        weights: One weight per recipient, in recipient order

    Returns:
        One amount per weight, summing exactly to total

    Raises:
        ValueError: If a weight is negative or all weights are zero
    """
    total = to_money(total)
    if not weights:
        return []

    decimal_weights = [Decimal(str(w)) for w in weights]
    if any(w < 0 for w in decimal_weights):
        raise ValueError("Weights cannot be negative")
    weight_sum = sum(decimal_weights)
    if weight_sum == 0:
        raise ValueError("At least one weight must be positive")

    parts = [
        (total * w / weight_sum).quantize(CENT, rounding=ROUND_DOWN)
        for w in decimal_weights
    ]

    leftover_cents = int((total - sum(parts)) / CENT)
    eligible = [i for i, w in enumerate(decimal_weights) if w > 0]
    for n in range(leftover_cents):
        parts[eligible[n % len(eligible)]] += CENT

    return parts
