"""Weight validation and the kg -> points rule (1 kg recycled = 1 point)."""

import math
from decimal import ROUND_HALF_UP, Decimal

from src.wm_common.errors import InvalidInputError


def validate_weight(total_weight_kg: float) -> float:
    """Return the weight as float, or raise InvalidInputError.

    Negative, NaN and infinite weights are upstream data bugs; they are never
    clamped to zero.
    """
    if isinstance(total_weight_kg, bool) or not isinstance(total_weight_kg, (int, float)):
        raise InvalidInputError(f"weight must be a number, got {total_weight_kg!r}")
    w = float(total_weight_kg)
    if math.isnan(w) or math.isinf(w):
        raise InvalidInputError(f"weight must be finite, got {w}")
    if w < 0:
        raise InvalidInputError(f"weight must be >= 0, got {w}")
    return w


def points_for_weight(total_weight_kg: float) -> int:
    """Round half-up to whole points: 2.5 kg -> 3, 2.49 kg -> 2."""
    w = validate_weight(total_weight_kg)
    return int(Decimal(repr(w)).quantize(Decimal(1), rounding=ROUND_HALF_UP))
