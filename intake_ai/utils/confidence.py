"""Confidence score coercion.

Every confidence reported by the pipeline lives on a 0-100 scale. Providers
sometimes answer with a 0-1 fraction or a string, so raw values are coerced
here before they reach any model.
"""

import math
from typing import Any

MIN_CONFIDENCE = 0.0
MAX_CONFIDENCE = 100.0


def normalize_confidence(value: Any, default: float = 0.0) -> float:
    """Coerce a raw confidence value onto the 0-100 scale.

    Non-integral floats strictly between 0 and 1 are read as fractions and
    scaled by 100. Everything else is clamped to [0, 100]. Non-numeric input
    (including booleans and NaN) yields ``default``.

    Args:
        value: Raw confidence from a model response
        default: Fallback for values that are not numbers

    Returns:
        float: Confidence in [0, 100]
    """
    if isinstance(value, bool):
        return clamp_confidence(default)

    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return clamp_confidence(default)

    if not isinstance(value, (int, float)):
        return clamp_confidence(default)

    number = float(value)
    if math.isnan(number):
        return clamp_confidence(default)

    if isinstance(value, float) and 0.0 < number < 1.0:
        number *= 100.0

    return clamp_confidence(number)


def clamp_confidence(value: float) -> float:
    """Clamp a numeric confidence to [0, 100]."""
    if math.isnan(value):
        return MIN_CONFIDENCE
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, float(value)))
