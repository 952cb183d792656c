"""
Weighted similarity between two Characteristics.

Only fields present on both sides contribute; the result is the matched
weight divided by the applicable weight, in [0, 1].
"""

from typing import Optional

from popwarden.scoring.characteristics import Characteristics, Dimensions

BOOLEAN_WEIGHTS = {
    "has_close_button": 0.15,
    "contains_ads": 0.25,
    "has_external_links": 0.20,
    "is_modal": 0.15,
}
WEIGHT_Z_INDEX = 0.10
WEIGHT_DIMENSIONS = 0.15

# z-index difference at which the z-index contribution reaches zero
Z_INDEX_SCALE = 1000


def axis_similarity(a: float, b: float) -> float:
    """1 - relative difference, floored at 0; two zero sizes are identical."""
    largest = max(abs(a), abs(b))
    if largest == 0:
        return 1.0
    return max(0.0, 1.0 - abs(a - b) / largest)


def dimension_similarity(a: Dimensions, b: Dimensions) -> float:
    return (axis_similarity(a.width, b.width) + axis_similarity(a.height, b.height)) / 2


def z_index_similarity(a: int, b: int) -> float:
    return max(0.0, 1.0 - abs(a - b) / Z_INDEX_SCALE)


def calculate_similarity(a: Optional[Characteristics], b: Optional[Characteristics]) -> float:
    """Weighted similarity of two characteristics in [0, 1]."""
    if a is None or b is None:
        return 0.0

    matched = 0.0
    applicable = 0.0

    for name, weight in BOOLEAN_WEIGHTS.items():
        left = getattr(a, name)
        right = getattr(b, name)
        if left is None or right is None:
            continue
        applicable += weight
        if left == right:
            matched += weight

    if a.z_index is not None and b.z_index is not None:
        applicable += WEIGHT_Z_INDEX
        matched += WEIGHT_Z_INDEX * z_index_similarity(a.z_index, b.z_index)

    if a.dimensions is not None and b.dimensions is not None:
        applicable += WEIGHT_DIMENSIONS
        matched += WEIGHT_DIMENSIONS * dimension_similarity(a.dimensions, b.dimensions)

    if applicable == 0:
        return 0.0
    return max(0.0, min(1.0, matched / applicable))
