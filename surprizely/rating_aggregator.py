"""
Average-rating bookkeeping for products.

The average is rounded half-up on the value scaled by ten, so 3.25 -> 3.3 and
3.24 -> 3.2. An empty rating set yields exactly 0 with a count of 0.
"""
import math
from typing import Iterable, NamedTuple


class RatingSummary(NamedTuple):
    average: float
    count: int


def round_half_up(value: float, digits: int = 1) -> float:
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def summarize(values: Iterable[int]) -> RatingSummary:
    values = list(values)
    if not values:
        return RatingSummary(0, 0)
    return RatingSummary(round_half_up(sum(values) / len(values)), len(values))


def refresh_product(product, ratings) -> RatingSummary:
    """Recompute product.average_rating / rating_count from its ratings."""
    summary = summarize(r.rating for r in ratings)
    product.average_rating = summary.average
    product.rating_count = summary.count
    return summary
