# backend/app/services/statistics.py
"""
Statistics helpers
==================

Small numeric building blocks shared by the analytics aggregator and the
report composer: percentage deltas, dispersion bands, least squares and
the classification thresholds for rotation, customers and suppliers.

Classification always runs on unrounded values; callers round for display.
"""

from datetime import datetime
from typing import List, Optional, Sequence, Tuple

import numpy as np

# |slope| below this is reported as a flat trend
SLOPE_TOLERANCE = 1e-9

ROTATION_FAST = "Rápida"
ROTATION_MEDIUM = "Media"
ROTATION_SLOW = "Lenta"

ROTATION_FILTERS = {
    "rapida": ROTATION_FAST,
    "media": ROTATION_MEDIUM,
    "lenta": ROTATION_SLOW,
    "todas": None,
}

SEGMENT_VIP = "VIP"
SEGMENT_FREQUENT = "Frecuente"
SEGMENT_OCCASIONAL = "Ocasional"
SEGMENT_NEW = "Nuevo"
SEGMENTS = (SEGMENT_VIP, SEGMENT_FREQUENT, SEGMENT_OCCASIONAL, SEGMENT_NEW)


def round2(value: float) -> float:
    return round(float(value), 2)


def percent_change(current: float, previous: float) -> float:
    """
    Period-over-period change in percent, rounded to 2 decimals.

    A zero baseline yields 100 when there is any current value, else 0.
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round2((current - previous) / previous * 100)


def intervals_in_days(timestamps: Sequence[datetime]) -> List[float]:
    """Gaps between consecutive timestamps (sorted first), in fractional days."""
    ordered = sorted(timestamps)
    return [
        (later - earlier).total_seconds() / 86400
        for earlier, later in zip(ordered, ordered[1:])
    ]


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return float(np.mean(values))


def population_std(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return float(np.std(values))


def coefficient_of_variation(values: Sequence[float]) -> Optional[float]:
    """std / mean, or None when the mean is zero or there is no data."""
    avg = mean(values)
    if not values or avg == 0:
        return None
    return population_std(values) / avg


def classify_volatility(values: Sequence[float]) -> str:
    if len(values) <= 1:
        return "not computable"
    cv = coefficient_of_variation(values)
    if cv is None:
        return "not computable"
    if cv < 0.1:
        return "very low"
    if cv < 0.2:
        return "low"
    if cv < 0.4:
        return "medium"
    if cv < 0.6:
        return "high"
    return "very high"


def classify_consistency(cv: Optional[float]) -> str:
    # A zero mean interval means every delivery landed at the same instant
    if cv is None or cv < 0.1:
        return "very consistent"
    if cv < 0.3:
        return "consistent"
    if cv < 0.5:
        return "variable"
    return "inconsistent"


def linear_regression(values: Sequence[float]) -> Tuple[float, float]:
    """
    Ordinary least squares of value against index 0..n-1.

    Returns (slope, intercept). One point gives a flat line through it.
    """
    n = len(values)
    if n == 0:
        return 0.0, 0.0
    if n == 1:
        return 0.0, float(values[0])

    x = np.arange(n, dtype=float)
    design = np.vstack([x, np.ones(n)]).T
    solution, *_ = np.linalg.lstsq(design, np.asarray(values, dtype=float), rcond=None)
    slope, intercept = solution
    return float(slope), float(intercept)


def trend_direction(slope: float) -> str:
    if slope > SLOPE_TOLERANCE:
        return "growing"
    if slope < -SLOPE_TOLERANCE:
        return "declining"
    return "stable"


def annual_rotation(units_sold: int, stock: int, window_days: int) -> float:
    if stock <= 0 or window_days <= 0:
        return 0.0
    return (units_sold / stock) * (365 / window_days)


def classify_rotation(rotation: float) -> str:
    if rotation >= 12:
        return ROTATION_FAST
    if rotation >= 4:
        return ROTATION_MEDIUM
    return ROTATION_SLOW


def days_of_inventory(rotation: float) -> float:
    if rotation <= 0:
        return 999.0
    return 365 / rotation


def classify_customer(total_spent: float, orders: int, avg_interval_days: Optional[float]) -> str:
    if total_spent > 1000 and orders > 5:
        return SEGMENT_VIP
    if orders > 3 and avg_interval_days is not None and avg_interval_days < 30:
        return SEGMENT_FREQUENT
    if orders > 1:
        return SEGMENT_OCCASIONAL
    return SEGMENT_NEW


def classify_supplier(total_purchased: float, orders: int) -> str:
    if total_purchased > 5000 and orders > 5:
        return "Excelente"
    if total_purchased > 2000 and orders > 3:
        return "Bueno"
    if orders > 1:
        return "Regular"
    return "Malo"
