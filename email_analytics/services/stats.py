"""
Statistical primitives shared by the analytics services.

Every analyzer goes through these helpers instead of re-implementing
percentiles or correlation inline, so edge cases (empty input, zero
variance, single observation) are handled in exactly one place.

Conventions:
    - Percentiles take a fraction in [0, 1] and use linear interpolation
      between closest ranks (numpy's default ``linear`` method).
    - Standard deviations are population (ddof=0) unless stated otherwise.
    - Functions return ``None`` rather than NaN when a statistic is undefined.

Dependencies:
    - numpy: vectorized mean/std/percentile/correlation

Usage:
    from email_analytics.services.stats import percentile, pearson_correlation

    p75 = percentile(weekly_revenue, 0.75)
    r = pearson_correlation(volumes, revenues)
"""

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np


# =============================================================================
# Constants
# =============================================================================

# Scale factor turning a median absolute deviation into a consistent
# estimator of the standard deviation for normally distributed data.
MAD_SCALE: float = 1.4826


def _finite(values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(list(values), dtype=np.float64)
    if arr.size == 0:
        return arr
    return arr[np.isfinite(arr)]


# =============================================================================
# Location and Spread
# =============================================================================


def percentile(values: Sequence[float], p: float) -> float:
    """
    Linear-interpolated percentile.

    Args:
        values: Observations (non-finite values are ignored).
        p: Fraction in [0, 1], e.g. 0.75 for the 75th percentile.

    Returns:
        The percentile, or 0.0 for an empty input.

    Example:
        >>> percentile([1, 2, 3, 4], 0.5)
        2.5
    """
    arr = _finite(values)
    if arr.size == 0:
        return 0.0
    p = min(1.0, max(0.0, p))
    return float(np.percentile(arr, p * 100))


def median(values: Sequence[float]) -> float:
    arr = _finite(values)
    if arr.size == 0:
        return 0.0
    return float(np.median(arr))


def mean(values: Sequence[float]) -> float:
    arr = _finite(values)
    if arr.size == 0:
        return 0.0
    return float(np.mean(arr))


def population_std(values: Sequence[float]) -> float:
    arr = _finite(values)
    if arr.size == 0:
        return 0.0
    return float(np.std(arr))


def median_absolute_deviation(values: Sequence[float], center: Optional[float] = None) -> float:
    """Median of absolute deviations from ``center`` (the median by default)."""
    arr = _finite(values)
    if arr.size == 0:
        return 0.0
    c = float(np.median(arr)) if center is None else center
    return float(np.median(np.abs(arr - c)))


def coefficient_of_variation(values: Sequence[float]) -> Optional[float]:
    """
    Population standard deviation divided by the mean.

    Returns:
        The ratio (not a percentage), or None when the mean is not positive.
    """
    arr = _finite(values)
    if arr.size == 0:
        return None
    m = float(np.mean(arr))
    if m <= 0:
        return None
    return float(np.std(arr)) / m


def weighted_mean_std(values: Sequence[float], weights: Sequence[float]) -> Tuple[float, float]:
    """
    Weighted mean and weighted population standard deviation.

    Args:
        values: Observations.
        weights: Non-negative weights, same length as values.

    Returns:
        Tuple of (mean, std). (0.0, 0.0) when the weights sum to zero.
    """
    v = np.asarray(list(values), dtype=np.float64)
    w = np.asarray(list(weights), dtype=np.float64)
    if v.size == 0 or v.size != w.size:
        return 0.0, 0.0
    total = float(w.sum())
    if total <= 0:
        return 0.0, 0.0
    m = float(np.sum(v * w) / total)
    var = float(np.sum(w * (v - m) ** 2) / total)
    return m, math.sqrt(max(0.0, var))


# =============================================================================
# Outlier Handling
# =============================================================================


def iqr_bounds(values: Sequence[float], multiplier: float = 1.5) -> Tuple[float, float]:
    """Tukey fences ``[Q1 - k·IQR, Q3 + k·IQR]``."""
    q1 = percentile(values, 0.25)
    q3 = percentile(values, 0.75)
    iqr = q3 - q1
    return q1 - multiplier * iqr, q3 + multiplier * iqr


def iqr_filter_mask(values: Sequence[float], multiplier: float = 1.5) -> List[bool]:
    """
    Keep-mask for an IQR outlier filter.

    Fewer than four observations are never filtered; quartiles of such a
    small sample say nothing about outliers.
    """
    vals = list(values)
    if len(vals) < 4:
        return [True] * len(vals)
    lo, hi = iqr_bounds(vals, multiplier)
    return [lo <= v <= hi for v in vals]


def iqr_filter(values: Sequence[float], multiplier: float = 1.5) -> List[float]:
    vals = list(values)
    mask = iqr_filter_mask(vals, multiplier)
    return [v for v, keep in zip(vals, mask) if keep]


def winsorize(values: Sequence[float], lower: float = 0.10, upper: float = 0.90) -> List[float]:
    """Clamp observations to the ``[lower, upper]`` percentile band."""
    vals = [float(v) for v in values]
    if not vals:
        return []
    lo = percentile(vals, lower)
    hi = percentile(vals, upper)
    return [min(hi, max(lo, v)) for v in vals]


def robust_z_scores(values: Sequence[float]) -> List[Optional[float]]:
    """
    Robust z-score ``(v - median) / (1.4826·MAD)`` per observation.

    Returns None for every point when the MAD is zero.
    """
    vals = list(values)
    if not vals:
        return []
    med = median(vals)
    mad = median_absolute_deviation(vals, med)
    if mad <= 0:
        return [None] * len(vals)
    scale = MAD_SCALE * mad
    return [(v - med) / scale for v in vals]


# =============================================================================
# Correlation
# =============================================================================


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> Optional[float]:
    """
    Pearson correlation coefficient.

    Args:
        x: First series.
        y: Second series, same length as x.

    Returns:
        r in [-1, 1], or None when fewer than 3 paired points exist or
        either series has zero variance.

    Example:
        >>> pearson_correlation([1, 2, 3, 4], [2, 4, 6, 8])
        1.0
    """
    if len(x) != len(y) or len(x) < 3:
        return None
    xa = np.asarray(list(x), dtype=np.float64)
    ya = np.asarray(list(y), dtype=np.float64)
    finite = np.isfinite(xa) & np.isfinite(ya)
    xa, ya = xa[finite], ya[finite]
    if xa.size < 3:
        return None
    dx = xa - xa.mean()
    dy = ya - ya.mean()
    denom = math.sqrt(float(np.sum(dx * dx)) * float(np.sum(dy * dy)))
    if denom == 0:
        return None
    r = float(np.sum(dx * dy)) / denom
    return max(-1.0, min(1.0, r))
