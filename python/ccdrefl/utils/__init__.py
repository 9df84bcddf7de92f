"""Statistics and error propagation helpers shared by the reduction stages."""

from __future__ import annotations

import numpy as np
import numpy.typing as npt
from scipy.stats import median_abs_deviation

type ArrayLike = npt.ArrayLike

# ==================/ Statistics /==================


def weighted_mean(
    values: ArrayLike, variances: ArrayLike
) -> tuple[float, float, bool]:
    """
    Combine measurements with inverse-variance weights.

    Parameters
    ----------
    values : ArrayLike
        Measured values.
    variances : ArrayLike
        Variance of each measured value.

    Returns
    -------
    tuple[float, float, bool]
        The combined value, its variance, and whether the unweighted fallback
        was used because a variance was zero.

    Notes
    -----
    With every variance positive the combination is
    ``sum(v / var) / sum(1 / var)`` with variance ``1 / sum(1 / var)``. If any
    variance is zero the weights are undefined; the plain mean is returned with
    the variance of the mean estimated from the sample scatter.
    """
    values = np.asarray(values, dtype=np.float64)
    variances = np.asarray(variances, dtype=np.float64)
    if values.size == 0:
        msg = "Cannot combine an empty set of values."
        raise ValueError(msg)
    if values.shape != variances.shape:
        msg = "values and variances must have the same shape."
        raise ValueError(msg)

    degraded = bool(np.any(variances <= 0.0))
    if values.size == 1:
        return float(values[0]), max(float(variances[0]), 0.0), degraded
    if degraded:
        mean = float(np.mean(values))
        var = float(np.var(values, ddof=1) / values.size)
        return mean, var, True

    weights = 1.0 / variances
    total = float(np.sum(weights))
    return float(np.sum(weights * values) / total), 1.0 / total, False


def robust_outliers(values: ArrayLike, threshold: float) -> np.ndarray:
    """
    Return a boolean mask of values far from the median.

    The scatter is the median absolute deviation scaled to a normal standard
    deviation. Returns an all ``False`` mask for fewer than three values or zero
    scatter.
    """
    values = np.asarray(values, dtype=np.float64)
    mask = np.zeros(values.shape, dtype=bool)
    if values.size < 3:
        return mask
    scatter = median_abs_deviation(values, scale="normal")
    if not np.isfinite(scatter) or scatter == 0.0:
        return mask
    return np.abs(values - np.median(values)) > threshold * scatter


# ==================/ Error propagation /==================


def err_prop_mult(
    lhs: ArrayLike,
    lhs_var: ArrayLike,
    rhs: ArrayLike,
    rhs_var: ArrayLike,
) -> tuple[np.ndarray, np.ndarray]:
    """Return the product and its variance for independent factors."""
    lhs = np.asarray(lhs, dtype=np.float64)
    rhs = np.asarray(rhs, dtype=np.float64)
    value = lhs * rhs
    var = rhs**2 * np.asarray(lhs_var) + lhs**2 * np.asarray(rhs_var)
    return value, var


def err_prop_div(
    lhs: ArrayLike,
    lhs_var: ArrayLike,
    rhs: ArrayLike,
    rhs_var: ArrayLike,
) -> tuple[np.ndarray, np.ndarray]:
    """Return the quotient and its variance for independent operands."""
    lhs = np.asarray(lhs, dtype=np.float64)
    rhs = np.asarray(rhs, dtype=np.float64)
    value = lhs / rhs
    var = (np.asarray(lhs_var) + value**2 * np.asarray(rhs_var)) / rhs**2
    return value, var


__all__ = ["err_prop_div", "err_prop_mult", "robust_outliers", "weighted_mean"]
