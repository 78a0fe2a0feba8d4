"""
Confidence interval resolver.

Bounds come either straight from the table (lb/ub) or from the two-sided normal
critical value: estimate -/+ z(1 - alpha/2) * std.error. The normal quantile is a
documented approximation and not an exact small-sample (t) interval.
"""

import logging
import math

import numpy as np
import pandas as pd
from scipy import stats

from .errors import InputFormatError, InvalidParameterError

logger = logging.getLogger(__name__)


def validate_alpha(alpha) -> float:
    """Return alpha as float; raises InvalidParameterError unless 0 < alpha < 1."""
    try:
        value = float(alpha)
    except (TypeError, ValueError):
        raise InvalidParameterError(f"alpha must be a number in (0, 1), got: {alpha!r}")
    if math.isnan(value) or not (0.0 < value < 1.0):
        raise InvalidParameterError(f"alpha must satisfy 0 < alpha < 1, got: {alpha!r}")
    return value


def critical_value(alpha: float = 0.05) -> float:
    """Two-sided standard-normal critical value, e.g. alpha=0.05 -> 1.959964..."""
    alpha = validate_alpha(alpha)
    return float(stats.norm.ppf(1.0 - alpha / 2.0))


def add_confidence_bounds(df: pd.DataFrame, alpha: float = 0.05) -> pd.DataFrame:
    """
    Return a copy of df with lb/ub resolved for every row.

    Rows that already carry both lb and ub keep them unchanged; the remaining rows
    derive them from std.error. A row with neither raises InputFormatError.
    """
    z = critical_value(alpha)
    out = df.copy()

    nan = pd.Series(np.nan, index=out.index, dtype=float)
    lb = out["lb"].astype(float) if "lb" in out.columns else nan.copy()
    ub = out["ub"].astype(float) if "ub" in out.columns else nan.copy()
    se = out["std.error"].astype(float) if "std.error" in out.columns else nan

    supplied = lb.notna() & ub.notna()
    derive = ~supplied & se.notna()
    unresolved = ~(supplied | derive)
    if unresolved.any():
        terms = out.loc[unresolved, "term"].astype(str).tolist()[:10]
        raise InputFormatError(
            f"Cannot resolve confidence bounds without std.error or lb/ub: {terms}"
        )

    est = out["estimate"].astype(float)
    lb = lb.where(~derive, est - z * se)
    ub = ub.where(~derive, est + z * se)
    out["lb"] = lb
    out["ub"] = ub
    logger.debug(
        "Resolved bounds: alpha=%s z=%.6f derived=%d supplied=%d",
        alpha,
        z,
        int(derive.sum()),
        int(supplied.sum()),
    )
    return out
