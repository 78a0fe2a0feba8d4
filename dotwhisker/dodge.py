"""
Vertical offset allocator for dodged models.

Model i of k sharing a row is drawn at position + d * (rank_i - (k - 1) / 2), so
offsets are symmetric around the row's nominal position and zero for one model.
"""

import logging
import math
from typing import List, Optional

import pandas as pd

from .errors import InvalidParameterError

logger = logging.getLogger(__name__)


def default_increment(k: int, dodge_size: float = 1.0) -> float:
    """Per-model increment dodge_size / (k + 1); k models then span less than dodge_size."""
    if k < 1:
        raise InvalidParameterError(f"Number of dodged models must be >= 1, got: {k}")
    if not (dodge_size > 0 and math.isfinite(dodge_size)):
        raise InvalidParameterError(f"dodge_size must be a positive number, got: {dodge_size}")
    return dodge_size / (k + 1)


def dodge_offsets(
    k: int, increment: Optional[float] = None, dodge_size: float = 1.0
) -> List[float]:
    """Offsets for ranks 0..k-1."""
    if k < 1:
        raise InvalidParameterError(f"Number of dodged models must be >= 1, got: {k}")
    if increment is None:
        increment = default_increment(k, dodge_size)
    elif not (increment >= 0 and math.isfinite(increment)):
        raise InvalidParameterError(
            f"dodge increment must be a non-negative number, got: {increment}"
        )
    center = (k - 1) / 2.0
    return [increment * (rank - center) for rank in range(k)]


def assign_offsets(
    df: pd.DataFrame,
    column: str = "model",
    increment: Optional[float] = None,
    dodge_size: float = 1.0,
) -> pd.DataFrame:
    """
    Return a copy of df with an `offset` column derived from the rank of each row's
    `column` value. The column must be an ordered Categorical (see ordering).
    """
    out = df.copy()
    if column not in out.columns:
        out["offset"] = 0.0
        return out
    categories = list(out[column].cat.categories)
    offsets = dodge_offsets(len(categories), increment=increment, dodge_size=dodge_size)
    by_rank = dict(zip(categories, offsets))
    out["offset"] = out[column].astype(str).map(by_rank).astype(float)
    logger.debug("Dodge offsets for %s: %s", column, by_rank)
    return out
