"""
Coefficient table helpers applied before plotting: predictor relabelling,
intercept removal and rescaling by two standard deviations (Gelman 2008).
"""

import logging
from typing import Iterable, Mapping

import numpy as np
import pandas as pd

from .errors import InputFormatError
from .params import INTERCEPT_TERMS

logger = logging.getLogger(__name__)


def relabel_predictors(df: pd.DataFrame, mapping: Mapping[str, str]) -> pd.DataFrame:
    """Return a copy of df with terms renamed through mapping; unmapped terms are kept."""
    out = df.copy()
    if not mapping:
        return out
    mapping = {str(k).strip(): str(v) for k, v in mapping.items()}
    unused = sorted(set(mapping) - set(out["term"].astype(str)))
    if unused:
        logger.debug("relabel_predictors: no rows for %s", unused)
    if isinstance(out["term"].dtype, pd.CategoricalDtype):
        cats = [mapping.get(str(c), str(c)) for c in out["term"].cat.categories]
        if len(set(cats)) != len(cats):
            merged = sorted({c for c in cats if cats.count(c) > 1})
            raise InputFormatError(f"Relabelling merges distinct terms into: {merged}")
        out["term"] = out["term"].cat.rename_categories(cats)
    else:
        out["term"] = out["term"].astype(str).map(lambda t: mapping.get(t, t))
    return out


def drop_intercept(df: pd.DataFrame, names: Iterable[str] = INTERCEPT_TERMS) -> pd.DataFrame:
    names = set(names)
    keep = ~df["term"].astype(str).isin(names)
    if (~keep).any():
        logger.debug("Dropping %d intercept row(s)", int((~keep).sum()))
    out = df.loc[keep].reset_index(drop=True)
    if isinstance(out["term"].dtype, pd.CategoricalDtype):
        out["term"] = out["term"].cat.remove_unused_categories()
    return out


def by_2sd(df: pd.DataFrame, data: pd.DataFrame) -> pd.DataFrame:
    """
    Rescale coefficients by two standard deviations of their predictors.

    For each term that names a numeric column of `data` with more than two distinct
    values, estimate, std.error, lb and ub are multiplied by 2 * sd (sample sd).
    Binary and non-numeric predictors, and terms absent from `data`, are unchanged.
    """
    out = df.copy()
    factors = {}
    for term in pd.unique(out["term"].astype(str)):
        if term not in data.columns:
            continue
        col = pd.to_numeric(data[term], errors="coerce")
        if col.notna().sum() != data[term].notna().sum():
            continue
        if col.dropna().nunique() <= 2:
            continue
        sd = float(col.std(ddof=1))
        if np.isfinite(sd):
            factors[term] = 2.0 * sd

    scale = out["term"].astype(str).map(factors).fillna(1.0).astype(float)
    for col in ("estimate", "std.error", "lb", "ub"):
        if col in out.columns:
            out[col] = out[col].astype(float) * scale
    logger.debug("by_2sd factors: %s", factors)
    return out
