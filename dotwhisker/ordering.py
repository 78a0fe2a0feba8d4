"""
Term/model ordering engine.

Display order is carried on the table itself as ordered pandas Categoricals, so a
table that has already been ordered keeps its order when it is ordered again.

Default orders:
  - terms: reverse of first-occurrence input order (top to bottom)
  - models: first-occurrence input order
An explicit caller order is used as given and must cover every value in the data.
"""

import logging
from typing import List, Optional, Sequence

import pandas as pd

from .errors import AmbiguousOrderError

logger = logging.getLogger(__name__)


def _existing_order(series: pd.Series) -> Optional[List[str]]:
    if isinstance(series.dtype, pd.CategoricalDtype) and series.cat.ordered:
        present = set(series.dropna())
        return [c for c in series.cat.categories if c in present]
    return None


def _explicit_order(values: List[str], order: Sequence[str], what: str) -> List[str]:
    wanted = [str(v).strip() for v in order]
    missing = [v for v in values if v not in set(wanted)]
    if missing:
        raise AmbiguousOrderError(
            f"Supplied {what} order omits {what}(s) present in the data: {missing}"
        )
    present = set(values)
    extra = [v for v in wanted if v not in present]
    if extra:
        logger.debug("Ignoring %s order entries absent from the data: %s", what, extra)
    # dict.fromkeys drops duplicates while keeping first position
    return list(dict.fromkeys(v for v in wanted if v in present))


def resolve_term_order(df: pd.DataFrame, order: Optional[Sequence[str]] = None) -> List[str]:
    """Display order of terms, top to bottom."""
    values = [str(v) for v in pd.unique(df["term"].dropna())]
    if order is not None:
        return _explicit_order(values, order, "term")
    existing = _existing_order(df["term"])
    if existing is not None:
        return existing
    return list(reversed(values))


def resolve_model_order(df: pd.DataFrame, order: Optional[Sequence[str]] = None) -> List[str]:
    """Model order used for dodging, colours and facet slots."""
    if "model" not in df.columns:
        return []
    values = [str(v) for v in pd.unique(df["model"].dropna())]
    if order is not None:
        return _explicit_order(values, order, "model")
    existing = _existing_order(df["model"])
    if existing is not None:
        return existing
    return values


def as_ordered(series: pd.Series, categories: Sequence[str]) -> pd.Series:
    return pd.Series(
        pd.Categorical(series.astype(str), categories=list(categories), ordered=True),
        index=series.index,
        name=series.name,
    )


def order_table(
    df: pd.DataFrame,
    order_vars: Optional[Sequence[str]] = None,
    model_order: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Return a copy of df sorted into display order with a 1-based `position` column.

    `term` (and `model`, when present) become ordered Categoricals. Sorting is
    stable, so rows with equal keys keep their input order. Position 1 is the top
    row of the chart.
    """
    terms = resolve_term_order(df, order_vars)
    out = df.copy()
    out["term"] = as_ordered(out["term"], terms)
    keys = ["term"]
    if "model" in out.columns:
        models = resolve_model_order(df, model_order)
        out["model"] = as_ordered(out["model"], models)
        keys.append("model")

    out = out.sort_values(keys, kind="mergesort").reset_index(drop=True)
    out["position"] = out["term"].cat.codes.astype(int) + 1
    logger.debug("Ordered terms (top to bottom): %s", terms)
    return out


def term_positions(df: pd.DataFrame) -> dict:
    """Map each ordered term to its 1-based row position."""
    cats = df["term"].cat.categories
    return {str(t): i for i, t in enumerate(cats, start=1)}
