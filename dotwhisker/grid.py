"""
Alignment grid builder for small-multiple layouts.

Every facet (one per term) must hold one row per model so that faceted panels are
identically shaped. Cells absent from the input become explicit placeholder rows
with NaN estimate/bounds and placeholder=True.
"""

import logging
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from .errors import InputFormatError
from .ordering import as_ordered, resolve_model_order, resolve_term_order

logger = logging.getLogger(__name__)


def _model_slots(df: pd.DataFrame, models: List[str]) -> List[Tuple[str, object]]:
    """(model, submodel) slots in model order; submodel is None when absent."""
    if "submodel" not in df.columns:
        return [(m, None) for m in models]
    slots: List[Tuple[str, object]] = []
    for m in models:
        subs = pd.unique(df.loc[df["model"].astype(str) == m, "submodel"].dropna())
        if len(subs) == 0:
            slots.append((m, None))
        slots.extend((m, s) for s in subs)
    return slots


def build_grid(df: pd.DataFrame) -> pd.DataFrame:
    """
    Cross the ordered term set with the ordered model set, filling absent cells.

    Parameters:
        df: coefficient table with a `model` column (and optionally `submodel`).
            Existing ordered Categoricals on term/model define the orders.

    Returns:
        DataFrame with |terms| x |model slots| rows, in (term, model) order, with a
        boolean `placeholder` column. Term and model stay ordered Categoricals.
    """
    if "model" not in df.columns:
        raise InputFormatError("Grid alignment requires a 'model' column")

    terms = resolve_term_order(df)
    models = resolve_model_order(df)
    slots = _model_slots(df, models)
    has_sub = "submodel" in df.columns

    # term -> (model, submodel) -> row
    cells: Dict[str, Dict[Tuple[str, object], dict]] = {t: {} for t in terms}
    for rec in df.to_dict(orient="records"):
        key = (str(rec["model"]), rec.get("submodel") if has_sub else None)
        cells[str(rec["term"])][key] = rec

    value_cols = [c for c in df.columns if c not in ("term", "model", "submodel")]
    rows = []
    n_placeholders = 0
    for t in terms:
        for model, sub in slots:
            rec = cells[t].get((model, sub))
            if rec is None:
                rec = {c: np.nan for c in value_cols}
                rec.update({"term": t, "model": model})
                if has_sub:
                    rec["submodel"] = sub
                rec["placeholder"] = True
                n_placeholders += 1
            else:
                rec = dict(rec)
                rec["placeholder"] = False
            rows.append(rec)

    out = pd.DataFrame(rows, columns=list(df.columns) + ["placeholder"])
    out["placeholder"] = out["placeholder"].astype(bool)
    out["term"] = as_ordered(out["term"], terms)
    out["model"] = as_ordered(out["model"], models)
    logger.debug(
        "Grid: %d terms x %d slots -> %d rows (%d placeholders)",
        len(terms),
        len(slots),
        len(out),
        n_placeholders,
    )
    return out
