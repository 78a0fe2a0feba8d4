"""
Tidy normalizer: turn tables, fitted models or lists of fitted models into one
canonical coefficient table.

Canonical columns:
  - term (str, required)
  - estimate (float, required)
  - std.error (float) or both lb/ub (float)
  - model, submodel (str, optional)
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Sequence, Union

import numpy as np
import pandas as pd
from statsmodels.base.model import Results
from statsmodels.base.wrapper import ResultsWrapper

from .errors import InputFormatError

logger = logging.getLogger(__name__)

NUMERIC_COLUMNS = ("estimate", "std.error", "lb", "ub")
LABEL_COLUMNS = ("term", "model", "submodel")

Tidier = Callable[[Any], Any]


@dataclass(frozen=True)
class TableInput:
    """An already-tidy coefficient table."""

    table: pd.DataFrame


@dataclass(frozen=True)
class SingleModel:
    """One fitted model handle, tidied through the tidying collaborator."""

    model: Any


@dataclass(frozen=True)
class ModelList:
    """An ordered collection of fitted model handles."""

    models: tuple


PlotInput = Union[TableInput, SingleModel, ModelList]


def classify_input(x: Any) -> PlotInput:
    """
    Wrap a raw caller object into one of the input variants.

    DataFrames, dicts of columns and lists of row dicts are tables; other lists
    and tuples are model lists; anything else is a single model.
    """
    if isinstance(x, (TableInput, SingleModel, ModelList)):
        return x
    if isinstance(x, pd.DataFrame):
        return TableInput(x)
    if isinstance(x, dict):
        try:
            return TableInput(pd.DataFrame(x))
        except ValueError as e:
            raise InputFormatError(f"Cannot build a coefficient table from dict: {e}") from e
    if isinstance(x, (list, tuple)):
        if len(x) == 0:
            raise InputFormatError("No models or coefficient rows were supplied")
        if all(isinstance(item, dict) for item in x):
            return TableInput(pd.DataFrame(list(x)))
        return ModelList(tuple(x))
    return SingleModel(x)


def _is_statsmodels_results(model: Any) -> bool:
    if isinstance(model, (Results, ResultsWrapper)):
        return True
    return hasattr(model, "params") and hasattr(model, "bse")


def tidy_model(model: Any, tidier: Optional[Tidier] = None) -> pd.DataFrame:
    """
    Produce the per-term rows for one fitted model.

    Resolution order:
      1. tidier(model) when a tidier callable is supplied
      2. a DataFrame, taken as already tidy
      3. statsmodels results (or any object exposing `params` and `bse`)
      4. an object with a callable `tidy()` method
    """
    if tidier is not None:
        out = tidier(model)
    elif isinstance(model, pd.DataFrame):
        out = model.copy()
    elif _is_statsmodels_results(model):
        params = model.params
        if not isinstance(params, pd.Series):
            # ndarray exog: recover names from the underlying statsmodels model
            names = getattr(getattr(model, "model", None), "exog_names", None)
            params = pd.Series(np.asarray(params, dtype=float), index=names)
        bse = pd.Series(np.asarray(model.bse, dtype=float), index=params.index)
        out = pd.DataFrame(
            {
                "term": [str(t) for t in params.index],
                "estimate": params.to_numpy(dtype=float),
                "std.error": bse.to_numpy(dtype=float),
            }
        )
    elif callable(getattr(model, "tidy", None)):
        out = model.tidy()
    else:
        raise InputFormatError(
            f"Cannot tidy object of type {type(model).__name__}: expected a "
            "statsmodels results object, an object with a tidy() method, or a tidier"
        )

    if not isinstance(out, pd.DataFrame):
        out = pd.DataFrame(out)
    if "estimate" not in out.columns:
        raise InputFormatError(
            f"Tidied result for {type(model).__name__} has no 'estimate' column"
        )
    return out.reset_index(drop=True)


def _concat_models(models: Sequence[Any], tidier: Optional[Tidier]) -> pd.DataFrame:
    frames = [tidy_model(m, tidier=tidier) for m in models]
    # 1-based position labels for frames that do not name their model
    frames = [
        f if "model" in f.columns else f.assign(model=f"Model {i}")
        for i, f in enumerate(frames, start=1)
    ]
    logger.debug("Tidied %d model(s) -> %s rows", len(frames), [len(f) for f in frames])
    return pd.concat(frames, ignore_index=True)


def _fill_submodel(df: pd.DataFrame) -> pd.DataFrame:
    """
    Rows without a submodel stand for their model as a whole: they take the model
    label as submodel. A column with no submodel at all is dropped.
    """
    if df["submodel"].isna().all():
        return df.drop(columns="submodel")
    fill = df["model"].astype(str).str.strip() if "model" in df.columns else ""
    df["submodel"] = df["submodel"].where(df["submodel"].notna(), fill)
    return df


def _coerce_labels(df: pd.DataFrame) -> pd.DataFrame:
    for col in LABEL_COLUMNS:
        if col not in df.columns:
            continue
        # Ordered categoricals carry a display order from a previous run; keep them.
        if isinstance(df[col].dtype, pd.CategoricalDtype):
            continue
        if col == "submodel" and df[col].isna().any():
            df = _fill_submodel(df)
            if "submodel" not in df.columns:
                continue
        if df[col].isna().any():
            raise InputFormatError(f"Column '{col}' contains missing values")
        df[col] = df[col].astype(str).str.strip()
    return df


def _coerce_numeric(df: pd.DataFrame) -> pd.DataFrame:
    for col in NUMERIC_COLUMNS:
        if col not in df.columns:
            continue
        coerced = pd.to_numeric(df[col], errors="coerce")
        bad = coerced.isna() & df[col].notna()
        if bad.any():
            bad_rows = df.index[bad][:10].tolist()
            raise InputFormatError(
                f"Column '{col}' must be numeric. Example bad rows: {bad_rows}"
            )
        df[col] = coerced.astype(float)
    return df


def validate_table(df: pd.DataFrame) -> None:
    """
    Check the canonical-table invariants; raises InputFormatError on violation.
    """
    missing = [c for c in ("term", "estimate") if c not in df.columns]
    if missing:
        raise InputFormatError(f"Coefficient table is missing required columns: {missing}")

    has_se = "std.error" in df.columns
    has_bounds = "lb" in df.columns and "ub" in df.columns
    if not has_se and not has_bounds:
        raise InputFormatError(
            "Coefficient table needs a 'std.error' column or both 'lb' and 'ub' columns"
        )

    se_ok = df["std.error"].notna() if has_se else pd.Series(False, index=df.index)
    bounds_ok = (
        df["lb"].notna() & df["ub"].notna()
        if has_bounds
        else pd.Series(False, index=df.index)
    )
    neither = ~(se_ok | bounds_ok)
    if neither.any():
        terms = df.loc[neither, "term"].astype(str).tolist()[:10]
        raise InputFormatError(
            f"Rows need either std.error or both lb and ub; offending terms: {terms}"
        )

    keys = [c for c in ("model", "submodel") if c in df.columns] + ["term"]
    dup = df.duplicated(subset=keys, keep=False)
    if dup.any():
        terms = sorted(set(df.loc[dup, "term"].astype(str)))
        raise InputFormatError(f"Terms repeated within a model: {terms}")


def dw_tidy(x: Any, tidier: Optional[Tidier] = None) -> pd.DataFrame:
    """
    Normalize any accepted input into a fresh canonical coefficient table.

    Parameters:
        x: a tidy table (DataFrame, dict of columns, list of row dicts), a fitted
           model, a list of fitted models, or one of the input variants.
        tidier: optional callable mapping a fitted model to a per-term table.

    Returns:
        pd.DataFrame with canonical columns; the caller's object is not mutated.

    Raises:
        InputFormatError: when required columns are missing or values are malformed.
    """
    variant = classify_input(x)
    if isinstance(variant, TableInput):
        df = variant.table.copy()
    elif isinstance(variant, ModelList):
        df = _concat_models(variant.models, tidier)
    else:
        df = tidy_model(variant.model, tidier=tidier)

    if df.empty:
        raise InputFormatError("Coefficient table has no rows")

    df = df.reset_index(drop=True)
    df = _coerce_labels(df)
    df = _coerce_numeric(df)
    validate_table(df)
    logger.debug(
        "dw_tidy: %s -> %d rows, columns=%s",
        type(variant).__name__,
        len(df),
        list(df.columns),
    )
    return df


def load_table(path: Union[str, Path]) -> pd.DataFrame:
    """Read a tidy coefficient table from .csv or .parquet."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Coefficient table not found: {path}")
    suffix = path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(path)
    elif suffix == ".parquet":
        df = pd.read_parquet(path)
    else:
        raise InputFormatError(f"Unsupported table format: {path.suffix}. Use .csv or .parquet")
    # Spreadsheet exports sometimes write std_error for std.error
    if "std.error" not in df.columns and "std_error" in df.columns:
        df = df.rename(columns={"std_error": "std.error"})
    logger.debug("Loaded %d rows from %s", len(df), path)
    return df


def has_models(df: pd.DataFrame) -> bool:
    return "model" in df.columns and df["model"].notna().any()


def distinct_in_order(values) -> list:
    """Distinct values in first-occurrence order (NaN excluded)."""
    return list(pd.unique(pd.Series(values).dropna()))
