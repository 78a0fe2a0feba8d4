import numpy as np
import pandas as pd
import pytest

from dotwhisker.errors import InputFormatError
from dotwhisker.scaling import by_2sd, drop_intercept, relabel_predictors


def _coefs():
    return pd.DataFrame(
        {
            "term": ["(Intercept)", "wt", "am", "name"],
            "estimate": [30.0, -3.0, 2.0, 1.0],
            "std.error": [2.0, 0.5, 1.0, 0.1],
        }
    )


def test_by_2sd_rescales_continuous_predictors_only():
    data = pd.DataFrame(
        {
            "wt": [2.0, 3.0, 4.0, 5.0],
            "am": [0, 1, 0, 1],
            "name": ["a", "b", "c", "d"],
        }
    )
    out = by_2sd(_coefs(), data)
    factor = 2.0 * data["wt"].std(ddof=1)

    row = out.set_index("term")
    assert row.loc["wt", "estimate"] == pytest.approx(-3.0 * factor)
    assert row.loc["wt", "std.error"] == pytest.approx(0.5 * factor)
    # binary, non-numeric and absent predictors untouched
    assert row.loc["am", "estimate"] == 2.0
    assert row.loc["name", "estimate"] == 1.0
    assert row.loc["(Intercept)", "estimate"] == 30.0


def test_by_2sd_scales_supplied_bounds():
    coefs = pd.DataFrame({"term": ["x"], "estimate": [1.0], "lb": [0.5], "ub": [1.5]})
    data = pd.DataFrame({"x": np.arange(10, dtype=float)})
    out = by_2sd(coefs, data)
    factor = 2.0 * data["x"].std(ddof=1)
    assert out[["estimate", "lb", "ub"]].iloc[0].tolist() == pytest.approx(
        [factor, 0.5 * factor, 1.5 * factor]
    )


def test_drop_intercept_and_relabel():
    out = drop_intercept(_coefs())
    assert list(out["term"]) == ["wt", "am", "name"]

    relabeled = relabel_predictors(out, {"wt": "Weight", "missing": "Nothing"})
    assert list(relabeled["term"]) == ["Weight", "am", "name"]
    # original untouched
    assert list(out["term"]) == ["wt", "am", "name"]


def test_relabel_rejects_merging_ordered_categories():
    df = _coefs()
    df["term"] = pd.Categorical(df["term"], categories=list(df["term"]), ordered=True)
    with pytest.raises(InputFormatError, match="merges"):
        relabel_predictors(df, {"wt": "am"})
