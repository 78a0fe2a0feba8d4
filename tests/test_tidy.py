import numpy as np
import pandas as pd
import pytest
import statsmodels.api as sm

from dotwhisker.errors import InputFormatError
from dotwhisker.tidy import (
    ModelList,
    SingleModel,
    TableInput,
    classify_input,
    dw_tidy,
    load_table,
    tidy_model,
)


def _fit_models(seed=0, n=120):
    rng = np.random.default_rng(seed)
    X = pd.DataFrame({"x1": rng.normal(size=n), "x2": rng.normal(size=n)})
    y = 1.0 + 0.5 * X["x1"] - 0.3 * X["x2"] + rng.normal(scale=0.5, size=n)
    m1 = sm.OLS(y, sm.add_constant(X[["x1"]])).fit()
    m2 = sm.OLS(y, sm.add_constant(X)).fit()
    return m1, m2


def test_classify_input_variants():
    df = pd.DataFrame({"term": ["a"], "estimate": [1.0], "std.error": [0.1]})
    m1, m2 = _fit_models()

    assert isinstance(classify_input(df), TableInput)
    assert isinstance(classify_input([{"term": "a", "estimate": 1.0, "std.error": 0.1}]), TableInput)
    assert isinstance(classify_input(m1), SingleModel)
    assert isinstance(classify_input([m1, m2]), ModelList)
    # variants pass through untouched
    v = ModelList((m1,))
    assert classify_input(v) is v


def test_single_statsmodels_result_is_tidied():
    m1, _ = _fit_models()
    df = dw_tidy(m1)

    assert list(df["term"]) == ["const", "x1"]
    assert df["estimate"].tolist() == pytest.approx(m1.params.tolist())
    assert df["std.error"].tolist() == pytest.approx(m1.bse.tolist())
    assert "model" not in df.columns


def test_ndarray_exog_uses_statsmodels_names():
    rng = np.random.default_rng(3)
    X = sm.add_constant(rng.normal(size=(50, 2)))
    y = X @ np.array([1.0, 2.0, -1.0]) + rng.normal(size=50)
    res = sm.OLS(y, X).fit()

    out = tidy_model(res)
    assert list(out["term"]) == ["const", "x1", "x2"]


def test_model_list_gets_positional_model_names():
    m1, m2 = _fit_models()
    df = dw_tidy([m1, m2])

    assert len(df) == 5
    assert list(df["model"]) == ["Model 1"] * 2 + ["Model 2"] * 3
    assert list(df["term"]) == ["const", "x1", "const", "x1", "x2"]


def test_list_of_tidy_tables_is_concatenated():
    a = pd.DataFrame({"term": ["x", "y"], "estimate": [1.0, 2.0], "std.error": [0.1, 0.2]})
    b = pd.DataFrame({"term": ["x"], "estimate": [1.5], "std.error": [0.3]})
    df = dw_tidy([a, b])
    assert list(df["model"]) == ["Model 1", "Model 1", "Model 2"]


def test_custom_tidier_and_tidy_method():
    class Fake:
        def tidy(self):
            return {"term": ["a", "b"], "estimate": [0.1, 0.2], "std.error": [0.01, 0.02]}

    assert list(dw_tidy(Fake())["term"]) == ["a", "b"]

    df = dw_tidy(
        ["m1", "m2"],
        tidier=lambda m: pd.DataFrame({"term": ["k"], "estimate": [len(m)], "lb": [0.0], "ub": [3.0]}),
    )
    assert list(df["model"]) == ["Model 1", "Model 2"]
    assert df["estimate"].tolist() == [2.0, 2.0]


def test_tidied_result_without_estimate_fails():
    with pytest.raises(InputFormatError):
        dw_tidy(object())
    with pytest.raises(InputFormatError, match="estimate"):
        dw_tidy([1, 2], tidier=lambda m: pd.DataFrame({"term": ["a"], "coef": [1.0]}))


def test_missing_columns_and_malformed_rows():
    with pytest.raises(InputFormatError, match="missing required columns"):
        dw_tidy(pd.DataFrame({"term": ["a"], "std.error": [0.1]}))

    # neither std.error nor lb/ub
    with pytest.raises(InputFormatError):
        dw_tidy(pd.DataFrame({"term": ["a"], "estimate": [1.0]}))

    # a row with neither
    with pytest.raises(InputFormatError, match="offending terms"):
        dw_tidy(
            pd.DataFrame(
                {"term": ["a", "b"], "estimate": [1.0, 2.0], "std.error": [0.1, np.nan]}
            )
        )

    with pytest.raises(InputFormatError, match="numeric"):
        dw_tidy(pd.DataFrame({"term": ["a"], "estimate": ["big"], "std.error": [0.1]}))


def test_duplicate_terms_within_model_rejected():
    df = pd.DataFrame(
        {
            "term": ["a", "a", "a"],
            "estimate": [1.0, 2.0, 3.0],
            "std.error": [0.1, 0.1, 0.1],
            "model": ["m1", "m1", "m2"],
        }
    )
    with pytest.raises(InputFormatError, match="repeated"):
        dw_tidy(df)


def test_normalizer_does_not_mutate_and_strips_whitespace():
    df = pd.DataFrame({"term": [" x1 ", "x2"], "estimate": ["0.5", "1"], "std.error": [0.1, 0.2]})
    before = df.copy()
    out = dw_tidy(df)

    pd.testing.assert_frame_equal(df, before)
    assert list(out["term"]) == ["x1", "x2"]
    assert out["estimate"].dtype == float


def test_load_table_csv(tmp_path):
    p = tmp_path / "coefs.csv"
    pd.DataFrame({"term": ["a"], "estimate": [1.0], "std_error": [0.1]}).to_csv(p, index=False)
    df = load_table(p)
    assert "std.error" in df.columns

    with pytest.raises(FileNotFoundError):
        load_table(tmp_path / "missing.csv")
    bad = tmp_path / "coefs.txt"
    bad.write_text("x", encoding="utf-8")
    with pytest.raises(InputFormatError):
        load_table(bad)


def test_load_table_parquet(tmp_path):
    p = tmp_path / "coefs.parquet"
    src = pd.DataFrame(
        {"term": ["a", "b"], "estimate": [1.0, -0.5], "std.error": [0.1, 0.2], "model": ["m1", "m1"]}
    )
    src.to_parquet(p, index=False)

    df = load_table(p)
    pd.testing.assert_frame_equal(df, src, check_dtype=False)
    assert list(dw_tidy(df)["term"]) == ["a", "b"]


def test_load_table_rejects_unsupported_suffix(tmp_path):
    p = tmp_path / "coefs.xlsx"
    p.write_bytes(b"not a table")
    with pytest.raises(InputFormatError, match="Unsupported table format"):
        load_table(p)


def test_partially_missing_submodel_falls_back_to_model():
    df = pd.DataFrame(
        {
            "term": ["a", "a", "a"],
            "model": ["m1", "m1", "m2"],
            "submodel": ["s1", "s2", None],
            "estimate": [1.0, 2.0, 3.0],
            "std.error": [0.1, 0.1, 0.1],
        }
    )
    out = dw_tidy(df)
    assert list(out["submodel"]) == ["s1", "s2", "m2"]

    # a submodel column with nothing in it is dropped
    out = dw_tidy(df.assign(submodel=None))
    assert "submodel" not in out.columns


def test_dict_of_scalars_is_an_input_format_error():
    with pytest.raises(InputFormatError, match="dict"):
        dw_tidy({"term": "x", "estimate": 1.0})
