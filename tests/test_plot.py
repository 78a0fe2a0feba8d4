import numpy as np
import pandas as pd
import pytest
import statsmodels.api as sm

from dotwhisker.errors import (
    InputFormatError,
    InsufficientModelsError,
    InvalidParameterError,
    UnknownTermError,
)
from dotwhisker.params import PlotParams
from dotwhisker.plot import (
    DotWhiskerChart,
    add_brackets,
    assemble_dotwhisker,
    assemble_secret_weapon,
    assemble_small_multiple,
    dotwhisker_plot,
    secret_weapon,
    small_multiple,
)


@pytest.fixture
def chart_cleanup():
    charts = []
    yield charts
    for c in charts:
        c.close()


def _two_term_table():
    return pd.DataFrame(
        {"term": ["x1", "x2"], "estimate": [0.5, -0.3], "std.error": [0.1, 0.2]}
    )


def _by_model_table():
    return pd.DataFrame(
        {
            "term": ["x", "y", "x", "y", "z"],
            "model": ["A", "A", "B", "B", "B"],
            "estimate": [1.0, 2.0, 1.5, 2.5, 3.5],
            "std.error": [0.1, 0.2, 0.1, 0.2, 0.3],
        }
    )


def test_single_model_end_to_end_rows_and_bounds(chart_cleanup):
    chart = dotwhisker_plot(_two_term_table(), alpha=0.05)
    chart_cleanup.append(chart)
    df = chart.data

    assert isinstance(chart, DotWhiskerChart)
    assert list(df["term"]) == ["x2", "x1"]
    x1 = df.loc[df["term"] == "x1"].iloc[0]
    x2 = df.loc[df["term"] == "x2"].iloc[0]
    assert (x1["lb"], x1["ub"]) == (pytest.approx(0.304, abs=1e-3), pytest.approx(0.696, abs=1e-3))
    assert (x2["lb"], x2["ub"]) == (pytest.approx(-0.692, abs=1e-3), pytest.approx(0.092, abs=1e-3))

    ax = chart.ax
    assert [t.get_text() for t in ax.get_yticklabels()] == ["x2", "x1"]
    # position 1 at the top of the axis
    bottom, top = ax.get_ylim()
    assert bottom > top
    assert chart.term_positions == {"x2": 1, "x1": 2}


def test_rows_of_list_input_are_accepted(chart_cleanup):
    rows = [
        {"term": "x1", "estimate": 0.5, "std.error": 0.1},
        {"term": "x2", "estimate": -0.3, "std.error": 0.2},
    ]
    chart = dotwhisker_plot(rows)
    chart_cleanup.append(chart)
    assert list(chart.data["term"]) == ["x2", "x1"]


def test_assembled_table_is_stable_when_replotted():
    first = assemble_dotwhisker(_by_model_table())
    second = assemble_dotwhisker(first)

    assert list(second["term"]) == list(first["term"])
    assert list(second["model"]) == list(first["model"])
    assert second["lb"].tolist() == first["lb"].tolist()
    assert second["y"].tolist() == first["y"].tolist()


def test_multi_model_rows_are_dodged(chart_cleanup):
    chart = dotwhisker_plot(_by_model_table(), dodge_increment=0.4)
    chart_cleanup.append(chart)
    df = chart.data

    a = df.loc[(df["term"] == "x") & (df["model"] == "A")].iloc[0]
    b = df.loc[(df["term"] == "x") & (df["model"] == "B")].iloc[0]
    assert a["offset"] == pytest.approx(-0.2)
    assert b["offset"] == pytest.approx(0.2)
    assert a["y"] == pytest.approx(a["position"] - 0.2)
    assert chart.ax.get_legend() is not None


def test_statsmodels_model_list(chart_cleanup):
    rng = np.random.default_rng(11)
    X = pd.DataFrame({"x1": rng.normal(size=80), "x2": rng.normal(size=80)})
    y = 0.4 * X["x1"] + rng.normal(size=80)
    models = [
        sm.OLS(y, sm.add_constant(X[["x1"]])).fit(),
        sm.OLS(y, sm.add_constant(X)).fit(),
    ]
    chart = dotwhisker_plot(models, show_intercept=False)
    chart_cleanup.append(chart)

    df = chart.data
    assert "const" not in set(df["term"].astype(str))
    assert list(df["term"].cat.categories) == ["x2", "x1"]
    assert list(df["model"].cat.categories) == ["Model 1", "Model 2"]


def test_relabel_and_explicit_order(chart_cleanup):
    chart = dotwhisker_plot(
        _two_term_table(),
        relabel={"x1": "Income"},
        order_vars=["Income", "x2"],
        vline=0.0,
    )
    chart_cleanup.append(chart)
    assert list(chart.data["term"]) == ["Income", "x2"]


def test_invalid_alpha_is_rejected():
    with pytest.raises(InvalidParameterError):
        dotwhisker_plot(_two_term_table(), alpha=1.0)
    with pytest.raises(InvalidParameterError):
        dotwhisker_plot(_two_term_table(), params=PlotParams(alpha=0.0))
    with pytest.raises(InvalidParameterError):
        dotwhisker_plot(_two_term_table(), colour="red")


def test_secret_weapon_compares_one_predictor(chart_cleanup):
    chart = secret_weapon(_by_model_table(), "x")
    chart_cleanup.append(chart)
    df = chart.data

    assert len(df) == 2
    assert set(df["predictor"]) == {"x"}
    # models are the rows; default order is reversed like terms
    assert list(df["term"].astype(str)) == ["B", "A"]
    assert chart.ax.get_title() == "x"


def test_secret_weapon_requires_several_models():
    single = _two_term_table().assign(model="only")
    with pytest.raises(InsufficientModelsError):
        secret_weapon(single, "x1")
    with pytest.raises(InsufficientModelsError):
        secret_weapon(_two_term_table(), "x1")


def test_secret_weapon_unknown_predictor():
    with pytest.raises(UnknownTermError):
        assemble_secret_weapon(_by_model_table(), "nope")


def test_secret_weapon_submodels_become_dodge_groups():
    df = _by_model_table().assign(submodel=["s1", "s1", "s2", "s2", "s2"])
    out = assemble_secret_weapon(df, "y", PlotParams(dodge_increment=0.3))
    assert list(out["model"].astype(str)) == ["s2", "s1"]
    assert out["offset"].tolist() == pytest.approx([0.15, -0.15])


def test_small_multiple_grid(chart_cleanup):
    chart = small_multiple(_by_model_table(), alpha=0.05)
    chart_cleanup.append(chart)
    df = chart.data

    assert len(df) == 6
    ph = df.loc[df["placeholder"]]
    assert len(ph) == 1
    assert (str(ph["term"].iloc[0]), str(ph["model"].iloc[0])) == ("z", "A")
    assert np.isnan(ph["lb"].iloc[0]) and np.isnan(ph["ub"].iloc[0])

    # one facet per term, identical model slots in each
    assert len(chart.axes) == 3
    assert df.groupby("term", observed=True)["slot"].apply(list).tolist() == [[1, 2]] * 3
    assert [t.get_text() for t in chart.axes[-1].get_xticklabels()] == ["A", "B"]


def test_small_multiple_requires_several_models():
    with pytest.raises(InsufficientModelsError):
        small_multiple(_two_term_table().assign(model="M"))
    with pytest.raises(InsufficientModelsError):
        assemble_small_multiple(_two_term_table())


def test_small_multiple_submodels_are_dodged_in_slot():
    df = pd.DataFrame(
        {
            "term": ["x", "x", "x", "x"],
            "model": ["A", "A", "B", "B"],
            "submodel": ["s1", "s2", "s1", "s2"],
            "estimate": [1.0, 1.1, 1.2, 1.3],
            "std.error": [0.1] * 4,
        }
    )
    out = assemble_small_multiple(df, PlotParams(dodge_increment=0.2))
    assert out["x"].tolist() == pytest.approx([0.9, 1.1, 1.9, 2.1])


def test_add_brackets_annotates_without_reordering(chart_cleanup):
    table = pd.DataFrame(
        {
            "term": ["a", "b", "c", "d"],
            "estimate": [1.0, 2.0, 3.0, 4.0],
            "std.error": [0.1] * 4,
        }
    )
    chart = dotwhisker_plot(table)
    chart_cleanup.append(chart)
    before = list(chart.data["term"])

    out = add_brackets(chart, [["First", "a", "b"], ["Last", "d"]])

    assert out is chart
    assert list(chart.data["term"]) == before
    spans = {g.label: (g.start, g.end) for g in chart.brackets}
    # reversed order: d=1, c=2, b=3, a=4
    assert spans == {"First": (3.0, 4.0), "Last": (1.0, 1.0)}
    assert "First" in [t.get_text() for t in chart.ax.texts]


def test_add_brackets_unknown_term(chart_cleanup):
    chart = dotwhisker_plot(_two_term_table())
    chart_cleanup.append(chart)
    with pytest.raises(UnknownTermError):
        add_brackets(chart, [["G", "x1", "x9"]])


def test_chart_is_composable_and_saves(tmp_path, chart_cleanup):
    chart = dotwhisker_plot(_two_term_table())
    chart_cleanup.append(chart)

    chart.add_layer(lambda ax: ax.axvline(0.0, color="red"))
    assert len(chart.ax.lines) >= 1
    path = chart.savefig(tmp_path / "out" / "plot.svg")
    assert path.exists() and path.stat().st_size > 0


def test_missing_model_column_with_repeated_terms():
    df = pd.DataFrame({"term": ["x", "x"], "estimate": [1.0, 2.0], "std.error": [0.1, 0.1]})
    with pytest.raises(InputFormatError):
        secret_weapon(df, "x")


def test_relabel_that_merges_terms_is_rejected():
    with pytest.raises(InputFormatError, match="repeated"):
        assemble_dotwhisker(_two_term_table(), PlotParams(relabel={"x1": "x2"}))

    # merging across different models is fine: each model still has unique terms
    df = pd.DataFrame(
        {"term": ["x1", "x2"], "model": ["A", "B"], "estimate": [0.5, -0.3], "std.error": [0.1, 0.2]}
    )
    out = assemble_dotwhisker(df, PlotParams(relabel={"x1": "x2"}))
    assert list(out["term"].astype(str)) == ["x2", "x2"]


def test_small_multiple_facets_follow_input_order(chart_cleanup):
    df = pd.DataFrame(
        {
            "term": ["a", "b", "c", "a", "b", "c"],
            "model": ["M1"] * 3 + ["M2"] * 3,
            "estimate": [1.0, 2.0, 3.0, 1.5, 2.5, 3.5],
            "std.error": [0.1] * 6,
        }
    )
    chart = small_multiple(df)
    chart_cleanup.append(chart)
    assert [ax.get_ylabel() for ax in chart.axes] == ["a", "b", "c"]
    assert list(chart.data["term"].cat.categories) == ["a", "b", "c"]

    # an explicit order still wins
    out = assemble_small_multiple(df, PlotParams(order_vars=["c", "a", "b"]))
    assert list(out["term"].cat.categories) == ["c", "a", "b"]


def test_none_option_keeps_field_from_params(chart_cleanup):
    chart = dotwhisker_plot(_two_term_table(), params=PlotParams(vline=0.0), vline=None)
    chart_cleanup.append(chart)
    # the reference line from params is still drawn
    assert any(list(line.get_xdata()) == [0.0, 0.0] for line in chart.ax.lines)
