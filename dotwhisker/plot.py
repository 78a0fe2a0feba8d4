"""
Plot assembler: tidy -> bounds -> order -> (grid) -> (dodge) -> matplotlib chart.

Three chart kinds share the pipeline:
- dotwhisker_plot(): one row per term, models dodged and coloured within a row.
- secret_weapon(): one predictor compared across models (models become the rows).
- small_multiple(): one facet per term, models along the horizontal axis,
  placeholder slots keep every facet the same shape.

The assemble_* functions are pure and return the final tidy table; the public
entry points render it and return a DotWhiskerChart that callers can extend with
further layers or brackets.
"""

import contextlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

# Force the non-interactive backend before pyplot is imported; rendering runs
# in headless environments (CI, the Gradio worker).
import matplotlib

matplotlib.use("Agg", force=True)
import matplotlib.pyplot as plt
import pandas as pd
from matplotlib.lines import Line2D

from .brackets import BracketGeometry, bracket_geometry
from .dodge import assign_offsets
from .errors import InputFormatError, InsufficientModelsError, UnknownTermError
from .grid import build_grid
from .intervals import add_confidence_bounds, validate_alpha
from .ordering import as_ordered, order_table, term_positions
from .params import BracketParams, PlotParams, with_overrides
from .scaling import drop_intercept, relabel_predictors
from .tidy import Tidier, distinct_in_order, dw_tidy, has_models, validate_table

logger = logging.getLogger(__name__)

X_LABEL = "Coefficient Estimate"


@dataclass
class DotWhiskerChart:
    """
    Rendered chart plus the table it was drawn from.

    Attributes:
        figure: matplotlib Figure.
        axes: Axes in display order (one per facet for small multiples).
        data: final tidy table (ordered Categoricals, lb/ub, positions).
        kind: "dotwhisker", "secret_weapon" or "small_multiple".
        term_positions: row label -> position on the vertical axis; empty for
            small multiples, whose terms are facets.
        brackets: geometry of brackets added through add_brackets().
    """

    figure: Any
    axes: List[Any]
    data: pd.DataFrame
    kind: str
    term_positions: Dict[str, float] = field(default_factory=dict)
    brackets: List[BracketGeometry] = field(default_factory=list)

    @property
    def ax(self):
        return self.axes[0]

    def add_layer(self, fn: Callable[[Any], Any]) -> "DotWhiskerChart":
        """Call fn(ax) for every axes and return the chart for chaining."""
        for ax in self.axes:
            fn(ax)
        return self

    def savefig(self, path: Union[str, Path], **kwargs) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        kwargs.setdefault("bbox_inches", "tight")
        self.figure.savefig(path, **kwargs)
        return path

    def close(self) -> None:
        plt.close(self.figure)


# -------------------------
# Pure assembly
# -------------------------
def _effective_params(params: Optional[PlotParams], alpha, options) -> PlotParams:
    base = params if params is not None else PlotParams()
    effective = with_overrides(base, alpha=alpha, **options)
    validate_alpha(effective.alpha)
    return effective


def prepare_table(x: Any, params: PlotParams, tidier: Optional[Tidier] = None) -> pd.DataFrame:
    """Tidy the input, apply relabelling/intercept options and resolve bounds."""
    df = dw_tidy(x, tidier=tidier)
    if not params.show_intercept:
        df = drop_intercept(df)
        if df.empty:
            raise InputFormatError("No coefficients left after dropping the intercept")
    if params.relabel:
        df = relabel_predictors(df, params.relabel)
        # a mapping may merge two terms of one model
        validate_table(df)
    return add_confidence_bounds(df, alpha=params.alpha)


def require_models(df: pd.DataFrame, what: str) -> List[str]:
    """Return the distinct models; at least two are required for comparison plots."""
    if not has_models(df):
        if df["term"].nunique() == len(df):
            raise InsufficientModelsError(
                f"{what} plots compare results across models; please submit results "
                "from more than one model"
            )
        raise InputFormatError("Please add a column named 'model' to distinguish different models")
    models = distinct_in_order(df["model"])
    if len(models) < 2:
        raise InsufficientModelsError(
            f"{what} plots need at least two models, got {len(models)}: {models}"
        )
    return models


def assemble_dotwhisker(
    x: Any, params: Optional[PlotParams] = None, tidier: Optional[Tidier] = None
) -> pd.DataFrame:
    """Final table for a dot-and-whisker plot: ordered rows with y = position + offset."""
    params = params or PlotParams()
    validate_alpha(params.alpha)
    df = prepare_table(x, params, tidier=tidier)
    df = order_table(df, order_vars=params.order_vars, model_order=params.model_order)
    df = _dodge(df, "model", params)
    df["y"] = df["position"] + df["offset"]
    return df


def assemble_secret_weapon(
    x: Any, var: str, params: Optional[PlotParams] = None, tidier: Optional[Tidier] = None
) -> pd.DataFrame:
    """
    Final table for a secret weapon plot: the rows of `var`, one per model, with the
    model names moved into `term` (the vertical axis) and the predictor kept in
    `predictor`. Submodels, when present, become the dodge/colour group.
    """
    params = params or PlotParams()
    validate_alpha(params.alpha)
    df = prepare_table(x, with_overrides(params, show_intercept=True), tidier=tidier)
    require_models(df, "Secret weapon")

    var = str(var).strip() if var is not None else None
    if params.relabel and var in params.relabel:
        var = str(params.relabel[var])
    picked = df.loc[df["term"].astype(str) == var]
    if picked.empty:
        raise UnknownTermError(
            f"Predictor {var!r} not found; available terms: {distinct_in_order(df['term'].astype(str))}"
        )

    picked = picked.rename(columns={"term": "predictor"})
    picked = picked.rename(columns={"model": "term"})
    if "submodel" in picked.columns:
        picked = picked.rename(columns={"submodel": "model"})
    picked = picked.reset_index(drop=True)

    df = order_table(picked, order_vars=params.model_order)
    df = _dodge(df, "model", params)
    df["y"] = df["position"] + df["offset"]
    logger.debug("Secret weapon for %r across %d models", var, df["term"].nunique())
    return df


def assemble_small_multiple(
    x: Any, params: Optional[PlotParams] = None, tidier: Optional[Tidier] = None
) -> pd.DataFrame:
    """
    Final table for a small multiple: the complete term x model grid with
    placeholder rows, a 1-based `slot` per model and x = slot + submodel offset.
    """
    params = params or PlotParams()
    validate_alpha(params.alpha)
    df = prepare_table(x, params, tidier=tidier)
    require_models(df, "Small multiple")

    order_vars = params.order_vars
    term = df["term"]
    carried = isinstance(term.dtype, pd.CategoricalDtype) and term.cat.ordered
    if order_vars is None and not carried:
        # facets run top to bottom in input order
        order_vars = distinct_in_order(term)
    df = order_table(df, order_vars=order_vars, model_order=params.model_order)
    df = build_grid(df)
    df["position"] = df["term"].cat.codes.astype(int) + 1
    df["slot"] = df["model"].cat.codes.astype(int) + 1
    if "submodel" in df.columns:
        df["submodel"] = as_ordered(df["submodel"], distinct_in_order(df["submodel"]))
        df = _dodge(df, "submodel", params)
    else:
        df["offset"] = 0.0
    df["x"] = df["slot"] + df["offset"]
    return df


def _dodge(df: pd.DataFrame, column: str, params: PlotParams) -> pd.DataFrame:
    if column not in df.columns or df[column].nunique() < 2:
        out = df.copy()
        out["offset"] = 0.0
        return out
    return assign_offsets(
        df, column=column, increment=params.dodge_increment, dodge_size=params.dodge_size
    )


# -------------------------
# Rendering
# -------------------------
def _style(params: PlotParams):
    return plt.style.context(params.style) if params.style else contextlib.nullcontext()


def _colors(groups: List[str], colormap: str) -> Dict[str, Any]:
    cmap = plt.get_cmap(colormap)
    n = getattr(cmap, "N", 10)
    return {g: cmap(i % n) for i, g in enumerate(groups)}


def _draw_rows(ax, df: pd.DataFrame, params: PlotParams) -> None:
    """Horizontal whiskers and dots, coloured by model when there are several."""
    if "model" in df.columns and df["model"].nunique() > 1:
        groups = [str(m) for m in df["model"].cat.categories]
        colors = _colors(groups, params.colormap)
        for g in groups:
            part = df.loc[df["model"].astype(str) == g]
            ax.hlines(part["y"], part["lb"], part["ub"], color=colors[g], linewidth=params.whisker_linewidth)
            ax.scatter(part["estimate"], part["y"], s=params.dot_size, color=colors[g], zorder=3, label=g)
        handles = [Line2D([], [], color=colors[g], marker="o", label=g) for g in groups]
        # first model at the top of the legend, matching the dodge order
        ax.legend(handles=handles, title="Model", loc="best")
    else:
        color = plt.get_cmap(params.colormap)(0)
        ax.hlines(df["y"], df["lb"], df["ub"], color=color, linewidth=params.whisker_linewidth)
        ax.scatter(df["estimate"], df["y"], s=params.dot_size, color=color, zorder=3)


def _render_rows(df: pd.DataFrame, params: PlotParams, kind: str, title: Optional[str] = None) -> DotWhiskerChart:
    positions = term_positions(df)
    n = len(positions)
    figsize = params.figsize or (7.0, max(2.5, 0.45 * n + 1.2))
    with _style(params):
        fig, ax = plt.subplots(figsize=figsize)
        try:
            _draw_rows(ax, df, params)
            if params.vline is not None:
                ax.axvline(params.vline, color="grey", linestyle="--", linewidth=1)
            ax.set_yticks(list(positions.values()))
            ax.set_yticklabels(list(positions.keys()))
            # position 1 is the top row
            ax.set_ylim(n + 0.5, 0.5)
            ax.set_xlabel(X_LABEL)
            if title:
                ax.set_title(title)
            ax.grid(True, axis="x", alpha=0.3)
        except Exception:
            plt.close(fig)
            raise
    return DotWhiskerChart(figure=fig, axes=[ax], data=df, kind=kind, term_positions=positions)


def _render_facets(df: pd.DataFrame, params: PlotParams) -> DotWhiskerChart:
    terms = [str(t) for t in df["term"].cat.categories]
    models = [str(m) for m in df["model"].cat.categories]
    has_sub = "submodel" in df.columns and df["submodel"].nunique() > 1
    figsize = params.figsize or (max(5.0, 0.9 * len(models) + 2.0), max(3.0, 1.3 * len(terms)))
    with _style(params):
        fig, axes = plt.subplots(
            nrows=len(terms), ncols=1, sharex=True, sharey=True, figsize=figsize, squeeze=False
        )
        axes = [a for a in axes[:, 0]]
        try:
            if has_sub:
                groups = [str(s) for s in df["submodel"].cat.categories]
            else:
                groups = ["_all"]
            colors = _colors(groups, params.colormap)
            for ax, term in zip(axes, terms):
                panel = df.loc[(df["term"].astype(str) == term) & ~df["placeholder"]]
                for g in groups:
                    part = panel if g == "_all" else panel.loc[panel["submodel"].astype(str) == g]
                    ax.vlines(part["x"], part["lb"], part["ub"], color=colors[g], linewidth=params.whisker_linewidth)
                    ax.scatter(part["x"], part["estimate"], s=params.dot_size, color=colors[g], zorder=3)
                if params.vline is not None:
                    ax.axhline(params.vline, color="grey", linestyle="--", linewidth=1)
                ax.set_ylabel(term, rotation=0, ha="right", va="center")
                ax.grid(True, axis="y", alpha=0.3)
            # empty placeholder slots stay on the shared axis
            axes[-1].set_xticks(list(range(1, len(models) + 1)))
            axes[-1].set_xticklabels(models)
            axes[-1].set_xlim(0.5, len(models) + 0.5)
            fig.supylabel(X_LABEL)
            if has_sub:
                handles = [Line2D([], [], color=colors[g], marker="o", label=g) for g in groups]
                axes[0].legend(handles=handles, title="Submodel", loc="best")
        except Exception:
            plt.close(fig)
            raise
    return DotWhiskerChart(figure=fig, axes=axes, data=df, kind="small_multiple")


# -------------------------
# Public entry points
# -------------------------
def dotwhisker_plot(
    x: Any,
    alpha: Optional[float] = None,
    params: Optional[PlotParams] = None,
    tidier: Optional[Tidier] = None,
    **options,
) -> DotWhiskerChart:
    """
    Dot-and-whisker plot of regression coefficients.

    Parameters:
        x: tidy coefficient table, fitted model, or list of fitted models.
        alpha: confidence criterion; falls back to params.alpha (0.05 by default).
        params: PlotParams; keyword options override individual fields. An option
            passed as None leaves the field as `params` has it, so clearing a
            field (vline, order_vars, ...) goes through params itself, e.g.
            dataclasses.replace(params, vline=None).
        tidier: optional callable turning a fitted model into a per-term table.

    Returns:
        DotWhiskerChart
    """
    params = _effective_params(params, alpha, options)
    df = assemble_dotwhisker(x, params, tidier=tidier)
    logger.debug("dotwhisker_plot: %d rows", len(df))
    return _render_rows(df, params, kind="dotwhisker")


def secret_weapon(
    x: Any,
    var: str,
    alpha: Optional[float] = None,
    params: Optional[PlotParams] = None,
    tidier: Optional[Tidier] = None,
    **options,
) -> DotWhiskerChart:
    """
    'Secret weapon' plot (Gelman): the estimate of one predictor across many models.

    Raises:
        InsufficientModelsError: fewer than two distinct models.
        UnknownTermError: `var` is not a term of the table.
    """
    params = _effective_params(params, alpha, options)
    df = assemble_secret_weapon(x, var, params, tidier=tidier)
    return _render_rows(df, params, kind="secret_weapon", title=str(var))


def small_multiple(
    x: Any,
    alpha: Optional[float] = None,
    params: Optional[PlotParams] = None,
    tidier: Optional[Tidier] = None,
    **options,
) -> DotWhiskerChart:
    """
    'Small multiple' plot (Kastellec and Leoni 2007): one facet per predictor
    comparing its estimate across models on a common scale.
    """
    params = _effective_params(params, alpha, options)
    df = assemble_small_multiple(x, params, tidier=tidier)
    return _render_facets(df, params)


def add_brackets(
    chart: DotWhiskerChart, group_defs: Any, params: Optional[BracketParams] = None
) -> DotWhiskerChart:
    """
    Draw labelled brackets grouping terms beside the vertical axis.

    group_defs: e.g. [["Group A", "x1", "x2"], ["Group B", "x3"]] or {"Group A": ["x1", "x2"]}.
    Returns the same chart with the geometry recorded in chart.brackets.
    """
    params = params or BracketParams()
    geoms = bracket_geometry(group_defs, chart.term_positions, params)
    ax = chart.ax
    trans = ax.get_yaxis_transform()
    for g in geoms:
        for (x0, y0), (x1, y1) in g.segments():
            ax.plot([x0, x1], [y0, y1], color="black", linewidth=params.linewidth, transform=trans, clip_on=False)
        ax.text(
            g.label_x,
            g.label_y,
            g.label,
            rotation=g.rotation,
            ha="center",
            va="center",
            fontsize=params.fontsize,
            transform=trans,
            clip_on=False,
        )
    chart.brackets.extend(geoms)
    logger.debug("Added %d bracket(s)", len(geoms))
    return chart
