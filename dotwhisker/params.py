"""
Plot configuration.

Defaults live on the dataclasses themselves; callers get fresh instances from
get_default_params() so nothing is shared between plotting calls.
"""

from dataclasses import dataclass, fields, replace
from typing import Dict, List, Optional, Tuple

from .errors import InvalidParameterError

DEFAULT_ALPHA: float = 0.05

# Term names treated as the model intercept when show_intercept is False.
INTERCEPT_TERMS: Tuple[str, ...] = ("(Intercept)", "Intercept", "const")


@dataclass
class PlotParams:
    """
    Controls for the dot-and-whisker assembler.

    Attributes:
        alpha: Criterion for the confidence intervals; 0.05 gives 95% intervals.
        order_vars: Optional explicit term display order, top to bottom. Must list
            every term in the data.
        model_order: Optional explicit model order (dodge/colour/facet order).
        show_intercept: When False, intercept terms (see INTERCEPT_TERMS) are dropped.
        relabel: Optional mapping of term name -> display label.
        dodge_size: Total band width shared by dodged models; the per-model
            increment defaults to dodge_size / (k + 1).
        dodge_increment: Explicit per-model offset increment, overrides dodge_size.
        vline: Optional x position of a reference line (typically 0.0).
        dot_size: Marker area passed to scatter.
        whisker_linewidth: Line width of the whiskers.
        figsize: Optional (width, height) in inches; derived from row count if None.
        style: Optional matplotlib style name applied only while drawing.
        colormap: Matplotlib colormap used to colour models.
    """

    alpha: float = DEFAULT_ALPHA
    order_vars: Optional[List[str]] = None
    model_order: Optional[List[str]] = None
    show_intercept: bool = True
    relabel: Optional[Dict[str, str]] = None
    dodge_size: float = 1.0
    dodge_increment: Optional[float] = None
    vline: Optional[float] = None
    dot_size: float = 30.0
    whisker_linewidth: float = 1.5
    figsize: Optional[Tuple[float, float]] = None
    style: Optional[str] = None
    colormap: str = "tab10"


@dataclass
class BracketParams:
    """
    Bracket geometry controls. x, tick_length and label_pad are axes fractions
    (negative x places the bracket left of the axis, beyond the tick labels).
    """

    x: float = -0.3
    tick_length: float = 0.02
    label_pad: float = 0.04
    fontsize: float = 10.0
    linewidth: float = 1.0


def get_default_params() -> tuple[PlotParams, BracketParams]:
    """Return fresh default parameter objects."""
    return PlotParams(), BracketParams()


def with_overrides(params, **overrides):
    """
    Return a copy of a params dataclass with keyword overrides applied.

    None values are ignored so call sites can forward optional keyword arguments
    untouched; a field that is already set cannot be cleared here, use
    dataclasses.replace(params, field=None) for that. Unknown keys raise
    InvalidParameterError.
    """
    known = {f.name for f in fields(params)}
    unknown = sorted(k for k in overrides if k not in known)
    if unknown:
        raise InvalidParameterError(
            f"Unknown {type(params).__name__} option(s): {unknown}"
        )
    changes = {k: v for k, v in overrides.items() if v is not None}
    return replace(params, **changes)
