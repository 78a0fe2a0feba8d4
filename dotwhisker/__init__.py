"""Dot-and-whisker plots of regression results."""

from .brackets import Bracket, BracketGeometry
from .errors import (
    AmbiguousOrderError,
    DotWhiskerError,
    InputFormatError,
    InsufficientModelsError,
    InvalidParameterError,
    UnknownTermError,
)
from .params import BracketParams, PlotParams, get_default_params
from .plot import (
    DotWhiskerChart,
    add_brackets,
    dotwhisker_plot,
    secret_weapon,
    small_multiple,
)
from .scaling import by_2sd, relabel_predictors
from .tidy import ModelList, SingleModel, TableInput, dw_tidy

__all__ = [
    "AmbiguousOrderError",
    "Bracket",
    "BracketGeometry",
    "BracketParams",
    "DotWhiskerChart",
    "DotWhiskerError",
    "InputFormatError",
    "InsufficientModelsError",
    "InvalidParameterError",
    "ModelList",
    "PlotParams",
    "SingleModel",
    "TableInput",
    "UnknownTermError",
    "add_brackets",
    "by_2sd",
    "dotwhisker_plot",
    "dw_tidy",
    "get_default_params",
    "relabel_predictors",
    "secret_weapon",
    "small_multiple",
]
