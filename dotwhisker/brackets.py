"""
Bracket/group annotator.

Groups are labelled sets of terms. Each group becomes a bracket beside the term
axis spanning the rows of its members, with a tick at both ends and a rotated
label centred on the span. Brackets are an annotation layer only: they never
reorder terms. Overlapping groups are drawn as given.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from .errors import InputFormatError, UnknownTermError
from .params import BracketParams

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bracket:
    label: str
    members: Tuple[str, ...]


@dataclass(frozen=True)
class BracketGeometry:
    """
    Resolved bracket placement.

    start/end are term row positions (start <= end); x, tick_length, label_x are
    axes fractions along the horizontal axis.
    """

    label: str
    start: float
    end: float
    x: float
    tick_length: float
    label_x: float
    label_y: float
    rotation: float = 90.0

    def segments(self) -> List[Tuple[Tuple[float, float], Tuple[float, float]]]:
        """Spine plus the two end ticks as ((x0, y0), (x1, y1)) pairs."""
        tip = self.x + self.tick_length
        return [
            ((self.x, self.start), (self.x, self.end)),
            ((self.x, self.start), (tip, self.start)),
            ((self.x, self.end), (tip, self.end)),
        ]


def _to_bracket(item: Any) -> Bracket:
    if isinstance(item, Bracket):
        label, members = item.label, list(item.members)
    elif isinstance(item, (list, tuple)):
        if len(item) == 0:
            raise InputFormatError("Empty bracket definition")
        # (label, [members]) pair or [label, member, member, ...]
        if len(item) == 2 and isinstance(item[1], (list, tuple)):
            label, members = item[0], list(item[1])
        else:
            label, members = item[0], list(item[1:])
    else:
        raise InputFormatError(
            f"Bracket definitions must be sequences [label, term, ...], got: {item!r}"
        )
    members = [str(m).strip() for m in members]
    if not members:
        raise InputFormatError(f"Bracket '{label}' has no member terms")
    return Bracket(label=str(label), members=tuple(members))


def normalize_groups(group_defs: Any) -> List[Bracket]:
    """Normalize caller group definitions into Bracket objects, keeping their order."""
    if group_defs is None:
        return []
    if isinstance(group_defs, (Bracket, str)):
        group_defs = [group_defs]
    if isinstance(group_defs, Mapping):
        return [_to_bracket((label, list(members))) for label, members in group_defs.items()]
    # A single flat definition ["label", "t1", "t2"] is a list of strings
    if isinstance(group_defs, (list, tuple)) and group_defs and all(
        isinstance(g, str) for g in group_defs
    ):
        return [_to_bracket(group_defs)]
    if (
        isinstance(group_defs, (list, tuple))
        and len(group_defs) == 2
        and isinstance(group_defs[0], str)
        and isinstance(group_defs[1], (list, tuple))
    ):
        return [_to_bracket(group_defs)]
    return [_to_bracket(g) for g in group_defs]


def resolve_members(bracket: Bracket, positions: Mapping[str, float]) -> List[float]:
    lookup = {str(k).strip(): v for k, v in positions.items()}
    unknown = [m for m in bracket.members if m not in lookup]
    if unknown:
        raise UnknownTermError(
            f"Bracket '{bracket.label}' references unknown term(s): {unknown}. "
            f"Known terms: {sorted(lookup)}"
        )
    return [lookup[m] for m in bracket.members]


def bracket_geometry(
    group_defs: Any,
    positions: Mapping[str, float],
    params: Optional[BracketParams] = None,
) -> List[BracketGeometry]:
    """
    Compute bracket geometry for each group.

    Parameters:
        group_defs: see normalize_groups.
        positions: term -> row position in the finalized order.
        params: BracketParams (defaults when None).

    Raises:
        UnknownTermError: when a member is not one of the positioned terms.
    """
    params = params or BracketParams()
    out: List[BracketGeometry] = []
    for bracket in normalize_groups(group_defs):
        pos = resolve_members(bracket, positions)
        start, end = float(min(pos)), float(max(pos))
        out.append(
            BracketGeometry(
                label=bracket.label,
                start=start,
                end=end,
                x=params.x,
                tick_length=params.tick_length,
                label_x=params.x - params.label_pad,
                label_y=(start + end) / 2.0,
            )
        )
    _log_overlaps(out)
    return out


def _log_overlaps(geoms: Iterable[BracketGeometry]) -> None:
    geoms = list(geoms)
    for i, a in enumerate(geoms):
        for b in geoms[i + 1 :]:
            if a.start <= b.end and b.start <= a.end:
                logger.debug("Brackets '%s' and '%s' overlap", a.label, b.label)

