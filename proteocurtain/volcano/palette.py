"""
Deterministic palette allocation for volcano groups.

The allocator walks the default palette with a cursor and moves through three
phases:

1. fresh: hand out palette colors nobody uses yet (neither caller overrides
   nor groups colored earlier in the pass)
2. wrapped: after the palette ran out once, start over and only avoid colors
   pinned by caller overrides
3. forced reuse: after the second exhaustion hand out ``palette[cursor]``
   unconditionally

Every group therefore receives a color after at most two passes over the
palette, and N <= K groups on a palette of K colors never share one.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import AbstractSet, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from proteocurtain.constants import FALLBACK_GREY
from proteocurtain.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PaletteState:
    cursor: int = 0
    wrapped: bool = False
    forced_reuse: bool = False


def allocate_next(
    state: PaletteState,
    palette: Sequence[str],
    used: AbstractSet[str],
    reserved: AbstractSet[str] = frozenset(),
) -> Tuple[str, PaletteState]:
    """
    Pick the next color.

    Args:
        state: Current allocator state
        palette: Ordered default palette
        used: Colors already handed out in this pass, overrides included
        reserved: Colors pinned by caller overrides, avoided even after wrapping

    Returns:
        (color, next state)
    """
    size = len(palette)
    if size == 0:
        return FALLBACK_GREY, state

    if state.forced_reuse:
        position = state.cursor % size
        return palette[position], replace(state, cursor=(position + 1) % size)

    blocked = reserved if state.wrapped else used
    for position in range(state.cursor, size):
        if palette[position] not in blocked:
            return palette[position], replace(state, cursor=position + 1)

    if not state.wrapped:
        logger.debug("[PALETTE] Palette exhausted, wrapping around")
        return allocate_next(PaletteState(cursor=0, wrapped=True), palette, used, reserved)

    logger.debug("[PALETTE] Palette exhausted twice, reusing colors")
    return allocate_next(PaletteState(cursor=0, wrapped=True, forced_reuse=True), palette, used, reserved)


class ColorAllocator:
    """
    Colors groups for one processing pass.

    Caller overrides are kept as-is. A group keeps the first color it gets
    for the rest of the pass.
    """

    def __init__(self, palette: Sequence[str], overrides: Optional[Mapping[str, str]] = None):
        self.palette = tuple(palette)
        self.color_map: Dict[str, str] = dict(overrides or {})
        self.reserved = frozenset(self.color_map.values())
        self.used = set(self.reserved)
        self.state = PaletteState()

    def color_for(self, group: str) -> str:
        existing = self.color_map.get(group)
        if existing is not None:
            return existing
        color, self.state = allocate_next(self.state, self.palette, self.used, self.reserved)
        self.color_map[group] = color
        self.used.add(color)
        return color

    def assign(self, groups: Iterable[str]) -> Dict[str, str]:
        """Color every new group, in sorted order."""
        for group in sorted(set(groups)):
            self.color_for(group)
        return self.color_map
