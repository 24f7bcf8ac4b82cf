"""Volcano plot classification, coloring and point-cloud processing."""

from __future__ import annotations

from proteocurtain.volcano.classification import comparison_gate, is_significant, significance_group
from proteocurtain.volcano.palette import ColorAllocator, PaletteState, allocate_next
from proteocurtain.volcano.point_cache import VolcanoPointCache
from proteocurtain.volcano.processor import VolcanoProcessor

__all__ = [
    "ColorAllocator",
    "PaletteState",
    "VolcanoPointCache",
    "VolcanoProcessor",
    "allocate_next",
    "comparison_gate",
    "is_significant",
    "significance_group",
]
