from __future__ import annotations

import math
import re
from typing import Optional

# Trailing "(comparison)" suffix of a selection name
COMPARISON_SUFFIX = re.compile(r"\(([^)]*)\)[^(]*$")


def format_cutoff(value: float) -> str:
    return str(float(value))


def significance_threshold(p_cutoff: float) -> float:
    """Cutoff on the -log10 scale. Non-positive cutoffs never pass."""
    if p_cutoff <= 0:
        return math.inf
    return -math.log10(p_cutoff)


def raw_p_value(significance: Optional[float], transformed: bool = False) -> Optional[float]:
    """The p-value behind a stored significance, undoing a -log10 transform."""
    if significance is None or not transformed:
        return significance
    return 10 ** -significance


def is_significant(
    fold_change: Optional[float],
    significance: Optional[float],
    p_cutoff: float,
    log2_fc_cutoff: float,
    transformed: bool = False,
) -> bool:
    """
    A protein is significant when its p-value is below the cutoff and its
    absolute fold change is above the fold-change cutoff.

    Args:
        transformed: ``significance`` holds -log10(p) rather than p
    """
    if fold_change is None or significance is None:
        return False
    if transformed:
        passes_p = significance > significance_threshold(p_cutoff)
    else:
        passes_p = significance < p_cutoff
    return passes_p and abs(fold_change) > log2_fc_cutoff


def significance_group(
    fold_change: float,
    log_significance: float,
    p_cutoff: float,
    log2_fc_cutoff: float,
    comparison: str,
) -> str:
    """
    Two-part classification group of a volcano point, e.g.
    ``"P-value <= 0.05; FC > 0.6 (1)"``.

    ``log_significance`` is the plotted -log10(p) value.
    """
    if log_significance < significance_threshold(p_cutoff):
        p_part = f"P-value > {format_cutoff(p_cutoff)}"
    else:
        p_part = f"P-value <= {format_cutoff(p_cutoff)}"
    if abs(fold_change) > log2_fc_cutoff:
        fc_part = f"FC > {format_cutoff(log2_fc_cutoff)}"
    else:
        fc_part = f"FC <= {format_cutoff(log2_fc_cutoff)}"
    return f"{p_part}; {fc_part} ({comparison})"


def comparison_gate(selection_name: str, comparison: str) -> bool:
    """
    Whether a selection applies to a point of the given comparison.

    Names ending in ``(value)`` only apply to points whose comparison equals
    ``value``; names without such a suffix always apply.
    """
    match = COMPARISON_SUFFIX.search(selection_name)
    if match is None:
        return True
    return match.group(1) == comparison


__all__ = [
    "COMPARISON_SUFFIX",
    "comparison_gate",
    "format_cutoff",
    "is_significant",
    "raw_p_value",
    "significance_group",
    "significance_threshold",
]
