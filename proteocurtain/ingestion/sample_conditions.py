"""
Derive experimental conditions and replicates from raw sample column names.

Sample columns follow the ``<condition>.<replicate>`` naming convention, e.g.
``WT.1``, ``KO.treated.3``. Names without a dot are their own condition.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from proteocurtain.constants import DEFAULT_VOLCANO_PALETTE
from proteocurtain.logging_utils import get_logger
from proteocurtain.models.domain import SampleCondition

logger = get_logger(__name__)


@dataclass
class ConditionLayout:
    """
    Attributes:
        samples: Sample name -> SampleCondition
        condition_order: Conditions, pre-existing order first
        sample_order: Condition -> sample names in column order
        colors: Condition -> hex color
    """
    samples: Dict[str, SampleCondition] = field(default_factory=dict)
    condition_order: List[str] = field(default_factory=list)
    sample_order: Dict[str, List[str]] = field(default_factory=dict)
    colors: Dict[str, str] = field(default_factory=dict)


def split_sample_name(name: str) -> SampleCondition:
    parts = name.split(".")
    if len(parts) < 2:
        return SampleCondition(name=name, condition=name, replicate="")
    return SampleCondition(name=name, condition=".".join(parts[:-1]), replicate=parts[-1])


def derive_sample_conditions(
    sample_columns: Sequence[str],
    existing_conditions: Optional[Mapping[str, str]] = None,
    existing_order: Optional[Sequence[str]] = None,
    existing_colors: Optional[Mapping[str, str]] = None,
    palette: Sequence[str] = DEFAULT_VOLCANO_PALETTE,
) -> ConditionLayout:
    """
    Build the condition layout for a dataset's sample columns.

    Args:
        sample_columns: Raw sample column names in file order
        existing_conditions: Sample -> condition overrides that win over the name split
        existing_order: Previously saved condition order
        existing_colors: Previously assigned condition colors

    Returns:
        ConditionLayout with every sample assigned and every condition colored
    """
    existing_conditions = existing_conditions or {}
    layout = ConditionLayout(colors=dict(existing_colors or {}))

    seen: List[str] = []
    for column in sample_columns:
        parsed = split_sample_name(column)
        override = existing_conditions.get(column)
        if override:
            parsed = SampleCondition(name=column, condition=override, replicate=parsed.replicate)
        layout.samples[column] = parsed
        layout.sample_order.setdefault(parsed.condition, []).append(column)
        if parsed.condition not in seen:
            seen.append(parsed.condition)

    kept = [c for c in (existing_order or []) if c in layout.sample_order]
    layout.condition_order = kept + [c for c in seen if c not in kept]

    position = 0
    for condition in layout.condition_order:
        if condition in layout.colors:
            continue
        if palette:
            layout.colors[condition] = palette[position % len(palette)]
            position += 1

    logger.debug(
        "[PARSER] Derived %d conditions from %d sample columns",
        len(layout.condition_order),
        len(sample_columns),
    )
    return layout
