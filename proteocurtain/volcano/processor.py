"""
Volcano plot processing.

One pass turns processed records plus the persisted selections into a point
cloud: ingest, resolve selections, classify the rest, color new groups,
down-sample the background and compute axis bounds. Nothing is kept between
passes except what the caller passes back in through ``settings.color_map``.
"""

from __future__ import annotations

import math
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np

from proteocurtain.config import get_config
from proteocurtain.constants import (
    AXIS_PADDING,
    BACKGROUND_GREY,
    BACKGROUND_GROUP,
    DEFAULT_COMPARISON,
    DEFAULT_POINT_COLORS,
    EMPTY_AXIS,
    SELECTION_GREY,
)
from proteocurtain.logging_utils import get_logger
from proteocurtain.models.domain import (
    ProcessedRecord,
    TransformOptions,
    VolcanoAxis,
    VolcanoPoint,
    VolcanoResult,
    VolcanoSettings,
)
from proteocurtain.models.selection_map import SelectionMap
from proteocurtain.utils.error_handling import EmptyDatasetError
from proteocurtain.volcano.classification import comparison_gate, significance_group
from proteocurtain.volcano.palette import ColorAllocator

logger = get_logger(__name__)

DisplayNameFn = Callable[[ProcessedRecord], str]


def default_display_name(record: ProcessedRecord) -> str:
    return record.gene_names or record.primary_id


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def plot_coordinates(record: ProcessedRecord, transforms: TransformOptions) -> Optional[Tuple[float, float]]:
    """
    (x, y) of a record, or None when it cannot be plotted.

    Records are normally parsed straight into plot space; the transform
    flags only apply to input that was stored untransformed.
    """
    if not _finite(record.fold_change) or not _finite(record.significance):
        return None
    x = float(record.fold_change)
    y = float(record.significance)
    if transforms.log2_fold_change:
        if x <= 0:
            return None
        x = math.log2(x)
    if transforms.minus_log10_significance:
        if y <= 0:
            return None
        y = -math.log10(y)
    if transforms.reverse_fold_change:
        x = -x
    return x, y


class VolcanoProcessor:
    """
    Builds VolcanoResults.

    Safe to share between threads: a pass keeps all of its state in locals.
    Concurrent passes for the same dataset are the caller's to serialize.
    """

    def __init__(
        self,
        transforms: Optional[TransformOptions] = None,
        background_cap: Optional[int] = None,
        random_seed: Optional[int] = None,
    ):
        config = get_config().volcano
        self.transforms = transforms or TransformOptions()
        self.background_cap = config.background_cap if background_cap is None else background_cap
        self.random_seed = config.random_seed if random_seed is None else random_seed

    def process(
        self,
        records: Iterable[ProcessedRecord],
        selection_map: Optional[SelectionMap] = None,
        settings: Optional[VolcanoSettings] = None,
        display_name: DisplayNameFn = default_display_name,
    ) -> VolcanoResult:
        settings = settings or VolcanoSettings()
        selection_map = selection_map or SelectionMap()

        allocator = ColorAllocator(settings.default_palette, settings.color_map)
        allocator.assign(selection_map.selection_names())

        try:
            points, pending_groups = self._build_points(records, selection_map, settings, allocator, display_name)
        except EmptyDatasetError as e:
            logger.warning("[VOLCANO] %s; returning default axis", e)
            return VolcanoResult(points=[], color_map=allocator.color_map, axis=self._axis(settings, None))

        allocator.assign(point.selections[0] for point in pending_groups)
        for point in pending_groups:
            point.colors.append(allocator.color_map[point.selections[0]])
        if settings.background_grey and any(p.selections[0] == BACKGROUND_GROUP for p in points):
            allocator.color_map.setdefault(BACKGROUND_GROUP, BACKGROUND_GREY)

        kept = self.downsample(points, settings.background_cap)
        axis = self._axis(settings, points)
        logger.info(
            "[VOLCANO] Processed %d points (%d kept, %d groups)",
            len(points),
            len(kept),
            len(allocator.color_map),
        )
        return VolcanoResult(points=kept, color_map=allocator.color_map, axis=axis)

    def _build_points(
        self,
        records: Iterable[ProcessedRecord],
        selection_map: SelectionMap,
        settings: VolcanoSettings,
        allocator: ColorAllocator,
        display_name: DisplayNameFn,
    ) -> Tuple[List[VolcanoPoint], List[VolcanoPoint]]:
        """
        Plot every usable record and attach its selections.

        Returns:
            (all points, points still waiting for a significance-group color)

        Raises:
            EmptyDatasetError: No record has plottable values
        """
        points: List[VolcanoPoint] = []
        pending_groups: List[VolcanoPoint] = []
        dropped = 0
        for record in records:
            coordinates = plot_coordinates(record, self.transforms)
            if coordinates is None:
                dropped += 1
                continue
            x, y = coordinates
            comparison = record.comparison or DEFAULT_COMPARISON
            point = VolcanoPoint(
                protein_id=record.primary_id,
                gene_name=display_name(record),
                x=x,
                y=y,
                comparison=comparison,
            )

            for name in selection_map.names_for(record.primary_id):
                if name in allocator.color_map and comparison_gate(name, comparison):
                    point.selections.append(name)
                    point.colors.append(allocator.color_map.get(name, SELECTION_GREY))

            if not point.selections:
                if settings.background_grey:
                    point.selections.append(BACKGROUND_GROUP)
                    point.colors.append(BACKGROUND_GREY)
                else:
                    point.selections.append(
                        significance_group(x, y, settings.p_cutoff, settings.log2_fc_cutoff, comparison)
                    )
                    pending_groups.append(point)
            points.append(point)

        if dropped:
            logger.info("[VOLCANO] Excluded %d records without plottable values", dropped)
        if not points:
            raise EmptyDatasetError(f"No plottable records ({dropped} excluded)")
        return points, pending_groups

    def downsample(self, points: List[VolcanoPoint], cap: Optional[int] = None) -> List[VolcanoPoint]:
        """
        Keep every significant-or-selected point and at most ``cap`` of the
        others, sampled at random. Relative order is preserved in both parts.
        """
        cap = self.background_cap if cap is None else cap
        highlighted: List[VolcanoPoint] = []
        other: List[VolcanoPoint] = []
        for point in points:
            if all(color in DEFAULT_POINT_COLORS for color in point.colors):
                other.append(point)
            else:
                highlighted.append(point)

        if cap < 0 or len(other) <= cap:
            return highlighted + other

        rng = np.random.default_rng(self.random_seed)
        chosen = np.sort(rng.choice(len(other), size=cap, replace=False))
        logger.debug("[VOLCANO] Down-sampled %d background points to %d", len(other), cap)
        return highlighted + [other[int(i)] for i in chosen]

    @staticmethod
    def _axis(settings: VolcanoSettings, points: Optional[List[VolcanoPoint]]) -> VolcanoAxis:
        if points:
            xs = np.array([p.x for p in points], dtype=float)
            ys = np.array([p.y for p in points], dtype=float)
            computed = (
                float(xs.min()) - AXIS_PADDING,
                float(xs.max()) + AXIS_PADDING,
                0.0,
                float(ys.max()) + AXIS_PADDING,
            )
        else:
            computed = EMPTY_AXIS
        overrides = settings.axis
        return VolcanoAxis(
            min_x=computed[0] if overrides.min_x is None else overrides.min_x,
            max_x=computed[1] if overrides.max_x is None else overrides.max_x,
            min_y=computed[2] if overrides.min_y is None else overrides.min_y,
            max_y=computed[3] if overrides.max_y is None else overrides.max_y,
        )


def group_counts(result: VolcanoResult) -> Dict[str, int]:
    """Primary group -> number of kept points."""
    counts: Dict[str, int] = {}
    for point in result.points:
        if point.selections:
            counts[point.selections[0]] = counts.get(point.selections[0], 0) + 1
    return counts
