"""
Domain models for the proteomics mapping and volcano engine.

These dataclasses are the typed records that flow between the parser, the
alias index, the search engine, the volcano processor and the selection
session. Generic JSON never travels past the import boundary
(see ``proteocurtain.models.imports``).
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from proteocurtain.constants import (
    DEFAULT_COMPARISON,
    DEFAULT_VOLCANO_PALETTE,
    SELECTION_GREY,
)


# ============================================================================
# Enums
# ============================================================================


class SearchType(str, Enum):
    """Which identifier universe a query is resolved against."""
    PRIMARY_ID = "primary_id"
    GENE_NAME = "gene_name"
    ACCESSION_ID = "accession_id"


class MatchType(str, Enum):
    """How a search result was resolved."""
    EXACT = "exact"
    PARTIAL = "partial"
    FUZZY = "fuzzy"


# ============================================================================
# Dataset input
# ============================================================================


@dataclass(frozen=True)
class ColumnMapping:
    """
    Column roles for the raw and processed tables of one dataset.

    Attributes:
        primary_id: Header of the primary (possibly composite) protein id column
        gene_names: Header of the gene-name column, empty when absent
        fold_change: Header of the fold-change column
        significance: Header of the p-value / significance column
        comparison: Header of the comparison label column, empty when absent
        samples: Ordered sample column headers of the raw table
        raw_primary_id: Primary id header in the raw table, defaults to ``primary_id``
    """
    primary_id: str
    gene_names: str = ""
    fold_change: str = ""
    significance: str = ""
    comparison: str = ""
    samples: Tuple[str, ...] = ()
    raw_primary_id: Optional[str] = None

    @property
    def raw_id_column(self) -> str:
        return self.raw_primary_id or self.primary_id


@dataclass(frozen=True)
class TransformOptions:
    """Numeric transforms applied while parsing."""
    log2_fold_change: bool = False
    minus_log10_significance: bool = False
    reverse_fold_change: bool = False
    log2_raw: bool = False


@dataclass(frozen=True)
class ProcessedRecord:
    """One row of the differential-expression table."""
    primary_id: str
    gene_names: Optional[str] = None
    fold_change: Optional[float] = None
    significance: Optional[float] = None
    comparison: str = DEFAULT_COMPARISON


@dataclass(frozen=True)
class RawSample:
    """One (protein, sample) intensity of the raw table."""
    primary_id: str
    sample_name: str
    value: Optional[float] = None


@dataclass(frozen=True)
class SampleCondition:
    name: str
    condition: str
    replicate: str


# ============================================================================
# Search
# ============================================================================


@dataclass(frozen=True)
class SearchResult:
    protein_id: str
    search_type: SearchType
    search_term: str
    match_type: MatchType = MatchType.EXACT
    gene_name: Optional[str] = None
    accession_id: Optional[str] = None
    fold_change: Optional[float] = None
    significance: Optional[float] = None
    is_significant: bool = False
    p_value: Optional[float] = None


@dataclass(frozen=True)
class SearchStatistics:
    total_proteins: int
    matched_proteins: int
    unmatched_terms: List[str]
    exact_matches: int
    partial_matches: int
    duration_ms: int

    @classmethod
    def empty(cls) -> "SearchStatistics":
        return cls(0, 0, [], 0, 0, 0)


@dataclass(frozen=True)
class TypeaheadSuggestion:
    text: str
    search_type: SearchType
    match_count: int = 1


@dataclass(frozen=True)
class AdvancedFilter:
    """
    Significance window applied to batch search results.

    The p-value range is on raw p and always applies. When neither side is enabled only the
    p-value range is checked; otherwise the fold change must fall in the
    enabled left (negative) or right (positive) window.
    """
    min_p: float = 0.0
    max_p: float = float("inf")
    min_fc_left: float = 0.0
    max_fc_left: float = float("inf")
    min_fc_right: float = 0.0
    max_fc_right: float = float("inf")
    search_left: bool = False
    search_right: bool = False

    def matches(self, fold_change: Optional[float], p_value: Optional[float]) -> bool:
        if fold_change is None or p_value is None:
            return False
        in_p_range = self.min_p <= p_value <= self.max_p
        if not self.search_left and not self.search_right:
            return in_p_range
        left = self.search_left and -self.max_fc_left <= fold_change <= -self.min_fc_left
        right = self.search_right and self.min_fc_right <= fold_change <= self.max_fc_right
        return in_p_range and (left or right)


@dataclass
class SearchList:
    """
    A named protein set owned by a selection session.

    ``protein_ids`` keeps insertion order and holds no duplicates.
    """
    id: str
    name: str
    color: str
    protein_ids: List[str] = field(default_factory=list)
    search_terms: List[str] = field(default_factory=list)
    search_type: SearchType = SearchType.PRIMARY_ID
    description: Optional[str] = None

    def __post_init__(self) -> None:
        self.protein_ids = list(dict.fromkeys(self.protein_ids))


# ============================================================================
# Volcano
# ============================================================================


@dataclass(frozen=True)
class VolcanoAxis:
    """Axis bounds. ``None`` fields are computed from the data."""
    min_x: Optional[float] = None
    max_x: Optional[float] = None
    min_y: Optional[float] = None
    max_y: Optional[float] = None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {"minX": self.min_x, "maxX": self.max_x, "minY": self.min_y, "maxY": self.max_y}


@dataclass
class VolcanoPoint:
    protein_id: str
    gene_name: str
    x: float
    y: float
    comparison: str
    selections: List[str] = field(default_factory=list)
    colors: List[str] = field(default_factory=list)

    @property
    def color(self) -> str:
        """Primary color used for the marker and legend."""
        return self.colors[0] if self.colors else SELECTION_GREY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.protein_id,
            "gene": self.gene_name,
            "x": self.x,
            "y": self.y,
            "comparison": self.comparison,
            "selections": list(self.selections),
            "colors": list(self.colors),
            "color": self.color,
        }


@dataclass(frozen=True)
class VolcanoSettings:
    """
    Per-pass volcano settings.

    Attributes:
        p_cutoff: Raw p-value cutoff (compared on the -log10 scale)
        log2_fc_cutoff: Absolute log2 fold-change cutoff
        color_map: Caller-supplied group colors, always kept
        default_palette: Ordered palette for new groups
        background_grey: Put unselected points in the grey "Background" group
        axis: Explicit axis overrides
        background_cap: Max "other" points kept; None uses the configured default
    """
    p_cutoff: float = 0.05
    log2_fc_cutoff: float = 0.6
    color_map: Dict[str, str] = field(default_factory=dict)
    default_palette: Tuple[str, ...] = DEFAULT_VOLCANO_PALETTE
    background_grey: bool = False
    axis: VolcanoAxis = field(default_factory=VolcanoAxis)
    background_cap: Optional[int] = None

    def fingerprint(self) -> str:
        """Stable hash of the settings, used as a cache key component."""
        payload = asdict(self)
        payload["default_palette"] = list(self.default_palette)
        encoded = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
        return hashlib.sha1(encoded).hexdigest()


@dataclass
class VolcanoResult:
    points: List[VolcanoPoint]
    color_map: Dict[str, str]
    axis: VolcanoAxis

    def to_payload(self) -> Dict[str, Any]:
        """Plain, render-library-agnostic structure for the chart collaborator."""
        return {
            "points": [p.to_dict() for p in self.points],
            "colorMap": dict(self.color_map),
            "axis": self.axis.to_dict(),
        }
