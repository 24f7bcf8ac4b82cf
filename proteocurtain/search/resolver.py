"""
Staged term resolution.

A ``Resolver`` runs its stages in declared order and stops at the first stage
that produces protein ids. A stage signals that it is exhausted by returning
an empty list. Lookups are read-only against the dataset snapshot held in
``SearchContext``, so one resolver can serve many threads at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from proteocurtain.logging_utils import get_logger
from proteocurtain.mapping.accession_index import AccessionIndex, FuzzyMaps
from proteocurtain.mapping.alias_index import AliasIndex
from proteocurtain.models.domain import MatchType, ProcessedRecord, SearchType

logger = get_logger(__name__)


@dataclass(frozen=True)
class SearchContext:
    """
    Everything a search needs for one dataset.

    Attributes:
        alias_index: Built alias index of the dataset
        records: Primary id -> processed record, for result enrichment
        accession_index: Optional UniProt-derived chain. Without it gene-name
            search only uses the dataset's own gene-name column and
            accession search finds nothing.
        fuzzy_maps: Optional secondary term maps for batch fallback
        all_genes: Gene-name universe for typeahead and filter lists, defaults
            to the alias index's gene-name strings
        p_cutoff: Significance cutoff for ``is_significant``
        log2_fc_cutoff: Absolute fold-change cutoff for ``is_significant``
        significance_transformed: Stored significance is already -log10(p)
    """
    alias_index: AliasIndex
    records: Mapping[str, ProcessedRecord] = field(default_factory=dict)
    accession_index: Optional[AccessionIndex] = None
    fuzzy_maps: Optional[FuzzyMaps] = None
    all_genes: Sequence[str] = ()
    p_cutoff: float = 0.05
    log2_fc_cutoff: float = 0.6
    significance_transformed: bool = False

    @property
    def gene_universe(self) -> List[str]:
        return list(self.all_genes) or self.alias_index.gene_name_strings

    def exact_primary_ids(self, term: str, search_type: SearchType) -> List[str]:
        """Direct lookup of a normalized term, including the gene two-hop chain."""
        if search_type == SearchType.PRIMARY_ID:
            return self.alias_index.lookup_split_id(term)
        if search_type == SearchType.GENE_NAME:
            hits = list(self.alias_index.lookup_gene_name(term))
            if self.accession_index is not None:
                hits.extend(self.accession_index.primary_ids_for_gene(term))
            return list(dict.fromkeys(hits))
        if self.accession_index is None:
            return []
        return self.accession_index.primary_ids_for_accession(term)


@dataclass(frozen=True)
class StageHit:
    """Protein ids found by one stage, and how they were matched."""
    primary_ids: List[str]
    match_type: MatchType
    accession_id: Optional[str] = None


class ResolverStage(Protocol):
    name: str

    def resolve(self, term: str, search_type: SearchType, context: SearchContext) -> List[StageHit]:
        ...


class ExactAliasStage:
    name = "exact"

    def resolve(self, term: str, search_type: SearchType, context: SearchContext) -> List[StageHit]:
        ids = context.exact_primary_ids(term, search_type)
        if not ids:
            return []
        accession = term if search_type == SearchType.ACCESSION_ID else None
        return [StageHit(ids, MatchType.EXACT, accession)]


class FuzzyMapStage:
    """
    Follow the secondary term map: the first related candidate that resolves
    directly wins.
    """

    name = "fuzzy-map"

    def resolve(self, term: str, search_type: SearchType, context: SearchContext) -> List[StageHit]:
        maps = context.fuzzy_maps
        if maps is None or search_type == SearchType.ACCESSION_ID:
            return []
        table = maps.genes_map if search_type == SearchType.GENE_NAME else maps.primary_ids_map
        for candidate in table.get(term, []):
            ids = context.exact_primary_ids(candidate, search_type)
            if ids:
                return [StageHit(ids, MatchType.FUZZY)]
        return []


class DirectAliasStage:
    """Sub-term resolved straight through the alias index."""

    name = "direct-alias"

    def resolve(self, term: str, search_type: SearchType, context: SearchContext) -> List[StageHit]:
        if search_type == SearchType.ACCESSION_ID:
            return []
        ids = context.exact_primary_ids(term, search_type)
        return [StageHit(ids, MatchType.FUZZY)] if ids else []


class AccessionTokenStage:
    """Accession keys whose ``;``-separated token equals the term."""

    name = "accession-token"

    def resolve(self, term: str, search_type: SearchType, context: SearchContext) -> List[StageHit]:
        if search_type != SearchType.ACCESSION_ID or context.accession_index is None:
            return []
        wanted = term.lower()
        hits: List[StageHit] = []
        for accession, primary_ids in context.accession_index.accession_to_primary_ids.items():
            if wanted not in accession.lower():
                continue
            if any(token == wanted for token in accession.lower().split(";")):
                hits.append(StageHit(list(primary_ids), MatchType.PARTIAL, accession))
        return hits


class Resolver:
    """Ordered stage pipeline. The first non-empty stage ends resolution."""

    def __init__(self, stages: Sequence[ResolverStage]):
        self.stages = list(stages)

    @property
    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    def resolve(
        self,
        term: str,
        search_type: SearchType,
        context: SearchContext,
    ) -> Tuple[Optional[str], List[StageHit]]:
        """
        Returns:
            (name of the stage that matched, its hits); (None, []) when every
            stage is exhausted
        """
        for stage in self.stages:
            hits = stage.resolve(term, search_type, context)
            if hits:
                logger.debug("[SEARCH] %r resolved by stage %s", term, stage.name)
                return stage.name, hits
        return None, []


def exact_resolver() -> Resolver:
    return Resolver([ExactAliasStage()])


def fallback_resolver() -> Resolver:
    return Resolver([FuzzyMapStage(), DirectAliasStage(), AccessionTokenStage()])


def hits_by_primary_id(hits: Sequence[StageHit]) -> Dict[str, StageHit]:
    """Flatten stage hits, first occurrence of a primary id wins."""
    flattened: Dict[str, StageHit] = {}
    for hit in hits:
        for primary_id in hit.primary_ids:
            flattened.setdefault(primary_id, hit)
    return flattened
