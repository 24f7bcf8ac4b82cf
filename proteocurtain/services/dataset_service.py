"""
Dataset orchestration: parse, store, index, search and plot.

``ProteomicsDataService`` wires the engine together per dataset id. Writers
for one dataset (load, clear, index build, selection saves) are serialized by
a per-dataset lock; reads go against immutable snapshots.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from threading import Lock, RLock
from typing import Any, Dict, List, Mapping, Optional, Union

from proteocurtain.config import AppConfig, get_config
from proteocurtain.ingestion.sample_conditions import ConditionLayout, derive_sample_conditions
from proteocurtain.ingestion.tabular_parser import parse_processed, parse_raw
from proteocurtain.logging_utils import get_logger
from proteocurtain.mapping.accession_index import AccessionIndex, FuzzyMaps
from proteocurtain.mapping.alias_index import AliasIndex, AliasIndexRegistry
from proteocurtain.models.domain import (
    AdvancedFilter,
    ColumnMapping,
    ProcessedRecord,
    SearchResult,
    SearchType,
    TransformOptions,
    VolcanoResult,
    VolcanoSettings,
)
from proteocurtain.models.imports import DatasetImportSchema
from proteocurtain.models.selection_map import DatasetHandle, SelectionMap
from proteocurtain.search.engine import BatchSearchOutcome, SearchEngine
from proteocurtain.search.resolver import SearchContext
from proteocurtain.services.annotation import (
    AccessionAnnotationSource,
    AnnotationSource,
    DisplayNameResolver,
    UniProtAnnotationClient,
)
from proteocurtain.session.search_lists import SelectionSession
from proteocurtain.storage.store import InMemoryProteomicsStore, ProteomicsStore
from proteocurtain.utils.error_handling import DatasetNotFoundError
from proteocurtain.volcano.point_cache import VolcanoPointCache
from proteocurtain.volcano.processor import VolcanoProcessor

logger = get_logger(__name__)


@dataclass
class DatasetState:
    """Everything the service knows about a loaded dataset besides its rows."""
    handle: DatasetHandle
    mapping: ColumnMapping
    transforms: TransformOptions
    accession_index: Optional[AccessionIndex] = None
    fuzzy_maps: Optional[FuzzyMaps] = None
    all_genes: List[str] = field(default_factory=list)
    fetch_uniprot: bool = False
    conditions: ConditionLayout = field(default_factory=ConditionLayout)
    session: SelectionSession = field(default_factory=SelectionSession)


def _selection_digest(selection_map: SelectionMap) -> str:
    encoded = json.dumps(selection_map.to_raw(), sort_keys=True).encode("utf-8")
    return hashlib.sha1(encoded).hexdigest()


class ProteomicsDataService:
    """Per-dataset entry point for loading, searching and plotting."""

    def __init__(
        self,
        store: Optional[ProteomicsStore] = None,
        registry: Optional[AliasIndexRegistry] = None,
        point_cache: Optional[VolcanoPointCache] = None,
        annotation_source: Optional[AnnotationSource] = None,
        config: Optional[AppConfig] = None,
    ):
        self.config = config or get_config()
        self.store: ProteomicsStore = store or InMemoryProteomicsStore()
        self.registry = registry or AliasIndexRegistry()
        if point_cache is None and self.config.point_cache.enabled:
            point_cache = VolcanoPointCache(
                ttl_seconds=self.config.point_cache.ttl,
                max_size=self.config.point_cache.max_size,
            )
        self.point_cache = point_cache
        if annotation_source is None and self.config.annotation.enabled:
            annotation_source = UniProtAnnotationClient(self.config.annotation)
        self.annotation_source = annotation_source
        self._states: Dict[str, DatasetState] = {}
        self._locks: Dict[str, RLock] = {}
        self._locks_guard = Lock()

    def _lock(self, dataset_id: str) -> RLock:
        with self._locks_guard:
            return self._locks.setdefault(dataset_id, RLock())

    def _state(self, dataset_id: str) -> DatasetState:
        state = self._states.get(dataset_id)
        if state is None or not self.store.has_dataset(dataset_id):
            raise DatasetNotFoundError(dataset_id)
        return state

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_dataset(
        self,
        dataset_id: str,
        descriptor: Union[DatasetImportSchema, Mapping[str, Any]],
        processed_text: str,
        raw_text: str = "",
        force: bool = False,
    ) -> bool:
        """
        Parse and store a dataset, then build its alias index.

        Returns:
            False when the dataset was already loaded and ``force`` is not set
        """
        if not isinstance(descriptor, DatasetImportSchema):
            descriptor = DatasetImportSchema.model_validate(descriptor)

        with self._lock(dataset_id):
            if self.store.has_dataset(dataset_id) and not force:
                logger.info("[DATASET] %s already loaded; skipping", dataset_id)
                return False
            if force:
                self._clear_unlocked(dataset_id)

            mapping = descriptor.to_column_mapping()
            transforms = descriptor.to_transform_options()
            processed = parse_processed(processed_text, mapping, transforms)
            raw = parse_raw(raw_text, mapping, transforms) if raw_text else []
            imported = descriptor.to_dataset_handle(dataset_id)

            self.store.save_dataset(
                dataset_id,
                processed,
                raw,
                selection_map=imported.selection_map,
                operation_names=imported.operation_names,
            )
            handle = DatasetHandle(
                dataset_id,
                selection_map=self.store.get_canonical_selection_map(dataset_id),
                operation_names=self.store.get_operation_names(dataset_id),
            )
            state = DatasetState(
                handle=handle,
                mapping=mapping,
                transforms=transforms,
                accession_index=descriptor.to_accession_index(),
                fuzzy_maps=descriptor.to_fuzzy_maps(),
                all_genes=descriptor.all_genes(),
                fetch_uniprot=descriptor.fetch_uniprot,
                conditions=derive_sample_conditions(mapping.samples),
            )
            self._states[dataset_id] = state
            self.ensure_alias_index(dataset_id)

        logger.info(
            "[DATASET] Loaded %s: %d processed records, %d raw values, %d stored selections",
            dataset_id,
            len(processed),
            len(raw),
            len(handle.selection_map),
        )
        return True

    def clear_dataset(self, dataset_id: str) -> None:
        with self._lock(dataset_id):
            self._clear_unlocked(dataset_id)

    def _clear_unlocked(self, dataset_id: str) -> None:
        self.registry.clear(dataset_id)
        if self.point_cache is not None:
            self.point_cache.invalidate(dataset_id)
        self._states.pop(dataset_id, None)
        if self.store.delete_dataset(dataset_id):
            logger.info("[DATASET] Cleared %s", dataset_id)

    # ------------------------------------------------------------------
    # Index and search
    # ------------------------------------------------------------------

    def _gene_name_resolver(self, state: DatasetState):
        accession_index = state.accession_index
        if accession_index is None:
            return None

        def resolve(record: ProcessedRecord) -> Optional[str]:
            return accession_index.gene_names_for(record.primary_id)

        return resolve

    def ensure_alias_index(self, dataset_id: str) -> AliasIndex:
        with self._lock(dataset_id):
            state = self._state(dataset_id)
            index = self.registry.ensure(
                dataset_id,
                lambda: self.store.get_all_processed_records(dataset_id),
                self._gene_name_resolver(state),
            )
            self.store.put_alias_index(dataset_id, index)
            return index

    def search_engine(
        self,
        dataset_id: str,
        p_cutoff: Optional[float] = None,
        log2_fc_cutoff: Optional[float] = None,
    ) -> SearchEngine:
        """Engine over the dataset's current index. Raises IndexNotBuiltError before a build."""
        state = self._state(dataset_id)
        records = {r.primary_id: r for r in self.store.get_all_processed_records(dataset_id)}
        context = SearchContext(
            alias_index=self.registry.get(dataset_id),
            records=records,
            accession_index=state.accession_index,
            fuzzy_maps=state.fuzzy_maps,
            all_genes=tuple(state.all_genes),
            p_cutoff=self.config.volcano.p_cutoff if p_cutoff is None else p_cutoff,
            log2_fc_cutoff=self.config.volcano.log2_fc_cutoff if log2_fc_cutoff is None else log2_fc_cutoff,
            significance_transformed=state.transforms.minus_log10_significance,
        )
        return SearchEngine(context, self.config.search)

    def search(self, dataset_id: str, term: str, search_type: SearchType) -> List[SearchResult]:
        return self.search_engine(dataset_id).search_single(term, search_type)

    def search_batch(
        self,
        dataset_id: str,
        lines: Union[str, List[str]],
        search_type: SearchType,
        significant_only: bool = False,
        advanced_filter: Optional[AdvancedFilter] = None,
    ) -> BatchSearchOutcome:
        return self.search_engine(dataset_id).search_batch(
            lines,
            search_type,
            significant_only=significant_only,
            advanced_filter=advanced_filter,
        )

    # ------------------------------------------------------------------
    # Selections
    # ------------------------------------------------------------------

    def handle(self, dataset_id: str) -> DatasetHandle:
        return self._state(dataset_id).handle

    def session(self, dataset_id: str) -> SelectionSession:
        return self._state(dataset_id).session

    def sample_conditions(self, dataset_id: str) -> ConditionLayout:
        return self._state(dataset_id).conditions

    def save_selections(self, dataset_id: str) -> None:
        """Write the handle's selection map back to storage."""
        with self._lock(dataset_id):
            handle = self.handle(dataset_id)
            self.store.put_selection_map(dataset_id, handle.selection_map, handle.operation_names)
            if self.point_cache is not None:
                self.point_cache.invalidate(dataset_id)

    # ------------------------------------------------------------------
    # Volcano
    # ------------------------------------------------------------------

    def _display_names(self, state: DatasetState, records: List[ProcessedRecord]) -> DisplayNameResolver:
        """Fetch annotation gene names up front; resolving them later never blocks."""
        source = self.annotation_source
        if source is None and state.fetch_uniprot and state.accession_index is not None:
            source = AccessionAnnotationSource(state.accession_index)
        return DisplayNameResolver.prefetched(source, records, max_workers=self.config.annotation.max_workers)

    def process_volcano(self, dataset_id: str, settings: Optional[VolcanoSettings] = None) -> VolcanoResult:
        settings = settings or VolcanoSettings(
            p_cutoff=self.config.volcano.p_cutoff,
            log2_fc_cutoff=self.config.volcano.log2_fc_cutoff,
        )
        state = self._state(dataset_id)
        fingerprint = f"{settings.fingerprint()}:{_selection_digest(state.handle.selection_map)}"
        if self.point_cache is not None:
            cached = self.point_cache.get(dataset_id, fingerprint)
            if cached is not None:
                return cached

        display_name = self._display_names(state, self.store.get_all_processed_records(dataset_id))

        with self._lock(dataset_id):
            processor = VolcanoProcessor(
                background_cap=self.config.volcano.background_cap,
                random_seed=self.config.volcano.random_seed,
            )
            result = processor.process(
                self.store.get_all_processed_records(dataset_id),
                state.handle.selection_map,
                settings,
                display_name=display_name,
            )
            self.store.put_volcano_point_cache(dataset_id, fingerprint, result)
            if self.point_cache is not None:
                self.point_cache.put(dataset_id, fingerprint, result)
        return result
