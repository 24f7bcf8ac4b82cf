"""Storage collaborator interface and an in-memory implementation.

The engine never decides how datasets are persisted. It talks to anything
that satisfies ``ProteomicsStore``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List, Optional, Protocol

from proteocurtain.logging_utils import get_logger
from proteocurtain.mapping.alias_index import AliasIndex
from proteocurtain.models.domain import ProcessedRecord, RawSample, VolcanoResult
from proteocurtain.models.selection_map import SelectionMap
from proteocurtain.utils.error_handling import DatasetNotFoundError

logger = get_logger(__name__)


class ProteomicsStore(Protocol):
    """Backend-agnostic dataset storage."""

    def has_dataset(self, dataset_id: str) -> bool:
        ...

    def save_dataset(
        self,
        dataset_id: str,
        processed: List[ProcessedRecord],
        raw: List[RawSample],
        selection_map: Optional[SelectionMap] = None,
        operation_names: Optional[List[str]] = None,
    ) -> None:
        ...

    def delete_dataset(self, dataset_id: str) -> bool:
        ...

    def get_all_processed_records(self, dataset_id: str) -> List[ProcessedRecord]:
        ...

    def get_all_raw_samples(self, dataset_id: str) -> List[RawSample]:
        ...

    def get_canonical_selection_map(self, dataset_id: str) -> SelectionMap:
        ...

    def get_operation_names(self, dataset_id: str) -> List[str]:
        ...

    def put_selection_map(self, dataset_id: str, selection_map: SelectionMap, operation_names: List[str]) -> None:
        ...

    def put_alias_index(self, dataset_id: str, index: AliasIndex) -> None:
        ...

    def get_alias_index(self, dataset_id: str) -> Optional[AliasIndex]:
        ...

    def put_volcano_point_cache(self, dataset_id: str, fingerprint: str, result: VolcanoResult) -> None:
        ...


@dataclass
class StoredDataset:
    processed: List[ProcessedRecord] = field(default_factory=list)
    raw: List[RawSample] = field(default_factory=list)
    selection_map: SelectionMap = field(default_factory=SelectionMap)
    operation_names: List[str] = field(default_factory=list)
    alias_index: Optional[AliasIndex] = None
    volcano_results: Dict[str, VolcanoResult] = field(default_factory=dict)


class InMemoryProteomicsStore:
    """Dict-backed implementation of ProteomicsStore."""

    def __init__(self) -> None:
        self._datasets: Dict[str, StoredDataset] = {}
        self._lock = Lock()

    def _require(self, dataset_id: str) -> StoredDataset:
        dataset = self._datasets.get(dataset_id)
        if dataset is None:
            raise DatasetNotFoundError(dataset_id)
        return dataset

    def has_dataset(self, dataset_id: str) -> bool:
        return dataset_id in self._datasets

    def save_dataset(
        self,
        dataset_id: str,
        processed: List[ProcessedRecord],
        raw: List[RawSample],
        selection_map: Optional[SelectionMap] = None,
        operation_names: Optional[List[str]] = None,
    ) -> None:
        with self._lock:
            self._datasets[dataset_id] = StoredDataset(
                processed=list(processed),
                raw=list(raw),
                selection_map=selection_map.copy() if selection_map is not None else SelectionMap(),
                operation_names=list(operation_names or []),
            )
        logger.info(
            "[DATASET] Stored %s (%d processed, %d raw values)",
            dataset_id,
            len(processed),
            len(raw),
        )

    def delete_dataset(self, dataset_id: str) -> bool:
        with self._lock:
            return self._datasets.pop(dataset_id, None) is not None

    def get_all_processed_records(self, dataset_id: str) -> List[ProcessedRecord]:
        return list(self._require(dataset_id).processed)

    def get_all_raw_samples(self, dataset_id: str) -> List[RawSample]:
        return list(self._require(dataset_id).raw)

    def get_canonical_selection_map(self, dataset_id: str) -> SelectionMap:
        return self._require(dataset_id).selection_map.copy()

    def get_operation_names(self, dataset_id: str) -> List[str]:
        return list(self._require(dataset_id).operation_names)

    def put_selection_map(self, dataset_id: str, selection_map: SelectionMap, operation_names: List[str]) -> None:
        with self._lock:
            dataset = self._require(dataset_id)
            dataset.selection_map = selection_map.copy()
            dataset.operation_names = list(operation_names)
            dataset.volcano_results.clear()

    def put_alias_index(self, dataset_id: str, index: AliasIndex) -> None:
        with self._lock:
            self._require(dataset_id).alias_index = index

    def get_alias_index(self, dataset_id: str) -> Optional[AliasIndex]:
        return self._require(dataset_id).alias_index

    def put_volcano_point_cache(self, dataset_id: str, fingerprint: str, result: VolcanoResult) -> None:
        with self._lock:
            self._require(dataset_id).volcano_results[fingerprint] = result
