"""
Identifier alias index.

Maps every alias of a canonical protein record (the full composite id, each
``;``-separated sub-id, the full gene-name string and each gene-name token) to
the canonical primary id. Gene-name keys are uppercased so gene lookups are
case-insensitive throughout the engine.

A built index is an immutable snapshot. Rebuilding always produces a new
object which the registry swaps in under the dataset's lock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set

from proteocurtain.logging_utils import get_logger
from proteocurtain.models.domain import ProcessedRecord
from proteocurtain.utils.error_handling import IndexNotBuiltError

logger = get_logger(__name__)

AliasTable = Mapping[str, FrozenSet[str]]
GeneNameResolver = Callable[[ProcessedRecord], Optional[str]]


def split_tokens(value: str) -> List[str]:
    """Split on ``;`` and keep trimmed, non-empty tokens in order."""
    return [token.strip() for token in value.split(";") if token.strip()]


@dataclass(frozen=True)
class AliasIndex:
    """
    Read-only alias tables for one dataset.

    Attributes:
        split_id_to_canonical: Sub-id (and full id) -> canonical primary ids
        gene_name_to_canonical: Uppercased gene alias -> canonical primary ids
        gene_names_by_canonical: Canonical primary id -> gene-name string used
    """
    split_id_to_canonical: AliasTable = field(default_factory=dict)
    gene_name_to_canonical: AliasTable = field(default_factory=dict)
    gene_names_by_canonical: Mapping[str, str] = field(default_factory=dict)
    _split_id_upper: AliasTable = field(default_factory=dict, compare=False, repr=False)

    @property
    def canonical_ids(self) -> List[str]:
        """Canonical primary ids, in build order."""
        return [alias for alias, ids in self.split_id_to_canonical.items() if alias in ids]

    @property
    def gene_name_strings(self) -> List[str]:
        """Full gene-name strings, one per canonical id that has one."""
        return list(dict.fromkeys(self.gene_names_by_canonical.values()))

    def lookup_split_id(self, term: str) -> List[str]:
        """Resolve a (sub-)id, exact key first, then case-insensitively."""
        term = term.strip()
        hits = self.split_id_to_canonical.get(term)
        if hits is None:
            hits = self._split_id_upper.get(term.upper(), frozenset())
        return sorted(hits)

    def lookup_gene_name(self, term: str) -> List[str]:
        return sorted(self.gene_name_to_canonical.get(term.strip().upper(), frozenset()))

    def is_empty(self) -> bool:
        return not self.split_id_to_canonical


def build_alias_index(
    records: Iterable[ProcessedRecord],
    gene_name_resolver: Optional[GeneNameResolver] = None,
) -> AliasIndex:
    """
    Build the alias tables from processed records.

    Args:
        records: Processed records of one dataset (may be empty)
        gene_name_resolver: Optional override for a record's gene-name string,
            e.g. names from a UniProt annotation table. Falls back to the
            record's own gene-name column when it returns nothing.

    Returns:
        A new immutable AliasIndex
    """
    split_ids: Dict[str, Set[str]] = {}
    gene_names: Dict[str, Set[str]] = {}
    gene_names_by_canonical: Dict[str, str] = {}

    for record in records:
        primary_id = record.primary_id
        if not primary_id:
            continue
        split_ids.setdefault(primary_id, set()).add(primary_id)
        for token in split_tokens(primary_id):
            split_ids.setdefault(token, set()).add(primary_id)

        gene_string = gene_name_resolver(record) if gene_name_resolver else None
        gene_string = gene_string or record.gene_names
        if not gene_string or not gene_string.strip():
            continue
        gene_names_by_canonical.setdefault(primary_id, gene_string)
        gene_names.setdefault(gene_string.strip().upper(), set()).add(primary_id)
        for token in split_tokens(gene_string):
            gene_names.setdefault(token.upper(), set()).add(primary_id)

    split_upper: Dict[str, Set[str]] = {}
    for alias, ids in split_ids.items():
        split_upper.setdefault(alias.upper(), set()).update(ids)

    index = AliasIndex(
        split_id_to_canonical=_freeze(split_ids),
        gene_name_to_canonical=_freeze(gene_names),
        gene_names_by_canonical=MappingProxyType(dict(gene_names_by_canonical)),
        _split_id_upper=_freeze(split_upper),
    )
    logger.info(
        "[ALIAS-INDEX] Built index: %d split-id aliases, %d gene-name aliases",
        len(split_ids),
        len(gene_names),
    )
    return index


def _freeze(table: Dict[str, Set[str]]) -> AliasTable:
    return MappingProxyType({alias: frozenset(ids) for alias, ids in table.items()})


class AliasIndexRegistry:
    """
    Per-dataset holder of built alias indices.

    Writers for the same dataset are serialized by a per-dataset lock. Readers
    get the current snapshot without locking.
    """

    def __init__(self) -> None:
        self._indices: Dict[str, AliasIndex] = {}
        self._locks: Dict[str, Lock] = {}
        self._locks_guard = Lock()

    def lock_for(self, dataset_id: str) -> Lock:
        with self._locks_guard:
            return self._locks.setdefault(dataset_id, Lock())

    def has_index(self, dataset_id: str) -> bool:
        return dataset_id in self._indices

    def ensure(
        self,
        dataset_id: str,
        records_fn: Callable[[], Iterable[ProcessedRecord]],
        gene_name_resolver: Optional[GeneNameResolver] = None,
    ) -> AliasIndex:
        """
        Build the dataset's index unless one exists already.

        Building over an existing index is a no-op; call ``clear`` first to
        force a rebuild.
        """
        with self.lock_for(dataset_id):
            existing = self._indices.get(dataset_id)
            if existing is not None:
                logger.debug("[ALIAS-INDEX] Index already exists for %s", dataset_id)
                return existing
            index = build_alias_index(records_fn(), gene_name_resolver)
            self._indices[dataset_id] = index
            return index

    def get(self, dataset_id: str) -> AliasIndex:
        index = self._indices.get(dataset_id)
        if index is None:
            raise IndexNotBuiltError(dataset_id)
        return index

    def clear(self, dataset_id: str) -> None:
        with self.lock_for(dataset_id):
            if self._indices.pop(dataset_id, None) is not None:
                logger.info("[ALIAS-INDEX] Cleared index for %s", dataset_id)
