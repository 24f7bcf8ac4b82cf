"""
Sparse protein -> selection-name membership, the exchange format with storage.

The persisted form is ``{proteinId: {selectionName: true}}``. Only ``true`` is
ever stored; absence means "not selected". Internally each protein maps to an
insertion-ordered set of names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from proteocurtain.logging_utils import get_logger

logger = get_logger(__name__)

RawSelectionMap = Dict[str, Dict[str, bool]]


class SelectionMap:
    """Typed wrapper over the ``{protein: {name: True}}`` structure."""

    def __init__(self, entries: Optional[Mapping[str, Iterable[str]]] = None):
        self._entries: Dict[str, Dict[str, None]] = {}
        for protein_id, names in (entries or {}).items():
            for name in names:
                self.add(protein_id, name)

    @classmethod
    def from_raw(cls, raw: Optional[Mapping[str, Mapping[str, Any]]]) -> "SelectionMap":
        """Build from the persisted form, dropping anything that is not ``True``."""
        selection_map = cls()
        dropped = 0
        for protein_id, selections in (raw or {}).items():
            if not isinstance(selections, Mapping):
                dropped += 1
                continue
            for name, value in selections.items():
                if value is True:
                    selection_map.add(str(protein_id), str(name))
                else:
                    dropped += 1
        if dropped:
            logger.debug("[SESSION] Ignored %d non-true selection entries", dropped)
        return selection_map

    def to_raw(self) -> RawSelectionMap:
        return {
            protein_id: {name: True for name in names}
            for protein_id, names in self._entries.items()
        }

    def add(self, protein_id: str, name: str) -> None:
        self._entries.setdefault(protein_id, {})[name] = None

    def discard_name(self, name: str) -> None:
        """Remove ``name`` from every protein, leaving empty entries in place."""
        for names in self._entries.values():
            names.pop(name, None)

    def prune_empty(self) -> None:
        self._entries = {pid: names for pid, names in self._entries.items() if names}

    def names_for(self, protein_id: str) -> List[str]:
        return list(self._entries.get(protein_id, {}))

    def proteins_for(self, name: str) -> List[str]:
        return [pid for pid, names in self._entries.items() if name in names]

    def is_selected(self, protein_id: str, name: str) -> bool:
        return name in self._entries.get(protein_id, {})

    def selection_names(self) -> List[str]:
        """Every selection name in first-seen order."""
        seen: Dict[str, None] = {}
        for names in self._entries.values():
            for name in names:
                seen.setdefault(name, None)
        return list(seen)

    def grouped(self) -> Dict[str, List[str]]:
        """Selection name -> protein ids."""
        groups: Dict[str, List[str]] = {}
        for protein_id, names in self._entries.items():
            for name in names:
                groups.setdefault(name, []).append(protein_id)
        return groups

    def copy(self) -> "SelectionMap":
        return SelectionMap({pid: list(names) for pid, names in self._entries.items()})

    def __contains__(self, protein_id: object) -> bool:
        return protein_id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SelectionMap):
            return NotImplemented
        return {k: set(v) for k, v in self._entries.items()} == {
            k: set(v) for k, v in other._entries.items()
        }

    def __repr__(self) -> str:
        return f"SelectionMap(proteins={len(self._entries)})"


@dataclass
class DatasetHandle:
    """
    Explicit target for selection-session writes.

    Attributes:
        dataset_id: Dataset identifier
        selection_map: Current persisted selections of the dataset
        operation_names: Ordered selection names known to the dataset
    """
    dataset_id: str
    selection_map: SelectionMap = field(default_factory=SelectionMap)
    operation_names: List[str] = field(default_factory=list)
