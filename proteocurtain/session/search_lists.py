"""
Selection session: named protein lists with filter state.

The session owns SearchList objects and which of them are active as filters.
Every operation that changes what is persisted takes the target
DatasetHandle explicitly and writes the merged selection map back to it
before returning.
"""

from __future__ import annotations

import uuid
from typing import Dict, Iterable, List, Optional, Sequence

from proteocurtain.constants import DEFAULT_SEARCH_LIST_PALETTE
from proteocurtain.logging_utils import get_logger
from proteocurtain.models.domain import SearchList, SearchType
from proteocurtain.models.selection_map import DatasetHandle, SelectionMap

logger = get_logger(__name__)


class SelectionSession:
    """In-memory registry of search lists for one dataset view."""

    def __init__(self, palette: Sequence[str] = DEFAULT_SEARCH_LIST_PALETTE):
        self.palette = tuple(palette)
        self._lists: Dict[str, SearchList] = {}
        self.active_filters: Dict[str, None] = {}
        self.active_stored_selections: Dict[str, None] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def search_lists(self) -> List[SearchList]:
        return list(self._lists.values())

    def get(self, list_id: str) -> Optional[SearchList]:
        return self._lists.get(list_id)

    def find_by_name(self, name: str) -> Optional[SearchList]:
        for search_list in self._lists.values():
            if search_list.name == name:
                return search_list
        return None

    def active_lists(self) -> List[SearchList]:
        return [self._lists[i] for i in self.active_filters if i in self._lists]

    def is_filter_active(self, list_id: str) -> bool:
        return list_id in self.active_filters

    def next_available_color(self) -> str:
        """First palette color no list uses yet, else the first palette color."""
        used = {search_list.color for search_list in self._lists.values()}
        for color in self.palette:
            if color not in used:
                return color
        return self.palette[0]

    def get_filtered_protein_ids(self, handle: DatasetHandle) -> List[str]:
        """
        Union of the proteins of active lists and of active stored selections.

        Stored selections are names that only exist in the dataset's
        selection map, e.g. groups made on the volcano plot.
        """
        if not self.active_filters and not self.active_stored_selections:
            return []
        protein_ids: Dict[str, None] = {}
        for search_list in self.active_lists():
            for protein_id in search_list.protein_ids:
                protein_ids.setdefault(protein_id, None)
        stored = handle.selection_map.grouped()
        for name in self.active_stored_selections:
            for protein_id in stored.get(name, []):
                protein_ids.setdefault(protein_id, None)
        return list(protein_ids)

    # ------------------------------------------------------------------
    # List lifecycle
    # ------------------------------------------------------------------

    def create(
        self,
        handle: DatasetHandle,
        name: str,
        protein_ids: Iterable[str],
        search_terms: Iterable[str] = (),
        search_type: SearchType = SearchType.PRIMARY_ID,
        color: Optional[str] = None,
        description: Optional[str] = None,
        overwrite_existing: bool = False,
    ) -> SearchList:
        if overwrite_existing:
            existing = self.find_by_name(name)
            if existing is not None:
                self._drop(existing.id)
        search_list = SearchList(
            id=str(uuid.uuid4()),
            name=name,
            color=color or self.next_available_color(),
            protein_ids=list(protein_ids),
            search_terms=list(search_terms),
            search_type=search_type,
            description=description,
        )
        self._lists[search_list.id] = search_list
        logger.info("[SESSION] Created list %r with %d proteins", name, len(search_list.protein_ids))
        self.export_selection_map(handle)
        return search_list

    def remove(self, handle: DatasetHandle, list_id: str) -> bool:
        """Remove a list and its entries from the dataset's selection map."""
        search_list = self._drop(list_id)
        if search_list is None:
            return False
        handle.selection_map.discard_name(search_list.name)
        if search_list.name in handle.operation_names:
            handle.operation_names.remove(search_list.name)
        self.export_selection_map(handle)
        return True

    def rename(self, handle: DatasetHandle, list_id: str, new_name: str) -> bool:
        search_list = self._lists.get(list_id)
        if search_list is None:
            return False
        old_name = search_list.name
        search_list.name = new_name
        handle.selection_map.discard_name(old_name)
        handle.operation_names = [new_name if n == old_name else n for n in handle.operation_names]
        self.export_selection_map(handle)
        return True

    def recolor(self, handle: DatasetHandle, list_id: str, color: str) -> bool:
        search_list = self._lists.get(list_id)
        if search_list is None:
            return False
        search_list.color = color
        self.export_selection_map(handle)
        return True

    def clear_all(self, handle: DatasetHandle) -> None:
        """
        Drop every list and filter. Selections already written to the
        dataset stay there as stored selections.
        """
        self._lists.clear()
        self.active_filters.clear()
        self.active_stored_selections.clear()
        self.export_selection_map(handle)

    def _drop(self, list_id: str) -> Optional[SearchList]:
        search_list = self._lists.pop(list_id, None)
        self.active_filters.pop(list_id, None)
        return search_list

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def toggle_filter(self, list_id: str) -> bool:
        """Flip a list's filter state. Returns whether it is now active."""
        if list_id in self.active_filters:
            self.active_filters.pop(list_id)
            return False
        self.active_filters[list_id] = None
        return True

    def set_filters(self, list_ids: Iterable[str]) -> None:
        self.active_filters = dict.fromkeys(list_ids)

    def set_stored_selection_filters(self, names: Iterable[str]) -> None:
        self.active_stored_selections = dict.fromkeys(names)

    def clear_all_filters(self) -> None:
        self.active_filters.clear()
        self.active_stored_selections.clear()

    # ------------------------------------------------------------------
    # Persistence round-trip
    # ------------------------------------------------------------------

    def export_selection_map(self, handle: DatasetHandle) -> SelectionMap:
        """
        Merge the session's lists into the dataset's selection map.

        Every existing entry is kept, except entries under the name of a
        current list, which are replaced by that list's proteins. Proteins
        left without any selection are dropped.
        """
        merged = handle.selection_map.copy()
        names: Dict[str, None] = dict.fromkeys(handle.operation_names)
        for name in merged.selection_names():
            names.setdefault(name, None)

        for search_list in self._lists.values():
            names.setdefault(search_list.name, None)
            merged.discard_name(search_list.name)
            for protein_id in search_list.protein_ids:
                merged.add(protein_id, search_list.name)

        merged.prune_empty()
        handle.selection_map = merged
        handle.operation_names = list(names)
        logger.debug(
            "[SESSION] Saved %d lists to dataset %s (%d selected proteins)",
            len(self._lists),
            handle.dataset_id,
            len(merged),
        )
        return merged

    def restore_from_selection_map(
        self,
        handle: DatasetHandle,
        names: Optional[Iterable[str]] = None,
    ) -> List[SearchList]:
        """
        Rebuild the session from the dataset: one list per operation name.

        Args:
            handle: Dataset whose selection map and operation names are read
            names: Restrict the rebuilt lists to these names

        Returns:
            The restored lists, in operation-name order
        """
        wanted = set(names) if names is not None else None
        grouped = handle.selection_map.grouped()
        self._lists.clear()
        self.active_filters.clear()
        self.active_stored_selections.clear()

        restored: List[SearchList] = []
        for name in handle.operation_names:
            if wanted is not None and name not in wanted:
                continue
            protein_ids = grouped.get(name, [])
            if protein_ids:
                description = f"Restored from stored selection data ({len(protein_ids)} proteins)"
            else:
                description = "Empty selection operation from stored data"
            search_list = SearchList(
                id=str(uuid.uuid4()),
                name=name,
                color=self.next_available_color(),
                protein_ids=list(protein_ids),
                description=description,
            )
            self._lists[search_list.id] = search_list
            restored.append(search_list)

        logger.info("[SESSION] Restored %d lists for dataset %s", len(restored), handle.dataset_id)
        return restored

    def import_filter_list(
        self,
        handle: DatasetHandle,
        name: str,
        protein_ids: Sequence[str],
        category: str,
        color: Optional[str] = None,
        overwrite_existing: bool = False,
    ) -> Optional[SearchList]:
        """Create a list from validated filter-list proteins; None when there are none."""
        if not protein_ids:
            logger.info("[SESSION] Filter list %r matched nothing; no list created", name)
            return None
        return self.create(
            handle,
            name,
            protein_ids,
            search_type=SearchType.GENE_NAME,
            color=color,
            description=f"Imported from filter list: {category}",
            overwrite_existing=overwrite_existing,
        )
