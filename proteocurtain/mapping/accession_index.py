"""
Optional external accession data attached to a dataset.

``AccessionIndex`` carries the UniProt-derived gene-name -> accession ->
primary-id chain plus per-entry annotations. ``FuzzyMaps`` carries the
secondary term -> candidate maps used by the fuzzy fallback of batch search.
Both are optional; a dataset without them searches in a degraded mode that
only uses its own alias index.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set

ACCESSION_GENE_FIELD = "Gene Names"


@dataclass(frozen=True)
class AccessionIndex:
    """
    Attributes:
        gene_name_to_accessions: Uppercased gene name -> accessions
        accession_to_primary_ids: Accession -> primary ids of the dataset
        entries: Primary id or accession -> annotation record
        data_map: Alternative accession -> canonical entry key
    """
    gene_name_to_accessions: Mapping[str, List[str]] = field(default_factory=dict)
    accession_to_primary_ids: Mapping[str, List[str]] = field(default_factory=dict)
    entries: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    data_map: Mapping[str, str] = field(default_factory=dict)

    def primary_ids_for_gene(self, gene_name: str) -> List[str]:
        """Two-hop resolution: gene name -> accessions -> primary ids."""
        resolved: List[str] = []
        for accession in self.gene_name_to_accessions.get(gene_name.strip().upper(), []):
            resolved.extend(self.accession_to_primary_ids.get(accession, []))
        return list(dict.fromkeys(resolved))

    def primary_ids_for_accession(self, accession: str) -> List[str]:
        return list(self.accession_to_primary_ids.get(accession.strip().upper(), []))

    def entry_for(self, primary_id: str) -> Optional[Mapping[str, Any]]:
        """Annotation for a primary id, following alternative accessions."""
        entry = self.entries.get(primary_id)
        if entry is not None:
            return entry
        for alternative in self.accession_to_primary_ids.get(primary_id, []):
            canonical = self.data_map.get(alternative)
            if canonical and canonical in self.entries:
                return self.entries[canonical]
        return None

    def gene_names_for(self, primary_id: str) -> Optional[str]:
        """Gene-name string of an entry with spaces turned into ``;`` separators."""
        entry = self.entry_for(primary_id)
        if not entry:
            return None
        names = entry.get(ACCESSION_GENE_FIELD)
        if not isinstance(names, str) or not names.strip():
            return None
        return names.strip().replace(" ", ";").upper()

    def first_gene_name(self, primary_id: str) -> Optional[str]:
        entry = self.entry_for(primary_id)
        names = entry.get(ACCESSION_GENE_FIELD) if entry else None
        if not isinstance(names, str):
            return None
        tokens = [t.strip() for t in re.split(r"[ ;\\]", names) if t.strip()]
        return tokens[0] if tokens else None


@dataclass(frozen=True)
class FuzzyMaps:
    """
    Attributes:
        genes_map: Raw term -> related gene names
        primary_ids_map: Raw term -> related primary ids
    """
    genes_map: Mapping[str, List[str]] = field(default_factory=dict)
    primary_ids_map: Mapping[str, List[str]] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.genes_map and not self.primary_ids_map


def normalize_candidates(value: Any) -> List[str]:
    """Accept a list of candidates or a dict keyed by candidate."""
    if isinstance(value, Mapping):
        return [str(k) for k in value.keys()]
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value]
    if value is None:
        return []
    return [str(value)]


def build_candidate_table(raw: Optional[Mapping[str, Any]], upper_keys: bool = False) -> Dict[str, List[str]]:
    table: Dict[str, List[str]] = {}
    for key, value in (raw or {}).items():
        name = str(key).upper() if upper_keys else str(key)
        seen: Set[str] = set(table.get(name, []))
        merged = table.setdefault(name, [])
        for candidate in normalize_candidates(value):
            if candidate not in seen:
                merged.append(candidate)
                seen.add(candidate)
    return table
