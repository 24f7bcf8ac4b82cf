"""
Identifier mapping: alias index building and optional accession data.
"""

from __future__ import annotations

from proteocurtain.mapping.accession_index import AccessionIndex, FuzzyMaps
from proteocurtain.mapping.alias_index import (
    AliasIndex,
    AliasIndexRegistry,
    build_alias_index,
    split_tokens,
)

__all__ = [
    "AccessionIndex",
    "AliasIndex",
    "AliasIndexRegistry",
    "FuzzyMaps",
    "build_alias_index",
    "split_tokens",
]
