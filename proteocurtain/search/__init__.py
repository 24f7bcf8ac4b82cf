"""Identifier search and batch matching."""

from __future__ import annotations

from proteocurtain.search.engine import (
    BatchSearchOutcome,
    FilterListMatch,
    SearchEngine,
    export_results_csv,
    parse_batch_input,
)
from proteocurtain.search.resolver import Resolver, SearchContext

__all__ = [
    "BatchSearchOutcome",
    "FilterListMatch",
    "Resolver",
    "SearchContext",
    "SearchEngine",
    "export_results_csv",
    "parse_batch_input",
]
