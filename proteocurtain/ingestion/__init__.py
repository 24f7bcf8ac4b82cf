"""Tabular ingestion of raw and processed proteomics tables."""

from __future__ import annotations

from proteocurtain.ingestion.sample_conditions import ConditionLayout, derive_sample_conditions
from proteocurtain.ingestion.tabular_parser import parse_processed, parse_raw

__all__ = [
    "ConditionLayout",
    "derive_sample_conditions",
    "parse_processed",
    "parse_raw",
]
