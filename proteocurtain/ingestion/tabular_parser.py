"""
Tab-delimited parsing for the processed (differential) and raw tables.

Columns are located by exact header match against the dataset's
ColumnMapping. A table whose primary-id column cannot be found yields no
records; numeric cells that fail to parse become None instead of dropping the
row.
"""

from __future__ import annotations

import io
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from proteocurtain.constants import DEFAULT_COMPARISON
from proteocurtain.logging_utils import get_logger
from proteocurtain.models.domain import (
    ColumnMapping,
    ProcessedRecord,
    RawSample,
    TransformOptions,
)
from proteocurtain.utils.error_handling import ParseError

logger = get_logger(__name__)


def read_table(text: str) -> Tuple[List[str], pd.DataFrame]:
    """
    Read TSV text into its header and a frame of string cells.

    Frame columns are field positions. Empty cells are "", cells past the end
    of a short row are None. Blank lines are ignored and any newline
    convention is accepted.
    """
    lines = pd.Series([line.rstrip("\n") for line in io.StringIO(text, newline=None)], dtype="object")
    lines = lines[lines.str.strip() != ""].reset_index(drop=True)
    if lines.empty:
        return [], pd.DataFrame()
    cells = lines.str.split("\t", expand=True)
    header = [cell for cell in cells.iloc[0] if isinstance(cell, str)]
    return header, cells.iloc[1:].reset_index(drop=True)


def _locate(header: Sequence[str], column: Optional[str]) -> Optional[int]:
    if not column:
        return None
    try:
        return list(header).index(column)
    except ValueError:
        return None


def _locate_primary_id(header: Sequence[str], column: str, table: str) -> int:
    index = _locate(header, column)
    if index is None:
        raise ParseError(f"Primary id column {column!r} not found in {table} table header")
    return index


def _usable_rows(rows: pd.DataFrame, indices: Sequence[Optional[int]]) -> pd.DataFrame:
    """Drop rows with no field at the largest referenced column index."""
    present = [i for i in indices if i is not None]
    max_index = max(present) if present else 0
    field_counts = rows.notna().sum(axis=1)
    usable = rows[field_counts > max_index].reset_index(drop=True)
    skipped = len(rows) - len(usable)
    if skipped:
        logger.warning("[PARSER] Skipped %d short rows", skipped)
    return usable


def to_numeric(values: Sequence[Optional[str]]) -> np.ndarray:
    """Coerce cells to float, unparseable or blank cells become NaN."""
    cleaned = [v.strip() if isinstance(v, str) else None for v in values]
    series = pd.Series(cleaned, dtype="object")
    return pd.to_numeric(series, errors="coerce").to_numpy(dtype=float)


def log2_positive(values: np.ndarray) -> np.ndarray:
    """log2(x) for x > 0, NaN otherwise."""
    out = np.full(values.shape, np.nan)
    mask = values > 0
    out[mask] = np.log2(values[mask])
    return out


def minus_log10_positive(values: np.ndarray) -> np.ndarray:
    """-log10(p) for p > 0, NaN otherwise."""
    out = np.full(values.shape, np.nan)
    mask = values > 0
    out[mask] = -np.log10(values[mask])
    return out


def _optional(value: float) -> Optional[float]:
    return None if np.isnan(value) else float(value)


def _column_values(rows: pd.DataFrame, index: Optional[int]) -> List[Optional[str]]:
    if index is None:
        return [None] * len(rows)
    return rows[index].tolist()


def _stripped(rows: pd.DataFrame, index: Optional[int]) -> List[str]:
    return [value.strip() if isinstance(value, str) else "" for value in _column_values(rows, index)]


def parse_processed(
    text: str,
    mapping: ColumnMapping,
    options: Optional[TransformOptions] = None,
) -> List[ProcessedRecord]:
    """
    Parse the differential-expression table into ProcessedRecords.

    Args:
        text: Tab-separated table with a header row
        mapping: Column roles for this dataset
        options: Fold-change/significance transforms to apply

    Returns:
        Records in file order. Empty if the primary-id column is missing.
    """
    try:
        records = _parse_processed(text, mapping, options or TransformOptions())
    except ParseError as e:
        logger.warning("[PARSER] %s; no records produced", e)
        return []
    logger.info("[PARSER] Parsed %d processed records", len(records))
    return records


def _parse_processed(text: str, mapping: ColumnMapping, options: TransformOptions) -> List[ProcessedRecord]:
    header, rows = read_table(text)
    id_index = _locate_primary_id(header, mapping.primary_id, "processed")
    gene_index = _locate(header, mapping.gene_names)
    fc_index = _locate(header, mapping.fold_change)
    sig_index = _locate(header, mapping.significance)
    comparison_index = _locate(header, mapping.comparison)
    rows = _usable_rows(rows, [id_index, gene_index, fc_index, sig_index, comparison_index])
    if rows.empty:
        return []

    fold_changes = to_numeric(_column_values(rows, fc_index))
    significances = to_numeric(_column_values(rows, sig_index))
    if options.log2_fold_change:
        fold_changes = log2_positive(fold_changes)
    if options.minus_log10_significance:
        significances = minus_log10_positive(significances)
    if options.reverse_fold_change:
        fold_changes = -fold_changes

    records: List[ProcessedRecord] = []
    rows_iter = zip(
        _stripped(rows, id_index),
        _stripped(rows, gene_index),
        _stripped(rows, comparison_index),
    )
    for i, (primary_id, gene_names, comparison) in enumerate(rows_iter):
        if not primary_id:
            continue
        records.append(
            ProcessedRecord(
                primary_id=primary_id,
                gene_names=gene_names or None,
                fold_change=_optional(fold_changes[i]),
                significance=_optional(significances[i]),
                comparison=comparison or DEFAULT_COMPARISON,
            )
        )
    return records


def parse_raw(
    text: str,
    mapping: ColumnMapping,
    options: Optional[TransformOptions] = None,
) -> List[RawSample]:
    """
    Parse the raw intensity table into one RawSample per (protein, sample).

    Sample columns missing from the header are skipped with a warning.
    """
    try:
        return _parse_raw(text, mapping, options or TransformOptions())
    except ParseError as e:
        logger.warning("[PARSER] %s; no samples produced", e)
        return []


def _parse_raw(text: str, mapping: ColumnMapping, options: TransformOptions) -> List[RawSample]:
    header, rows = read_table(text)
    id_index = _locate_primary_id(header, mapping.raw_id_column, "raw")

    sample_indices: Dict[str, int] = {}
    for sample in mapping.samples:
        index = _locate(header, sample)
        if index is None:
            logger.warning("[PARSER] Sample column %r not found in raw table", sample)
            continue
        sample_indices[sample] = index

    rows = _usable_rows(rows, [id_index, *sample_indices.values()])
    primary_ids = _stripped(rows, id_index)
    keep = [bool(pid) for pid in primary_ids]
    rows = rows[keep].reset_index(drop=True)
    primary_ids = [pid for pid in primary_ids if pid]
    if not primary_ids:
        return []

    values_by_sample: Dict[str, np.ndarray] = {}
    for sample, index in sample_indices.items():
        values = to_numeric(_column_values(rows, index))
        values_by_sample[sample] = log2_positive(values) if options.log2_raw else values

    samples: List[RawSample] = []
    for i, primary_id in enumerate(primary_ids):
        for sample, values in values_by_sample.items():
            samples.append(RawSample(primary_id=primary_id, sample_name=sample, value=_optional(values[i])))

    logger.info(
        "[PARSER] Parsed %d raw values (%d proteins x %d samples)",
        len(samples),
        len(primary_ids),
        len(values_by_sample),
    )
    return samples
