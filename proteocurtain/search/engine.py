"""
Search and batch matching over a dataset's alias index.

Supports single-term lookups, newline/semicolon batch input with an
exact-first, sub-term fallback policy, regex batches, typeahead suggestions
and filter-list validation. Failures to match are never raised to the caller;
they show up as missing groups and in the statistics.
"""

from __future__ import annotations

import re
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from proteocurtain.config import SearchConfig, get_config
from proteocurtain.logging_utils import get_logger
from proteocurtain.models.domain import (
    AdvancedFilter,
    MatchType,
    SearchResult,
    SearchStatistics,
    SearchType,
    TypeaheadSuggestion,
)
from proteocurtain.search.resolver import (
    Resolver,
    SearchContext,
    StageHit,
    exact_resolver,
    fallback_resolver,
    hits_by_primary_id,
)
from proteocurtain.utils.error_handling import NotFoundError, RegexCompileError
from proteocurtain.volcano.classification import is_significant, raw_p_value

logger = get_logger(__name__)

BatchInput = Union[str, Sequence[str]]

CSV_COLUMNS = ["Protein ID", "Gene Name", "Log2FC", "P-Value", "Significant", "Match Type"]


@dataclass
class BatchSearchOutcome:
    """
    Attributes:
        results: Group key -> results, only for groups that matched
        groups: Group key -> sub-terms, for every parsed group
        attempted: Group keys in input order
        statistics: Aggregate counts over the whole batch
    """
    results: Dict[str, List[SearchResult]] = field(default_factory=dict)
    groups: Dict[str, List[str]] = field(default_factory=dict)
    attempted: List[str] = field(default_factory=list)
    statistics: SearchStatistics = field(default_factory=SearchStatistics.empty)

    @property
    def attempted_without_results(self) -> List[str]:
        return [key for key in self.attempted if key not in self.results]

    @property
    def protein_ids(self) -> List[str]:
        """Distinct matched protein ids in group order."""
        ids: Dict[str, None] = {}
        for key in self.attempted:
            for result in self.results.get(key, []):
                ids.setdefault(result.protein_id, None)
        return list(ids)


@dataclass
class FilterListMatch:
    terms: List[str]
    valid_terms: List[str]
    protein_ids: List[str]
    statistics: SearchStatistics


def parse_batch_input(lines: BatchInput) -> Dict[str, List[str]]:
    """
    Group batch input by line.

    Lines are joined, carriage returns stripped, and every non-blank line is
    trimmed and uppercased to form the group key. Its ``;``-separated,
    trimmed, non-empty parts are the group's sub-terms.
    """
    text = lines if isinstance(lines, str) else "\n".join(lines)
    groups: Dict[str, List[str]] = {}
    for line in text.replace("\r", "").split("\n"):
        key = line.strip().upper()
        if not key:
            continue
        sub_terms = groups.setdefault(key, [])
        for part in key.split(";"):
            part = part.strip()
            if part:
                sub_terms.append(part)
    return groups


def sort_results(results: Iterable[SearchResult]) -> List[SearchResult]:
    """Significant first, then by descending absolute fold change."""
    return sorted(
        results,
        key=lambda r: (not r.is_significant, -abs(r.fold_change) if r.fold_change is not None else 0.0),
    )


def export_results_csv(results: Iterable[SearchResult]) -> str:
    """Render results as CSV text with a fixed header. P-Value is always the raw p."""
    rows = [
        {
            "Protein ID": r.protein_id,
            "Gene Name": r.gene_name or "",
            "Log2FC": r.fold_change,
            "P-Value": r.p_value,
            "Significant": "true" if r.is_significant else "false",
            "Match Type": r.match_type.name,
        }
        for r in results
    ]
    frame = pd.DataFrame(rows, columns=CSV_COLUMNS)
    return frame.to_csv(index=False, lineterminator="\n").rstrip("\n")


class SearchEngine:
    """Read-only search over one dataset snapshot."""

    def __init__(
        self,
        context: SearchContext,
        config: Optional[SearchConfig] = None,
        exact: Optional[Resolver] = None,
        fallback: Optional[Resolver] = None,
    ):
        self.context = context
        self.config = config or get_config().search
        self.exact = exact or exact_resolver()
        self.fallback = fallback or fallback_resolver()
        if context.accession_index is None:
            logger.info(
                "[SEARCH] No accession index: gene names resolve through the dataset's own "
                "gene-name column only; accession search is unavailable"
            )

    @property
    def total_proteins(self) -> int:
        return len(self.context.records) or len(self.context.alias_index.canonical_ids)

    # ------------------------------------------------------------------
    # Result construction
    # ------------------------------------------------------------------

    def _result(self, primary_id: str, search_type: SearchType, term: str, hit: StageHit) -> SearchResult:
        record = self.context.records.get(primary_id)
        gene_name = record.gene_names if record else None
        if not gene_name and self.context.accession_index is not None:
            gene_name = self.context.accession_index.first_gene_name(primary_id)
        fold_change = record.fold_change if record else None
        significance = record.significance if record else None
        return SearchResult(
            protein_id=primary_id,
            search_type=search_type,
            search_term=term,
            match_type=hit.match_type,
            gene_name=gene_name,
            accession_id=hit.accession_id,
            fold_change=fold_change,
            significance=significance,
            is_significant=is_significant(
                fold_change,
                significance,
                self.context.p_cutoff,
                self.context.log2_fc_cutoff,
                transformed=self.context.significance_transformed,
            ),
            p_value=raw_p_value(significance, self.context.significance_transformed),
        )

    def _results(self, hits: Sequence[StageHit], search_type: SearchType, term: str) -> List[SearchResult]:
        return [
            self._result(primary_id, search_type, term, hit)
            for primary_id, hit in hits_by_primary_id(hits).items()
        ]

    def _statistics(
        self,
        results: Iterable[SearchResult],
        unmatched: List[str],
        started: float,
        total: Optional[int] = None,
    ) -> SearchStatistics:
        results = list(results)
        return SearchStatistics(
            total_proteins=self.total_proteins if total is None else total,
            matched_proteins=len({r.protein_id for r in results}),
            unmatched_terms=unmatched,
            exact_matches=sum(1 for r in results if r.match_type == MatchType.EXACT),
            partial_matches=sum(1 for r in results if r.match_type != MatchType.EXACT),
            duration_ms=int((time.perf_counter() - started) * 1000),
        )

    # ------------------------------------------------------------------
    # Single and batch search
    # ------------------------------------------------------------------

    def search_single(self, term: str, search_type: SearchType) -> List[SearchResult]:
        """Exact lookup of one trimmed, uppercased term."""
        normalized = term.strip().upper()
        if not normalized:
            return []
        _, hits = self.exact.resolve(normalized, search_type, self.context)
        results = self._results(hits, search_type, normalized)
        logger.debug("[SEARCH] %r (%s): %d results", normalized, search_type.value, len(results))
        return results

    def search(self, term: str, search_type: SearchType) -> Tuple[List[SearchResult], SearchStatistics]:
        started = time.perf_counter()
        results = self.search_single(term, search_type)
        unmatched = [] if results else [term.strip().upper()]
        return results, self._statistics(results, unmatched, started)

    def _resolve_group(self, key: str, sub_terms: Sequence[str], search_type: SearchType) -> List[SearchResult]:
        _, hits = self.exact.resolve(key, search_type, self.context)
        if hits:
            return self._results(hits, search_type, key)
        for sub_term in sub_terms:
            _, hits = self.fallback.resolve(sub_term, search_type, self.context)
            if hits:
                return self._results(hits, search_type, sub_term)
        raise NotFoundError(key)

    def _resolve_groups(
        self,
        groups: Dict[str, List[str]],
        search_type: SearchType,
    ) -> List[Tuple[str, List[SearchResult]]]:
        """Resolve every group, keeping input order even when run in parallel."""
        keys = list(groups)

        def resolve(key: str) -> List[SearchResult]:
            try:
                return self._resolve_group(key, groups[key], search_type)
            except NotFoundError:
                logger.debug("[SEARCH] No match for %r", key)
                return []

        workers = self.config.batch_max_workers
        if workers <= 1 or len(keys) <= 1:
            return [(key, resolve(key)) for key in keys]

        resolved: List[Tuple[int, str, List[SearchResult]]] = []
        with ThreadPoolExecutor(max_workers=min(workers, len(keys))) as executor:
            future_to_index = {executor.submit(resolve, key): i for i, key in enumerate(keys)}
            for future in as_completed(future_to_index):
                index = future_to_index[future]
                resolved.append((index, keys[index], future.result()))
        resolved.sort(key=lambda item: item[0])
        return [(key, results) for _, key, results in resolved]

    def search_batch(
        self,
        lines: BatchInput,
        search_type: SearchType,
        significant_only: bool = False,
        advanced_filter: Optional[AdvancedFilter] = None,
    ) -> BatchSearchOutcome:
        """
        Resolve batch input group by group.

        The full line is tried exactly first; only when that finds nothing
        are the sub-terms tried through the fallback stages, stopping at the
        first sub-term that matches. Groups with no match are absent from
        ``results`` and listed in ``statistics.unmatched_terms``.
        """
        started = time.perf_counter()
        groups = parse_batch_input(lines)
        outcome = BatchSearchOutcome(groups=groups, attempted=list(groups))
        unmatched: List[str] = []
        kept: List[SearchResult] = []

        for key, results in self._resolve_groups(groups, search_type):
            if not results:
                unmatched.append(key)
                continue
            if significant_only:
                results = [r for r in results if r.is_significant]
            if advanced_filter is not None:
                results = [r for r in results if advanced_filter.matches(r.fold_change, r.p_value)]
            if results:
                outcome.results[key] = sort_results(results)
                kept.extend(results)

        outcome.statistics = self._statistics(kept, unmatched, started)
        logger.info(
            "[SEARCH] Batch of %d groups (%s): %d matched, %d unmatched",
            len(groups),
            search_type.value,
            len(outcome.results),
            len(unmatched),
        )
        return outcome

    # ------------------------------------------------------------------
    # Regex search
    # ------------------------------------------------------------------

    def _regex_universe(self, search_type: SearchType) -> List[Tuple[str, List[str]]]:
        """(searchable text, primary ids it stands for) pairs."""
        if search_type == SearchType.GENE_NAME:
            return [(genes, [pid]) for pid, genes in self.context.alias_index.gene_names_by_canonical.items()]
        if search_type == SearchType.PRIMARY_ID:
            return [(pid, [pid]) for pid in self.context.alias_index.canonical_ids]
        if self.context.accession_index is None:
            return []
        return [(acc, list(ids)) for acc, ids in self.context.accession_index.accession_to_primary_ids.items()]

    @staticmethod
    def _compile(pattern: str) -> "re.Pattern[str]":
        try:
            return re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise RegexCompileError(pattern, str(e)) from e

    def search_regex_batch(self, lines: BatchInput, search_type: SearchType) -> BatchSearchOutcome:
        """Each line is a case-insensitive pattern searched over the whole universe."""
        started = time.perf_counter()
        text = lines if isinstance(lines, str) else "\n".join(lines)
        patterns = list(dict.fromkeys(line.strip() for line in text.replace("\r", "").split("\n") if line.strip()))
        universe = self._regex_universe(search_type)
        outcome = BatchSearchOutcome(groups={p: [p] for p in patterns}, attempted=list(patterns))
        unmatched: List[str] = []
        kept: List[SearchResult] = []

        for pattern in patterns:
            try:
                compiled = self._compile(pattern)
            except RegexCompileError as e:
                logger.warning("[SEARCH] %s; line contributes no matches", e)
                unmatched.append(pattern)
                continue
            hits = [
                StageHit(ids, MatchType.PARTIAL, label if search_type == SearchType.ACCESSION_ID else None)
                for label, ids in universe
                if compiled.search(label)
            ]
            results = self._results(hits, search_type, pattern)
            if not results:
                unmatched.append(pattern)
                continue
            outcome.results[pattern] = sort_results(results)
            kept.extend(results)

        outcome.statistics = self._statistics(kept, unmatched, started)
        return outcome

    # ------------------------------------------------------------------
    # Typeahead
    # ------------------------------------------------------------------

    def _typeahead_sources(self, search_type: SearchType) -> List[str]:
        if search_type == SearchType.PRIMARY_ID:
            return self.context.alias_index.canonical_ids
        if search_type == SearchType.GENE_NAME:
            return self.context.gene_universe
        if self.context.accession_index is None:
            return []
        return list(self.context.accession_index.accession_to_primary_ids)

    def suggest(self, query: str, search_type: SearchType, limit: Optional[int] = None) -> List[TypeaheadSuggestion]:
        """
        Case-insensitive substring suggestions.

        Each source string contributes at most one suggestion: the first of
        its ``;`` tokens that contains the query. Gene-name sources suggest
        the whole gene-name string, id sources the matching token.
        """
        if len(query) < self.config.typeahead_min_length:
            return []
        limit = self.config.typeahead_limit if limit is None else limit
        needle = query.lower()

        counts: Dict[str, int] = {}
        for source in self._typeahead_sources(search_type):
            for token in source.lower().split(";"):
                if needle in token:
                    text = source.upper() if search_type == SearchType.GENE_NAME else token.upper()
                    counts[text] = counts.get(text, 0) + 1
                    break

        return [TypeaheadSuggestion(text, search_type, count) for text, count in counts.items()][:limit]

    # ------------------------------------------------------------------
    # Filter lists
    # ------------------------------------------------------------------

    def validate_filter_list(self, text: str) -> FilterListMatch:
        """
        Check filter-list entries against the dataset's gene names.

        Entries are parsed like batch input and flattened into distinct terms;
        a term is valid when it equals a gene-name string of the dataset
        ignoring case.
        """
        started = time.perf_counter()
        terms: List[str] = list(dict.fromkeys(t for subs in parse_batch_input(text).values() for t in subs))
        universe = self.context.gene_universe
        by_upper: Dict[str, str] = {}
        for gene in universe:
            by_upper.setdefault(gene.upper(), gene)

        valid = list(dict.fromkeys(by_upper[t] for t in terms if t in by_upper))
        protein_ids: Dict[str, None] = {}
        for gene in valid:
            for primary_id in self.context.exact_primary_ids(gene.upper(), SearchType.GENE_NAME):
                protein_ids.setdefault(primary_id, None)

        valid_upper = {v.upper() for v in valid}
        statistics = SearchStatistics(
            total_proteins=len(universe),
            matched_proteins=len(valid),
            unmatched_terms=[t for t in terms if t not in valid_upper],
            exact_matches=len(valid),
            partial_matches=0,
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
        return FilterListMatch(terms=terms, valid_terms=valid, protein_ids=list(protein_ids), statistics=statistics)
