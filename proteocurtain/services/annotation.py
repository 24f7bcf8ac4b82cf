"""
Annotation collaborators used to enrich display names.

An annotation source answers ``lookup_gene_name(accession)`` with a
UniProt-style gene-name string ("GENE1 ALIAS1 ALIAS2") or None. Lookups only
decorate volcano points; when no source is configured, or a lookup fails,
the dataset's own gene-name column is used.
"""

from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from threading import Lock
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

import requests

from proteocurtain.config import AnnotationConfig, get_config
from proteocurtain.logging_utils import get_logger
from proteocurtain.mapping.accession_index import ACCESSION_GENE_FIELD, AccessionIndex
from proteocurtain.mapping.alias_index import split_tokens
from proteocurtain.models.domain import ProcessedRecord
from proteocurtain.utils.error_handling import (
    CircuitBreaker,
    CircuitBreakerOpen,
    RetryConfig,
    graceful_degradation,
    retry_with_backoff,
)

logger = get_logger(__name__)

GENE_TOKEN_SPLIT = re.compile(r"[ ;\\]")


class AnnotationSource(Protocol):
    def lookup_gene_name(self, accession: str) -> Optional[str]:
        ...


class AccessionAnnotationSource:
    """Gene names from the UniProt table shipped with the dataset."""

    def __init__(self, accession_index: AccessionIndex):
        self.accession_index = accession_index

    def lookup_gene_name(self, accession: str) -> Optional[str]:
        entry = self.accession_index.entry_for(accession)
        names = entry.get(ACCESSION_GENE_FIELD) if entry else None
        return names if isinstance(names, str) and names.strip() else None


def _gene_names_from_entry(entry: Dict[str, Any]) -> Optional[str]:
    names: List[str] = []
    for gene in entry.get("genes", []) or []:
        primary = (gene.get("geneName") or {}).get("value")
        if primary:
            names.append(primary)
        for synonym in gene.get("synonyms", []) or []:
            if synonym.get("value"):
                names.append(synonym["value"])
    return " ".join(names) or None


class UniProtAnnotationClient:
    """
    UniProt REST lookups with retry, a circuit breaker and an in-memory cache.

    Network errors are retried with exponential backoff and then degrade to
    None, so a flaky service never breaks volcano processing. Once
    ``failure_threshold`` requests in a row have failed the breaker opens and
    lookups return None without touching the network until
    ``recovery_timeout`` has passed.
    """

    def __init__(
        self,
        config: Optional[AnnotationConfig] = None,
        session: Optional[requests.Session] = None,
        retry_delay: float = 1.0,
    ):
        self.config = config or get_config().annotation
        self.session = session or requests.Session()
        self.retry_config = RetryConfig(
            max_attempts=self.config.max_attempts,
            initial_delay=retry_delay,
            retryable_exceptions=(requests.RequestException,),
        )
        self.breaker = CircuitBreaker(
            failure_threshold=self.config.failure_threshold,
            recovery_timeout=self.config.recovery_timeout,
            expected_exception=requests.RequestException,
        )
        self._lookup = graceful_degradation(fallback_value=None, exceptions=(requests.RequestException,))(
            retry_with_backoff(self.retry_config)(self._guarded_fetch)
        )
        self._cache: Dict[str, Optional[str]] = {}
        self._lock = Lock()

    def _fetch(self, accession: str) -> Optional[str]:
        url = f"{self.config.base_url.rstrip('/')}/uniprotkb/search"
        params = {"query": f"accession:{accession}", "fields": "gene_names", "format": "json"}
        resp = self.session.get(url, params=params, timeout=self.config.timeout)
        resp.raise_for_status()
        results = resp.json().get("results") or []
        if not results:
            logger.debug("[ANNOTATION] No UniProt entry for %s", accession)
            return None
        return _gene_names_from_entry(results[0])

    def _guarded_fetch(self, accession: str) -> Optional[str]:
        return self.breaker.call(self._fetch, accession)

    def lookup_gene_name(self, accession: str) -> Optional[str]:
        accession = accession.strip()
        if not accession:
            return None
        with self._lock:
            if accession in self._cache:
                return self._cache[accession]

        try:
            gene_names = self._lookup(accession)
        except CircuitBreakerOpen:
            # Not cached, so the accession is tried again once the breaker closes
            logger.debug("[ANNOTATION] UniProt unavailable; skipped %s", accession)
            return None
        with self._lock:
            self._cache[accession] = gene_names
        if gene_names:
            logger.debug("[ANNOTATION] %s -> %s", accession, gene_names)
        return gene_names


def first_gene_token(gene_names: Optional[str]) -> Optional[str]:
    if not gene_names:
        return None
    tokens = [t.strip() for t in GENE_TOKEN_SPLIT.split(gene_names) if t.strip()]
    return tokens[0] if tokens else None


def candidate_accessions(primary_id: str) -> List[str]:
    """The primary id itself, then its first ``;`` sub-id when different."""
    return list(dict.fromkeys([primary_id, *split_tokens(primary_id)[:1]]))


def prefetch_gene_names(
    source: AnnotationSource,
    records: Iterable[ProcessedRecord],
    max_workers: int = 1,
) -> Dict[str, Optional[str]]:
    """
    Look up every distinct candidate accession of ``records`` once.

    Returns:
        Accession -> gene-name string (None when the source has no answer)
    """
    accessions = list(dict.fromkeys(a for r in records for a in candidate_accessions(r.primary_id)))
    if not accessions:
        return {}
    if max_workers <= 1 or len(accessions) == 1:
        return {accession: source.lookup_gene_name(accession) for accession in accessions}

    names: Dict[str, Optional[str]] = {}
    with ThreadPoolExecutor(max_workers=min(max_workers, len(accessions))) as executor:
        future_to_accession = {executor.submit(source.lookup_gene_name, a): a for a in accessions}
        for future in as_completed(future_to_accession):
            names[future_to_accession[future]] = future.result()
    logger.info(
        "[ANNOTATION] Prefetched %d accessions, %d with gene names",
        len(accessions),
        sum(1 for n in names.values() if n),
    )
    return names


class DisplayNameResolver:
    """
    Display name of a volcano point.

    Uses gene names fetched ahead of time for the record's id or its first
    accession, then the dataset's gene-name column, then the primary id
    itself. Resolving never calls an annotation source.
    """

    def __init__(self, gene_names: Optional[Mapping[str, Optional[str]]] = None):
        self.gene_names = gene_names or {}

    @classmethod
    def prefetched(
        cls,
        source: Optional[AnnotationSource],
        records: Iterable[ProcessedRecord],
        max_workers: int = 1,
    ) -> "DisplayNameResolver":
        if source is None:
            return cls()
        return cls(prefetch_gene_names(source, records, max_workers=max_workers))

    def __call__(self, record: ProcessedRecord) -> str:
        for accession in candidate_accessions(record.primary_id):
            name = first_gene_token(self.gene_names.get(accession))
            if name:
                return name
        return record.gene_names or record.primary_id
