from proteocurtain.models.domain import MatchType, SearchType
from proteocurtain.search.resolver import (
    ExactAliasStage,
    Resolver,
    StageHit,
    fallback_resolver,
    hits_by_primary_id,
)


class _RecordingStage:
    def __init__(self, name, hits):
        self.name = name
        self.hits = hits
        self.calls = 0

    def resolve(self, term, search_type, context):
        self.calls += 1
        return self.hits


def test_first_non_empty_stage_wins(search_context):
    empty = _RecordingStage("empty", [])
    first = _RecordingStage("first", [StageHit(["A"], MatchType.FUZZY)])
    never = _RecordingStage("never", [StageHit(["B"], MatchType.FUZZY)])
    resolver = Resolver([empty, first, never])

    stage, hits = resolver.resolve("X", SearchType.PRIMARY_ID, search_context)

    assert stage == "first"
    assert hits[0].primary_ids == ["A"]
    assert never.calls == 0
    assert resolver.stage_names == ["empty", "first", "never"]


def test_exhausted_pipeline(search_context):
    assert Resolver([ExactAliasStage()]).resolve("NOPE", SearchType.GENE_NAME, search_context) == (None, [])


def test_fallback_stage_order():
    assert fallback_resolver().stage_names == ["fuzzy-map", "direct-alias", "accession-token"]


def test_exact_gene_lookup_merges_alias_and_accession_hits(search_context):
    assert search_context.exact_primary_ids("HER1", SearchType.GENE_NAME) == ["P00533"]
    assert search_context.exact_primary_ids("EGFR", SearchType.GENE_NAME) == ["P00533"]


def test_hits_by_primary_id_keeps_first_occurrence():
    first = StageHit(["A", "B"], MatchType.EXACT)
    second = StageHit(["B", "C"], MatchType.PARTIAL)
    flattened = hits_by_primary_id([first, second])
    assert list(flattened) == ["A", "B", "C"]
    assert flattened["B"] is first
