"""
Tests for single, batch, regex and typeahead search.
"""

from dataclasses import replace

import pytest

from proteocurtain.config import SearchConfig
from proteocurtain.mapping.accession_index import AccessionIndex
from proteocurtain.models.domain import AdvancedFilter, MatchType, SearchResult, SearchType
from proteocurtain.search.engine import SearchEngine, export_results_csv, parse_batch_input, sort_results


@pytest.fixture
def engine(search_context):
    return SearchEngine(search_context, config=SearchConfig())


def test_parse_batch_input_groups_by_line():
    groups = parse_batch_input("p1;p2\r\n\n  P3  \n")
    assert groups == {"P1;P2": ["P1", "P2"], "P3": ["P3"]}


def test_parse_batch_input_accepts_line_lists():
    assert parse_batch_input(["a", " ", "b; ;c"]) == {"A": ["A"], "B; ;C": ["B", "C"]}


class TestSingleSearch:
    def test_trimmed_case_insensitive_gene_lookup(self, engine):
        results, stats = engine.search("  tp53 ", SearchType.GENE_NAME)
        assert [r.protein_id for r in results] == ["P04637;P04637-2"]
        assert results[0].search_term == "TP53"
        assert results[0].match_type == MatchType.EXACT
        assert results[0].is_significant is True
        assert stats.unmatched_terms == []
        assert stats.total_proteins == 5

    def test_sub_id_resolves_to_composite(self, engine):
        results = engine.search_single("P04637-2", SearchType.PRIMARY_ID)
        assert [r.protein_id for r in results] == ["P04637;P04637-2"]

    def test_gene_alias_two_hop_through_accessions(self, engine):
        results = engine.search_single("p53", SearchType.GENE_NAME)
        assert [r.protein_id for r in results] == ["P04637;P04637-2"]

    def test_exact_accession(self, engine):
        results = engine.search_single("p00533", SearchType.ACCESSION_ID)
        assert results[0].protein_id == "P00533"
        assert results[0].accession_id == "P00533"

    def test_no_match_is_counted(self, engine):
        results, stats = engine.search("nope", SearchType.GENE_NAME)
        assert results == []
        assert stats.unmatched_terms == ["NOPE"]

    def test_blank_term(self, engine):
        assert engine.search_single("   ", SearchType.PRIMARY_ID) == []


class TestBatchSearch:
    def test_full_line_exact_match_wins(self, engine):
        outcome = engine.search_batch("P04637;P04637-2", SearchType.PRIMARY_ID)
        results = outcome.results["P04637;P04637-2"]
        assert [r.match_type for r in results] == [MatchType.EXACT]
        assert results[0].search_term == "P04637;P04637-2"

    def test_sub_terms_tried_when_line_fails(self, engine):
        outcome = engine.search_batch("xyz;P04637-2", SearchType.PRIMARY_ID)
        results = outcome.results["XYZ;P04637-2"]
        assert [r.protein_id for r in results] == ["P04637;P04637-2"]
        assert results[0].match_type == MatchType.FUZZY
        assert results[0].search_term == "P04637-2"

    def test_fuzzy_gene_map(self, engine):
        outcome = engine.search_batch("NEMO", SearchType.GENE_NAME)
        result = outcome.results["NEMO"][0]
        assert result.protein_id == "Q9Y6K9"
        assert result.match_type == MatchType.FUZZY

    def test_fuzzy_primary_id_map(self, engine):
        outcome = engine.search_batch("P04637-9", SearchType.PRIMARY_ID)
        assert outcome.protein_ids == ["P04637;P04637-2"]

    def test_accession_token_match_is_partial(self, search_context):
        context = replace(
            search_context,
            accession_index=AccessionIndex(accession_to_primary_ids={"Q1;Q2": ["P01375"]}),
        )
        outcome = SearchEngine(context, config=SearchConfig()).search_batch("q2", SearchType.ACCESSION_ID)
        result = outcome.results["Q2"][0]
        assert result.protein_id == "P01375"
        assert result.match_type == MatchType.PARTIAL
        assert result.accession_id == "Q1;Q2"

    def test_statistics(self, engine):
        outcome = engine.search_batch("TP53\nnope\nNEMO", SearchType.GENE_NAME)
        stats = outcome.statistics
        assert stats.total_proteins == 5
        assert stats.matched_proteins == 2
        assert stats.unmatched_terms == ["NOPE"]
        assert stats.exact_matches == 1
        assert stats.partial_matches == 1
        assert outcome.attempted == ["TP53", "NOPE", "NEMO"]
        assert outcome.attempted_without_results == ["NOPE"]

    def test_significant_only(self, engine):
        outcome = engine.search_batch("TP53\nTNF", SearchType.GENE_NAME, significant_only=True)
        assert list(outcome.results) == ["TP53"]
        assert outcome.statistics.unmatched_terms == []
        assert outcome.attempted_without_results == ["TNF"]

    def test_advanced_filter_left_window(self, engine):
        window = AdvancedFilter(max_p=0.05, min_fc_left=1.0, max_fc_left=2.0, search_left=True)
        outcome = engine.search_batch("TP53\nEGFR", SearchType.GENE_NAME, advanced_filter=window)
        assert list(outcome.results) == ["EGFR"]

    def test_parallel_resolution_keeps_input_order(self, search_context):
        lines = "TNF\nTP53\nnope\nIKBKG\nEGFR\nNEMO"
        serial = SearchEngine(search_context, config=SearchConfig(batch_max_workers=1))
        parallel = SearchEngine(search_context, config=SearchConfig(batch_max_workers=4))
        expected = serial.search_batch(lines, SearchType.GENE_NAME)
        actual = parallel.search_batch(lines, SearchType.GENE_NAME)
        assert list(actual.results) == list(expected.results)
        assert actual.protein_ids == expected.protein_ids
        assert actual.statistics.unmatched_terms == ["NOPE"]

    def test_degraded_without_accession_index(self, search_context):
        engine = SearchEngine(replace(search_context, accession_index=None), config=SearchConfig())
        assert engine.search_batch("P53", SearchType.GENE_NAME).results == {}
        assert engine.search_batch("P04637", SearchType.ACCESSION_ID).results == {}
        assert engine.search_batch("TP53", SearchType.GENE_NAME).protein_ids == ["P04637;P04637-2"]


class TestRegexSearch:
    def test_pattern_matches_gene_names(self, engine):
        outcome = engine.search_regex_batch("^tp|^tn", SearchType.GENE_NAME)
        ids = {r.protein_id for r in outcome.results["^tp|^tn"]}
        assert ids == {"P04637;P04637-2", "P01375"}
        assert all(r.match_type == MatchType.PARTIAL for r in outcome.results["^tp|^tn"])

    def test_invalid_pattern_contributes_nothing(self, engine):
        outcome = engine.search_regex_batch("[\n^EGFR", SearchType.GENE_NAME)
        assert "[" not in outcome.results
        assert outcome.protein_ids == ["P00533"]
        assert outcome.statistics.unmatched_terms == ["["]


class TestTypeahead:
    def test_single_character_returns_nothing(self, engine):
        assert engine.suggest("t", SearchType.GENE_NAME) == []

    def test_gene_suggestions_use_full_string(self, engine):
        texts = [s.text for s in engine.suggest("erb", SearchType.GENE_NAME)]
        assert texts == ["EGFR;ERBB1"]

    def test_primary_id_suggestions_use_matching_token(self, engine):
        suggestions = engine.suggest("p0", SearchType.PRIMARY_ID)
        assert [s.text for s in suggestions] == ["P04637", "P00533", "P01375"]
        assert engine.suggest("p0", SearchType.PRIMARY_ID, limit=2)[-1].text == "P00533"

    def test_accession_suggestions(self, engine):
        assert [s.text for s in engine.suggest("p04", SearchType.ACCESSION_ID)] == ["P04637"]


def test_validate_filter_list(engine):
    match = engine.validate_filter_list("tp53\nTNF\nfoo")
    assert match.terms == ["TP53", "TNF", "FOO"]
    assert match.valid_terms == ["TP53", "TNF"]
    assert match.protein_ids == ["P04637;P04637-2", "P01375"]
    assert match.statistics.unmatched_terms == ["FOO"]


def test_sort_results_significant_first():
    results = [
        SearchResult("A", SearchType.PRIMARY_ID, "A", fold_change=3.0),
        SearchResult("B", SearchType.PRIMARY_ID, "B", fold_change=-1.0, is_significant=True),
        SearchResult("C", SearchType.PRIMARY_ID, "C", fold_change=-2.0, is_significant=True),
        SearchResult("D", SearchType.PRIMARY_ID, "D"),
    ]
    assert [r.protein_id for r in sort_results(results)] == ["C", "B", "A", "D"]


def test_export_results_csv(engine):
    results = engine.search_single("TP53", SearchType.GENE_NAME)
    lines = export_results_csv(results).split("\n")
    assert lines[0] == "Protein ID,Gene Name,Log2FC,P-Value,Significant,Match Type"
    assert lines[1] == "P04637;P04637-2,TP53,2.1,0.001,true,EXACT"


def test_export_empty_results_is_header_only():
    assert export_results_csv([]) == "Protein ID,Gene Name,Log2FC,P-Value,Significant,Match Type"
