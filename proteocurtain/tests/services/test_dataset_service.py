"""
End-to-end tests for dataset loading, search, selections and volcano processing.
"""

import threading
from unittest.mock import MagicMock

import pytest
import requests

from proteocurtain.config import AnnotationConfig, get_config
from proteocurtain.models.domain import AdvancedFilter, MatchType, SearchType, VolcanoSettings
from proteocurtain.models.selection_map import SelectionMap
from proteocurtain.search.engine import export_results_csv
from proteocurtain.services.annotation import UniProtAnnotationClient
from proteocurtain.services.dataset_service import ProteomicsDataService
from proteocurtain.storage.store import InMemoryProteomicsStore
from proteocurtain.utils.error_handling import DatasetNotFoundError


@pytest.fixture
def service(descriptor, processed_tsv, raw_tsv):
    svc = ProteomicsDataService(store=InMemoryProteomicsStore())
    assert svc.load_dataset("ds1", descriptor, processed_tsv, raw_tsv) is True
    return svc


def test_load_is_skipped_unless_forced(service, descriptor, processed_tsv):
    assert service.load_dataset("ds1", descriptor, processed_tsv) is False
    assert service.load_dataset("ds1", descriptor, processed_tsv, force=True) is True
    assert service.store.get_all_raw_samples("ds1") == []


def test_load_builds_and_stores_alias_index(service):
    assert service.registry.has_index("ds1")
    assert service.store.get_alias_index("ds1") is service.registry.get("ds1")


def test_significance_is_transformed_on_load(service):
    records = {r.primary_id: r for r in service.store.get_all_processed_records("ds1")}
    assert records["P04637;P04637-2"].significance == pytest.approx(3.0)


def test_search_uses_annotation_gene_names(service):
    results = service.search("ds1", "her1", SearchType.GENE_NAME)
    assert [r.protein_id for r in results] == ["P00533"]


def test_search_significance_on_transformed_values(service):
    results = service.search("ds1", "TP53", SearchType.GENE_NAME)
    assert results[0].is_significant is True
    outcome = service.search_batch("ds1", "TP53\nTNF", SearchType.GENE_NAME, significant_only=True)
    assert list(outcome.results) == ["TP53"]


def test_batch_fuzzy_fallback(service):
    outcome = service.search_batch("ds1", "NEMO", SearchType.GENE_NAME)
    assert outcome.results["NEMO"][0].match_type == MatchType.FUZZY


def test_stored_selections_color_volcano(service):
    result = service.process_volcano("ds1", VolcanoSettings())
    by_id = {p.protein_id: p for p in result.points}
    assert by_id["P00533"].selections == ["Kinases"]
    assert by_id["P04637;P04637-2"].selections == ["Tumour suppressors"]
    assert "Kinases" in result.color_map


def test_volcano_results_are_cached(service):
    settings = VolcanoSettings(background_grey=True)
    first = service.process_volcano("ds1", settings)
    assert service.process_volcano("ds1", settings) is first
    assert service.process_volcano("ds1", VolcanoSettings()) is not first


def test_saving_selections_invalidates_cached_volcano(service):
    settings = VolcanoSettings()
    before = service.process_volcano("ds1", settings)

    handle = service.handle("ds1")
    service.session("ds1").create(handle, "Hits", ["Q9Y6K9"])
    service.save_selections("ds1")

    after = service.process_volcano("ds1", settings)
    assert after is not before
    assert {p.protein_id: p for p in after.points}["Q9Y6K9"].selections == ["Hits"]
    stored = service.store.get_canonical_selection_map("ds1")
    assert stored.names_for("Q9Y6K9") == ["Hits"]
    assert "Hits" in service.store.get_operation_names("ds1")


def test_fetch_uniprot_uses_dataset_annotations(descriptor, processed_tsv):
    descriptor["fetchUniprot"] = True
    svc = ProteomicsDataService()
    svc.load_dataset("ds1", descriptor, processed_tsv)
    names = {p.protein_id: p.gene_name for p in svc.process_volcano("ds1").points}
    assert names["P04637;P04637-2"] == "TP53"
    assert names["P00533"] == "EGFR"
    assert names["Q9Y6K9"] == "IKBKG"
    assert names["O15111"] == "O15111"


def test_sample_conditions(service):
    layout = service.sample_conditions("ds1")
    assert layout.condition_order == ["WT", "KO"]


def test_clear_dataset(service):
    service.clear_dataset("ds1")
    assert not service.registry.has_index("ds1")
    with pytest.raises(DatasetNotFoundError):
        service.search_engine("ds1")


def test_unknown_dataset():
    with pytest.raises(DatasetNotFoundError):
        ProteomicsDataService().process_volcano("missing")


def test_search_cutoffs_default_to_config(service):
    engine = service.search_engine("ds1")
    assert engine.context.p_cutoff == get_config().volcano.p_cutoff
    assert engine.context.significance_transformed is True


def test_advanced_filter_uses_raw_p_on_transformed_data(service):
    window = AdvancedFilter(max_p=0.05, min_fc_right=1, max_fc_right=3, search_right=True)
    outcome = service.search_batch("ds1", "TP53", SearchType.GENE_NAME, advanced_filter=window)
    assert outcome.protein_ids == ["P04637;P04637-2"]
    assert outcome.attempted_without_results == []
    assert outcome.results["TP53"][0].p_value == pytest.approx(0.001)


def test_advanced_filter_p_range_excludes_on_transformed_data(service):
    window = AdvancedFilter(min_p=0.01, max_p=0.05, min_fc_left=1.0, max_fc_left=2.0, search_left=True)
    outcome = service.search_batch("ds1", "TP53\nEGFR", SearchType.GENE_NAME, advanced_filter=window)
    assert list(outcome.results) == ["EGFR"]


def test_csv_export_writes_raw_p_for_transformed_data(service):
    results = service.search("ds1", "TP53", SearchType.GENE_NAME)
    row = export_results_csv(results).split("\n")[1].split(",")
    assert float(row[3]) == pytest.approx(0.001)


class _LockCheckingSource:
    """Annotation source that records whether the dataset lock was free during each lookup."""

    def __init__(self):
        self.lock = None
        self.lock_was_free = []

    def lookup_gene_name(self, accession):
        outcome = []

        def try_lock():
            acquired = self.lock.acquire(blocking=False)
            if acquired:
                self.lock.release()
            outcome.append(acquired)

        worker = threading.Thread(target=try_lock)
        worker.start()
        worker.join()
        self.lock_was_free.append(outcome[0])
        return None


def test_annotation_lookups_run_outside_the_dataset_lock(descriptor, processed_tsv):
    source = _LockCheckingSource()
    svc = ProteomicsDataService(annotation_source=source)
    svc.load_dataset("ds1", descriptor, processed_tsv)
    source.lock = svc._lock("ds1")

    names = {p.protein_id: p.gene_name for p in svc.process_volcano("ds1").points}

    assert source.lock_was_free
    assert all(source.lock_was_free)
    assert names["P04637;P04637-2"] == "TP53"


def test_unreachable_uniprot_is_called_a_bounded_number_of_times(descriptor, processed_tsv):
    session = MagicMock(spec=requests.Session)
    session.get.side_effect = requests.ConnectionError("down")
    client = UniProtAnnotationClient(
        AnnotationConfig(max_attempts=3, failure_threshold=2, recovery_timeout=60),
        session=session,
        retry_delay=0,
    )
    svc = ProteomicsDataService(annotation_source=client)
    svc.load_dataset("ds1", descriptor, processed_tsv)

    result = svc.process_volcano("ds1")

    assert session.get.call_count <= 2 + get_config().annotation.max_workers - 1
    assert client.breaker.state == "open"
    assert {p.protein_id: p.gene_name for p in result.points}["P04637;P04637-2"] == "TP53"


class _CuratedStore(InMemoryProteomicsStore):
    """Backend that adds a curated selection to everything it stores."""

    def save_dataset(self, dataset_id, processed, raw, selection_map=None, operation_names=None):
        merged = selection_map.copy() if selection_map is not None else SelectionMap()
        merged.add("P01375", "Curated")
        super().save_dataset(dataset_id, processed, raw, merged, [*(operation_names or []), "Curated"])


def test_handle_is_read_back_from_the_store(descriptor, processed_tsv):
    svc = ProteomicsDataService(store=_CuratedStore())
    svc.load_dataset("ds1", descriptor, processed_tsv)

    handle = svc.handle("ds1")
    assert handle.selection_map == svc.store.get_canonical_selection_map("ds1")
    assert handle.selection_map.names_for("P01375") == ["Curated"]
    assert handle.operation_names[-1] == "Curated"
    points = {p.protein_id: p for p in svc.process_volcano("ds1").points}
    assert points["P01375"].selections == ["Curated"]
