"""
Tests for the dataset descriptor schema and its conversion to typed records.
"""

import pytest
from pydantic import ValidationError

from proteocurtain.mapping.accession_index import build_candidate_table, normalize_candidates
from proteocurtain.models.imports import DatasetImportSchema


def test_column_mapping_from_descriptor(descriptor):
    schema = DatasetImportSchema.model_validate(descriptor)
    mapping = schema.to_column_mapping()
    assert mapping.primary_id == "Protein"
    assert mapping.significance == "PValue"
    assert mapping.samples == ("WT.1", "WT.2", "KO.1", "KO.2")
    assert mapping.raw_id_column == "Protein"


def test_transform_options_from_descriptor(descriptor):
    options = DatasetImportSchema.model_validate(descriptor).to_transform_options()
    assert options.minus_log10_significance is True
    assert options.log2_fold_change is False
    assert options.log2_raw is False


def test_selection_map_keeps_true_entries_only(descriptor):
    selection_map = DatasetImportSchema.model_validate(descriptor).to_selection_map()
    assert selection_map.names_for("P00533") == ["Kinases"]
    assert selection_map.names_for("P04637;P04637-2") == ["Tumour suppressors"]


def test_null_selected_map_is_empty(descriptor):
    descriptor["selectedMap"] = None
    schema = DatasetImportSchema.model_validate(descriptor)
    assert len(schema.to_selection_map()) == 0


def test_handle_appends_unlisted_selection_names(descriptor):
    descriptor["selectOperationNames"] = ["Tumour suppressors"]
    handle = DatasetImportSchema.model_validate(descriptor).to_dataset_handle("ds1")
    assert handle.dataset_id == "ds1"
    assert handle.operation_names == ["Tumour suppressors", "Kinases"]


def test_accession_index_two_hop(descriptor):
    index = DatasetImportSchema.model_validate(descriptor).to_accession_index()
    assert index.primary_ids_for_gene("p53") == ["P04637;P04637-2"]
    assert index.primary_ids_for_accession("p00533") == ["P00533"]
    assert index.first_gene_name("P04637") == "TP53"
    assert index.gene_names_for("P00533") == "EGFR;ERBB;ERBB1;HER1"


def test_fuzzy_maps_and_all_genes(descriptor):
    schema = DatasetImportSchema.model_validate(descriptor)
    fuzzy = schema.to_fuzzy_maps()
    assert fuzzy.genes_map == {"NEMO": ["IKBKG"]}
    assert fuzzy.primary_ids_map == {"P04637-9": ["P04637"]}
    assert schema.all_genes() == ["TP53", "EGFR;ERBB1", "IKBKG", "TNF"]


def test_missing_extra_data_degrades_to_none(descriptor):
    del descriptor["extraData"]
    schema = DatasetImportSchema.model_validate(descriptor)
    assert schema.to_accession_index() is None
    assert schema.to_fuzzy_maps() is None
    assert schema.all_genes() == []


def test_differential_form_is_required():
    with pytest.raises(ValidationError):
        DatasetImportSchema.model_validate({"rawForm": {"samples": []}})


def test_python_names_are_accepted():
    schema = DatasetImportSchema.model_validate(
        {"differential_form": {"primary_ids": "Id"}, "fetch_uniprot": True}
    )
    assert schema.to_column_mapping().primary_id == "Id"
    assert schema.fetch_uniprot is True


@pytest.mark.parametrize(
    "value,expected",
    [
        ({"A": True, "B": True}, ["A", "B"]),
        (["A", "B"], ["A", "B"]),
        ("A", ["A"]),
        (None, []),
    ],
)
def test_normalize_candidates(value, expected):
    assert normalize_candidates(value) == expected


def test_candidate_table_merges_upper_cased_keys():
    table = build_candidate_table({"p53": ["A"], "P53": ["A", "B"]}, upper_keys=True)
    assert table == {"P53": ["A", "B"]}
