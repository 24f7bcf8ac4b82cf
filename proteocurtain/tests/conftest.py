"""
Pytest configuration and fixtures for all tests.

Provides a small differential dataset (processed + raw tables and the JSON
descriptor that maps their columns) plus the engine objects built from it.
"""

import pytest

from proteocurtain.config import reset_config
from proteocurtain.ingestion.tabular_parser import parse_processed
from proteocurtain.mapping.accession_index import AccessionIndex, FuzzyMaps
from proteocurtain.mapping.alias_index import build_alias_index
from proteocurtain.models.domain import ColumnMapping, TransformOptions
from proteocurtain.search.resolver import SearchContext

PROCESSED_TSV = (
    "Protein\tGene\tLog2FC\tPValue\tComparison\n"
    "P04637;P04637-2\tTP53\t2.1\t0.001\tKO vs WT\n"
    "P00533\tEGFR;ERBB1\t-1.4\t0.02\tKO vs WT\n"
    "Q9Y6K9\tIKBKG\t0.2\t0.5\tKO vs WT\n"
    "P01375\tTNF\t0.9\t0.2\tKO vs WT\n"
    "O15111\t\t-0.1\t0.8\tKO vs WT\n"
)

RAW_TSV = (
    "Protein\tWT.1\tWT.2\tKO.1\tKO.2\n"
    "P04637;P04637-2\t100\t120\t400\t380\n"
    "P00533\t50\t55\t20\t18\n"
    "Q9Y6K9\t10\t11\t12\t0\n"
)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running"
    )
    config.addinivalue_line(
        "markers", "network: marks tests that would reach an external HTTP service"
    )


@pytest.fixture(autouse=True)
def _fresh_config():
    """Every test gets its own config singleton."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def processed_tsv():
    return PROCESSED_TSV


@pytest.fixture
def raw_tsv():
    return RAW_TSV


@pytest.fixture
def column_mapping():
    return ColumnMapping(
        primary_id="Protein",
        gene_names="Gene",
        fold_change="Log2FC",
        significance="PValue",
        comparison="Comparison",
        samples=("WT.1", "WT.2", "KO.1", "KO.2"),
    )


@pytest.fixture
def descriptor():
    return {
        "differentialForm": {
            "primaryIDs": "Protein",
            "geneNames": "Gene",
            "foldChange": "Log2FC",
            "significant": "PValue",
            "comparison": "Comparison",
            "transformFC": False,
            "transformSignificant": True,
            "reverseFoldChange": False,
        },
        "rawForm": {
            "primaryIDs": "Protein",
            "samples": ["WT.1", "WT.2", "KO.1", "KO.2"],
            "log2": False,
        },
        "selectedMap": {
            "P00533": {"Kinases": True},
            "P04637;P04637-2": {"Kinases": False, "Tumour suppressors": True},
        },
        "selectOperationNames": ["Kinases", "Tumour suppressors"],
        "extraData": {
            "uniprot": {
                "db": {
                    "P04637": {"Gene Names": "TP53 P53"},
                    "P00533": {"Gene Names": "EGFR ERBB ERBB1 HER1"},
                },
                "accMap": {
                    "P04637": ["P04637;P04637-2"],
                    "P00533": ["P00533"],
                },
                "geneNameToAcc": {
                    "P53": {"P04637": True},
                    "HER1": {"P00533": True},
                },
                "dataMap": {},
            },
            "data": {
                "genesMap": {"NEMO": {"IKBKG": True}},
                "primaryIDsMap": {"P04637-9": {"P04637": True}},
                "allGenes": ["TP53", "EGFR;ERBB1", "IKBKG", "TNF"],
            },
        },
    }


@pytest.fixture
def records(processed_tsv, column_mapping):
    return parse_processed(processed_tsv, column_mapping, TransformOptions())


@pytest.fixture
def alias_index(records):
    return build_alias_index(records)


@pytest.fixture
def accession_index():
    return AccessionIndex(
        gene_name_to_accessions={"P53": ["P04637"], "HER1": ["P00533"]},
        accession_to_primary_ids={"P04637": ["P04637;P04637-2"], "P00533": ["P00533"]},
        entries={
            "P04637": {"Gene Names": "TP53 P53"},
            "P00533": {"Gene Names": "EGFR ERBB ERBB1 HER1"},
        },
    )


@pytest.fixture
def search_context(alias_index, records, accession_index):
    return SearchContext(
        alias_index=alias_index,
        records={r.primary_id: r for r in records},
        accession_index=accession_index,
        fuzzy_maps=FuzzyMaps(
            genes_map={"NEMO": ["IKBKG"]},
            primary_ids_map={"P04637-9": ["P04637"]},
        ),
    )
