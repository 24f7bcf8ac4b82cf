import json

import pytest

from proteocurtain.cli import main


@pytest.fixture
def dataset_files(tmp_path, descriptor, processed_tsv, raw_tsv):
    processed = tmp_path / "diff.tsv"
    processed.write_text(processed_tsv, encoding="utf-8")
    raw = tmp_path / "raw.tsv"
    raw.write_text(raw_tsv, encoding="utf-8")
    mapping = tmp_path / "mapping.json"
    mapping.write_text(json.dumps(descriptor), encoding="utf-8")
    return ["--processed", str(processed), "--raw", str(raw), "--mapping", str(mapping)]


def test_search_json(dataset_files, capsys):
    assert main(dataset_files + ["search", "--type", "gene_name", "--terms", "TP53\\nnope"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["results"]["TP53"][0]["protein_id"] == "P04637;P04637-2"
    assert out["results"]["TP53"][0]["match_type"] == "exact"
    assert out["attempted_without_results"] == ["NOPE"]


def test_search_csv_from_file(dataset_files, tmp_path, capsys):
    terms = tmp_path / "terms.txt"
    terms.write_text("P00533\n", encoding="utf-8")
    assert main(dataset_files + ["search", "--terms-file", str(terms), "--csv"]) == 0
    lines = capsys.readouterr().out.strip().split("\n")
    assert lines[0].startswith("Protein ID,Gene Name")
    assert lines[1].startswith("P00533,EGFR;ERBB1")


def test_volcano_summary(dataset_files, capsys):
    assert main(dataset_files + ["volcano", "--grey", "--summary"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["groups"] == {"Kinases": 1, "Tumour suppressors": 1, "Background": 3}
    assert set(out["axis"]) == {"minX", "maxX", "minY", "maxY"}


def test_bad_descriptor(tmp_path, processed_tsv):
    processed = tmp_path / "diff.tsv"
    processed.write_text(processed_tsv, encoding="utf-8")
    mapping = tmp_path / "mapping.json"
    mapping.write_text("{}", encoding="utf-8")
    assert main(["--processed", str(processed), "--mapping", str(mapping), "volcano"]) == 2
