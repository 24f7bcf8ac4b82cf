"""Command-line access to search and volcano processing.

Usage:
    python -m proteocurtain.cli search --processed diff.tsv --mapping mapping.json \\
        --type gene_name --terms "TP53\\nEGFR;ERBB1"
    python -m proteocurtain.cli volcano --processed diff.tsv --mapping mapping.json --grey

The mapping file is a dataset descriptor (``differentialForm``, ``rawForm``,
``selectedMap``, ``extraData`` ...). Output is JSON on stdout.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from proteocurtain.logging_utils import get_logger
from proteocurtain.models.domain import SearchType, VolcanoAxis, VolcanoSettings
from proteocurtain.models.imports import DatasetImportSchema
from proteocurtain.search.engine import BatchSearchOutcome, export_results_csv
from proteocurtain.services.dataset_service import ProteomicsDataService
from proteocurtain.volcano.processor import group_counts

logger = get_logger(__name__)

CLI_DATASET_ID = "cli"


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Search and plot a proteomics dataset.")
    p.add_argument("--processed", required=True, help="Processed (differential) TSV file.")
    p.add_argument("--raw", default=None, help="Raw intensity TSV file (optional).")
    p.add_argument("--mapping", required=True, help="JSON dataset descriptor with the column mapping.")
    sub = p.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Batch search identifiers.")
    search.add_argument(
        "--type",
        choices=[t.value for t in SearchType],
        default=SearchType.PRIMARY_ID.value,
        help="Identifier universe to search (default: primary_id).",
    )
    group = search.add_mutually_exclusive_group(required=True)
    group.add_argument("--terms", help="Newline-separated terms (use \\n between lines).")
    group.add_argument("--terms-file", help="File with one term group per line.")
    search.add_argument("--regex", action="store_true", help="Treat each line as a regex.")
    search.add_argument("--significant-only", action="store_true", help="Keep significant proteins only.")
    search.add_argument("--csv", action="store_true", help="Print CSV instead of JSON.")

    volcano = sub.add_parser("volcano", help="Build the volcano plot payload.")
    volcano.add_argument("--p-cutoff", type=float, default=0.05, help="P-value cutoff (default: 0.05).")
    volcano.add_argument("--fc-cutoff", type=float, default=0.6, help="|log2 FC| cutoff (default: 0.6).")
    volcano.add_argument("--grey", action="store_true", help="Grey background for unselected points.")
    volcano.add_argument("--cap", type=int, default=None, help="Max background points kept.")
    volcano.add_argument("--summary", action="store_true", help="Print group counts instead of points.")
    return p.parse_args(argv)


def _outcome_to_dict(outcome: BatchSearchOutcome) -> Dict[str, Any]:
    return {
        "results": {
            key: [
                {**asdict(r), "search_type": r.search_type.value, "match_type": r.match_type.value}
                for r in results
            ]
            for key, results in outcome.results.items()
        },
        "attempted_without_results": outcome.attempted_without_results,
        "statistics": asdict(outcome.statistics),
    }


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)

    try:
        descriptor = DatasetImportSchema.model_validate_json(Path(args.mapping).read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        logger.error("[DATASET] Could not read descriptor %s: %r", args.mapping, e)
        return 2

    processed_text = Path(args.processed).read_text(encoding="utf-8")
    raw_text = Path(args.raw).read_text(encoding="utf-8") if args.raw else ""

    service = ProteomicsDataService()
    service.load_dataset(CLI_DATASET_ID, descriptor, processed_text, raw_text)

    if args.command == "search":
        text = args.terms.replace("\\n", "\n") if args.terms else Path(args.terms_file).read_text(encoding="utf-8")
        engine = service.search_engine(CLI_DATASET_ID)
        search_type = SearchType(args.type)
        if args.regex:
            outcome = engine.search_regex_batch(text, search_type)
        else:
            outcome = engine.search_batch(text, search_type, significant_only=args.significant_only)
        if args.csv:
            print(export_results_csv(r for results in outcome.results.values() for r in results))
        else:
            print(json.dumps(_outcome_to_dict(outcome), indent=2))
        return 0

    settings = VolcanoSettings(
        p_cutoff=args.p_cutoff,
        log2_fc_cutoff=args.fc_cutoff,
        background_grey=args.grey,
        axis=VolcanoAxis(),
        background_cap=args.cap,
    )
    result = service.process_volcano(CLI_DATASET_ID, settings)
    if args.summary:
        print(json.dumps({"groups": group_counts(result), "axis": result.axis.to_dict()}, indent=2))
    else:
        print(json.dumps(result.to_payload(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
