"""Extract loan-book figures from bank report PDFs.

Subcommands:
  extract    – run one rule file against one PDF and print the fields
  lines      – dump the reconstructed lines of a PDF with their indices
  aggregate  – run every rule file in RULES_DIR, with reference fallback
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from pdf_errors import ExtractionError
from pdf_extract import reconstruct_lines, tokens_from_pdf
from pdf_logging import init_logger
from pdf_models import AggregateResult, ExtractionResult
from pdf_orchestrator import MarketShareOrchestrator
from pdf_pipeline import run_pipeline
from pdf_rules import load_rules
from pdf_settings import settings


def _print_result(result: ExtractionResult, verbose: bool) -> None:
    tag = " (reference)" if result.used_fallback else ""
    print(f"  {result.entity_id}{tag}: {result.confidence.value} confidence")
    for label, extracted in result.fields.items():
        if extracted is None:
            print(f"      {label:<24} {'-':>20}")
            continue
        print(f"      {label:<24} {extracted.numeric_value:>20,.2f}")
        if verbose and extracted.source_line >= 0:
            print(f"      {'':<24} raw {extracted.raw_text!r} (line {extracted.source_line})")
    if verbose and result.unit is not None:
        print(f"      Unit:        {result.unit.factor:,.0f}x  ({result.unit.evidence})")
    if verbose:
        print(f"      Source:      {result.source_description}")


def _require_file(path: str) -> Path:
    p = Path(path)
    if not p.exists():
        print(f"Error: file not found: {p}", file=sys.stderr)
        sys.exit(1)
    return p


def cmd_extract(args: argparse.Namespace) -> int:
    rules = load_rules(_require_file(args.rules))
    tokens = tokens_from_pdf(_require_file(args.pdf))
    result = run_pipeline(tokens, rules)

    if args.json:
        print(json.dumps(result.to_dict() if result else None, indent=2))
        return 0 if result else 2

    print("=" * 64)
    print("RESULT")
    print("=" * 64)
    if result is None:
        print(f"\nNo {rules.total_field!r} found for {rules.entity_id}; no data available.\n")
        return 2
    print()
    _print_result(result, args.verbose)
    print()
    return 0


def cmd_lines(args: argparse.Namespace) -> int:
    tokens = tokens_from_pdf(_require_file(args.pdf))
    tolerance = args.tolerance if args.tolerance is not None else settings.LINE_TOLERANCE
    for i, line in enumerate(reconstruct_lines(tokens, tolerance)):
        print(f"[{i}] p{line.page} y={line.y:.1f} {line.text}")
    return 0


def _print_aggregate(data: AggregateResult, verbose: bool) -> None:
    print("=" * 64)
    print("MARKET SHARE EXTRACTION SUMMARY")
    print("=" * 64)
    print(f"\nExtracted: {data.extracted_count}/{data.total_count} entities")
    print(f"Used fallback: {'yes' if data.used_fallback else 'no'}\n")
    for result in data.results:
        _print_result(result, verbose)
    if data.errors:
        print("\nErrors:")
        for entity_id, message in data.errors.items():
            print(f"  {entity_id}: {message}")
    print()


def cmd_aggregate(args: argparse.Namespace) -> int:
    orchestrator = MarketShareOrchestrator.from_settings(parallel=args.parallel)
    if not args.refresh:
        orchestrator.init(settings.SNAPSHOT_PATH)
    data = orchestrator.get(force_refresh=args.refresh)
    if args.output:
        orchestrator.save_snapshot(args.output, data)
    _print_aggregate(data, args.verbose)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract loan-book figures from bank report PDFs.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show raw text, line numbers and units; log at DEBUG",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_extract = sub.add_parser("extract", help="Run one rule file against one PDF")
    p_extract.add_argument("pdf", help="Path to the PDF file")
    p_extract.add_argument("--rules", required=True, help="Path to the rule YAML file")
    p_extract.add_argument("--json", action="store_true", help="Print the result as JSON")
    p_extract.set_defaults(func=cmd_extract)

    p_lines = sub.add_parser("lines", help="Dump reconstructed lines")
    p_lines.add_argument("pdf", help="Path to the PDF file")
    p_lines.add_argument(
        "--tolerance",
        type=float, default=None, metavar="T",
        help=f"Vertical clustering tolerance (default: {settings.LINE_TOLERANCE})",
    )
    p_lines.set_defaults(func=cmd_lines)

    p_agg = sub.add_parser("aggregate", help="Run every rule file in RULES_DIR")
    p_agg.add_argument("--parallel", action="store_true", help="Extract sources concurrently")
    p_agg.add_argument("--refresh", action="store_true", help="Ignore the cached snapshot")
    p_agg.add_argument("-o", "--output", metavar="FILE", help="Write the aggregate as JSON")
    p_agg.set_defaults(func=cmd_aggregate)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    init_logger("DEBUG" if args.verbose else None)
    try:
        return args.func(args)
    except ExtractionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
