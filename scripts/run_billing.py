#!/usr/bin/env python3
"""
Run a billing job: import a price list, match and price usage records, and
write the matched / unmatched streams as JSON.

Usage:
    python3 scripts/run_billing.py --config <job.yaml> --price-list <file> --usage <file> [options]

Examples:
    # Price usage.json against prices.csv, outputs under ./out
    python3 scripts/run_billing.py --config job.yaml --price-list prices.csv --usage usage.json

    # Also write a usage summary over the matched records
    python3 scripts/run_billing.py --config job.yaml --price-list prices.xlsx \\
        --usage usage.csv --output-dir billing-out --summary

Outputs (in --output-dir):
    matched.json             priced output records
    unmatched.json           usage records annotated with match_reason / match_count
    invalid_price_list.json  price-list rows rejected at import, with errors
    summary.json             only with --summary or summary.enabled in the job

Exit code 1 on a fatal error; the error envelope is printed to stderr as JSON.
"""

from __future__ import annotations

import argparse
import json
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run a billing job: import -> match -> calculate -> write.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", required=True, type=Path, help="Job configuration YAML.")
    parser.add_argument(
        "--price-list",
        required=True,
        type=Path,
        help="Price list file (.csv, .json, .jsonl or .xlsx).",
    )
    parser.add_argument(
        "--usage",
        required=True,
        type=Path,
        help="Usage data file (.csv, .json, .jsonl or .xlsx).",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("out"),
        help="Directory for output files (default: ./out).",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Write summary.json even if the job does not enable it.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for structured JSON logs on stderr (default: INFO).",
    )
    return parser.parse_args(argv)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return str(obj)


def _write_json(path: Path, payload: Any) -> None:
    path.write_text(json.dumps(payload, indent=2, default=_json_default) + "\n")


def _print_envelope(envelope: Any) -> None:
    print(json.dumps(envelope.to_dict(), indent=2, default=_json_default), file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from billing_config import get_job_config
    from billing_engines import summarize_usage
    from billing_ingestion import ImportService, ParseConfig
    from billing_kernel.exceptions import BillingKernelError, build_error_envelope
    from billing_kernel.logging_config import configure_logging, get_logger
    from billing_services import lookup_and_calculate

    configure_logging(level=args.log_level)
    logger = get_logger("scripts.run_billing")

    for label, path in (("config", args.config), ("price list", args.price_list), ("usage", args.usage)):
        if not path.is_file():
            print(f"ERROR: {label} file not found: {path}", file=sys.stderr)
            return 1

    try:
        job = get_job_config(args.config)
        importer = ImportService()
        imported = importer.import_and_filter(
            args.price_list, job.input.parse, job.input.filter
        )
        usage = importer.read_records(args.usage.resolve(), ParseConfig(delimiter="auto"))
        result = lookup_and_calculate(
            list(imported.valid),
            usage,
            job.match.fields,
            job.calculation,
            job.output,
            job.match.policy,
            max_workers=job.max_workers,
        )

        summaries = None
        if args.summary or job.summary.enabled:
            fields = job.summary.fields_to_total or (
                (job.output.calculated_cost_amount_field, job.output.calculated_sell_amount_field)
                if job.calculation.is_dual_pricing
                else (job.output.calculated_amount_field,)
            )
            summaries = summarize_usage(
                result.matched,
                fields,
                job.summary.group_by_fields,
                job.summary.include_source_data,
            )
    except BillingKernelError as exc:
        _print_envelope(build_error_envelope(exc, include_debug=False))
        return 1
    except Exception as exc:
        logger.exception("billing_run_failed")
        _print_envelope(
            build_error_envelope(
                exc, context={"config": str(args.config)}, include_debug=True
            )
        )
        return 1

    args.output_dir.mkdir(parents=True, exist_ok=True)
    _write_json(args.output_dir / "matched.json", list(result.matched))
    _write_json(args.output_dir / "unmatched.json", list(result.unmatched))
    _write_json(args.output_dir / "invalid_price_list.json", [r.to_dict() for r in imported.invalid])
    if summaries is not None:
        _write_json(args.output_dir / "summary.json", [s.to_dict() for s in summaries])

    logger.info(
        "billing_run_written",
        extra={
            "output_dir": str(args.output_dir),
            "matched": len(result.matched),
            "unmatched": len(result.unmatched),
            "invalid_price_list": len(imported.invalid),
        },
    )
    print(
        f"Matched: {len(result.matched)}  Unmatched: {len(result.unmatched)}  "
        f"Invalid price rows: {len(imported.invalid)}  -> {args.output_dir}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
