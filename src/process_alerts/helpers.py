"""Helper functions for the report-tracker CLI."""

from __future__ import annotations

import argparse
import os

from common.cli_helpers import non_negative_float, positive_int
from common.llm import DEFAULT_MODEL
from process_alerts.models import PipelineConfig
from process_alerts.state import DEFAULT_S3_KEY, DEFAULT_STATE_PATH, LocalStateStore, S3StateStore, StateStore


def _add_store_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--state-path",
        default=os.environ.get("REPORT_TRACKER_STATE_PATH", DEFAULT_STATE_PATH),
        help=f"Local state file (default: {DEFAULT_STATE_PATH})",
    )
    parser.add_argument("--s3", action="store_true", help="Keep state in S3 (bucket from S3_BUCKET_NAME)")
    parser.add_argument("--s3-key", default=DEFAULT_S3_KEY, help=f"S3 key for state (default: {DEFAULT_S3_KEY})")


def _add_tracking_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--tracking-param",
        action="append",
        default=[],
        help="Extra query parameter to strip from URLs (repeatable; use the same set for every command)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="report-tracker",
        description="Surface new security reports from noisy alert notifications.",
    )
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "INFO"))
    subparsers = parser.add_subparsers(dest="command", required=True)

    # process
    process = subparsers.add_parser("process", help="Run the pipeline once")
    _add_store_args(process)
    process.add_argument(
        "--notifications",
        required=True,
        help="JSONL file of notifications ({id, receivedAt, rawBody})",
    )
    process.add_argument(
        "--model",
        default=os.environ.get("REPORT_TRACKER_MODEL", DEFAULT_MODEL),
        help=f"OpenAI model for classification and summarization (default: {DEFAULT_MODEL})",
    )
    process.add_argument("--max-workers", type=positive_int, default=4, help="Concurrent fetches (default: 4)")
    process.add_argument("--fetch-timeout", type=non_negative_float, default=20.0, help="Per-fetch timeout in seconds (default: 20)")
    process.add_argument("--max-retries", type=int, default=2, help="Retries for transient fetch errors (default: 2)")
    process.add_argument("--backoff-base", type=non_negative_float, default=1.0, help="Backoff multiplier in seconds (default: 1)")
    _add_tracking_args(process)

    # status
    status = subparsers.add_parser("status", help="Show counts and the last run")
    _add_store_args(status)

    # list-reports
    list_reports = subparsers.add_parser("list-reports", help="List known reports")
    _add_store_args(list_reports)
    list_reports.add_argument("--unread", action="store_true", help="Only unread reports")
    list_reports.add_argument("--domain-only", action="store_true", help="Only domain-specific reports")

    # import-reports / export-reports
    import_reports = subparsers.add_parser("import-reports", help="Merge reports from a JSON file")
    _add_store_args(import_reports)
    _add_tracking_args(import_reports)
    import_reports.add_argument("path", help="JSON file holding a list of reports")

    export_reports = subparsers.add_parser("export-reports", help="Write all reports as JSON")
    _add_store_args(export_reports)
    export_reports.add_argument("--output", default=None, help="Output file (default: stdout)")

    # mark-read
    mark_read = subparsers.add_parser("mark-read", help="Mark a report read or unread")
    _add_store_args(mark_read)
    _add_tracking_args(mark_read)
    mark_read.add_argument("source_url")
    mark_read.add_argument("--unread", action="store_true", help="Mark as unread instead")

    # annotate
    annotate = subparsers.add_parser("annotate", help="Set notes and tags on a report")
    _add_store_args(annotate)
    _add_tracking_args(annotate)
    annotate.add_argument("source_url")
    annotate.add_argument("--notes", default=None)
    annotate.add_argument("--tags", default=None, help="Comma-separated tags")

    # retry-errors
    retry = subparsers.add_parser("retry-errors", help="Queue errored articles and sources for the next run")
    _add_store_args(retry)

    return parser


def build_store(args: argparse.Namespace) -> StateStore:
    if args.s3:
        return S3StateStore(key=args.s3_key)
    return LocalStateStore(args.state_path)


def build_config(args: argparse.Namespace) -> PipelineConfig:
    return PipelineConfig(
        model=args.model,
        fetch_timeout_seconds=args.fetch_timeout,
        max_fetch_retries=max(0, args.max_retries),
        backoff_base_seconds=args.backoff_base,
        max_workers=args.max_workers,
        tracking_params=tuple(args.tracking_param),
    )


def parse_tags(value: str | None) -> list[str] | None:
    if value is None:
        return None
    return [t.strip() for t in value.split(",") if t.strip()]
