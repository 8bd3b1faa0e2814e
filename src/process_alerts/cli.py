"""CLI for the security report tracker."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from common.cli_helpers import setup_logging
from common.llm import JsonModel
from fetch_content.fetch_content import WebContentFetcher
from parse_notifications.sources import JsonlNotificationSource
from process_alerts.helpers import build_config, build_parser, build_store, parse_tags
from process_alerts.manage_reports import annotate_report, export_reports, import_reports, retry_errors, set_read
from process_alerts.models import OrchestrationFailure, RunCancelled, RunInProgressError
from process_alerts.process_alerts import AlertProcessor

load_dotenv()

logger = logging.getLogger(__name__)


def _run_process(args) -> int:
    config = build_config(args)
    processor = AlertProcessor(
        store=build_store(args),
        source=JsonlNotificationSource(args.notifications),
        fetcher=WebContentFetcher(),
        model=JsonModel(model=config.model),
        config=config,
    )
    try:
        report = processor.process()
    except RunInProgressError as e:
        logger.error("Not starting: %s", e)
        return 2
    except RunCancelled as e:
        logger.warning("%s", e)
        return 130
    except OrchestrationFailure as e:
        logger.error(
            "Run failed during %s after committing %d items: %s",
            e.stage.value,
            e.committed_items,
            e.cause,
        )
        return 1

    logger.info(
        "Run %s %s: %d new articles, %d new reports, %d lineage edges added",
        report.run_id,
        report.status.value,
        report.new_articles,
        report.new_reports,
        report.lineage_edges_added,
    )
    return 0


def _run_status(args) -> int:
    state = build_store(args).load()
    print(f"Notifications seen:  {len(state.seen_notification_ids)}")
    print(f"Processed articles:  {len(state.processed_articles)}")
    print(f"Unique reports:      {len(state.reports)}")
    print(f"Unread reports:      {sum(1 for r in state.reports if not r.is_read)}")
    print(f"Pending sources:     {len(state.pending_sources)}")
    print(f"Failed sources:      {len(state.failed_sources)}")
    if state.last_run:
        run = state.last_run
        print(
            f"Last run:            {run.run_id} {run.status.value} at {run.finished_at or run.started_at}"
            f" ({run.new_reports} new reports)"
        )
        if run.error:
            print(f"Last error:          {run.error}")
    return 0


def _run_list_reports(args) -> int:
    reports = build_store(args).load().reports
    if args.unread:
        reports = [r for r in reports if not r.is_read]
    if args.domain_only:
        reports = [r for r in reports if r.domain_specific]

    for report in sorted(reports, key=lambda r: r.added_at, reverse=True):
        marker = " " if report.is_read else "*"
        print(f"{marker} [{report.severity.value:>8}] {report.title}")
        print(f"    {report.source_url}")
        print(f"    seen via {len(report.lineage)} article(s)")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    if args.command == "process":
        return _run_process(args)
    if args.command == "status":
        return _run_status(args)
    if args.command == "list-reports":
        return _run_list_reports(args)

    store = build_store(args)
    try:
        if args.command == "import-reports":
            records = json.loads(Path(args.path).read_text(encoding="utf-8"))
            if isinstance(records, dict):
                records = records.get("reports", [])
            added, skipped = import_reports(store, records, tracking_params=args.tracking_param)
            logger.info("Imported %d reports (%d skipped)", added, skipped)
        elif args.command == "export-reports":
            payload = json.dumps(export_reports(store), ensure_ascii=False, indent=2)
            if args.output:
                Path(args.output).write_text(payload + "\n", encoding="utf-8")
                logger.info("Exported reports to %s", args.output)
            else:
                print(payload)
        elif args.command == "mark-read":
            report = set_read(
                store, args.source_url, is_read=not args.unread, tracking_params=args.tracking_param
            )
            logger.info("%s marked %s", report.source_url, "read" if report.is_read else "unread")
        elif args.command == "annotate":
            report = annotate_report(
                store,
                args.source_url,
                notes=args.notes,
                tags=parse_tags(args.tags),
                tracking_params=args.tracking_param,
            )
            logger.info("Annotated %s", report.source_url)
        elif args.command == "retry-errors":
            articles, sources = retry_errors(store)
            logger.info("Reset %d articles and %d sources for the next run", articles, sources)
    except RunInProgressError as e:
        logger.error("Not changing state: %s", e)
        return 2
    except KeyError as e:
        logger.error("%s", e.args[0] if e.args else e)
        return 1
    except ValueError as e:
        logger.error("%s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
