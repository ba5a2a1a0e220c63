"""
Resolution CLI - run and inspect the daily resolution pipeline.

Commands:
    resolve  Resolve a batch of candidates from a JSON file
    report   Show the ledger and unresolved candidates of a batch
    export   Export a publication as JSON
    triage   Record a manual decision for an unresolved candidate
    amend    Record an amendment overturning a ledger decision

Exit codes:
    0  success
    1  error (bad input, unknown candidate, conflict)
    2  batch finished with unresolved or failed candidates, or paused
"""

import argparse
import dataclasses
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from src.infra.data_paths import ensure_data_directories, get_logs_dir, get_resolution_db_path
from src.infra.logging_config import setup_logging
from src.infra.settings import ResolverSettings
from src.resolution.entities import CandidateArticle, Decision
from src.resolution.errors import (
    CandidateNotFoundError,
    LedgerConflict,
    PublicationNotFoundError,
    ResolutionError,
)
from src.resolution.pipeline import BatchResolver

logger = logging.getLogger(__name__)


def load_candidates(path: Path, batch_date: str) -> list[CandidateArticle]:
    """
    Load candidates from a JSON file.

    Accepts a list of candidate objects or {"candidates": [...]}.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, dict):
        data = data.get("candidates", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of candidates")

    return [CandidateArticle.from_dict(item, batch_date=batch_date) for item in data]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="resolve-publication",
        description="Duplicate detection and publication resolution for the daily threat report",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="SQLite database path (default: RESOLUTION_DB_PATH or data/resolution.db)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: LOG_LEVEL or INFO)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # resolve command
    resolve_parser = subparsers.add_parser("resolve", help="Resolve a batch of candidates")
    resolve_parser.add_argument("--date", required=True, help="Batch date (YYYY-MM-DD)")
    resolve_parser.add_argument(
        "--input",
        type=str,
        default=None,
        help="JSON file of candidates. Omit to retry the staged candidates of the batch."
    )
    resolve_parser.add_argument(
        "--lookback-days",
        type=int,
        default=None,
        help="Override DEDUP_LOOKBACK_DAYS for this run"
    )
    resolve_parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Classify and arbitrate without writing anything"
    )

    # report command
    report_parser = subparsers.add_parser("report", help="Show ledger and unresolved candidates")
    report_parser.add_argument("--date", required=True, help="Batch date (YYYY-MM-DD)")

    # export command
    export_parser = subparsers.add_parser("export", help="Export a publication")
    export_parser.add_argument("--date", required=True, help="Publication date (YYYY-MM-DD)")
    export_parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output file (default: stdout)"
    )

    # triage command
    triage_parser = subparsers.add_parser("triage", help="Manually resolve an unresolved candidate")
    triage_parser.add_argument("--date", required=True, help="Batch date (YYYY-MM-DD)")
    triage_parser.add_argument("--candidate", required=True, help="Candidate ID")
    triage_parser.add_argument(
        "--decision",
        required=True,
        choices=[d.value for d in Decision],
        help="Decision to record"
    )
    triage_parser.add_argument("--rationale", required=True, help="Reason for the decision")
    triage_parser.add_argument("--canonical", default=None, help="Canonical article ID (UPDATE only)")

    # amend command
    amend_parser = subparsers.add_parser("amend", help="Overturn a ledger decision (audit only)")
    amend_parser.add_argument("--date", required=True, help="Batch date (YYYY-MM-DD)")
    amend_parser.add_argument("--candidate", required=True, help="Candidate ID")
    amend_parser.add_argument(
        "--decision",
        required=True,
        choices=[d.value for d in Decision],
        help="Corrected decision"
    )
    amend_parser.add_argument("--rationale", required=True, help="Reason for the amendment")
    amend_parser.add_argument("--by", required=True, dest="amended_by", help="Operator name")
    amend_parser.add_argument("--canonical", default=None, help="Canonical article ID (UPDATE only)")

    return parser


def create_resolver(args, settings: Optional[ResolverSettings] = None) -> BatchResolver:
    db_path = Path(args.db) if args.db else get_resolution_db_path()
    return BatchResolver.create(db_path, settings=settings)


def run_resolve(args) -> int:
    settings = ResolverSettings.from_env()
    if args.lookback_days is not None:
        settings = dataclasses.replace(
            settings,
            scoring=dataclasses.replace(settings.scoring, lookback_days=args.lookback_days),
        )

    candidates = load_candidates(Path(args.input), args.date) if args.input else []
    resolver = create_resolver(args, settings)

    logger.info("=" * 80)
    logger.info(f"[CLI] Resolving batch {args.date}")
    logger.info(f"[CLI] Input: {args.input or '(staged candidates)'}")
    logger.info(f"[CLI] Dry run: {args.dry_run}")
    logger.info("=" * 80)

    report = resolver.run(args.date, candidates, dry_run=args.dry_run)
    print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))

    if report.paused or report.unresolved or report.failed:
        return 2
    return 0


def run_report(args) -> int:
    resolver = create_resolver(args)
    records = resolver.ledger.list_for_batch(args.date)
    pending = resolver.unresolved(args.date)

    output = {
        "batch_date": args.date,
        "resolutions": [
            dict(
                r.to_dict(),
                effective_decision=resolver.ledger.effective_decision(r.candidate_id, args.date).value,
            )
            for r in records
        ],
        "unresolved": [
            {"candidate_id": c.candidate_id, "headline": c.headline}
            for c in pending
        ],
    }
    print(json.dumps(output, ensure_ascii=False, indent=2))
    return 0


def run_export(args) -> int:
    resolver = create_resolver(args)
    data = resolver.assembler.export_publication(args.date)
    text = json.dumps(data, ensure_ascii=False, indent=2)

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(text + "\n", encoding="utf-8")
        logger.info(f"[CLI] Exported {data['slug']} to {output_path}")
    else:
        print(text)
    return 0


def run_triage(args) -> int:
    resolver = create_resolver(args)
    record = resolver.triage(
        args.date,
        args.candidate,
        decision=Decision(args.decision),
        rationale=args.rationale,
        matched_canonical_id=args.canonical,
    )
    print(json.dumps(record.to_dict(), ensure_ascii=False, indent=2))
    return 0


def run_amend(args) -> int:
    resolver = create_resolver(args)
    amendment = resolver.ledger.amend(
        args.candidate,
        args.date,
        decision=Decision(args.decision),
        rationale=args.rationale,
        amended_by=args.amended_by,
        matched_canonical_id=args.canonical,
    )
    print(json.dumps(amendment.to_dict(), ensure_ascii=False, indent=2))
    return 0


COMMANDS = {
    "resolve": run_resolve,
    "report": run_report,
    "export": run_export,
    "triage": run_triage,
    "amend": run_amend,
}


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command not in COMMANDS:
        parser.print_help()
        return 1

    ensure_data_directories()
    setup_logging(args.log_level, log_dir=str(get_logs_dir()))

    try:
        return COMMANDS[args.command](args)
    except (CandidateNotFoundError, PublicationNotFoundError, LedgerConflict) as e:
        logger.error(f"[CLI] {e}")
        return 1
    except (ValueError, OSError, ResolutionError) as e:
        logger.error(f"[CLI] {type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
