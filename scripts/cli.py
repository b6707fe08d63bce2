"""CLI entry point for the Digest Indexer (schedule `run` hourly, e.g. from cron)."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import UTC, datetime

from digest_indexer.config.settings import DigestIndexerSettings
from digest_indexer.core.exceptions import ConfigurationError
from digest_indexer.core.models import RunSummary
from digest_indexer.pipeline.indexer import DigestIndexer


def setup_logging(level: str) -> None:
    """Configure logging with timestamp and module info."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def on_progress(summary: RunSummary) -> None:
    """Print progress updates to stdout."""
    print(
        f"[{summary.current_stage}] "
        f"total={summary.total} "
        f"processed={summary.processed} "
        f"skipped={summary.skipped} "
        f"errors={summary.errors}",
        end="\r",
        flush=True,
    )


def _format_timestamp(epoch: int) -> str:
    if not epoch:
        return "never"
    return datetime.fromtimestamp(epoch, UTC).strftime("%Y-%m-%d %H:%M:%S UTC")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Digest Indexer - Embed daily digest threads into a vector index"
    )
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("run", help="Run one incremental indexing pass")
    subparsers.add_parser("check-config", help="Verify required settings are present")
    subparsers.add_parser(
        "preview", help="Extract and fingerprint the latest matching thread (no writes)"
    )
    subparsers.add_parser("status", help="Show watermark, tracked threads and recent runs")

    reset_parser = subparsers.add_parser(
        "reset", help="Forget watermark and fingerprints (next run re-indexes everything)"
    )
    reset_parser.add_argument(
        "--yes", action="store_true", help="Confirm the reset"
    )
    return parser


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "reset" and not args.yes:
        print("Error: reset requires --yes", file=sys.stderr)
        sys.exit(1)

    settings = DigestIndexerSettings()
    setup_logging(settings.log_level)

    progress_callback = None if args.quiet else on_progress
    indexer = DigestIndexer(settings=settings, on_progress=progress_callback)

    try:
        if args.command == "check-config":
            ok = indexer.validate_config()
            print("Configuration OK" if ok else "Configuration incomplete")
            sys.exit(0 if ok else 1)

        elif args.command == "run":
            summary = indexer.run()
            print(
                f"\n\nComplete: {summary.processed} processed, {summary.errors} errors, "
                f"{summary.skipped} unchanged, {summary.total} total"
            )

        elif args.command == "preview":
            preview = indexer.preview_latest()
            if preview is None:
                print("\nNo matching thread found")
            else:
                print(json.dumps(preview, indent=2, default=str))

        elif args.command == "status":
            status = indexer.get_status()
            print(f"\nLast run:        {_format_timestamp(status['watermark'])}")
            print(f"Tracked threads: {status['tracked_threads']}")
            print(f"Index host:      {status['index_host'] or '(not resolved)'}")
            print("\nRecent runs:")
            for run in status["recent_runs"]:
                print(
                    f"  #{run['run_id']:<5d} {run['started_at']}  {run['status']:10s} "
                    f"processed={run['threads_processed']} skipped={run['threads_skipped']} "
                    f"failed={run['threads_failed']} total={run['threads_total']}"
                )

        elif args.command == "reset":
            indexer.reset_state()
            print("\nRun state cleared")

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except ConfigurationError as e:
        print(f"\nConfiguration error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        indexer.close()


if __name__ == "__main__":
    main()
