"""
Command-line entry point.

Usage:
    curator run morning
    curator run discovery --strategy discovery --dry-run
    curator run-all
    curator strategies
"""
import argparse
import json
import os
import sys
from typing import List, Optional

from curator.config_loader import Config
from curator.exceptions import (
    BatchGenerationError,
    CancellationError,
    ConfigurationError,
    PlaylistGenerationError,
)
from curator.logging_utils import add_logging_args, configure_logging, resolve_log_level
from curator.playlist.windows import ALL_WINDOWS
from curator.runner import PlaylistRunner, RunReport
from curator.scoring.registry import get_all_strategies


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="curator",
        description="Generate time-of-day, discovery and throwback playlists from listening history",
    )
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to the configuration file (default: config.yaml)",
    )
    add_logging_args(parser)

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Generate one playlist")
    run_parser.add_argument("window", choices=ALL_WINDOWS, help="Playlist window")
    run_parser.add_argument("--strategy", help="Scoring strategy (default depends on the window)")
    run_parser.add_argument("--dry-run", action="store_true", help="Select tracks without saving the playlist")
    run_parser.add_argument("--json", action="store_true", help="Print the run report as JSON")

    all_parser = subparsers.add_parser("run-all", help="Generate every daily playlist")
    all_parser.add_argument("--dry-run", action="store_true", help="Select tracks without saving playlists")

    strategies_parser = subparsers.add_parser("strategies", help="List scoring strategies")
    strategies_parser.add_argument("--json", action="store_true", help="Print strategies as JSON")
    return parser


def _print_report(report: RunReport) -> None:
    print(f"\n{report.title} ({report.strategy}): {len(report.entries)}/{report.target_count} tracks")
    for entry in report.entries:
        print(f"  {entry['position']:>3}. {entry['artist']} - {entry['title']}  [{entry['final_score']:.3f}]")
    if report.under_filled:
        print(f"  (under-filled: pool had {report.pool_size} candidates)")


def _print_strategies(as_json: bool) -> None:
    strategies = get_all_strategies()
    if as_json:
        print(json.dumps([s.to_dict() for s in strategies], indent=2))
        return
    for meta in strategies:
        print(f"{meta.id:<10} {meta.name:<18} {meta.description}")
        print(f"{'':<10} best for: {meta.best_for}")
        print(f"{'':<10} formula:  {meta.formula}")


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "strategies":
        _print_strategies(args.json)
        return 0

    if not os.path.exists(args.config):
        print(f"Error: {args.config} not found")
        print("\nCopy config.example.yaml to config.yaml and set library.database_path.\n")
        return 1

    try:
        config = Config(args.config)
    except ConfigurationError as e:
        print(f"\nConfiguration Error: {e}")
        print(f"\nPlease check {args.config}.\n")
        return 1

    configure_logging(
        level=resolve_log_level(args),
        log_file=args.log_file or config.log_file,
    )

    runner = PlaylistRunner.from_config(config)
    try:
        if args.command == "run":
            report = runner.run(args.window, strategy=args.strategy, dry_run=args.dry_run)
            if args.json:
                print(json.dumps(report.to_dict(), indent=2, default=str))
            else:
                _print_report(report)
        else:
            reports = runner.run_all_daily(dry_run=args.dry_run)
            for report in reports.values():
                _print_report(report)
    except ConfigurationError as e:
        print(f"\nConfiguration Error: {e}\n")
        return 1
    except BatchGenerationError as e:
        for outcome in e.results.values():
            if isinstance(outcome, RunReport):
                _print_report(outcome)
        print(f"\nError: {e}\n")
        return 2
    except PlaylistGenerationError as e:
        print(f"\nError: {e}\n")
        return 2
    except CancellationError as e:
        print(f"\nCancelled: {e}\n")
        return 130
    finally:
        runner.catalog.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
