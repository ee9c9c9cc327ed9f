# CLI Main
import argparse
import logging
import sys

from autoheal.cli.commands import cmd_heal_log, cmd_lessons, cmd_patterns, cmd_state
from autoheal.core.config import load_config
from autoheal.core.exceptions import ConfigurationError
from autoheal.core.logging import env_json_format, env_log_level, configure_logging


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser"""
    parser = argparse.ArgumentParser(
        prog="autoheal",
        description="Autoheal - bounded self-healing for E2E browser tests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", "-c", help="YAML/JSON configuration file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Patterns command
    patterns_p = subparsers.add_parser("patterns", help="Inspect and maintain learned patterns")
    patterns_p.add_argument(
        "action",
        nargs="?",
        default="list",
        choices=["list", "stats", "promote", "export", "prune", "clear"],
    )
    patterns_p.add_argument("--llkb-dir", help="LLKB directory (default from config)")
    patterns_p.add_argument("--min-confidence", type=float, help="Confidence threshold")
    patterns_p.add_argument("--limit", type=int, default=20, help="Limit results")
    patterns_p.add_argument("--output", "-o", help="Export file path")
    patterns_p.add_argument("--id", dest="ids", action="append", help="Pattern id to promote")
    patterns_p.add_argument("--dry-run", action="store_true", help="Report without promoting")
    patterns_p.add_argument("--yes", action="store_true", help="Confirm destructive actions")

    # Heal-log command
    heal_log_p = subparsers.add_parser("heal-log", help="Read healing session logs")
    heal_log_p.add_argument("action", choices=["show", "summary"])
    heal_log_p.add_argument("path", help="Heal log file (show) or directory (summary)")

    # State command
    state_p = subparsers.add_parser("state", help="Manage refinement snapshots")
    state_p.add_argument("action", choices=["show", "clear"])
    state_p.add_argument("test_file", help="Test file the snapshot belongs to")
    state_p.add_argument("--state-dir", help="Snapshot directory")

    # Lessons command
    lessons_p = subparsers.add_parser("lessons", help="Manage refinement lessons")
    lessons_p.add_argument(
        "action", nargs="?", default="list", choices=["list", "prune", "export"]
    )
    lessons_p.add_argument("--store", help="Lesson store file (default from config)")
    lessons_p.add_argument("--min-confidence", type=float, help="Confidence threshold")
    lessons_p.add_argument("--min-applications", type=int, default=3, help="Prune threshold")
    lessons_p.add_argument("--limit", type=int, default=20, help="Limit results")
    lessons_p.add_argument("--output", "-o", help="Export file path")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else env_log_level()
    configure_logging(level=level, json_format=args.json_logs or env_json_format())

    if not args.command:
        parser.print_help()
        sys.exit(0)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        for suggestion in e.suggestions:
            print(f"  - {suggestion}", file=sys.stderr)
        sys.exit(2)

    if args.command == "patterns":
        cmd_patterns(args, config)
    elif args.command == "heal-log":
        cmd_heal_log(args, config)
    elif args.command == "state":
        cmd_state(args, config)
    elif args.command == "lessons":
        cmd_lessons(args, config)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
