"""
Heal-log CLI Command

Usage:
    autoheal heal-log show <file>
    autoheal heal-log summary <dir>
"""

import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from autoheal.core.config import AutohealConfig
from autoheal.healing.healing_log import (
    aggregate_healing_logs,
    format_healing_log,
    load_healing_log,
)

console = Console()

HEAL_LOG_GLOB = "*.heal-log.json"


def cmd_heal_log(args: Any, config: AutohealConfig) -> None:
    """Handle heal-log command - render one log or roll up a directory."""
    if args.action == "show":
        _show(Path(args.path))
    elif args.action == "summary":
        _summary(Path(args.path))
    else:
        console.print(f"[red]Unknown action: {args.action}[/red]")
        sys.exit(1)


def _show(path: Path) -> None:
    log = load_healing_log(path)
    if log is None:
        console.print(f"[red]No readable heal log at {path}[/red]")
        sys.exit(1)
    console.print(Markdown(format_healing_log(log)))


def _summary(directory: Path) -> None:
    if not directory.is_dir():
        console.print(f"[red]Not a directory: {directory}[/red]")
        sys.exit(1)

    logs = [log for log in map(load_healing_log, sorted(directory.glob(HEAL_LOG_GLOB))) if log]
    if not logs:
        console.print(f"No heal logs in {directory}")
        return

    summary = aggregate_healing_logs(logs)

    table = Table(title=f"Healing Summary ({summary['total_journeys']} journeys)", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Healed", str(summary["healed"]))
    table.add_row("Failed", str(summary["failed"]))
    table.add_row("Exhausted", str(summary["exhausted"]))
    table.add_row("Attempts", str(summary["total_attempts"]))
    console.print(table)

    fixes = Table(title="Most Common Fixes", header_style="bold")
    fixes.add_column("Fix type")
    fixes.add_column("Count", justify="right")
    for item in summary["most_common_fixes"][:10]:
        fixes.add_row(item["fix"], str(item["count"]))
    console.print(fixes)
