"""
State CLI Command - refinement snapshots

Usage:
    autoheal state show <test-file> [--state-dir DIR]
    autoheal state clear <test-file> [--state-dir DIR]
"""

import sys
from typing import Any

from rich.console import Console
from rich.table import Table

from autoheal.core.config import AutohealConfig
from autoheal.healing.state import RefinementStateStore

console = Console()


def cmd_state(args: Any, config: AutohealConfig) -> None:
    store = RefinementStateStore(args.state_dir or config.healing.state_dir)

    if args.action == "show":
        snapshot = store.load(args.test_file)
        if snapshot is None:
            console.print(f"No refinement state for {args.test_file}")
            return

        table = Table(title=f"Refinement State: {snapshot.test_path}", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Attempts", str(snapshot.attempts))
        table.add_row("Error counts", ", ".join(map(str, snapshot.error_count_history)) or "-")
        table.add_row("Saved at", snapshot.saved_at.isoformat() if snapshot.saved_at else "-")

        breaker = snapshot.circuit_breaker_state
        if breaker is not None:
            reason = breaker.open_reason.value if breaker.open_reason else "-"
            table.add_row("Breaker open", f"{breaker.is_open} ({reason})")
            table.add_row("Tokens used", str(breaker.tokens_used))
        console.print(table)

    elif args.action == "clear":
        if store.clear(args.test_file):
            console.print(f"Cleared refinement state for {args.test_file}")
        else:
            console.print(f"No refinement state for {args.test_file}")

    else:
        console.print(f"[red]Unknown action: {args.action}[/red]")
        sys.exit(1)
