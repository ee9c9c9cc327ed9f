"""
Lessons CLI Command

Usage:
    autoheal lessons list [--min-confidence 0.0] [--limit 20]
    autoheal lessons prune [--min-confidence 0.2] [--min-applications 3]
    autoheal lessons export --output lessons.json
"""

import sys
from typing import Any

from rich.console import Console
from rich.table import Table

from autoheal.core.config import AutohealConfig
from autoheal.meta_learning import LessonStore

console = Console()


def cmd_lessons(args: Any, config: AutohealConfig) -> None:
    """Handle lessons command - inspect and maintain stored lessons."""
    store = LessonStore(args.store or config.lessons.store_path)

    if args.action == "list":
        _list(store, args)
    elif args.action == "prune":
        decayed = store.apply_decay(config.lessons.decay_rate)
        removed = store.prune(
            min_confidence=args.min_confidence if args.min_confidence is not None else 0.2,
            min_applications=args.min_applications,
        )
        console.print(f"Decayed {decayed} lessons, removed {removed}, {len(store)} remaining")
    elif args.action == "export":
        min_confidence = args.min_confidence if args.min_confidence is not None else 0.5
        exported = store.export(args.output, min_confidence=min_confidence)
        target = args.output or "stdout"
        console.print(f"Exported {len(exported)} lessons to {target}")
        if args.output is None:
            console.print_json(data=exported)
    else:
        console.print(f"[red]Unknown action: {args.action}[/red]")
        sys.exit(1)


def _list(store: LessonStore, args: Any) -> None:
    min_confidence = args.min_confidence or 0.0
    lessons = store.find(min_confidence=min_confidence)[: args.limit]
    if not lessons:
        console.print("No lessons stored.")
        return

    stats = store.get_stats()
    table = Table(
        title=f"Lessons ({len(lessons)} of {stats.total_lessons})",
        header_style="bold",
    )
    table.add_column("Type", style="cyan")
    table.add_column("Error")
    table.add_column("Element")
    table.add_column("Pattern")
    table.add_column("Conf", justify="right")
    table.add_column("Verified")

    for lesson in lessons:
        table.add_row(
            lesson.type.value,
            lesson.error_category.value,
            lesson.element,
            lesson.pattern,
            f"{lesson.confidence:.2f}",
            "yes" if lesson.verified else "",
        )
    console.print(table)
