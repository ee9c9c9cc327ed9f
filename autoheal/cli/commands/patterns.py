"""
Patterns CLI Command - LLKB Maintenance
=======================================

Usage:
    autoheal patterns list [--min-confidence 0.5] [--limit 20]
    autoheal patterns stats
    autoheal patterns promote [--dry-run] [--id LP...]
    autoheal patterns export [--output path] [--min-confidence 0.7]
    autoheal patterns prune [--min-confidence 0.3]
    autoheal patterns clear --yes
"""

import sys
from typing import Any

from rich.console import Console
from rich.table import Table

from autoheal.core.config import AutohealConfig
from autoheal.llkb import (
    LlkbContext,
    analyze_for_promotion,
    clear_learned_patterns,
    export_patterns_to_config,
    get_pattern_stats,
    promote_patterns,
    prune_patterns,
)

console = Console()


def _context(args: Any, config: AutohealConfig) -> LlkbContext:
    base_dir = getattr(args, "llkb_dir", None) or config.llkb.base_dir
    return LlkbContext(base_dir, glossary_path=config.llkb.glossary_path)


def cmd_patterns(args: Any, config: AutohealConfig) -> None:
    """Handle patterns command - inspect and maintain the learned store."""
    action = getattr(args, "action", "list")
    ctx = _context(args, config)

    if action == "list":
        _list(ctx, args)
    elif action == "stats":
        _stats(ctx, config)
    elif action == "promote":
        _promote(ctx, args)
    elif action == "export":
        _export(ctx, args, config)
    elif action == "prune":
        _prune(ctx, args, config)
    elif action == "clear":
        _clear(ctx, args)
    else:
        console.print(f"[red]Unknown action: {action}[/red]")
        sys.exit(1)


def _list(ctx: LlkbContext, args: Any) -> None:
    min_confidence = getattr(args, "min_confidence", None) or 0.0
    patterns = sorted(
        (p for p in ctx.learned_patterns() if p.confidence >= min_confidence),
        key=lambda p: p.confidence,
        reverse=True,
    )[: args.limit]

    if not patterns:
        console.print("No learned patterns yet.")
        return

    table = Table(title=f"Learned Patterns ({len(patterns)})", header_style="bold")
    table.add_column("ID", style="cyan")
    table.add_column("Text")
    table.add_column("Action")
    table.add_column("Conf", justify="right")
    table.add_column("S/F", justify="right")
    table.add_column("Journeys", justify="right")
    table.add_column("Core")

    for p in patterns:
        table.add_row(
            p.id,
            p.original_text,
            str(p.mapped_action.get("type", "?")),
            f"{p.confidence:.2f}",
            f"{p.success_count}/{p.fail_count}",
            str(len(p.source_journeys)),
            "yes" if p.promoted_to_core else "",
        )
    console.print(table)


def _stats(ctx: LlkbContext, config: AutohealConfig) -> None:
    stats = get_pattern_stats(
        ctx,
        high_confidence=config.llkb.high_confidence,
        low_confidence=config.llkb.low_confidence,
    )

    table = Table(title="LLKB Stats", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Total patterns", str(stats.total))
    table.add_row("Promoted", str(stats.promoted))
    table.add_row(f"High confidence (>= {config.llkb.high_confidence})", str(stats.high_confidence))
    table.add_row(f"Low confidence (< {config.llkb.low_confidence})", str(stats.low_confidence))
    table.add_row("Average confidence", f"{stats.avg_confidence:.3f}")
    table.add_row("Successes", str(stats.total_successes))
    table.add_row("Failures", str(stats.total_failures))
    console.print(table)


def _promote(ctx: LlkbContext, args: Any) -> None:
    if args.dry_run:
        report = analyze_for_promotion(ctx)
        if not report.promotable:
            console.print("No patterns are ready for promotion.")
        for candidate in report.promotable:
            console.print(
                f"[green]{candidate.pattern.id}[/green] {candidate.pattern.original_text} "
                f"-> [dim]{candidate.generated_regex}[/dim]"
            )
        for near in report.near_promotion:
            console.print(
                f"[yellow]{near.pattern.id}[/yellow] needs ~{near.estimated_uses_needed} more uses: "
                f"{'; '.join(near.missing_criteria)}"
            )
        return

    result = promote_patterns(ctx, pattern_ids=args.ids or None)
    console.print(f"Promoted {len(result['promoted'])}, skipped {len(result['skipped'])}")
    for pattern_id in result["promoted"]:
        console.print(f"  [green]{pattern_id}[/green]")


def _export(ctx: LlkbContext, args: Any, config: AutohealConfig) -> None:
    min_confidence = args.min_confidence
    if min_confidence is None:
        min_confidence = config.llkb.export_min_confidence

    result = export_patterns_to_config(ctx, args.output, min_confidence=min_confidence)
    if not result["saved"]:
        console.print(f"[red]Export to {result['path']} failed[/red]")
        sys.exit(1)
    console.print(f"Exported {result['exported']} patterns to {result['path']}")


def _prune(ctx: LlkbContext, args: Any, config: AutohealConfig) -> None:
    min_confidence = args.min_confidence
    if min_confidence is None:
        min_confidence = config.llkb.low_confidence

    result = prune_patterns(
        ctx,
        min_confidence=min_confidence,
        min_success=config.llkb.prune_min_success,
        max_age_days=config.llkb.prune_max_age_days,
    )
    console.print(f"Removed {result['removed']} patterns, {result['remaining']} remaining")


def _clear(ctx: LlkbContext, args: Any) -> None:
    if not args.yes:
        console.print("[yellow]Refusing to clear learned patterns without --yes[/yellow]")
        sys.exit(1)
    clear_learned_patterns(ctx)
    console.print(f"Cleared learned patterns in {ctx.base_dir}")
