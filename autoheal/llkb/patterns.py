"""
LLKB Learned Patterns
=====================

Confidence-scored store of step text -> action mappings.

Key Features:
- Wilson-centre confidence: 0.5 with no evidence, conservative for small
  samples, approaching the raw success rate as evidence grows
- Failures only ever update an existing pattern
- Promoted patterns are frozen: excluded from matching, never pruned
- Discovered patterns consulted alongside learned ones, by layer priority

Usage:
    ctx = LlkbContext(tmp_dir)
    record_pattern_success("User clicks 'Save'", {"type": "click", ...}, "JRN-0001", ctx)
    match = match_llkb_pattern("Customer clicks 'Save'", ctx)
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from autoheal.storage.atomic import atomic_write_json

from .context import LlkbContext
from .discovered import best_discovered_match
from .models import STORE_VERSION, LearnedPattern
from .promotion import generate_regex_from_text

logger = logging.getLogger("autoheal.llkb.patterns")

DEFAULT_Z = 1.96
DEFAULT_MIN_MATCH_CONFIDENCE = 0.5
HIGH_CONFIDENCE = 0.7
LOW_CONFIDENCE = 0.3


@dataclass
class PatternMatch:
    pattern_id: str
    action: dict[str, Any]
    confidence: float
    source: str = "learned"  # learned | discovered

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern_id": self.pattern_id,
            "action": self.action,
            "confidence": self.confidence,
            "source": self.source,
        }


@dataclass
class PatternStats:
    total: int = 0
    promoted: int = 0
    high_confidence: int = 0
    low_confidence: int = 0
    avg_confidence: float = 0.0
    total_successes: int = 0
    total_failures: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "promoted": self.promoted,
            "high_confidence": self.high_confidence,
            "low_confidence": self.low_confidence,
            "avg_confidence": self.avg_confidence,
            "total_successes": self.total_successes,
            "total_failures": self.total_failures,
        }


# =============================================================================
# Confidence
# =============================================================================


def calculate_confidence(success_count: int, fail_count: int, z: float = DEFAULT_Z) -> float:
    """
    Centre of the Wilson score interval: ``(s + z^2/2) / (n + z^2)``.

    Equals exactly 0.5 with no evidence and tends to ``s / n`` as ``n`` grows.
    """
    z2 = z * z
    n = success_count + fail_count
    return min(1.0, max(0.0, (success_count + z2 / 2) / (n + z2)))


# =============================================================================
# Recording
# =============================================================================


def _find(patterns: list[LearnedPattern], normalized_text: str) -> LearnedPattern | None:
    return next((p for p in patterns if p.normalized_text == normalized_text), None)


def record_pattern_success(
    text: str,
    action: dict[str, Any],
    journey_id: str,
    ctx: LlkbContext,
) -> LearnedPattern:
    """Upsert by normalized text and count one success."""
    normalized = ctx.normalize(text)
    now = datetime.now()

    with ctx.editing() as patterns:
        pattern = _find(patterns, normalized)
        if pattern is None:
            pattern = LearnedPattern(
                original_text=text,
                normalized_text=normalized,
                mapped_action=action,
                source_journeys=[],
                created_at=now,
            )
            patterns.append(pattern)
            logger.debug(f"New learned pattern {pattern.id} for '{normalized}'")

        pattern.success_count += 1
        pattern.confidence = calculate_confidence(pattern.success_count, pattern.fail_count)
        pattern.last_used = now
        if journey_id not in pattern.source_journeys:
            pattern.source_journeys.append(journey_id)

    return pattern


def record_pattern_failure(text: str, journey_id: str, ctx: LlkbContext) -> LearnedPattern | None:
    """
    Count one failure against an existing pattern.

    Returns None, creating nothing, when no pattern has this text.
    """
    normalized = ctx.normalize(text)
    if _find(ctx.learned_patterns(), normalized) is None:
        return None

    with ctx.editing() as patterns:
        pattern = _find(patterns, normalized)
        assert pattern is not None
        pattern.fail_count += 1
        pattern.confidence = calculate_confidence(pattern.success_count, pattern.fail_count)
        pattern.last_used = datetime.now()

    logger.debug(f"Pattern {pattern.id} failed in {journey_id}: confidence {pattern.confidence:.2f}")
    return pattern


# =============================================================================
# Matching
# =============================================================================


def _match_learned(
    normalized: str, ctx: LlkbContext, min_confidence: float
) -> PatternMatch | None:
    for pattern in ctx.learned_patterns():
        if (
            pattern.normalized_text == normalized
            and not pattern.promoted_to_core
            and pattern.confidence >= min_confidence
        ):
            return PatternMatch(pattern.id, pattern.mapped_action, pattern.confidence)
    return None


def _match_discovered(
    normalized: str, ctx: LlkbContext, min_confidence: float
) -> PatternMatch | None:
    found = best_discovered_match(normalized, ctx.discovered_patterns(), min_confidence)
    if found is None:
        return None
    best, action = found
    return PatternMatch(best.id, action, best.confidence, source="discovered")


def match_llkb_pattern(
    text: str,
    ctx: LlkbContext,
    min_confidence: float = DEFAULT_MIN_MATCH_CONFIDENCE,
    use_discovered: bool = True,
) -> PatternMatch | None:
    """
    Exact match of normalized text against learned and discovered patterns.

    Promoted learned patterns never match. When both sources match, the
    discovered pattern wins if it is at least as confident.
    """
    normalized = ctx.normalize(text)
    learned = _match_learned(normalized, ctx, min_confidence)
    discovered = _match_discovered(normalized, ctx, min_confidence) if use_discovered else None

    if learned is None or discovered is None:
        return discovered or learned
    return discovered if discovered.confidence >= learned.confidence else learned


# =============================================================================
# Maintenance
# =============================================================================


def prune_patterns(
    ctx: LlkbContext,
    min_confidence: float = LOW_CONFIDENCE,
    min_success: int = 1,
    max_age_days: int = 90,
) -> dict[str, int]:
    """
    Remove unpromoted patterns that are low-confidence, lack successes, or
    are older than ``max_age_days`` without a single success.
    """
    patterns = ctx.learned_patterns()
    cutoff = datetime.now() - timedelta(days=max_age_days)

    def keep(p: LearnedPattern) -> bool:
        if p.promoted_to_core:
            return True
        if p.confidence < min_confidence:
            return False
        if min_success > 0 and p.success_count < min_success:
            return False
        return not (p.created_at < cutoff and p.success_count == 0)

    kept = [p for p in patterns if keep(p)]
    removed = len(patterns) - len(kept)
    if removed:
        ctx.save_learned(kept)
        logger.info(f"Pruned {removed} learned patterns, {len(kept)} remaining")

    return {"removed": removed, "remaining": len(kept)}


def get_pattern_stats(
    ctx: LlkbContext,
    high_confidence: float = HIGH_CONFIDENCE,
    low_confidence: float = LOW_CONFIDENCE,
) -> PatternStats:
    patterns = ctx.learned_patterns()
    if not patterns:
        return PatternStats()

    return PatternStats(
        total=len(patterns),
        promoted=sum(1 for p in patterns if p.promoted_to_core),
        high_confidence=sum(1 for p in patterns if p.confidence >= high_confidence),
        low_confidence=sum(1 for p in patterns if p.confidence < low_confidence),
        avg_confidence=math.fsum(p.confidence for p in patterns) / len(patterns),
        total_successes=sum(p.success_count for p in patterns),
        total_failures=sum(p.fail_count for p in patterns),
    )


def export_patterns_to_config(
    ctx: LlkbContext,
    output_path: Path | str | None = None,
    min_confidence: float = HIGH_CONFIDENCE,
) -> dict[str, Any]:
    """
    Write non-promoted patterns at or above ``min_confidence`` as a static
    ``autogen-patterns.json`` artifact.

    Returns:
        ``{"exported": n, "path": str, "saved": bool}``
    """
    exportable = [
        p
        for p in ctx.learned_patterns()
        if p.confidence >= min_confidence and not p.promoted_to_core
    ]
    path = Path(output_path) if output_path else ctx.export_path

    document = {
        "version": STORE_VERSION,
        "exported_at": datetime.now().isoformat(),
        "patterns": [
            {
                "id": p.id,
                "trigger": generate_regex_from_text(p.original_text),
                "primitive": p.mapped_action,
                "confidence": p.confidence,
                "source_count": len(p.source_journeys),
            }
            for p in exportable
        ],
    }
    saved = atomic_write_json(path, document)
    if not saved:
        logger.error(f"Failed to export patterns to {path}")

    return {"exported": len(exportable), "path": str(path), "saved": saved}


def clear_learned_patterns(ctx: LlkbContext) -> None:
    ctx.clear_learned()
    logger.info(f"Cleared learned patterns in {ctx.base_dir}")
