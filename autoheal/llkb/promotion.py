"""
LLKB Pattern Promotion
======================

Learned patterns with enough evidence are promoted to the trusted core set.
Promotion freezes a pattern: it stays in the store for the record but no
longer takes part in matching or pruning.

Usage:
    for candidate in get_promotable_patterns(ctx):
        print(candidate.pattern.original_text, candidate.generated_regex)

    result = promote_patterns(ctx)
    print(result["promoted"], result["skipped"])
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .context import LlkbContext
from .models import LearnedPattern

logger = logging.getLogger("autoheal.llkb.promotion")


@dataclass
class PromotionCriteria:
    """Evidence a pattern needs before it is trusted"""

    min_confidence: float = 0.9
    min_success_count: int = 5
    min_source_journeys: int = 2
    max_fail_count: int = 2
    min_success_rate: float = 0.85

    def __post_init__(self) -> None:
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ValueError("min_confidence must be between 0 and 1")
        if not 0.0 <= self.min_success_rate <= 1.0:
            raise ValueError("min_success_rate must be between 0 and 1")
        if self.min_success_count < 0 or self.max_fail_count < 0:
            raise ValueError("counts must be non-negative")
        if self.min_source_journeys < 1:
            raise ValueError("min_source_journeys must be at least 1")


@dataclass
class PromotablePattern:
    pattern: LearnedPattern
    generated_regex: str
    priority: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.pattern.id,
            "original_text": self.pattern.original_text,
            "generated_regex": self.generated_regex,
            "priority": self.priority,
            "confidence": self.pattern.confidence,
        }


@dataclass
class NearPromotion:
    pattern: LearnedPattern
    missing_criteria: list[str]
    estimated_uses_needed: int


@dataclass
class PromotionReport:
    analyzed_at: datetime
    total_patterns: int
    promotable: list[PromotablePattern] = field(default_factory=list)
    near_promotion: list[NearPromotion] = field(default_factory=list)
    already_promoted: int = 0
    needs_more_data: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "analyzed_at": self.analyzed_at.isoformat(),
            "total_patterns": self.total_patterns,
            "promotable": [p.to_dict() for p in self.promotable],
            "near_promotion": [
                {
                    "id": n.pattern.id,
                    "missing_criteria": n.missing_criteria,
                    "estimated_uses_needed": n.estimated_uses_needed,
                }
                for n in self.near_promotion
            ],
            "stats": {
                "already_promoted": self.already_promoted,
                "eligible_for_promotion": len(self.promotable),
                "near_promotion": len(self.near_promotion),
                "needs_more_data": self.needs_more_data,
            },
        }


# =============================================================================
# Regex Generation
# =============================================================================

_REGEX_META = re.compile(r"[.*+?^${}()|\[\]\\]")
_VERBS = ("click", "fill", "select", "type", "see", "wait")


def generate_regex_from_text(text: str) -> str:
    """
    Heuristic anchored regex for a learned step text.

    Metacharacters are escaped, quoted literals become capture groups,
    articles and a leading "user" become optional, and common verbs accept
    an optional trailing "s".
    """
    pattern = _REGEX_META.sub(lambda m: "\\" + m.group(0), text.lower())
    pattern = re.sub(r'"[^"]+"', '"([^"]+)"', pattern)
    pattern = re.sub(r"'[^']+'", "'([^']+)'", pattern)
    pattern = re.sub(r"\b(the|a|an)\s+", r"(?:\1\\s+)?", pattern)
    pattern = re.sub(r"^user\s+", r"(?:user\\s+)?", pattern)
    for verb in _VERBS:
        pattern = re.sub(rf"\b{verb}s?\b", f"{verb}s?", pattern)
    return f"^{pattern}$"


# =============================================================================
# Criteria
# =============================================================================


def meets_promotion_criteria(
    pattern: LearnedPattern,
    criteria: PromotionCriteria | None = None,
) -> tuple[bool, list[str]]:
    """Returns ``(meets, missing_criteria)``."""
    criteria = criteria or PromotionCriteria()
    missing = []

    if pattern.confidence < criteria.min_confidence:
        missing.append(
            f"confidence: {pattern.confidence:.1%} < {criteria.min_confidence:.1%}"
        )
    if pattern.success_count < criteria.min_success_count:
        missing.append(f"success_count: {pattern.success_count} < {criteria.min_success_count}")
    if len(pattern.source_journeys) < criteria.min_source_journeys:
        missing.append(
            f"source_journeys: {len(pattern.source_journeys)} < {criteria.min_source_journeys}"
        )
    if pattern.fail_count > criteria.max_fail_count:
        missing.append(f"fail_count: {pattern.fail_count} > {criteria.max_fail_count}")

    rate = pattern.success_count / (pattern.total_uses or 1)
    if rate < criteria.min_success_rate:
        missing.append(f"success_rate: {rate:.1%} < {criteria.min_success_rate:.1%}")

    return not missing, missing


def _estimate_uses_needed(pattern: LearnedPattern, criteria: PromotionCriteria) -> int:
    needed = [1]
    if pattern.success_count < criteria.min_success_count:
        needed.append(criteria.min_success_count - pattern.success_count)
    if pattern.confidence < criteria.min_confidence:
        target = math.ceil(criteria.min_success_count * (1 + pattern.fail_count / 5))
        needed.append(max(0, target - pattern.success_count))
    return max(needed)


# =============================================================================
# Operations
# =============================================================================


def get_promotable_patterns(
    ctx: LlkbContext,
    criteria: PromotionCriteria | None = None,
) -> list[PromotablePattern]:
    """Unpromoted patterns meeting every criterion, highest priority first."""
    promotable = [
        PromotablePattern(
            pattern=p,
            generated_regex=generate_regex_from_text(p.original_text),
            priority=p.success_count * p.confidence,
        )
        for p in ctx.learned_patterns()
        if not p.promoted_to_core and meets_promotion_criteria(p, criteria)[0]
    ]
    return sorted(promotable, key=lambda c: c.priority, reverse=True)


def mark_patterns_promoted(pattern_ids: list[str], ctx: LlkbContext) -> list[str]:
    """Freeze the given patterns. Returns the ids that were newly promoted."""
    wanted = set(pattern_ids)
    now = datetime.now()
    marked = []

    with ctx.editing() as patterns:
        for pattern in patterns:
            if pattern.id in wanted and not pattern.promoted_to_core:
                pattern.promoted_to_core = True
                pattern.promoted_at = now
                marked.append(pattern.id)

    if marked:
        logger.info(f"Promoted {len(marked)} patterns: {', '.join(marked)}")
    return marked


def promote_patterns(
    ctx: LlkbContext,
    pattern_ids: list[str] | None = None,
    criteria: PromotionCriteria | None = None,
) -> dict[str, list[str]]:
    """
    Promote every eligible pattern (or only ``pattern_ids``).

    Returns:
        ``{"promoted": [...], "skipped": [...]}``; skipped patterns were
        considered but do not meet the criteria
    """
    promoted, skipped = [], []
    for pattern in ctx.learned_patterns():
        if pattern.promoted_to_core:
            continue
        if pattern_ids is not None and pattern.id not in pattern_ids:
            continue
        if meets_promotion_criteria(pattern, criteria)[0]:
            promoted.append(pattern.id)
        else:
            skipped.append(pattern.id)

    if promoted:
        mark_patterns_promoted(promoted, ctx)
    return {"promoted": promoted, "skipped": skipped}


def analyze_for_promotion(
    ctx: LlkbContext,
    criteria: PromotionCriteria | None = None,
) -> PromotionReport:
    """Split the store into promoted, promotable, near-promotion and the rest."""
    criteria = criteria or PromotionCriteria()
    patterns = ctx.learned_patterns()
    report = PromotionReport(analyzed_at=datetime.now(), total_patterns=len(patterns))

    for pattern in patterns:
        if pattern.promoted_to_core:
            report.already_promoted += 1
            continue

        meets, missing = meets_promotion_criteria(pattern, criteria)
        if meets:
            report.promotable.append(
                PromotablePattern(
                    pattern=pattern,
                    generated_regex=generate_regex_from_text(pattern.original_text),
                    priority=pattern.success_count * pattern.confidence,
                )
            )
        elif len(missing) <= 2 and pattern.success_count >= 2:
            report.near_promotion.append(
                NearPromotion(pattern, missing, _estimate_uses_needed(pattern, criteria))
            )
        else:
            report.needs_more_data += 1

    return report
