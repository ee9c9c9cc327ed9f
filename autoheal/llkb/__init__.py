"""
LLKB - Learned pattern knowledge base
=====================================

Learns which step texts map to which actions, scores every mapping with a
small-sample-aware confidence, and promotes well-evidenced mappings to the
trusted core set.

Usage:
    from autoheal.llkb import LlkbContext, match_llkb_pattern, record_pattern_success

    ctx = LlkbContext(".autoheal/llkb")
    record_pattern_success("User clicks 'Save'", action, "JRN-0001", ctx)
    match = match_llkb_pattern("Customer clicks 'Save'", ctx)
"""

from .context import LlkbContext
from .discovered import ACTION_KINDS, KEYBOARD_KEY, LAYER_PRIORITY, build_action
from .glossary import DEFAULT_GLOSSARY, Glossary, GlossaryEntry, load_glossary
from .models import DiscoveredPattern, LearnedPattern, generate_pattern_id
from .patterns import (
    PatternMatch,
    PatternStats,
    calculate_confidence,
    clear_learned_patterns,
    export_patterns_to_config,
    get_pattern_stats,
    match_llkb_pattern,
    prune_patterns,
    record_pattern_failure,
    record_pattern_success,
)
from .promotion import (
    PromotablePattern,
    PromotionCriteria,
    PromotionReport,
    analyze_for_promotion,
    generate_regex_from_text,
    get_promotable_patterns,
    mark_patterns_promoted,
    meets_promotion_criteria,
    promote_patterns,
)

__all__ = [
    "LlkbContext",
    "ACTION_KINDS",
    "KEYBOARD_KEY",
    "LAYER_PRIORITY",
    "build_action",
    "DEFAULT_GLOSSARY",
    "Glossary",
    "GlossaryEntry",
    "load_glossary",
    "DiscoveredPattern",
    "LearnedPattern",
    "generate_pattern_id",
    "PatternMatch",
    "PatternStats",
    "calculate_confidence",
    "clear_learned_patterns",
    "export_patterns_to_config",
    "get_pattern_stats",
    "match_llkb_pattern",
    "prune_patterns",
    "record_pattern_failure",
    "record_pattern_success",
    "PromotablePattern",
    "PromotionCriteria",
    "PromotionReport",
    "analyze_for_promotion",
    "generate_regex_from_text",
    "get_promotable_patterns",
    "mark_patterns_promoted",
    "meets_promotion_criteria",
    "promote_patterns",
]
