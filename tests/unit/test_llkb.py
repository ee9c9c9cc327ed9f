"""
Tests for the LLKB pattern store
"""

import json
import re

import pytest

from autoheal.llkb import (
    DEFAULT_GLOSSARY,
    LlkbContext,
    LearnedPattern,
    PromotionCriteria,
    analyze_for_promotion,
    build_action,
    calculate_confidence,
    clear_learned_patterns,
    export_patterns_to_config,
    generate_regex_from_text,
    get_pattern_stats,
    get_promotable_patterns,
    load_glossary,
    match_llkb_pattern,
    meets_promotion_criteria,
    promote_patterns,
    prune_patterns,
    record_pattern_failure,
    record_pattern_success,
)
from autoheal.llkb.glossary import build_synonym_map, normalize_step_text

CLICK_SAVE = {"type": "click", "locator": {"strategy": "testid", "value": "save"}}


def normalized(text: str) -> str:
    return normalize_step_text(text, build_synonym_map(DEFAULT_GLOSSARY))


def write_discovered(ctx: LlkbContext, *patterns: dict) -> None:
    ctx.base_dir.mkdir(parents=True, exist_ok=True)
    ctx.discovered_path.write_text(
        json.dumps({"version": "1.0.0", "patterns": list(patterns)}),
        encoding="utf-8",
    )


def learned(text: str, **kw) -> LearnedPattern:
    kw.setdefault("mapped_action", CLICK_SAVE)
    return LearnedPattern(original_text=text, normalized_text=normalized(text), **kw)


class TestConfidence:
    """Wilson-centre confidence."""

    def test_no_evidence_is_neutral(self):
        assert calculate_confidence(0, 0) == pytest.approx(0.5)

    def test_extremes(self):
        assert calculate_confidence(100, 0) > 0.9
        assert calculate_confidence(0, 100) < 0.1

    def test_more_evidence_more_confidence(self):
        assert calculate_confidence(2, 0) < calculate_confidence(20, 0)

    def test_bounded(self):
        for s, f in [(0, 1), (1, 0), (50, 3), (3, 50)]:
            assert 0.0 <= calculate_confidence(s, f) <= 1.0


class TestGlossary:
    def test_normalizes_synonyms(self):
        assert normalized("Customer tap the Save btn") == "user click the submit button"
        assert normalized("user click the save button") == "user click the submit button"

    def test_quoted_text_is_verbatim(self):
        assert normalized("User clicks 'Save Draft'") == "user clicks 'Save Draft'"

    def test_later_entry_wins_shared_synonym(self):
        assert normalized("select") == "dropdown"
        assert normalized("input") == "field"

    def test_yaml_extension(self, tmp_path):
        path = tmp_path / "glossary.yaml"
        path.write_text(
            "version: 2\n"
            "entries:\n"
            "  - canonical: click\n"
            "    synonyms: [smash]\n"
            "  - canonical: grid\n"
            "    synonyms: [table]\n",
            encoding="utf-8",
        )

        ctx = LlkbContext(tmp_path / "llkb", glossary_path=path)

        assert ctx.normalize("User smash the table") == "user click the grid"
        assert ctx.glossary.version == 2
        assert "smash" not in DEFAULT_GLOSSARY.entries[0].synonyms

    def test_missing_glossary_uses_defaults(self, tmp_path):
        assert load_glossary(tmp_path / "nope.yaml") is DEFAULT_GLOSSARY

    def test_invalid_glossary_uses_defaults(self, tmp_path):
        path = tmp_path / "glossary.yaml"
        path.write_text("entries: not-a-list\n", encoding="utf-8")

        assert load_glossary(path) is DEFAULT_GLOSSARY


class TestRecording:
    """Tests for record_pattern_success / record_pattern_failure."""

    def test_success_creates_and_persists(self, llkb_ctx, tmp_path):
        pattern = record_pattern_success("User clicks 'Save'", CLICK_SAVE, "JRN-0001", llkb_ctx)

        assert pattern.success_count == 1
        assert pattern.confidence == pytest.approx(calculate_confidence(1, 0))

        reopened = LlkbContext(tmp_path / "llkb")
        assert [p.id for p in reopened.learned_patterns()] == [pattern.id]

    def test_success_upserts_by_normalized_text(self, llkb_ctx):
        record_pattern_success("User clicks 'Save'", CLICK_SAVE, "JRN-0001", llkb_ctx)
        record_pattern_success("Customer clicks 'Save'", CLICK_SAVE, "JRN-0002", llkb_ctx)
        pattern = record_pattern_success("user clicks 'Save'", CLICK_SAVE, "JRN-0002", llkb_ctx)

        assert len(llkb_ctx.learned_patterns()) == 1
        assert pattern.success_count == 3
        assert pattern.source_journeys == ["JRN-0001", "JRN-0002"]

    def test_failure_on_unseen_text_creates_nothing(self, llkb_ctx):
        assert record_pattern_failure("User clicks 'Nope'", "JRN-0001", llkb_ctx) is None
        assert not llkb_ctx.patterns_path.exists()

    def test_failure_lowers_confidence(self, llkb_ctx):
        before = record_pattern_success("User clicks 'Save'", CLICK_SAVE, "JRN-0001", llkb_ctx)

        after = record_pattern_failure("User clicks 'Save'", "JRN-0001", llkb_ctx)

        assert after.fail_count == 1
        assert after.confidence < before.confidence
        assert before.fail_count == 0

    def test_returned_pattern_is_detached_from_store(self, llkb_ctx):
        pattern = record_pattern_success("User clicks 'Save'", CLICK_SAVE, "JRN-0001", llkb_ctx)

        pattern.confidence = 0.0
        pattern.source_journeys.append("JRN-9999")
        llkb_ctx.learned_patterns()[0].success_count = 100

        stored = llkb_ctx.learned_patterns()[0]
        assert stored.confidence == pytest.approx(calculate_confidence(1, 0))
        assert stored.source_journeys == ["JRN-0001"]
        assert stored.success_count == 1

    def test_failed_save_leaves_store_unchanged(self, llkb_ctx, monkeypatch):
        record_pattern_success("User clicks 'Save'", CLICK_SAVE, "JRN-0001", llkb_ctx)
        monkeypatch.setattr("autoheal.llkb.context.atomic_write_json", lambda path, data: False)

        record_pattern_success("User clicks 'Save'", CLICK_SAVE, "JRN-0002", llkb_ctx)
        record_pattern_failure("User clicks 'Save'", "JRN-0002", llkb_ctx)

        stored = llkb_ctx.learned_patterns()[0]
        assert stored.success_count == 1
        assert stored.fail_count == 0
        assert stored.source_journeys == ["JRN-0001"]

    def test_contexts_are_isolated(self, tmp_path):
        first = LlkbContext(tmp_path / "a")
        second = LlkbContext(tmp_path / "b")

        record_pattern_success("User clicks 'Save'", CLICK_SAVE, "JRN-0001", first)

        assert second.learned_patterns() == []


class TestMatching:
    def test_match_after_success(self, llkb_ctx):
        record_pattern_success("User clicks 'Save'", CLICK_SAVE, "JRN-0001", llkb_ctx)

        match = match_llkb_pattern("Customer clicks 'Save'", llkb_ctx)

        assert match is not None
        assert match.action == CLICK_SAVE
        assert match.source == "learned"

    def test_no_match_below_threshold(self, llkb_ctx):
        record_pattern_success("User clicks 'Save'", CLICK_SAVE, "JRN-0001", llkb_ctx)
        record_pattern_failure("User clicks 'Save'", "JRN-0001", llkb_ctx)
        record_pattern_failure("User clicks 'Save'", "JRN-0002", llkb_ctx)

        assert match_llkb_pattern("User clicks 'Save'", llkb_ctx) is None

    def test_promoted_patterns_never_match(self, llkb_ctx):
        llkb_ctx.save_learned(
            [learned("User clicks 'Save'", confidence=0.95, promoted_to_core=True)]
        )

        assert match_llkb_pattern("User clicks 'Save'", llkb_ctx) is None

    def test_discovered_wins_ties(self, llkb_ctx):
        text = "User clicks 'Save'"
        write_discovered(
            llkb_ctx,
            {
                "id": "DP-1",
                "normalized_text": normalized(text),
                "mapped_action": "click",
                "confidence": 0.8,
                "layer": "app-specific",
                "selector_hints": [{"strategy": "data-testid", "value": "save-btn", "confidence": 0.9}],
            },
        )
        llkb_ctx.save_learned([learned(text, confidence=0.8)])

        match = match_llkb_pattern(text, llkb_ctx)

        assert match.source == "discovered"
        assert match.pattern_id == "DP-1"
        assert match.action == {"type": "click", "locator": {"strategy": "testid", "value": "save-btn"}}

    def test_more_confident_learned_beats_discovered(self, llkb_ctx):
        text = "User clicks 'Save'"
        write_discovered(
            llkb_ctx,
            {"id": "DP-1", "normalized_text": normalized(text), "mapped_action": "click", "confidence": 0.6},
        )
        llkb_ctx.save_learned([learned(text, confidence=0.9)])

        assert match_llkb_pattern(text, llkb_ctx).source == "learned"
        assert match_llkb_pattern(text, llkb_ctx, use_discovered=False).source == "learned"

    def test_layer_priority_before_confidence(self, llkb_ctx):
        text = "User opens settings"
        write_discovered(
            llkb_ctx,
            {"id": "U", "normalized_text": normalized(text), "mapped_action": "navigate",
             "confidence": 0.95, "layer": "universal"},
            {"id": "A", "normalized_text": normalized(text), "mapped_action": "click",
             "confidence": 0.6, "layer": "app-specific"},
        )

        assert match_llkb_pattern(text, llkb_ctx).pattern_id == "A"


class TestDiscoveredActions:
    """Action kinds from discovered-patterns.json."""

    def test_keyboard_presses_escape(self, llkb_ctx):
        text = "User dismisses the modal"
        write_discovered(
            llkb_ctx,
            {"id": "DP-KB", "normalized_text": normalized(text), "mapped_action": "keyboard", "confidence": 0.9},
        )

        match = match_llkb_pattern(text, llkb_ctx)

        assert match.action["type"] == "press"
        assert match.action["key"] == "Escape"

    def test_drag_is_unmappable(self, llkb_ctx):
        text = "User drags the card"
        write_discovered(
            llkb_ctx,
            {"id": "DP-DRAG", "normalized_text": normalized(text), "mapped_action": "drag", "confidence": 0.9},
        )

        assert match_llkb_pattern(text, llkb_ctx) is None

    def test_build_action(self):
        assert build_action("drag") is None
        assert build_action("teleport") is None
        assert build_action("navigate") == {"type": "goto", "url": "{{url}}"}
        assert build_action("fill")["value"] == {"type": "literal", "value": "{{input}}"}
        assert build_action("click")["locator"] == {"strategy": "testid", "value": "{{locator}}"}

    def test_locator_from_best_hint(self):
        action = build_action(
            "click",
            [
                {"strategy": "css", "value": ".save", "confidence": 0.4},
                {"strategy": "aria-label", "value": "Save", "confidence": 0.8},
            ],
        )

        assert action["locator"] == {"strategy": "label", "value": "Save"}


class TestPromotion:
    """Promotion freezes well-evidenced patterns."""

    def promotable(self) -> LearnedPattern:
        return learned(
            "User clicks 'Save'",
            confidence=0.95,
            success_count=10,
            source_journeys=["JRN-0001", "JRN-0002"],
        )

    def test_criteria_reports_missing(self):
        pattern = learned("User clicks 'Save'", confidence=0.6, success_count=1, source_journeys=["J"])

        meets, missing = meets_promotion_criteria(pattern)

        assert not meets
        assert any(m.startswith("confidence") for m in missing)
        assert any(m.startswith("source_journeys") for m in missing)

    def test_invalid_criteria(self):
        with pytest.raises(ValueError):
            PromotionCriteria(min_confidence=1.5)

    def test_promote_freezes_pattern(self, llkb_ctx):
        pattern = self.promotable()
        llkb_ctx.save_learned([pattern])

        assert [c.pattern.id for c in get_promotable_patterns(llkb_ctx)] == [pattern.id]

        result = promote_patterns(llkb_ctx)

        assert result == {"promoted": [pattern.id], "skipped": []}
        assert get_promotable_patterns(llkb_ctx) == []
        assert match_llkb_pattern("User clicks 'Save'", llkb_ctx) is None
        assert prune_patterns(llkb_ctx, min_confidence=0.99)["remaining"] == 1

        reopened = LlkbContext(llkb_ctx.base_dir)
        assert reopened.learned_patterns()[0].promoted_at is not None

    def test_promote_only_selected(self, llkb_ctx):
        first = self.promotable()
        second = learned("User clicks 'Cancel'", confidence=0.95, success_count=8,
                         source_journeys=["A", "B"])
        llkb_ctx.save_learned([first, second])

        result = promote_patterns(llkb_ctx, pattern_ids=[second.id])

        assert result["promoted"] == [second.id]

    def test_analyze(self, llkb_ctx):
        near = learned("User clicks 'Next'", confidence=0.85, success_count=4, source_journeys=["A", "B"])
        fresh = learned("User clicks 'Back'", confidence=0.6, success_count=1)
        frozen = learned("User clicks 'Done'", confidence=0.95, promoted_to_core=True)
        llkb_ctx.save_learned([self.promotable(), near, fresh, frozen])

        report = analyze_for_promotion(llkb_ctx)

        assert report.total_patterns == 4
        assert len(report.promotable) == 1
        assert report.near_promotion[0].pattern.id == near.id
        assert report.near_promotion[0].estimated_uses_needed == 1
        assert report.needs_more_data == 1
        assert report.already_promoted == 1
        assert report.to_dict()["stats"]["eligible_for_promotion"] == 1


class TestRegex:
    def test_generated_regex(self):
        regex = generate_regex_from_text("User clicks the 'Save' button")

        assert regex == r"^(?:user\s+)?clicks? (?:the\s+)?'([^']+)' button$"
        assert re.match(regex, "user clicks the 'save' button")
        assert re.match(regex, "click 'save' button").group(1) == "save"

    def test_metacharacters_escaped(self):
        regex = generate_regex_from_text("Total is $5.00")

        assert re.match(regex, "total is $5.00")
        assert not re.match(regex, "total is $5x00")


class TestMaintenance:
    def test_prune(self, llkb_ctx):
        llkb_ctx.save_learned(
            [
                learned("User clicks 'Low'", confidence=0.2, success_count=1),
                learned("User clicks 'Unused'", confidence=0.5, success_count=0),
                learned("User clicks 'Good'", confidence=0.8, success_count=3),
                learned("User clicks 'Frozen'", confidence=0.1, promoted_to_core=True),
            ]
        )

        result = prune_patterns(llkb_ctx)

        assert result == {"removed": 2, "remaining": 2}
        remaining = {p.original_text for p in LlkbContext(llkb_ctx.base_dir).learned_patterns()}
        assert remaining == {"User clicks 'Good'", "User clicks 'Frozen'"}

    def test_stats(self, llkb_ctx):
        llkb_ctx.save_learned(
            [
                learned("a", confidence=0.8, success_count=4, fail_count=1),
                learned("b", confidence=0.2, success_count=0, fail_count=3),
                learned("c", confidence=0.5, promoted_to_core=True),
            ]
        )

        stats = get_pattern_stats(llkb_ctx)

        assert stats.total == 3
        assert stats.promoted == 1
        assert stats.high_confidence == 1
        assert stats.low_confidence == 1
        assert stats.avg_confidence == pytest.approx(0.5)
        assert stats.total_failures == 4

    def test_stats_empty(self, llkb_ctx):
        assert get_pattern_stats(llkb_ctx).total == 0

    def test_export(self, llkb_ctx):
        keep = learned("User clicks the 'Save' button", confidence=0.8, source_journeys=["A", "B"])
        llkb_ctx.save_learned(
            [
                keep,
                learned("User clicks 'Maybe'", confidence=0.5),
                learned("User clicks 'Done'", confidence=0.95, promoted_to_core=True),
            ]
        )

        result = export_patterns_to_config(llkb_ctx)

        assert result["exported"] == 1
        assert result["saved"]
        document = json.loads(llkb_ctx.export_path.read_text(encoding="utf-8"))
        exported = document["patterns"][0]
        assert exported["id"] == keep.id
        assert exported["trigger"] == generate_regex_from_text(keep.original_text)
        assert exported["primitive"] == CLICK_SAVE
        assert exported["source_count"] == 2

    def test_clear(self, llkb_ctx):
        record_pattern_success("User clicks 'Save'", CLICK_SAVE, "JRN-0001", llkb_ctx)

        clear_learned_patterns(llkb_ctx)

        assert not llkb_ctx.patterns_path.exists()
        assert llkb_ctx.learned_patterns() == []


class TestStoreFiles:
    def test_corrupt_store_is_backed_up(self, llkb_ctx):
        llkb_ctx.base_dir.mkdir(parents=True)
        llkb_ctx.patterns_path.write_text("{ not json", encoding="utf-8")

        assert llkb_ctx.learned_patterns() == []
        backups = list(llkb_ctx.base_dir.glob("learned-patterns.json.corrupt-*"))
        assert len(backups) == 1

    def test_legacy_seed_entries(self, llkb_ctx):
        llkb_ctx.base_dir.mkdir(parents=True)
        llkb_ctx.patterns_path.write_text(
            json.dumps(
                {
                    "version": "1.0.0",
                    "patterns": [
                        {
                            "id": "LP1",
                            "originalText": "User clicks Save",
                            "normalizedText": "user clicks submit",
                            "irPrimitive": "click",
                            "confidence": 0.7,
                            "successCount": 3,
                        },
                        {
                            "id": "LP2",
                            "originalText": "User drags the card",
                            "normalizedText": "user drags the card",
                            "irPrimitive": "drag",
                            "confidence": 0.7,
                        },
                    ],
                }
            ),
            encoding="utf-8",
        )

        patterns = llkb_ctx.learned_patterns()

        assert [p.id for p in patterns] == ["LP1"]
        assert patterns[0].mapped_action == build_action("click")
        assert patterns[0].success_count == 3
