"""
Discovered Patterns
===================

Patterns mined from the application under test live in
``discovered-patterns.json``. They only name an action kind ("click",
"fill", ...); this module turns that name plus optional selector hints into a
concrete action dict, and picks the best exact match across layers
(app-specific over framework over universal).

Unmappable kinds (``drag``, anything unknown) yield no action.
"""

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import DiscoveredPattern

LAYER_PRIORITY: dict[str, int] = {
    "app-specific": 3,
    "framework": 2,
    "universal": 1,
}

SELECTOR_STRATEGY_MAP: dict[str, str] = {
    "data-testid": "testid",
    "data-cy": "testid",
    "data-test": "testid",
    "role": "role",
    "aria-label": "label",
    "css": "css",
    "text": "text",
    "xpath": "css",  # no xpath locator strategy
}

KEYBOARD_KEY = "Escape"

Locator = dict[str, str]


def build_locator(hints: list[dict[str, Any]] | None) -> Locator:
    """Locator from the most confident hint, or a templated testid."""
    if not hints:
        return {"strategy": "testid", "value": "{{locator}}"}
    best = max(hints, key=lambda h: h.get("confidence") or 0)
    return {
        "strategy": SELECTOR_STRATEGY_MAP.get(best.get("strategy", ""), "testid"),
        "value": best.get("value", "{{locator}}"),
    }


_BUILDERS: dict[str, Callable[[Locator], dict[str, Any]]] = {
    # interactions
    "click": lambda loc: {"type": "click", "locator": loc},
    "dblclick": lambda loc: {"type": "dblclick", "locator": loc},
    "fill": lambda loc: {
        "type": "fill",
        "locator": loc,
        "value": {"type": "literal", "value": "{{input}}"},
    },
    "check": lambda loc: {"type": "check", "locator": loc},
    "uncheck": lambda loc: {"type": "uncheck", "locator": loc},
    "select": lambda loc: {"type": "select", "locator": loc, "option": "{{option}}"},
    "hover": lambda loc: {"type": "hover", "locator": loc},
    "clear": lambda loc: {"type": "clear", "locator": loc},
    "press": lambda loc: {"type": "press", "key": "Enter", "locator": loc},
    # navigation
    "navigate": lambda loc: {"type": "goto", "url": "{{url}}"},
    "goto": lambda loc: {"type": "goto", "url": "{{url}}"},
    "reload": lambda loc: {"type": "reload"},
    "goBack": lambda loc: {"type": "goBack"},
    # assertions and waits
    "assert": lambda loc: {"type": "expectVisible", "locator": loc},
    "expectVisible": lambda loc: {"type": "expectVisible", "locator": loc},
    "expectText": lambda loc: {"type": "expectText", "locator": loc, "text": "{{text}}"},
    "expectURL": lambda loc: {"type": "expectURL", "pattern": "{{pattern}}"},
    "waitForVisible": lambda loc: {"type": "waitForVisible", "locator": loc},
    # files
    "upload": lambda loc: {"type": "upload", "locator": loc, "files": ["{{file}}"]},
    # shortcut used by modal templates; the key is fixed
    "keyboard": lambda loc: {"type": "press", "key": KEYBOARD_KEY, "locator": loc},
}

ACTION_KINDS: tuple[str, ...] = tuple(kind for kind in _BUILDERS if kind != "keyboard")


def build_action(kind: str, hints: list[dict[str, Any]] | None = None) -> dict[str, Any] | None:
    """
    Concrete action for a discovered action kind.

    ``drag`` and unknown kinds have no action shape and return None.
    """
    builder = _BUILDERS.get(kind)
    if builder is None:
        return None
    return builder(build_locator(hints))


def layer_priority(layer: str) -> int:
    return LAYER_PRIORITY.get(layer, 0)


def best_discovered_match(
    normalized_text: str,
    patterns: Iterable["DiscoveredPattern"],
    min_confidence: float,
) -> tuple["DiscoveredPattern", dict[str, Any]] | None:
    """
    Highest-layer, then most confident, exact match with its action.

    Returns None when nothing matches or the winner's kind is unmappable.
    """
    candidates = [
        p
        for p in patterns
        if p.normalized_text == normalized_text and p.confidence >= min_confidence
    ]
    if not candidates:
        return None

    best = max(candidates, key=lambda p: (layer_priority(p.layer), p.confidence))
    action = best.to_action()
    if action is None:
        return None
    return best, action
