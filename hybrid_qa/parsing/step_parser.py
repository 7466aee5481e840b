"""
Heuristic step parser.

Turns human-authored step descriptions ("tap \"Login\"", "wait 2 seconds")
into typed actions. This is a lexical best-effort classifier, not a grammar:
a step is classified by the first rule in ACTION_RULES whose trigger word
appears anywhere in it, so the rule order decides ambiguous steps.
"""

import re
from typing import List, Optional, Sequence, Tuple

from ..models import Action, ActionKind

DEFAULT_WAIT_MS = 3000

# Order matters: first match wins.
ACTION_RULES: Tuple[Tuple[Tuple[str, ...], ActionKind], ...] = (
    (("launch", "open"), ActionKind.LAUNCH),
    (("tap", "click"), ActionKind.TAP),
    (("type", "enter"), ActionKind.INPUT),
    (("verify", "assert"), ActionKind.VERIFY),
    (("wait",), ActionKind.WAIT),
    (("scroll",), ActionKind.SCROLL),
    (("swipe",), ActionKind.SWIPE),
)

QUOTED_PATTERN = re.compile(r'"([^"]+)"')

ELEMENT_PATTERNS = (
    re.compile(r"button[:\s]+([^,\s]+)", re.IGNORECASE),
    re.compile(r"field[:\s]+([^,\s]+)", re.IGNORECASE),
    re.compile(r"link[:\s]+([^,\s]+)", re.IGNORECASE),
    re.compile(r"element[:\s]+([^,\s]+)", re.IGNORECASE),
    re.compile(r"on[:\s]+([^,\s]+)", re.IGNORECASE),
)

TYPE_INTO_PATTERN = re.compile(
    r'(?:type|enter)\s+"([^"]+)"\s+(?:into|in)\s+"([^"]+)"', re.IGNORECASE
)
INPUT_SEPARATOR = re.compile(r"(?:into|in|to)\s+", re.IGNORECASE)
INPUT_VERB = re.compile(r"^(?:type|enter)\s+", re.IGNORECASE)

DURATION_PATTERN = re.compile(
    r"(\d+)\s*(?:seconds?|secs?|ms|milliseconds?)?", re.IGNORECASE
)


def classify_step(step: str) -> ActionKind:
    """Return the action kind of the first rule matching the step."""
    lowered = step.lower()
    for triggers, kind in ACTION_RULES:
        if any(trigger in lowered for trigger in triggers):
            return kind
    return ActionKind.CUSTOM


def extract_target(step: str) -> str:
    """
    Extract the element a step refers to.

    Precedence: first double-quoted substring, then the first
    ``button:/field:/link:/element:/on:`` pattern, then the whole step.
    """
    quoted = QUOTED_PATTERN.search(step)
    if quoted:
        return quoted.group(1)

    for pattern in ELEMENT_PATTERNS:
        match = pattern.search(step)
        if match:
            return match.group(1)

    return step


def extract_input_values(step: str) -> Tuple[str, str]:
    """Extract ``(target, value)`` from an input step."""
    match = TYPE_INTO_PATTERN.search(step)
    if match:
        return match.group(2), match.group(1)

    parts = INPUT_SEPARATOR.split(step, maxsplit=1)
    if len(parts) >= 2:
        value = INPUT_VERB.sub("", parts[0]).replace('"', "").strip()
        target = parts[1].replace('"', "").strip()
        return target, value

    return step, ""


def extract_wait_duration(step: str) -> int:
    """Wait duration in milliseconds; bare numbers are seconds."""
    match = DURATION_PATTERN.search(step)
    if match:
        value = int(match.group(1))
        lowered = step.lower()
        if "ms" in lowered or "millisecond" in lowered:
            return value
        return value * 1000

    return DEFAULT_WAIT_MS


def parse_step(step: str) -> Action:
    """Parse a single step description into an action."""
    kind = classify_step(step)

    if kind == ActionKind.INPUT:
        target, value = extract_input_values(step)
        return Action(kind=kind, target=target, value=value)

    if kind == ActionKind.WAIT:
        return Action(kind=kind, value=str(extract_wait_duration(step)))

    if kind == ActionKind.CUSTOM:
        return Action(kind=kind, target=step)

    return Action(kind=kind, target=extract_target(step))


def parse_steps(steps: Sequence[str]) -> List[Action]:
    """Parse steps into actions, one per step, preserving order."""
    return [parse_step(step) for step in steps]


def wait_duration_ms(action: Action, default: Optional[int] = None) -> int:
    """Duration carried by a wait action, falling back to the default wait."""
    try:
        return int(action.value) if action.value else (default or DEFAULT_WAIT_MS)
    except ValueError:
        return default or DEFAULT_WAIT_MS
