"""Input validation — checks the goal description and derives a run name from it."""

import re

DEFAULT_RUN_NAME = "generated-module"
MAX_RUN_NAME_LENGTH = 30

_NAME_PATTERNS = (
    re.compile(
        r"(?:build|create|implement|develop)\s+(?:(?:a|an|the)\s+)?(.+?)\s+(?:system|service|module|application|app)\b",
        re.IGNORECASE,
    ),
    re.compile(r"(.+?)\s+(?:system|service|module|application|app)\b", re.IGNORECASE),
)


def validate_input(goal: str) -> str:
    """Validate that the goal is a non-empty string.

    Returns the stripped input on success.
    Raises ValueError if input is empty or whitespace-only.
    """
    if not isinstance(goal, str) or not goal.strip():
        raise ValueError("Goal description must be a non-empty string.")
    return goal.strip()


def extract_run_name(goal: str) -> str:
    """Kebab-case name for the run, e.g. 'Build a payment processing service' -> 'payment-processing'."""
    for pattern in _NAME_PATTERNS:
        match = pattern.search(goal)
        if match and match.group(1):
            name = re.sub(r"[^a-z0-9\s]", "", match.group(1).lower())
            name = re.sub(r"\s+", "-", name.strip())[:MAX_RUN_NAME_LENGTH].strip("-")
            if name:
                return name
    return DEFAULT_RUN_NAME
