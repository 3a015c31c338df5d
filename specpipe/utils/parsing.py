"""Shared parsing utilities for model output and provider error text."""

import re
from dataclasses import dataclass
from typing import Literal

# Leading and trailing fences are stripped independently; fences inside the
# body are content.
_OPEN_FENCE_RE = re.compile(r"\A```[\w.+-]*[ \t]*\n?")
_CLOSE_FENCE_RE = re.compile(r"\n?[ \t]*```\Z")

APPROVED_MARKER = "APPROVED"
_NEEDS_REVISION_RE = re.compile(r"\ANEEDS[_ ]REVISION\b[:\-\s]*", re.IGNORECASE)
QUESTION_MARKER = "QUESTION:"

GENERIC_REVISION_FEEDBACK = "Reviewer requested changes but did not provide specific feedback."
UNPARSEABLE_FEEDBACK = "Unable to parse reviewer response."

# "retry after 5 seconds", "Please retry in 13.2s", "try again in 20 sec".
# The number must follow retry wording; "50 requests per 60s" is a window, not a hint.
_RETRY_HINT_RE = re.compile(
    r"(?:retry|try again)\D{0,20}?(\d+(?:\.\d+)?)\s*(?:seconds?|secs?|s)\b",
    re.IGNORECASE,
)


def strip_fences(text: str) -> str:
    """Strip a leading and a trailing markdown code fence from LLM output, then trim."""
    cleaned = _OPEN_FENCE_RE.sub("", text.strip(), count=1)
    cleaned = _CLOSE_FENCE_RE.sub("", cleaned, count=1)
    return cleaned.strip()


@dataclass(frozen=True)
class ReviewVerdict:
    kind: Literal["approved", "needs_revision", "unparseable"]
    feedback: str = ""

    @property
    def approved(self) -> bool:
        return self.kind == "approved"


def classify_review(text: str) -> ReviewVerdict:
    """Classify reviewer output into approved / needs_revision / unparseable.

    - Starts with APPROVED: approved, whatever follows.
    - Starts with NEEDS_REVISION: the rest of the text is the feedback.
    - Anything else: a revision is required and the whole text is the
      feedback. Unrecognized replies never count as approval.
    """
    trimmed = (text or "").strip()

    if trimmed.startswith(APPROVED_MARKER):
        return ReviewVerdict("approved")

    match = _NEEDS_REVISION_RE.match(trimmed)
    if match:
        feedback = trimmed[match.end():].strip()
        return ReviewVerdict("needs_revision", feedback or GENERIC_REVISION_FEEDBACK)

    return ReviewVerdict("unparseable", trimmed or UNPARSEABLE_FEEDBACK)


def extract_question(content: str) -> str | None:
    """Return the clarification question if executor output asks one."""
    if content.startswith(QUESTION_MARKER):
        question = content[len(QUESTION_MARKER):].strip()
        return question or None
    return None


def parse_retry_after(value: str | None) -> float | None:
    """Parse a retry-after header value given in seconds."""
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except (ValueError, AttributeError):
        return None
    return seconds if seconds > 0 else None


def extract_retry_hint(message: str | None) -> float | None:
    """Pull a retry delay in seconds out of a provider error message."""
    if not message:
        return None
    match = _RETRY_HINT_RE.search(message)
    if not match:
        return None
    seconds = float(match.group(1))
    return seconds if seconds > 0 else None
