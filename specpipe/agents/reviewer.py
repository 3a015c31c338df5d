"""Reviewer role — builds the review request for a candidate artifact.

The reviewer reply is classified by ``specpipe.utils.parsing.classify_review``:
APPROVED / NEEDS_REVISION <feedback> / anything else (forced revision).
"""

from specpipe.agents.prompts import get_reviewer_prompt
from specpipe.config import get_config
from specpipe.llm.gateway import ModelRequest
from specpipe.state import FeedbackEntry, RunContext

TRUNCATION_MARKER = "\n... [truncated]"


def truncate(content: str, limit: int) -> str:
    """Cut content to limit characters, marking the cut."""
    if len(content) <= limit:
        return content
    return content[:limit] + TRUNCATION_MARKER


def _build_user_prompt(
    context: RunContext,
    artifact_type: str,
    candidate: str,
    feedback: list[FeedbackEntry],
    sibling_limit: int,
) -> str:
    parts = [
        "## Artifact to Review",
        f"Type: {artifact_type}.spec",
        f"Module: {context.run_name}",
        "",
        "### Content:",
        "```spec",
        candidate,
        "```",
        "",
        "## Original Requirements",
        context.goal,
        "",
    ]

    siblings = context.siblings_of(artifact_type)
    if siblings:
        parts.append("## Previous Artifacts (check for consistency)")
        for artifact in siblings:
            parts.append(f"### {artifact.artifact_type}.spec")
            parts.append("```spec")
            parts.append(truncate(artifact.content, sibling_limit))
            parts.append("```")
            parts.append("")

    relevant = [e for e in feedback if e.artifact_type == artifact_type]
    if relevant:
        parts.append("## Previous Feedback Given (check if addressed)")
        for entry in relevant:
            parts.append(f"### Cycle {entry.cycle}:")
            parts.append(entry.reviewer_feedback)
            parts.append("")

    parts.extend([
        "## Review Instructions",
        f"Evaluate this {artifact_type}.spec artifact for:",
        "1. **Format Correctness**: Does it follow the Spec IR format?",
        "2. **Completeness**: Are all required sections present?",
        "3. **Consistency**: Does it align with previous artifacts and requirements?",
        "4. **Quality**: Is it well-structured with clear descriptions?",
    ])
    if relevant:
        parts.append("5. **Feedback Addressed**: Were previous feedback items addressed?")
    parts.extend([
        "",
        "## Response Format",
        "If acceptable, respond with exactly: APPROVED",
        "",
        "If changes needed, respond with: NEEDS_REVISION",
        "Then provide specific, actionable feedback.",
    ])
    return "\n".join(parts)


def build_reviewer_request(
    context: RunContext,
    artifact_type: str,
    candidate: str,
    model: str,
) -> ModelRequest:
    config = get_config()
    return ModelRequest(
        system_prompt=get_reviewer_prompt(),
        user_message=_build_user_prompt(
            context,
            artifact_type,
            candidate,
            context.feedback_log,
            config.get("reviewer_sibling_char_limit", 2000),
        ),
        model=model,
        max_tokens=config.get("reviewer_max_tokens", 2048),
        temperature=config.get("reviewer_temperature", 0.3),
    )
