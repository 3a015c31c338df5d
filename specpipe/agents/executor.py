"""Executor role — builds the generation request for one artifact and cleans its output."""

from specpipe.agents.prompts import get_system_prompt
from specpipe.config import get_config
from specpipe.llm.gateway import ModelRequest
from specpipe.state import FeedbackEntry, RunContext
from specpipe.utils.parsing import strip_fences


def _build_user_prompt(
    context: RunContext,
    artifact_type: str,
    feedback: list[FeedbackEntry],
    max_cycles: int,
) -> str:
    """Construct the executor prompt from the run context and this artifact's feedback."""
    parts = [
        "## Current Task",
        f"Generate the {artifact_type}.spec artifact for module: {context.run_name}",
        "",
        "## User Requirements",
        context.goal,
        "",
    ]

    if context.clarifications:
        parts.append("## Clarifications From The User")
        for item in context.clarifications:
            parts.append(f"- Q: {item['question']}")
            parts.append(f"  A: {item['answer'] or '(no answer — use your best judgment)'}")
        parts.append("")

    if context.artifacts:
        parts.append("## Previous Artifacts (for context)")
        for previous_type, artifact in context.artifacts.items():
            parts.append(f"### {previous_type}.spec")
            parts.append("```spec")
            parts.append(artifact.content)
            parts.append("```")
            parts.append("")

    if feedback:
        parts.append("## Previous Feedback (MUST address all issues)")
        parts.append(f"You are on revision cycle {len(feedback) + 1} of {max_cycles}.")
        parts.append("")
        for entry in feedback:
            parts.append(f"### Cycle {entry.cycle} Feedback:")
            parts.append(entry.reviewer_feedback)
            parts.append("")
        parts.append("**IMPORTANT**: Address ALL the feedback above in your revised artifact.")
        parts.append("")

    parts.extend([
        "## Instructions",
        f"1. Generate a complete, valid {artifact_type}.spec file",
        "2. Follow the exact Spec IR format specified in your system prompt",
        "3. Ensure consistency with previous artifacts",
        "4. Output ONLY the spec content - no explanations or markdown code fences around the entire output",
        "",
        f"Generate the {artifact_type}.spec artifact now:",
    ])
    return "\n".join(parts)


def build_executor_request(
    context: RunContext,
    stage_kind: str,
    artifact_type: str,
    model: str,
    max_cycles: int,
) -> ModelRequest:
    config = get_config()
    return ModelRequest(
        system_prompt=get_system_prompt(stage_kind),
        user_message=_build_user_prompt(context, artifact_type, context.feedback_log, max_cycles),
        model=model,
        max_tokens=config.get("executor_max_tokens", 8192),
        temperature=config.get("executor_temperature", 0.7),
    )


def normalize_output(raw: str) -> str:
    """Strip a fence wrapping the whole output and trim."""
    return strip_fences(raw)
