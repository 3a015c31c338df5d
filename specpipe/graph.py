"""LangGraph StateGraph for one artifact's generate → review → revise loop.

    generate ──► review ──► END              (approved)
       ▲            │
       └─ increment ◄┤                       (needs revision, cycles left)
                    └──► exhausted ──► END   (cycle budget spent)

Per-run dependencies (gateway, RunContext, observer, models) travel in the
RunnableConfig "configurable" block so the compiled graph is shared.
"""

import sys
from typing import Literal, TypedDict

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph

from specpipe.agents.executor import build_executor_request, normalize_output
from specpipe.agents.reviewer import build_reviewer_request
from specpipe.config import get_config
from specpipe.llm.gateway import ModelGateway
from specpipe.observer import ProgressObserver
from specpipe.stages import Stage
from specpipe.state import Artifact, FeedbackCycleResult, FeedbackEntry, RunContext
from specpipe.utils.parsing import classify_review, extract_question

CycleStatus = Literal["generating", "reviewing", "accepted", "revising", "exhausted"]


class CycleState(TypedDict):
    artifact_type: str
    cycle: int  # 1-based
    max_cycles: int
    candidate: str
    status: CycleStatus
    clarifications_asked: int


def _deps(config: RunnableConfig) -> dict:
    return config["configurable"]


async def _generate_node(state: CycleState, config: RunnableConfig) -> dict:
    """Executor call, with an optional clarification pause before the review."""
    deps = _deps(config)
    context: RunContext = deps["context"]
    gateway: ModelGateway = deps["gateway"]
    observer: ProgressObserver = deps["observer"]
    stage: Stage = deps["stage"]
    artifact_type = state["artifact_type"]

    observer.on_cycle(artifact_type, state["cycle"], state["max_cycles"])

    async def _generate_once() -> str:
        request = build_executor_request(
            context, stage.kind, artifact_type, deps["executor_model"], state["max_cycles"]
        )
        response = await gateway.generate(request)
        return normalize_output(response.content)

    content = await _generate_once()

    asked = state["clarifications_asked"]
    settings = get_config()
    limit = settings.get("max_clarifications_per_artifact", 1) if deps.get("clarify", True) else 0
    question = extract_question(content)
    while question and asked < limit:
        answer = await observer.ask_clarification(question)
        context.clarifications.append({
            "artifact_type": artifact_type,
            "question": question,
            "answer": (answer or "").strip(),
        })
        asked += 1
        content = await _generate_once()
        question = extract_question(content)

    return {"candidate": content, "status": "reviewing", "clarifications_asked": asked}


async def _review_node(state: CycleState, config: RunnableConfig) -> dict:
    """Reviewer call; a rejection is recorded in the artifact's feedback log."""
    deps = _deps(config)
    context: RunContext = deps["context"]
    gateway: ModelGateway = deps["gateway"]
    artifact_type = state["artifact_type"]

    request = build_reviewer_request(context, artifact_type, state["candidate"], deps["reviewer_model"])
    response = await gateway.generate(request)
    verdict = classify_review(response.content)

    if verdict.approved:
        return {"status": "accepted"}

    if verdict.kind == "unparseable":
        print(
            f"[specpipe] Warning: reviewer reply for {artifact_type} had no verdict marker; "
            f"treating it as a revision request.",
            file=sys.stderr,
        )

    context.feedback_log.append(FeedbackEntry(
        cycle=state["cycle"],
        artifact_type=artifact_type,
        reviewer_feedback=verdict.feedback,
        rejected_content=state["candidate"],
    ))
    return {"status": "revising"}


def _route_after_review(state: CycleState) -> str:
    """Conditional edge after the reviewer: end, exhausted, or another cycle."""
    if state["status"] == "accepted":
        return "end"
    if state["cycle"] >= state["max_cycles"]:
        return "exhausted"
    return "increment"


def _increment_cycle(state: CycleState) -> dict:
    """Passthrough node that bumps the cycle counter before re-entering generation."""
    return {"cycle": state["cycle"] + 1, "status": "generating"}


def _set_exhausted(state: CycleState) -> dict:
    """Cycle budget spent. The last candidate stands as best effort."""
    return {"status": "exhausted"}


# --- Build the graph ---

workflow = StateGraph(CycleState)

workflow.add_node("generate", _generate_node)
workflow.add_node("review", _review_node)
workflow.add_node("increment", _increment_cycle)
workflow.add_node("exhausted", _set_exhausted)

workflow.set_entry_point("generate")

workflow.add_edge("generate", "review")

workflow.add_conditional_edges(
    "review",
    _route_after_review,
    {
        "end": END,
        "exhausted": "exhausted",
        "increment": "increment",
    },
)

workflow.add_edge("exhausted", END)
workflow.add_edge("increment", "generate")

graph = workflow.compile()


class FeedbackCycleEngine:
    """Runs the cycle graph for a single artifact and packages the result."""

    def __init__(
        self,
        gateway: ModelGateway,
        observer: ProgressObserver,
        max_cycles: int,
        clarify: bool = True,
    ):
        if max_cycles < 1:
            raise ValueError("max_cycles must be at least 1.")
        self.gateway = gateway
        self.observer = observer
        self.max_cycles = max_cycles
        self.clarify = clarify

    async def run(
        self,
        context: RunContext,
        stage: Stage,
        artifact_type: str,
        executor_model: str,
        reviewer_model: str,
    ) -> FeedbackCycleResult:
        # Each artifact starts with a clean feedback log
        context.feedback_log = []

        initial: CycleState = {
            "artifact_type": artifact_type,
            "cycle": 1,
            "max_cycles": self.max_cycles,
            "candidate": "",
            "status": "generating",
            "clarifications_asked": 0,
        }
        run_config: RunnableConfig = {
            "configurable": {
                "context": context,
                "gateway": self.gateway,
                "observer": self.observer,
                "stage": stage,
                "executor_model": executor_model,
                "reviewer_model": reviewer_model,
                "clarify": self.clarify,
            },
            "recursion_limit": 3 * self.max_cycles + 5,
        }
        final = await graph.ainvoke(initial, config=run_config)

        approved = final["status"] == "accepted"
        artifact = Artifact(
            artifact_type=artifact_type,
            content=final["candidate"],
            stage=stage.kind,
            approved=approved,
            cycles_used=final["cycle"],
        )
        history = tuple(context.feedback_log)
        context.feedback_log = []
        return FeedbackCycleResult(
            artifact=artifact,
            cycles_used=final["cycle"],
            approved=approved,
            feedback_history=history,
        )
