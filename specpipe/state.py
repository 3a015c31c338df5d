"""Run state — the artifacts and working context threaded through the pipeline."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Literal, TypedDict

from specpipe.stages import artifact_file_name, artifact_file_path

ARTIFACT_VERSION = "1.0.0"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Artifact:
    artifact_type: str
    content: str
    stage: str  # producing stage kind
    created_at: datetime = field(default_factory=utcnow)
    version: str = ARTIFACT_VERSION
    approved: bool = True
    cycles_used: int = 1

    @property
    def file_name(self) -> str:
        return artifact_file_name(self.artifact_type)

    @property
    def file_path(self) -> str:
        return artifact_file_path(self.artifact_type)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Artifact":
        return cls(
            artifact_type=data["artifact_type"],
            content=data["content"],
            stage=data["stage"],
            created_at=datetime.fromisoformat(data["created_at"]),
            version=data.get("version", ARTIFACT_VERSION),
            approved=data.get("approved", True),
            cycles_used=data.get("cycles_used", 1),
        )


@dataclass(frozen=True)
class FeedbackEntry:
    """One rejected attempt within an artifact's feedback cycle."""

    cycle: int
    artifact_type: str
    reviewer_feedback: str
    rejected_content: str
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class FeedbackCycleResult:
    artifact: Artifact
    cycles_used: int
    approved: bool
    feedback_history: tuple[FeedbackEntry, ...] = ()


@dataclass
class RunContext:
    session_id: str
    goal: str
    run_name: str
    # Insertion order is production order
    artifacts: dict[str, Artifact] = field(default_factory=dict)
    # Rejected attempts for the artifact currently in progress only
    feedback_log: list[FeedbackEntry] = field(default_factory=list)
    # (question, answer) pairs from clarification pauses
    clarifications: list[dict] = field(default_factory=list)

    def add(self, artifact: Artifact) -> None:
        if artifact.artifact_type in self.artifacts:
            raise ValueError(f"Artifact type '{artifact.artifact_type}' already produced in this run.")
        self.artifacts[artifact.artifact_type] = artifact

    def has(self, artifact_type: str) -> bool:
        return artifact_type in self.artifacts

    def ordered_artifacts(self) -> list[Artifact]:
        return list(self.artifacts.values())

    def siblings_of(self, artifact_type: str) -> list[Artifact]:
        """All finalized artifacts except the one of the given type."""
        return [a for t, a in self.artifacts.items() if t != artifact_type]


OrchestrationState = Literal["idle", "running", "complete", "error"]


class RunProgress(TypedDict):
    state: OrchestrationState
    current_stage: int  # 0-based index of the next stage to (re)run
    total_stages: int
    current_stage_kind: str | None
    current_artifact: str | None
    current_feedback_cycle: int
    max_feedback_cycles: int
    completed_artifacts: list[str]  # file names, production order
    status_message: str
    error: str | None


def initial_progress(total_stages: int, max_feedback_cycles: int) -> RunProgress:
    return {
        "state": "idle",
        "current_stage": 0,
        "total_stages": total_stages,
        "current_stage_kind": None,
        "current_artifact": None,
        "current_feedback_cycle": 0,
        "max_feedback_cycles": max_feedback_cycles,
        "completed_artifacts": [],
        "status_message": "Ready to start",
        "error": None,
    }
