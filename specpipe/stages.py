"""Fixed pipeline definition: which stage runs when, and what it must produce."""

from dataclasses import dataclass
from typing import Literal

StageCategory = Literal["spec", "execution"]


@dataclass(frozen=True)
class Stage:
    index: int  # 0-based position in PIPELINE_STAGES
    kind: str
    name: str
    category: StageCategory
    outputs: tuple[str, ...]  # artifact types, in production order

    @property
    def number(self) -> int:
        """1-based stage number for display."""
        return self.index + 1


PIPELINE_STAGES: tuple[Stage, ...] = (
    Stage(0, "product", "Product Agent", "spec", ("contract",)),
    Stage(1, "architect", "Architect Agent", "spec", ("module", "infrastructure", "data", "decisions")),
    Stage(2, "scrum", "Scrum Agent", "spec", ("tasks",)),
    Stage(3, "developer", "Developer Agent", "execution", ("types", "events", "interface", "function")),
    Stage(4, "tester", "Tester Agent", "execution", ("tests",)),
    Stage(5, "devops", "DevOps Agent", "execution", ("pipeline",)),
)

ARTIFACT_TYPES: tuple[str, ...] = tuple(t for stage in PIPELINE_STAGES for t in stage.outputs)

# Artifact types that live in a subdirectory of the bundle
_SUBDIRS = {"interface": "interfaces", "function": "functions"}


def artifact_file_name(artifact_type: str) -> str:
    return f"{artifact_type}.spec.ir"


def artifact_file_path(artifact_type: str) -> str:
    subdir = _SUBDIRS.get(artifact_type)
    name = artifact_file_name(artifact_type)
    return f"{subdir}/{name}" if subdir else name


def validate_stages(stages: tuple[Stage, ...]) -> None:
    """Raise ValueError unless indices are contiguous and artifact types unique."""
    seen: set[str] = set()
    for position, stage in enumerate(stages):
        if stage.index != position:
            raise ValueError(f"Stage '{stage.kind}' has index {stage.index}, expected {position}.")
        if not stage.outputs:
            raise ValueError(f"Stage '{stage.kind}' declares no outputs.")
        for artifact_type in stage.outputs:
            if artifact_type in seen:
                raise ValueError(f"Artifact type '{artifact_type}' is produced by more than one stage.")
            seen.add(artifact_type)
