"""Progress observer — the seam between the pipeline and whatever displays it.

Every hook is a no-op by default, so hosts override only what they show.
``ask_clarification`` is the one suspend point owned by the host: the whole
pipeline waits on it until an answer string comes back.
"""

from specpipe.llm.gateway import RateLimitWait
from specpipe.stages import Stage
from specpipe.state import Artifact, FeedbackCycleResult, RunProgress


class ProgressObserver:
    def on_progress(self, progress: RunProgress) -> None:
        pass

    def on_stage_start(self, stage: Stage) -> None:
        pass

    def on_stage_complete(self, stage: Stage, artifacts: list[Artifact]) -> None:
        pass

    def on_artifact_start(self, stage: Stage, artifact_type: str) -> None:
        pass

    def on_artifact_complete(self, artifact: Artifact, result: FeedbackCycleResult) -> None:
        pass

    def on_cycle(self, artifact_type: str, cycle: int, max_cycles: int) -> None:
        pass

    def on_rate_limit_wait(self, wait: RateLimitWait) -> None:
        pass

    async def ask_clarification(self, question: str) -> str:
        """Return the user's answer. Empty string means 'proceed without one'."""
        return ""

    def on_error(self, message: str, resumable: bool) -> None:
        pass
