"""PipelineDriver — runs the fixed stage sequence with checkpointing and resume.

Ordering: stages run in declared order and, within a stage, artifacts run in
declared order. Each artifact therefore sees every artifact of earlier stages
and every earlier sibling of its own stage.

Failure policy: fail fast. A stage that raises stops the run; the checkpoint
is kept (annotated with the error) so ``run(config, resume=checkpoint)``
picks up at the first artifact that was not finalized.
"""

import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Literal

from specpipe.checkpoint import Checkpoint, CheckpointStore
from specpipe.config import RunConfig
from specpipe.errors import CredentialMissingError, SpecPipeError, StageFailureError, UnknownModelError
from specpipe.graph import FeedbackCycleEngine
from specpipe.llm.gateway import ModelGateway, RateLimitWait, format_duration
from specpipe.observer import ProgressObserver
from specpipe.stages import PIPELINE_STAGES, Stage, validate_stages
from specpipe.state import Artifact, RunContext, RunProgress, initial_progress
from specpipe.utils.validator import extract_run_name, validate_input


@dataclass
class RunOutcome:
    status: Literal["completed", "failed"]
    artifacts: list[Artifact] = field(default_factory=list)
    run_name: str = ""
    error: SpecPipeError | None = None
    resumable: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"


class StageExecutor:
    """Produces every declared output of one stage, skipping types already in context."""

    def __init__(
        self,
        stage: Stage,
        engine: FeedbackCycleEngine,
        observer: ProgressObserver,
        executor_model: str,
        reviewer_model: str,
        on_artifact_done: Callable[[Artifact], Awaitable[None] | None] | None = None,
    ):
        self.stage = stage
        self.engine = engine
        self.observer = observer
        self.executor_model = executor_model
        self.reviewer_model = reviewer_model
        self.on_artifact_done = on_artifact_done
        self.current_artifact: str | None = None

    def pending_outputs(self, context: RunContext) -> list[str]:
        return [t for t in self.stage.outputs if not context.has(t)]

    async def execute(self, context: RunContext) -> list[Artifact]:
        produced = []
        for artifact_type in self.pending_outputs(context):
            self.current_artifact = artifact_type
            self.observer.on_artifact_start(self.stage, artifact_type)

            result = await self.engine.run(
                context, self.stage, artifact_type, self.executor_model, self.reviewer_model
            )

            context.add(result.artifact)
            produced.append(result.artifact)
            self.observer.on_artifact_complete(result.artifact, result)
            if self.on_artifact_done is not None:
                maybe = self.on_artifact_done(result.artifact)
                if maybe is not None:
                    await maybe
        self.current_artifact = None
        return produced


class _TrackingObserver(ProgressObserver):
    """Keeps the driver's progress snapshot current, then forwards to the host observer."""

    def __init__(self, driver: "PipelineDriver", inner: ProgressObserver):
        self.driver = driver
        self.inner = inner

    def on_progress(self, progress: RunProgress) -> None:
        self.inner.on_progress(progress)

    def on_stage_start(self, stage: Stage) -> None:
        self.inner.on_stage_start(stage)

    def on_stage_complete(self, stage: Stage, artifacts: list[Artifact]) -> None:
        self.inner.on_stage_complete(stage, artifacts)

    def on_artifact_start(self, stage: Stage, artifact_type: str) -> None:
        self.driver._update(
            current_artifact=artifact_type,
            current_feedback_cycle=0,
            status_message=f"Generating {artifact_type}.spec",
        )
        self.inner.on_artifact_start(stage, artifact_type)

    def on_artifact_complete(self, artifact, result) -> None:
        self.inner.on_artifact_complete(artifact, result)

    def on_cycle(self, artifact_type: str, cycle: int, max_cycles: int) -> None:
        self.driver._update(
            current_feedback_cycle=cycle,
            max_feedback_cycles=max_cycles,
            status_message=f"{artifact_type}.spec - feedback cycle {cycle}/{max_cycles}",
        )
        self.inner.on_cycle(artifact_type, cycle, max_cycles)

    def on_rate_limit_wait(self, wait: RateLimitWait) -> None:
        self.inner.on_rate_limit_wait(wait)

    async def ask_clarification(self, question: str) -> str:
        self.driver._update(status_message="Waiting for clarification...")
        return await self.inner.ask_clarification(question)

    def on_error(self, message: str, resumable: bool) -> None:
        self.inner.on_error(message, resumable)


class PipelineDriver:
    def __init__(
        self,
        store: CheckpointStore,
        observer: ProgressObserver | None = None,
        stages: tuple[Stage, ...] = PIPELINE_STAGES,
        gateway_factory: Callable[..., ModelGateway] = ModelGateway,
        clarify: bool = True,
    ):
        validate_stages(stages)
        self.store = store
        self.observer = observer or ProgressObserver()
        self._tracker = _TrackingObserver(self, self.observer)
        self.stages = stages
        self.gateway_factory = gateway_factory
        self.clarify = clarify
        self.progress: RunProgress = initial_progress(len(stages), 0)

    # --- progress / persistence helpers ---

    def _update(self, **changes) -> None:
        self.progress = {**self.progress, **changes}
        self.observer.on_progress(self.progress)

    def _persist(self, config: RunConfig, context: RunContext, last_error: str | None = None) -> None:
        self.store.save(
            config.to_persisted(),
            self.progress,
            context.ordered_artifacts(),
            context.run_name,
            session_id=context.session_id,
            clarifications=context.clarifications,
            last_error=last_error,
        )

    def _on_wait(self, wait: RateLimitWait) -> None:
        if wait.reason != "rate_limit":
            what = "Retrying"
        elif wait.sustained:
            what = "Repeatedly rate limited by"
        else:
            what = "Rate limited by"
        self._update(status_message=(
            f"{what} {wait.provider}. Waiting {format_duration(wait.delay)} "
            f"(attempt {wait.attempt}/{wait.max_attempts})..."
        ))
        self.observer.on_rate_limit_wait(wait)

    def _required_models(self, config: RunConfig, start: int) -> list[str]:
        models = []
        for stage in self.stages[start:]:
            models.extend(config.models_for(stage.kind))
        return models

    def _fail(self, error: SpecPipeError, context: RunContext, resumable: bool) -> RunOutcome:
        self.observer.on_error(str(error), resumable)
        return RunOutcome(
            "failed", context.ordered_artifacts(), context.run_name, error=error, resumable=resumable
        )

    def _start_point(self, resume: Checkpoint) -> int:
        context_types = {a.artifact_type for a in resume.artifacts}
        start = min(resume.stage_index, len(self.stages))
        # Never skip past a stage with artifacts still missing
        for stage in self.stages[:start]:
            if any(t not in context_types for t in stage.outputs):
                return stage.index
        return start

    # --- main entry ---

    async def run(self, config: RunConfig, resume: Checkpoint | None = None) -> RunOutcome:
        """Run (or resume) the pipeline to a terminal outcome."""
        goal = validate_input(config.goal)
        self.progress = initial_progress(len(self.stages), config.max_feedback_cycles)

        if resume is not None:
            context = resume.to_context()
            start = self._start_point(resume)
        else:
            context = RunContext(
                session_id=f"session-{uuid.uuid4().hex[:12]}",
                goal=goal,
                run_name=extract_run_name(goal),
            )
            start = 0

        self.progress["current_stage"] = start
        self.progress["completed_artifacts"] = [a.file_name for a in context.ordered_artifacts()]
        resumable = resume is not None or self.store.exists()

        gateway = self.gateway_factory(config.api_keys, on_wait=self._on_wait)

        # Pre-flight: every remaining stage's executor and reviewer need a key
        try:
            missing = gateway.missing_credentials(self._required_models(config, start))
        except UnknownModelError as exc:
            self._update(state="error", error=str(exc), status_message=str(exc))
            return self._fail(exc, context, resumable)
        if missing:
            error = CredentialMissingError(missing)
            self._update(state="error", error=str(error), status_message=str(error))
            return self._fail(error, context, resumable)

        engine = FeedbackCycleEngine(gateway, self._tracker, config.max_feedback_cycles, clarify=self.clarify)

        self._update(
            state="running",
            status_message=(
                f"Resuming from stage {start + 1}..." if start > 0 or context.artifacts
                else "Starting orchestration..."
            ),
        )

        for stage in self.stages[start:]:
            executor_model, reviewer_model = config.models_for(stage.kind)

            def _artifact_done(artifact: Artifact) -> None:
                self._update(
                    current_artifact=None,
                    completed_artifacts=self.progress["completed_artifacts"] + [artifact.file_name],
                    status_message=f"Completed {artifact.file_name}",
                )
                self._persist(config, context)

            executor = StageExecutor(
                stage, engine, self._tracker, executor_model, reviewer_model,
                on_artifact_done=_artifact_done,
            )

            self._update(
                current_stage=stage.index,
                current_stage_kind=stage.kind,
                status_message=f"Starting stage {stage.number}: {stage.name}",
            )
            self._persist(config, context)
            self.observer.on_stage_start(stage)

            try:
                produced = await executor.execute(context)
            except Exception as exc:
                # KeyboardInterrupt and CancelledError are not Exceptions and propagate
                failure = StageFailureError(stage.kind, executor.current_artifact, exc)
                self._update(state="error", error=str(failure), status_message=str(failure))
                self._persist(config, context, last_error=str(failure))
                return self._fail(failure, context, resumable=True)

            self._update(
                current_stage=stage.index + 1,
                status_message=f"Completed stage {stage.number}: {stage.name}",
            )
            self._persist(config, context)
            self.observer.on_stage_complete(stage, produced)

        self._update(
            state="complete",
            current_stage=len(self.stages),
            current_stage_kind=None,
            current_artifact=None,
            status_message="Generation complete!",
        )
        self.store.clear()
        return RunOutcome("completed", context.ordered_artifacts(), context.run_name)
