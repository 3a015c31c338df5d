"""Entry point: validates input, runs (or resumes) the pipeline, writes the bundle."""

import asyncio
import sys

from specpipe.checkpoint import CheckpointStore, FileKVStore
from specpipe.config import ApiKeys, RunConfig, get_config
from specpipe.llm.gateway import RateLimitWait, format_duration
from specpipe.observer import ProgressObserver
from specpipe.pipeline import PipelineDriver, RunOutcome
from specpipe.stages import PIPELINE_STAGES, Stage
from specpipe.state import Artifact, FeedbackCycleResult
from specpipe.utils.formatter import write_bundle
from specpipe.utils.validator import validate_input


class ConsoleObserver(ProgressObserver):
    """Prints pipeline events to the terminal and asks clarifications on stdin."""

    def on_stage_start(self, stage: Stage) -> None:
        print(f"\n[specpipe] Stage {stage.number}/{len(PIPELINE_STAGES)}: {stage.name}")

    def on_artifact_start(self, stage: Stage, artifact_type: str) -> None:
        print(f"[specpipe]   {artifact_type}.spec.ir ...")

    def on_cycle(self, artifact_type: str, cycle: int, max_cycles: int) -> None:
        if cycle > 1:
            print(f"[specpipe]     revision cycle {cycle}/{max_cycles}")

    def on_artifact_complete(self, artifact: Artifact, result: FeedbackCycleResult) -> None:
        verdict = "approved" if result.approved else "best effort (not approved)"
        print(f"[specpipe]   {artifact.file_name}: {verdict} after {result.cycles_used} cycle(s)")

    def on_rate_limit_wait(self, wait: RateLimitWait) -> None:
        what = "Rate limited by" if wait.reason == "rate_limit" else "Transient error from"
        if wait.sustained:
            what = "Repeatedly rate limited by"
        print(
            f"[specpipe] {what} {wait.provider}. Waiting {format_duration(wait.delay)} "
            f"(attempt {wait.attempt}/{wait.max_attempts})...",
            file=sys.stderr,
        )

    async def ask_clarification(self, question: str) -> str:
        print("\n--- The pipeline needs your input ---\n")
        print(question)
        try:
            answer = await asyncio.to_thread(input, "Your answer (empty to let the agent decide): ")
        except EOFError:
            # stdin already consumed by the goal
            print("[specpipe] No interactive input; letting the agent decide.", file=sys.stderr)
            return ""
        print()
        return answer.strip()

    def on_error(self, message: str, resumable: bool) -> None:
        print(f"[specpipe] Error: {message}", file=sys.stderr)
        if resumable:
            print("[specpipe] Progress is saved. Re-run with --resume to continue.", file=sys.stderr)


def _store() -> CheckpointStore:
    return CheckpointStore(FileKVStore(get_config().get("checkpoint_dir", "./.specpipe")))


async def run(goal: str | None, resume: bool = False, clarify: bool | None = None) -> RunOutcome:
    """Run the full pipeline on a goal, or resume the saved run.

    Args:
        goal: The user's free-text description. Ignored when resuming.
        resume: Continue from the saved checkpoint.
        clarify: Override for clarification pauses. None uses config default.
    """
    config = get_config()
    clarify_enabled = clarify if clarify is not None else config.get("clarify_enabled", True)
    store = _store()
    api_keys = ApiKeys.from_env()

    checkpoint = None
    if resume:
        checkpoint = store.load()
        if checkpoint is None:
            raise SystemExit("[specpipe] No saved run to resume.")
        run_config = checkpoint.run_config(api_keys)
        print(
            f"[specpipe] Resuming '{checkpoint.run_name}' at stage "
            f"{checkpoint.stage_index + 1} with {len(checkpoint.artifacts)} artifact(s) already done"
        )
    else:
        if store.exists():
            raise SystemExit(
                "[specpipe] A saved run exists. Continue it with --resume or discard it with --clear."
            )
        run_config = RunConfig.from_config(validate_input(goal), api_keys)

    driver = PipelineDriver(store, ConsoleObserver(), clarify=clarify_enabled)
    outcome = await driver.run(run_config, resume=checkpoint)

    if outcome.succeeded:
        path = write_bundle(outcome.artifacts, outcome.run_name)
        approved = sum(1 for a in outcome.artifacts if a.approved)
        print(f"\n[specpipe] Status: complete ({approved}/{len(outcome.artifacts)} approved)")
        print(f"[specpipe] Output written to: {path}")
    else:
        print(f"\n[specpipe] Status: failed with {len(outcome.artifacts)} artifact(s) finalized")
    return outcome


def main() -> None:
    """CLI entry point — accepts the goal as argument or from stdin."""
    args = sys.argv[1:]

    if "--clear" in args:
        _store().clear()
        print("[specpipe] Saved run cleared.")
        return

    resume = False
    if "--resume" in args:
        resume = True
        args.remove("--resume")

    clarify = None
    if "--no-clarify" in args:
        clarify = False
        args.remove("--no-clarify")

    goal = None
    if not resume:
        if args:
            goal = " ".join(args)
        else:
            print("Describe what you want to build (Ctrl+D / Ctrl+Z to submit):")
            goal = sys.stdin.read()

    try:
        outcome = asyncio.run(run(goal, resume=resume, clarify=clarify))
    except KeyboardInterrupt:
        print("\n[specpipe] Interrupted. Re-run with --resume to continue.", file=sys.stderr)
        sys.exit(130)

    sys.exit(0 if outcome.succeeded else 1)


if __name__ == "__main__":
    main()
