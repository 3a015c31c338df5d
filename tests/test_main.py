"""Tests for the CLI entry: run() guards around saved runs and bundle writing."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from specpipe.checkpoint import CheckpointStore, MemoryKVStore
from specpipe.main import ConsoleObserver, run
from specpipe.pipeline import RunOutcome
from specpipe.state import Artifact, initial_progress


@pytest.fixture
def store():
    return CheckpointStore(MemoryKVStore())


def _save(store, run_config):
    store.save(run_config.to_persisted(), initial_progress(6, 3), [], "todo-rest-api")


class TestRun:
    @pytest.mark.asyncio
    async def test_resume_without_saved_run_exits(self, mock_config, store):
        with patch("specpipe.main._store", return_value=store):
            with pytest.raises(SystemExit):
                await run(None, resume=True)

    @pytest.mark.asyncio
    async def test_fresh_run_refuses_to_discard_saved_run(self, mock_config, store, run_config):
        _save(store, run_config)
        with patch("specpipe.main._store", return_value=store):
            with pytest.raises(SystemExit) as exc_info:
                await run("Build a todo REST API service")
        assert "--resume" in str(exc_info.value)
        assert store.exists() is True

    @pytest.mark.asyncio
    async def test_success_writes_bundle(self, mock_config, store):
        artifacts = [Artifact("contract", "ir::contract {}", "product")]
        driver = MagicMock()
        driver.run = AsyncMock(return_value=RunOutcome("completed", artifacts, "todo-rest-api"))
        with patch("specpipe.main._store", return_value=store), \
                patch("specpipe.main.PipelineDriver", return_value=driver) as driver_cls, \
                patch("specpipe.main.write_bundle", return_value="out/todo-rest-api") as mock_write:
            outcome = await run("Build a todo REST API service", clarify=False)

        assert outcome.succeeded
        mock_write.assert_called_once_with(artifacts, "todo-rest-api")
        assert driver_cls.call_args.kwargs["clarify"] is False
        run_config = driver.run.call_args.args[0]
        assert run_config.goal == "Build a todo REST API service"
        assert driver.run.call_args.kwargs["resume"] is None

    @pytest.mark.asyncio
    async def test_failure_skips_bundle(self, mock_config, store):
        driver = MagicMock()
        driver.run = AsyncMock(return_value=RunOutcome("failed", [], "todo-rest-api", resumable=True))
        with patch("specpipe.main._store", return_value=store), \
                patch("specpipe.main.PipelineDriver", return_value=driver), \
                patch("specpipe.main.write_bundle") as mock_write:
            outcome = await run("Build a todo REST API service")

        assert outcome.succeeded is False
        mock_write.assert_not_called()

    @pytest.mark.asyncio
    async def test_resume_passes_checkpoint(self, mock_config, store, run_config):
        _save(store, run_config)
        driver = MagicMock()
        driver.run = AsyncMock(return_value=RunOutcome("failed", [], "todo-rest-api"))
        with patch("specpipe.main._store", return_value=store), \
                patch("specpipe.main.PipelineDriver", return_value=driver):
            await run(None, resume=True)

        checkpoint = driver.run.call_args.kwargs["resume"]
        assert checkpoint.run_name == "todo-rest-api"
        assert driver.run.call_args.args[0].goal == run_config.goal


class TestConsoleObserver:
    def test_resumable_error_mentions_resume(self, capsys):
        ConsoleObserver().on_error("boom", resumable=True)
        err = capsys.readouterr().err
        assert "boom" in err
        assert "--resume" in err

    @pytest.mark.asyncio
    async def test_clarification_without_stdin_answers_empty(self, capsys):
        with patch("builtins.input", side_effect=EOFError):
            answer = await ConsoleObserver().ask_clarification("Which database?")
        assert answer == ""
        assert "No interactive input" in capsys.readouterr().err
