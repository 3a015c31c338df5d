"""Shared fixtures for the specpipe test suite."""

import re
from unittest.mock import MagicMock, patch

import pytest

from specpipe.config import ApiKeys, RunConfig
from specpipe.state import RunContext

EXEC_MODEL = "exec-model"
REVIEW_MODEL = "review-model"

TEST_CONFIG = {
    "executor_model": EXEC_MODEL,
    "reviewer_model": REVIEW_MODEL,
    "stage_models": {},
    "max_feedback_cycles": 3,
    "llm_max_attempts": 5,
    "backoff_base_seconds": 2.0,
    "backoff_max_seconds": 120.0,
    "retry_after_buffer_seconds": 0.5,
    "executor_max_tokens": 8192,
    "executor_temperature": 0.7,
    "reviewer_max_tokens": 2048,
    "reviewer_temperature": 0.3,
    "reviewer_sibling_char_limit": 2000,
    "clarify_enabled": True,
    "max_clarifications_per_artifact": 1,
    "checkpoint_dir": "./.specpipe-test",
    "output_dir": "./output-test",
    "zip_bundle": False,
    "models": {
        EXEC_MODEL: {"provider": "anthropic", "model_id": "claude-test", "label": "Exec"},
        REVIEW_MODEL: {"provider": "google", "model_id": "gemini-test", "label": "Review"},
    },
}

_TASK_RE = re.compile(r"Generate the (\w+)\.spec artifact for module")
_REVIEW_RE = re.compile(r"^Type: (\w+)\.spec$", re.MULTILINE)


@pytest.fixture
def mock_config():
    """Patch the config singleton with test-friendly values."""
    test_config = {**TEST_CONFIG, "models": dict(TEST_CONFIG["models"])}
    with patch("specpipe.config._config", test_config):
        yield test_config


@pytest.fixture
def api_keys():
    return ApiKeys(anthropic="test-anthropic-key", google="test-google-key")


@pytest.fixture
def run_config(api_keys):
    return RunConfig(
        goal="Build a todo REST API service",
        executor_model=EXEC_MODEL,
        reviewer_model=REVIEW_MODEL,
        max_feedback_cycles=3,
        api_keys=api_keys,
    )


@pytest.fixture
def base_context():
    """Minimal RunContext with no artifacts yet."""
    return RunContext(
        session_id="session-test",
        goal="Build a todo REST API service",
        run_name="todo-rest-api",
    )


def mock_llm_response(content, usage=None):
    """Create a mock LangChain AIMessage-like response."""
    response = MagicMock()
    response.content = content
    response.usage_metadata = usage
    return response


class FakeGateway:
    """Scripted stand-in for ModelGateway.

    ``executor`` and ``reviewer`` are callables ``(artifact_type, n) -> str``
    where n counts calls of that role for that artifact (1-based). They may
    raise to simulate a terminal gateway failure.
    """

    def __init__(self, executor=None, reviewer=None):
        self.executor = executor or (lambda artifact_type, n: f"ir::{artifact_type} draft {n}")
        self.reviewer = reviewer or (lambda artifact_type, n: "APPROVED")
        self.calls = []  # (role, artifact_type, request)
        self._counts = {}
        self.on_wait = None

    def missing_credentials(self, models):
        return {}

    async def generate(self, request):
        from specpipe.llm.gateway import ModelResponse

        if request.model == REVIEW_MODEL:
            role, artifact_type = "review", _REVIEW_RE.search(request.user_message).group(1)
        else:
            role, artifact_type = "generate", _TASK_RE.search(request.user_message).group(1)
        key = (role, artifact_type)
        self._counts[key] = self._counts.get(key, 0) + 1
        self.calls.append((role, artifact_type, request))

        script = self.reviewer if role == "review" else self.executor
        return ModelResponse(content=script(artifact_type, self._counts[key]), model=request.model)

    def generate_calls(self, artifact_type=None):
        return [c for c in self.calls if c[0] == "generate" and artifact_type in (None, c[1])]

    def review_calls(self, artifact_type=None):
        return [c for c in self.calls if c[0] == "review" and artifact_type in (None, c[1])]

    def factory(self, api_keys, on_wait=None):
        self.on_wait = on_wait
        return self


@pytest.fixture
def fake_gateway():
    return FakeGateway()
