"""Tests for the executor/reviewer request builders and the stage table."""

import pytest

from specpipe.agents.executor import build_executor_request, normalize_output
from specpipe.agents.prompts import get_reviewer_prompt, get_system_prompt
from specpipe.agents.reviewer import TRUNCATION_MARKER, build_reviewer_request, truncate
from specpipe.config import RunConfig
from specpipe.stages import (
    ARTIFACT_TYPES,
    PIPELINE_STAGES,
    Stage,
    artifact_file_name,
    artifact_file_path,
    validate_stages,
)
from specpipe.state import Artifact, FeedbackEntry


# --- stage table ---

class TestStages:
    def test_pipeline_is_valid(self):
        validate_stages(PIPELINE_STAGES)

    def test_artifact_types_in_production_order(self):
        assert ARTIFACT_TYPES == (
            "contract", "module", "infrastructure", "data", "decisions", "tasks",
            "types", "events", "interface", "function", "tests", "pipeline",
        )

    def test_stage_numbers_are_one_based(self):
        assert [s.number for s in PIPELINE_STAGES] == [1, 2, 3, 4, 5, 6]

    def test_file_paths(self):
        assert artifact_file_name("contract") == "contract.spec.ir"
        assert artifact_file_path("contract") == "contract.spec.ir"
        assert artifact_file_path("interface") == "interfaces/interface.spec.ir"
        assert artifact_file_path("function") == "functions/function.spec.ir"

    def test_duplicate_output_rejected(self):
        stages = (Stage(0, "a", "A", "spec", ("x",)), Stage(1, "b", "B", "spec", ("x",)))
        with pytest.raises(ValueError):
            validate_stages(stages)

    def test_empty_outputs_rejected(self):
        with pytest.raises(ValueError):
            validate_stages((Stage(0, "a", "A", "spec", ()),))


# --- prompts ---

class TestPrompts:
    @pytest.mark.parametrize("stage", PIPELINE_STAGES, ids=lambda s: s.kind)
    def test_every_stage_has_a_prompt(self, stage):
        prompt = get_system_prompt(stage.kind)
        assert "Spec IR Format Overview" in prompt
        assert "QUESTION:" in prompt

    def test_unknown_stage(self):
        with pytest.raises(KeyError):
            get_system_prompt("marketing")

    def test_reviewer_prompt_names_markers(self):
        prompt = get_reviewer_prompt()
        assert "APPROVED" in prompt
        assert "NEEDS_REVISION" in prompt


# --- executor request ---

class TestExecutorRequest:
    def test_first_cycle(self, mock_config, base_context):
        request = build_executor_request(base_context, "product", "contract", "exec-model", 3)
        assert request.model == "exec-model"
        assert request.system_prompt == get_system_prompt("product")
        assert "Generate the contract.spec artifact for module: todo-rest-api" in request.user_message
        assert base_context.goal in request.user_message
        assert "Previous Artifacts" not in request.user_message
        assert "Previous Feedback" not in request.user_message

    def test_includes_earlier_artifacts_and_feedback(self, mock_config, base_context):
        base_context.add(Artifact("contract", "ir::contract {}", "product"))
        base_context.feedback_log.append(FeedbackEntry(1, "module", "name the components", "ir::module v1"))
        message = build_executor_request(base_context, "architect", "module", "exec-model", 3).user_message

        assert "### contract.spec\n```spec\nir::contract {}\n```" in message
        assert "### Cycle 1 Feedback:\nname the components" in message
        assert "You are on revision cycle 2 of 3." in message

    def test_normalize_output(self):
        assert normalize_output("```\nir::x {}\n```\n") == "ir::x {}"


# --- reviewer request ---

class TestReviewerRequest:
    def test_truncate(self):
        assert truncate("abc", 5) == "abc"
        assert truncate("abcdef", 3) == "abc" + TRUNCATION_MARKER

    def test_excludes_same_type_and_marks_feedback_check(self, mock_config, base_context):
        base_context.add(Artifact("contract", "ir::contract {}", "product"))
        base_context.feedback_log.append(FeedbackEntry(1, "module", "fix names", "ir::module v1"))
        request = build_reviewer_request(base_context, "module", "ir::module v2", "review-model")
        message = request.user_message

        assert request.system_prompt == get_reviewer_prompt()
        assert "Type: module.spec" in message
        assert "```spec\nir::module v2\n```" in message
        assert "### contract.spec" in message
        assert "### module.spec" not in message
        assert "### Cycle 1:\nfix names" in message
        assert "5. **Feedback Addressed**" in message


# --- run config ---

class TestRunConfig:
    def test_from_config_defaults(self, mock_config, api_keys):
        config = RunConfig.from_config("Build a todo app", api_keys)
        assert config.executor_model == "exec-model"
        assert config.reviewer_model == "review-model"
        assert config.max_feedback_cycles == 3

    def test_stage_model_override(self, run_config):
        run_config.stage_models = {"tester": {"reviewer": "other-reviewer"}}
        assert run_config.models_for("tester") == ("exec-model", "other-reviewer")
        assert run_config.models_for("product") == ("exec-model", "review-model")
