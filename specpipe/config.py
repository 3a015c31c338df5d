"""Centralized config loading — read once at import time.

Non-secret settings live in config.yaml next to this module. Credentials are
only ever read from the environment (optionally via a .env at project root)
and are never written anywhere by the pipeline.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Load .env from project root (parent of specpipe/)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"

_config = yaml.safe_load(CONFIG_PATH.read_text())

# Provider name -> environment variable holding its API key
API_KEY_ENV_VARS = {
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
}


def get_config() -> dict:
    """Return the loaded config dictionary."""
    return _config


@dataclass(frozen=True)
class ApiKeys:
    """Provider credentials. Values are hidden from repr so they never leak into logs."""

    anthropic: str | None = field(default=None, repr=False)
    google: str | None = field(default=None, repr=False)

    @classmethod
    def from_env(cls) -> "ApiKeys":
        return cls(
            anthropic=os.environ.get(API_KEY_ENV_VARS["anthropic"]) or None,
            google=os.environ.get(API_KEY_ENV_VARS["google"]) or None,
        )

    def for_provider(self, provider: str) -> str | None:
        return getattr(self, provider, None)


@dataclass
class RunConfig:
    """Everything needed to start (or resume) a run."""

    goal: str
    executor_model: str
    reviewer_model: str
    max_feedback_cycles: int = 3
    stage_models: dict[str, dict[str, str]] = field(default_factory=dict)
    api_keys: ApiKeys = field(default_factory=ApiKeys)

    @classmethod
    def from_config(cls, goal: str, api_keys: ApiKeys | None = None) -> "RunConfig":
        """Build a RunConfig from config.yaml defaults."""
        config = get_config()
        return cls(
            goal=goal,
            executor_model=config["executor_model"],
            reviewer_model=config["reviewer_model"],
            max_feedback_cycles=config.get("max_feedback_cycles", 3),
            stage_models=dict(config.get("stage_models") or {}),
            api_keys=api_keys if api_keys is not None else ApiKeys.from_env(),
        )

    @classmethod
    def from_persisted(cls, data: dict, api_keys: ApiKeys) -> "RunConfig":
        """Rebuild from a checkpoint's config block. Credentials must be supplied fresh."""
        return cls(
            goal=data["goal"],
            executor_model=data["executor_model"],
            reviewer_model=data["reviewer_model"],
            max_feedback_cycles=data.get("max_feedback_cycles", 3),
            stage_models=dict(data.get("stage_models") or {}),
            api_keys=api_keys,
        )

    def to_persisted(self) -> dict:
        """Serializable form with credentials removed."""
        return {
            "goal": self.goal,
            "executor_model": self.executor_model,
            "reviewer_model": self.reviewer_model,
            "max_feedback_cycles": self.max_feedback_cycles,
            "stage_models": {k: dict(v) for k, v in self.stage_models.items()},
        }

    def models_for(self, stage_kind: str) -> tuple[str, str]:
        """Return (executor_model, reviewer_model) for a stage, honoring overrides."""
        override = self.stage_models.get(stage_kind, {})
        return (
            override.get("executor", self.executor_model),
            override.get("reviewer", self.reviewer_model),
        )
