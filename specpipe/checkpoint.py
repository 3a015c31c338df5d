"""Checkpoint persistence — durable resume state over a key/value string medium.

The whole checkpoint is one JSON document under one key, so a save either
lands completely or not at all. Credentials are never part of it: the config
block is produced by ``RunConfig.to_persisted()``.
"""

import json
import os
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from specpipe.config import ApiKeys, RunConfig
from specpipe.state import Artifact, RunContext, RunProgress

CHECKPOINT_KEY = "specpipe-checkpoint"
CHECKPOINT_VERSION = 1


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryKVStore:
    """In-process medium. Useful for embedding and tests."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileKVStore:
    """One file per key inside a directory; writes are atomic renames."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path(key))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


@dataclass(frozen=True)
class Checkpoint:
    config: dict  # RunConfig.to_persisted(), never credentials
    progress: RunProgress
    artifacts: tuple[Artifact, ...]
    run_name: str
    session_id: str
    clarifications: tuple[dict, ...] = ()
    last_error: str | None = None

    @property
    def stage_index(self) -> int:
        return self.progress["current_stage"]

    def run_config(self, api_keys: ApiKeys) -> RunConfig:
        return RunConfig.from_persisted(self.config, api_keys)

    def to_context(self) -> RunContext:
        """Rebuild the RunContext; artifact order matches the persisted list."""
        context = RunContext(
            session_id=self.session_id,
            goal=self.config["goal"],
            run_name=self.run_name,
            clarifications=[dict(c) for c in self.clarifications],
        )
        for artifact in self.artifacts:
            context.add(artifact)
        return context


class CheckpointStore:
    def __init__(self, medium: KeyValueStore, key: str = CHECKPOINT_KEY):
        self.medium = medium
        self.key = key

    def save(
        self,
        config: dict,
        progress: RunProgress,
        artifacts: list[Artifact],
        run_name: str,
        session_id: str = "",
        clarifications: list[dict] | None = None,
        last_error: str | None = None,
    ) -> None:
        if "api_keys" in config:
            raise ValueError("Refusing to checkpoint a config that carries credentials.")
        document = {
            "version": CHECKPOINT_VERSION,
            "config": config,
            "progress": dict(progress),
            "artifacts": [a.to_dict() for a in artifacts],
            "run_name": run_name,
            "session_id": session_id,
            "clarifications": list(clarifications or []),
            "last_error": last_error,
        }
        self.medium.set(self.key, json.dumps(document, indent=2))

    def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        self.save(
            checkpoint.config,
            checkpoint.progress,
            list(checkpoint.artifacts),
            checkpoint.run_name,
            session_id=checkpoint.session_id,
            clarifications=list(checkpoint.clarifications),
            last_error=checkpoint.last_error,
        )

    def load(self) -> Checkpoint | None:
        raw = self.medium.get(self.key)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            config = data["config"]
            return Checkpoint(
                config={k: v for k, v in config.items() if k != "api_keys"},
                progress=data["progress"],
                artifacts=tuple(Artifact.from_dict(a) for a in data["artifacts"]),
                run_name=data["run_name"],
                session_id=data.get("session_id", ""),
                clarifications=tuple(data.get("clarifications") or ()),
                last_error=data.get("last_error"),
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            print(f"[specpipe] Warning: ignoring unreadable checkpoint: {exc!r}", file=sys.stderr)
            return None

    def exists(self) -> bool:
        return self.medium.get(self.key) is not None

    def clear(self) -> None:
        self.medium.remove(self.key)
