from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from mention_monitor.errors import StateStoreError
from mention_monitor.models import RunState

from .base import StateStore

logger = logging.getLogger(__name__)


class JsonStateStore(StateStore):
    """RunState kept as a single JSON document, replaced atomically on save."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> RunState:
        if not self.path.exists():
            logger.info("No state file at %s; starting with empty state", self.path)
            return RunState()

        try:
            with self.path.open("r", encoding="utf-8") as handle:
                parsed = json.load(handle)
        except (OSError, UnicodeDecodeError) as exc:
            raise StateStoreError(f"cannot read state file {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise StateStoreError(f"state file {self.path} is not valid JSON: {exc}") from exc

        if not isinstance(parsed, dict):
            raise StateStoreError(f"state file {self.path} must contain a JSON object")

        try:
            state = RunState.from_dict(parsed)
        except ValueError as exc:
            raise StateStoreError(f"state file {self.path} is malformed: {exc}") from exc

        logger.info("Loaded %d existing mentions from %s", len(state.mentions), self.path)
        return state

    def save(self, state: RunState) -> None:
        payload = json.dumps(state.to_dict(), ensure_ascii=False, indent=2)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                dir=self.path.parent,
            )
        except OSError as exc:
            raise StateStoreError(f"cannot write state file {self.path}: {exc}") from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.write("\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except OSError as exc:
            try:
                os.unlink(tmp_name)
            except OSError:
                logger.debug("Could not remove temp state file %s", tmp_name)
            raise StateStoreError(f"cannot write state file {self.path}: {exc}") from exc

        logger.info("Saved %d mentions to %s", len(state.mentions), self.path)
