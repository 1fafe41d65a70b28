"""Persisted workflow state for resumable publishing.

Every transition is written to ``.publish-state.json`` in the project root
before transition() returns. Writes go to a temporary file that is then
renamed over the state file, so an interrupted run leaves either the
previous or the new state on disk, never a partial file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

STATE_FILE_NAME = ".publish-state.json"


class PublishState(str, Enum):
    """Workflow states, in the order a successful run visits them."""

    INITIAL = "INITIAL"
    DETECTING = "DETECTING"
    VALIDATING = "VALIDATING"
    DRY_RUN = "DRY_RUN"
    CONFIRMING = "CONFIRMING"
    PUBLISHING = "PUBLISHING"
    VERIFYING = "VERIFYING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    ROLLED_BACK = "ROLLED_BACK"


NON_RESUMABLE_STATES = frozenset({PublishState.INITIAL, PublishState.SUCCESS, PublishState.FAILED})


def state_file_for(project_root: Path, registry: str | None = None) -> Path:
    """State file path for a project, namespaced per registry when given."""
    if registry:
        return Path(project_root) / f".publish-state.{registry}.json"
    return Path(project_root) / STATE_FILE_NAME


class StateTransition(BaseModel):
    """One entry in the append-only transition log."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    from_state: PublishState = Field(alias="from")
    to_state: PublishState = Field(alias="to")
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class StateSnapshot(BaseModel):
    """On-disk representation of the workflow state."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    current_state: PublishState
    registry: str | None = None
    version: str | None = None
    transitions: list[StateTransition] = Field(default_factory=list)
    can_resume: bool = False
    error: str | None = None


class WorkflowState:
    """Tracks and persists the progress of one publish attempt.

    Args:
        project_root: Project directory the state belongs to.
        state_file: Override for the state file location.
    """

    def __init__(self, project_root: Path, state_file: Path | None = None) -> None:
        self.project_root = Path(project_root)
        self.state_file = state_file or state_file_for(self.project_root)
        self._reset()

    def _reset(self) -> None:
        self.current_state = PublishState.INITIAL
        self.registry: str | None = None
        self.version: str | None = None
        self.error: str | None = None
        self.transitions: list[StateTransition] = []

    def transition(self, to: PublishState, metadata: dict[str, Any] | None = None) -> None:
        """Move to a new state and persist it.

        ``registry`` and ``version`` in metadata update the corresponding
        fields; ``error`` is recorded only on transitions to FAILED.
        """
        metadata = dict(metadata or {})
        now = datetime.now(timezone.utc)
        if self.transitions and now < self.transitions[-1].timestamp:
            now = self.transitions[-1].timestamp

        self.transitions.append(
            StateTransition(from_state=self.current_state, to_state=to, timestamp=now, metadata=metadata)
        )
        logger.debug("State %s -> %s", self.current_state.value, to.value)
        self.current_state = to

        if metadata.get("registry"):
            self.registry = str(metadata["registry"])
        if metadata.get("version"):
            self.version = str(metadata["version"])
        if to is PublishState.FAILED and metadata.get("error"):
            self.error = str(metadata["error"])

        self.save()

    def can_resume(self) -> bool:
        return self.current_state not in NON_RESUMABLE_STATES

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            current_state=self.current_state,
            registry=self.registry,
            version=self.version,
            transitions=list(self.transitions),
            can_resume=self.can_resume(),
            error=self.error,
        )

    def save(self) -> None:
        """Atomically write the state file."""
        payload = self.snapshot().model_dump(mode="json", by_alias=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.state_file.name}.", suffix=".tmp", dir=str(self.state_file.parent)
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(json.dumps(payload, indent=2))
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.state_file)
        finally:
            tmp_path.unlink(missing_ok=True)

    def restore(self) -> bool:
        """Load state from disk.

        Returns:
            True if a valid state file was loaded, False if it is missing or
            unreadable (in-memory state is left untouched in that case)
        """
        try:
            raw = self.state_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Cannot read state file %s: %s", self.state_file, e)
            return False

        try:
            snapshot = StateSnapshot.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning("Ignoring invalid state file %s: %s", self.state_file, e.error_count())
            return False

        self.current_state = snapshot.current_state
        self.registry = snapshot.registry
        self.version = snapshot.version
        self.error = snapshot.error
        self.transitions = list(snapshot.transitions)
        return True

    def clear(self) -> None:
        """Remove the state file and reset in-memory fields."""
        self.state_file.unlink(missing_ok=True)
        self._reset()

    def elapsed(self) -> float:
        """Seconds between the first and last transitions."""
        if not self.transitions:
            return 0.0
        return (self.transitions[-1].timestamp - self.transitions[0].timestamp).total_seconds()

    def history(self) -> str:
        """Human-readable transition log."""
        lines = []
        for t in self.transitions:
            line = f"{t.timestamp.isoformat()}: {t.from_state.value} -> {t.to_state.value}"
            if t.metadata:
                line += f" ({json.dumps(t.metadata, default=str)})"
            lines.append(line)
        return "\n".join(lines)
