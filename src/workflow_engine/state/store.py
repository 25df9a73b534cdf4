"""Durable per-client workflow state.

One JSON file per client id under the store root. Writes go through a
temporary file in the same directory followed by ``os.replace`` so a reader
never observes a partially written record. There is no locking: callers must
serialise writers for the same client id.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from workflow_engine.config import EngineSettings
from workflow_engine.errors import StorageError

logger = logging.getLogger(__name__)

_CLIENT_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


class ClientState(BaseModel):
    """Workflow progress and collected field values for one client."""

    model_config = ConfigDict(populate_by_name=True)

    client_id: str = Field(alias="clientId")
    workflow_id: str = Field(alias="workflowId")
    current_step_id: str = Field(alias="currentStepId")
    current_stage: str | None = Field(default=None, alias="currentStage")
    collected_inputs: dict[str, Any] = Field(default_factory=dict, alias="collectedInputs")
    completed_steps: list[str] = Field(default_factory=list, alias="completedSteps")
    completed_stages: list[str] = Field(default_factory=list, alias="completedStages")
    last_updated: str = Field(default_factory=utc_now_iso, alias="lastUpdated")

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @staticmethod
    def from_json(obj: dict[str, Any]) -> ClientState:
        return ClientState.model_validate(obj)


def validate_client_id(client_id: str) -> str:
    if not isinstance(client_id, str) or not _CLIENT_ID.match(client_id):
        raise ValueError(f"Invalid client id: {client_id!r}")
    return client_id


class ClientStateStore:
    """File-backed store of ``ClientState`` records."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> ClientStateStore:
        return cls(settings.client_state_path)

    def path_for(self, client_id: str) -> Path:
        return self.root / f"{validate_client_id(client_id)}.json"

    def save(self, client_id: str, state: ClientState) -> None:
        """Persist ``state`` exactly as given, replacing any previous record."""

        path = self.path_for(client_id)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=self.root)
        except OSError as e:
            raise StorageError(path, f"Failed to prepare write: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state.to_json(), f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except Exception as e:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            if isinstance(e, OSError):
                raise StorageError(path, f"Failed to write client state: {e}") from e
            raise

        logger.debug(
            "Saved client state",
            extra={"client_id": client_id, "current_step_id": state.current_step_id},
        )

    def load(self, client_id: str) -> ClientState | None:
        """Return the stored record, or ``None`` if the client has none."""

        path = self.path_for(client_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(path, f"Failed to read client state: {e}") from e

        try:
            return ClientState.from_json(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as e:
            raise StorageError(path, f"Corrupt client state: {e}") from e

    def exists(self, client_id: str) -> bool:
        return self.path_for(client_id).is_file()

    def list(self) -> list[str]:  # noqa: A003 (store API)
        """Stored client ids, sorted. Temporary files are never listed."""

        if not self.root.exists():
            return []
        try:
            return sorted(p.stem for p in self.root.glob("*.json") if p.is_file())
        except OSError as e:
            raise StorageError(self.root, f"Failed to list client states: {e}") from e

    def delete(self, client_id: str) -> bool:
        """Remove a client's record. Returns ``False`` if there was none."""

        path = self.path_for(client_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(path, f"Failed to delete client state: {e}") from e
        logger.info("Deleted client state", extra={"client_id": client_id})
        return True

    def initialize(self, client_id: str, workflow_id: str, initial_step_id: str) -> ClientState:
        """Create a fresh record positioned at ``initial_step_id``.

        Raises:
            StorageError: If a record already exists for the client.
        """

        if self.exists(client_id):
            raise StorageError(self.path_for(client_id), "Client state already exists")
        state = ClientState(
            client_id=client_id,
            workflow_id=workflow_id,
            current_step_id=initial_step_id,
        )
        self.save(client_id, state)
        logger.info(
            "Initialized client state",
            extra={"client_id": client_id, "workflow_id": workflow_id},
        )
        return state

    def update(self, client_id: str, **changes: Any) -> ClientState:
        """Load, apply field changes, stamp ``last_updated`` and save.

        Raises:
            StorageError: If the client has no record.
        """

        current = self.load(client_id)
        if current is None:
            raise StorageError(self.path_for(client_id), "Client state not found")
        changes["last_updated"] = utc_now_iso()
        updated = current.model_copy(update=changes)
        self.save(client_id, updated)
        return updated
