"""Load workflow and task definitions from a YAML directory tree.

Layout under the data root::

    workflows/<name>.yaml
    tasks/<group>/<name>.yaml

The loader only checks shape. Resolution of ``extends``/``inherits`` and the
cross-file checks belong to the resolver and the compiler.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from workflow_engine.config import EngineSettings
from workflow_engine.definitions.cache import DefinitionCache, NoCache, cache_for_policy
from workflow_engine.definitions.models import TaskDefinition, WorkflowDefinition
from workflow_engine.errors import NotFoundError, ParseError

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = (".yaml", ".yml")

ModelT = TypeVar("ModelT", bound=BaseModel)


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item["loc"]) or "<root>"
        parts.append(f"{loc}: {item['msg']}")
    return "; ".join(parts)


def read_yaml_mapping(path: Path) -> dict[str, object]:
    """Parse a YAML file that must contain a mapping at the top level."""

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise NotFoundError(path) from e

    try:
        data = yaml.safe_load(text)
    except yaml.MarkedYAMLError as e:
        mark = e.problem_mark or e.context_mark
        raise ParseError(
            path,
            f"Invalid YAML: {e.problem or e}",
            line=mark.line + 1 if mark is not None else None,
            column=mark.column + 1 if mark is not None else None,
        ) from e
    except yaml.YAMLError as e:
        raise ParseError(path, f"Invalid YAML: {e}") from e

    if not data:
        raise ParseError(path, "Empty definition file")
    if not isinstance(data, dict):
        raise ParseError(path, f"Expected a mapping at the top level, got {type(data).__name__}")
    return data


class DefinitionLoader:
    """Reads definitions from disk through an injectable cache."""

    def __init__(self, data_root: Path, *, cache: DefinitionCache | None = None) -> None:
        self.data_root = Path(data_root)
        self.cache: DefinitionCache = cache if cache is not None else NoCache()

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> DefinitionLoader:
        cache = cache_for_policy(settings.cache_policy, ttl_seconds=settings.cache_ttl_seconds)
        return cls(settings.data_root, cache=cache)

    @property
    def workflows_dir(self) -> Path:
        return self.data_root / "workflows"

    @property
    def tasks_dir(self) -> Path:
        return self.data_root / "tasks"

    # ------------------------------------------------------------------
    # Paths

    def workflow_path(self, path: str | Path) -> Path:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.workflows_dir / candidate
        if candidate.suffix not in _YAML_SUFFIXES:
            candidate = candidate.with_name(candidate.name + ".yaml")
        return candidate

    def task_path(self, task_ref: str) -> Path:
        """Map a task reference (``contact_info/corporate``) to its file.

        References may carry a ``.yaml``/``.yml`` suffix and a leading
        ``tasks/`` segment. References that escape the task tree are reported as
        not found.
        """

        ref = task_ref.strip().replace("\\", "/").lstrip("/")
        if ref.startswith("tasks/"):
            ref = ref[len("tasks/") :]

        base = self.tasks_dir / ref
        if base.suffix in _YAML_SUFFIXES:
            candidate = base
        else:
            candidate = base.with_name(base.name + ".yaml")
            alternate = base.with_name(base.name + ".yml")
            if not candidate.exists() and alternate.exists():
                candidate = alternate

        root = self.tasks_dir.resolve()
        if not candidate.resolve().is_relative_to(root):
            raise NotFoundError(candidate)
        return candidate

    # ------------------------------------------------------------------
    # Loading

    def _load(self, path: Path, model: type[ModelT]) -> ModelT:
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError as e:
            raise NotFoundError(path) from e

        cached = self.cache.get(path, mtime)
        if isinstance(cached, model):
            logger.debug("Definition cache hit", extra={"path": str(path)})
            return cached

        data = read_yaml_mapping(path)
        try:
            parsed = model.model_validate(data)
        except ValidationError as e:
            raise ParseError(
                path, f"Invalid {model.__name__}: {_format_validation_error(e)}"
            ) from e

        self.cache.put(path, mtime, parsed)
        return parsed

    def load_workflow(self, path: str | Path) -> WorkflowDefinition:
        """Load a workflow by file name (relative to ``workflows/``) or absolute path."""

        return self._load(self.workflow_path(path), WorkflowDefinition)

    def load_task(self, task_ref: str) -> TaskDefinition:
        """Load a task by reference relative to ``tasks/``."""

        return self._load(self.task_path(task_ref), TaskDefinition)

    def list_workflows(self) -> list[Path]:
        """Workflow files in a stable order; names starting with ``_`` are skipped."""

        if not self.workflows_dir.exists():
            return []
        candidates = [
            p
            for p in self.workflows_dir.iterdir()
            if p.is_file() and p.suffix in _YAML_SUFFIXES and not p.name.startswith("_")
        ]
        return sorted(candidates, key=lambda p: p.name)

    def load_workflows(self) -> list[WorkflowDefinition]:
        return [self.load_workflow(p) for p in self.list_workflows()]
