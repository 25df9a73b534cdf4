"""Workflow selection and the read-only query surface.

Given ``{entity_category, region}`` the catalog picks the first applicable
workflow, compiles it and hands back the machine. Machines are memoised per
applicability profile and rebuilt, never mutated, when any of their source
files change on disk.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from workflow_engine.config import EngineSettings
from workflow_engine.definitions.loader import DefinitionLoader
from workflow_engine.definitions.models import WorkflowDefinition
from workflow_engine.errors import (
    NoApplicableWorkflowError,
    OrphanStepWarning,
    ParseError,
    WorkflowEngineError,
)
from workflow_engine.runtime.compiler import compile_workflow
from workflow_engine.runtime.machine import RuntimeMachine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _CachedMachine:
    machine: RuntimeMachine
    mtimes: tuple[float | None, ...]


def _mtimes(paths: tuple[Path, ...]) -> tuple[float | None, ...]:
    out: list[float | None] = []
    for path in paths:
        try:
            out.append(path.stat().st_mtime)
        except OSError:
            out.append(None)
    return tuple(out)


class WorkflowCatalog:
    def __init__(self, loader: DefinitionLoader, *, allow_region_fallback: bool = False) -> None:
        self.loader = loader
        self.allow_region_fallback = allow_region_fallback
        self._machines: dict[tuple[str, str], _CachedMachine] = {}

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> WorkflowCatalog:
        return cls(
            DefinitionLoader.from_settings(settings),
            allow_region_fallback=settings.allow_region_fallback,
        )

    def _candidates(self) -> Iterator[tuple[Path, WorkflowDefinition]]:
        """Loaded workflows in file-name order, skipping files that fail to parse."""

        for path in self.loader.list_workflows():
            try:
                yield path, self.loader.load_workflow(path)
            except ParseError as e:
                logger.warning(
                    "Skipping unparsable workflow during selection",
                    extra={"path": str(path), "error": str(e)},
                )

    def _select(self, entity_category: str, region: str) -> tuple[Path, WorkflowDefinition]:
        candidates: list[tuple[Path, WorkflowDefinition]] = []
        for path, workflow in self._candidates():
            applies = workflow.applies_to
            if applies is not None and applies.matches(entity_category, region):
                return path, workflow
            candidates.append((path, workflow))

        if self.allow_region_fallback:
            for path, workflow in candidates:
                applies = workflow.applies_to
                if applies is not None and applies.matches(entity_category):
                    logger.info(
                        "Falling back to category-only workflow match",
                        extra={
                            "entity_category": entity_category,
                            "region": region,
                            "workflow_id": workflow.id,
                        },
                    )
                    return path, workflow

        raise NoApplicableWorkflowError(entity_category, region)

    def select_workflow(self, entity_category: str, region: str) -> WorkflowDefinition:
        """First workflow (in file-name order) whose ``applies_to`` matches.

        Raises:
            NoApplicableWorkflowError: If no workflow applies.
        """

        return self._select(entity_category, region)[1]

    def machine_for(self, entity_category: str, region: str) -> RuntimeMachine:
        """Compiled machine for a profile, rebuilt when a source file changed."""

        key = (entity_category, region)
        cached = self._machines.get(key)
        if cached is not None and _mtimes(cached.machine.source_files) == cached.mtimes:
            return cached.machine

        path, workflow = self._select(entity_category, region)
        machine = compile_workflow(workflow, self.loader, source=path)
        self._machines[key] = _CachedMachine(machine=machine, mtimes=_mtimes(machine.source_files))
        logger.info(
            "Built machine for profile",
            extra={
                "entity_category": entity_category,
                "region": region,
                "workflow_id": machine.workflow_id,
                "rebuilt": cached is not None,
            },
        )
        return machine

    def query(self, entity_category: str, region: str) -> dict[str, Any]:
        """The machine for a profile as fully resolved JSON."""

        return self.machine_for(entity_category, region).to_json()

    def clear(self) -> None:
        self._machines.clear()

    def validate(self) -> dict[str, list[str]]:
        """Compile every workflow and collect errors and warnings.

        Errors are reported as ``"<file>: <message>"`` and do not stop the run.
        """

        errors: list[str] = []
        found: list[str] = []
        for path in self.loader.list_workflows():
            try:
                workflow = self.loader.load_workflow(path)
                with warnings.catch_warnings():
                    warnings.simplefilter("ignore", OrphanStepWarning)
                    machine = compile_workflow(workflow, self.loader, source=path)
            except WorkflowEngineError as e:
                errors.append(f"{path.name}: {e}")
                continue
            found.extend(f"{path.name}: {message}" for message in machine.warnings)
        return {"errors": errors, "warnings": found}
