"""Compile a workflow definition into an immutable ``RuntimeMachine``.

Compilation either yields a fully validated machine or raises; a partially
valid machine is never returned. Unreachable steps are the one non-fatal
finding: they are reported as ``OrphanStepWarning`` and recorded on the machine.
"""

from __future__ import annotations

import dataclasses
import logging
import warnings
from collections import Counter
from pathlib import Path

from workflow_engine.definitions.loader import DefinitionLoader
from workflow_engine.definitions.models import END, TaskDefinition, WorkflowDefinition
from workflow_engine.definitions.resolver import TaskResolver
from workflow_engine.errors import (
    DuplicateFieldError,
    DuplicateStepError,
    EmptyWorkflowError,
    InvalidTransitionError,
    OrphanStepWarning,
    RequiredFieldError,
    UnknownStageError,
)
from workflow_engine.runtime.machine import (
    CompiledTransition,
    CompiledWorkflowStep,
    RuntimeMachine,
)

logger = logging.getLogger(__name__)


def _duplicates(values: list[str]) -> list[str]:
    counts = Counter(values)
    return [value for value, count in counts.items() if count > 1]


def _validate_task(task: TaskDefinition) -> None:
    duplicate_fields = _duplicates(task.task_schema.field_names())
    if duplicate_fields:
        raise DuplicateFieldError(task.id, duplicate_fields)

    expected = set(task.expected_output_fields)
    missing = [name for name in task.required_fields if name not in expected]
    if missing:
        raise RequiredFieldError(task.id, missing)


def compile_workflow(
    workflow: WorkflowDefinition,
    loader: DefinitionLoader,
    *,
    source: Path | None = None,
) -> RuntimeMachine:
    """Resolve every step's task and build the indexed machine.

    Args:
        workflow: Loaded workflow definition. It is not modified.
        loader: Loader used to read task files.
        source: Path of the workflow file, recorded for change detection.

    Raises:
        CompilationError: On any reference or structural error.
        ParseError: If a referenced task file cannot be parsed.
        NotFoundError: If a referenced task file does not exist.
    """

    if not workflow.steps:
        raise EmptyWorkflowError(workflow.id)

    step_ids = [step.id for step in workflow.steps]
    duplicate_steps = _duplicates(step_ids)
    if duplicate_steps:
        raise DuplicateStepError(workflow.id, duplicate_steps)

    stage_ids = {stage.id for stage in workflow.stages}
    for step_ref in workflow.steps:
        if step_ref.stage is not None and step_ref.stage not in stage_ids:
            raise UnknownStageError(step_ref.id, step_ref.stage)

    resolver = TaskResolver(loader)
    sources: list[Path] = [source] if source is not None else []
    compiled: list[CompiledWorkflowStep] = []

    for step_ref in workflow.steps:
        task, task_sources = resolver.resolve_ref(step_ref.task_ref)
        _validate_task(task)
        for path in task_sources:
            if path not in sources:
                sources.append(path)

        transition = CompiledTransition.from_definition(step_ref.next)
        for target in transition.targets():
            if target != END and target not in step_ids:
                raise InvalidTransitionError(step_ref.id, target)
        for edge in transition.conditions:
            if edge.condition is None:
                logger.warning(
                    "Condition does not parse and will always evaluate to false",
                    extra={"workflow_id": workflow.id, "step_id": step_ref.id, "when": edge.when},
                )

        compiled.append(
            CompiledWorkflowStep(
                id=step_ref.id,
                stage=step_ref.stage,
                task_ref=step_ref.task_ref,
                task=task,
                next=transition,
            )
        )

    machine = RuntimeMachine(
        workflow_id=workflow.id,
        name=workflow.name,
        version=workflow.version,
        stages=tuple(workflow.stages),
        initial_step_id=compiled[0].id,
        steps=tuple(compiled),
        source_files=tuple(sources),
    )

    reachable = machine.reachable_step_ids()
    orphans = [step_id for step_id in step_ids if step_id not in reachable]
    if orphans:
        messages = tuple(
            f"Step {step_id!r} is not reachable from {machine.initial_step_id!r}"
            for step_id in orphans
        )
        for message in messages:
            logger.warning(message, extra={"workflow_id": workflow.id})
            warnings.warn(message, OrphanStepWarning, stacklevel=2)
        machine = dataclasses.replace(machine, warnings=messages)

    logger.info(
        "Compiled workflow",
        extra={
            "workflow_id": workflow.id,
            "version": workflow.version,
            "steps": len(compiled),
            "orphans": len(orphans),
        },
    )
    return machine
