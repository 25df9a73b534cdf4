"""Compiled, immutable workflow machines.

A ``RuntimeMachine`` is what callers query: an ordered list of compiled steps,
each carrying its fully resolved task, plus a step-id index. Its JSON form is
the query surface and never exposes ``extends`` or ``task_ref``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from workflow_engine.definitions.models import (
    END,
    FieldSchema,
    StageDefinition,
    TaskDefinition,
    TaskSchema,
    Transition,
    TransitionCondition,
)
from workflow_engine.runtime.expressions import Condition, parse_condition


@dataclass(frozen=True, slots=True)
class CompiledCondition:
    """A transition edge with its expression parsed once."""

    when: str
    target: str
    condition: Condition | None

    @classmethod
    def from_definition(cls, definition: TransitionCondition) -> CompiledCondition:
        return cls(
            when=definition.when,
            target=definition.then,
            condition=parse_condition(definition.when),
        )

    def matches(self, inputs: Mapping[str, object]) -> bool:
        if self.condition is None:
            return False
        return self.condition.evaluate(inputs)


@dataclass(frozen=True, slots=True)
class CompiledTransition:
    conditions: tuple[CompiledCondition, ...]
    default: str

    @classmethod
    def from_definition(cls, definition: Transition) -> CompiledTransition:
        return cls(
            conditions=tuple(CompiledCondition.from_definition(c) for c in definition.conditions),
            default=definition.default,
        )

    def targets(self) -> list[str]:
        out = [c.target for c in self.conditions]
        out.append(self.default)
        return out

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {"default": self.default}
        if self.conditions:
            out["conditions"] = [{"when": c.when, "then": c.target} for c in self.conditions]
        return out


@dataclass(frozen=True, slots=True)
class CompiledWorkflowStep:
    """A workflow step joined with its resolved task."""

    id: str
    task: TaskDefinition
    next: CompiledTransition
    stage: str | None = None
    task_ref: str = ""

    @property
    def component_id(self) -> str:
        return self.task.component_id

    @property
    def schema(self) -> TaskSchema:
        return self.task.task_schema

    @property
    def fields(self) -> tuple[FieldSchema, ...]:
        return tuple(self.task.task_schema.fields)

    @property
    def required_fields(self) -> tuple[str, ...]:
        return tuple(self.task.required_fields)

    @property
    def expected_output_fields(self) -> tuple[str, ...]:
        return tuple(self.task.expected_output_fields)

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {"id": self.id}
        if self.stage is not None:
            out["stage"] = self.stage
        out["component_id"] = self.component_id
        out["schema"] = self.schema.model_dump(mode="json", exclude_none=True)
        out["required_fields"] = list(self.required_fields)
        out["expected_output_fields"] = list(self.expected_output_fields)
        out["task_definition"] = self.task.model_dump(
            mode="json", by_alias=True, exclude_none=True, exclude={"extends"}
        )
        out["next"] = self.next.to_json()
        return out

    @staticmethod
    def from_json(obj: Mapping[str, Any]) -> CompiledWorkflowStep:
        task = TaskDefinition.model_validate(obj["task_definition"])
        return CompiledWorkflowStep(
            id=str(obj["id"]),
            stage=obj.get("stage"),
            task=task,
            next=CompiledTransition.from_definition(Transition.model_validate(obj["next"])),
        )


@dataclass(frozen=True, slots=True)
class RuntimeMachine:
    """Immutable compiled workflow."""

    workflow_id: str
    version: int | str
    initial_step_id: str
    steps: tuple[CompiledWorkflowStep, ...]
    name: str = ""
    stages: tuple[StageDefinition, ...] = ()
    source_files: tuple[Path, ...] = ()
    warnings: tuple[str, ...] = ()
    step_index: Mapping[str, CompiledWorkflowStep] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index = {step.id: step for step in self.steps}
        object.__setattr__(self, "step_index", MappingProxyType(index))

    def get(self, step_id: str) -> CompiledWorkflowStep | None:
        return self.step_index.get(step_id)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self.step_index

    def graph(self) -> dict[str, list[str]]:
        """Adjacency list of the step graph (``END`` included as a target)."""

        return {step.id: step.next.targets() for step in self.steps}

    def reachable_step_ids(self) -> set[str]:
        seen: set[str] = set()
        pending = [self.initial_step_id] if self.initial_step_id in self.step_index else []
        while pending:
            step_id = pending.pop()
            if step_id in seen:
                continue
            seen.add(step_id)
            for target in self.step_index[step_id].next.targets():
                if target != END and target in self.step_index and target not in seen:
                    pending.append(target)
        return seen

    def to_json(self) -> dict[str, object]:
        steps = [step.to_json() for step in self.steps]
        return {
            "workflowId": self.workflow_id,
            "name": self.name,
            "version": self.version,
            "stages": [s.model_dump(mode="json", exclude_none=True) for s in self.stages],
            "initialStepId": self.initial_step_id,
            "steps": steps,
            "stepIndexById": {s["id"]: s for s in steps},
        }

    @staticmethod
    def from_json(obj: Mapping[str, Any]) -> RuntimeMachine:
        return RuntimeMachine(
            workflow_id=str(obj["workflowId"]),
            name=str(obj.get("name") or ""),
            version=obj.get("version", 1),
            stages=tuple(StageDefinition.model_validate(s) for s in obj.get("stages") or []),
            initial_step_id=str(obj["initialStepId"]),
            steps=tuple(CompiledWorkflowStep.from_json(s) for s in obj.get("steps") or []),
        )
