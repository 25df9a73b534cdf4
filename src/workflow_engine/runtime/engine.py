"""Runtime queries and transition decisions over a compiled machine.

Every function here is pure: it reads a machine, a step and a caller-owned
inputs map and never mutates them.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from workflow_engine.definitions.models import END, FieldKind, StageDefinition
from workflow_engine.errors import StepNotFoundError
from workflow_engine.runtime.expressions import evaluate
from workflow_engine.runtime.machine import CompiledWorkflowStep, RuntimeMachine

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True, slots=True)
class TransitionResult:
    next_step_id: str
    next_step: CompiledWorkflowStep | None
    is_end: bool
    reason: str


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class WorkflowProgress:
    total: int
    completed: int
    remaining: int
    percentage: int


@dataclass(frozen=True, slots=True)
class StageProgress:
    stage_id: str
    stage_name: str
    total: int
    completed: int
    percentage: int


def _percentage(completed: int, total: int) -> int:
    return round(completed / total * 100) if total > 0 else 0


def is_empty(value: object) -> bool:
    """True for values that do not count as a collected answer."""

    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


# ---------------------------------------------------------------------------
# Lookups


def get_step(machine: RuntimeMachine, step_id: str) -> CompiledWorkflowStep | None:
    return machine.get(step_id)


def require_step(machine: RuntimeMachine, step_id: str) -> CompiledWorkflowStep:
    step = machine.get(step_id)
    if step is None:
        raise StepNotFoundError(step_id)
    return step


def has_step(machine: RuntimeMachine, step_id: str) -> bool:
    return step_id in machine


def all_step_ids(machine: RuntimeMachine) -> list[str]:
    return [step.id for step in machine.steps]


def initial_step(machine: RuntimeMachine) -> CompiledWorkflowStep | None:
    return machine.get(machine.initial_step_id)


def is_final_step(step: CompiledWorkflowStep) -> bool:
    """A step whose default transition ends the workflow."""

    return step.next.default == END


def steps_by_stage(machine: RuntimeMachine, stage_id: str) -> list[CompiledWorkflowStep]:
    return [step for step in machine.steps if step.stage == stage_id]


def stage_for_step(machine: RuntimeMachine, step_id: str) -> StageDefinition | None:
    step = machine.get(step_id)
    if step is None or step.stage is None:
        return None
    for stage in machine.stages:
        if stage.id == step.stage:
            return stage
    return None


# ---------------------------------------------------------------------------
# Required fields and transitions


def is_field_visible(step: CompiledWorkflowStep, name: str, inputs: Mapping[str, object]) -> bool:
    """Whether a field is shown under the current inputs.

    Fields without a ``visible`` expression, or with no schema entry, are visible.
    """

    schema_field = step.schema.get_field(name)
    if schema_field is None or not schema_field.visible:
        return True
    return evaluate(schema_field.visible, inputs)


def missing_required_fields(step: CompiledWorkflowStep, inputs: Mapping[str, object]) -> list[str]:
    """Required fields that are absent or empty, in declaration order.

    A required field hidden by its ``visible`` expression does not block progression.
    """

    return [
        name
        for name in step.required_fields
        if is_empty(inputs.get(name)) and is_field_visible(step, name, inputs)
    ]


def can_progress(step: CompiledWorkflowStep, inputs: Mapping[str, object]) -> bool:
    return not missing_required_fields(step, inputs)


def next_step_id(step: CompiledWorkflowStep, inputs: Mapping[str, object]) -> str | None:
    """First matching conditional target, else the default. ``None`` means END."""

    for edge in step.next.conditions:
        if edge.matches(inputs):
            return None if edge.target == END else edge.target
    default = step.next.default
    return None if default == END else default


def possible_next_steps(step: CompiledWorkflowStep) -> list[str]:
    """Distinct targets reachable from a step, in declaration order."""

    out: list[str] = []
    for target in step.next.targets():
        if target not in out:
            out.append(target)
    return out


def is_valid_transition(machine: RuntimeMachine, target_step_id: str) -> bool:
    return target_step_id == END or target_step_id in machine


def can_transition_from(
    step: CompiledWorkflowStep, inputs: Mapping[str, object]
) -> tuple[bool, str | None]:
    missing = missing_required_fields(step, inputs)
    if missing:
        return False, f"Missing required fields: {', '.join(missing)}"
    return True, None


def execute_transition(
    machine: RuntimeMachine,
    step: CompiledWorkflowStep,
    inputs: Mapping[str, object],
) -> TransitionResult:
    """Decide the next step for a step whose required fields are complete.

    Raises:
        ValueError: If required fields are missing.
        StepNotFoundError: If the chosen target is not in the machine.
    """

    ok, reason = can_transition_from(step, inputs)
    if not ok:
        raise ValueError(f"Cannot transition from {step.id!r}: {reason}")

    matched = None
    for edge in step.next.conditions:
        if edge.matches(inputs):
            matched = edge
            break

    target = matched.target if matched is not None else step.next.default
    why = f"Condition met: {matched.when}" if matched is not None else "Default transition"
    if target == END:
        return TransitionResult(next_step_id=END, next_step=None, is_end=True, reason=why)
    return TransitionResult(
        next_step_id=target,
        next_step=require_step(machine, target),
        is_end=False,
        reason=why,
    )


# ---------------------------------------------------------------------------
# Field validation


def validate_step_inputs(step: CompiledWorkflowStep, inputs: Mapping[str, object]) -> ValidationResult:
    """Check required fields plus each field's type and validation constraints."""

    errors: list[str] = []
    missing = missing_required_fields(step, inputs)
    if missing:
        errors.append(f"Missing required fields: {', '.join(missing)}")

    for schema_field in step.fields:
        value = inputs.get(schema_field.name)
        if is_empty(value):
            continue
        name = schema_field.name

        if schema_field.type == "email" and isinstance(value, str) and not _EMAIL.match(value):
            errors.append(f"Invalid email format for field {name!r}")

        number: float | None = None
        if schema_field.kind is FieldKind.NUMBER:
            try:
                number = float(value)  # type: ignore[arg-type]
            except (TypeError, ValueError):
                errors.append(f"Field {name!r} must be a number")

        if schema_field.options and schema_field.kind is FieldKind.CHOICE:
            allowed = schema_field.option_values()
            chosen = value if isinstance(value, (list, tuple)) else [value]
            invalid = [str(v) for v in chosen if str(v) not in allowed]
            if invalid:
                errors.append(f"Field {name!r} has invalid option(s): {', '.join(invalid)}")

        rules = schema_field.validation
        if rules is None:
            continue
        if isinstance(value, str):
            if rules.pattern and not re.search(rules.pattern, value):
                errors.append(f"Field {name!r} does not match required pattern")
            if rules.minLength is not None and len(value) < rules.minLength:
                errors.append(f"Field {name!r} must be at least {rules.minLength} characters")
            if rules.maxLength is not None and len(value) > rules.maxLength:
                errors.append(f"Field {name!r} must be at most {rules.maxLength} characters")
        if number is not None:
            if rules.min is not None and number < rules.min:
                errors.append(f"Field {name!r} must be at least {rules.min:g}")
            if rules.max is not None and number > rules.max:
                errors.append(f"Field {name!r} must be at most {rules.max:g}")

    return ValidationResult(valid=not errors, errors=errors)


# ---------------------------------------------------------------------------
# Progress


def workflow_progress(machine: RuntimeMachine, completed_steps: Sequence[str]) -> WorkflowProgress:
    total = len(machine.steps)
    completed = len({s for s in completed_steps if s in machine})
    return WorkflowProgress(
        total=total,
        completed=completed,
        remaining=total - completed,
        percentage=_percentage(completed, total),
    )


def stage_progress(machine: RuntimeMachine, completed_steps: Sequence[str]) -> list[StageProgress]:
    done = set(completed_steps)
    out: list[StageProgress] = []
    for stage in machine.stages:
        stage_steps = steps_by_stage(machine, stage.id)
        completed = sum(1 for step in stage_steps if step.id in done)
        out.append(
            StageProgress(
                stage_id=stage.id,
                stage_name=stage.name,
                total=len(stage_steps),
                completed=completed,
                percentage=_percentage(completed, len(stage_steps)),
            )
        )
    return out


def is_stage_completed(
    machine: RuntimeMachine, stage_id: str, completed_steps: Sequence[str]
) -> bool:
    stage_steps = steps_by_stage(machine, stage_id)
    if not stage_steps:
        return False
    done = set(completed_steps)
    return all(step.id in done for step in stage_steps)


def completed_stage_ids(machine: RuntimeMachine, completed_steps: Sequence[str]) -> list[str]:
    return [s.id for s in machine.stages if is_stage_completed(machine, s.id, completed_steps)]


def next_uncompleted_step(
    machine: RuntimeMachine, completed_steps: Sequence[str]
) -> CompiledWorkflowStep | None:
    done = set(completed_steps)
    for step in machine.steps:
        if step.id not in done:
            return step
    return None
