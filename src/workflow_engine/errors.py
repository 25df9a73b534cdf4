"""Exception taxonomy for the workflow engine.

Compile-time errors abort machine construction. Runtime evaluation never raises
(conditions fall back to ``False``), and persistence reports a missing record as
``None`` rather than an error.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path


class WorkflowEngineError(Exception):
    """Base class for every error raised by the engine."""


class ParseError(WorkflowEngineError):
    """A definition file could not be parsed into a typed definition."""

    def __init__(
        self,
        path: Path | str,
        message: str,
        *,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        self.path = Path(path)
        self.message = message
        self.line = line
        self.column = column
        super().__init__(str(self))

    def __str__(self) -> str:
        location = str(self.path)
        if self.line is not None:
            location += f":{self.line}"
            if self.column is not None:
                location += f":{self.column}"
        return f"{location}: {self.message}"


class NotFoundError(WorkflowEngineError, FileNotFoundError):
    """A workflow or task file does not exist."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        super().__init__(f"Definition file not found: {self.path}")

    def __str__(self) -> str:
        return f"Definition file not found: {self.path}"


class CompilationError(WorkflowEngineError):
    """Base class for reference and structural errors found while compiling."""


class CircularInheritanceError(CompilationError):
    def __init__(self, chain: Sequence[str]) -> None:
        self.chain = list(chain)
        super().__init__(f"Circular inheritance detected: {' -> '.join(self.chain)}")


class UnknownInheritedFieldError(CompilationError):
    def __init__(self, field: str, parent: str) -> None:
        self.field = field
        self.parent = parent
        super().__init__(f"Field {field!r} inherited from {parent!r} does not exist in the parent")


class DuplicateStepError(CompilationError):
    def __init__(self, workflow_id: str, step_ids: Sequence[str]) -> None:
        self.workflow_id = workflow_id
        self.step_ids = list(step_ids)
        super().__init__(
            f"Workflow {workflow_id!r} declares duplicate step ids: {', '.join(self.step_ids)}"
        )


class DuplicateFieldError(CompilationError):
    def __init__(self, task_id: str, fields: Sequence[str]) -> None:
        self.task_id = task_id
        self.fields = list(fields)
        super().__init__(
            f"Task {task_id!r} resolves to duplicate field names: {', '.join(self.fields)}"
        )


class UnknownStageError(CompilationError):
    def __init__(self, step_id: str, stage: str) -> None:
        self.step_id = step_id
        self.stage = stage
        super().__init__(f"Step {step_id!r} references undeclared stage {stage!r}")


class InvalidTransitionError(CompilationError):
    def __init__(self, step_id: str, target: str) -> None:
        self.step_id = step_id
        self.target = target
        super().__init__(f"Invalid transition in step {step_id!r}: target {target!r} does not exist")


class RequiredFieldError(CompilationError):
    """Required fields that the resolved task never produces."""

    def __init__(self, task_id: str, fields: Sequence[str]) -> None:
        self.task_id = task_id
        self.fields = list(fields)
        super().__init__(
            f"Task {task_id!r} requires fields missing from expected_output_fields: "
            f"{', '.join(self.fields)}"
        )


class EmptyWorkflowError(CompilationError):
    def __init__(self, workflow_id: str) -> None:
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id!r} declares no steps")


class NoApplicableWorkflowError(WorkflowEngineError):
    def __init__(self, entity_category: str, region: str) -> None:
        self.entity_category = entity_category
        self.region = region
        super().__init__(
            f"No workflow applies to entity_category={entity_category!r}, region={region!r}"
        )


class StepNotFoundError(WorkflowEngineError, KeyError):
    def __init__(self, step_id: str) -> None:
        self.step_id = step_id
        super().__init__(step_id)

    def __str__(self) -> str:
        return f"Step not found: {self.step_id}"


class StorageError(WorkflowEngineError):
    """Client state could not be read or written."""

    def __init__(self, path: Path | str, message: str) -> None:
        self.path = Path(path)
        super().__init__(f"{self.path}: {message}")


class OrphanStepWarning(UserWarning):
    """A step that cannot be reached from the initial step."""
