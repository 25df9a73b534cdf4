"""Compiled machines, condition evaluation and step execution."""

from workflow_engine.runtime.compiler import compile_workflow
from workflow_engine.runtime.engine import (
    TransitionResult,
    ValidationResult,
    can_progress,
    execute_transition,
    missing_required_fields,
    next_step_id,
    validate_step_inputs,
)
from workflow_engine.runtime.expressions import Condition, evaluate, parse_condition
from workflow_engine.runtime.machine import (
    CompiledCondition,
    CompiledTransition,
    CompiledWorkflowStep,
    RuntimeMachine,
)
from workflow_engine.runtime.session import ProgressResult, WorkflowSession

__all__ = [
    "CompiledCondition",
    "CompiledTransition",
    "CompiledWorkflowStep",
    "Condition",
    "ProgressResult",
    "RuntimeMachine",
    "TransitionResult",
    "ValidationResult",
    "WorkflowSession",
    "can_progress",
    "compile_workflow",
    "evaluate",
    "execute_transition",
    "missing_required_fields",
    "next_step_id",
    "parse_condition",
    "validate_step_inputs",
]
