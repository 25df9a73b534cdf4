"""Workflow and task definitions: typed models, YAML loading and inheritance."""

from workflow_engine.definitions.cache import (
    DefinitionCache,
    MtimeCache,
    NoCache,
    cache_for_policy,
)
from workflow_engine.definitions.loader import DefinitionLoader
from workflow_engine.definitions.models import (
    END,
    AppliesTo,
    FieldKind,
    FieldOption,
    FieldSchema,
    FieldValidation,
    StageDefinition,
    TaskDefinition,
    TaskSchema,
    Transition,
    TransitionCondition,
    WorkflowDefinition,
    WorkflowStepReference,
)
from workflow_engine.definitions.resolver import TaskResolver

__all__ = [
    "END",
    "AppliesTo",
    "DefinitionCache",
    "DefinitionLoader",
    "FieldKind",
    "FieldOption",
    "FieldSchema",
    "FieldValidation",
    "MtimeCache",
    "NoCache",
    "StageDefinition",
    "TaskDefinition",
    "TaskResolver",
    "TaskSchema",
    "Transition",
    "TransitionCondition",
    "WorkflowDefinition",
    "WorkflowStepReference",
    "cache_for_policy",
]
