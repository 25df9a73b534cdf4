"""Flatten task inheritance into one concrete schema per task.

A task that ``extends`` another is merged onto its fully resolved parent:

- parent fields keep their position; a child field with the same name is
  merged onto it key by key
- a child field with ``inherits: X`` starts from the parent's field ``X``,
  applies its own keys and takes its own name
- remaining child fields are appended in declaration order
- a child may declare each field name once; a task without a parent may
  not use ``inherits``
- ``expected_output_fields`` is the ordered union, parent first

Merging is pure: loaded definitions are never mutated.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from workflow_engine.definitions.loader import DefinitionLoader
from workflow_engine.definitions.models import FieldSchema, TaskDefinition, TaskSchema
from workflow_engine.errors import (
    CircularInheritanceError,
    DuplicateFieldError,
    UnknownInheritedFieldError,
)

logger = logging.getLogger(__name__)


def _overrides(field: FieldSchema) -> dict[str, Any]:
    """Keys the author actually wrote on a field, minus the inheritance marker."""

    data = field.model_dump(exclude_unset=True)
    data.pop("inherits", None)
    return data


def _ordered_union(first: list[str], second: list[str]) -> list[str]:
    out: list[str] = []
    for name in [*first, *second]:
        if name not in out:
            out.append(name)
    return out


def merge_field(base: FieldSchema, child: FieldSchema, *, name: str | None = None) -> FieldSchema:
    """Return ``{...base, ...child overrides, name}`` as a new field."""

    data = base.model_dump(exclude_unset=True)
    data.pop("inherits", None)
    data.update(_overrides(child))
    data["name"] = name or child.name
    return FieldSchema.model_validate(data)


def merge_fields(
    parent_fields: list[FieldSchema],
    child_fields: list[FieldSchema],
    *,
    parent_id: str,
    child_id: str,
) -> list[FieldSchema]:
    """Merge child fields onto parent fields.

    Raises:
        DuplicateFieldError: If the child declares the same name twice.
        UnknownInheritedFieldError: If ``inherits`` names no parent field.
    """

    parent_by_name = {f.name: f for f in parent_fields}
    merged: list[FieldSchema] = list(parent_fields)
    position = {f.name: idx for idx, f in enumerate(parent_fields)}
    declared: set[str] = set()

    for child in child_fields:
        if child.name in declared:
            raise DuplicateFieldError(child_id, [child.name])
        declared.add(child.name)

        if child.inherits is not None:
            source = parent_by_name.get(child.inherits)
            if source is None:
                raise UnknownInheritedFieldError(child.inherits, parent_id)
            resolved = merge_field(source, child, name=child.name)
        elif child.name in parent_by_name:
            resolved = merge_field(parent_by_name[child.name], child)
        else:
            resolved = merge_field(FieldSchema(name=child.name), child)

        if child.name in position:
            merged[position[child.name]] = resolved
        else:
            position[child.name] = len(merged)
            merged.append(resolved)

    return merged


def merge_schemas(
    parent: TaskSchema, child: TaskSchema, *, parent_id: str, child_id: str
) -> TaskSchema:
    data = parent.model_dump(exclude_unset=True, exclude={"fields"})
    data.update(child.model_dump(exclude_unset=True, exclude={"fields"}))
    fields = merge_fields(
        parent.fields, child.fields, parent_id=parent_id, child_id=child_id
    )
    return TaskSchema.model_validate({**data, "fields": fields})


def merge_tasks(parent: TaskDefinition, child: TaskDefinition) -> TaskDefinition:
    """Merge a child task onto its already-resolved parent."""

    explicit = child.model_fields_set
    return child.model_copy(
        update={
            "extends": None,
            "component_id": child.component_id or parent.component_id,
            "required_fields": list(
                child.required_fields if "required_fields" in explicit else parent.required_fields
            ),
            "task_schema": merge_schemas(
                parent.task_schema, child.task_schema, parent_id=parent.id, child_id=child.id
            ),
            "expected_output_fields": _ordered_union(
                parent.expected_output_fields, child.expected_output_fields
            ),
        }
    )


class TaskResolver:
    """Resolve ``extends`` chains through a loader, detecting cycles."""

    def __init__(self, loader: DefinitionLoader) -> None:
        self._loader = loader

    def resolve(self, task: TaskDefinition) -> TaskDefinition:
        """Return the fully flattened task, detached from the loader's cache."""

        return self._resolve(task, stack=(), sources=[]).model_copy(deep=True)

    def resolve_ref(self, task_ref: str) -> tuple[TaskDefinition, tuple[Path, ...]]:
        """Load and resolve a task, also returning every file that fed the result."""

        sources = [self._loader.task_path(task_ref)]
        task = self._loader.load_task(task_ref)
        resolved = self._resolve(task, stack=(), sources=sources)
        return resolved.model_copy(deep=True), tuple(sources)

    def _resolve(
        self,
        task: TaskDefinition,
        *,
        stack: tuple[str, ...],
        sources: list[Path],
    ) -> TaskDefinition:
        if task.id in stack:
            raise CircularInheritanceError([*stack, task.id])
        if not task.extends:
            for schema_field in task.task_schema.fields:
                if schema_field.inherits is not None:
                    raise UnknownInheritedFieldError(schema_field.inherits, task.id)
            return task

        parent_ref = task.extends
        sources.append(self._loader.task_path(parent_ref))
        parent = self._loader.load_task(parent_ref)
        resolved_parent = self._resolve(parent, stack=(*stack, task.id), sources=sources)

        logger.debug(
            "Resolved task inheritance",
            extra={"task_id": task.id, "parent": resolved_parent.id},
        )
        return merge_tasks(resolved_parent, task)
