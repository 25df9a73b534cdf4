"""Typed definitions parsed from workflow and task YAML files.

Workflow files (``workflows/*.yaml``) describe orchestration: steps, stages and
transitions. Task files (``tasks/**/*.yaml``) are the ground truth for the data
collected by one step. These models only check shape; references between files
are checked by the resolver and the compiler.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

END = "END"


class StageDefinition(BaseModel):
    id: str
    name: str
    description: str | None = None


class TransitionCondition(BaseModel):
    """One conditional edge: ``when`` the expression holds, go ``then``."""

    when: str
    then: str


class Transition(BaseModel):
    conditions: list[TransitionCondition] = Field(default_factory=list)
    default: str = END

    @field_validator("conditions", mode="before")
    @classmethod
    def _none_is_empty(cls, value: object) -> object:
        return [] if value is None else value

    def targets(self) -> list[str]:
        """Every target this transition can produce, conditions first."""

        out = [c.then for c in self.conditions]
        out.append(self.default)
        return out


class WorkflowStepReference(BaseModel):
    id: str
    stage: str | None = None
    task_ref: str
    next: Transition = Field(default_factory=Transition)


class AppliesTo(BaseModel):
    """Applicability filter used to pick a workflow for a client profile."""

    entity_category: str = Field(
        validation_alias=AliasChoices("entity_category", "client_type"),
    )
    regions: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("regions", "region", "jurisdictions"),
    )

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("regions", mode="before")
    @classmethod
    def _single_region(cls, value: object) -> object:
        if isinstance(value, str):
            return [value]
        return value

    def matches(self, entity_category: str, region: str | None = None) -> bool:
        if self.entity_category != entity_category:
            return False
        if region is None:
            return True
        return region in self.regions


class WorkflowDefinition(BaseModel):
    id: str
    name: str
    version: int | str = 1
    description: str | None = None
    applies_to: AppliesTo | None = None
    stages: list[StageDefinition] = Field(default_factory=list)
    steps: list[WorkflowStepReference]

    @field_validator("stages", mode="before")
    @classmethod
    def _none_is_empty(cls, value: object) -> object:
        return [] if value is None else value


class FieldKind(str, Enum):
    """Coarse family of a field's ``type`` tag, for renderers and validation."""

    TEXT = "text"
    NUMBER = "number"
    CHOICE = "choice"
    BOOLEAN = "boolean"
    DATE = "date"
    FILE = "file"
    OTHER = "other"


_KIND_BY_TYPE: dict[str, FieldKind] = {
    "text": FieldKind.TEXT,
    "textarea": FieldKind.TEXT,
    "email": FieldKind.TEXT,
    "tel": FieldKind.TEXT,
    "phone": FieldKind.TEXT,
    "url": FieldKind.TEXT,
    "password": FieldKind.TEXT,
    "number": FieldKind.NUMBER,
    "currency": FieldKind.NUMBER,
    "percentage": FieldKind.NUMBER,
    "select": FieldKind.CHOICE,
    "radio": FieldKind.CHOICE,
    "multiselect": FieldKind.CHOICE,
    "checkbox": FieldKind.BOOLEAN,
    "boolean": FieldKind.BOOLEAN,
    "toggle": FieldKind.BOOLEAN,
    "date": FieldKind.DATE,
    "datetime": FieldKind.DATE,
    "file": FieldKind.FILE,
    "document": FieldKind.FILE,
}


class FieldValidation(BaseModel):
    pattern: str | None = None
    minLength: int | None = None  # noqa: N815 (authoring key)
    maxLength: int | None = None  # noqa: N815 (authoring key)
    min: float | None = None
    max: float | None = None

    model_config = ConfigDict(extra="allow")


class FieldOption(BaseModel):
    value: str
    label: str

    @classmethod
    def coerce(cls, raw: object) -> object:
        # Authors often write options as bare scalars.
        if isinstance(raw, (str, int, float, bool)):
            return {"value": str(raw), "label": str(raw)}
        return raw


class FieldSchema(BaseModel):
    """One field of a task schema.

    ``type`` is the variant tag; ``validation``, ``options`` and the file payload
    (``accept``, ``maxSize``, ``multiple``) carry the variant-specific data.
    Unknown authoring keys are kept so renderers can use them.
    """

    name: str
    label: str = ""
    type: str = "text"
    required: bool = False
    placeholder: str | None = None
    helpText: str | None = None  # noqa: N815 (authoring key)
    defaultValue: Any = None  # noqa: N815 (authoring key)
    validation: FieldValidation | None = None
    options: list[FieldOption] | None = None
    visible: str | None = None
    inherits: str | None = None

    accept: list[str] | None = None
    maxSize: int | None = None  # noqa: N815 (authoring key)
    multiple: bool | None = None

    model_config = ConfigDict(extra="allow")

    @field_validator("options", mode="before")
    @classmethod
    def _expand_options(cls, value: object) -> object:
        if isinstance(value, list):
            return [FieldOption.coerce(item) for item in value]
        return value

    @property
    def kind(self) -> FieldKind:
        return _KIND_BY_TYPE.get(self.type, FieldKind.OTHER)

    def option_values(self) -> list[str]:
        return [o.value for o in self.options or []]


class TaskSchema(BaseModel):
    fields: list[FieldSchema] = Field(default_factory=list)
    documents: list[dict[str, Any]] | None = None
    layout: Any = None

    model_config = ConfigDict(extra="allow")

    @field_validator("fields", mode="before")
    @classmethod
    def _none_is_empty(cls, value: object) -> object:
        return [] if value is None else value

    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> FieldSchema | None:
        for field in self.fields:
            if field.name == name:
                return field
        return None


class TaskDefinition(BaseModel):
    id: str
    name: str
    description: str = ""
    version: int | str = 1
    extends: str | None = None
    component_id: str = ""
    required_fields: list[str] = Field(default_factory=list)
    task_schema: TaskSchema = Field(default_factory=TaskSchema, alias="schema")
    expected_output_fields: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("required_fields", "expected_output_fields", "tags", mode="before")
    @classmethod
    def _none_is_empty(cls, value: object) -> object:
        return [] if value is None else value

    @field_validator("task_schema", mode="before")
    @classmethod
    def _none_schema(cls, value: object) -> object:
        return {} if value is None else value

    @property
    def fields(self) -> list[FieldSchema]:
        return self.task_schema.fields

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
