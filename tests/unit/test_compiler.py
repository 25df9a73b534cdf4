"""Unit tests for compiling workflows into runtime machines."""

from __future__ import annotations

import json
import warnings
from collections.abc import Callable
from pathlib import Path

import pytest

from workflow_engine.definitions.cache import MtimeCache
from workflow_engine.definitions.loader import DefinitionLoader
from workflow_engine.errors import (
    CircularInheritanceError,
    DuplicateFieldError,
    DuplicateStepError,
    EmptyWorkflowError,
    InvalidTransitionError,
    NotFoundError,
    OrphanStepWarning,
    ParseError,
    RequiredFieldError,
    UnknownStageError,
)
from workflow_engine.runtime.compiler import compile_workflow
from workflow_engine.runtime.machine import RuntimeMachine

WriteYaml = Callable[[str, str], Path]


def _compile(loader: DefinitionLoader, name: str) -> RuntimeMachine:
    return compile_workflow(loader.load_workflow(name), loader)


def test_machine_structure(machine: RuntimeMachine) -> None:
    assert machine.workflow_id == "kyc_corporate"
    assert machine.version == 2
    assert machine.initial_step_id == "contactInfo"
    assert [s.id for s in machine.steps] == [
        "contactInfo",
        "collectDocuments",
        "enhancedDueDiligence",
        "review",
    ]
    assert set(machine.step_index) == {s.id for s in machine.steps}
    assert machine.warnings == ()


def test_steps_carry_resolved_tasks(machine: RuntimeMachine) -> None:
    step = machine.get("contactInfo")

    assert step is not None
    assert step.stage == "information"
    assert step.component_id == "contact-form"
    assert step.task.extends is None
    assert [f.name for f in step.fields] == ["email", "phone", "legal_name"]
    assert step.required_fields == ("email", "legal_name")
    assert step.expected_output_fields == ("email", "phone", "legal_name")


def test_conditions_are_parsed_once(machine: RuntimeMachine) -> None:
    step = machine.get("collectDocuments")

    assert step is not None
    edge = step.next.conditions[0]
    assert edge.condition is not None
    assert edge.condition.field == "risk_score"
    assert edge.target == "enhancedDueDiligence"
    assert step.next.default == "review"


def test_source_files_are_recorded(machine: RuntimeMachine) -> None:
    names = [p.name for p in machine.source_files]

    assert names[0] == "kyc_corporate.yaml"
    assert {"corporate.yaml", "base.yaml", "upload.yaml", "edd.yaml", "final.yaml"} <= set(names)
    assert len(names) == len(set(names))


def test_compilation_is_deterministic(loader: DefinitionLoader) -> None:
    first = _compile(loader, "kyc_corporate")
    second = _compile(loader, "kyc_corporate")

    assert first == second
    assert first.to_json() == second.to_json()


def test_compilation_does_not_mutate_workflow(loader: DefinitionLoader) -> None:
    workflow = loader.load_workflow("kyc_corporate")
    before = workflow.model_dump()

    compile_workflow(workflow, loader)

    assert workflow.model_dump() == before


def test_json_round_trip(machine: RuntimeMachine) -> None:
    data = machine.to_json()
    restored = RuntimeMachine.from_json(json.loads(json.dumps(data)))

    assert restored.graph() == machine.graph()
    assert restored.initial_step_id == machine.initial_step_id
    assert [s.stage for s in restored.steps] == [s.stage for s in machine.steps]
    for original, copy in zip(machine.steps, restored.steps, strict=True):
        assert copy.schema == original.schema
        assert copy.required_fields == original.required_fields
        assert copy.expected_output_fields == original.expected_output_fields
    assert restored.to_json() == data


def test_json_hides_inheritance(machine: RuntimeMachine) -> None:
    text = json.dumps(machine.to_json())

    assert '"extends"' not in text
    assert '"task_ref"' not in text
    assert '"inherits"' not in text


def test_json_shape(machine: RuntimeMachine) -> None:
    data = machine.to_json()

    assert data["workflowId"] == "kyc_corporate"
    assert data["initialStepId"] == "contactInfo"
    assert list(data["stepIndexById"]) == [s.id for s in machine.steps]
    step = data["stepIndexById"]["collectDocuments"]
    assert step["next"] == {
        "default": "review",
        "conditions": [{"when": "risk_score > 70", "then": "enhancedDueDiligence"}],
    }
    assert step["schema"]["fields"][1]["name"] == "risk_score"


def test_unknown_transition_target(loader: DefinitionLoader, write_yaml: WriteYaml) -> None:
    write_yaml(
        "workflows/bad_target.yaml",
        """
        id: bad_target
        name: Bad target
        steps:
          - id: one
            task_ref: review/final
            next:
              conditions:
                - when: "confirmed == true"
                  then: nowhere
              default: END
        """,
    )

    with pytest.raises(InvalidTransitionError) as excinfo:
        _compile(loader, "bad_target")

    assert excinfo.value.step_id == "one"
    assert excinfo.value.target == "nowhere"


def test_missing_task_file(loader: DefinitionLoader, write_yaml: WriteYaml) -> None:
    write_yaml(
        "workflows/missing_task.yaml",
        """
        id: missing_task
        name: Missing task
        steps:
          - id: one
            task_ref: review/does_not_exist
        """,
    )

    with pytest.raises(NotFoundError):
        _compile(loader, "missing_task")


def test_unparsable_task_aborts_compilation(
    loader: DefinitionLoader, write_yaml: WriteYaml
) -> None:
    write_yaml("tasks/review/broken.yaml", "id: [broken\n")
    write_yaml(
        "workflows/uses_broken.yaml",
        """
        id: uses_broken
        name: Uses broken
        steps:
          - id: one
            task_ref: review/broken
        """,
    )

    with pytest.raises(ParseError):
        _compile(loader, "uses_broken")


def test_circular_task_aborts_compilation(
    loader: DefinitionLoader, write_yaml: WriteYaml
) -> None:
    write_yaml(
        "workflows/circular.yaml",
        """
        id: circular
        name: Circular
        steps:
          - id: one
            task_ref: _base/x
        """,
    )

    with pytest.raises(CircularInheritanceError):
        _compile(loader, "circular")


def test_duplicate_step_ids(loader: DefinitionLoader, write_yaml: WriteYaml) -> None:
    write_yaml(
        "workflows/dupes.yaml",
        """
        id: dupes
        name: Dupes
        steps:
          - id: one
            task_ref: review/final
            next: {default: one}
          - id: one
            task_ref: review/final
        """,
    )

    with pytest.raises(DuplicateStepError) as excinfo:
        _compile(loader, "dupes")

    assert excinfo.value.step_ids == ["one"]


def test_duplicate_field_names(loader: DefinitionLoader, write_yaml: WriteYaml) -> None:
    write_yaml(
        "tasks/misc/dupe_fields.yaml",
        """
        id: dupe_fields
        name: Dupe fields
        schema:
          fields:
            - name: a
            - name: a
        expected_output_fields: [a]
        """,
    )
    write_yaml(
        "workflows/dupe_fields.yaml",
        """
        id: dupe_fields
        name: Dupe fields
        steps:
          - id: one
            task_ref: misc/dupe_fields
        """,
    )

    with pytest.raises(DuplicateFieldError) as excinfo:
        _compile(loader, "dupe_fields")

    assert excinfo.value.fields == ["a"]


def test_child_task_repeating_a_field_aborts_compilation(
    loader: DefinitionLoader, write_yaml: WriteYaml
) -> None:
    write_yaml(
        "tasks/contact_info/repeated.yaml",
        """
        id: contact_info_repeated
        name: Repeated
        extends: contact_info/base
        schema:
          fields:
            - name: legal_name
              label: First
            - name: legal_name
              label: Second
        """,
    )
    write_yaml(
        "workflows/repeated.yaml",
        """
        id: repeated
        name: Repeated
        steps:
          - id: one
            task_ref: contact_info/repeated
        """,
    )

    with pytest.raises(DuplicateFieldError) as excinfo:
        _compile(loader, "repeated")

    assert excinfo.value.task_id == "contact_info_repeated"


def test_machines_do_not_share_task_state(data_root: Path) -> None:
    loader = DefinitionLoader(data_root, cache=MtimeCache())
    first = _compile(loader, "kyc_corporate")
    review = first.get("review")
    assert review is not None

    review.task.required_fields.append("injected")
    second = _compile(loader, "kyc_corporate")

    rebuilt = second.get("review")
    assert rebuilt is not None
    assert rebuilt.required_fields == ("confirmed",)
    assert isinstance(review.required_fields, tuple)


def test_required_fields_must_be_expected(
    loader: DefinitionLoader, write_yaml: WriteYaml
) -> None:
    write_yaml(
        "tasks/misc/unproduced.yaml",
        """
        id: unproduced
        name: Unproduced
        required_fields: [a, b]
        schema:
          fields:
            - name: a
        expected_output_fields: [a]
        """,
    )
    write_yaml(
        "workflows/unproduced.yaml",
        """
        id: unproduced
        name: Unproduced
        steps:
          - id: one
            task_ref: misc/unproduced
        """,
    )

    with pytest.raises(RequiredFieldError) as excinfo:
        _compile(loader, "unproduced")

    assert excinfo.value.fields == ["b"]


def test_undeclared_stage(loader: DefinitionLoader, write_yaml: WriteYaml) -> None:
    write_yaml(
        "workflows/bad_stage.yaml",
        """
        id: bad_stage
        name: Bad stage
        stages:
          - id: known
            name: Known
        steps:
          - id: one
            stage: unknown
            task_ref: review/final
        """,
    )

    with pytest.raises(UnknownStageError):
        _compile(loader, "bad_stage")


def test_empty_workflow(loader: DefinitionLoader) -> None:
    workflow = loader.load_workflow("_draft")

    with pytest.raises(EmptyWorkflowError):
        compile_workflow(workflow, loader)


def test_orphan_steps_warn_but_compile(loader: DefinitionLoader, write_yaml: WriteYaml) -> None:
    write_yaml(
        "workflows/orphans.yaml",
        """
        id: orphans
        name: Orphans
        steps:
          - id: start
            task_ref: review/final
            next: {default: END}
          - id: stranded
            task_ref: individual/identity
        """,
    )

    with pytest.warns(OrphanStepWarning, match="stranded"):
        machine = _compile(loader, "orphans")

    assert "stranded" in machine
    assert len(machine.warnings) == 1
    assert machine.reachable_step_ids() == {"start"}


def test_unparsable_condition_still_compiles(
    loader: DefinitionLoader, write_yaml: WriteYaml
) -> None:
    write_yaml(
        "workflows/odd_condition.yaml",
        """
        id: odd_condition
        name: Odd condition
        steps:
          - id: one
            task_ref: review/final
            next:
              conditions:
                - when: "confirmed == true && something"
                  then: two
              default: two
          - id: two
            task_ref: individual/identity
        """,
    )

    with warnings.catch_warnings():
        warnings.simplefilter("error", OrphanStepWarning)
        machine = _compile(loader, "odd_condition")

    step = machine.get("one")
    assert step is not None
    assert step.next.conditions[0].condition is None
    assert step.next.conditions[0].matches({"confirmed": True}) is False
