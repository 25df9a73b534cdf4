"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from textwrap import dedent

import pytest

from workflow_engine.definitions.loader import DefinitionLoader
from workflow_engine.runtime.compiler import compile_workflow
from workflow_engine.runtime.machine import RuntimeMachine
from workflow_engine.state.store import ClientStateStore

WriteYaml = Callable[[str, str], Path]

_TREE: dict[str, str] = {
    "workflows/kyc_corporate.yaml": """
        id: kyc_corporate
        name: Corporate KYC
        version: 2
        applies_to:
          entity_category: corporate
          regions: [US, GB]
        stages:
          - id: information
            name: Information Collection
          - id: compliance
            name: Compliance Review
        steps:
          - id: contactInfo
            stage: information
            task_ref: contact_info/corporate
            next:
              default: collectDocuments
          - id: collectDocuments
            stage: information
            task_ref: documents/upload
            next:
              conditions:
                - when: "risk_score > 70"
                  then: enhancedDueDiligence
              default: review
          - id: enhancedDueDiligence
            stage: compliance
            task_ref: review/edd
            next:
              default: review
          - id: review
            stage: compliance
            task_ref: tasks/review/final.yaml
            next:
              default: END
    """,
    "workflows/kyc_individual.yaml": """
        id: kyc_individual
        name: Individual KYC
        applies_to:
          client_type: individual
          jurisdictions: US
        steps:
          - id: identity
            task_ref: individual/identity
    """,
    "workflows/_draft.yaml": """
        id: draft
        name: Not listed
        steps: []
    """,
    "tasks/contact_info/base.yaml": """
        id: contact_info_base
        name: Contact Information
        version: 1
        component_id: contact-form
        required_fields: [email]
        schema:
          fields:
            - name: email
              label: Email Address
              type: email
              required: true
              placeholder: name@example.com
            - name: phone
              label: Phone Number
              type: tel
              validation:
                pattern: "^[+0-9 ()-]{7,}$"
        expected_output_fields: [email, phone]
    """,
    "tasks/contact_info/corporate.yaml": """
        id: contact_info_corporate
        name: Corporate Contact Information
        version: 1
        extends: contact_info/base
        required_fields: [email, legal_name]
        schema:
          fields:
            - name: legal_name
              label: Legal Entity Name
              type: text
              required: true
              validation:
                minLength: 2
        expected_output_fields: [legal_name]
    """,
    "tasks/documents/upload.yaml": """
        id: documents_upload
        name: Documents
        component_id: document-upload
        required_fields: [certificate, risk_score]
        schema:
          fields:
            - name: certificate
              label: Certificate of Incorporation
              type: file
              accept: [".pdf"]
            - name: risk_score
              label: Risk Score
              type: number
              validation:
                min: 0
                max: 100
        expected_output_fields: [certificate, risk_score]
    """,
    "tasks/review/edd.yaml": """
        id: enhanced_due_diligence
        name: Enhanced Due Diligence
        component_id: form
        required_fields: [source_of_funds, source_of_funds_detail]
        schema:
          fields:
            - name: source_of_funds
              label: Source of Funds
              type: select
              options: [operations, investment, other]
            - name: source_of_funds_detail
              label: Details
              type: textarea
              visible: "source_of_funds == other"
        expected_output_fields: [source_of_funds, source_of_funds_detail]
    """,
    "tasks/review/final.yaml": """
        id: final_review
        name: Final Review
        component_id: review-summary
        required_fields: [confirmed]
        schema:
          fields:
            - name: confirmed
              label: Confirmed
              type: checkbox
        expected_output_fields: [confirmed]
    """,
    "tasks/individual/identity.yaml": """
        id: individual_identity
        name: Identity
        component_id: form
        required_fields: [full_name]
        schema:
          fields:
            - name: full_name
              label: Full Name
        expected_output_fields: [full_name]
    """,
    "tasks/cycle/origin.yaml": """
        id: cycle_origin
        name: Cycle Origin
        extends: _base/x
    """,
    "tasks/_base/x.yaml": """
        id: base_x
        name: Base X
        extends: tasks/child
    """,
    "tasks/child.yaml": """
        id: child
        name: Child
        extends: cycle/origin
    """,
}


@pytest.fixture
def write_yaml(tmp_path: Path) -> WriteYaml:
    """Write a dedented YAML document relative to the data root."""

    root = tmp_path / "data"

    def _write(relative: str, text: str) -> Path:
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dedent(text).lstrip(), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def data_root(tmp_path: Path, write_yaml: WriteYaml) -> Path:
    """A temporary definition tree with two workflows and their tasks."""
    for relative, text in _TREE.items():
        write_yaml(relative, text)
    return tmp_path / "data"


@pytest.fixture
def loader(data_root: Path) -> DefinitionLoader:
    return DefinitionLoader(data_root)


@pytest.fixture
def machine(loader: DefinitionLoader) -> RuntimeMachine:
    """Compiled corporate KYC machine."""
    workflow = loader.load_workflow("kyc_corporate")
    return compile_workflow(workflow, loader, source=loader.workflow_path("kyc_corporate"))


@pytest.fixture
def store(tmp_path: Path) -> ClientStateStore:
    return ClientStateStore(tmp_path / "clients")
