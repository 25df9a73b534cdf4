"""Step-by-step execution of a compiled workflow for one client."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from workflow_engine.definitions.models import END
from workflow_engine.runtime import engine
from workflow_engine.runtime.machine import CompiledWorkflowStep, RuntimeMachine
from workflow_engine.state.store import ClientState, ClientStateStore, utc_now_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProgressResult:
    """Outcome of one ``WorkflowSession.progress`` call."""

    advanced: bool
    current_step_id: str
    missing_fields: list[str] = field(default_factory=list)
    completed: bool = False
    reason: str | None = None


class WorkflowSession:
    """Holds the current step and the cumulative inputs for one client.

    Inputs collected on earlier steps are never dropped when the session
    advances or goes back. When a store is attached, the session persists its
    state after every input update and every transition.
    """

    def __init__(
        self,
        machine: RuntimeMachine,
        client_id: str,
        *,
        store: ClientStateStore | None = None,
        current_step_id: str | None = None,
        inputs: Mapping[str, Any] | None = None,
        completed_steps: list[str] | None = None,
    ) -> None:
        self.machine = machine
        self.client_id = client_id
        self.store = store
        self.current_step_id = current_step_id or machine.initial_step_id
        self.inputs: dict[str, Any] = dict(inputs or {})
        self.completed_steps: list[str] = list(completed_steps or [])

    @classmethod
    def start(
        cls,
        machine: RuntimeMachine,
        client_id: str,
        store: ClientStateStore | None = None,
    ) -> WorkflowSession:
        """Resume a client's stored progress, or begin at the initial step.

        A stored record for a different workflow, or one pointing at a step
        that no longer exists, is restarted at the initial step while its
        collected inputs are kept.
        """

        state = store.load(client_id) if store is not None else None
        if state is None:
            session = cls(machine, client_id, store=store)
            session.save()
            return session

        step_id = state.current_step_id
        completed = list(state.completed_steps)
        if state.workflow_id != machine.workflow_id:
            logger.warning(
                "Stored state belongs to another workflow; restarting",
                extra={
                    "client_id": client_id,
                    "stored_workflow_id": state.workflow_id,
                    "workflow_id": machine.workflow_id,
                },
            )
            step_id, completed = machine.initial_step_id, []
        elif step_id != END and step_id not in machine:
            logger.warning(
                "Stored step no longer exists; restarting at the initial step",
                extra={"client_id": client_id, "step_id": step_id},
            )
            step_id, completed = machine.initial_step_id, []

        return cls(
            machine,
            client_id,
            store=store,
            current_step_id=step_id,
            inputs=state.collected_inputs,
            completed_steps=[s for s in completed if s in machine],
        )

    # ------------------------------------------------------------------
    # State

    @property
    def is_complete(self) -> bool:
        return self.current_step_id == END

    @property
    def current_step(self) -> CompiledWorkflowStep | None:
        if self.is_complete:
            return None
        return self.machine.get(self.current_step_id)

    @property
    def current_stage(self) -> str | None:
        step = self.current_step
        return step.stage if step is not None else None

    @property
    def completed_stages(self) -> list[str]:
        return engine.completed_stage_ids(self.machine, self.completed_steps)

    def missing_fields(self) -> list[str]:
        step = self.current_step
        if step is None:
            return []
        return engine.missing_required_fields(step, self.inputs)

    def can_progress(self) -> bool:
        step = self.current_step
        return step is not None and engine.can_progress(step, self.inputs)

    def to_state(self) -> ClientState:
        return ClientState(
            client_id=self.client_id,
            workflow_id=self.machine.workflow_id,
            current_step_id=self.current_step_id,
            current_stage=self.current_stage,
            collected_inputs=dict(self.inputs),
            completed_steps=list(self.completed_steps),
            completed_stages=self.completed_stages,
            last_updated=utc_now_iso(),
        )

    def save(self) -> None:
        if self.store is not None:
            self.store.save(self.client_id, self.to_state())

    # ------------------------------------------------------------------
    # Operations

    def update_inputs(self, partial: Mapping[str, Any]) -> dict[str, Any]:
        """Shallow-merge ``partial`` into the inputs; supplied values win."""

        self.inputs.update(partial)
        self.save()
        return self.inputs

    def progress(self) -> ProgressResult:
        """Advance to the next step if the current one has all required fields.

        Otherwise nothing changes and the missing fields are returned.
        """

        step = self.current_step
        if step is None:
            return ProgressResult(
                advanced=False,
                current_step_id=self.current_step_id,
                completed=self.is_complete,
                reason="Workflow already complete" if self.is_complete else "Unknown step",
            )

        missing = engine.missing_required_fields(step, self.inputs)
        if missing:
            logger.debug(
                "Cannot progress: missing required fields",
                extra={"client_id": self.client_id, "step_id": step.id, "missing": missing},
            )
            return ProgressResult(
                advanced=False,
                current_step_id=step.id,
                missing_fields=missing,
                reason=f"Missing required fields: {', '.join(missing)}",
            )

        result = engine.execute_transition(self.machine, step, self.inputs)
        if step.id not in self.completed_steps:
            self.completed_steps.append(step.id)
        self.current_step_id = result.next_step_id
        self.save()

        logger.info(
            "Workflow transition",
            extra={
                "client_id": self.client_id,
                "workflow_id": self.machine.workflow_id,
                "from_step": step.id,
                "to_step": result.next_step_id,
                "reason": result.reason,
            },
        )
        return ProgressResult(
            advanced=True,
            current_step_id=self.current_step_id,
            completed=result.is_end,
            reason=result.reason,
        )

    def go_back(self) -> bool:
        """Return to the most recently completed step. Inputs are kept."""

        if not self.completed_steps:
            return False
        previous = self.completed_steps[-1]
        if previous not in self.machine:
            return False
        self.completed_steps.pop()
        self.current_step_id = previous
        self.save()
        return True

    def reset(self) -> None:
        """Restart at the initial step with no inputs or completed steps."""

        self.current_step_id = self.machine.initial_step_id
        self.inputs = {}
        self.completed_steps = []
        self.save()
