"""Persistent client state."""

from workflow_engine.state.store import ClientState, ClientStateStore, validate_client_id

__all__ = ["ClientState", "ClientStateStore", "validate_client_id"]
