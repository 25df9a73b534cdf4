"""YAML-defined client workflows.

- workflow and task definitions loaded from a YAML tree
- task inheritance flattened into concrete schemas
- workflows compiled into immutable, indexed state machines
- per-client progress persisted as atomic JSON records
"""

__version__ = "0.1.0"

from workflow_engine.config import EngineSettings

__all__ = ["__version__", "EngineSettings"]
