"""Injectable caches for parsed definition files.

Two policies exist:
- ``NoCache`` always re-reads (development, hot reload)
- ``MtimeCache`` reuses a parsed definition until the file's modification time
  changes or the entry outlives its TTL (production)

Population is compute-then-store. Two callers racing on the same path may both
parse the file; the last store wins, which only delays picking up an edit.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel

from workflow_engine.config import CachePolicy

logger = logging.getLogger(__name__)


class DefinitionCache(Protocol):
    def get(self, path: Path, mtime: float) -> BaseModel | None: ...

    def put(self, path: Path, mtime: float, value: BaseModel) -> None: ...

    def clear(self) -> None: ...


class NoCache:
    """Cache that never holds anything."""

    def get(self, path: Path, mtime: float) -> BaseModel | None:
        return None

    def put(self, path: Path, mtime: float, value: BaseModel) -> None:
        return None

    def clear(self) -> None:
        return None


@dataclass(frozen=True, slots=True)
class _Entry:
    value: BaseModel
    mtime: float
    stored_at: float


class MtimeCache:
    """Cache keyed by path, invalidated by modification time and optional TTL."""

    def __init__(self, ttl_seconds: float = 0.0) -> None:
        self._ttl = ttl_seconds
        self._entries: dict[Path, _Entry] = {}

    def get(self, path: Path, mtime: float) -> BaseModel | None:
        entry = self._entries.get(path)
        if entry is None:
            return None
        if mtime != entry.mtime:
            logger.debug("Definition changed on disk", extra={"path": str(path)})
            return None
        if self._ttl and time.monotonic() - entry.stored_at >= self._ttl:
            logger.debug("Definition cache entry expired", extra={"path": str(path)})
            return None
        return entry.value

    def put(self, path: Path, mtime: float, value: BaseModel) -> None:
        self._entries[path] = _Entry(value=value, mtime=mtime, stored_at=time.monotonic())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def cache_for_policy(policy: CachePolicy | None, *, ttl_seconds: float = 0.0) -> DefinitionCache:
    if policy == "mtime":
        return MtimeCache(ttl_seconds=ttl_seconds)
    return NoCache()
