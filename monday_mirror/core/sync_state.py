"""
In-process sync exclusion.

The guard owns a single state token, ``IDLE`` or ``RUNNING`` with the kind
and sync run id. Transitions happen under a lock, so the check-then-set is
atomic within one process. It does not coordinate separate processes or
hosts; a distributed lock would have to wrap ``hold`` to provide that.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Iterator, Optional

from ..schemas.monday import SyncKind
from .errors import SyncInProgressError


class SyncPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass(frozen=True)
class SyncState:
    phase: SyncPhase = SyncPhase.IDLE
    kind: Optional[SyncKind] = None
    run_id: Optional[str] = None
    started_at: Optional[datetime] = None


class SyncGuard:
    """Single-flight guard for sync runs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = SyncState()

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state.phase is SyncPhase.RUNNING

    def acquire(self, kind: SyncKind) -> SyncState:
        """Move to RUNNING or raise ``SyncInProgressError`` without waiting."""
        with self._lock:
            if self._state.phase is SyncPhase.RUNNING:
                running = self._state
                raise SyncInProgressError(
                    running.kind.value if running.kind else None, running.run_id
                )
            self._state = SyncState(
                phase=SyncPhase.RUNNING,
                kind=kind,
                started_at=datetime.now(timezone.utc),
            )
            return self._state

    def attach_run(self, run_id: str) -> None:
        with self._lock:
            if self._state.phase is SyncPhase.RUNNING:
                self._state = replace(self._state, run_id=run_id)

    def release(self) -> None:
        with self._lock:
            self._state = SyncState()

    @contextmanager
    def hold(self, kind: SyncKind) -> Iterator[SyncState]:
        """Hold the guard for the duration of a sync; always released on exit."""
        state = self.acquire(kind)
        try:
            yield state
        finally:
            self.release()
