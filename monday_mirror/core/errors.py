"""
Errors raised by the sync subsystem.

Every error carries a stable ``code`` for programmatic handling and a
human-readable ``message``, mirroring the policy-violation shape used by
callers that serialize failures to JSON.
"""

from __future__ import annotations

from typing import List, Optional


class SyncError(Exception):
    """
    Base class for sync failures surfaced to callers.

    Attributes:
        code: Stable error code for programmatic handling
        message: Human-readable error description
    """

    code = "sync_error"

    def __init__(self, message: str, code: Optional[str] = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return {
            "error": "sync_failed",
            "code": self.code,
            "message": self.message,
        }


class SyncInProgressError(SyncError):
    """Raised when a sync is requested while another one is running."""

    code = "sync_in_progress"

    def __init__(self, running_kind: Optional[str] = None, run_id: Optional[str] = None):
        self.running_kind = running_kind
        self.run_id = run_id
        detail = f" ({running_kind} sync {run_id or 'starting'})" if running_kind else ""
        super().__init__(f"Sync already in progress{detail}")


class ConnectivityError(SyncError):
    """Raised when the remote API or the store cannot be reached at sync start."""

    code = "connectivity_failed"


class NoWorkspacesFoundError(SyncError):
    """Raised when discovery finds none of the workspaces it was asked for."""

    code = "no_workspaces_found"

    def __init__(self, expected: List[str], available: Optional[List[str]] = None):
        self.expected = expected
        self.available = available or []
        message = "No workspaces found"
        if expected:
            message = f"No priority workspaces found. Expected: {', '.join(expected)}"
        if self.available:
            message += f". Available: {', '.join(self.available)}"
        super().__init__(message)


class ScopeNotAllowedError(SyncError):
    """Raised when a scoped sync targets a workspace outside the allow-list."""

    code = "scope_not_allowed"

    def __init__(self, scope: str, allowed: List[str]):
        self.scope = scope
        self.allowed = allowed
        super().__init__(
            f'"{scope}" is not a priority workspace. '
            f"Priority workspaces: {', '.join(allowed)}"
        )


class ScopeNotFoundError(SyncError):
    """Raised when a scoped sync targets a workspace that does not exist."""

    code = "scope_not_found"

    def __init__(self, scope: str, where: str = "monday.com"):
        self.scope = scope
        super().__init__(f'Workspace "{scope}" not found in {where}')
