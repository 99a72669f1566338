"""
Core sync, discovery and health logic for Monday Mirror.
"""

from .errors import (
    ConnectivityError,
    NoWorkspacesFoundError,
    ScopeNotAllowedError,
    ScopeNotFoundError,
    SyncError,
    SyncInProgressError,
)
from .health import HealthScorer, HealthStatus, HealthThresholds
from .orchestrator import SyncOrchestrator
from .relationships import RelationshipDiscovery, extract_connections
from .sync_state import SyncGuard, SyncPhase, SyncState

__all__ = [
    "SyncOrchestrator",
    "SyncGuard",
    "SyncPhase",
    "SyncState",
    "RelationshipDiscovery",
    "extract_connections",
    "HealthScorer",
    "HealthStatus",
    "HealthThresholds",
    "SyncError",
    "SyncInProgressError",
    "ConnectivityError",
    "NoWorkspacesFoundError",
    "ScopeNotAllowedError",
    "ScopeNotFoundError",
]
