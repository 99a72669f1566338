"""
Monday Mirror

A local relational mirror of a monday.com organization, kept fresh by
full, incremental and workspace-scoped syncs.
"""

import importlib.metadata

__version__ = importlib.metadata.version("monday-mirror")

from .core.errors import SyncError, SyncInProgressError
from .core.health import HealthScorer
from .core.orchestrator import SyncOrchestrator
from .db.services import MirrorStore
from .integrations.monday_api import MondayAPIClient

__all__ = [
    "HealthScorer",
    "MirrorStore",
    "MondayAPIClient",
    "SyncError",
    "SyncInProgressError",
    "SyncOrchestrator",
]
