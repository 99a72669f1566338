"""
Database package for Monday Mirror.
"""

from .base import Base, create_db_engine, get_engine, get_session_local, init_database
from .models import (
    BoardModel,
    BoardRelationshipModel,
    BoardTagModel,
    ColumnModel,
    SyncRunModel,
    UserModel,
    WorkspaceModel,
)
from .services import MirrorStore

__all__ = [
    "Base",
    "get_engine",
    "get_session_local",
    "create_db_engine",
    "init_database",
    "MirrorStore",
    "WorkspaceModel",
    "BoardModel",
    "BoardTagModel",
    "ColumnModel",
    "BoardRelationshipModel",
    "UserModel",
    "SyncRunModel",
]
