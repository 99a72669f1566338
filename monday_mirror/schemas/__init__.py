"""Payload and projection schemas for Monday Mirror."""

from .monday import (
    Board,
    BoardRelationship,
    BoardState,
    CacheStatus,
    Column,
    DiscoveryOptions,
    IntegrityReport,
    OrganizationalStructure,
    PrioritySetupReport,
    RawConnection,
    RelationshipEdge,
    RelationshipType,
    SyncKind,
    SyncOptions,
    SyncStats,
    SyncStatus,
    Tag,
    User,
    Workspace,
    WorkspaceRef,
)

__all__ = [
    "Board",
    "BoardRelationship",
    "BoardState",
    "CacheStatus",
    "Column",
    "DiscoveryOptions",
    "IntegrityReport",
    "OrganizationalStructure",
    "PrioritySetupReport",
    "RawConnection",
    "RelationshipEdge",
    "RelationshipType",
    "SyncKind",
    "SyncOptions",
    "SyncStats",
    "SyncStatus",
    "Tag",
    "User",
    "Workspace",
    "WorkspaceRef",
]
