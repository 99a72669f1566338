"""
Pydantic models for monday.com payloads and the mirror's read projections.

Remote payloads use string ids; numeric ids from older API versions are
coerced to strings so that equality checks across the mirror are stable.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BoardState(str, Enum):
    """Lifecycle state of a board."""

    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"


class RelationshipType(str, Enum):
    """Kinds of board-to-board edges."""

    DEPENDENCY = "dependency"
    MIRROR = "mirror"
    CONNECT = "connect"
    INTEGRATION = "integration"


class SyncKind(str, Enum):
    """Sync strategies recorded on a sync run."""

    FULL = "full_sync"
    INCREMENTAL = "incremental_sync"
    SCOPE = "scope_sync"


class SyncStatus(str, Enum):
    """Sync run lifecycle."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class MondayModel(BaseModel):
    """Base for remote payload models."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class Workspace(MondayModel):
    """A monday.com workspace."""

    id: str
    name: str
    kind: str = "open"
    description: Optional[str] = None
    product_kind: Optional[str] = None
    is_stale: bool = False

    @field_validator("kind", mode="before")
    @classmethod
    def default_kind(cls, value: Any) -> Any:
        return value or "open"


class WorkspaceRef(MondayModel):
    """Workspace reference embedded in a board payload."""

    id: str
    name: Optional[str] = None


class Column(MondayModel):
    """A board column. ``settings_str`` is an opaque JSON blob."""

    id: str
    title: str
    type: str
    settings_str: Optional[str] = None
    archived: bool = False
    pos: Optional[str] = None

    @field_validator("archived", mode="before")
    @classmethod
    def default_archived(cls, value: Any) -> Any:
        return bool(value)


class Tag(MondayModel):
    id: str
    name: str
    color: Optional[str] = None


class Board(MondayModel):
    """A monday.com board with its columns embedded."""

    id: str
    name: str
    description: Optional[str] = None
    state: BoardState = BoardState.ACTIVE
    board_folder_id: Optional[str] = None
    board_kind: Optional[str] = None
    workspace: Optional[WorkspaceRef] = None
    columns: List[Column] = Field(default_factory=list)
    items_count: int = 0
    permissions: Optional[str] = None
    tags: List[Tag] = Field(default_factory=list)
    updated_at: Optional[datetime] = None
    is_stale: bool = False

    @field_validator("items_count", mode="before")
    @classmethod
    def default_items_count(cls, value: Any) -> Any:
        return value or 0

    @field_validator("columns", "tags", mode="before")
    @classmethod
    def default_list(cls, value: Any) -> Any:
        return value or []

    @property
    def workspace_id(self) -> Optional[str]:
        return self.workspace.id if self.workspace else None


class User(MondayModel):
    """A monday.com account user."""

    id: str
    name: str
    email: Optional[str] = None
    enabled: bool = True
    is_admin: bool = False
    is_guest: bool = False
    last_activity: Optional[datetime] = None


class RawConnection(BaseModel):
    """A board-to-board link read from one column's settings."""

    source_board: str
    source_board_name: Optional[str] = None
    target_board: str
    type: RelationshipType = RelationshipType.CONNECT
    column_id: Optional[str] = None
    column_title: Optional[str] = None
    connection_details: Optional[str] = None


class RelationshipEdge(BaseModel):
    """Write model for a board relationship, keyed by its natural key."""

    source_board: str
    target_board: str
    type: RelationshipType
    source_column: Optional[str] = None
    target_column: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BoardRelationship(BaseModel):
    """Read model for a stored board relationship."""

    source_board_id: str
    target_board_id: str
    source_board_name: Optional[str] = None
    target_board_name: Optional[str] = None
    type: RelationshipType
    source_column_id: Optional[str] = None
    target_column_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class DiscoveryOptions(BaseModel):
    """Options controlling which boards the remote API returns."""

    include_archived: bool = False
    max_boards: Optional[int] = None


class SyncOptions(BaseModel):
    """Caller options for a sync run."""

    include_archived: Optional[bool] = None
    force_refresh: bool = False


class SyncStats(BaseModel):
    """Counts recorded on a completed sync run."""

    processed: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0


class OrganizationalStructure(BaseModel):
    """The mirror as seen by readers, recomputed from the store on every read."""

    workspaces: List[Workspace] = Field(default_factory=list)
    boards: List[Board] = Field(default_factory=list)
    relationships: List[BoardRelationship] = Field(default_factory=list)
    users: List[User] = Field(default_factory=list)
    last_scanned: Optional[datetime] = None
    # Set by discovery only: workspaces whose board listing hit the requested limit
    capped_workspace_ids: List[str] = Field(default_factory=list)


class CacheStatus(BaseModel):
    """Freshness summary of the mirror."""

    is_healthy: bool
    last_sync: Optional[datetime] = None
    total_boards: int = 0
    total_workspaces: int = 0
    cache_age: float = float("inf")
    needs_refresh: bool = True


class IntegrityReport(BaseModel):
    is_valid: bool
    issues: List[str] = Field(default_factory=list)


class PrioritySetupReport(BaseModel):
    """Result of comparing the priority allow-list with the remote workspaces."""

    is_valid: bool
    found_workspaces: List[str] = Field(default_factory=list)
    missing_workspaces: List[str] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
