"""
SQLAlchemy models for Monday Mirror.

Workspaces, boards and users are keyed by their monday.com ids. Columns and
tags are owned by a board and replaced wholesale on every sync touching it.
"""

import uuid
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from .base import Base


def _iso(value) -> Any:
    return value.isoformat() if value else None


board_state_enum = Enum("active", "archived", "deleted", name="board_state")

relationship_type_enum = Enum(
    "dependency", "mirror", "connect", "integration", name="relationship_type"
)

sync_status_enum = Enum(
    "running", "completed", "failed", "cancelled", name="sync_status"
)


class WorkspaceModel(Base):
    """Mirrored monday.com workspace."""

    __tablename__ = "workspaces"

    id = Column(String(50), primary_key=True)
    name = Column(String(255), nullable=False, index=True)
    kind = Column(String(50), nullable=False, default="open")
    description = Column(Text, nullable=True)
    product_kind = Column(String(50), nullable=True)

    # Set when the workspace was missing from the latest complete listing
    is_stale = Column(Boolean, nullable=False, default=False)

    cached_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    last_synced = Column(DateTime(timezone=True), nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "description": self.description,
            "product_kind": self.product_kind,
            "is_stale": self.is_stale,
            "cached_at": _iso(self.cached_at),
            "last_synced": _iso(self.last_synced),
        }


class BoardModel(Base):
    """Mirrored monday.com board."""

    __tablename__ = "boards"

    id = Column(String(50), primary_key=True)
    workspace_id = Column(
        String(50),
        ForeignKey("workspaces.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    state = Column(board_state_enum, nullable=False, default="active", index=True)
    board_folder_id = Column(String(50), nullable=True)
    board_kind = Column(String(50), nullable=True)

    items_count = Column(Integer, nullable=False, default=0)
    permissions = Column(String(50), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    is_stale = Column(Boolean, nullable=False, default=False)

    # Advisory cache of the health scorer's last output; never authoritative
    health_status = Column(String(20), nullable=False, default="unknown")
    health_score = Column(Integer, nullable=False, default=0)
    health_checked_at = Column(DateTime(timezone=True), nullable=True)

    cached_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    last_synced = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_boards_workspace_state", "workspace_id", "state"),
        Index("ix_boards_health", "health_status", "health_score"),
        Index("ix_boards_updated_at", "updated_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "name": self.name,
            "description": self.description,
            "state": self.state,
            "board_folder_id": self.board_folder_id,
            "board_kind": self.board_kind,
            "items_count": self.items_count,
            "permissions": self.permissions,
            "updated_at": _iso(self.updated_at),
            "is_stale": self.is_stale,
            "health_status": self.health_status,
            "health_score": self.health_score,
            "health_checked_at": _iso(self.health_checked_at),
            "cached_at": _iso(self.cached_at),
            "last_synced": _iso(self.last_synced),
        }


class ColumnModel(Base):
    """A board column; replaced as a set whenever its board is synced."""

    __tablename__ = "board_columns"

    id = Column(Integer, primary_key=True, autoincrement=True)
    board_id = Column(
        String(50), ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # monday.com column ids are only unique within a board
    column_id = Column(String(100), nullable=False)
    title = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False, index=True)
    settings_str = Column(Text, nullable=True)
    archived = Column(Boolean, nullable=False, default=False)
    position = Column(String(50), nullable=True)

    cached_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    __table_args__ = (
        UniqueConstraint("board_id", "column_id", name="uq_board_columns_board_column"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "board_id": self.board_id,
            "id": self.column_id,
            "title": self.title,
            "type": self.type,
            "settings_str": self.settings_str,
            "archived": self.archived,
            "pos": self.position,
        }


class BoardTagModel(Base):
    """A tag attached to a board."""

    __tablename__ = "board_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    board_id = Column(
        String(50), ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tag_id = Column(String(50), nullable=False)
    name = Column(String(255), nullable=False)
    color = Column(String(20), nullable=True)

    __table_args__ = (
        UniqueConstraint("board_id", "tag_id", name="uq_board_tags_board_tag"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "board_id": self.board_id,
            "id": self.tag_id,
            "name": self.name,
            "color": self.color,
        }


class BoardRelationshipModel(Base):
    """Directed, typed edge between two mirrored boards."""

    __tablename__ = "board_relationships"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    source_board_id = Column(
        String(50), ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_board_id = Column(
        String(50), ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    relationship_type = Column(relationship_type_enum, nullable=False, index=True)

    source_column_id = Column(String(100), nullable=True)
    target_column_id = Column(String(100), nullable=True)

    # "metadata" is reserved by the declarative base
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)

    discovered_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    last_verified = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    __table_args__ = (
        UniqueConstraint(
            "source_board_id",
            "target_board_id",
            "relationship_type",
            "source_column_id",
            name="uq_board_relationships_natural_key",
        ),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "source_board_id": self.source_board_id,
            "target_board_id": self.target_board_id,
            "relationship_type": self.relationship_type,
            "source_column_id": self.source_column_id,
            "target_column_id": self.target_column_id,
            "metadata": self.metadata_,
            "discovered_at": _iso(self.discovered_at),
            "last_verified": _iso(self.last_verified),
            "is_active": self.is_active,
        }


class UserModel(Base):
    """Mirrored monday.com account user."""

    __tablename__ = "users"

    id = Column(String(50), primary_key=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    enabled = Column(Boolean, nullable=False, default=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    is_guest = Column(Boolean, nullable=False, default=False)
    last_activity = Column(DateTime(timezone=True), nullable=True)

    cached_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    last_synced = Column(DateTime(timezone=True), nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "enabled": self.enabled,
            "is_admin": self.is_admin,
            "is_guest": self.is_guest,
            "last_activity": _iso(self.last_activity),
            "last_synced": _iso(self.last_synced),
        }


class SyncRunModel(Base):
    """Audit record of one sync invocation.

    Created as ``running`` and moved exactly once to ``completed`` or
    ``failed``. The most recent completed run defines the mirror's age.
    """

    __tablename__ = "sync_runs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sync_type = Column(String(50), nullable=False, index=True)

    # Scope; all NULL for an organization-wide sync
    scope = Column(String(255), nullable=True)
    workspace_id = Column(String(50), nullable=True)
    board_id = Column(String(50), nullable=True)

    status = Column(sync_status_enum, nullable=False, default="running")

    records_processed = Column(Integer, nullable=False, default=0)
    records_created = Column(Integer, nullable=False, default=0)
    records_updated = Column(Integer, nullable=False, default=0)
    records_deleted = Column(Integer, nullable=False, default=0)

    started_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    error_message = Column(Text, nullable=True)
    error_details = Column(JSON, nullable=True)
    sync_config = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_sync_runs_status_started", "status", "started_at"),
        Index("ix_sync_runs_status_completed", "status", "completed_at"),
        Index("ix_sync_runs_scope", "workspace_id", "board_id"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "sync_type": self.sync_type,
            "scope": self.scope,
            "workspace_id": self.workspace_id,
            "board_id": self.board_id,
            "status": self.status,
            "records_processed": self.records_processed,
            "records_created": self.records_created,
            "records_updated": self.records_updated,
            "records_deleted": self.records_deleted,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "error_message": self.error_message,
            "error_details": self.error_details,
            "sync_config": self.sync_config,
        }
