"""Create mirror tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
import sqlalchemy as sa
from alembic import op

# revision identifiers
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "workspaces",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, index=True),
        sa.Column("kind", sa.String(50), nullable=False, server_default="open"),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("product_kind", sa.String(50), nullable=True),
        sa.Column("is_stale", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "cached_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("last_synced", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "boards",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column(
            "workspace_id",
            sa.String(50),
            sa.ForeignKey("workspaces.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "state",
            sa.Enum("active", "archived", "deleted", name="board_state"),
            nullable=False,
            server_default="active",
            index=True,
        ),
        sa.Column("board_folder_id", sa.String(50), nullable=True),
        sa.Column("board_kind", sa.String(50), nullable=True),
        sa.Column("items_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("permissions", sa.String(50), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_stale", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("health_status", sa.String(20), nullable=False, server_default="unknown"),
        sa.Column("health_score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("health_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "cached_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("last_synced", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_boards_workspace_state", "boards", ["workspace_id", "state"])
    op.create_index("ix_boards_health", "boards", ["health_status", "health_score"])
    op.create_index("ix_boards_updated_at", "boards", ["updated_at"])

    op.create_table(
        "board_columns",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "board_id",
            sa.String(50),
            sa.ForeignKey("boards.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("column_id", sa.String(100), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("type", sa.String(50), nullable=False, index=True),
        sa.Column("settings_str", sa.Text, nullable=True),
        sa.Column("archived", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("position", sa.String(50), nullable=True),
        sa.Column(
            "cached_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("board_id", "column_id", name="uq_board_columns_board_column"),
    )

    op.create_table(
        "board_tags",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "board_id",
            sa.String(50),
            sa.ForeignKey("boards.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("tag_id", sa.String(50), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("color", sa.String(20), nullable=True),
        sa.UniqueConstraint("board_id", "tag_id", name="uq_board_tags_board_tag"),
    )

    op.create_table(
        "board_relationships",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "source_board_id",
            sa.String(50),
            sa.ForeignKey("boards.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "target_board_id",
            sa.String(50),
            sa.ForeignKey("boards.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "relationship_type",
            sa.Enum("dependency", "mirror", "connect", "integration", name="relationship_type"),
            nullable=False,
            index=True,
        ),
        sa.Column("source_column_id", sa.String(100), nullable=True),
        sa.Column("target_column_id", sa.String(100), nullable=True),
        sa.Column("metadata", sa.JSON, nullable=False),
        sa.Column(
            "discovered_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("last_verified", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "is_active", sa.Boolean, nullable=False, server_default=sa.true(), index=True
        ),
        sa.UniqueConstraint(
            "source_board_id",
            "target_board_id",
            "relationship_type",
            "source_column_id",
            name="uq_board_relationships_natural_key",
        ),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True, index=True),
        sa.Column("enabled", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("is_admin", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_guest", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("last_activity", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "cached_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("last_synced", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "sync_runs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("sync_type", sa.String(50), nullable=False, index=True),
        sa.Column("scope", sa.String(255), nullable=True),
        sa.Column("workspace_id", sa.String(50), nullable=True),
        sa.Column("board_id", sa.String(50), nullable=True),
        sa.Column(
            "status",
            sa.Enum("running", "completed", "failed", "cancelled", name="sync_status"),
            nullable=False,
            server_default="running",
        ),
        sa.Column("records_processed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("records_created", sa.Integer, nullable=False, server_default="0"),
        sa.Column("records_updated", sa.Integer, nullable=False, server_default="0"),
        sa.Column("records_deleted", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("error_details", sa.JSON, nullable=True),
        sa.Column("sync_config", sa.JSON, nullable=False),
    )
    op.create_index("ix_sync_runs_status_started", "sync_runs", ["status", "started_at"])
    op.create_index("ix_sync_runs_status_completed", "sync_runs", ["status", "completed_at"])
    op.create_index("ix_sync_runs_scope", "sync_runs", ["workspace_id", "board_id"])


def downgrade() -> None:
    op.drop_table("sync_runs")
    op.drop_table("users")
    op.drop_table("board_relationships")
    op.drop_table("board_tags")
    op.drop_table("board_columns")
    op.drop_table("boards")
    op.drop_table("workspaces")

    # Drop enum types (PostgreSQL only)
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute("DROP TYPE IF EXISTS sync_status")
        op.execute("DROP TYPE IF EXISTS relationship_type")
        op.execute("DROP TYPE IF EXISTS board_state")
