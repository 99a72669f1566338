"""
Database services for Monday Mirror.

``MirrorStore`` is the only writer of the mirror tables. Every public write
commits its own transaction, so entities persisted before a failure stay
persisted, and rolls the session back if the transaction fails.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import desc, func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from ..schemas.monday import (
    Board,
    BoardRelationship,
    BoardState,
    Column,
    OrganizationalStructure,
    RelationshipEdge,
    RelationshipType,
    SyncStats,
    SyncStatus,
    Tag,
    User,
    Workspace,
    WorkspaceRef,
)
from .models import (
    BoardModel,
    BoardRelationshipModel,
    BoardTagModel,
    ColumnModel,
    SyncRunModel,
    UserModel,
    WorkspaceModel,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return ``value`` as an aware UTC datetime (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MirrorStore:
    """Upsert and read primitives for the mirrored organization."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _write(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def test_connection(self) -> bool:
        """Check that the database answers a trivial query."""
        try:
            self.db.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database connection failed: {e}")
            self.db.rollback()
            return False

    # ------------------------------------------------------------------
    # Workspaces
    # ------------------------------------------------------------------

    def save_workspaces(self, workspaces: Sequence[Workspace]) -> None:
        """Upsert workspaces by their external id."""
        if not workspaces:
            return

        now = _utcnow()
        with self._write():
            for workspace in workspaces:
                model = self.db.get(WorkspaceModel, workspace.id)
                if model is None:
                    model = WorkspaceModel(id=workspace.id, cached_at=now)
                    self.db.add(model)
                model.name = workspace.name
                model.kind = workspace.kind
                model.description = workspace.description
                model.product_kind = workspace.product_kind
                model.is_stale = False
                model.last_synced = now

        logger.info(f"Saved {len(workspaces)} workspaces")

    def get_workspaces(self, include_stale: bool = False) -> List[Workspace]:
        query = self.db.query(WorkspaceModel)
        if not include_stale:
            query = query.filter(WorkspaceModel.is_stale.is_(False))
        return [
            Workspace(
                id=w.id,
                name=w.name,
                kind=w.kind,
                description=w.description,
                product_kind=w.product_kind,
                is_stale=w.is_stale,
            )
            for w in query.order_by(WorkspaceModel.name).all()
        ]

    def mark_stale_workspaces(self, seen_ids: Iterable[str]) -> int:
        """Flag stored workspaces that were not in a complete remote listing."""
        seen = set(seen_ids)
        with self._write():
            candidates = (
                self.db.query(WorkspaceModel)
                .filter(WorkspaceModel.is_stale.is_(False))
                .all()
            )
            marked = [w for w in candidates if w.id not in seen]
            for workspace in marked:
                workspace.is_stale = True

        if marked:
            logger.warning(f"Marked {len(marked)} workspaces stale: {[w.id for w in marked]}")
        return len(marked)

    # ------------------------------------------------------------------
    # Boards, columns, tags
    # ------------------------------------------------------------------

    def save_boards(self, boards: Sequence[Board]) -> None:
        """Upsert boards.

        A board whose workspace is not stored is saved without a workspace
        reference (an orphan) rather than with a dangling foreign key.
        """
        if not boards:
            return

        referenced = {b.workspace_id for b in boards if b.workspace_id}
        known = set()
        if referenced:
            known = {
                row[0]
                for row in self.db.query(WorkspaceModel.id)
                .filter(WorkspaceModel.id.in_(referenced))
                .all()
            }

        now = _utcnow()
        with self._write():
            for board in boards:
                workspace_id = board.workspace_id
                if workspace_id and workspace_id not in known:
                    logger.warning(
                        f"Board {board.id} references unknown workspace {workspace_id}; "
                        "storing it without a workspace"
                    )
                    workspace_id = None

                model = self.db.get(BoardModel, board.id)
                if model is None:
                    model = BoardModel(id=board.id, cached_at=now)
                    self.db.add(model)
                model.workspace_id = workspace_id
                model.name = board.name
                model.description = board.description
                model.state = board.state.value
                model.board_folder_id = board.board_folder_id
                model.board_kind = board.board_kind
                model.items_count = board.items_count or 0
                model.permissions = board.permissions
                model.updated_at = as_utc(board.updated_at)
                model.is_stale = False
                model.last_synced = now

        logger.debug(f"Saved {len(boards)} boards")

    def save_columns(self, board_id: str, columns: Sequence[Column]) -> None:
        """Replace the column set of a board in a single transaction."""
        with self._write():
            self.db.query(ColumnModel).filter(ColumnModel.board_id == board_id).delete(
                synchronize_session=False
            )
            for column in columns:
                self.db.add(
                    ColumnModel(
                        board_id=board_id,
                        column_id=column.id,
                        title=column.title,
                        type=column.type,
                        settings_str=column.settings_str,
                        archived=column.archived,
                        position=column.pos,
                    )
                )

        logger.debug(f"Saved {len(columns)} columns for board {board_id}")

    def save_tags(self, board_id: str, tags: Sequence[Tag]) -> None:
        """Replace the tag set of a board in a single transaction."""
        with self._write():
            self.db.query(BoardTagModel).filter(BoardTagModel.board_id == board_id).delete(
                synchronize_session=False
            )
            for tag in tags:
                self.db.add(
                    BoardTagModel(board_id=board_id, tag_id=tag.id, name=tag.name, color=tag.color)
                )

    def mark_stale_boards(
        self,
        workspace_id: str,
        seen_ids: Iterable[str],
        only_states: Optional[Sequence[str]] = None,
    ) -> int:
        """Flag boards of a workspace that a remote listing did not return.

        Args:
            workspace_id: Workspace whose listing was fetched
            seen_ids: Board ids the listing returned
            only_states: Restrict candidates to these stored states, for
                listings that deliberately excluded other states

        Returns:
            Number of boards newly marked stale
        """
        seen = set(seen_ids)
        with self._write():
            query = self.db.query(BoardModel).filter(
                BoardModel.workspace_id == workspace_id,
                BoardModel.is_stale.is_(False),
            )
            if only_states:
                query = query.filter(BoardModel.state.in_(list(only_states)))
            marked = [b for b in query.all() if b.id not in seen]
            for board in marked:
                board.is_stale = True

        if marked:
            logger.warning(
                f"Marked {len(marked)} boards stale in workspace {workspace_id}: "
                f"{[b.id for b in marked]}"
            )
        return len(marked)

    def update_board_health(self, scores: Mapping[str, Tuple[str, int]]) -> int:
        """Write the advisory health cache for the given boards."""
        now = _utcnow()
        updated = 0
        with self._write():
            for board_id, (status, score) in scores.items():
                model = self.db.get(BoardModel, board_id)
                if model is None:
                    continue
                model.health_status = status
                model.health_score = score
                model.health_checked_at = now
                updated += 1
        return updated

    def _board_from_model(self, model: BoardModel, workspace_name: Optional[str]) -> Board:
        workspace = None
        if model.workspace_id:
            workspace = WorkspaceRef(
                id=model.workspace_id, name=workspace_name or "Unknown Workspace"
            )
        return Board(
            id=model.id,
            name=model.name,
            description=model.description,
            state=BoardState(model.state),
            board_folder_id=model.board_folder_id,
            board_kind=model.board_kind,
            workspace=workspace,
            items_count=model.items_count or 0,
            permissions=model.permissions,
            updated_at=as_utc(model.updated_at),
            is_stale=model.is_stale,
        )

    def get_boards(
        self, workspace_id: Optional[str] = None, include_stale: bool = False
    ) -> List[Board]:
        """Get boards with their workspace reference; columns are not loaded."""
        query = self.db.query(BoardModel, WorkspaceModel.name).outerjoin(
            WorkspaceModel, BoardModel.workspace_id == WorkspaceModel.id
        )
        if workspace_id:
            query = query.filter(BoardModel.workspace_id == workspace_id)
        if not include_stale:
            query = query.filter(BoardModel.is_stale.is_(False))

        return [
            self._board_from_model(board, workspace_name)
            for board, workspace_name in query.order_by(BoardModel.name).all()
        ]

    def get_board(self, board_id: str) -> Optional[Board]:
        row = (
            self.db.query(BoardModel, WorkspaceModel.name)
            .outerjoin(WorkspaceModel, BoardModel.workspace_id == WorkspaceModel.id)
            .filter(BoardModel.id == board_id)
            .first()
        )
        if row is None:
            return None
        board, workspace_name = row
        result = self._board_from_model(board, workspace_name)
        result.columns = self.get_columns_for_board(board_id)
        return result

    def get_columns_for_board(self, board_id: str) -> List[Column]:
        columns = (
            self.db.query(ColumnModel)
            .filter(ColumnModel.board_id == board_id)
            .order_by(ColumnModel.position, ColumnModel.id)
            .all()
        )
        return [
            Column(
                id=c.column_id,
                title=c.title,
                type=c.type,
                settings_str=c.settings_str,
                archived=c.archived,
                pos=c.position,
            )
            for c in columns
        ]

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def save_relationship(self, edge: RelationshipEdge) -> bool:
        """Upsert an edge on (source, target, type, source column).

        Returns:
            False when either endpoint is not a stored board; nothing is written
        """
        for board_id in (edge.source_board, edge.target_board):
            if self.db.get(BoardModel, board_id) is None:
                logger.warning(
                    f"Refusing relationship {edge.source_board} -> {edge.target_board}: "
                    f"board {board_id} is not stored"
                )
                return False

        now = _utcnow()
        with self._write():
            query = self.db.query(BoardRelationshipModel).filter(
                BoardRelationshipModel.source_board_id == edge.source_board,
                BoardRelationshipModel.target_board_id == edge.target_board,
                BoardRelationshipModel.relationship_type == edge.type.value,
            )
            if edge.source_column is None:
                query = query.filter(BoardRelationshipModel.source_column_id.is_(None))
            else:
                query = query.filter(
                    BoardRelationshipModel.source_column_id == edge.source_column
                )

            model = query.first()
            if model is None:
                model = BoardRelationshipModel(
                    source_board_id=edge.source_board,
                    target_board_id=edge.target_board,
                    relationship_type=edge.type.value,
                    source_column_id=edge.source_column,
                    discovered_at=now,
                )
                self.db.add(model)
            model.target_column_id = edge.target_column
            model.metadata_ = dict(edge.metadata or {})
            model.last_verified = now
            model.is_active = True

        return True

    def get_board_relationships(
        self, board_id: Optional[str] = None, include_stale: bool = False
    ) -> List[BoardRelationship]:
        """Active edges; edges touching a stale board are left out unless ``include_stale``."""
        source = aliased(BoardModel)
        target = aliased(BoardModel)
        query = (
            self.db.query(BoardRelationshipModel, source.name, target.name)
            .join(source, BoardRelationshipModel.source_board_id == source.id)
            .join(target, BoardRelationshipModel.target_board_id == target.id)
            .filter(BoardRelationshipModel.is_active.is_(True))
        )
        if not include_stale:
            query = query.filter(source.is_stale.is_(False), target.is_stale.is_(False))
        if board_id:
            query = query.filter(
                (BoardRelationshipModel.source_board_id == board_id)
                | (BoardRelationshipModel.target_board_id == board_id)
            )

        return [
            BoardRelationship(
                source_board_id=rel.source_board_id,
                target_board_id=rel.target_board_id,
                source_board_name=source_name,
                target_board_name=target_name,
                type=RelationshipType(rel.relationship_type),
                source_column_id=rel.source_column_id,
                target_column_id=rel.target_column_id,
                metadata=rel.metadata_ or {},
            )
            for rel, source_name, target_name in query.all()
        ]

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def save_users(self, users: Sequence[User]) -> None:
        """Upsert users wholesale."""
        if not users:
            return

        now = _utcnow()
        with self._write():
            for user in users:
                model = self.db.get(UserModel, user.id)
                if model is None:
                    model = UserModel(id=user.id, cached_at=now)
                    self.db.add(model)
                model.name = user.name
                model.email = user.email
                model.enabled = user.enabled
                model.is_admin = user.is_admin
                model.is_guest = user.is_guest
                model.last_activity = as_utc(user.last_activity)
                model.last_synced = now

        logger.info(f"Saved {len(users)} users")

    def get_users(self) -> List[User]:
        return [
            User(
                id=u.id,
                name=u.name,
                email=u.email,
                enabled=u.enabled,
                is_admin=u.is_admin,
                is_guest=u.is_guest,
                last_activity=as_utc(u.last_activity),
            )
            for u in self.db.query(UserModel).order_by(UserModel.name).all()
        ]

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def get_organization_overview(self) -> Dict[str, Any]:
        """Aggregate counts over the non-stale mirror."""
        boards = self.db.query(BoardModel).filter(BoardModel.is_stale.is_(False))
        return {
            "total_workspaces": self.db.query(func.count(WorkspaceModel.id))
            .filter(WorkspaceModel.is_stale.is_(False))
            .scalar(),
            "total_boards": boards.count(),
            "active_boards": boards.filter(BoardModel.state == "active").count(),
            "archived_boards": boards.filter(BoardModel.state == "archived").count(),
            "total_items": self.db.query(func.coalesce(func.sum(BoardModel.items_count), 0))
            .filter(BoardModel.is_stale.is_(False))
            .scalar(),
            "total_users": self.db.query(func.count(UserModel.id)).scalar(),
            "last_sync_time": self.get_last_successful_sync(),
        }

    def get_stale_counts(self) -> Dict[str, int]:
        return {
            "workspaces": self.db.query(func.count(WorkspaceModel.id))
            .filter(WorkspaceModel.is_stale.is_(True))
            .scalar(),
            "boards": self.db.query(func.count(BoardModel.id))
            .filter(BoardModel.is_stale.is_(True))
            .scalar(),
        }

    def get_organizational_structure(self, include_stale: bool = False) -> OrganizationalStructure:
        """Recompute the read projection from the current tables."""
        return OrganizationalStructure(
            workspaces=self.get_workspaces(include_stale=include_stale),
            boards=self.get_boards(include_stale=include_stale),
            relationships=self.get_board_relationships(include_stale=include_stale),
            users=self.get_users(),
            last_scanned=self.get_last_successful_sync(),
        )

    # ------------------------------------------------------------------
    # Sync runs
    # ------------------------------------------------------------------

    def start_sync_run(
        self,
        kind: str,
        scope: Optional[str] = None,
        workspace_id: Optional[str] = None,
        board_id: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Open a sync run in ``running`` state and return its id."""
        run = SyncRunModel(
            sync_type=kind,
            scope=scope,
            workspace_id=workspace_id,
            board_id=board_id,
            status=SyncStatus.RUNNING.value,
            started_at=_utcnow(),
            sync_config=config or {},
        )
        with self._write():
            self.db.add(run)
        return run.id

    def _running_run(self, run_id: str) -> Optional[SyncRunModel]:
        run = self.db.get(SyncRunModel, run_id)
        if run is None:
            logger.warning(f"Sync run {run_id} not found")
            return None
        if run.status != SyncStatus.RUNNING.value:
            logger.warning(f"Sync run {run_id} already finished with status {run.status}")
            return None
        return run

    def complete_sync_run(self, run_id: str, stats: SyncStats) -> bool:
        """Move a running sync run to ``completed`` with its counts."""
        with self._write():
            run = self._running_run(run_id)
            if run is None:
                return False
            run.status = SyncStatus.COMPLETED.value
            run.completed_at = _utcnow()
            run.records_processed = stats.processed
            run.records_created = stats.created
            run.records_updated = stats.updated
            run.records_deleted = stats.deleted
        return True

    def fail_sync_run(
        self, run_id: str, message: str, details: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Move a running sync run to ``failed`` with the error message."""
        # Discard whatever the failed operation left pending in the session
        self.db.rollback()
        with self._write():
            run = self._running_run(run_id)
            if run is None:
                return False
            run.status = SyncStatus.FAILED.value
            run.completed_at = _utcnow()
            run.error_message = message
            run.error_details = details
        return True

    def get_sync_run(self, run_id: str) -> Optional[SyncRunModel]:
        return self.db.get(SyncRunModel, run_id)

    def get_sync_runs(self, limit: int = 20, status: Optional[str] = None) -> List[SyncRunModel]:
        query = self.db.query(SyncRunModel)
        if status:
            query = query.filter(SyncRunModel.status == status)
        return query.order_by(desc(SyncRunModel.started_at)).limit(limit).all()

    def get_last_successful_sync(self) -> Optional[datetime]:
        """Completion time of the most recent completed sync run."""
        value = (
            self.db.query(func.max(SyncRunModel.completed_at))
            .filter(SyncRunModel.status == SyncStatus.COMPLETED.value)
            .scalar()
        )
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        return as_utc(value)

    def cleanup_sync_runs(self, keep: int = 100) -> int:
        """Delete finished sync runs beyond the newest ``keep``.

        The most recent completed run is always kept; the mirror's age is
        measured from it.
        """
        keep_ids = [
            row[0]
            for row in self.db.query(SyncRunModel.id)
            .order_by(desc(SyncRunModel.started_at))
            .limit(max(keep, 0))
            .all()
        ]
        latest_completed = (
            self.db.query(SyncRunModel.id)
            .filter(SyncRunModel.status == SyncStatus.COMPLETED.value)
            .order_by(desc(SyncRunModel.completed_at))
            .first()
        )
        if latest_completed is not None:
            keep_ids.append(latest_completed[0])
        with self._write():
            query = self.db.query(SyncRunModel).filter(
                SyncRunModel.status != SyncStatus.RUNNING.value
            )
            if keep_ids:
                query = query.filter(SyncRunModel.id.notin_(keep_ids))
            deleted = query.delete(synchronize_session=False)

        if deleted:
            logger.info(f"Deleted {deleted} old sync runs")
        return deleted
