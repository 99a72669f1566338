"""Test configuration and fixtures."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from monday_mirror.config import Settings
from monday_mirror.core.errors import NoWorkspacesFoundError
from monday_mirror.core.relationships import extract_connections
from monday_mirror.db.base import Base
from monday_mirror.db.services import MirrorStore
from monday_mirror.schemas.monday import (
    Board,
    BoardState,
    Column,
    DiscoveryOptions,
    OrganizationalStructure,
    RawConnection,
    User,
    Workspace,
    WorkspaceRef,
)


def days_ago(days: float) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


def make_board(
    board_id: str,
    workspace: Optional[Workspace],
    name: Optional[str] = None,
    state: BoardState = BoardState.ACTIVE,
    items_count: int = 10,
    updated_days_ago: Optional[float] = 10,
    columns: Optional[List[Column]] = None,
) -> Board:
    return Board(
        id=board_id,
        name=name or f"Board {board_id}",
        state=state,
        workspace=WorkspaceRef(id=workspace.id, name=workspace.name) if workspace else None,
        items_count=items_count,
        updated_at=days_ago(updated_days_ago) if updated_days_ago is not None else None,
        columns=columns or [Column(id="status", title="Status", type="status")],
    )


def mirror_column(target_board: str, column_id: str = "mirror_1") -> Column:
    return Column(
        id=column_id,
        title="Linked status",
        type="mirror",
        settings_str=json.dumps({"boardId": target_board}),
    )


def connect_column(targets: Sequence[str], column_id: str = "connect_1") -> Column:
    return Column(
        id=column_id,
        title="Related",
        type="connect_boards",
        settings_str=json.dumps({"boardIds": list(targets)}),
    )


class FakeMondayClient:
    """In-memory stand-in for ``MondayAPIClient``.

    Boards are filtered by state and capped the way the real API is asked
    to. Every call is appended to ``calls``. When ``gate`` is set,
    ``discover_organization`` blocks on it after setting ``waiting``.
    """

    def __init__(
        self,
        workspaces: List[Workspace],
        boards: List[Board],
        users: List[User],
    ):
        self.workspaces = workspaces
        self.boards = boards
        self.users = users
        self.calls: List[str] = []
        self.connected = True
        self.failing_connections: set = set()
        self.gate: Optional[asyncio.Event] = None
        self.waiting: Optional[asyncio.Event] = None

    async def test_connection(self) -> bool:
        self.calls.append("test_connection")
        return self.connected

    async def get_workspaces(self) -> List[Workspace]:
        self.calls.append("get_workspaces")
        return list(self.workspaces)

    async def get_priority_workspaces(self, names: Sequence[str]) -> List[Workspace]:
        self.calls.append("get_priority_workspaces")
        return [w for w in self.workspaces if w.name in names]

    def _listing(self, workspace_id: str, options: DiscoveryOptions):
        boards = [b for b in self.boards if b.workspace_id == workspace_id]
        if not options.include_archived:
            boards = [b for b in boards if b.state is BoardState.ACTIVE]
        capped = bool(options.max_boards) and len(boards) >= options.max_boards
        if options.max_boards:
            boards = boards[: options.max_boards]
        return boards, capped

    async def get_boards_in_workspace(
        self, workspace_id: str, options: Optional[DiscoveryOptions] = None
    ) -> List[Board]:
        self.calls.append("get_boards_in_workspace")
        boards, _ = self._listing(workspace_id, options or DiscoveryOptions())
        return boards

    async def get_users(self) -> List[User]:
        self.calls.append("get_users")
        return list(self.users)

    async def get_board_connections(self, board_id: str) -> List[RawConnection]:
        self.calls.append("get_board_connections")
        if board_id in self.failing_connections:
            raise RuntimeError(f"timeout reading board {board_id}")
        board = next(b for b in self.boards if b.id == board_id)
        return extract_connections(board.id, board.name, board.columns)

    async def discover_organization(
        self,
        options: Optional[DiscoveryOptions] = None,
        workspace_names: Optional[Sequence[str]] = None,
    ) -> OrganizationalStructure:
        self.calls.append("discover_organization")
        if self.gate is not None:
            if self.waiting is not None:
                self.waiting.set()
            await self.gate.wait()

        workspaces = list(self.workspaces)
        if workspace_names:
            workspaces = [w for w in workspaces if w.name in workspace_names]
            if not workspaces:
                raise NoWorkspacesFoundError(
                    list(workspace_names), [w.name for w in self.workspaces]
                )

        options = options or DiscoveryOptions()
        boards: List[Board] = []
        capped: List[str] = []
        for workspace in workspaces:
            self.calls.append("get_boards_in_workspace")
            workspace_boards, hit_limit = self._listing(workspace.id, options)
            boards.extend(workspace_boards)
            if hit_limit:
                capped.append(workspace.id)

        return OrganizationalStructure(
            workspaces=workspaces,
            boards=boards,
            users=await self.get_users(),
            last_scanned=datetime.now(timezone.utc),
            capped_workspace_ids=capped,
        )


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Get a test database session."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def store(db_session) -> MirrorStore:
    return MirrorStore(db_session)


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        monday_api_key="test-token",
        priority_workspaces="",
        max_boards_per_workspace=12,
        include_archived=False,
        cache_ttl_hours=24,
        full_sync_after_hours=48,
    )


@pytest.fixture
def alpha() -> Workspace:
    return Workspace(id="ws-1", name="Alpha", kind="open")


@pytest.fixture
def beta() -> Workspace:
    return Workspace(id="ws-2", name="Beta", kind="closed")


@pytest.fixture
def remote_boards(alpha, beta) -> List[Board]:
    """Five boards, three active and two archived, with one mirror edge b-1 -> b-2."""
    return [
        make_board(
            "b-1",
            alpha,
            name="Roadmap",
            items_count=25,
            columns=[Column(id="status", title="Status", type="status"), mirror_column("b-2")],
        ),
        make_board("b-2", alpha, name="Tasks", items_count=40),
        make_board("b-3", alpha, name="Archive 2023", state=BoardState.ARCHIVED, updated_days_ago=200),
        make_board("b-4", beta, name="Hiring", items_count=8),
        make_board("b-5", beta, name="Old Campaigns", state=BoardState.ARCHIVED, updated_days_ago=90),
    ]


@pytest.fixture
def remote_users() -> List[User]:
    return [
        User(id="u-1", name="Ada", email="ada@example.com", is_admin=True),
        User(id="u-2", name="Grace", email="grace@example.com"),
    ]


@pytest.fixture
def client(alpha, beta, remote_boards, remote_users) -> FakeMondayClient:
    return FakeMondayClient([alpha, beta], remote_boards, remote_users)


@pytest.fixture
def seeded_store(store, alpha, beta, remote_boards) -> MirrorStore:
    """Store holding both workspaces and all five boards."""
    store.save_workspaces([alpha, beta])
    store.save_boards(remote_boards)
    return store
