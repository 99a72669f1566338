"""
monday.com GraphQL API client.

All reads go through a single ``httpx.AsyncClient``; payloads are decoded
into the pydantic models in ``monday_mirror.schemas``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from ..core.errors import NoWorkspacesFoundError
from ..core.relationships import extract_connections
from ..schemas.monday import (
    Board,
    BoardState,
    Column,
    DiscoveryOptions,
    OrganizationalStructure,
    RawConnection,
    User,
    Workspace,
)

logger = logging.getLogger(__name__)


class MondayClientError(Exception):
    """Base class for monday.com client failures."""


class MondayAPIError(MondayClientError):
    """Transport failure or non-2xx response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class MondayGraphQLError(MondayClientError):
    """The response carried a GraphQL ``errors`` array."""

    def __init__(self, messages: List[str]):
        self.messages = messages
        super().__init__(f"monday.com GraphQL error: {', '.join(messages)}")


BOARD_FIELDS = """
          id
          name
          description
          state
          board_folder_id
          board_kind
          workspace {
            id
            name
          }
          columns {
            id
            title
            type
            settings_str
            archived
          }
          items_count
          permissions
          tags {
            id
            name
            color
          }
          updated_at
"""

WORKSPACES_QUERY = """
query GetWorkspaces {
  workspaces {
    id
    name
    kind
    description
  }
}
"""

BOARD_QUERY = """
query GetBoard($boardIds: [ID!]) {
  boards(ids: $boardIds) {%s}
}
""" % BOARD_FIELDS

BOARD_COLUMNS_QUERY = """
query GetBoardConnections($boardIds: [ID!]) {
  boards(ids: $boardIds) {
    id
    name
    columns {
      id
      title
      type
      settings_str
    }
  }
}
"""

USERS_QUERY = """
query GetUsers {
  users {
    id
    name
    email
    enabled
    is_admin
    is_guest
    last_activity
  }
}
"""

ME_QUERY = """
query TestConnection {
  me {
    id
    name
  }
}
"""


def _boards_in_workspace_query(with_limit: bool) -> str:
    limit_var = ", $limit: Int" if with_limit else ""
    limit_arg = ", limit: $limit" if with_limit else ""
    return """
query GetBoardsInWorkspace($workspaceIds: [ID!], $state: State%s) {
  boards(workspace_ids: $workspaceIds, state: $state%s) {%s}
}
""" % (limit_var, limit_arg, BOARD_FIELDS)


class MondayAPIClient:
    """
    Async client for the monday.com GraphQL endpoint.

    Args:
        api_key: Personal or app API token, sent as the Authorization header
        api_url: GraphQL endpoint
        api_version: Value of the API-Version header
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport, used by tests to stub the API
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.monday.com/v2",
        api_version: str = "2024-01",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": api_key,
                "API-Version": api_version,
                "Content-Type": "application/json",
            },
        )

    @classmethod
    def from_settings(cls, settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        if not settings.monday_api_key:
            raise ValueError("MONDAY_API_KEY is not configured")
        return cls(
            api_key=settings.monday_api_key,
            api_url=settings.monday_api_url,
            api_version=settings.monday_api_version,
            timeout=settings.monday_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> "MondayAPIClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self.client.post(
                self.api_url, json={"query": query, "variables": variables or {}}
            )
        except httpx.RequestError as e:
            logger.error(f"monday.com request failed: {e}")
            raise MondayAPIError(f"monday.com request failed: {e}") from e

        if response.is_error:
            raise MondayAPIError(
                f"monday.com API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        payload = response.json()
        errors = payload.get("errors") or []
        if errors:
            raise MondayGraphQLError([str(e.get("message", e)) for e in errors])

        return payload.get("data") or {}

    async def test_connection(self) -> bool:
        """Return True when the token can read ``me``."""
        try:
            data = await self._query(ME_QUERY)
        except MondayClientError as e:
            logger.error(f"monday.com API connection failed: {e}")
            return False

        me = data.get("me") or {}
        logger.info(f"monday.com API connected as {me.get('name', 'unknown user')}")
        return bool(me)

    async def get_workspaces(self) -> List[Workspace]:
        data = await self._query(WORKSPACES_QUERY)
        return [Workspace.model_validate(w) for w in data.get("workspaces") or []]

    async def get_priority_workspaces(self, workspace_names: Sequence[str]) -> List[Workspace]:
        """Return the remote workspaces whose names are in ``workspace_names``."""
        workspaces = await self.get_workspaces()
        wanted = set(workspace_names)
        found = [w for w in workspaces if w.name in wanted]

        missing = [name for name in workspace_names if name not in {w.name for w in found}]
        if missing:
            logger.warning(
                f"Missing priority workspaces: {', '.join(missing)}. "
                f"Available: {', '.join(w.name for w in workspaces)}"
            )
        return found

    async def _list_boards(
        self, workspace_id: str, options: DiscoveryOptions
    ) -> Tuple[List[Board], bool]:
        variables: Dict[str, Any] = {
            "workspaceIds": [workspace_id],
            "state": "all" if options.include_archived else "active",
        }
        with_limit = options.max_boards is not None
        if with_limit:
            variables["limit"] = options.max_boards

        data = await self._query(_boards_in_workspace_query(with_limit), variables)
        raw = data.get("boards") or []
        capped = with_limit and len(raw) >= options.max_boards
        boards = [Board.model_validate(b) for b in raw]
        return [b for b in boards if b.state is not BoardState.DELETED], capped

    async def get_boards_in_workspace(
        self, workspace_id: str, options: Optional[DiscoveryOptions] = None
    ) -> List[Board]:
        """List boards of a workspace.

        Active boards only unless ``include_archived`` is set; deleted boards
        are never returned.
        """
        boards, _ = await self._list_boards(workspace_id, options or DiscoveryOptions())
        return boards

    async def get_board(self, board_id: str) -> Board:
        data = await self._query(BOARD_QUERY, {"boardIds": [board_id]})
        boards = data.get("boards") or []
        if not boards:
            raise MondayAPIError(f"Board {board_id} not found", status_code=404)
        return Board.model_validate(boards[0])

    async def get_users(self) -> List[User]:
        data = await self._query(USERS_QUERY)
        return [User.model_validate(u) for u in data.get("users") or []]

    async def get_board_connections(self, board_id: str) -> List[RawConnection]:
        """Read a board's columns and return its outgoing board links."""
        data = await self._query(BOARD_COLUMNS_QUERY, {"boardIds": [board_id]})
        boards = data.get("boards") or []
        if not boards:
            return []

        board = boards[0]
        columns = [Column.model_validate(c) for c in board.get("columns") or []]
        connections = extract_connections(board_id, board.get("name"), columns)
        logger.debug(f"Found {len(connections)} connections for board {board_id}")
        return connections

    async def discover_organization(
        self,
        options: Optional[DiscoveryOptions] = None,
        workspace_names: Optional[Sequence[str]] = None,
    ) -> OrganizationalStructure:
        """Fetch workspaces, their boards and the account's users.

        Args:
            options: Board listing options applied to every workspace
            workspace_names: Restrict discovery to these workspace names

        Raises:
            NoWorkspacesFoundError: ``workspace_names`` matched no workspace
        """
        options = options or DiscoveryOptions()
        all_workspaces = await self.get_workspaces()
        workspaces = all_workspaces
        if workspace_names:
            wanted = set(workspace_names)
            workspaces = [w for w in all_workspaces if w.name in wanted]
            if not workspaces:
                raise NoWorkspacesFoundError(
                    list(workspace_names), [w.name for w in all_workspaces]
                )
            logger.info(f"Found {len(workspaces)}/{len(wanted)} priority workspaces")

        users = await self.get_users()

        boards: List[Board] = []
        capped: List[str] = []
        for workspace in workspaces:
            workspace_boards, hit_limit = await self._list_boards(workspace.id, options)
            logger.info(f"Fetched {len(workspace_boards)} boards for workspace {workspace.name}")
            boards.extend(workspace_boards)
            if hit_limit:
                capped.append(workspace.id)

        return OrganizationalStructure(
            workspaces=workspaces,
            boards=boards,
            users=users,
            last_scanned=datetime.now(timezone.utc),
            capped_workspace_ids=capped,
        )
