"""Tests for the monday.com GraphQL client against a mocked transport."""

import json

import httpx
import pytest

from conftest import make_board
from monday_mirror.core.errors import NoWorkspacesFoundError
from monday_mirror.core.orchestrator import SyncOrchestrator
from monday_mirror.integrations.monday_api import (
    MondayAPIClient,
    MondayAPIError,
    MondayGraphQLError,
)
from monday_mirror.schemas.monday import (
    BoardState,
    DiscoveryOptions,
    RelationshipType,
    SyncOptions,
    Workspace,
)

WORKSPACES = [
    {"id": "1", "name": "Alpha", "kind": "open", "description": None},
    {"id": "2", "name": "Beta", "kind": None, "description": "Sales"},
]

BOARDS = {
    "1": [
        {
            "id": "10",
            "name": "Roadmap",
            "state": "active",
            "workspace": {"id": "1", "name": "Alpha"},
            "columns": [
                {"id": "status", "title": "Status", "type": "status", "settings_str": "{}", "archived": None},
                {"id": "mirror_1", "title": "Linked", "type": "mirror", "settings_str": '{"boardId": 20}'},
            ],
            "items_count": None,
            "tags": [{"id": 5, "name": "q3", "color": "#037f4c"}],
            "updated_at": "2026-05-01T10:00:00Z",
        },
        {"id": "11", "name": "Gone", "state": "deleted", "workspace": {"id": "1", "name": "Alpha"}},
    ],
    "2": [
        {"id": "20", "name": "Deals", "state": "archived", "workspace": {"id": "2", "name": "Beta"}, "items_count": 7},
    ],
}

USERS = [{"id": 1, "name": "Ada", "email": "ada@example.com", "enabled": True, "is_admin": True, "is_guest": False}]


class FakeMonday:
    """Request handler that answers the client's GraphQL queries."""

    def __init__(self):
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request, body))
        query, variables = body["query"], body["variables"]

        if "me {" in query:
            return httpx.Response(200, json={"data": {"me": {"id": "1", "name": "Ada"}}})
        if "workspaces {" in query:
            return httpx.Response(200, json={"data": {"workspaces": WORKSPACES}})
        if "users {" in query:
            return httpx.Response(200, json={"data": {"users": USERS}})
        if "workspace_ids" in query:
            return httpx.Response(200, json={"data": {"boards": BOARDS[variables["workspaceIds"][0]]}})
        if "boards(ids:" in query:
            wanted = variables["boardIds"][0]
            boards = [b for group in BOARDS.values() for b in group if b["id"] == wanted]
            return httpx.Response(200, json={"data": {"boards": boards}})
        return httpx.Response(400, json={"errors": [{"message": "unexpected query"}]})


@pytest.fixture
def monday():
    return FakeMonday()


@pytest.fixture
def api(monday):
    return MondayAPIClient(
        api_key="secret-token",
        api_url="https://api.monday.test/v2",
        api_version="2024-01",
        transport=httpx.MockTransport(monday),
    )


class TestQueries:
    """Request shape and payload decoding."""

    @pytest.mark.asyncio
    async def test_sends_auth_and_version_headers(self, api, monday):
        assert await api.test_connection() is True

        request, _ = monday.requests[0]
        assert request.headers["Authorization"] == "secret-token"
        assert request.headers["API-Version"] == "2024-01"
        assert str(request.url) == "https://api.monday.test/v2"
        await api.aclose()

    @pytest.mark.asyncio
    async def test_workspaces_default_kind(self, api):
        async with api:
            workspaces = await api.get_workspaces()

        assert [w.name for w in workspaces] == ["Alpha", "Beta"]
        assert workspaces[1].kind == "open"

    @pytest.mark.asyncio
    async def test_boards_are_decoded_and_deleted_boards_dropped(self, api, monday):
        async with api:
            boards = await api.get_boards_in_workspace("1")

        assert [b.id for b in boards] == ["10"]
        board = boards[0]
        assert board.workspace_id == "1"
        assert board.items_count == 0
        assert board.columns[0].archived is False
        assert board.tags[0].id == "5"
        assert board.updated_at.year == 2026

        _, body = monday.requests[-1]
        assert body["variables"]["state"] == "active"
        assert "limit" not in body["variables"]

    @pytest.mark.asyncio
    async def test_archived_and_limit_options(self, api, monday):
        async with api:
            boards = await api.get_boards_in_workspace(
                "2", DiscoveryOptions(include_archived=True, max_boards=12)
            )

        assert boards[0].state is BoardState.ARCHIVED
        _, body = monday.requests[-1]
        assert body["variables"]["state"] == "all"
        assert body["variables"]["limit"] == 12
        assert "limit: $limit" in body["query"]

    @pytest.mark.asyncio
    async def test_users(self, api):
        async with api:
            users = await api.get_users()

        assert users[0].id == "1"
        assert users[0].is_admin is True

    @pytest.mark.asyncio
    async def test_board_connections(self, api):
        async with api:
            connections = await api.get_board_connections("10")

        assert len(connections) == 1
        assert connections[0].target_board == "20"
        assert connections[0].type is RelationshipType.MIRROR
        assert connections[0].source_board_name == "Roadmap"

    @pytest.mark.asyncio
    async def test_missing_board(self, api):
        async with api:
            with pytest.raises(MondayAPIError) as exc_info:
                await api.get_board("404")
        assert exc_info.value.status_code == 404


class TestDiscovery:
    """Organization discovery with and without a priority allow-list."""

    @pytest.mark.asyncio
    async def test_discovers_everything(self, api):
        async with api:
            org = await api.discover_organization(DiscoveryOptions(include_archived=True))

        assert [w.id for w in org.workspaces] == ["1", "2"]
        assert [b.id for b in org.boards] == ["10", "20"]
        assert len(org.users) == 1
        assert org.last_scanned is not None

    @pytest.mark.asyncio
    async def test_priority_names_restrict_workspaces(self, api):
        async with api:
            org = await api.discover_organization(workspace_names=["Beta", "Nope"])

        assert [w.name for w in org.workspaces] == ["Beta"]

    @pytest.mark.asyncio
    async def test_no_priority_workspace_found(self, api):
        async with api:
            with pytest.raises(NoWorkspacesFoundError) as exc_info:
                await api.discover_organization(workspace_names=["Nope"])

        assert exc_info.value.available == ["Alpha", "Beta"]
        assert exc_info.value.code == "no_workspaces_found"

    @pytest.mark.asyncio
    async def test_limit_is_judged_on_the_raw_listing(self, api):
        async with api:
            org = await api.discover_organization(
                DiscoveryOptions(include_archived=True, max_boards=2)
            )

        # Workspace 1 returned two boards, one of them deleted
        assert [b.id for b in org.boards] == ["10", "20"]
        assert org.capped_workspace_ids == ["1"]

    @pytest.mark.asyncio
    async def test_capped_listing_with_deleted_board_marks_nothing_stale(self, api, store, settings):
        settings.max_boards_per_workspace = 2
        alpha = Workspace(id="1", name="Alpha")
        store.save_workspaces([alpha])
        store.save_boards([make_board("12", alpha, name="Beyond the limit")])

        async with api:
            await SyncOrchestrator(api, store, settings).full_sync(SyncOptions(include_archived=True))

        assert store.get_stale_counts()["boards"] == 0
        assert store.get_sync_runs()[0].records_deleted == 0
        assert "12" in [b.id for b in store.get_boards()]

    @pytest.mark.asyncio
    async def test_priority_workspaces(self, api):
        async with api:
            found = await api.get_priority_workspaces(["Alpha", "Missing"])
        assert [w.id for w in found] == ["1"]


class TestErrors:
    """HTTP and GraphQL failures."""

    @pytest.mark.asyncio
    async def test_http_error(self):
        api = MondayAPIClient("token", transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        async with api:
            with pytest.raises(MondayAPIError) as exc_info:
                await api.get_workspaces()

        assert exc_info.value.status_code == 500
        assert "500" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_graphql_errors(self):
        payload = {"errors": [{"message": "Complexity budget exhausted"}], "data": None}
        api = MondayAPIClient(
            "token", transport=httpx.MockTransport(lambda r: httpx.Response(200, json=payload))
        )
        async with api:
            with pytest.raises(MondayGraphQLError) as exc_info:
                await api.get_users()

        assert "Complexity budget exhausted" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        api = MondayAPIClient("token", transport=httpx.MockTransport(refuse))
        async with api:
            with pytest.raises(MondayAPIError):
                await api.get_workspaces()

    @pytest.mark.asyncio
    async def test_connection_check_reports_failure(self):
        api = MondayAPIClient("bad", transport=httpx.MockTransport(lambda r: httpx.Response(401)))
        async with api:
            assert await api.test_connection() is False

    def test_from_settings_requires_key(self, settings):
        settings.monday_api_key = None
        with pytest.raises(ValueError):
            MondayAPIClient.from_settings(settings)
