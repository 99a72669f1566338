"""Tests for the MirrorStore database adapter."""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import make_board
from monday_mirror.db.models import (
    BoardModel,
    BoardRelationshipModel,
    BoardTagModel,
    ColumnModel,
    SyncRunModel,
)
from monday_mirror.schemas.monday import (
    BoardState,
    Column,
    RelationshipEdge,
    RelationshipType,
    SyncStats,
    Tag,
    Workspace,
)


def edge(source="b-1", target="b-2", column="mirror_1", **metadata) -> RelationshipEdge:
    return RelationshipEdge(
        source_board=source,
        target_board=target,
        type=RelationshipType.MIRROR,
        source_column=column,
        metadata=metadata,
    )


class TestWorkspacesAndBoards:
    """Upserts of workspaces and boards."""

    def test_connection(self, store):
        assert store.test_connection() is True

    def test_workspace_upsert_updates_in_place(self, store, alpha):
        store.save_workspaces([alpha])
        store.save_workspaces([Workspace(id="ws-1", name="Alpha (renamed)")])

        workspaces = store.get_workspaces()
        assert len(workspaces) == 1
        assert workspaces[0].name == "Alpha (renamed)"

    def test_boards_carry_workspace_reference(self, seeded_store):
        board = seeded_store.get_board("b-1")

        assert board.workspace.id == "ws-1"
        assert board.workspace.name == "Alpha"
        assert [c.id for c in board.columns] == []

    def test_board_with_unknown_workspace_is_stored_as_orphan(self, store):
        ghost = Workspace(id="ws-404", name="Ghost")
        store.save_boards([make_board("b-9", ghost)])

        board = store.get_board("b-9")
        assert board is not None
        assert board.workspace is None

    def test_filter_boards_by_workspace(self, seeded_store):
        boards = seeded_store.get_boards(workspace_id="ws-2")
        assert sorted(b.id for b in boards) == ["b-4", "b-5"]

    def test_board_timestamps_come_back_as_utc(self, seeded_store, remote_boards):
        board = seeded_store.get_board("b-1")
        assert board.updated_at.tzinfo is not None
        assert abs((board.updated_at - remote_boards[0].updated_at).total_seconds()) < 1

    def test_overview_counts(self, seeded_store, remote_users):
        seeded_store.save_users(remote_users)

        overview = seeded_store.get_organization_overview()

        assert overview["total_workspaces"] == 2
        assert overview["total_boards"] == 5
        assert overview["active_boards"] == 3
        assert overview["archived_boards"] == 2
        assert overview["total_items"] == 25 + 40 + 10 + 8 + 10
        assert overview["total_users"] == 2
        assert overview["last_sync_time"] is None


class TestColumns:
    """Replace-all column semantics."""

    def test_replaces_the_whole_set(self, seeded_store):
        seeded_store.save_columns("b-1", [Column(id="a", title="A", type="text"), Column(id="b", title="B", type="text")])
        seeded_store.save_columns("b-1", [Column(id="c", title="C", type="date")])

        assert [c.id for c in seeded_store.get_columns_for_board("b-1")] == ["c"]

    def test_empty_list_clears_columns(self, seeded_store):
        seeded_store.save_columns("b-1", [Column(id="a", title="A", type="text")])
        seeded_store.save_columns("b-1", [])

        assert seeded_store.get_columns_for_board("b-1") == []

    def test_same_column_id_on_different_boards(self, seeded_store):
        seeded_store.save_columns("b-1", [Column(id="status", title="Status", type="status")])
        seeded_store.save_columns("b-2", [Column(id="status", title="Status", type="status")])

        assert seeded_store.db.query(ColumnModel).count() == 2

    def test_failed_insert_keeps_previous_columns(self, seeded_store):
        seeded_store.save_columns("b-1", [Column(id="a", title="A", type="text")])

        duplicate = [Column(id="x", title="X", type="text"), Column(id="x", title="X", type="text")]
        with pytest.raises(SQLAlchemyError):
            seeded_store.save_columns("b-1", duplicate)

        assert [c.id for c in seeded_store.get_columns_for_board("b-1")] == ["a"]

    def test_tags_are_replaced(self, seeded_store):
        seeded_store.save_tags("b-1", [Tag(id="1", name="q1"), Tag(id="2", name="ops")])
        seeded_store.save_tags("b-1", [Tag(id="3", name="q2", color="#fff")])

        tags = seeded_store.db.query(BoardTagModel).filter_by(board_id="b-1").all()
        assert [t.name for t in tags] == ["q2"]


class TestRelationships:
    """Natural-key upsert of board relationships."""

    def test_upsert_is_idempotent(self, seeded_store):
        assert seeded_store.save_relationship(edge(note="first")) is True
        assert seeded_store.save_relationship(edge(note="second")) is True

        rows = seeded_store.db.query(BoardRelationshipModel).all()
        assert len(rows) == 1
        assert rows[0].metadata_ == {"note": "second"}

    def test_null_source_column_is_part_of_the_key(self, seeded_store):
        seeded_store.save_relationship(edge(column=None))
        seeded_store.save_relationship(edge(column=None))
        seeded_store.save_relationship(edge(column="mirror_2"))

        assert seeded_store.db.query(BoardRelationshipModel).count() == 2

    def test_unknown_endpoint_is_refused(self, seeded_store):
        assert seeded_store.save_relationship(edge(target="b-999")) is False
        assert seeded_store.db.query(BoardRelationshipModel).count() == 0

    def test_read_includes_board_names(self, seeded_store):
        seeded_store.save_relationship(edge())

        [rel] = seeded_store.get_board_relationships(board_id="b-2")

        assert rel.source_board_name == "Roadmap"
        assert rel.target_board_name == "Tasks"
        assert rel.type is RelationshipType.MIRROR
        assert seeded_store.get_board_relationships(board_id="b-4") == []


    def test_edges_touching_stale_boards_are_hidden(self, seeded_store):
        seeded_store.save_relationship(edge())
        seeded_store.mark_stale_boards("ws-1", ["b-1", "b-3"])

        assert seeded_store.get_board_relationships() == []
        assert len(seeded_store.get_board_relationships(include_stale=True)) == 1
        assert seeded_store.get_organizational_structure().relationships == []


class TestSyncRuns:
    """Sync run lifecycle and freshness."""

    def test_complete_records_counts(self, store):
        run_id = store.start_sync_run("full_sync")

        assert store.complete_sync_run(run_id, SyncStats(processed=9, created=9)) is True

        run = store.get_sync_run(run_id)
        assert run.status == "completed"
        assert run.records_created == 9
        assert run.completed_at is not None

    def test_terminal_state_is_set_once(self, store):
        run_id = store.start_sync_run("full_sync")
        store.fail_sync_run(run_id, "boom")

        assert store.complete_sync_run(run_id, SyncStats()) is False
        assert store.fail_sync_run(run_id, "again") is False
        run = store.get_sync_run(run_id)
        assert run.status == "failed"
        assert run.error_message == "boom"

    def test_last_successful_sync_ignores_failed_runs(self, store):
        assert store.get_last_successful_sync() is None

        ok = store.start_sync_run("full_sync")
        store.complete_sync_run(ok, SyncStats())
        completed_at = store.get_last_successful_sync()

        failed = store.start_sync_run("incremental_sync")
        store.fail_sync_run(failed, "boom")

        assert store.get_last_successful_sync() == completed_at
        assert completed_at.tzinfo is not None

    def test_filter_runs_by_status(self, store):
        store.complete_sync_run(store.start_sync_run("full_sync"), SyncStats())
        store.fail_sync_run(store.start_sync_run("full_sync"), "boom")

        assert len(store.get_sync_runs()) == 2
        assert [r.status for r in store.get_sync_runs(status="failed")] == ["failed"]

    def test_cleanup_keeps_newest_runs(self, store):
        for _ in range(4):
            store.complete_sync_run(store.start_sync_run("full_sync"), SyncStats())

        assert store.cleanup_sync_runs(keep=2) == 2
        assert store.db.query(SyncRunModel).count() == 2

    def test_cleanup_always_keeps_latest_completed_run(self, store):
        ok = store.start_sync_run("full_sync")
        store.complete_sync_run(ok, SyncStats())
        for _ in range(2):
            store.fail_sync_run(store.start_sync_run("incremental_sync"), "boom")

        assert store.cleanup_sync_runs(keep=0) == 2
        assert [r.id for r in store.get_sync_runs()] == [ok]
        assert store.get_last_successful_sync() is not None


class TestStaleMarking:
    """Stale flags for entities missing from a complete listing."""

    def test_marks_unseen_boards_of_a_workspace(self, seeded_store):
        marked = seeded_store.mark_stale_boards("ws-1", ["b-1", "b-3"])

        assert marked == 1
        assert "b-2" not in [b.id for b in seeded_store.get_boards()]
        assert "b-2" in [b.id for b in seeded_store.get_boards(include_stale=True)]

    def test_only_states_limits_candidates(self, seeded_store):
        # Listing of active boards only; archived b-3 must not be flagged
        marked = seeded_store.mark_stale_boards(
            "ws-1", ["b-1", "b-2"], only_states=[BoardState.ACTIVE.value]
        )
        assert marked == 0

    def test_resaving_clears_the_flag(self, seeded_store, remote_boards):
        seeded_store.mark_stale_boards("ws-2", [])
        assert seeded_store.get_stale_counts()["boards"] == 2

        seeded_store.save_boards(remote_boards)
        assert seeded_store.get_stale_counts()["boards"] == 0

    def test_marks_unseen_workspaces(self, seeded_store):
        assert seeded_store.mark_stale_workspaces(["ws-1"]) == 1
        assert [w.id for w in seeded_store.get_workspaces()] == ["ws-1"]


class TestHealthCache:
    def test_update_board_health(self, seeded_store):
        updated = seeded_store.update_board_health({"b-1": ("healthy", 100), "b-404": ("warning", 60)})

        assert updated == 1
        board = seeded_store.db.get(BoardModel, "b-1")
        assert board.health_status == "healthy"
        assert board.health_score == 100
