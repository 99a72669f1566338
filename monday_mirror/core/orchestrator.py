"""
Sync orchestration for the monday.com mirror.

The orchestrator mediates every write to the mirror. It runs at most one
sync at a time (see ``SyncGuard``), records each invocation as a sync run,
and picks a strategy from the mirror's freshness:

- ``full_sync``: connectivity check, discovery of the whole organization (or
  the priority workspaces), boards persisted one at a time, users,
  relationship discovery, stale marking
- ``incremental_sync``: active boards only, counted as updates, no
  relationship discovery and no connectivity check
- ``sync_scope``: a single workspace, by name
- ``smart_sync``: full, incremental or nothing depending on cache age
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from ..config import Settings, get_settings
from ..schemas.monday import (
    Board,
    BoardState,
    CacheStatus,
    DiscoveryOptions,
    IntegrityReport,
    OrganizationalStructure,
    PrioritySetupReport,
    SyncKind,
    SyncOptions,
    SyncStats,
)
from .errors import (
    ConnectivityError,
    NoWorkspacesFoundError,
    ScopeNotAllowedError,
    ScopeNotFoundError,
)
from .health import HealthScorer, HealthThresholds
from .relationships import RelationshipDiscovery
from .sync_state import SyncGuard, SyncState

if TYPE_CHECKING:
    from ..db.services import MirrorStore
    from ..integrations.monday_api import MondayAPIClient

logger = structlog.get_logger()

# Boards persisted between two progress log lines
PROGRESS_EVERY = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    """
    Keeps the local mirror in step with monday.com.

    Args:
        client: Remote API client
        store: Store adapter bound to a session
        settings: Thresholds, caps and the priority allow-list
        scorer: Health scorer used by ``refresh_health_cache``
        clock: Source of "now" for freshness computations
    """

    def __init__(
        self,
        client: "MondayAPIClient",
        store: "MirrorStore",
        settings: Optional[Settings] = None,
        scorer: Optional[HealthScorer] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.client = client
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock or _utcnow
        self.scorer = scorer or HealthScorer(
            HealthThresholds.from_settings(self.settings), clock=self.clock
        )
        self.guard = SyncGuard()
        self.discovery = RelationshipDiscovery(client, store)

    @property
    def is_syncing(self) -> bool:
        return self.guard.is_running

    @property
    def sync_state(self) -> SyncState:
        return self.guard.state

    @property
    def priority_names(self) -> List[str]:
        return self.settings.priority_workspace_names

    def _board_cap(self) -> Optional[int]:
        return self.settings.max_boards_per_workspace or None

    async def _run(
        self,
        kind: SyncKind,
        work: Callable[[Any], Awaitable[SyncStats]],
        scope: Optional[str] = None,
        workspace_id: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Run ``work`` under the guard and record it as a sync run.

        Raises:
            SyncInProgressError: Another sync holds the guard
        """
        with self.guard.hold(kind):
            run_id = self.store.start_sync_run(
                kind.value, scope=scope, workspace_id=workspace_id, config=config
            )
            self.guard.attach_run(run_id)
            log = logger.bind(run_id=run_id, sync_kind=kind.value, scope=scope)
            log.info("sync_started")

            try:
                stats = await work(log)
                self.store.complete_sync_run(run_id, stats)
            except Exception as e:
                log.error("sync_failed", error=str(e), error_type=type(e).__name__)
                try:
                    self.store.fail_sync_run(
                        run_id, str(e), details={"type": type(e).__name__}
                    )
                except SQLAlchemyError as record_error:
                    log.error("sync_failure_not_recorded", error=str(record_error))
                raise

            log.info("sync_completed", **stats.model_dump())

        try:
            self.store.cleanup_sync_runs(self.settings.sync_history_limit)
        except SQLAlchemyError as e:
            logger.warning("sync_history_cleanup_failed", error=str(e))
        return run_id

    def _persist_boards(self, boards: List[Board], log) -> None:
        for index, board in enumerate(boards, start=1):
            self.store.save_boards([board])
            self.store.save_columns(board.id, board.columns)
            self.store.save_tags(board.id, board.tags)
            if index % PROGRESS_EVERY == 0:
                log.info("boards_progress", processed=index, total=len(boards))

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def full_sync(self, options: Optional[SyncOptions] = None) -> OrganizationalStructure:
        """Mirror the whole organization, or the priority workspaces when configured.

        Raises:
            SyncInProgressError: A sync is already running
            ConnectivityError: The API or the store failed its pre-flight check
            NoWorkspacesFoundError: None of the priority workspaces exist
        """
        options = options or SyncOptions()
        include_archived = (
            self.settings.include_archived
            if options.include_archived is None
            else options.include_archived
        )
        discovery_options = DiscoveryOptions(
            include_archived=include_archived, max_boards=self._board_cap()
        )
        names = self.priority_names
        restricted = bool(names)

        async def work(log) -> SyncStats:
            api_ok = await self.client.test_connection()
            store_ok = self.store.test_connection()
            if not api_ok:
                raise ConnectivityError("monday.com API connection failed")
            if not store_ok:
                raise ConnectivityError("Database connection failed")

            org = await self.client.discover_organization(
                discovery_options, workspace_names=names or None
            )
            if not org.workspaces:
                raise NoWorkspacesFoundError(names)
            log.info(
                "organization_discovered",
                workspaces=len(org.workspaces),
                boards=len(org.boards),
                users=len(org.users),
            )

            self.store.save_workspaces(org.workspaces)
            self._persist_boards(org.boards, log)
            self.store.save_users(org.users)

            await self.discovery.discover(org.boards, restricted=restricted)

            deleted = self._mark_stale(org, discovery_options, restricted)
            total = len(org.workspaces) + len(org.boards) + len(org.users)
            return SyncStats(processed=total, created=total, deleted=deleted)

        await self._run(
            SyncKind.FULL,
            work,
            config={
                "include_archived": include_archived,
                "max_boards": discovery_options.max_boards,
                "priority_workspaces": names,
                "force_refresh": options.force_refresh,
            },
        )
        return self.store.get_organizational_structure()

    def _mark_stale(
        self,
        org: OrganizationalStructure,
        options: DiscoveryOptions,
        restricted: bool,
    ) -> int:
        only_states = None if options.include_archived else [BoardState.ACTIVE.value]
        capped = set(org.capped_workspace_ids)
        marked = 0

        for workspace in org.workspaces:
            if workspace.id in capped:
                # A capped listing is not a complete one
                continue
            seen = [b.id for b in org.boards if b.workspace_id == workspace.id]
            marked += self.store.mark_stale_boards(workspace.id, seen, only_states=only_states)

        if not restricted:
            marked += self.store.mark_stale_workspaces(w.id for w in org.workspaces)
        return marked

    async def incremental_sync(
        self, options: Optional[SyncOptions] = None
    ) -> OrganizationalStructure:
        """Refresh active boards of the mirrored workspaces.

        Raises:
            SyncInProgressError: A sync is already running
            NoWorkspacesFoundError: None of the priority workspaces exist
        """
        names = self.priority_names
        board_options = DiscoveryOptions(include_archived=False, max_boards=self._board_cap())

        async def work(log) -> SyncStats:
            if names:
                workspaces = await self.client.get_priority_workspaces(names)
                if not workspaces:
                    raise NoWorkspacesFoundError(names)
            else:
                workspaces = await self.client.get_workspaces()

            # Keeps board workspace references resolvable
            self.store.save_workspaces(workspaces)

            updated: List[Board] = []
            for workspace in workspaces:
                boards = await self.client.get_boards_in_workspace(workspace.id, board_options)
                active = [b for b in boards if b.state is BoardState.ACTIVE]
                self._persist_boards(active, log)
                updated.extend(active)

            log.info("active_boards_refreshed", boards=len(updated))
            return SyncStats(processed=len(updated), updated=len(updated))

        await self._run(
            SyncKind.INCREMENTAL,
            work,
            config={"max_boards": board_options.max_boards, "priority_workspaces": names},
        )
        return self.store.get_organizational_structure()

    async def sync_scope(self, scope: str) -> OrganizationalStructure:
        """Sync a single workspace by name.

        Raises:
            ScopeNotAllowedError: ``scope`` is outside the priority allow-list;
                raised before any remote call or sync run
            SyncInProgressError: A sync is already running
            ScopeNotFoundError: monday.com has no workspace named ``scope``
        """
        return await self._sync_scope(scope)

    async def _sync_scope(
        self, scope: str, workspace_id: Optional[str] = None
    ) -> OrganizationalStructure:
        names = self.priority_names
        if names and scope not in names:
            raise ScopeNotAllowedError(scope, names)

        board_options = DiscoveryOptions(
            include_archived=self.settings.include_archived, max_boards=self._board_cap()
        )

        async def work(log) -> SyncStats:
            workspaces = await self.client.get_workspaces()
            target = next((w for w in workspaces if w.name == scope), None)
            if target is None:
                raise ScopeNotFoundError(scope)

            boards = await self.client.get_boards_in_workspace(target.id, board_options)
            self.store.save_workspaces([target])
            self._persist_boards(boards, log)

            log.info("workspace_synced", workspace_id=target.id, boards=len(boards))
            count = len(boards) + 1
            return SyncStats(processed=count, updated=count)

        await self._run(
            SyncKind.SCOPE,
            work,
            scope=scope,
            workspace_id=workspace_id,
            config={
                "include_archived": board_options.include_archived,
                "max_boards": board_options.max_boards,
            },
        )
        return self.store.get_organizational_structure()

    async def sync_workspace_by_id(self, workspace_id: str) -> OrganizationalStructure:
        """Resolve a mirrored workspace id to its name and sync that scope."""
        workspace = next(
            (w for w in self.store.get_workspaces(include_stale=True) if w.id == workspace_id),
            None,
        )
        if workspace is None:
            raise ScopeNotFoundError(workspace_id, where="the mirror")
        return await self._sync_scope(workspace.name, workspace_id=workspace.id)

    def plan_smart_sync(self, status: Optional[CacheStatus] = None) -> str:
        """Strategy ``smart_sync`` would run: ``full``, ``incremental`` or ``cached``."""
        status = status or self.get_cache_status()
        if not status.is_healthy or status.cache_age > self.settings.full_sync_after_hours:
            return "full"
        if status.needs_refresh:
            return "incremental"
        return "cached"

    async def smart_sync(self) -> OrganizationalStructure:
        """Pick the cheapest strategy that makes the mirror fresh."""
        status = self.get_cache_status()
        strategy = self.plan_smart_sync(status)
        logger.info(
            "smart_sync_selected",
            strategy=strategy,
            healthy=status.is_healthy,
            cache_age_hours=status.cache_age,
        )

        if strategy == "full":
            return await self.full_sync()
        if strategy == "incremental":
            return await self.incremental_sync()
        return self.store.get_organizational_structure()

    async def refresh_if_needed(self) -> Optional[OrganizationalStructure]:
        """Run an incremental sync only when the mirror is past its TTL."""
        status = self.get_cache_status()
        if status.needs_refresh:
            logger.info("cache_refresh_needed", cache_age_hours=status.cache_age)
            return await self.incremental_sync()
        logger.info("cache_fresh", cache_age_hours=status.cache_age)
        return None

    async def quick_sync(self) -> OrganizationalStructure:
        """Run a full sync only when the mirror is empty."""
        if not self.get_cache_status().is_healthy:
            return await self.full_sync()
        return self.store.get_organizational_structure()

    # ------------------------------------------------------------------
    # Read-only checks
    # ------------------------------------------------------------------

    def _cache_age(self, last_sync: Optional[datetime]) -> float:
        if last_sync is None:
            return math.inf
        return max((self.clock() - last_sync).total_seconds() / 3600, 0.0)

    def get_cache_status(self) -> CacheStatus:
        """Freshness of the mirror, read from the store only."""
        try:
            overview = self.store.get_organization_overview()
        except SQLAlchemyError as e:
            logger.warning("cache_status_unavailable", error=str(e))
            self.store.db.rollback()
            return CacheStatus(is_healthy=False)

        last_sync = overview["last_sync_time"]
        cache_age = self._cache_age(last_sync)
        return CacheStatus(
            is_healthy=overview["total_workspaces"] > 0 and overview["total_boards"] > 0,
            last_sync=last_sync,
            total_boards=overview["total_boards"],
            total_workspaces=overview["total_workspaces"],
            cache_age=cache_age,
            needs_refresh=cache_age > self.settings.cache_ttl_hours,
        )

    def validate_integrity(self) -> IntegrityReport:
        """Consistency report over the mirror; problems are returned, not raised."""
        issues: List[str] = []
        try:
            org = self.store.get_organizational_structure()
            stale = self.store.get_stale_counts()
        except SQLAlchemyError as e:
            self.store.db.rollback()
            return IntegrityReport(is_valid=False, issues=[f"Cache validation failed: {e}"])

        found = {w.name for w in org.workspaces}
        missing = [name for name in self.priority_names if name not in found]
        if missing:
            issues.append(f"Missing priority workspaces: {', '.join(missing)}")

        orphaned = [b for b in org.boards if b.workspace is None]
        if orphaned:
            issues.append(f"{len(orphaned)} boards without workspace references")

        with_boards = {b.workspace_id for b in org.boards}
        for workspace in org.workspaces:
            if workspace.id not in with_boards:
                issues.append(f'Workspace "{workspace.name}" has no boards')

        if stale["boards"] or stale["workspaces"]:
            issues.append(
                f"{stale['boards']} boards and {stale['workspaces']} workspaces "
                "no longer returned by monday.com (marked stale)"
            )

        if org.last_scanned is None:
            issues.append("No successful sync recorded")
        else:
            cache_age = self._cache_age(org.last_scanned)
            if cache_age > self.settings.cache_ttl_hours * 2:
                issues.append(f"Cache is very old ({cache_age:.1f} hours)")

        return IntegrityReport(is_valid=not issues, issues=issues)

    async def validate_priority_setup(self) -> PrioritySetupReport:
        """Compare the priority allow-list with the workspaces monday.com returns."""
        names = self.priority_names
        if not names:
            return PrioritySetupReport(
                is_valid=True,
                recommendations=["No priority workspaces configured; every workspace is synced"],
            )

        try:
            workspaces = await self.client.get_workspaces()
            found = [w for w in workspaces if w.name in names]
            found_names = [w.name for w in found]
            missing = [name for name in names if name not in found_names]

            issues: List[str] = []
            recommendations: List[str] = []
            if not found:
                issues.append("No priority workspaces found in monday.com")
                recommendations.append("Check the names in PRIORITY_WORKSPACES")
                recommendations.append(
                    f"Available workspaces: {', '.join(w.name for w in workspaces)}"
                )
            elif missing:
                issues.append(f"Missing workspaces: {', '.join(missing)}")
                recommendations.append("Update PRIORITY_WORKSPACES or check workspace names")

            for workspace in found:
                boards = await self.client.get_boards_in_workspace(workspace.id)
                if not boards:
                    issues.append(f'Workspace "{workspace.name}" has no boards')
                elif len(boards) > 20:
                    recommendations.append(
                        f'Workspace "{workspace.name}" has {len(boards)} boards - consider filtering'
                    )

            return PrioritySetupReport(
                is_valid=not issues,
                found_workspaces=found_names,
                missing_workspaces=missing,
                issues=issues,
                recommendations=recommendations,
            )
        except Exception as e:
            logger.warning("priority_setup_validation_failed", error=str(e))
            return PrioritySetupReport(
                is_valid=False,
                missing_workspaces=list(names),
                issues=[f"Validation failed: {e}"],
                recommendations=["Check monday.com API connectivity and workspace access"],
            )

    def refresh_health_cache(self) -> int:
        """Recompute board health and write it to the advisory columns."""
        org = self.store.get_organizational_structure()
        now = self.clock()
        scores = {}
        for board in org.boards:
            health = self.scorer.analyze_board_health(board, now)
            scores[board.id] = (health.status.value, health.score)
        updated = self.store.update_board_health(scores)
        logger.info("health_cache_refreshed", boards=updated)
        return updated
