"""
Board and workspace health scoring.

Everything here is a pure function of the mirrored data and a reference
time. Scores are recomputed on every call; the ``health_status`` and
``health_score`` columns on stored boards only cache the last result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..schemas.monday import Board, BoardState, OrganizationalStructure, Workspace


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    INACTIVE = "inactive"
    ABANDONED = "abandoned"


STATUS_SCORES = {
    HealthStatus.HEALTHY: 100,
    HealthStatus.WARNING: 60,
    HealthStatus.INACTIVE: 20,
    HealthStatus.ABANDONED: 0,
}

# Items per board that counts as full utilization
UTILIZATION_BASELINE = 10


@dataclass(frozen=True)
class HealthThresholds:
    inactive_days: int = 30
    underutilized_items: int = 5
    min_board_age_days: int = 7

    @classmethod
    def from_settings(cls, settings) -> "HealthThresholds":
        return cls(
            inactive_days=settings.inactive_days_threshold,
            underutilized_items=settings.underutilized_items_threshold,
            min_board_age_days=settings.min_board_age_days,
        )


@dataclass
class BoardHealth:
    board: Board
    status: HealthStatus
    items_count: int
    days_since_activity: Optional[float] = None
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    @property
    def score(self) -> int:
        return STATUS_SCORES[self.status]


@dataclass
class WorkspaceHealth:
    workspace: Workspace
    boards_healthy: int
    boards_warning: int
    boards_inactive: int
    total_boards: int
    overall_score: int
    recommendations: List[str] = field(default_factory=list)


@dataclass
class HealthMetrics:
    total_workspaces: int
    total_boards: int
    active_boards: int
    archived_boards: int
    total_items: int
    inactive_boards: List[Board]
    underutilized_boards: List[Board]
    activity_summary: Dict[str, int]
    last_updated: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _days_between(earlier: datetime, later: datetime) -> float:
    if earlier.tzinfo is None:
        earlier = earlier.replace(tzinfo=timezone.utc)
    return (later - earlier).total_seconds() / 86400


class HealthScorer:
    """
    Classifies boards and scores workspaces.

    Board classification, first match wins:

    - updated less than ``min_board_age_days`` ago: healthy
    - archived or deleted: abandoned
    - no update for more than ``2 * inactive_days``: abandoned
    - no update for more than ``inactive_days``: inactive
    - no items, few items on an established board, or last update in the
      second half of the inactivity window: warning
    - otherwise healthy
    """

    def __init__(
        self,
        thresholds: Optional[HealthThresholds] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.thresholds = thresholds or HealthThresholds()
        self.clock = clock or _utcnow

    def analyze_board_health(self, board: Board, now: Optional[datetime] = None) -> BoardHealth:
        now = now or self.clock()
        t = self.thresholds
        items = board.items_count or 0
        health = BoardHealth(board=board, status=HealthStatus.HEALTHY, items_count=items)

        if board.updated_at is None:
            # Without a timestamp the board cannot be aged; report it as new
            health.issues.append("No update timestamp available")
            return health

        days = _days_between(board.updated_at, now)
        health.days_since_activity = days

        if days < t.min_board_age_days:
            health.issues.append("Board too new for health analysis")
            health.recommendations.append("Continue building out this board")
            return health

        if board.state in (BoardState.ARCHIVED, BoardState.DELETED):
            health.status = HealthStatus.ABANDONED
            health.issues.append(f"Board is {board.state.value}")
            return health

        if days > t.inactive_days * 2:
            health.status = HealthStatus.ABANDONED
            health.issues.append(f"No activity for {round(days)} days")
            health.recommendations.append("Consider archiving or consolidating with active boards")
            return health

        if days > t.inactive_days:
            health.status = HealthStatus.INACTIVE
            health.issues.append(f"No recent activity ({round(days)} days)")
            health.recommendations.append("Review board usage and engage team members")
            return health

        if items == 0:
            health.status = HealthStatus.WARNING
            health.issues.append("No items in board")
            health.recommendations.append("Add initial items or consider if board is needed")
        elif items < t.underutilized_items and days > t.min_board_age_days * 2:
            health.status = HealthStatus.WARNING
            health.issues.append("Very few items - possible underutilization")
            health.recommendations.append("Consider consolidating with other boards")

        if days > t.inactive_days / 2:
            health.status = HealthStatus.WARNING
            health.issues.append(f"Activity slowing ({round(days)} days since last update)")

        return health

    def analyze_workspace_health(
        self,
        workspace: Workspace,
        boards: Sequence[Board],
        now: Optional[datetime] = None,
    ) -> WorkspaceHealth:
        """Score a workspace from the boards that belong to it.

        ``boards`` may contain boards of other workspaces; they are ignored.
        """
        now = now or self.clock()
        own = [b for b in boards if b.workspace_id == workspace.id]
        results = [self.analyze_board_health(b, now) for b in own]

        healthy = sum(1 for r in results if r.status is HealthStatus.HEALTHY)
        warning = sum(1 for r in results if r.status is HealthStatus.WARNING)
        inactive = sum(
            1 for r in results if r.status in (HealthStatus.INACTIVE, HealthStatus.ABANDONED)
        )
        total = len(own)

        score = 0
        if total:
            healthy_ratio = healthy / total
            active_ratio = sum(1 for b in own if b.state is BoardState.ACTIVE) / total
            items = sum(b.items_count or 0 for b in own)
            utilization = min(items / (total * UTILIZATION_BASELINE), 1.0)
            score = round(100 * (0.5 * healthy_ratio + 0.3 * active_ratio + 0.2 * utilization))

        recommendations = []
        if total == 0:
            recommendations.append("No boards in workspace - consider adding content or archiving")
        elif inactive > total * 0.3:
            recommendations.append("High number of inactive boards - consider cleanup")
        if score > 80:
            recommendations.append("Workspace is well-organized and active")
        elif score > 60:
            recommendations.append("Good workspace health with room for optimization")
        else:
            recommendations.append("Workspace needs attention - review board usage and organization")

        return WorkspaceHealth(
            workspace=workspace,
            boards_healthy=healthy,
            boards_warning=warning,
            boards_inactive=inactive,
            total_boards=total,
            overall_score=score,
            recommendations=recommendations,
        )

    def analyze_organization_health(
        self, org: OrganizationalStructure, now: Optional[datetime] = None
    ) -> HealthMetrics:
        now = now or self.clock()
        results = [self.analyze_board_health(b, now) for b in org.boards]

        def updated_since(days: int) -> int:
            since = now - timedelta(days=days)
            return sum(
                1
                for b in org.boards
                if b.updated_at is not None and _days_between(b.updated_at, since) <= 0
            )

        return HealthMetrics(
            total_workspaces=len(org.workspaces),
            total_boards=len(org.boards),
            active_boards=sum(1 for b in org.boards if b.state is BoardState.ACTIVE),
            archived_boards=sum(1 for b in org.boards if b.state is BoardState.ARCHIVED),
            total_items=sum(b.items_count or 0 for b in org.boards),
            inactive_boards=[
                r.board
                for r in results
                if r.status in (HealthStatus.INACTIVE, HealthStatus.ABANDONED)
            ],
            underutilized_boards=[
                r.board
                for r in results
                if r.status is HealthStatus.WARNING
                and r.items_count < self.thresholds.underutilized_items
            ],
            activity_summary={
                "daily": updated_since(1),
                "weekly": updated_since(7),
                "monthly": updated_since(30),
            },
            last_updated=now,
        )

    def calculate_overall_health_score(
        self, org: OrganizationalStructure, now: Optional[datetime] = None
    ) -> int:
        """Average of per-board status scores, 0 for an empty organization."""
        if not org.boards:
            return 0
        now = now or self.clock()
        total = sum(self.analyze_board_health(b, now).score for b in org.boards)
        return round(total / len(org.boards))

    def generate_health_recommendations(
        self, org: OrganizationalStructure, now: Optional[datetime] = None
    ) -> List[str]:
        now = now or self.clock()
        metrics = self.analyze_organization_health(org, now)
        recommendations = []

        if metrics.total_boards == 0:
            return ["No boards mirrored yet - run a sync first"]

        if metrics.inactive_boards:
            recommendations.append(
                f"Consider archiving {len(metrics.inactive_boards)} inactive boards"
            )
        if metrics.underutilized_boards:
            recommendations.append(
                f"Review {len(metrics.underutilized_boards)} underutilized boards for consolidation"
            )
        if metrics.active_boards / metrics.total_boards < 0.7:
            recommendations.append(
                "Less than 70% of boards are active - consider organizational cleanup"
            )
        if metrics.total_items < metrics.total_boards * 5:
            recommendations.append(
                "Low item density - many boards may be unused or underutilized"
            )
        if metrics.activity_summary["weekly"] < metrics.active_boards * 0.3:
            recommendations.append("Low weekly activity - boards may not be actively managed")

        low = [
            ws
            for ws in (self.analyze_workspace_health(w, org.boards, now) for w in org.workspaces)
            if ws.overall_score < 50
        ]
        if low:
            recommendations.append(f"{len(low)} workspaces need attention for better organization")

        return recommendations

    def get_health_dashboard_data(
        self, org: OrganizationalStructure, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Summary used by the ``health`` command."""
        now = now or self.clock()
        metrics = self.analyze_organization_health(org, now)
        results = [self.analyze_board_health(b, now) for b in org.boards]

        return {
            "overall_score": self.calculate_overall_health_score(org, now),
            "board_status_counts": {
                status.value: sum(1 for r in results if r.status is status)
                for status in HealthStatus
            },
            "workspace_scores": [
                {
                    "id": ws.workspace.id,
                    "name": ws.workspace.name,
                    "score": ws.overall_score,
                    "board_count": ws.total_boards,
                }
                for ws in (
                    self.analyze_workspace_health(w, org.boards, now) for w in org.workspaces
                )
            ],
            "recommendations": self.generate_health_recommendations(org, now),
            "trends": {
                "daily_activity": metrics.activity_summary["daily"],
                "weekly_activity": metrics.activity_summary["weekly"],
                "monthly_activity": metrics.activity_summary["monthly"],
            },
        }
