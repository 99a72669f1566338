"""
Board relationship discovery.

Edges are inferred from ``connect_boards`` and ``mirror`` columns. An edge is
only persisted when its target board belongs to the board set of the current
sync; anything else is logged and dropped so the store never holds a dangling
reference.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence

import structlog

from ..schemas.monday import Board, Column, RawConnection, RelationshipEdge, RelationshipType
from .column_settings import (
    ConnectBoardsSettings,
    MirrorSettings,
    UnparseableSettings,
    parse_column_settings,
)

if TYPE_CHECKING:
    from ..db.services import MirrorStore
    from ..integrations.monday_api import MondayAPIClient

logger = structlog.get_logger()


def extract_connections(
    board_id: str, board_name: Optional[str], columns: Iterable[Column]
) -> List[RawConnection]:
    """Read the outgoing board links declared by a board's columns."""
    connections: List[RawConnection] = []

    for column in columns:
        settings = parse_column_settings(column.type, column.settings_str)

        if isinstance(settings, UnparseableSettings):
            logger.warning(
                "column_settings_unparseable",
                board_id=board_id,
                column_id=column.id,
                column_type=settings.column_type,
                reason=settings.reason,
            )
            continue

        if isinstance(settings, ConnectBoardsSettings):
            for target in settings.board_ids:
                connections.append(
                    RawConnection(
                        source_board=board_id,
                        source_board_name=board_name,
                        target_board=target,
                        type=RelationshipType.CONNECT,
                        column_id=column.id,
                        column_title=column.title,
                        connection_details=f'Connect boards via "{column.title}"',
                    )
                )
        elif isinstance(settings, MirrorSettings):
            for target in settings.board_ids:
                connections.append(
                    RawConnection(
                        source_board=board_id,
                        source_board_name=board_name,
                        target_board=target,
                        type=RelationshipType.MIRROR,
                        column_id=column.id,
                        column_title=column.title,
                        connection_details=f'Mirror column "{column.title}" from target board',
                    )
                )

    return connections


@dataclass
class DiscoveryResult:
    """Outcome of one discovery pass."""

    saved: int = 0
    skipped: int = 0
    failed_boards: List[str] = field(default_factory=list)


class RelationshipDiscovery:
    """Derives and persists board edges for a set of freshly synced boards."""

    def __init__(self, client: "MondayAPIClient", store: "MirrorStore"):
        self.client = client
        self.store = store

    async def discover(
        self, boards: Sequence[Board], restricted: bool = False
    ) -> DiscoveryResult:
        """Discover edges between ``boards``.

        Args:
            boards: The board set of the current sync; edge targets must be in it
            restricted: Whether the sync is limited to priority workspaces, which
                only changes how dropped edges are reported

        Returns:
            Counts of saved and skipped edges, plus boards whose lookup failed
        """
        known_ids = {board.id for board in boards}
        result = DiscoveryResult()
        log = logger.bind(board_count=len(boards), restricted=restricted)
        log.info("relationship_discovery_started")

        for board in boards:
            try:
                connections = await self.client.get_board_connections(board.id)
                for connection in connections:
                    if connection.target_board not in known_ids:
                        result.skipped += 1
                        log.info(
                            "relationship_skipped",
                            source_board=board.id,
                            target_board=connection.target_board,
                            reason="outside priority workspaces" if restricted else "unknown target board",
                        )
                        continue

                    saved = self.store.save_relationship(
                        RelationshipEdge(
                            source_board=board.id,
                            target_board=connection.target_board,
                            type=connection.type,
                            source_column=connection.column_id,
                            metadata={
                                "column_title": connection.column_title,
                                "connection_details": connection.connection_details,
                                "discovered_at": datetime.now(timezone.utc).isoformat(),
                            },
                        )
                    )
                    if not saved:
                        result.skipped += 1
                        continue
                    result.saved += 1
                    log.debug(
                        "relationship_saved",
                        source_board=board.id,
                        target_board=connection.target_board,
                        type=connection.type.value,
                    )
            except Exception as e:
                result.failed_boards.append(board.id)
                log.warning(
                    "relationship_lookup_failed",
                    board_id=board.id,
                    board_name=board.name,
                    error=str(e),
                )

        log.info(
            "relationship_discovery_finished",
            saved=result.saved,
            skipped=result.skipped,
            failed=len(result.failed_boards),
        )
        return result
