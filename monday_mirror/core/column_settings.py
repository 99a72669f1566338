"""
Typed decoding of column ``settings_str`` blobs.

Only two column types carry board links:

- ``connect_boards``: ``{"boardIds": [123, 456], ...}``
- ``mirror``: ``{"boardId": 123}`` in older payloads, or
  ``{"displayed_linked_columns": {"123": ["status"]}, ...}`` in current ones

``parse_column_settings`` never raises. Malformed blobs decode to
``UnparseableSettings`` and every other column type decodes to
``UnsupportedSettings``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

CONNECT_BOARDS_TYPE = "connect_boards"
MIRROR_TYPE = "mirror"


@dataclass(frozen=True)
class ConnectBoardsSettings:
    board_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MirrorSettings:
    board_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class UnparseableSettings:
    column_type: str
    reason: str


@dataclass(frozen=True)
class UnsupportedSettings:
    column_type: str


ColumnSettings = Union[
    ConnectBoardsSettings, MirrorSettings, UnparseableSettings, UnsupportedSettings
]


def _load_object(column_type: str, raw: str) -> Union[dict, UnparseableSettings]:
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError) as e:
        return UnparseableSettings(column_type, f"invalid JSON: {e}")
    if not isinstance(decoded, dict):
        return UnparseableSettings(
            column_type, f"expected an object, got {type(decoded).__name__}"
        )
    return decoded


def _board_id(value: Any) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, str)) and str(value).strip():
        return str(value).strip()
    return None


def _parse_connect_boards(raw: str) -> ColumnSettings:
    decoded = _load_object(CONNECT_BOARDS_TYPE, raw)
    if isinstance(decoded, UnparseableSettings):
        return decoded

    board_ids = decoded.get("boardIds")
    if board_ids is None:
        return ConnectBoardsSettings()
    if not isinstance(board_ids, list):
        return UnparseableSettings(CONNECT_BOARDS_TYPE, "boardIds is not a list")

    ids = tuple(b for b in (_board_id(v) for v in board_ids) if b)
    return ConnectBoardsSettings(board_ids=ids)


def _parse_mirror(raw: str) -> ColumnSettings:
    decoded = _load_object(MIRROR_TYPE, raw)
    if isinstance(decoded, UnparseableSettings):
        return decoded

    single = _board_id(decoded.get("boardId"))
    if single:
        return MirrorSettings(board_ids=(single,))

    linked = decoded.get("displayed_linked_columns")
    if linked is None:
        return MirrorSettings()
    if not isinstance(linked, dict):
        return UnparseableSettings(MIRROR_TYPE, "displayed_linked_columns is not an object")

    ids = tuple(b for b in (_board_id(k) for k in linked) if b)
    return MirrorSettings(board_ids=ids)


def parse_column_settings(column_type: str, settings_str: Optional[str]) -> ColumnSettings:
    """Decode a column's settings blob into one of the ``ColumnSettings`` variants."""
    if column_type == CONNECT_BOARDS_TYPE:
        if not settings_str:
            return ConnectBoardsSettings()
        return _parse_connect_boards(settings_str)

    if column_type == MIRROR_TYPE:
        if not settings_str:
            return MirrorSettings()
        return _parse_mirror(settings_str)

    return UnsupportedSettings(column_type)
