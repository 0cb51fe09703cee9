"""Focus tracking across the board, the flat table, the grouped table and the roadmap.

Focus is an item identity, plus a bucket index in the grouped table where one item
can be listed more than once.  Positions are always re-derived by scanning the
current projection for that identity.
"""
from __future__ import annotations

import datetime as dt
from typing import Iterable, List, Optional, Sequence, Tuple

from .filters import apply_filter
from .models import Bucket, CardFieldVisibility, Field, FilterSpec, Item, RoadmapSection, SortKey, TableColumn
from .projection import Board
from .sorting import apply_table_sort


def index_of(items: Sequence[Item], item_id: str) -> int:
    if not item_id:
        return -1
    for idx, item in enumerate(items):
        if item.id == item_id:
            return idx
    return -1


# -----------------------------
# Board navigation
# -----------------------------
def board_focused_id(board: Board) -> str:
    card = board.focused_card_obj()
    return card.id if card is not None else ""


def board_move_card(board: Board, delta: int) -> None:
    if not (0 <= board.focused_column < len(board.columns)):
        return
    cards = board.columns[board.focused_column].cards
    if not cards:
        board.focused_card = 0
        return
    board.focused_card = max(0, min(len(cards) - 1, board.focused_card + delta))


def board_move_column(board: Board, delta: int) -> None:
    if not board.columns:
        return
    target = max(0, min(len(board.columns) - 1, board.focused_column + delta))
    if target != board.focused_column:
        board.focused_column = target
        board.focused_card = 0


def board_edge(board: Board, top: bool) -> None:
    if not (0 <= board.focused_column < len(board.columns)):
        return
    cards = board.columns[board.focused_column].cards
    if not cards:
        return
    board.focused_card = 0 if top else len(cards) - 1


# -----------------------------
# Table rows
# -----------------------------
def table_visible_items(items: Sequence[Item], fields: Optional[Iterable[Field]], spec: Optional[FilterSpec],
                        sort: Optional[SortKey], now: Optional[dt.datetime] = None) -> List[Item]:
    return apply_table_sort(apply_filter(items, fields, spec, now), sort)


def grouped_rows(buckets: Sequence[Bucket]) -> List[Tuple[int, str]]:
    """Flatten buckets into ``(bucket index, item id)`` rows; header rows carry an empty id."""
    rows: List[Tuple[int, str]] = []
    for bucket_idx, bucket in enumerate(buckets):
        rows.append((bucket_idx, ""))
        for item in bucket.items:
            rows.append((bucket_idx, item.id))
    return rows


def move_flat(visible: Sequence[Item], focused_id: str, delta: int) -> str:
    if not visible:
        return ""
    idx = index_of(visible, focused_id)
    if idx < 0:
        return visible[0].id
    idx = max(0, min(len(visible) - 1, idx + delta))
    return visible[idx].id


def grouped_focus_row(rows: Sequence[Tuple[int, str]], focused_id: str, bucket: int = -1) -> int:
    """Row holding ``focused_id`` inside ``bucket``, else its first row; -1 when absent.

    Assignee grouping lists an item once per assignee, so the id alone does not
    pin down a row.
    """
    first = -1
    if not focused_id:
        return first
    for row_idx, (bucket_idx, item_id) in enumerate(rows):
        if item_id != focused_id:
            continue
        if bucket_idx == bucket:
            return row_idx
        if first < 0:
            first = row_idx
    return first


def move_grouped(buckets: Sequence[Bucket], focused_id: str, delta: int,
                 bucket: int = -1) -> Tuple[str, int]:
    """Move through the circular header+item row list, never stopping on a header.

    Returns ``(item id, bucket index)`` of the new row, or ``("", -1)`` when no item row exists.
    """
    rows = grouped_rows(buckets)
    if not rows:
        return "", -1
    current = max(0, grouped_focus_row(rows, focused_id, bucket))
    target = (current + delta) % len(rows)
    if delta < 0:
        order = list(range(target, -1, -1)) + list(range(len(rows) - 1, target, -1))
    else:
        order = list(range(target, len(rows))) + list(range(0, target))
    for row_idx in order:
        bucket_idx, item_id = rows[row_idx]
        if item_id:
            return item_id, bucket_idx
    return "", -1


def flat_edge(visible: Sequence[Item], top: bool) -> str:
    if not visible:
        return ""
    return visible[0].id if top else visible[-1].id


def grouped_edge(buckets: Sequence[Bucket], top: bool) -> Tuple[str, int]:
    indexed = list(enumerate(buckets))
    if not top:
        indexed.reverse()
    for bucket_idx, bucket in indexed:
        if bucket.items:
            return (bucket.items[0].id if top else bucket.items[-1].id), bucket_idx
    return "", -1


def ensure_visible_focus(visible_ids: Sequence[str], focused_id: str) -> str:
    """Keep ``focused_id`` when still shown, else fall back to the first selectable row."""
    if focused_id and focused_id in visible_ids:
        return focused_id
    return visible_ids[0] if visible_ids else ""


def bucket_item_ids(buckets: Sequence[Bucket]) -> List[str]:
    return [item_id for _, item_id in grouped_rows(buckets) if item_id]


# -----------------------------
# Table columns
# -----------------------------
def table_visible_columns(vis: CardFieldVisibility, fields: Optional[Iterable[Field]] = None) -> List[TableColumn]:
    """Columns shown in the table; Priority appears only when the project defines that field."""
    columns = [TableColumn.TITLE, TableColumn.STATUS]
    if vis.show_repository:
        columns.append(TableColumn.REPOSITORY)
    if vis.show_labels:
        columns.append(TableColumn.LABELS)
    if vis.show_milestone:
        columns.append(TableColumn.MILESTONE)
    if any(f.name == "Priority" for f in fields or []):
        columns.append(TableColumn.PRIORITY)
    if vis.show_sub_issue_progress:
        columns.append(TableColumn.SUB_ISSUE)
    if vis.show_parent_issue:
        columns.append(TableColumn.PARENT)
    columns.append(TableColumn.ASSIGNEES)
    return columns


def clamp_table_column(index: int, vis: CardFieldVisibility, fields: Optional[Iterable[Field]] = None) -> int:
    count = len(table_visible_columns(vis, fields))
    return max(0, min(count - 1, index))


def move_table_column(index: int, delta: int, vis: CardFieldVisibility,
                      fields: Optional[Iterable[Field]] = None) -> int:
    return clamp_table_column(index + delta, vis, fields)


# -----------------------------
# Roadmap
# -----------------------------
def roadmap_order(sections: Sequence[RoadmapSection]) -> List[Item]:
    """Items in the order the roadmap lists them; focus moves over this list."""
    return [item for section in sections for item in section.items]
