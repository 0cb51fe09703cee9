import pytest

from conftest import make_item
from gh_project_board.focus import (board_edge, board_focused_id, board_move_card, board_move_column,
                                    bucket_item_ids, ensure_visible_focus, flat_edge, grouped_edge, grouped_focus_row,
                                    grouped_rows, index_of, move_flat, move_grouped, move_table_column, roadmap_order,
                                    table_visible_columns)
from gh_project_board.models import Bucket, CardFieldVisibility, Field, RoadmapSection, TableColumn, Timeline
from gh_project_board.projection import build_board, group_items_by_assignee


@pytest.fixture
def buckets():
    return [
        Bucket("A", [make_item("a1"), make_item("a2")]),
        Bucket("B", [make_item("b1")]),
    ]


def test_grouped_rows_include_headers(buckets):
    assert grouped_rows(buckets) == [(0, ""), (0, "a1"), (0, "a2"), (1, ""), (1, "b1")]
    assert bucket_item_ids(buckets) == ["a1", "a2", "b1"]


def test_move_grouped_skips_headers(buckets):
    assert move_grouped(buckets, "a1", 1) == ("a2", 0)
    assert move_grouped(buckets, "a2", 1) == ("b1", 1)
    assert move_grouped(buckets, "b1", -1) == ("a2", 0)


def test_move_grouped_wraps_around(buckets):
    assert move_grouped(buckets, "b1", 1) == ("a1", 0)
    assert move_grouped(buckets, "a1", -1) == ("b1", 1)


def test_move_grouped_unknown_focus_starts_at_top(buckets):
    assert move_grouped(buckets, "zzz", 1) == ("a1", 0)
    assert move_grouped(buckets, "", 1) == ("a1", 0)


def test_move_grouped_without_items():
    assert move_grouped([], "a", 1) == ("", -1)
    assert move_grouped([Bucket("Empty")], "", 1) == ("", -1)


def test_move_flat_clamps_at_edges():
    visible = [make_item("a"), make_item("b"), make_item("c")]
    assert move_flat(visible, "a", -1) == "a"
    assert move_flat(visible, "b", 1) == "c"
    assert move_flat(visible, "c", 1) == "c"
    assert move_flat(visible, "gone", 1) == "a"
    assert move_flat([], "a", 1) == ""


def test_edges(buckets):
    visible = [make_item("a"), make_item("b")]
    assert flat_edge(visible, True) == "a"
    assert flat_edge(visible, False) == "b"
    assert grouped_edge(buckets, True) == ("a1", 0)
    assert grouped_edge(buckets, False) == ("b1", 1)
    assert grouped_edge([Bucket("A"), Bucket("B", [make_item("x")])], True) == ("x", 1)


def test_ensure_visible_focus():
    assert ensure_visible_focus(["a", "b"], "b") == "b"
    assert ensure_visible_focus(["a", "b"], "gone") == "a"
    assert ensure_visible_focus([], "a") == ""


def test_index_of():
    items = [make_item("a"), make_item("b")]
    assert index_of(items, "b") == 1
    assert index_of(items, "x") == -1
    assert index_of(items, "") == -1


def test_board_navigation_clamps():
    items = [make_item("t1", status="Todo"), make_item("t2", status="Todo"), make_item("d1", status="Done")]
    board = build_board(items, [], None)
    board_move_card(board, 5)
    assert board_focused_id(board) == "t2"
    board_move_column(board, 1)
    assert board_focused_id(board) == "d1"
    board_move_column(board, 1)
    assert board_focused_id(board) == "d1"
    board_move_column(board, -1)
    board_edge(board, top=False)
    assert board_focused_id(board) == "t2"
    board_edge(board, top=True)
    assert board_focused_id(board) == "t1"


def test_table_columns_follow_visibility():
    default = table_visible_columns(CardFieldVisibility())
    assert default == [TableColumn.TITLE, TableColumn.STATUS, TableColumn.REPOSITORY, TableColumn.LABELS,
                       TableColumn.MILESTONE, TableColumn.ASSIGNEES]
    minimal = CardFieldVisibility(show_milestone=False, show_repository=False, show_labels=False)
    assert table_visible_columns(minimal) == [TableColumn.TITLE, TableColumn.STATUS, TableColumn.ASSIGNEES]
    extra = CardFieldVisibility(show_sub_issue_progress=True, show_parent_issue=True)
    assert table_visible_columns(extra)[-3:] == [TableColumn.SUB_ISSUE, TableColumn.PARENT, TableColumn.ASSIGNEES]


def test_move_table_column_clamps():
    vis = CardFieldVisibility()
    assert move_table_column(0, -1, vis) == 0
    assert move_table_column(4, 1, vis) == 5
    assert move_table_column(5, 1, vis) == 5


def test_move_grouped_passes_an_item_listed_under_two_assignees():
    shared = make_item("X", assignees=["alice", "bob"])
    only_bob = make_item("Y", assignees=["bob"])
    buckets = group_items_by_assignee([shared, only_bob])
    focus, bucket = "X", -1
    visited = []
    for _ in range(6):
        focus, bucket = move_grouped(buckets, focus, 1, bucket)
        visited.append((focus, bucket))
    assert visited == [("X", 1), ("Y", 1), ("X", 0), ("X", 1), ("Y", 1), ("X", 0)]
    assert move_grouped(buckets, "Y", -1, 1) == ("X", 1)


def test_grouped_focus_row_prefers_the_focused_bucket():
    rows = [(0, ""), (0, "X"), (1, ""), (1, "X"), (1, "Y")]
    assert grouped_focus_row(rows, "X", 1) == 3
    assert grouped_focus_row(rows, "X", 0) == 1
    assert grouped_focus_row(rows, "X", 7) == 1
    assert grouped_focus_row(rows, "Z", 1) == -1
    assert grouped_focus_row(rows, "", 0) == -1


def test_priority_column_needs_a_priority_field():
    vis = CardFieldVisibility()
    fields = [Field("prio", "Priority")]
    assert table_visible_columns(vis, fields)[-2:] == [TableColumn.PRIORITY, TableColumn.ASSIGNEES]
    assert TableColumn.PRIORITY not in table_visible_columns(vis, [Field("prio", "Severity")])
    assert move_table_column(5, 1, vis, fields) == 6
    assert move_table_column(5, 1, vis) == 5


def test_roadmap_order_walks_sections_in_turn():
    sections = [
        RoadmapSection(Timeline("it-1", "Sprint 1"), [make_item("a"), make_item("b")]),
        RoadmapSection(Timeline("it-2", "Sprint 2"), []),
        RoadmapSection(Timeline("", "Unscheduled"), [make_item("c")]),
    ]
    assert [it.id for it in roadmap_order(sections)] == ["a", "b", "c"]
    assert roadmap_order([]) == []
