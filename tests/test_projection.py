import datetime as dt

from conftest import NOW, make_item, status_field
from gh_project_board.filters import parse_filter
from gh_project_board.focus import roadmap_order
from gh_project_board.models import Field, Timeline
from gh_project_board.projection import (COLUMN_ORDER, DONE_COLUMN, NO_ITERATION, UNASSIGNED, build_board,
                                         card_for, group_items, group_items_by_assignee,
                                         group_items_by_iteration, group_items_by_status, parse_percent,
                                         progress_for_status, roadmap_sections, status_order, status_progress,
                                         timeline_progress)


def names(groups):
    return [g.name for g in groups]


def test_status_order_from_field_options():
    fields = [status_field("Backlog", "Doing", "Done")]
    assert status_order(fields) == ["Backlog", "Doing", "Done"]


def test_status_order_falls_back_to_default():
    assert status_order([]) == COLUMN_ORDER
    assert status_order([Field("x", "Status")]) == COLUMN_ORDER


def test_columns_follow_field_order_and_skip_empty():
    fields = [status_field("Backlog", "Doing", "Review", "Done")]
    items = [make_item("a", status="Review"), make_item("b", status="Backlog")]
    cols = group_items_by_status(items, fields)
    assert names(cols) == ["Backlog", "Review"]


def test_unknown_statuses_are_appended_alphabetically_before_done():
    fields = [status_field("Todo", "Done")]
    items = [make_item("d", status="Done"), make_item("z", status="Zeta"),
             make_item("a", status="Alpha"), make_item("t", status="Todo")]
    assert names(group_items_by_status(items, fields)) == ["Todo", "Alpha", "Zeta", DONE_COLUMN]


def test_done_variants_merge_into_one_trailing_column():
    items = [make_item("x", status="done"), make_item("y", status="Todo"), make_item("z", status="DONE")]
    cols = group_items_by_status(items, [])
    assert names(cols) == ["Todo", DONE_COLUMN]
    assert [c.id for c in cols[-1].cards] == ["x", "z"]


def test_cards_ordered_by_position_then_collection_order():
    items = [make_item("a", position=3), make_item("b", position=1), make_item("c", position=1)]
    cols = group_items_by_status(items, [])
    assert [c.id for c in cols[0].cards] == ["b", "c", "a"]


def test_card_infers_priority_from_labels():
    assert card_for(make_item("a", labels=["prio-high"])).priority == "High"
    assert card_for(make_item("b", labels=["Low effort"])).priority == "Low"
    assert card_for(make_item("c", labels=["high"], priority="Medium")).priority == "Medium"
    card = card_for(make_item("d", assignees=["alice", "bob"]))
    assert card.assignee == "alice"


def test_group_by_assignee_puts_unassigned_last_and_dedupes():
    items = [
        make_item("a", assignees=["bob", "alice", "bob"]),
        make_item("b"),
        make_item("c", assignees=["alice"]),
    ]
    buckets = group_items_by_assignee(items)
    assert names(buckets) == ["alice", "bob", UNASSIGNED]
    assert [it.id for it in buckets[0].items] == ["a", "c"]
    assert [it.id for it in buckets[1].items] == ["a"]


def test_group_by_iteration():
    items = [make_item("a", iteration_name="Sprint 2"), make_item("b"), make_item("c", iteration_name="Sprint 1")]
    assert names(group_items_by_iteration(items)) == ["Sprint 1", "Sprint 2", NO_ITERATION]


def test_group_items_dispatch():
    items = [make_item("a", status="Todo")]
    assert names(group_items(items, [], "Status")) == ["Todo"]
    assert names(group_items(items, [], "assignee")) == [UNASSIGNED]
    assert group_items(items, [], "milestone") is None
    assert group_items(items, [], "") is None


def test_build_board_filters_and_locates_focus():
    fields = [status_field("Todo", "In Progress", "Done")]
    items = [make_item("a", status="Todo", labels=["bug"]),
             make_item("b", status="In Progress", labels=["bug"]),
             make_item("c", status="Todo")]
    board = build_board(items, fields, parse_filter("label:bug"), focused_id="b", now=NOW)
    assert names(board.columns) == ["Todo", "In Progress"]
    assert (board.focused_column, board.focused_card) == (1, 0)
    assert board.focused_card_obj().id == "b"
    assert board.locate("c") is None


def test_build_board_unknown_focus_keeps_origin():
    board = build_board([make_item("a")], [], None, focused_id="missing")
    assert (board.focused_column, board.focused_card) == (0, 0)
    assert build_board([], [], None).focused_card_obj() is None


def test_roadmap_sections_follow_timeline_order():
    sprint1, sprint2, sprint3 = Timeline("it-1", "Sprint 1"), Timeline("it-2", "Sprint 2"), Timeline("it-3", "Sprint 3")
    items = [
        make_item("u"),
        make_item("a", iteration_id="it-2", iteration_name="Sprint 2"),
        make_item("o", iteration_id="it-9", iteration_start=NOW, iteration_duration_days=7),
        make_item("n", iteration_name="Sprint 1"),
        make_item("b", iteration_id="it-2", iteration_name="Sprint 2"),
    ]
    sections = roadmap_sections([sprint1, sprint2, sprint3], items)
    assert [(s.timeline.name, [it.id for it in s.items]) for s in sections] == [
        ("Sprint 1", ["n"]), ("Sprint 2", ["a", "b"]), ("Sprint 3", []), ("Unscheduled", ["u"]),
        ("Timeline it-9", ["o"]),
    ]
    assert sections[-1].timeline.end == NOW + dt.timedelta(days=7)
    assert [it.id for it in roadmap_order(sections)] == ["n", "a", "b", "u", "o"]


def test_roadmap_sections_without_unscheduled_items():
    sections = roadmap_sections([Timeline("it-1", "Sprint 1")], [])
    assert [(s.timeline.name, s.items) for s in sections] == [("Sprint 1", [])]
    assert roadmap_sections([], []) == []


def test_status_progress_spreads_options():
    table = status_progress([Field("x", "Priority"), status_field("Todo", "In Progress", "Review", "Done")])
    assert table["Todo"] == 0
    assert table["In Progress"] == 33
    assert table["in progress"] == 33
    assert table["opt-review"] == 66
    assert table["Done"] == 100
    assert status_progress([status_field("Only")]) == {"Only": 100, "only": 100, "opt-only": 100}
    assert status_progress([]) == {}


def test_progress_for_status_falls_back_to_common_names():
    table = status_progress([status_field("Todo", "In Progress", "Review", "Done")])
    assert progress_for_status("IN PROGRESS", table) == 33
    assert progress_for_status("Doing", table) == 60
    assert progress_for_status("Done") == 100
    assert progress_for_status("In Review") == 80
    assert progress_for_status("Backlog") == 20
    assert progress_for_status("Parked") == 40
    assert progress_for_status("") == 40


def test_parse_percent():
    assert parse_percent("60%") == 60
    assert parse_percent(" 20 % ") == 20
    assert parse_percent("150") == 100
    assert parse_percent("-5%") == 0
    assert parse_percent("") == -1
    assert parse_percent("soon") == -1


def test_timeline_progress_prefers_explicit_percent():
    items = [make_item("a", status="Done"), make_item("b", status="Todo")]
    assert timeline_progress(Timeline("it-1", "Sprint 1", progress="60%"), items) == 60
    assert timeline_progress(Timeline("it-1", "Sprint 1"), items) == 60
    assert timeline_progress(Timeline("it-1", "Sprint 1"), []) == 0
    table = status_progress([status_field("Todo", "Done")])
    assert timeline_progress(Timeline("it-1", "Sprint 1"), items, table) == 50
