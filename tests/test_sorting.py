import datetime as dt

from conftest import NOW, make_item
from gh_project_board.models import SortKey
from gh_project_board.sorting import (SORT_FIELD_KEYS, apply_table_sort, describe_sort, priority_rank,
                                      sub_issue_ratio, toggle_sort)


def ids(items):
    return [it.id for it in items]


def test_no_sort_key_keeps_order():
    items = [make_item("b"), make_item("a")]
    assert ids(apply_table_sort(items, None)) == ["b", "a"]
    assert ids(apply_table_sort(items, SortKey())) == ["b", "a"]
    assert ids(apply_table_sort(items, SortKey("Bogus"))) == ["b", "a"]


def test_title_sort_both_directions():
    items = [make_item("1", title="beta"), make_item("2", title="alpha"), make_item("3", title="gamma")]
    assert ids(apply_table_sort(items, SortKey("Title", True))) == ["2", "1", "3"]
    assert ids(apply_table_sort(items, SortKey("Title", False))) == ["3", "1", "2"]


def test_sort_is_stable_for_ties_in_both_directions():
    items = [make_item("x", status="Todo"), make_item("y", status="Done"), make_item("z", status="Todo")]
    assert ids(apply_table_sort(items, SortKey("Status", True))) == ["y", "x", "z"]
    assert ids(apply_table_sort(items, SortKey("Status", False))) == ["x", "z", "y"]


def test_priority_sorts_by_rank_not_name():
    items = [make_item("l", priority="Low"), make_item("h", priority="High"),
             make_item("none"), make_item("m", priority="medium")]
    assert ids(apply_table_sort(items, SortKey("Priority", False))) == ["h", "m", "l", "none"]


def test_number_sort():
    items = [make_item("a", number=12), make_item("b", number=3)]
    assert ids(apply_table_sort(items, SortKey("Number"))) == ["b", "a"]


def test_missing_timestamps_come_first_in_both_directions():
    items = [
        make_item("old", updated_at=NOW - dt.timedelta(days=2)),
        make_item("none"),
        make_item("new", updated_at=NOW),
    ]
    assert ids(apply_table_sort(items, SortKey("UpdatedAt", True))) == ["none", "old", "new"]
    assert ids(apply_table_sort(items, SortKey("UpdatedAt", False))) == ["none", "new", "old"]


def test_sort_does_not_mutate_input():
    items = [make_item("b", title="b"), make_item("a", title="a")]
    apply_table_sort(items, SortKey("Title"))
    assert ids(items) == ["b", "a"]


def test_toggle_sort():
    first = toggle_sort(None, "Title")
    assert first == SortKey("Title", True)
    again = toggle_sort(first, "Title")
    assert again == SortKey("Title", False)
    assert toggle_sort(again, "Status") == SortKey("Status", True)


def test_describe_sort():
    assert describe_sort(SortKey("Title", True)) == "Sort: Title ↑"
    assert describe_sort(SortKey("Number", False)) == "Sort: Number ↓"


def test_sort_keys_cover_case_variants():
    assert SORT_FIELD_KEYS["t"] == SORT_FIELD_KEYS["T"] == "Title"
    assert SORT_FIELD_KEYS["S"] == "Status"
    assert SORT_FIELD_KEYS["u"] == "UpdatedAt"


def test_rank_helpers():
    assert priority_rank("HIGH") == 3
    assert priority_rank(None) == 0
    assert sub_issue_ratio("1/4") == 0.25
    assert sub_issue_ratio("x/4") == 0.0
    assert sub_issue_ratio("3/0") == 0.0
    assert sub_issue_ratio("") == 0.0


def test_sub_issue_progress_sorts_by_ratio():
    items = [make_item("half", sub_issue_progress="1/2"), make_item("bad", sub_issue_progress="n/a"),
             make_item("most", sub_issue_progress="3/4")]
    assert ids(apply_table_sort(items, SortKey("SubIssueProgress"))) == ["bad", "half", "most"]
