import datetime as dt

import pytest

from conftest import NOW, make_item
from gh_project_board.filters import (apply_filter, matches_iteration_filters, normalize_iteration_filters,
                                      parse_filter, resolve_field_values)
from gh_project_board.models import Field, FilterSpec


def test_parse_empty_query_is_empty_spec():
    spec = parse_filter("   ")
    assert spec.is_empty()
    assert spec.raw == ""
    assert spec.group_by == ""


def test_parse_mixed_query():
    spec = parse_filter('label:bug,urgent assignee:alice status:"In Progress" fix login')
    assert spec.labels == ["bug", "urgent"]
    assert spec.assignees == ["alice"]
    assert spec.statuses == ["In Progress"]
    assert spec.query == "fix login"
    assert spec.raw == 'label:bug,urgent assignee:alice status:"In Progress" fix login'


def test_parse_relative_iteration_keywords():
    spec = parse_filter("@current next previous")
    assert spec.iterations == ["@current", "next", "previous"]
    assert spec.query == ""


def test_parse_group_directive_with_label():
    spec = parse_filter("group:iteration label:bug")
    assert spec.group_by == "iteration"
    assert spec.labels == ["bug"]
    assert spec.query == ""


def test_parse_unreserved_key_is_field_filter():
    spec = parse_filter("Sprint:Q1 labels:bug")
    assert spec.field_filters == {"Sprint": ["Q1"]}
    assert spec.labels == ["bug"]


def test_parse_quoted_field_name_and_value():
    spec = parse_filter('"Iteration Name":"Q1 Sprint"')
    assert spec.field_filters == {"Iteration Name": ["Q1 Sprint"]}
    assert spec.query == ""


def test_parse_semicolon_separated_values():
    spec = parse_filter("labels:a;b assignees:x,y")
    assert spec.labels == ["a", "b"]
    assert spec.assignees == ["x", "y"]


def test_parse_iterations_and_relative_keywords():
    spec = parse_filter("iteration:@current,@next @previous next")
    assert spec.iterations == ["@current", "@next", "@previous", "next"]
    assert spec.query == ""


def test_parse_group_directive_does_not_make_spec_non_empty():
    spec = parse_filter("group:Assignee")
    assert spec.group_by == "assignee"
    assert spec.is_empty()


def test_parse_arbitrary_field_filter():
    spec = parse_filter("Priority:High,Low")
    assert spec.field_filters == {"Priority": ["High", "Low"]}


def test_parse_key_without_value_is_free_text():
    spec = parse_filter("label:")
    assert spec.labels == []
    assert spec.query == "label:"


def test_empty_filter_is_identity():
    items = [make_item("a"), make_item("b"), make_item("c")]
    out = apply_filter(items, [], FilterSpec(), NOW)
    assert [it.id for it in out] == ["a", "b", "c"]
    assert out is not items
    assert [it.id for it in apply_filter(items, [], None, NOW)] == ["a", "b", "c"]


def test_free_text_is_case_insensitive_title_substring():
    items = [make_item("a", title="Fix Login bug"), make_item("b", title="Add logout")]
    out = apply_filter(items, [], parse_filter("login"), NOW)
    assert [it.id for it in out] == ["a"]


def test_labels_match_exactly_and_assignees_ignore_case():
    items = [
        make_item("a", labels=["Bug"], assignees=["Alice"]),
        make_item("b", labels=["bug"], assignees=["bob"]),
    ]
    assert [it.id for it in apply_filter(items, [], parse_filter("label:bug"), NOW)] == ["b"]
    assert [it.id for it in apply_filter(items, [], parse_filter("assignee:alice"), NOW)] == ["a"]


def test_status_filter_matches_any_listed_status():
    items = [make_item("a", status="Todo"), make_item("b", status="Done"), make_item("c", status="In Progress")]
    out = apply_filter(items, [], parse_filter('status:Todo,Done'), NOW)
    assert [it.id for it in out] == ["a", "b"]


def test_all_predicates_must_hold():
    items = [
        make_item("a", title="login", labels=["bug"], status="Todo"),
        make_item("b", title="login", labels=["bug"], status="Done"),
    ]
    out = apply_filter(items, [], parse_filter("login label:bug status:Todo"), NOW)
    assert [it.id for it in out] == ["a"]


def test_field_filter_uses_field_values_case_insensitively():
    fields = [Field("f1", "Team")]
    items = [
        make_item("a", field_values={"Team": ["Core"]}),
        make_item("b", field_values={"Team": ["Web"]}),
        make_item("c"),
    ]
    out = apply_filter(items, fields, parse_filter("team:core"), NOW)
    assert [it.id for it in out] == ["a"]


def test_field_filter_on_unknown_field_matches_nothing():
    items = [make_item("a"), make_item("b")]
    assert apply_filter(items, [], parse_filter("Estimate:3"), NOW) == []


def test_resolve_builtin_field_values():
    item = make_item("a", priority="High", labels=["x", "y"])
    assert resolve_field_values(item, "priority") == ["High"]
    assert resolve_field_values(item, "Labels") == ["x", "y"]
    assert resolve_field_values(item, "milestone") == []
    assert resolve_field_values(item, "Nope") is None


@pytest.fixture
def sprint_items():
    start = NOW - dt.timedelta(days=3)
    return {
        "current": make_item("cur", iteration_id="it-1", iteration_name="Sprint 1",
                             iteration_start=start, iteration_duration_days=14),
        "next": make_item("nxt", iteration_id="it-2", iteration_name="Sprint 2",
                          iteration_start=NOW + dt.timedelta(days=11), iteration_duration_days=14),
        "previous": make_item("prv", iteration_id="it-0", iteration_name="Sprint 0",
                              iteration_start=start - dt.timedelta(days=14), iteration_duration_days=14),
        "none": make_item("none"),
    }


def test_relative_iteration_filters(sprint_items):
    assert matches_iteration_filters(sprint_items["current"], ["@current"], NOW)
    assert not matches_iteration_filters(sprint_items["current"], ["@next", "@previous"], NOW)
    assert matches_iteration_filters(sprint_items["next"], ["@next"], NOW)
    assert matches_iteration_filters(sprint_items["previous"], ["previous"], NOW)


def test_iteration_filter_by_name_or_id(sprint_items):
    assert matches_iteration_filters(sprint_items["current"], ["sprint 1"], NOW)
    assert matches_iteration_filters(sprint_items["current"], ["iteration:IT-1"], NOW)
    assert not matches_iteration_filters(sprint_items["next"], ["Sprint 1"], NOW)


def test_items_without_iteration_never_match_iteration_filters(sprint_items):
    assert matches_iteration_filters(sprint_items["none"], [], NOW)
    assert not matches_iteration_filters(sprint_items["none"], ["@current"], NOW)
    out = apply_filter(list(sprint_items.values()), [], FilterSpec(iterations=["@current"]), NOW)
    assert [it.id for it in out] == ["cur"]


def test_normalize_iteration_filters():
    values = ["iteration:current", "@Current", "next", " Sprint 3 ", "Sprint 3", "", "iteration:"]
    assert normalize_iteration_filters(values) == ["@current", "@next", "Sprint 3"]
