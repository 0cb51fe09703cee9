import pytest

from conftest import NOW
from gh_project_board.projection import roadmap_sections
from gh_project_board.stub import StubProvider, sample_items


def test_sample_items_sit_in_current_and_next_sprints():
    items = sample_items(NOW)
    assert [it.id for it in items] == ["PVTI_stub123", "PVTI_stub124", "PVTI_stub126",
                                       "PVTI_stub127", "PVTI_stub128"]
    assert {it.iteration_name for it in items} == {"Sprint 1", "Sprint 2"}
    assert all(it.type == "Issue" and it.repository.startswith("example/") for it in items)


def test_fetch_returns_copies_and_respects_limit():
    provider = StubProvider()
    project, items = provider.fetch_project("", "acme", 2)
    assert project.id == "PVT_stub"
    assert project.name == "Web App v2.0"
    assert [f.name for f in project.fields][:2] == ["Status", "Priority"]
    assert len(items) == 2
    items[0].title = "changed"
    assert provider.fetch_project("", "", 0)[1][0].title == "User authentication"


def test_fetch_includes_sprint_timelines():
    provider = StubProvider(now=NOW)
    project, items = provider.fetch_project("", "acme", 0)
    assert [(t.id, t.name, t.progress) for t in project.iterations] == [
        ("iter-1", "Sprint 1", "60%"), ("iter-2", "Sprint 2", "20%")]
    assert project.iterations[0].end == project.iterations[1].start
    sections = roadmap_sections(project.iterations, items)
    assert [len(s.items) for s in sections] == [3, 2]
    assert sections[0].items[0].iteration_start == project.iterations[0].start


def test_status_and_field_updates_echo_option_names():
    provider = StubProvider()
    assert provider.update_status("PVT_stub", "", "PVTI_stub123", "status-field", "opt-done").status == "Done"
    updated = provider.update_field("PVT_stub", "", "PVTI_stub124", "priority-field", "prio-low", "Priority")
    assert updated.priority == "Low"
    _, items = provider.fetch_project("", "", 0)
    assert items[0].status == "Done"


def test_invalid_ids_are_rejected():
    provider = StubProvider()
    with pytest.raises(ValueError):
        provider.update_status("PVT_stub", "", "123", "status-field", "opt-done")
    with pytest.raises(ValueError):
        provider.update_labels("PVT_stub", "", "I_1", "Issue", "", 0, ["x"])


def test_assign_keeps_first_login_and_detail_reads_body():
    provider = StubProvider()
    assert provider.update_assignees("PVT_stub", "", "PVTI_stub123", "Issue", "", 0, ["a", "b"]).assignees == ["a"]
    assert provider.fetch_issue_detail("example/repo1", 123) == "Sample body for #123"
    assert provider.fetch_issue_detail("example/repo1", 999) == ""
