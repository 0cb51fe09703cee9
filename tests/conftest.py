import datetime as dt
import os
import sys

import pytest

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from gh_project_board.models import Field, Item, Option, Project  # noqa: E402
from gh_project_board.state import AppState, KeyPress  # noqa: E402
from gh_project_board.update import rebuild_board, set_focus, update  # noqa: E402

NOW = dt.datetime(2024, 5, 15, 12, 0, tzinfo=dt.timezone.utc)


def status_field(*names):
    return Field("status-field", "Status", [Option(f"opt-{n.lower().replace(' ', '-')}", n) for n in names])


class FakeProvider:
    """Records every call; mutation results come from ``results`` keyed by method name."""

    def __init__(self, project=None, items=None):
        self.project = project or Project(id="PVT_test", owner="octo", name="Test", node_id="PVT_test")
        self.items = list(items or [])
        self.calls = []
        self.results = {}
        self.detail = "remote body"

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        result = self.results.get(name)
        if isinstance(result, Exception):
            raise result
        return result

    def fetch_project(self, project_id, owner, limit):
        self._record("fetch_project", project_id, owner, limit)
        return self.project, list(self.items)

    def update_status(self, project_id, owner, item_id, field_id, option_id):
        return self._record("update_status", project_id, owner, item_id, field_id, option_id) or \
            Item(id=item_id, status="Unknown")

    def update_field(self, project_id, owner, item_id, field_id, option_id, field_name):
        return self._record("update_field", project_id, owner, item_id, field_id, option_id, field_name) or \
            Item(id=item_id)

    def update_labels(self, project_id, owner, item_id, item_type, repo, number, labels):
        return self._record("update_labels", project_id, owner, item_id, item_type, repo, number, labels) or \
            Item(id=item_id, labels=list(labels))

    def update_milestone(self, project_id, owner, item_id, milestone):
        return self._record("update_milestone", project_id, owner, item_id, milestone) or \
            Item(id=item_id, milestone=milestone)

    def update_assignees(self, project_id, owner, item_id, item_type, repo, number, logins):
        return self._record("update_assignees", project_id, owner, item_id, item_type, repo, number, logins) or \
            Item(id=item_id, assignees=list(logins))

    def update_item(self, project_id, owner, item, title, description):
        return self._record("update_item", project_id, owner, item.id, title, description) or \
            Item(id=item.id, title=title, description=description)

    def fetch_issue_detail(self, repository, number):
        self._record("fetch_issue_detail", repository, number)
        return self.detail


def make_item(item_id, title="", status="Todo", position=0, **kwargs):
    kwargs.setdefault("type", "Issue")
    return Item(id=item_id, title=title or item_id, status=status, position=position, **kwargs)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def make_state(provider, tmp_path):
    """Build a ready-to-use AppState with a fixed clock, focused on ``focus`` (default: first item)."""

    def _make(items, fields=None, focus=None, **kwargs):
        project = Project(id="PVT_test", owner="octo", name="Test", node_id="PVT_test",
                          fields=list(fields) if fields is not None else [status_field("Todo", "In Progress", "Done")])
        state = AppState(project=project, items=list(items), provider=provider,
                         config_path=str(tmp_path / "projects-tui.yaml"), clock=lambda: NOW, **kwargs)
        if state.items:
            set_focus(state, focus or state.items[0].id)
        rebuild_board(state)
        return state

    return _make


@pytest.fixture
def press():
    """Feed key names through ``update`` and collect the tasks they return."""

    def _press(state, *keys):
        tasks = []
        for key in keys:
            state, new = update(state, KeyPress(key))
            tasks.extend(new)
        return tasks

    return _press


@pytest.fixture
def drain():
    """Run immediate tasks synchronously and feed their messages back, like the runtime does."""

    def _drain(state, tasks):
        pending = [t for t in tasks if t.delay == 0]
        while pending:
            task = pending.pop(0)
            state, new = update(state, task.run())
            pending.extend(t for t in new if t.delay == 0)
        return state

    return _drain
