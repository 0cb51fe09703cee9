"""Offline provider serving a fixed sample project (``MOCK_FETCH=1``)."""
from __future__ import annotations

import copy
import datetime as dt
import logging
from typing import Dict, List, Optional, Tuple

from .models import Field, Item, Option, Project, Timeline
from .validate import validate_item_id, validate_status_update_ids

log = logging.getLogger('gh_project_board')

STATUS_OPTIONS = [
    Option("opt-backlog", "Backlog"),
    Option("opt-in-progress", "In Progress"),
    Option("opt-review", "Review"),
    Option("opt-done", "Done"),
]
PRIORITY_OPTIONS = [Option("prio-high", "High"), Option("prio-medium", "Medium"), Option("prio-low", "Low")]
LABEL_OPTIONS = [Option("label-high", "high"), Option("label-medium", "medium"), Option("label-low", "low")]
MILESTONE_OPTIONS = [Option("ms-1", "v2.0"), Option("ms-2", "v2.1")]
SPRINT_DAYS = 14


def sample_fields() -> List[Field]:
    return [
        Field("status-field", "Status", list(STATUS_OPTIONS)),
        Field("priority-field", "Priority", list(PRIORITY_OPTIONS)),
        Field("labels-field", "Labels", list(LABEL_OPTIONS)),
        Field("milestone-field", "Milestone", list(MILESTONE_OPTIONS)),
        Field("iteration-field", "Iteration", [Option("iter-1", "Sprint 1"), Option("iter-2", "Sprint 2")]),
    ]


def _sprint_start(now: dt.datetime, sprint: int) -> dt.datetime:
    today = dt.datetime(now.year, now.month, now.day, tzinfo=dt.timezone.utc)
    return today - dt.timedelta(days=3) + dt.timedelta(days=SPRINT_DAYS * (sprint - 1))


def sample_timelines(now: Optional[dt.datetime] = None) -> List[Timeline]:
    now = now or dt.datetime.now(dt.timezone.utc)
    out: List[Timeline] = []
    for sprint, progress in ((1, "60%"), (2, "20%")):
        start = _sprint_start(now, sprint)
        out.append(Timeline(id=f"iter-{sprint}", name=f"Sprint {sprint}", start=start,
                            end=start + dt.timedelta(days=SPRINT_DAYS), progress=progress))
    return out


def sample_items(now: Optional[dt.datetime] = None) -> List[Item]:
    """Generate synthetic items for offline demo & testing."""
    now = now or dt.datetime.now(dt.timezone.utc)
    rows = [
        (123, "User authentication", "Backlog", "repo1", "tanaka", "high", "High"),
        (124, "API integration", "Backlog", "repo1", "sato", "medium", "Medium"),
        (126, "Terminal UI design", "In Progress", "repo2", "tanaka", "high", "High"),
        (127, "Key binding settings", "In Progress", "repo2", "yamada", "low", "Low"),
        (128, "Add test coverage", "Review", "repo1", "sato", "medium", "Medium"),
    ]
    items: List[Item] = []
    for pos, (number, title, status, repo, who, label, prio) in enumerate(rows):
        sprint = 1 if pos < 3 else 2
        items.append(Item(
            id=f"PVTI_stub{number}",
            title=title,
            description=f"Sample body for #{number}",
            status=status,
            type="Issue",
            content_id=f"I_stub{number}",
            url=f"https://github.com/example/{repo}/issues/{number}",
            repository=f"example/{repo}",
            number=number,
            assignees=[who],
            labels=[label],
            milestone="v2.0",
            priority=prio,
            iteration_id=f"iter-{sprint}",
            iteration_name=f"Sprint {sprint}",
            iteration_start=_sprint_start(now, sprint),
            iteration_duration_days=SPRINT_DAYS,
            field_values={"Status": [status], "Priority": [prio], "Iteration": [f"Sprint {sprint}"]},
            position=pos + 1,
            created_at=now - dt.timedelta(days=10 - pos),
            updated_at=now - dt.timedelta(hours=pos),
        ))
    return items


class StubProvider:
    """In-memory provider; mutations succeed and echo the change back."""

    def __init__(self, now: Optional[dt.datetime] = None) -> None:
        now = now or dt.datetime.now(dt.timezone.utc)
        self.fields = sample_fields()
        self.timelines = sample_timelines(now)
        self.items: Dict[str, Item] = {it.id: it for it in sample_items(now)}

    def fetch_project(self, project_id: str, owner: str, limit: int) -> Tuple[Project, List[Item]]:
        project = Project(id=project_id or "PVT_stub", owner=owner, name="Web App v2.0",
                          node_id="PVT_stub", fields=copy.deepcopy(self.fields),
                          iterations=copy.deepcopy(self.timelines))
        items = [copy.deepcopy(it) for it in self.items.values()]
        if limit > 0:
            items = items[:limit]
        log.info("stub fetch: %d items", len(items))
        return project, items

    def _option_name(self, field_id: str, option_id: str) -> str:
        for f in self.fields:
            if f.id == field_id:
                for opt in f.options:
                    if opt.id == option_id:
                        return opt.name
        return option_id

    def update_status(self, project_id: str, owner: str, item_id: str, field_id: str,
                      option_id: str) -> Item:
        validate_status_update_ids(project_id, item_id, field_id, option_id)
        status = self._option_name(field_id, option_id)
        if item_id in self.items:
            self.items[item_id].status = status
        return Item(id=item_id, status=status)

    def update_field(self, project_id: str, owner: str, item_id: str, field_id: str,
                     option_id: str, field_name: str) -> Item:
        validate_status_update_ids(project_id, item_id, field_id, option_id)
        name = self._option_name(field_id, option_id)
        current = self.items.get(item_id)
        if current is None:
            return Item(id=item_id)
        if field_name == "Priority":
            current.priority = name
        elif field_name == "Labels":
            current.labels = [name]
        elif field_name == "Milestone":
            current.milestone = name
        current.field_values[field_name] = [name]
        return copy.deepcopy(current)

    def update_labels(self, project_id: str, owner: str, item_id: str, item_type: str,
                      repo: str, number: int, labels: List[str]) -> Item:
        validate_item_id(item_id)
        if item_id in self.items:
            self.items[item_id].labels = list(labels)
        return Item(id=item_id, labels=list(labels))

    def update_milestone(self, project_id: str, owner: str, item_id: str, milestone: str) -> Item:
        validate_item_id(item_id)
        current = self.items.get(item_id)
        if current is None:
            return Item(id=item_id)
        current.milestone = milestone
        return copy.deepcopy(current)

    def update_assignees(self, project_id: str, owner: str, item_id: str, item_type: str,
                         repo: str, number: int, logins: List[str]) -> Item:
        first = logins[0] if logins else ""
        if item_id in self.items:
            self.items[item_id].assignees = [first] if first else []
        return Item(id=item_id, assignees=[first] if first else [])

    def update_item(self, project_id: str, owner: str, item: Item, title: str, description: str) -> Item:
        updated = copy.deepcopy(item)
        if title:
            updated.title = title
        if description:
            updated.description = description
        if item.id in self.items:
            self.items[item.id].title = updated.title
            self.items[item.id].description = updated.description
        return updated

    def fetch_issue_detail(self, repository: str, number: int) -> str:
        for it in self.items.values():
            if it.repository == repository and it.number == number:
                return it.description
        return ""

    def discover_projects(self, owner: str) -> List[Dict]:
        return [{"id": "PVT_stub", "number": 1, "title": "Web App v2.0", "closed": False}]
