from __future__ import annotations

import datetime as dt
import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional


# -----------------------------
# Project schema
# -----------------------------
@dataclass
class Option:
    id: str
    name: str


@dataclass
class Field:
    id: str
    name: str
    options: List[Option] = field(default_factory=list)

    def option_by_name(self, name: str) -> Optional[Option]:
        for opt in self.options:
            if opt.name == name:
                return opt
        return None


@dataclass
class Timeline:
    """An iteration or timebox shown as one roadmap section."""
    id: str
    name: str
    start: Optional[dt.datetime] = None
    end: Optional[dt.datetime] = None
    progress: str = ""


@dataclass
class Project:
    id: str = ""
    owner: str = ""
    name: str = ""
    node_id: str = ""
    fields: List[Field] = field(default_factory=list)
    iterations: List[Timeline] = field(default_factory=list)

    def field_named(self, name: str) -> Optional[Field]:
        """Exact-name lookup; "Status" and "status" are different fields."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def mutation_id(self) -> str:
        if (self.node_id or "").strip():
            return self.node_id
        return self.id


# -----------------------------
# Items
# -----------------------------
ASSIGNABLE_TYPES = ("Issue", "PullRequest")


@dataclass
class Item:
    id: str
    title: str = ""
    description: str = ""
    status: str = ""
    type: str = ""
    content_id: str = ""
    url: str = ""
    repository: str = ""
    number: int = 0
    assignees: List[str] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)
    milestone: str = ""
    priority: str = ""
    iteration_id: str = ""
    iteration_name: str = ""
    iteration_start: Optional[dt.datetime] = None
    iteration_duration_days: int = 0
    field_values: Dict[str, List[str]] = field(default_factory=dict)
    position: int = 0
    sub_issue_progress: str = ""
    parent_issue: str = ""
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    @property
    def has_iteration(self) -> bool:
        return bool(self.iteration_id or self.iteration_name or self.iteration_start)


@dataclass
class Card:
    id: str
    title: str
    assignee: str = ""
    labels: List[str] = field(default_factory=list)
    status: str = ""
    priority: str = ""
    milestone: str = ""
    repository: str = ""
    sub_issue_progress: str = ""
    parent_issue: str = ""


@dataclass
class Column:
    name: str
    cards: List[Card] = field(default_factory=list)


@dataclass
class Bucket:
    name: str
    items: List[Item] = field(default_factory=list)


@dataclass
class RoadmapSection:
    timeline: Timeline
    items: List[Item] = field(default_factory=list)


# -----------------------------
# View settings
# -----------------------------
@dataclass
class FilterSpec:
    query: str = ""
    raw: str = ""
    labels: List[str] = field(default_factory=list)
    assignees: List[str] = field(default_factory=list)
    statuses: List[str] = field(default_factory=list)
    iterations: List[str] = field(default_factory=list)
    field_filters: Dict[str, List[str]] = field(default_factory=dict)
    group_by: str = ""

    def is_empty(self) -> bool:
        return not (self.query or self.labels or self.assignees or self.statuses
                    or self.iterations or self.field_filters)


@dataclass
class SortKey:
    field: str = ""
    asc: bool = True


@dataclass
class CardFieldVisibility:
    show_milestone: bool = True
    show_repository: bool = True
    show_labels: bool = True
    show_sub_issue_progress: bool = False
    show_parent_issue: bool = False


class ViewType(str, enum.Enum):
    BOARD = "board"
    TABLE = "table"
    ROADMAP = "roadmap"
    SETTINGS = "settings"


class TableColumn(str, enum.Enum):
    TITLE = "Title"
    STATUS = "Status"
    REPOSITORY = "Repository"
    LABELS = "Labels"
    MILESTONE = "Milestone"
    PRIORITY = "Priority"
    SUB_ISSUE = "SubIssue"
    PARENT = "Parent"
    ASSIGNEES = "Assignees"


# -----------------------------
# Notifications
# -----------------------------
INFO = "info"
WARN = "warn"
ERROR = "error"


@dataclass
class Notification:
    id: int
    message: str
    level: str = INFO
    at: Optional[dt.datetime] = None
    dismiss_after: float = 3.0
    dismissed: bool = False
