"""Application state, the message types fed to ``update``, and follow-up tasks."""
from __future__ import annotations

import datetime as dt
import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .models import (CardFieldVisibility, Field, FilterSpec, Item, Notification, Project, SortKey,
                     ViewType)
from .projection import Board


class Mode(str, enum.Enum):
    NORMAL = "normal"
    FILTERING = "filtering"
    EDITING_TITLE = "editingTitle"
    ASSIGNING = "assigning"
    LABELS_INPUT = "labelsInput"
    MILESTONE_INPUT = "milestoneInput"
    STATUS_SELECT = "statusSelect"
    LABEL_SELECT = "labelSelect"
    MILESTONE_SELECT = "milestoneSelect"
    PRIORITY_SELECT = "prioritySelect"
    SORT = "sort"
    FIELD_TOGGLE = "fieldToggle"
    DETAIL = "detail"
    SETTINGS = "settings"


TEXT_MODES = frozenset({Mode.FILTERING, Mode.EDITING_TITLE, Mode.ASSIGNING,
                        Mode.LABELS_INPUT, Mode.MILESTONE_INPUT})
SELECT_MODES = frozenset({Mode.STATUS_SELECT, Mode.LABEL_SELECT, Mode.MILESTONE_SELECT,
                          Mode.PRIORITY_SELECT})


# -----------------------------
# Mode-local widgets
# -----------------------------
@dataclass
class TextInput:
    value: str = ""
    cursor: int = 0
    prompt: str = ""
    placeholder: str = ""

    def set(self, value: str, prompt: str = "", placeholder: str = "") -> None:
        self.value = value
        self.cursor = len(value)
        self.prompt = prompt
        self.placeholder = placeholder

    def insert(self, text: str) -> None:
        self.value = self.value[:self.cursor] + text + self.value[self.cursor:]
        self.cursor += len(text)

    def backspace(self) -> None:
        if self.cursor > 0:
            self.value = self.value[:self.cursor - 1] + self.value[self.cursor:]
            self.cursor -= 1

    def delete(self) -> None:
        if self.cursor < len(self.value):
            self.value = self.value[:self.cursor] + self.value[self.cursor + 1:]

    def move(self, delta: int) -> None:
        self.cursor = max(0, min(len(self.value), self.cursor + delta))


@dataclass
class Selector:
    field: Field
    cursor: int = 0

    @property
    def option(self):
        if 0 <= self.cursor < len(self.field.options):
            return self.field.options[self.cursor]
        return None


@dataclass
class DetailPanel:
    item: Item
    body: str = ""
    loading: bool = False
    scroll: int = 0


SETTINGS_FIELDS = ("project_id", "owner", "item_limit", "exclude_done", "suppress_hints", "iterations")
SETTINGS_LABELS = {
    "project_id": "Project ID",
    "owner": "Owner",
    "item_limit": "Item limit",
    "exclude_done": "Exclude done (y/n)",
    "suppress_hints": "Suppress hints (y/n)",
    "iterations": "Iteration filters",
}
SETTINGS_TOGGLES = ("exclude_done", "suppress_hints")


@dataclass
class SettingsForm:
    values: Dict[str, str] = field(default_factory=dict)
    focus: int = 0

    @property
    def focused_name(self) -> str:
        return SETTINGS_FIELDS[self.focus]


# -----------------------------
# Messages
# -----------------------------
@dataclass
class KeyPress:
    key: str


@dataclass
class WindowResized:
    width: int
    height: int


@dataclass
class FetchProjectResult:
    project: Project
    items: List[Item]


@dataclass
class ItemUpdated:
    index: int
    item: Item
    item_id: str = ""


@dataclass
class ErrorResult:
    error: str


@dataclass
class DismissNotification:
    id: int


@dataclass
class DetailReady:
    item: Item


@dataclass
class ActionResult:
    message: str
    level: str = "info"


@dataclass
class SettingsSaved:
    values: Dict[str, Any]
    error: str = ""


@dataclass
class ConfigPersisted:
    error: str = ""


@dataclass
class Task:
    """Background work; ``run`` executes off the loop and returns exactly one message."""
    run: Callable[[], Any]
    delay: float = 0.0
    name: str = ""


# -----------------------------
# Root state
# -----------------------------
def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass
class AppState:
    project: Project = field(default_factory=Project)
    items: List[Item] = field(default_factory=list)
    provider: Any = None
    config_path: Optional[str] = None
    view: ViewType = ViewType.BOARD
    mode: Mode = Mode.NORMAL
    filter: FilterSpec = field(default_factory=FilterSpec)
    sort: SortKey = field(default_factory=SortKey)
    group_by: str = ""
    focused_item_id: str = ""
    focused_index: int = -1
    # grouped table: bucket of the focused row
    focused_bucket: int = -1
    table_column_index: int = 0
    board: Board = field(default_factory=Board)
    card_visibility: CardFieldVisibility = field(default_factory=CardFieldVisibility)
    notifications: List[Notification] = field(default_factory=list)
    next_notification_id: int = 1
    input: TextInput = field(default_factory=TextInput)
    selector: Optional[Selector] = None
    detail: Optional[DetailPanel] = None
    settings: SettingsForm = field(default_factory=SettingsForm)
    suppress_hints: bool = False
    item_limit: int = 100
    exclude_done: bool = False
    width: int = 0
    height: int = 0
    quit: bool = False
    clock: Callable[[], dt.datetime] = _utcnow

    def focused_item(self) -> Optional[Item]:
        if 0 <= self.focused_index < len(self.items):
            return self.items[self.focused_index]
        return None

    def now(self) -> dt.datetime:
        return self.clock()
