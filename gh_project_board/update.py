"""Mode state machine.

``update(state, msg)`` handles one message to completion and returns the state together
with the background tasks it wants started.  Transitions never perform IO themselves;
remote calls, config writes and shell actions happen inside the returned tasks.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Callable, Dict, List, Optional, Tuple

from . import actions, config, notifications
from .filters import apply_filter, normalize_iteration_filters, parse_filter
from .focus import (board_edge, board_focused_id, board_move_card, board_move_column, bucket_item_ids,
                    clamp_table_column, ensure_visible_focus, flat_edge, grouped_edge, index_of,
                    move_flat, move_grouped, move_table_column, roadmap_order, table_visible_columns,
                    table_visible_items)
from .models import ASSIGNABLE_TYPES, ERROR, WARN, FilterSpec, Item, TableColumn, ViewType
from .projection import build_board, group_items, roadmap_sections
from .reconcile import reconcile
from .sorting import SORT_FIELD_KEYS, describe_sort, toggle_sort
from .state import (SELECT_MODES, SETTINGS_FIELDS, SETTINGS_TOGGLES, TEXT_MODES, ActionResult, AppState,
                    ConfigPersisted, DetailPanel, DetailReady, DismissNotification, ErrorResult,
                    FetchProjectResult, ItemUpdated, KeyPress, Mode, Selector, SettingsForm, SettingsSaved,
                    Task, WindowResized)

log = logging.getLogger('gh_project_board')

Result = Tuple[AppState, List[Task]]

ITEM_ID_PREFIX = "PVTI_"
GROUP_CYCLE = {"": "status", "status": "assignee", "assignee": "iteration"}

SELECT_FIELDS = {
    Mode.STATUS_SELECT: "Status",
    Mode.LABEL_SELECT: "Labels",
    Mode.MILESTONE_SELECT: "Milestone",
    Mode.PRIORITY_SELECT: "Priority",
}
SELECT_LABELS = {
    Mode.STATUS_SELECT: "Status",
    Mode.LABEL_SELECT: "Label",
    Mode.MILESTONE_SELECT: "Milestone",
    Mode.PRIORITY_SELECT: "Priority",
}

FIELD_TOGGLE_KEYS = {
    "m": "show_milestone",
    "r": "show_repository",
    "l": "show_labels",
    "s": "show_sub_issue_progress",
    "p": "show_parent_issue",
}

FIELD_TOGGLE_HINT = ("Field toggle mode: m=milestone r=repository l=labels s=sub-issue p=parent "
                     "(toggle on/off, esc to cancel)")
DETAIL_HINT = "Detail mode: j/k to scroll, esc/q to close"


# -----------------------------
# Focus helpers
# -----------------------------
def set_focus(state: AppState, item_id: str, bucket: int = -1) -> None:
    state.focused_item_id = item_id
    state.focused_index = index_of(state.items, item_id)
    state.focused_bucket = bucket


def clear_focus(state: AppState) -> None:
    state.focused_item_id = ""
    state.focused_index = -1
    state.focused_bucket = -1


def rebuild_board(state: AppState) -> None:
    state.board = build_board(state.items, state.project.fields, state.filter,
                              state.focused_item_id, state.now())
    if state.view == ViewType.BOARD and state.board.locate(state.focused_item_id) is None:
        focused = board_focused_id(state.board)
        if focused:
            set_focus(state, focused)


def sync_focused_item(state: AppState) -> None:
    focused = board_focused_id(state.board)
    if focused:
        set_focus(state, focused)


def _table_items(state: AppState) -> List[Item]:
    return table_visible_items(state.items, state.project.fields, state.filter, state.sort, state.now())


def _table_buckets(state: AppState):
    if not state.group_by:
        return None
    return group_items(_table_items(state), state.project.fields, state.group_by)


def roadmap_items(state: AppState) -> List[Item]:
    visible = apply_filter(state.items, state.project.fields, state.filter, state.now())
    return roadmap_order(roadmap_sections(state.project.iterations, visible))


def ensure_table_focus(state: AppState) -> None:
    buckets = _table_buckets(state)
    if buckets is not None:
        ids = bucket_item_ids(buckets)
    else:
        ids = [it.id for it in _table_items(state)]
    target = ensure_visible_focus(ids, state.focused_item_id)
    if target:
        keep = state.focused_bucket if target == state.focused_item_id else -1
        set_focus(state, target, keep)
    elif not state.items:
        clear_focus(state)


def ensure_roadmap_focus(state: AppState) -> None:
    target = ensure_visible_focus([it.id for it in roadmap_items(state)], state.focused_item_id)
    if target:
        set_focus(state, target)


def ensure_view_focus(state: AppState) -> None:
    if state.view == ViewType.TABLE:
        ensure_table_focus(state)
    elif state.view == ViewType.ROADMAP:
        ensure_roadmap_focus(state)


def sync_table_column_index(state: AppState) -> None:
    if state.view == ViewType.TABLE:
        state.table_column_index = clamp_table_column(state.table_column_index, state.card_visibility,
                                                      state.project.fields)


def move_focus(state: AppState, delta: int) -> None:
    if not state.items:
        return
    if state.view == ViewType.BOARD:
        board_move_card(state.board, delta)
        sync_focused_item(state)
        return
    if state.view == ViewType.TABLE:
        buckets = _table_buckets(state)
        if buckets is not None:
            target, bucket = move_grouped(buckets, state.focused_item_id, delta, state.focused_bucket)
            if target:
                set_focus(state, target, bucket)
            return
        visible = _table_items(state)
    else:
        visible = roadmap_items(state)
    target = move_flat(visible, state.focused_item_id, delta)
    if target:
        set_focus(state, target)
    else:
        clear_focus(state)


def move_to_edge(state: AppState, top: bool) -> None:
    if state.view == ViewType.BOARD:
        board_edge(state.board, top)
        sync_focused_item(state)
        return
    bucket = -1
    if state.view == ViewType.TABLE:
        buckets = _table_buckets(state)
        if buckets is not None:
            target, bucket = grouped_edge(buckets, top)
        else:
            target = flat_edge(_table_items(state), top)
    elif state.view == ViewType.ROADMAP:
        target = flat_edge(roadmap_items(state), top)
    else:
        return
    if target:
        set_focus(state, target, bucket)
    else:
        clear_focus(state)


def _move_column(state: AppState, delta: int) -> None:
    if state.view == ViewType.TABLE:
        state.table_column_index = move_table_column(state.table_column_index, delta, state.card_visibility,
                                                     state.project.fields)
        return
    if state.view == ViewType.BOARD:
        board_move_column(state.board, delta)
        sync_focused_item(state)


# -----------------------------
# Views, filter, grouping
# -----------------------------
def switch_view(state: AppState, view: ViewType) -> Result:
    state.view = view
    if view == ViewType.SETTINGS:
        state.mode = Mode.SETTINGS
        state.settings = settings_form_from(state)
    elif state.mode == Mode.SETTINGS:
        state.mode = Mode.NORMAL
    if view == ViewType.BOARD:
        rebuild_board(state)
    elif state.items:
        ensure_view_focus(state)
    sync_table_column_index(state)
    if not state.items:
        clear_focus(state)
    return state, []


def enter_filter_mode(state: AppState) -> Result:
    state.mode = Mode.FILTERING
    state.input.set(state.filter.raw, prompt="FILTER MODE ", placeholder="Enter filters...")
    return state, []


def apply_filter_query(state: AppState, query: str) -> Result:
    spec = parse_filter(query)
    state.filter = spec
    if spec.group_by:
        state.group_by = spec.group_by
    rebuild_board(state)
    ensure_view_focus(state)
    state.mode = Mode.NORMAL
    state.input.prompt = ""
    return state, []


def clear_filter(state: AppState) -> Result:
    state.filter = FilterSpec()
    state.group_by = ""
    rebuild_board(state)
    ensure_view_focus(state)
    if state.mode == Mode.FILTERING:
        state.mode = Mode.NORMAL
    state.input.set("")
    return state, []


def toggle_group_by(state: AppState) -> Result:
    current = state.group_by.strip().lower()
    state.group_by = GROUP_CYCLE.get(current, "")
    state.focused_bucket = -1
    ensure_table_focus(state)
    return state, notifications.info(state, f"Group: {state.group_by or 'none'}")


# -----------------------------
# Sort and field toggle
# -----------------------------
def sort_mode_key(state: AppState, key: str) -> Result:
    if key in ("j", "down"):
        move_focus(state, 1)
        return state, []
    if key in ("k", "up"):
        move_focus(state, -1)
        return state, []
    if key in ("h", "left"):
        _move_column(state, -1)
        return state, []
    if key in ("l", "right"):
        _move_column(state, 1)
        return state, []
    if key == "esc":
        state.mode = Mode.NORMAL
        return state, []
    field_name = SORT_FIELD_KEYS.get(key)
    if field_name is None:
        return state, []
    state.sort = toggle_sort(state.sort, field_name)
    visible = _table_items(state)
    if visible:
        set_focus(state, visible[0].id)
    state.mode = Mode.NORMAL
    return state, notifications.info(state, describe_sort(state.sort))


def enter_field_toggle_mode(state: AppState) -> Result:
    state.mode = Mode.FIELD_TOGGLE
    return state, notifications.info(state, FIELD_TOGGLE_HINT, notifications.HINT_TTL)


def _persist_visibility_task(state: AppState) -> Task:
    path = state.config_path or config.resolve_path()
    vis = dataclasses.replace(state.card_visibility)

    def run() -> ConfigPersisted:
        try:
            config.save_card_visibility(path, vis)
        except (OSError, ValueError) as e:
            return ConfigPersisted(error=str(e))
        return ConfigPersisted()

    return Task(run=run, name="save-card-fields")


def field_toggle(state: AppState, key: str) -> Result:
    if key == "esc":
        state.mode = Mode.NORMAL
        return state, []
    attr = FIELD_TOGGLE_KEYS.get(key.lower()) if len(key) == 1 else None
    if attr is None:
        return state, []
    setattr(state.card_visibility, attr, not getattr(state.card_visibility, attr))
    state.mode = Mode.NORMAL
    rebuild_board(state)
    sync_table_column_index(state)
    tasks = [_persist_visibility_task(state)]
    tasks += notifications.info(state, "Card fields preference saved")
    return state, tasks


# -----------------------------
# Text-capture modes
# -----------------------------
def _focused(state: AppState) -> Optional[Item]:
    if state.view == ViewType.BOARD:
        sync_focused_item(state)
    return state.focused_item()


def enter_edit_mode(state: AppState) -> Result:
    item = _focused(state)
    if item is None:
        return state, []
    state.input.set(item.title)
    state.mode = Mode.EDITING_TITLE
    return state, []


def enter_assign_mode(state: AppState) -> Result:
    item = _focused(state)
    if item is None:
        return state, []
    state.input.set(item.assignees[0] if item.assignees else "", placeholder="Enter assignee...")
    state.mode = Mode.ASSIGNING
    return state, []


def enter_labels_input_mode(state: AppState) -> Result:
    item = _focused(state)
    if item is None:
        return state, []
    state.input.set(",".join(item.labels), placeholder="Enter labels (comma separated)...")
    state.mode = Mode.LABELS_INPUT
    return state, []


def enter_milestone_input_mode(state: AppState) -> Result:
    item = _focused(state)
    if item is None:
        return state, []
    state.input.set(item.milestone, placeholder="Enter milestone title...")
    state.mode = Mode.MILESTONE_INPUT
    return state, []


def _mutation(state: AppState, idx: int, item: Item, call: Callable[[], Item], name: str,
              fallback_status: str = "") -> Task:
    def run() -> ItemUpdated:
        updated = call()
        if fallback_status and updated.status.strip().lower() == "unknown":
            updated.status = fallback_status
        return ItemUpdated(index=idx, item=updated, item_id=item.id)

    return Task(run=run, name=name)


def _invalid_item_id(state: AppState, item: Item) -> List[Task]:
    state.mode = Mode.NORMAL
    return notifications.error(state, f"Invalid item ID format: {item.id}. Expected project item node ID.")


def save_edit(state: AppState, title: str) -> Result:
    item = state.focused_item()
    state.mode = Mode.NORMAL
    if item is None:
        return state, []
    provider, project = state.provider, state.project
    task = _mutation(state, state.focused_index, item,
                     lambda: provider.update_item(project.mutation_id, project.owner, item, title, item.description),
                     "update-item")
    return state, [task]


def save_assign(state: AppState, assignee: str) -> Result:
    item = state.focused_item()
    if item is None:
        state.mode = Mode.NORMAL
        return state, []
    if item.type not in ASSIGNABLE_TYPES:
        state.mode = Mode.NORMAL
        return state, notifications.error(
            state, f"Error: cannot assign to item of type: {item.type} "
                   "(only Issues and PullRequests can be assigned)")
    logins = [assignee.strip()] if assignee.strip() else []
    provider, project = state.provider, state.project
    task = _mutation(state, state.focused_index, item,
                     lambda: provider.update_assignees(project.mutation_id, project.owner, item.id, item.type,
                                                       item.repository, item.number, logins),
                     "update-assignees")
    state.mode = Mode.NORMAL
    return state, [task]


def save_labels_input(state: AppState, text: str) -> Result:
    item = state.focused_item()
    if item is None:
        state.mode = Mode.NORMAL
        return state, []
    if not item.id.startswith(ITEM_ID_PREFIX):
        return state, _invalid_item_id(state, item)
    labels = [p.strip() for p in text.split(",") if p.strip()]
    provider, project = state.provider, state.project
    task = _mutation(state, state.focused_index, item,
                     lambda: provider.update_labels(project.mutation_id, project.owner, item.id, item.type,
                                                    item.repository, item.number, labels),
                     "update-labels")
    state.mode = Mode.NORMAL
    return state, [task]


def save_milestone_input(state: AppState, milestone: str) -> Result:
    item = state.focused_item()
    if item is None:
        state.mode = Mode.NORMAL
        return state, []
    if not item.id.startswith(ITEM_ID_PREFIX):
        return state, _invalid_item_id(state, item)
    provider, project = state.provider, state.project
    task = _mutation(state, state.focused_index, item,
                     lambda: provider.update_milestone(project.mutation_id, project.owner, item.id,
                                                       milestone.strip()),
                     "update-milestone")
    state.mode = Mode.NORMAL
    return state, [task]


TEXT_COMMITS: Dict[Mode, Callable[[AppState, str], Result]] = {
    Mode.FILTERING: apply_filter_query,
    Mode.EDITING_TITLE: save_edit,
    Mode.ASSIGNING: save_assign,
    Mode.LABELS_INPUT: save_labels_input,
    Mode.MILESTONE_INPUT: save_milestone_input,
}


def text_key(state: AppState, key: str) -> Result:
    buf = state.input
    if key == "enter":
        return TEXT_COMMITS[state.mode](state, buf.value)
    if key == "esc":
        if state.mode == Mode.FILTERING:
            return clear_filter(state)
        state.mode = Mode.NORMAL
        return state, []
    if key == "backspace":
        buf.backspace()
    elif key == "delete":
        buf.delete()
    elif key == "left":
        buf.move(-1)
    elif key == "right":
        buf.move(1)
    elif key == "home":
        buf.cursor = 0
    elif key == "end":
        buf.cursor = len(buf.value)
    elif key == "ctrl+u":
        buf.set("", prompt=buf.prompt, placeholder=buf.placeholder)
    elif key == "space":
        buf.insert(" ")
    elif len(key) == 1 and key.isprintable():
        buf.insert(key)
    return state, []


# -----------------------------
# Select modes
# -----------------------------
def _current_value(item: Item, mode: Mode) -> str:
    if mode == Mode.STATUS_SELECT:
        return item.status
    if mode == Mode.PRIORITY_SELECT:
        return item.priority
    if mode == Mode.MILESTONE_SELECT:
        return item.milestone
    return item.labels[0] if item.labels else ""


def enter_select_mode(state: AppState, mode: Mode) -> Result:
    item = _focused(state)
    if item is None:
        return state, []
    field_name = SELECT_FIELDS[mode]
    field = state.project.field_named(field_name)
    if field is None:
        return state, notifications.error(state, f"{field_name} field not found in project")
    cursor = 0
    current = _current_value(item, mode)
    for idx, opt in enumerate(field.options):
        if opt.name == current:
            cursor = idx
            break
    state.selector = Selector(field=field, cursor=cursor)
    state.mode = mode
    hint = f"{SELECT_LABELS[mode]} select mode: Use arrow keys to select, enter to confirm, esc to cancel"
    return state, notifications.info(state, hint, notifications.HINT_TTL)


def _confirm_select(state: AppState) -> Result:
    selector, mode = state.selector, state.mode
    state.selector = None
    item = state.focused_item()
    option = selector.option if selector is not None else None
    if item is None or option is None:
        state.mode = Mode.NORMAL
        return state, []
    if not item.id.startswith(ITEM_ID_PREFIX):
        return state, _invalid_item_id(state, item)
    provider, project, field = state.provider, state.project, selector.field
    if mode == Mode.STATUS_SELECT:
        task = _mutation(state, state.focused_index, item,
                         lambda: provider.update_status(project.mutation_id, project.owner, item.id,
                                                        field.id, option.id),
                         "update-status", fallback_status=option.name)
    else:
        task = _mutation(state, state.focused_index, item,
                         lambda: provider.update_field(project.mutation_id, project.owner, item.id,
                                                       field.id, option.id, field.name),
                         "update-field")
    state.mode = Mode.NORMAL
    return state, [task]


def select_key(state: AppState, key: str) -> Result:
    selector = state.selector
    if key == "esc" or selector is None:
        state.mode = Mode.NORMAL
        state.selector = None
        return state, []
    if key in ("j", "down"):
        selector.cursor = min(len(selector.field.options) - 1, selector.cursor + 1)
    elif key in ("k", "up"):
        selector.cursor = max(0, selector.cursor - 1)
    elif key == "enter":
        return _confirm_select(state)
    return state, []


# -----------------------------
# Detail mode
# -----------------------------
def enter_detail_mode(state: AppState) -> Result:
    item = _focused(state)
    if item is None:
        return state, []
    state.mode = Mode.DETAIL
    if item.repository and item.number > 0:
        state.detail = DetailPanel(item=item, body=item.description, loading=True)
        provider = state.provider
        snapshot = dataclasses.replace(item)

        def run() -> DetailReady:
            body = provider.fetch_issue_detail(snapshot.repository, snapshot.number)
            return DetailReady(item=dataclasses.replace(snapshot, description=body))

        return state, [Task(run=run, name="fetch-detail")]
    state.detail = DetailPanel(item=item, body=item.description)
    return state, notifications.info(state, DETAIL_HINT)


def detail_key(state: AppState, key: str) -> Result:
    if key in ("esc", "q"):
        state.mode = Mode.NORMAL
        state.detail = None
    elif state.detail is not None and key in ("j", "down"):
        state.detail.scroll += 1
    elif state.detail is not None and key in ("k", "up"):
        state.detail.scroll = max(0, state.detail.scroll - 1)
    return state, []


# -----------------------------
# Settings
# -----------------------------
def _yn(flag: bool) -> str:
    return "y" if flag else "n"


def settings_form_from(state: AppState) -> SettingsForm:
    return SettingsForm(values={
        "project_id": state.project.id,
        "owner": state.project.owner,
        "item_limit": str(state.item_limit),
        "exclude_done": _yn(state.exclude_done),
        "suppress_hints": _yn(state.suppress_hints),
        "iterations": ",".join(state.filter.iterations),
    })


def settings_values(form: SettingsForm) -> Dict[str, object]:
    vals = form.values
    try:
        limit = int(vals.get("item_limit", "").strip())
    except ValueError:
        limit = config.DEFAULT_ITEM_LIMIT
    if limit <= 0:
        limit = config.DEFAULT_ITEM_LIMIT
    return {
        "project_id": vals.get("project_id", "").strip(),
        "owner": vals.get("owner", "").strip(),
        "item_limit": limit,
        "exclude_done": vals.get("exclude_done", "n").strip().lower().startswith("y"),
        "suppress_hints": vals.get("suppress_hints", "n").strip().lower().startswith("y"),
        "iterations": normalize_iteration_filters(vals.get("iterations", "").split(",")),
    }


def _save_settings_task(state: AppState, values: Dict[str, object]) -> Task:
    path = state.config_path or config.resolve_path()

    def run() -> SettingsSaved:
        try:
            cfg = config.load(path)
        except ValueError:
            cfg = config.Config()
        cfg.default_project_id = values["project_id"]
        cfg.default_owner = values["owner"]
        cfg.default_item_limit = values["item_limit"]
        cfg.default_exclude_done = values["exclude_done"]
        cfg.suppress_hints = values["suppress_hints"]
        cfg.default_iteration_filters = list(values["iterations"])
        try:
            config.save(path, cfg)
        except OSError as e:
            return SettingsSaved(values=values, error=str(e))
        return SettingsSaved(values=values)

    return Task(run=run, name="save-settings")


def settings_key(state: AppState, key: str) -> Result:
    form = state.settings
    name = form.focused_name
    if key == "tab":
        form.focus = (form.focus + 1) % len(SETTINGS_FIELDS)
    elif key == "shift+tab":
        form.focus = (form.focus - 1) % len(SETTINGS_FIELDS)
    elif key == "esc":
        state.view = ViewType.BOARD
        state.mode = Mode.NORMAL
        rebuild_board(state)
    elif key == "enter":
        values = settings_values(form)
        state.view = ViewType.BOARD
        state.mode = Mode.NORMAL
        rebuild_board(state)
        return state, [_save_settings_task(state, values)]
    elif name in SETTINGS_TOGGLES:
        if key in ("space", " "):
            form.values[name] = "n" if form.values.get(name) == "y" else "y"
        elif key.lower() in ("y", "n"):
            form.values[name] = key.lower()
    elif key == "backspace":
        form.values[name] = form.values.get(name, "")[:-1]
    elif key == "ctrl+u":
        form.values[name] = ""
    elif key == "space":
        form.values[name] = form.values.get(name, "") + " "
    elif len(key) == 1 and key.isprintable():
        form.values[name] = form.values.get(name, "") + key
    return state, []


# -----------------------------
# Normal mode
# -----------------------------
def column_edit(state: AppState) -> Result:
    if state.focused_item() is None:
        return state, []
    fields = state.project.fields
    columns = table_visible_columns(state.card_visibility, fields)
    column = columns[clamp_table_column(state.table_column_index, state.card_visibility, fields)]
    if column == TableColumn.STATUS:
        return enter_select_mode(state, Mode.STATUS_SELECT)
    if column == TableColumn.ASSIGNEES:
        return enter_assign_mode(state)
    if column == TableColumn.LABELS:
        return enter_labels_input_mode(state)
    if column == TableColumn.MILESTONE:
        return enter_milestone_input_mode(state)
    if column == TableColumn.PRIORITY:
        return enter_select_mode(state, Mode.PRIORITY_SELECT)
    return enter_edit_mode(state)


def fetch_project_task(state: AppState) -> Task:
    provider, project, limit = state.provider, state.project, state.item_limit

    def run() -> FetchProjectResult:
        proj, items = provider.fetch_project(project.id, project.owner, limit)
        return FetchProjectResult(project=proj, items=items)

    return Task(run=run, name="fetch-project")


def _url_task(state: AppState, action: Callable[[str], ActionResult], name: str) -> List[Task]:
    item = _focused(state)
    if item is None or not item.url:
        return []
    url = item.url
    return [Task(run=lambda: action(url), name=name)]


def normal_key(state: AppState, key: str) -> Result:
    if key == "q":
        state.quit = True
        return state, []
    if key in ("1", "b"):
        return switch_view(state, ViewType.BOARD)
    if key in ("2", "t"):
        return switch_view(state, ViewType.TABLE)
    if key in ("3", "r"):
        return switch_view(state, ViewType.ROADMAP)
    if key == "4":
        return switch_view(state, ViewType.SETTINGS)
    if key in ("R", "ctrl+r"):
        return state, [fetch_project_task(state)]
    if key == "/":
        return enter_filter_mode(state)
    if key == "esc":
        return clear_filter(state)
    if key in ("j", "down"):
        move_focus(state, 1)
    elif key in ("k", "up"):
        move_focus(state, -1)
    elif key in ("h", "left"):
        _move_column(state, -1)
    elif key in ("l", "right"):
        _move_column(state, 1)
    elif key == "g":
        move_to_edge(state, True)
    elif key == "G":
        move_to_edge(state, False)
    elif key == "s" and state.view == ViewType.TABLE:
        state.mode = Mode.SORT
    elif key in ("i", "enter"):
        if state.view == ViewType.TABLE:
            return column_edit(state)
        return enter_edit_mode(state)
    elif key == "a":
        return enter_assign_mode(state)
    elif key == "w":
        return enter_select_mode(state, Mode.STATUS_SELECT)
    elif key == "L":
        return enter_select_mode(state, Mode.LABEL_SELECT)
    elif key == "M":
        return enter_select_mode(state, Mode.MILESTONE_SELECT)
    elif key == "P":
        return enter_select_mode(state, Mode.PRIORITY_SELECT)
    elif key == "f":
        return enter_field_toggle_mode(state)
    elif key == "m" and state.view == ViewType.TABLE:
        return toggle_group_by(state)
    elif key == "o":
        return enter_detail_mode(state)
    elif key == "O":
        return state, _url_task(state, actions.open_browser, "open-browser")
    elif key == "y":
        return state, _url_task(state, actions.copy_to_clipboard, "copy-url")
    return state, []


def handle_key(state: AppState, key: str) -> Result:
    if key == "ctrl+c":
        state.quit = True
        return state, []
    if state.mode in SELECT_MODES:
        return select_key(state, key)
    if state.mode == Mode.DETAIL:
        return detail_key(state, key)
    if state.mode == Mode.SETTINGS or state.view == ViewType.SETTINGS:
        return settings_key(state, key)
    if state.mode in TEXT_MODES:
        return text_key(state, key)
    if state.mode == Mode.FIELD_TOGGLE:
        return field_toggle(state, key)
    if state.mode == Mode.SORT:
        return sort_mode_key(state, key)
    return normal_key(state, key)


# -----------------------------
# Asynchronous results
# -----------------------------
def on_fetch_project(state: AppState, msg: FetchProjectResult) -> Result:
    state.project = msg.project
    items = list(msg.items)
    if state.exclude_done:
        items = [it for it in items if it.status != "Done"]
    state.items = items
    log.info("project %s loaded with %d items", msg.project.id, len(items))
    if items:
        set_focus(state, items[0].id)
    else:
        clear_focus(state)
    rebuild_board(state)
    sync_table_column_index(state)
    if items:
        return state, notifications.info(state, f"Loaded {len(items)} items from project")
    return state, notifications.push(state, "No items fetched", WARN)


def _resolve_update_index(state: AppState, msg: ItemUpdated) -> Optional[int]:
    """Index to reconcile at, or None when the updated item has left the collection."""
    idx = msg.index
    if not msg.item_id or (0 <= idx < len(state.items) and state.items[idx].id == msg.item_id):
        return idx
    by_id = index_of(state.items, msg.item_id)
    return by_id if by_id >= 0 else None


def on_item_updated(state: AppState, msg: ItemUpdated) -> Result:
    idx = _resolve_update_index(state, msg)
    if idx is None:
        log.warning("dropping update for item %s: no longer in the collection", msg.item_id)
        return state, []
    state.items = reconcile(state.items, idx, msg.item)
    state.focused_index = index_of(state.items, state.focused_item_id)
    log.info("item %s reconciled at index %d", msg.item_id or msg.item.id, idx)
    rebuild_board(state)
    return state, notifications.info(state, "Item updated successfully")


def on_error(state: AppState, msg: ErrorResult) -> Result:
    return state, notifications.error(state, f"Error: {msg.error}")


def on_dismiss(state: AppState, msg: DismissNotification) -> Result:
    notifications.dismiss(state, msg.id)
    return state, []


def on_detail_ready(state: AppState, msg: DetailReady) -> Result:
    if state.mode != Mode.DETAIL:
        return state, []
    state.detail = DetailPanel(item=msg.item, body=msg.item.description)
    return state, notifications.info(state, DETAIL_HINT)


def on_action_result(state: AppState, msg: ActionResult) -> Result:
    if msg.level == ERROR:
        return state, notifications.error(state, msg.message)
    return state, notifications.info(state, msg.message)


def on_settings_saved(state: AppState, msg: SettingsSaved) -> Result:
    state.view = ViewType.BOARD
    if msg.error:
        return state, notifications.error(state, f"Failed to save settings: {msg.error}")
    values = msg.values
    state.suppress_hints = bool(values["suppress_hints"])
    state.item_limit = int(values["item_limit"])
    state.exclude_done = bool(values["exclude_done"])
    state.filter.iterations = list(values["iterations"])
    rebuild_board(state)
    return state, notifications.info(state, "Settings saved successfully")


def on_config_persisted(state: AppState, msg: ConfigPersisted) -> Result:
    if msg.error:
        return state, notifications.push(state, f"Failed to save card field preference: {msg.error}", WARN,
                                         notifications.ERROR_TTL)
    return state, []


def on_resize(state: AppState, msg: WindowResized) -> Result:
    state.width, state.height = msg.width, msg.height
    return state, []


HANDLERS = {
    FetchProjectResult: on_fetch_project,
    ItemUpdated: on_item_updated,
    ErrorResult: on_error,
    DismissNotification: on_dismiss,
    DetailReady: on_detail_ready,
    ActionResult: on_action_result,
    SettingsSaved: on_settings_saved,
    ConfigPersisted: on_config_persisted,
    WindowResized: on_resize,
}


def update(state: AppState, msg: object) -> Result:
    if isinstance(msg, KeyPress):
        return handle_key(state, msg.key)
    handler = HANDLERS.get(type(msg))
    if handler is None:
        log.debug("ignoring message %r", msg)
        return state, []
    return handler(state, msg)
