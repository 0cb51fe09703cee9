"""Turn an :class:`AppState` into prompt_toolkit formatted-text fragments.

Everything here is a pure function of the state so it can be exercised without
a terminal.  Style class names are resolved by the active theme (see ``themes``).
"""
from __future__ import annotations

import unicodedata
from typing import List, Optional, Sequence, Tuple

from prompt_toolkit.utils import get_cwidth

from . import notifications
from .filters import apply_filter
from .focus import grouped_focus_row, grouped_rows, table_visible_columns, table_visible_items
from .models import ERROR, WARN, Card, CardFieldVisibility, Item, TableColumn, Timeline, ViewType
from .projection import (group_items, is_done_status, progress_for_status, roadmap_sections, status_progress,
                         timeline_progress)
from .sorting import describe_sort
from .state import SETTINGS_FIELDS, SETTINGS_LABELS, TEXT_MODES, AppState, Mode

Fragments = List[Tuple[str, str]]

MIN_COLUMN_WIDTH = 18
DEFAULT_WIDTH = 100
DEFAULT_HEIGHT = 30
TABLE_WIDTHS = {
    TableColumn.TITLE: 36,
    TableColumn.STATUS: 13,
    TableColumn.REPOSITORY: 18,
    TableColumn.LABELS: 16,
    TableColumn.MILESTONE: 12,
    TableColumn.PRIORITY: 9,
    TableColumn.SUB_ISSUE: 8,
    TableColumn.PARENT: 16,
    TableColumn.ASSIGNEES: 14,
}
PROGRESS_SEGMENTS = 10
NORMAL_KEYS = [("1-4", "views"), ("/", "filter"), ("enter", "edit"), ("a", "assign"),
               ("w", "status"), ("s", "sort"), ("f", "fields"), ("o", "open"), ("R", "reload"),
               ("q", "quit")]


# -----------------------------
# Width helpers
# -----------------------------
def _char_width(ch: str) -> int:
    """Return printable cell width for a single character."""
    if unicodedata.combining(ch) or unicodedata.category(ch) == "Cf":
        return 0
    fallback = 2 if unicodedata.east_asian_width(ch) in ("W", "F") else 1
    width = get_cwidth(ch)
    if width <= 0:
        return fallback
    return width if width > fallback else fallback


def _display_width(text: str) -> int:
    return sum(_char_width(ch) for ch in text)


def _sanitize_cell_text(s: Optional[str]) -> str:
    return (s or "").replace("\n", " ").replace("\r", " ")


def _truncate(s: str, maxlen: int) -> str:
    """Truncate string to a maximum display width, preserving whole glyphs."""
    s = _sanitize_cell_text(s)
    if maxlen <= 0:
        return ""
    if _display_width(s) <= maxlen:
        return s
    ellipsis = "…"
    ell_w = _display_width(ellipsis)
    out: List[str] = []
    width = 0
    for ch in s:
        ch_w = _char_width(ch)
        if width + ch_w + ell_w > maxlen:
            break
        out.append(ch)
        width += ch_w
    if out:
        return "".join(out) + ellipsis
    return ellipsis if maxlen >= ell_w else ""


def _pad_display(text: Optional[str], width: int, align: str = "left") -> str:
    """Pad/truncate text to an exact display width using spaces."""
    raw = _truncate(_sanitize_cell_text(text), width)
    pad = max(0, width - _display_width(raw))
    if align == "right":
        return " " * pad + raw
    return raw + " " * pad


def _status_style(status: str) -> str:
    low = (status or "").strip().lower()
    if is_done_status(status):
        return "class:status.done"
    if "progress" in low or "review" in low:
        return "class:status.in_progress"
    if low in ("todo", "backlog", "draft"):
        return "class:status.todo"
    return "class:status.other"


def _window(lines: List[Fragments], focus_line: int, height: int) -> List[Fragments]:
    """Keep ``focus_line`` on screen when there are more lines than rows."""
    if height <= 0 or len(lines) <= height:
        return lines
    start = max(0, min(focus_line - height // 2, len(lines) - height))
    return lines[start:start + height]


def _join(lines: List[Fragments]) -> Fragments:
    out: Fragments = []
    for idx, line in enumerate(lines):
        if idx:
            out.append(("", "\n"))
        out.extend(line)
    return out


# -----------------------------
# Header / footer
# -----------------------------
def render_header(state: AppState) -> Fragments:
    frags: Fragments = [("class:header.project", f" {state.project.name or state.project.id or 'No project'} ")]
    for key, view in (("1", ViewType.BOARD), ("2", ViewType.TABLE), ("3", ViewType.ROADMAP), ("4", ViewType.SETTINGS)):
        style = "class:header.view.active" if state.view == view else "class:header.view"
        frags.append(("", " "))
        frags.append((style, f"[{key}] {view.value.capitalize()}"))
    details: List[str] = []
    if state.filter.raw:
        details.append(f"Filter: {state.filter.raw}")
    if state.view == ViewType.TABLE:
        if state.sort.field:
            details.append(describe_sort(state.sort))
        if state.group_by:
            details.append(f"Group: {state.group_by}")
    details.append(f"{len(state.items)} items")
    frags.append(("class:header.filter", "  " + "  |  ".join(details)))
    return frags


def render_input(state: AppState) -> Fragments:
    buf = state.input
    frags: Fragments = [("class:input.prompt", buf.prompt)]
    if not buf.value and buf.placeholder:
        frags.append(("class:input.cursor", " "))
        frags.append(("class:input.placeholder", buf.placeholder))
        return frags
    before, at, after = buf.value[:buf.cursor], buf.value[buf.cursor:buf.cursor + 1], buf.value[buf.cursor + 1:]
    frags.append(("class:input.text", before))
    frags.append(("class:input.cursor", at or " "))
    frags.append(("class:input.text", after))
    return frags


def render_footer(state: AppState) -> Fragments:
    frags: Fragments = []
    for n in notifications.active(state)[-2:]:
        style = {ERROR: "class:notify.error", WARN: "class:notify.warn"}.get(n.level, "class:notify.info")
        frags.append((style, f" {n.message}"))
        frags.append(("", "\n"))
    if state.mode in TEXT_MODES:
        frags.extend(render_input(state))
        return frags
    if state.mode == Mode.NORMAL:
        for key, what in NORMAL_KEYS:
            frags.append(("class:footer.key", f" {key}"))
            frags.append(("class:footer", f" {what}"))
    elif state.mode == Mode.SORT:
        frags.append(("class:footer", " Sort: t=title S=status r=repo L=labels m=milestone p=priority a=assignees "
                                      "n=number c=created u=updated, esc to cancel"))
    elif state.mode == Mode.SETTINGS:
        frags.append(("class:footer", " tab/shift+tab move, enter save, esc cancel"))
    return frags


# -----------------------------
# Board
# -----------------------------
def _card_lines(card: Card, vis: CardFieldVisibility, width: int, focused: bool) -> List[Fragments]:
    style = "class:card.focused" if focused else "class:card"
    marker = "▶ " if focused else "  "
    lines: List[Fragments] = [[(style, _pad_display(marker + card.title, width))]]
    meta: List[str] = []
    if card.assignee:
        meta.append("@" + card.assignee)
    if card.priority:
        meta.append(card.priority)
    if vis.show_repository and card.repository:
        meta.append(card.repository)
    if vis.show_milestone and card.milestone:
        meta.append("◆ " + card.milestone)
    if vis.show_sub_issue_progress and card.sub_issue_progress:
        meta.append("sub " + card.sub_issue_progress)
    if vis.show_parent_issue and card.parent_issue:
        meta.append("↑ " + card.parent_issue)
    if meta:
        lines.append([("class:card.meta", _pad_display("  " + " · ".join(meta), width))])
    if vis.show_labels and card.labels:
        lines.append([("class:card.label", _pad_display("  " + " ".join(f"[{l}]" for l in card.labels), width))])
    return lines


def render_board(state: AppState, height: int = 0) -> Fragments:
    board = state.board
    if not board.columns:
        return [("bold", "Nothing to show."), ("", " Press "), ("bold", "R"), ("", " to reload.")]
    total = state.width or DEFAULT_WIDTH
    width = max(MIN_COLUMN_WIDTH, total // len(board.columns) - 1)
    columns: List[List[Fragments]] = []
    focus_line = 0
    for col_idx, col in enumerate(board.columns):
        title_style = "class:column.title.focused" if col_idx == board.focused_column else "class:column.title"
        lines: List[Fragments] = [[(title_style, _pad_display(f"{col.name} ({len(col.cards)})", width))],
                                  [("class:card.meta", "─" * width)]]
        for card_idx, card in enumerate(col.cards):
            focused = col_idx == board.focused_column and card_idx == board.focused_card
            if focused:
                focus_line = len(lines)
            lines.extend(_card_lines(card, state.card_visibility, width, focused))
        columns.append(lines)
    rows = max(len(c) for c in columns)
    grid: List[Fragments] = []
    for r in range(rows):
        line: Fragments = []
        for c, lines in enumerate(columns):
            if c:
                line.append(("", " "))
            line.extend(lines[r] if r < len(lines) else [("", " " * width)])
        grid.append(line)
    return _join(_window(grid, focus_line, height))


# -----------------------------
# Table
# -----------------------------
def _cell_text(item: Item, column: TableColumn) -> str:
    if column == TableColumn.TITLE:
        return f"#{item.number} {item.title}" if item.number else item.title
    if column == TableColumn.STATUS:
        return item.status
    if column == TableColumn.REPOSITORY:
        return item.repository
    if column == TableColumn.LABELS:
        return ", ".join(item.labels)
    if column == TableColumn.MILESTONE:
        return item.milestone
    if column == TableColumn.PRIORITY:
        return item.priority
    if column == TableColumn.SUB_ISSUE:
        return item.sub_issue_progress
    if column == TableColumn.PARENT:
        return item.parent_issue
    return ", ".join(item.assignees)


def _table_row(state: AppState, item: Item, columns: Sequence[TableColumn], focused: bool) -> Fragments:
    row_style = "class:table.row.focused" if focused else "class:table.row"
    line: Fragments = [(row_style, "▶ " if focused else "  ")]
    for idx, column in enumerate(columns):
        text = _pad_display(_cell_text(item, column), TABLE_WIDTHS[column])
        style = row_style
        if focused and idx == state.table_column_index:
            style = "class:table.cell.focused"
        elif column == TableColumn.STATUS:
            style = row_style + " " + _status_style(item.status)
        line.append((style, text))
        line.append((row_style, " "))
    return line


def render_table(state: AppState, visible: Sequence[Item], buckets=None, height: int = 0) -> Fragments:
    columns = table_visible_columns(state.card_visibility, state.project.fields)
    header: Fragments = [("class:table.header", "  ")]
    for column in columns:
        header.append(("class:table.header", _pad_display(column.value, TABLE_WIDTHS[column]) + " "))
    lines: List[Fragments] = []
    focus_line = 0
    if buckets is not None:
        rows = grouped_rows(buckets)
        focus_row = grouped_focus_row(rows, state.focused_item_id, state.focused_bucket)
        by_id = {item.id: item for bucket in buckets for item in bucket.items}
        for row_idx, (bucket_idx, item_id) in enumerate(rows):
            if not item_id:
                bucket = buckets[bucket_idx]
                lines.append([("class:table.group", f"▸ {bucket.name or '(none)'} ({len(bucket.items)})")])
                continue
            if row_idx == focus_row:
                focus_line = len(lines)
            lines.append(_table_row(state, by_id[item_id], columns, row_idx == focus_row))
    else:
        for item in visible:
            focused = item.id == state.focused_item_id
            if focused:
                focus_line = len(lines)
            lines.append(_table_row(state, item, columns, focused))
    if not lines:
        lines.append([("", "  No items match the current filter.")])
    body = _window(lines, focus_line, max(0, height - 1) if height else 0)
    return _join([header] + body)


# -----------------------------
# Roadmap
# -----------------------------
def progress_bar(percent: int, segments: int = PROGRESS_SEGMENTS) -> str:
    percent = max(0, min(100, percent))
    filled = min(segments, (percent * segments + 50) // 100)
    return "█" * filled + "░" * (segments - filled)


def _timeline_meta(timeline: Timeline) -> str:
    parts: List[str] = []
    if timeline.start and timeline.end:
        parts.append(f"{timeline.start:%Y-%m-%d} → {timeline.end:%Y-%m-%d}")
    elif timeline.start:
        parts.append(f"Starts {timeline.start:%Y-%m-%d}")
    elif timeline.end:
        parts.append(f"Ends {timeline.end:%Y-%m-%d}")
    if timeline.progress:
        parts.append(timeline.progress)
    return "   ".join(parts)


def render_roadmap(state: AppState, height: int = 0) -> Fragments:
    visible = apply_filter(state.items, state.project.fields, state.filter, state.now())
    sections = roadmap_sections(state.project.iterations, visible)
    if not sections:
        return [("", "  No items match the current filter.")]
    table = status_progress(state.project.fields)
    lines: List[Fragments] = []
    focus_line = 0
    for section in sections:
        if lines:
            lines.append([])
        tl = section.timeline
        lines.append([("class:roadmap.timeline", tl.name), ("class:roadmap.meta", "  " + _timeline_meta(tl))])
        if not section.items:
            lines.append([("class:roadmap.meta", "  No items scheduled")])
        for item in section.items:
            focused = item.id == state.focused_item_id
            if focused:
                focus_line = len(lines)
            style = "class:card.focused" if focused else "class:card"
            pct = progress_for_status(item.status, table)
            lines.append([(style, ("▶ " if focused else "  ") + item.title),
                          ("class:roadmap.sprint", "  " + tl.name)])
            lines.append([(_status_style(item.status), "    " + item.status),
                          ("class:card.meta", "  " + item.repository)])
            lines.append([("class:roadmap.progress", "    " + progress_bar(pct)), ("class:card.meta", f" {pct}%")])
    if state.project.iterations:
        lines.append([])
        lines.append([("class:roadmap.overview", "Sprint Progress Overview:")])
        # the first sections are the project iterations, in order
        for section in sections[:len(state.project.iterations)]:
            tl = section.timeline
            pct = timeline_progress(tl, section.items, table)
            lines.append([("class:roadmap.sprint", f"  {tl.name}: "),
                          ("class:roadmap.progress", progress_bar(pct)), ("class:card.meta", f" {pct}%")])
    return _join(_window(lines, focus_line, height))


# -----------------------------
# Settings / overlays
# -----------------------------
def render_settings(state: AppState) -> Fragments:
    form = state.settings
    lines: List[Fragments] = [[("class:detail.title", "Settings")], []]
    for idx, name in enumerate(SETTINGS_FIELDS):
        focused = idx == form.focus
        label_style = "class:settings.focused" if focused else "class:settings.label"
        value = form.values.get(name, "")
        lines.append([(label_style, _pad_display(SETTINGS_LABELS[name], 22)),
                      ("class:settings.value", " " + value + ("▏" if focused else ""))])
    return _join(lines)


def render_select(state: AppState) -> Fragments:
    selector = state.selector
    if selector is None:
        return []
    item = state.focused_item()
    current = ""
    if item is not None:
        current = {"Status": item.status, "Priority": item.priority,
                   "Milestone": item.milestone}.get(selector.field.name, item.labels[0] if item.labels else "")
    frags: Fragments = [("class:popup.title", f" Select {selector.field.name} "), ("", "\n")]
    for idx, opt in enumerate(selector.field.options):
        if idx == selector.cursor:
            style = "class:popup.option.cursor"
        elif opt.name == current:
            style = "class:popup.option.current"
        else:
            style = "class:popup.option"
        frags.append((style, f" {'>' if idx == selector.cursor else ' '} {opt.name} "))
        frags.append(("", "\n"))
    if not selector.field.options:
        frags.append(("class:popup.option", " (no options) "))
    elif frags[-1] == ("", "\n"):
        frags.pop()
    return frags


def render_detail(state: AppState, height: int = 0) -> Fragments:
    panel = state.detail
    if panel is None:
        return []
    item = panel.item
    lines: List[Fragments] = [[("class:detail.title", item.title or item.id)]]
    meta = [f"Status: {item.status}"]
    if item.repository:
        meta.append(f"{item.repository}#{item.number}" if item.number else item.repository)
    if item.assignees:
        meta.append("Assignees: " + ", ".join(item.assignees))
    if item.labels:
        meta.append("Labels: " + ", ".join(item.labels))
    if item.milestone:
        meta.append("Milestone: " + item.milestone)
    lines.append([("class:detail.meta", "  ".join(meta))])
    if item.url:
        lines.append([("class:detail.meta", item.url)])
    lines.append([])
    body = panel.body.splitlines() or ["(no description)"]
    if panel.loading:
        body = ["Loading…"] + body
    body = body[min(panel.scroll, max(0, len(body) - 1)):]
    if height:
        body = body[:max(1, height - len(lines))]
    lines.extend([("class:detail.body", line)] for line in body)
    return _join(lines)


def render_body(state: AppState) -> Fragments:
    height = (state.height or DEFAULT_HEIGHT) - 4
    if state.view == ViewType.SETTINGS:
        return render_settings(state)
    if state.mode == Mode.DETAIL:
        return render_detail(state, height)
    if state.view == ViewType.TABLE:
        visible = table_visible_items(state.items, state.project.fields, state.filter, state.sort, state.now())
        buckets = group_items(visible, state.project.fields, state.group_by) if state.group_by else None
        return render_table(state, visible, buckets, height)
    if state.view == ViewType.ROADMAP:
        return render_roadmap(state, height)
    return render_board(state, height)
