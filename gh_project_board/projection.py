"""Board columns, grouped-table buckets and roadmap sections derived from the item collection.

Everything here is recomputed from scratch; nothing is patched in place.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .filters import GROUP_BY_ASSIGNEE, GROUP_BY_ITERATION, GROUP_BY_STATUS, apply_filter
from .models import Bucket, Card, Column, Field, FilterSpec, Item, RoadmapSection, Timeline

COLUMN_ORDER = ["Todo", "Draft", "In Progress", "In_Review"]
DONE_COLUMN = "Done"
UNASSIGNED = "Unassigned"
NO_ITERATION = "No Iteration"


def is_done_status(status: Optional[str]) -> bool:
    return (status or "").strip().casefold() == "done"


def status_order(fields: Optional[Iterable[Field]]) -> List[str]:
    for f in fields or ():
        if f.name == "Status":
            names = [opt.name for opt in f.options]
            if names:
                return names
            break
    return list(COLUMN_ORDER)


def infer_priority_from_labels(labels: Sequence[str]) -> str:
    joined = " ".join(labels).lower()
    if "high" in joined:
        return "High"
    if "low" in joined:
        return "Low"
    return ""


def card_for(item: Item) -> Card:
    return Card(
        id=item.id,
        title=item.title,
        assignee=item.assignees[0] if item.assignees else "",
        labels=list(item.labels),
        status=item.status,
        priority=item.priority or infer_priority_from_labels(item.labels),
        milestone=item.milestone,
        repository=item.repository,
        sub_issue_progress=item.sub_issue_progress,
        parent_issue=item.parent_issue,
    )


def _ordered_status_groups(items: Sequence[Item], fields: Optional[Iterable[Field]]) -> List[Tuple[str, List[Item]]]:
    by_status: Dict[str, List[Item]] = {}
    done: List[Item] = []
    for item in items:
        if is_done_status(item.status):
            done.append(item)
        else:
            by_status.setdefault(item.status, []).append(item)
    groups: List[Tuple[str, List[Item]]] = []
    for name in status_order(fields):
        if name in by_status:
            groups.append((name, by_status.pop(name)))
    for name in sorted(by_status):
        groups.append((name, by_status[name]))
    if done:
        groups.append((DONE_COLUMN, done))
    # sorted() is stable, so equal positions keep collection order
    return [(name, sorted(members, key=lambda it: it.position)) for name, members in groups]


def group_items_by_status(items: Sequence[Item], fields: Optional[Iterable[Field]]) -> List[Column]:
    return [Column(name=name, cards=[card_for(it) for it in members])
            for name, members in _ordered_status_groups(items, fields)]


def group_items_by_status_buckets(items: Sequence[Item], fields: Optional[Iterable[Field]]) -> List[Bucket]:
    return [Bucket(name=name, items=members) for name, members in _ordered_status_groups(items, fields)]


def _ordered_buckets(buckets: Dict[str, List[Item]], trailing: str) -> List[Bucket]:
    ordered = [Bucket(name=name, items=buckets[name]) for name in sorted(buckets) if name != trailing]
    if trailing in buckets:
        ordered.append(Bucket(name=trailing, items=buckets[trailing]))
    return ordered


def group_items_by_assignee(items: Sequence[Item]) -> List[Bucket]:
    buckets: Dict[str, List[Item]] = {}
    for item in items:
        names: List[str] = []
        for raw in item.assignees:
            name = (raw or "").strip()
            if name and name not in names:
                names.append(name)
        if not names:
            names = [UNASSIGNED]
        for name in names:
            buckets.setdefault(name, []).append(item)
    return _ordered_buckets(buckets, UNASSIGNED)


def group_items_by_iteration(items: Sequence[Item]) -> List[Bucket]:
    buckets: Dict[str, List[Item]] = {}
    for item in items:
        name = (item.iteration_name or "").strip() or NO_ITERATION
        buckets.setdefault(name, []).append(item)
    return _ordered_buckets(buckets, NO_ITERATION)


def group_items(items: Sequence[Item], fields: Optional[Iterable[Field]], group_by: str) -> Optional[List[Bucket]]:
    """Buckets for a grouping key, or None when the key is not a known grouping."""
    key = (group_by or "").strip().lower()
    if key == GROUP_BY_STATUS:
        return group_items_by_status_buckets(items, fields)
    if key == GROUP_BY_ASSIGNEE:
        return group_items_by_assignee(items)
    if key == GROUP_BY_ITERATION:
        return group_items_by_iteration(items)
    return None


# -----------------------------
# Board grid model
# -----------------------------
@dataclass
class Board:
    columns: List[Column] = field(default_factory=list)
    focused_column: int = 0
    focused_card: int = 0

    def focused_card_obj(self) -> Optional[Card]:
        if not (0 <= self.focused_column < len(self.columns)):
            return None
        cards = self.columns[self.focused_column].cards
        if not (0 <= self.focused_card < len(cards)):
            return None
        return cards[self.focused_card]

    def locate(self, item_id: str) -> Optional[Tuple[int, int]]:
        if not item_id:
            return None
        for col_idx, col in enumerate(self.columns):
            for card_idx, card in enumerate(col.cards):
                if card.id == item_id:
                    return col_idx, card_idx
        return None


def build_board(items: Sequence[Item], fields: Optional[Iterable[Field]], spec: Optional[FilterSpec],
                focused_id: str = "", now: Optional[dt.datetime] = None) -> Board:
    field_list = list(fields or ())
    visible = apply_filter(items, field_list, spec, now)
    board = Board(columns=group_items_by_status(visible, field_list))
    pos = board.locate(focused_id)
    if pos is not None:
        board.focused_column, board.focused_card = pos
    return board


# -----------------------------
# Roadmap
# -----------------------------
UNSCHEDULED = "Unscheduled"

STATUS_PROGRESS_FALLBACK = (
    (("done", "completed", "closed"), 100),
    (("review", "in review"), 80),
    (("in progress", "doing"), 60),
    (("todo", "backlog", "open", "blocked"), 20),
)
UNKNOWN_STATUS_PROGRESS = 40


def _timeline_of(item: Item) -> Timeline:
    start = item.iteration_start
    end = start + dt.timedelta(days=item.iteration_duration_days) if start and item.iteration_duration_days else None
    name = item.iteration_name or f"Timeline {item.iteration_id}"
    return Timeline(id=item.iteration_id, name=name, start=start, end=end)


def _belongs_to(item: Item, timeline: Timeline) -> bool:
    if item.iteration_id:
        return item.iteration_id == timeline.id
    return bool(item.iteration_name) and item.iteration_name == timeline.name


def roadmap_sections(timelines: Sequence[Timeline], items: Sequence[Item]) -> List[RoadmapSection]:
    """Roadmap layout: known timelines in order (empty ones included), then
    unscheduled items, then iterations only seen on items, in first-seen order."""
    sections = [RoadmapSection(timeline=tl) for tl in timelines]
    unscheduled: List[Item] = []
    extra: Dict[str, RoadmapSection] = {}
    for item in items:
        if not item.has_iteration:
            unscheduled.append(item)
            continue
        home = next((s for s in sections if _belongs_to(item, s.timeline)), None)
        if home is None:
            key = item.iteration_id or item.iteration_name or ""
            home = extra.setdefault(key, RoadmapSection(timeline=_timeline_of(item)))
        home.items.append(item)
    if unscheduled:
        sections.append(RoadmapSection(timeline=Timeline(id="", name=UNSCHEDULED), items=unscheduled))
    sections.extend(extra.values())
    return sections


def status_progress(fields: Optional[Iterable[Field]]) -> Dict[str, int]:
    """Spread the Status options evenly from 0% to 100%, keyed by option name and id."""
    for f in fields or ():
        if f.name.casefold() != "status":
            continue
        total = len(f.options)
        table: Dict[str, int] = {}
        for idx, opt in enumerate(f.options):
            pct = 100 if idx == total - 1 else idx * (100 // (total - 1))
            for key in (opt.name.strip(), opt.id.strip()):
                if key:
                    table.setdefault(key, pct)
                    table.setdefault(key.lower(), pct)
        return table
    return {}


def progress_for_status(status: str, table: Optional[Dict[str, int]] = None) -> int:
    key = (status or "").strip()
    if table and key:
        if key in table:
            return table[key]
        if key.lower() in table:
            return table[key.lower()]
    low = key.lower()
    for names, pct in STATUS_PROGRESS_FALLBACK:
        if low in names:
            return pct
    return UNKNOWN_STATUS_PROGRESS


def parse_percent(raw: str) -> int:
    """``"60%"`` -> 60, clamped to 0..100; -1 when there is no leading number."""
    text = (raw or "").strip().rstrip("%").strip()
    digits = ""
    for ch in text:
        if ch.isdigit() or (ch == "-" and not digits):
            digits += ch
        else:
            break
    if not digits or digits == "-":
        return -1
    return max(0, min(100, int(digits)))


def timeline_progress(timeline: Timeline, items: Sequence[Item], table: Optional[Dict[str, int]] = None) -> int:
    pct = parse_percent(timeline.progress)
    if pct >= 0:
        return pct
    if not items:
        return 0
    return sum(progress_for_status(it.status, table) for it in items) // len(items)
