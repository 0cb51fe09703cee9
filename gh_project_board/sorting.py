from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence

from .models import Item, SortKey

SORT_FIELD_KEYS: Dict[str, str] = {
    't': 'Title', 'T': 'Title',
    'S': 'Status',
    'r': 'Repository', 'R': 'Repository',
    'L': 'Labels',
    'm': 'Milestone', 'M': 'Milestone',
    'p': 'Priority', 'P': 'Priority',
    'a': 'Assignees', 'A': 'Assignees',
    'n': 'Number', 'N': 'Number',
    'c': 'CreatedAt', 'C': 'CreatedAt',
    'u': 'UpdatedAt', 'U': 'UpdatedAt',
}

TIMESTAMP_FIELDS = ('CreatedAt', 'UpdatedAt')


def priority_rank(priority: Optional[str]) -> int:
    low = (priority or '').lower()
    if low == 'high':
        return 3
    if low == 'medium':
        return 2
    if low == 'low':
        return 1
    return 0


def sub_issue_ratio(progress: Optional[str]) -> float:
    parts = (progress or '').split('/')
    if len(parts) != 2:
        return 0.0
    try:
        done, total = float(parts[0]), float(parts[1])
    except ValueError:
        return 0.0
    if total == 0:
        return 0.0
    return done / total


_SORT_KEYS: Dict[str, Callable[[Item], object]] = {
    'Title': lambda it: it.title,
    'Status': lambda it: it.status,
    'Repository': lambda it: it.repository,
    'Labels': lambda it: ','.join(it.labels),
    'Milestone': lambda it: it.milestone,
    'Priority': lambda it: priority_rank(it.priority),
    'Assignees': lambda it: ','.join(it.assignees),
    'Number': lambda it: it.number,
    'SubIssueProgress': lambda it: sub_issue_ratio(it.sub_issue_progress),
}


def apply_table_sort(items: Sequence[Item], key: Optional[SortKey]) -> List[Item]:
    """Stable single-field sort; ties keep their incoming order in both directions."""
    out = list(items)
    if key is None or not key.field:
        return out
    if key.field in TIMESTAMP_FIELDS:
        attr = 'created_at' if key.field == 'CreatedAt' else 'updated_at'
        # Items without the timestamp always come first, whatever the direction.
        missing = [it for it in out if getattr(it, attr) is None]
        present = [it for it in out if getattr(it, attr) is not None]
        present = sorted(present, key=lambda it: getattr(it, attr), reverse=not key.asc)
        return missing + present
    key_func = _SORT_KEYS.get(key.field)
    if key_func is None:
        return out
    return sorted(out, key=key_func, reverse=not key.asc)


def toggle_sort(current: Optional[SortKey], field: str) -> SortKey:
    if current is not None and current.field == field:
        return SortKey(field=field, asc=not current.asc)
    return SortKey(field=field, asc=True)


def describe_sort(key: SortKey) -> str:
    return f"Sort: {key.field} {'↑' if key.asc else '↓'}"
