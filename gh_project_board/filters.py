"""Filter query language and the predicate evaluator.

A query such as ``label:bug assignee:alice "Iteration Name":"Q1 Sprint" login``
compiles to a :class:`FilterSpec`.  Predicates combine with AND, values inside one
predicate with OR.  ``apply_filter`` is a stable selection: it never reorders.
"""
from __future__ import annotations

import datetime as dt
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import Field, FilterSpec, Item

LABEL_KEYS = ("label", "labels")
ASSIGNEE_KEYS = ("assignee", "assignees")
STATUS_KEYS = ("status",)
ITERATION_KEYS = ("iteration",)
GROUP_KEYS = ("group", "group-by", "groupby")
RESERVED_KEYS = frozenset(LABEL_KEYS + ASSIGNEE_KEYS + STATUS_KEYS + ITERATION_KEYS + GROUP_KEYS)
RELATIVE_ITERATIONS = ("current", "next", "previous")

GROUP_BY_STATUS = "status"
GROUP_BY_ASSIGNEE = "assignee"
GROUP_BY_ITERATION = "iteration"


# -----------------------------
# Tokenizer
# -----------------------------
def _tokenize(query: str) -> List[str]:
    # A double quote toggles "no split on whitespace" for the rest of the token.
    tokens: List[str] = []
    buf: List[str] = []
    in_quote = False
    for ch in query:
        if ch == '"':
            in_quote = not in_quote
            buf.append(ch)
            continue
        if ch.isspace() and not in_quote:
            if buf:
                tokens.append("".join(buf))
                buf = []
            continue
        buf.append(ch)
    if buf:
        tokens.append("".join(buf))
    return tokens


def _split_key_value(token: str) -> Optional[Tuple[str, str]]:
    in_quote = False
    for idx, ch in enumerate(token):
        if ch == '"':
            in_quote = not in_quote
        elif ch == ':' and not in_quote:
            return token[:idx], token[idx + 1:]
    return None


def _unquote(text: str) -> str:
    s = (text or "").strip()
    if len(s) >= 2 and s[0] == '"' and s[-1] == '"':
        return s[1:-1]
    return s


def _split_values(value: str, seps: str = ",;") -> List[str]:
    parts = [value]
    for sep in seps:
        parts = [p for chunk in parts for p in chunk.split(sep)]
    return [p.strip() for p in parts if p.strip()]


# -----------------------------
# Parser
# -----------------------------
def parse_filter(query: str) -> FilterSpec:
    raw = (query or "").strip()
    spec = FilterSpec(raw=raw)
    if not raw:
        return spec
    free: List[str] = []
    for token in _tokenize(raw):
        kv = _split_key_value(token)
        if kv is not None:
            key = _unquote(kv[0]).strip()
            value = _unquote(kv[1]).strip()
            low = key.lower()
            if key and value:
                if low in LABEL_KEYS:
                    spec.labels.extend(_split_values(value))
                    continue
                if low in ASSIGNEE_KEYS:
                    spec.assignees.extend(_split_values(value))
                    continue
                if low in STATUS_KEYS:
                    spec.statuses.extend(_split_values(value))
                    continue
                if low in ITERATION_KEYS:
                    spec.iterations.extend(_split_values(value, ","))
                    continue
                if low in GROUP_KEYS:
                    spec.group_by = value.lower()
                    continue
                if low not in RESERVED_KEYS:
                    spec.field_filters.setdefault(key, []).extend(_split_values(value))
                    continue
        bare = _unquote(token)
        if not bare:
            continue
        if bare.startswith("@") or bare.lower() in RELATIVE_ITERATIONS:
            spec.iterations.append(bare)
            continue
        free.append(bare)
    spec.query = " ".join(free)
    return spec


# -----------------------------
# Iteration matching
# -----------------------------
def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


def _iteration_window(item: Item) -> Optional[Tuple[dt.datetime, dt.datetime]]:
    if item.iteration_start is None or item.iteration_duration_days <= 0:
        return None
    start = _as_utc(item.iteration_start)
    return start, start + dt.timedelta(days=item.iteration_duration_days)


def _matches_iteration_filter(item: Item, value: str, now: dt.datetime) -> bool:
    cleaned = (value or "").strip()
    if cleaned.lower().startswith("iteration:"):
        cleaned = cleaned[len("iteration:"):].strip()
    if not cleaned:
        return False
    keyword = cleaned.lower()
    if keyword in ("@current", "current"):
        window = _iteration_window(item)
        return window is not None and window[0] <= now < window[1]
    if keyword in ("@next", "next"):
        return item.iteration_start is not None and now < _as_utc(item.iteration_start)
    if keyword in ("@previous", "previous"):
        window = _iteration_window(item)
        return window is not None and now >= window[1]
    folded = cleaned.casefold()
    if item.iteration_name and item.iteration_name.casefold() == folded:
        return True
    if item.iteration_id and item.iteration_id.casefold() == folded:
        return True
    return False


def normalize_iteration_filters(values: Iterable[str]) -> List[str]:
    """Canonical iteration filters: relative keywords become ``@current``/``@next``/``@previous``."""
    out: List[str] = []
    for raw in values:
        val = (raw or "").strip()
        if val.lower().startswith("iteration:"):
            val = val[len("iteration:"):].strip()
        if not val:
            continue
        relative = val.lower().lstrip("@")
        if relative in RELATIVE_ITERATIONS:
            val = "@" + relative
        if val not in out:
            out.append(val)
    return out


def matches_iteration_filters(item: Item, filters: Sequence[str], now: Optional[dt.datetime] = None) -> bool:
    if not filters:
        return True
    if not item.has_iteration:
        return False
    now = _as_utc(now or dt.datetime.now(dt.timezone.utc))
    return any(_matches_iteration_filter(item, f, now) for f in filters)


# -----------------------------
# Field predicates
# -----------------------------
def _non_empty(*values: str) -> List[str]:
    return [v for v in values if v]


_BUILTIN_FIELDS: Dict[str, Callable[[Item], List[str]]] = {
    "title": lambda it: _non_empty(it.title),
    "status": lambda it: _non_empty(it.status),
    "priority": lambda it: _non_empty(it.priority),
    "milestone": lambda it: _non_empty(it.milestone),
    "labels": lambda it: list(it.labels),
    "label": lambda it: list(it.labels),
    "assignees": lambda it: list(it.assignees),
    "assignee": lambda it: list(it.assignees),
    "iteration": lambda it: _non_empty(it.iteration_name, it.iteration_id),
}


def resolve_field_values(item: Item, name: str, fields: Optional[Iterable[Field]] = None) -> Optional[List[str]]:
    """Values of ``name`` for ``item``, or None when the field cannot be resolved."""
    low = (name or "").strip().lower()
    getter = _BUILTIN_FIELDS.get(low)
    if getter is not None:
        return getter(item)
    if name in item.field_values:
        return list(item.field_values[name])
    for f in fields or ():
        if f.name.lower() == low and f.name in item.field_values:
            return list(item.field_values[f.name])
    return None


def _matches_field_filter(item: Item, name: str, wanted: Sequence[str], fields: Optional[Iterable[Field]]) -> bool:
    values = resolve_field_values(item, name, fields)
    if values is None:
        return False
    targets = {w.casefold() for w in wanted}
    return any(v.casefold() in targets for v in values)


# -----------------------------
# Evaluator
# -----------------------------
def item_matches(item: Item, fields: Optional[Iterable[Field]], spec: FilterSpec, now: dt.datetime) -> bool:
    if spec.query and spec.query.lower() not in (item.title or "").lower():
        return False
    if spec.labels and not set(spec.labels).intersection(item.labels):
        return False
    if spec.assignees:
        wanted = {a.casefold() for a in spec.assignees}
        if not any(a.casefold() in wanted for a in item.assignees):
            return False
    if spec.statuses and item.status not in spec.statuses:
        return False
    if spec.iterations and not matches_iteration_filters(item, spec.iterations, now):
        return False
    for name, wanted in spec.field_filters.items():
        if not _matches_field_filter(item, name, wanted, fields):
            return False
    return True


def apply_filter(items: Sequence[Item], fields: Optional[Iterable[Field]], spec: Optional[FilterSpec],
                 now: Optional[dt.datetime] = None) -> List[Item]:
    if spec is None or spec.is_empty():
        return list(items)
    now = _as_utc(now or dt.datetime.now(dt.timezone.utc))
    field_list = list(fields or ())
    return [it for it in items if item_matches(it, field_list, spec, now)]
