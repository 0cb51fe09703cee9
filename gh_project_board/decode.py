"""Tolerant decoding of project item and field payloads.

Payloads come from GraphQL responses and from hand-written fixtures, so the same
logical value may arrive in several shapes.  Nothing here raises on bad input; a
missing or oddly shaped value simply decodes to its default.
"""
from __future__ import annotations

import datetime as dt
import re
from typing import Any, Dict, Iterable, List, Optional

from .models import Field, Item, Option, Timeline

UNKNOWN_STATUS = "Unknown"

SUB_ISSUE_FIELDS = ("subissuecount", "subissues", "subissueprogress", "subissue", "subissuescount")
PARENT_FIELDS = ("parentissue", "isparentissue", "parent")

_LIST_SPLIT = re.compile(r"[,;\r\n]")


# -----------------------------
# Scalars
# -----------------------------
def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _num(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


def _nodes(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, dict) and isinstance(value.get("nodes"), list):
        return value["nodes"]
    return []


def parse_timestamp(value: Any) -> Optional[dt.datetime]:
    """RFC 3339 timestamp (``Z`` accepted) or None."""
    text = _str(value).strip()
    if not text:
        return None
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def parse_date(value: Any) -> Optional[dt.datetime]:
    """``YYYY-MM-DD`` as midnight UTC."""
    try:
        day = dt.datetime.strptime(_str(value).strip(), "%Y-%m-%d")
    except ValueError:
        return None
    return day.replace(tzinfo=dt.timezone.utc)


def split_list_field(text: str) -> List[str]:
    return [p.strip() for p in _LIST_SPLIT.split(text or "") if p.strip()]


def merge_unique(dst: List[str], src: Iterable[str]) -> List[str]:
    for val in src:
        if val and val not in dst:
            dst.append(val)
    return dst


def compact_field_name(name: str) -> str:
    return (name or "").strip().lower().replace(" ", "").replace("-", "")


# -----------------------------
# Compound values
# -----------------------------
def extract_label_names(value: Any) -> List[str]:
    out: List[str] = []
    if isinstance(value, list):
        for entry in value:
            out.extend(extract_label_names(entry))
    elif isinstance(value, dict):
        if "nodes" in value:
            out.extend(extract_label_names(value["nodes"]))
        elif _str(value.get("name")):
            out.append(value["name"])
        elif _str(value.get("text")):
            out.extend(split_list_field(value["text"]))
    elif isinstance(value, str):
        out.extend(split_list_field(value))
    return out


def extract_assignee_logins(value: Any) -> List[str]:
    out: List[str] = []
    if isinstance(value, list):
        for entry in value:
            out.extend(extract_assignee_logins(entry))
    elif isinstance(value, dict):
        if "nodes" in value:
            out.extend(extract_assignee_logins(value["nodes"]))
        elif _str(value.get("login")):
            out.append(value["login"])
        elif _str(value.get("name")):
            out.append(value["name"])
        elif _str(value.get("text")):
            out.extend(split_list_field(value["text"]))
    elif isinstance(value, str):
        out.extend(split_list_field(value))
    return out


def parse_milestone(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        for key in ("title", "name", "text"):
            if _str(value.get(key)):
                return value[key]
    if isinstance(value, list):
        for entry in value:
            candidate = parse_milestone(entry)
            if candidate:
                return candidate
    return ""


def parse_parent_issue(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if not isinstance(value, dict):
        return ""
    for source in (value, value.get("content")):
        if not isinstance(source, dict):
            continue
        if _str(source.get("title")):
            return source["title"]
        number = _num(source.get("number"))
        if number and number > 0:
            return f"#{number}"
    return ""


def parse_sub_issue_count(value: Any) -> str:
    number = _num(value)
    if number is not None:
        return str(number) if number > 0 else ""
    if isinstance(value, dict):
        total = _num(value.get("totalCount"))
        if total and total > 0:
            return str(total)
        nodes = value.get("nodes")
        if isinstance(nodes, list) and nodes:
            return str(len(nodes))
    return ""


def _option_name(field_value: Dict[str, Any]) -> str:
    """Name (or id) of a single-select value in either known shape."""
    opt = field_value.get("singleSelectOption")
    if isinstance(opt, dict):
        return _str(opt.get("name")) or _str(opt.get("id"))
    if "optionId" in field_value:
        return _str(field_value.get("name")) or _str(field_value.get("optionId"))
    return ""


def _field_value_strings(fv: Dict[str, Any]) -> List[str]:
    collected: List[str] = []
    if _str(fv.get("iterationId")):
        collected.append(fv["iterationId"])
    if _str(fv.get("title")):
        collected.append(fv["title"])
    opt = fv.get("singleSelectOption")
    if isinstance(opt, dict):
        collected.extend(v for v in (_str(opt.get("name")), _str(opt.get("id"))) if v)
    elif "optionId" in fv:
        collected.extend(v for v in (_str(fv.get("name")), _str(fv.get("optionId"))) if v)
    if _str(fv.get("text")):
        collected.extend(split_list_field(fv["text"]))
    number = fv.get("number")
    if _num(number) is not None:
        collected.append(str(_num(number)))
    if "labels" in fv:
        collected.extend(extract_label_names(fv["labels"]))
    if "users" in fv:
        collected.extend(extract_assignee_logins(fv["users"]))
    if "milestone" in fv:
        milestone = parse_milestone(fv["milestone"])
        if milestone:
            collected.append(milestone)
    return collected


def apply_iteration_metadata(item: Item, data: Dict[str, Any]) -> bool:
    iteration_id = _str(data.get("iterationId"))
    if not iteration_id:
        return False
    item.iteration_id = iteration_id
    if isinstance(data.get("title"), str):
        item.iteration_name = data["title"]
    start = parse_date(data.get("startDate"))
    if start is not None:
        item.iteration_start = start
    duration = _num(data.get("duration"))
    if duration is not None:
        item.iteration_duration_days = duration
    return True


def _field_name(fv: Dict[str, Any]) -> str:
    name = _str(fv.get("fieldName"))
    if name:
        return name
    field = fv.get("field")
    if isinstance(field, dict):
        return _str(field.get("name"))
    return ""


def _apply_field_value(item: Item, name: str, fv: Dict[str, Any]) -> None:
    low = name.strip().lower()
    compact = compact_field_name(name)
    text = _str(fv.get("text"))
    if low == "status":
        if not item.status:
            item.status = _option_name(fv)
    elif low == "priority":
        if not item.priority:
            item.priority = _option_name(fv) or text
    elif low == "assignees":
        if not item.assignees:
            if "users" in fv:
                merge_unique(item.assignees, extract_assignee_logins(fv["users"]))
            elif text:
                merge_unique(item.assignees, split_list_field(text))
    elif low == "labels":
        if not item.labels:
            if "labels" in fv:
                merge_unique(item.labels, extract_label_names(fv["labels"]))
            elif text:
                merge_unique(item.labels, split_list_field(text))
    elif low == "milestone":
        if not item.milestone:
            if "milestone" in fv:
                item.milestone = parse_milestone(fv["milestone"])
            elif text:
                item.milestone = text
            elif isinstance(fv.get("singleSelectOption"), dict):
                item.milestone = parse_milestone(fv["singleSelectOption"])
            elif "optionId" in fv:
                item.milestone = _str(fv.get("name"))
    elif compact in SUB_ISSUE_FIELDS:
        if not item.sub_issue_progress:
            if "number" in fv:
                number = _num(fv["number"])
                if number and number > 0:
                    item.sub_issue_progress = str(number)
            elif text:
                item.sub_issue_progress = text
    elif compact in PARENT_FIELDS:
        if not item.parent_issue:
            item.parent_issue = text or _str(fv.get("title"))
    values = _field_value_strings(fv)
    if values:
        key = name.strip()
        item.field_values[key] = merge_unique(item.field_values.get(key, []), values)


# -----------------------------
# Items
# -----------------------------
def _apply_content(item: Item, content: Dict[str, Any]) -> None:
    item.content_id = _str(content.get("id"))
    item.type = _str(content.get("type")) or _str(content.get("__typename"))
    if not item.title:
        item.title = _str(content.get("title"))
    item.description = _str(content.get("body"))
    number = _num(content.get("number"))
    if number is not None:
        item.number = number
    item.url = _str(content.get("url"))
    if not item.status:
        item.status = _str(content.get("state"))
    repo = content.get("repository")
    if isinstance(repo, dict):
        repo = repo.get("nameWithOwner")
    if not item.repository:
        item.repository = _str(repo)
    if not item.milestone:
        item.milestone = parse_milestone(content.get("milestone"))
    merge_unique(item.assignees, extract_assignee_logins(content.get("assignees")))
    merge_unique(item.labels, extract_label_names(content.get("labels")))
    item.created_at = parse_timestamp(content.get("createdAt")) or item.created_at
    item.updated_at = parse_timestamp(content.get("updatedAt")) or item.updated_at


def parse_item(node: Any, position: int = 0) -> Optional[Item]:
    """Decode one project item; None only when ``node`` is not a mapping."""
    if not isinstance(node, dict):
        return None
    item = Item(id=_str(node.get("id")), title=_str(node.get("title")), position=position)
    content = node.get("content")
    if isinstance(content, dict):
        _apply_content(item, content)
    if not item.description:
        item.description = _str(node.get("body"))
    if not item.repository:
        item.repository = _str(node.get("repository"))
    if not item.milestone:
        item.milestone = parse_milestone(node.get("milestone"))

    status = node.get("status")
    if isinstance(status, str):
        item.status = status
    elif isinstance(status, dict):
        item.status = _str(status.get("name")) or _str(status.get("id")) or item.status

    for fv in _nodes(node.get("fieldValues")):
        if not isinstance(fv, dict):
            continue
        name = _field_name(fv)
        if name:
            _apply_field_value(item, name, fv)
        for sub in fv.values():
            if isinstance(sub, dict) and apply_iteration_metadata(item, sub):
                break
        if not item.iteration_id:
            apply_iteration_metadata(item, fv)

    if not item.parent_issue and isinstance(content, dict):
        for key in ("parent", "parentIssue"):
            if key in content:
                item.parent_issue = parse_parent_issue(content[key])
                break
    if not item.parent_issue and "parent" in node:
        item.parent_issue = parse_parent_issue(node["parent"])

    if not item.sub_issue_progress and isinstance(content, dict):
        for key in ("subIssues", "subIssue"):
            if key in content:
                item.sub_issue_progress = parse_sub_issue_count(content[key])
                break
    if not item.sub_issue_progress and "subIssues" in node:
        item.sub_issue_progress = parse_sub_issue_count(node["subIssues"])

    if not item.status:
        item.status = UNKNOWN_STATUS

    priority = node.get("priority")
    if isinstance(priority, str):
        item.priority = priority
    elif isinstance(priority, dict):
        item.priority = _str(priority.get("name")) or _str(priority.get("id")) or item.priority
    merge_unique(item.assignees, extract_assignee_logins(node.get("assignees")))
    merge_unique(item.labels, extract_label_names(node.get("labels")))
    if not item.iteration_id:
        for sub in node.values():
            if isinstance(sub, dict) and apply_iteration_metadata(item, sub):
                break
    item.created_at = parse_timestamp(node.get("createdAt")) or item.created_at
    item.updated_at = parse_timestamp(node.get("updatedAt")) or item.updated_at
    return item


def parse_item_list(payload: Any) -> List[Item]:
    if isinstance(payload, dict):
        payload = payload.get("items", payload.get("nodes"))
        if isinstance(payload, dict):
            payload = _nodes(payload)
    if not isinstance(payload, list):
        return []
    out: List[Item] = []
    for node in payload:
        item = parse_item(node, position=len(out))
        if item is not None:
            out.append(item)
    return out


# -----------------------------
# Project fields
# -----------------------------
def parse_field(node: Any) -> Optional[Field]:
    if not isinstance(node, dict):
        return None
    name = _str(node.get("name"))
    if not name:
        return None
    options: List[Option] = []
    for opt in _nodes(node.get("options")):
        if isinstance(opt, dict) and _str(opt.get("name")):
            options.append(Option(id=_str(opt.get("id")), name=opt["name"]))
    configuration = node.get("configuration")
    if isinstance(configuration, dict):
        for key in ("iterations", "completedIterations"):
            for it in _nodes(configuration.get(key)):
                if isinstance(it, dict) and _str(it.get("title")):
                    options.append(Option(id=_str(it.get("id")), name=it["title"]))
    return Field(id=_str(node.get("id")), name=name, options=options)


def parse_fields(payload: Any) -> List[Field]:
    out: List[Field] = []
    for node in _nodes(payload):
        field = parse_field(node)
        if field is not None:
            out.append(field)
    return out


def parse_timelines(payload: Any) -> List[Timeline]:
    """Iterations declared by the project's iteration fields, earliest first.

    Iterations without a start date keep their declared order after the dated ones.
    """
    seen: Dict[str, Timeline] = {}
    for node in _nodes(payload):
        configuration = node.get("configuration") if isinstance(node, dict) else None
        if not isinstance(configuration, dict):
            continue
        for key in ("completedIterations", "iterations"):
            for it in _nodes(configuration.get(key)):
                if not isinstance(it, dict) or not _str(it.get("title")):
                    continue
                ident = _str(it.get("id")) or it["title"]
                start = parse_date(it.get("startDate"))
                duration = _num(it.get("duration")) or 0
                end = start + dt.timedelta(days=duration) if start and duration else None
                seen.setdefault(ident, Timeline(id=_str(it.get("id")), name=it["title"], start=start, end=end))
    far = dt.datetime.max.replace(tzinfo=dt.timezone.utc)
    return sorted(seen.values(), key=lambda tl: tl.start or far)
