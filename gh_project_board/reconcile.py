from __future__ import annotations

import dataclasses
import logging
from typing import List, Sequence

from .models import Item

log = logging.getLogger('gh_project_board')

UNKNOWN_STATUS = "Unknown"


def merge_item(existing: Item, partial: Item) -> Item:
    """Overlay the fields a remote mutation actually returned onto ``existing``.

    Empty lists and strings in ``partial`` mean "not returned", so a remote clear of
    assignees or labels cannot be told apart from an untouched field.
    """
    merged = dataclasses.replace(existing)
    if partial.assignees:
        merged.assignees = list(partial.assignees)
    if partial.labels:
        merged.labels = list(partial.labels)
    if partial.title:
        merged.title = partial.title
    if partial.status and partial.status != UNKNOWN_STATUS:
        merged.status = partial.status
    if partial.priority:
        merged.priority = partial.priority
    if partial.milestone:
        merged.milestone = partial.milestone
    if partial.description:
        merged.description = partial.description
    if partial.repository:
        merged.repository = partial.repository
    if partial.number:
        merged.number = partial.number
    return merged


def reconcile(items: Sequence[Item], index: int, partial: Item) -> List[Item]:
    out = list(items)
    if 0 <= index < len(out):
        out[index] = merge_item(out[index], partial)
    elif index == len(out):
        out.append(partial)
    else:
        log.warning("reconcile: index %s out of range for %s items; update dropped", index, len(out))
    return out
