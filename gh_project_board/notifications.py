from __future__ import annotations

import logging
from typing import List

from .models import ERROR, INFO, Notification
from .state import AppState, DismissNotification, Task

log = logging.getLogger('gh_project_board')

INFO_TTL = 3.0
HINT_TTL = 5.0
ERROR_TTL = 5.0


def _dismiss_task(notification_id: int, after: float) -> Task:
    return Task(run=lambda: DismissNotification(notification_id), delay=after, name="dismiss-notification")


def push(state: AppState, message: str, level: str = INFO, dismiss_after: float = INFO_TTL) -> List[Task]:
    """Append a notification with a fresh id and schedule its expiry."""
    nid = state.next_notification_id
    state.next_notification_id += 1
    state.notifications.append(
        Notification(id=nid, message=message, level=level, at=state.now(), dismiss_after=dismiss_after)
    )
    if level == ERROR:
        log.error(message)
    return [_dismiss_task(nid, dismiss_after)]


def info(state: AppState, message: str, dismiss_after: float = INFO_TTL) -> List[Task]:
    if state.suppress_hints:
        return []
    return push(state, message, INFO, dismiss_after)


def error(state: AppState, message: str) -> List[Task]:
    return push(state, message, ERROR, ERROR_TTL)


def dismiss(state: AppState, notification_id: int) -> bool:
    for notif in state.notifications:
        if notif.id == notification_id:
            notif.dismissed = True
            return True
    return False


def active(state: AppState) -> List[Notification]:
    return [n for n in state.notifications if not n.dismissed]
