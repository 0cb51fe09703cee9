import logging

from gh_project_board import notifications
from gh_project_board.models import ERROR, INFO
from gh_project_board.state import AppState, DismissNotification


def test_push_assigns_increasing_ids_and_schedules_dismissal():
    state = AppState()
    first = notifications.push(state, "one")
    notifications.push(state, "two")
    assert [n.id for n in state.notifications] == [1, 2]
    assert first[0].delay == notifications.INFO_TTL
    msg = first[0].run()
    assert isinstance(msg, DismissNotification)
    assert msg.id == 1


def test_dismiss_targets_one_notification():
    state = AppState()
    notifications.push(state, "one")
    notifications.push(state, "two")
    assert notifications.dismiss(state, 2)
    assert [n.message for n in notifications.active(state)] == ["one"]
    assert not notifications.dismiss(state, 99)


def test_info_respects_suppress_hints():
    state = AppState(suppress_hints=True)
    assert notifications.info(state, "hint") == []
    assert state.notifications == []
    tasks = notifications.error(state, "bad")
    assert tasks[0].delay == notifications.ERROR_TTL
    assert state.notifications[0].level == ERROR


def test_error_is_logged(caplog):
    state = AppState()
    with caplog.at_level(logging.ERROR, logger="gh_project_board"):
        notifications.error(state, "Error: boom")
    assert "Error: boom" in caplog.text
    assert notifications.active(state)[0].level != INFO
