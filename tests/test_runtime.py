import asyncio
import logging

from conftest import make_item
from gh_project_board.models import ERROR
from gh_project_board.runtime import Runtime
from gh_project_board.state import KeyPress, Task


def run_keys(state, *keys):
    changes = []

    async def scenario():
        runtime = Runtime(state, on_change=lambda s: changes.append(s.mode))
        for key in keys:
            runtime.post(KeyPress(key))
        result = await runtime.run_until_idle()
        runtime.cancel_pending()
        return result

    return asyncio.run(scenario()), changes


def test_reload_runs_fetch_and_feeds_result_back(make_state, provider):
    provider.items = [make_item("PVTI_1"), make_item("PVTI_2")]
    state = make_state([])
    final, changes = run_keys(state, "R")
    assert [it.id for it in final.items] == ["PVTI_1", "PVTI_2"]
    assert final.focused_item_id == "PVTI_1"
    # one change for the key press, one for the fetch result
    assert len(changes) == 2


def test_message_and_task_latency_is_logged(make_state, provider, caplog):
    provider.items = [make_item("PVTI_1")]
    with caplog.at_level(logging.DEBUG, logger="gh_project_board"):
        run_keys(make_state([]), "R")
    assert "KeyPress handled in" in caplog.text
    assert "task fetch-project finished in" in caplog.text
    assert "FetchProjectResult handled in" in caplog.text


def test_failing_task_becomes_error_notification(make_state, provider):
    provider.results["update_status"] = RuntimeError("Status update failed: forbidden")
    state = make_state([make_item("PVTI_1")])
    final, _ = run_keys(state, "w", "enter")
    errors = [n.message for n in final.notifications if n.level == ERROR]
    assert errors == ["Error: Status update failed: forbidden"]
    assert final.items[0].status == "Todo"


def test_run_stops_on_quit(make_state):
    state = make_state([make_item("PVTI_1")])

    async def scenario():
        runtime = Runtime(state)
        runtime.post(KeyPress("j"))
        runtime.post(KeyPress("q"))
        return await runtime.run()

    final = asyncio.run(scenario())
    assert final.quit


def test_delayed_tasks_are_left_pending(make_state):
    state = make_state([])

    async def scenario():
        runtime = Runtime(state)
        runner = runtime.spawn(Task(run=lambda: KeyPress("q"), delay=60, name="later"))
        await runtime.run_until_idle()
        pending = not runner.done()
        runtime.cancel_pending()
        return pending, runtime.state.quit

    pending, quit_ = asyncio.run(scenario())
    assert pending
    assert not quit_
