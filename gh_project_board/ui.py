"""Full-screen prompt_toolkit shell around the runtime.

Key presses are translated to canonical key names and posted to the runtime
queue; rendering reads the runtime's current state on every redraw.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from prompt_toolkit import Application
from prompt_toolkit.filters import Condition
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import HSplit, Layout, Window
from prompt_toolkit.layout.containers import ConditionalContainer, Float, FloatContainer
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.styles import Style
from prompt_toolkit.widgets import Frame

from .render import render_body, render_footer, render_header, render_select
from .runtime import Runtime
from .state import SELECT_MODES, AppState, KeyPress, WindowResized
from .themes import ThemePreset
from .update import fetch_project_task

log = logging.getLogger('gh_project_board')

KEY_NAMES = {
    Keys.Escape: "esc",
    Keys.ControlM: "enter",
    Keys.ControlJ: "enter",
    Keys.ControlI: "tab",
    Keys.BackTab: "shift+tab",
    Keys.ControlH: "backspace",
    Keys.Delete: "delete",
    Keys.Up: "up",
    Keys.Down: "down",
    Keys.Left: "left",
    Keys.Right: "right",
    Keys.Home: "home",
    Keys.End: "end",
    Keys.ControlC: "ctrl+c",
    Keys.ControlR: "ctrl+r",
    Keys.ControlU: "ctrl+u",
}


def translate_key(key: object, data: str = "") -> Optional[str]:
    """Map a prompt_toolkit key press to the names ``update.handle_key`` understands."""
    name = KEY_NAMES.get(key)
    if name is not None:
        return name
    if data == " ":
        return "space"
    if len(data) == 1 and data.isprintable():
        return data
    return None


def build_key_bindings(runtime: Runtime) -> KeyBindings:
    kb = KeyBindings()

    def post(event) -> None:
        key = event.key_sequence[0].key if event.key_sequence else None
        name = translate_key(key, event.data or "")
        if name is None:
            return
        runtime.post(KeyPress(name))

    for key in KEY_NAMES:
        kb.add(key)(post)
    kb.add(Keys.Any)(post)
    return kb


def run_ui(state: AppState, theme: ThemePreset) -> AppState:
    runtime = Runtime(state)

    header = Window(FormattedTextControl(lambda: render_header(runtime.state)), height=1, style="class:header")
    body = Window(FormattedTextControl(lambda: render_body(runtime.state)), wrap_lines=False)
    footer = Window(FormattedTextControl(lambda: render_footer(runtime.state)), height=3)
    popup = ConditionalContainer(
        Frame(Window(FormattedTextControl(lambda: render_select(runtime.state))), style="class:popup"),
        filter=Condition(lambda: runtime.state.mode in SELECT_MODES),
    )
    container = FloatContainer(
        content=HSplit([header, Window(height=1, char='─'), body, footer]),
        floats=[Float(content=popup, top=3, left=6)],
    )

    def on_invalidate(app: Application) -> None:
        size = app.output.get_size()
        if (size.columns, size.rows) != (runtime.state.width, runtime.state.height):
            runtime.post(WindowResized(width=size.columns, height=size.rows))

    app = Application(layout=Layout(container), key_bindings=build_key_bindings(runtime), full_screen=True,
                      style=Style.from_dict(theme.style), on_invalidate=on_invalidate)
    app.ttimeoutlen = 0.05
    runtime.on_change = lambda _state: app.invalidate()

    async def _main() -> AppState:
        consumer = asyncio.ensure_future(runtime.run())

        def _stop(_task: asyncio.Future) -> None:
            if app.is_running:
                app.exit()

        consumer.add_done_callback(_stop)
        size = app.output.get_size()
        runtime.post(WindowResized(width=size.columns, height=size.rows))
        if state.project.id:
            runtime.spawn(fetch_project_task(runtime.state))
        try:
            await app.run_async()
        finally:
            if not consumer.done():
                consumer.cancel()
            runtime.cancel_pending()
        if consumer.done() and not consumer.cancelled() and consumer.exception() is not None:
            raise consumer.exception()
        return runtime.state

    log.info("starting UI for project %s", state.project.id)
    return asyncio.run(_main())
