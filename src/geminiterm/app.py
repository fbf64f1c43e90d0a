"""Textual driver for the chat loop.

The app owns no chat state: it turns terminal input into events, feeds
them to :meth:`ChatModel.update`, schedules the returned tasks, and paints
whatever :meth:`ChatModel.view_text` produces.
"""

from __future__ import annotations

import logging

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult, SuspendNotSupported
from textual.binding import Binding
from textual.widgets import Static

from .chat_model import ChatModel
from .events import Event, HistoryManaged, Key, Paste, WindowResize
from .task_manager import TaskManager
from .tasks import Task

LOGGER = logging.getLogger(__name__)


class GeminiTermApp(App[int]):
    """Full-screen host for a single :class:`ChatModel`."""

    CSS = """
    Screen {
        overflow: hidden;
    }
    #screen {
        width: 100%;
        height: 100%;
    }
    """
    ENABLE_COMMAND_PALETTE = False
    BINDINGS = [
        Binding("ctrl+c", "interrupt", show=False, priority=True),
    ]

    def __init__(self, model: ChatModel) -> None:
        super().__init__()
        self.model = model
        self._task_manager = TaskManager(self.dispatch_event)
        self._view_ready = False
        self._shutting_down = False

    def compose(self) -> ComposeResult:
        yield Static("", id="screen", markup=False)

    async def on_mount(self) -> None:
        self.title = self.model.settings.title
        self._view_ready = True
        self.model.update(WindowResize(width=self.size.width, height=self.size.height))
        LOGGER.info(
            "app.started",
            extra={"event": "app.started", "model": self.model.model_name},
        )
        self._schedule(self.model.init())
        self._paint()

    async def on_unmount(self) -> None:
        """Cancel and await all background tasks during shutdown."""
        self._shutting_down = True
        await self._task_manager.cancel_all()

    def on_resize(self, event: events.Resize) -> None:
        self.dispatch_event(WindowResize(width=event.size.width, height=event.size.height))

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self.dispatch_event(Key(key=event.key, character=event.character))

    def on_paste(self, event: events.Paste) -> None:
        event.stop()
        self.dispatch_event(Paste(text=event.text))

    def action_interrupt(self) -> None:
        self.dispatch_event(Key(key="ctrl+c"))

    def dispatch_event(self, event: Event) -> None:
        """Run one update cycle: update, schedule, repaint, maybe exit."""
        if self._shutting_down:
            return
        self._schedule(self.model.update(event))
        self._paint()
        if self.model.quitting:
            self._shutting_down = True
            self.exit(0)

    def _schedule(self, tasks: list[Task]) -> None:
        background: list[Task] = []
        for task in tasks:
            if task.suspend:
                self.call_later(self._run_suspended, task)
            else:
                background.append(task)
        self._task_manager.submit_all(background)

    def _run_suspended(self, task: Task) -> None:
        """Release the terminal while ``task`` talks to the user directly."""
        try:
            with self.suspend():
                event = task.fn()
        except SuspendNotSupported as exc:
            LOGGER.warning(
                "app.suspend.unsupported",
                extra={"event": "app.suspend.unsupported", "task": task.name},
            )
            event = HistoryManaged(error=exc)
        self.dispatch_event(event)

    def _paint(self) -> None:
        if not self._view_ready:
            return
        self.query_one("#screen", Static).update(Text.from_ansi(self.model.view_text()))
