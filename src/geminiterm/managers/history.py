"""Full-screen conversation manager run while the chat UI is suspended.

Lists stored conversations in a rich table and offers open, delete,
favorite, rename and reorder actions until the user opens one or quits.
"""

from __future__ import annotations

import logging
from typing import IO

from rich.console import Console
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from ..exceptions import GeminiTermError
from ..interfaces import FullHistoryStore
from ..models import Conversation

LOGGER = logging.getLogger(__name__)

ACTIONS = {
    "o": "open",
    "d": "delete",
    "f": "favorite",
    "r": "rename",
    "u": "move up",
    "m": "move down",
    "q": "back to chat",
}


class HistoryManager:
    """Interactive manager over a :class:`FullHistoryStore`.

    ``stream`` lets tests feed answers instead of reading the terminal.
    """

    def __init__(self, console: Console | None = None, stream: IO[str] | None = None) -> None:
        self.console = console or Console()
        self._stream = stream

    def run(self, store: FullHistoryStore) -> Conversation | None:
        """Loop until a conversation is opened (returned) or the user quits."""
        while True:
            conversations = store.list_conversations()
            self._show(conversations)
            if not conversations:
                self.console.print("[dim]No conversations yet.[/dim]")
                return None

            action = Prompt.ask(
                "Action",
                choices=list(ACTIONS),
                default="q",
                console=self.console,
                stream=self._stream,
            )
            if action == "q":
                return None

            index = self._ask_index(len(conversations))
            target = conversations[index]
            try:
                opened = self._apply(store, action, conversations, index)
            except GeminiTermError as exc:
                self.console.print(f"[red]⚠ {exc}[/red]")
                LOGGER.warning(
                    "history.manage.failed",
                    extra={"event": "history.manage.failed", "action": ACTIONS[action], "error": str(exc)},
                )
                continue
            if opened:
                return store.get_conversation(target.id)

    def _ask_index(self, total: int) -> int:
        while True:
            number = IntPrompt.ask("Conversation #", console=self.console, stream=self._stream)
            if 1 <= number <= total:
                return number - 1
            self.console.print(f"[red]Enter a number between 1 and {total}[/red]")

    def _apply(
        self,
        store: FullHistoryStore,
        action: str,
        conversations: list[Conversation],
        index: int,
    ) -> bool:
        target = conversations[index]
        if action == "o":
            return True
        if action == "d":
            if Confirm.ask(
                f"Delete '{target.title}'?", console=self.console, stream=self._stream
            ):
                store.delete_conversation(target.id)
                self.console.print(f"[green]✓ Deleted {target.title}[/green]")
        elif action == "f":
            starred = store.toggle_favorite(target.id)
            self.console.print("★ Added to favorites" if starred else "☆ Removed from favorites")
        elif action == "r":
            title = Prompt.ask(
                "New title", default=target.title, console=self.console, stream=self._stream
            ).strip()
            if title:
                store.update_title(target.id, title)
        elif action == "u" and index > 0:
            store.swap_conversations(target.id, conversations[index - 1].id)
        elif action == "m" and index < len(conversations) - 1:
            store.swap_conversations(target.id, conversations[index + 1].id)
        return False

    def _show(self, conversations: list[Conversation]) -> None:
        table = Table(title="📜 Conversations", expand=True)
        table.add_column("#", justify="right", style="dim")
        table.add_column("", width=1)
        table.add_column("Title")
        table.add_column("Model", style="cyan")
        table.add_column("Messages", justify="right")
        table.add_column("Updated", style="dim")
        for number, conversation in enumerate(conversations, start=1):
            table.add_row(
                str(number),
                "★" if conversation.is_favorite else "",
                conversation.title,
                conversation.model,
                str(len(conversation.messages)),
                conversation.updated_at.astimezone().strftime("%Y-%m-%d %H:%M"),
            )
        self.console.print(table)
        legend = "  ".join(f"[bold]{key}[/bold] {label}" for key, label in ACTIONS.items())
        self.console.print(legend)
