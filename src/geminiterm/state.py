"""View states and the editable input buffer owned by the chat loop."""

from __future__ import annotations

from dataclasses import dataclass, field

from .models import Conversation, Gem, WebImage
from .tooling import ToolCall

PICKER_WINDOW = 8


@dataclass
class InputBuffer:
    """Single text area with a cursor; lines are joined with ``\\n``."""

    text: str = ""
    cursor: int = 0
    width: int = 80

    def insert(self, value: str) -> None:
        self.text = self.text[: self.cursor] + value + self.text[self.cursor :]
        self.cursor += len(value)

    def backspace(self) -> None:
        if self.cursor == 0:
            return
        self.text = self.text[: self.cursor - 1] + self.text[self.cursor :]
        self.cursor -= 1

    def delete(self) -> None:
        self.text = self.text[: self.cursor] + self.text[self.cursor + 1 :]

    def move(self, offset: int) -> None:
        self.cursor = max(0, min(len(self.text), self.cursor + offset))

    def home(self) -> None:
        self.cursor = self.text.rfind("\n", 0, self.cursor) + 1

    def end(self) -> None:
        newline = self.text.find("\n", self.cursor)
        self.cursor = len(self.text) if newline == -1 else newline

    def set(self, value: str) -> None:
        self.text = value
        self.cursor = len(value)

    def clear(self) -> None:
        self.set("")


@dataclass
class ChatView:
    """Default view: message log plus input."""


@dataclass
class _FilteredPicker:
    cursor: int = 0
    filter: str = ""
    loading: bool = True

    def _items(self) -> list:
        raise NotImplementedError

    def size(self) -> int:
        return len(self._items())

    def move(self, step: int) -> None:
        count = self.size()
        if count == 0:
            self.cursor = 0
            return
        self.cursor = (self.cursor + step) % count

    def type_char(self, char: str) -> None:
        self.filter += char
        self.cursor = 0

    def erase_char(self) -> None:
        if self.filter:
            self.filter = self.filter[:-1]
        self.cursor = 0


@dataclass
class GemPicker(_FilteredPicker):
    gems: list[Gem] = field(default_factory=list)

    def visible(self) -> list[Gem]:
        needle = self.filter.lower()
        if not needle:
            return list(self.gems)
        return [
            gem
            for gem in self.gems
            if needle in gem.name.lower() or needle in gem.description.lower()
        ]

    def _items(self) -> list:
        return self.visible()

    def selected(self) -> Gem | None:
        items = self.visible()
        if 0 <= self.cursor < len(items):
            return items[self.cursor]
        return None


@dataclass
class HistoryPicker(_FilteredPicker):
    """Conversation list with a synthetic "New Conversation" row at index 0."""

    conversations: list[Conversation] = field(default_factory=list)

    def visible(self) -> list[Conversation]:
        needle = self.filter.lower()
        if not needle:
            return list(self.conversations)
        return [item for item in self.conversations if needle in item.title.lower()]

    def _items(self) -> list:
        return [None, *self.visible()]

    def is_new_selected(self) -> bool:
        return self.cursor == 0

    def selected(self) -> Conversation | None:
        items = self.visible()
        index = self.cursor - 1
        if 0 <= index < len(items):
            return items[index]
        return None


@dataclass
class ImagePicker:
    """Multi-select list over the images of the last response."""

    images: list[WebImage] = field(default_factory=list)
    directory: str = ""
    cursor: int = 0
    selected: set[int] = field(default_factory=set)

    def size(self) -> int:
        return len(self.images)

    def move(self, step: int) -> None:
        if not self.images:
            self.cursor = 0
            return
        self.cursor = (self.cursor + step) % len(self.images)

    def toggle(self) -> None:
        if not self.images:
            return
        if self.cursor in self.selected:
            self.selected.discard(self.cursor)
        else:
            self.selected.add(self.cursor)

    def select_all(self) -> None:
        self.selected = set(range(len(self.images)))

    def select_none(self) -> None:
        self.selected = set()

    def selected_indices(self) -> list[int]:
        return sorted(self.selected)


@dataclass
class ConfirmTool:
    call: ToolCall


ViewState = ChatView | GemPicker | HistoryPicker | ImagePicker | ConfirmTool


def window_bounds(cursor: int, total: int, size: int = PICKER_WINDOW) -> tuple[int, int]:
    """Return ``[start, end)`` of a scroll window of ``size`` rows centered on ``cursor``."""
    if total <= size:
        return 0, total
    start = max(0, cursor - size // 2)
    end = start + size
    if end > total:
        end = total
        start = end - size
    return start, end
