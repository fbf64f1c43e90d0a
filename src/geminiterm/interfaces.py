"""Collaborator surfaces consumed by the chat loop."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from .models import Conversation, Gem, ModelOutput, UploadedFile


@runtime_checkable
class ChatSession(Protocol):
    """A live conversation with the remote service."""

    def send_message(self, prompt: str, files: Sequence[UploadedFile]) -> ModelOutput: ...

    def set_metadata(self, cid: str, rid: str, rcid: str) -> None: ...

    def cid(self) -> str: ...

    def rid(self) -> str: ...

    def rcid(self) -> str: ...

    def set_gem(self, gem_id: str) -> None: ...

    def get_model(self) -> str: ...

    def set_model(self, model: str) -> None: ...

    def last_output(self) -> ModelOutput | None: ...

    def choose_candidate(self, index: int) -> None: ...


@runtime_checkable
class RemoteClient(Protocol):
    """Authenticated client for the remote service."""

    def start_chat(self) -> ChatSession: ...

    def fetch_gems(self, include_hidden: bool = False) -> Sequence[Gem]: ...

    def upload_file(self, path: str) -> UploadedFile: ...


@runtime_checkable
class ImageDownloadingClient(Protocol):
    """Optional client capability used by ``/save``."""

    def download_selected_images(
        self,
        output: ModelOutput,
        indices: Sequence[int],
        directory: str,
        full_size: bool = True,
    ) -> list[str]: ...


@runtime_checkable
class HistoryStore(Protocol):
    """Minimal write-only history surface."""

    def add_message(self, conversation_id: str, role: str, content: str, thoughts: str = "") -> None: ...

    def update_metadata(self, conversation_id: str, cid: str, rid: str, rcid: str) -> None: ...

    def update_title(self, conversation_id: str, title: str) -> None: ...


@runtime_checkable
class FullHistoryStore(HistoryStore, Protocol):
    """History surface that also supports browsing, export, and favorites."""

    def list_conversations(self) -> list[Conversation]: ...

    def get_conversation(self, conversation_id: str) -> Conversation: ...

    def create_conversation(self, model: str) -> Conversation: ...

    def delete_conversation(self, conversation_id: str) -> None: ...

    def toggle_favorite(self, conversation_id: str) -> bool: ...

    def export_to_markdown(self, conversation_id: str) -> str: ...

    def export_to_json(self, conversation_id: str) -> str: ...

    def swap_conversations(self, first_id: str, second_id: str) -> None: ...


@runtime_checkable
class Tool(Protocol):
    """A locally executable tool advertised to the model."""

    name: str
    description: str

    def requires_confirmation(self, args: Mapping[str, Any]) -> bool: ...


@runtime_checkable
class ToolRegistry(Protocol):
    def get(self, name: str) -> Tool | None: ...


@runtime_checkable
class ToolExecutor(Protocol):
    """Runs a tool and returns ``(output, truncated)``; raises on failure."""

    def execute(self, name: str, args: Mapping[str, Any]) -> tuple[str, bool]: ...


@runtime_checkable
class HistoryManagerRunner(Protocol):
    """Runs the interactive history manager and returns a chosen conversation."""

    def run(self, store: FullHistoryStore) -> Conversation | None: ...


def as_full_history_store(store: HistoryStore | None) -> FullHistoryStore | None:
    """Return the store when it exposes the full surface, else ``None``."""
    if store is not None and isinstance(store, FullHistoryStore):
        return store
    return None
