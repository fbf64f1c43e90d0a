"""Conversation history on disk and best-effort recording for the chat loop."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
import json
import logging
import os
from pathlib import Path
from typing import Any
from uuid import uuid4

from .exceptions import NotFoundError, PersistenceError
from .interfaces import HistoryStore
from .models import (
    ROLE_ASSISTANT,
    ROLE_TOOL,
    ROLE_USER,
    ChatEntry,
    Conversation,
    StoredMessage,
)

LOGGER = logging.getLogger(__name__)

META_FILE_NAME = "meta.json"
META_VERSION = 1
TITLE_MAX_LENGTH = 50

_ROLE_LABELS = {
    ROLE_USER: "**User:**",
    ROLE_TOOL: "**Tool:**",
    ROLE_ASSISTANT: "**Gemini:**",
}


def _enforce_permissions(path: Path, mode: int = 0o600) -> None:
    """Set POSIX permissions on a file or directory; silently ignores failures."""
    if os.name != "posix":
        return
    try:
        path.chmod(mode)
    except OSError:
        pass


def title_from_message(content: str) -> str:
    """Derive a conversation title from the first user message."""
    first_line = content.strip().splitlines()[0] if content.strip() else ""
    if len(first_line) > TITLE_MAX_LENGTH:
        return first_line[:TITLE_MAX_LENGTH] + "..."
    return first_line


def entries_to_markdown(entries: Sequence[ChatEntry], title: str) -> str:
    """Render the in-memory chat log as Markdown."""
    parts: list[str] = []
    if title:
        parts.append(f"# {title}\n\n")
    for index, entry in enumerate(entries):
        if index > 0:
            parts.append("\n---\n\n")
        label = _ROLE_LABELS.get(entry.role, _ROLE_LABELS[ROLE_ASSISTANT])
        parts.append(f"{label}\n\n{entry.content}\n")
    return "".join(parts)


def entries_to_json(entries: Sequence[ChatEntry], title: str) -> str:
    """Render the in-memory chat log as an indented JSON document."""
    messages: list[dict[str, Any]] = []
    for entry in entries:
        item: dict[str, Any] = {"role": entry.role, "content": entry.content}
        if entry.thoughts:
            item["thoughts"] = entry.thoughts
        messages.append(item)
    return json.dumps({"title": title, "messages": messages}, ensure_ascii=False, indent=2)


class JsonHistoryStore:
    """Store each conversation as ``<id>.json`` plus a ``meta.json`` ordering index.

    The index keeps display order, cached titles, and favorite flags.
    Conversation files missing from the index are prepended to the order.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()

    @property
    def meta_path(self) -> Path:
        return self.directory / META_FILE_NAME

    def _ensure_paths(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"failed to create history directory: {exc}") from exc
        _enforce_permissions(self.directory, 0o700)

    def _conversation_path(self, conversation_id: str) -> Path:
        if not conversation_id or "/" in conversation_id or conversation_id.startswith("."):
            raise NotFoundError(f"conversation not found: {conversation_id}")
        return self.directory / f"{conversation_id}.json"

    def _read_json(self, path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"failed to read {path.name}: {exc}") from exc

    def _write_json(self, path: Path, payload: Any) -> None:
        self._ensure_paths()
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            tmp_path.write_text(
                json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8"
            )
            _enforce_permissions(tmp_path)
            os.replace(tmp_path, path)
        except OSError as exc:
            raise PersistenceError(f"failed to write {path.name}: {exc}") from exc

    def _load_meta(self) -> dict[str, Any]:
        try:
            payload = self._read_json(self.meta_path)
        except FileNotFoundError:
            payload = None
        except PersistenceError:
            LOGGER.warning(
                "persistence.meta.corrupt",
                extra={"event": "persistence.meta.corrupt", "path": str(self.meta_path)},
            )
            payload = None
        if not isinstance(payload, dict):
            return {"version": META_VERSION, "order": [], "meta": {}}
        order = [item for item in payload.get("order", []) if isinstance(item, str)]
        meta = payload.get("meta") if isinstance(payload.get("meta"), dict) else {}
        return {"version": META_VERSION, "order": order, "meta": meta}

    def _save_meta(self, meta: dict[str, Any]) -> None:
        self._write_json(self.meta_path, meta)

    def _load(self, conversation_id: str) -> Conversation:
        path = self._conversation_path(conversation_id)
        try:
            payload = self._read_json(path)
        except FileNotFoundError:
            raise NotFoundError(f"conversation not found: {conversation_id}") from None
        if not isinstance(payload, dict):
            raise PersistenceError(f"conversation payload is invalid: {conversation_id}")
        return Conversation.from_dict(payload)

    def _save(self, conversation: Conversation) -> None:
        self._write_json(self._conversation_path(conversation.id), conversation.to_dict())

    def _update_meta_entry(self, conversation_id: str, **fields: Any) -> None:
        meta = self._load_meta()
        entry = meta["meta"].setdefault(
            conversation_id, {"id": conversation_id, "title": "", "is_favorite": False}
        )
        entry.update(fields)
        if conversation_id not in meta["order"]:
            meta["order"].insert(0, conversation_id)
        self._save_meta(meta)

    def create_conversation(self, model: str) -> Conversation:
        now = datetime.now(UTC)
        conversation = Conversation(
            id=f"conv_{now.strftime('%Y%m%d%H%M%S')}_{uuid4().hex[:8]}",
            title=f"Chat {now.astimezone().strftime('%Y-%m-%d %H:%M')}",
            model=model,
            created_at=now,
            updated_at=now,
        )
        self._save(conversation)
        self._update_meta_entry(conversation.id, title=conversation.title)
        return conversation

    def get_conversation(self, conversation_id: str) -> Conversation:
        conversation = self._load(conversation_id)
        entry = self._load_meta()["meta"].get(conversation_id)
        if isinstance(entry, dict):
            conversation.is_favorite = bool(entry.get("is_favorite", False))
        return conversation

    def list_conversations(self) -> list[Conversation]:
        """Return conversations in display order, skipping unreadable files."""
        self._ensure_paths()
        found: dict[str, Conversation] = {}
        for path in sorted(self.directory.glob("*.json")):
            if path.name == META_FILE_NAME:
                continue
            try:
                found[path.stem] = self._load(path.stem)
            except (PersistenceError, NotFoundError):
                continue

        meta = self._load_meta()
        order = [item for item in meta["order"] if item in found]
        changed = len(order) != len(meta["order"])
        missing = sorted(
            (cid for cid in found if cid not in order),
            key=lambda cid: found[cid].updated_at,
        )
        for conversation_id in missing:
            order.insert(0, conversation_id)
            meta["meta"][conversation_id] = {
                "id": conversation_id,
                "title": found[conversation_id].title,
                "is_favorite": False,
            }
            changed = True
        for stale in [key for key in meta["meta"] if key not in found]:
            del meta["meta"][stale]
            changed = True
        if changed:
            meta["order"] = order
            self._save_meta(meta)

        conversations: list[Conversation] = []
        for conversation_id in order:
            conversation = found[conversation_id]
            entry = meta["meta"].get(conversation_id) or {}
            conversation.is_favorite = bool(entry.get("is_favorite", False))
            conversations.append(conversation)
        return conversations

    def add_message(self, conversation_id: str, role: str, content: str, thoughts: str = "") -> None:
        conversation = self._load(conversation_id)
        now = datetime.now(UTC)
        conversation.messages.append(
            StoredMessage(role=role, content=content, thoughts=thoughts, timestamp=now)
        )
        conversation.updated_at = now
        retitled = role == ROLE_USER and len(conversation.messages) == 1
        if retitled:
            conversation.title = title_from_message(content) or conversation.title
        self._save(conversation)
        if retitled:
            self._update_meta_entry(conversation_id, title=conversation.title)

    def update_metadata(self, conversation_id: str, cid: str, rid: str, rcid: str) -> None:
        conversation = self._load(conversation_id)
        conversation.cid, conversation.rid, conversation.rcid = cid, rid, rcid
        conversation.updated_at = datetime.now(UTC)
        self._save(conversation)

    def update_title(self, conversation_id: str, title: str) -> None:
        conversation = self._load(conversation_id)
        conversation.title = title
        conversation.updated_at = datetime.now(UTC)
        self._save(conversation)
        self._update_meta_entry(conversation_id, title=title)

    def delete_conversation(self, conversation_id: str) -> None:
        path = self._conversation_path(conversation_id)
        try:
            path.unlink()
        except FileNotFoundError:
            raise NotFoundError(f"conversation not found: {conversation_id}") from None
        except OSError as exc:
            raise PersistenceError(f"failed to delete conversation: {exc}") from exc
        meta = self._load_meta()
        meta["order"] = [item for item in meta["order"] if item != conversation_id]
        meta["meta"].pop(conversation_id, None)
        self._save_meta(meta)

    def toggle_favorite(self, conversation_id: str) -> bool:
        """Flip the favorite flag and return the new value."""
        self._load(conversation_id)
        meta = self._load_meta()
        entry = meta["meta"].get(conversation_id) or {"id": conversation_id, "title": ""}
        entry["is_favorite"] = not bool(entry.get("is_favorite", False))
        self._update_meta_entry(conversation_id, **entry)
        return entry["is_favorite"]

    def swap_conversations(self, first_id: str, second_id: str) -> None:
        meta = self._load_meta()
        order = meta["order"]
        for conversation_id in (first_id, second_id):
            if conversation_id not in order:
                raise NotFoundError(f"conversation not found: {conversation_id}")
        first, second = order.index(first_id), order.index(second_id)
        order[first], order[second] = order[second], order[first]
        self._save_meta(meta)

    def export_to_markdown(self, conversation_id: str) -> str:
        conversation = self.get_conversation(conversation_id)
        parts = [
            f"# {conversation.title}\n\n",
            f"**Model:** {conversation.model}\n",
            f"**Created:** {conversation.created_at.astimezone().strftime('%Y-%m-%d %H:%M:%S')}\n",
            f"**Updated:** {conversation.updated_at.astimezone().strftime('%Y-%m-%d %H:%M:%S')}\n",
            f"**Messages:** {len(conversation.messages)}\n\n---\n\n",
        ]
        for index, message in enumerate(conversation.messages):
            label = _ROLE_LABELS.get(message.role, _ROLE_LABELS[ROLE_ASSISTANT])
            stamp = message.timestamp.astimezone().strftime("%H:%M:%S")
            parts.append(f"{label} ({stamp})\n\n")
            if message.thoughts:
                parts.append(
                    f"<details>\n<summary>💭 Thinking</summary>\n\n{message.thoughts}\n\n</details>\n\n"
                )
            parts.append(f"{message.content}\n")
            if index < len(conversation.messages) - 1:
                parts.append("\n---\n\n")
        return "".join(parts)

    def export_to_json(self, conversation_id: str) -> str:
        conversation = self.get_conversation(conversation_id)
        payload = conversation.to_dict()
        payload.pop("is_favorite", None)
        for key in ("cid", "rid", "rcid"):
            if not payload[key]:
                payload.pop(key)
        return json.dumps(payload, ensure_ascii=False, indent=2)


class BestEffortRecorder:
    """Wrap a history store so write failures are logged instead of raised."""

    def __init__(self, store: HistoryStore | None) -> None:
        self.store = store

    def _guard(self, operation: str, conversation_id: str, fn: Any, *args: Any) -> bool:
        if self.store is None or not conversation_id:
            return False
        try:
            fn(conversation_id, *args)
        except Exception as exc:  # noqa: BLE001 - persistence must never abort the session.
            LOGGER.warning(
                f"persistence.{operation}.failed",
                extra={
                    "event": f"persistence.{operation}.failed",
                    "conversation_id": conversation_id,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return False
        return True

    def add_message(self, conversation_id: str, role: str, content: str, thoughts: str = "") -> bool:
        store = self.store
        return store is not None and self._guard(
            "add_message", conversation_id, store.add_message, role, content, thoughts
        )

    def update_metadata(self, conversation_id: str, cid: str, rid: str, rcid: str) -> bool:
        store = self.store
        return store is not None and self._guard(
            "update_metadata", conversation_id, store.update_metadata, cid, rid, rcid
        )
