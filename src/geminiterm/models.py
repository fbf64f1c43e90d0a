"""Plain data types shared by the chat loop and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_TOOL = "tool"

EXTENSIONS: tuple[str, ...] = (
    "@Gmail",
    "@YouTube",
    "@GoogleMaps",
    "@GoogleFlights",
    "@GoogleHotels",
    "@GoogleWorkspace",
)


def detect_extension(prompt: str) -> str:
    """Return the extension token the prompt starts with, or ``""``."""
    trimmed = prompt.strip()
    for extension in EXTENSIONS:
        if trimmed.startswith(extension):
            return extension
    return ""


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class WebImage:
    """An image attached to a model response."""

    url: str
    title: str = ""
    alt: str = ""
    generated: bool = False


@dataclass(frozen=True)
class ChatEntry:
    """One rendered line item of the chat log; never mutated after append."""

    role: str
    content: str
    thoughts: str = ""
    images: tuple[WebImage, ...] = ()


@dataclass(frozen=True)
class Gem:
    """A server-side persona ("gem")."""

    id: str
    name: str
    description: str = ""
    prompt: str = ""
    predefined: bool = False


@dataclass(frozen=True)
class UploadedFile:
    """Opaque handle returned by the remote client after an upload."""

    resource_id: str
    file_name: str
    mime_type: str = ""
    size: int = 0


@dataclass
class Candidate:
    rcid: str = ""
    text: str = ""
    thoughts: str = ""
    web_images: list[WebImage] = field(default_factory=list)
    generated_images: list[WebImage] = field(default_factory=list)


@dataclass
class ModelOutput:
    """A complete reply from the service, possibly with several candidates."""

    candidates: list[Candidate] = field(default_factory=list)
    metadata: list[str] = field(default_factory=list)
    chosen: int = 0

    def _candidate(self) -> Candidate | None:
        if not self.candidates:
            return None
        if 0 <= self.chosen < len(self.candidates):
            return self.candidates[self.chosen]
        return self.candidates[0]

    def text(self) -> str:
        candidate = self._candidate()
        return candidate.text if candidate else ""

    def thoughts(self) -> str:
        candidate = self._candidate()
        return candidate.thoughts if candidate else ""

    def images(self) -> list[WebImage]:
        candidate = self._candidate()
        if candidate is None:
            return []
        return [*candidate.web_images, *candidate.generated_images]

    def cid(self) -> str:
        return self.metadata[0] if len(self.metadata) > 0 else ""

    def rid(self) -> str:
        return self.metadata[1] if len(self.metadata) > 1 else ""

    def rcid(self) -> str:
        candidate = self._candidate()
        if candidate and candidate.rcid:
            return candidate.rcid
        return self.metadata[2] if len(self.metadata) > 2 else ""


@dataclass
class StoredMessage:
    """A message as persisted in a conversation record."""

    role: str
    content: str
    thoughts: str = ""
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.thoughts:
            payload["thoughts"] = self.thoughts
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoredMessage:
        return cls(
            role=str(data.get("role", ROLE_ASSISTANT)),
            content=str(data.get("content", "")),
            thoughts=str(data.get("thoughts", "") or ""),
            timestamp=_parse_time(data.get("timestamp")),
        )


@dataclass
class Conversation:
    """A persisted conversation with its session metadata triple."""

    id: str
    title: str = ""
    model: str = ""
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    messages: list[StoredMessage] = field(default_factory=list)
    cid: str = ""
    rid: str = ""
    rcid: str = ""
    is_favorite: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "model": self.model,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "messages": [message.to_dict() for message in self.messages],
            "cid": self.cid,
            "rid": self.rid,
            "rcid": self.rcid,
            "is_favorite": self.is_favorite,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Conversation:
        raw_messages = data.get("messages") or []
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "") or ""),
            model=str(data.get("model", "") or ""),
            created_at=_parse_time(data.get("created_at")),
            updated_at=_parse_time(data.get("updated_at")),
            messages=[
                StoredMessage.from_dict(item)
                for item in raw_messages
                if isinstance(item, dict)
            ],
            cid=str(data.get("cid", "") or ""),
            rid=str(data.get("rid", "") or ""),
            rcid=str(data.get("rcid", "") or ""),
            is_favorite=bool(data.get("is_favorite", False)),
        )


def _parse_time(value: Any) -> datetime:
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return utc_now()
