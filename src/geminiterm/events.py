"""Events consumed by the chat loop's update function."""

from __future__ import annotations

from dataclasses import dataclass, field

from .models import Conversation, Gem, ModelOutput, UploadedFile
from .tooling import ToolCall, ToolResult


@dataclass(frozen=True)
class WindowResize:
    width: int
    height: int


@dataclass(frozen=True)
class Key:
    """A key press using textual key names (``enter``, ``ctrl+c``, ``up``)."""

    key: str
    character: str | None = None

    @property
    def is_printable(self) -> bool:
        return self.character is not None and len(self.character) == 1 and self.character.isprintable()


@dataclass(frozen=True)
class Paste:
    text: str


@dataclass(frozen=True)
class AnimationTick:
    pass


@dataclass(frozen=True)
class ResponseReceived:
    output: ModelOutput


@dataclass(frozen=True)
class RequestFailed:
    error: BaseException


@dataclass(frozen=True)
class GemsLoaded:
    gems: list[Gem] = field(default_factory=list)
    error: BaseException | None = None


@dataclass(frozen=True)
class HistoryLoaded:
    conversations: list[Conversation] = field(default_factory=list)
    error: BaseException | None = None


@dataclass(frozen=True)
class FileUploaded:
    file: UploadedFile | None = None
    error: BaseException | None = None


@dataclass(frozen=True)
class ExportFinished:
    path: str = ""
    format: str = ""
    size: int = 0
    overwrite: bool = False
    error: BaseException | None = None


@dataclass(frozen=True)
class ImagesDownloaded:
    paths: list[str] = field(default_factory=list)
    directory: str = ""
    error: BaseException | None = None


@dataclass(frozen=True)
class ToolExecuted:
    call: ToolCall
    result: ToolResult
    turn: int = 0


@dataclass(frozen=True)
class InitialPrompt:
    prompt: str


@dataclass(frozen=True)
class HistoryManaged:
    """Returned after the external history manager exits."""

    conversation: Conversation | None = None
    error: BaseException | None = None


Event = (
    WindowResize
    | Key
    | Paste
    | AnimationTick
    | ResponseReceived
    | RequestFailed
    | GemsLoaded
    | HistoryLoaded
    | FileUploaded
    | ExportFinished
    | ImagesDownloaded
    | ToolExecuted
    | InitialPrompt
    | HistoryManaged
)
