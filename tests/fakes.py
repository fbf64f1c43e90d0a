"""In-memory collaborators shared by the chat loop tests."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from geminiterm.chat_model import ChatModel
from geminiterm.events import Event, Key
from geminiterm.exceptions import ToolExecutionError
from geminiterm.models import Candidate, Gem, ModelOutput, UploadedFile, WebImage
from geminiterm.tasks import Task


def reply(
    text: str,
    *,
    thoughts: str = "",
    images: Sequence[WebImage] = (),
    metadata: Sequence[str] = ("c_1", "r_1", "rc_1"),
) -> ModelOutput:
    return ModelOutput(
        candidates=[Candidate(text=text, thoughts=thoughts, web_images=list(images))],
        metadata=list(metadata),
    )


class FakeSession:
    """Chat session that replays queued replies (or raises queued errors)."""

    def __init__(self, *replies: ModelOutput | BaseException) -> None:
        self.replies: list[ModelOutput | BaseException] = list(replies)
        self.sent: list[tuple[str, list[UploadedFile]]] = []
        self.gem_id = ""
        self.model = "gemini-2.5-flash"
        self.metadata: tuple[str, str, str] = ("", "", "")
        self._last: ModelOutput | None = None

    def send_message(self, prompt: str, files: Sequence[UploadedFile]) -> ModelOutput:
        self.sent.append((prompt, list(files)))
        if not self.replies:
            raise AssertionError("no reply queued")
        item = self.replies.pop(0)
        if isinstance(item, BaseException):
            raise item
        self._last = item
        self.metadata = (item.cid(), item.rid(), item.rcid())
        return item

    def set_metadata(self, cid: str, rid: str, rcid: str) -> None:
        self.metadata = (cid, rid, rcid)

    def cid(self) -> str:
        return self.metadata[0]

    def rid(self) -> str:
        return self.metadata[1]

    def rcid(self) -> str:
        return self.metadata[2]

    def set_gem(self, gem_id: str) -> None:
        self.gem_id = gem_id

    def get_model(self) -> str:
        return self.model

    def set_model(self, model: str) -> None:
        self.model = model

    def last_output(self) -> ModelOutput | None:
        return self._last

    def choose_candidate(self, index: int) -> None:
        if self._last is not None:
            self._last.chosen = index


class FakeClient:
    def __init__(
        self,
        session: FakeSession | None = None,
        gems: Sequence[Gem] = (),
        upload: UploadedFile | BaseException | None = None,
    ) -> None:
        self.session = session or FakeSession()
        self.gems = list(gems)
        self.upload = upload
        self.uploaded: list[str] = []

    def start_chat(self) -> FakeSession:
        return self.session

    def fetch_gems(self, include_hidden: bool = False) -> Sequence[Gem]:
        return list(self.gems)

    def upload_file(self, path: str) -> UploadedFile:
        self.uploaded.append(path)
        if isinstance(self.upload, BaseException):
            raise self.upload
        return self.upload or UploadedFile(resource_id="res_1", file_name=path.rsplit("/", 1)[-1])


class RecordingStore:
    """Minimal history store; ``fail`` makes every write raise."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.messages: list[tuple[str, str, str, str]] = []
        self.metadata: list[tuple[str, str, str, str]] = []
        self.titles: list[tuple[str, str]] = []

    def _check(self) -> None:
        if self.fail:
            raise OSError("disk full")

    def add_message(self, conversation_id: str, role: str, content: str, thoughts: str = "") -> None:
        self._check()
        self.messages.append((conversation_id, role, content, thoughts))

    def update_metadata(self, conversation_id: str, cid: str, rid: str, rcid: str) -> None:
        self._check()
        self.metadata.append((conversation_id, cid, rid, rcid))

    def update_title(self, conversation_id: str, title: str) -> None:
        self._check()
        self.titles.append((conversation_id, title))


class FakeTool:
    def __init__(self, name: str, confirm: bool = False) -> None:
        self.name = name
        self.description = f"{name} tool"
        self.confirm = confirm

    def requires_confirmation(self, args: Mapping[str, Any]) -> bool:
        return self.confirm


class FakeRegistry:
    def __init__(self, *tools: FakeTool) -> None:
        self.tools = {tool.name: tool for tool in tools}

    def get(self, name: str) -> FakeTool | None:
        return self.tools.get(name)


class FakeExecutor:
    """Echo executor: returns ``args["x"]`` unless an error is configured."""

    def __init__(self, error: str = "") -> None:
        self.error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def execute(self, name: str, args: Mapping[str, Any]) -> tuple[str, bool]:
        self.calls.append((name, dict(args)))
        if self.error:
            raise ToolExecutionError(name, self.error)
        return str(args.get("x", "")), False


def key(name: str, character: str | None = None) -> Key:
    return Key(key=name, character=character)


def type_text(model: ChatModel, text: str) -> None:
    for char in text:
        model.update(Key(key=char, character=char))


def settle(model: ChatModel, tasks: list[Task]) -> None:
    """Resolve tasks synchronously until none remain; timer tasks are dropped."""
    queue = list(tasks)
    while queue:
        task = queue.pop(0)
        if task.delay > 0:
            continue
        queue.extend(model.update(task.fn()))


def feed(model: ChatModel, event: Event) -> None:
    settle(model, model.update(event))
