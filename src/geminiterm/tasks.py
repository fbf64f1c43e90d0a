"""Deferred units of work returned by the update function.

A task is a description: the driver resolves ``fn`` off the loop and
feeds the single event it returns back into ``ChatModel.update``. Task
bodies never raise; failures are carried by the returned event.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
import logging
import os
from pathlib import Path

from .commands import EXPORT_FORMAT_JSON
from .events import (
    AnimationTick,
    Event,
    ExportFinished,
    FileUploaded,
    GemsLoaded,
    HistoryLoaded,
    HistoryManaged,
    ImagesDownloaded,
    InitialPrompt,
    RequestFailed,
    ResponseReceived,
    ToolExecuted,
)
from .exceptions import GeminiTermError, ToolExecutionError
from .interfaces import (
    ChatSession,
    FullHistoryStore,
    HistoryManagerRunner,
    ImageDownloadingClient,
    RemoteClient,
    ToolExecutor,
)
from .models import ChatEntry, Gem, ModelOutput, UploadedFile
from .persistence import entries_to_json, entries_to_markdown
from .tooling import ToolCall, ToolResult

LOGGER = logging.getLogger(__name__)

ANIMATION_INTERVAL_SECONDS = 0.08


@dataclass(frozen=True)
class Task:
    """Opaque deferred work producing exactly one event.

    ``delay`` postpones the call without a worker thread; ``suspend`` asks
    the driver to release the terminal while ``fn`` runs.
    """

    name: str
    fn: Callable[[], Event]
    delay: float = 0.0
    suspend: bool = False


def _log_failure(name: str, exc: BaseException) -> None:
    LOGGER.warning(
        "task.failed",
        extra={
            "event": "task.failed",
            "task": name,
            "error_type": type(exc).__name__,
            "error": str(exc),
            **(exc.metadata() if isinstance(exc, GeminiTermError) else {}),
        },
    )


def send_message(session: ChatSession, prompt: str, files: Sequence[UploadedFile]) -> Task:
    snapshot = tuple(files)

    def run() -> Event:
        try:
            return ResponseReceived(output=session.send_message(prompt, list(snapshot)))
        except Exception as exc:  # noqa: BLE001 - surfaced through the error banner.
            _log_failure("send", exc)
            return RequestFailed(error=exc)

    return Task(name="send", fn=run)


def upload_file(client: RemoteClient, path: str) -> Task:
    def run() -> Event:
        try:
            return FileUploaded(file=client.upload_file(path))
        except Exception as exc:  # noqa: BLE001
            _log_failure("upload", exc)
            return FileUploaded(error=exc)

    return Task(name="upload", fn=run)


def sort_gems(gems: Sequence[Gem]) -> list[Gem]:
    """Custom gems first, then alphabetical by name ignoring case."""
    return sorted(gems, key=lambda gem: (gem.predefined, gem.name.lower()))


def load_gems(client: RemoteClient) -> Task:
    def run() -> Event:
        try:
            return GemsLoaded(gems=sort_gems(client.fetch_gems(False)))
        except Exception as exc:  # noqa: BLE001
            _log_failure("gems", exc)
            return GemsLoaded(error=exc)

    return Task(name="gems", fn=run)


def load_history(store: FullHistoryStore) -> Task:
    def run() -> Event:
        try:
            return HistoryLoaded(conversations=list(store.list_conversations()))
        except Exception as exc:  # noqa: BLE001
            _log_failure("history", exc)
            return HistoryLoaded(error=exc)

    return Task(name="history", fn=run)


def _write_export(path: str, export_format: str, data: str) -> ExportFinished:
    overwrite = os.path.exists(path)
    payload = data.encode("utf-8")
    Path(path).write_bytes(payload)
    return ExportFinished(path=path, format=export_format, size=len(payload), overwrite=overwrite)


def export_from_store(store: FullHistoryStore, conversation_id: str, export_format: str, path: str) -> Task:
    def run() -> Event:
        try:
            if export_format == EXPORT_FORMAT_JSON:
                data = store.export_to_json(conversation_id)
            else:
                data = store.export_to_markdown(conversation_id)
            return _write_export(path, export_format, data)
        except Exception as exc:  # noqa: BLE001
            _log_failure("export", exc)
            return ExportFinished(error=exc)

    return Task(name="export", fn=run)


def export_from_memory(entries: Sequence[ChatEntry], title: str, export_format: str, path: str) -> Task:
    snapshot = tuple(entries)

    def run() -> Event:
        try:
            if export_format == EXPORT_FORMAT_JSON:
                data = entries_to_json(snapshot, title)
            else:
                data = entries_to_markdown(snapshot, title)
            return _write_export(path, export_format, data)
        except Exception as exc:  # noqa: BLE001
            _log_failure("export", exc)
            return ExportFinished(error=exc)

    return Task(name="export", fn=run)


def download_images(
    downloader: ImageDownloadingClient,
    output: ModelOutput,
    indices: Sequence[int],
    directory: str,
) -> Task:
    selected = tuple(indices)

    def run() -> Event:
        try:
            paths = downloader.download_selected_images(output, list(selected), directory, True)
            return ImagesDownloaded(paths=list(paths), directory=directory)
        except Exception as exc:  # noqa: BLE001
            _log_failure("download", exc)
            return ImagesDownloaded(directory=directory, error=exc)

    return Task(name="download", fn=run)


def execute_tool(executor: ToolExecutor | None, call: ToolCall, turn: int = 0) -> Task:
    def run() -> Event:
        start = datetime.now()
        if executor is None:
            error = ToolExecutionError(call.name, "tool executor not configured")
            return ToolExecuted(
                call=call, result=ToolResult.failure(call.name, error, start), turn=turn
            )
        try:
            output, truncated = executor.execute(call.name, call.args)
        except Exception as exc:  # noqa: BLE001 - the model receives the error text.
            _log_failure("tool", exc)
            return ToolExecuted(
                call=call,
                result=ToolResult(
                    tool_name=call.name,
                    error=exc,
                    started_at=start,
                    finished_at=datetime.now(),
                ),
                turn=turn,
            )
        return ToolExecuted(
            call=call,
            result=ToolResult(
                tool_name=call.name,
                output=output,
                truncated=truncated,
                started_at=start,
                finished_at=datetime.now(),
            ),
            turn=turn,
        )

    return Task(name="tool", fn=run)


def animation_tick() -> Task:
    return Task(name="tick", fn=AnimationTick, delay=ANIMATION_INTERVAL_SECONDS)


def initial_prompt(prompt: str) -> Task:
    return Task(name="initial_prompt", fn=lambda: InitialPrompt(prompt=prompt))


def manage_history(runner: HistoryManagerRunner, store: FullHistoryStore) -> Task:
    def run() -> Event:
        try:
            return HistoryManaged(conversation=runner.run(store))
        except Exception as exc:  # noqa: BLE001
            _log_failure("manage", exc)
            return HistoryManaged(error=exc)

    return Task(name="manage", fn=run, suspend=True)
