"""Chat loop state and its update function.

``ChatModel.update`` is the only place where chat state changes. It takes
one event and returns the deferred tasks the driver must resolve; every
task yields exactly one event that comes back through ``update``.
Rendering lives in :mod:`geminiterm.render` and only reads this state.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import logging
import os

from .commands import ParsedCommand, parse_command, resolve_export_target
from .downloads import DEFAULT_IMAGE_DIR
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
    Key,
    Paste,
    RequestFailed,
    ResponseReceived,
    ToolExecuted,
    WindowResize,
)
from .exceptions import (
    CommandValidationError,
    GeminiTermError,
    NotFoundError,
    ToolExecutionError,
    UploadError,
    UserDeniedError,
)
from .interfaces import (
    ChatSession,
    HistoryManagerRunner,
    HistoryStore,
    ImageDownloadingClient,
    RemoteClient,
    ToolExecutor,
    ToolRegistry,
    as_full_history_store,
)
from .models import (
    ROLE_ASSISTANT,
    ROLE_TOOL,
    ROLE_USER,
    ChatEntry,
    Conversation,
    Gem,
    ModelOutput,
    UploadedFile,
    detect_extension,
)
from .persistence import BestEffortRecorder
from .personas import Persona, format_system_prompt
from .render import render
from .state import (
    ChatView,
    ConfirmTool,
    GemPicker,
    HistoryPicker,
    ImagePicker,
    InputBuffer,
    ViewState,
)
from . import tasks
from .tasks import Task
from .tooling import (
    ToolCall,
    ToolResult,
    extract_tool_calls,
    format_result_block,
    format_tool_message,
    join_result_blocks,
)

LOGGER = logging.getLogger(__name__)

HEADER_HEIGHT = 4
INPUT_HEIGHT = 7
STATUS_HEIGHT = 1
LAYOUT_PADDING = 2
MIN_VIEWPORT_HEIGHT = 5
HISTORY_UNAVAILABLE = "history not available"


@dataclass(frozen=True)
class ChatSettings:
    """Static options that shape a chat session."""

    model: str = "gemini-2.5-flash"
    download_dir: str = ""
    auto_approve_tools: bool = False
    max_tool_depth: int = 8
    gradient: tuple[str, ...] = ("#4285f4", "#9b51e0", "#d9468f", "#f07a4a")
    show_thoughts: bool = True
    title: str = "Gemini Chat"


@dataclass
class ChatModel:
    """All state owned by the interactive chat loop."""

    client: RemoteClient | None
    session: ChatSession
    settings: ChatSettings = field(default_factory=ChatSettings)
    store: HistoryStore | None = None
    tool_registry: ToolRegistry | None = None
    tool_executor: ToolExecutor | None = None
    history_manager: HistoryManagerRunner | None = None
    downloader: ImageDownloadingClient | None = None
    persona: Persona | None = None
    conversation: Conversation | None = None
    initial_prompt: str = ""
    active_gem: Gem | None = None

    width: int = 80
    height: int = 24
    viewport_height: int = MIN_VIEWPORT_HEIGHT
    content_width: int = 76
    view: ViewState = field(default_factory=ChatView)
    messages: list[ChatEntry] = field(default_factory=list)
    input: InputBuffer = field(default_factory=InputBuffer)
    attachments: list[UploadedFile] = field(default_factory=list)
    loading: bool = False
    animation_frame: int = 0
    scroll_offset: int = 0
    error: BaseException | None = None
    notice: str = ""
    last_output: ModelOutput | None = None
    detected_extension: str = ""
    pending_tool_calls: list[ToolCall] = field(default_factory=list)
    tool_result_blocks: list[str] = field(default_factory=list)
    tool_depth: int = 0
    turn: int = 0
    quitting: bool = False
    _ticking: bool = False

    def __post_init__(self) -> None:
        self.full_store = as_full_history_store(self.store)
        self.recorder = BestEffortRecorder(self.store)
        self.model_name = self.settings.model
        self._commands: dict[str, Callable[[str], list[Task]]] = {
            "exit": self._cmd_quit,
            "quit": self._cmd_quit,
            "gems": self._cmd_gems,
            "gem": self._cmd_gems,
            "history": self._cmd_history,
            "hist": self._cmd_history,
            "manage": self._cmd_manage,
            "favorite": self._cmd_favorite,
            "fav": self._cmd_favorite,
            "file": self._cmd_file,
            "image": self._cmd_file,
            "clear": self._cmd_clear,
            "export": self._cmd_export,
            "save": self._cmd_save,
            "download": self._cmd_save,
        }
        if self.conversation is not None:
            self._switch_conversation(self.conversation)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def init(self) -> list[Task]:
        """Return the tasks to run once the loop starts."""
        if not self.initial_prompt:
            return []
        prompt, self.initial_prompt = self.initial_prompt, ""
        return [tasks.initial_prompt(prompt)]

    def update(self, event: Event) -> list[Task]:
        """Apply one event and return follow-up deferred tasks."""
        if isinstance(event, WindowResize):
            self._resize(event.width, event.height)
            return []
        if isinstance(event, AnimationTick):
            return self._on_tick()
        if isinstance(event, Key):
            return self._on_key(event)
        if isinstance(event, Paste):
            return self._on_paste(event.text)
        if isinstance(event, ResponseReceived):
            return self._on_response(event.output)
        if isinstance(event, RequestFailed):
            self.loading = False
            self._fail(event.error)
            return []
        if isinstance(event, ToolExecuted):
            if event.turn != self.turn:
                LOGGER.debug("Dropping tool result from turn %d", event.turn)
                return []
            self.loading = False
            return self._handle_tool_result(event.call, event.result)
        if isinstance(event, GemsLoaded):
            return self._on_gems_loaded(event)
        if isinstance(event, HistoryLoaded):
            return self._on_history_loaded(event)
        if isinstance(event, FileUploaded):
            return self._on_file_uploaded(event)
        if isinstance(event, ExportFinished):
            return self._on_export_finished(event)
        if isinstance(event, ImagesDownloaded):
            return self._on_images_downloaded(event)
        if isinstance(event, InitialPrompt):
            if self.loading:
                return []
            return self._send_user_turn(event.prompt)
        if isinstance(event, HistoryManaged):
            if event.error is not None:
                self._fail(GeminiTermError(f"history manager error: {event.error}"))
            elif event.conversation is not None:
                self._switch_conversation(event.conversation)
            return []
        LOGGER.debug("Ignoring unknown event %r", event)
        return []

    def view_text(self, color: bool = True) -> str:
        """Render the current state; equal states give equal strings."""
        return render(self, color=color)

    # ------------------------------------------------------------------
    # Status channels
    # ------------------------------------------------------------------

    def _fail(self, error: BaseException | str) -> None:
        self.error = CommandValidationError(error) if isinstance(error, str) else error
        self.notice = ""

    def _notify(self, text: str) -> None:
        self.notice = text
        self.error = None

    # ------------------------------------------------------------------
    # Layout and animation
    # ------------------------------------------------------------------

    def _resize(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.viewport_height = max(
            MIN_VIEWPORT_HEIGHT,
            height - HEADER_HEIGHT - INPUT_HEIGHT - STATUS_HEIGHT - LAYOUT_PADDING,
        )
        self.content_width = max(1, width - 4)
        self.input.width = max(1, self.content_width - 4)

    def _start_ticking(self) -> list[Task]:
        if self._ticking:
            return []
        self._ticking = True
        return [tasks.animation_tick()]

    def _on_tick(self) -> list[Task]:
        if not self.loading:
            self._ticking = False
            return []
        self.animation_frame += 1
        return [tasks.animation_tick()]

    def _append(self, entry: ChatEntry) -> None:
        self.messages.append(entry)
        self.scroll_offset = 0

    # ------------------------------------------------------------------
    # Keyboard
    # ------------------------------------------------------------------

    def _on_key(self, key: Key) -> list[Task]:
        view = self.view
        if isinstance(view, ConfirmTool):
            return self._confirm_key(view, key)
        if isinstance(view, ImagePicker):
            return self._image_key(view, key)
        if isinstance(view, GemPicker | HistoryPicker):
            return self._picker_key(view, key)
        return self._chat_key(key)

    def _chat_key(self, key: Key) -> list[Task]:
        name = key.key
        if name == "ctrl+c":
            self.quitting = True
            return []
        if name == "escape":
            if self.loading:
                self.loading = False
            else:
                self.quitting = True
            return []
        if self.loading:
            return []

        if name == "ctrl+g":
            return self._cmd_gems("")
        if name == "ctrl+e":
            return self._cmd_export("")
        if name == "enter":
            return self._submit()
        if name == "up":
            self.scroll_offset += 1
        elif name == "down":
            self.scroll_offset = max(0, self.scroll_offset - 1)
        elif name == "pageup":
            self.scroll_offset += self.viewport_height
        elif name == "pagedown":
            self.scroll_offset = max(0, self.scroll_offset - self.viewport_height)
        elif name == "backspace":
            self.input.backspace()
        elif name == "delete":
            self.input.delete()
        elif name == "left":
            self.input.move(-1)
        elif name == "right":
            self.input.move(1)
        elif name == "home":
            self.input.home()
        elif name == "end":
            self.input.end()
        elif key.is_printable:
            self.input.insert(key.character or "")
        return []

    def _on_paste(self, text: str) -> list[Task]:
        view = self.view
        if isinstance(view, GemPicker | HistoryPicker):
            printable = "".join(char for char in text if char.isprintable())
            if printable:
                view.type_char(printable)
            return []
        if isinstance(view, ChatView) and not self.loading:
            self.input.insert(text)
        return []

    def _submit(self) -> list[Task]:
        raw = self.input.text
        trimmed = raw.strip()
        if trimmed.endswith("\\"):
            self.input.set(raw.rstrip()[:-1] + "\n")
            return []
        if not trimmed:
            return []

        parsed = parse_command(trimmed)
        if parsed.is_command:
            return self._dispatch(parsed)
        if trimmed in ("exit", "quit"):
            self.quitting = True
            return []
        return self._send_user_turn(trimmed, clear_input=True)

    def _dispatch(self, parsed: ParsedCommand) -> list[Task]:
        handler = self._commands.get(parsed.name)
        if handler is None:
            self._fail(f"unknown command: /{parsed.name}")
            return []
        return handler(parsed.args)

    # ------------------------------------------------------------------
    # Slash commands
    # ------------------------------------------------------------------

    def _cmd_quit(self, _args: str) -> list[Task]:
        self.quitting = True
        return []

    def _cmd_gems(self, _args: str) -> list[Task]:
        if self.client is None:
            self._fail("client not available")
            return []
        self.input.clear()
        self.view = GemPicker()
        return [tasks.load_gems(self.client)]

    def _cmd_history(self, _args: str) -> list[Task]:
        if self.full_store is None:
            self._fail(HISTORY_UNAVAILABLE)
            return []
        self.input.clear()
        self.view = HistoryPicker()
        return [tasks.load_history(self.full_store)]

    def _cmd_manage(self, _args: str) -> list[Task]:
        if self.full_store is None or self.history_manager is None:
            self._fail(HISTORY_UNAVAILABLE)
            return []
        self.input.clear()
        return [tasks.manage_history(self.history_manager, self.full_store)]

    def _cmd_favorite(self, _args: str) -> list[Task]:
        if self.full_store is None:
            self._fail(HISTORY_UNAVAILABLE)
            return []
        if self.conversation is None:
            self._fail("no active conversation to favorite")
            return []
        self.input.clear()
        try:
            is_favorite = self.full_store.toggle_favorite(self.conversation.id)
        except Exception as exc:  # noqa: BLE001 - shown in the error banner.
            self._fail(GeminiTermError(f"failed to toggle favorite: {exc}"))
            return []
        self.conversation.is_favorite = is_favorite
        self._notify("★ Added to favorites" if is_favorite else "☆ Removed from favorites")
        return []

    def _cmd_file(self, args: str) -> list[Task]:
        if not args:
            self._fail("usage: /file <path>")
            return []
        path = os.path.expanduser(args)
        if not os.path.exists(path):
            self._fail(NotFoundError(f"file not found: {path}"))
            return []
        if self.client is None:
            self._fail("client not available for file upload")
            return []
        self.input.clear()
        self.error = None
        return [tasks.upload_file(self.client, path)]

    def _cmd_clear(self, _args: str) -> list[Task]:
        self.attachments = []
        self.input.clear()
        self.error = None
        self.notice = ""
        return []

    def _cmd_export(self, args: str) -> list[Task]:
        title = self.conversation.title if self.conversation else ""
        try:
            target = resolve_export_target(args, title)
        except CommandValidationError as exc:
            self._fail(exc)
            return []

        if self.conversation is not None and self.conversation.id and self.full_store is not None:
            self.input.clear()
            return [
                tasks.export_from_store(
                    self.full_store, self.conversation.id, target.format, target.path
                )
            ]
        if self.messages:
            self.input.clear()
            return [
                tasks.export_from_memory(
                    self.messages, title or "Conversation", target.format, target.path
                )
            ]
        self._fail("no conversation to export")
        return []

    def _cmd_save(self, args: str) -> list[Task]:
        self.input.clear()
        if self.last_output is None:
            self._fail("no images to save - send a message first")
            return []
        images = self.last_output.images()
        if not images:
            self._fail("no images in the last response")
            return []
        directory = args or self.settings.download_dir or str(DEFAULT_IMAGE_DIR)
        self.view = ImagePicker(images=list(images), directory=os.path.expanduser(directory))
        return []

    # ------------------------------------------------------------------
    # Pickers
    # ------------------------------------------------------------------

    def _picker_key(self, view: GemPicker | HistoryPicker, key: Key) -> list[Task]:
        name = key.key
        char = key.character or ""
        if name == "ctrl+c":
            self.quitting = True
        elif name == "escape":
            self.view = ChatView()
        elif name in ("up", "k"):
            view.move(-1)
        elif name in ("down", "j"):
            view.move(1)
        elif name == "home" or char == "g":
            view.cursor = 0
        elif name == "end" or char == "G":
            view.cursor = max(0, view.size() - 1)
        elif name == "enter":
            if isinstance(view, GemPicker):
                self._select_gem(view)
            else:
                self._select_history(view)
        elif name == "backspace":
            view.erase_char()
        elif key.is_printable:
            view.type_char(key.character or "")
        return []

    def _select_gem(self, view: GemPicker) -> None:
        gem = view.selected()
        if gem is None:
            return
        self.session.set_gem(gem.id)
        self.active_gem = gem
        self.view = ChatView()

    def _select_history(self, view: HistoryPicker) -> None:
        if view.is_new_selected():
            self._start_new_conversation()
            return
        conversation = view.selected()
        if conversation is not None:
            self._switch_conversation(conversation)

    def _start_new_conversation(self) -> None:
        self.view = ChatView()
        if self.full_store is None:
            self._fail(HISTORY_UNAVAILABLE)
            return
        try:
            conversation = self.full_store.create_conversation(self.model_name)
        except Exception as exc:  # noqa: BLE001
            self._fail(GeminiTermError(f"failed to create conversation: {exc}"))
            return
        self.conversation = conversation
        self.messages = []
        self.scroll_offset = 0
        self.last_output = None
        self.session.set_metadata("", "", "")

    def _switch_conversation(self, conversation: Conversation) -> None:
        self.view = ChatView()
        self.conversation = conversation
        self.messages = [
            ChatEntry(
                role=message.role if message.role in (ROLE_USER, ROLE_TOOL) else ROLE_ASSISTANT,
                content=message.content,
                thoughts=message.thoughts,
            )
            for message in conversation.messages
        ]
        self.scroll_offset = 0
        if conversation.cid or conversation.rid or conversation.rcid:
            self.session.set_metadata(conversation.cid, conversation.rid, conversation.rcid)
        if conversation.model and conversation.model != self.model_name:
            self.session.set_model(conversation.model)
            self.model_name = conversation.model

    def _on_gems_loaded(self, event: GemsLoaded) -> list[Task]:
        view = self.view
        if not isinstance(view, GemPicker):
            return []
        view.loading = False
        if event.error is not None:
            self.view = ChatView()
            self._fail(event.error)
        else:
            view.gems = list(event.gems)
            view.cursor = 0
        return []

    def _on_history_loaded(self, event: HistoryLoaded) -> list[Task]:
        view = self.view
        if not isinstance(view, HistoryPicker):
            return []
        view.loading = False
        if event.error is not None:
            self.view = ChatView()
            self._fail(event.error)
        else:
            view.conversations = list(event.conversations)
            view.cursor = 0
        return []

    def _image_key(self, view: ImagePicker, key: Key) -> list[Task]:
        name = key.key
        char = key.character or ""
        if name in ("escape", "q", "ctrl+c"):
            self.view = ChatView()
        elif name in ("up", "k"):
            view.move(-1)
        elif name in ("down", "j"):
            view.move(1)
        elif name == "end" or char == "G":
            view.cursor = max(0, view.size() - 1)
        elif name in ("home", "g"):
            view.cursor = 0
        elif name == "space" or char == " ":
            view.toggle()
        elif name == "a":
            view.select_all()
        elif name == "n":
            view.select_none()
        elif name == "enter":
            self.view = ChatView()
            return self._download(view)
        return []

    def _download(self, view: ImagePicker) -> list[Task]:
        indices = view.selected_indices()
        if not indices:
            self._fail("no images selected")
            return []
        if self.last_output is None:
            return []
        downloader = self.client if isinstance(self.client, ImageDownloadingClient) else self.downloader
        if downloader is None:
            self._fail("image download not available")
            return []
        return [tasks.download_images(downloader, self.last_output, indices, view.directory)]

    # ------------------------------------------------------------------
    # Chat turn
    # ------------------------------------------------------------------

    def _ensure_conversation(self) -> None:
        if self.conversation is not None or self.full_store is None:
            return
        try:
            self.conversation = self.full_store.create_conversation(self.model_name)
        except Exception as exc:  # noqa: BLE001 - persistence is best-effort.
            LOGGER.warning(
                "persistence.create_conversation.failed",
                extra={"event": "persistence.create_conversation.failed", "error": str(exc)},
            )

    @property
    def conversation_id(self) -> str:
        return self.conversation.id if self.conversation is not None else ""

    def _send_user_turn(self, text: str, clear_input: bool = False) -> list[Task]:
        self._ensure_conversation()
        self._append(ChatEntry(role=ROLE_USER, content=text))
        self.recorder.add_message(self.conversation_id, ROLE_USER, text)
        self.detected_extension = detect_extension(text)
        self.turn += 1
        self.tool_depth = 0
        self.pending_tool_calls = []
        self.tool_result_blocks = []
        if clear_input:
            self.input.clear()
        files = list(self.attachments)
        self.attachments = []
        self.error = None
        return self._start_send(format_system_prompt(self.persona, text), files)

    def _start_send(self, prompt: str, files: list[UploadedFile]) -> list[Task]:
        self.loading = True
        self.animation_frame = 0
        return [tasks.send_message(self.session, prompt, files), *self._start_ticking()]

    def _on_response(self, output: ModelOutput) -> list[Task]:
        self.loading = False
        self.last_output = output
        text = output.text()
        thoughts = output.thoughts()
        images = output.images()
        calls, clean_text = extract_tool_calls(text)
        display_text = clean_text if calls else text

        if display_text.strip() or thoughts or images:
            self._append(
                ChatEntry(
                    role=ROLE_ASSISTANT,
                    content=display_text,
                    thoughts=thoughts,
                    images=tuple(images),
                )
            )
            self.recorder.add_message(self.conversation_id, ROLE_ASSISTANT, display_text, thoughts)

        self._save_metadata()

        if not calls:
            return []
        if self.tool_depth >= self.settings.max_tool_depth:
            self.pending_tool_calls = []
            self.tool_result_blocks = []
            self._fail(
                ToolExecutionError(
                    "", f"tool chain exceeded {self.settings.max_tool_depth} round-trips"
                )
            )
            return []
        self.pending_tool_calls = list(calls)
        self.tool_result_blocks = []
        return self._start_next_tool()

    def _save_metadata(self) -> None:
        cid, rid, rcid = self.session.cid(), self.session.rid(), self.session.rcid()
        if cid or rid or rcid:
            self.recorder.update_metadata(self.conversation_id, cid, rid, rcid)

    # ------------------------------------------------------------------
    # Tool round-trip
    # ------------------------------------------------------------------

    def _start_next_tool(self) -> list[Task]:
        if not self.pending_tool_calls:
            return []
        call = self.pending_tool_calls.pop(0)

        if self.tool_registry is None:
            tool = None
            missing = ToolExecutionError(call.name, "tools are not available")
        else:
            tool = self.tool_registry.get(call.name)
            missing = ToolExecutionError(call.name, "tool not found")
        if tool is None:
            return self._handle_tool_result(call, ToolResult.failure(call.name, missing))

        if tool.requires_confirmation(call.args) and not self.settings.auto_approve_tools:
            self.view = ConfirmTool(call=call)
            self.loading = False
            return []

        return self._run_tool(call)

    def _run_tool(self, call: ToolCall) -> list[Task]:
        self.loading = True
        self.animation_frame = 0
        return [tasks.execute_tool(self.tool_executor, call, self.turn), *self._start_ticking()]

    def _confirm_key(self, view: ConfirmTool, key: Key) -> list[Task]:
        name = key.key
        if name == "ctrl+c":
            self.quitting = True
            return []
        if name in ("y", "Y"):
            self.view = ChatView()
            return self._run_tool(view.call)
        if name in ("n", "N", "escape"):
            self.view = ChatView()
            result = ToolResult.failure(view.call.name, UserDeniedError(view.call.name))
            return self._handle_tool_result(view.call, result)
        return []

    def _handle_tool_result(self, call: ToolCall, result: ToolResult) -> list[Task]:
        message = format_tool_message(call, result)
        if message.strip():
            self._append(ChatEntry(role=ROLE_TOOL, content=message))
            self.recorder.add_message(self.conversation_id, ROLE_TOOL, message)
        self.tool_result_blocks.append(format_result_block(result))

        if self.pending_tool_calls:
            return self._start_next_tool()
        if not self.tool_result_blocks or self.loading:
            return []

        payload = join_result_blocks(self.tool_result_blocks)
        self.tool_result_blocks = []
        self.tool_depth += 1
        return self._start_send(payload, [])

    # ------------------------------------------------------------------
    # Task results
    # ------------------------------------------------------------------

    def _on_file_uploaded(self, event: FileUploaded) -> list[Task]:
        if event.error is not None:
            error = event.error
            if not isinstance(error, GeminiTermError):
                error = UploadError(f"file upload failed: {error}")
            self._fail(error)
        elif event.file is not None:
            self.attachments.append(event.file)
            self._notify(f"📎 Attached {event.file.file_name}")
        return []

    def _on_export_finished(self, event: ExportFinished) -> list[Task]:
        if event.error is not None:
            self._fail(event.error)
            return []
        message = f"✓ Exported to {event.path}"
        if event.overwrite:
            message += " (overwritten)"
        self._notify(message)
        return []

    def _on_images_downloaded(self, event: ImagesDownloaded) -> list[Task]:
        if event.error is not None:
            self._fail(event.error)
        elif event.paths:
            self._notify(f"✓ Downloaded {len(event.paths)} image(s) to {event.directory}")
        else:
            self._fail("no images were downloaded")
        return []
