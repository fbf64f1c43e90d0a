"""Pure rendering of chat state to an ANSI string with rich."""

from __future__ import annotations

from dataclasses import replace
import io
import json
import logging
from typing import TYPE_CHECKING

from rich.console import Console, Group, RenderableType
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from .exceptions import GeminiTermError, describe_error_code
from .models import ROLE_TOOL, ROLE_USER, ChatEntry
from .state import (
    PICKER_WINDOW,
    ConfirmTool,
    GemPicker,
    HistoryPicker,
    ImagePicker,
    window_bounds,
)

if TYPE_CHECKING:
    from .chat_model import ChatModel

LOGGER = logging.getLogger(__name__)

SPINNER_FRAMES = ("⣾", "⣽", "⣻", "⢿", "⡿", "⣟", "⣯", "⣷")
BAR_CHARS = ("█",) * 8 + ("▓", "▒", "░")
BAR_WIDTH = 20
BODY_PREVIEW_LIMIT = 200

TEXT_COLOR = "#c0caf5"
MUTED_COLOR = "#565f89"
USER_COLOR = "#7aa2f7"
TOOL_COLOR = "#e0af68"
ASSISTANT_COLOR = "#bb9af7"
ERROR_COLOR = "#f7768e"
NOTICE_COLOR = "#9ece6a"
EXTENSION_COLOR = "#7dcfff"

CHAT_SHORTCUTS = (
    ("Enter", "Send"),
    ("\\+Enter", "Newline"),
    ("^E", "Export"),
    ("^G", "Gems"),
    ("Esc", "Quit"),
    ("↑↓", "Scroll"),
)
PICKER_SHORTCUTS = (("↑↓", "Navigate"), ("Enter", "Select"), ("Esc", "Cancel"))
IMAGE_SHORTCUTS = (
    ("Space", "Toggle"),
    ("a", "All"),
    ("n", "None"),
    ("Enter", "Save"),
    ("Esc", "Cancel"),
)

_ERROR_HINTS = {
    "auth": "Try refreshing your session",
    "rate_limit": "Please try again later",
    "network": "Check your internet connection",
    "timeout": "Please try again",
    "upload": "Verify the file and try again",
}


def _to_string(renderable: RenderableType, width: int, color: bool) -> str:
    console = Console(
        file=io.StringIO(),
        width=max(20, width),
        force_terminal=color,
        color_system="truecolor" if color else None,
        no_color=not color,
        highlight=False,
        emoji=False,
        legacy_windows=False,
    )
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


# ----------------------------------------------------------------------
# Chat view pieces
# ----------------------------------------------------------------------


def render_header(model: ChatModel) -> RenderableType:
    gradient = model.settings.gradient
    line = Text()
    line.append("✦ ", style=f"bold {gradient[0]}")
    line.append(model.settings.title, style=f"bold {TEXT_COLOR}")
    line.append(" • ", style=MUTED_COLOR)
    line.append(model.model_name, style=gradient[1 % len(gradient)])
    if model.active_gem is not None:
        line.append(" • ", style=MUTED_COLOR)
        line.append(f"📦 {model.active_gem.name}", style=gradient[2 % len(gradient)])
    if model.persona is not None:
        line.append(" • ", style=MUTED_COLOR)
        line.append(f"🎭 {model.persona.name}", style=MUTED_COLOR)
    return Panel(line, border_style=gradient[0])


def render_welcome(model: ChatModel) -> RenderableType:
    gradient = model.settings.gradient
    body = Text(justify="center")
    body.append("✦\n\n", style=f"bold {gradient[0]}")
    body.append("Welcome to Gemini Chat\n\n", style=f"bold {TEXT_COLOR}")
    body.append("Start a conversation by typing a message below", style=MUTED_COLOR)
    return body


def render_entry(entry: ChatEntry, show_thoughts: bool = True) -> RenderableType:
    parts: list[RenderableType] = []
    if entry.role == ROLE_USER:
        parts.append(Text("⬤ You", style=f"bold {USER_COLOR}"))
        parts.append(Text(entry.content, style=TEXT_COLOR))
    elif entry.role == ROLE_TOOL:
        parts.append(Text("Tool", style=f"bold {TOOL_COLOR}"))
        parts.append(Text(entry.content, style=MUTED_COLOR))
    else:
        parts.append(Text("✦ Gemini", style=f"bold {ASSISTANT_COLOR}"))
        if show_thoughts and entry.thoughts:
            parts.append(Text("💭 Thinking", style=f"italic {MUTED_COLOR}"))
            parts.append(Text(entry.thoughts, style=f"italic {MUTED_COLOR}"))
        if entry.content:
            parts.append(Markdown(entry.content))
        if entry.images:
            parts.append(Text(f"🖼 Images ({len(entry.images)})", style=f"bold {TOOL_COLOR}"))
            for index, image in enumerate(entry.images, start=1):
                label = image.title or image.alt or image.url
                parts.append(Text(f"  [{index}] {label}", style=MUTED_COLOR))
    parts.append(Text(""))
    return Group(*parts)


def _render_entry_text(entry: ChatEntry, width: int, color: bool, show_thoughts: bool) -> str:
    try:
        return _to_string(render_entry(entry, show_thoughts), width, color)
    except Exception as exc:  # noqa: BLE001 - markdown failures fall back to plain text.
        LOGGER.debug("Markdown rendering failed, using plain text: %s", exc)
        plain = replace(entry, content="", thoughts="", images=())
        header = _to_string(render_entry(plain, False), width, color).rstrip("\n")
        return f"{header}\n{entry.content}\n\n"


def render_messages(model: ChatModel, color: bool) -> RenderableType:
    width = max(20, model.content_width - 4)
    if not model.messages:
        return Panel(render_welcome(model), height=model.viewport_height + 2, border_style=MUTED_COLOR)

    lines: list[str] = []
    for entry in model.messages:
        text = _render_entry_text(entry, width, color, model.settings.show_thoughts)
        lines.extend(text.rstrip("\n").split("\n"))
        lines.append("")

    height = model.viewport_height
    offset = min(model.scroll_offset, max(0, len(lines) - height))
    end = len(lines) - offset
    start = max(0, end - height)
    window = "\n".join(lines[start:end])
    return Panel(Text.from_ansi(window), height=height + 2, border_style=MUTED_COLOR)


def render_loading(frame: int, gradient: tuple[str, ...]) -> Text:
    """Animated indicator; a pure function of the frame counter."""
    colors = len(gradient)
    line = Text()
    line.append(SPINNER_FRAMES[frame % len(SPINNER_FRAMES)], style=f"bold {gradient[frame % colors]}")
    line.append(" ")
    for index in range(BAR_WIDTH):
        line.append(
            BAR_CHARS[(index + frame // 2) % len(BAR_CHARS)],
            style=gradient[(index + frame) % colors],
        )
    line.append(" ")
    line.append(" Gemini is thinking ", style=TEXT_COLOR)
    line.append(" ")
    filled = (frame // 3) % 4
    for index in range(filled):
        line.append("●", style=gradient[(frame + index) % colors])
    for _ in range(filled, 3):
        line.append("○", style=MUTED_COLOR)
    return line


def render_input(model: ChatModel) -> RenderableType:
    label = "You"
    if model.attachments:
        label += f" 📎 {len(model.attachments)} file(s)"
    if model.loading:
        body: Text = render_loading(model.animation_frame, model.settings.gradient)
    elif not model.input.text:
        body = Text()
        body.append(" ", style="reverse")
        body.append("Type your message... (/ for commands)", style=MUTED_COLOR)
    else:
        text = model.input.text
        cursor = model.input.cursor
        body = Text(text[:cursor], style=TEXT_COLOR)
        under = text[cursor : cursor + 1]
        if under in ("", "\n"):
            body.append(" ", style="reverse")
            body.append(under)
        else:
            body.append(under, style="reverse")
        body.append(text[cursor + 1 :], style=TEXT_COLOR)
    return Panel(
        body,
        title=Text(label, style=f"bold {USER_COLOR}"),
        title_align="left",
        height=5,
        border_style=model.settings.gradient[0],
    )


def _shortcut_bar(items: tuple[tuple[str, str], ...], width: int, badge: str = "") -> Text:
    bar = Text(justify="center")
    first = True
    if badge:
        bar.append(badge, style=f"bold {EXTENSION_COLOR}")
        first = False
    for key, description in items:
        if not first:
            bar.append("  │  ", style=MUTED_COLOR)
        first = False
        bar.append(key, style=f"bold {TEXT_COLOR}")
        bar.append(f" {description}", style=MUTED_COLOR)
    return bar


def error_lines(error: BaseException) -> list[str]:
    """Banner lines: message, structured metadata, then a hint when no body exists."""
    lines = [f"⚠ Error: {error}"]
    if not isinstance(error, GeminiTermError):
        return lines
    if error.http_status:
        lines.append(f"HTTP Status: {error.http_status}")
    if error.error_code:
        lines.append(f"Error Code: {describe_error_code(error.error_code)}")
    if error.endpoint:
        lines.append(f"Endpoint: {error.endpoint}")
    if error.body:
        body = error.body
        if len(body) > BODY_PREVIEW_LIMIT:
            body = body[:BODY_PREVIEW_LIMIT] + "..."
        lines.append(f"Response: {body}")
    else:
        hint = _ERROR_HINTS.get(error.kind)
        if hint:
            lines.append(f"💡 {hint}")
    return lines


def render_error(error: BaseException) -> RenderableType:
    lines = error_lines(error)
    text = Text(lines[0], style=f"bold {ERROR_COLOR}")
    for line in lines[1:]:
        text.append("\n" + line, style=MUTED_COLOR)
    return text


def render_chat(model: ChatModel, color: bool) -> RenderableType:
    sections: list[RenderableType] = [
        render_header(model),
        render_messages(model, color),
        render_input(model),
    ]
    if model.notice:
        sections.append(Text(model.notice, style=NOTICE_COLOR))
    sections.append(_shortcut_bar(CHAT_SHORTCUTS, model.width, model.detected_extension))
    if model.error is not None:
        sections.append(render_error(model.error))
    return Group(*sections)


# ----------------------------------------------------------------------
# Overlays
# ----------------------------------------------------------------------


def _more_markers(start: int, end: int, total: int) -> tuple[Text | None, Text | None]:
    above = Text("  ↑ more above", style=MUTED_COLOR) if start > 0 else None
    below = Text("  ↓ more below", style=MUTED_COLOR) if end < total else None
    return above, below


def _filter_line(filter_text: str) -> Text:
    line = Text("🔍 ", style=MUTED_COLOR)
    if filter_text:
        line.append(filter_text, style=TEXT_COLOR)
    line.append("_", style="blink")
    return line


def _row(selected: bool, label: str, detail: str = "") -> Text:
    row = Text("▸ " if selected else "  ", style=f"bold {USER_COLOR}")
    row.append(label, style=f"bold {TEXT_COLOR}" if selected else TEXT_COLOR)
    if detail:
        row.append(f"  {detail}", style=MUTED_COLOR)
    return row


def render_gem_picker(view: GemPicker, model: ChatModel) -> RenderableType:
    rows: list[RenderableType] = [_filter_line(view.filter), Text("")]
    gems = view.visible()
    if view.loading:
        rows.append(Text("Loading gems...", style=MUTED_COLOR))
    elif not gems:
        rows.append(Text("No gems found", style=MUTED_COLOR))
    else:
        start, end = window_bounds(view.cursor, len(gems), PICKER_WINDOW)
        above, below = _more_markers(start, end, len(gems))
        if above:
            rows.append(above)
        for index in range(start, end):
            gem = gems[index]
            name = gem.name if gem.predefined else f"{gem.name} (custom)"
            rows.append(_row(index == view.cursor, name, gem.description))
        if below:
            rows.append(below)
    rows.append(Text(""))
    rows.append(_shortcut_bar(PICKER_SHORTCUTS, model.width))
    return Panel(Group(*rows), title="💎 Select Gem", border_style=model.settings.gradient[0])


def render_history_picker(view: HistoryPicker, model: ChatModel) -> RenderableType:
    rows: list[RenderableType] = [_filter_line(view.filter), Text("")]
    rows.append(_row(view.cursor == 0, "+ New Conversation"))
    conversations = view.visible()
    if view.loading:
        rows.append(Text("Loading conversations...", style=MUTED_COLOR))
    elif conversations:
        cursor = max(0, view.cursor - 1)
        start, end = window_bounds(cursor, len(conversations), PICKER_WINDOW - 1)
        above, below = _more_markers(start, end, len(conversations))
        if above:
            rows.append(above)
        for index in range(start, end):
            conversation = conversations[index]
            star = "★ " if conversation.is_favorite else ""
            rows.append(
                _row(index + 1 == view.cursor, f"{star}{conversation.title}", conversation.model)
            )
        if below:
            rows.append(below)
    rows.append(Text(""))
    rows.append(_shortcut_bar(PICKER_SHORTCUTS, model.width))
    return Panel(Group(*rows), title="📜 Conversations", border_style=model.settings.gradient[0])


def render_image_picker(view: ImagePicker, model: ChatModel) -> RenderableType:
    rows: list[RenderableType] = [
        Text(f"Directory: {view.directory}", style=MUTED_COLOR),
        Text(""),
    ]
    start, end = window_bounds(view.cursor, view.size(), PICKER_WINDOW)
    above, below = _more_markers(start, end, view.size())
    if above:
        rows.append(above)
    for index in range(start, end):
        image = view.images[index]
        mark = "[x]" if index in view.selected else "[ ]"
        label = image.title or image.alt or image.url
        rows.append(_row(index == view.cursor, f"{mark} {label}"))
    if below:
        rows.append(below)
    rows.append(Text(""))
    rows.append(Text(f"{len(view.selected)} of {view.size()} selected", style=MUTED_COLOR))
    rows.append(_shortcut_bar(IMAGE_SHORTCUTS, model.width))
    return Panel(Group(*rows), title="🖼 Select Images to Save", border_style=model.settings.gradient[0])


def render_tool_confirmation(view: ConfirmTool, model: ChatModel) -> RenderableType:
    call = view.call
    lines = ["Tool execution requested", "", f"Tool: {call.name}"]
    if call.reason:
        lines.append(f"Reason: {call.reason}")
    if call.args:
        lines.append("Args:")
        lines.append(json.dumps(call.args, ensure_ascii=False, indent=2))
    lines.extend(["", "Confirm execution? (y/n)"])
    return Panel(Text("\n".join(lines), style=TEXT_COLOR), border_style=TOOL_COLOR)


def render(model: ChatModel, color: bool = True) -> str:
    """Render the whole screen for the active view."""
    view = model.view
    if isinstance(view, ConfirmTool):
        renderable = render_tool_confirmation(view, model)
    elif isinstance(view, GemPicker):
        renderable = render_gem_picker(view, model)
    elif isinstance(view, HistoryPicker):
        renderable = render_history_picker(view, model)
    elif isinstance(view, ImagePicker):
        renderable = render_image_picker(view, model)
    else:
        renderable = render_chat(model, color)
    return _to_string(renderable, model.width, color)
