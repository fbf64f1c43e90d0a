"""Tool-call protocol embedded in model responses.

The model requests a tool by emitting a fenced block whose body is a JSON
object ``{"name": ..., "args": {...}, "reason": ...}``. Results go back as
``result`` blocks carrying a compact JSON payload.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import json
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import GeminiTermError

_FENCED_BLOCK_RE = re.compile(r"(?s)```([A-Za-z0-9_+-]*)[ \t]*\n(.*?)\n```")
_TOOL_BLOCK_TAGS = ("", "tool", "json")


class ToolCall(BaseModel):
    """A single tool invocation requested by the model."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = Field(min_length=1)
    args: dict[str, Any] = Field(default_factory=dict)
    reason: str = ""


def _parse_call(match: re.Match[str]) -> ToolCall | None:
    if match.group(1).lower() not in _TOOL_BLOCK_TAGS:
        return None
    try:
        return ToolCall.model_validate_json(match.group(2))
    except ValidationError:
        return None


def extract_tool_calls(text: str) -> tuple[list[ToolCall], str]:
    """Return valid tool calls and the text with those blocks removed.

    Only untagged, ``tool`` and ``json`` fences are considered; blocks that
    are not valid tool calls stay in the text untouched.
    """
    calls: list[ToolCall] = []
    pieces: list[str] = []
    last = 0
    for match in _FENCED_BLOCK_RE.finditer(text):
        call = _parse_call(match)
        if call is None:
            continue
        calls.append(call)
        pieces.append(text[last : match.start()])
        last = match.end()
    pieces.append(text[last:])
    return calls, "".join(pieces).strip()


@dataclass(frozen=True)
class ToolResult:
    """Outcome of running (or refusing to run) one tool call."""

    tool_name: str
    output: str = ""
    truncated: bool = False
    error: BaseException | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def duration_ms(self) -> int:
        if self.started_at is None or self.finished_at is None:
            return 0
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, tool_name: str, error: BaseException, at: datetime | None = None) -> ToolResult:
        moment = at or datetime.now()
        return cls(tool_name=tool_name, error=error, started_at=moment, finished_at=moment)


def _error_text(error: BaseException) -> str:
    if isinstance(error, GeminiTermError):
        return str(error)
    return str(error) or type(error).__name__


def result_payload(result: ToolResult) -> dict[str, Any]:
    """Build the JSON object carried by a result block; empty optionals are omitted."""
    payload: dict[str, Any] = {
        "tool_name": result.tool_name,
        "success": result.success,
        "output": result.output,
    }
    if result.error is not None:
        payload["error"] = _error_text(result.error)
    if result.truncated:
        payload["truncated"] = True
    if result.duration_ms:
        payload["execution_time_ms"] = result.duration_ms
    return payload


def format_result_block(result: ToolResult) -> str:
    """Render the canonical ``result`` block fed back to the model."""
    data = json.dumps(result_payload(result), ensure_ascii=False, separators=(",", ":"))
    return f"```result\n{data}\n```"


def join_result_blocks(blocks: list[str]) -> str:
    return "\n".join(blocks)


def format_tool_message(call: ToolCall, result: ToolResult) -> str:
    """Summarize a finished tool call for the chat log."""
    lines = [f"Tool: {call.name}"]
    if call.reason:
        lines.append(f"Reason: {call.reason}")
    if call.args:
        lines.append("Args: " + json.dumps(call.args, ensure_ascii=False, separators=(",", ":")))

    output_text = result.output
    if result.truncated:
        output_text = output_text.rstrip("\n") + "\n[output truncated]"
    if result.error is not None:
        if output_text:
            output_text += "\n"
        output_text += "Error: " + _error_text(result.error)

    if output_text.strip():
        lines.append("Output:")
        lines.append(output_text.rstrip("\n"))
    return "\n".join(lines).strip()
