"""Pure parsing helpers for slash commands and export arguments."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import os
from pathlib import Path

from .exceptions import CommandValidationError

EXPORT_FORMAT_MARKDOWN = "markdown"
EXPORT_FORMAT_JSON = "json"

_FORMAT_ALIASES = {
    "json": EXPORT_FORMAT_JSON,
    "md": EXPORT_FORMAT_MARKDOWN,
    "markdown": EXPORT_FORMAT_MARKDOWN,
}
_INVALID_FILENAME_CHARS = '/\\:*?"<>|'
_MAX_FILENAME_LENGTH = 200
_FALLBACK_FILENAME = "conversation"


@dataclass(frozen=True)
class ParsedCommand:
    """Result of parsing one line of chat input."""

    is_command: bool
    name: str = ""
    args: str = ""


@dataclass(frozen=True)
class ExportTarget:
    """Resolved destination of an ``/export`` request."""

    path: str
    format: str


def parse_command(text: str) -> ParsedCommand:
    """Split ``/name args`` input into a lower-cased name and trimmed args.

    Input that does not start with ``/`` (after trimming) is not a command.
    """
    stripped = text.strip()
    if not stripped.startswith("/"):
        return ParsedCommand(is_command=False)

    body = stripped[1:]
    parts = body.split(None, 1)
    if not parts:
        return ParsedCommand(is_command=True)
    name = parts[0].lower()
    args = parts[1].strip() if len(parts) > 1 else ""
    return ParsedCommand(is_command=True, name=name, args=args)


def sanitize_filename(title: str) -> str:
    """Make a conversation title safe to use as a file name."""
    result = title
    for char in _INVALID_FILENAME_CHARS:
        result = result.replace(char, "_")
    result = result.strip(" .")
    result = result[:_MAX_FILENAME_LENGTH]
    if not result or not result.strip("_"):
        return _FALLBACK_FILENAME
    return result


def default_export_filename(title: str = "", now: datetime | None = None) -> str:
    """Return the file name used when ``/export`` gets no path."""
    if title:
        return sanitize_filename(title) + ".md"
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"conversation_{stamp}.md"


def parse_export_args(args: str) -> ExportTarget:
    """Parse ``[path] [-f json|md]`` in any order.

    An explicit ``-f`` wins; otherwise a ``.json`` suffix selects JSON and
    everything else is Markdown. The matching extension is appended when
    missing.
    """
    parts = args.split()
    if not parts:
        raise CommandValidationError("usage: /export <path> [-f json|md]")

    explicit: str | None = None
    path_parts: list[str] = []
    index = 0
    while index < len(parts):
        token = parts[index]
        if token == "-f":
            if index + 1 >= len(parts):
                raise CommandValidationError("missing format after -f (use json or md)")
            value = parts[index + 1].lower()
            if value not in _FORMAT_ALIASES:
                raise CommandValidationError(f"unknown format: {value} (use json or md)")
            explicit = _FORMAT_ALIASES[value]
            index += 2
            continue
        path_parts.append(token)
        index += 1

    if not path_parts:
        raise CommandValidationError("missing filename")

    path = " ".join(path_parts)
    lowered = path.lower()
    if explicit is not None:
        export_format = explicit
    elif lowered.endswith(".json"):
        export_format = EXPORT_FORMAT_JSON
    else:
        export_format = EXPORT_FORMAT_MARKDOWN

    suffix = ".json" if export_format == EXPORT_FORMAT_JSON else ".md"
    if not lowered.endswith(suffix):
        path += suffix
    return ExportTarget(path=path, format=export_format)


def validate_export_path(path: str) -> str:
    """Expand ``~``, make the path absolute, and require its parent to exist."""
    expanded = os.path.expanduser(path)
    absolute = Path(os.path.abspath(expanded))
    if not absolute.parent.is_dir():
        raise CommandValidationError(f"directory does not exist: {absolute.parent}")
    return str(absolute)


def resolve_export_target(args: str, title: str = "", now: datetime | None = None) -> ExportTarget:
    """Combine default naming, argument parsing, and path validation."""
    if not args.strip():
        args = default_export_filename(title, now)
    target = parse_export_args(args)
    return ExportTarget(path=validate_export_path(target.path), format=target.format)
