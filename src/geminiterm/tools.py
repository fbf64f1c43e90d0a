"""Built-in local tools and the default registry/executor pair."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging
from pathlib import Path
import re
import subprocess
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, ValidationError

from .exceptions import ToolExecutionError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolRuntimeOptions:
    """Limits applied to every built-in tool."""

    workspace_root: str = "."
    command_timeout_seconds: int = 30
    max_output_lines: int = 200
    max_output_bytes: int = 50_000
    max_search_results: int = 200


def truncate_output(text: str, max_lines: int, max_bytes: int) -> tuple[str, bool]:
    """Apply deterministic truncation by byte and line limits."""
    truncated = False
    result = text

    if max_bytes > 0:
        encoded = result.encode("utf-8", errors="ignore")
        if len(encoded) > max_bytes:
            truncated = True
            result = encoded[:max_bytes].decode("utf-8", errors="ignore")

    if max_lines > 0:
        lines = result.splitlines()
        if len(lines) > max_lines:
            truncated = True
            result = "\n".join(lines[:max_lines])

    return result, truncated


class ParamsSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")


class BuiltinTool:
    """Base class for tools that run in-process against the workspace."""

    name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    params_schema: ClassVar[type[ParamsSchema]] = ParamsSchema
    confirm: ClassVar[bool] = False

    def __init__(self, options: ToolRuntimeOptions) -> None:
        self.options = options
        self.root = Path(options.workspace_root).expanduser().resolve()

    def requires_confirmation(self, args: Mapping[str, Any]) -> bool:
        return self.confirm

    def _resolve(self, raw_path: str) -> Path:
        candidate = Path(raw_path).expanduser()
        if not candidate.is_absolute():
            candidate = self.root / candidate
        resolved = candidate.resolve(strict=False)
        try:
            resolved.relative_to(self.root)
        except ValueError:
            raise ToolExecutionError(self.name, f"path escapes workspace: {raw_path}") from None
        return resolved

    def run(self, params: Any) -> str:
        raise NotImplementedError


class FileReadParams(ParamsSchema):
    path: str


class FileReadTool(BuiltinTool):
    name = "file_read"
    description = "Read a UTF-8 text file inside the workspace."
    params_schema = FileReadParams

    def run(self, params: FileReadParams) -> str:
        target = self._resolve(params.path)
        if not target.is_file():
            raise ToolExecutionError(self.name, f"file not found: {params.path}")
        return target.read_text(encoding="utf-8", errors="replace")


class FileWriteParams(ParamsSchema):
    path: str
    content: str


class FileWriteTool(BuiltinTool):
    name = "file_write"
    description = "Create or overwrite a text file inside the workspace."
    params_schema = FileWriteParams
    confirm = True

    def run(self, params: FileWriteParams) -> str:
        target = self._resolve(params.path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(params.content, encoding="utf-8")
        return f"wrote {len(params.content.encode('utf-8'))} bytes to {params.path}"


class BashParams(ParamsSchema):
    command: str
    workdir: str | None = None


class BashTool(BuiltinTool):
    name = "bash"
    description = "Run a shell command in the workspace with a timeout."
    params_schema = BashParams
    confirm = True

    def run(self, params: BashParams) -> str:
        cwd = self._resolve(params.workdir) if params.workdir else self.root
        try:
            completed = subprocess.run(
                params.command,
                shell=True,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.options.command_timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            raise ToolExecutionError(
                self.name,
                f"command timed out after {self.options.command_timeout_seconds}s",
            ) from None
        output = completed.stdout
        if completed.stderr:
            output = f"{output}{completed.stderr}" if output else completed.stderr
        if completed.returncode != 0:
            detail, truncated = truncate_output(
                output.strip(), self.options.max_output_lines, self.options.max_output_bytes
            )
            if truncated:
                detail += "\n[output truncated]"
            raise ToolExecutionError(self.name, f"exit status {completed.returncode}: {detail}")
        return output


class SearchParams(ParamsSchema):
    pattern: str
    path: str = "."
    glob: str = "*"


class SearchTool(BuiltinTool):
    name = "search"
    description = "Search workspace files for a regular expression."
    params_schema = SearchParams

    def run(self, params: SearchParams) -> str:
        try:
            regex = re.compile(params.pattern)
        except re.error as exc:
            raise ToolExecutionError(self.name, f"invalid pattern: {exc}") from exc
        base = self._resolve(params.path)
        files = [base] if base.is_file() else sorted(base.rglob(params.glob))
        matches: list[str] = []
        for file_path in files:
            if not file_path.is_file():
                continue
            try:
                text = file_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue
            for number, line in enumerate(text.splitlines(), start=1):
                if regex.search(line):
                    relative = file_path.relative_to(self.root)
                    matches.append(f"{relative}:{number}:{line}")
                    if len(matches) >= self.options.max_search_results:
                        return "\n".join(matches)
        return "\n".join(matches) if matches else "no matches"


BUILTIN_TOOLS: tuple[type[BuiltinTool], ...] = (
    FileReadTool,
    FileWriteTool,
    BashTool,
    SearchTool,
)


class DefaultToolRegistry:
    """Name-indexed registry of tool instances."""

    def __init__(self, tools: list[BuiltinTool] | None = None) -> None:
        self._tools: dict[str, BuiltinTool] = {}
        for tool in tools or []:
            self.register(tool)

    @classmethod
    def with_builtins(cls, options: ToolRuntimeOptions) -> DefaultToolRegistry:
        return cls([tool_cls(options) for tool_cls in BUILTIN_TOOLS])

    def register(self, tool: BuiltinTool) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> BuiltinTool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return sorted(self._tools)


class DefaultToolExecutor:
    """Validate arguments, run a registered tool, and cap its output."""

    def __init__(self, registry: DefaultToolRegistry, options: ToolRuntimeOptions) -> None:
        self.registry = registry
        self.options = options

    def execute(self, name: str, args: Mapping[str, Any]) -> tuple[str, bool]:
        tool = self.registry.get(name)
        if tool is None:
            raise ToolExecutionError(name, "tool not found")
        try:
            params = tool.params_schema.model_validate(dict(args))
        except ValidationError as exc:
            raise ToolExecutionError(name, f"invalid arguments: {exc.errors()[0]['msg']}") from exc
        try:
            raw = tool.run(params)
        except ToolExecutionError:
            raise
        except OSError as exc:
            raise ToolExecutionError(name, str(exc)) from exc
        output, truncated = truncate_output(
            raw, self.options.max_output_lines, self.options.max_output_bytes
        )
        LOGGER.info(
            "tool.executed",
            extra={"event": "tool.executed", "tool": name, "truncated": truncated},
        )
        return output, truncated
