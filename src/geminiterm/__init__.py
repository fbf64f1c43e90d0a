"""Top-level package for geminiterm."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .app import GeminiTermApp
    from .chat_model import ChatModel, ChatSettings
    from .config import ensure_config_dir, load_config
    from .exceptions import (
        AuthError,
        ConfigValidationError,
        GeminiTermError,
        NetworkError,
        RateLimitError,
        ToolExecutionError,
    )
    from .persistence import JsonHistoryStore

__all__ = [
    "AuthError",
    "ChatModel",
    "ChatSettings",
    "ConfigValidationError",
    "GeminiTermApp",
    "GeminiTermError",
    "JsonHistoryStore",
    "NetworkError",
    "RateLimitError",
    "ToolExecutionError",
    "ensure_config_dir",
    "load_config",
]

_EXCEPTIONS = {
    "AuthError",
    "ConfigValidationError",
    "GeminiTermError",
    "NetworkError",
    "RateLimitError",
    "ToolExecutionError",
}


def __getattr__(name: str) -> Any:
    """Lazily import symbols so the textual UI is only loaded when needed."""
    if name == "GeminiTermApp":
        from .app import GeminiTermApp

        return GeminiTermApp
    if name in {"ChatModel", "ChatSettings"}:
        from . import chat_model

        return getattr(chat_model, name)
    if name in {"ensure_config_dir", "load_config"}:
        from . import config

        return getattr(config, name)
    if name in _EXCEPTIONS:
        from . import exceptions

        return getattr(exceptions, name)
    if name == "JsonHistoryStore":
        from .persistence import JsonHistoryStore

        return JsonHistoryStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
