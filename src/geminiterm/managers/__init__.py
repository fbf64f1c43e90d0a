"""Helpers that take over the terminal outside the chat loop."""

from __future__ import annotations

from .history import HistoryManager

__all__ = ["HistoryManager"]
