"""Tests for the interactive conversation manager."""

from __future__ import annotations

import io
from pathlib import Path
import tempfile
import unittest

from rich.console import Console

from geminiterm.managers import HistoryManager
from geminiterm.models import ROLE_USER
from geminiterm.persistence import JsonHistoryStore


class HistoryManagerTests(unittest.TestCase):
    """Drive the manager with scripted answers against a real store."""

    def setUp(self) -> None:
        self._temp = tempfile.TemporaryDirectory()
        self.addCleanup(self._temp.cleanup)
        self.store = JsonHistoryStore(Path(self._temp.name) / "history")
        self.older = self.store.create_conversation("gemini-2.5-flash")
        self.store.add_message(self.older.id, ROLE_USER, "Older chat")
        self.newer = self.store.create_conversation("gemini-2.5-pro")
        self.store.add_message(self.newer.id, ROLE_USER, "Newer chat")
        self.output = io.StringIO()

    def _manager(self, answers: str) -> HistoryManager:
        console = Console(file=self.output, width=100, color_system=None)
        return HistoryManager(console=console, stream=io.StringIO(answers))

    def test_quit_returns_none(self) -> None:
        self.assertIsNone(self._manager("q\n").run(self.store))
        self.assertIn("Conversations", self.output.getvalue())
        self.assertIn("Newer chat", self.output.getvalue())

    def test_open_returns_selected_conversation(self) -> None:
        opened = self._manager("o\n2\n").run(self.store)
        self.assertEqual(opened.id, self.older.id)
        self.assertEqual(opened.messages[0].content, "Older chat")

    def test_rename_then_open(self) -> None:
        opened = self._manager("r\n1\nRenamed\no\n1\n").run(self.store)
        self.assertEqual(opened.id, self.newer.id)
        self.assertEqual(opened.title, "Renamed")

    def test_favorite_and_reorder(self) -> None:
        self.assertIsNone(self._manager("f\n2\nm\n1\nq\n").run(self.store))
        listed = self.store.list_conversations()
        self.assertEqual([c.id for c in listed], [self.older.id, self.newer.id])
        self.assertTrue(listed[0].is_favorite)
        self.assertIn("Added to favorites", self.output.getvalue())

    def test_delete_confirms_and_stops_when_empty(self) -> None:
        result = self._manager("d\n1\ny\nd\n1\nn\nd\n1\ny\n").run(self.store)
        self.assertIsNone(result)
        self.assertEqual(self.store.list_conversations(), [])
        self.assertIn("No conversations yet.", self.output.getvalue())

    def test_out_of_range_index_is_asked_again(self) -> None:
        opened = self._manager("o\n5\n1\n").run(self.store)
        self.assertEqual(opened.id, self.newer.id)
        self.assertIn("Enter a number between 1 and 2", self.output.getvalue())


if __name__ == "__main__":
    unittest.main()
