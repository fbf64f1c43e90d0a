"""Tests for the built-in tool registry and executor."""

from __future__ import annotations

import os
from pathlib import Path
import tempfile
import unittest

from geminiterm.exceptions import ToolExecutionError
from geminiterm.tools import (
    DefaultToolExecutor,
    DefaultToolRegistry,
    ToolRuntimeOptions,
    truncate_output,
)


class TruncateOutputTests(unittest.TestCase):
    def test_under_limits_is_unchanged(self) -> None:
        self.assertEqual(truncate_output("a\nb", 10, 100), ("a\nb", False))

    def test_line_limit(self) -> None:
        self.assertEqual(truncate_output("1\n2\n3\n4", 2, 100), ("1\n2", True))

    def test_byte_limit_keeps_valid_utf8(self) -> None:
        text, truncated = truncate_output("ééé", 0, 3)
        self.assertTrue(truncated)
        self.assertEqual(text, "é")


class DefaultToolExecutorTests(unittest.TestCase):
    """Run each built-in tool against a temporary workspace."""

    def setUp(self) -> None:
        self._temp = tempfile.TemporaryDirectory()
        self.addCleanup(self._temp.cleanup)
        self.root = Path(self._temp.name)
        self.options = ToolRuntimeOptions(workspace_root=str(self.root), max_output_lines=50)
        self.registry = DefaultToolRegistry.with_builtins(self.options)
        self.executor = DefaultToolExecutor(self.registry, self.options)

    def test_registry_lists_builtins(self) -> None:
        self.assertEqual(self.registry.names(), ["bash", "file_read", "file_write", "search"])
        self.assertIsNone(self.registry.get("missing"))

    def test_confirmation_policy(self) -> None:
        self.assertFalse(self.registry.get("file_read").requires_confirmation({}))
        self.assertFalse(self.registry.get("search").requires_confirmation({}))
        self.assertTrue(self.registry.get("file_write").requires_confirmation({}))
        self.assertTrue(self.registry.get("bash").requires_confirmation({}))

    def test_write_then_read(self) -> None:
        output, truncated = self.executor.execute(
            "file_write", {"path": "notes/todo.txt", "content": "buy milk\n"}
        )
        self.assertEqual(output, "wrote 9 bytes to notes/todo.txt")
        self.assertFalse(truncated)
        self.assertEqual((self.root / "notes" / "todo.txt").read_text(encoding="utf-8"), "buy milk\n")

        output, _ = self.executor.execute("file_read", {"path": "notes/todo.txt"})
        self.assertEqual(output, "buy milk\n")

    def test_read_output_is_truncated(self) -> None:
        (self.root / "long.txt").write_text("\n".join(str(i) for i in range(100)), encoding="utf-8")
        output, truncated = self.executor.execute("file_read", {"path": "long.txt"})
        self.assertTrue(truncated)
        self.assertEqual(len(output.splitlines()), 50)

    def test_search_reports_relative_matches(self) -> None:
        (self.root / "a.py").write_text("import os\nprint('x')\n", encoding="utf-8")
        (self.root / "b.txt").write_text("nothing\n", encoding="utf-8")
        output, _ = self.executor.execute("search", {"pattern": r"^import", "glob": "*.py"})
        self.assertEqual(output, "a.py:1:import os")
        output, _ = self.executor.execute("search", {"pattern": "zzz"})
        self.assertEqual(output, "no matches")

    def test_bash_runs_in_workspace(self) -> None:
        if os.name != "posix":
            self.skipTest("POSIX shell only")
        output, _ = self.executor.execute("bash", {"command": "pwd"})
        self.assertEqual(Path(output.strip()).resolve(), self.root.resolve())
        with self.assertRaises(ToolExecutionError) as ctx:
            self.executor.execute("bash", {"command": "exit 3"})
        self.assertIn("exit status 3", str(ctx.exception))

    def test_failed_command_output_is_truncated(self) -> None:
        if os.name != "posix":
            self.skipTest("POSIX shell only")
        with self.assertRaises(ToolExecutionError) as ctx:
            self.executor.execute("bash", {"command": "seq 1 500; exit 1"})
        message = str(ctx.exception)
        self.assertIn("exit status 1", message)
        self.assertIn("[output truncated]", message)
        self.assertNotIn("\n51\n", message)
        self.assertLessEqual(len(message.splitlines()), 52)

    def test_path_escape_is_rejected(self) -> None:
        with self.assertRaises(ToolExecutionError) as ctx:
            self.executor.execute("file_read", {"path": "../outside.txt"})
        self.assertIn("path escapes workspace", str(ctx.exception))

    def test_invalid_and_unknown_calls(self) -> None:
        with self.assertRaises(ToolExecutionError) as ctx:
            self.executor.execute("file_read", {"file": "x"})
        self.assertIn("invalid arguments", str(ctx.exception))
        with self.assertRaises(ToolExecutionError) as ctx:
            self.executor.execute("nope", {})
        self.assertIn("tool not found", str(ctx.exception))
        with self.assertRaises(ToolExecutionError):
            self.executor.execute("file_read", {"path": "missing.txt"})


if __name__ == "__main__":
    unittest.main()
