"""Tests for CLI entrypoint wiring."""

from __future__ import annotations

from copy import deepcopy
import io
from pathlib import Path
import tempfile
import unittest
from unittest.mock import patch

from geminiterm.__main__ import main
from geminiterm.chat_model import ChatModel
from geminiterm.config import DEFAULT_CONFIG


def _config(**gemini: object) -> dict:
    config = deepcopy(DEFAULT_CONFIG)
    config["gemini"]["client_factory"] = "fakes:FakeClient"
    config["gemini"].update(gemini)
    config["history"]["enabled"] = False
    return config


class MainEntrypointTests(unittest.TestCase):
    """Validate top-level main() behavior."""

    def setUp(self) -> None:
        for target in ("ensure_config_dir", "configure_logging"):
            patcher = patch(f"geminiterm.__main__.{target}")
            patcher.start()
            self.addCleanup(patcher.stop)
        self.stderr = io.StringIO()
        patcher = patch("sys.stderr", self.stderr)
        patcher.start()
        self.addCleanup(patcher.stop)

    def _run(self, argv: list[str], config: dict) -> tuple[int, object]:
        with patch("geminiterm.__main__.load_config", return_value=config), patch(
            "geminiterm.__main__.GeminiTermApp"
        ) as app_cls_mock:
            app_cls_mock.return_value.run.return_value = None
            code = main(argv)
        return code, app_cls_mock

    def test_version_exits_early(self) -> None:
        with patch("sys.stdout", new_callable=io.StringIO) as stdout:
            self.assertEqual(main(["--version"]), 0)
        self.assertTrue(stdout.getvalue().startswith("geminiterm "))

    def test_missing_client_factory_fails(self) -> None:
        code, app_cls_mock = self._run([], _config(client_factory=""))
        self.assertEqual(code, 1)
        app_cls_mock.assert_not_called()
        self.assertIn("client_factory", self.stderr.getvalue())

    def test_broken_client_factory_fails(self) -> None:
        code, app_cls_mock = self._run([], _config(client_factory="fakes:missing_factory"))
        self.assertEqual(code, 1)
        app_cls_mock.assert_not_called()

    def test_runs_app_with_wired_model(self) -> None:
        code, app_cls_mock = self._run(["--model", "gemini-2.5-pro"], _config())
        self.assertEqual(code, 0)
        app_cls_mock.assert_called_once()
        app_cls_mock.return_value.run.assert_called_once()

        model = app_cls_mock.call_args.args[0]
        self.assertIsInstance(model, ChatModel)
        self.assertEqual(model.session.model, "gemini-2.5-pro")
        self.assertEqual(model.settings.model, "gemini-2.5-pro")
        self.assertIsNone(model.store)
        self.assertIsNotNone(model.tool_executor)

    def test_unknown_gem_fails(self) -> None:
        code, app_cls_mock = self._run(["--gem", "Writer"], _config())
        self.assertEqual(code, 1)
        app_cls_mock.assert_not_called()
        self.assertIn("gem not found: Writer", self.stderr.getvalue())

    def test_prompt_file_becomes_initial_prompt(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            prompt_path = Path(tmp) / "prompt.txt"
            prompt_path.write_text("Summarize this\n", encoding="utf-8")
            code, app_cls_mock = self._run(["--prompt-file", str(prompt_path)], _config())
        self.assertEqual(code, 0)
        self.assertEqual(app_cls_mock.call_args.args[0].initial_prompt, "Summarize this")

    def test_missing_prompt_file_fails(self) -> None:
        code, _ = self._run(["--prompt-file", "/nonexistent/prompt.txt"], _config())
        self.assertEqual(code, 1)

    def test_export_persona_writes_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config = _config(download_dir=tmp)
            config["personas"]["persona"] = {
                "coder": {"description": "", "system_prompt": "Answer in code.", "model": ""}
            }
            with patch("sys.stdout", new_callable=io.StringIO) as stdout:
                code, app_cls_mock = self._run(["--persona", "coder", "--export-persona"], config)
            self.assertEqual(code, 0)
            app_cls_mock.assert_not_called()
            exported = Path(stdout.getvalue().strip())
            self.assertEqual(exported, Path(tmp) / "personas" / "coder.md")
            self.assertIn("Answer in code.", exported.read_text(encoding="utf-8"))


if __name__ == "__main__":
    unittest.main()
