"""Tests for pure rendering helpers."""

from __future__ import annotations

import unittest

from geminiterm.exceptions import AuthError, NetworkError, RateLimitError
from geminiterm.render import SPINNER_FRAMES, error_lines, render_loading

GRADIENT = ("#4285f4", "#9b51e0", "#f07a4a")


class ErrorLinesTests(unittest.TestCase):
    def test_plain_exception_is_message_only(self) -> None:
        self.assertEqual(error_lines(ValueError("bad")), ["⚠ Error: bad"])

    def test_metadata_lines_and_hint(self) -> None:
        error = AuthError("session expired", http_status=401, endpoint="/StreamGenerate")
        self.assertEqual(
            error_lines(error),
            [
                "⚠ Error: session expired",
                "HTTP Status: 401",
                "Endpoint: /StreamGenerate",
                "💡 Try refreshing your session",
            ],
        )

    def test_known_error_code_is_described(self) -> None:
        error = RateLimitError("slow down", error_code=1037)
        self.assertIn("Error Code: 1037 (usage limit exceeded)", error_lines(error))

    def test_body_replaces_hint_and_is_truncated(self) -> None:
        lines = error_lines(NetworkError("offline", body="x" * 250))
        self.assertEqual(lines[-1], "Response: " + "x" * 200 + "...")
        self.assertFalse(any(line.startswith("💡") for line in lines))


class LoadingIndicatorTests(unittest.TestCase):
    def test_frame_drives_spinner_and_dots(self) -> None:
        first = render_loading(0, GRADIENT).plain
        self.assertTrue(first.startswith(SPINNER_FRAMES[0]))
        self.assertIn("Gemini is thinking", first)
        self.assertTrue(first.endswith("○○○"))

        later = render_loading(3, GRADIENT).plain
        self.assertTrue(later.startswith(SPINNER_FRAMES[3]))
        self.assertTrue(later.endswith("●○○"))

    def test_same_frame_renders_identically(self) -> None:
        self.assertEqual(render_loading(5, GRADIENT), render_loading(5, GRADIENT))


if __name__ == "__main__":
    unittest.main()
