"""Runtime-style tests for the real Textual app class."""

from __future__ import annotations

import unittest

from fakes import FakeClient, FakeSession, reply
from textual import events

from geminiterm.app import GeminiTermApp
from geminiterm.chat_model import ChatModel, ChatSettings
from geminiterm.models import ROLE_ASSISTANT, ROLE_USER


def _app(*replies, initial_prompt: str = "") -> GeminiTermApp:
    session = FakeSession(*replies)
    model = ChatModel(
        client=FakeClient(session),
        session=session,
        settings=ChatSettings(title="Test Chat"),
        initial_prompt=initial_prompt,
    )
    return GeminiTermApp(model)


class AppRuntimeTests(unittest.IsolatedAsyncioTestCase):
    """Drive the app through the Textual pilot."""

    async def test_mount_sets_title_and_paints(self) -> None:
        app = _app()
        async with app.run_test() as pilot:
            await pilot.pause()
            self.assertEqual(app.title, "Test Chat")
            self.assertGreater(app.model.width, 0)
            self.assertIn("Welcome to Gemini Chat", app.model.view_text(color=False))

    async def test_typed_message_round_trip(self) -> None:
        app = _app(reply("Hello there"))
        async with app.run_test() as pilot:
            await pilot.press("h", "i", "enter")
            await app._task_manager.await_all()
            await pilot.pause()
            session = app.model.session
            self.assertEqual(session.sent[0][0], "hi")
            self.assertEqual(
                [(entry.role, entry.content) for entry in app.model.messages],
                [(ROLE_USER, "hi"), (ROLE_ASSISTANT, "Hello there")],
            )
            self.assertFalse(app.model.loading)

    async def test_initial_prompt_is_sent_on_mount(self) -> None:
        app = _app(reply("Summary"), initial_prompt="Summarize")
        async with app.run_test() as pilot:
            await pilot.pause()
            await app._task_manager.await_all()
            await pilot.pause()
            self.assertEqual(app.model.session.sent[0][0], "Summarize")
            self.assertEqual(app.model.messages[-1].content, "Summary")

    async def test_paste_inserts_text(self) -> None:
        app = _app()
        async with app.run_test() as pilot:
            app.post_message(events.Paste("pasted"))
            await pilot.pause()
            self.assertEqual(app.model.input.text, "pasted")

    async def test_ctrl_c_exits_cleanly(self) -> None:
        app = _app()
        async with app.run_test() as pilot:
            await pilot.press("ctrl+c")
            await pilot.pause()
        self.assertTrue(app.model.quitting)
        self.assertEqual(app.return_value, 0)


if __name__ == "__main__":
    unittest.main()
