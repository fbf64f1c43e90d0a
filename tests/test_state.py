"""Tests for the input buffer and picker view states."""

from __future__ import annotations

import unittest

from geminiterm.models import Conversation, Gem, WebImage
from geminiterm.state import GemPicker, HistoryPicker, ImagePicker, InputBuffer, window_bounds


class InputBufferTests(unittest.TestCase):
    def test_insert_and_edit_at_cursor(self) -> None:
        buffer = InputBuffer()
        buffer.insert("helo")
        buffer.move(-1)
        buffer.insert("l")
        self.assertEqual((buffer.text, buffer.cursor), ("hello", 4))
        buffer.backspace()
        buffer.delete()
        self.assertEqual(buffer.text, "hel")

    def test_home_and_end_work_per_line(self) -> None:
        buffer = InputBuffer()
        buffer.set("first\nsecond")
        buffer.home()
        self.assertEqual(buffer.cursor, 6)
        buffer.move(-10)
        buffer.end()
        self.assertEqual(buffer.cursor, 5)

    def test_cursor_is_clamped(self) -> None:
        buffer = InputBuffer()
        buffer.set("ab")
        buffer.move(10)
        self.assertEqual(buffer.cursor, 2)
        buffer.clear()
        buffer.backspace()
        self.assertEqual((buffer.text, buffer.cursor), ("", 0))


class PickerTests(unittest.TestCase):
    def test_gem_picker_filters_on_name_and_description(self) -> None:
        picker = GemPicker(
            gems=[
                Gem(id="1", name="Coder", description="writes code"),
                Gem(id="2", name="Writer", description="prose"),
            ]
        )
        for char in "pro":
            picker.type_char(char)
        self.assertEqual([gem.id for gem in picker.visible()], ["2"])
        picker.erase_char()
        picker.erase_char()
        picker.erase_char()
        self.assertEqual(picker.size(), 2)

    def test_gem_picker_wraps(self) -> None:
        picker = GemPicker(gems=[Gem(id="1", name="A"), Gem(id="2", name="B")])
        picker.move(-1)
        self.assertEqual(picker.selected().id, "2")
        picker.move(1)
        self.assertEqual(picker.selected().id, "1")

    def test_history_picker_has_new_conversation_row(self) -> None:
        picker = HistoryPicker(conversations=[Conversation(id="conv_1", title="Tides")])
        self.assertEqual(picker.size(), 2)
        self.assertTrue(picker.is_new_selected())
        self.assertIsNone(picker.selected())
        picker.move(1)
        self.assertEqual(picker.selected().id, "conv_1")

    def test_image_picker_selection(self) -> None:
        picker = ImagePicker(images=[WebImage(url=f"u{i}") for i in range(3)])
        picker.toggle()
        picker.move(2)
        picker.toggle()
        self.assertEqual(picker.selected_indices(), [0, 2])
        picker.toggle()
        self.assertEqual(picker.selected_indices(), [0])
        picker.select_all()
        self.assertEqual(picker.selected_indices(), [0, 1, 2])
        picker.select_none()
        self.assertEqual(picker.selected_indices(), [])

    def test_window_bounds(self) -> None:
        self.assertEqual(window_bounds(0, 3), (0, 3))
        self.assertEqual(window_bounds(0, 20), (0, 8))
        self.assertEqual(window_bounds(10, 20), (6, 14))
        self.assertEqual(window_bounds(19, 20), (12, 20))


if __name__ == "__main__":
    unittest.main()
