"""Tests for persona prompts and markdown persona files."""

from __future__ import annotations

import tempfile
import unittest

from pydantic import ValidationError

from geminiterm.exceptions import NotFoundError, PersistenceError
from geminiterm.personas import (
    Persona,
    export_persona,
    format_system_prompt,
    import_persona,
    persona_filename,
    persona_from_markdown,
)


class SystemPromptTests(unittest.TestCase):
    def test_prompt_wraps_user_message(self) -> None:
        persona = Persona(name="coder", system_prompt="Answer in code.")
        self.assertEqual(
            format_system_prompt(persona, "sort a list"),
            "[System Instructions]\nAnswer in code.\n\n[User Message]\nsort a list",
        )

    def test_message_passes_through_without_prompt(self) -> None:
        self.assertEqual(format_system_prompt(None, "hi"), "hi")
        self.assertEqual(format_system_prompt(Persona(name="blank"), "hi"), "hi")

    def test_name_is_required(self) -> None:
        with self.assertRaises(ValidationError):
            Persona(name="   ")


class PersonaFileTests(unittest.TestCase):
    def setUp(self) -> None:
        self._temp = tempfile.TemporaryDirectory()
        self.addCleanup(self._temp.cleanup)
        self.directory = self._temp.name

    def test_filename(self) -> None:
        self.assertEqual(persona_filename("Code Review"), "code_review.md")

    def test_export_then_import(self) -> None:
        persona = Persona(
            name="Code Review",
            description="Strict reviewer",
            system_prompt="Point out bugs.\nBe brief.",
            model="gemini-2.5-pro",
        )
        path = export_persona(persona, self.directory)
        self.assertEqual(path.parent.name, "personas")
        text = path.read_text(encoding="utf-8")
        self.assertTrue(text.startswith("---\nname: Code Review\n"))
        self.assertIn("## System Prompt", text)

        self.assertEqual(import_persona("Code Review", self.directory), persona)

    def test_import_missing_persona(self) -> None:
        with self.assertRaises(NotFoundError):
            import_persona("ghost", self.directory)

    def test_markdown_without_front_matter_is_rejected(self) -> None:
        with self.assertRaises(PersistenceError):
            persona_from_markdown("# just a heading\n")


if __name__ == "__main__":
    unittest.main()
