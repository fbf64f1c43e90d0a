"""Local personas: a system prompt prepended to every outgoing user message."""

from __future__ import annotations

import logging
from pathlib import Path
import re

from pydantic import BaseModel, Field, field_validator

from .exceptions import NotFoundError, PersistenceError

LOGGER = logging.getLogger(__name__)

PERSONAS_SUBDIR = "personas"

_FRONT_MATTER_RE = re.compile(r"\A---\n(.*?)\n---\n", re.DOTALL)
_PROMPT_BLOCK_RE = re.compile(r"## System Prompt\s*\n```\n(.*?)\n```", re.DOTALL)


class Persona(BaseModel):
    """A named system prompt with an optional preferred model."""

    name: str = Field(min_length=1, max_length=50)
    description: str = Field(default="", max_length=200)
    system_prompt: str = ""
    model: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


def format_system_prompt(persona: Persona | None, user_message: str) -> str:
    """Build the wire prompt; messages pass through unchanged without a persona prompt."""
    if persona is None or not persona.system_prompt:
        return user_message
    return f"[System Instructions]\n{persona.system_prompt}\n\n[User Message]\n{user_message}"


def persona_filename(name: str) -> str:
    return name.replace(" ", "_").lower() + ".md"


def persona_to_markdown(persona: Persona) -> str:
    lines = ["---", f"name: {persona.name}"]
    if persona.description:
        lines.append(f"description: {persona.description}")
    if persona.model:
        lines.append(f"model: {persona.model}")
    lines.extend(["---", "", f"# {persona.name}", ""])
    if persona.description:
        lines.extend([f"**{persona.description}**", ""])
    lines.extend(["## System Prompt", "", "```", persona.system_prompt, "```", ""])
    return "\n".join(lines)


def persona_from_markdown(text: str) -> Persona:
    """Parse the format written by :func:`persona_to_markdown`."""
    match = _FRONT_MATTER_RE.match(text)
    if match is None:
        raise PersistenceError("persona file has no front matter")
    fields: dict[str, str] = {}
    for line in match.group(1).splitlines():
        key, sep, value = line.partition(":")
        if sep:
            fields[key.strip()] = value.strip()
    prompt_match = _PROMPT_BLOCK_RE.search(text, match.end())
    return Persona(
        name=fields.get("name", ""),
        description=fields.get("description", ""),
        model=fields.get("model", ""),
        system_prompt=prompt_match.group(1) if prompt_match else "",
    )


def export_persona(persona: Persona, download_dir: str | Path) -> Path:
    """Write ``<download_dir>/personas/<name>.md`` and return its path."""
    target_dir = Path(download_dir).expanduser() / PERSONAS_SUBDIR
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / persona_filename(persona.name)
        target.write_text(persona_to_markdown(persona), encoding="utf-8")
    except OSError as exc:
        raise PersistenceError(f"failed to export persona: {exc}") from exc
    LOGGER.info(
        "persona.exported",
        extra={"event": "persona.exported", "persona": persona.name, "path": str(target)},
    )
    return target


def import_persona(name: str, download_dir: str | Path) -> Persona:
    path = Path(download_dir).expanduser() / PERSONAS_SUBDIR / persona_filename(name)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise NotFoundError(f"persona not found: {name}") from None
    return persona_from_markdown(text)
