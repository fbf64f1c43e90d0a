"""CLI entrypoint for GeminiTerm."""

from __future__ import annotations

import argparse
from collections.abc import Callable, Sequence
import importlib
from importlib import metadata
import logging
from pathlib import Path
import sys
from typing import Any

from .app import GeminiTermApp
from .chat_model import ChatModel, ChatSettings
from .config import ensure_config_dir, load_config
from .downloads import DEFAULT_IMAGE_DIR, ImageDownloader
from .exceptions import ConfigValidationError, GeminiTermError, NotFoundError
from .interfaces import RemoteClient
from .logging_utils import configure_logging
from .managers import HistoryManager
from .models import Conversation, Gem
from .persistence import JsonHistoryStore
from .personas import Persona, export_persona, import_persona
from .tools import DefaultToolExecutor, DefaultToolRegistry, ToolRuntimeOptions

LOGGER = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geminiterm",
        description="GeminiTerm - Terminal chat interface for Gemini web sessions",
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument("--config", type=Path, help="Path to an alternative config.toml")
    parser.add_argument("--model", help="Model to use for this session")
    parser.add_argument("--gem", help="Gem id or name to activate")
    parser.add_argument("--persona", help="Persona to apply to outgoing messages")
    parser.add_argument("--prompt-file", type=Path, help="Send the file contents as the first message")
    parser.add_argument("--conversation", help="Resume a stored conversation by id")
    parser.add_argument(
        "--export-persona",
        action="store_true",
        help="Write the selected persona to the personas directory and exit",
    )
    return parser


def load_client_factory(spec: str) -> Callable[[], RemoteClient]:
    """Import ``package.module:callable`` and return the callable."""
    module_name, _, attribute = spec.partition(":")
    module = importlib.import_module(module_name)
    factory = getattr(module, attribute)
    if not callable(factory):
        raise TypeError(f"{spec} is not callable")
    return factory


def resolve_persona(name: str, personas: dict[str, Any], download_dir: str) -> Persona:
    """Look ``name`` up in the config table, then in the exported personas."""
    entries = personas.get("persona") or {}
    if name in entries:
        return Persona(name=name, **entries[name])
    return import_persona(name, download_dir)


def resolve_gem(client: RemoteClient, wanted: str) -> Gem:
    needle = wanted.strip().lower()
    for gem in client.fetch_gems():
        if gem.id == wanted or gem.name.lower() == needle:
            return gem
    raise NotFoundError(f"gem not found: {wanted}")


def _print_version() -> None:
    try:
        version = metadata.version("geminiterm")
    except metadata.PackageNotFoundError:
        version = "0.0.0"
    print(f"geminiterm {version}")


def main(argv: Sequence[str] | None = None) -> int:
    """Load configuration, wire collaborators, and run the TUI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        _print_version()
        return 0

    ensure_config_dir()
    try:
        config = load_config(args.config)
    except ConfigValidationError as exc:
        print(f"geminiterm: {exc}", file=sys.stderr)
        return 1
    configure_logging(config["logging"])

    gemini_cfg = config["gemini"]
    download_dir = gemini_cfg["download_dir"] or str(DEFAULT_IMAGE_DIR)

    persona: Persona | None = None
    persona_name = args.persona or config["personas"]["active"]
    if persona_name:
        try:
            persona = resolve_persona(persona_name, config["personas"], download_dir)
        except (GeminiTermError, ValueError) as exc:
            print(f"geminiterm: {exc}", file=sys.stderr)
            return 1
    if args.export_persona:
        if persona is None:
            print("geminiterm: --export-persona needs a persona", file=sys.stderr)
            return 1
        try:
            print(export_persona(persona, download_dir))
        except GeminiTermError as exc:
            print(f"geminiterm: {exc}", file=sys.stderr)
            return 1
        return 0

    initial_prompt = ""
    if args.prompt_file is not None:
        try:
            initial_prompt = args.prompt_file.expanduser().read_text(encoding="utf-8").strip()
        except OSError as exc:
            print(f"geminiterm: cannot read prompt file: {exc}", file=sys.stderr)
            return 1

    factory_spec = gemini_cfg["client_factory"]
    if not factory_spec:
        print(
            "geminiterm: no client configured; set [gemini] client_factory in config.toml",
            file=sys.stderr,
        )
        return 1
    try:
        client = load_client_factory(factory_spec)()
        session = client.start_chat()
    except Exception as exc:  # noqa: BLE001 - reported and mapped to the exit code.
        LOGGER.error(
            "client.init.failed",
            extra={"event": "client.init.failed", "factory": factory_spec, "error": str(exc)},
        )
        print(f"geminiterm: failed to create client: {exc}", file=sys.stderr)
        return 1

    model_name = args.model or (persona.model if persona else "") or gemini_cfg["model"]
    session.set_model(model_name)

    active_gem: Gem | None = None
    gem_wanted = args.gem or gemini_cfg["default_gem"]
    if gem_wanted:
        try:
            active_gem = resolve_gem(client, gem_wanted)
        except Exception as exc:  # noqa: BLE001
            print(f"geminiterm: {exc}", file=sys.stderr)
            return 1
        session.set_gem(active_gem.id)

    store: JsonHistoryStore | None = None
    conversation: Conversation | None = None
    if config["history"]["enabled"]:
        store = JsonHistoryStore(config["history"]["directory"])
        if args.conversation:
            try:
                conversation = store.get_conversation(args.conversation)
            except GeminiTermError as exc:
                print(f"geminiterm: {exc}", file=sys.stderr)
                return 1

    registry: DefaultToolRegistry | None = None
    executor: DefaultToolExecutor | None = None
    tools_cfg = config["tools"]
    if tools_cfg["enabled"]:
        options = ToolRuntimeOptions(
            workspace_root=tools_cfg["workspace_root"],
            command_timeout_seconds=tools_cfg["command_timeout_seconds"],
            max_output_lines=tools_cfg["max_output_lines"],
            max_output_bytes=tools_cfg["max_output_bytes"],
        )
        registry = DefaultToolRegistry.with_builtins(options)
        executor = DefaultToolExecutor(registry, options)

    settings = ChatSettings(
        model=model_name,
        download_dir=gemini_cfg["download_dir"],
        auto_approve_tools=gemini_cfg["auto_approve_tools"],
        max_tool_depth=gemini_cfg["max_tool_depth"],
        gradient=tuple(config["ui"]["gradient"]),
        show_thoughts=config["ui"]["show_thoughts"],
        title=config["app"]["title"],
    )
    downloader = ImageDownloader()
    model = ChatModel(
        client=client,
        session=session,
        settings=settings,
        store=store,
        tool_registry=registry,
        tool_executor=executor,
        history_manager=HistoryManager() if store is not None else None,
        downloader=downloader,
        persona=persona,
        conversation=conversation,
        initial_prompt=initial_prompt,
        active_gem=active_gem,
    )
    try:
        result = GeminiTermApp(model).run()
    finally:
        downloader.close()
    return result or 0


if __name__ == "__main__":
    sys.exit(main())
