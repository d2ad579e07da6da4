"""Command line front end and bootstrap helpers for Penwright."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.backends import HttpTransformBackend, OpenAITransformBackend, TransformBackend
from .ai.client import AIClient, ClientSettings
from .ai.gateway import TransformGateway
from .ai.types import ActionKind, EditProposal, Reply
from .editor.diffing import diff_stats, render_inline
from .editor.document_model import DocumentState
from .editor.session import EditorSession
from .events import EventBus, NoticePosted
from .services.article_store import ArticleStore, ArticleValidationError
from .services.assets import AssetUploader, HttpAssetUploader, LocalAssetUploader
from .services.conversation_store import ConversationStore
from .services.draft_cache import DraftCache
from .services.settings import Settings, SettingsStore, redact_secret
from .utils import logging as logging_utils
from .workflow.models import WorkflowState

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Stores:
    """Persistence adapters rooted in the configured data directory."""

    articles: ArticleStore
    conversations: ConversationStore
    drafts: DraftCache

    @classmethod
    def from_settings(cls, settings: Settings) -> Stores:
        root = settings.data_path
        return cls(
            articles=ArticleStore(root / "articles"),
            conversations=ConversationStore(root / "conversations"),
            drafts=DraftCache(root / "drafts.json"),
        )


class StaticSelection:
    """Selection provider for hosts that pass the selected text up front."""

    def __init__(self, text: str = "") -> None:
        self.text = text

    def selected_text(self) -> str:
        return self.text


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure logging for the application."""

    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def build_gateway(settings: Settings) -> TransformGateway:
    """Construct the transform gateway for the configured backend."""

    backend: TransformBackend
    if settings.transform_backend == "http":
        if not settings.transform_endpoint:
            raise ValueError("transform_endpoint must be set for the http backend")
        backend = HttpTransformBackend(
            settings.transform_endpoint,
            timeout=settings.request_timeout,
            headers=settings.default_headers,
        )
    else:
        client = AIClient(ClientSettings.from_settings(settings))
        backend = OpenAITransformBackend(client, temperature=settings.temperature)
    return TransformGateway(backend, max_context=settings.context_messages)


def build_uploader(settings: Settings) -> AssetUploader:
    if settings.upload_endpoint:
        return HttpAssetUploader(settings.upload_endpoint, timeout=settings.request_timeout)
    return LocalAssetUploader(settings.data_path / "assets")


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``penwright`` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    debug = _env_flag("PENWRIGHT_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("PENWRIGHT_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    if args.command is None:
        parser.print_help()
        return 2

    stores = Stores.from_settings(settings)
    handler = _COMMANDS[args.command]
    return handler(args, settings, stores)


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


def _cmd_new(args: argparse.Namespace, settings: Settings, stores: Stores) -> int:
    if stores.articles.exists(args.document_id):
        print(f"Article {args.document_id!r} already exists.", file=sys.stderr)
        return 1
    content = args.content or ""
    if args.source:
        try:
            content = Path(args.source).expanduser().read_text(encoding="utf-8")
        except OSError as exc:
            print(f"Could not read {args.source}: {exc}", file=sys.stderr)
            return 1
    document = DocumentState(document_id=args.document_id)
    document.metadata.retitle(args.title, keep_slug=False)
    document.update_content(content)
    try:
        stores.articles.save(document, publish=args.publish)
    except ArticleValidationError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"Could not save {args.document_id}: {exc}", file=sys.stderr)
        return 1
    print(f"Created {args.document_id} ({document.metadata.slug})")
    return 0


def _cmd_show(args: argparse.Namespace, settings: Settings, stores: Stores, stream: TextIO | None = None) -> int:
    destination = stream or sys.stdout
    try:
        document = stores.articles.load(args.document_id)
    except (OSError, ValueError) as exc:
        print(f"Could not load {args.document_id}: {exc}", file=sys.stderr)
        return 1
    if document is None:
        print(f"No article named {args.document_id!r}.", file=sys.stderr)
        return 1
    metadata = document.metadata
    status = "published" if metadata.is_published else "draft"
    destination.write(f"# {metadata.title}\n")
    destination.write(f"slug: {metadata.slug} | {status}")
    if metadata.tags:
        destination.write(f" | tags: {', '.join(metadata.tags)}")
    destination.write("\n\n")
    destination.write(document.content)
    if not document.content.endswith("\n"):
        destination.write("\n")
    return 0


def _cmd_transform(args: argparse.Namespace, settings: Settings, stores: Stores) -> int:
    try:
        action = ActionKind.parse(args.action)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    if action is ActionKind.CUSTOM and not args.prompt:
        print("--prompt is required for the custom action.", file=sys.stderr)
        return 2
    return asyncio.run(
        _run_ai_turn(
            args,
            settings,
            stores,
            lambda session: session.run_action(action, custom_prompt=args.prompt),
        )
    )


def _cmd_chat(args: argparse.Namespace, settings: Settings, stores: Stores) -> int:
    message = " ".join(args.message).strip()
    if not message:
        print("Message must not be empty.", file=sys.stderr)
        return 2
    return asyncio.run(_run_ai_turn(args, settings, stores, lambda session: session.send_chat(message)))


def _cmd_log(args: argparse.Namespace, settings: Settings, stores: Stores, stream: TextIO | None = None) -> int:
    destination = stream or sys.stdout
    try:
        messages = stores.conversations.load(args.document_id)
    except (OSError, ValueError) as exc:
        print(f"Could not load the conversation: {exc}", file=sys.stderr)
        return 1
    if not messages:
        destination.write("(no messages)\n")
        return 0
    for message in messages:
        flag = " !" if message.is_error else ""
        stamp = message.created_at.strftime("%Y-%m-%d %H:%M")
        destination.write(f"[{stamp}] {message.role.value}{flag}: {message.content}\n")
    return 0


def _cmd_clear_log(args: argparse.Namespace, settings: Settings, stores: Stores) -> int:
    if not args.yes:
        print("Clearing the conversation cannot be undone; pass --yes to confirm.", file=sys.stderr)
        return 2
    removed = stores.conversations.delete(args.document_id)
    print("Conversation cleared." if removed else "No conversation to clear.")
    return 0


def _cmd_insert_image(args: argparse.Namespace, settings: Settings, stores: Stores) -> int:
    path = Path(args.image).expanduser()
    try:
        data = path.read_bytes()
    except OSError as exc:
        print(f"Could not read {args.image}: {exc}", file=sys.stderr)
        return 1
    if not stores.articles.exists(args.document_id):
        print(f"No article named {args.document_id!r}.", file=sys.stderr)
        return 1
    return asyncio.run(_insert_image(args.document_id, data, path.name, args.at, settings, stores))


async def _insert_image(
    document_id: str,
    data: bytes,
    filename: str,
    offset: int | None,
    settings: Settings,
    stores: Stores,
) -> int:
    uploader = build_uploader(settings)
    session = EditorSession.open(
        document_id,
        gateway=None,
        article_store=stores.articles,
        draft_cache=stores.drafts,
        uploader=uploader,
        settings=settings,
        event_bus=_notice_bus(),
    )
    try:
        if offset is not None:
            session.selection.set_cursor(offset)
        if not await session.insert_image(data, filename):
            return 1
        return 0 if session.save() else 1
    finally:
        session.close()
        close = getattr(uploader, "aclose", None)
        if close is not None:
            await close()


_COMMANDS = {
    "new": _cmd_new,
    "show": _cmd_show,
    "transform": _cmd_transform,
    "chat": _cmd_chat,
    "log": _cmd_log,
    "clear-log": _cmd_clear_log,
    "insert-image": _cmd_insert_image,
}


# ----------------------------------------------------------------------
# AI turn + review screen
# ----------------------------------------------------------------------


async def _run_ai_turn(
    args: argparse.Namespace,
    settings: Settings,
    stores: Stores,
    start: Any,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> int:
    source = stdin or sys.stdin
    destination = stdout or sys.stdout
    if not stores.articles.exists(args.document_id):
        print(f"No article named {args.document_id!r}.", file=sys.stderr)
        return 1
    try:
        gateway = build_gateway(settings)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    selection = StaticSelection(args.select or "")
    session = EditorSession.open(
        args.document_id,
        gateway=gateway,
        article_store=stores.articles,
        conversation_store=stores.conversations,
        draft_cache=stores.drafts,
        selection_provider=selection,
        settings=settings,
        event_bus=_notice_bus(),
    )
    try:
        if selection.text:
            session.selection.notify_selection_changed()
        result = await start(session)
        if result is None:
            last = session.conversation.recent(1)
            if last:
                print(last[0].content, file=sys.stderr)
            return 1
        if isinstance(result, Reply):
            destination.write(result.text.rstrip() + "\n")
            return 0
        assert isinstance(result, EditProposal)
        return _review(session, source, destination, auto_accept=args.yes)
    finally:
        session.close()
        await gateway.aclose()


def _review(session: EditorSession, source: TextIO, destination: TextIO, *, auto_accept: bool) -> int:
    while session.workflow.state is WorkflowState.REVIEWING:
        spans = session.preview_diff()
        stats = diff_stats(spans)
        destination.write(render_inline(spans).rstrip() + "\n\n")
        destination.write(f"+{stats.inserted_words} / -{stats.deleted_words} words\n")
        if session.has_diverged():
            destination.write("Warning: the article changed after this request; accepting replaces those edits.\n")
        if auto_accept:
            choice = "a"
        else:
            destination.write("Accept [a], reject [r] or edit [e]? ")
            destination.flush()
            choice = (source.readline() or "r").strip().lower()[:1]
        if choice == "a":
            session.accept()
            if not session.save():
                return 1
            destination.write("Changes applied.\n")
            return 0
        if choice == "e":
            destination.write("Enter the replacement text, end with a line containing only '.':\n")
            destination.flush()
            session.edit_proposal(_read_replacement(source))
            continue
        session.reject()
        destination.write("Changes discarded.\n")
        return 0
    return 0


def _read_replacement(source: TextIO) -> str:
    lines: list[str] = []
    for line in iter(source.readline, ""):
        if line.rstrip("\r\n") == ".":
            break
        lines.append(line)
    return "".join(lines).removesuffix("\n").removesuffix("\r")


def _notice_bus() -> EventBus:
    bus = EventBus()

    def _print_notice(event: NoticePosted) -> None:
        print(f"[{event.level}] {event.message}", file=sys.stderr)

    bus.subscribe(NoticePosted, _print_notice)
    return bus


# ----------------------------------------------------------------------
# Argument parsing and settings helpers
# ----------------------------------------------------------------------


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="penwright",
        description="Edit articles with an AI collaborator; every AI change is reviewed before it lands.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.penwright/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    new = commands.add_parser("new", help="Create an article.")
    new.add_argument("document_id")
    new.add_argument("--title", required=True)
    new.add_argument("--content", metavar="TEXT", help="Initial article content.")
    new.add_argument("--from", dest="source", metavar="FILE", help="Read the initial content from FILE.")
    new.add_argument("--publish", action="store_true", default=None, help="Publish immediately.")

    show = commands.add_parser("show", help="Print an article.")
    show.add_argument("document_id")

    transform = commands.add_parser("transform", help="Run an AI action and review the result.")
    transform.add_argument("document_id")
    transform.add_argument(
        "--action",
        required=True,
        help="improve, expand, summarize, fixGrammar, generate or custom.",
    )
    transform.add_argument("--select", metavar="TEXT", help="Limit the action to this text.")
    transform.add_argument("--prompt", help="Instruction for the custom action.")
    transform.add_argument("--yes", action="store_true", help="Accept the proposal without asking.")

    chat = commands.add_parser("chat", help="Send a chat message about the article.")
    chat.add_argument("document_id")
    chat.add_argument("message", nargs="+")
    chat.add_argument("--select", metavar="TEXT", help="Limit any edit to this text.")
    chat.add_argument("--yes", action="store_true", help="Accept a proposed edit without asking.")

    log = commands.add_parser("log", help="Print the conversation log.")
    log.add_argument("document_id")

    clear = commands.add_parser("clear-log", help="Delete the conversation log.")
    clear.add_argument("document_id")
    clear.add_argument("--yes", action="store_true", help="Confirm the deletion.")

    image = commands.add_parser("insert-image", help="Upload an image and insert it into the article.")
    image.add_argument("document_id")
    image.add_argument("image", metavar="FILE")
    image.add_argument("--at", type=int, metavar="OFFSET", help="Character offset; defaults to the end.")
    return parser


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is dict:
        try:
            payload = json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
        if not isinstance(payload, dict):
            raise ValueError("Dict overrides must be valid JSON objects")
        return payload
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin is dict:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    metadata = {
        "path": str(store.path),
        "secret_backend": store.vault.strategy,
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    json.dump({"settings": payload, "meta": metadata}, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("PENWRIGHT_"))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
