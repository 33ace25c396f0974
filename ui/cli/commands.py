"""Typer command handlers."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer

from conversation.errors import ConversationNotFoundError, MalformedSnapshotError
from core.logging_config import setup_logging
from core.orchestrator import Orchestrator, RuntimeBundle
from dialogue.response_generator import OutputFormat, format_for_output

logger = logging.getLogger("nlq.cli")

OUTPUT_FORMATS = ("markdown", "plain", "json")

CHAT_HELP = """\
Commands:
  history   show this conversation's turns
  clear     clear this conversation's history
  new       start a new conversation
  help      show this message
  exit      leave chat mode"""


def _runtime(root: Path | None = None) -> RuntimeBundle:
    bundle = Orchestrator(root=root).build()
    setup_logging(str(bundle.config.get("logging", {}).get("level", "INFO")))
    _restore(bundle)
    return bundle


def _restore(bundle: RuntimeBundle) -> None:
    """Load every persisted snapshot into the in-memory store."""
    for snapshot in bundle.snapshots.load_all():
        try:
            bundle.interface.import_context(snapshot)
        except MalformedSnapshotError as exc:
            logger.warning("Skipping saved conversation %s: %s", snapshot.get("id"), exc)


def _persist(bundle: RuntimeBundle, conversation_id: str) -> None:
    snapshot = bundle.interface.export_context(conversation_id)
    if snapshot is not None:
        bundle.snapshots.save(snapshot)


def _check_format(output: str) -> OutputFormat:
    if output not in OUTPUT_FORMATS:
        typer.echo(f"Unknown output format '{output}'. Choose from: {', '.join(OUTPUT_FORMATS)}", err=True)
        raise typer.Exit(code=2)
    return output  # type: ignore[return-value]


def _fail(message: str) -> None:
    typer.echo(message, err=True)
    raise typer.Exit(code=1)


def ask(question: str, conversation_id: str | None = None, output: str = "markdown") -> None:
    """Answer a single question, persisting the conversation."""
    fmt = _check_format(output)
    bundle = _runtime()
    try:
        result = asyncio.run(bundle.interface.ask(question, conversation_id))
    except ConversationNotFoundError as exc:
        _fail(str(exc))
        return
    _persist(bundle, result.conversation_id)
    typer.echo(format_for_output(result, fmt))
    if fmt != "json":
        typer.echo(f"\n[conversation: {result.conversation_id} | confidence: {result.confidence:.2f}]")


def chat(conversation_id: str | None = None, output: str = "markdown") -> None:
    """Run interactive chat loop."""
    fmt = _check_format(output)
    bundle = _runtime()
    interface = bundle.interface
    if conversation_id is None:
        conversation_id = interface.create_conversation()
    elif not interface.switch_conversation(conversation_id):
        _fail(f"Conversation {conversation_id} not found")
        return

    typer.echo(f"Chat mode ({conversation_id}). Type 'help' for commands, 'exit' to quit.")
    while True:
        user_text = typer.prompt("you").strip()
        command = user_text.lower()
        if command in {"exit", "quit"}:
            typer.echo("bye")
            break
        if command == "help":
            typer.echo(CHAT_HELP)
            continue
        if command == "history":
            _echo_history(bundle, conversation_id, limit=None)
            continue
        if command == "clear":
            interface.clear_history(conversation_id)
            _persist(bundle, conversation_id)
            typer.echo("History cleared.")
            continue
        if command == "new":
            conversation_id = interface.create_conversation()
            typer.echo(f"Started conversation {conversation_id}")
            continue
        if not user_text:
            continue

        result = asyncio.run(interface.ask(user_text, conversation_id))
        _persist(bundle, conversation_id)
        typer.echo(f"assistant: {format_for_output(result, fmt)}")


def history(conversation_id: str, limit: int | None = None) -> None:
    """Print a conversation's turns."""
    bundle = _runtime()
    _echo_history(bundle, conversation_id, limit)


def _echo_history(bundle: RuntimeBundle, conversation_id: str, limit: int | None) -> None:
    try:
        turns = bundle.interface.get_history(conversation_id, limit)
    except ConversationNotFoundError as exc:
        _fail(str(exc))
        return
    if not turns:
        typer.echo("No turns yet.")
        return
    for turn in turns:
        marker = " (clarification)" if turn.clarification else ""
        typer.echo(f"[{turn.timestamp.isoformat()}] you: {turn.user_input}")
        typer.echo(f"  {turn.intent.type}{marker} -> {turn.response.splitlines()[0] if turn.response else ''}")


def conversations_new(user_id: str | None = None) -> None:
    bundle = _runtime()
    conversation_id = bundle.interface.create_conversation(user_id)
    _persist(bundle, conversation_id)
    typer.echo(conversation_id)


def conversations_list(user_id: str | None = None) -> None:
    bundle = _runtime()
    for conversation in bundle.interface.list_conversations(user_id):
        typer.echo(
            f"{conversation.id}  turns={len(conversation.turns)}  "
            f"topic={conversation.current_topic or '-'}  updated={conversation.last_updated.isoformat()}"
        )


def conversations_delete(conversation_id: str) -> None:
    bundle = _runtime()
    removed = bundle.interface.delete_conversation(conversation_id)
    removed = bundle.snapshots.delete(conversation_id) or removed
    if not removed:
        _fail(f"Conversation {conversation_id} not found")
        return
    typer.echo(f"Deleted {conversation_id}")


def conversations_export(conversation_id: str, out: Path | None = None) -> None:
    bundle = _runtime()
    snapshot = bundle.interface.export_context(conversation_id)
    if snapshot is None:
        _fail(f"Conversation {conversation_id} not found")
        return
    text = json.dumps(snapshot, indent=2)
    if out is None:
        typer.echo(text)
        return
    out.write_text(text + "\n", encoding="utf-8")
    typer.echo(f"Exported {conversation_id} to {out}")


def conversations_import(path: Path) -> None:
    bundle = _runtime()
    try:
        snapshot = json.loads(path.read_text(encoding="utf-8"))
        conversation = bundle.interface.import_context(snapshot)
    except json.JSONDecodeError as exc:
        _fail(f"Invalid snapshot file {path}: {exc}")
        return
    except MalformedSnapshotError as exc:
        _fail(str(exc))
        return
    _persist(bundle, conversation.id)
    typer.echo(f"Imported {conversation.id} ({len(conversation.turns)} turns)")


def kb_stats() -> None:
    """Show knowledge base record counts."""
    bundle = _runtime()
    counts = bundle.knowledge.stats()
    typer.echo(json.dumps({"path": str(bundle.paths["knowledge_base"]), **counts}, indent=2))


def config_show() -> None:
    """Show effective runtime config."""
    bundle = _runtime()
    typer.echo(json.dumps(bundle.config, indent=2, default=str))
