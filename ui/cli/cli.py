"""CLI entrypoint for the conversational query engine."""

from __future__ import annotations

from pathlib import Path

import typer

from ui.cli import commands

app = typer.Typer(help="Multi-turn natural-language queries over the agent knowledge base")
conversations_app = typer.Typer(help="Conversation commands")
kb_app = typer.Typer(help="Knowledge base commands")
config_app = typer.Typer(help="Configuration commands")


@app.command("ask")
def ask_cmd(
    question: str = typer.Argument(..., help="Question to ask"),
    conversation: str | None = typer.Option(None, "--conversation", "-c", help="Conversation id"),
    output: str = typer.Option("markdown", "--format", "-f", help="markdown, plain or json"),
) -> None:
    """Ask one question."""
    commands.ask(question=question, conversation_id=conversation, output=output)


@app.command("chat")
def chat_cmd(
    conversation: str | None = typer.Option(None, "--conversation", "-c", help="Resume a conversation"),
    output: str = typer.Option("markdown", "--format", "-f", help="markdown, plain or json"),
) -> None:
    """Interactive chat session."""
    commands.chat(conversation_id=conversation, output=output)


@app.command("history")
def history_cmd(
    conversation_id: str = typer.Argument(..., help="Conversation id"),
    limit: int | None = typer.Option(None, min=1, help="Most recent N turns"),
) -> None:
    """Show a conversation's turns."""
    commands.history(conversation_id=conversation_id, limit=limit)


@conversations_app.command("new")
def conversations_new_cmd(user: str | None = typer.Option(None, "--user", help="Owning user id")) -> None:
    """Create a conversation and print its id."""
    commands.conversations_new(user_id=user)


@conversations_app.command("list")
def conversations_list_cmd(user: str | None = typer.Option(None, "--user", help="Owning user id")) -> None:
    """List conversations, most recently updated first."""
    commands.conversations_list(user_id=user)


@conversations_app.command("delete")
def conversations_delete_cmd(conversation_id: str) -> None:
    """Delete a conversation."""
    commands.conversations_delete(conversation_id=conversation_id)


@conversations_app.command("export")
def conversations_export_cmd(
    conversation_id: str,
    out: Path | None = typer.Option(None, "--out", "-o", help="Write the snapshot to a file"),
) -> None:
    """Export a conversation snapshot as JSON."""
    commands.conversations_export(conversation_id=conversation_id, out=out)


@conversations_app.command("import")
def conversations_import_cmd(path: Path = typer.Argument(..., exists=True, dir_okay=False)) -> None:
    """Import a conversation snapshot from a JSON file."""
    commands.conversations_import(path=path)


@kb_app.command("stats")
def kb_stats_cmd() -> None:
    """Show knowledge base record counts."""
    commands.kb_stats()


@config_app.command("show")
def config_show_cmd() -> None:
    """Show effective configuration."""
    commands.config_show()


app.add_typer(conversations_app, name="conversations")
app.add_typer(kb_app, name="kb")
app.add_typer(config_app, name="config")


def main() -> None:
    """Console script entrypoint."""
    app()


if __name__ == "__main__":
    main()
