from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from notechat.config import (
    ConfigError,
    NotechatConfig,
    discover_config_path,
    load_config,
    write_default_config,
)
from notechat.llm.message_assembler import AssembledPrompt
from notechat.llm.token_budget import estimate_message_tokens
from notechat.logging.jsonl_sink import JsonlSink
from notechat.logging.transcript import ChatTranscriptSink
from notechat.notes.reader import load_notes
from notechat.runtime.chat_session import ChatSession
from notechat.runtime.signals import CancelToken, cancel_on_interrupt
from notechat.runtime.streaming import StreamCallbacks
from notechat.storage.history_store import HistoryStore, HistoryStoreError
from notechat.storage.session_store import events_path_for
from notechat.types import ChatMessage, EventRecord, ProviderName

app = typer.Typer(help="Chat with an AI model about your markdown notes")
history_app = typer.Typer(help="Inspect saved conversations")
roles_app = typer.Typer(help="Inspect configured roles")
config_app = typer.Typer(help="Initialize and validate configuration")
app.add_typer(history_app, name="history")
app.add_typer(roles_app, name="roles")
app.add_typer(config_app, name="config")
console = Console()

EXIT_COMMANDS = {"/exit", "/quit"}
CLEAR_COMMAND = "/clear"


def _load_config_or_exit(config_path: Path | None) -> NotechatConfig:
    try:
        return load_config(config_path)
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        raise typer.Exit(code=1) from exc


def _resolve_provider(provider: str | None) -> ProviderName | None:
    if provider is None:
        return None
    if provider not in ("anthropic", "gemini"):
        console.print(f"[red]Unknown provider:[/red] {provider}")
        raise typer.Exit(code=1)
    return provider  # type: ignore[return-value]


def _load_documents(notes: list[Path]) -> list[str]:
    result = load_notes(notes)
    for path, reason in result.failed.items():
        console.print(f"[yellow]skipped note[/yellow] {path}: {reason}")
    if result.documents:
        titles = ", ".join(document.title for document in result.documents)
        console.print(f"[cyan]notes[/cyan] loaded={len(result.documents)} ({titles})")
        for document in result.documents:
            if not document.tags and not document.links:
                continue
            console.print(
                f"  {document.title}: tags={', '.join(document.tags) or '-'} "
                f"links={', '.join(document.links) or '-'}",
                markup=False,
            )
    return result.contents


def _load_history_messages(store: HistoryStore, history_id: str | None) -> list[ChatMessage]:
    if history_id is None:
        return []
    try:
        item = store.get(history_id)
    except HistoryStoreError as exc:
        console.print(f"[red]History error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    if item is None:
        console.print(f"Conversation not found: {history_id}")
        raise typer.Exit(code=1)
    return list(item.messages)


def _render_event(event: EventRecord) -> None:
    payload = event.payload
    et = event.event_type
    if et == "article_budget_applied":
        console.print(
            f"[cyan]notes[/cyan] documents={payload.get('documents')} "
            f"kept_messages={payload.get('article_messages')} "
            f"budget={payload.get('article_token_budget')}"
        )
    elif et == "context_budget_applied":
        console.print(
            f"[cyan]history[/cyan] kept={payload.get('kept_messages')} "
            f"dropped={payload.get('dropped_messages')} "
            f"compressed={payload.get('compressed_messages')}"
        )
    elif et == "llm_stream_cancelled":
        console.print("\n[yellow]cancelled[/yellow]")
    elif et == "llm_request_failed":
        console.print(f"\n[red]failed[/red] {payload.get('error')}")


def _print_assembled(assembled: AssembledPrompt) -> None:
    budget = assembled.budget
    console.print(
        f"Budget: total={budget.max_total_tokens} article={budget.article_tokens} "
        f"context={budget.context_tokens} reserved={budget.reserved_tokens}"
    )
    table = Table(title="Assembled messages")
    table.add_column("#")
    table.add_column("Role")
    table.add_column("Tokens~")
    table.add_column("Preview")
    for index, message in enumerate(assembled.messages, start=1):
        preview = message.text.replace("\n", " ")
        if len(preview) > 80:
            preview = f"{preview[:77]}..."
        table.add_row(str(index), message.role, str(estimate_message_tokens(message)), preview)
    console.print(table)
    console.print(
        f"Estimated input tokens: {assembled.estimated_input_tokens} "
        f"(history dropped={assembled.dropped_history_count}, "
        f"compressed={assembled.compressed_history_count})"
    )


def _streaming_callbacks() -> StreamCallbacks:
    return StreamCallbacks(
        on_chunk=lambda chunk: console.print(chunk, end="", markup=False, highlight=False),
        on_complete=lambda: console.print(),
        on_error=lambda message: console.print(f"[red]Error:[/red] {message}"),
    )


@app.command("ask")
def ask_command(
    question: Annotated[str, typer.Argument(help="Question to ask")],
    note: Annotated[
        list[Path] | None, typer.Option(help="Note file or folder to use as context")
    ] = None,
    history_id: Annotated[
        str | None, typer.Option("--history", help="Continue a saved conversation")
    ] = None,
    role: Annotated[str | None, typer.Option(help="Role whose system prompt to use")] = None,
    provider: Annotated[
        str | None, typer.Option(help="Provider override: anthropic|gemini")
    ] = None,
    dry_run: Annotated[
        bool, typer.Option(help="Only assemble and print the messages, no API call")
    ] = False,
    save: Annotated[bool, typer.Option(help="Save the exchange to the history file")] = False,
    config: Annotated[Path | None, typer.Option(help="Path to config file")] = None,
) -> None:
    cfg = _load_config_or_exit(config)
    store = HistoryStore(Path(cfg.chat.history_file))
    documents = _load_documents(note or [])
    history = _load_history_messages(store, history_id)

    session = ChatSession(
        cfg,
        documents=documents,
        history=history,
        role_name=role,
        provider=_resolve_provider(provider),
        persist=not dry_run,
        on_event=_render_event,
    )

    if dry_run:
        _print_assembled(session.prepare(question))
        return

    with cancel_on_interrupt(CancelToken()) as token:
        result = session.send(question, _streaming_callbacks(), token)

    if result.status == "failed":
        raise typer.Exit(code=1)
    if save:
        item = store.save(session.history, item_id=history_id, role_name=session.role_name)
        console.print(f"Saved conversation: {item.id}")


@app.command("chat")
def chat_command(
    note: Annotated[
        list[Path] | None, typer.Option(help="Note file or folder to use as context")
    ] = None,
    history_id: Annotated[
        str | None, typer.Option("--history", help="Continue a saved conversation")
    ] = None,
    role: Annotated[str | None, typer.Option(help="Role whose system prompt to use")] = None,
    provider: Annotated[
        str | None, typer.Option(help="Provider override: anthropic|gemini")
    ] = None,
    save: Annotated[bool, typer.Option(help="Save the conversation after each reply")] = True,
    config: Annotated[Path | None, typer.Option(help="Path to config file")] = None,
) -> None:
    cfg = _load_config_or_exit(config)
    store = HistoryStore(Path(cfg.chat.history_file))
    session = ChatSession(
        cfg,
        documents=_load_documents(note or []),
        history=_load_history_messages(store, history_id),
        role_name=role,
        provider=_resolve_provider(provider),
        on_event=_render_event,
    )
    conversation_id = history_id

    for template in cfg.chat.suggestion_templates:
        console.print(f"[dim]suggestion:[/dim] {template}")
    console.print("Type /exit to quit, /clear to start over. Ctrl+C stops the current reply.")

    while True:
        try:
            user_input = typer.prompt("you", prompt_suffix="> ").strip()
        except (EOFError, typer.Abort):
            break
        if not user_input:
            continue
        if user_input in EXIT_COMMANDS:
            break
        if user_input == CLEAR_COMMAND:
            session.clear_history()
            conversation_id = None
            console.print("[dim]history cleared, next reply starts a new conversation[/dim]")
            continue

        with cancel_on_interrupt(CancelToken()) as token:
            result = session.send(user_input, _streaming_callbacks(), token)

        if save and result.status != "failed":
            item = store.save(
                session.history, item_id=conversation_id, role_name=session.role_name
            )
            conversation_id = item.id

    if conversation_id:
        console.print(f"Conversation: {conversation_id}")


@history_app.command("list")
def history_list(
    config: Annotated[Path | None, typer.Option(help="Path to config file")] = None,
) -> None:
    cfg = _load_config_or_exit(config)
    store = HistoryStore(Path(cfg.chat.history_file))
    try:
        items = store.list()
    except HistoryStoreError as exc:
        console.print(f"[red]History error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    if not items:
        console.print("No saved conversations")
        return

    table = Table(title="Conversations")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Messages")
    table.add_column("Updated")
    for item in items:
        table.add_row(item.id, item.title, str(len(item.messages)), item.updated_at)
    console.print(table)


@history_app.command("show")
def history_show(
    history_id: Annotated[str, typer.Argument(help="Conversation ID")],
    config: Annotated[Path | None, typer.Option(help="Path to config file")] = None,
) -> None:
    cfg = _load_config_or_exit(config)
    messages = _load_history_messages(HistoryStore(Path(cfg.chat.history_file)), history_id)
    for message in messages:
        console.rule(message.role)
        console.print(message.text, markup=False)


@history_app.command("delete")
def history_delete(
    history_id: Annotated[str, typer.Argument(help="Conversation ID")],
    config: Annotated[Path | None, typer.Option(help="Path to config file")] = None,
) -> None:
    cfg = _load_config_or_exit(config)
    store = HistoryStore(Path(cfg.chat.history_file))
    try:
        deleted = store.delete(history_id)
    except HistoryStoreError as exc:
        console.print(f"[red]History error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    if not deleted:
        console.print(f"Conversation not found: {history_id}")
        raise typer.Exit(code=1)
    console.print(f"Deleted conversation: {history_id}")


@roles_app.command("list")
def roles_list(
    config: Annotated[Path | None, typer.Option(help="Path to config file")] = None,
) -> None:
    cfg = _load_config_or_exit(config)
    table = Table(title="Roles")
    table.add_column("Name")
    table.add_column("Default")
    table.add_column("System prompt")
    for name, prompt in cfg.chat.roles.items():
        table.add_row(name, "yes" if name == cfg.chat.default_role else "", prompt)
    console.print(table)


@app.command("replay")
def replay_command(
    session_id: Annotated[str, typer.Argument(help="Session ID")],
    event_stream: Annotated[bool, typer.Option(help="Replay events as a stream")] = True,
    event: Annotated[
        list[str] | None, typer.Option(help="Only show events of this type")
    ] = None,
    transcript: Annotated[bool, typer.Option(help="Replay the chat transcript")] = False,
    config: Annotated[Path | None, typer.Option(help="Path to config file")] = None,
) -> None:
    cfg = _load_config_or_exit(config)
    events_path = events_path_for(Path(cfg.logging.events_dir), session_id)
    if not events_path.exists():
        console.print(f"Events file not found: {events_path}")
        raise typer.Exit(code=1)

    for data in JsonlSink(events_path).replay(event):
        if event_stream:
            console.print(
                f"[{data['timestamp']}] {data['event_type']} "
                f"session={data['session_id']} payload={data['payload']}",
                markup=False,
            )
        else:
            console.print_json(json.dumps(data))

    if transcript:
        transcript_path = events_path.parent / cfg.logging.transcript_filename
        if not transcript_path.exists():
            console.print(f"Transcript file not found: {transcript_path}")
            raise typer.Exit(code=1)
        for block in ChatTranscriptSink(transcript_path).replay():
            console.print(block, markup=False)


@config_app.command("init")
def config_init(
    output: Annotated[Path, typer.Option(help="Output config path")] = Path("./notechat.yaml"),
    force: Annotated[bool, typer.Option(help="Overwrite existing config file")] = False,
) -> None:
    try:
        write_default_config(output, overwrite=force)
    except ConfigError as exc:
        console.print(f"[red]Config init failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"Wrote config file: {output}")


@config_app.command("validate")
def config_validate(
    file: Annotated[Path, typer.Option(help="Config file path")] = Path("notechat.yaml"),
) -> None:
    try:
        _ = load_config(file)
    except ConfigError as exc:
        console.print(f"[red]Invalid config:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"Config valid: {file}")


@app.command("config-path")
def config_path() -> None:
    path = discover_config_path(None)
    if path is None:
        console.print("No config discovered; using built-in defaults")
        return
    console.print(str(path))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
