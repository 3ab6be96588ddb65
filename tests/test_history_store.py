from __future__ import annotations

import json
from pathlib import Path

import pytest

from notechat.storage.history_store import HistoryStore, HistoryStoreError, derive_title
from notechat.storage.session_store import create_session_dir, events_path_for, generate_session_id
from notechat.types import ChatMessage


def _conversation(question: str) -> list[ChatMessage]:
    return [
        ChatMessage(role="user", content=question),
        ChatMessage(role="assistant", content="answer"),
    ]


def test_derive_title_uses_first_user_line() -> None:
    messages = [
        ChatMessage(role="system", content="ignored"),
        ChatMessage(role="user", content="Summarize my reading notes on habits\nplease"),
    ]
    assert derive_title(messages) == "Summarize my reading notes on "
    assert derive_title([]) == "New chat"


def test_save_and_reload(tmp_path: Path) -> None:
    path = tmp_path / "chat-history.json"
    store = HistoryStore(path)
    item = store.save(_conversation("What is in my notes?"), role_name="editor")

    reloaded = HistoryStore(path).get(item.id)

    assert reloaded is not None
    assert reloaded.title == "What is in my notes?"
    assert reloaded.role_name == "editor"
    assert reloaded.messages == _conversation("What is in my notes?")
    assert set(json.loads(path.read_text(encoding="utf-8"))) == {item.id}


def test_save_existing_updates_in_place(tmp_path: Path) -> None:
    store = HistoryStore(tmp_path / "chat-history.json")
    first = store.save(_conversation("first question"))
    store.save(_conversation("second question"))

    longer = _conversation("first question") + [ChatMessage(role="user", content="more")]
    updated = store.save(longer, item_id=first.id)

    assert updated.id == first.id
    assert updated.title == "first question"
    assert updated.created_at == first.created_at
    assert len(updated.messages) == 3
    assert [item.id for item in store.list()][0] == first.id
    assert len(store.list()) == 2


def test_delete(tmp_path: Path) -> None:
    path = tmp_path / "chat-history.json"
    store = HistoryStore(path)
    item = store.save(_conversation("bye"))

    assert store.delete(item.id) is True
    assert store.delete(item.id) is False
    assert HistoryStore(path).list() == []


def test_missing_or_empty_file_is_empty(tmp_path: Path) -> None:
    assert HistoryStore(tmp_path / "absent.json").list() == []
    empty = tmp_path / "empty.json"
    empty.write_text("  \n", encoding="utf-8")
    assert HistoryStore(empty).list() == []


def test_corrupt_file_raises(tmp_path: Path) -> None:
    path = tmp_path / "chat-history.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(HistoryStoreError, match="not valid JSON"):
        HistoryStore(path).list()

    path.write_text("[]", encoding="utf-8")
    with pytest.raises(HistoryStoreError, match="object"):
        HistoryStore(path).list()

    path.write_text('{"abc": {"title": "missing id"}}', encoding="utf-8")
    with pytest.raises(HistoryStoreError, match="Invalid history entry"):
        HistoryStore(path).list()


def test_session_paths(tmp_path: Path) -> None:
    session_id = generate_session_id()
    session_dir = create_session_dir(tmp_path, session_id)
    assert session_dir.is_dir()
    assert events_path_for(tmp_path, session_id) == session_dir / "events.jsonl"
    assert session_id != generate_session_id()
