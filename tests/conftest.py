from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from notechat.config import NotechatConfig  # noqa: E402
from notechat.types import ChatMessage  # noqa: E402


@pytest.fixture()
def make_conversation():
    def _make(count: int, content_length: int = 60) -> list[ChatMessage]:
        messages: list[ChatMessage] = []
        for index in range(count):
            prefix = f"message number {index:02d} "
            content = prefix + "z" * max(content_length - len(prefix), 0)
            role = "user" if index % 2 == 0 else "assistant"
            messages.append(ChatMessage(role=role, content=content))
        return messages

    return _make


@pytest.fixture()
def session_config(tmp_path: Path) -> NotechatConfig:
    config = NotechatConfig()
    config.logging.events_dir = str(tmp_path / "sessions")
    config.chat.history_file = str(tmp_path / "chat-history.json")
    return config


@pytest.fixture()
def make_note(tmp_path: Path):
    def _make(relative: str, text: str) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _make
