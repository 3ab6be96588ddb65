"""Conversation history kept in a single flat JSON file.

The file maps conversation ids to ``HistoryItem`` records. It is loaded
lazily and rewritten in full on every change.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

from pydantic import ValidationError

from notechat.types import ChatMessage, HistoryItem

TITLE_MAX_CHARS = 30
UNTITLED = "New chat"


class HistoryStoreError(RuntimeError):
    pass


def derive_title(messages: Sequence[ChatMessage]) -> str:
    for message in messages:
        if message.role == "user" and message.text.strip():
            first_line = message.text.strip().splitlines()[0]
            return first_line[:TITLE_MAX_CHARS]
    return UNTITLED


class HistoryStore:
    def __init__(self, path: Path) -> None:
        self._path = path
        self._cache: dict[str, HistoryItem] = {}
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if not self._path.exists():
            return
        text = self._path.read_text(encoding="utf-8").strip()
        if not text:
            return
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise HistoryStoreError(f"History file is not valid JSON: {self._path}") from exc
        if not isinstance(raw, dict):
            raise HistoryStoreError(f"History file must contain an object: {self._path}")
        try:
            self._cache = {key: HistoryItem.model_validate(value) for key, value in raw.items()}
        except ValidationError as exc:
            raise HistoryStoreError(f"Invalid history entry in {self._path}: {exc}") from exc

    def _flush(self) -> None:
        payload = {key: item.model_dump(mode="json") for key, item in self._cache.items()}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    def list(self) -> list[HistoryItem]:
        self._load()
        return sorted(self._cache.values(), key=lambda item: item.updated_at, reverse=True)

    def get(self, item_id: str) -> HistoryItem | None:
        self._load()
        return self._cache.get(item_id)

    def save(
        self,
        messages: Sequence[ChatMessage],
        item_id: str | None = None,
        role_name: str | None = None,
    ) -> HistoryItem:
        self._load()
        now = datetime.now(tz=UTC).isoformat()
        existing = self._cache.get(item_id) if item_id else None
        if existing is None:
            item = HistoryItem(
                id=item_id or uuid4().hex[:12],
                title=derive_title(messages),
                messages=list(messages),
                role_name=role_name,
                created_at=now,
                updated_at=now,
            )
        else:
            item = existing.model_copy(
                update={
                    "messages": list(messages),
                    "role_name": role_name or existing.role_name,
                    "updated_at": now,
                }
            )
        self._cache[item.id] = item
        self._flush()
        return item

    def delete(self, item_id: str) -> bool:
        self._load()
        if item_id not in self._cache:
            return False
        del self._cache[item_id]
        self._flush()
        return True
