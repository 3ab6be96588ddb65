from __future__ import annotations

import threading
from pathlib import Path

from notechat.types import ChatTranscriptRecord

_BLOCK_START = "=== CHAT REQUEST START ==="
_BLOCK_END = "=== CHAT REQUEST END ==="


class ChatTranscriptSink:
    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def write(self, record: ChatTranscriptRecord) -> None:
        budget = record.budget
        block = [
            _BLOCK_START,
            f"Turn: {record.turn_index}",
            f"Provider: {record.provider}",
            f"Model: {record.model}",
            f"Status: {record.status}",
            (
                "Budget: "
                f"max_total_tokens={budget.max_total_tokens}, "
                f"article_tokens={budget.article_tokens}, "
                f"context_tokens={budget.context_tokens}, "
                f"reserved_tokens={budget.reserved_tokens}"
            ),
            f"Estimated Input Tokens: {record.estimated_input_tokens}",
            f"Latency Ms: {record.latency_ms if record.latency_ms is not None else 'n/a'}",
            f"Error: {record.error or 'none'}",
            f"Error Kind: {record.error_kind or 'n/a'}",
            "",
        ]
        for index, message in enumerate(record.messages, start=1):
            block.append(
                f"--- Message {index} role={message.role} tokens~{message.estimated_tokens} ---"
            )
            block.append(message.content)
        block.extend(["--- Response ---", record.response_text, _BLOCK_END, ""])

        with self._lock, self._path.open("a", encoding="utf-8") as handle:
            handle.write("\n".join(block))

    def replay(self) -> list[str]:
        if not self._path.exists():
            return []
        text = self._path.read_text(encoding="utf-8").strip()
        if not text:
            return []
        blocks: list[str] = []
        for chunk in text.split(_BLOCK_END):
            cleaned = chunk.strip()
            if not cleaned:
                continue
            blocks.append(f"{cleaned}\n{_BLOCK_END}")
        return blocks
