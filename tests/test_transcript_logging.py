from __future__ import annotations

from pathlib import Path

from notechat.logging.transcript import ChatTranscriptSink
from notechat.types import ChatTranscriptMessage, ChatTranscriptRecord, TokenBudget


def _record(**overrides) -> ChatTranscriptRecord:
    values = {
        "turn_index": 1,
        "provider": "anthropic",
        "model": "claude-sonnet-4-5",
        "status": "completed",
        "budget": TokenBudget(
            max_total_tokens=16000,
            article_tokens=10400,
            context_tokens=4000,
            reserved_tokens=1600,
        ),
        "messages": [
            ChatTranscriptMessage(role="system", content="be brief", estimated_tokens=13),
            ChatTranscriptMessage(role="user", content="hello", estimated_tokens=12),
        ],
        "estimated_input_tokens": 25,
        "response_text": "hi there",
        "latency_ms": 42,
    }
    values.update(overrides)
    return ChatTranscriptRecord(**values)


def test_transcript_sink_writes_readable_log(tmp_path: Path) -> None:
    sink = ChatTranscriptSink(tmp_path / "chat_transcript.log")
    sink.write(_record())

    rows = sink.replay()

    assert len(rows) == 1
    block = rows[0]
    assert block.startswith("=== CHAT REQUEST START ===")
    assert block.endswith("=== CHAT REQUEST END ===")
    assert "Status: completed" in block
    assert "Provider: anthropic" in block
    assert (
        "Budget: max_total_tokens=16000, article_tokens=10400, "
        "context_tokens=4000, reserved_tokens=1600"
    ) in block
    assert "--- Message 1 role=system tokens~13 ---\nbe brief" in block
    assert "--- Message 2 role=user tokens~12 ---\nhello" in block
    assert "--- Response ---\nhi there" in block
    assert "Error: none" in block


def test_transcript_records_failures(tmp_path: Path) -> None:
    sink = ChatTranscriptSink(tmp_path / "chat_transcript.log")
    sink.write(_record())
    sink.write(
        _record(
            turn_index=2,
            status="failed",
            response_text="",
            latency_ms=None,
            error="API key is invalid or expired",
            error_kind="auth",
        )
    )

    rows = sink.replay()

    assert len(rows) == 2
    assert "Turn: 2" in rows[1]
    assert "Latency Ms: n/a" in rows[1]
    assert "Error: API key is invalid or expired" in rows[1]
    assert "Error Kind: auth" in rows[1]


def test_transcript_replay_of_missing_file(tmp_path: Path) -> None:
    assert ChatTranscriptSink(tmp_path / "nested" / "chat_transcript.log").replay() == []
