from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant"]
ProviderName = Literal["anthropic", "gemini"]
StreamStatus = Literal["completed", "cancelled", "failed"]
ErrorKind = Literal[
    "auth", "rate_limit", "timeout", "network", "cors", "bad_request", "server", "unknown"
]


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: Any = ""

    @property
    def text(self) -> str:
        return self.content if isinstance(self.content, str) else ""

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.text}


class AdaptiveStrategy(BaseModel):
    model_config = ConfigDict(frozen=True)

    recent_tail_size: int
    compression_start_ratio: float
    importance_inclusion_threshold: float
    max_compression_ratio: float


class TokenBudget(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_total_tokens: int
    article_tokens: int
    context_tokens: int
    reserved_tokens: int


class ChatTranscriptMessage(BaseModel):
    role: Role
    content: str
    estimated_tokens: int


class ChatTranscriptRecord(BaseModel):
    turn_index: int
    provider: ProviderName
    model: str
    status: StreamStatus
    budget: TokenBudget
    messages: list[ChatTranscriptMessage] = Field(default_factory=list)
    estimated_input_tokens: int
    response_text: str = ""
    latency_ms: int | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None


class HistoryItem(BaseModel):
    id: str
    title: str
    messages: list[ChatMessage] = Field(default_factory=list)
    role_name: str | None = None
    created_at: str = Field(default_factory=lambda: datetime.now(tz=UTC).isoformat())
    updated_at: str = Field(default_factory=lambda: datetime.now(tz=UTC).isoformat())


class EventRecord(BaseModel):
    session_id: str
    trace_id: str
    span_id: str
    timestamp: str = Field(default_factory=lambda: datetime.now(tz=UTC).isoformat())
    event_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    redaction_mode: Literal["full", "redacted"] = "redacted"
