from __future__ import annotations

import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from notechat.config import NotechatConfig, validate_api_config
from notechat.llm.message_assembler import AssembledPrompt, assemble_messages
from notechat.llm.provider_router import ProviderRouter
from notechat.llm.token_budget import estimate_message_tokens
from notechat.logging.events import EventBus, EventContext
from notechat.logging.jsonl_sink import JsonlSink
from notechat.logging.scrub import scrub_text, summarize_text
from notechat.logging.transcript import ChatTranscriptSink
from notechat.runtime.signals import CancelToken
from notechat.runtime.streaming import StreamCallbacks, StreamOutcome, consume_stream
from notechat.storage.session_store import create_session_dir, generate_session_id
from notechat.types import (
    ChatMessage,
    ChatTranscriptMessage,
    ChatTranscriptRecord,
    EventRecord,
    ProviderName,
)


@dataclass
class ChatTurnResult:
    status: str
    text: str
    assembled: AssembledPrompt | None = None
    error: str | None = None
    latency_ms: int | None = None


class ChatSession:
    def __init__(
        self,
        config: NotechatConfig,
        *,
        router: ProviderRouter | None = None,
        documents: Sequence[str] = (),
        history: Sequence[ChatMessage] = (),
        role_name: str | None = None,
        provider: ProviderName | None = None,
        session_id: str | None = None,
        persist: bool = True,
        on_event: Callable[[EventRecord], None] | None = None,
    ) -> None:
        self.config = config
        self.provider: ProviderName = provider or config.model.provider
        self.role_name = role_name or config.chat.default_role
        self.session_id = session_id or generate_session_id()
        self._router = router
        self._documents = list(documents)
        self._history = list(history)
        self._turn_index = 0

        sink: JsonlSink | None = None
        self.transcript: ChatTranscriptSink | None = None
        self.session_dir: Path | None = None
        if persist:
            self.session_dir = create_session_dir(Path(config.logging.events_dir), self.session_id)
            sink = JsonlSink(self.session_dir / "events.jsonl")
            if config.logging.transcript_enabled:
                self.transcript = ChatTranscriptSink(
                    self.session_dir / config.logging.transcript_filename
                )
        self.events = EventBus(
            sink,
            EventContext(session_id=self.session_id, trace_id=uuid.uuid4().hex),
            redact=config.logging.redact_secrets,
            sanitize=config.logging.sanitize_control_chars,
            on_emit=on_event,
        )
        self.events.emit(
            "session_started",
            {
                "provider": self.provider,
                "model": config.model.name,
                "role": self.role_name,
                "documents": len(self._documents),
                "history_messages": len(self._history),
            },
        )

    @property
    def history(self) -> list[ChatMessage]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history = []

    @property
    def system_prompt(self) -> str:
        return self.config.chat.resolve_system_prompt(self.role_name)

    def prepare(self, user_input: str) -> AssembledPrompt:
        assembled = assemble_messages(
            user_input,
            documents=self._documents,
            history=self._history,
            system_prompt=self.system_prompt,
            budget=self.config.budget.to_budget(),
            max_chunk_size=self.config.budget.max_chunk_size,
        )
        self.events.emit(
            "article_budget_applied",
            {
                "documents": len(self._documents),
                "article_messages": len(assembled.article_messages),
                "article_roles": [message.role for message in assembled.article_messages],
                "article_token_budget": assembled.budget.article_tokens,
            },
        )
        self.events.emit(
            "context_budget_applied",
            {
                "history_messages": len(self._history),
                "kept_messages": len(assembled.history_messages),
                "dropped_messages": assembled.dropped_history_count,
                "compressed_messages": assembled.compressed_history_count,
                "context_token_budget": assembled.budget.context_tokens,
            },
        )
        return assembled

    def _readiness_errors(self) -> list[str]:
        if self._router is not None:
            if self._router.has_provider(self.provider):
                return []
            return [f"Provider is not configured: {self.provider}"]
        return validate_api_config(self.config, self.provider)

    def send(
        self,
        user_input: str,
        callbacks: StreamCallbacks,
        cancel_token: CancelToken | None = None,
    ) -> ChatTurnResult:
        """Run one turn. Provider failures come back in the result, never raised."""
        self.events.start_span()
        try:
            return self._run_turn(user_input, callbacks, cancel_token)
        finally:
            self.events.end_span()

    def _run_turn(
        self,
        user_input: str,
        callbacks: StreamCallbacks,
        cancel_token: CancelToken | None,
    ) -> ChatTurnResult:
        errors = self._readiness_errors()
        if errors:
            self.events.emit("config_invalid", {"errors": errors})
            if callbacks.on_error is not None:
                for error in errors:
                    callbacks.on_error(error)
            return ChatTurnResult(status="failed", text="", error="; ".join(errors))

        if self._router is None:
            self._router = ProviderRouter.from_config(self.config)
        router = self._router

        assembled = self.prepare(user_input)
        self._turn_index += 1
        model = self.config.model
        self.events.emit(
            "llm_request_sent",
            {
                "turn_index": self._turn_index,
                "provider": self.provider,
                "model": model.name,
                "message_count": len(assembled.messages),
                "estimated_input_tokens": assembled.estimated_input_tokens,
                "user_input": summarize_text(user_input, 200),
            },
        )

        start = time.perf_counter()
        outcome = consume_stream(
            lambda: router.stream_chat(
                self.provider,
                assembled.messages,
                model.name,
                model.max_output_tokens,
                model.temperature,
            ),
            callbacks,
            cancel_token,
        )
        latency_ms = int((time.perf_counter() - start) * 1000)

        if outcome.status != "failed":
            self._history.append(ChatMessage(role="user", content=user_input))
            if outcome.text:
                self._history.append(ChatMessage(role="assistant", content=outcome.text))

        self._emit_outcome(outcome, latency_ms)
        self._write_transcript(assembled, outcome, latency_ms)
        return ChatTurnResult(
            status=outcome.status,
            text=outcome.text,
            assembled=assembled,
            error=outcome.error,
            latency_ms=latency_ms,
        )

    def _emit_outcome(self, outcome: StreamOutcome, latency_ms: int) -> None:
        payload = {
            "turn_index": self._turn_index,
            "chunk_count": outcome.chunk_count,
            "latency_ms": latency_ms,
            "response_chars": len(outcome.text),
        }
        if outcome.status == "completed":
            self.events.emit("llm_stream_completed", payload)
        elif outcome.status == "cancelled":
            self.events.emit("llm_stream_cancelled", payload)
        else:
            payload["error"] = outcome.error or ""
            payload["error_kind"] = outcome.error_kind or "unknown"
            self.events.emit("llm_request_failed", payload)

    def _scrub(self, text: str) -> str:
        logging_config = self.config.logging
        return scrub_text(
            text,
            sanitize=logging_config.sanitize_control_chars,
            redact=logging_config.redact_secrets,
        )

    def _write_transcript(
        self, assembled: AssembledPrompt, outcome: StreamOutcome, latency_ms: int
    ) -> None:
        if self.transcript is None:
            return
        record = ChatTranscriptRecord(
            turn_index=self._turn_index,
            provider=self.provider,
            model=self.config.model.name,
            status=outcome.status,
            budget=assembled.budget,
            messages=[
                ChatTranscriptMessage(
                    role=message.role,
                    content=self._scrub(message.text),
                    estimated_tokens=estimate_message_tokens(message),
                )
                for message in assembled.messages
            ],
            estimated_input_tokens=assembled.estimated_input_tokens,
            response_text=self._scrub(outcome.text),
            latency_ms=latency_ms,
            error=outcome.error,
            error_kind=outcome.error_kind,
        )
        self.transcript.write(record)
