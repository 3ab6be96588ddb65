from __future__ import annotations

import uuid
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from typing import Any

from notechat.logging.jsonl_sink import JsonlSink
from notechat.logging.scrub import scrub_text
from notechat.types import EventRecord


def _new_span_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class EventContext:
    session_id: str
    trace_id: str
    span_id: str | None = None


class EventBus:
    """Scrubs payloads and fans events out to the session log and a listener.

    Events emitted between ``start_span`` and ``end_span`` share one span id,
    which is how a chat turn's events are grouped on replay.
    """

    def __init__(
        self,
        sink: JsonlSink | None,
        context: EventContext,
        redact: bool = True,
        sanitize: bool = True,
        on_emit: Callable[[EventRecord], None] | None = None,
    ) -> None:
        self._sink = sink
        self._context = context
        self._redact = redact
        self._sanitize = sanitize
        self._on_emit = on_emit

    @property
    def context(self) -> EventContext:
        return self._context

    def start_span(self) -> str:
        self._context.span_id = _new_span_id()
        return self._context.span_id

    def end_span(self) -> None:
        self._context.span_id = None

    def _clean_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return scrub_text(value, sanitize=self._sanitize, redact=self._redact)
        if isinstance(value, dict):
            return {key: self._clean_value(item) for key, item in value.items()}
        if isinstance(value, list | tuple):
            return [self._clean_value(item) for item in value]
        return value

    def emit(self, event_type: str, payload: dict[str, Any] | None = None) -> EventRecord:
        event = EventRecord(
            session_id=self._context.session_id,
            trace_id=self._context.trace_id,
            span_id=self._context.span_id or _new_span_id(),
            event_type=event_type,
            payload=self._clean_value(payload or {}),
            redaction_mode="redacted" if self._redact else "full",
        )
        if self._sink is not None:
            self._sink.write(event)
        if self._on_emit is not None:
            # A broken listener must not lose the event or the turn.
            with suppress(Exception):
                self._on_emit(event)
        return event
