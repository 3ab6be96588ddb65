from __future__ import annotations

from collections.abc import Callable, Iterable
from contextlib import suppress
from dataclasses import dataclass

from notechat.runtime.errors import classify_error, format_error_message
from notechat.runtime.signals import CancelToken
from notechat.types import ErrorKind, StreamStatus


@dataclass
class StreamCallbacks:
    on_chunk: Callable[[str], None]
    on_start: Callable[[], None] | None = None
    on_response_start: Callable[[], None] | None = None
    on_complete: Callable[[], None] | None = None
    on_error: Callable[[str], None] | None = None


@dataclass
class StreamOutcome:
    status: StreamStatus
    text: str = ""
    chunk_count: int = 0
    error: str | None = None
    error_kind: ErrorKind | None = None


def consume_stream(
    open_stream: Callable[[], Iterable[str]],
    callbacks: StreamCallbacks,
    cancel_token: CancelToken | None = None,
) -> StreamOutcome:
    """Drain a text stream, stopping as soon as the token is cancelled.

    Provider errors are reported through ``on_error`` and returned in the
    outcome instead of propagating.
    """
    token = cancel_token or CancelToken()
    parts: list[str] = []
    chunk_count = 0

    if callbacks.on_start is not None:
        callbacks.on_start()

    try:
        stream = open_stream()
        if callbacks.on_response_start is not None:
            callbacks.on_response_start()

        iterator = iter(stream)
        try:
            for piece in iterator:
                if token.cancelled:
                    break
                if not piece:
                    continue
                chunk_count += 1
                parts.append(piece)
                callbacks.on_chunk(piece)
        finally:
            close = getattr(iterator, "close", None)
            if callable(close):
                with suppress(Exception):
                    close()
    except Exception as exc:
        message = format_error_message(exc)
        if callbacks.on_error is not None:
            callbacks.on_error(message)
        return StreamOutcome(
            status="failed",
            text="".join(parts),
            chunk_count=chunk_count,
            error=message,
            error_kind=classify_error(exc),
        )

    text = "".join(parts)
    if token.cancelled:
        return StreamOutcome(status="cancelled", text=text, chunk_count=chunk_count)

    if callbacks.on_complete is not None:
        callbacks.on_complete()
    return StreamOutcome(status="completed", text=text, chunk_count=chunk_count)
