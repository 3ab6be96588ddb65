from __future__ import annotations

import signal
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from types import FrameType


@dataclass
class CancelToken:
    """Shared flag checked by the stream consumer on every received chunk."""

    cancelled: bool = False
    reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        self.cancelled = True
        self.reason = reason

    def reset(self) -> None:
        self.cancelled = False
        self.reason = None


def _resolve_signal_name(signum: int) -> str:
    for name in ("SIGINT", "SIGTERM"):
        if getattr(signal, name, None) == signum:
            return name
    return str(signum)


@contextmanager
def cancel_on_interrupt(token: CancelToken) -> Iterator[CancelToken]:
    """Turn Ctrl+C into a cooperative cancel for the duration of the block."""

    def _handler(signum: int, _: FrameType | None) -> None:
        token.cancel(_resolve_signal_name(signum))

    original_int = signal.getsignal(signal.SIGINT)
    signal.signal(signal.SIGINT, _handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, original_int)
