"""Text scrubbing applied before anything is written to events or transcripts."""

from __future__ import annotations

import re

REDACTED = "***REDACTED***"

# Tabs and newlines survive, other control characters do not.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_LABELLED_SECRETS = [
    re.compile(r"(api[_-]?key\s*[=:]\s*)(\S+)", re.IGNORECASE),
    re.compile(r"(x-api-key\s*:\s*)(\S+)", re.IGNORECASE),
    re.compile(r"(token\s*[=:]\s*)(\S+)", re.IGNORECASE),
    re.compile(r"(authorization\s*:\s*bearer\s+)(\S+)", re.IGNORECASE),
]
_BARE_KEYS = re.compile(r"sk-ant-[A-Za-z0-9_\-]{8,}|AIza[0-9A-Za-z_\-]{35}")


def sanitize_text(text: str) -> str:
    return _CONTROL_CHARS.sub("", text)


def redact_secrets(text: str) -> str:
    for pattern in _LABELLED_SECRETS:
        text = pattern.sub(rf"\g<1>{REDACTED}", text)
    return _BARE_KEYS.sub(REDACTED, text)


def scrub_text(text: str, sanitize: bool = True, redact: bool = True) -> str:
    if sanitize:
        text = sanitize_text(text)
    if redact:
        text = redact_secrets(text)
    return text


def summarize_text(text: str, max_chars: int = 400) -> str:
    cleaned = text.strip()
    if len(cleaned) <= max_chars:
        return cleaned
    return f"{cleaned[:max_chars]}..."
