from __future__ import annotations

from typing import Any

from notechat.types import ChatMessage, TokenBudget

CHARS_PER_TOKEN = 3
MESSAGE_OVERHEAD_TOKENS = 10
COMPRESSION_KEEP_RATIO = 0.4


def estimate_tokens(text: Any) -> int:
    """Rough token count, deliberately pessimistic for CJK-heavy text."""
    if not isinstance(text, str):
        return 0
    return (len(text) + CHARS_PER_TOKEN - 1) // CHARS_PER_TOKEN


def estimate_message_tokens(message: ChatMessage) -> int:
    return estimate_tokens(message.text) + MESSAGE_OVERHEAD_TOKENS


def compress_message(content: str, max_length: int) -> str:
    """Keep the head and tail of ``content`` and elide the middle.

    The omission marker is not counted against ``max_length``, so the result
    can be slightly longer than requested.
    """
    if len(content) <= max_length:
        return content

    keep = int(max(max_length, 0) * COMPRESSION_KEEP_RATIO)
    head = content[:keep]
    tail = content[len(content) - keep :] if keep else ""
    omitted = len(content) - max_length
    return f"{head}\n\n[... content compressed, omitted {omitted} characters ...]\n\n{tail}"


def compute_budget(
    max_total_tokens: int, article_ratio: float, context_ratio: float
) -> TokenBudget:
    total = max(max_total_tokens, 0)
    article_tokens = int(total * article_ratio)
    context_tokens = int(total * context_ratio)
    reserved = max(total - article_tokens - context_tokens, 0)

    return TokenBudget(
        max_total_tokens=total,
        article_tokens=article_tokens,
        context_tokens=context_tokens,
        reserved_tokens=reserved,
    )
