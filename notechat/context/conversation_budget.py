"""Conversation history budgeting.

History is split into a recent tail, which is kept verbatim for as long as
it fits, and an older pool that is admitted by importance. Overflowing
entries are compressed head/tail instead of being dropped when there is
still room. The surviving messages are returned in their original order.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from notechat.llm.token_budget import (
    CHARS_PER_TOKEN,
    MESSAGE_OVERHEAD_TOKENS,
    compress_message,
    estimate_message_tokens,
    estimate_tokens,
)
from notechat.types import AdaptiveStrategy, ChatMessage

DEFAULT_MAX_CONTEXT_TOKENS = 8000
MIN_RECENT_COMPRESSION_CHARS = 100
MIN_OLDER_COMPRESSION_CHARS = 200

_QUESTION_MARK = re.compile(r"[?？]")
_ANALYTICAL_KEYWORDS = re.compile(
    r"\b(?:how|why|what|analy[sz]e|summari[sz]e|explain|help)\b"
    r"|如何|怎么|什么|为什么|分析|总结|解释|帮助",
    re.IGNORECASE,
)


@dataclass
class ScoredMessage:
    message: ChatMessage
    importance_score: float
    estimated_tokens: int
    original_index: int


@dataclass
class ContextSelection:
    messages: list[ChatMessage]
    strategy: AdaptiveStrategy | None
    total_tokens: int = 0
    compressed_indices: list[int] = field(default_factory=list)
    kept_indices: list[int] = field(default_factory=list)
    used_fallback: bool = False

    @property
    def compressed_count(self) -> int:
        return len(self.compressed_indices)


def evaluate_message_importance(message: ChatMessage, index: int, total_count: int) -> float:
    content = message.text
    score = 0.0

    if total_count > 0:
        score += ((index + 1) / total_count) * 0.4

    score += 0.3 if 50 < len(content) < 2000 else 0.1
    score += 0.2 if message.role in ("user", "assistant") else 0.1

    if _QUESTION_MARK.search(content):
        score += 0.05
    if _ANALYTICAL_KEYWORDS.search(content):
        score += 0.05

    return min(score, 1.0)


def get_adaptive_strategy(message_count: int, has_article_content: bool = False) -> AdaptiveStrategy:
    if message_count <= 10:
        tail, start_ratio, threshold, max_ratio = message_count, 0.95, 0.3, 0.9
    elif message_count <= 30:
        tail, start_ratio, threshold, max_ratio = 8, 0.8, 0.5, 0.7
    else:
        tail, start_ratio, threshold, max_ratio = 6, 0.7, 0.6, 0.5

    if has_article_content:
        # Leave more room for note content.
        tail = max(2, int(tail * 0.6))
        start_ratio *= 0.7
        threshold += 0.2
        max_ratio *= 0.8

    return AdaptiveStrategy(
        recent_tail_size=tail,
        compression_start_ratio=start_ratio,
        importance_inclusion_threshold=threshold,
        max_compression_ratio=max_ratio,
    )


def score_messages(messages: Sequence[ChatMessage]) -> list[ScoredMessage]:
    total = len(messages)
    return [
        ScoredMessage(
            message=message,
            importance_score=evaluate_message_importance(message, index, total),
            estimated_tokens=estimate_message_tokens(message),
            original_index=index,
        )
        for index, message in enumerate(messages)
    ]


def _compressed(item: ScoredMessage, available_chars: int, max_ratio: float) -> ChatMessage:
    content = item.message.text
    target_length = min(available_chars, int(len(content) * max_ratio))
    return item.message.model_copy(update={"content": compress_message(content, target_length)})


def select_context_messages(
    messages: Sequence[ChatMessage],
    max_context_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS,
    has_article_content: bool = False,
) -> ContextSelection:
    if not messages:
        return ContextSelection(messages=[], strategy=None)

    strategy = get_adaptive_strategy(len(messages), has_article_content)
    scored = score_messages(messages)

    split_at = max(len(scored) - strategy.recent_tail_size, 0)
    recent = scored[split_at:]
    older = sorted(scored[:split_at], key=lambda item: (-item.importance_score, item.original_index))

    soft_ceiling = max_context_tokens * strategy.compression_start_ratio
    selected: dict[int, ChatMessage] = {}
    compressed_indices: list[int] = []
    total_tokens = 0

    for item in recent:
        if total_tokens + item.estimated_tokens <= soft_ceiling:
            selected[item.original_index] = item.message
            total_tokens += item.estimated_tokens
            continue

        available_chars = (max_context_tokens - total_tokens) * CHARS_PER_TOKEN
        if available_chars > MIN_RECENT_COMPRESSION_CHARS:
            message = _compressed(item, available_chars, strategy.max_compression_ratio)
            selected[item.original_index] = message
            compressed_indices.append(item.original_index)
            total_tokens += estimate_tokens(message.text) + MESSAGE_OVERHEAD_TOKENS
        # One overflow ends the recent pass.
        break

    for item in older:
        if total_tokens + item.estimated_tokens <= max_context_tokens:
            selected[item.original_index] = item.message
            total_tokens += item.estimated_tokens
            continue

        available_chars = (max_context_tokens - total_tokens) * CHARS_PER_TOKEN
        if (
            available_chars > MIN_OLDER_COMPRESSION_CHARS
            and item.importance_score > strategy.importance_inclusion_threshold
        ):
            message = _compressed(item, available_chars, strategy.max_compression_ratio)
            selected[item.original_index] = message
            compressed_indices.append(item.original_index)
            total_tokens += estimate_tokens(message.text) + MESSAGE_OVERHEAD_TOKENS

        if total_tokens >= soft_ceiling:
            break

    kept_indices = sorted(selected)
    if not kept_indices:
        last_index = len(messages) - 1
        return ContextSelection(
            messages=[messages[last_index]],
            strategy=strategy,
            total_tokens=estimate_message_tokens(messages[last_index]),
            kept_indices=[last_index],
            used_fallback=True,
        )

    return ContextSelection(
        messages=[selected[index] for index in kept_indices],
        strategy=strategy,
        total_tokens=total_tokens,
        compressed_indices=sorted(compressed_indices),
        kept_indices=kept_indices,
    )


def manage_context_messages(
    messages: Sequence[ChatMessage],
    max_context_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS,
    has_article_content: bool = False,
) -> list[ChatMessage]:
    return select_context_messages(messages, max_context_tokens, has_article_content).messages
