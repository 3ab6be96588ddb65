"""Fit note/article bodies into the article share of the token budget.

Short documents are passed through verbatim. Documents that alone exceed the
budget are split into paragraph-aligned chunks, ranked against the user's
question and the best chunks are kept. Everything returned is a ready-made
``ChatMessage``.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from notechat.llm.token_budget import compress_message, estimate_tokens
from notechat.types import ChatMessage

DEFAULT_MAX_ARTICLE_TOKENS = 4000
DEFAULT_MAX_CHUNK_SIZE = 2000
MIN_COMPRESSION_TOKENS = 500
CHUNK_SEPARATOR = "\n\n---\n\n"

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_HEADING = re.compile(r"^#+\s")
_BULLET_LINE = re.compile(r"^\s*[-*+]\s", re.MULTILINE)
_CODE_FENCE = re.compile(r"```")
_NUMBERED = re.compile(r"\d+\.")


@dataclass
class ChunkCandidate:
    text: str
    position_index: int
    total_chunks: int
    importance: float
    estimated_tokens: int


def chunk_article(content: str, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE) -> list[str]:
    chunks: list[str] = []
    current = ""

    for raw_paragraph in _PARAGRAPH_SPLIT.split(content):
        paragraph = raw_paragraph.strip()
        if not paragraph:
            continue
        # Paragraphs are never split, an oversized one becomes its own chunk.
        if current and len(current) + len(paragraph) + 2 > max_chunk_size:
            chunks.append(current)
            current = paragraph
        else:
            current = f"{current}\n\n{paragraph}" if current else paragraph

    if current.strip():
        chunks.append(current.strip())
    return chunks


def _query_keywords(user_query: str) -> list[str]:
    return [word for word in user_query.lower().split() if len(word) > 2]


def evaluate_chunk_importance(
    chunk: str, index: int, total_chunks: int, user_query: str
) -> float:
    importance = 0.0

    if index == 0:
        importance += 0.3
    if index == total_chunks - 1:
        importance += 0.2

    if 500 < len(chunk) < 2000:
        importance += 0.2

    chunk_lower = chunk.lower()
    matches = sum(1 for keyword in _query_keywords(user_query) if keyword in chunk_lower)
    importance += min(matches * 0.1, 0.3)

    if _HEADING.match(chunk):
        importance += 0.1
    if _BULLET_LINE.search(chunk):
        importance += 0.05
    if _CODE_FENCE.search(chunk):
        importance += 0.1
    if _NUMBERED.search(chunk):
        importance += 0.05

    return min(importance, 1.0)


def rank_chunks(
    chunks: Sequence[str], user_query: str = ""
) -> list[ChunkCandidate]:
    """Score chunks and order them best first, earlier chunks winning ties."""
    total = len(chunks)
    candidates = [
        ChunkCandidate(
            text=chunk,
            position_index=index,
            total_chunks=total,
            importance=evaluate_chunk_importance(chunk, index, total, user_query),
            estimated_tokens=estimate_tokens(chunk),
        )
        for index, chunk in enumerate(chunks)
    ]
    candidates.sort(key=lambda item: (-item.importance, item.position_index))
    return candidates


def _select_chunks(
    document: str,
    max_article_tokens: int,
    spent_tokens: int,
    user_query: str,
    max_chunk_size: int,
) -> tuple[ChatMessage | None, int]:
    chunks = chunk_article(document, max_chunk_size)
    selected: list[ChunkCandidate] = []
    article_tokens = 0

    for candidate in rank_chunks(chunks, user_query):
        tokens = candidate.estimated_tokens
        if (
            article_tokens + tokens <= max_article_tokens
            and spent_tokens + article_tokens + tokens <= max_article_tokens
        ):
            selected.append(candidate)
            article_tokens += tokens

    if not selected:
        return None, 0

    # Selection order is kept so the most relevant material comes first.
    texts = [candidate.text for candidate in selected]
    if len(selected) < len(chunks):
        content = (
            f"[Article compressed: kept {len(selected)} of {len(chunks)} most relevant sections]"
            f"\n\n{CHUNK_SEPARATOR.join(texts)}"
        )
    else:
        content = "\n\n".join(texts)
    return ChatMessage(role="system", content=content), article_tokens


def manage_article_content(
    documents: Sequence[str],
    max_article_tokens: int = DEFAULT_MAX_ARTICLE_TOKENS,
    user_query: str = "",
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
) -> list[ChatMessage]:
    if not documents:
        return []

    messages: list[ChatMessage] = []
    total_tokens = 0

    for document in documents:
        if not isinstance(document, str) or not document.strip():
            continue
        document_tokens = estimate_tokens(document)

        if document_tokens > max_article_tokens:
            message, used = _select_chunks(
                document, max_article_tokens, total_tokens, user_query, max_chunk_size
            )
            if message is not None:
                messages.append(message)
                total_tokens += used
        elif total_tokens + document_tokens <= max_article_tokens:
            messages.append(ChatMessage(role="system", content=document))
            total_tokens += document_tokens
        else:
            remaining = max_article_tokens - total_tokens
            if remaining > MIN_COMPRESSION_TOKENS:
                ratio = remaining / document_tokens
                compressed = compress_message(document, int(len(document) * ratio))
                # Compressed whole documents are sent as user turns.
                messages.append(ChatMessage(role="user", content=compressed))
                total_tokens += estimate_tokens(compressed)

        if total_tokens >= max_article_tokens:
            break

    return messages
