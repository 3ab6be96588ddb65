from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from notechat.context.article_budget import DEFAULT_MAX_CHUNK_SIZE, manage_article_content
from notechat.context.conversation_budget import ContextSelection, select_context_messages
from notechat.llm.token_budget import compute_budget, estimate_message_tokens
from notechat.types import ChatMessage, TokenBudget

DEFAULT_MAX_TOTAL_TOKENS = 16000
DEFAULT_ARTICLE_RATIO = 0.65
DEFAULT_CONTEXT_RATIO = 0.25


@dataclass
class AssembledPrompt:
    messages: list[ChatMessage]
    budget: TokenBudget
    article_messages: list[ChatMessage] = field(default_factory=list)
    history_messages: list[ChatMessage] = field(default_factory=list)
    dropped_history_count: int = 0
    compressed_history_count: int = 0
    estimated_input_tokens: int = 0

    def to_payload(self) -> list[dict[str, str]]:
        return [message.to_payload() for message in self.messages]


def assemble_messages(
    user_input: str,
    documents: Sequence[str] = (),
    history: Sequence[ChatMessage] = (),
    system_prompt: str | None = None,
    budget: TokenBudget | None = None,
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
) -> AssembledPrompt:
    """Build the ordered message list sent to the completion API.

    Order is: system prompt, budgeted note content, budgeted history, and the
    new user turn last.
    """
    if budget is None:
        budget = compute_budget(
            DEFAULT_MAX_TOTAL_TOKENS, DEFAULT_ARTICLE_RATIO, DEFAULT_CONTEXT_RATIO
        )

    messages: list[ChatMessage] = []
    if system_prompt and system_prompt.strip():
        messages.append(ChatMessage(role="system", content=system_prompt))

    article_messages = manage_article_content(
        list(documents),
        max_article_tokens=budget.article_tokens,
        user_query=user_input,
        max_chunk_size=max_chunk_size,
    )
    selection: ContextSelection = select_context_messages(
        list(history),
        max_context_tokens=budget.context_tokens,
        has_article_content=bool(article_messages),
    )

    messages.extend(article_messages)
    messages.extend(selection.messages)
    messages.append(ChatMessage(role="user", content=user_input))

    return AssembledPrompt(
        messages=messages,
        budget=budget,
        article_messages=article_messages,
        history_messages=selection.messages,
        dropped_history_count=len(history) - len(selection.messages),
        compressed_history_count=selection.compressed_count,
        estimated_input_tokens=sum(estimate_message_tokens(message) for message in messages),
    )
