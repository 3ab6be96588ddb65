from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence

from notechat.types import ChatMessage

LEADING_USER_PLACEHOLDER = "(earlier conversation omitted)"


def split_system_messages(messages: Sequence[ChatMessage]) -> tuple[str, list[ChatMessage]]:
    """Separate system turns from the conversation.

    Providers that take the system prompt out of band get every system turn
    joined in order. Consecutive turns of the same role are merged, and a
    conversation trimmed down to an assistant reply gets a placeholder user
    turn in front so it still opens with the user.
    """
    system_parts: list[str] = []
    turns: list[ChatMessage] = []
    for message in messages:
        if message.role == "system":
            if message.text:
                system_parts.append(message.text)
            continue
        if turns and turns[-1].role == message.role:
            merged = f"{turns[-1].text}\n\n{message.text}"
            turns[-1] = turns[-1].model_copy(update={"content": merged})
        else:
            turns.append(message)
    if turns and turns[0].role == "assistant":
        turns.insert(0, ChatMessage(role="user", content=LEADING_USER_PLACEHOLDER))
    return "\n\n".join(system_parts), turns


class BaseLlmClient(ABC):
    provider: str

    @abstractmethod
    def stream_chat(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float | None = None,
    ) -> Iterator[str]:
        raise NotImplementedError
