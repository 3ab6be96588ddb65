from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import Any

from notechat.llm.base_client import BaseLlmClient, split_system_messages
from notechat.types import ChatMessage


class AnthropicClient(BaseLlmClient):
    provider = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        auth_token: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self.api_key = api_key
        self.auth_token = auth_token
        self.base_url = base_url

    def _client_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if self.auth_token:
            kwargs["auth_token"] = self.auth_token
        else:
            kwargs["api_key"] = self.api_key
        if self.base_url:
            kwargs["base_url"] = self.base_url
        return kwargs

    def stream_chat(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float | None = None,
    ) -> Iterator[str]:
        try:
            import anthropic  # type: ignore
        except Exception as exc:  # pragma: no cover
            raise RuntimeError("anthropic package is not installed") from exc

        client = anthropic.Anthropic(**self._client_kwargs())
        system, turns = split_system_messages(messages)

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": [turn.to_payload() for turn in turns],
        }
        if system:
            kwargs["system"] = system
        if temperature is not None:
            kwargs["temperature"] = temperature

        with client.messages.stream(**kwargs) as stream:
            for text in stream.text_stream:
                if text:
                    yield text
