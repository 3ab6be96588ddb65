from __future__ import annotations

from collections.abc import Iterator, Sequence

from notechat.config import NotechatConfig, get_provider_api_key, get_provider_auth_token
from notechat.llm.anthropic_client import AnthropicClient
from notechat.llm.base_client import BaseLlmClient
from notechat.llm.gemini_client import GeminiClient
from notechat.types import ChatMessage


class ProviderRouter:
    def __init__(
        self,
        anthropic_api_key: str | None,
        gemini_api_key: str | None,
        anthropic_auth_token: str | None = None,
        anthropic_base_url: str | None = None,
    ) -> None:
        self._clients: dict[str, BaseLlmClient] = {}
        if anthropic_auth_token:
            self._clients["anthropic"] = AnthropicClient(
                auth_token=anthropic_auth_token, base_url=anthropic_base_url
            )
        elif anthropic_api_key:
            self._clients["anthropic"] = AnthropicClient(
                api_key=anthropic_api_key, base_url=anthropic_base_url
            )
        if gemini_api_key:
            self._clients["gemini"] = GeminiClient(gemini_api_key)

    @classmethod
    def from_config(cls, config: NotechatConfig) -> ProviderRouter:
        return cls(
            anthropic_api_key=get_provider_api_key(config, "anthropic"),
            gemini_api_key=get_provider_api_key(config, "gemini"),
            anthropic_auth_token=get_provider_auth_token(config, "anthropic"),
            anthropic_base_url=config.model.base_url,
        )

    def has_provider(self, provider: str) -> bool:
        return provider in self._clients

    def stream_chat(
        self,
        provider: str,
        messages: Sequence[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float | None = None,
    ) -> Iterator[str]:
        if provider not in self._clients:
            raise RuntimeError(f"Provider is not configured: {provider}")
        return self._clients[provider].stream_chat(messages, model, max_tokens, temperature)
