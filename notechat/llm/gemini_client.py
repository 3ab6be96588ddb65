from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import Any

from notechat.llm.base_client import BaseLlmClient, split_system_messages
from notechat.types import ChatMessage


class GeminiClient(BaseLlmClient):
    provider = "gemini"

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key

    @staticmethod
    def _to_contents(turns: Sequence[ChatMessage]) -> list[dict[str, Any]]:
        return [
            {
                "role": "model" if turn.role == "assistant" else "user",
                "parts": [{"text": turn.text}],
            }
            for turn in turns
        ]

    def stream_chat(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float | None = None,
    ) -> Iterator[str]:
        try:
            from google import genai  # type: ignore
        except Exception as exc:  # pragma: no cover
            raise RuntimeError("google-genai package is not installed") from exc

        client = genai.Client(api_key=self.api_key)
        system, turns = split_system_messages(messages)

        config: dict[str, Any] = {"max_output_tokens": max_tokens}
        if system:
            config["system_instruction"] = system
        if temperature is not None:
            config["temperature"] = temperature

        response = client.models.generate_content_stream(
            model=model,
            contents=self._to_contents(turns),
            config=config,  # type: ignore[arg-type]
        )
        for chunk in response:
            text = getattr(chunk, "text", None) or ""
            if text:
                yield text
