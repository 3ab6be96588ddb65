from __future__ import annotations

import sys
import types

from notechat.llm.gemini_client import GeminiClient
from notechat.types import ChatMessage


def _install_fake_genai_module(monkeypatch, captured: dict[str, object]) -> None:
    class FakeModels:
        def generate_content_stream(self, **kwargs: object) -> list[object]:
            captured["request_kwargs"] = kwargs
            return [
                types.SimpleNamespace(text="Bon"),
                types.SimpleNamespace(text=None),
                types.SimpleNamespace(text="jour"),
            ]

    class FakeClient:
        def __init__(self, **kwargs: object) -> None:
            captured["client_kwargs"] = kwargs
            self.models = FakeModels()

    genai_module = types.ModuleType("google.genai")
    genai_module.Client = FakeClient
    google_module = types.ModuleType("google")
    google_module.genai = genai_module
    monkeypatch.setitem(sys.modules, "google", google_module)
    monkeypatch.setitem(sys.modules, "google.genai", genai_module)


def test_gemini_client_streams_text(monkeypatch) -> None:
    captured: dict[str, object] = {}
    _install_fake_genai_module(monkeypatch, captured)
    messages = [
        ChatMessage(role="system", content="be brief"),
        ChatMessage(role="user", content="hello"),
        ChatMessage(role="assistant", content="hi"),
        ChatMessage(role="user", content="again"),
    ]

    pieces = list(GeminiClient("gemini-key").stream_chat(messages, "gemini-2.5-flash", 512))

    assert pieces == ["Bon", "jour"]
    assert captured["client_kwargs"] == {"api_key": "gemini-key"}
    assert captured["request_kwargs"] == {
        "model": "gemini-2.5-flash",
        "contents": [
            {"role": "user", "parts": [{"text": "hello"}]},
            {"role": "model", "parts": [{"text": "hi"}]},
            {"role": "user", "parts": [{"text": "again"}]},
        ],
        "config": {"max_output_tokens": 512, "system_instruction": "be brief"},
    }


def test_gemini_client_passes_temperature(monkeypatch) -> None:
    captured: dict[str, object] = {}
    _install_fake_genai_module(monkeypatch, captured)

    list(
        GeminiClient("gemini-key").stream_chat(
            [ChatMessage(role="user", content="hello")], "gemini-2.5-flash", 64, temperature=0.2
        )
    )

    assert captured["request_kwargs"]["config"] == {"max_output_tokens": 64, "temperature": 0.2}
