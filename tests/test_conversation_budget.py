from __future__ import annotations

import pytest

from notechat.context.conversation_budget import (
    evaluate_message_importance,
    get_adaptive_strategy,
    manage_context_messages,
    select_context_messages,
)
from notechat.llm.token_budget import MESSAGE_OVERHEAD_TOKENS, estimate_message_tokens
from notechat.types import ChatMessage


def test_empty_history_yields_nothing() -> None:
    assert manage_context_messages([], 8000) == []
    selection = select_context_messages([], 8000)
    assert selection.messages == []
    assert selection.strategy is None


@pytest.mark.parametrize(
    ("count", "has_article", "expected"),
    [
        (5, False, (5, 0.95, 0.3, 0.9)),
        (10, False, (10, 0.95, 0.3, 0.9)),
        (20, False, (8, 0.8, 0.5, 0.7)),
        (31, False, (6, 0.7, 0.6, 0.5)),
        (20, True, (4, 0.56, 0.7, 0.56)),
        (31, True, (3, 0.49, 0.8, 0.4)),
        (2, True, (2, 0.665, 0.5, 0.72)),
    ],
)
def test_adaptive_strategy_tiers(
    count: int, has_article: bool, expected: tuple[int, float, float, float]
) -> None:
    strategy = get_adaptive_strategy(count, has_article)
    tail, start_ratio, threshold, max_ratio = expected
    assert strategy.recent_tail_size == tail
    assert strategy.compression_start_ratio == pytest.approx(start_ratio)
    assert strategy.importance_inclusion_threshold == pytest.approx(threshold)
    assert strategy.max_compression_ratio == pytest.approx(max_ratio)


def test_message_importance_weights() -> None:
    short = ChatMessage(role="user", content="hello")
    assert evaluate_message_importance(short, 0, 1) == pytest.approx(0.7)

    question = ChatMessage(role="user", content="how does this work?")
    assert evaluate_message_importance(question, 0, 1) == pytest.approx(0.8)

    system = ChatMessage(role="system", content="x" * 100)
    assert evaluate_message_importance(system, 0, 4) == pytest.approx(0.5)


def test_message_importance_recognises_cjk_questions() -> None:
    message = ChatMessage(role="assistant", content="如何总结这篇文章？")
    assert evaluate_message_importance(message, 1, 2) == pytest.approx(0.8)


def test_message_importance_matches_whole_words_only() -> None:
    message = ChatMessage(role="user", content="whatever")
    assert evaluate_message_importance(message, 0, 1) == pytest.approx(0.7)


def test_message_importance_ignores_non_text_content() -> None:
    message = ChatMessage(role="user", content=[{"type": "image"}])
    assert evaluate_message_importance(message, 0, 1) == pytest.approx(0.7)


def test_short_history_passes_through(make_conversation) -> None:
    messages = make_conversation(6)
    assert manage_context_messages(messages, 8000) == messages


def test_identical_messages_keep_their_order() -> None:
    messages = [
        ChatMessage(role="user" if index % 2 == 0 else "assistant", content="same text")
        for index in range(12)
    ]
    selection = select_context_messages(messages, 8000)
    assert selection.messages == messages
    assert selection.kept_indices == list(range(12))


def test_recent_overflow_compresses_once_and_stops() -> None:
    messages = [
        ChatMessage(role="user" if index % 2 == 0 else "assistant", content=str(index) * 300)
        for index in range(5)
    ]
    selection = select_context_messages(messages, 300)

    assert selection.kept_indices == [0, 1, 2]
    assert selection.compressed_indices == [2]
    assert selection.messages[0] == messages[0]
    assert selection.messages[1] == messages[1]
    compressed = selection.messages[2]
    assert compressed.role == "user"
    assert compressed.content.startswith("2" * 96 + "\n\n[... content compressed")
    assert compressed.content.endswith("\n\n" + "2" * 96)


def test_falls_back_to_last_message_when_nothing_fits() -> None:
    message = ChatMessage(role="user", content="q" * 3000)
    selection = select_context_messages([message], 10)

    assert selection.messages == [message]
    assert selection.used_fallback is True
    assert selection.kept_indices == [0]


def test_older_pool_fills_remaining_budget(make_conversation) -> None:
    messages = make_conversation(12)
    result = manage_context_messages(messages, 340)
    assert result == messages[1:]


def test_older_pool_compresses_important_overflow(make_conversation) -> None:
    messages = make_conversation(12)
    messages[3] = ChatMessage(role="assistant", content="d" * 1500)

    selection = select_context_messages(messages, 400)

    assert selection.kept_indices == list(range(3, 12))
    assert selection.compressed_indices == [3]
    first = selection.messages[0]
    assert first.role == "assistant"
    assert "content compressed" in first.content
    assert first.content.startswith("d" * 192)
    assert selection.messages[1:] == messages[4:]


def test_article_content_shrinks_recent_tail(make_conversation) -> None:
    messages = make_conversation(20)
    with_article = select_context_messages(messages, 8000, has_article_content=True)
    without_article = select_context_messages(messages, 8000)

    assert with_article.strategy is not None
    assert with_article.strategy.recent_tail_size == 4
    assert without_article.strategy is not None
    assert without_article.strategy.recent_tail_size == 8
    assert with_article.messages == messages
    assert without_article.messages == messages


def test_selection_stays_chronological(make_conversation) -> None:
    messages = make_conversation(40, content_length=150)
    selection = select_context_messages(messages, 900)

    assert selection.kept_indices == sorted(selection.kept_indices)
    assert 0 < len(selection.messages) < len(messages)
    assert selection.kept_indices[-1] == len(messages) - 1
    for index, message in zip(selection.kept_indices, selection.messages, strict=True):
        if index not in selection.compressed_indices:
            assert message == messages[index]
        assert message.role == messages[index].role


# Compressed messages may overshoot by the uncounted omission marker (under 60
# characters, so at most 20 tokens) plus the per-message overhead.
COMPRESSION_SLACK_TOKENS = 20 + MESSAGE_OVERHEAD_TOKENS


@pytest.mark.parametrize("total", [1, 5, 31])
def test_message_importance_grows_with_position(total: int) -> None:
    message = ChatMessage(role="user", content="hello")
    scores = [evaluate_message_importance(message, index, total) for index in range(total)]

    assert all(later >= earlier for earlier, later in zip(scores, scores[1:]))
    for earlier, later in zip(scores, scores[1:]):
        assert later - earlier == pytest.approx(0.4 / total)
    assert scores[-1] == pytest.approx(0.7)


@pytest.mark.parametrize("content_length", [200, 600, 1500, 3000])
@pytest.mark.parametrize("has_article", [False, True])
def test_selection_stays_within_budget(content_length: int, has_article: bool) -> None:
    messages = [
        ChatMessage(role="user" if index % 2 == 0 else "assistant", content="w" * content_length)
        for index in range(12)
    ]
    for budget in range(50, 400, 7):
        selection = select_context_messages(messages, budget, has_article_content=has_article)

        assert selection.total_tokens == sum(
            estimate_message_tokens(message) for message in selection.messages
        )
        if selection.used_fallback:
            assert selection.messages == [messages[-1]]
            continue
        assert selection.total_tokens <= budget + COMPRESSION_SLACK_TOKENS
