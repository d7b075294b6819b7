import pytest

from app.tokens import service as tokens
from app.tokens.service import FullOutput, count_chat_tokens, count_text_tokens, estimate_tokens


def test_explicit_counts_take_precedence():
    result = estimate_tokens(
        "gpt-4", 7, 3, FullOutput(prompt="a much longer prompt " * 20, completion="x " * 50)
    )
    assert result.prompt_tokens == 7
    assert result.completion_tokens == 3
    assert result.estimated is False


def test_estimates_missing_counts_from_text():
    result = estimate_tokens(
        "gpt-4", None, None,
        FullOutput(prompt="Hello, how are you?", completion="I'm doing well, thank you for asking!"),
    )
    assert result.prompt_tokens > 0
    assert result.completion_tokens > 0
    assert result.estimated is True


def test_estimates_only_the_missing_side():
    result = estimate_tokens("gpt-4", 42, None, FullOutput(prompt="ignored", completion="Sure."))
    assert result.prompt_tokens == 42
    assert result.completion_tokens > 0


def test_chat_messages_preferred_over_prompt():
    messages = [
        {"role": "system", "content": "You are terse."},
        {"role": "user", "content": "Hello, how are you?"},
    ]
    result = estimate_tokens("gpt-4", None, None, FullOutput(messages=messages, prompt="x"))
    assert result.prompt_tokens == count_chat_tokens(messages, "gpt-4")
    assert result.prompt_tokens > count_text_tokens("You are terse.Hello, how are you?")


def test_chat_count_includes_message_overhead_and_name():
    plain = [{"role": "user", "content": "hi"}]
    named = [{"role": "user", "content": "hi", "name": "bob"}]
    text_tokens = count_text_tokens("user") + count_text_tokens("hi")
    assert count_chat_tokens(plain) == text_tokens + 3 + 3
    assert count_chat_tokens(named) == count_chat_tokens(plain) + count_text_tokens("bob") + 1


def test_no_raw_input_leaves_counts_null():
    assert estimate_tokens("gpt-4", None, None) == tokens.TokenEstimate(None, None, False)
    result = estimate_tokens("gpt-4", None, None, FullOutput())
    assert result.prompt_tokens is None
    assert result.completion_tokens is None
    assert result.estimated is False


def test_unknown_model_falls_back_to_default_family():
    text = "The quick brown fox jumps over the lazy dog."
    assert count_text_tokens(text, "claude-3-haiku") == count_text_tokens(text, "gpt-4")
    assert tokens.get_encoding("not-a-real-model").name == "cl100k_base"


def test_tokenizer_failure_is_absorbed_per_field(monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("encoder exploded")

    monkeypatch.setattr(tokens, "count_chat_tokens", broken)
    result = estimate_tokens(
        "gpt-4", None, None,
        FullOutput(messages=[{"role": "user", "content": "hi"}], completion="Hello there"),
    )
    assert result.prompt_tokens is None
    assert result.completion_tokens > 0


@pytest.mark.parametrize("model", ["gpt-4o-mini", "gpt-3.5-turbo", "gemini-2.0-flash"])
def test_estimates_are_deterministic(model):
    output = FullOutput(prompt="Repeatable input", completion="Repeatable output")
    assert estimate_tokens(model, None, None, output) == estimate_tokens(model, None, None, output)
