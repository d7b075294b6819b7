"""
Token estimation for requests whose upstream did not report usage.

Counts are produced with tiktoken. Models tiktoken does not know (Anthropic,
Gemini, Llama, ...) are counted with the gpt-4 family encoding, so estimates for
those models are an approximation of what the provider would bill, not an exact
reproduction of its tokenizer.
"""
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import structlog
import tiktoken

from app.core.exceptions import EstimationError

logger = structlog.get_logger(__name__)

DEFAULT_TOKENIZER_MODEL = "gpt-4"

# OpenAI chat accounting: every message is wrapped in <|start|>{role/name}\n{content}<|end|>\n
TOKENS_PER_MESSAGE = 3
TOKENS_PER_NAME = 1
# Every reply is primed with <|start|>assistant<|message|>
REPLY_PRIMING_TOKENS = 3


@dataclass(frozen=True)
class FullOutput:
    """Raw request/response text to estimate from when counts are missing."""
    messages: Sequence[Mapping[str, Any]] | None = None
    prompt: str | None = None
    completion: str | None = None


@dataclass(frozen=True)
class TokenEstimate:
    prompt_tokens: int | None
    completion_tokens: int | None
    estimated: bool = False


@lru_cache(maxsize=32)
def get_encoding(model: str) -> tiktoken.Encoding:
    """Encoding for ``model``, falling back to the default family for unknown models."""
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        return tiktoken.encoding_for_model(DEFAULT_TOKENIZER_MODEL)


def count_text_tokens(text: str, model: str = DEFAULT_TOKENIZER_MODEL) -> int:
    return len(get_encoding(model).encode(text, disallowed_special=()))


def count_chat_tokens(
    messages: Sequence[Mapping[str, Any]], model: str = DEFAULT_TOKENIZER_MODEL
) -> int:
    encoding = get_encoding(model)
    total = 0
    for message in messages:
        total += TOKENS_PER_MESSAGE
        for key, value in message.items():
            if value is None:
                continue
            total += len(encoding.encode(str(value), disallowed_special=()))
            if key == "name":
                total += TOKENS_PER_NAME
    return total + REPLY_PRIMING_TOKENS


def _encode_field(field: str, fn: Any, *args: Any) -> int:
    try:
        return fn(*args)
    except Exception as exc:
        raise EstimationError(field, exc) from exc


def _estimate_prompt(model: str, full_output: FullOutput) -> int | None:
    if full_output.messages:
        return _encode_field("chat messages", count_chat_tokens, full_output.messages, model)
    if full_output.prompt:
        return _encode_field("prompt text", count_text_tokens, full_output.prompt, model)
    return None


def _estimate_completion(model: str, full_output: FullOutput) -> int | None:
    if full_output.completion:
        return _encode_field("completion text", count_text_tokens, full_output.completion, model)
    return None


def estimate_tokens(
    model: str,
    prompt_tokens: int | None,
    completion_tokens: int | None,
    full_output: FullOutput | None = None,
) -> TokenEstimate:
    """
    Fill in missing token counts from raw text.

    Explicit counts always win. Each missing count is estimated independently;
    if its raw input is absent or the tokenizer fails it stays None.
    """
    if prompt_tokens is not None and completion_tokens is not None:
        return TokenEstimate(prompt_tokens, completion_tokens)
    if full_output is None:
        return TokenEstimate(prompt_tokens, completion_tokens)

    estimated = False

    if prompt_tokens is None:
        try:
            prompt_tokens = _estimate_prompt(model, full_output)
        except EstimationError as exc:
            logger.warning("tokens.estimate_failed", model=model, field=exc.field, error=str(exc.cause))
        else:
            estimated = estimated or prompt_tokens is not None

    if completion_tokens is None:
        try:
            completion_tokens = _estimate_completion(model, full_output)
        except EstimationError as exc:
            logger.warning("tokens.estimate_failed", model=model, field=exc.field, error=str(exc.cause))
        else:
            estimated = estimated or completion_tokens is not None

    return TokenEstimate(prompt_tokens, completion_tokens, estimated)
