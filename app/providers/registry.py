"""Provider registry.

One long-lived provider (and so one pooled httpx client) per provider id,
built from platform credentials in settings. ``make_provider`` builds an
ephemeral one with explicit credentials.
"""
import httpx

from app.config import settings
from app.providers.anthropic import AnthropicProvider
from app.providers.base import BaseProvider
from app.providers.google import GoogleProvider
from app.providers.mock import MockProvider
from app.providers.openai import OpenAICompatibleProvider, OpenAIProvider

_providers: dict[str, BaseProvider] = {}

OPENAI_COMPATIBLE = ("inference.net", "kluster.ai", "llmgateway")
GOOGLE = ("google-vertex", "google-ai-studio")


def upstream_timeout() -> httpx.Timeout:
    return httpx.Timeout(
        settings.upstream_timeout_seconds,
        connect=settings.upstream_connect_timeout_seconds,
    )


def _platform_credentials(name: str) -> tuple[str, str]:
    if name == "openai":
        return settings.openai_api_key, settings.openai_base_url
    if name == "anthropic":
        return settings.anthropic_api_key, settings.anthropic_base_url
    if name in GOOGLE:
        return settings.google_api_key, settings.google_base_url
    if name == "inference.net":
        return settings.inference_net_api_key, settings.inference_net_base_url
    if name == "kluster.ai":
        return settings.kluster_ai_api_key, settings.kluster_ai_base_url
    if name == "llmgateway":
        return settings.llmgateway_api_key, settings.llmgateway_base_url
    raise ValueError(f"Unknown provider: {name}")


def make_provider(
    name: str,
    api_key: str,
    base_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BaseProvider:
    """Create a provider with a specific API key and, optionally, base URL."""
    if name == "mock":
        return MockProvider()

    if not api_key:
        raise ValueError(f"No API key configured for provider {name}")
    if base_url is None:
        _, base_url = _platform_credentials(name)
    if not base_url:
        raise ValueError(f"Provider {name} requires a base URL")

    timeout = upstream_timeout()
    if name == "openai":
        return OpenAIProvider(api_key=api_key, base_url=base_url, timeout=timeout, transport=transport)
    if name == "anthropic":
        return AnthropicProvider(api_key=api_key, base_url=base_url, timeout=timeout, transport=transport)
    if name in GOOGLE:
        return GoogleProvider(name, api_key=api_key, base_url=base_url, timeout=timeout, transport=transport)
    if name in OPENAI_COMPATIBLE:
        return OpenAICompatibleProvider(
            name, api_key=api_key, base_url=base_url, timeout=timeout, transport=transport
        )
    raise ValueError(f"Unknown provider: {name}")


def get_provider(name: str) -> BaseProvider:
    """Get singleton provider by name (uses platform/env credentials)."""
    if name not in _providers:
        if name == "mock":
            _providers[name] = MockProvider()
        else:
            api_key, base_url = _platform_credentials(name)
            _providers[name] = make_provider(name, api_key, base_url)
    return _providers[name]


async def close_all() -> None:
    for provider in _providers.values():
        await provider.close()
    _providers.clear()
