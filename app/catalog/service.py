"""
Model catalog: static, read-only registry of models and the providers serving them.

Loaded once from catalog.json at import time. Nothing here mutates after load,
so lookups are safe from any number of concurrent requests.
"""
from pathlib import Path
from types import MappingProxyType

from app.catalog.models import Catalog, ModelDefinition, ProviderDefinition, ProviderMapping
from app.core.exceptions import ValidationError

CATALOG_PATH = Path(__file__).with_name("catalog.json")


def load_catalog(path: Path = CATALOG_PATH) -> Catalog:
    return Catalog.model_validate_json(path.read_text(encoding="utf-8"))


CATALOG = load_catalog()

_models = MappingProxyType({m.model: m for m in CATALOG.models})
_providers = MappingProxyType({p.id: p for p in CATALOG.providers})


def find_model(model_id: str) -> ModelDefinition | None:
    """Exact-match lookup. No aliases, no prefix matching."""
    return _models.get(model_id)


def list_models() -> tuple[ModelDefinition, ...]:
    return CATALOG.models


def list_providers() -> tuple[ProviderDefinition, ...]:
    return CATALOG.providers


def get_provider_definition(provider_id: str) -> ProviderDefinition | None:
    return _providers.get(provider_id)


def resolve_model(requested: str) -> tuple[ModelDefinition, ProviderMapping]:
    """Resolve ``model`` or ``provider/model`` to a model and the mapping to call.

    A bare model name selects its first (default) mapping.
    """
    model_def = find_model(requested)
    if model_def is not None:
        return model_def, model_def.default_mapping

    if "/" in requested:
        provider_id, _, model_id = requested.partition("/")
        if get_provider_definition(provider_id) is None:
            raise ValidationError(f"Requested provider {provider_id} not supported")
        model_def = find_model(model_id)
        if model_def is None:
            raise ValidationError(f"Requested model {model_id} not supported")
        mapping = model_def.get_mapping(provider_id)
        if mapping is None:
            raise ValidationError(
                f"Provider {provider_id} does not support model {model_id}"
            )
        return model_def, mapping

    raise ValidationError(f"Requested model {requested} not supported")


def mapping_supports_streaming(model_def: ModelDefinition, mapping: ProviderMapping) -> bool:
    if mapping.streaming is not None:
        return mapping.streaming
    if model_def.streaming is not None:
        return model_def.streaming
    provider = get_provider_definition(mapping.provider_id)
    return provider is not None and provider.streaming


def get_model_streaming_support(model_id: str, provider_id: str | None = None) -> bool:
    """Whether the model streams, on a specific provider or on any of them."""
    model_def = find_model(model_id)
    if model_def is None:
        return False

    if provider_id is None:
        return any(mapping_supports_streaming(model_def, m) for m in model_def.providers)

    mapping = model_def.get_mapping(provider_id)
    if mapping is None:
        return False
    return mapping_supports_streaming(model_def, mapping)
