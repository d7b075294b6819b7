from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from app.catalog import service as catalog
from app.catalog.models import ModelDefinition, ProviderMapping
from app.core.exceptions import ValidationError


def test_find_model_is_exact_match():
    assert catalog.find_model("gpt-4o-mini").model == "gpt-4o-mini"
    assert catalog.find_model("gpt-4o-m") is None
    assert catalog.find_model("GPT-4O-MINI") is None
    assert catalog.find_model("invalid") is None


def test_gpt4_pricing():
    mapping = catalog.find_model("gpt-4").default_mapping
    assert mapping.provider_id == "openai"
    assert mapping.input_price == Decimal("0.00001")
    assert mapping.output_price == Decimal("0.00003")


def test_list_providers_and_models():
    provider_ids = {p.id for p in catalog.list_providers()}
    assert {"openai", "anthropic", "google-vertex", "inference.net", "kluster.ai"} <= provider_ids
    assert any(m.model == "llama-3.3-70b-instruct" for m in catalog.list_models())


def test_resolve_model_uses_default_mapping():
    model_def, mapping = catalog.resolve_model("llama-3.3-70b-instruct")
    assert mapping.provider_id == "inference.net"
    assert model_def.upstream_model_name(mapping) == "meta-llama/llama-3.3-70b-instruct/fp-8"


def test_resolve_model_with_explicit_provider():
    model_def, mapping = catalog.resolve_model("kluster.ai/llama-3.3-70b-instruct")
    assert model_def.model == "llama-3.3-70b-instruct"
    assert mapping.provider_id == "kluster.ai"


@pytest.mark.parametrize(
    "requested",
    ["invalid", "openai/invalid", "nope/gpt-4o", "anthropic/gpt-4o"],
)
def test_resolve_model_rejects_unknown(requested):
    with pytest.raises(ValidationError) as exc_info:
        catalog.resolve_model(requested)
    assert exc_info.value.status_code == 400


def test_streaming_support():
    assert catalog.get_model_streaming_support("gpt-4o") is True
    assert catalog.get_model_streaming_support("llama-3.3-70b-instruct") is False
    assert catalog.get_model_streaming_support("llama-3.3-70b-instruct", "kluster.ai") is False
    assert catalog.get_model_streaming_support("gemini-2.0-flash", "google-vertex") is True
    assert catalog.get_model_streaming_support("gpt-4o", "anthropic") is False
    assert catalog.get_model_streaming_support("mock-model-no-stream") is False
    assert catalog.get_model_streaming_support("invalid") is False


def test_catalog_entries_are_immutable():
    model_def = catalog.find_model("gpt-4")
    with pytest.raises(PydanticValidationError):
        model_def.model = "gpt-5"


def test_model_definition_rejects_duplicate_providers():
    with pytest.raises(PydanticValidationError):
        ModelDefinition(
            model="dup",
            providers=(ProviderMapping(provider_id="openai"), ProviderMapping(provider_id="openai")),
        )


def test_provider_mapping_rejects_negative_prices():
    with pytest.raises(PydanticValidationError):
        ProviderMapping(provider_id="openai", input_price=Decimal("-0.1"))
