from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator


class ProviderDefinition(BaseModel):
    model_config = {"frozen": True}

    id: str
    name: str
    description: str = ""
    streaming: bool = False
    cancellation: bool = False
    color: str | None = None


class ProviderMapping(BaseModel):
    """Pricing and capabilities of one provider's implementation of a model.

    Prices are USD per token. ``None`` means the price is not known.
    """

    model_config = {"frozen": True}

    provider_id: str
    # Identifier the upstream expects; the logical model name when unset.
    model_name: str | None = None
    input_price: Decimal | None = None
    output_price: Decimal | None = None
    image_input_price: Decimal | None = None
    context_size: int | None = None
    # None inherits the model-level, then the provider-level flag.
    streaming: bool | None = None

    @field_validator("input_price", "output_price", "image_input_price")
    @classmethod
    def _non_negative(cls, value: Decimal | None) -> Decimal | None:
        if value is not None and value < 0:
            raise ValueError("prices must be non-negative")
        return value


class ModelDefinition(BaseModel):
    model_config = {"frozen": True}

    model: str
    providers: tuple[ProviderMapping, ...]
    streaming: bool | None = None
    json_output: bool = False
    vision: bool = False

    @model_validator(mode="after")
    def _unique_providers(self) -> "ModelDefinition":
        if not self.providers:
            raise ValueError(f"model {self.model} has no provider mappings")
        ids = [p.provider_id for p in self.providers]
        if len(ids) != len(set(ids)):
            raise ValueError(f"model {self.model} maps a provider more than once")
        return self

    @property
    def default_mapping(self) -> ProviderMapping:
        return self.providers[0]

    def get_mapping(self, provider_id: str) -> ProviderMapping | None:
        for mapping in self.providers:
            if mapping.provider_id == provider_id:
                return mapping
        return None

    def upstream_model_name(self, mapping: ProviderMapping) -> str:
        return mapping.model_name or self.model


class Catalog(BaseModel):
    model_config = {"frozen": True}

    version: str
    providers: tuple[ProviderDefinition, ...]
    models: tuple[ModelDefinition, ...] = Field(default_factory=tuple)

    @model_validator(mode="after")
    def _known_providers(self) -> "Catalog":
        known = {p.id for p in self.providers}
        for model in self.models:
            for mapping in model.providers:
                if mapping.provider_id not in known:
                    raise ValueError(
                        f"model {model.model} references unknown provider {mapping.provider_id}"
                    )
        return self
