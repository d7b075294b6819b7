import time

from fastapi import APIRouter
from pydantic import BaseModel

from app.catalog import service as catalog
from app.catalog.models import ModelDefinition

router = APIRouter(prefix="/v1/models", tags=["models"])

BASE_PARAMETERS = ["temperature", "max_tokens", "top_p", "frequency_penalty", "presence_penalty"]


class Architecture(BaseModel):
    input_modalities: list[str]
    output_modalities: list[str]
    tokenizer: str | None = None


class Pricing(BaseModel):
    prompt: str
    completion: str
    image: str | None = None


class ModelResponse(BaseModel):
    id: str
    name: str
    created: int
    description: str
    architecture: Architecture
    providers: list[str]
    pricing: Pricing
    context_length: int | None = None
    supported_parameters: list[str]


class ListModelsResponse(BaseModel):
    data: list[ModelResponse]


def _price(value) -> str:
    return "0" if value is None else format(value, "f")


def to_model_response(model: ModelDefinition, created: int) -> ModelResponse:
    mapping = model.default_mapping
    provider_ids = [p.provider_id for p in model.providers]

    input_modalities = ["text"]
    if model.vision or any(p.image_input_price is not None for p in model.providers):
        input_modalities.append("image")

    parameters = list(BASE_PARAMETERS)
    if model.json_output:
        parameters.append("response_format")

    return ModelResponse(
        id=model.model,
        name=model.model,
        created=created,
        description=f"{model.model} provided by {', '.join(provider_ids)}",
        architecture=Architecture(
            input_modalities=input_modalities,
            output_modalities=["text"],
            tokenizer="GPT",
        ),
        providers=provider_ids,
        pricing=Pricing(
            prompt=_price(mapping.input_price),
            completion=_price(mapping.output_price),
            image=_price(mapping.image_input_price),
        ),
        context_length=max(
            (p.context_size for p in model.providers if p.context_size is not None),
            default=None,
        ),
        supported_parameters=parameters,
    )


@router.get("", response_model=ListModelsResponse)
async def list_models() -> ListModelsResponse:
    created = int(time.time())
    return ListModelsResponse(data=[to_model_response(m, created) for m in catalog.list_models()])
