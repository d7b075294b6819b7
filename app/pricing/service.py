"""
Cost engine: (model, prompt tokens, completion tokens) -> cost breakdown.

All prices come from the model catalog. Results are not rounded; rounding is a
presentation concern.
"""
from decimal import Decimal

from app.catalog import service as catalog
from app.pricing.schemas import CostBreakdown
from app.tokens.service import FullOutput, estimate_tokens


def calculate_cost(
    model: str,
    prompt_tokens: int | None,
    completion_tokens: int | None,
    provider_id: str | None = None,
) -> CostBreakdown:
    """Price known token counts. Never guesses: missing data yields null costs."""
    null_costs = CostBreakdown(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)

    model_def = catalog.find_model(model)
    if model_def is None:
        return null_costs
    if prompt_tokens is None or completion_tokens is None:
        return null_costs

    mapping = model_def.default_mapping if provider_id is None else model_def.get_mapping(provider_id)
    if mapping is None:
        return null_costs

    input_price = mapping.input_price if mapping.input_price is not None else Decimal(0)
    output_price = mapping.output_price if mapping.output_price is not None else Decimal(0)

    input_cost = prompt_tokens * input_price
    output_cost = completion_tokens * output_price
    return CostBreakdown(
        input_cost=input_cost,
        output_cost=output_cost,
        total_cost=input_cost + output_cost,
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
    )


def calculate_costs(
    model: str,
    prompt_tokens: int | None,
    completion_tokens: int | None,
    full_output: FullOutput | None = None,
    provider_id: str | None = None,
) -> CostBreakdown:
    """Full pipeline: explicit counts -> estimated from text -> null, then price."""
    if catalog.find_model(model) is None:
        return CostBreakdown(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)

    tokens = estimate_tokens(model, prompt_tokens, completion_tokens, full_output)
    breakdown = calculate_cost(model, tokens.prompt_tokens, tokens.completion_tokens, provider_id)
    if tokens.estimated:
        return breakdown.model_copy(update={"estimated_cost": True})
    return breakdown
