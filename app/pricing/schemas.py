from decimal import Decimal

from pydantic import BaseModel


class CostBreakdown(BaseModel):
    """Per-request cost. Cost fields are None whenever either token count is unknown."""
    model_config = {"frozen": True}

    input_cost: Decimal | None = None
    output_cost: Decimal | None = None
    total_cost: Decimal | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    estimated_cost: bool = False

    @property
    def total_tokens(self) -> int | None:
        if self.prompt_tokens is None or self.completion_tokens is None:
            return None
        return self.prompt_tokens + self.completion_tokens
