"""
Answer-engine cost estimation.

Costs are approximations: every query is assumed to consume a fixed number of
input and output tokens rather than measured usage.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

ASSUMED_INPUT_TOKENS = 200
ASSUMED_OUTPUT_TOKENS = 500
DEFAULT_PRICING_MODEL = "sonar"

_SIX_PLACES = Decimal("0.000001")


@dataclass(frozen=True)
class ModelPricing:
    """Pricing per million tokens."""

    input_per_million: Decimal
    output_per_million: Decimal
    label: str = ""

    def calculate_cost(self, input_tokens: int, output_tokens: int) -> Decimal:
        input_cost = (Decimal(input_tokens) / Decimal(1_000_000)) * self.input_per_million
        output_cost = (Decimal(output_tokens) / Decimal(1_000_000)) * self.output_per_million
        return input_cost + output_cost

    def to_dict(self) -> dict[str, float | str]:
        return {
            "label": self.label,
            "input": float(self.input_per_million),
            "output": float(self.output_per_million),
        }


MODEL_PRICING: dict[str, ModelPricing] = {
    "sonar": ModelPricing(
        input_per_million=Decimal("1.00"),
        output_per_million=Decimal("1.00"),
        label="Sonar",
    ),
    "sonar-pro": ModelPricing(
        input_per_million=Decimal("3.00"),
        output_per_million=Decimal("15.00"),
        label="Sonar Pro",
    ),
    "sonar-reasoning": ModelPricing(
        input_per_million=Decimal("1.00"),
        output_per_million=Decimal("5.00"),
        label="Sonar Reasoning",
    ),
    "sonar-reasoning-pro": ModelPricing(
        input_per_million=Decimal("2.00"),
        output_per_million=Decimal("8.00"),
        label="Sonar Reasoning Pro",
    ),
}


def pricing_for(
    model: str,
    pricing: Mapping[str, ModelPricing] = MODEL_PRICING,
    default_model: str = DEFAULT_PRICING_MODEL,
) -> ModelPricing:
    """Pricing for ``model``.

    Falls back to ``default_model`` in ``pricing``, then to the built-in sonar pricing.
    """
    found = pricing.get(model)
    if found is not None:
        return found
    return pricing.get(default_model) or MODEL_PRICING[DEFAULT_PRICING_MODEL]


def estimate_cost(
    model: str,
    query_count: int = 1,
    pricing: Mapping[str, ModelPricing] = MODEL_PRICING,
    default_model: str = DEFAULT_PRICING_MODEL,
) -> float:
    """Estimated USD cost of running ``query_count`` queries on ``model``."""
    model_pricing = pricing_for(model, pricing, default_model)
    per_query = model_pricing.calculate_cost(ASSUMED_INPUT_TOKENS, ASSUMED_OUTPUT_TOKENS)
    total = (per_query * Decimal(query_count)).quantize(_SIX_PLACES, rounding=ROUND_HALF_UP)
    return float(total)
