from decimal import Decimal

import pytest

from citetrack.costs import MODEL_PRICING, ModelPricing, estimate_cost, pricing_for


def test_model_pricing_calculate_cost() -> None:
    pricing = ModelPricing(input_per_million=Decimal("2.00"), output_per_million=Decimal("4.00"))
    cost = pricing.calculate_cost(1000, 2000)
    assert cost == Decimal("0.010")


@pytest.mark.parametrize(
    ("model", "expected"),
    [
        ("sonar", 0.0007),
        ("sonar-pro", 0.0081),
        ("sonar-reasoning", 0.0027),
        ("sonar-reasoning-pro", 0.0044),
    ],
)
def test_estimate_cost_single_query(model: str, expected: float) -> None:
    assert estimate_cost(model) == expected


def test_estimate_cost_scales_with_count() -> None:
    assert estimate_cost("sonar-pro", 10) == 0.081
    assert estimate_cost("sonar", 0) == 0.0


def test_unknown_model_priced_as_default() -> None:
    assert estimate_cost("gpt-unknown") == estimate_cost("sonar")
    assert pricing_for("gpt-unknown") is MODEL_PRICING["sonar"]


def test_pricing_table_is_injectable() -> None:
    table = {
        "cheap": ModelPricing(input_per_million=Decimal("0.5"), output_per_million=Decimal("0.5")),
        "fallback": ModelPricing(input_per_million=Decimal("10"), output_per_million=Decimal("10")),
    }
    assert estimate_cost("cheap", 2, table, default_model="fallback") == 0.0007
    assert estimate_cost("other", 1, table, default_model="fallback") == 0.007


def test_injected_table_without_default_model_falls_back_to_sonar() -> None:
    table = {"custom": ModelPricing(input_per_million=Decimal("1"), output_per_million=Decimal("1"))}
    assert estimate_cost("other", 1, table) == 0.0007
    assert pricing_for("other", table) is MODEL_PRICING["sonar"]
    assert estimate_cost("custom", 1, table) == 0.0007


def test_pricing_to_dict() -> None:
    assert MODEL_PRICING["sonar-pro"].to_dict() == {"label": "Sonar Pro", "input": 3.0, "output": 15.0}
