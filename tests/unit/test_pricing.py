"""Tests for CostModel and the model catalog."""

from __future__ import annotations

import pytest

from src.core.types import ModelDescriptor, ModelTier, Plan
from src.llm.catalog import MODEL_CATALOG, describe_models, get_model, models_for_plan
from src.llm.pricing import CostModel, round_usd


class TestCostModel:
    def test_sonnet_pricing(self) -> None:
        cost = CostModel().price("anthropic/claude-sonnet-4", 1000, 500)
        assert cost == pytest.approx(0.0105)

    def test_opus_pricing(self) -> None:
        cost = CostModel().price("anthropic/claude-opus-4", 1_000_000, 1_000_000)
        assert cost == pytest.approx(90.0)

    def test_zero_tokens_cost_nothing(self) -> None:
        assert CostModel().price("openai/gpt-4o", 0, 0) == 0.0

    def test_unknown_model_prices_at_zero(self) -> None:
        model = CostModel()
        assert model.price("acme/unknown-model", 5000, 5000) == 0.0

    def test_negative_counts_never_go_negative(self) -> None:
        assert CostModel().price("openai/gpt-4o", -100, -100) == 0.0

    def test_custom_catalog(self) -> None:
        catalog = (
            ModelDescriptor(
                model_id="test/flat",
                name="Flat",
                input_per_m=1.0,
                output_per_m=2.0,
                tier=ModelTier.BASIC,
            ),
        )
        model = CostModel(catalog)
        assert model.price("openai/gpt-4o", 1000, 1000) == 0.0
        assert model.price("test/flat", 2_000_000, 500_000) == pytest.approx(3.0)

    def test_full_precision_preserved(self) -> None:
        cost = CostModel().price("google/gemini-2.5-flash", 1, 1)
        assert cost == pytest.approx(0.00000075)
        assert round_usd(cost) == 0.0


class TestRoundUsd:
    def test_default_four_digits(self) -> None:
        assert round_usd(49.98954321) == 49.9895

    def test_custom_digits(self) -> None:
        assert round_usd(0.0104567, 5) == 0.01046


class TestCatalog:
    def test_catalog_has_five_models(self) -> None:
        assert len(MODEL_CATALOG) == 5
        assert len({m.model_id for m in MODEL_CATALOG}) == 5

    def test_get_model(self) -> None:
        model = get_model("openai/gpt-4o")
        assert model is not None
        assert model.input_per_m == 2.5
        assert model.output_per_m == 10.0
        assert get_model("nope") is None

    def test_basic_plan_models(self) -> None:
        assert models_for_plan(Plan.BASIC) == [
            "anthropic/claude-sonnet-4",
            "google/gemini-2.5-flash",
        ]

    def test_pro_plan_excludes_premium(self) -> None:
        models = models_for_plan(Plan.PRO)
        assert "anthropic/claude-opus-4" not in models
        assert "anthropic/claude-sonnet-4.5" in models
        assert "openai/gpt-4o" in models

    def test_premium_plan_has_everything(self) -> None:
        assert len(models_for_plan(Plan.PREMIUM)) == len(MODEL_CATALOG)

    def test_describe_models_skips_unknown(self) -> None:
        described = describe_models(["openai/gpt-4o", "acme/ghost"])
        assert [m.model_id for m in described] == ["openai/gpt-4o"]

    def test_descriptor_to_dict(self) -> None:
        data = get_model("anthropic/claude-opus-4").to_dict()  # type: ignore[union-attr]
        assert data["tier"] == "premium"
        assert data["model_id"] == "anthropic/claude-opus-4"
