"""Upstream model catalog and plan → tier entitlement table."""

from __future__ import annotations

from src.core.types import ModelDescriptor, ModelTier, Plan

# ── Pricing Table (USD per million tokens) ───────────────────────

MODEL_CATALOG: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        model_id="anthropic/claude-sonnet-4",
        name="Claude Sonnet 4",
        input_per_m=3.0,
        output_per_m=15.0,
        tier=ModelTier.BASIC,
        description="Fast and economical",
    ),
    ModelDescriptor(
        model_id="anthropic/claude-sonnet-4.5",
        name="Claude Sonnet 4.5",
        input_per_m=3.0,
        output_per_m=15.0,
        tier=ModelTier.PRO,
        description="Smart and fast",
    ),
    ModelDescriptor(
        model_id="anthropic/claude-opus-4",
        name="Claude Opus 4",
        input_per_m=15.0,
        output_per_m=75.0,
        tier=ModelTier.PREMIUM,
        description="Highest quality for complex cases",
    ),
    ModelDescriptor(
        model_id="openai/gpt-4o",
        name="GPT-4o",
        input_per_m=2.5,
        output_per_m=10.0,
        tier=ModelTier.PRO,
        description="Fast OpenAI alternative",
    ),
    ModelDescriptor(
        model_id="google/gemini-2.5-flash",
        name="Gemini 2.5 Flash",
        input_per_m=0.15,
        output_per_m=0.6,
        tier=ModelTier.BASIC,
        description="Ultra low-cost Google model",
    ),
)

PLAN_TIERS: dict[Plan, frozenset[ModelTier]] = {
    Plan.BASIC: frozenset({ModelTier.BASIC}),
    Plan.PRO: frozenset({ModelTier.BASIC, ModelTier.PRO}),
    Plan.PREMIUM: frozenset({ModelTier.BASIC, ModelTier.PRO, ModelTier.PREMIUM}),
}

_BY_ID: dict[str, ModelDescriptor] = {m.model_id: m for m in MODEL_CATALOG}


def get_model(model_id: str) -> ModelDescriptor | None:
    return _BY_ID.get(model_id)


def models_for_plan(
    plan: Plan,
    catalog: tuple[ModelDescriptor, ...] = MODEL_CATALOG,
) -> list[str]:
    """Default allow-list for a plan, in catalog order."""
    tiers = PLAN_TIERS[plan]
    return [m.model_id for m in catalog if m.tier in tiers]


def describe_models(
    model_ids: tuple[str, ...] | list[str],
    catalog: tuple[ModelDescriptor, ...] = MODEL_CATALOG,
) -> list[ModelDescriptor]:
    """Catalog entries for the given ids, in catalog order; unknown ids are skipped."""
    wanted = set(model_ids)
    return [m for m in catalog if m.model_id in wanted]
