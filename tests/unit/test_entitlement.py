"""Tests for EntitlementGate: allow-list and pre-flight cap."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.core.exceptions import ModelNotEntitledError, QuotaExceededError
from src.core.types import Plan, Tenant
from src.data.snapshot import MemoryStore, SnapshotDatabase
from src.saas.entitlement import EntitlementGate
from src.saas.usage import UsageLedger


def _tenant(limit: float = 50.0, models: tuple[str, ...] = ("openai/gpt-4o",)) -> Tenant:
    return Tenant(
        tenant_id="acme",
        name="Acme",
        contact="",
        plan=Plan.PRO,
        monthly_limit_usd=limit,
        allowed_models=models,
        credential_hash="h",
        credential_prefix="tg_abcde",
        created_at=datetime.now(timezone.utc),
    )


def _gate() -> tuple[EntitlementGate, UsageLedger]:
    ledger = UsageLedger(SnapshotDatabase(MemoryStore()))
    return EntitlementGate(ledger), ledger


async def _spend(ledger: UsageLedger, amount: float) -> None:
    await ledger.append(
        UsageLedger.new_event(
            tenant_id="acme",
            model_id="openai/gpt-4o",
            request_type="clinical",
            input_tokens=1,
            output_tokens=1,
            cost_usd=amount,
        )
    )


class TestCheckModel:
    def test_allowed(self) -> None:
        EntitlementGate.check_model(_tenant(), "openai/gpt-4o")

    def test_not_in_allow_list(self) -> None:
        with pytest.raises(ModelNotEntitledError) as exc_info:
            EntitlementGate.check_model(_tenant(), "anthropic/claude-opus-4")
        assert exc_info.value.context["model"] == "anthropic/claude-opus-4"

    def test_allow_list_overrides_plan(self) -> None:
        # Premium model explicitly granted to a pro tenant.
        tenant = _tenant(models=("anthropic/claude-opus-4",))
        EntitlementGate.check_model(tenant, "anthropic/claude-opus-4")


class TestCheckQuota:
    def test_under_limit(self) -> None:
        EntitlementGate.check_quota(_tenant(limit=50.0), 49.999)

    def test_at_limit_rejected(self) -> None:
        with pytest.raises(QuotaExceededError) as exc_info:
            EntitlementGate.check_quota(_tenant(limit=50.0), 50.0)
        assert exc_info.value.limit_usd == 50.0
        assert exc_info.value.used_usd == 50.0
        assert exc_info.value.status_code == 429

    def test_zero_limit_blocks_everything(self) -> None:
        with pytest.raises(QuotaExceededError):
            EntitlementGate.check_quota(_tenant(limit=0.0), 0.0)


class TestAuthorize:
    @pytest.mark.asyncio
    async def test_returns_measured_spend(self) -> None:
        gate, ledger = _gate()
        await _spend(ledger, 12.5)
        assert gate.authorize(_tenant(), "openai/gpt-4o") == pytest.approx(12.5)

    @pytest.mark.asyncio
    async def test_over_cap(self) -> None:
        gate, ledger = _gate()
        await _spend(ledger, 50.01)
        with pytest.raises(QuotaExceededError):
            gate.authorize(_tenant(), "openai/gpt-4o")

    @pytest.mark.asyncio
    async def test_model_checked_before_quota(self) -> None:
        gate, ledger = _gate()
        await _spend(ledger, 100.0)
        with pytest.raises(ModelNotEntitledError):
            gate.authorize(_tenant(), "google/gemini-2.5-flash")
