"""Entitlement gate: model authorization and pre-flight spend-cap check.

Both checks must pass before any billable upstream call. The cap check
compares spend measured *before* the request (strictly less than the
limit); a single request may push a tenant past its cap because its cost is
only known once the upstream call returns.
"""

from __future__ import annotations

from src.core.exceptions import ModelNotEntitledError, QuotaExceededError
from src.core.logging import get_logger
from src.core.types import Tenant, period_key
from src.saas.usage import UsageLedger

log = get_logger(__name__)


class EntitlementGate:
    def __init__(self, ledger: UsageLedger) -> None:
        self._ledger = ledger

    @staticmethod
    def check_model(tenant: Tenant, model_id: str) -> None:
        """The tenant's explicit allow-list is the only authority."""
        if model_id not in tenant.allowed_models:
            log.warning("model_not_entitled", tenant_id=tenant.tenant_id, model=model_id)
            raise ModelNotEntitledError(
                f"Your plan does not include the model {model_id}. Contact the administrator.",
                context={"model": model_id},
            )

    @staticmethod
    def check_quota(tenant: Tenant, used_usd: float) -> None:
        if not used_usd < tenant.monthly_limit_usd:
            log.warning(
                "quota_exceeded",
                tenant_id=tenant.tenant_id,
                used_usd=used_usd,
                limit_usd=tenant.monthly_limit_usd,
            )
            raise QuotaExceededError(
                f"Monthly limit of ${tenant.monthly_limit_usd:g} reached. "
                f"Current usage: ${used_usd:.4f}. Contact the administrator to raise it.",
                limit_usd=tenant.monthly_limit_usd,
                used_usd=used_usd,
            )

    def authorize(self, tenant: Tenant, model_id: str, period: str | None = None) -> float:
        """Run both checks; return the period spend measured for the cap check."""
        self.check_model(tenant, model_id)
        used = self._ledger.sum_cost(tenant.tenant_id, period or period_key())
        self.check_quota(tenant, used)
        return used
