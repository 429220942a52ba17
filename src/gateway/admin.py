"""Administrative console: tenant lifecycle, usage reports, dashboard."""

from __future__ import annotations

import hmac
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from src.core.exceptions import UnauthenticatedError, ValidationFailedError
from src.core.logging import get_logger
from src.core.types import ModelDescriptor, Plan, Tenant, UsageReport, period_key
from src.llm.catalog import MODEL_CATALOG
from src.saas.tenant import IssuedTenant, TenantDirectory
from src.saas.usage import UsageLedger

log = get_logger(__name__)

_PERIOD_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


@dataclass(frozen=True)
class TenantUsage:
    """One tenant with its spend in a period."""

    tenant: Tenant
    used_usd: float

    @property
    def percent_of_limit(self) -> int:
        if self.tenant.monthly_limit_usd <= 0:
            return 100 if self.used_usd > 0 else 0
        return round(self.used_usd / self.tenant.monthly_limit_usd * 100)


@dataclass(frozen=True)
class DashboardSummary:
    period: str
    total_tenants: int
    active_tenants: int
    total_requests: int
    total_cost_usd: float
    tenants: list[TenantUsage]
    models: tuple[ModelDescriptor, ...]


def validate_period(period: str | None) -> str:
    """``YYYY-MM`` or the current period when omitted."""
    if period is None or period == "":
        return period_key()
    if not _PERIOD_RE.match(period):
        raise ValidationFailedError(
            f"Invalid period {period!r}; expected YYYY-MM",
            context={"field": "period"},
        )
    return period


class AdminConsole:
    """Operations behind the administrative secret."""

    def __init__(self, directory: TenantDirectory, ledger: UsageLedger, admin_secret: str) -> None:
        self._directory = directory
        self._ledger = ledger
        self._admin_secret = admin_secret

    def verify_secret(self, presented: str | None) -> None:
        if not presented or not hmac.compare_digest(presented.encode(), self._admin_secret.encode()):
            log.warning("admin_auth_failed")
            raise UnauthenticatedError("Incorrect admin secret")

    async def create_tenant(
        self,
        name: str,
        contact: str = "",
        plan: Plan | str | None = None,
        monthly_limit_usd: float | None = None,
        allowed_models: list[str] | None = None,
    ) -> IssuedTenant:
        return await self._directory.create(
            name=name,
            contact=contact,
            plan=plan,
            monthly_limit_usd=monthly_limit_usd,
            allowed_models=allowed_models,
        )

    async def update_tenant(self, tenant_id: str, changes: Mapping[str, Any]) -> Tenant:
        return await self._directory.update(tenant_id, changes)

    async def rotate_credential(self, tenant_id: str) -> str:
        return await self._directory.rotate_credential(tenant_id)

    def list_tenants(self, period: str | None = None) -> list[TenantUsage]:
        period = validate_period(period)
        totals = self._ledger.totals_by_tenant(period)
        return [
            TenantUsage(tenant=t, used_usd=totals.get(t.tenant_id, 0.0))
            for t in self._directory.list_tenants()
        ]

    def usage_report(self, tenant_id: str, period: str | None = None) -> tuple[Tenant, UsageReport]:
        tenant = self._directory.get(tenant_id)
        return tenant, self._ledger.report(tenant_id, validate_period(period))

    def dashboard(self) -> DashboardSummary:
        period = period_key()
        events = self._ledger.period_events(period)
        tenants = self.list_tenants(period)
        return DashboardSummary(
            period=period,
            total_tenants=len(tenants),
            active_tenants=len(self._directory.list_tenants(active_only=True)),
            total_requests=len(events),
            total_cost_usd=sum(e.cost_usd for e in events),
            tenants=tenants,
            models=MODEL_CATALOG,
        )
