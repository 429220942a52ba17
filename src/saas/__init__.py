"""Multi-tenant layer: tenant directory, usage ledger, and entitlement gate."""

from src.saas.entitlement import EntitlementGate
from src.saas.tenant import IssuedTenant, TenantDirectory, derive_tenant_id
from src.saas.usage import UsageLedger

__all__ = [
    "EntitlementGate",
    "IssuedTenant",
    "TenantDirectory",
    "UsageLedger",
    "derive_tenant_id",
]
