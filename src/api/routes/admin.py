"""Administrative endpoints: guarded by the admin secret header."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from src.api.deps import require_admin
from src.api.models.schemas import (
    CredentialRotatedOut,
    DashboardOut,
    ErrorResponse,
    ModelOut,
    ModelUsageOut,
    TenantCreate,
    TenantCreatedOut,
    TenantListOut,
    TenantOut,
    TenantSummaryOut,
    TenantUpdate,
    TenantUpdatedOut,
    UsageEventOut,
    UsageReportOut,
)
from src.core.constants import RECENT_EVENTS_LIMIT
from src.core.types import Tenant
from src.gateway.admin import AdminConsole
from src.llm.pricing import round_usd

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid body or period"},
        401: {"model": ErrorResponse, "description": "Missing or incorrect admin secret"},
        404: {"model": ErrorResponse, "description": "Unknown tenant"},
    },
)


def _tenant_out(tenant: Tenant, used_usd: float | None = None) -> TenantOut:
    return TenantOut(
        tenant_id=tenant.tenant_id,
        name=tenant.name,
        contact=tenant.contact,
        plan=tenant.plan.value,
        monthly_limit_usd=tenant.monthly_limit_usd,
        allowed_models=list(tenant.allowed_models),
        active=tenant.active,
        credential=tenant.masked_credential,
        created_at=tenant.created_at,
        usage_this_month=round_usd(used_usd) if used_usd is not None else None,
    )


@router.get("/dashboard", response_model=DashboardOut)
async def dashboard(admin: AdminConsole = Depends(require_admin)) -> DashboardOut:
    summary = admin.dashboard()
    return DashboardOut(
        month=summary.period,
        total_tenants=summary.total_tenants,
        active_tenants=summary.active_tenants,
        total_requests_this_month=summary.total_requests,
        total_cost_this_month=round_usd(summary.total_cost_usd),
        tenants=[
            TenantSummaryOut(
                id=u.tenant.tenant_id,
                name=u.tenant.name,
                plan=u.tenant.plan.value,
                active=u.tenant.active,
                limit=u.tenant.monthly_limit_usd,
                used=round_usd(u.used_usd),
                percent=u.percent_of_limit,
            )
            for u in summary.tenants
        ],
        available_models=[ModelOut.from_descriptor(m) for m in summary.models],
    )


@router.get("/tenants", response_model=TenantListOut)
async def list_tenants(
    period: str | None = Query(default=None, description="YYYY-MM, defaults to the current month"),
    admin: AdminConsole = Depends(require_admin),
) -> TenantListOut:
    return TenantListOut(
        tenants=[_tenant_out(u.tenant, u.used_usd) for u in admin.list_tenants(period)],
    )


@router.post("/tenants", response_model=TenantCreatedOut, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    body: TenantCreate,
    admin: AdminConsole = Depends(require_admin),
) -> TenantCreatedOut:
    """Register a tenant. The plaintext credential appears in this response only."""
    issued = await admin.create_tenant(
        name=body.name,
        contact=body.contact,
        plan=body.plan,
        monthly_limit_usd=body.monthly_limit_usd,
        allowed_models=body.allowed_models,
    )
    return TenantCreatedOut(tenant=_tenant_out(issued.tenant), credential=issued.credential)


@router.patch("/tenants/{tenant_id}", response_model=TenantUpdatedOut)
async def update_tenant(
    tenant_id: str,
    body: TenantUpdate,
    admin: AdminConsole = Depends(require_admin),
) -> TenantUpdatedOut:
    tenant = await admin.update_tenant(tenant_id, body.changes())
    return TenantUpdatedOut(tenant=_tenant_out(tenant))


@router.post("/tenants/{tenant_id}/rotate-credential", response_model=CredentialRotatedOut)
async def rotate_credential(
    tenant_id: str,
    admin: AdminConsole = Depends(require_admin),
) -> CredentialRotatedOut:
    credential = await admin.rotate_credential(tenant_id)
    return CredentialRotatedOut(credential=credential)


@router.get("/tenants/{tenant_id}/usage", response_model=UsageReportOut)
async def tenant_usage(
    tenant_id: str,
    period: str | None = Query(default=None, description="YYYY-MM, defaults to the current month"),
    admin: AdminConsole = Depends(require_admin),
) -> UsageReportOut:
    tenant, report = admin.usage_report(tenant_id, period)
    return UsageReportOut(
        tenant=tenant.name,
        tenant_id=tenant.tenant_id,
        month=report.period,
        total_requests=report.total_requests,
        total_cost_usd=round_usd(report.total_cost_usd),
        limit_usd=tenant.monthly_limit_usd,
        by_model={
            model_id: ModelUsageOut(
                count=mu.count,
                cost=round_usd(mu.cost_usd),
                tokens=mu.tokens,
            )
            for model_id, mu in report.by_model.items()
        },
        recent=[UsageEventOut.from_event(e) for e in report.recent(RECENT_EVENTS_LIMIT)],
    )
