"""Tenant-facing endpoints: status query and metered generation."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.api.deps import get_orchestrator, tenant_credential
from src.api.models.schemas import (
    ErrorResponse,
    GenerateRequest,
    GenerateResponse,
    GenerateUsageOut,
    ModelOut,
    TenantStatusOut,
)
from src.core.constants import EVENT_COST_DISPLAY_DIGITS
from src.gateway.orchestrator import RequestOrchestrator
from src.llm.pricing import round_usd

router = APIRouter(
    tags=["tenant"],
    responses={
        401: {"model": ErrorResponse, "description": "Missing or unknown credential"},
        403: {"model": ErrorResponse, "description": "Tenant deactivated or model not entitled"},
        429: {"model": ErrorResponse, "description": "Monthly cap reached"},
        502: {"model": ErrorResponse, "description": "Upstream error"},
        503: {"model": ErrorResponse, "description": "Upstream unreachable"},
    },
)


@router.get("/tenant/status", response_model=TenantStatusOut)
async def tenant_status(
    credential: str = Depends(tenant_credential),
    orchestrator: RequestOrchestrator = Depends(get_orchestrator),
) -> TenantStatusOut:
    """Plan, cap, spend this month, remaining budget and entitled models."""
    status = await orchestrator.status(credential)
    return TenantStatusOut(
        tenant_name=status.tenant_name,
        plan=status.plan.value,
        monthly_limit_usd=status.monthly_limit_usd,
        used_this_month_usd=round_usd(status.used_usd),
        remaining_usd=round_usd(status.remaining_usd),
        models=[ModelOut.from_descriptor(m) for m in status.models],
        prompts_available=status.request_types,
    )


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    body: GenerateRequest,
    credential: str = Depends(tenant_credential),
    orchestrator: RequestOrchestrator = Depends(get_orchestrator),
) -> GenerateResponse:
    """Forward a request upstream under the tenant's entitlements and cap."""
    result = await orchestrator.generate(credential, body.to_command())
    return GenerateResponse(
        text=result.text,
        usage=GenerateUsageOut(
            prompt_tokens=result.input_tokens,
            completion_tokens=result.output_tokens,
            cost_usd=round_usd(result.cost_usd, EVENT_COST_DISPLAY_DIGITS),
            month_total_usd=round_usd(result.period_total_usd),
            month_limit_usd=result.limit_usd,
        ),
    )
