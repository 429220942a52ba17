"""Health check endpoint: no auth required."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from config.settings import get_settings
from src.api.deps import get_gateway
from src.api.models.schemas import HealthResponse
from src.gateway.bootstrap import Gateway

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(gateway: Gateway = Depends(get_gateway)) -> HealthResponse:
    settings = get_settings()
    return HealthResponse(
        status="ok",
        version="1.0.0",
        environment=settings.gateway_env,
        upstream_configured=gateway.upstream_configured,
    )
