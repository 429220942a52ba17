"""FastAPI dependency injection: shared gateway instance and credentials."""

from __future__ import annotations

from fastapi import Depends, Header, Request

from src.core.constants import ADMIN_SECRET_HEADER, TENANT_TOKEN_HEADER
from src.gateway.admin import AdminConsole
from src.gateway.bootstrap import Gateway
from src.gateway.orchestrator import RequestOrchestrator

# ── Gateway ───────────────────────────────────────────────────────


def get_gateway(request: Request) -> Gateway:
    """The gateway built at startup (``app.state.gateway``)."""
    return request.app.state.gateway


async def fresh_gateway(gateway: Gateway = Depends(get_gateway)) -> Gateway:
    """The gateway after picking up commits made by other processes."""
    await gateway.db.refresh()
    return gateway


def get_orchestrator(gateway: Gateway = Depends(get_gateway)) -> RequestOrchestrator:
    return gateway.orchestrator


# ── Credentials ───────────────────────────────────────────────────


def tenant_credential(
    request: Request,
    gateway: Gateway = Depends(fresh_gateway),
    x_tenant_token: str | None = Header(default=None, alias=TENANT_TOKEN_HEADER),
) -> str:
    """Bearer credential from ``Authorization`` or the tenant token header.

    Checked here so a missing or unknown credential is rejected before the
    request body is looked at; the orchestrator authenticates again as its
    first stage.
    """
    credential: str | None = None
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        credential = auth_header[7:].strip() or None
    if credential is None:
        credential = x_tenant_token or None

    gateway.directory.authenticate(credential)
    return credential  # type: ignore[return-value]


def require_admin(
    gateway: Gateway = Depends(fresh_gateway),
    x_admin_secret: str | None = Header(default=None, alias=ADMIN_SECRET_HEADER),
) -> AdminConsole:
    """Admin console, after checking the admin secret."""
    gateway.admin.verify_secret(x_admin_secret)
    return gateway.admin
