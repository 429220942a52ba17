"""Tenant directory: identity, bearer credentials, plan, cap and allow-list.

Each tenant has:
- A URL-safe identity derived from its display name (immutable)
- A bearer credential, stored only as a SHA-256 hash plus a display prefix
- A plan, a monthly spend cap and an explicit model allow-list
- An active flag (deactivation is the only deletion mechanism)
"""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

from src.core.constants import (
    CREDENTIAL_DISPLAY_CHARS,
    CREDENTIAL_ENTROPY_BYTES,
    CREDENTIAL_PREFIX,
    DEFAULT_MONTHLY_LIMIT_USD,
    DEFAULT_PLAN,
    TENANT_ID_MAX_LENGTH,
    TENANT_ID_SEPARATOR,
)
from src.core.exceptions import (
    ConflictError,
    DeactivatedError,
    NotFoundError,
    UnauthenticatedError,
    ValidationFailedError,
)
from src.core.logging import get_logger
from src.core.types import Plan, Tenant
from src.data.snapshot import GatewayState, SnapshotDatabase
from src.llm.catalog import get_model, models_for_plan

log = get_logger(__name__)

UPDATABLE_FIELDS = frozenset(
    {"name", "contact", "plan", "monthly_limit_usd", "allowed_models", "active"}
)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def derive_tenant_id(name: str, max_length: int = TENANT_ID_MAX_LENGTH) -> str:
    """Lower-case, collapse non-alphanumeric runs to one separator, bound the length."""
    slug = _NON_ALNUM.sub(TENANT_ID_SEPARATOR, name.lower()).strip(TENANT_ID_SEPARATOR)
    return slug[:max_length].rstrip(TENANT_ID_SEPARATOR)


def generate_credential() -> str:
    return f"{CREDENTIAL_PREFIX}{secrets.token_urlsafe(CREDENTIAL_ENTROPY_BYTES)}"


def hash_credential(credential: str) -> str:
    return hashlib.sha256(credential.encode()).hexdigest()


@dataclass(frozen=True)
class IssuedTenant:
    """A tenant together with the plaintext credential issued to it (shown once)."""

    tenant: Tenant
    credential: str


class TenantDirectory:
    """Tenant records backed by the shared snapshot database.

    Reads use the committed snapshot without locking; create/update/rotate
    are serialized through the database's writer lock.
    """

    def __init__(self, db: SnapshotDatabase) -> None:
        self._db = db

    # ── Authentication ───────────────────────────────────────────

    def resolve(self, credential: str | None) -> Tenant:
        """Find the tenant owning ``credential`` or raise ``UnauthenticatedError``."""
        if not credential:
            raise UnauthenticatedError("Tenant credential required")

        presented = hash_credential(credential)
        state = self._db.state
        tenant_id = state.tenant_id_for_hash(presented)
        tenant = state.tenants.get(tenant_id) if tenant_id else None

        if tenant is None or not hmac.compare_digest(tenant.credential_hash, presented):
            log.warning("auth_failed_unknown_credential")
            raise UnauthenticatedError("Invalid tenant credential")
        return tenant

    @staticmethod
    def active_check(tenant: Tenant) -> Tenant:
        if not tenant.active:
            log.warning("auth_failed_inactive", tenant_id=tenant.tenant_id)
            raise DeactivatedError(
                "Tenant is deactivated. Contact the administrator.",
                context={"tenant_id": tenant.tenant_id},
            )
        return tenant

    def authenticate(self, credential: str | None) -> Tenant:
        """``resolve`` followed by ``active_check``."""
        tenant = self.active_check(self.resolve(credential))
        log.debug("auth_success", tenant_id=tenant.tenant_id)
        return tenant

    # ── Reads ────────────────────────────────────────────────────

    def get(self, tenant_id: str) -> Tenant:
        tenant = self._db.state.tenants.get(tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found", context={"tenant_id": tenant_id})
        return tenant

    def list_tenants(self, active_only: bool = False) -> list[Tenant]:
        tenants = list(self._db.state.tenants.values())
        if active_only:
            tenants = [t for t in tenants if t.active]
        return tenants

    def __len__(self) -> int:
        return len(self._db.state.tenants)

    # ── Administration ───────────────────────────────────────────

    async def create(
        self,
        name: str,
        contact: str = "",
        plan: Plan | str | None = None,
        monthly_limit_usd: float | None = None,
        allowed_models: list[str] | None = None,
    ) -> IssuedTenant:
        """Create a tenant and return it with its plaintext credential."""
        if not name or not name.strip():
            raise ValidationFailedError("Tenant name is required", context={"field": "name"})

        tenant_id = derive_tenant_id(name)
        if not tenant_id:
            raise ValidationFailedError(
                "Tenant name must contain at least one letter or digit",
                context={"field": "name"},
            )

        plan_value = _coerce_plan(plan if plan is not None else DEFAULT_PLAN)
        limit = _coerce_limit(
            monthly_limit_usd if monthly_limit_usd is not None else DEFAULT_MONTHLY_LIMIT_USD
        )
        models = (
            _coerce_models(allowed_models)
            if allowed_models is not None
            else tuple(models_for_plan(plan_value))
        )

        async with self._db.transaction() as draft:
            if tenant_id in draft.tenants:
                raise ConflictError(
                    f"A tenant with identity {tenant_id!r} already exists",
                    context={"tenant_id": tenant_id},
                )
            credential, credential_hash = _fresh_credential(draft)
            tenant = Tenant(
                tenant_id=tenant_id,
                name=name.strip(),
                contact=contact or "",
                plan=plan_value,
                monthly_limit_usd=limit,
                allowed_models=models,
                credential_hash=credential_hash,
                credential_prefix=credential[:CREDENTIAL_DISPLAY_CHARS],
                active=True,
                created_at=datetime.now(timezone.utc),
            )
            draft.put_tenant(tenant)

        log.info(
            "tenant_created",
            tenant_id=tenant_id,
            name=tenant.name,
            plan=plan_value.value,
            monthly_limit_usd=limit,
            models=len(models),
        )
        return IssuedTenant(tenant=tenant, credential=credential)

    async def update(self, tenant_id: str, changes: Mapping[str, Any]) -> Tenant:
        """Apply only the fields present in ``changes``; everything else is untouched."""
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationFailedError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                context={"fields": sorted(unknown)},
            )

        fields: dict[str, Any] = {}
        if "name" in changes:
            name = changes["name"]
            if not isinstance(name, str) or not name.strip():
                raise ValidationFailedError("Tenant name cannot be empty", context={"field": "name"})
            fields["name"] = name.strip()
        if "contact" in changes:
            fields["contact"] = str(changes["contact"] or "")
        if "plan" in changes:
            fields["plan"] = _coerce_plan(changes["plan"])
        if "monthly_limit_usd" in changes:
            fields["monthly_limit_usd"] = _coerce_limit(changes["monthly_limit_usd"])
        if "allowed_models" in changes:
            fields["allowed_models"] = _coerce_models(changes["allowed_models"])
        if "active" in changes:
            if not isinstance(changes["active"], bool):
                raise ValidationFailedError("active must be a boolean", context={"field": "active"})
            fields["active"] = changes["active"]

        async with self._db.transaction() as draft:
            current = draft.tenants.get(tenant_id)
            if current is None:
                raise NotFoundError("Tenant not found", context={"tenant_id": tenant_id})
            updated = replace(current, **fields)
            draft.put_tenant(updated)

        log.info("tenant_updated", tenant_id=tenant_id, fields=sorted(fields))
        return updated

    async def rotate_credential(self, tenant_id: str) -> str:
        """Replace the credential; the old one stops authenticating once this returns."""
        async with self._db.transaction() as draft:
            current = draft.tenants.get(tenant_id)
            if current is None:
                raise NotFoundError("Tenant not found", context={"tenant_id": tenant_id})
            credential, credential_hash = _fresh_credential(draft)
            draft.put_tenant(
                replace(
                    current,
                    credential_hash=credential_hash,
                    credential_prefix=credential[:CREDENTIAL_DISPLAY_CHARS],
                )
            )

        log.info("credential_rotated", tenant_id=tenant_id)
        return credential


# ── Field coercion ───────────────────────────────────────────────


def _fresh_credential(state: GatewayState) -> tuple[str, str]:
    """A credential whose hash no tenant holds yet."""
    while True:
        credential = generate_credential()
        credential_hash = hash_credential(credential)
        if state.tenant_id_for_hash(credential_hash) is None:
            return credential, credential_hash


def _coerce_plan(value: object) -> Plan:
    try:
        return Plan(value)
    except ValueError:
        raise ValidationFailedError(
            f"Unknown plan {value!r}; expected one of: {', '.join(p.value for p in Plan)}",
            context={"field": "plan"},
        ) from None


def _coerce_limit(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationFailedError("monthly_limit_usd must be a number", context={"field": "monthly_limit_usd"})
    if value < 0:
        raise ValidationFailedError(
            "monthly_limit_usd cannot be negative",
            context={"field": "monthly_limit_usd"},
        )
    return float(value)


def _coerce_models(value: object) -> tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ValidationFailedError("allowed_models must be a list", context={"field": "allowed_models"})
    models = tuple(dict.fromkeys(str(m) for m in value))
    unknown = [m for m in models if get_model(m) is None]
    if unknown:
        # Allowed but unpriced: usage on these models is recorded at zero cost.
        log.warning("allow_list_unpriced_models", models=unknown)
    return models
