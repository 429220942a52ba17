"""System-wide shared types: the single source of truth for all data structures."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union


# ── Enums ────────────────────────────────────────────────────────

class Plan(str, Enum):
    BASIC = "basic"
    PRO = "pro"
    PREMIUM = "premium"


class ModelTier(str, Enum):
    BASIC = "basic"
    PRO = "pro"
    PREMIUM = "premium"


class RequestStage(str, Enum):
    """Per-request state machine of the orchestrator."""

    AUTHENTICATING = "authenticating"
    AUTHORIZING = "authorizing"
    FORWARDING = "forwarding"
    PRICING = "pricing"
    COMMITTING = "committing"
    RESPONDING = "responding"


# ── Periods ──────────────────────────────────────────────────────

def period_key(ts: datetime | None = None) -> str:
    """Calendar-month accounting period (``YYYY-MM``) for a timestamp, UTC."""
    if ts is None:
        ts = datetime.now(timezone.utc)
    elif ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    return f"{ts.year:04d}-{ts.month:02d}"


def _parse_ts(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


# ── Tenants & Models ─────────────────────────────────────────────

@dataclass(frozen=True)
class Tenant:
    """A billable client organization.

    The plaintext credential is never stored; only its SHA-256 hash and a
    short display prefix.
    """

    tenant_id: str
    name: str
    contact: str
    plan: Plan
    monthly_limit_usd: float
    allowed_models: tuple[str, ...]
    credential_hash: str
    credential_prefix: str
    active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def masked_credential(self) -> str:
        return f"{self.credential_prefix}..."

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "name": self.name,
            "contact": self.contact,
            "plan": self.plan.value,
            "monthly_limit_usd": self.monthly_limit_usd,
            "allowed_models": list(self.allowed_models),
            "credential_hash": self.credential_hash,
            "credential_prefix": self.credential_prefix,
            "active": self.active,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Tenant:
        return cls(
            tenant_id=data["tenant_id"],
            name=data["name"],
            contact=data.get("contact", ""),
            plan=Plan(data["plan"]),
            monthly_limit_usd=float(data["monthly_limit_usd"]),
            allowed_models=tuple(data.get("allowed_models", ())),
            credential_hash=data["credential_hash"],
            credential_prefix=data.get("credential_prefix", ""),
            active=bool(data.get("active", True)),
            created_at=_parse_ts(data["created_at"]),
        )


@dataclass(frozen=True)
class ModelDescriptor:
    """Static pricing/tier metadata for one upstream model."""

    model_id: str
    name: str
    input_per_m: float   # USD per million input units
    output_per_m: float  # USD per million output units
    tier: ModelTier
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["tier"] = self.tier.value
        return data


# ── Usage ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class UsageEvent:
    """Immutable record of one billable upstream call."""

    event_id: str
    tenant_id: str
    period: str
    timestamp: datetime
    model_id: str
    request_type: str
    input_tokens: int
    output_tokens: int
    cost_usd: float

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UsageEvent:
        return cls(
            event_id=data["event_id"],
            tenant_id=data["tenant_id"],
            period=data["period"],
            timestamp=_parse_ts(data["timestamp"]),
            model_id=data["model_id"],
            request_type=data.get("request_type", ""),
            input_tokens=int(data.get("input_tokens", 0)),
            output_tokens=int(data.get("output_tokens", 0)),
            cost_usd=float(data.get("cost_usd", 0.0)),
        )


@dataclass
class ModelUsage:
    """Per-model aggregate inside a usage report."""

    model_id: str
    count: int = 0
    cost_usd: float = 0.0
    tokens: int = 0


@dataclass
class UsageReport:
    """Read-only reporting view of one tenant's period."""

    tenant_id: str
    period: str
    events: list[UsageEvent]
    by_model: dict[str, ModelUsage]
    total_cost_usd: float

    @property
    def total_requests(self) -> int:
        return len(self.events)

    def recent(self, limit: int = 20) -> list[UsageEvent]:
        """Most recent events, newest first."""
        return list(reversed(self.events[-limit:]))


# ── Upstream Request/Response ────────────────────────────────────

@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ImagePart:
    media_type: str
    data: str  # base64 payload


ContentPart = Union[TextPart, ImagePart]
UserContent = Union[str, list[ContentPart]]


@dataclass(frozen=True)
class UpstreamRequest:
    model_id: str
    max_tokens: int
    system_prompt: str
    user_content: UserContent


@dataclass(frozen=True)
class UpstreamCompletion:
    text: str
    input_tokens: int
    output_tokens: int


# ── Orchestrator Results ─────────────────────────────────────────

@dataclass(frozen=True)
class GenerateCommand:
    model_id: str
    request_type: str
    user_content: UserContent
    addendum: str | None = None


@dataclass(frozen=True)
class GenerateResult:
    text: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    period_total_usd: float
    limit_usd: float


@dataclass(frozen=True)
class TenantStatus:
    tenant_name: str
    plan: Plan
    monthly_limit_usd: float
    used_usd: float
    remaining_usd: float
    models: list[ModelDescriptor]
    request_types: list[str]
