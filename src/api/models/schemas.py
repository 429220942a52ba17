"""Pydantic V2 request/response schemas for the gateway API."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from src.core.constants import EVENT_COST_DISPLAY_DIGITS
from src.core.types import (
    GenerateCommand,
    ImagePart,
    ModelDescriptor,
    Plan,
    TextPart,
    UsageEvent,
)
from src.llm.pricing import round_usd


# ── Models ───────────────────────────────────────────────────────

class ModelOut(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    name: str
    input_per_m: float
    output_per_m: float
    tier: str
    description: str = ""

    @classmethod
    def from_descriptor(cls, m: ModelDescriptor) -> ModelOut:
        return cls(**m.to_dict())


class ModelsResponse(BaseModel):
    models: list[ModelOut]


# ── Tenant-facing ────────────────────────────────────────────────

class TextPartIn(BaseModel):
    type: Literal["text"]
    text: str


class ImagePartIn(BaseModel):
    type: Literal["image"]
    media_type: str = Field(..., pattern=r"^image/[\w.+-]+$")
    data: str = Field(..., min_length=1)


ContentPartIn = Annotated[Union[TextPartIn, ImagePartIn], Field(discriminator="type")]


class GenerateRequest(BaseModel):
    """Request body for a metered generation."""

    model: str = Field(..., min_length=1)
    prompt_type: str = ""
    user_content: Union[str, list[ContentPartIn]]
    custom_instruction: str | None = None

    def to_command(self) -> GenerateCommand:
        if isinstance(self.user_content, str):
            content: str | list[TextPart | ImagePart] = self.user_content
        else:
            content = [
                TextPart(text=p.text) if isinstance(p, TextPartIn)
                else ImagePart(media_type=p.media_type, data=p.data)
                for p in self.user_content
            ]
        return GenerateCommand(
            model_id=self.model,
            request_type=self.prompt_type,
            user_content=content,
            addendum=self.custom_instruction,
        )


class GenerateUsageOut(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    cost_usd: float
    month_total_usd: float
    month_limit_usd: float


class GenerateResponse(BaseModel):
    text: str
    usage: GenerateUsageOut


class TenantStatusOut(BaseModel):
    tenant_name: str
    plan: str
    monthly_limit_usd: float
    used_this_month_usd: float
    remaining_usd: float
    models: list[ModelOut]
    prompts_available: list[str]


# ── Admin ────────────────────────────────────────────────────────

class TenantCreate(BaseModel):
    """Request body for creating a tenant. Omitted fields take plan defaults."""

    name: str = Field(..., min_length=1, max_length=200)
    contact: str = ""
    plan: Plan | None = None
    monthly_limit_usd: float | None = Field(default=None, ge=0)
    allowed_models: list[str] | None = None


class TenantUpdate(BaseModel):
    """Partial update; only fields present in the body are applied."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    contact: str | None = None
    plan: Plan | None = None
    monthly_limit_usd: float | None = Field(default=None, ge=0)
    allowed_models: list[str] | None = None
    active: bool | None = None

    def changes(self) -> dict[str, object]:
        # Explicit nulls are treated as absent.
        return {k: v for k, v in self.model_dump(exclude_unset=True).items() if v is not None}


class TenantOut(BaseModel):
    tenant_id: str
    name: str
    contact: str
    plan: str
    monthly_limit_usd: float
    allowed_models: list[str]
    active: bool
    credential: str  # masked
    created_at: datetime
    usage_this_month: float | None = None


class TenantCreatedOut(BaseModel):
    message: str = "Tenant created"
    tenant: TenantOut
    credential: str
    important: str = "Store this credential and hand it to the tenant; it is shown only once."


class TenantUpdatedOut(BaseModel):
    message: str = "Tenant updated"
    tenant: TenantOut


class TenantListOut(BaseModel):
    tenants: list[TenantOut]


class CredentialRotatedOut(BaseModel):
    message: str = "New credential issued"
    credential: str


class ModelUsageOut(BaseModel):
    count: int
    cost: float
    tokens: int


class UsageEventOut(BaseModel):
    event_id: str
    timestamp: datetime
    model: str
    prompt_type: str
    prompt_tokens: int
    completion_tokens: int
    cost_usd: float

    @classmethod
    def from_event(cls, e: UsageEvent) -> UsageEventOut:
        return cls(
            event_id=e.event_id,
            timestamp=e.timestamp,
            model=e.model_id,
            prompt_type=e.request_type,
            prompt_tokens=e.input_tokens,
            completion_tokens=e.output_tokens,
            cost_usd=round_usd(e.cost_usd, EVENT_COST_DISPLAY_DIGITS),
        )


class UsageReportOut(BaseModel):
    tenant: str
    tenant_id: str
    month: str
    total_requests: int
    total_cost_usd: float
    limit_usd: float
    by_model: dict[str, ModelUsageOut]
    recent: list[UsageEventOut]


class TenantSummaryOut(BaseModel):
    id: str
    name: str
    plan: str
    active: bool
    limit: float
    used: float
    percent: int


class DashboardOut(BaseModel):
    month: str
    total_tenants: int
    active_tenants: int
    total_requests_this_month: int
    total_cost_this_month: float
    tenants: list[TenantSummaryOut]
    available_models: list[ModelOut]


# ── Generic ───────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "1.0.0"
    environment: str = "dev"
    upstream_configured: bool = False


class ErrorBody(BaseModel):
    kind: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorBody
