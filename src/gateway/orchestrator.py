"""Request orchestrator: authenticate, authorize, forward, price, commit, respond.

Per-request stages:
    AUTHENTICATING → AUTHORIZING → FORWARDING → PRICING → COMMITTING → RESPONDING

Any failure before COMMITTING ends the request with no ledger entry. Once
COMMITTING is entered the upstream call has succeeded and the event is
written even if the caller goes away; if the write itself fails the request
fails instead of reporting a cost the ledger does not hold.
"""

from __future__ import annotations

import asyncio
import functools
from dataclasses import dataclass
from datetime import datetime, timezone

from src.core.exceptions import (
    GatewayError,
    UpstreamUnreachableError,
    ValidationFailedError,
)
from src.core.interfaces import UpstreamProvider
from src.core.logging import get_logger
from src.core.types import (
    GenerateCommand,
    GenerateResult,
    ImagePart,
    RequestStage,
    TenantStatus,
    TextPart,
    UpstreamRequest,
    UsageEvent,
    period_key,
)
from src.data.snapshot import SnapshotDatabase
from src.llm.catalog import describe_models
from src.llm.pricing import CostModel
from src.llm.prompt_templates import InstructionLibrary
from src.saas.entitlement import EntitlementGate
from src.saas.tenant import TenantDirectory
from src.saas.usage import UsageLedger

log = get_logger(__name__)


@dataclass
class _RequestTrace:
    stage: RequestStage = RequestStage.AUTHENTICATING
    tenant_id: str | None = None


class RequestOrchestrator:
    """Tenant-facing operations: status query and metered generation."""

    def __init__(
        self,
        directory: TenantDirectory,
        gate: EntitlementGate,
        ledger: UsageLedger,
        cost_model: CostModel,
        upstream: UpstreamProvider,
        instructions: InstructionLibrary,
        max_tokens: int = 4000,
        timeout_seconds: float = 120.0,
        db: SnapshotDatabase | None = None,
    ) -> None:
        self._directory = directory
        self._gate = gate
        self._ledger = ledger
        self._cost_model = cost_model
        self._upstream = upstream
        self._instructions = instructions
        self._max_tokens = max_tokens
        self._timeout = timeout_seconds
        self._db = db
        self._pending_commits: set[asyncio.Task[None]] = set()

    async def status(self, credential: str | None) -> TenantStatus:
        """Plan, cap, spend so far, remaining and entitled models. Values unrounded."""
        await self._refresh()
        tenant = self._directory.authenticate(credential)
        used = self._ledger.sum_cost(tenant.tenant_id, period_key())
        return TenantStatus(
            tenant_name=tenant.name,
            plan=tenant.plan,
            monthly_limit_usd=tenant.monthly_limit_usd,
            used_usd=used,
            remaining_usd=tenant.monthly_limit_usd - used,
            models=describe_models(tenant.allowed_models),
            request_types=self._instructions.request_types(),
        )

    async def generate(self, credential: str | None, command: GenerateCommand) -> GenerateResult:
        trace = _RequestTrace()
        try:
            return await self._generate(credential, command, trace)
        except GatewayError as exc:
            log.warning(
                "request_failed",
                tenant_id=trace.tenant_id,
                stage=trace.stage.value,
                kind=exc.kind,
                error=exc.message,
            )
            raise

    async def _generate(
        self,
        credential: str | None,
        command: GenerateCommand,
        trace: _RequestTrace,
    ) -> GenerateResult:
        await self._refresh()
        tenant = self._directory.authenticate(credential)
        trace.tenant_id = tenant.tenant_id
        self._validate(command)

        trace.stage = RequestStage.AUTHORIZING
        self._gate.authorize(tenant, command.model_id, period_key())

        trace.stage = RequestStage.FORWARDING
        log.info(
            "request_forwarding",
            tenant_id=tenant.tenant_id,
            model=command.model_id,
            request_type=command.request_type,
        )
        request = UpstreamRequest(
            model_id=command.model_id,
            max_tokens=self._max_tokens,
            system_prompt=self._instructions.compose(command.request_type, command.addendum),
            user_content=command.user_content,
        )
        try:
            completion = await asyncio.wait_for(
                self._upstream.complete(request),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise UpstreamUnreachableError(
                f"Upstream provider timed out after {self._timeout:g}s",
                context={"model": command.model_id},
            ) from None

        trace.stage = RequestStage.PRICING
        cost = self._cost_model.price(
            command.model_id, completion.input_tokens, completion.output_tokens,
        )

        trace.stage = RequestStage.COMMITTING
        event = self._ledger.new_event(
            tenant_id=tenant.tenant_id,
            model_id=command.model_id,
            request_type=command.request_type,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
            cost_usd=cost,
            timestamp=datetime.now(timezone.utc),
        )
        # Shielded: a caller disconnect must not cancel a billable write.
        commit = asyncio.ensure_future(self._ledger.append(event))
        self._pending_commits.add(commit)
        commit.add_done_callback(functools.partial(self._commit_done, event))
        await asyncio.shield(commit)

        trace.stage = RequestStage.RESPONDING
        new_total = self._ledger.sum_cost(tenant.tenant_id, event.period)
        log.info(
            "request_completed",
            tenant_id=tenant.tenant_id,
            model=command.model_id,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
            cost_usd=f"${cost:.5f}",
            period_total=f"${new_total:.4f}/${tenant.monthly_limit_usd:g}",
        )

        return GenerateResult(
            text=completion.text,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
            cost_usd=cost,
            period_total_usd=new_total,
            limit_usd=tenant.monthly_limit_usd,
        )

    @staticmethod
    def _validate(command: GenerateCommand) -> None:
        if not command.model_id:
            raise ValidationFailedError("model is required", context={"field": "model"})

        content = command.user_content
        if isinstance(content, str):
            if not content.strip():
                raise ValidationFailedError("user_content is empty", context={"field": "user_content"})
            return

        if not isinstance(content, list) or not content:
            raise ValidationFailedError(
                "user_content must be text or a non-empty list of parts",
                context={"field": "user_content"},
            )
        for idx, part in enumerate(content):
            if not isinstance(part, (TextPart, ImagePart)):
                raise ValidationFailedError(
                    f"Unrecognized content part at index {idx}",
                    context={"field": "user_content", "index": idx},
                )

    async def _refresh(self) -> None:
        if self._db is not None:
            await self._db.refresh()

    def _commit_done(self, event: UsageEvent, task: asyncio.Task[None]) -> None:
        # Runs whether or not the caller is still awaiting; retrieving the
        # exception here keeps an abandoned commit from failing silently.
        self._pending_commits.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(
                "usage_commit_failed",
                tenant_id=event.tenant_id,
                event_id=event.event_id,
                cost_usd=f"${event.cost_usd:.6f}",
                error=str(exc),
            )
