"""Usage ledger: append-only billable events and period aggregation.

Tracks, per tenant and calendar month:
- Every billable upstream call (model, request type, token counts, cost)
- Period spend, the basis of cap enforcement
- Per-model breakdowns for reporting
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from uuid_extensions import uuid7

from src.core.logging import get_logger
from src.core.types import ModelUsage, UsageEvent, UsageReport, period_key
from src.data.snapshot import SnapshotDatabase

log = get_logger(__name__)


class UsageLedger:
    """Owns the usage log. The orchestrator only submits new events."""

    def __init__(self, db: SnapshotDatabase) -> None:
        self._db = db

    @staticmethod
    def new_event(
        tenant_id: str,
        model_id: str,
        request_type: str,
        input_tokens: int,
        output_tokens: int,
        cost_usd: float,
        timestamp: datetime | None = None,
    ) -> UsageEvent:
        """Build an event stamped with its period."""
        ts = timestamp or datetime.now(timezone.utc)
        return UsageEvent(
            event_id=str(uuid7()),
            tenant_id=tenant_id,
            period=period_key(ts),
            timestamp=ts,
            model_id=model_id,
            request_type=request_type,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost_usd,
        )

    async def append(self, event: UsageEvent) -> None:
        """Durably record one event. Raises ``StorageError`` if it cannot be persisted."""
        async with self._db.transaction() as draft:
            draft.append_event(event)

        log.debug(
            "usage_recorded",
            tenant_id=event.tenant_id,
            model=event.model_id,
            input_tokens=event.input_tokens,
            output_tokens=event.output_tokens,
            cost_usd=f"${event.cost_usd:.6f}",
        )

    # ── Aggregation ──────────────────────────────────────────────

    def _matching(self, tenant_id: str | None, period: str) -> Iterable[UsageEvent]:
        # Bind the committed log once so a concurrent commit cannot split the scan.
        events = self._db.state.usage_log
        return (
            e for e in events
            if e.period == period and (tenant_id is None or e.tenant_id == tenant_id)
        )

    def sum_cost(self, tenant_id: str, period: str | None = None) -> float:
        """Unrounded spend of ``tenant_id`` in ``period`` (default: current month)."""
        period = period or period_key()
        return sum(e.cost_usd for e in self._matching(tenant_id, period))

    def list_by_tenant(self, tenant_id: str, period: str | None = None) -> list[UsageEvent]:
        """Events of one tenant in one period, in commit order."""
        period = period or period_key()
        return list(self._matching(tenant_id, period))

    def report(self, tenant_id: str, period: str | None = None) -> UsageReport:
        """Events plus grouped-by-model summaries. No side effects."""
        period = period or period_key()
        events = self.list_by_tenant(tenant_id, period)

        by_model: dict[str, ModelUsage] = {}
        total = 0.0
        for e in events:
            usage = by_model.setdefault(e.model_id, ModelUsage(model_id=e.model_id))
            usage.count += 1
            usage.cost_usd += e.cost_usd
            usage.tokens += e.input_tokens + e.output_tokens
            total += e.cost_usd

        return UsageReport(
            tenant_id=tenant_id,
            period=period,
            events=events,
            by_model=by_model,
            total_cost_usd=total,
        )

    def period_events(self, period: str | None = None) -> list[UsageEvent]:
        """All tenants' events in a period."""
        period = period or period_key()
        return list(self._matching(None, period))

    def totals_by_tenant(self, period: str | None = None) -> dict[str, float]:
        period = period or period_key()
        totals: dict[str, float] = {}
        for e in self._matching(None, period):
            totals[e.tenant_id] = totals.get(e.tenant_id, 0.0) + e.cost_usd
        return totals

    def __len__(self) -> int:
        return len(self._db.state.usage_log)
