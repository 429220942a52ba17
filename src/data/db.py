"""PostgreSQL snapshot store: transactional alternative to the JSON file."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    func,
    select,
)
from sqlalchemy.dialects.postgresql import JSONB, insert
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from config.settings import get_settings
from src.core.interfaces import SnapshotStore
from src.core.logging import get_logger
from src.core.types import Plan, Tenant, UsageEvent
from src.data.snapshot import GatewayState

log = get_logger(__name__)

metadata = MetaData()

# ── Tables ───────────────────────────────────────────────────────

tenants_table = Table(
    "tenants",
    metadata,
    Column("tenant_id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("contact", String, nullable=False, default=""),
    Column("plan", String, nullable=False),
    Column("monthly_limit_usd", Float, nullable=False),
    Column("allowed_models", JSONB, nullable=False),
    Column("credential_hash", String, nullable=False, unique=True),
    Column("credential_prefix", String, nullable=False),
    Column("active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

usage_events_table = Table(
    "usage_events",
    metadata,
    Column("event_id", String, primary_key=True),
    Column("tenant_id", String, nullable=False, index=True),
    Column("period", String, nullable=False, index=True),
    Column("timestamp", DateTime(timezone=True), nullable=False, index=True),
    Column("model_id", String, nullable=False),
    Column("request_type", String, nullable=False),
    Column("input_tokens", Integer, nullable=False),
    Column("output_tokens", Integer, nullable=False),
    Column("cost_usd", Float, nullable=False),
)

# Single row, bumped in every save transaction.
revision_table = Table(
    "gateway_revision",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("revision", BigInteger, nullable=False),
)

_REVISION_ROW = 1
# pg_advisory_lock key shared by every process writing to this database.
_WRITER_LOCK_KEY = 0x746F6C6C


class PostgresSnapshotStore(SnapshotStore):
    """Snapshot contract on PostgreSQL.

    Each save runs in one transaction: tenants that differ from what this
    process last loaded or saved are upserted, usage events appended since
    then are inserted, and the revision row is bumped. Writers across
    processes serialize on a session-level advisory lock.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._persisted_events = 0
        self._persisted_tenants: dict[str, Tenant] = {}

    async def load(self) -> GatewayState:
        async with self._engine.begin() as conn:
            tenant_rows = (await conn.execute(select(tenants_table))).mappings().all()
            event_rows = (
                await conn.execute(
                    select(usage_events_table).order_by(
                        usage_events_table.c.timestamp,
                        usage_events_table.c.event_id,
                    )
                )
            ).mappings().all()

        state = GatewayState()
        for row in tenant_rows:
            state.put_tenant(self._row_to_tenant(row))
        for row in event_rows:
            state.append_event(self._row_to_event(row))
        self._persisted_events = len(state.usage_log)
        self._persisted_tenants = dict(state.tenants)
        return state

    async def save(self, state: GatewayState) -> None:
        new_events = state.usage_log[self._persisted_events:]
        changed = [
            t for tid, t in state.tenants.items()
            if self._persisted_tenants.get(tid) != t
        ]

        async with self._engine.begin() as conn:
            for tenant in changed:
                values = {
                    "tenant_id": tenant.tenant_id,
                    "name": tenant.name,
                    "contact": tenant.contact,
                    "plan": tenant.plan.value,
                    "monthly_limit_usd": tenant.monthly_limit_usd,
                    "allowed_models": list(tenant.allowed_models),
                    "credential_hash": tenant.credential_hash,
                    "credential_prefix": tenant.credential_prefix,
                    "active": tenant.active,
                    "created_at": tenant.created_at,
                }
                stmt = insert(tenants_table).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[tenants_table.c.tenant_id],
                    set_={k: v for k, v in values.items() if k not in ("tenant_id", "created_at")},
                )
                await conn.execute(stmt)

            if new_events:
                stmt = insert(usage_events_table).on_conflict_do_nothing(
                    index_elements=[usage_events_table.c.event_id],
                )
                await conn.execute(
                    stmt,
                    [
                        {
                            "event_id": e.event_id,
                            "tenant_id": e.tenant_id,
                            "period": e.period,
                            "timestamp": e.timestamp,
                            "model_id": e.model_id,
                            "request_type": e.request_type,
                            "input_tokens": e.input_tokens,
                            "output_tokens": e.output_tokens,
                            "cost_usd": e.cost_usd,
                        }
                        for e in new_events
                    ],
                )

            bump = insert(revision_table).values(id=_REVISION_ROW, revision=1)
            await conn.execute(
                bump.on_conflict_do_update(
                    index_elements=[revision_table.c.id],
                    set_={"revision": revision_table.c.revision + 1},
                )
            )

        self._persisted_events = len(state.usage_log)
        self._persisted_tenants = dict(state.tenants)
        log.debug("snapshot_saved_postgres", tenants=len(changed), new_events=len(new_events))

    async def revision(self) -> int:
        async with self._engine.connect() as conn:
            value = (
                await conn.execute(
                    select(revision_table.c.revision).where(revision_table.c.id == _REVISION_ROW)
                )
            ).scalar_one_or_none()
        return value or 0

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        async with self._engine.connect() as conn:
            await conn.execute(select(func.pg_advisory_lock(_WRITER_LOCK_KEY)))
            try:
                yield
            finally:
                await conn.execute(select(func.pg_advisory_unlock(_WRITER_LOCK_KEY)))

    @staticmethod
    def _row_to_tenant(r: object) -> Tenant:
        """Convert a DB row mapping to a Tenant."""
        plan_str: str = r["plan"]  # type: ignore[index]
        try:
            plan = Plan(plan_str)
        except ValueError:
            log.warning("tenant_plan_unknown", tenant_id=r["tenant_id"], plan=plan_str)  # type: ignore[index]
            plan = Plan.BASIC

        return Tenant(
            tenant_id=r["tenant_id"],  # type: ignore[index]
            name=r["name"],  # type: ignore[index]
            contact=r["contact"] or "",  # type: ignore[index]
            plan=plan,
            monthly_limit_usd=float(r["monthly_limit_usd"]),  # type: ignore[index]
            allowed_models=tuple(r["allowed_models"] or ()),  # type: ignore[index]
            credential_hash=r["credential_hash"],  # type: ignore[index]
            credential_prefix=r["credential_prefix"],  # type: ignore[index]
            active=bool(r["active"]),  # type: ignore[index]
            created_at=r["created_at"],  # type: ignore[index]
        )

    @staticmethod
    def _row_to_event(r: object) -> UsageEvent:
        return UsageEvent(
            event_id=r["event_id"],  # type: ignore[index]
            tenant_id=r["tenant_id"],  # type: ignore[index]
            period=r["period"],  # type: ignore[index]
            timestamp=r["timestamp"],  # type: ignore[index]
            model_id=r["model_id"],  # type: ignore[index]
            request_type=r["request_type"],  # type: ignore[index]
            input_tokens=int(r["input_tokens"]),  # type: ignore[index]
            output_tokens=int(r["output_tokens"]),  # type: ignore[index]
            cost_usd=float(r["cost_usd"]),  # type: ignore[index]
        )


# ── Engine ───────────────────────────────────────────────────────

_engine: AsyncEngine | None = None


async def get_engine() -> AsyncEngine:
    """Get or create the async database engine (singleton)."""
    global _engine  # noqa: PLW0603
    if _engine is None:
        settings = get_settings()
        db_url = settings.database_url.get_secret_value()
        _engine = create_async_engine(
            db_url,
            echo=False,
            pool_size=10,
            max_overflow=20,
        )
        log.info("database_engine_created", host=db_url.split("@")[-1].split("?")[0])
    return _engine


async def init_schema() -> None:
    """Create the tenants and usage_events tables."""
    engine = await get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    log.info("schema_initialized")


async def close_engine() -> None:
    """Dispose the database engine."""
    global _engine  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        log.info("database_engine_closed")
