"""Gateway wiring: one explicitly owned instance per process (or per test)."""

from __future__ import annotations

from dataclasses import dataclass

from config.settings import Settings
from src.core.constants import DEMO_TENANT_CONTACT, DEMO_TENANT_NAME
from src.core.interfaces import SnapshotStore, UpstreamProvider
from src.core.logging import get_logger
from src.core.types import Plan
from src.data.snapshot import JsonFileStore, SnapshotDatabase
from src.gateway.admin import AdminConsole
from src.gateway.orchestrator import RequestOrchestrator
from src.llm.openrouter_adapter import OpenRouterProvider
from src.llm.pricing import CostModel
from src.llm.prompt_templates import InstructionLibrary
from src.saas.entitlement import EntitlementGate
from src.saas.tenant import TenantDirectory
from src.saas.usage import UsageLedger

log = get_logger(__name__)


@dataclass
class Gateway:
    """All components sharing one snapshot database."""

    db: SnapshotDatabase
    directory: TenantDirectory
    ledger: UsageLedger
    gate: EntitlementGate
    cost_model: CostModel
    instructions: InstructionLibrary
    upstream: UpstreamProvider
    orchestrator: RequestOrchestrator
    admin: AdminConsole
    upstream_configured: bool = True

    async def start(self, seed_demo: bool = False) -> None:
        """Load the committed snapshot; optionally seed a demo tenant into an empty store."""
        await self.db.load()
        if seed_demo and len(self.directory) == 0:
            issued = await self.directory.create(
                name=DEMO_TENANT_NAME,
                contact=DEMO_TENANT_CONTACT,
                plan=Plan.PRO,
            )
            # Plaintext is not logged; rotate through the admin API to obtain one.
            log.info("demo_tenant_seeded", tenant_id=issued.tenant.tenant_id)
        log.info("gateway_started", tenants=len(self.directory), events=len(self.ledger))

    async def close(self) -> None:
        await self.upstream.aclose()
        log.info("gateway_stopped")


def build_gateway(
    settings: Settings,
    store: SnapshotStore | None = None,
    upstream: UpstreamProvider | None = None,
    instructions: InstructionLibrary | None = None,
) -> Gateway:
    """Assemble a gateway from settings; any collaborator may be injected."""
    db = SnapshotDatabase(store or JsonFileStore(settings.data_file))
    directory = TenantDirectory(db)
    ledger = UsageLedger(db)
    gate = EntitlementGate(ledger)
    cost_model = CostModel()

    if instructions is None:
        instructions = InstructionLibrary.from_yaml(
            settings.instructions_file, settings.default_request_type,
        )
    if upstream is None:
        upstream = OpenRouterProvider(
            api_key=settings.openrouter_api_key.get_secret_value(),
            base_url=settings.upstream_base_url,
            timeout_seconds=settings.upstream_timeout_seconds,
            referer=settings.upstream_referer,
            title=settings.upstream_title,
        )

    orchestrator = RequestOrchestrator(
        directory=directory,
        gate=gate,
        ledger=ledger,
        cost_model=cost_model,
        upstream=upstream,
        instructions=instructions,
        max_tokens=settings.upstream_max_tokens,
        # Slightly above the HTTP client's own timeout so its error surfaces first.
        timeout_seconds=settings.upstream_timeout_seconds + 5,
        db=db,
    )
    admin = AdminConsole(
        directory=directory,
        ledger=ledger,
        admin_secret=settings.gateway_admin_secret.get_secret_value(),
    )
    return Gateway(
        db=db,
        directory=directory,
        ledger=ledger,
        gate=gate,
        cost_model=cost_model,
        instructions=instructions,
        upstream=upstream,
        orchestrator=orchestrator,
        admin=admin,
        upstream_configured=settings.upstream_configured,
    )


async def open_store(settings: Settings) -> SnapshotStore:
    """Store selected by ``store_backend``."""
    if settings.store_backend == "postgres":
        from src.data.db import PostgresSnapshotStore, get_engine

        return PostgresSnapshotStore(await get_engine())
    return JsonFileStore(settings.data_file)
