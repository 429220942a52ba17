"""Tollgate tenant admin: register a tenant or rotate a credential from the shell.

Usage:
    python scripts/create_tenant.py "Acme Clinic" --contact ops@acme.test
    python scripts/create_tenant.py "Acme Clinic" --plan premium --limit 200
    python scripts/create_tenant.py --rotate acme-clinic

Safe to run next to a live server: writes take the store's writer lock and
start from the committed snapshot, and the server picks them up on its next
request.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config.settings import get_settings
from src.core.exceptions import GatewayError
from src.core.logging import get_logger, setup_logging
from src.core.types import Plan
from src.gateway.bootstrap import build_gateway, open_store

log = get_logger(__name__)


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Tollgate tenant admin")
    parser.add_argument("name", nargs="?", help="Display name of the new tenant")
    parser.add_argument("--contact", default="", help="Contact address")
    parser.add_argument(
        "--plan",
        choices=[p.value for p in Plan],
        default=None,
        help="Plan (default: pro)",
    )
    parser.add_argument("--limit", type=float, default=None, help="Monthly cap in USD (default: 50)")
    parser.add_argument(
        "--model",
        dest="models",
        action="append",
        default=None,
        help="Allowed model id; repeat for several (default: derived from plan)",
    )
    parser.add_argument("--rotate", metavar="TENANT_ID", help="Issue a new credential instead")
    args = parser.parse_args()
    if not args.name and not args.rotate:
        parser.error("a tenant name or --rotate TENANT_ID is required")
    return args


async def main() -> int:
    """Entry point."""
    args = parse_args()
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)

    gateway = build_gateway(settings, store=await open_store(settings))
    await gateway.start()
    try:
        if args.rotate:
            credential = await gateway.admin.rotate_credential(args.rotate)
            print(f"New credential for {args.rotate}: {credential}")
        else:
            issued = await gateway.admin.create_tenant(
                name=args.name,
                contact=args.contact,
                plan=args.plan,
                monthly_limit_usd=args.limit,
                allowed_models=args.models,
            )
            tenant = issued.tenant
            print(f"Tenant:     {tenant.tenant_id} ({tenant.name})")
            print(f"Plan:       {tenant.plan.value}, ${tenant.monthly_limit_usd:.2f}/month")
            print(f"Models:     {', '.join(tenant.allowed_models)}")
            print(f"Credential: {issued.credential}")
            print("Store this credential now; it is not shown again.")
    except GatewayError as exc:
        log.error("tenant_admin_failed", kind=exc.kind, error=exc.message)
        return 1
    finally:
        await gateway.close()
        if settings.store_backend == "postgres":
            from src.data.db import close_engine

            await close_engine()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
