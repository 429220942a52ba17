"""System-wide constants. All magic numbers and strings live here."""

from __future__ import annotations

# ── Tenant Defaults ──────────────────────────────────────────────
DEFAULT_PLAN = "pro"
DEFAULT_MONTHLY_LIMIT_USD = 50.0
TENANT_ID_MAX_LENGTH = 30
TENANT_ID_SEPARATOR = "-"

# ── Credentials ──────────────────────────────────────────────────
CREDENTIAL_PREFIX = "tg_"
CREDENTIAL_ENTROPY_BYTES = 32
CREDENTIAL_DISPLAY_CHARS = 8

# ── Display Rounding ─────────────────────────────────────────────
USD_DISPLAY_DIGITS = 4
EVENT_COST_DISPLAY_DIGITS = 5
RECENT_EVENTS_LIMIT = 20

# ── Upstream ─────────────────────────────────────────────────────
ADDENDUM_SEPARATOR = "\n\nAdditional instruction from the requester: "

# ── Storage ──────────────────────────────────────────────────────
STORAGE_MAX_RETRIES = 3
STORAGE_RETRY_BASE_DELAY = 0.05  # seconds, doubled per attempt

# ── HTTP Headers ─────────────────────────────────────────────────
TENANT_TOKEN_HEADER = "X-Tenant-Token"
ADMIN_SECRET_HEADER = "X-Admin-Secret"

# ── Demo Tenant ──────────────────────────────────────────────────
DEMO_TENANT_NAME = "Demo"
DEMO_TENANT_CONTACT = "demo@example.com"
