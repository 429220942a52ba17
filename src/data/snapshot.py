"""Consistent snapshot of tenant directory + usage ledger, with a single writer.

All mutations go through ``SnapshotDatabase.transaction()``: the in-process
writer lock and the store's cross-process lock are held while a fresh draft
is mutated and persisted; the committed state is swapped in only after the
store reports success, so readers never observe a write that failed to
persist.
"""

from __future__ import annotations

import asyncio
import fcntl
import json
import os
import tempfile
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

from src.core.constants import STORAGE_MAX_RETRIES, STORAGE_RETRY_BASE_DELAY
from src.core.exceptions import StorageError
from src.core.interfaces import SnapshotStore
from src.core.logging import get_logger
from src.core.types import Tenant, UsageEvent

log = get_logger(__name__)


@dataclass
class GatewayState:
    """Tenants by identity plus the ordered usage log."""

    tenants: dict[str, Tenant] = field(default_factory=dict)
    usage_log: list[UsageEvent] = field(default_factory=list)
    _credential_index: dict[str, str] | None = field(default=None, repr=False, compare=False)

    def copy(self) -> GatewayState:
        # Tenants and events are frozen; shallow copies of the containers suffice.
        return GatewayState(tenants=dict(self.tenants), usage_log=list(self.usage_log))

    def put_tenant(self, tenant: Tenant) -> None:
        self.tenants[tenant.tenant_id] = tenant
        self._credential_index = None

    def append_event(self, event: UsageEvent) -> None:
        self.usage_log.append(event)

    def tenant_id_for_hash(self, credential_hash: str) -> str | None:
        if self._credential_index is None:
            self._credential_index = {t.credential_hash: t.tenant_id for t in self.tenants.values()}
        return self._credential_index.get(credential_hash)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenants": {tid: t.to_dict() for tid, t in self.tenants.items()},
            "usage_log": [e.to_dict() for e in self.usage_log],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GatewayState:
        tenants = {tid: Tenant.from_dict(raw) for tid, raw in (data.get("tenants") or {}).items()}
        events = [UsageEvent.from_dict(raw) for raw in (data.get("usage_log") or [])]
        return cls(tenants=tenants, usage_log=events)


# ── Stores ───────────────────────────────────────────────────────


class MemoryStore(SnapshotStore):
    """Non-durable store for tests and ephemeral deployments.

    One instance may back several ``SnapshotDatabase`` objects in the same
    event loop; they coordinate through ``exclusive()`` like separate
    processes would.
    """

    def __init__(self, initial: GatewayState | None = None) -> None:
        self._state = initial.copy() if initial else GatewayState()
        self._lock = asyncio.Lock()
        self.saves = 0

    async def load(self) -> GatewayState:
        return self._state.copy()

    async def save(self, state: GatewayState) -> None:
        self._state = state.copy()
        self.saves += 1

    async def revision(self) -> int:
        return self.saves

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        async with self._lock:
            yield


class JsonFileStore(SnapshotStore):
    """Full snapshot as one JSON document, replaced atomically on every save.

    Writers from any process serialize on an ``flock`` over a sibling
    ``.lock`` file. The revision is the document's inode and mtime, which
    ``os.replace`` changes on every save.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock_path = self._path.with_name(self._path.name + ".lock")

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> GatewayState:
        return await asyncio.to_thread(self._read)

    async def save(self, state: GatewayState) -> None:
        payload = json.dumps(state.to_dict(), indent=2, ensure_ascii=False)
        await asyncio.to_thread(self._write, payload)

    async def revision(self) -> tuple[int, int, int] | None:
        return await asyncio.to_thread(self._stat)

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        fh = await asyncio.to_thread(self._acquire)
        try:
            yield
        finally:
            await asyncio.to_thread(self._release, fh)

    def _stat(self) -> tuple[int, int, int] | None:
        try:
            st = os.stat(self._path)
        except FileNotFoundError:
            return None
        return (st.st_ino, st.st_mtime_ns, st.st_size)

    def _acquire(self) -> IO[str]:
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        fh = open(self._lock_path, "a", encoding="utf-8")
        try:
            fcntl.flock(fh, fcntl.LOCK_EX)
        except BaseException:
            fh.close()
            raise
        return fh

    @staticmethod
    def _release(fh: IO[str]) -> None:
        try:
            fcntl.flock(fh, fcntl.LOCK_UN)
        finally:
            fh.close()

    def _read(self) -> GatewayState:
        if not self._path.exists():
            log.info("snapshot_missing", path=str(self._path))
            return GatewayState()
        try:
            with open(self._path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            # Never start empty over an unreadable ledger.
            raise StorageError(
                f"Cannot read snapshot {self._path}: {exc}",
                context={"path": str(self._path)},
            ) from exc
        try:
            return GatewayState.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise StorageError(
                f"Malformed snapshot {self._path}: {exc!r}",
                context={"path": str(self._path)},
            ) from exc

    def _write(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        previous = self._stat()
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            if previous is not None:
                # Strictly increasing mtime: the revision never repeats, even
                # when an inode is reused within one clock tick.
                mtime = max(os.stat(tmp_name).st_mtime_ns, previous[1] + 1)
                os.utime(tmp_name, ns=(mtime, mtime))
            os.replace(tmp_name, self._path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


# ── Database ─────────────────────────────────────────────────────

_UNLOADED = object()


class SnapshotDatabase:
    """Local copy of the committed state + single-writer commit to a ``SnapshotStore``.

    The store is the authority. Other processes (a second worker, the admin
    CLI) may commit to it at any time, so every transaction reloads a stale
    copy under the store's exclusive lock before mutating, and readers call
    ``refresh()`` to pick up foreign commits.

    Usage:
        db = SnapshotDatabase(JsonFileStore(path))
        await db.load()
        async with db.transaction() as draft:
            draft.append_event(event)
        # committed and persisted here, or StorageError raised
    """

    def __init__(
        self,
        store: SnapshotStore,
        max_retries: int = STORAGE_MAX_RETRIES,
        retry_base_delay: float = STORAGE_RETRY_BASE_DELAY,
    ) -> None:
        self._store = store
        self._state = GatewayState()
        self._revision: object = _UNLOADED
        self._lock = asyncio.Lock()
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay

    @property
    def state(self) -> GatewayState:
        """Last committed state seen by this process. Treat as read-only."""
        return self._state

    async def load(self) -> None:
        async with self._lock:
            await self._reload(force=True)
        log.info(
            "snapshot_loaded",
            tenants=len(self._state.tenants),
            events=len(self._state.usage_log),
        )

    async def refresh(self) -> None:
        """Reload if any writer committed since this copy was taken."""
        if await self._store.revision() == self._revision:
            return
        async with self._lock:
            await self._reload()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[GatewayState]:
        """Serialize a read-modify-write against the store's committed state.

        If the body raises, the draft is discarded and nothing is persisted.
        """
        async with self._lock, self._store.exclusive():
            await self._reload()
            draft = self._state.copy()
            yield draft
            await self._persist(draft)
            self._state = draft
            self._revision = await self._store.revision()

    async def _reload(self, force: bool = False) -> None:
        # Revision is read before the load: a commit landing in between only
        # costs one extra reload later, never a missed one.
        revision = await self._store.revision()
        if not force and revision == self._revision:
            return
        self._state = await self._store.load()
        self._revision = revision
        log.debug(
            "snapshot_reloaded",
            tenants=len(self._state.tenants),
            events=len(self._state.usage_log),
        )

    async def _persist(self, draft: GatewayState) -> None:
        last_error: Exception | None = None
        for attempt in range(1, self._max_retries + 1):
            try:
                await self._store.save(draft)
                return
            except Exception as exc:
                last_error = exc
                log.warning("snapshot_save_failed", attempt=attempt, error=str(exc))

            if attempt < self._max_retries:
                await asyncio.sleep(self._retry_base_delay * 2 ** (attempt - 1))

        log.error("snapshot_save_exhausted", retries=self._max_retries, error=str(last_error))
        raise StorageError(
            "Could not persist gateway state",
            context={"attempts": self._max_retries},
        ) from last_error
