"""Abstract base classes: collaborators the core depends on."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Hashable
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING

from src.core.types import UpstreamCompletion, UpstreamRequest

if TYPE_CHECKING:
    from src.data.snapshot import GatewayState


class UpstreamProvider(ABC):
    """Interface for the pay-per-token inference provider."""

    @abstractmethod
    async def complete(self, request: UpstreamRequest) -> UpstreamCompletion:
        """Run one completion.

        Raises:
            UpstreamError: the provider returned an error envelope or garbage.
            UpstreamEmptyResponseError: success without usable text.
            UpstreamUnreachableError: network failure or timeout.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources. Default: nothing to release."""
        return None


class SnapshotStore(ABC):
    """Persistence medium for the tenant directory + usage ledger snapshot."""

    @abstractmethod
    async def load(self) -> GatewayState:
        """Read the last committed snapshot (empty state if none exists)."""
        ...

    @abstractmethod
    async def save(self, state: GatewayState) -> None:
        """Durably replace the committed snapshot with ``state``."""
        ...

    @abstractmethod
    async def revision(self) -> Hashable:
        """Opaque token that changes on every committed save, by any writer."""
        ...

    @abstractmethod
    def exclusive(self) -> AbstractAsyncContextManager[None]:
        """Write lock shared by every process using this store.

        Held around reload, mutate and save so two writers never commit
        over each other's changes.
        """
        ...
