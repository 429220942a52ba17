"""Pytest configuration, compatibility helpers and shared gateway fixtures.

This project includes async tests marked with ``@pytest.mark.asyncio``.
Some environments run unit tests without ``pytest-asyncio`` installed, which
would otherwise make those tests fail at collection/runtime.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any

import pytest

from config.settings import Settings
from src.core.interfaces import UpstreamProvider
from src.core.types import UpstreamCompletion, UpstreamRequest
from src.data.snapshot import MemoryStore
from src.gateway.bootstrap import Gateway, build_gateway
from src.llm.prompt_templates import InstructionLibrary


def pytest_configure(config: pytest.Config) -> None:
    """Register local markers used in the suite."""
    config.addinivalue_line("markers", "asyncio: mark test as asyncio-compatible")


def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Run ``@pytest.mark.asyncio`` tests without external plugins.

    If pytest-asyncio (or another async plugin) is installed, this hook may be
    bypassed by that plugin depending on hook ordering. In plugin-less
    environments, this fallback executes coroutine tests via ``asyncio.run``.
    """
    if pyfuncitem.get_closest_marker("asyncio") is None:
        return None

    test_func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_func):
        return None

    kwargs: dict[str, Any] = {
        arg: pyfuncitem.funcargs[arg]
        for arg in pyfuncitem._fixtureinfo.argnames
    }
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        loop.run_until_complete(test_func(**kwargs))
    finally:
        loop.close()
        # Keep a default loop available for sync tests that call
        # ``asyncio.get_event_loop()`` directly.
        asyncio.set_event_loop(asyncio.new_event_loop())
    return True


# ── Shared fixtures ──────────────────────────────────────────────


class FakeUpstream(UpstreamProvider):
    """Scripted upstream: returns ``completion`` or raises ``error``, recording every request."""

    def __init__(self, completion: UpstreamCompletion | None = None) -> None:
        self.completion = completion or UpstreamCompletion(
            text="Report body", input_tokens=1000, output_tokens=500,
        )
        self.error: Exception | None = None
        self.requests: list[UpstreamRequest] = []
        self.closed = False

    async def complete(self, request: UpstreamRequest) -> UpstreamCompletion:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.completion

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        gateway_env="dev",
        openrouter_api_key="sk-test",
        gateway_admin_secret="test-admin-secret",
        seed_demo_tenant=False,
    )


@pytest.fixture()
def instructions() -> InstructionLibrary:
    return InstructionLibrary(
        {
            "clinical": "Write a clinical report.",
            "summary": "Summarize the case.",
        },
        default_type="clinical",
    )


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def gateway(
    settings: Settings,
    store: MemoryStore,
    upstream: FakeUpstream,
    instructions: InstructionLibrary,
) -> Gateway:
    """Fully wired gateway over an empty in-memory store."""
    return build_gateway(settings, store=store, upstream=upstream, instructions=instructions)
