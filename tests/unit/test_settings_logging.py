"""Tests for settings validation, logging setup and the error hierarchy."""

from __future__ import annotations

import pytest
import structlog
import structlog.testing
from pydantic import ValidationError

from config.settings import Settings
from src.core.exceptions import (
    ConflictError,
    GatewayError,
    QuotaExceededError,
    StorageError,
    UpstreamEmptyResponseError,
    UpstreamError,
)
from src.core.logging import get_logger, is_configured, setup_logging


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)  # type: ignore[call-arg]
        assert settings.store_backend == "json"
        assert settings.upstream_timeout_seconds == 120.0
        assert settings.upstream_max_tokens == 4000
        assert settings.default_request_type == "clinical"

    def test_upstream_configured(self) -> None:
        assert not Settings(_env_file=None, openrouter_api_key="").upstream_configured  # type: ignore[call-arg]
        assert Settings(_env_file=None, openrouter_api_key="sk-x").upstream_configured  # type: ignore[call-arg]

    def test_prod_rejects_default_admin_secret(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, gateway_env="prod")  # type: ignore[call-arg]

    def test_prod_accepts_real_secret(self) -> None:
        settings = Settings(
            _env_file=None,  # type: ignore[call-arg]
            gateway_env="prod",
            gateway_admin_secret="a-long-random-value",
        )
        assert settings.gateway_admin_secret.get_secret_value() == "a-long-random-value"

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORE_BACKEND", "postgres")
        monkeypatch.setenv("UPSTREAM_MAX_TOKENS", "256")
        settings = Settings(_env_file=None)  # type: ignore[call-arg]
        assert settings.store_backend == "postgres"
        assert settings.upstream_max_tokens == 256


class TestLogging:
    def test_setup_and_log(self) -> None:
        setup_logging("INFO", json_output=True)
        assert is_configured()
        with structlog.testing.capture_logs() as logs:
            get_logger("test").info("hello_event", answer=42)
        assert logs == [{"event": "hello_event", "answer": 42, "log_level": "info"}]


class TestExceptions:
    def test_status_codes(self) -> None:
        assert ConflictError("x").status_code == 409
        assert StorageError("x").status_code == 500
        assert UpstreamError("x").status_code == 502
        assert UpstreamEmptyResponseError("x").status_code == 502

    def test_to_dict_merges_context(self) -> None:
        err = QuotaExceededError("cap hit", limit_usd=50.0, used_usd=50.2)
        assert err.to_dict() == {
            "kind": "quota_exceeded",
            "message": "cap hit",
            "limit_usd": 50.0,
            "used_usd": 50.2,
        }

    def test_hierarchy(self) -> None:
        assert issubclass(UpstreamEmptyResponseError, UpstreamError)
        assert issubclass(StorageError, GatewayError)
