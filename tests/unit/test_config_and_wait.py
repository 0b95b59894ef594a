"""Tests for configuration loading, bounded polling and error chains."""

from __future__ import annotations

import pytest

from kubepivot.cluster.wait import poll_immediate
from kubepivot.config import MACHINE_READY_TIMEOUT_ENV, load_config, machine_ready_timeout_override
from kubepivot.errors import MoveError, NotFoundError, WaitTimeoutError, format_error_chain

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for key in ("LOG_LEVEL", "SCALE_TIMEOUT", "RESOURCE_READY_TIMEOUT", "REPOSITORY_PATH"):
            monkeypatch.delenv(f"KUBEPIVOT_{key}", raising=False)
        config = load_config()
        assert config.log.level == "info"
        assert config.wait.resource_ready_timeout == 900.0
        assert config.wait.scale_timeout == 600.0
        assert config.wait.machine_ready_timeout == 1800.0
        assert config.repository.path == "~/.kubepivot/repository"

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEPIVOT_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("KUBEPIVOT_SCALE_INTERVAL", "0.5")
        monkeypatch.setenv("KUBEPIVOT_RESOURCE_READY_TIMEOUT", "-3")
        monkeypatch.setenv("KUBEPIVOT_REPOSITORY_PATH", "/srv/providers")
        config = load_config()
        assert config.log.level == "debug"
        assert config.wait.scale_interval == 0.5
        assert config.wait.resource_ready_timeout == 0.0
        assert config.repository.path == "/srv/providers"

    def test_invalid_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEPIVOT_LOG_LEVEL", "verbose")
        with pytest.raises(ValueError, match="Invalid log level"):
            load_config()


class TestMachineReadyTimeout:
    def test_unset_keeps_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(MACHINE_READY_TIMEOUT_ENV, raising=False)
        assert machine_ready_timeout_override(1800.0) == 1800.0

    def test_minutes_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(MACHINE_READY_TIMEOUT_ENV, "5")
        assert machine_ready_timeout_override(1800.0) == 300.0

    def test_invalid_value_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(MACHINE_READY_TIMEOUT_ENV, "ten")
        assert machine_ready_timeout_override(1800.0) == 1800.0


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


class TestPollImmediate:
    async def test_condition_checked_immediately(self) -> None:
        calls = 0

        async def ready() -> bool:
            nonlocal calls
            calls += 1
            return True

        await poll_immediate(60.0, 60.0, ready)
        assert calls == 1

    async def test_retries_until_true(self) -> None:
        results = iter([False, False, True])

        async def condition() -> bool:
            return next(results)

        await poll_immediate(0.001, 1.0, condition)

    async def test_timeout(self) -> None:
        async def never() -> bool:
            return False

        with pytest.raises(WaitTimeoutError, match="widgets"):
            await poll_immediate(0.001, 0.02, never, what="widgets")

    async def test_timeout_is_builtin_timeout(self) -> None:
        async def never() -> bool:
            return False

        with pytest.raises(TimeoutError):
            await poll_immediate(0.001, 0.0, never)

    async def test_exception_aborts(self) -> None:
        async def broken() -> bool:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await poll_immediate(0.001, 1.0, broken)


# ---------------------------------------------------------------------------
# Error chains
# ---------------------------------------------------------------------------


class TestFormatErrorChain:
    def test_joins_causes(self) -> None:
        try:
            try:
                raise NotFoundError("Machine ns1/m1 not found")
            except NotFoundError as exc:
                raise MoveError("failed to move Cluster ns1/c1") from exc
        except MoveError as err:
            assert format_error_chain(err) == "failed to move Cluster ns1/c1: Machine ns1/m1 not found"

    def test_single_error(self) -> None:
        assert format_error_chain(ValueError("bad")) == "bad"
