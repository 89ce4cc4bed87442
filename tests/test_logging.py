"""Tests for logging configuration and debug logging points.

This module tests the ACP_BRIDGE_LOG_LEVEL environment variable and the
log records emitted while routing traffic.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pytest import LogCaptureFixture


def _drop_cached_modules() -> None:
    import sys

    for key in [key for key in sys.modules if key.startswith("acp_bridge")]:
        del sys.modules[key]


@pytest.fixture
def restore_modules() -> Generator[None, None, None]:
    """Save and restore module state to prevent test pollution.

    Tests that remove acp_bridge modules from sys.modules and re-import them
    should use this fixture so that other tests keep using the original
    classes afterwards.
    """
    import sys
    from types import ModuleType

    original_modules: dict[str, ModuleType] = {
        key: mod for key, mod in sys.modules.items() if key.startswith("acp_bridge")
    }
    original_level = logging.getLogger("acp_bridge").level

    yield

    _drop_cached_modules()
    sys.modules.update(original_modules)

    logger = logging.getLogger("acp_bridge")
    logger.handlers.clear()
    logger.setLevel(original_level)


class TestLogLevelConfiguration:
    """Tests for ACP_BRIDGE_LOG_LEVEL environment variable."""

    @pytest.fixture(autouse=True)
    def _restore_modules(self, restore_modules: None) -> None:
        """Auto-use the shared restore_modules fixture."""

    def test_log_level_set_from_env_debug(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _drop_cached_modules()
        monkeypatch.setenv("ACP_BRIDGE_LOG_LEVEL", "DEBUG")

        import acp_bridge  # noqa: F401

        logger = logging.getLogger("acp_bridge")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

    def test_log_level_is_case_insensitive(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _drop_cached_modules()
        monkeypatch.setenv("ACP_BRIDGE_LOG_LEVEL", "info")

        import acp_bridge  # noqa: F401

        assert logging.getLogger("acp_bridge").level == logging.INFO

    def test_log_level_defaults_to_warning(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without the env var the level is WARNING and no handler is added."""
        _drop_cached_modules()
        logging.getLogger("acp_bridge").handlers.clear()
        monkeypatch.delenv("ACP_BRIDGE_LOG_LEVEL", raising=False)

        import acp_bridge  # noqa: F401

        logger = logging.getLogger("acp_bridge")
        assert logger.level == logging.WARNING
        assert logger.handlers == []

    def test_log_level_invalid_value_falls_back_to_warning_with_warning(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        import warnings

        _drop_cached_modules()
        monkeypatch.setenv("ACP_BRIDGE_LOG_LEVEL", "INVALID_LEVEL")

        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter("always")
            import acp_bridge  # noqa: F401

            assert len(w) == 1
            assert "Invalid ACP_BRIDGE_LOG_LEVEL" in str(w[0].message)
            assert "INVALID_LEVEL" in str(w[0].message)
            assert "Using WARNING" in str(w[0].message)

        assert logging.getLogger("acp_bridge").level == logging.WARNING


class TestRoutingLogs:
    """Tests for debug and warning records emitted by the rpc layer."""

    @pytest.mark.asyncio
    async def test_timeout_logs_warning(self, caplog: LogCaptureFixture) -> None:
        from acp_bridge.exceptions import RequestTimeoutError
        from acp_bridge.rpc.correlator import RequestCorrelator

        async def send(request: object) -> None:
            return None

        correlator = RequestCorrelator(send, timeout=0.01)
        with caplog.at_level(logging.WARNING, logger="acp_bridge.rpc.correlator"):
            with pytest.raises(RequestTimeoutError):
                await correlator.call("session/prompt")

        assert any(
            "timed out" in record.message and "session/prompt" in record.message
            for record in caplog.records
        )

    def test_unknown_response_logs_debug(self, caplog: LogCaptureFixture) -> None:
        from acp_bridge.rpc.correlator import RequestCorrelator
        from acp_bridge.rpc.protocol import JsonRpcResponse

        async def send(request: object) -> None:
            return None

        correlator = RequestCorrelator(send)
        with caplog.at_level(logging.DEBUG, logger="acp_bridge.rpc.correlator"):
            correlator.handle_response(JsonRpcResponse.success(42, None))

        assert "Received response for unknown request: 42" in caplog.text

    def test_ignored_notification_logs_debug(self, caplog: LogCaptureFixture) -> None:
        from acp_bridge.rpc.notifications import NotificationRouter
        from acp_bridge.rpc.protocol import JsonRpcNotification

        with caplog.at_level(logging.DEBUG, logger="acp_bridge.rpc.notifications"):
            NotificationRouter().handle_notification(
                JsonRpcNotification(method="agent/heartbeat")
            )

        assert "Ignoring notification: agent/heartbeat" in caplog.text

    def test_malformed_message_logs_warning(self, caplog: LogCaptureFixture) -> None:
        from acp_bridge.rpc.protocol import classify_message

        with caplog.at_level(logging.WARNING, logger="acp_bridge.rpc.protocol"):
            assert classify_message({"jsonrpc": "2.0", "id": 1, "error": "boom"}) is None

        assert "Dropping malformed JsonRpcResponse" in caplog.text
