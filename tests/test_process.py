"""Tests for launching agent processes."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from acp_bridge.exceptions import AgentNotFoundError
from acp_bridge.process import find_agent, spawn_agent

# Minimal agent: answers the first request with a fixed result, then waits
# for stdin to close.
_PONG_AGENT = """
read line
echo '{"jsonrpc": "2.0", "id": 1, "result": "pong"}'
cat > /dev/null
"""


class TestFindAgent:
    """Tests for executable lookup."""

    def test_finds_executable_on_path(self) -> None:
        assert find_agent("sh").endswith("sh")

    def test_missing_executable(self) -> None:
        with pytest.raises(AgentNotFoundError, match="Agent executable not found"):
            find_agent("definitely-not-an-acp-agent")


class TestSpawnAgent:
    """Tests for spawn_agent."""

    @pytest.mark.asyncio
    async def test_round_trip_with_real_process(self) -> None:
        process, client = await spawn_agent("sh", "-c", _PONG_AGENT, request_timeout=5.0)
        try:
            assert await client.call("ping") == "pong"
        finally:
            await client.shutdown()
            assert process.stdin is not None
            process.stdin.close()
            await asyncio.wait_for(process.wait(), timeout=5.0)

        assert process.returncode == 0

    @pytest.mark.asyncio
    async def test_env_is_merged(self) -> None:
        script = 'read line; echo "{\\"jsonrpc\\": \\"2.0\\", \\"id\\": 1, \\"result\\": \\"$AGENT_MODE\\"}"'
        process, client = await spawn_agent(
            "sh", "-c", script, env={"AGENT_MODE": "test"}, request_timeout=5.0
        )
        try:
            assert await client.call("mode") == "test"
        finally:
            await client.shutdown()
            await asyncio.wait_for(process.wait(), timeout=5.0)

    @pytest.mark.asyncio
    async def test_missing_executable(self) -> None:
        with pytest.raises(AgentNotFoundError):
            await spawn_agent("definitely-not-an-acp-agent")

    @pytest.mark.asyncio
    async def test_launch_failure_maps_to_agent_not_found(self) -> None:
        with patch(
            "acp_bridge.process.asyncio.create_subprocess_exec",
            new=AsyncMock(side_effect=FileNotFoundError("gone")),
        ):
            with pytest.raises(AgentNotFoundError, match="gone"):
                await spawn_agent("sh")

    @pytest.mark.asyncio
    async def test_process_without_pipes(self) -> None:
        process = MagicMock(stdout=None, stdin=None)
        with patch(
            "acp_bridge.process.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=process),
        ):
            with pytest.raises(RuntimeError, match="without stdio pipes"):
                await spawn_agent("sh")
