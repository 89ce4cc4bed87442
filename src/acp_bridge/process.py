"""Launching an agent process and attaching an :class:`AcpClient` to it."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from collections.abc import Mapping
from pathlib import Path

from acp_bridge.client import AcpClient
from acp_bridge.exceptions import AgentNotFoundError
from acp_bridge.rpc.protocol import REQUEST_TIMEOUT_SECONDS
from acp_bridge.rpc.transport import MAX_LINE_SIZE

logger = logging.getLogger(__name__)


def find_agent(command: str) -> str:
    """Resolve *command* to an executable path.

    Raises:
        AgentNotFoundError: If the command is not on PATH.
    """
    agent_path = shutil.which(command)
    if agent_path is None:
        raise AgentNotFoundError(f"Agent executable not found: {command}")
    return agent_path


async def spawn_agent(
    command: str,
    *args: str,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    request_timeout: float = REQUEST_TIMEOUT_SECONDS,
    stderr: int | None = None,
) -> tuple[asyncio.subprocess.Process, AcpClient]:
    """Start an agent speaking ACP on stdio and return it with a started client.

    Args:
        command: Agent executable name or path.
        *args: Extra command-line arguments.
        cwd: Working directory for the agent.
        env: Variables added to the current environment.
        request_timeout: Seconds each host-initiated call waits for a response.
        stderr: Where the agent's stderr goes (inherited by default).

    Returns:
        The subprocess and an :class:`AcpClient` already reading its stdout.

    Raises:
        AgentNotFoundError: If the executable cannot be found or launched.
    """
    agent_path = find_agent(command)
    merged_env = {**os.environ, **env} if env is not None else None

    try:
        process = await asyncio.create_subprocess_exec(
            agent_path,
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=stderr,
            cwd=cwd,
            env=merged_env,
            limit=MAX_LINE_SIZE,
        )
    except FileNotFoundError as e:
        raise AgentNotFoundError(
            f"Agent executable not found at {agent_path}. Details: {e}"
        ) from e

    if process.stdout is None or process.stdin is None:
        raise RuntimeError("Agent process was started without stdio pipes")
    logger.info("Started agent %s (pid=%s)", agent_path, process.pid)

    client = AcpClient(process.stdout, process.stdin, request_timeout=request_timeout)
    client.start()
    return process, client
