"""Command execution for ``terminal/*`` agent requests.

Each terminal is a subprocess whose combined stdout/stderr is buffered so
the agent can poll it incrementally with ``terminal/output``.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import os
import signal
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from acp_bridge.capabilities.filesystem import resolve_workspace_path
from acp_bridge.exceptions import TerminalNotFoundError
from acp_bridge.methods import AcpMethods
from acp_bridge.types import JsonValue

if TYPE_CHECKING:
    from acp_bridge.client import AcpClient

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 65_536


class CreateTerminalParams(BaseModel):
    command: str = Field(min_length=1)
    args: list[str] = Field(default_factory=list)
    cwd: str | None = None
    env: dict[str, str] | None = None


class TerminalRef(BaseModel):
    terminal_id: str = Field(alias="terminalId")

    model_config = {"populate_by_name": True}


class TerminalOutputParams(TerminalRef):
    output_byte_limit: int | None = Field(default=None, ge=0, alias="outputByteLimit")


class KillTerminalParams(TerminalRef):
    signal: str | None = None


@dataclass
class _Terminal:
    id: str
    process: asyncio.subprocess.Process
    output: bytearray = field(default_factory=bytearray)
    exit_code: int | None = None
    signal: str | None = None
    exited: asyncio.Event = field(default_factory=asyncio.Event)
    watcher: asyncio.Task[None] | None = None

    @property
    def is_complete(self) -> bool:
        return self.exited.is_set()

    def exit_status(self) -> dict[str, JsonValue]:
        status: dict[str, JsonValue] = {
            "exitCode": self.exit_code if self.exit_code is not None else -1
        }
        if self.signal:
            status["signal"] = self.signal
        return status


class TerminalManager:
    """Runs agent-requested commands inside the workspace.

    Args:
        cwd: Workspace directory; a terminal's ``cwd`` must resolve inside it.
    """

    def __init__(self, cwd: str | Path) -> None:
        self._root = Path(os.path.normpath(Path(cwd).absolute()))
        self._terminals: dict[str, _Terminal] = {}
        self._counter = itertools.count(1)

    @property
    def terminal_ids(self) -> list[str]:
        return list(self._terminals)

    async def create(self, params: JsonValue) -> dict[str, JsonValue]:
        """Start the command and return ``{"terminalId": ...}``."""
        request = CreateTerminalParams.model_validate(params)
        cwd = (
            resolve_workspace_path(self._root, request.cwd)
            if request.cwd
            else self._root
        )
        env = {**os.environ, **(request.env or {})}

        process = await asyncio.create_subprocess_exec(
            request.command,
            *request.args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
        )

        terminal_id = f"term_{int(time.time() * 1000)}_{next(self._counter)}"
        terminal = _Terminal(id=terminal_id, process=process)
        terminal.watcher = asyncio.create_task(self._watch(terminal))
        self._terminals[terminal_id] = terminal
        logger.debug(
            "Created terminal %s: %s %s (pid=%s)",
            terminal_id,
            request.command,
            request.args,
            process.pid,
        )
        return {"terminalId": terminal_id}

    async def output(self, params: JsonValue) -> dict[str, JsonValue]:
        """Return output produced since the previous call."""
        request = TerminalOutputParams.model_validate(params)
        terminal = self._get(request.terminal_id)

        # Only unread output stays buffered.
        data = bytes(terminal.output)
        terminal.output.clear()

        truncated = False
        limit = request.output_byte_limit
        if limit is not None and len(data) > limit:
            data = data[:limit]
            truncated = True

        result: dict[str, JsonValue] = {"output": data.decode("utf-8", "replace")}
        if terminal.is_complete:
            result.update(terminal.exit_status())
        elif terminal.signal:
            result["signal"] = terminal.signal
        if truncated:
            result["truncated"] = True
        return result

    async def wait_for_exit(self, params: JsonValue) -> dict[str, JsonValue]:
        request = TerminalRef.model_validate(params)
        terminal = self._get(request.terminal_id)
        await terminal.exited.wait()
        return terminal.exit_status()

    async def kill(self, params: JsonValue) -> None:
        request = KillTerminalParams.model_validate(params)
        terminal = self._terminals.get(request.terminal_id)
        if terminal is None or terminal.is_complete:
            return
        _send_signal(terminal, _parse_signal(request.signal))

    async def release(self, params: JsonValue) -> None:
        request = TerminalRef.model_validate(params)
        terminal = self._terminals.pop(request.terminal_id, None)
        if terminal is None:
            return
        if not terminal.is_complete:
            _send_signal(terminal, signal.SIGTERM)
        logger.debug("Released terminal %s", terminal.id)

    async def close(self) -> None:
        """Release every terminal and wait for their watchers to finish."""
        terminals = list(self._terminals.values())
        for terminal in terminals:
            await self.release({"terminalId": terminal.id})
        watchers = [t.watcher for t in terminals if t.watcher is not None]
        if watchers:
            await asyncio.gather(*watchers, return_exceptions=True)

    def _get(self, terminal_id: str) -> _Terminal:
        terminal = self._terminals.get(terminal_id)
        if terminal is None:
            raise TerminalNotFoundError(terminal_id)
        return terminal

    async def _watch(self, terminal: _Terminal) -> None:
        process = terminal.process
        try:
            await asyncio.gather(
                _pump(process.stdout, terminal.output),
                _pump(process.stderr, terminal.output),
            )
            await process.wait()
        finally:
            _record_exit(terminal)
        logger.debug(
            "Terminal %s exited: code=%s signal=%s",
            terminal.id,
            terminal.exit_code,
            terminal.signal,
        )


def _record_exit(terminal: _Terminal) -> None:
    returncode = terminal.process.returncode
    if returncode is not None and returncode < 0:
        # Negative return codes mean the process was killed by a signal.
        try:
            terminal.signal = signal.Signals(-returncode).name
        except ValueError:
            terminal.signal = str(-returncode)
        terminal.exit_code = -1
    else:
        terminal.exit_code = returncode
    terminal.exited.set()


async def _pump(stream: asyncio.StreamReader | None, sink: bytearray) -> None:
    if stream is None:
        return
    while chunk := await stream.read(READ_CHUNK_SIZE):
        sink.extend(chunk)


def _parse_signal(name: str | None) -> signal.Signals:
    if not name:
        return signal.SIGTERM
    try:
        return signal.Signals[name.upper()]
    except KeyError:
        raise ValueError(f"Unknown signal: {name}") from None


def _send_signal(terminal: _Terminal, sig: signal.Signals) -> None:
    try:
        terminal.process.send_signal(sig)
    except ProcessLookupError:
        logger.debug("Terminal %s already exited", terminal.id)


def register_terminal_handlers(client: AcpClient, terminals: TerminalManager) -> None:
    client.register_handler(AcpMethods.TERMINAL_CREATE, terminals.create)
    client.register_handler(AcpMethods.TERMINAL_OUTPUT, terminals.output)
    client.register_handler(AcpMethods.TERMINAL_WAIT_FOR_EXIT, terminals.wait_for_exit)
    client.register_handler(AcpMethods.TERMINAL_KILL, terminals.kill)
    client.register_handler(AcpMethods.TERMINAL_RELEASE, terminals.release)
