"""Shared test fixtures and helpers for acp_bridge tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncGenerator, Callable

import pytest
import pytest_asyncio

from acp_bridge.client import AcpClient


class FakeWriter:
    """Stand-in for asyncio.StreamWriter that records written bytes."""

    def __init__(self, on_write: Callable[[bytes], None] | None = None) -> None:
        self.buffer = bytearray()
        self.closed = False
        self._on_write = on_write

    def write(self, data: bytes) -> None:
        if self.closed:
            raise ConnectionResetError("writer is closed")
        self.buffer.extend(data)
        if self._on_write is not None:
            self._on_write(data)

    async def drain(self) -> None:
        return None

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return None

    @property
    def lines(self) -> list[bytes]:
        return [line for line in bytes(self.buffer).split(b"\n") if line]

    @property
    def messages(self) -> list[dict[str, object]]:
        return [json.loads(line) for line in self.lines]


class ScriptedAgent:
    """In-memory agent answering host requests from a method -> result table.

    Methods without an entry in ``results`` or ``errors`` stay unanswered.
    A callable result is called with the request params.
    """

    def __init__(self) -> None:
        self.reader = asyncio.StreamReader()
        self.writer = FakeWriter(self._on_write)
        self.results: dict[str, object] = {}
        self.errors: dict[str, object] = {}
        self.requests: list[dict[str, object]] = []
        self.responses: list[dict[str, object]] = []

    @property
    def methods(self) -> list[str]:
        return [str(r["method"]) for r in self.requests]

    def params_for(self, method: str) -> list[object]:
        return [r.get("params") for r in self.requests if r["method"] == method]

    def send(self, message: dict[str, object]) -> None:
        """Feed one message to the host as if the agent had written it."""
        self.reader.feed_data((json.dumps(message) + "\n").encode("utf-8"))

    def notify(self, method: str, params: object) -> None:
        self.send({"jsonrpc": "2.0", "method": method, "params": params})

    def request(self, request_id: int | str, method: str, params: object = None) -> None:
        message: dict[str, object] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            message["params"] = params
        self.send(message)

    async def wait_for_responses(self, count: int, timeout: float = 2.0) -> None:
        """Wait until the host has answered *count* agent requests."""
        async with asyncio.timeout(timeout):
            while len(self.responses) < count:
                await asyncio.sleep(0.005)

    async def wait_for_requests(self, count: int, timeout: float = 2.0) -> None:
        async with asyncio.timeout(timeout):
            while len(self.requests) < count:
                await asyncio.sleep(0.005)

    def _on_write(self, data: bytes) -> None:
        for line in data.decode("utf-8").splitlines():
            message = json.loads(line)
            if "method" in message:
                self.requests.append(message)
                self._answer(message)
            else:
                self.responses.append(message)

    def _answer(self, request: dict[str, object]) -> None:
        method = str(request["method"])
        if method in self.errors:
            self.send({"jsonrpc": "2.0", "id": request["id"], "error": self.errors[method]})
        elif method in self.results:
            result = self.results[method]
            if callable(result):
                result = result(request.get("params"))
            self.send({"jsonrpc": "2.0", "id": request["id"], "result": result})


@pytest.fixture
def writer() -> FakeWriter:
    return FakeWriter()


@pytest_asyncio.fixture
async def agent() -> ScriptedAgent:
    return ScriptedAgent()


@pytest_asyncio.fixture
async def client(agent: ScriptedAgent) -> AsyncGenerator[AcpClient, None]:
    """Started client wired to the scripted agent, shut down after the test."""
    acp_client = AcpClient(agent.reader, agent.writer, request_timeout=1.0)  # type: ignore[arg-type]
    acp_client.start()
    yield acp_client
    await acp_client.shutdown()


def session_record(session_id: str = "s1", title: str = "Session") -> dict[str, str]:
    return {
        "id": session_id,
        "title": title,
        "createdAt": "2026-01-01T00:00:00.000Z",
        "updatedAt": "2026-01-01T00:00:00.000Z",
    }


@pytest.fixture
def make_session() -> Callable[..., dict[str, str]]:
    return session_record
