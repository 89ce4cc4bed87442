"""Correlation of host-initiated calls with agent responses.

Architecture::

    caller ── call() ──> RequestCorrelator ── JsonRpcRequest ──> transport
    caller <── result ── RequestCorrelator <── JsonRpcResponse ── transport

Each outstanding call owns one future and one timer. Whichever of response,
timeout or bulk rejection comes first removes the entry; anything arriving
later for the same id finds nothing and is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from acp_bridge.exceptions import RemoteError, RequestTimeoutError
from acp_bridge.rpc.protocol import (
    REQUEST_TIMEOUT_SECONDS,
    JsonRpcRequest,
    JsonRpcResponse,
)
from acp_bridge.types import JsonRpcId, JsonValue

logger = logging.getLogger(__name__)

RequestSender = Callable[[JsonRpcRequest], Awaitable[None]]


@dataclass
class PendingCall:
    """Bookkeeping for one outstanding call."""

    method: str
    future: asyncio.Future[JsonValue]
    timer: asyncio.TimerHandle


class RequestCorrelator:
    """Issues requests and matches responses to them by id.

    Ids start at 1 and increase by one per call; they are never reused while
    the connection lives.

    Args:
        send: Coroutine function writing a request to the transport.
        timeout: Seconds to wait for each response.
    """

    def __init__(
        self,
        send: RequestSender,
        *,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self._send = send
        self._timeout = timeout
        self._last_id = 0
        self._pending: dict[JsonRpcId, PendingCall] = {}

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def timeout_ms(self) -> int:
        return round(self._timeout * 1000)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def last_id(self) -> int:
        """Most recently allocated id (0 before the first call)."""
        return self._last_id

    def is_pending(self, request_id: JsonRpcId) -> bool:
        return request_id in self._pending

    async def call(self, method: str, params: JsonValue = None) -> JsonValue:
        """Send a request and wait for its result.

        Args:
            method: JSON-RPC method name.
            params: JSON-compatible parameters, omitted from the wire if None.

        Returns:
            The ``result`` member of the matching response.

        Raises:
            ValueError: If *method* is empty.
            RequestTimeoutError: If no response arrives within the timeout.
            RemoteError: If the agent answers with an error object.
            BridgeShutdownError, TransportSwitchedError: If the pending call is
                rejected in bulk.
        """
        if not isinstance(method, str) or not method.strip():
            raise ValueError(f"Invalid JSON-RPC method: {method!r}")

        loop = asyncio.get_running_loop()
        self._last_id += 1
        request_id = self._last_id
        future: asyncio.Future[JsonValue] = loop.create_future()
        timer = loop.call_later(self._timeout, self._expire, request_id)
        self._pending[request_id] = PendingCall(method, future, timer)

        try:
            await self._send(JsonRpcRequest(id=request_id, method=method, params=params))
            return await future
        finally:
            # Covers send failures and caller cancellation; a resolved call
            # has already been removed.
            self._discard(request_id, future)

    def handle_response(self, response: JsonRpcResponse) -> bool:
        """Resolve or reject the call matching *response*.

        Returns:
            True if a pending call was found for the response id.
        """
        if response.id is None:
            logger.debug("Ignoring response without id: %s", response.error_message)
            return False

        pending = self._pending.pop(response.id, None)
        if pending is None:
            logger.debug("Received response for unknown request: %r", response.id)
            return False

        pending.timer.cancel()
        if pending.future.done():
            return True

        error = response.error
        if error is not None:
            pending.future.set_exception(
                RemoteError(error.message or "", code=error.code, data=error.data)
            )
        else:
            pending.future.set_result(response.result)
        return True

    def reject_all(self, make_error: Callable[[], BaseException]) -> int:
        """Fail every pending call with a fresh error from *make_error*.

        Returns:
            Number of calls rejected.
        """
        pending_calls = list(self._pending.values())
        self._pending.clear()
        for pending in pending_calls:
            pending.timer.cancel()
            if not pending.future.done():
                pending.future.set_exception(make_error())
        if pending_calls:
            logger.debug("Rejected %d pending requests", len(pending_calls))
        return len(pending_calls)

    def reset_ids(self) -> None:
        """Restart id allocation at 1 for a new connection.

        Raises:
            RuntimeError: If calls are still pending.
        """
        if self._pending:
            raise RuntimeError("Cannot reset request ids while calls are pending")
        self._last_id = 0

    def _expire(self, request_id: JsonRpcId) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return
        logger.warning(
            "Request %r timed out after %dms: %s",
            request_id,
            self.timeout_ms,
            pending.method,
        )
        if not pending.future.done():
            pending.future.set_exception(
                RequestTimeoutError(pending.method, self.timeout_ms)
            )

    def _discard(self, request_id: JsonRpcId, future: asyncio.Future[JsonValue]) -> None:
        pending = self._pending.get(request_id)
        if pending is not None and pending.future is future:
            del self._pending[request_id]
            pending.timer.cancel()
