"""Dispatch of agent-initiated requests to registered capability handlers.

Architecture::

    Agent  ── JsonRpcRequest ──>  InboundDispatcher  ── params ──>  handler
           <── JsonRpcResponse ──

Every inbound request receives exactly one response: the handler result,
``-32601`` for an unknown method, or ``-32603`` when the handler fails.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable

from pydantic import BaseModel

from acp_bridge.rpc.protocol import ErrorCode, JsonRpcRequest, JsonRpcResponse
from acp_bridge.types import RequestHandler

logger = logging.getLogger(__name__)

ResponseSender = Callable[[JsonRpcResponse], Awaitable[None]]


class InboundDispatcher:
    """Owns the method → handler table for agent-initiated requests.

    Args:
        send: Coroutine function writing a response to the transport.
    """

    def __init__(self, send: ResponseSender) -> None:
        self._send = send
        self._handlers: dict[str, RequestHandler] = {}

    @property
    def methods(self) -> list[str]:
        """Registered method names."""
        return list(self._handlers)

    def has_handler(self, method: str) -> bool:
        return method in self._handlers

    def register_handler(self, method: str, handler: RequestHandler) -> None:
        """Register *handler* for *method*; a later registration replaces it.

        Handlers receive the raw ``params`` value and may be plain functions or
        coroutine functions.
        """
        if method in self._handlers:
            logger.debug("Replacing request handler for: %s", method)
        else:
            logger.debug("Registering request handler for: %s", method)
        self._handlers[method] = handler

    def unregister_handler(self, method: str) -> None:
        self._handlers.pop(method, None)

    def clear(self) -> None:
        self._handlers.clear()

    async def handle_request(self, request: JsonRpcRequest) -> JsonRpcResponse:
        """Run the handler for *request* and send its response.

        Returns:
            The response that was sent (or attempted).
        """
        response = await self._dispatch(request)
        try:
            await self._send(response)
        except (TypeError, ValueError) as exc:
            logger.error(
                "Result of '%s' is not JSON-serializable: %s", request.method, exc
            )
            response = JsonRpcResponse.failure(
                request.id,
                ErrorCode.INTERNAL_ERROR,
                f"Result is not JSON-serializable: {exc}",
            )
            await self._send_quietly(response)
        except (ConnectionError, OSError):
            logger.warning(
                "Failed to send response for '%s'", request.method, exc_info=True
            )
        return response

    async def _dispatch(self, request: JsonRpcRequest) -> JsonRpcResponse:
        handler = self._handlers.get(request.method)
        if handler is None:
            logger.warning(
                "No handler registered for agent request: %s", request.method
            )
            return JsonRpcResponse.failure(
                request.id,
                ErrorCode.METHOD_NOT_FOUND,
                f"Method not found: {request.method}",
            )

        try:
            result = handler(request.params)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            logger.error(
                "Error handling agent request %s: %s",
                request.method,
                exc,
                exc_info=True,
            )
            return JsonRpcResponse.failure(
                request.id, ErrorCode.INTERNAL_ERROR, _error_message(exc)
            )

        if isinstance(result, BaseModel):
            result = result.model_dump(by_alias=True, exclude_none=True)
        return JsonRpcResponse.success(request.id, result)

    async def _send_quietly(self, response: JsonRpcResponse) -> None:
        try:
            await self._send(response)
        except (ConnectionError, OSError):
            logger.warning("Failed to send error response", exc_info=True)


def _error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__
