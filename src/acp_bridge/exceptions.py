"""Custom exceptions for acp-bridge."""

from __future__ import annotations

from acp_bridge.types import JsonValue


class AcpBridgeError(Exception):
    """Base exception for acp-bridge."""


class RequestTimeoutError(AcpBridgeError):
    """Raised when the agent does not answer a host-initiated call in time.

    Attributes:
        method: JSON-RPC method of the call that timed out.
        timeout_ms: Timeout that elapsed, in milliseconds.
    """

    def __init__(self, method: str, timeout_ms: int) -> None:
        super().__init__(f"Request timeout after {timeout_ms}ms: {method}")
        self.method = method
        self.timeout_ms = timeout_ms


class RemoteError(AcpBridgeError):
    """Raised when the agent answers a call with a JSON-RPC error object.

    The exception message is the remote ``error.message`` verbatim.

    Attributes:
        code: JSON-RPC error code reported by the agent, if any.
        data: Optional ``error.data`` payload.
    """

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        data: JsonValue = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


class BridgeShutdownError(AcpBridgeError):
    """Raised for calls still pending when the client shuts down."""


class TransportSwitchedError(AcpBridgeError):
    """Raised for calls still pending when the transport is replaced."""


class InvalidResponseError(AcpBridgeError):
    """Raised when a result does not have the shape the operation expects.

    Attributes:
        raw_result: The result value as received.
    """

    def __init__(self, message: str, *, raw_result: object = None) -> None:
        super().__init__(message)
        self.raw_result = raw_result


class AgentNotFoundError(AcpBridgeError):
    """Raised when the agent executable cannot be located."""


class CapabilityError(AcpBridgeError):
    """Base exception for capability handler failures."""


class WorkspacePathError(CapabilityError):
    """Raised when a requested path resolves outside the workspace root."""


class TerminalNotFoundError(CapabilityError):
    """Raised when a terminal id is unknown."""

    def __init__(self, terminal_id: str) -> None:
        super().__init__(f"Terminal not found: {terminal_id}")
        self.terminal_id = terminal_id
