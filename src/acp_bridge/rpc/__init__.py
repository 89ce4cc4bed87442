"""JSON-RPC 2.0 plumbing shared by the host side of the bridge.

This package turns a duplex byte stream into typed messages and routes
them: responses to the :class:`RequestCorrelator`, agent requests to the
:class:`InboundDispatcher`, notifications to the :class:`NotificationRouter`.

Architecture:
    Host (AcpClient) <-- newline-delimited JSON over stdio --> Agent process
"""

from acp_bridge.rpc.correlator import RequestCorrelator
from acp_bridge.rpc.dispatcher import InboundDispatcher
from acp_bridge.rpc.notifications import NotificationRouter, Subscription
from acp_bridge.rpc.protocol import (
    REQUEST_TIMEOUT_MS,
    REQUEST_TIMEOUT_SECONDS,
    ErrorCode,
    JsonRpcMessage,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    classify_message,
)
from acp_bridge.rpc.transport import LineTransport

__all__ = [
    "REQUEST_TIMEOUT_MS",
    "REQUEST_TIMEOUT_SECONDS",
    "ErrorCode",
    "InboundDispatcher",
    "JsonRpcMessage",
    "JsonRpcNotification",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "LineTransport",
    "NotificationRouter",
    "RequestCorrelator",
    "Subscription",
    "classify_message",
]
