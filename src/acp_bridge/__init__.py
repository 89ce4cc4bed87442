"""acp-bridge: host-side JSON-RPC bridge to ACP coding agents over stdio."""

import logging
import os
import warnings

# Configure log level from environment variable
# Users can set ACP_BRIDGE_LOG_LEVEL to DEBUG, INFO, WARNING, ERROR, or CRITICAL
# Default is WARNING (suppresses debug/info logs)
_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_log_level_env = os.getenv("ACP_BRIDGE_LOG_LEVEL")
_log_level_str = (_log_level_env or "WARNING").upper()

if _log_level_str not in _VALID_LOG_LEVELS:
    warnings.warn(
        f"Invalid ACP_BRIDGE_LOG_LEVEL='{_log_level_str}'. "
        f"Valid values: DEBUG, INFO, WARNING, ERROR, CRITICAL. Using WARNING.",
        stacklevel=1,
    )
    _log_level_str = "WARNING"

_logger = logging.getLogger("acp_bridge")
_logger.setLevel(getattr(logging, _log_level_str))

# Add handler only when env var is explicitly set and no handler exists yet
# (prevents duplicate handlers on module reload)
if _log_level_env is not None and not _logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    _logger.addHandler(_handler)

from acp_bridge.capabilities import (  # noqa: E402
    LanguageService,
    NullLanguageService,
    PermissionRuleStore,
    TerminalManager,
    WorkspaceFileSystem,
    register_filesystem_handlers,
    register_language_handlers,
    register_permission_handlers,
    register_terminal_handlers,
)
from acp_bridge.client import AcpClient  # noqa: E402
from acp_bridge.exceptions import (  # noqa: E402
    AcpBridgeError,
    AgentNotFoundError,
    BridgeShutdownError,
    CapabilityError,
    InvalidResponseError,
    RemoteError,
    RequestTimeoutError,
    TerminalNotFoundError,
    TransportSwitchedError,
    WorkspacePathError,
)
from acp_bridge.methods import NOTIFICATION_TOPICS, AcpMethods  # noqa: E402
from acp_bridge.process import find_agent, spawn_agent  # noqa: E402
from acp_bridge.rpc import (  # noqa: E402
    REQUEST_TIMEOUT_MS,
    REQUEST_TIMEOUT_SECONDS,
    ErrorCode,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Subscription,
)
from acp_bridge.types import (  # noqa: E402
    Attachment,
    ClientCapabilities,
    ClientInfo,
    DesiredSettings,
    HistoryChatMessage,
    HistorySession,
    InitializeParams,
    InitializeResult,
    JsonValue,
    McpServerConfig,
    ModeStatus,
    PermissionRule,
    Session,
    SessionComplete,
    SessionUpdate,
    TokenUsage,
    UpdateType,
)

__all__ = [
    "AcpClient",
    "AcpMethods",
    "NOTIFICATION_TOPICS",
    "REQUEST_TIMEOUT_MS",
    "REQUEST_TIMEOUT_SECONDS",
    "spawn_agent",
    "find_agent",
    # JSON-RPC
    "ErrorCode",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "JsonRpcNotification",
    "Subscription",
    # Payload types
    "Attachment",
    "ClientCapabilities",
    "ClientInfo",
    "DesiredSettings",
    "HistoryChatMessage",
    "HistorySession",
    "InitializeParams",
    "InitializeResult",
    "JsonValue",
    "McpServerConfig",
    "ModeStatus",
    "PermissionRule",
    "Session",
    "SessionComplete",
    "SessionUpdate",
    "TokenUsage",
    "UpdateType",
    # Exceptions
    "AcpBridgeError",
    "AgentNotFoundError",
    "BridgeShutdownError",
    "CapabilityError",
    "InvalidResponseError",
    "RemoteError",
    "RequestTimeoutError",
    "TerminalNotFoundError",
    "TransportSwitchedError",
    "WorkspacePathError",
    # Host capabilities
    "LanguageService",
    "NullLanguageService",
    "PermissionRuleStore",
    "TerminalManager",
    "WorkspaceFileSystem",
    "register_filesystem_handlers",
    "register_language_handlers",
    "register_permission_handlers",
    "register_terminal_handlers",
]
