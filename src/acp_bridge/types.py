"""Type definitions for the ACP host/agent wire payloads."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Literal, TypedDict

from claude_agent_sdk.types import PermissionMode
from pydantic import BaseModel, Field

# JSON互換の再帰型（Any型を避ける）
type JsonValue = (
    int | float | str | bool | None | list[JsonValue] | dict[str, JsonValue]
)

type JsonRpcId = int | float | str

# Handler signature for agent-initiated requests: receives raw params,
# returns a JSON-compatible result (directly or as an awaitable).
RequestHandler = Callable[[JsonValue], Awaitable[object] | object]

UpdateType = Literal[
    "thought",
    "text",
    "tool_use",
    "tool_result",
    "file_change",
    "mcp_call",
    "task_list",
    "subagent_run",
    "error",
    "confirmation_request",
    "session_switch",
    "bash_request",
    "plan_ready",
]

DEPRECATED_UPDATE_TYPES: frozenset[str] = frozenset({"bash_request", "plan_ready"})
"""Update kinds still accepted for backward compatibility with older agents."""


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ── Request payloads ──────────────────────────────────────────────────────


class ClientInfo(TypedDict):
    name: str
    version: str


class ClientCapabilities(TypedDict, total=False):
    streaming: bool
    diffPreview: bool
    thought: bool
    toolCallList: bool
    taskList: bool
    multiSession: bool


class InitializeParams(TypedDict):
    """Parameters for the ``initialize`` handshake."""

    clientInfo: ClientInfo
    capabilities: ClientCapabilities
    workspaceFolders: list[str]


class Attachment(TypedDict, total=False):
    """Prompt attachment (file, editor selection or image)."""

    type: Literal["file", "selection", "image"]
    path: str
    content: str
    name: str


class McpServerConfig(TypedDict, total=False):
    """MCP server the agent should start for a session."""

    name: str
    command: str
    args: list[str]
    env: dict[str, str]


# ── Result models ─────────────────────────────────────────────────────────


class Session(BaseModel):
    """Snapshot of an agent session.

    The wire format uses camelCase (``createdAt``); attributes are snake_case.
    Both spellings are accepted on input.
    """

    id: str
    title: str
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")

    model_config = {"populate_by_name": True}

    @classmethod
    def placeholder(cls, session_id: str, title: str) -> Session:
        """Build a session record when the agent only reported an id."""
        now = utc_now_iso()
        return cls(id=session_id, title=title, created_at=now, updated_at=now)


class DesiredSettings(BaseModel):
    """Sparse patch of session settings the host wants applied.

    Unset fields are ``None`` and are never sent to the agent.
    """

    model: str | None = None
    plan_mode: bool | None = Field(default=None, alias="planMode")
    permission_mode: PermissionMode | None = Field(default=None, alias="permissionMode")
    max_thinking_tokens: int | None = Field(
        default=None, ge=0, alias="maxThinkingTokens"
    )

    model_config = {"extra": "forbid", "populate_by_name": True}

    def is_empty(self) -> bool:
        """Return True when no field carries a value."""
        return not self.to_wire()

    def merged(self, patch: DesiredSettings) -> DesiredSettings:
        """Return a copy with every field explicitly set on *patch* overwritten."""
        return self.model_copy(update=patch.model_dump(exclude_unset=True))

    def to_wire(self) -> dict[str, JsonValue]:
        """Serialize the set fields with camelCase keys."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ServerInfo(BaseModel):
    name: str
    version: str


class AgentCapabilities(BaseModel):
    models: list[str] = Field(default_factory=list)
    mcp: bool = False
    plan_mode: bool = Field(default=False, alias="planMode")

    model_config = {"populate_by_name": True, "extra": "allow"}


class InitializeResult(BaseModel):
    """Agent answer to ``initialize``."""

    server_info: ServerInfo = Field(alias="serverInfo")
    capabilities: AgentCapabilities = Field(default_factory=AgentCapabilities)

    model_config = {"populate_by_name": True, "extra": "allow"}


class TokenUsage(BaseModel):
    input_tokens: int = Field(default=0, ge=0, alias="inputTokens")
    output_tokens: int = Field(default=0, ge=0, alias="outputTokens")

    model_config = {"populate_by_name": True}


class ModeStatus(BaseModel):
    """Execution mode of the current session (oneshot or persistent)."""

    is_persistent: bool = Field(alias="isPersistent")
    running: bool
    cli_session_id: str | None = Field(default=None, alias="cliSessionId")
    state: str
    message_count: int = Field(default=0, ge=0, alias="messageCount")
    total_usage: TokenUsage = Field(default_factory=TokenUsage, alias="totalUsage")

    model_config = {"populate_by_name": True}

    @classmethod
    def idle(cls) -> ModeStatus:
        return cls(is_persistent=False, running=False, state="idle")


class HistorySession(BaseModel):
    """Transcript metadata read by the agent from its local history store."""

    id: str
    title: str
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")
    project_key: str = Field(alias="projectKey")

    model_config = {"populate_by_name": True}


class HistoryToolCall(BaseModel):
    id: str
    name: str
    input: dict[str, JsonValue] | None = None
    result: JsonValue = None
    error: str | None = None
    status: Literal["completed", "failed"]


class HistoryChatMessage(BaseModel):
    id: str
    role: Literal["user", "assistant"]
    content: str
    thought: str | None = None
    tool_calls: list[HistoryToolCall] | None = Field(default=None, alias="toolCalls")
    timestamp: str | None = None

    model_config = {"populate_by_name": True}


# ── Notification payloads ─────────────────────────────────────────────────


class SessionUpdate(BaseModel):
    """Payload of a ``session/update`` notification.

    ``type`` is kept as a plain string so that update kinds introduced by
    newer agents still reach subscribers; see :data:`UpdateType` for the
    known kinds.
    """

    session_id: str = Field(alias="sessionId")
    type: str
    content: JsonValue = None

    model_config = {"populate_by_name": True, "extra": "allow"}

    @property
    def is_deprecated(self) -> bool:
        return self.type in DEPRECATED_UPDATE_TYPES


class SessionComplete(BaseModel):
    """Payload of a ``session/complete`` notification."""

    session_id: str = Field(alias="sessionId")
    usage: TokenUsage | None = None

    model_config = {"populate_by_name": True, "extra": "allow"}


# ── Permission rules ──────────────────────────────────────────────────────


class PermissionRule(BaseModel):
    """Host-side allow/deny rule the agent consults before running tools."""

    id: str
    action: Literal["allow", "deny"]
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")
    tool_name: str | None = Field(default=None, alias="toolName")
    pattern: str | None = None
    description: str | None = None
    expires_at: str | None = Field(default=None, alias="expiresAt")

    model_config = {"populate_by_name": True}

    def to_wire(self) -> dict[str, JsonValue]:
        return self.model_dump(by_alias=True, exclude_none=True)
