"""Host-side ACP client: the bridge between a host application and an agent.

Architecture::

    host ── AcpClient ── RequestCorrelator ──> LineTransport ──> agent stdin
    host <── callbacks ── NotificationRouter <┐
    handlers <── InboundDispatcher <──────────┤── classify ── LineTransport <── agent stdout
    callers <── RequestCorrelator <───────────┘

All state (pending calls, handler table, current session, desired settings)
belongs to one client instance and must only be touched from the event loop
the client was started on.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from types import TracebackType
from typing import Self

from pydantic import BaseModel, ValidationError

from acp_bridge.exceptions import (
    BridgeShutdownError,
    InvalidResponseError,
    TransportSwitchedError,
)
from acp_bridge.methods import AcpMethods
from acp_bridge.rpc.correlator import RequestCorrelator
from acp_bridge.rpc.dispatcher import InboundDispatcher
from acp_bridge.rpc.notifications import (
    NotificationCallback,
    NotificationRouter,
    Subscription,
)
from acp_bridge.rpc.protocol import (
    REQUEST_TIMEOUT_SECONDS,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    classify_message,
    decode_line,
)
from acp_bridge.rpc.transport import LineTransport
from acp_bridge.session import SessionManager
from acp_bridge.settings import SettingsSynchronizer
from acp_bridge.types import (
    Attachment,
    DesiredSettings,
    HistoryChatMessage,
    HistorySession,
    InitializeParams,
    InitializeResult,
    JsonValue,
    McpServerConfig,
    ModeStatus,
    RequestHandler,
    Session,
    SessionComplete,
    SessionUpdate,
)

logger = logging.getLogger(__name__)

SHUTDOWN_MESSAGE = "ACP client shutdown"
TRANSPORT_SWITCHED_MESSAGE = "Transport switched"


class AcpClient:
    """Bidirectional JSON-RPC client for a coding-agent process.

    Args:
        reader: Stream of agent output (the agent's stdout).
        writer: Stream of agent input (the agent's stdin).
        request_timeout: Seconds each host-initiated call waits for a response.

    Usage::

        async with AcpClient(process.stdout, process.stdin) as client:
            client.on_session_update(print)
            await client.prompt("Explain this repository")
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self._transport = LineTransport(reader, writer)
        self._correlator = RequestCorrelator(self._send, timeout=request_timeout)
        self._dispatcher = InboundDispatcher(self._send)
        self._router = NotificationRouter()
        self._settings = SettingsSynchronizer(
            self._correlator.call, lambda: self._sessions.current
        )
        self._sessions = SessionManager(self._correlator.call, self._settings)
        self._inbound_tasks: set[asyncio.Task[JsonRpcResponse]] = set()
        self._closed = False

        logger.debug("AcpClient initialized: request_timeout=%s", request_timeout)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start reading agent messages. Requires a running event loop."""
        if self._closed:
            raise BridgeShutdownError(SHUTDOWN_MESSAGE)
        self._transport.start(self.handle_message)

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.shutdown()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def reader_task(self) -> asyncio.Task[None] | None:
        """Task running the read loop; completes on EOF."""
        return self._transport.read_task

    async def update_transport(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Attach the client to a new agent process.

        Pending calls are rejected with :class:`TransportSwitchedError`, ids
        restart at 1 and the current session is cleared. Desired settings and
        registered handlers are kept.
        """
        self._transport.detach()
        rejected = self._correlator.reject_all(
            lambda: TransportSwitchedError(TRANSPORT_SWITCHED_MESSAGE)
        )
        self._cancel_inbound_tasks()
        self._correlator.reset_ids()
        self._sessions.clear()

        self._transport = LineTransport(reader, writer)
        if not self._closed:
            self._transport.start(self.handle_message)
        logger.info("Transport switched (%d pending requests rejected)", rejected)

    async def shutdown(self) -> None:
        """Stop the bridge.

        Detaches the reader, rejects pending calls with
        :class:`BridgeShutdownError`, cancels running inbound handlers and
        clears the handler table, current session and subscriptions. Calling
        it again is harmless.
        """
        self._transport.detach()
        rejected = self._correlator.reject_all(
            lambda: BridgeShutdownError(SHUTDOWN_MESSAGE)
        )
        self._cancel_inbound_tasks()
        self._dispatcher.clear()
        self._sessions.clear()
        self._router.clear()
        if not self._closed:
            logger.info("AcpClient shut down (%d pending requests rejected)", rejected)
        self._closed = True

    # ── Inbound traffic ───────────────────────────────────────────────────

    def handle_line(self, line: bytes | str) -> None:
        """Decode and handle one framed line (for hosts that own the read loop)."""
        value = decode_line(line)
        if value is not None:
            self.handle_message(value)

    def handle_message(self, value: JsonValue) -> None:
        """Classify one decoded message and route it."""
        if self._closed:
            return

        message = classify_message(value)
        if isinstance(message, JsonRpcRequest):
            logger.debug("Received agent request %r: %s", message.id, message.method)
            task = asyncio.get_running_loop().create_task(
                self._dispatcher.handle_request(message)
            )
            self._inbound_tasks.add(task)
            task.add_done_callback(self._inbound_done)
        elif isinstance(message, JsonRpcResponse):
            self._correlator.handle_response(message)
        elif isinstance(message, JsonRpcNotification):
            self._router.handle_notification(message)

    # ── Capability handlers and subscriptions ─────────────────────────────

    def register_handler(self, method: str, handler: RequestHandler) -> None:
        """Answer agent requests for *method* with *handler* (last one wins)."""
        self._dispatcher.register_handler(method, handler)

    def unregister_handler(self, method: str) -> None:
        self._dispatcher.unregister_handler(method)

    @property
    def handler_methods(self) -> list[str]:
        return self._dispatcher.methods

    def subscribe(self, topic: str, callback: NotificationCallback) -> Subscription:
        """Receive raw ``params`` of *topic* notifications."""
        return self._router.subscribe(topic, callback)

    def on_session_update(
        self, callback: Callable[[SessionUpdate], object]
    ) -> Subscription:
        """Receive validated ``session/update`` payloads."""
        return self._router.subscribe(
            AcpMethods.SESSION_UPDATE, _typed_callback(SessionUpdate, callback)
        )

    def on_session_complete(
        self, callback: Callable[[SessionComplete], object]
    ) -> Subscription:
        """Receive validated ``session/complete`` payloads."""
        return self._router.subscribe(
            AcpMethods.SESSION_COMPLETE, _typed_callback(SessionComplete, callback)
        )

    # ── Host-initiated calls ──────────────────────────────────────────────

    @property
    def pending_requests(self) -> int:
        return self._correlator.pending_count

    async def call(self, method: str, params: JsonValue = None) -> JsonValue:
        """Issue a raw correlated call."""
        return await self._correlator.call(method, params)

    async def initialize(self, params: InitializeParams) -> InitializeResult:
        result = await self._correlator.call(AcpMethods.INITIALIZE, dict(params))
        return _validate_result(InitializeResult, result, AcpMethods.INITIALIZE)

    @property
    def current_session(self) -> Session | None:
        return self._sessions.current

    @property
    def desired_settings(self) -> DesiredSettings:
        return self._settings.desired

    async def new_session(
        self,
        title: str | None = None,
        *,
        cwd: str | None = None,
        mcp_servers: Sequence[McpServerConfig] | None = None,
    ) -> Session:
        return await self._sessions.new_session(title, cwd=cwd, mcp_servers=mcp_servers)

    async def resume_session(
        self,
        external_session_id: str,
        *,
        title: str | None = None,
        cwd: str | None = None,
        mcp_servers: Sequence[McpServerConfig] | None = None,
    ) -> Session:
        return await self._sessions.resume_session(
            external_session_id, title=title, cwd=cwd, mcp_servers=mcp_servers
        )

    async def list_sessions(self) -> list[Session]:
        return await self._sessions.list_sessions()

    async def switch_session(self, session_id: str) -> None:
        await self._sessions.switch_session(session_id)

    async def delete_session(self, session_id: str) -> None:
        await self._sessions.delete_session(session_id)

    async def prompt(
        self, content: str, attachments: Sequence[Attachment] | None = None
    ) -> JsonValue:
        return await self._sessions.prompt(content, attachments)

    async def prompt_persistent(
        self, content: str, attachments: Sequence[Attachment] | None = None
    ) -> JsonValue:
        return await self._sessions.prompt_persistent(content, attachments)

    async def change_settings(
        self, patch: DesiredSettings | None = None, /, **fields: object
    ) -> None:
        """Merge desired settings; applied now if a session is current, else later."""
        await self._settings.change_settings(patch, **fields)

    async def get_mode_status(self) -> ModeStatus:
        """Return the current session's execution mode (idle without a session)."""
        session = self._sessions.current
        if session is None:
            return ModeStatus.idle()
        result = await self._correlator.call(
            AcpMethods.SESSION_MODE_STATUS, {"sessionId": session.id}
        )
        return _validate_result(ModeStatus, result, AcpMethods.SESSION_MODE_STATUS)

    async def cancel_session(self) -> None:
        """Ask the agent to stop the running turn of the current session."""
        session = self._sessions.current
        if session is None:
            return
        await self._correlator.call(AcpMethods.SESSION_CANCEL, {"sessionId": session.id})

    async def confirm_tool(
        self,
        tool_call_id: str,
        confirmed: bool,
        *,
        trust_always: bool | None = None,
        edited_content: str | None = None,
    ) -> None:
        """Answer a confirmation request for a tool call."""
        session = self._sessions.current
        if session is None:
            return
        params: dict[str, JsonValue] = {
            "sessionId": session.id,
            "toolCallId": tool_call_id,
            "confirmed": confirmed,
        }
        options: dict[str, JsonValue] = {}
        if trust_always is not None:
            options["trustAlways"] = trust_always
        if edited_content is not None:
            options["editedContent"] = edited_content
        if options:
            params["options"] = options
        await self._correlator.call(AcpMethods.TOOL_CONFIRM, params)

    async def accept_file_change(self, path: str, session_id: str | None = None) -> None:
        await self._file_decision(AcpMethods.FILE_ACCEPT, path, session_id)

    async def reject_file_change(self, path: str, session_id: str | None = None) -> None:
        await self._file_decision(AcpMethods.FILE_REJECT, path, session_id)

    async def list_history(self, workspace_path: str) -> list[HistorySession]:
        result = await self._correlator.call(
            AcpMethods.HISTORY_LIST, {"workspacePath": workspace_path}
        )
        return _validate_list(HistorySession, result, "sessions", AcpMethods.HISTORY_LIST)

    async def load_history(
        self, session_id: str, workspace_path: str
    ) -> list[HistoryChatMessage]:
        result = await self._correlator.call(
            AcpMethods.HISTORY_LOAD,
            {"sessionId": session_id, "workspacePath": workspace_path},
        )
        return _validate_list(
            HistoryChatMessage, result, "messages", AcpMethods.HISTORY_LOAD
        )

    async def delete_history(self, session_id: str, workspace_path: str) -> bool:
        result = await self._correlator.call(
            AcpMethods.HISTORY_DELETE,
            {"sessionId": session_id, "workspacePath": workspace_path},
        )
        return isinstance(result, dict) and bool(result.get("deleted"))

    # ── Internals ─────────────────────────────────────────────────────────

    async def _send(self, message: BaseModel) -> None:
        if self._closed:
            raise BridgeShutdownError(SHUTDOWN_MESSAGE)
        await self._transport.send(message)

    async def _file_decision(
        self, method: str, path: str, session_id: str | None
    ) -> None:
        sid = session_id
        if sid is None and self._sessions.current is not None:
            sid = self._sessions.current.id
        if sid is None:
            return
        await self._correlator.call(method, {"sessionId": sid, "path": path})

    def _inbound_done(self, task: asyncio.Task[JsonRpcResponse]) -> None:
        self._inbound_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Agent request task failed", exc_info=task.exception())

    def _cancel_inbound_tasks(self) -> None:
        for task in list(self._inbound_tasks):
            task.cancel()
        self._inbound_tasks.clear()


def _typed_callback[T: BaseModel](
    model: type[T], callback: Callable[[T], object]
) -> NotificationCallback:
    def _callback(params: JsonValue) -> object:
        try:
            payload = model.model_validate(params)
        except ValidationError as exc:
            logger.warning("Skipping malformed %s payload: %s", model.__name__, exc)
            return None
        return callback(payload)

    return _callback


def _validate_result[T: BaseModel](model: type[T], result: JsonValue, method: str) -> T:
    try:
        return model.model_validate(result)
    except ValidationError as exc:
        raise InvalidResponseError(
            f"Invalid {method} response format: {exc}", raw_result=result
        ) from exc


def _validate_list[T: BaseModel](
    model: type[T], result: JsonValue, key: str, method: str
) -> list[T]:
    if not isinstance(result, dict) or not isinstance(result.get(key), list):
        raise InvalidResponseError(f"Invalid {method} response format", raw_result=result)
    try:
        return [model.model_validate(item) for item in result[key]]
    except ValidationError as exc:
        raise InvalidResponseError(
            f"Invalid {method} response format: {exc}", raw_result=result
        ) from exc
