"""Session lifecycle on top of correlated calls.

The manager tracks at most one current session. It starts uninitialized;
create, resume and switch make a session current, deleting the current
session clears it. Prompts create a session lazily when none is current.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from pydantic import ValidationError

from acp_bridge.exceptions import InvalidResponseError
from acp_bridge.methods import AcpMethods
from acp_bridge.settings import CallFunction, SettingsSynchronizer
from acp_bridge.types import Attachment, JsonValue, McpServerConfig, Session

logger = logging.getLogger(__name__)

NEW_SESSION_TITLE = "New Session"
RESUMED_SESSION_TITLE = "Resumed Session"
SWITCHED_SESSION_TITLE = "Switched Session"


class SessionManager:
    """Create, resume, switch, delete and prompt agent sessions.

    Args:
        call: Correlated call function (``method, params -> result``).
        settings: Synchronizer flushed whenever a session becomes current and
            before each prompt.
    """

    def __init__(self, call: CallFunction, settings: SettingsSynchronizer) -> None:
        self._call = call
        self._settings = settings
        self._current: Session | None = None

    @property
    def current(self) -> Session | None:
        return self._current

    def clear(self) -> None:
        """Forget the current session without telling the agent."""
        self._current = None

    async def new_session(
        self,
        title: str | None = None,
        *,
        cwd: str | None = None,
        mcp_servers: Sequence[McpServerConfig] | None = None,
    ) -> Session:
        """Create a session and make it current.

        The agent may answer with a full session record (``{"session": ...}``)
        or with only ``{"sessionId": ...}``; in the latter case a record is
        synthesized with the given title (default ``"New Session"``).

        Raises:
            InvalidResponseError: If the result has neither shape.
        """
        params: dict[str, JsonValue] = {}
        if title is not None:
            params["title"] = title
        _add_workspace_params(params, cwd, mcp_servers)

        result = await self._call(AcpMethods.SESSION_NEW, params)
        session = _session_from_result(
            result, AcpMethods.SESSION_NEW, title or NEW_SESSION_TITLE
        )
        await self._activate(session)
        return session

    async def resume_session(
        self,
        external_session_id: str,
        *,
        title: str | None = None,
        cwd: str | None = None,
        mcp_servers: Sequence[McpServerConfig] | None = None,
    ) -> Session:
        """Resume a session the agent knows by its own (CLI) id.

        Raises:
            InvalidResponseError: If the result has neither accepted shape.
        """
        params: dict[str, JsonValue] = {"claudeSessionId": external_session_id}
        if title:
            params["title"] = title
        _add_workspace_params(params, cwd, mcp_servers)

        result = await self._call(AcpMethods.SESSION_RESUME, params)
        session = _session_from_result(
            result, AcpMethods.SESSION_RESUME, title or RESUMED_SESSION_TITLE
        )
        await self._activate(session)
        return session

    async def list_sessions(self) -> list[Session]:
        """Return the agent's sessions; the current session is unaffected."""
        result = await self._call(AcpMethods.SESSION_LIST, None)
        if not isinstance(result, dict) or not isinstance(result.get("sessions"), list):
            raise InvalidResponseError(
                "Invalid session/list response format", raw_result=result
            )
        try:
            return [Session.model_validate(item) for item in result["sessions"]]
        except ValidationError as exc:
            raise InvalidResponseError(
                f"Invalid session in session/list response: {exc}", raw_result=result
            ) from exc

    async def switch_session(self, session_id: str) -> None:
        """Switch the agent to *session_id*.

        The agent does not return the session record, so the current session
        becomes a placeholder carrying only the id.
        """
        await self._call(AcpMethods.SESSION_SWITCH, {"sessionId": session_id})
        self._current = Session.placeholder(session_id, SWITCHED_SESSION_TITLE)
        logger.info("Switched to session %s", session_id)

    async def delete_session(self, session_id: str) -> None:
        """Delete *session_id*; clears the current session if it is the one deleted."""
        await self._call(AcpMethods.SESSION_DELETE, {"sessionId": session_id})
        if self._current is not None and self._current.id == session_id:
            self._current = None
            logger.info("Deleted current session %s", session_id)

    async def prompt(
        self,
        content: str,
        attachments: Sequence[Attachment] | None = None,
    ) -> JsonValue:
        """Send a oneshot prompt, creating a session first if none is current."""
        return await self._prompt(AcpMethods.SESSION_PROMPT, content, attachments)

    async def prompt_persistent(
        self,
        content: str,
        attachments: Sequence[Attachment] | None = None,
    ) -> JsonValue:
        """Send a prompt to the agent's persistent (long-lived CLI) mode."""
        return await self._prompt(
            AcpMethods.SESSION_PROMPT_PERSISTENT, content, attachments
        )

    async def _prompt(
        self,
        method: str,
        content: str,
        attachments: Sequence[Attachment] | None,
    ) -> JsonValue:
        if self._current is None:
            session = await self.new_session()
        else:
            session = self._current
            await self._settings.sync()

        params: dict[str, JsonValue] = {"sessionId": session.id, "content": content}
        if attachments is not None:
            params["attachments"] = [dict(a) for a in attachments]
        return await self._call(method, params)

    async def _activate(self, session: Session) -> None:
        self._current = session
        logger.info("Current session is now %s (%s)", session.id, session.title)
        await self._settings.sync()


def _add_workspace_params(
    params: dict[str, JsonValue],
    cwd: str | None,
    mcp_servers: Sequence[McpServerConfig] | None,
) -> None:
    if cwd:
        params["cwd"] = cwd
    if mcp_servers is not None:
        params["mcpServers"] = [dict(server) for server in mcp_servers]


def _session_from_result(result: JsonValue, method: str, fallback_title: str) -> Session:
    if isinstance(result, dict):
        raw_session = result.get("session")
        if raw_session is not None:
            try:
                return Session.model_validate(raw_session)
            except ValidationError:
                logger.debug("Ignoring malformed session record in %s result", method)
        session_id = result.get("sessionId")
        if isinstance(session_id, str):
            return Session.placeholder(session_id, fallback_title)
    raise InvalidResponseError(f"Invalid {method} response format", raw_result=result)
