"""Deferred application of host-desired session settings."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from acp_bridge.methods import AcpMethods
from acp_bridge.types import DesiredSettings, JsonValue, Session

logger = logging.getLogger(__name__)

CallFunction = Callable[[str, JsonValue], Awaitable[JsonValue]]


class SettingsSynchronizer:
    """Accumulates desired settings and pushes them to the current session.

    The desired settings describe a steady state: they are merged field by
    field, never cleared, and resent whenever a session becomes current.

    Args:
        call: Correlated call function (``method, params -> result``).
        current_session: Returns the session settings apply to, if any.
    """

    def __init__(
        self,
        call: CallFunction,
        current_session: Callable[[], Session | None],
    ) -> None:
        self._call = call
        self._current_session = current_session
        self._desired = DesiredSettings()

    @property
    def desired(self) -> DesiredSettings:
        """Copy of the accumulated desired settings."""
        return self._desired.model_copy()

    async def change_settings(
        self, patch: DesiredSettings | None = None, /, **fields: object
    ) -> None:
        """Merge a settings patch and apply it if a session is current.

        Pass either a :class:`DesiredSettings` or keyword fields
        (``model``, ``plan_mode``, ``permission_mode``,
        ``max_thinking_tokens``; camelCase aliases are accepted too).

        Without a current session nothing is sent; the patch is applied by
        :meth:`sync` once a session exists.

        Raises:
            TypeError: If both a patch object and keyword fields are given.
            pydantic.ValidationError: If a field has an invalid value.
        """
        if patch is not None and fields:
            raise TypeError("Pass either a DesiredSettings patch or keyword fields")
        if patch is None:
            patch = DesiredSettings.model_validate(fields)

        self._desired = self._desired.merged(patch)

        session = self._current_session()
        if session is None:
            logger.debug("No current session; deferring settings %s", patch.to_wire())
            return

        await self._call(
            AcpMethods.SETTINGS_CHANGE,
            {"sessionId": session.id, **patch.to_wire()},
        )

    async def sync(self) -> bool:
        """Send the full desired settings to the current session.

        Returns:
            True if a settings-change call was issued.
        """
        session = self._current_session()
        if session is None or self._desired.is_empty():
            return False

        settings = self._desired.to_wire()
        logger.debug("Syncing settings to session %s: %s", session.id, settings)
        await self._call(
            AcpMethods.SETTINGS_CHANGE,
            {"sessionId": session.id, **settings},
        )
        return True
