"""Language-service requests (``lsp/*``) from the agent."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from acp_bridge.methods import AcpMethods
from acp_bridge.types import JsonValue

if TYPE_CHECKING:
    from acp_bridge.client import AcpClient


class LanguageService(Protocol):
    """Symbol and diagnostic lookups an editor host can answer."""

    async def go_to_definition(self, params: JsonValue) -> JsonValue: ...

    async def find_references(self, params: JsonValue) -> JsonValue: ...

    async def hover(self, params: JsonValue) -> JsonValue: ...

    async def get_diagnostics(self, params: JsonValue) -> JsonValue: ...


class NullLanguageService:
    """Answers every lookup with an empty result (hosts without an editor)."""

    async def go_to_definition(self, params: JsonValue) -> JsonValue:
        return {}

    async def find_references(self, params: JsonValue) -> JsonValue:
        return {"references": []}

    async def hover(self, params: JsonValue) -> JsonValue:
        return {}

    async def get_diagnostics(self, params: JsonValue) -> JsonValue:
        return {"diagnostics": []}


def register_language_handlers(client: AcpClient, service: LanguageService) -> None:
    client.register_handler(AcpMethods.LSP_GO_TO_DEFINITION, service.go_to_definition)
    client.register_handler(AcpMethods.LSP_FIND_REFERENCES, service.find_references)
    client.register_handler(AcpMethods.LSP_HOVER, service.hover)
    client.register_handler(AcpMethods.LSP_GET_DIAGNOSTICS, service.get_diagnostics)
