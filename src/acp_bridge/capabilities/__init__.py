"""Host capabilities the agent can call back into (fs, terminal, lsp, rules)."""

from acp_bridge.capabilities.filesystem import (
    WorkspaceFileSystem,
    register_filesystem_handlers,
    resolve_workspace_path,
)
from acp_bridge.capabilities.language import (
    LanguageService,
    NullLanguageService,
    register_language_handlers,
)
from acp_bridge.capabilities.permissions import (
    PermissionRuleStore,
    register_permission_handlers,
)
from acp_bridge.capabilities.terminal import TerminalManager, register_terminal_handlers

__all__ = [
    "LanguageService",
    "NullLanguageService",
    "PermissionRuleStore",
    "TerminalManager",
    "WorkspaceFileSystem",
    "register_filesystem_handlers",
    "register_language_handlers",
    "register_permission_handlers",
    "register_terminal_handlers",
    "resolve_workspace_path",
]
