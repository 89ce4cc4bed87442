"""ACP method names used on the wire."""

from typing import Final


class AcpMethods:
    """Namespace of JSON-RPC method names exchanged with the agent."""

    # Host -> agent
    INITIALIZE: Final = "initialize"
    SESSION_NEW: Final = "session/new"
    SESSION_RESUME: Final = "session/resume"
    SESSION_LIST: Final = "session/list"
    SESSION_SWITCH: Final = "session/switch"
    SESSION_DELETE: Final = "session/delete"
    SESSION_PROMPT: Final = "session/prompt"
    SESSION_PROMPT_PERSISTENT: Final = "session/promptPersistent"
    SESSION_MODE_STATUS: Final = "session/modeStatus"
    SESSION_CANCEL: Final = "session/cancel"
    SETTINGS_CHANGE: Final = "settings/change"
    TOOL_CONFIRM: Final = "tool/confirm"
    FILE_ACCEPT: Final = "file/accept"
    FILE_REJECT: Final = "file/reject"
    HISTORY_LIST: Final = "history/list"
    HISTORY_LOAD: Final = "history/load"
    HISTORY_DELETE: Final = "history/delete"

    # Agent -> host
    FS_READ_TEXT_FILE: Final = "fs/read_text_file"
    FS_WRITE_TEXT_FILE: Final = "fs/write_text_file"
    TERMINAL_CREATE: Final = "terminal/create"
    TERMINAL_OUTPUT: Final = "terminal/output"
    TERMINAL_WAIT_FOR_EXIT: Final = "terminal/wait_for_exit"
    TERMINAL_KILL: Final = "terminal/kill"
    TERMINAL_RELEASE: Final = "terminal/release"
    LSP_GO_TO_DEFINITION: Final = "lsp/goToDefinition"
    LSP_FIND_REFERENCES: Final = "lsp/findReferences"
    LSP_HOVER: Final = "lsp/hover"
    LSP_GET_DIAGNOSTICS: Final = "lsp/getDiagnostics"
    PERMISSION_RULES_LIST: Final = "permissionRules/list"
    PERMISSION_RULE_ADD: Final = "permissionRule/add"
    PERMISSION_RULE_UPDATE: Final = "permissionRule/update"
    PERMISSION_RULE_DELETE: Final = "permissionRule/delete"

    # Agent -> host (notifications)
    SESSION_UPDATE: Final = "session/update"
    SESSION_COMPLETE: Final = "session/complete"


NOTIFICATION_TOPICS: Final = (AcpMethods.SESSION_UPDATE, AcpMethods.SESSION_COMPLETE)
