"""Workspace-confined text file access for ``fs/*`` agent requests."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

import anyio
from pydantic import BaseModel, Field

from acp_bridge.exceptions import WorkspacePathError
from acp_bridge.methods import AcpMethods
from acp_bridge.types import JsonValue

if TYPE_CHECKING:
    from acp_bridge.client import AcpClient

logger = logging.getLogger(__name__)


class ReadTextFileParams(BaseModel):
    path: str = Field(min_length=1)
    line: int | None = Field(default=None, ge=0)
    limit: int | None = Field(default=None, ge=0)


class WriteTextFileParams(BaseModel):
    path: str = Field(min_length=1)
    content: str


def resolve_workspace_path(root: Path, path: str) -> Path:
    """Resolve *path* against *root*, rejecting anything outside it.

    Raises:
        WorkspacePathError: If the normalized path escapes *root*.
    """
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = root / candidate
    resolved = Path(os.path.normpath(candidate))
    if resolved != root and not resolved.is_relative_to(root):
        raise WorkspacePathError(f"Path outside workspace is not allowed: {path}")
    return resolved


class WorkspaceFileSystem:
    """Reads and writes UTF-8 text files below a workspace root.

    Args:
        root: Workspace directory; relative request paths resolve against it.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(os.path.normpath(Path(root).absolute()))

    @property
    def root(self) -> Path:
        return self._root

    async def read_text_file(self, params: JsonValue) -> dict[str, JsonValue]:
        """Return ``{"content": ...}``, optionally a window of lines.

        ``line`` is 1-based; ``limit`` caps the number of lines returned.
        """
        request = ReadTextFileParams.model_validate(params)
        full_path = resolve_workspace_path(self._root, request.path)
        content = await anyio.Path(full_path).read_text(encoding="utf-8")

        if request.line is None and request.limit is None:
            return {"content": content}

        lines = content.split("\n")
        start = (request.line or 1) - 1
        end = start + request.limit if request.limit else len(lines)
        return {"content": "\n".join(lines[start:end])}

    async def write_text_file(self, params: JsonValue) -> dict[str, JsonValue]:
        """Write the file, creating parent directories as needed."""
        request = WriteTextFileParams.model_validate(params)
        full_path = resolve_workspace_path(self._root, request.path)
        await anyio.Path(full_path.parent).mkdir(parents=True, exist_ok=True)
        await anyio.Path(full_path).write_text(request.content, encoding="utf-8")
        logger.debug("Wrote %d characters to %s", len(request.content), full_path)
        return {"success": True}


def register_filesystem_handlers(client: AcpClient, filesystem: WorkspaceFileSystem) -> None:
    client.register_handler(AcpMethods.FS_READ_TEXT_FILE, filesystem.read_text_file)
    client.register_handler(AcpMethods.FS_WRITE_TEXT_FILE, filesystem.write_text_file)
