"""Basic usage example for acp-bridge.

Starts an ACP agent, exposes the current directory to it and prints the
streamed session updates for one prompt.

Prerequisites:
    - An ACP agent executable available in PATH (pass its name as the
      first argument; defaults to ``acp-agent``)
"""

import asyncio
import os
import sys

from acp_bridge import (
    AgentNotFoundError,
    RemoteError,
    RequestTimeoutError,
    SessionComplete,
    SessionUpdate,
    WorkspaceFileSystem,
    register_filesystem_handlers,
    spawn_agent,
)


async def main(command: str) -> None:
    """Run one prompt against the agent and print what it streams."""
    workspace = os.getcwd()
    process, client = await spawn_agent(command, cwd=workspace)

    def on_update(update: SessionUpdate) -> None:
        if update.type == "text":
            print(update.content, end="", flush=True)

    def on_complete(complete: SessionComplete) -> None:
        print()
        print("=== Usage ===")
        if complete.usage is not None:
            print(f"Input tokens: {complete.usage.input_tokens}")
            print(f"Output tokens: {complete.usage.output_tokens}")

    try:
        register_filesystem_handlers(client, WorkspaceFileSystem(workspace))
        client.on_session_update(on_update)
        client.on_session_complete(on_complete)

        await client.initialize(
            {
                "clientInfo": {"name": "acp-bridge-example", "version": "0.1.0"},
                "capabilities": {"streaming": True},
                "workspaceFolders": [workspace],
            }
        )
        await client.change_settings(permission_mode="plan")
        await client.prompt("What does this repository do?")
    finally:
        await client.shutdown()
        if process.returncode is None:
            process.terminate()
        await process.wait()


if __name__ == "__main__":
    try:
        asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "acp-agent"))
    except AgentNotFoundError as e:
        print(f"Agent not found: {e}", file=sys.stderr)
        sys.exit(1)
    except RequestTimeoutError as e:
        print(f"Agent did not answer: {e}", file=sys.stderr)
        sys.exit(1)
    except RemoteError as e:
        print(f"Agent reported an error: {e}", file=sys.stderr)
        sys.exit(1)
