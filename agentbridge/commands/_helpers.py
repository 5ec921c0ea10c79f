"""CLI helpers: terminal rendering of stream events."""

from __future__ import annotations

import asyncio
import json
import signal

import click

from agentbridge.infra.agents.common import DONE_DISPLAY, error_display
from agentbridge.models.stream_event import (
    Error,
    StreamEvent,
    TerminalStatus,
    Text,
    ToolResult,
    ToolUse,
)


def _run(coro):
    """Run an async function from sync context."""
    return asyncio.run(coro)


def on_interrupt(callback, *args) -> None:
    """Route Ctrl-C to a callback instead of killing the CLI outright.

    Must be called from inside the running loop.
    """
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, callback, *args)
    except NotImplementedError:
        # Windows event loops; Ctrl-C falls back to KeyboardInterrupt
        pass


class ConsoleSink:
    """Writes events to the terminal as they arrive.

    In JSON mode every event (including the terminal one) is one JSON
    object per line, which makes the output easy to pipe into other tools.
    """

    def __init__(self, as_json: bool = False) -> None:
        self.as_json = as_json

    async def deliver(self, event: StreamEvent) -> None:
        if self.as_json:
            click.echo(json.dumps(event.to_dict()))
            return
        if isinstance(event, Text):
            click.echo(event.content)
        elif isinstance(event, ToolUse):
            click.secho(event.description, fg="cyan")
        elif isinstance(event, ToolResult):
            click.secho(DONE_DISPLAY if event.success else "   ✗ Failed", fg="green" if event.success else "red")
        elif isinstance(event, Error):
            click.secho(error_display(event.message), fg="red", err=True)

    async def complete(
        self, project_path: str, session_id: str | None, transcript: str, status: TerminalStatus
    ) -> None:
        if self.as_json:
            click.echo(json.dumps(status.to_event(project_path, transcript, session_id).to_dict()))
            return
        if status.is_done:
            click.secho(f"[{status}]", fg="green", err=True)
        else:
            click.secho(f"[{status}]", fg="yellow", err=True)
            if status.diagnostic:
                click.echo(status.diagnostic, err=True)
        if session_id:
            click.echo(f"Session: {session_id}", err=True)

    async def fail(self, project_path: str, diagnostic: str) -> None:
        if self.as_json:
            click.echo(json.dumps(TerminalStatus.failed(diagnostic).to_event(project_path).to_dict()))
            return
        click.secho(f"Failed: {diagnostic}", fg="red", err=True)
