"""CLI handlers for running agent calls."""

from __future__ import annotations

import asyncio
import os

import click

from agentbridge.commands._helpers import ConsoleSink, _run, on_interrupt
from agentbridge.config import load_config
from agentbridge.models.agent import CallConfig, ProviderKind
from agentbridge.services.call_service import CallService, build_driver, run_call

PROVIDER_CHOICE = click.Choice([k.value for k in ProviderKind])
VERBOSITY_CHOICE = click.Choice(["direct", "balanced", "thorough"])


@click.command("run")
@click.argument("provider", type=PROVIDER_CHOICE)
@click.argument("message")
@click.option("--project", "-C", "project_path", default=".", help="Project directory")
@click.option("--model", "-m", default="", help="Model to use")
@click.option("--session", "-s", "session_id", default="", help="Session id to resume")
@click.option("--instructions", "-i", default="", help="Custom instructions for a new session")
@click.option("--verbosity", "-v", type=VERBOSITY_CHOICE, default=None, help="Response style")
@click.option("--json", "as_json", is_flag=True, help="Print events as JSON lines")
def run_command(
    provider: str,
    message: str,
    project_path: str,
    model: str,
    session_id: str,
    instructions: str,
    verbosity: str | None,
    as_json: bool,
):
    """Run a single agent turn without touching saved sessions."""
    config = load_config()
    settings = config.provider_settings(provider)
    try:
        call_config = CallConfig(
            message=message,
            project_path=os.path.abspath(project_path),
            model=model or settings.default_model or None,
            session_id=session_id or None,
            custom_instructions=instructions or None,
            agent_verbosity=verbosity or config.agent_verbosity,
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    async def _call():
        cancel = asyncio.Event()
        on_interrupt(cancel.set)
        return await run_call(
            provider,
            call_config,
            ConsoleSink(as_json=as_json),
            cancel,
            driver=build_driver(config),
            provider_settings=settings.as_kwargs(),
        )

    result = _run(_call())
    if not result.status.is_done:
        raise SystemExit(1)


@click.command("send")
@click.argument("message")
@click.option("--provider", "-p", type=PROVIDER_CHOICE, default=None, help="Agent provider")
@click.option("--project", "-C", "project_path", default=".", help="Project directory")
@click.option("--model", "-m", default="", help="Model to use")
@click.option("--instructions", "-i", default="", help="Custom instructions for a new session")
@click.option("--verbosity", "-v", type=VERBOSITY_CHOICE, default=None, help="Response style")
@click.option("--json", "as_json", is_flag=True, help="Print events as JSON lines")
def send_command(
    message: str,
    provider: str | None,
    project_path: str,
    model: str,
    instructions: str,
    verbosity: str | None,
    as_json: bool,
):
    """Send a message to the project's agent, resuming its last session."""
    config = load_config()
    service = CallService(config)
    project_path = os.path.abspath(project_path)

    async def _send():
        on_interrupt(service.interrupt, project_path)
        return await service.send(
            project_path,
            message,
            ConsoleSink(as_json=as_json),
            kind=provider,
            model=model or None,
            custom_instructions=instructions or None,
            agent_verbosity=verbosity,
        )

    try:
        result = _run(_send())
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    if not result.status.is_done:
        raise SystemExit(1)
    if result.reply and not as_json:
        click.echo("")
        click.secho(result.reply, bold=True)
