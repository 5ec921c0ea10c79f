"""Click CLI definitions - main entry point."""

from __future__ import annotations

import logging
import sys

import click

from agentbridge.commands.call_cmd import run_command, send_command
from agentbridge.commands.config_cmd import config_group
from agentbridge.commands.provider_cmd import provider_group
from agentbridge.commands.session_cmd import session_group


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, debug: bool) -> None:
    """agentbridge - Run coding agent CLIs behind one event stream."""
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


cli.add_command(run_command, "run")
cli.add_command(send_command, "send")
cli.add_command(session_group, "session")
cli.add_command(provider_group, "provider")
cli.add_command(config_group, "config")


if __name__ == "__main__":
    cli()
