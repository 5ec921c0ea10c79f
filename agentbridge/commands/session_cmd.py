"""CLI handlers for saved agent sessions."""

from __future__ import annotations

import os

import click

from agentbridge.config import load_config
from agentbridge.infra.session_store import SessionStore
from agentbridge.models.agent import ProviderKind


@click.group("session")
def session_group():
    """Inspect or reset saved agent sessions."""
    pass


@session_group.command("show")
@click.option("--project", "-C", "project_path", default=".", help="Project directory")
def session_show(project_path: str):
    """Show the saved session id of every provider for a project."""
    config = load_config()
    store = SessionStore(config.state_dir)
    project_path = os.path.abspath(project_path)
    click.echo(f"Project: {project_path}")
    for kind in ProviderKind:
        session_id = store.load(project_path, kind)
        click.echo(f"  {kind.display_name}: {session_id or 'none'}")


@session_group.command("reset")
@click.argument("provider", type=click.Choice([k.value for k in ProviderKind]))
@click.option("--project", "-C", "project_path", default=".", help="Project directory")
def session_reset(provider: str, project_path: str):
    """Forget a provider's saved session so the next message starts fresh."""
    config = load_config()
    store = SessionStore(config.state_dir)
    kind = ProviderKind(provider)
    if store.clear(os.path.abspath(project_path), kind):
        click.echo(f"Cleared {kind.display_name} session.")
    else:
        click.echo(f"No saved {kind.display_name} session.")
