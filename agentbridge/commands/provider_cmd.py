"""CLI handlers for provider information and install checks."""

from __future__ import annotations

import click

from agentbridge.commands._helpers import _run
from agentbridge.infra.prerequisites import check_all, check_provider
from agentbridge.models.agent import ProviderKind


@click.group("provider")
def provider_group():
    """Inspect supported agent providers."""
    pass


@provider_group.command("list")
def provider_list():
    """List supported providers."""
    for kind in ProviderKind:
        click.echo(f"  {kind.value:<10} {kind.display_name} (binary: {kind.cli_binary})")


@provider_group.command("models")
@click.argument("provider", type=click.Choice([k.value for k in ProviderKind]))
def provider_models(provider: str):
    """List known models for a provider."""
    for model_id, label in ProviderKind(provider).available_models:
        click.echo(f"  {model_id:<28} {label}")


@provider_group.command("check")
@click.argument("provider", required=False, type=click.Choice([k.value for k in ProviderKind]))
@click.option("--timeout", default=5.0, show_default=True, help="Seconds to wait for --version")
def provider_check(provider: str | None, timeout: float):
    """Check that provider CLIs are installed."""
    if provider:
        statuses = [_run(check_provider(ProviderKind(provider), timeout))]
    else:
        statuses = _run(check_all(timeout))

    missing = False
    for status in statuses:
        kind = status.kind
        if status.installed:
            click.echo(f"  {kind.display_name}: installed ({status.version or 'unknown version'})")
            click.echo(f"    Sign in with: {kind.auth_command}")
        else:
            missing = True
            click.echo(f"  {kind.display_name}: not installed")
            click.echo(f"    Install with: {kind.install_command}")
        if status.error:
            click.echo(f"    {status.error}", err=True)

    if missing:
        raise SystemExit(1)
