"""CLI handlers for config commands."""

from __future__ import annotations

import json

import click
import tomli_w

from agentbridge.config import DEFAULT_CONFIG_PATH, init_config, load_config

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]

SECTIONS = ("general", "driver", "providers")


@click.group("config")
def config_group():
    """Manage configuration."""
    pass


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
def config_init(force: bool):
    """Create default configuration file."""
    if DEFAULT_CONFIG_PATH.exists() and not force:
        click.echo(f"Config already exists at {DEFAULT_CONFIG_PATH} (use --force to replace it)")
        return
    path = init_config()
    click.echo(f"Configuration created at: {path}")


@config_group.command("show")
def config_show():
    """Show current configuration."""
    config = load_config()
    driver = config.driver
    click.echo(f"Config file: {config.config_path}")
    click.echo(f"  Default provider: {config.default_provider}")
    click.echo(f"  Agent verbosity: {config.agent_verbosity}")
    click.echo(f"  State dir: {config.state_dir}")
    click.echo(
        f"  Driver: grace={driver.grace_period}s, drain={driver.drain_timeout}s, "
        f"stderr cap={driver.stderr_cap} bytes"
    )
    if driver.stall_timeout:
        click.echo(f"  Stall detection: {driver.stall_timeout}s x {driver.max_stalls}")
    else:
        click.echo("  Stall detection: disabled")

    click.echo("\n  Providers:")
    for name, prov in config.providers.items():
        line = f"    {name}: model={prov.default_model or 'default'}"
        if prov.max_turns:
            line += f", max_turns={prov.max_turns}"
        click.echo(line)


@config_group.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str):
    """Set a configuration value.

    KEY uses dot notation, e.g. general.default_provider,
    driver.stall_timeout or providers.claude.allowed_tools.
    """
    parts = key.split(".")
    if len(parts) < 2 or parts[0] not in SECTIONS:
        raise click.BadParameter(
            f"expected <section>.<name> with section one of {', '.join(SECTIONS)}",
            param_hint="KEY",
        )

    path = DEFAULT_CONFIG_PATH
    if not path.exists():
        click.echo("No config file found. Run 'agentbridge config init' first.", err=True)
        return

    with open(path, "rb") as f:
        data = tomllib.load(f)

    section = data
    for part in parts[:-1]:
        section = section.setdefault(part, {})
        if not isinstance(section, dict):
            raise click.BadParameter(f"{part} is not a table", param_hint="KEY")
    section[parts[-1]] = _coerce(value)

    with open(path, "wb") as f:
        tomli_w.dump(data, f)

    click.echo(f"Set {key} = {value}")


def _coerce(value: str):
    """Interpret a command-line value as the TOML type it looks like."""
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if value.startswith(("[", "{")):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value
