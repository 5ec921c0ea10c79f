"""Configuration loading: TOML file + environment variable overlay."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]


DEFAULT_CONFIG_DIR = Path.home() / ".config" / "agentbridge"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"

DEFAULT_CONFIG_TOML = """\
[general]
default_provider = "claude"
agent_verbosity = "balanced"
# Per-project directory holding saved session ids
state_dir = ".agentbridge"

[driver]
grace_period = 3.0
stderr_cap = 8192
drain_timeout = 1.0
# Seconds without output before a warning; 0 disables stall detection
stall_timeout = 900
max_stalls = 2

[providers.claude]
default_model = ""
max_turns = 15
allowed_tools = ["Edit", "Write", "Read", "Bash", "Grep", "Glob", "WebSearch", "WebFetch", "Skill"]

[providers.opencode]
default_model = ""
"""


@dataclass
class DriverConfig:
    grace_period: float = 3.0
    stderr_cap: int = 8192
    drain_timeout: float = 1.0
    stall_timeout: float = 900.0
    max_stalls: int = 2


@dataclass
class ProviderSettings:
    default_model: str = ""
    max_turns: int = 0
    allowed_tools: tuple[str, ...] = ()

    def as_kwargs(self) -> dict:
        """Keyword settings understood by the provider registry."""
        return {"max_turns": self.max_turns, "allowed_tools": self.allowed_tools}


@dataclass
class AppConfig:
    default_provider: str = "claude"
    agent_verbosity: str = "balanced"
    state_dir: str = ".agentbridge"
    driver: DriverConfig = field(default_factory=DriverConfig)
    providers: dict[str, ProviderSettings] = field(default_factory=dict)
    config_path: Path = DEFAULT_CONFIG_PATH

    def provider_settings(self, name: str) -> ProviderSettings:
        return self.providers.get(name) or ProviderSettings()


def _env_overlay(config: AppConfig) -> None:
    """Override config values with environment variables where applicable."""
    if provider := os.environ.get("AGENTBRIDGE_PROVIDER"):
        config.default_provider = provider
    if verbosity := os.environ.get("AGENTBRIDGE_VERBOSITY"):
        config.agent_verbosity = verbosity
    if state_dir := os.environ.get("AGENTBRIDGE_STATE_DIR"):
        config.state_dir = state_dir


def _parse_provider(data: dict) -> ProviderSettings:
    return ProviderSettings(
        default_model=data.get("default_model", ""),
        max_turns=data.get("max_turns", 0),
        allowed_tools=tuple(data.get("allowed_tools", ())),
    )


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from TOML file with env var overlay."""
    path = config_path or DEFAULT_CONFIG_PATH

    if path.exists():
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    else:
        raw = tomllib.loads(DEFAULT_CONFIG_TOML)

    general = raw.get("general", {})
    driver_raw = raw.get("driver", {})
    providers_raw = raw.get("providers", {})

    config = AppConfig(
        default_provider=general.get("default_provider", "claude"),
        agent_verbosity=general.get("agent_verbosity", "balanced"),
        state_dir=general.get("state_dir", ".agentbridge"),
        driver=DriverConfig(
            grace_period=float(driver_raw.get("grace_period", 3.0)),
            stderr_cap=driver_raw.get("stderr_cap", 8192),
            drain_timeout=float(driver_raw.get("drain_timeout", 1.0)),
            stall_timeout=float(driver_raw.get("stall_timeout", 900)),
            max_stalls=driver_raw.get("max_stalls", 2),
        ),
        providers={name: _parse_provider(data) for name, data in providers_raw.items()},
        config_path=path,
    )

    _env_overlay(config)
    return config


def init_config(config_path: Path | None = None) -> Path:
    """Create default config file."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_TOML)
    return path
