"""Agent provider domain models."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from enum import Enum


class ProviderKind(str, Enum):
    CLAUDE = "claude"
    OPENCODE = "opencode"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def cli_binary(self) -> str:
        """Name of the executable resolved on PATH."""
        return _CLI_BINARIES[self]

    @property
    def install_command(self) -> str:
        return _INSTALL_COMMANDS[self]

    @property
    def auth_command(self) -> str:
        return _AUTH_COMMANDS[self]

    @property
    def available_models(self) -> tuple[tuple[str, str], ...]:
        """(model_id, label) pairs offered for this provider."""
        return _AVAILABLE_MODELS[self]

    @property
    def session_filename(self) -> str:
        return f"{self.value}_session.txt"


_DISPLAY_NAMES = {
    ProviderKind.CLAUDE: "Claude Code CLI",
    ProviderKind.OPENCODE: "OpenCode",
}

_CLI_BINARIES = {
    ProviderKind.CLAUDE: "claude",
    ProviderKind.OPENCODE: "opencode",
}

_INSTALL_COMMANDS = {
    ProviderKind.CLAUDE: "npm i -g @anthropic-ai/claude-code",
    ProviderKind.OPENCODE: "curl -fsSL https://opencode.ai/install | bash",
}

_AUTH_COMMANDS = {
    ProviderKind.CLAUDE: "claude auth",
    ProviderKind.OPENCODE: "opencode auth login",
}

_AVAILABLE_MODELS = {
    ProviderKind.CLAUDE: (
        ("sonnet", "Claude Sonnet (Default)"),
        ("opus", "Claude Opus (Most Capable)"),
        ("haiku", "Claude Haiku (Fastest)"),
    ),
    ProviderKind.OPENCODE: (
        ("anthropic/claude-sonnet-4", "Claude Sonnet 4 (Anthropic)"),
        ("anthropic/claude-opus-4", "Claude Opus 4 (Anthropic)"),
        ("openai/gpt-4o", "GPT-4o (OpenAI)"),
        ("openai/o1", "o1 (OpenAI)"),
        ("google/gemini-2.0-flash", "Gemini 2.0 Flash (Google)"),
        ("ollama/llama3", "Llama 3 (Local/Ollama)"),
    ),
}


class Verbosity(str, Enum):
    DIRECT = "direct"
    BALANCED = "balanced"
    THOROUGH = "thorough"

    @classmethod
    def parse(cls, value: str | None) -> Verbosity:
        """Resolve a verbosity string, falling back to BALANCED."""
        try:
            return cls(value)
        except ValueError:
            return cls.BALANCED


@dataclass(frozen=True)
class CommandSpec:
    """Specification for launching an agent subprocess."""

    program: str
    args: tuple[str, ...] = ()
    cwd: str | None = None

    @property
    def full_command(self) -> str:
        """Return the full command string for shell display."""
        parts = [self.program, *self.args]
        return " ".join(shlex.quote(p) for p in parts)


@dataclass(frozen=True)
class CallConfig:
    """Request to run a single agent turn."""

    message: str
    project_path: str = ""
    model: str | None = None
    session_id: str | None = None
    custom_instructions: str | None = None
    agent_verbosity: str | None = Verbosity.BALANCED.value

    def __post_init__(self) -> None:
        if not self.message or not self.message.strip():
            raise ValueError("CallConfig.message must not be empty")

    @property
    def is_resume(self) -> bool:
        return bool(self.session_id)

    @property
    def verbosity(self) -> Verbosity:
        return Verbosity.parse(self.agent_verbosity)
