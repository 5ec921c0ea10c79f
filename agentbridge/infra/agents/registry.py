"""Agent provider factory/registry."""

from __future__ import annotations

from agentbridge.infra.agents.base import AgentProvider
from agentbridge.infra.agents.claude_code import ClaudeCodeProvider
from agentbridge.infra.agents.opencode import OpenCodeProvider
from agentbridge.models.agent import ProviderKind

_PROVIDERS: dict[ProviderKind, type] = {
    ProviderKind.CLAUDE: ClaudeCodeProvider,
    ProviderKind.OPENCODE: OpenCodeProvider,
}

_CLAUDE_SETTINGS = ("max_turns", "allowed_tools")


def get_provider(kind: ProviderKind | str, **settings) -> AgentProvider:
    """Get a provider instance by kind.

    Extra settings are forwarded to providers that accept them
    (``max_turns`` and ``allowed_tools`` for ClaudeCodeProvider); empty
    values are ignored so config defaults can be passed straight through.
    """
    if isinstance(kind, str):
        kind = ProviderKind(kind)

    cls = _PROVIDERS.get(kind)
    if cls is None:
        raise ValueError(f"Unknown agent provider: {kind}")

    if kind == ProviderKind.CLAUDE:
        kwargs = {k: settings[k] for k in _CLAUDE_SETTINGS if settings.get(k)}
        return cls(**kwargs)
    return cls()
