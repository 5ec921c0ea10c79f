"""Agent provider protocol definition."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from agentbridge.models.agent import CallConfig, ProviderKind
from agentbridge.models.stream_event import ParsedLine


@runtime_checkable
class AgentProvider(Protocol):
    """Protocol for coding agent CLI adapters.

    Each provider knows how to build the argument vector for its CLI and
    how to read that CLI's line-delimited JSON output. All operations are
    pure: no I/O and no mutable state, so a single instance can be shared
    between concurrent calls.
    """

    kind: ProviderKind

    def build_args(self, config: CallConfig, context: str = "") -> list[str]:
        """Build the CLI argument vector for one agent turn."""
        ...

    def parse_stream_line(self, line: str | bytes, project_path: str) -> ParsedLine:
        """Normalize one output line. Never raises."""
        ...

    def extract_session_id(self, line: str | bytes) -> str | None:
        """Return the session id announced on this line, if any."""
        ...
