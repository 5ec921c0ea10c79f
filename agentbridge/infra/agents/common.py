"""Helpers shared by agent providers: message composition and line decoding."""

from __future__ import annotations

import json
import logging

from agentbridge.models.agent import CallConfig, Verbosity

logger = logging.getLogger(__name__)

VERBOSITY_HINTS = {
    Verbosity.DIRECT: (
        "[Response Style: Direct - minimal questions, implement immediately, "
        "1-3 sentences max]"
    ),
    Verbosity.BALANCED: (
        "[Response Style: Balanced - ask 1-2 key questions if needed, then implement]"
    ),
    Verbosity.THOROUGH: (
        "[Response Style: Thorough - ask clarifying questions, explore options "
        "before implementing]"
    ),
}

PREFERENCES_PREFIX = "User preferences:"
MESSAGE_SEPARATOR = "\n\n"

# Display strings
DONE_DISPLAY = "   ✓ Done"
ERROR_GLYPH = "❌"
DEFAULT_ERROR_MESSAGE = "An error occurred"

COMMAND_PREVIEW_LIMIT = 60


def verbosity_hint(agent_verbosity: str | Verbosity | None) -> str:
    """Return the response-style hint, BALANCED for anything unrecognized."""
    return VERBOSITY_HINTS[Verbosity.parse(agent_verbosity)]


def compose_message(config: CallConfig) -> str:
    """Build the final positional message: hint, preferences, user text.

    Preferences are only sent when starting a new session; resumed sessions
    already carry them.
    """
    parts = [verbosity_hint(config.agent_verbosity)]
    if not config.session_id and config.custom_instructions:
        instructions = config.custom_instructions.strip()
        if instructions:
            parts.append(f"{PREFERENCES_PREFIX} {instructions}")
    parts.append(config.message)
    return MESSAGE_SEPARATOR.join(parts)


def truncate_command(command: str, limit: int = COMMAND_PREVIEW_LIMIT) -> str:
    if len(command) > limit:
        return f"{command[:limit]}..."
    return command


def error_display(message: str) -> str:
    return f"{ERROR_GLYPH} Error: {message}"


def decode_line(line: str | bytes) -> dict | None:
    """Decode one JSON object line, returning None for anything else."""
    try:
        data = json.loads(line)
    except (ValueError, TypeError, RecursionError):
        logger.debug("Ignoring non-JSON line: %.80r", line)
        return None
    if not isinstance(data, dict):
        return None
    return data


def get_str(mapping: object, key: str) -> str | None:
    """Fetch a string field from a JSON object, tolerating schema drift."""
    if not isinstance(mapping, dict):
        return None
    value = mapping.get(key)
    return value if isinstance(value, str) else None


def get_dict(mapping: object, key: str) -> dict | None:
    if not isinstance(mapping, dict):
        return None
    value = mapping.get(key)
    return value if isinstance(value, dict) else None
