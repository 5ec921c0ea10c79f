"""OpenCode CLI provider."""

from __future__ import annotations

import logging

from agentbridge.infra.agents.common import (
    DEFAULT_ERROR_MESSAGE,
    DONE_DISPLAY,
    compose_message,
    decode_line,
    error_display,
    get_dict,
    get_str,
    truncate_command,
)
from agentbridge.models.agent import CallConfig, ProviderKind
from agentbridge.models.stream_event import Error, ParsedLine, Text, ToolResult, ToolUse

logger = logging.getLogger(__name__)

_FILE_TOOLS = {
    "read": ("📖", "Reading"),
    "edit": ("✏️ ", "Editing"),
    "write": ("📝", "Writing"),
}

_SEARCH_TOOLS = {
    "grep": "🔍",
    "glob": "📂",
}


class OpenCodeProvider:
    """Provider for the OpenCode CLI.

    Generates commands like:
        opencode run --format json [--model MODEL] [--session ID] MESSAGE

    OpenCode reads AGENTS.md from the project on its own, so the call
    context is not forwarded; only the style hint and user preferences are
    folded into the message.
    """

    kind = ProviderKind.OPENCODE

    def build_args(self, config: CallConfig, context: str = "") -> list[str]:
        args = ["run", "--format", "json"]

        if config.model:
            args.extend(["--model", config.model])

        if config.session_id:
            args.extend(["--session", config.session_id])

        args.append(compose_message(config))
        return args

    def parse_stream_line(self, line: str | bytes, project_path: str) -> ParsedLine:
        event = decode_line(line)
        if event is None:
            return ParsedLine()

        event_type = get_str(event, "type")
        part = get_dict(event, "part")

        if event_type == "error":
            message = _error_message(event, part)
            return ParsedLine(
                event=Error(project_path=project_path, message=message),
                display_text=error_display(message),
            )

        if part is None:
            return ParsedLine()

        if event_type == "text":
            text = get_str(part, "text")
            if not text:
                return ParsedLine()
            return ParsedLine(
                event=Text(project_path=project_path, content=text),
                assistant_content=text,
                display_text=text,
            )

        if event_type == "tool_use":
            tool = get_str(part, "tool") or "unknown"
            description, file = format_tool_description(tool, get_dict(part, "state"))
            return ParsedLine(
                event=ToolUse(
                    project_path=project_path,
                    tool=tool,
                    file=file,
                    description=description,
                ),
                display_text=description,
            )

        if event_type == "step_finish":
            if get_str(part, "reason") == "tool-calls":
                return ParsedLine(
                    event=ToolResult(project_path=project_path, success=True),
                    display_text=DONE_DISPLAY,
                )
            return ParsedLine()

        # step_start and anything unrecognized are silent
        if event_type != "step_start":
            logger.debug("Unhandled OpenCode event type: %s", event_type)
        return ParsedLine()

    def extract_session_id(self, line: str | bytes) -> str | None:
        event = decode_line(line)
        if event is None:
            return None
        return get_str(event, "sessionID") or get_str(get_dict(event, "part"), "sessionID")


def _error_message(event: dict, part: dict | None) -> str:
    # Newer CLI builds report {"error": {"name": ..., "data": {"message": ...}}}
    error = get_dict(event, "error")
    return (
        get_str(part, "text")
        or get_str(error, "message")
        or get_str(get_dict(error, "data"), "message")
        or DEFAULT_ERROR_MESSAGE
    )


def format_tool_description(tool: str, state: dict | None) -> tuple[str, str | None]:
    """Describe a tool call for display.

    Returns ``(display, file_path)``; the file path is only reported for
    tools that operate on a single file.
    """
    tool_input = get_dict(state, "input")
    title = get_str(state, "title")

    if tool in _FILE_TOOLS:
        glyph, action = _FILE_TOOLS[tool]
        file = get_str(tool_input, "filePath")
        return f"{glyph} {action}: {title or file or 'file'}", file

    if tool == "bash":
        command = get_str(tool_input, "command") or "command"
        return f"💻 Running: {truncate_command(command)}", None

    if tool in _SEARCH_TOOLS:
        pattern = get_str(tool_input, "pattern") or "..."
        return f"{_SEARCH_TOOLS[tool]} Searching: {pattern}", None

    return f"🔧 Using tool: {tool}", None
