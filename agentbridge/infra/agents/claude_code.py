"""Claude Code CLI provider."""

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
from agentbridge.models.agent import CallConfig, ProviderKind, Verbosity
from agentbridge.models.stream_event import Error, ParsedLine, Text, ToolResult, ToolUse

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_TOOLS = (
    "Edit", "Write", "Read", "Bash", "Grep", "Glob", "WebSearch", "WebFetch", "Skill",
)
DEFAULT_MAX_TURNS = 15

# Longer guidance appended to the system prompt when a session starts.
STYLE_INSTRUCTIONS = {
    Verbosity.DIRECT: """
## Response Style: Direct

- Do NOT ask clarifying questions unless you truly cannot proceed
- Make sensible default choices and implement immediately
- Keep responses to 1-3 sentences max
- User says "add X" → just implement X, don't ask what kind or explore options
- If you need to make assumptions, make them and briefly mention what you chose
""",
    Verbosity.BALANCED: """
## Response Style: Balanced

- Ask 1-2 key questions to understand intent, then implement
- Make reasonable default choices, mention what you chose briefly
- Keep responses concise - focus on what you're doing, not lengthy explanations
- If user says "add X" → just add X, don't ask what kind or explore options
""",
    Verbosity.THOROUGH: """
## Response Style: Thorough

- Ask clarifying questions at each decision point
- Present options and let the user choose
- Explain your reasoning and design decisions
- Take time to understand requirements before implementing
""",
}

_FILE_TOOLS = {
    "Read": ("📖", "Reading"),
    "Edit": ("✏️ ", "Editing"),
    "Write": ("📝", "Writing"),
}

_SEARCH_TOOLS = {
    "Grep": "🔍",
    "Glob": "📂",
}


class ClaudeCodeProvider:
    """Provider for the Claude Code CLI in print mode.

    Generates commands like:
        claude -p --verbose --output-format stream-json --allowedTools T,...
            --max-turns N [--model M] [--append-system-prompt CTX | --resume ID]
            MESSAGE
    """

    kind = ProviderKind.CLAUDE

    def __init__(
        self,
        max_turns: int = DEFAULT_MAX_TURNS,
        allowed_tools: tuple[str, ...] = DEFAULT_ALLOWED_TOOLS,
    ) -> None:
        self._max_turns = max_turns
        self._allowed_tools = tuple(allowed_tools)

    def build_args(self, config: CallConfig, context: str = "") -> list[str]:
        args = [
            "-p",
            "--verbose",
            "--output-format",
            "stream-json",
            "--allowedTools",
            ",".join(self._allowed_tools),
            "--max-turns",
            str(self._max_turns),
        ]

        if config.model:
            args.extend(["--model", config.model])

        if config.session_id:
            args.extend(["--resume", config.session_id])
        else:
            system_prompt = STYLE_INSTRUCTIONS[config.verbosity]
            if context.strip():
                system_prompt = f"{context}\n{system_prompt}"
            args.extend(["--append-system-prompt", system_prompt])

        args.append(compose_message(config))
        return args

    def parse_stream_line(self, line: str | bytes, project_path: str) -> ParsedLine:
        event = decode_line(line)
        if event is None:
            return ParsedLine()

        event_type = get_str(event, "type")

        if event_type == "assistant":
            message = get_dict(event, "message")
            content = message.get("content") if message else None
            text = extract_text_content(content)
            if text is not None:
                return ParsedLine(
                    event=Text(project_path=project_path, content=text),
                    assistant_content=text,
                    display_text=text,
                )
            block = _first_block(content, "tool_use")
            if block is not None:
                return _tool_use(
                    project_path, get_str(block, "name"), get_dict(block, "input")
                )
            return ParsedLine()

        if event_type == "tool_use":
            return _tool_use(
                project_path, get_str(event, "tool"), get_dict(event, "tool_input")
            )

        if event_type == "tool_result":
            return ParsedLine(
                event=ToolResult(project_path=project_path, success=True),
                display_text=DONE_DISPLAY,
            )

        if event_type == "user":
            message = get_dict(event, "message")
            block = _first_block(message.get("content") if message else None, "tool_result")
            if block is None:
                return ParsedLine()
            success = block.get("is_error") is not True
            return ParsedLine(
                event=ToolResult(project_path=project_path, success=success),
                display_text=DONE_DISPLAY if success else error_display("tool failed"),
            )

        if event_type == "error":
            message = get_str(event, "content") or DEFAULT_ERROR_MESSAGE
            return ParsedLine(
                event=Error(project_path=project_path, message=message),
                display_text=error_display(message),
            )

        if event_type == "result":
            # The success payload repeats the last assistant message
            if event.get("is_error") is True:
                message = get_str(event, "result") or DEFAULT_ERROR_MESSAGE
                return ParsedLine(
                    event=Error(project_path=project_path, message=message),
                    display_text=error_display(message),
                )
            return ParsedLine()

        if event_type != "system":
            logger.debug("Unhandled Claude event type: %s", event_type)
        return ParsedLine()

    def extract_session_id(self, line: str | bytes) -> str | None:
        event = decode_line(line)
        if event is None:
            return None
        return get_str(event, "session_id") or None


def extract_text_content(content: object) -> str | None:
    """Pull text out of a message body: a plain string or a list of blocks."""
    if isinstance(content, str):
        return content or None
    if isinstance(content, list):
        texts = [
            block["text"]
            for block in content
            if isinstance(block, dict)
            and block.get("type") == "text"
            and isinstance(block.get("text"), str)
            and block["text"]
        ]
        if texts:
            return "\n".join(texts)
    return None


def _first_block(content: object, block_type: str) -> dict | None:
    if not isinstance(content, list):
        return None
    for block in content:
        if isinstance(block, dict) and block.get("type") == block_type:
            return block
    return None


def _tool_use(project_path: str, tool: str | None, tool_input: dict | None) -> ParsedLine:
    tool = tool or "unknown"
    description, file = format_tool_description(tool, tool_input)
    return ParsedLine(
        event=ToolUse(project_path=project_path, tool=tool, file=file, description=description),
        display_text=description,
    )


def format_tool_description(tool: str, tool_input: dict | None) -> tuple[str, str | None]:
    """Describe a Claude tool call for display, returning ``(display, file_path)``."""
    if tool in _FILE_TOOLS:
        glyph, action = _FILE_TOOLS[tool]
        file = get_str(tool_input, "file_path")
        return f"{glyph} {action}: {file or 'file'}", file

    if tool == "Bash":
        command = get_str(tool_input, "command") or "command"
        return f"💻 Running: {truncate_command(command)}", None

    if tool in _SEARCH_TOOLS:
        pattern = get_str(tool_input, "pattern") or "..."
        return f"{_SEARCH_TOOLS[tool]} Searching: {pattern}", None

    return f"🔧 Using tool: {tool}", None
