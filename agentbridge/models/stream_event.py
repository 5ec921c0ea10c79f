"""Normalized stream events shared by every agent provider."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import ClassVar, Union


@dataclass(frozen=True)
class Start:
    """Child process spawned; output may follow."""

    type: ClassVar[str] = "start"

    project_path: str

    def to_dict(self) -> dict:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class Text:
    """Incremental assistant text."""

    type: ClassVar[str] = "text"

    project_path: str
    content: str

    def to_dict(self) -> dict:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class ToolUse:
    """The agent invoked a named tool, optionally on a file."""

    type: ClassVar[str] = "tool_use"

    project_path: str
    tool: str
    description: str
    file: str | None = None

    def to_dict(self) -> dict:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class ToolResult:
    """The most recent tool invocation finished."""

    type: ClassVar[str] = "tool_result"

    project_path: str
    success: bool = True

    def to_dict(self) -> dict:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class Error:
    """Non-fatal error reported by the agent inside the stream."""

    type: ClassVar[str] = "error"

    project_path: str
    message: str

    def to_dict(self) -> dict:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class Done:
    type: ClassVar[str] = "done"

    project_path: str
    content: str = ""
    session_id: str | None = None

    def to_dict(self) -> dict:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class Aborted:
    type: ClassVar[str] = "aborted"

    project_path: str
    reason: str
    exit_code: int | None = None
    stderr: str = ""

    def to_dict(self) -> dict:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class Failed:
    """The agent could not be started. Terminal, unlike Error."""

    type: ClassVar[str] = "failed"

    project_path: str
    diagnostic: str

    def to_dict(self) -> dict:
        return {"type": self.type, **asdict(self)}


StreamEvent = Union[Start, Text, ToolUse, ToolResult, Error, Done, Aborted, Failed]

TERMINAL_EVENTS = (Done, Aborted, Failed)


@dataclass(frozen=True)
class ParsedLine:
    """A provider's interpretation of one output line.

    All fields are optional and independent. The empty default means the
    line was silent (or unreadable) and should simply be consumed.
    """

    event: StreamEvent | None = None
    assistant_content: str | None = None
    display_text: str | None = None

    def __bool__(self) -> bool:
        return (
            self.event is not None
            or self.assistant_content is not None
            or self.display_text is not None
        )


class TerminalKind(str, Enum):
    DONE = "done"
    ABORTED = "aborted"
    FAILED = "failed"


CANCELLED = "cancelled"


@dataclass(frozen=True)
class TerminalStatus:
    """How a call ended.

    Renders as ``done``, ``aborted:<exit_code>``, ``aborted:cancelled``
    or ``failed``.
    """

    kind: TerminalKind
    exit_code: int | None = None
    reason: str = ""
    diagnostic: str = ""

    @classmethod
    def done(cls) -> TerminalStatus:
        return cls(kind=TerminalKind.DONE, exit_code=0)

    @classmethod
    def aborted(cls, exit_code: int, stderr: str = "") -> TerminalStatus:
        return cls(
            kind=TerminalKind.ABORTED,
            exit_code=exit_code,
            reason=str(exit_code),
            diagnostic=stderr,
        )

    @classmethod
    def cancelled(cls, stderr: str = "") -> TerminalStatus:
        return cls(kind=TerminalKind.ABORTED, reason=CANCELLED, diagnostic=stderr)

    @classmethod
    def failed(cls, diagnostic: str) -> TerminalStatus:
        return cls(kind=TerminalKind.FAILED, reason="spawn", diagnostic=diagnostic)

    @property
    def is_done(self) -> bool:
        return self.kind == TerminalKind.DONE

    @property
    def is_cancelled(self) -> bool:
        return self.kind == TerminalKind.ABORTED and self.reason == CANCELLED

    def __str__(self) -> str:
        if self.kind == TerminalKind.ABORTED:
            return f"aborted:{self.reason}"
        return self.kind.value

    def to_event(
        self, project_path: str, transcript: str = "", session_id: str | None = None
    ) -> Done | Aborted | Failed:
        """Project this status onto the terminal stream event."""
        if self.kind == TerminalKind.DONE:
            return Done(project_path=project_path, content=transcript, session_id=session_id)
        if self.kind == TerminalKind.ABORTED:
            return Aborted(
                project_path=project_path,
                reason=self.reason,
                exit_code=self.exit_code,
                stderr=self.diagnostic,
            )
        return Failed(project_path=project_path, diagnostic=self.diagnostic)


@dataclass
class CallResult:
    """Outcome of one agent call as seen by the caller."""

    status: TerminalStatus
    session_id: str | None = None
    transcript: str = ""
    assistant_messages: list[str] = field(default_factory=list)
    display_output: str = ""
    stderr: str = ""
    reply: str = ""

    def to_dict(self) -> dict:
        return {
            "status": str(self.status),
            "session_id": self.session_id,
            "transcript": self.transcript,
            "reply": self.reply,
        }
