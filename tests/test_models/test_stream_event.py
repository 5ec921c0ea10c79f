"""Tests for stream event models."""

from agentbridge.models.stream_event import (
    TERMINAL_EVENTS,
    Aborted,
    CallResult,
    Done,
    Error,
    Failed,
    ParsedLine,
    TerminalKind,
    TerminalStatus,
    Text,
    ToolUse,
)


class TestEvents:
    def test_to_dict_has_type(self):
        event = ToolUse(project_path="/p", tool="read", description="📖 Reading: a", file="a")
        assert event.to_dict() == {
            "type": "tool_use",
            "project_path": "/p",
            "tool": "read",
            "description": "📖 Reading: a",
            "file": "a",
        }

    def test_text_to_dict(self):
        assert Text(project_path="/p", content="hi").to_dict() == {
            "type": "text", "project_path": "/p", "content": "hi",
        }

    def test_equality(self):
        assert Text(project_path="/p", content="x") == Text(project_path="/p", content="x")
        assert Text(project_path="/p", content="x") != Text(project_path="/q", content="x")


class TestParsedLine:
    def test_empty_is_falsy(self):
        assert not ParsedLine()

    def test_any_field_is_truthy(self):
        assert ParsedLine(display_text="x")
        assert ParsedLine(assistant_content="")
        assert ParsedLine(event=Error(project_path="/p", message="m"))


class TestTerminalStatus:
    def test_done(self):
        status = TerminalStatus.done()
        assert status.is_done
        assert not status.is_cancelled
        assert str(status) == "done"

    def test_aborted(self):
        status = TerminalStatus.aborted(2, "boom")
        assert status.kind == TerminalKind.ABORTED
        assert str(status) == "aborted:2"
        assert status.diagnostic == "boom"

    def test_aborted_by_signal(self):
        assert str(TerminalStatus.aborted(-9)) == "aborted:-9"

    def test_cancelled(self):
        status = TerminalStatus.cancelled()
        assert status.is_cancelled
        assert str(status) == "aborted:cancelled"

    def test_failed(self):
        status = TerminalStatus.failed("no such file")
        assert str(status) == "failed"
        assert not status.is_done

    def test_to_event(self):
        assert TerminalStatus.done().to_event("/p", "hello", "s1") == Done(
            project_path="/p", content="hello", session_id="s1"
        )
        assert TerminalStatus.aborted(1, "err").to_event("/p") == Aborted(
            project_path="/p", reason="1", exit_code=1, stderr="err"
        )
        assert TerminalStatus.failed("gone").to_event("/p") == Failed(
            project_path="/p", diagnostic="gone"
        )

    def test_failed_event_is_terminal(self):
        event = TerminalStatus.failed("gone").to_event("/p")
        assert isinstance(event, TERMINAL_EVENTS)
        assert not isinstance(event, Error)
        assert event.to_dict() == {"type": "failed", "project_path": "/p", "diagnostic": "gone"}


class TestCallResult:
    def test_to_dict(self):
        result = CallResult(status=TerminalStatus.cancelled(), session_id="s", transcript="t")
        assert result.to_dict() == {
            "status": "aborted:cancelled",
            "session_id": "s",
            "transcript": "t",
            "reply": "",
        }
