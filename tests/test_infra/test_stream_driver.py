"""Tests for the stream driver, using small Python scripts as fake agents."""

import asyncio
import gc
import json
import os
import sys
import time

import pytest

from agentbridge.infra.agents.opencode import OpenCodeProvider
from agentbridge.infra.sinks import EventSink, QueueSink, RecordingSink
from agentbridge.infra.stream_driver import LineBuffer, StreamDriver
from agentbridge.models.agent import CommandSpec
from agentbridge.models.stream_event import (
    TERMINAL_EVENTS,
    Aborted,
    Done,
    Error,
    Failed,
    Start,
    TerminalKind,
    Text,
    ToolResult,
    ToolUse,
)

PROVIDER = OpenCodeProvider()


def _text(text: str, session_id: str | None = None) -> str:
    data = {"type": "text", "part": {"type": "text", "text": text}}
    if session_id:
        data["sessionID"] = session_id
    return json.dumps(data)


def _script_command(script: str) -> CommandSpec:
    return CommandSpec(program=sys.executable, args=("-c", script))


def agent_command(*lines: str, exit_code: int = 0, stderr: str = "", sleep: float = 0.0,
                  ignore_term: bool = False) -> CommandSpec:
    """A fake agent that prints lines, writes stderr, sleeps, then exits."""
    script = "import signal, sys, time\n"
    if ignore_term:
        script += "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
    script += (
        f"for line in {list(lines)!r}:\n"
        "    sys.stdout.buffer.write(line.encode('utf-8') + b'\\n')\n"
        "    sys.stdout.buffer.flush()\n"
        f"sys.stderr.write({stderr!r})\n"
        "sys.stderr.flush()\n"
        f"time.sleep({sleep!r})\n"
        f"sys.exit({exit_code!r})\n"
    )
    return _script_command(script)


class CancelOnTextSink(RecordingSink):
    """Sets the cancel event as soon as the first text arrives."""

    def __init__(self, cancel: asyncio.Event) -> None:
        super().__init__()
        self.cancel = cancel

    async def deliver(self, event) -> None:
        await super().deliver(event)
        if isinstance(event, Text):
            self.cancel.set()


class TestLineBuffer:
    def test_complete_lines(self):
        buf = LineBuffer()
        assert buf.feed(b"a\nb\n") == ["a", "b"]
        assert buf.pending_bytes == 0

    def test_partial_line_held(self):
        buf = LineBuffer()
        assert buf.feed(b'{"type":') == []
        assert buf.pending_bytes == 8
        assert buf.feed(b'"text"}\n') == ['{"type":"text"}']

    def test_blank_lines_dropped(self):
        buf = LineBuffer()
        assert buf.feed(b"\n\n  \nx\n\r\n") == ["x"]

    def test_crlf(self):
        assert LineBuffer().feed(b"line\r\n") == ["line"]

    def test_split_multibyte_char(self):
        buf = LineBuffer()
        data = "✓ ok\n".encode("utf-8")
        assert buf.feed(data[:1]) == []
        assert buf.feed(data[1:]) == ["✓ ok"]

    def test_invalid_utf8_replaced(self):
        lines = LineBuffer().feed(b"\xff\xfeabc\n")
        assert lines[0].endswith("abc")

    def test_flush_tail(self):
        buf = LineBuffer()
        buf.feed(b"one\ntwo")
        assert buf.flush() == ["two"]
        assert buf.flush() == []

    def test_flush_blank_tail(self):
        buf = LineBuffer()
        buf.feed(b"one\n   ")
        assert buf.flush() == []


class TestDriverCompletion:
    @pytest.mark.asyncio
    async def test_plain_text_turn(self):
        sink = RecordingSink()
        command = agent_command(
            json.dumps({"type": "step_start", "sessionID": "ses_1", "part": {"type": "step-start"}}),
            _text("Hi"),
            _text(" there"),
        )
        result = await StreamDriver().run(command, PROVIDER, "/p", sink)

        assert sink.events == [
            Start(project_path="/p"),
            Text(project_path="/p", content="Hi"),
            Text(project_path="/p", content=" there"),
        ]
        assert sink.terminal_count == 1
        completion = sink.completions[0]
        assert completion.project_path == "/p"
        assert completion.session_id == "ses_1"
        assert completion.transcript == "Hi there"
        assert completion.status.is_done
        assert str(completion.status) == "done"
        assert result.transcript == "Hi there"
        assert result.assistant_messages == ["Hi", " there"]

    @pytest.mark.asyncio
    async def test_tool_turn(self):
        sink = RecordingSink()
        command = agent_command(
            json.dumps({"type": "tool_use", "part": {
                "tool": "edit", "state": {"input": {"filePath": "/a/b.rs"}, "title": "Edit b.rs"},
            }}),
            json.dumps({"type": "step_finish", "part": {"reason": "tool-calls"}}),
            _text("Done editing"),
        )
        result = await StreamDriver().run(command, PROVIDER, "/p", sink)

        kinds = [type(e) for e in sink.events]
        assert kinds == [Start, ToolUse, ToolResult, Text]
        assert result.transcript == "Done editing"
        assert "Edit b.rs" in result.display_output

    @pytest.mark.asyncio
    async def test_order_preserved_with_noise(self):
        lines = [
            _text("1"),
            "not json",
            json.dumps({"type": "step_start", "part": {}}),
            _text("2"),
            "{",
            json.dumps({"type": "error", "part": {"text": "warn"}}),
            _text("3"),
        ]
        sink = RecordingSink()
        await StreamDriver().run(agent_command(*lines), PROVIDER, "/p", sink)

        expected = [PROVIDER.parse_stream_line(line, "/p").event for line in lines]
        assert sink.events[1:] == [e for e in expected if e is not None]

    @pytest.mark.asyncio
    async def test_partial_lines_reassembled(self):
        script = (
            "import sys, time\n"
            "out = sys.stdout.buffer\n"
            "out.write(b'{\"type\":\"text\",\"part\":{\"type\":\"text\",'); out.flush()\n"
            "time.sleep(0.2)\n"
            "out.write(b'\"text\":\"joined\"}}\\n'); out.flush()\n"
        )
        sink = RecordingSink()
        await StreamDriver().run(_script_command(script), PROVIDER, "/p", sink)
        assert sink.events[1:] == [Text(project_path="/p", content="joined")]

    @pytest.mark.asyncio
    async def test_unterminated_final_line(self):
        script = (
            "import sys\n"
            "sys.stdout.write('{\"type\":\"text\",\"part\":{\"text\":\"tail\"}}')\n"
        )
        sink = RecordingSink()
        result = await StreamDriver().run(_script_command(script), PROVIDER, "/p", sink)
        assert sink.events[-1] == Text(project_path="/p", content="tail")
        assert result.status.is_done

    @pytest.mark.asyncio
    async def test_session_id_sticky(self):
        sink = RecordingSink()
        command = agent_command(_text("a", session_id="s1"), _text("b", session_id="s2"))
        result = await StreamDriver().run(command, PROVIDER, "/p", sink)
        assert result.session_id == "s1"
        assert sink.completions[0].session_id == "s1"

    @pytest.mark.asyncio
    async def test_resume_session_kept_when_none_reported(self):
        sink = RecordingSink()
        result = await StreamDriver().run(
            agent_command(_text("a")), PROVIDER, "/p", sink, resume_session_id="prev"
        )
        assert result.session_id == "prev"

    @pytest.mark.asyncio
    async def test_no_output(self):
        sink = RecordingSink()
        result = await StreamDriver().run(agent_command(), PROVIDER, "/p", sink)
        assert sink.events == [Start(project_path="/p")]
        assert result.status.is_done
        assert result.transcript == ""
        assert result.session_id is None

    @pytest.mark.asyncio
    async def test_working_directory(self, tmp_path):
        script = (
            "import json, os\n"
            "print(json.dumps({'type': 'text', 'part': {'text': os.getcwd()}}))\n"
        )
        command = CommandSpec(program=sys.executable, args=("-c", script), cwd=str(tmp_path))
        result = await StreamDriver().run(command, PROVIDER, str(tmp_path), RecordingSink())
        assert result.transcript.rstrip("/") == str(tmp_path.resolve()).rstrip("/")


class TestDriverFailure:
    @pytest.mark.asyncio
    async def test_child_failure(self):
        sink = RecordingSink()
        command = agent_command(_text("partial"), exit_code=2, stderr="boom")
        result = await StreamDriver().run(command, PROVIDER, "/p", sink)

        assert [type(e) for e in sink.events] == [Start, Text]
        assert len(sink.completions) == 1
        status = sink.completions[0].status
        assert status.kind == TerminalKind.ABORTED
        assert status.exit_code == 2
        assert str(status) == "aborted:2"
        assert "boom" in status.diagnostic
        assert result.transcript == "partial"

    @pytest.mark.asyncio
    async def test_stderr_does_not_reach_events(self):
        sink = RecordingSink()
        command = agent_command(_text("ok"), stderr='{"type":"text","part":{"text":"fake"}}\n')
        await StreamDriver().run(command, PROVIDER, "/p", sink)
        assert sink.events[1:] == [Text(project_path="/p", content="ok")]

    @pytest.mark.asyncio
    async def test_stderr_capped(self):
        sink = RecordingSink()
        command = agent_command(stderr="x" * 10000 + "END", exit_code=1)
        result = await StreamDriver(stderr_cap=100).run(command, PROVIDER, "/p", sink)
        assert len(result.status.diagnostic) <= 100
        assert result.status.diagnostic.endswith("END")

    @pytest.mark.asyncio
    async def test_spawn_failure(self):
        sink = RecordingSink()
        command = CommandSpec(program="/nonexistent/agentbridge-fake-agent")
        result = await StreamDriver().run(command, PROVIDER, "/p", sink)

        assert sink.events == []
        assert sink.completions == []
        assert len(sink.failures) == 1
        assert sink.failures[0][0] == "/p"
        assert "agentbridge-fake-agent" in sink.failures[0][1]
        assert result.status.kind == TerminalKind.FAILED
        assert str(result.status) == "failed"

    @pytest.mark.asyncio
    async def test_spawn_failure_keeps_resumed_session(self):
        command = CommandSpec(program="/nonexistent/agentbridge-fake-agent")
        result = await StreamDriver().run(
            command, PROVIDER, "/p", RecordingSink(), resume_session_id="ses_prev"
        )
        assert result.status.kind == TerminalKind.FAILED
        assert result.session_id == "ses_prev"

    @pytest.mark.asyncio
    async def test_stall_terminates_child(self):
        sink = RecordingSink()
        driver = StreamDriver(stall_timeout=0.1, max_stalls=2)
        started = time.monotonic()
        result = await driver.run(agent_command(sleep=30), PROVIDER, "/p", sink)

        assert time.monotonic() - started < 10
        errors = [e for e in sink.events if isinstance(e, Error)]
        assert len(errors) == 1
        assert "stalled" in errors[0].message
        assert result.status.kind == TerminalKind.ABORTED
        assert result.status.exit_code != 0
        assert sink.terminal_count == 1


class TestDriverCancellation:
    @pytest.mark.asyncio
    async def test_cancel_mid_stream(self):
        cancel = asyncio.Event()
        sink = CancelOnTextSink(cancel)
        started = time.monotonic()
        result = await StreamDriver(grace_period=2.0).run(
            agent_command(_text("first"), sleep=30), PROVIDER, "/p", sink, cancel=cancel
        )

        assert time.monotonic() - started < 10
        assert Text(project_path="/p", content="first") in sink.events
        assert len(sink.completions) == 1
        status = sink.completions[0].status
        assert status.is_cancelled
        assert str(status) == "aborted:cancelled"
        assert result.transcript == "first"

    @pytest.mark.asyncio
    async def test_cancel_escalates_to_kill(self):
        cancel = asyncio.Event()
        sink = CancelOnTextSink(cancel)
        started = time.monotonic()
        result = await StreamDriver(grace_period=0.2).run(
            agent_command(_text("first"), sleep=30, ignore_term=True),
            PROVIDER, "/p", sink, cancel=cancel,
        )

        assert time.monotonic() - started < 10
        assert result.status.is_cancelled
        assert sink.terminal_count == 1

    @pytest.mark.asyncio
    async def test_cancel_while_silent(self):
        cancel = asyncio.Event()
        sink = RecordingSink()
        driver = StreamDriver(grace_period=1.0)
        task = asyncio.ensure_future(
            driver.run(agent_command(sleep=30), PROVIDER, "/p", sink, cancel=cancel)
        )
        await asyncio.sleep(0.3)
        cancel.set()
        result = await asyncio.wait_for(task, timeout=10)

        assert result.status.is_cancelled
        assert sink.events == [Start(project_path="/p")]
        assert sink.terminal_count == 1

    @pytest.mark.asyncio
    async def test_cancel_before_spawn(self):
        cancel = asyncio.Event()
        cancel.set()
        sink = RecordingSink()
        result = await StreamDriver().run(
            agent_command(_text("never")), PROVIDER, "/p", sink, cancel=cancel
        )
        assert sink.events == []
        assert len(sink.completions) == 1
        assert result.status.is_cancelled


def _open_fds() -> int:
    return len(os.listdir("/proc/self/fd"))


@pytest.mark.skipif(not os.path.isdir("/proc/self/fd"), reason="needs /proc")
class TestPipeRelease:
    FLOOD = (
        "import json, sys\n"
        "line = json.dumps({'type': 'text', 'part': {'text': 'x' * 200}})\n"
        "while True:\n"
        "    sys.stdout.write(line + '\\n')\n"
        "    sys.stdout.flush()\n"
    )

    @pytest.mark.asyncio
    async def test_cancelled_calls_release_pipes(self):
        driver = StreamDriver(grace_period=1.0, drain_timeout=0.1)
        command = _script_command(self.FLOOD)

        async def cancelled_run():
            cancel = asyncio.Event()
            result = await driver.run(command, PROVIDER, "/p", CancelOnTextSink(cancel), cancel=cancel)
            assert result.status.is_cancelled

        await cancelled_run()
        gc.disable()
        try:
            before = _open_fds()
            for _ in range(5):
                await cancelled_run()
            assert _open_fds() == before
        finally:
            gc.enable()

    @pytest.mark.asyncio
    async def test_completed_calls_release_pipes(self):
        driver = StreamDriver()
        await driver.run(agent_command(_text("a")), PROVIDER, "/p", RecordingSink())
        gc.disable()
        try:
            before = _open_fds()
            for _ in range(5):
                await driver.run(agent_command(_text("a")), PROVIDER, "/p", RecordingSink())
            assert _open_fds() == before
        finally:
            gc.enable()


class TestQueueSink:
    def test_satisfies_protocol(self):
        assert isinstance(QueueSink(), EventSink)
        assert isinstance(RecordingSink(), EventSink)

    @pytest.mark.asyncio
    async def test_concurrent_calls_multiplexed(self):
        sink = QueueSink()
        driver = StreamDriver()
        await asyncio.gather(
            driver.run(agent_command(_text("a1"), _text("a2")), PROVIDER, "/a", sink),
            driver.run(agent_command(_text("b1"), exit_code=3), PROVIDER, "/b", sink),
        )

        events = []
        while not sink.queue.empty():
            events.append(sink.queue.get_nowait())

        by_project = {
            path: [e for e in events if e.project_path == path] for path in ("/a", "/b")
        }
        assert [type(e) for e in by_project["/a"]] == [Start, Text, Text, Done]
        assert [e.content for e in by_project["/a"][1:3]] == ["a1", "a2"]
        assert by_project["/a"][-1].content == "a1a2"
        assert [type(e) for e in by_project["/b"]] == [Start, Text, Aborted]
        assert by_project["/b"][-1].exit_code == 3

    @pytest.mark.asyncio
    async def test_spawn_failure_is_terminal_event(self):
        sink = QueueSink()
        await StreamDriver().run(CommandSpec(program="/nonexistent/agent"), PROVIDER, "/p", sink)
        event = sink.queue.get_nowait()
        assert isinstance(event, Failed)
        assert isinstance(event, TERMINAL_EVENTS)
        assert "/nonexistent/agent" in event.diagnostic
        assert event.project_path == "/p"
        assert sink.queue.empty()

    @pytest.mark.asyncio
    async def test_spawn_failure_distinct_from_agent_error(self):
        sink = QueueSink()
        driver = StreamDriver()
        agent_error = json.dumps({"type": "error", "part": {"text": "Failed to spawn"}})
        await driver.run(agent_command(agent_error), PROVIDER, "/a", sink)
        await driver.run(CommandSpec(program="/nonexistent/agent"), PROVIDER, "/b", sink)

        events = []
        while not sink.queue.empty():
            events.append(sink.queue.get_nowait())
        terminal = [e for e in events if isinstance(e, TERMINAL_EVENTS)]
        assert [(type(e), e.project_path) for e in terminal] == [(Done, "/a"), (Failed, "/b")]
        assert [e.project_path for e in events if isinstance(e, Error)] == ["/a"]
