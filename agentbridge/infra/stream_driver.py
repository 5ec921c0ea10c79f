"""Stream driver: runs one agent child process and normalizes its output."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections import deque

from agentbridge.infra.agents.base import AgentProvider
from agentbridge.infra.sinks import EventSink
from agentbridge.models.agent import CommandSpec
from agentbridge.models.stream_event import CallResult, Error, Start, TerminalStatus

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 3.0
DEFAULT_STDERR_CAP = 8192
DEFAULT_DRAIN_TIMEOUT = 1.0
DEFAULT_CHUNK_SIZE = 65536


class LineBuffer:
    """Splits a byte stream into complete text lines.

    Bytes after the last newline are held back until more data arrives or
    the stream ends. Blank lines are dropped.
    """

    def __init__(self) -> None:
        self._pending = bytearray()

    def feed(self, data: bytes) -> list[str]:
        self._pending.extend(data)
        lines: list[str] = []
        while True:
            index = self._pending.find(b"\n")
            if index < 0:
                break
            raw = bytes(self._pending[:index])
            del self._pending[: index + 1]
            line = _decode(raw)
            if line:
                lines.append(line)
        return lines

    def flush(self) -> list[str]:
        """Return the unterminated tail once the stream has ended."""
        line = _decode(bytes(self._pending))
        self._pending.clear()
        return [line] if line else []

    @property
    def pending_bytes(self) -> int:
        return len(self._pending)


def _decode(raw: bytes) -> str:
    line = raw.decode("utf-8", errors="replace").rstrip("\r")
    return line if line.strip() else ""


class _Call:
    """Mutable state of one running call. Owned by a single driver run."""

    def __init__(
        self,
        proc: asyncio.subprocess.Process,
        provider: AgentProvider,
        project_path: str,
        sink: EventSink,
        chunk_size: int,
    ) -> None:
        self.proc = proc
        self.provider = provider
        self.project_path = project_path
        self.sink = sink
        self.chunk_size = chunk_size
        self.buffer = LineBuffer()
        self.pending: deque[str] = deque()
        self.session_id: str | None = None
        self.assistant_messages: list[str] = []
        self.display_lines: list[str] = []
        self.eof = False
        self._read_task: asyncio.Future | None = None

    def next_chunk(self) -> asyncio.Future:
        """Return the outstanding stdout read, starting one if needed."""
        if self._read_task is None:
            self._read_task = asyncio.ensure_future(self.proc.stdout.read(self.chunk_size))
        return self._read_task

    def take_chunk(self) -> None:
        """Move the finished read's complete lines onto the pending queue."""
        data = self._read_task.result()
        self._read_task = None
        if data:
            self.pending.extend(self.buffer.feed(data))
        else:
            self.eof = True
            self.pending.extend(self.buffer.flush())

    async def dispatch(self, line: str) -> None:
        parsed = self.provider.parse_stream_line(line, self.project_path)
        if parsed.event is not None:
            await self.sink.deliver(parsed.event)
        if parsed.assistant_content is not None:
            self.assistant_messages.append(parsed.assistant_content)
        if parsed.display_text is not None:
            self.display_lines.append(parsed.display_text)
        if self.session_id is None:
            session_id = self.provider.extract_session_id(line)
            if session_id:
                self.session_id = session_id
                logger.debug("Captured session %s for %s", session_id, self.project_path)

    def close(self) -> None:
        if self._read_task is not None and not self._read_task.done():
            self._read_task.cancel()
        self._read_task = None


class StreamDriver:
    """Owns the lifecycle of agent child processes.

    One ``run`` call spawns one child, forwards its normalized events to a
    sink in source order, and reports exactly one terminal notification.
    The driver itself holds only settings, so it can run many calls at
    once.
    """

    def __init__(
        self,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        stderr_cap: int = DEFAULT_STDERR_CAP,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
        stall_timeout: float | None = None,
        max_stalls: int = 2,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.grace_period = grace_period
        self.stderr_cap = stderr_cap
        self.drain_timeout = drain_timeout
        self.stall_timeout = stall_timeout
        self.max_stalls = max(1, max_stalls)
        self.chunk_size = chunk_size

    async def run(
        self,
        command: CommandSpec,
        provider: AgentProvider,
        project_path: str,
        sink: EventSink,
        cancel: asyncio.Event | None = None,
        resume_session_id: str | None = None,
    ) -> CallResult:
        """Run one agent call to completion, cancellation or failure."""
        if cancel is not None and cancel.is_set():
            logger.info("Call for %s cancelled before spawn", project_path)
            status = TerminalStatus.cancelled()
            await sink.complete(project_path, resume_session_id, "", status)
            return CallResult(status=status, session_id=resume_session_id)

        try:
            proc = await asyncio.create_subprocess_exec(
                command.program,
                *command.args,
                cwd=command.cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            diagnostic = f"Failed to spawn {command.program}: {e}"
            logger.error(diagnostic)
            await sink.fail(project_path, diagnostic)
            return CallResult(
                status=TerminalStatus.failed(diagnostic), session_id=resume_session_id
            )

        logger.info("Spawned %s (pid %s) for %s", command.program, proc.pid, project_path)

        call = _Call(proc, provider, project_path, sink, self.chunk_size)
        stderr_buf = bytearray()
        stderr_task = asyncio.ensure_future(self._collect_stderr(proc, stderr_buf))
        cancel_task = asyncio.ensure_future(cancel.wait()) if cancel is not None else None

        try:
            await sink.deliver(Start(project_path=project_path))

            outcome = await self._pump(call, cancel, cancel_task)
            if outcome == "cancelled":
                await self._stop(call, graceful=True)
                status = TerminalStatus.cancelled(await self._stderr_tail(stderr_task, stderr_buf))
            else:
                if outcome == "stalled":
                    await self._stop(call, graceful=False)
                exit_code = await self._wait_exit(proc, cancel_task)
                stderr = await self._stderr_tail(stderr_task, stderr_buf)
                if exit_code is None:
                    await self._reap(proc)
                    status = TerminalStatus.cancelled(stderr)
                elif exit_code == 0:
                    status = TerminalStatus.done()
                else:
                    logger.warning(
                        "%s exited with code %s for %s", command.program, exit_code, project_path
                    )
                    status = TerminalStatus.aborted(exit_code, stderr)

            if status.is_cancelled:
                logger.info("Call for %s cancelled", project_path)

            result = CallResult(
                status=status,
                session_id=call.session_id or resume_session_id,
                transcript="".join(call.assistant_messages),
                assistant_messages=list(call.assistant_messages),
                display_output="\n".join(call.display_lines),
                stderr=status.diagnostic,
            )
            await sink.complete(project_path, result.session_id, result.transcript, status)
            return result
        finally:
            call.close()
            if cancel_task is not None:
                cancel_task.cancel()
            if proc.returncode is None:
                _send_signal(proc, signal.SIGKILL)
                await proc.wait()
            if not stderr_task.done():
                stderr_task.cancel()
            _close_pipes(proc)

    async def _pump(
        self, call: _Call, cancel: asyncio.Event | None, cancel_task: asyncio.Future | None
    ) -> str:
        """Dispatch stdout lines until EOF, cancellation or a stall.

        Returns ``"eof"``, ``"cancelled"`` or ``"stalled"``.
        """
        stalls = 0
        while True:
            while call.pending:
                if cancel is not None and cancel.is_set():
                    return "cancelled"
                await call.dispatch(call.pending.popleft())
            if call.eof:
                return "eof"
            if cancel is not None and cancel.is_set():
                return "cancelled"

            read = call.next_chunk()
            waiters = {read} if cancel_task is None else {read, cancel_task}
            done, _ = await asyncio.wait(
                waiters, timeout=self.stall_timeout, return_when=asyncio.FIRST_COMPLETED
            )
            if read in done:
                stalls = 0
                call.take_chunk()
            elif cancel_task is not None and cancel_task in done:
                return "cancelled"
            else:
                stalls += 1
                logger.warning(
                    "No output from agent for %s (%d/%d)",
                    call.project_path, stalls, self.max_stalls,
                )
                if stalls >= self.max_stalls:
                    waited = int(self.stall_timeout * stalls)
                    await call.sink.deliver(Error(
                        project_path=call.project_path,
                        message=f"Agent stalled (no output for {waited} seconds). Session terminated.",
                    ))
                    return "stalled"

    async def _stop(self, call: _Call, graceful: bool) -> None:
        """Signal the child, then drain what it already wrote."""
        _send_signal(call.proc, signal.SIGTERM if graceful else signal.SIGKILL)
        await self._drain(call)
        await self._reap(call.proc)

    async def _drain(self, call: _Call) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.drain_timeout
        while True:
            while call.pending:
                await call.dispatch(call.pending.popleft())
            remaining = deadline - loop.time()
            if call.eof or remaining <= 0:
                return
            read = call.next_chunk()
            done, _ = await asyncio.wait({read}, timeout=remaining)
            if read not in done:
                logger.debug("Drain window elapsed for %s", call.project_path)
                return
            call.take_chunk()

    async def _reap(self, proc: asyncio.subprocess.Process) -> None:
        """Wait for exit within the grace period, then force-kill."""
        if proc.returncode is not None:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.grace_period)
        except asyncio.TimeoutError:
            logger.info("pid %s ignored SIGTERM, killing", proc.pid)
            _send_signal(proc, signal.SIGKILL)
            await proc.wait()

    async def _wait_exit(
        self, proc: asyncio.subprocess.Process, cancel_task: asyncio.Future | None
    ) -> int | None:
        """Wait for the child to exit; None means cancellation won the race."""
        if cancel_task is None:
            return await proc.wait()
        wait_task = asyncio.ensure_future(proc.wait())
        done, _ = await asyncio.wait(
            {wait_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if wait_task in done:
            return wait_task.result()
        wait_task.cancel()
        _send_signal(proc, signal.SIGTERM)
        return None

    async def _collect_stderr(self, proc: asyncio.subprocess.Process, buf: bytearray) -> None:
        while True:
            chunk = await proc.stderr.read(self.chunk_size)
            if not chunk:
                return
            buf.extend(chunk)
            if len(buf) > self.stderr_cap:
                del buf[: len(buf) - self.stderr_cap]

    async def _stderr_tail(self, task: asyncio.Future, buf: bytearray) -> str:
        if not task.done():
            await asyncio.wait({task}, timeout=self.drain_timeout)
        return buf.decode("utf-8", errors="replace").strip()


def _send_signal(proc: asyncio.subprocess.Process, sig: signal.Signals) -> bool:
    """Send a signal to a child process that may already have exited."""
    try:
        if sig == signal.SIGKILL:
            proc.kill()
        elif sig == signal.SIGTERM:
            proc.terminate()
        else:
            proc.send_signal(sig)
        return True
    except ProcessLookupError:
        return False


def _close_pipes(proc: asyncio.subprocess.Process) -> None:
    """Close the child's stdio pipes, including a stdout left unread by a cancel."""
    # Process exposes no public close
    transport = getattr(proc, "_transport", None)
    if transport is not None:
        transport.close()
