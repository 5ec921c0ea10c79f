"""Event sinks: where normalized stream events are delivered."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from agentbridge.models.stream_event import StreamEvent, TerminalStatus

logger = logging.getLogger(__name__)


@runtime_checkable
class EventSink(Protocol):
    """Receiver of one or more calls' events.

    The driver awaits every method, so a slow sink slows the call down
    rather than losing events. Exactly one of ``complete`` or ``fail`` is
    called per call.
    """

    async def deliver(self, event: StreamEvent) -> None:
        ...

    async def complete(
        self, project_path: str, session_id: str | None, transcript: str, status: TerminalStatus
    ) -> None:
        ...

    async def fail(self, project_path: str, diagnostic: str) -> None:
        ...


class QueueSink:
    """Funnels events from any number of concurrent calls into one queue.

    Terminal notifications are turned into ``Done``/``Aborted``/``Failed``
    events so a consumer only has to read one stream; ``project_path`` on
    each event tells the calls apart.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: asyncio.Queue[StreamEvent] = asyncio.Queue(maxsize=maxsize)

    async def deliver(self, event: StreamEvent) -> None:
        await self.queue.put(event)

    async def complete(
        self, project_path: str, session_id: str | None, transcript: str, status: TerminalStatus
    ) -> None:
        await self.queue.put(status.to_event(project_path, transcript, session_id))

    async def fail(self, project_path: str, diagnostic: str) -> None:
        await self.queue.put(TerminalStatus.failed(diagnostic).to_event(project_path))


@dataclass
class Completion:
    project_path: str
    session_id: str | None
    transcript: str
    status: TerminalStatus


class RecordingSink:
    """Keeps everything it receives in memory."""

    def __init__(self) -> None:
        self.events: list[StreamEvent] = []
        self.completions: list[Completion] = []
        self.failures: list[tuple[str, str]] = []

    async def deliver(self, event: StreamEvent) -> None:
        self.events.append(event)

    async def complete(
        self, project_path: str, session_id: str | None, transcript: str, status: TerminalStatus
    ) -> None:
        self.completions.append(Completion(project_path, session_id, transcript, status))

    async def fail(self, project_path: str, diagnostic: str) -> None:
        logger.debug("Call for %s failed: %s", project_path, diagnostic)
        self.failures.append((project_path, diagnostic))

    @property
    def terminal_count(self) -> int:
        return len(self.completions) + len(self.failures)
