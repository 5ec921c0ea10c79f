"""Call orchestration: provider selection, driver invocation, session bookkeeping."""

from __future__ import annotations

import asyncio
import logging
import os

from agentbridge.config import AppConfig
from agentbridge.infra.agents.registry import get_provider
from agentbridge.infra.session_store import SessionStore
from agentbridge.infra.sinks import EventSink
from agentbridge.infra.stream_driver import StreamDriver
from agentbridge.models.agent import CallConfig, CommandSpec, ProviderKind
from agentbridge.models.stream_event import CallResult

logger = logging.getLogger(__name__)

DONE_REPLY = "All done! What would you like to do next?"

_DONE_WORDS = {"done", "done!", "done.", "finished", "finished!", "complete", "complete!"}
_DONE_PREFIXES = ("all done", "that's it", "thats it")


def build_driver(config: AppConfig) -> StreamDriver:
    """Create a stream driver from the [driver] config section."""
    return StreamDriver(
        grace_period=config.driver.grace_period,
        stderr_cap=config.driver.stderr_cap,
        drain_timeout=config.driver.drain_timeout,
        stall_timeout=config.driver.stall_timeout or None,
        max_stalls=config.driver.max_stalls,
    )


async def run_call(
    kind: ProviderKind | str,
    config: CallConfig,
    sink: EventSink,
    cancel: asyncio.Event | None = None,
    *,
    context: str = "",
    driver: StreamDriver | None = None,
    provider_settings: dict | None = None,
) -> CallResult:
    """Run one agent turn and return its terminal result. No retries."""
    provider = get_provider(kind, **(provider_settings or {}))
    args = provider.build_args(config, context)
    cwd = config.project_path if config.project_path and os.path.isdir(config.project_path) else None
    command = CommandSpec(program=provider.kind.cli_binary, args=tuple(args), cwd=cwd)

    if config.session_id:
        logger.debug("Resuming %s session %s", provider.kind.display_name, config.session_id)
    else:
        logger.debug("Starting new %s session", provider.kind.display_name)

    driver = driver or StreamDriver()
    return await driver.run(
        command,
        provider,
        config.project_path,
        sink,
        cancel=cancel,
        resume_session_id=config.session_id,
    )


def is_done_like(text: str) -> bool:
    """True for short sign-off messages such as "Done!"."""
    trimmed = text.strip().lower()
    if len(trimmed) > 15:
        return False
    return (
        trimmed in _DONE_WORDS
        or trimmed.startswith(_DONE_PREFIXES)
        or "✓ done" in trimmed
        or "✓done" in trimmed
        or (len(trimmed) < 15 and "done" in trimmed)
    )


def final_reply(result: CallResult) -> str:
    """Pick the message to show the user once a call is done.

    Agents often end with a terse sign-off after the real answer; in that
    case the last substantial message is more useful, and a sign-off alone
    collapses to a generic prompt.
    """
    display_lines = result.display_output.splitlines()
    if display_lines and is_done_like(display_lines[-1]):
        return DONE_REPLY

    messages = [m for m in result.assistant_messages if m.strip()]
    if not messages:
        return result.display_output

    last = messages[-1]
    if is_done_like(last):
        return DONE_REPLY
    if len(last.strip()) > 10:
        return last
    substantial = [m for m in messages if len(m.strip()) > 10]
    return substantial[-1] if substantial else last


class CallService:
    """Runs agent turns for projects, resuming each provider's last session."""

    def __init__(
        self,
        config: AppConfig,
        store: SessionStore | None = None,
        driver: StreamDriver | None = None,
    ) -> None:
        self._config = config
        self._store = store or SessionStore(config.state_dir)
        self._driver = driver or build_driver(config)
        self._active: dict[str, asyncio.Event] = {}

    async def send(
        self,
        project_path: str,
        message: str,
        sink: EventSink,
        kind: ProviderKind | str | None = None,
        model: str | None = None,
        custom_instructions: str | None = None,
        agent_verbosity: str | None = None,
        context: str = "",
    ) -> CallResult:
        """Send a message to the project's agent, resuming its saved session."""
        kind = ProviderKind(kind or self._config.default_provider)
        if project_path in self._active:
            raise ValueError(f"An agent call is already running for {project_path}")

        settings = self._config.provider_settings(kind.value)
        config = CallConfig(
            message=message,
            project_path=project_path,
            model=model or settings.default_model or None,
            session_id=self._store.load(project_path, kind),
            custom_instructions=custom_instructions,
            agent_verbosity=agent_verbosity or self._config.agent_verbosity,
        )

        cancel = asyncio.Event()
        self._active[project_path] = cancel
        try:
            result = await run_call(
                kind,
                config,
                sink,
                cancel,
                context=context,
                driver=self._driver,
                provider_settings=settings.as_kwargs(),
            )
        finally:
            self._active.pop(project_path, None)

        if result.status.is_done:
            if result.session_id:
                try:
                    self._store.save(project_path, kind, result.session_id)
                except OSError as e:
                    logger.warning("Failed to save session id for %s: %s", project_path, e)
            result.reply = final_reply(result)
        return result

    def interrupt(self, project_path: str) -> bool:
        """Cancel the running call for a project. Returns False if none is running."""
        cancel = self._active.get(project_path)
        if cancel is None:
            return False
        logger.info("Interrupting agent for %s", project_path)
        cancel.set()
        return True

    def is_busy(self, project_path: str) -> bool:
        return project_path in self._active

    def saved_session(self, project_path: str, kind: ProviderKind | str) -> str | None:
        return self._store.load(project_path, ProviderKind(kind))

    def reset_session(self, project_path: str, kind: ProviderKind | str) -> bool:
        """Forget the saved session so the next send starts fresh."""
        return self._store.clear(project_path, ProviderKind(kind))
