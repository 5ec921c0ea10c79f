"""Installation checks for agent CLIs."""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass

from agentbridge.models.agent import ProviderKind

logger = logging.getLogger(__name__)


@dataclass
class ProviderStatus:
    """Whether a provider's CLI can be launched, and which version it is."""

    kind: ProviderKind
    installed: bool = False
    version: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        doc: dict = {"provider": self.kind.value, "installed": self.installed}
        if self.version:
            doc["version"] = self.version
        if self.error:
            doc["error"] = self.error
        return doc


async def check_provider(kind: ProviderKind, timeout: float = 5.0) -> ProviderStatus:
    """Resolve the CLI on PATH and ask it for its version."""
    binary = shutil.which(kind.cli_binary)
    if binary is None:
        return ProviderStatus(
            kind=kind,
            error=f"{kind.cli_binary} not found on PATH. Install with: {kind.install_command}",
        )

    try:
        proc = await asyncio.create_subprocess_exec(
            binary, "--version",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        return ProviderStatus(kind=kind, error=f"Failed to run {binary}: {e}")

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.warning("%s --version timed out after %ss", binary, timeout)
        # It launched, so it is installed even if the version is unknown
        return ProviderStatus(kind=kind, installed=True, error="version check timed out")

    if proc.returncode != 0:
        return ProviderStatus(
            kind=kind,
            installed=True,
            error=stderr.decode(errors="replace").strip() or f"exit code {proc.returncode}",
        )

    lines = stdout.decode(errors="replace").strip().splitlines()
    return ProviderStatus(kind=kind, installed=True, version=lines[0] if lines else None)


async def check_all(timeout: float = 5.0) -> list[ProviderStatus]:
    return list(await asyncio.gather(*(check_provider(k, timeout) for k in ProviderKind)))
