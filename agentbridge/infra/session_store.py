"""Per-project persistence of agent session ids."""

from __future__ import annotations

import logging
from pathlib import Path

from agentbridge.models.agent import ProviderKind

logger = logging.getLogger(__name__)


class SessionStore:
    """Saves the last session id of each provider inside the project.

    Files live at ``<project>/<state_dir>/<provider>_session.txt`` so that
    switching providers never resumes a foreign session.
    """

    def __init__(self, state_dir: str = ".agentbridge") -> None:
        self.state_dir = state_dir

    def path_for(self, project_path: str, kind: ProviderKind) -> Path:
        return Path(project_path) / self.state_dir / kind.session_filename

    def load(self, project_path: str, kind: ProviderKind) -> str | None:
        path = self.path_for(project_path, kind)
        try:
            session_id = path.read_text().strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Failed to read session file %s: %s", path, e)
            return None
        return session_id or None

    def save(self, project_path: str, kind: ProviderKind, session_id: str) -> Path:
        path = self.path_for(project_path, kind)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(session_id)
        logger.debug("Saved %s session %s to %s", kind.value, session_id, path)
        return path

    def clear(self, project_path: str, kind: ProviderKind) -> bool:
        """Forget the saved session. Returns whether one existed."""
        path = self.path_for(project_path, kind)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True
