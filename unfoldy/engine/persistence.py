"""Session persistence port plus JSON-file and in-memory implementations.

Persistence is best-effort: a failed save or load is logged and ignored so it
can never interrupt a game.
"""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from unfoldy.engine.state import SessionState

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    def save(self, state: SessionState) -> None: ...

    def load(self) -> Optional[SessionState]: ...

    def clear(self) -> None: ...


class JsonFileStore:
    """Keep the single saved session in one JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        # engines for several browser tabs may share one store
        self._lock = threading.Lock()

    def save(self, state: SessionState) -> None:
        try:
            payload = json.dumps(state.to_dict(), ensure_ascii=False)
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.write_text(payload, encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to save game state to %s: %s", self.path, exc)

    def load(self) -> Optional[SessionState]:
        if not self.path.exists():
            return None
        try:
            with self._lock:
                text = self.path.read_text(encoding="utf-8")
            data = json.loads(text)
            if not isinstance(data, dict):
                raise ValueError("saved state is not an object")
            return SessionState.from_dict(data)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to restore game state from %s: %s", self.path, exc)
            return None

    def clear(self) -> None:
        try:
            with self._lock:
                self.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to clear saved game state %s: %s", self.path, exc)


class InMemoryStore:
    """Dict-backed store, used by tests and when no file should be written."""

    def __init__(self) -> None:
        self.data: Optional[Dict[str, Any]] = None

    def save(self, state: SessionState) -> None:
        self.data = state.to_dict()

    def load(self) -> Optional[SessionState]:
        return SessionState.from_dict(self.data) if self.data is not None else None

    def clear(self) -> None:
        self.data = None
