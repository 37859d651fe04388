"""Session and action history storage."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, List

from .models import ActionRecord, SessionInfo


class HistoryStore(ABC):
    """Append-only log of sessions and the actions executed in them.

    Session snapshots are write-only here; live session state is read from
    the session manager.
    """

    @abstractmethod
    def record_session(self, session: SessionInfo) -> None:
        """Insert or replace the stored snapshot of ``session``."""

    @abstractmethod
    def record_action(self, record: ActionRecord) -> None:
        """Append an executed action and its result."""

    @abstractmethod
    def list_actions(self, session_id: str, limit: int) -> List[ActionRecord]:
        """Return up to ``limit`` records for a session, most recent first."""


class InMemoryHistoryStore(HistoryStore):
    """History kept in process memory, pruned per session."""

    def __init__(self, max_actions_per_session: int = 500) -> None:
        self._lock = threading.Lock()
        self._sessions: Dict[str, SessionInfo] = {}
        self._actions: Dict[str, List[ActionRecord]] = defaultdict(list)
        self._max_actions = max_actions_per_session

    def record_session(self, session: SessionInfo) -> None:
        with self._lock:
            self._sessions[session.id] = session.model_copy()

    def record_action(self, record: ActionRecord) -> None:
        with self._lock:
            entries = self._actions[record.session_id]
            entries.append(record)
            self._prune(entries)

    def list_actions(self, session_id: str, limit: int) -> List[ActionRecord]:
        if limit <= 0:
            return []
        with self._lock:
            entries = list(self._actions.get(session_id, []))
        return list(reversed(entries))[:limit]

    def _prune(self, entries: List[ActionRecord]) -> None:
        if self._max_actions <= 0:
            entries.clear()
            return
        overflow = len(entries) - self._max_actions
        if overflow > 0:
            del entries[:overflow]
