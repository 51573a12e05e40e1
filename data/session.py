"""
Session management for conversational place search.
"""
import logging
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from config import SESSION_CONFIG
from models.conversation import BaseSearch, ConversationSession, SearchTurn
from models.errors import SessionVersionConflictError
from models.parameters import FilterState

logger = logging.getLogger(__name__)

MAX_HISTORY_LENGTH = 10
MAX_RESULTS_PER_SESSION = 200

RESET_QUERY_TEXT = "show all"


class _SessionEntry:
    """A stored session plus the bookkeeping that drives expiry."""

    __slots__ = ("session", "last_accessed", "lock", "removed")

    def __init__(self, session: ConversationSession, now: float):
        self.session = session
        self.last_accessed = now
        self.lock = threading.Lock()
        self.removed = False


class ConversationSessionStore:
    """
    In-memory store of conversation sessions with sliding idle expiry.

    Mutations on one session are serialized by a per-session lock and may
    be made conditional on the caller's last seen ``state_version``. Every
    read returns a copy, so callers never hold a reference into the store.
    """

    def __init__(self, timeout_ms: int = SESSION_CONFIG["timeout_ms"]):
        """
        Initialize the session store.

        Args:
            timeout_ms: Idle time after which a session expires
        """
        self.timeout_ms = timeout_ms
        self.session_ttl = timeout_ms / 1000.0

        self._sessions: Dict[str, _SessionEntry] = {}
        self._lock = threading.Lock()
        logger.info("Using in-memory storage for conversation sessions")

    def _is_expired(self, entry: _SessionEntry, now: float) -> bool:
        return now - entry.last_accessed > self.session_ttl

    def _evict(self, session_id: str, entry: _SessionEntry):
        """Remove an entry; the caller holds entry.lock."""
        entry.removed = True
        with self._lock:
            if self._sessions.get(session_id) is entry:
                del self._sessions[session_id]

    def _entry(self, session_id: str) -> Optional[_SessionEntry]:
        with self._lock:
            return self._sessions.get(session_id)

    def create(self, base_search: BaseSearch, user_id: Optional[str] = None) -> ConversationSession:
        """
        Create a new session for a base search.

        Args:
            base_search: The search the conversation will refine
            user_id: Optional user identifier to associate with the session

        Returns:
            The new session at version 1
        """
        session_id = str(uuid.uuid4())
        now = time.time()

        limited = base_search.model_copy(
            update={"base_results": list(base_search.base_results[:MAX_RESULTS_PER_SESSION])},
            deep=True,
        )
        session = ConversationSession(
            session_id=session_id,
            user_id=user_id,
            base_search=limited,
            current_filters=FilterState(),
            search_history=[],
            state_version=1,
            last_query_timestamp=now,
        )

        with self._lock:
            self._sessions[session_id] = _SessionEntry(session, now)

        logger.info(
            f"Created session: {session_id} for user: {user_id or 'anonymous'} "
            f"with {len(limited.base_results)} base results"
        )
        return session.model_copy(deep=True)

    def get(self, session_id: str) -> Optional[ConversationSession]:
        """
        Get a session, refreshing its idle timer.

        Returns:
            A copy of the session, or None if not found or expired
        """
        entry = self._entry(session_id)
        if entry is None:
            logger.debug(f"Session not found: {session_id}")
            return None

        now = time.time()
        with entry.lock:
            if entry.removed:
                return None
            if self._is_expired(entry, now):
                self._evict(session_id, entry)
                logger.info(f"Session {session_id} expired and removed")
                return None
            entry.last_accessed = now
            return entry.session.model_copy(deep=True)

    def _mutate(
        self,
        session_id: str,
        operation: str,
        mutation: Callable[[ConversationSession, float], None],
        expected_version: Optional[int] = None,
    ) -> Optional[ConversationSession]:
        """
        Apply a mutation to a live session and bump its version.

        Raises:
            SessionVersionConflictError: expected_version is given and the
                session has moved on
        """
        entry = self._entry(session_id)
        if entry is None:
            logger.warning(f"Session {session_id} not found for {operation}")
            return None

        now = time.time()
        with entry.lock:
            if entry.removed or self._is_expired(entry, now):
                if not entry.removed:
                    self._evict(session_id, entry)
                logger.warning(f"Session {session_id} not found for {operation}")
                return None

            session = entry.session
            if expected_version is not None and expected_version != session.state_version:
                raise SessionVersionConflictError(session_id, expected_version, session.state_version)

            mutation(session, now)
            session.state_version += 1
            session.last_query_timestamp = now
            entry.last_accessed = now

            logger.debug(f"Session {session_id} {operation}, version {session.state_version}")
            return session.model_copy(deep=True)

    def update_filters(
        self,
        session_id: str,
        filters: FilterState,
        expected_version: Optional[int] = None,
    ) -> Optional[ConversationSession]:
        """
        Replace the session's current filters.

        Returns:
            The updated session, or None if not found or expired
        """
        def replace(session: ConversationSession, now: float):
            session.current_filters = filters.model_copy(deep=True)

        return self._mutate(session_id, "filter update", replace, expected_version)

    def append_turn(
        self,
        session_id: str,
        turn: SearchTurn,
        expected_version: Optional[int] = None,
    ) -> Optional[ConversationSession]:
        """
        Record a search turn as the most recent history entry.

        History keeps the last MAX_HISTORY_LENGTH turns, most recent first.
        """
        def prepend(session: ConversationSession, now: float):
            session.search_history = ([turn.model_copy(deep=True)] + session.search_history)[:MAX_HISTORY_LENGTH]

        return self._mutate(session_id, "history update", prepend, expected_version)

    def reset(self, session_id: str, expected_version: Optional[int] = None) -> Optional[ConversationSession]:
        """
        Clear every filter and record a "show all" turn.

        The base search is kept; the turn's result count is the number of
        base results.
        """
        def clear_filters(session: ConversationSession, now: float):
            session.current_filters = FilterState()
            reset_turn = SearchTurn(
                query_text=RESET_QUERY_TEXT,
                applied_filters=FilterState(),
                result_count=len(session.base_search.base_results),
                timestamp=now,
                is_refinement=True,
            )
            session.search_history = ([reset_turn] + session.search_history)[:MAX_HISTORY_LENGTH]

        session = self._mutate(session_id, "reset", clear_filters, expected_version)
        if session is not None:
            logger.info(f"Reset filters for session {session_id}")
        return session

    def delete(self, session_id: str) -> bool:
        """
        Delete a session.

        Returns:
            True if a session was deleted, False if not found
        """
        with self._lock:
            entry = self._sessions.pop(session_id, None)
        if entry is None:
            return False

        with entry.lock:
            entry.removed = True
        logger.info(f"Deleted session: {session_id}")
        return True

    def sweep_expired(self) -> int:
        """
        Remove every session idle past the timeout.

        Works on a snapshot of the store so request handling is never
        blocked for longer than a single entry check.

        Returns:
            Number of sessions removed
        """
        now = time.time()
        with self._lock:
            snapshot = list(self._sessions.items())

        removed = 0
        for session_id, entry in snapshot:
            with entry.lock:
                if not entry.removed and self._is_expired(entry, now):
                    self._evict(session_id, entry)
                    removed += 1

        if removed:
            logger.info(f"Cleaned up {removed} stale sessions")
        return removed

    def active_session_ids(self) -> List[str]:
        """IDs of sessions that have not expired."""
        now = time.time()
        with self._lock:
            snapshot = list(self._sessions.items())
        return [session_id for session_id, entry in snapshot if not self._is_expired(entry, now)]

    def get_user_sessions(self, user_id: str) -> List[str]:
        """IDs of the live sessions associated with a user."""
        now = time.time()
        with self._lock:
            snapshot = list(self._sessions.items())
        return [
            session_id
            for session_id, entry in snapshot
            if entry.session.user_id == user_id and not self._is_expired(entry, now)
        ]

    def get_stats(self) -> Dict[str, Any]:
        """Session statistics for monitoring."""
        with self._lock:
            active = len(self._sessions)
        return {
            "active_sessions": active,
            "session_timeout_ms": self.timeout_ms,
            "max_history_length": MAX_HISTORY_LENGTH,
            "max_results_per_session": MAX_RESULTS_PER_SESSION,
        }

    def clear(self):
        """Remove every session."""
        with self._lock:
            entries = list(self._sessions.values())
            self._sessions.clear()
        for entry in entries:
            with entry.lock:
                entry.removed = True
        logger.info("Cleared all sessions")

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class SessionSweeper(threading.Thread):
    """Background thread that periodically evicts expired sessions and contexts."""

    def __init__(
        self,
        session_store: ConversationSessionStore,
        context_store=None,
        interval_ms: int = SESSION_CONFIG["cleanup_interval_ms"],
    ):
        super().__init__(name="session-sweeper", daemon=True)
        self.session_store = session_store
        self.context_store = context_store
        self.interval = interval_ms / 1000.0
        self._stop_event = threading.Event()

    def sweep(self) -> int:
        removed = self.session_store.sweep_expired()
        if self.context_store is not None:
            self.context_store.clean_expired()
        return removed

    def run(self):
        logger.info(f"Session cleanup job started (every {self.interval:.0f}s)")
        while not self._stop_event.wait(self.interval):
            self.sweep()
        logger.info("Session cleanup job stopped")

    def stop(self, timeout: Optional[float] = None):
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout)
