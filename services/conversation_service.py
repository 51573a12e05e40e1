"""
Service for managing conversation context (previously mentioned locations).
"""
import logging
import threading
import time
from typing import Dict, Optional, Tuple

from config import SESSION_CONFIG
from data.vocabulary import DEFAULT_VOCABULARY, Vocabulary
from models.conversation import ConversationContext
from utils.rules import phrase_pattern

logger = logging.getLogger(__name__)

MAX_PREVIOUS_LOCATIONS = 5


class ConversationContextStore:
    """Per-session history of resolved locations, used to resolve "there" and friends."""

    def __init__(
        self,
        timeout_ms: int = SESSION_CONFIG["context_timeout_ms"],
        vocabulary: Vocabulary = DEFAULT_VOCABULARY,
    ):
        """
        Initialize the context store.

        Args:
            timeout_ms: Idle time after which a context is discarded
            vocabulary: Supplies the demonstrative phrases to resolve
        """
        logger.info("Initializing conversation context store")
        self.ttl = timeout_ms / 1000.0
        self.vocabulary = vocabulary

        # In-memory context store
        self._contexts: Dict[str, ConversationContext] = {}
        self._lock = threading.Lock()

    def _is_expired(self, context: ConversationContext, now: float) -> bool:
        return now - context.timestamp > self.ttl

    def get_context(self, session_id: str) -> Optional[ConversationContext]:
        """
        Get the context for a session, refreshing its idle timer.

        Returns:
            A copy of the context, or None if absent or expired
        """
        now = time.time()
        with self._lock:
            context = self._contexts.get(session_id)
            if context is None:
                return None
            if self._is_expired(context, now):
                del self._contexts[session_id]
                logger.debug(f"Context expired for session: {session_id}")
                return None
            context.timestamp = now
            return context.model_copy(deep=True)

    def record_location(self, session_id: str, location: str) -> ConversationContext:
        """
        Record a resolved location as the most recent one for a session.

        A location already in the history moves to the front instead of
        being duplicated.
        """
        now = time.time()
        with self._lock:
            context = self._contexts.get(session_id)
            if context is None or self._is_expired(context, now):
                context = ConversationContext(session_id=session_id, timestamp=now)
                self._contexts[session_id] = context

            previous = [loc for loc in context.previous_locations if loc != location]
            context.previous_locations = ([location] + previous)[:MAX_PREVIOUS_LOCATIONS]
            context.timestamp = now

            logger.debug(f"Recorded location '{location}' for session: {session_id}")
            return context.model_copy(deep=True)

    def most_recent_location(self, session_id: str) -> Optional[str]:
        context = self.get_context(session_id)
        if context is None or not context.previous_locations:
            return None
        return context.previous_locations[0]

    def resolve_pronoun_reference(self, text: str, session_id: str) -> Optional[Tuple[str, str]]:
        """
        Replace demonstrative phrases with the most recently recorded location.

        Returns:
            (rewritten text, substituted location), or None if the text has
            no demonstrative phrase or the session has no recorded location
        """
        pattern = phrase_pattern(self.vocabulary.demonstrative_phrases, word_boundary=True)
        if not pattern.search(text):
            return None

        latest = self.most_recent_location(session_id)
        if latest is None:
            return None

        return pattern.sub(lambda _: latest, text), latest

    def clear(self, session_id: str) -> bool:
        with self._lock:
            removed = self._contexts.pop(session_id, None) is not None
        if removed:
            logger.info(f"Cleared context for session: {session_id}")
        return removed

    def clean_expired(self) -> int:
        """Remove expired contexts from memory."""
        now = time.time()
        with self._lock:
            snapshot = list(self._contexts.items())

        removed = 0
        for session_id, context in snapshot:
            if not self._is_expired(context, now):
                continue
            with self._lock:
                current = self._contexts.get(session_id)
                if current is not None and self._is_expired(current, now):
                    del self._contexts[session_id]
                    removed += 1

        if removed:
            logger.info(f"Cleaned {removed} expired conversation contexts")
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._contexts)
