"""
Conversation context nodes for the query parse pipeline.
"""
import logging
from typing import Optional

from models.state import QueryParseState
from services.conversation_service import ConversationContextStore

logger = logging.getLogger(__name__)

# Only confidently resolved locations are remembered for later pronoun resolution
RECORD_CONFIDENCE_THRESHOLD = 0.6


def resolve_context(state: QueryParseState, context_store: Optional[ConversationContextStore] = None) -> QueryParseState:
    """
    Substitute a demonstrative phrase ("there", "that place") with the
    session's most recently recorded location.

    Args:
        state: The current parse state
        context_store: Store of previous locations per session

    Returns:
        Updated state with the effective query
    """
    session_id = state.get("session_id")
    if context_store is None or not session_id:
        return state

    resolution = context_store.resolve_pronoun_reference(state["sanitized_query"], session_id)
    if resolution is None:
        return state

    effective_query, location = resolution
    logger.info(f"Resolved location reference to '{location}' for session {session_id}")
    return {**state, "effective_query": effective_query, "resolved_reference": location}


def record_context(state: QueryParseState, context_store: Optional[ConversationContextStore] = None) -> QueryParseState:
    """Remember the resolved location for later turns of the same session."""
    session_id = state.get("session_id")
    location = state.get("location")
    if context_store is None or not session_id or location is None:
        return state

    if location.is_resolved and location.confidence > RECORD_CONFIDENCE_THRESHOLD:
        context_store.record_location(session_id, location.value)

    return state
