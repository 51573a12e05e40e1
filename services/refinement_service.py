"""
Service for multi-turn refinement of an established search.
"""
import logging
import time
from typing import List, Optional

from data.session import ConversationSessionStore
from data.vocabulary import DEFAULT_VOCABULARY, Vocabulary
from models.conversation import BaseSearch, BusinessResult, ConversationSession, SearchTurn
from models.errors import SessionVersionConflictError
from models.parameters import FilterState
from models.refinement import LimitOperator, RefinementOutcome, RefinementParseResult
from pipeline.filter_application import apply_filters, merge_filters, operators_to_filter_state
from pipeline.refinement_parsing import is_reset_request, parse_refinement

logger = logging.getLogger(__name__)

MAX_UPDATE_ATTEMPTS = 3


class RefinementService:
    """Routes follow-up utterances to the session they refine."""

    def __init__(
        self,
        session_store: Optional[ConversationSessionStore] = None,
        vocabulary: Vocabulary = DEFAULT_VOCABULARY,
        max_update_attempts: int = MAX_UPDATE_ATTEMPTS,
    ):
        logger.info("Initializing refinement service")
        self.session_store = session_store if session_store is not None else ConversationSessionStore()
        self.vocabulary = vocabulary
        self.max_update_attempts = max_update_attempts

    def start_session(
        self,
        base_search: BaseSearch,
        query_text: str,
        user_id: Optional[str] = None,
    ) -> ConversationSession:
        """
        Create a session for a base search and record the initial turn.

        Args:
            base_search: The search results the conversation will refine
            query_text: The query that produced the base search
            user_id: Optional user identifier

        Returns:
            The session after the initial turn
        """
        session = self.session_store.create(base_search, user_id)
        turn = SearchTurn(
            query_text=query_text,
            result_count=len(session.base_search.base_results),
            timestamp=time.time(),
            is_refinement=False,
        )
        return self.session_store.append_turn(session.session_id, turn, expected_version=session.state_version)

    def refine(self, session_id: str, text: str) -> Optional[RefinementOutcome]:
        """
        Apply a follow-up utterance to a session.

        Args:
            session_id: The session to refine
            text: The follow-up utterance

        Returns:
            The outcome of the turn, or None if the session is absent or
            expired. An utterance that reads as a new search leaves the
            session untouched and comes back with is_refinement False.
        """
        session = self.session_store.get(session_id)
        if session is None:
            logger.warning(f"Refinement for unknown session: {session_id}")
            return None

        parse_result = parse_refinement(text, self.vocabulary)
        # "show all 4 star ones" narrows; only operator-free utterances reset
        if not parse_result.operators and is_reset_request(text, self.vocabulary):
            return self._reset(session_id)

        if not parse_result.is_refinement:
            logger.info(f"Utterance starts a new search, session {session_id} untouched")
            return RefinementOutcome(
                session=session,
                parse_result=parse_result,
                filters=session.current_filters,
                results=apply_filters(
                    session.base_search.base_results,
                    session.current_filters,
                    session.base_search.search_center,
                ),
            )

        incoming = operators_to_filter_state(parse_result.operators)
        conflict = None
        for attempt in range(self.max_update_attempts):
            try:
                return self._apply_refinement(session, parse_result, incoming, text)
            except SessionVersionConflictError as e:
                conflict = e
                logger.warning(f"Concurrent update on session {session_id} (attempt {attempt + 1}): {str(e)}")
                session = self.session_store.get(session_id)
                if session is None:
                    return None

        raise conflict

    def _apply_refinement(
        self,
        session: ConversationSession,
        parse_result: RefinementParseResult,
        incoming: FilterState,
        text: str,
    ) -> Optional[RefinementOutcome]:
        merged = merge_filters(session.current_filters, incoming)
        updated = self.session_store.update_filters(
            session.session_id, merged, expected_version=session.state_version
        )
        if updated is None:
            return None

        results = apply_filters(updated.base_search.base_results, merged, updated.base_search.search_center)
        results = self._limit(results, parse_result)

        turn = SearchTurn(
            query_text=text,
            applied_filters=merged,
            result_count=len(results),
            timestamp=time.time(),
            is_refinement=True,
        )
        # Recorded unconditionally: the filter update above already landed
        updated = self.session_store.append_turn(session.session_id, turn) or updated

        logger.info(
            f"Refined session {session.session_id} to {len(results)} results "
            f"(version {updated.state_version})"
        )
        return RefinementOutcome(
            session=updated,
            parse_result=parse_result,
            filters=merged,
            results=results,
        )

    @staticmethod
    def _limit(results: List[BusinessResult], parse_result: RefinementParseResult) -> List[BusinessResult]:
        limits = [operator.count for operator in parse_result.operators if isinstance(operator, LimitOperator)]
        if not limits:
            return results
        return results[:limits[-1]]

    def _reset(self, session_id: str) -> Optional[RefinementOutcome]:
        session = self.session_store.reset(session_id)
        if session is None:
            return None
        return RefinementOutcome(
            session=session,
            filters=session.current_filters,
            results=list(session.base_search.base_results),
            is_reset=True,
        )
