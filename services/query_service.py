"""
Query parse service: turns free text into a structured QueryParseResult.
"""
import logging
import time
from typing import Any, Dict, Optional

from config import FEATURES, PARSER_CONFIG, RETRY_CONFIG
from data.vocabulary import DEFAULT_VOCABULARY, Vocabulary
from models.errors import QueryValidationError, VALIDATION_ERRORS
from models.parameters import QueryMetadata, QueryParseResult
from models.state import QueryParseState
from pipeline.graph import build_parse_graph
from services.conversation_service import ConversationContextStore

logger = logging.getLogger(__name__)

TRANSIENT_ERROR_MARKERS = ("timeout", "network", "connection")


def is_transient_error(error: Exception) -> bool:
    """Only timeout/network/connection-shaped failures are worth retrying."""
    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_ERROR_MARKERS)


class QueryParser:
    """Parses natural-language place searches."""

    def __init__(
        self,
        context_store: Optional[ConversationContextStore] = None,
        vocabulary: Vocabulary = DEFAULT_VOCABULARY,
        max_query_length: int = PARSER_CONFIG["max_query_length"],
        retry_config: Optional[Dict[str, Any]] = None,
        use_conversation_context: bool = FEATURES["use_conversation_context"],
    ):
        """
        Initialize the query parser.

        Args:
            context_store: Previous-location store for pronoun resolution;
                one is created when conversation context is enabled
            vocabulary: Vocabulary tables shared by every extractor
            max_query_length: Longest accepted query, in characters
            retry_config: Overrides for RETRY_CONFIG
            use_conversation_context: Resolve "there"/"that place" against
                previous locations of the session
        """
        logger.info("Initializing query parser")
        if context_store is None and use_conversation_context:
            context_store = ConversationContextStore(vocabulary=vocabulary)
        self.context_store = context_store if use_conversation_context else None
        self.vocabulary = vocabulary
        self.retry_config = {**RETRY_CONFIG, **(retry_config or {})}
        self.executor = build_parse_graph(self.context_store, vocabulary, max_query_length)

    def parse(self, text: str, session_id: Optional[str] = None) -> QueryParseResult:
        """
        Parse a search request.

        Args:
            text: The raw query text
            session_id: Optional conversation the query belongs to

        Returns:
            The structured parse result

        Raises:
            EmptyQueryError, QueryTooLongError, MalformedQueryError: the
                query was rejected before extraction
        """
        start_time = time.time()

        initial_state = QueryParseState(
            query=text,
            session_id=session_id,
            sanitized_query="",
            effective_query="",
            categories=None,
            location=None,
            filters=None,
            filter_confidence=0.0,
            confidence=0.0,
            input_validation_error=None,
            error=None,
            resolved_reference=None,
            metadata={"query_timestamp": start_time},
        )

        result = self.executor.invoke(initial_state)

        code = result.get("input_validation_error")
        if code is not None:
            error_class = VALIDATION_ERRORS.get(code, QueryValidationError)
            raise error_class(result.get("error") or code)

        parse_result = QueryParseResult(
            categories=result["categories"],
            location=result["location"],
            filters=result["filters"],
            metadata=QueryMetadata(
                original_text=text,
                timestamp=start_time,
                session_id=session_id,
            ),
            confidence=result["confidence"],
        )

        execution_time = time.time() - start_time
        logger.info(
            f"Parsed query in {execution_time:.3f}s: categories={parse_result.categories.categories}, "
            f"location='{parse_result.location.value}', confidence={parse_result.confidence:.2f}"
        )
        return parse_result

    def parse_with_retry(self, text: str, session_id: Optional[str] = None) -> QueryParseResult:
        """
        Parse with capped exponential backoff on transient failures.

        Validation errors and other non-transient errors propagate
        immediately. Once retries are exhausted the query is parsed once
        more without conversation context.
        """
        max_retries = self.retry_config["max_retries"]
        base_delay = self.retry_config["base_delay"]
        max_delay = self.retry_config["max_delay"]

        for attempt in range(max_retries):
            try:
                return self.parse(text, session_id)
            except QueryValidationError:
                raise
            except Exception as e:
                if not is_transient_error(e):
                    raise
                logger.warning(f"Transient parse failure (attempt {attempt + 1}/{max_retries}): {str(e)}")
                if attempt < max_retries - 1:
                    time.sleep(min(base_delay * (2 ** attempt), max_delay))

        logger.warning("Retries exhausted, falling back to a context-free parse")
        return self.parse(text, None)
