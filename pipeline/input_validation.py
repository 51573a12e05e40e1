"""
Input validation components for the query parse pipeline.
"""
import re
import logging
from typing import Optional, Tuple

from config import PARSER_CONFIG
from models.errors import EmptyQueryError, MalformedQueryError, QueryTooLongError
from models.state import QueryParseState

logger = logging.getLogger(__name__)

# Regular expression patterns for validation
ONLY_DIGITS_PATTERN = re.compile(r'^\d+$')
ONLY_SYMBOLS_PATTERN = re.compile(r'^[^a-zA-Z0-9\s]+$')
REPEATED_CHARACTER_PATTERN = re.compile(r'(.)\1{10,}')

MARKUP_TAG_PATTERN = re.compile(r'<[^>]*>')
ANGLE_BRACKET_PATTERN = re.compile(r'[<>]')
WHITESPACE_PATTERN = re.compile(r'\s+')


def validate_query(query: str, max_length: int = PARSER_CONFIG["max_query_length"]) -> None:
    """
    Reject queries that cannot be parsed.

    Raises:
        EmptyQueryError: the query is empty or whitespace only
        QueryTooLongError: the query exceeds max_length characters
        MalformedQueryError: the query is only digits, only symbols, or one
            character repeated more than ten times in a row
    """
    if not query or query.strip() == "":
        raise EmptyQueryError("Query cannot be empty")

    if len(query) > max_length:
        raise QueryTooLongError(f"Query exceeds maximum length of {max_length} characters")

    stripped = query.strip()
    if ONLY_DIGITS_PATTERN.match(stripped):
        raise MalformedQueryError("Query cannot contain only numbers")
    if ONLY_SYMBOLS_PATTERN.match(stripped):
        raise MalformedQueryError("Query cannot contain only special characters")
    if REPEATED_CHARACTER_PATTERN.search(query):
        raise MalformedQueryError("Query contains excessive repeated characters")


def sanitize_query(query: str) -> str:
    """Strip markup and collapse whitespace."""
    without_tags = MARKUP_TAG_PATTERN.sub('', query)
    without_brackets = ANGLE_BRACKET_PATTERN.sub('', without_tags)
    return WHITESPACE_PATTERN.sub(' ', without_brackets).strip()


def check_query(query: str, max_length: int = PARSER_CONFIG["max_query_length"]) -> Tuple[Optional[str], Optional[str]]:
    """Return (error code, message) for an invalid query, or (None, None)."""
    try:
        validate_query(query, max_length)
    except (EmptyQueryError, QueryTooLongError, MalformedQueryError) as e:
        return e.code, e.message
    return None, None


def validate_input(state: QueryParseState, max_length: int = PARSER_CONFIG["max_query_length"]) -> QueryParseState:
    """
    Validates and sanitizes the user query.

    Args:
        state: The current parse state

    Returns:
        Updated state with validation results and the sanitized query
    """
    query = state["query"]

    # Log the incoming query
    logger.debug(f"Validating query: {query!r}")

    code, message = check_query(query, max_length)
    if code is not None:
        logger.warning(f"Query validation failed: {code}")
        return {**state, "input_validation_error": code, "error": message}

    sanitized = sanitize_query(query)

    # Add validation metadata
    metadata = {
        **(state.get("metadata") or {}),
        "query_length": len(query),
        "sanitized": sanitized != query,
    }

    return {
        **state,
        "input_validation_error": None,
        "error": None,
        "sanitized_query": sanitized,
        "effective_query": sanitized,
        "metadata": metadata,
    }
