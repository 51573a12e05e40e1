"""
Error taxonomy for query parsing and conversation sessions.
"""
from typing import Dict, Type


class QueryValidationError(ValueError):
    """Raised when a query is rejected before extraction runs."""

    code = "INVALID_QUERY"

    def __init__(self, message: str, field: str = "query"):
        super().__init__(message)
        self.message = message
        self.field = field


class EmptyQueryError(QueryValidationError):
    code = "EMPTY_QUERY"


class QueryTooLongError(QueryValidationError):
    code = "QUERY_TOO_LONG"


class MalformedQueryError(QueryValidationError):
    code = "MALFORMED_QUERY"


class SessionVersionConflictError(Exception):
    """Raised when a session mutation was based on a stale state version."""

    def __init__(self, session_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Session {session_id} is at version {actual_version}, expected {expected_version}"
        )
        self.session_id = session_id
        self.expected_version = expected_version
        self.actual_version = actual_version


VALIDATION_ERRORS: Dict[str, Type[QueryValidationError]] = {
    EmptyQueryError.code: EmptyQueryError,
    QueryTooLongError.code: QueryTooLongError,
    MalformedQueryError.code: MalformedQueryError,
}
