"""
State definitions for the query parse pipeline.
"""
from typing import Dict, Any, Optional, TypedDict

from models.parameters import CategoryResult, FilterState, LocationResult

class QueryParseState(TypedDict):
    """
    Represents the state of the query parse graph.
    Maintains all information as it flows through the pipeline.
    """
    # Core query information
    query: str  # Original user query, untouched
    session_id: Optional[str]  # Conversation the query belongs to, if any
    sanitized_query: str  # Query after markup stripping and whitespace collapsing
    effective_query: str  # Sanitized query after pronoun substitution

    # Extraction results
    categories: Optional[CategoryResult]
    location: Optional[LocationResult]
    filters: Optional[FilterState]
    filter_confidence: float
    confidence: float  # Aggregate confidence

    # Error handling
    input_validation_error: Optional[str]  # Error code from input validation
    error: Optional[str]  # Human-readable validation message

    # Context and metadata
    resolved_reference: Optional[str]  # Location substituted for a demonstrative phrase
    metadata: Dict[str, Any]  # Metadata about the parse process
