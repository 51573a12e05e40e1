"""
Graph structure for the LangGraph query parse pipeline.
"""
import logging
from functools import partial
from typing import Optional

from langgraph.graph import StateGraph, END

from config import PARSER_CONFIG
from data.vocabulary import DEFAULT_VOCABULARY, Vocabulary
from models.state import QueryParseState
from pipeline.category_extraction import categorize_query
from pipeline.context_resolution import record_context, resolve_context
from pipeline.filter_extraction import filter_query
from pipeline.input_validation import validate_input
from pipeline.location_extraction import locate_query
from services.conversation_service import ConversationContextStore

logger = logging.getLogger(__name__)


def score_query(state: QueryParseState) -> QueryParseState:
    """
    Compute the aggregate confidence of a parse.

    The mean of the category and location confidences, plus the filter
    confidence when any filter was found.
    """
    scores = [state["categories"].confidence, state["location"].confidence]
    if state.get("filter_confidence", 0.0) > 0:
        scores.append(state["filter_confidence"])

    confidence = sum(scores) / len(scores)
    logger.debug(f"Aggregate confidence {confidence:.2f} from {len(scores)} scores")
    return {**state, "confidence": confidence}


def has_validation_error(state: QueryParseState) -> bool:
    return state.get("input_validation_error") is not None


def build_parse_graph(
    context_store: Optional[ConversationContextStore] = None,
    vocabulary: Vocabulary = DEFAULT_VOCABULARY,
    max_query_length: int = PARSER_CONFIG["max_query_length"],
):
    """
    Create the LangGraph for query parsing.

    Args:
        context_store: Previous-location store used for pronoun resolution;
            None disables conversation context
        vocabulary: Vocabulary tables shared by every extractor
        max_query_length: Longest accepted query, in characters

    Returns:
        The compiled graph
    """
    graph = StateGraph(QueryParseState)

    # Add all nodes
    graph.add_node("validate_input", partial(validate_input, max_length=max_query_length))
    graph.add_node("resolve_context", partial(resolve_context, context_store=context_store))
    graph.add_node("extract_categories", partial(categorize_query, vocabulary=vocabulary))
    graph.add_node("extract_location", partial(locate_query, vocabulary=vocabulary))
    graph.add_node("extract_filters", partial(filter_query, vocabulary=vocabulary))
    graph.add_node("score_query", score_query)
    graph.add_node("record_context", partial(record_context, context_store=context_store))

    # Rejected queries never reach extraction
    graph.add_conditional_edges(
        "validate_input",
        has_validation_error,
        {True: END, False: "resolve_context"}
    )

    # Define simple edges
    graph.add_edge("resolve_context", "extract_categories")
    graph.add_edge("extract_categories", "extract_location")
    graph.add_edge("extract_location", "extract_filters")
    graph.add_edge("extract_filters", "score_query")
    graph.add_edge("score_query", "record_context")
    graph.add_edge("record_context", END)

    # Set entry point
    graph.set_entry_point("validate_input")

    logger.info("Query parse graph built successfully")
    return graph.compile()
