"""
Main entry point for the place query engine.
"""
import logging
import time
from typing import Any, Dict, List, Optional

from config import APP_CONFIG, PARSER_CONFIG, get_config
from data.session import ConversationSessionStore, SessionSweeper
from models.conversation import BaseSearch, BusinessResult
from models.errors import QueryValidationError
from models.parameters import Coordinates
from pipeline.ambiguity_detection import detect_ambiguity
from services.conversation_service import ConversationContextStore
from services.query_service import QueryParser
from services.refinement_service import RefinementService
from utils.monitoring import QueryEngineMonitor

# Configure logging
logging.basicConfig(
    level=getattr(logging, APP_CONFIG["log_level"].upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def initialize_system(start_sweeper: bool = False) -> Dict[str, Any]:
    """Initialize the query engine components."""
    logger.info("Initializing place query engine")
    config = get_config()

    # Log configuration
    logger.info(f"System configured with: session timeout={config['session']['timeout_ms']}ms, "
                f"confidence threshold={config['parser']['confidence_threshold']}, "
                f"Features={config['features']}")

    context_store = ConversationContextStore(timeout_ms=config["session"]["context_timeout_ms"])
    session_store = ConversationSessionStore(timeout_ms=config["session"]["timeout_ms"])
    sweeper = SessionSweeper(session_store, context_store, config["session"]["cleanup_interval_ms"])
    if start_sweeper:
        sweeper.start()

    # Return initialized components
    return {
        "query_parser": QueryParser(context_store=context_store),
        "refinement_service": RefinementService(session_store=session_store),
        "session_store": session_store,
        "context_store": context_store,
        "sweeper": sweeper,
        "monitor": QueryEngineMonitor(),
        "config": config,
    }


def execute_search(system: Dict[str, Any], query: str, session_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Parse a search request and check it for ambiguity.

    Args:
        system: Components from initialize_system()
        query: The user search query
        session_id: Optional conversation the query belongs to

    Returns:
        Dictionary with the parse result, any ambiguity, and any validation error
    """
    logger.info(f"Executing search for query: '{query}'")
    start_time = time.time()
    monitor = system["monitor"]

    try:
        result = system["query_parser"].parse_with_retry(query, session_id)
    except QueryValidationError as e:
        logger.warning(f"Query rejected: {e.code}")
        monitor.log_validation_error(query, e.code)
        return {"query": query, "parse_result": None, "ambiguity": None, "error": e.code}

    threshold = system["config"]["parser"].get("confidence_threshold", PARSER_CONFIG["confidence_threshold"])
    ambiguity = detect_ambiguity(result, threshold)
    execution_time = time.time() - start_time

    # Record search in monitoring
    monitor.log_parse(query, result, ambiguity, execution_time)
    logger.info(f"Search parsed in {execution_time:.3f}s, ambiguous: {ambiguity is not None}")

    return {"query": query, "parse_result": result, "ambiguity": ambiguity, "error": None}


def execute_refinement(system: Dict[str, Any], session_id: str, text: str) -> Optional[Dict[str, Any]]:
    """
    Apply a follow-up utterance to an established session.

    Returns:
        Dictionary with the outcome, or None if the session has expired
    """
    logger.info(f"Executing refinement for session {session_id}: '{text}'")
    start_time = time.time()

    outcome = system["refinement_service"].refine(session_id, text)
    if outcome is None:
        return None

    system["monitor"].log_refinement(outcome, time.time() - start_time)
    return {
        "text": text,
        "is_refinement": outcome.is_refinement,
        "is_reset": outcome.is_reset,
        "filters": outcome.filters.model_dump(exclude_none=True),
        "results": [result.name for result in outcome.results],
        "state_version": outcome.session.state_version,
    }


def sample_results(center: Coordinates) -> List[BusinessResult]:
    """A small hand-made result list around a search center."""
    rows = [
        ("Morning Grind", 4.6, 1, 0.002),
        ("Roastery Row", 4.2, 2, 0.01),
        ("Bean There", 3.8, 1, 0.004),
        ("Velvet Cup", 4.8, 3, 0.03),
        ("Corner Brew", None, 2, 0.006),
    ]
    return [
        BusinessResult(
            place_id=f"place-{index}",
            name=name,
            location=Coordinates(lat=center.lat + offset, lng=center.lng),
            rating=rating,
            price_level=price_level,
        )
        for index, (name, rating, price_level, offset) in enumerate(rows)
    ]


if __name__ == "__main__":
    # Initialize the system
    system = initialize_system()

    # Test queries including edge cases for input validation
    test_queries = [
        "find 4-star coffee shops near downtown Seattle",
        "cheap pizza open now in portland",
        "something good",
        "12345",
        "",
    ]

    print("\n=== TESTING STANDARD QUERIES ===")
    for query in test_queries:
        print(f"\nTESTING QUERY: {query!r}")
        outcome = execute_search(system, query)
        parse_result = outcome["parse_result"]
        if parse_result is not None:
            print(f"Categories: {parse_result.categories.categories}")
            print(f"Location: {parse_result.location.model_dump(exclude_none=True)}")
            print(f"Filters: {parse_result.filters.model_dump(exclude_none=True)}")
            print(f"Confidence: {parse_result.confidence:.2f}")
        if outcome["ambiguity"] is not None:
            print(f"Clarifying question: {outcome['ambiguity'].clarifying_question}")
        print(f"Error: {outcome['error']}")
        print("-" * 80)

    # Test conversation flow
    print("\n=== TESTING CONVERSATION FLOW ===")
    center = Coordinates(lat=47.6062, lng=-122.3321)
    base_search = BaseSearch(
        categories=["coffee_shop"],
        location="downtown seattle",
        search_center=center,
        base_results=sample_results(center),
    )
    session = system["refinement_service"].start_session(base_search, "coffee shops in downtown seattle")

    for text in ["show only 4+ stars", "cheap", "within 1 mile", "top 1", "show all", "sushi near me"]:
        print(f"\nREFINEMENT: {text}")
        print(execute_refinement(system, session.session_id, text))
        print("-" * 80)

    # Print system health metrics
    print("\n=== SYSTEM HEALTH METRICS ===")
    health_metrics = system["monitor"].get_system_health(system["session_store"].get_stats())
    for metric, value in health_metrics.items():
        print(f"{metric}: {value}")
    print("-" * 80)
