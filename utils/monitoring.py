"""
Monitoring and metrics for the query engine.
"""
import logging
import threading
import time
from typing import Any, Dict, Optional

from models.parameters import AmbiguityDetection, QueryParseResult
from models.refinement import RefinementOutcome

logger = logging.getLogger(__name__)


class QueryEngineMonitor:
    """Monitor query engine usage and performance."""

    def __init__(self):
        """Initialize the monitoring system."""
        logger.info("Initializing query engine monitor")
        self.queries_processed = 0
        self.refinements_processed = 0
        self.resets_processed = 0
        self.new_searches_from_refinement = 0
        self.error_count = 0
        self.validation_errors: Dict[str, int] = {}
        self.ambiguity_distribution: Dict[str, int] = {}
        self.category_distribution: Dict[str, int] = {}
        self.avg_response_time = 0.0
        self.hourly_query_count: Dict[str, int] = {}
        self._lock = threading.Lock()

    def _record_time(self, execution_time: float):
        count = self.queries_processed + self.refinements_processed
        self.avg_response_time = (
            (self.avg_response_time * (count - 1) + execution_time) / count
        )

    def log_parse(
        self,
        query: str,
        result: QueryParseResult,
        ambiguity: Optional[AmbiguityDetection],
        execution_time: float,
    ):
        """
        Log a completed parse.

        Args:
            query: The search query
            result: The parse result
            ambiguity: The ambiguity detected for the result, if any
            execution_time: Time taken to parse in seconds
        """
        with self._lock:
            self.queries_processed += 1
            self._record_time(execution_time)

            for category in result.categories.categories:
                self.category_distribution[category] = self.category_distribution.get(category, 0) + 1

            if ambiguity is not None:
                self.ambiguity_distribution[ambiguity.field] = self.ambiguity_distribution.get(ambiguity.field, 0) + 1

            current_hour = time.strftime("%Y-%m-%d-%H")
            self.hourly_query_count[current_hour] = self.hourly_query_count.get(current_hour, 0) + 1

        logger.debug(f"Logged parse metrics for query: '{query}', time: {execution_time:.3f}s")

    def log_validation_error(self, query: str, code: str):
        with self._lock:
            self.error_count += 1
            self.validation_errors[code] = self.validation_errors.get(code, 0) + 1
        logger.debug(f"Logged validation error {code} for query of {len(query)} chars")

    def log_refinement(self, outcome: RefinementOutcome, execution_time: float):
        with self._lock:
            self.refinements_processed += 1
            self._record_time(execution_time)
            if outcome.is_reset:
                self.resets_processed += 1
            elif not outcome.is_refinement:
                self.new_searches_from_refinement += 1

    def get_system_health(self, session_stats: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Get system health metrics.

        Args:
            session_stats: Optional session store statistics to include

        Returns:
            Dictionary of health metrics
        """
        with self._lock:
            total = self.queries_processed + self.error_count
            health = {
                "queries_processed": self.queries_processed,
                "refinements_processed": self.refinements_processed,
                "resets_processed": self.resets_processed,
                "new_searches_from_refinement": self.new_searches_from_refinement,
                "error_rate": self.error_count / max(1, total),
                "validation_errors": dict(self.validation_errors),
                "ambiguity_distribution": dict(self.ambiguity_distribution),
                "category_distribution": dict(self.category_distribution),
                "avg_response_time": self.avg_response_time,
                "hourly_distribution": dict(self.hourly_query_count),
            }
        if session_stats is not None:
            health["sessions"] = session_stats
        return health
