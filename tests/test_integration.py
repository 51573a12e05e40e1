"""
Integration tests for the entire query engine.
"""
import unittest
import sys
import os
import logging

# Add parent directory to path to allow imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import execute_refinement, execute_search, initialize_system, sample_results
from models.conversation import BaseSearch
from models.parameters import Coordinates

# Disable logging during tests
logging.disable(logging.CRITICAL)


class TestIntegrationPipeline(unittest.TestCase):
    """Integration tests for search parsing and conversational refinement."""

    def setUp(self):
        """Set up test fixtures."""
        self.system = initialize_system()

    def test_search_query(self):
        """Test a complete query without ambiguity."""
        result = execute_search(self.system, "cheap coffee near me open now")

        parse_result = result["parse_result"]
        self.assertIsNone(result["error"])
        self.assertIsNone(result["ambiguity"])
        self.assertIn("coffee_shop", parse_result.categories.categories)
        self.assertEqual(parse_result.filters.max_price_level, 1)
        self.assertTrue(parse_result.filters.open_now)

    def test_ambiguous_location(self):
        """Test that an ambiguous city name produces a clarifying question."""
        result = execute_search(self.system, "pizza in portland")

        self.assertEqual(result["ambiguity"].field, "location")
        self.assertIn("portland", result["ambiguity"].clarifying_question)

    def test_missing_business_type(self):
        result = execute_search(self.system, "something good")
        self.assertEqual(result["ambiguity"].field, "businessType")

    def test_validation_error(self):
        """Test that rejected queries are reported, not raised."""
        result = execute_search(self.system, "!!!!!!")

        self.assertEqual(result["error"], "MALFORMED_QUERY")
        self.assertIsNone(result["parse_result"])

        health = self.system["monitor"].get_system_health()
        self.assertEqual(health["validation_errors"], {"MALFORMED_QUERY": 1})

    def test_pronoun_follow_up(self):
        """Test a follow-up search that refers back to the previous location."""
        execute_search(self.system, "coffee in seattle", session_id="conv-1")
        result = execute_search(self.system, "bakeries near there", session_id="conv-1")

        self.assertEqual(result["parse_result"].location.value, "seattle")
        self.assertIn("bakery", result["parse_result"].categories.categories)

    def test_refinement_conversation(self):
        """Test a multi-turn refinement conversation."""
        center = Coordinates(lat=47.6062, lng=-122.3321)
        base_search = BaseSearch(
            categories=["coffee_shop"],
            location="downtown seattle",
            search_center=center,
            base_results=sample_results(center),
        )
        session = self.system["refinement_service"].start_session(base_search, "coffee downtown seattle")

        rated = execute_refinement(self.system, session.session_id, "show only 4+ stars")
        self.assertTrue(rated["is_refinement"])
        self.assertEqual(rated["results"], ["Morning Grind", "Roastery Row", "Velvet Cup"])

        cheap = execute_refinement(self.system, session.session_id, "cheap")
        self.assertEqual(cheap["filters"], {"min_rating": 4.0, "max_price_level": 1})
        self.assertEqual(cheap["results"], ["Morning Grind"])

        reset = execute_refinement(self.system, session.session_id, "clear filters")
        self.assertTrue(reset["is_reset"])
        self.assertEqual(len(reset["results"]), 5)

        new_search = execute_refinement(self.system, session.session_id, "sushi near me")
        self.assertFalse(new_search["is_refinement"])

        health = self.system["monitor"].get_system_health(self.system["session_store"].get_stats())
        self.assertEqual(health["refinements_processed"], 4)
        self.assertEqual(health["resets_processed"], 1)
        self.assertEqual(health["sessions"]["active_sessions"], 1)

    def test_expired_session_refinement(self):
        self.assertIsNone(execute_refinement(self.system, "missing", "cheap"))


if __name__ == "__main__":
    unittest.main()
