"""
Tests for refinement parsing, filter merge/apply and the refinement service.
"""
import unittest
import sys
import os
from unittest.mock import patch
import logging

# Add parent directory to path to allow imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data.session import ConversationSessionStore
from models.conversation import BaseSearch, BusinessResult
from models.errors import SessionVersionConflictError
from models.parameters import Coordinates, FilterState
from models.refinement import (
    AttributesOperator,
    DistanceOperator,
    LimitOperator,
    OpenNowOperator,
    PriceOperator,
    RatingOperator,
)
from pipeline.filter_application import apply_filters, merge_filters, operators_to_filter_state
from pipeline.refinement_parsing import (
    detect_refinement_intent,
    is_reset_request,
    parse_refinement,
    price_amount_to_level,
)
from services.refinement_service import RefinementService
from utils.geo import haversine_distance

# Disable logging during tests
logging.disable(logging.CRITICAL)

CENTER = Coordinates(lat=47.6062, lng=-122.3321)


def make_results():
    """Five coffee shops north of the center, roughly 0.2 to 3.3 km away."""
    rows = [
        ("a", 4.6, 1, 0.002),
        ("b", 4.2, 2, 0.01),
        ("c", 3.8, 1, 0.004),
        ("d", 4.8, 3, 0.03),
        ("e", None, None, 0.006),
    ]
    return [
        BusinessResult(
            place_id=place_id,
            name=place_id.upper(),
            location=Coordinates(lat=CENTER.lat + offset, lng=CENTER.lng),
            rating=rating,
            price_level=price_level,
        )
        for place_id, rating, price_level, offset in rows
    ]


def ids(results):
    return [result.place_id for result in results]


class TestRefinementIntent(unittest.TestCase):
    """Tests for refinement intent detection."""

    def test_explicit_directives(self):
        for text in ["show only 4+ stars", "filter to open now", "which are cheap", "just the highly rated ones"]:
            self.assertTrue(detect_refinement_intent(text), text)

    def test_implicit_refinements(self):
        for text in ["4+ stars", "open now", "cheap", "with parking", "within 1 mile", "under $15", "top 3"]:
            self.assertTrue(detect_refinement_intent(text), text)

    def test_new_searches(self):
        for text in ["find restaurants near me", "coffee shops in San Francisco", "cheap sushi", "pizza"]:
            self.assertFalse(detect_refinement_intent(text), text)

    def test_reset_requests(self):
        self.assertTrue(is_reset_request("Show all"))
        self.assertTrue(is_reset_request("please clear filters"))
        self.assertFalse(is_reset_request("show only cheap"))


class TestRefinementParsing(unittest.TestCase):
    """Tests for refinement operator extraction."""

    def test_new_search_has_no_operators(self):
        result = parse_refinement("find restaurants near me")

        self.assertFalse(result.is_refinement)
        self.assertEqual(result.operators, [])
        self.assertEqual(result.confidence, 0.0)

    def test_rating_plus(self):
        result = parse_refinement("show only 4+ stars")

        self.assertTrue(result.is_refinement)
        self.assertEqual(len(result.operators), 1)
        self.assertIsInstance(result.operators[0], RatingOperator)
        self.assertEqual(result.operators[0].threshold, 4.0)
        self.assertEqual(result.confidence, 0.9)

    def test_rating_phrases(self):
        self.assertEqual(parse_refinement("show only at least 4.5 stars").operators[0].threshold, 4.5)
        self.assertEqual(parse_refinement("show only highly rated").operators[0].threshold, 4.0)
        self.assertEqual(parse_refinement("show only top rated").operators[0].threshold, 4.5)

    def test_fractional_star_rating(self):
        self.assertEqual(parse_refinement("show only 4.5 stars").operators[0].threshold, 4.5)
        self.assertEqual(parse_refinement("3.5 star").operators[0].threshold, 3.5)

    def test_out_of_range_rating_is_rejected(self):
        result = parse_refinement("show only 7+ stars")

        self.assertTrue(result.is_refinement)
        self.assertEqual(result.operators, [])
        self.assertEqual(result.confidence, 0.5)

    def test_open_now(self):
        for text in ["which are open now", "show only 24 hours", "just the ones open on weekends"]:
            operators = parse_refinement(text).operators
            self.assertEqual(len(operators), 1, text)
            self.assertIsInstance(operators[0], OpenNowOperator)
            self.assertTrue(operators[0].flag)

    def test_price_symbols(self):
        self.assertEqual(parse_refinement("show only $").operators[0].max_level, 1)
        self.assertEqual(parse_refinement("filter to $$$").operators[0].max_level, 3)
        self.assertEqual(parse_refinement("filter to $$$").operators[0].confidence, 0.95)

    def test_price_words(self):
        self.assertEqual(parse_refinement("show only cheap").operators[0].max_level, 1)
        self.assertEqual(parse_refinement("filter to expensive").operators[0].max_level, 3)
        self.assertEqual(parse_refinement("filter to expensive").operators[0].confidence, 0.85)

    def test_price_amount(self):
        operator = parse_refinement("under $15").operators[0]

        self.assertIsInstance(operator, PriceOperator)
        self.assertEqual(operator.max_level, 2)
        self.assertEqual(operator.confidence, 0.85)

    def test_price_amount_to_level(self):
        self.assertEqual([price_amount_to_level(amount) for amount in (5, 10, 11, 20, 40, 41)], [1, 1, 2, 2, 3, 4])

    def test_distance(self):
        result = parse_refinement("show only within 1 mile")

        distances = [op for op in result.operators if isinstance(op, DistanceOperator)]
        self.assertEqual(len(distances), 1)
        self.assertAlmostEqual(distances[0].max_meters, 1609.34)

    def test_distance_phrases(self):
        self.assertAlmostEqual(parse_refinement("show only nearby").operators[0].max_meters, 3218.68)
        self.assertAlmostEqual(parse_refinement("within walking distance").operators[0].max_meters, 804.67)
        self.assertAlmostEqual(parse_refinement("show only within 2 km").operators[0].max_meters, 2000.0)

    def test_attributes(self):
        operator = parse_refinement("with wifi and outdoor seating").operators[0]

        self.assertIsInstance(operator, AttributesOperator)
        self.assertEqual(operator.attributes, ["wifi", "outdoor seating"])

    def test_hyphenated_attributes(self):
        operator = parse_refinement("just the pet-friendly ones").operators[0]
        self.assertEqual(operator.attributes, ["pet-friendly"])

    def test_limit(self):
        operators = parse_refinement("top 3").operators

        self.assertEqual(len(operators), 1)
        self.assertIsInstance(operators[0], LimitOperator)
        self.assertEqual(operators[0].count, 3)
        self.assertEqual(operators[0].confidence, 0.8)

    def test_multiple_operators(self):
        result = parse_refinement("show only 4+ stars and open now")

        kinds = [operator.kind for operator in result.operators]
        self.assertEqual(kinds, ["rating", "open_now"])
        self.assertAlmostEqual(result.confidence, (0.9 + 0.95) / 2)

    def test_directive_without_operator(self):
        result = parse_refinement("narrow down please")

        self.assertTrue(result.is_refinement)
        self.assertEqual(result.operators, [])
        self.assertEqual(result.confidence, 0.5)


class TestFilterApplication(unittest.TestCase):
    """Tests for filter merge and apply."""

    def setUp(self):
        self.results = make_results()

    def test_operators_to_filter_state(self):
        filters = operators_to_filter_state([
            RatingOperator(threshold=3.0, confidence=0.9),
            PriceOperator(max_level=2, confidence=0.85),
            OpenNowOperator(flag=True, confidence=0.95),
            DistanceOperator(max_meters=500.0, confidence=0.9),
            AttributesOperator(attributes=["wifi"], confidence=0.85),
            RatingOperator(threshold=4.5, confidence=0.9),
            LimitOperator(count=3, confidence=0.8),
        ])

        self.assertEqual(filters, FilterState(
            min_rating=4.5,
            max_price_level=2,
            open_now=True,
            max_distance_meters=500.0,
            attributes=["wifi"],
        ))

    def test_unknown_operator(self):
        with self.assertRaises(TypeError):
            operators_to_filter_state([object()])

    def test_merge_overwrites_present_fields_only(self):
        existing = FilterState(min_rating=4.0, max_price_level=1)
        merged = merge_filters(existing, FilterState(max_price_level=3, open_now=True))

        self.assertEqual(merged, FilterState(min_rating=4.0, max_price_level=3, open_now=True))
        self.assertEqual(existing.max_price_level, 1)

    def test_rating_excludes_unknown(self):
        filtered = apply_filters(self.results, FilterState(min_rating=4.0), CENTER)
        self.assertEqual(ids(filtered), ["a", "b", "d"])

    def test_price_excludes_unknown(self):
        filtered = apply_filters(self.results, FilterState(max_price_level=1), CENTER)
        self.assertEqual(ids(filtered), ["a", "c"])

    def test_distance_is_computed_when_missing(self):
        filtered = apply_filters(self.results, FilterState(max_distance_meters=1000.0), CENTER)
        self.assertEqual(ids(filtered), ["a", "c", "e"])

    def test_cached_distance_is_used(self):
        far = self.results[0].model_copy(update={"distance": 5000.0})
        filtered = apply_filters([far], FilterState(max_distance_meters=1000.0), CENTER)
        self.assertEqual(filtered, [])

    def test_open_now_and_attributes_pass_through(self):
        filters = FilterState(open_now=True, attributes=["wifi"])
        self.assertEqual(apply_filters(self.results, filters, CENTER), self.results)

    def test_apply_is_idempotent(self):
        filters = FilterState(min_rating=4.0, max_price_level=2, max_distance_meters=2000.0)

        once = apply_filters(self.results, filters, CENTER)
        twice = apply_filters(once, filters, CENTER)

        self.assertEqual(ids(once), ["a", "b"])
        self.assertEqual(once, twice)

    def test_apply_does_not_modify_input(self):
        apply_filters(self.results, FilterState(min_rating=5.0), CENTER)
        self.assertEqual(len(self.results), 5)

    def test_haversine(self):
        self.assertEqual(haversine_distance(Coordinates(lat=0, lng=0), Coordinates(lat=0, lng=1)), 111194.9)
        self.assertEqual(haversine_distance(CENTER, CENTER), 0.0)


class TestRefinementService(unittest.TestCase):
    """Tests for the multi-turn refinement flow."""

    def setUp(self):
        self.store = ConversationSessionStore()
        self.service = RefinementService(session_store=self.store)
        self.base_search = BaseSearch(
            categories=["coffee_shop"],
            location="downtown seattle",
            search_center=CENTER,
            base_results=make_results(),
        )
        self.session = self.service.start_session(self.base_search, "coffee shops downtown seattle")

    def test_uses_injected_empty_store(self):
        store = ConversationSessionStore()
        service = RefinementService(session_store=store)
        self.assertIs(service.session_store, store)

        session = service.start_session(self.base_search, "coffee")

        self.assertIsNotNone(store.get(session.session_id))
        self.assertEqual(store.get_stats()["active_sessions"], 1)

    def test_start_session_records_initial_turn(self):
        self.assertEqual(self.session.state_version, 2)
        self.assertEqual(len(self.session.search_history), 1)
        self.assertFalse(self.session.search_history[0].is_refinement)
        self.assertEqual(self.session.search_history[0].result_count, 5)

    def test_refinements_accumulate(self):
        first = self.service.refine(self.session.session_id, "show only 4+ stars")
        self.assertEqual(ids(first.results), ["a", "b", "d"])
        self.assertEqual(first.session.state_version, 4)

        second = self.service.refine(self.session.session_id, "cheap")
        self.assertEqual(second.filters, FilterState(min_rating=4.0, max_price_level=1))
        self.assertEqual(ids(second.results), ["a"])

        history = second.session.search_history
        self.assertEqual(history[0].query_text, "cheap")
        self.assertTrue(history[0].is_refinement)
        self.assertEqual(history[0].result_count, 1)

    def test_later_refinement_can_widen(self):
        self.service.refine(self.session.session_id, "cheap")
        outcome = self.service.refine(self.session.session_id, "filter to $$$")

        self.assertEqual(outcome.filters.max_price_level, 3)
        self.assertEqual(ids(outcome.results), ["a", "b", "c", "d"])

    def test_limit_truncates_results(self):
        outcome = self.service.refine(self.session.session_id, "top 2")

        self.assertEqual(ids(outcome.results), ["a", "b"])
        self.assertTrue(outcome.filters.is_empty())
        self.assertEqual(outcome.session.search_history[0].result_count, 2)

    def test_reset(self):
        self.service.refine(self.session.session_id, "show only 4+ stars")
        outcome = self.service.refine(self.session.session_id, "show all")

        self.assertTrue(outcome.is_reset)
        self.assertTrue(outcome.filters.is_empty())
        self.assertEqual(len(outcome.results), 5)
        self.assertEqual(outcome.session.search_history[0].query_text, "show all")

    def test_reset_phrase_with_operator_refines(self):
        outcome = self.service.refine(self.session.session_id, "show all 4 star ones")

        self.assertFalse(outcome.is_reset)
        self.assertEqual(outcome.filters.min_rating, 4.0)
        self.assertEqual(ids(outcome.results), ["a", "b", "d"])

    def test_new_search_leaves_session_untouched(self):
        outcome = self.service.refine(self.session.session_id, "find sushi near me")

        self.assertFalse(outcome.is_refinement)
        self.assertEqual(outcome.session.state_version, self.session.state_version)
        self.assertEqual(self.store.get(self.session.session_id).state_version, self.session.state_version)

    def test_unknown_session(self):
        self.assertIsNone(self.service.refine("missing", "cheap"))

    def test_version_conflict_is_retried(self):
        real_update = self.store.update_filters
        attempts = []

        def flaky_update(session_id, filters, expected_version=None):
            attempts.append(expected_version)
            if len(attempts) == 1:
                raise SessionVersionConflictError(session_id, expected_version, expected_version + 1)
            return real_update(session_id, filters, expected_version)

        with patch.object(self.store, "update_filters", side_effect=flaky_update):
            outcome = self.service.refine(self.session.session_id, "show only 4+ stars")

        self.assertEqual(len(attempts), 2)
        self.assertEqual(outcome.filters.min_rating, 4.0)

    def test_persistent_conflict_is_raised(self):
        def always_conflict(session_id, filters, expected_version=None):
            raise SessionVersionConflictError(session_id, expected_version, expected_version + 1)

        with patch.object(self.store, "update_filters", side_effect=always_conflict):
            with self.assertRaises(SessionVersionConflictError):
                self.service.refine(self.session.session_id, "cheap")


if __name__ == "__main__":
    unittest.main()
