"""
Tests for the conversation session store.
"""
import unittest
import sys
import os
import threading
from unittest.mock import MagicMock, patch
import logging

# Add parent directory to path to allow imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data.session import (
    MAX_HISTORY_LENGTH,
    MAX_RESULTS_PER_SESSION,
    ConversationSessionStore,
    SessionSweeper,
)
from models.conversation import BaseSearch, BusinessResult, SearchTurn
from models.errors import SessionVersionConflictError
from models.parameters import Coordinates, FilterState

# Disable logging during tests
logging.disable(logging.CRITICAL)

CENTER = Coordinates(lat=47.6062, lng=-122.3321)


def make_base_search(count=3):
    return BaseSearch(
        categories=["coffee_shop"],
        location="seattle",
        search_center=CENTER,
        base_results=[
            BusinessResult(place_id=f"p{index}", name=f"Place {index}", location=CENTER, rating=4.0)
            for index in range(count)
        ],
    )


def make_turn(text, timestamp=1000.0):
    return SearchTurn(query_text=text, result_count=1, timestamp=timestamp, is_refinement=True)


class TestConversationSessionStore(unittest.TestCase):
    """Tests for session lifecycle and invariants."""

    def setUp(self):
        self.time_patcher = patch('data.session.time')
        self.mock_time = self.time_patcher.start()
        self.mock_time.time.return_value = 1000.0
        self.store = ConversationSessionStore(timeout_ms=60000)

    def tearDown(self):
        self.time_patcher.stop()

    def test_create_session(self):
        session = self.store.create(make_base_search(), user_id="u1")

        self.assertEqual(session.state_version, 1)
        self.assertEqual(session.search_history, [])
        self.assertTrue(session.current_filters.is_empty())
        self.assertEqual(session.user_id, "u1")
        self.assertEqual(session.last_query_timestamp, 1000.0)

    def test_session_ids_are_unique(self):
        ids = {self.store.create(make_base_search()).session_id for _ in range(20)}
        self.assertEqual(len(ids), 20)

    def test_base_results_are_capped(self):
        session = self.store.create(make_base_search(count=250))
        self.assertEqual(len(session.base_search.base_results), MAX_RESULTS_PER_SESSION)

    def test_get_returns_copy(self):
        session = self.store.create(make_base_search())

        fetched = self.store.get(session.session_id)
        fetched.current_filters.min_rating = 5.0
        fetched.search_history.append(make_turn("local edit"))

        stored = self.store.get(session.session_id)
        self.assertIsNone(stored.current_filters.min_rating)
        self.assertEqual(stored.search_history, [])

    def test_get_unknown_session(self):
        self.assertIsNone(self.store.get("missing"))

    def test_update_filters(self):
        session = self.store.create(make_base_search())
        self.mock_time.time.return_value = 1010.0

        updated = self.store.update_filters(session.session_id, FilterState(min_rating=4.0))

        self.assertEqual(updated.current_filters.min_rating, 4.0)
        self.assertEqual(updated.state_version, 2)
        self.assertEqual(updated.last_query_timestamp, 1010.0)

    def test_mutations_on_unknown_session(self):
        self.assertIsNone(self.store.update_filters("missing", FilterState()))
        self.assertIsNone(self.store.append_turn("missing", make_turn("x")))
        self.assertIsNone(self.store.reset("missing"))

    def test_version_increases_by_one_per_mutation(self):
        session = self.store.create(make_base_search())
        session_id = session.session_id

        versions = [session.state_version]
        versions.append(self.store.update_filters(session_id, FilterState(max_price_level=2)).state_version)
        versions.append(self.store.append_turn(session_id, make_turn("cheap")).state_version)
        versions.append(self.store.reset(session_id).state_version)
        versions.append(self.store.update_filters(session_id, FilterState(open_now=True)).state_version)

        self.assertEqual(versions, [1, 2, 3, 4, 5])

    def test_history_is_bounded_most_recent_first(self):
        session = self.store.create(make_base_search())

        for index in range(12):
            updated = self.store.append_turn(session.session_id, make_turn(f"turn {index}"))

        self.assertEqual(len(updated.search_history), MAX_HISTORY_LENGTH)
        self.assertEqual(updated.search_history[0].query_text, "turn 11")
        self.assertEqual(updated.search_history[-1].query_text, "turn 2")

    def test_reset(self):
        session = self.store.create(make_base_search(count=7))
        self.store.update_filters(session.session_id, FilterState(min_rating=4.5))

        reset = self.store.reset(session.session_id)

        self.assertTrue(reset.current_filters.is_empty())
        self.assertEqual(reset.search_history[0].query_text, "show all")
        self.assertEqual(reset.search_history[0].result_count, 7)
        self.assertTrue(reset.search_history[0].is_refinement)
        self.assertEqual(len(reset.base_search.base_results), 7)

    def test_expected_version_conflict(self):
        session = self.store.create(make_base_search())
        self.store.update_filters(session.session_id, FilterState(min_rating=4.0), expected_version=1)

        with self.assertRaises(SessionVersionConflictError) as raised:
            self.store.update_filters(session.session_id, FilterState(min_rating=3.0), expected_version=1)

        self.assertEqual(raised.exception.actual_version, 2)
        self.assertEqual(self.store.get(session.session_id).current_filters.min_rating, 4.0)

    def test_session_expires_after_idle_timeout(self):
        session = self.store.create(make_base_search())
        self.mock_time.time.return_value = 1061.0

        self.assertIsNone(self.store.get(session.session_id))
        self.assertIsNone(self.store.update_filters(session.session_id, FilterState(min_rating=4.0)))
        self.assertEqual(len(self.store), 0)

    def test_expired_session_cannot_be_mutated(self):
        session = self.store.create(make_base_search())
        self.mock_time.time.return_value = 1061.0

        self.assertIsNone(self.store.append_turn(session.session_id, make_turn("late")))
        self.assertIsNone(self.store.get(session.session_id))

    def test_sliding_expiration(self):
        session = self.store.create(make_base_search())

        self.mock_time.time.return_value = 1050.0
        self.assertIsNotNone(self.store.get(session.session_id))

        self.mock_time.time.return_value = 1100.0
        self.assertIsNotNone(self.store.get(session.session_id))

    def test_delete(self):
        session = self.store.create(make_base_search())

        self.assertTrue(self.store.delete(session.session_id))
        self.assertFalse(self.store.delete(session.session_id))
        self.assertIsNone(self.store.get(session.session_id))

    def test_sweep_expired(self):
        stale = self.store.create(make_base_search())
        self.mock_time.time.return_value = 1040.0
        fresh = self.store.create(make_base_search())
        self.mock_time.time.return_value = 1070.0

        removed = self.store.sweep_expired()

        self.assertEqual(removed, 1)
        self.assertIsNone(self.store.get(stale.session_id))
        self.assertIsNotNone(self.store.get(fresh.session_id))

    def test_user_sessions_and_stats(self):
        first = self.store.create(make_base_search(), user_id="u1")
        self.store.create(make_base_search(), user_id="u2")

        self.assertEqual(self.store.get_user_sessions("u1"), [first.session_id])
        self.assertEqual(len(self.store.active_session_ids()), 2)

        stats = self.store.get_stats()
        self.assertEqual(stats["active_sessions"], 2)
        self.assertEqual(stats["session_timeout_ms"], 60000)
        self.assertEqual(stats["max_history_length"], MAX_HISTORY_LENGTH)

        self.store.clear()
        self.assertEqual(len(self.store), 0)


class TestSessionConcurrency(unittest.TestCase):
    """Concurrent mutations must not lose updates."""

    def test_concurrent_appends(self):
        store = ConversationSessionStore()
        session = store.create(make_base_search())

        def append_many(worker):
            for index in range(20):
                store.append_turn(session.session_id, make_turn(f"{worker}-{index}"))

        threads = [threading.Thread(target=append_many, args=(worker,)) for worker in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        final = store.get(session.session_id)
        self.assertEqual(final.state_version, 1 + 8 * 20)
        self.assertEqual(len(final.search_history), MAX_HISTORY_LENGTH)


class TestSessionSweeper(unittest.TestCase):
    """Tests for the background sweeper."""

    def test_sweep_cleans_both_stores(self):
        session_store = MagicMock()
        session_store.sweep_expired.return_value = 3
        context_store = MagicMock()

        sweeper = SessionSweeper(session_store, context_store, interval_ms=1000)

        self.assertEqual(sweeper.sweep(), 3)
        context_store.clean_expired.assert_called_once()

    def test_start_and_stop(self):
        sweeper = SessionSweeper(ConversationSessionStore(), interval_ms=10)
        sweeper.start()
        sweeper.stop(timeout=2)

        self.assertFalse(sweeper.is_alive())


if __name__ == "__main__":
    unittest.main()
