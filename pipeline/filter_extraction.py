"""
Filter extraction for the query parse pipeline.

Four independent dimensions (rating, opening hours, price, attributes) are
scanned; within a dimension the first matching rule wins.
"""
import logging
import re
from typing import List, Optional, Tuple

from data.vocabulary import DEFAULT_VOCABULARY, Vocabulary
from models.parameters import FilterState
from models.state import QueryParseState
from utils.rules import Rule, RuleMatch, first_match, keyword_rules

logger = logging.getLogger(__name__)

RATING_CONFIDENCE = 0.9
TEMPORAL_CONFIDENCE = 0.95
PRICE_SYMBOL_CONFIDENCE = 0.95
PRICE_KEYWORD_CONFIDENCE = 0.85
ATTRIBUTE_CONFIDENCE = 0.85

MAX_PRICE_LEVEL = 4


def _star_count(match):
    rating = int(match.group(1))
    return rating if 1 <= rating <= 5 else None


def _fractional_stars(match):
    rating = float(match.group(1))
    return rating if 0 <= rating <= 5 else None


# "4.5 stars" must not read as "5 stars"
_FRACTIONAL_STAR_RULE = Rule(
    re.compile(r"(?<![\d.])(\d\.\d+)[-\s]?stars?"), _fractional_stars, RATING_CONFIDENCE
)

# "5-star" outranks "4-star" when both appear
_STAR_RULES = (_FRACTIONAL_STAR_RULE,) + tuple(
    Rule(re.compile(rf"(?<![\d.]){stars}[-\s]star"), stars, RATING_CONFIDENCE)
    for stars in (5, 4, 3, 2, 1)
) + (
    Rule(re.compile(r"(?<![\d.])\b(\d)\s*stars?"), _star_count, RATING_CONFIDENCE),
)

_DOLLAR_RUN = re.compile(r"\$+")


def _rating_rules(vocabulary: Vocabulary) -> Tuple[Rule, ...]:
    return _STAR_RULES + keyword_rules(vocabulary.rating_phrases, RATING_CONFIDENCE)


def _price_symbol_level(match) -> int:
    return min(len(match.group(0)), MAX_PRICE_LEVEL)


def extract_rating(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> Optional[RuleMatch]:
    return first_match(_rating_rules(vocabulary), text)


def extract_open_now(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> Optional[RuleMatch]:
    pairs = tuple((phrase, True) for phrase in vocabulary.temporal_phrases)
    return first_match(keyword_rules(pairs, TEMPORAL_CONFIDENCE), text)


def extract_price_level(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> Optional[RuleMatch]:
    """
    Dollar-sign runs take precedence over price words.

    The longest run decides the level, capped at $$$$.
    """
    runs = list(_DOLLAR_RUN.finditer(text))
    if runs:
        longest = max(runs, key=lambda run: len(run.group(0)))
        return RuleMatch(_price_symbol_level(longest), PRICE_SYMBOL_CONFIDENCE, longest)
    return first_match(keyword_rules(vocabulary.price_keywords, PRICE_KEYWORD_CONFIDENCE), text)


def extract_attributes(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> List[str]:
    return [attribute for attribute in vocabulary.attribute_keywords if attribute in text]


def extract_filters(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> Tuple[FilterState, float]:
    """
    Extract filter constraints from free text.

    Returns:
        The filter state and the mean confidence of the dimensions that
        produced a value (0 when none did)
    """
    normalized = text.lower()
    values = {}
    scores = []

    rating = extract_rating(normalized, vocabulary)
    if rating:
        values["min_rating"] = rating.value
        scores.append(rating.confidence)

    open_now = extract_open_now(normalized, vocabulary)
    if open_now:
        values["open_now"] = open_now.value
        scores.append(open_now.confidence)

    price = extract_price_level(normalized, vocabulary)
    if price:
        values["max_price_level"] = price.value
        scores.append(price.confidence)

    attributes = extract_attributes(normalized, vocabulary)
    if attributes:
        values["attributes"] = attributes
        scores.append(ATTRIBUTE_CONFIDENCE)

    confidence = sum(scores) / len(scores) if scores else 0.0
    logger.debug(f"Extracted filters {values} (confidence={confidence:.2f})")
    return FilterState(**values), confidence


def filter_query(state: QueryParseState, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> QueryParseState:
    """
    Pipeline node: extract filters from the effective query.

    Args:
        state: The current parse state

    Returns:
        Updated state with filters and their confidence
    """
    filters, confidence = extract_filters(state["effective_query"], vocabulary)
    return {**state, "filters": filters, "filter_confidence": confidence}
