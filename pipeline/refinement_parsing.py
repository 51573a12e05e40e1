"""
Refinement parsing: tells "narrow these results" apart from "start a new
search" and extracts typed refinement operators.
"""
import logging
import re
from functools import lru_cache
from typing import List, Optional, Pattern, Tuple

from data.vocabulary import DEFAULT_VOCABULARY, Vocabulary
from models.parameters import METERS_PER_UNIT
from models.refinement import (
    AttributesOperator,
    DistanceOperator,
    LimitOperator,
    OpenNowOperator,
    PriceOperator,
    RatingOperator,
    RefinementOperator,
    RefinementParseResult,
)
from utils.rules import Rule, first_match, keyword_rules, phrase_pattern

logger = logging.getLogger(__name__)

RATING_CONFIDENCE = 0.9
TEMPORAL_CONFIDENCE = 0.95
PRICE_SYMBOL_CONFIDENCE = 0.95
PRICE_TEXT_CONFIDENCE = 0.85
DISTANCE_CONFIDENCE = 0.9
ATTRIBUTE_CONFIDENCE = 0.85
LIMIT_CONFIDENCE = 0.8

# Reported when intent was detected but no operator could be extracted
UNPARSED_REFINEMENT_CONFIDENCE = 0.5

MAX_PRICE_LEVEL = 4

# Words that qualify a filter value without naming a place or business
REFINEMENT_QUALIFIERS = ("at least", "above", "under", "or better", "or more", "ones", "with")

_NUMBER = r"(\d+(?:\.\d+)?)"


def _rating(match):
    threshold = float(match.group(1))
    return threshold if 0 <= threshold <= 5 else None


def _meters(unit):
    def convert(match):
        value = float(match.group(1))
        return value * METERS_PER_UNIT[unit] if value > 0 else None
    return convert


def price_amount_to_level(amount: float) -> int:
    """Map a dollar amount ("under $15") onto the 1-4 price scale."""
    if amount <= 10:
        return 1
    if amount <= 20:
        return 2
    if amount <= 40:
        return 3
    return 4


def _price_amount(match):
    return price_amount_to_level(int(match.group(1)))


def _price_symbols(match):
    return min(len(match.group(0)), MAX_PRICE_LEVEL)


def _limit(match):
    count = int(match.group(1))
    return count if count >= 1 else None


RATING_RULES = (
    Rule(re.compile(rf"{_NUMBER}\+\s*stars?"), _rating, RATING_CONFIDENCE),
    Rule(re.compile(rf"at\s+least\s+{_NUMBER}\s*stars?"), _rating, RATING_CONFIDENCE),
    Rule(re.compile(rf"above\s+{_NUMBER}\s*stars?"), _rating, RATING_CONFIDENCE),
    Rule(re.compile(r"highly\s+rated"), 4.0, RATING_CONFIDENCE),
    Rule(re.compile(r"top\s+rated"), 4.5, RATING_CONFIDENCE),
    Rule(re.compile(rf"(?<![\d.]){_NUMBER}\s*stars?"), _rating, RATING_CONFIDENCE),
)

OPEN_NOW_RULES = (
    Rule(re.compile(r"open\s+now"), True, TEMPORAL_CONFIDENCE),
    Rule(re.compile(r"open\s+late"), True, TEMPORAL_CONFIDENCE),
    Rule(re.compile(r"24\s*hours?"), True, TEMPORAL_CONFIDENCE),
    Rule(re.compile(r"24/7"), True, TEMPORAL_CONFIDENCE),
    Rule(re.compile(r"open\s+on\s+weekends?"), True, TEMPORAL_CONFIDENCE),
)

# A "$" followed by a number is an amount, not a price symbol
PRICE_SYMBOL_PATTERN = re.compile(r"\$+(?!\s*\d)")
PRICE_AMOUNT_RULE = Rule(re.compile(r"under\s+\$(\d+)"), _price_amount, PRICE_TEXT_CONFIDENCE)

DISTANCE_RULES = (
    Rule(re.compile(rf"within\s+{_NUMBER}\s*miles?"), _meters("miles"), DISTANCE_CONFIDENCE),
    Rule(re.compile(rf"within\s+{_NUMBER}\s*km"), _meters("km"), DISTANCE_CONFIDENCE),
    Rule(re.compile(rf"less\s+than\s+{_NUMBER}\s*miles?"), _meters("miles"), DISTANCE_CONFIDENCE),
    Rule(re.compile(rf"less\s+than\s+{_NUMBER}\s*km"), _meters("km"), DISTANCE_CONFIDENCE),
    Rule(re.compile(r"walking\s+distance"), 0.5 * METERS_PER_UNIT["miles"], DISTANCE_CONFIDENCE),
    Rule(re.compile(r"nearby"), 2 * METERS_PER_UNIT["miles"], DISTANCE_CONFIDENCE),
    Rule(re.compile(r"close\s+by"), 2 * METERS_PER_UNIT["miles"], DISTANCE_CONFIDENCE),
)

# "top 5", "first 3", "limit to 10"; not "only 4+ stars" or "just 2 miles"
LIMIT_RULES = (
    Rule(
        re.compile(
            r"\b(?:top|first|limit\s+to|just|only)\s+(\d+)\b"
            r"(?!\s*(?:\+|\.\d|stars?|miles?|km|kilometers?|meters?|hours?|/7))"
        ),
        _limit,
        LIMIT_CONFIDENCE,
    ),
)


def _spaced(phrase: str) -> str:
    return r"\s+".join(re.escape(word) for word in phrase.split())


@lru_cache(maxsize=None)
def _directive_pattern(directives: Tuple[str, ...]) -> Pattern[str]:
    return re.compile("|".join(_spaced(directive) for directive in directives), re.IGNORECASE)


@lru_cache(maxsize=None)
def _category_pattern(terms: Tuple[str, ...]) -> Pattern[str]:
    # Plural forms count as the same category
    alternatives = "|".join(_spaced(term) for term in sorted(terms, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})(?:s|es)?\b", re.IGNORECASE)


def _strip_pattern(vocabulary: Vocabulary) -> Pattern[str]:
    phrases = vocabulary.filter_terms() + REFINEMENT_QUALIFIERS
    return phrase_pattern(tuple(sorted(phrases, key=len, reverse=True)))


def is_reset_request(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> bool:
    """True for utterances that drop every filter ("show all", "clear filters")."""
    return bool(phrase_pattern(vocabulary.reset_phrases, word_boundary=True).search(text))


def detect_refinement_intent(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> bool:
    """
    Decide whether an utterance narrows existing results or starts a new search.

    Explicit directives ("show only", "filter to", ...) always count. Otherwise
    the utterance must carry filter vocabulary and, once that vocabulary is
    removed, mention neither a business category nor a location.
    """
    normalized = text.lower()

    if _directive_pattern(vocabulary.refinement_directives).search(normalized):
        return True

    has_filter_terms = (
        "$" in normalized
        or phrase_pattern(vocabulary.filter_terms()).search(normalized) is not None
        or first_match(LIMIT_RULES, normalized) is not None
    )
    if not has_filter_terms:
        return False

    residue = _strip_pattern(vocabulary).sub(" ", normalized)
    has_category = _category_pattern(vocabulary.category_terms()).search(residue) is not None
    has_location = phrase_pattern(vocabulary.location_terms(), word_boundary=True).search(residue) is not None
    return not has_category and not has_location


def extract_rating_operator(text: str) -> Optional[RatingOperator]:
    hit = first_match(RATING_RULES, text)
    if hit is None:
        return None
    return RatingOperator(threshold=hit.value, confidence=hit.confidence)


def extract_open_now_operator(text: str) -> Optional[OpenNowOperator]:
    hit = first_match(OPEN_NOW_RULES, text)
    if hit is None:
        return None
    return OpenNowOperator(flag=hit.value, confidence=hit.confidence)


def extract_price_operator(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> Optional[PriceOperator]:
    """Dollar-sign runs first, then price words, then "under $N" amounts."""
    runs = list(PRICE_SYMBOL_PATTERN.finditer(text))
    if runs:
        longest = max(runs, key=lambda run: len(run.group(0)))
        return PriceOperator(max_level=_price_symbols(longest), confidence=PRICE_SYMBOL_CONFIDENCE)

    rules = keyword_rules(vocabulary.price_keywords, PRICE_TEXT_CONFIDENCE) + (PRICE_AMOUNT_RULE,)
    hit = first_match(rules, text)
    if hit is None:
        return None
    return PriceOperator(max_level=hit.value, confidence=hit.confidence)


def extract_distance_operator(text: str) -> Optional[DistanceOperator]:
    hit = first_match(DISTANCE_RULES, text)
    if hit is None:
        return None
    return DistanceOperator(max_meters=hit.value, confidence=hit.confidence)


def extract_attributes_operator(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> Optional[AttributesOperator]:
    found = [attribute for attribute in vocabulary.refinement_attribute_keywords if attribute in text]
    if not found:
        return None
    return AttributesOperator(attributes=found, confidence=ATTRIBUTE_CONFIDENCE)


def extract_limit_operator(text: str) -> Optional[LimitOperator]:
    hit = first_match(LIMIT_RULES, text)
    if hit is None:
        return None
    return LimitOperator(count=hit.value, confidence=hit.confidence)


def parse_refinement(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> RefinementParseResult:
    """
    Parse a follow-up utterance into refinement operators.

    At most one operator is produced per dimension. Utterances that read as
    a new search come back with is_refinement False and no operators.
    """
    if not detect_refinement_intent(text, vocabulary):
        logger.debug(f"Not a refinement: {text!r}")
        return RefinementParseResult(is_refinement=False, operators=[], confidence=0.0, original_text=text)

    normalized = text.lower()
    candidates = (
        extract_rating_operator(normalized),
        extract_open_now_operator(normalized),
        extract_price_operator(normalized, vocabulary),
        extract_distance_operator(normalized),
        extract_attributes_operator(normalized, vocabulary),
        extract_limit_operator(normalized),
    )
    operators: List[RefinementOperator] = [operator for operator in candidates if operator is not None]

    if operators:
        confidence = sum(operator.confidence for operator in operators) / len(operators)
    else:
        confidence = UNPARSED_REFINEMENT_CONFIDENCE

    logger.info(f"Parsed {len(operators)} refinement operators from {text!r}")
    return RefinementParseResult(
        is_refinement=True,
        operators=operators,
        confidence=confidence,
        original_text=text,
    )
