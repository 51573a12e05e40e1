"""
Location extraction for the query parse pipeline.

Strategies are tried in strict priority order and the first one that
produces a location ends the scan:

1. relative keywords ("near me", "nearby", ...)
2. distance qualifiers ("within 2 miles", "5 km", ...)
3. landmark indicators ("near Times Square", "downtown Seattle")
4. explicit "in <place>" phrases
5. postal codes
"""
import logging
import re
from typing import Callable, Optional, Tuple

from data.vocabulary import DEFAULT_VOCABULARY, Vocabulary
from models.parameters import DistanceQualifier, LocationResult
from models.state import QueryParseState
from utils.rules import Rule, first_match, keyword_rules, phrase_pattern

logger = logging.getLogger(__name__)

RELATIVE_CONFIDENCE = 0.9
DISTANCE_CONFIDENCE = 0.85
LANDMARK_CONFIDENCE = 0.8
EXPLICIT_CONFIDENCE = 0.75
POSTAL_CODE_CONFIDENCE = 0.95

MIN_LANDMARK_LENGTH = 2
MAX_LANDMARK_LENGTH = 100

_NUMBER = r"(\d+(?:\.\d+)?)"


def _qualifier(unit: str) -> Callable[["re.Match[str]"], Optional[DistanceQualifier]]:
    def build(match):
        value = float(match.group(1))
        if value <= 0:
            return None
        return DistanceQualifier(value=value, unit=unit)
    return build


_DISTANCE_RULES = (
    Rule(re.compile(rf"within\s+{_NUMBER}\s*miles?\b"), _qualifier("miles"), DISTANCE_CONFIDENCE),
    Rule(re.compile(rf"within\s+{_NUMBER}\s*(?:km|kilometers?)\b"), _qualifier("km"), DISTANCE_CONFIDENCE),
    Rule(re.compile(rf"within\s+{_NUMBER}\s*(?:m|meters?)\b"), _qualifier("meters"), DISTANCE_CONFIDENCE),
    Rule(re.compile(rf"less\s+than\s+{_NUMBER}\s*miles?\b"), _qualifier("miles"), DISTANCE_CONFIDENCE),
    Rule(re.compile(rf"less\s+than\s+{_NUMBER}\s*(?:km|kilometers?)\b"), _qualifier("km"), DISTANCE_CONFIDENCE),
    Rule(re.compile(rf"under\s+{_NUMBER}\s*miles?\b"), _qualifier("miles"), DISTANCE_CONFIDENCE),
    Rule(re.compile(rf"\b{_NUMBER}\s*miles?\b"), _qualifier("miles"), DISTANCE_CONFIDENCE),
    Rule(re.compile(rf"\b{_NUMBER}\s*km\b"), _qualifier("km"), DISTANCE_CONFIDENCE),
)

_LANDMARK_TEXT = re.compile(r"^([^,.;]+)")
_IN_PHRASE = re.compile(r"\bin\s+([a-z]+)\b")
_POSTAL_CODE = re.compile(r"\b\d{5}(?:-\d{4})?\b")
_HAS_LETTER = re.compile(r"[a-z]")


def _match_relative(text: str, vocabulary: Vocabulary) -> Optional[LocationResult]:
    pairs = tuple((keyword, keyword) for keyword in vocabulary.relative_location_keywords)
    hit = first_match(keyword_rules(pairs, RELATIVE_CONFIDENCE), text)
    if hit is None:
        return None
    return LocationResult(kind="relative", value=hit.value, confidence=hit.confidence)


def _match_distance(text: str, vocabulary: Vocabulary) -> Optional[LocationResult]:
    hit = first_match(_DISTANCE_RULES, text)
    if hit is None:
        return None
    return LocationResult(
        kind="relative",
        value="near me",
        distance=hit.value,
        confidence=hit.confidence,
    )


def _match_landmark(text: str, vocabulary: Vocabulary) -> Optional[LocationResult]:
    indicators = phrase_pattern(vocabulary.landmark_indicators, word_boundary=True)
    for indicator in indicators.finditer(text):
        candidate = _LANDMARK_TEXT.match(text[indicator.end():].strip())
        if candidate is None:
            continue
        landmark = candidate.group(1).strip()
        if MIN_LANDMARK_LENGTH < len(landmark) < MAX_LANDMARK_LENGTH and _HAS_LETTER.search(landmark):
            return LocationResult(kind="landmark", value=landmark, confidence=LANDMARK_CONFIDENCE)
    return None


def _match_in_phrase(text: str, vocabulary: Vocabulary) -> Optional[LocationResult]:
    for match in _IN_PHRASE.finditer(text):
        place = match.group(1)
        if place in vocabulary.location_stop_words or len(place) <= 2:
            continue
        return LocationResult(kind="explicit", value=place, confidence=EXPLICIT_CONFIDENCE)
    return None


def _match_postal_code(text: str, vocabulary: Vocabulary) -> Optional[LocationResult]:
    match = _POSTAL_CODE.search(text)
    if match is None:
        return None
    return LocationResult(kind="explicit", value=match.group(0), confidence=POSTAL_CODE_CONFIDENCE)


LOCATION_STRATEGIES: Tuple[Callable[[str, Vocabulary], Optional[LocationResult]], ...] = (
    _match_relative,
    _match_distance,
    _match_landmark,
    _match_in_phrase,
    _match_postal_code,
)


def extract_location(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> LocationResult:
    """
    Extract a location from free text.

    Returns a relative location with an empty value and zero confidence
    when nothing is found.
    """
    normalized = text.lower().strip()

    for strategy in LOCATION_STRATEGIES:
        result = strategy(normalized, vocabulary)
        if result is not None:
            logger.debug(f"Location '{result.value}' ({result.kind}) found by {strategy.__name__}")
            return result

    logger.debug(f"No location found in '{normalized}'")
    return LocationResult(kind="relative", value="", confidence=0.0)


def locate_query(state: QueryParseState, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> QueryParseState:
    """
    Pipeline node: extract the location from the effective query.

    Args:
        state: The current parse state

    Returns:
        Updated state with the location result
    """
    return {**state, "location": extract_location(state["effective_query"], vocabulary)}
