"""
Ambiguity detection: decides whether a parse result needs a clarifying question.
"""
import logging
import re
from typing import Callable, Optional, Tuple

from config import PARSER_CONFIG
from data.vocabulary import DEFAULT_VOCABULARY, Vocabulary
from models.parameters import AmbiguityDetection, QueryParseResult

logger = logging.getLogger(__name__)

BUSINESS_TYPE_QUESTION = "What type of business are you looking for? (e.g., restaurants, coffee shops, gyms)"
MISSING_LOCATION_QUESTION = "Where would you like to search? (e.g., Seattle, downtown, near me)"
AMBIGUOUS_PLACE_QUESTION = 'I found "{value}" - which state or area did you mean?'
LOW_CONFIDENCE_LOCATION_QUESTION = 'Did you mean to search in "{value}"?'

MAX_AMBIGUOUS_PLACE_WORDS = 2

_POSTAL_CODE = re.compile(r"\d{5}")

AmbiguityRule = Callable[[QueryParseResult, float, Vocabulary], Optional[AmbiguityDetection]]


def _unknown_business_type(result: QueryParseResult, threshold: float, vocabulary: Vocabulary) -> Optional[AmbiguityDetection]:
    if result.categories.categories != [vocabulary.fallback_category] or result.confidence >= threshold:
        return None
    return AmbiguityDetection(
        field="businessType",
        candidates=list(result.categories.categories),
        clarifying_question=BUSINESS_TYPE_QUESTION,
        confidence=result.confidence,
    )


def _missing_location(result: QueryParseResult, threshold: float, vocabulary: Vocabulary) -> Optional[AmbiguityDetection]:
    if result.location.is_resolved:
        return None
    return AmbiguityDetection(
        field="location",
        candidates=[],
        clarifying_question=MISSING_LOCATION_QUESTION,
        confidence=0.0,
    )


def _ambiguous_place_name(result: QueryParseResult, threshold: float, vocabulary: Vocabulary) -> Optional[AmbiguityDetection]:
    value = result.location.value
    lowered = value.lower()
    if len(value.split()) > MAX_AMBIGUOUS_PLACE_WORDS or _POSTAL_CODE.search(value):
        return None
    if not any(name in lowered for name in vocabulary.ambiguous_place_names):
        return None
    return AmbiguityDetection(
        field="location",
        candidates=[value],
        clarifying_question=AMBIGUOUS_PLACE_QUESTION.format(value=value),
        confidence=result.location.confidence,
    )


def _uncertain_location(result: QueryParseResult, threshold: float, vocabulary: Vocabulary) -> Optional[AmbiguityDetection]:
    if result.location.confidence >= threshold:
        return None
    return AmbiguityDetection(
        field="location",
        candidates=[result.location.value],
        clarifying_question=LOW_CONFIDENCE_LOCATION_QUESTION.format(value=result.location.value),
        confidence=result.location.confidence,
    )


# Checked in order; the first rule that fires is the only one reported
AMBIGUITY_RULES: Tuple[AmbiguityRule, ...] = (
    _unknown_business_type,
    _missing_location,
    _ambiguous_place_name,
    _uncertain_location,
)


def detect_ambiguity(
    result: QueryParseResult,
    confidence_threshold: float = PARSER_CONFIG["confidence_threshold"],
    vocabulary: Vocabulary = DEFAULT_VOCABULARY,
) -> Optional[AmbiguityDetection]:
    """
    Inspect a parse result for a field too uncertain to act on.

    Args:
        result: The parse result to inspect
        confidence_threshold: Scores below this are considered uncertain

    Returns:
        The first ambiguity found, or None to proceed without clarification
    """
    for rule in AMBIGUITY_RULES:
        ambiguity = rule(result, confidence_threshold, vocabulary)
        if ambiguity is not None:
            logger.info(f"Ambiguous {ambiguity.field}: {ambiguity.clarifying_question}")
            return ambiguity
    return None
