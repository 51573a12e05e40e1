"""
Business category extraction for the query parse pipeline.
"""
import logging

from data.vocabulary import DEFAULT_VOCABULARY, Vocabulary
from models.parameters import CategoryResult
from models.state import QueryParseState
from utils.rules import all_matches, keyword_rules

logger = logging.getLogger(__name__)

SYNONYM_CONFIDENCE = 0.9
CANONICAL_CONFIDENCE = 0.95
MULTI_CATEGORY_CONFIDENCE = 0.85
FALLBACK_CONFIDENCE = 0.3


def extract_categories(text: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> CategoryResult:
    """
    Extract canonical business categories from free text.

    Synonyms are scanned first, then canonical names (underscores read as
    spaces). The reported confidence is the highest confidence of any hit.
    The result is never empty: with no hit it holds the fallback category.
    """
    normalized = text.lower().strip()
    categories = []
    confidence = 0.0

    canonical_pairs = tuple(
        (category.replace("_", " "), category) for category in vocabulary.canonical_categories
    )
    layers = (
        keyword_rules(vocabulary.category_synonyms, SYNONYM_CONFIDENCE),
        keyword_rules(canonical_pairs, CANONICAL_CONFIDENCE),
    )

    for rules in layers:
        for hit in all_matches(rules, normalized):
            if hit.value not in categories:
                categories.append(hit.value)
            confidence = max(confidence, hit.confidence)

    # "coffee shops or bakeries" resolves both terms independently
    if len(categories) > 1:
        confidence = max(confidence, MULTI_CATEGORY_CONFIDENCE)

    if not categories:
        logger.debug(f"No category found in '{normalized}', using fallback")
        return CategoryResult(categories=[vocabulary.fallback_category], confidence=FALLBACK_CONFIDENCE)

    logger.debug(f"Extracted categories {categories} (confidence={confidence:.2f})")
    return CategoryResult(categories=categories, confidence=confidence)


def categorize_query(state: QueryParseState, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> QueryParseState:
    """
    Pipeline node: extract categories from the effective query.

    Args:
        state: The current parse state

    Returns:
        Updated state with the category result
    """
    return {**state, "categories": extract_categories(state["effective_query"], vocabulary)}
