"""
Filter merge and apply for conversational refinement.
"""
import logging
from typing import Iterable, List

from models.conversation import BusinessResult
from models.parameters import Coordinates, FilterState
from models.refinement import (
    AttributesOperator,
    DistanceOperator,
    LimitOperator,
    OpenNowOperator,
    PriceOperator,
    RatingOperator,
    RefinementOperator,
)
from utils.geo import haversine_distance

logger = logging.getLogger(__name__)


def operators_to_filter_state(operators: Iterable[RefinementOperator]) -> FilterState:
    """
    Convert refinement operators into a filter state.

    Each operator kind writes one field; a later operator of the same kind
    overwrites an earlier one. Limit operators write nothing.
    """
    values = {}
    for operator in operators:
        if isinstance(operator, RatingOperator):
            values["min_rating"] = operator.threshold
        elif isinstance(operator, PriceOperator):
            values["max_price_level"] = operator.max_level
        elif isinstance(operator, OpenNowOperator):
            values["open_now"] = operator.flag
        elif isinstance(operator, DistanceOperator):
            values["max_distance_meters"] = operator.max_meters
        elif isinstance(operator, AttributesOperator):
            values["attributes"] = list(operator.attributes)
        elif isinstance(operator, LimitOperator):
            continue
        else:
            raise TypeError(f"Unknown refinement operator: {type(operator).__name__}")
    return FilterState(**values)


def merge_filters(existing: FilterState, incoming: FilterState) -> FilterState:
    """
    Field-wise overwrite: every field set on incoming replaces the existing
    value, unset fields are left alone. A later refinement may widen a
    dimension an earlier one narrowed.
    """
    return FilterState(**{**existing.model_dump(exclude_none=True), **incoming.model_dump(exclude_none=True)})


def filter_by_rating(results: List[BusinessResult], min_rating: float) -> List[BusinessResult]:
    return [result for result in results if result.rating is not None and result.rating >= min_rating]


def filter_by_price(results: List[BusinessResult], max_price_level: int) -> List[BusinessResult]:
    return [result for result in results if result.price_level is not None and result.price_level <= max_price_level]


def filter_by_distance(
    results: List[BusinessResult],
    max_distance_meters: float,
    search_center: Coordinates,
) -> List[BusinessResult]:
    """Uses the cached distance when the provider supplied one."""
    kept = []
    for result in results:
        distance = result.distance
        if distance is None:
            distance = haversine_distance(search_center, result.location)
        if distance <= max_distance_meters:
            kept.append(result)
    return kept


def filter_by_open_now(results: List[BusinessResult]) -> List[BusinessResult]:
    # Provider results carry no opening hours yet
    return list(results)


def filter_by_attributes(results: List[BusinessResult], attributes: List[str]) -> List[BusinessResult]:
    # Provider results carry no attribute tags yet
    return list(results)


def apply_filters(
    results: List[BusinessResult],
    filters: FilterState,
    search_center: Coordinates,
) -> List[BusinessResult]:
    """
    Narrow a result list to the entries satisfying every filter.

    Args:
        results: Business results to filter; not modified
        filters: The filter state to apply
        search_center: Origin for distance filtering

    Returns:
        A new list holding the matching results in their original order
    """
    filtered = list(results)

    if filters.min_rating is not None:
        filtered = filter_by_rating(filtered, filters.min_rating)

    if filters.max_price_level is not None:
        filtered = filter_by_price(filtered, filters.max_price_level)

    if filters.open_now is not None:
        filtered = filter_by_open_now(filtered)

    if filters.max_distance_meters is not None:
        filtered = filter_by_distance(filtered, filters.max_distance_meters, search_center)

    if filters.attributes:
        filtered = filter_by_attributes(filtered, filters.attributes)

    logger.info(f"Applied filters, {len(results)} -> {len(filtered)} businesses")
    return filtered
