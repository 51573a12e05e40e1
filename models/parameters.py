"""
Parameter models for the structured data extracted from search queries.
"""
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

# Confidence scores are always reported in [0, 1]
Confidence = Annotated[float, Field(ge=0.0, le=1.0)]

LocationKind = Literal["explicit", "relative", "landmark"]
DistanceUnit = Literal["miles", "km", "meters"]

METERS_PER_UNIT = {
    "miles": 1609.34,
    "km": 1000.0,
    "meters": 1.0,
}


class Coordinates(BaseModel):
    """A latitude/longitude pair."""
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)


class DistanceQualifier(BaseModel):
    """Distance constraint attached to a relative location ("within 2 miles")."""
    value: float = Field(gt=0)
    unit: DistanceUnit

    def to_meters(self) -> float:
        return self.value * METERS_PER_UNIT[self.unit]


class CategoryResult(BaseModel):
    """Canonical business categories in discovery order."""
    categories: List[str] = Field(min_length=1)
    confidence: Confidence


class LocationResult(BaseModel):
    """
    Location extracted from a query.

    An empty value with zero confidence means no location was found.
    """
    kind: LocationKind = "relative"
    value: str = ""
    distance: Optional[DistanceQualifier] = None
    confidence: Confidence = 0.0

    @property
    def is_resolved(self) -> bool:
        return bool(self.value.strip())


class FilterState(BaseModel):
    """
    Narrowing constraints for a result list.

    Every field is optional; an absent field means unconstrained.
    Out-of-range values are rejected, never clamped.
    """
    min_rating: Optional[float] = None
    max_price_level: Optional[int] = None
    open_now: Optional[bool] = None
    max_distance_meters: Optional[float] = None
    attributes: Optional[List[str]] = None

    @field_validator("min_rating")
    @classmethod
    def validate_rating(cls, v):
        """Ratings are on the 0-5 star scale."""
        if v is not None and not 0 <= v <= 5:
            raise ValueError("Rating must be between 0 and 5")
        return v

    @field_validator("max_price_level")
    @classmethod
    def validate_price_level(cls, v):
        """Price levels are the 1-4 ordinal scale ($ to $$$$)."""
        if v is not None and not 1 <= v <= 4:
            raise ValueError("Price level must be between 1 and 4")
        return v

    @field_validator("max_distance_meters")
    @classmethod
    def validate_distance(cls, v):
        if v is not None and v <= 0:
            raise ValueError("Distance must be a positive number of meters")
        return v

    @field_validator("attributes")
    @classmethod
    def validate_attributes(cls, v):
        """Attributes behave as a set: stripped, non-empty, first occurrence wins."""
        if v is None:
            return v
        cleaned = [attribute.strip() for attribute in v]
        if any(not attribute for attribute in cleaned):
            raise ValueError("Attributes must be non-empty strings")
        return list(dict.fromkeys(cleaned))

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class QueryMetadata(BaseModel):
    """Metadata about the parsed request."""
    original_text: str
    timestamp: float
    session_id: Optional[str] = None


class QueryParseResult(BaseModel):
    """Structured result of parsing one natural-language search request."""
    categories: CategoryResult
    location: LocationResult
    filters: FilterState = Field(default_factory=FilterState)
    metadata: QueryMetadata
    confidence: Confidence


class AmbiguityDetection(BaseModel):
    """A field that is too uncertain to act on without asking the user."""
    field: Literal["businessType", "location"]
    candidates: List[str] = Field(default_factory=list)
    clarifying_question: str
    confidence: Confidence
