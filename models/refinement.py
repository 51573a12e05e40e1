"""
Refinement operator models.

Each operator kind carries only its own fields; the union is closed and
discriminated on ``kind``.
"""
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from models.conversation import BusinessResult, ConversationSession
from models.parameters import Confidence, FilterState


class RatingOperator(BaseModel):
    kind: Literal["rating"] = "rating"
    threshold: float = Field(ge=0, le=5)
    confidence: Confidence


class PriceOperator(BaseModel):
    kind: Literal["price"] = "price"
    max_level: int = Field(ge=1, le=4)
    confidence: Confidence


class OpenNowOperator(BaseModel):
    kind: Literal["open_now"] = "open_now"
    flag: bool = True
    confidence: Confidence


class DistanceOperator(BaseModel):
    kind: Literal["distance"] = "distance"
    max_meters: float = Field(gt=0)
    confidence: Confidence


class AttributesOperator(BaseModel):
    kind: Literal["attributes"] = "attributes"
    attributes: List[str] = Field(min_length=1)
    confidence: Confidence


class LimitOperator(BaseModel):
    kind: Literal["limit"] = "limit"
    count: int = Field(ge=1)
    confidence: Confidence


RefinementOperator = Annotated[
    Union[
        RatingOperator,
        PriceOperator,
        OpenNowOperator,
        DistanceOperator,
        AttributesOperator,
        LimitOperator,
    ],
    Field(discriminator="kind"),
]


class RefinementParseResult(BaseModel):
    """Result of parsing a follow-up utterance."""
    is_refinement: bool
    operators: List[RefinementOperator] = Field(default_factory=list)
    confidence: Confidence = 0.0
    original_text: str


class RefinementOutcome(BaseModel):
    """What a refinement turn did to a session."""
    session: ConversationSession
    parse_result: Optional[RefinementParseResult] = None
    filters: FilterState = Field(default_factory=FilterState)
    results: List[BusinessResult] = Field(default_factory=list)
    is_reset: bool = False

    @property
    def is_refinement(self) -> bool:
        return self.is_reset or bool(self.parse_result and self.parse_result.is_refinement)
