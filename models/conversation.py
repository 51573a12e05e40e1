"""
Models for multi-turn conversational search sessions.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.parameters import Coordinates, FilterState


class BusinessResult(BaseModel):
    """
    A normalized place returned by the upstream search provider.

    Extra provider fields are carried through untouched.
    """
    model_config = ConfigDict(extra="allow")

    place_id: str
    name: str
    location: Coordinates
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    price_level: Optional[int] = None
    distance: Optional[float] = None  # meters from the search center, when known
    formatted_address: str = ""
    business_status: str = "OPERATIONAL"
    types: List[str] = Field(default_factory=list)


class BaseSearch(BaseModel):
    """The original search a conversation refines."""
    categories: List[str] = Field(default_factory=list)
    location: str = ""
    search_center: Coordinates
    base_results: List[BusinessResult] = Field(default_factory=list)


class SearchTurn(BaseModel):
    """One recorded step of conversation history."""
    query_text: str
    applied_filters: FilterState = Field(default_factory=FilterState)
    result_count: int = Field(default=0, ge=0)
    timestamp: float
    is_refinement: bool = False


class ConversationSession(BaseModel):
    """Server-held conversational state for one session id."""
    session_id: str
    user_id: Optional[str] = None
    base_search: BaseSearch
    current_filters: FilterState = Field(default_factory=FilterState)
    search_history: List[SearchTurn] = Field(default_factory=list)  # most recent first
    state_version: int = Field(default=1, ge=1)
    last_query_timestamp: float


class ConversationContext(BaseModel):
    """Previously mentioned locations for a session, most recent first."""
    session_id: str
    previous_locations: List[str] = Field(default_factory=list)
    timestamp: float
