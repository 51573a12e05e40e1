"""
Curated vocabularies for query understanding.

The tables are immutable and bundled in a ``Vocabulary`` that is passed to
every extractor, so callers and tests can supply their own tables.
"""
from typing import Tuple

from pydantic import BaseModel, ConfigDict

FALLBACK_CATEGORY = "business"

# Canonical business categories
CANONICAL_CATEGORIES = (
    "restaurant",
    "coffee_shop",
    "bar",
    "grocery_store",
    "bank",
    "pharmacy",
    "gas_station",
    "hotel",
    "hair_salon",
    "gym",
    "auto_repair",
    "dentist",
    "veterinarian",
    "bakery",
    "cafe",
    "fast_food",
    "food",
    "store",
    "shopping_mall",
    "movie_theater",
    "park",
    "library",
    "hospital",
    "school",
    "business",
    "place",
)

# Colloquial phrases -> canonical category
CATEGORY_SYNONYMS = (
    # Coffee
    ("coffee shop", "coffee_shop"),
    ("coffee", "coffee_shop"),
    ("coffeehouse", "coffee_shop"),
    ("cafe", "cafe"),
    ("cafes", "cafe"),
    # Restaurants and cuisines
    ("restaurants", "restaurant"),
    ("restaurant", "restaurant"),
    ("dining", "restaurant"),
    ("eatery", "restaurant"),
    ("eateries", "restaurant"),
    ("italian", "restaurant"),
    ("sushi", "restaurant"),
    ("pizza", "restaurant"),
    ("pizzeria", "restaurant"),
    ("taco", "restaurant"),
    ("mexican", "restaurant"),
    ("thai", "restaurant"),
    ("chinese", "restaurant"),
    ("japanese", "restaurant"),
    ("indian", "restaurant"),
    ("burger", "fast_food"),
    ("fast food", "fast_food"),
    ("quick service", "fast_food"),
    # Bars
    ("bars", "bar"),
    ("pub", "bar"),
    ("tavern", "bar"),
    ("brewery", "bar"),
    # Grocery
    ("grocery", "grocery_store"),
    ("groceries", "grocery_store"),
    ("supermarket", "grocery_store"),
    ("market", "grocery_store"),
    # Banks
    ("banks", "bank"),
    ("atm", "bank"),
    ("credit union", "bank"),
    # Pharmacies
    ("pharmacies", "pharmacy"),
    ("drugstore", "pharmacy"),
    ("drug store", "pharmacy"),
    # Fuel
    ("gas", "gas_station"),
    ("fuel", "gas_station"),
    ("petrol", "gas_station"),
    # Lodging
    ("hotels", "hotel"),
    ("motel", "hotel"),
    ("lodging", "hotel"),
    ("accommodation", "hotel"),
    # Services
    ("salon", "hair_salon"),
    ("barber", "hair_salon"),
    ("hairdresser", "hair_salon"),
    ("gyms", "gym"),
    ("fitness", "gym"),
    ("mechanic", "auto_repair"),
    ("car repair", "auto_repair"),
    ("dentists", "dentist"),
    ("dental", "dentist"),
    ("vet", "veterinarian"),
    ("animal hospital", "veterinarian"),
    # Bakeries
    ("bakeries", "bakery"),
    ("bakery", "bakery"),
    ("bread", "bakery"),
    ("pastry", "bakery"),
    # Shopping
    ("stores", "store"),
    ("shop", "store"),
    ("mall", "shopping_mall"),
    ("shopping center", "shopping_mall"),
    # Entertainment and public places
    ("cinema", "movie_theater"),
    ("theater", "movie_theater"),
    ("movies", "movie_theater"),
    ("parks", "park"),
    ("libraries", "library"),
    ("hospitals", "hospital"),
    ("medical center", "hospital"),
    ("clinic", "hospital"),
    ("schools", "school"),
    ("university", "school"),
    ("college", "school"),
)

# Location vocabulary
RELATIVE_LOCATION_KEYWORDS = (
    "near me",
    "nearby",
    "close by",
    "around here",
    "in the area",
    "local",
    "within walking distance",
)

LANDMARK_INDICATORS = (
    "near",
    "by",
    "around",
    "close to",
    "next to",
    "downtown",
)

LOCATION_STOP_WORDS = ("the", "a", "an", "my", "your", "this", "that")

STREET_WORDS = ("street", "avenue", "road", "boulevard")

# City names that exist in many states
AMBIGUOUS_PLACE_NAMES = (
    "portland",
    "springfield",
    "franklin",
    "clinton",
    "washington",
    "madison",
    "arlington",
)

# Phrases that refer back to a previously mentioned location
DEMONSTRATIVE_PHRASES = ("that place", "that area", "there")

# Filter vocabulary
RATING_PHRASES = (
    ("highly rated", 4),
    ("top rated", 4),
    ("good reviews", 4),
    ("great reviews", 4),
    ("excellent", 4),
)

TEMPORAL_PHRASES = (
    "open now",
    "open late",
    "24 hours",
    "24/7",
    "open on sunday",
    "open on",
)

PRICE_KEYWORDS = (
    ("cheap", 1),
    ("inexpensive", 1),
    ("affordable", 2),
    ("expensive", 3),
    ("fine dining", 4),
    ("budget", 1),
)

ATTRIBUTE_KEYWORDS = (
    "wifi",
    "wi-fi",
    "outdoor seating",
    "patio",
    "delivery",
    "takeout",
    "wheelchair accessible",
    "parking",
    "pet friendly",
    "kid friendly",
    "vegan",
    "vegetarian",
    "gluten free",
)

DISTANCE_TERMS = (
    "within",
    "less than",
    "walking distance",
    "close by",
    "mile",
    "km",
    "kilometer",
    "meters",
)

# Refinement vocabulary
REFINEMENT_DIRECTIVES = (
    "show only",
    "filter to",
    "which are",
    "just the",
    "limit to",
    "only show",
    "narrow down",
    "reduce to",
)

REFINEMENT_ATTRIBUTE_KEYWORDS = (
    "wifi",
    "wi-fi",
    "outdoor seating",
    "patio",
    "delivery",
    "takeout",
    "take-out",
    "wheelchair accessible",
    "parking",
    "valet parking",
    "pet friendly",
    "pet-friendly",
    "kid friendly",
    "kid-friendly",
    "family friendly",
    "family-friendly",
    "vegan",
    "vegetarian",
    "gluten free",
    "gluten-free",
)

RATING_TERMS = ("star", "rated", "reviews")

RESET_PHRASES = (
    "show all",
    "show everything",
    "clear filters",
    "clear all filters",
    "reset filters",
    "remove filters",
    "remove all filters",
)


class Vocabulary(BaseModel):
    """Immutable bundle of every table the extractors consult."""
    model_config = ConfigDict(frozen=True)

    canonical_categories: Tuple[str, ...] = CANONICAL_CATEGORIES
    category_synonyms: Tuple[Tuple[str, str], ...] = CATEGORY_SYNONYMS
    fallback_category: str = FALLBACK_CATEGORY
    relative_location_keywords: Tuple[str, ...] = RELATIVE_LOCATION_KEYWORDS
    landmark_indicators: Tuple[str, ...] = LANDMARK_INDICATORS
    location_stop_words: Tuple[str, ...] = LOCATION_STOP_WORDS
    street_words: Tuple[str, ...] = STREET_WORDS
    ambiguous_place_names: Tuple[str, ...] = AMBIGUOUS_PLACE_NAMES
    demonstrative_phrases: Tuple[str, ...] = DEMONSTRATIVE_PHRASES
    rating_phrases: Tuple[Tuple[str, int], ...] = RATING_PHRASES
    temporal_phrases: Tuple[str, ...] = TEMPORAL_PHRASES
    price_keywords: Tuple[Tuple[str, int], ...] = PRICE_KEYWORDS
    attribute_keywords: Tuple[str, ...] = ATTRIBUTE_KEYWORDS
    distance_terms: Tuple[str, ...] = DISTANCE_TERMS
    rating_terms: Tuple[str, ...] = RATING_TERMS
    refinement_directives: Tuple[str, ...] = REFINEMENT_DIRECTIVES
    refinement_attribute_keywords: Tuple[str, ...] = REFINEMENT_ATTRIBUTE_KEYWORDS
    reset_phrases: Tuple[str, ...] = RESET_PHRASES

    def category_terms(self) -> Tuple[str, ...]:
        """Every phrase that names a category, synonyms and canonical names alike."""
        names = tuple(category.replace("_", " ") for category in self.canonical_categories)
        return tuple(dict.fromkeys(tuple(phrase for phrase, _ in self.category_synonyms) + names))

    def location_terms(self) -> Tuple[str, ...]:
        """Every phrase that signals a place rather than a filter."""
        return tuple(dict.fromkeys(
            self.relative_location_keywords
            + self.landmark_indicators
            + self.street_words
            + ("in", "at")
        ))

    def filter_terms(self) -> Tuple[str, ...]:
        """Every phrase that signals a rating, price, hours, attribute or distance constraint."""
        return tuple(dict.fromkeys(
            tuple(phrase for phrase, _ in self.rating_phrases)
            + self.rating_terms
            + self.temporal_phrases
            + ("open",)
            + tuple(phrase for phrase, _ in self.price_keywords)
            + self.refinement_attribute_keywords
            + self.distance_terms
        ))


DEFAULT_VOCABULARY = Vocabulary()
