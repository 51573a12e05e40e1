"""
Ordered rule tables for keyword and pattern extraction.

Every extractor describes its behaviour as an ordered list of rules: a
compiled pattern, the value a match produces and the confidence attached
to it. Rules are tried in order and the first one that yields a value wins.
"""
import re
from functools import lru_cache
from typing import Any, Callable, Iterable, List, NamedTuple, Optional, Pattern, Tuple, Union

# A rule value is either a constant or a function of the regex match.
# A function may return None to reject the match (e.g. an out-of-range number).
RuleValue = Union[Any, Callable[["re.Match[str]"], Any]]


class Rule(NamedTuple):
    pattern: Pattern[str]
    value: RuleValue
    confidence: float


class RuleMatch(NamedTuple):
    value: Any
    confidence: float
    match: "re.Match[str]"


def evaluate(rule: Rule, text: str) -> Optional[RuleMatch]:
    """Apply a single rule to text."""
    match = rule.pattern.search(text)
    if match is None:
        return None
    value = rule.value(match) if callable(rule.value) else rule.value
    if value is None:
        return None
    return RuleMatch(value, rule.confidence, match)


def first_match(rules: Iterable[Rule], text: str) -> Optional[RuleMatch]:
    """Return the result of the first rule that matches, in table order."""
    for rule in rules:
        result = evaluate(rule, text)
        if result is not None:
            return result
    return None


def all_matches(rules: Iterable[Rule], text: str) -> List[RuleMatch]:
    """Return the result of every matching rule, in table order."""
    results = []
    for rule in rules:
        result = evaluate(rule, text)
        if result is not None:
            results.append(result)
    return results


def _phrase_regex(phrase: str, word_boundary: bool) -> str:
    escaped = re.escape(phrase)
    if word_boundary:
        return rf"\b{escaped}\b"
    return escaped


@lru_cache(maxsize=None)
def phrase_pattern(phrases: Tuple[str, ...], word_boundary: bool = False) -> Pattern[str]:
    """Compile one case-insensitive alternation over literal phrases."""
    if not phrases:
        return re.compile(r"(?!)")
    alternatives = "|".join(_phrase_regex(phrase, word_boundary) for phrase in phrases)
    return re.compile(f"(?:{alternatives})", re.IGNORECASE)


@lru_cache(maxsize=None)
def keyword_rules(
    pairs: Tuple[Tuple[str, Any], ...],
    confidence: float,
    word_boundary: bool = False,
) -> Tuple[Rule, ...]:
    """Build literal phrase -> value rules, preserving table order."""
    return tuple(
        Rule(
            re.compile(_phrase_regex(phrase, word_boundary), re.IGNORECASE),
            value,
            confidence,
        )
        for phrase, value in pairs
    )
