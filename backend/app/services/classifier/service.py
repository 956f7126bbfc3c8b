"""Bathhouse classifier.

Decides whether a place returned by the places search is a bathhouse,
onsen or sauna facility. Places APIs lump fitness chains, massage parlors
and clinics into the same "spa" category, so results are filtered with a
layered keyword/type heuristic evaluated in a fixed order:

1. High-priority include keywords -> True (bypasses exclusions)
2. Exclude keywords                -> False
3. Medium-priority include keywords -> True
4. Place types: disallowed -> False, allowed -> True
5. Otherwise                       -> False
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from app.models import PlaceRecord

from . import keywords

logger = logging.getLogger(__name__)


def _normalize(values: Iterable[str]) -> tuple[str, ...]:
    return tuple(value.lower() for value in values if value)


@dataclass(frozen=True)
class KeywordRules:
    """Keyword and type tables driving the classifier."""

    high_priority: tuple[str, ...] = keywords.HIGH_PRIORITY_INCLUDE
    exclude: tuple[str, ...] = keywords.EXCLUDE
    medium_priority: tuple[str, ...] = keywords.MEDIUM_PRIORITY_INCLUDE
    disallowed_types: tuple[str, ...] = keywords.DISALLOWED_TYPES
    allowed_types: tuple[str, ...] = keywords.ALLOWED_TYPES

    def __post_init__(self) -> None:
        # Matching is done on lowercased text, so the tables must be too.
        for name in ("high_priority", "exclude", "medium_priority",
                     "disallowed_types", "allowed_types"):
            object.__setattr__(self, name, _normalize(getattr(self, name)))

    @classmethod
    def from_dict(cls, data: dict) -> "KeywordRules":
        """Build rules from a mapping; missing tables keep their defaults."""
        known = {
            "high_priority", "exclude", "medium_priority",
            "disallowed_types", "allowed_types",
        }
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown keyword tables: {sorted(unknown)}")
        return cls(**{name: tuple(values) for name, values in data.items()})

    @classmethod
    def from_file(cls, path: str | Path) -> "KeywordRules":
        """Load rules from a JSON file of table name -> list of keywords."""
        with open(path, encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, dict):
            raise ValueError(f"Keyword rules file must hold a JSON object: {path}")
        rules = cls.from_dict(data)
        logger.info(f"[CLASSIFIER] Loaded keyword rules from {path}")
        return rules


DEFAULT_RULES = KeywordRules()


def _matches_any(terms: tuple[str, ...], *texts: str) -> bool:
    return any(term in text for term in terms for text in texts)


def is_bathhouse_related(place: PlaceRecord, rules: KeywordRules = DEFAULT_RULES) -> bool:
    """Return True if the place should be shown as a bathhouse facility."""
    name = place.name.lower()
    address = place.formatted_address.lower()

    if _matches_any(rules.high_priority, name, address):
        return True

    if _matches_any(rules.exclude, name, address):
        return False

    if _matches_any(rules.medium_priority, name, address):
        return True

    types = {t.lower() for t in place.types}
    if types.intersection(rules.disallowed_types):
        return False
    if types.intersection(rules.allowed_types):
        return True

    return False


class FacilityClassifier:
    """Callable wrapper binding ``is_bathhouse_related`` to a rule set."""

    def __init__(self, rules: KeywordRules = DEFAULT_RULES) -> None:
        self._rules = rules

    @property
    def rules(self) -> KeywordRules:
        return self._rules

    def __call__(self, place: PlaceRecord) -> bool:
        return is_bathhouse_related(place, self._rules)

    def filter(self, places: Iterable[PlaceRecord]) -> list[PlaceRecord]:
        """Keep only the bathhouse-related places, preserving order."""
        return [place for place in places if self(place)]
