"""Facility classifier module."""

from .service import (
    DEFAULT_RULES,
    FacilityClassifier,
    KeywordRules,
    is_bathhouse_related,
)

__all__ = [
    "DEFAULT_RULES",
    "FacilityClassifier",
    "KeywordRules",
    "is_bathhouse_related",
]
