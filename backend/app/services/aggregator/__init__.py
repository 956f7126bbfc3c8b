"""Search aggregator module."""

from .service import (
    PRIORITY_TEXT_QUERIES,
    REMAINING_TEXT_QUERIES,
    ProgressCallback,
    SearchAggregator,
)

__all__ = [
    "PRIORITY_TEXT_QUERIES",
    "REMAINING_TEXT_QUERIES",
    "ProgressCallback",
    "SearchAggregator",
]
