"""Scoring service contract and HTTP client."""

from .base import ScoringService
from .client import (
    TRUNCATION_MARKER,
    HttpScoringClient,
    extract_json_object,
    parse_score,
    truncate_document,
    weighted_total,
)

__all__ = [
    "TRUNCATION_MARKER",
    "HttpScoringClient",
    "ScoringService",
    "extract_json_object",
    "parse_score",
    "truncate_document",
    "weighted_total",
]
