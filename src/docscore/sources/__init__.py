"""Document sources feeding jobs into runs."""

from .base import DocumentSource
from .local import DEFAULT_PATTERNS, LocalDocumentSource

__all__ = [
    "DEFAULT_PATTERNS",
    "DocumentSource",
    "LocalDocumentSource",
]
