"""docscore - rate-limited batch scoring of documents with live progress."""

__version__ = "0.1.0"
