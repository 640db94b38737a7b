"""Command-line interface for docscore."""
