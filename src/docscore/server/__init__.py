"""HTTP transport for runs and progress streams."""
