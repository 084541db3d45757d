"""Core infrastructure: database, security and error types."""
