"""Configuration, settings and error types."""
