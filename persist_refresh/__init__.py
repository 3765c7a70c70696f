"""Persisted-model refresh scheduler."""

__version__ = "1.0.0"
