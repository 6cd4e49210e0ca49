"""Logging and query tracing."""
