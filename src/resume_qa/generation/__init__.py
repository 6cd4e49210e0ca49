"""Prompt construction and answer validation."""
