"""Answering strategies."""
