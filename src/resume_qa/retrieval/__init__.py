"""Similarity retrieval."""
