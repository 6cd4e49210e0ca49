"""Deterministic hashing embedder used by the bundled embedding service."""

from __future__ import annotations

import re
from hashlib import blake2b
from math import sqrt

_TOKEN = re.compile(r"[a-z0-9]+")


class HashingEmbedder:
    """Signed feature hashing over word tokens and their character trigrams.

    Trigram features give related spellings (``react`` / ``reactjs``) a
    non-zero similarity. Output vectors are L2-normalised, so cosine
    similarity equals the dot product.
    """

    def __init__(self, dimension: int = 256, *, trigram_weight: float = 0.5) -> None:
        if dimension < 8:
            raise ValueError("dimension must be at least 8")
        self.dimension = dimension
        self.trigram_weight = trigram_weight

    def embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        tokens = _TOKEN.findall(text.lower())
        if not tokens:
            return vector

        for token in tokens:
            self._add(vector, token, 1.0)
            padded = f"#{token}#"
            for start in range(len(padded) - 2):
                self._add(vector, padded[start : start + 3], self.trigram_weight)

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]

    def embed_many(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]

    def _add(self, vector: list[float], feature: str, weight: float) -> None:
        digest = blake2b(feature.encode("utf-8"), digest_size=8).digest()
        idx = int.from_bytes(digest[:4], "little") % self.dimension
        sign = -1.0 if digest[4] % 2 else 1.0
        vector[idx] += sign * weight
