"""Embedding-based description similarity for merge decisions."""

from __future__ import annotations

import math
from typing import Any, Sequence

import openai

from .config import OpenAIConfig


def cosine_similarity(first: Sequence[float], second: Sequence[float]) -> float:
    dot = sum(a * b for a, b in zip(first, second))
    norm = math.sqrt(sum(a * a for a in first)) * math.sqrt(sum(b * b for b in second))
    if not norm:
        return 0.0
    return dot / norm


class EmbeddingSimilarity:
    """Scores two descriptions by the cosine of their embeddings."""

    def __init__(self, client: Any, model: str) -> None:
        self._client = client
        self.model = model
        self._cache: dict[str, list[float]] = {}

    @classmethod
    def from_config(cls, config: OpenAIConfig) -> "EmbeddingSimilarity":
        client = openai.OpenAI(api_key=config.api_key, base_url=config.base_url)
        return cls(client, config.embedding_model)

    def score(self, first: str, second: str) -> float:
        missing = [text for text in dict.fromkeys((first, second)) if text not in self._cache]
        if missing:
            response = self._client.embeddings.create(model=self.model, input=missing)
            for text, item in zip(missing, response.data):
                self._cache[text] = list(item.embedding)
        return cosine_similarity(self._cache[first], self._cache[second])
