"""Embedder: text → fixed-length float vector.

Embedding failure is fatal to ingestion (similarity detection depends on it),
so transport errors propagate unmodified; only the dimensionality is checked.
"""

from __future__ import annotations

from typing import Protocol

from canon import llm_client
from canon.errors import DimensionMismatchError

# OpenAI accepts up to 2048 inputs per embeddings request.
MAX_BATCH_SIZE = 2048


class Embedder(Protocol):
    """Maps text to a vector of the deployment's fixed dimensionality."""

    dimensions: int

    def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        ...

    def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts; one vector per text, in input order."""
        ...


class LiteLLMEmbedder:
    """Embedder backed by ``litellm.embedding()``.

    Args:
        model:       LiteLLM embedding model string (provider/model format).
        dimensions:  Expected vector length; any other length raises.
        batch_size:  Inputs per request; larger inputs are split and concatenated.
        num_retries: LiteLLM transport retries per request.
    """

    def __init__(
        self,
        model: str = "openai/text-embedding-3-small",
        dimensions: int = 1536,
        batch_size: int = MAX_BATCH_SIZE,
        num_retries: int = 3,
    ) -> None:
        if dimensions < 1:
            raise ValueError(f"dimensions must be >= 1, got {dimensions}")
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be in [1, {MAX_BATCH_SIZE}], got {batch_size}")
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.num_retries = num_retries

    def embed(self, text: str) -> list[float]:
        return self.embed_many([text])[0]

    def embed_many(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            result = llm_client.embed_batch(self.model, batch, num_retries=self.num_retries)
            if len(result) != len(batch):
                raise RuntimeError(
                    f"Embedding model '{self.model}' returned {len(result)} vectors "
                    f"for {len(batch)} inputs."
                )
            for vector in result:
                check_dimensions(vector, self.dimensions)
            vectors.extend(result)
        return vectors


def check_dimensions(vector: list[float], expected: int) -> None:
    """Raise DimensionMismatchError if *vector* is not *expected* floats long."""
    if len(vector) != expected:
        raise DimensionMismatchError(expected, len(vector))
