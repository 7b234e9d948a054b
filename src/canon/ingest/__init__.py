"""Canon ingest building blocks: chunker, loaders, classifier, embedder.

The orchestrating ``ingest()`` lives in canon.ingest.pipeline.
"""

from canon.ingest.chunker import ChunkCandidate, ContentChunker, normalise_text
from canon.ingest.classifier import (
    BrandContext,
    ClassificationCache,
    ClassificationResult,
    Classifier,
    LiteLLMClassifier,
    classify_chunks,
)
from canon.ingest.embedder import Embedder, LiteLLMEmbedder

__all__ = [
    "BrandContext",
    "ChunkCandidate",
    "ClassificationCache",
    "ClassificationResult",
    "Classifier",
    "ContentChunker",
    "Embedder",
    "LiteLLMClassifier",
    "LiteLLMEmbedder",
    "classify_chunks",
    "normalise_text",
]
