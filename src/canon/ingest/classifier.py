"""Classifier: chunk text → category / channel / intent / tone metadata.

Classification is best-effort. Any failure (transport error, empty response,
malformed JSON) yields the conservative default for that chunk only; it never
blocks ingestion.
"""

from __future__ import annotations

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Protocol

from canon import llm_client
from canon.ingest.chunker import normalise_text

CATEGORIES = (
    "Headlines",
    "CTAs",
    "Product copy",
    "Legal",
    "Boilerplate",
    "Error messages",
    "Help text",
    "Marketing copy",
    "Support copy",
)
CHANNELS = ("Web", "iOS", "Android", "Social", "Email", "Support")
INTENTS = ("announce", "persuade", "explain", "reassure", "legal", "inform", "invite")

_DEFAULT_CONFIDENCE = 0.5
_MISSING_CONFIDENCE = 0.7

_SYSTEM_PROMPT = "You are a brand language classifier. Always return valid JSON only."

_CLASSIFY_PROMPT = """\
You are classifying brand copy for a brand language repository.

{brand_block}Classify the following copy snippet:

"{text}"

Return a JSON object with:
- category: One of: {categories}, or null
- subCategory: More specific category (e.g., "Hero headline", "Button CTA", "Privacy policy"), or null
- channel: One of: {channels}, or null
- intent: One of: {intents}, or null
- toneTags: Array of tone descriptors (e.g., ["confident", "friendly", "professional"])
- confidenceScore: Number between 0 and 1

Only return valid JSON, no other text."""


@dataclass(frozen=True)
class BrandContext:
    """Optional brand details passed to the classifier prompt."""

    name: str | None = None
    domain: str | None = None


@dataclass
class ClassificationResult:
    """Categorical metadata for one chunk.

    Attributes:
        failed: True when classification failed and defaults were substituted.
    """

    category: str | None = None
    sub_category: str | None = None
    channel: str | None = None
    intent: str | None = None
    tone_tags: list[str] = field(default_factory=list)
    confidence_score: float = _DEFAULT_CONFIDENCE
    failed: bool = False

    @classmethod
    def default(cls) -> ClassificationResult:
        """Conservative fallback used whenever classification fails."""
        return cls(failed=True)


class Classifier(Protocol):
    """Maps a chunk's text to categorical attributes."""

    def classify(
        self, text: str, context: BrandContext | None = None
    ) -> ClassificationResult:
        """Classify *text*; implementations should not raise."""
        ...


class LiteLLMClassifier:
    """Classifier backed by a JSON-mode ``litellm.completion()`` call.

    Args:
        model:       LiteLLM chat model string (provider/model format).
        temperature: Sampling temperature for the classification call.
        num_retries: LiteLLM transport retries per call.
    """

    def __init__(
        self,
        model: str = "openai/gpt-4o-mini",
        temperature: float = 0.3,
        num_retries: int = 3,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.num_retries = num_retries

    def classify(
        self, text: str, context: BrandContext | None = None
    ) -> ClassificationResult:
        prompt = _CLASSIFY_PROMPT.format(
            brand_block=_brand_block(context),
            text=text,
            categories=", ".join(CATEGORIES),
            channels=", ".join(CHANNELS),
            intents=", ".join(INTENTS),
        )
        try:
            content = llm_client.complete(
                model=self.model,
                messages=[
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                num_retries=self.num_retries,
                json_mode=True,
            )
            if not content.strip():
                return ClassificationResult.default()
            return parse_classification(json.loads(content))
        except Exception:
            # Non-fatal: classification failure must never block ingestion.
            return ClassificationResult.default()


def parse_classification(data: object) -> ClassificationResult:
    """Coerce a decoded classifier response into a ClassificationResult.

    Raises:
        ValueError: If *data* is not a JSON object.
    """
    if not isinstance(data, dict):
        raise ValueError("classifier response is not a JSON object")

    tone_tags = data.get("toneTags")
    confidence = data.get("confidenceScore")
    if isinstance(confidence, (int, float)) and not isinstance(confidence, bool):
        confidence = max(0.0, min(1.0, float(confidence)))
    else:
        confidence = _MISSING_CONFIDENCE

    return ClassificationResult(
        category=data.get("category") or None,
        sub_category=data.get("subCategory") or None,
        channel=data.get("channel") or None,
        intent=data.get("intent") or None,
        tone_tags=[str(t) for t in tone_tags] if isinstance(tone_tags, list) else [],
        confidence_score=confidence,
    )


class ClassificationCache:
    """In-memory cache of successful classifications.

    Keyed by normalised text and brand context. Pass one instance into
    ``classify_chunks`` (or the ingestion pipeline) to share results across
    calls; nothing is cached implicitly.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str | None, str | None], ClassificationResult] = {}
        self.hits = 0
        self.misses = 0

    def get(self, text: str, context: BrandContext | None) -> ClassificationResult | None:
        entry = self._entries.get(_cache_key(text, context))
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return replace(entry, tone_tags=list(entry.tone_tags))

    def put(self, text: str, context: BrandContext | None, result: ClassificationResult) -> None:
        if result.failed:
            return
        self._entries[_cache_key(text, context)] = replace(
            result, tone_tags=list(result.tone_tags)
        )

    def __len__(self) -> int:
        return len(self._entries)


def classify_chunks(
    classifier: Classifier,
    texts: list[str],
    context: BrandContext | None = None,
    batch_size: int = 10,
    max_workers: int = 10,
    cache: ClassificationCache | None = None,
    stop: threading.Event | None = None,
) -> list[ClassificationResult]:
    """Classify *texts* in fixed-size batches; results follow input order.

    Batches run one after another to bound the request rate; the chunks of a
    batch are classified in parallel. A failing chunk gets the default result
    without affecting the rest of its batch. Once *stop* is set no further
    batch is started and the unclassified chunks get the default result.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    if max_workers < 1:
        raise ValueError("max_workers must be >= 1")

    results: list[ClassificationResult | None] = [None] * len(texts)
    pending: list[int] = []
    for i, text in enumerate(texts):
        cached = cache.get(text, context) if cache is not None else None
        if cached is not None:
            results[i] = cached
        else:
            pending.append(i)

    def _classify_one(index: int) -> ClassificationResult:
        try:
            return classifier.classify(texts[index], context)
        except Exception:
            return ClassificationResult.default()

    with ThreadPoolExecutor(max_workers=min(batch_size, max_workers)) as pool:
        for start in range(0, len(pending), batch_size):
            if stop is not None and stop.is_set():
                break
            batch = pending[start : start + batch_size]
            for index, result in zip(batch, pool.map(_classify_one, batch)):
                results[index] = result
                if cache is not None:
                    cache.put(texts[index], context, result)

    return [r if r is not None else ClassificationResult.default() for r in results]


def _brand_block(context: BrandContext | None) -> str:
    if context is None:
        return ""
    return f"Brand: {context.name or 'Unknown'}\nDomain: {context.domain or 'Unknown'}\n\n"


def _cache_key(text: str, context: BrandContext | None) -> tuple[str, str | None, str | None]:
    normalised = normalise_text(text)
    if context is None:
        return normalised, None, None
    return normalised, context.name, context.domain
