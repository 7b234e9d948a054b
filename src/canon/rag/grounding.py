"""Grounding: turn a generation request into a brand-language prompt addition.

The prompt addition has up to three sections:

  Approved brand language examples (preferred phrasing):   canonical + approved
  Approved alternatives (acceptable but not primary):      approved, max 3
  Instructions:                                            fixed reuse rules

It is empty when no approved chunk matches; inferred chunks are returned in
``chunks`` but never quoted in the prompt.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from canon.db.repository import Repository
from canon.ingest.embedder import Embedder
from canon.rag.query import QueryOptions, RankedChunk, query_similar

MAX_ALTERNATIVES = 3

_INSTRUCTIONS = (
    "- Reuse existing phrasing where appropriate",
    "- Maintain consistency with canonical language",
    "- Only introduce new phrasing if necessary",
    "- Prefer approved copy over inferred",
)


@dataclass
class GroundingContext:
    category: str | None = None
    intent: str | None = None
    channel: str | None = None


@dataclass
class GroundedChunk:
    id: str
    text: str
    is_canonical: bool
    is_approved: bool
    similarity: float


@dataclass
class GroundingResult:
    chunks: list[GroundedChunk] = field(default_factory=list)
    prompt_addition: str = ""


def prepare_grounding(
    repo: Repository,
    embedder: Embedder,
    brand_id: str,
    user_input: str,
    context: GroundingContext | None = None,
    options: QueryOptions | None = None,
    record_usage: bool = False,
) -> GroundingResult:
    """Query the brand's repository for *user_input* and build the prompt addition.

    Args:
        context: Category / intent / channel filters for the query.
        options: Base query options; the filters from *context* override
            its category, intent and channel.
        record_usage: Increment usage_count and stamp last_used_at for every
            returned chunk.
    """
    ctx = context or GroundingContext()
    base = options or QueryOptions()
    opts = QueryOptions(
        category=ctx.category,
        intent=ctx.intent,
        channel=ctx.channel,
        limit=base.limit,
        min_similarity=base.min_similarity,
        prefer_canonical=base.prefer_canonical,
        prefer_approved=base.prefer_approved,
        candidate_pool=base.candidate_pool,
    )
    ranked = query_similar(repo, embedder, brand_id, user_input, opts)

    if record_usage and ranked:
        repo.record_usage(brand_id, [r.chunk.id for r in ranked])

    return GroundingResult(
        chunks=[
            GroundedChunk(
                id=r.chunk.id,
                text=r.chunk.text,
                is_canonical=r.chunk.canonical,
                is_approved=r.chunk.approved,
                similarity=r.similarity,
            )
            for r in ranked
        ],
        prompt_addition=build_prompt_addition(ranked),
    )


def build_prompt_addition(ranked: list[RankedChunk]) -> str:
    """Render the prompt addition for already-ranked chunks."""
    canonical = [r.chunk for r in ranked if r.chunk.canonical and r.chunk.approved]
    alternatives = [r.chunk for r in ranked if not r.chunk.canonical and r.chunk.approved]

    lines: list[str] = []
    if canonical:
        lines.append("Approved brand language examples (preferred phrasing):")
        lines.extend(f"[{i}] {chunk.text}" for i, chunk in enumerate(canonical, start=1))
        lines.append("")
    if alternatives:
        lines.append("Approved alternatives (acceptable but not primary):")
        lines.extend(
            f"[Alt {i}] {chunk.text}"
            for i, chunk in enumerate(alternatives[:MAX_ALTERNATIVES], start=1)
        )
        lines.append("")
    if not lines:
        return ""

    lines.append("Instructions:")
    lines.extend(_INSTRUCTIONS)
    return "\n".join(lines) + "\n"
