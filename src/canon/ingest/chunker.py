"""Brand copy chunker: heading → paragraph → sentence-packed splits.

Chunks are atomic units of brand copy (a headline, a CTA, a paragraph of
product copy). Unlike retrieval chunkers there is no overlap: each chunk is
classified, embedded and reviewed on its own.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Pattern

# Matches H1–H6 Markdown headings at the start of a line.
_HEADING_RE = re.compile(r"^#{1,6}[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$", re.MULTILINE)
_PARAGRAPH_RE = re.compile(r"\n[ \t]*\n")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_WHITESPACE_RE = re.compile(r"\s+")

DEFAULT_AVOID_PATTERNS: tuple[str, ...] = (
    r"^(cookie|privacy|terms|copyright|©|all rights reserved)",
    r"^(home|about|contact|menu|navigation)",
)


def normalise_text(text: str) -> str:
    """Lowercase and collapse whitespace. No stemming, no punctuation stripping."""
    return _WHITESPACE_RE.sub(" ", text.lower()).strip()


@dataclass
class ChunkCandidate:
    """A chunk produced by the chunker, not yet classified, embedded or stored."""

    text: str
    normalised_text: str
    metadata: dict = field(default_factory=dict)


class ContentChunker:
    """Split raw brand copy into ordered, size-bounded chunk candidates.

    Strategy:
    - Split on Markdown heading lines; the heading text is kept as section
      metadata rather than emitted as a chunk.
    - Within each section, split on blank-line-delimited paragraphs.
    - Drop paragraphs matching a boilerplate pattern or shorter than
      ``min_chunk_size`` characters.
    - Paragraphs longer than ``max_chunk_size`` are re-split on sentence
      boundaries and sentences are greedily packed up to the maximum. A
      single sentence longer than the maximum is emitted whole.
    - Packed pieces shorter than ``min_chunk_size`` are dropped.

    Never raises on content: empty or all-boilerplate input yields ``[]``.
    """

    def __init__(
        self,
        min_chunk_size: int = 50,
        max_chunk_size: int = 500,
        avoid_patterns: Iterable[str | Pattern[str]] | None = None,
    ) -> None:
        if min_chunk_size < 0:
            raise ValueError("min_chunk_size must be >= 0")
        if max_chunk_size < 1:
            raise ValueError("max_chunk_size must be >= 1")
        if min_chunk_size > max_chunk_size:
            raise ValueError("min_chunk_size must be <= max_chunk_size")
        self.min_chunk_size = min_chunk_size
        self.max_chunk_size = max_chunk_size
        patterns = DEFAULT_AVOID_PATTERNS if avoid_patterns is None else avoid_patterns
        self.avoid_patterns: list[Pattern[str]] = [
            p if isinstance(p, re.Pattern) else re.compile(p, re.IGNORECASE)
            for p in patterns
        ]

    def chunk(self, content: str) -> list[ChunkCandidate]:
        """Split *content* into ChunkCandidates in source order."""
        if not isinstance(content, str) or not content.strip():
            return []

        candidates: list[ChunkCandidate] = []
        for heading, body in self._split_on_headings(content.replace("\r\n", "\n")):
            metadata = {"heading": heading} if heading else {}
            for paragraph in _PARAGRAPH_RE.split(body):
                text = paragraph.strip()
                if not text or self._is_boilerplate(text):
                    continue
                if len(text) < self.min_chunk_size:
                    continue
                if len(text) <= self.max_chunk_size:
                    candidates.append(_candidate(text, metadata))
                    continue
                for piece in self._pack_sentences(text):
                    if len(piece) >= self.min_chunk_size:
                        candidates.append(_candidate(piece, metadata))
        return candidates

    def _split_on_headings(self, content: str) -> list[tuple[str | None, str]]:
        """Return ``(heading, body)`` sections; the preamble has heading None."""
        matches = list(_HEADING_RE.finditer(content))
        if not matches:
            return [(None, content)]

        sections: list[tuple[str | None, str]] = []
        preamble = content[: matches[0].start()]
        if preamble.strip():
            sections.append((None, preamble))

        for i, match in enumerate(matches):
            end = matches[i + 1].start() if i + 1 < len(matches) else len(content)
            body = content[match.end() : end]
            if body.strip():
                sections.append((match.group(1).strip(), body))
        return sections

    def _is_boilerplate(self, text: str) -> bool:
        return any(p.search(text) for p in self.avoid_patterns)

    def _pack_sentences(self, text: str) -> list[str]:
        """Greedily pack sentences into pieces of at most ``max_chunk_size``."""
        pieces: list[str] = []
        current = ""
        for sentence in _SENTENCE_RE.split(text):
            sentence = sentence.strip()
            if not sentence:
                continue
            joined = f"{current} {sentence}" if current else sentence
            if current and len(joined) > self.max_chunk_size:
                pieces.append(current)
                current = sentence
            else:
                current = joined
        if current:
            pieces.append(current)
        return pieces


def _candidate(text: str, metadata: dict) -> ChunkCandidate:
    return ChunkCandidate(text=text, normalised_text=normalise_text(text), metadata=dict(metadata))
