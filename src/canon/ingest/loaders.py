"""Local file loaders: turn crawled pages and uploaded documents into text.

HTML keeps its heading structure (as Markdown) so the chunker can attach
section headings. PDFs are extracted page by page; pages are separated by a
blank line so page breaks also act as paragraph breaks.
"""

from __future__ import annotations

from pathlib import Path

import html2text
import pypdf
from bs4 import BeautifulSoup

from canon.db.models import ChunkSource

_HTML_EXTS = {".html", ".htm"}
_PDF_EXTS = {".pdf"}
_TEXT_EXTS = {".md", ".markdown", ".txt", ".text", ".rst"}

# html2text converter
_h2t = html2text.HTML2Text()
_h2t.ignore_links = True
_h2t.ignore_images = True
_h2t.body_width = 0


def load_text(path: Path | str) -> str:
    """Return the chunkable text of the file at *path*.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the extension is not supported.
    """
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"No such file: '{p}'")
    ext = p.suffix.lower()
    if ext in _HTML_EXTS:
        return html_to_text(p.read_text(encoding="utf-8", errors="replace"))
    if ext in _PDF_EXTS:
        return _extract_pdf_text(p)
    if ext in _TEXT_EXTS:
        return p.read_text(encoding="utf-8", errors="replace")
    raise ValueError(
        f"Unsupported file type {ext!r}. "
        f"Supported: {', '.join(sorted(_HTML_EXTS | _PDF_EXTS | _TEXT_EXTS))}"
    )


def default_source_for(path: Path | str) -> ChunkSource:
    """Infer provenance from the file extension: HTML is a crawl, the rest uploads."""
    if Path(path).suffix.lower() in _HTML_EXTS:
        return ChunkSource.WEBSITE_CRAWL
    return ChunkSource.DOCUMENT_UPLOAD


def html_to_text(html: str) -> str:
    """Strip non-content tags, then convert to Markdown-flavoured text."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(["script", "style", "nav", "footer", "head"]):
        tag.decompose()
    return _h2t.handle(str(soup)).strip()


def _extract_pdf_text(path: Path) -> str:
    reader = pypdf.PdfReader(path)
    parts: list[str] = []
    for page in reader.pages:
        stripped = (page.extract_text() or "").strip()
        if stripped:
            parts.append(stripped)
    return "\n\n".join(parts)
