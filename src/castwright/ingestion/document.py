"""PDF document adapter backed by PyMuPDF."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import structlog

from castwright.exceptions import IngestionError
from castwright.ingestion.models import ContentMetadata, ContentPackage, SourceType
from castwright.ingestion.segmentation import (
    DEFAULT_MAX_BLOCK_CHARS,
    ensure_blocks,
    split_blocks,
)
from castwright.ingestion.text import detect_language

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def extract_pdf_text(
    data: bytes | None = None, path: Path | None = None
) -> tuple[str, dict[str, Any], int]:
    """Extract page text and document metadata from a PDF.

    Args:
        data: PDF bytes (takes precedence over ``path``).
        path: Path to a PDF file.

    Returns:
        ``(text, metadata, page_count)`` where text joins pages with blank
        lines.

    Raises:
        IngestionError: If the document cannot be opened or has no pages.
    """
    import pymupdf

    try:
        if data is not None:
            doc = pymupdf.open(stream=data, filetype="pdf")
        elif path is not None:
            doc = pymupdf.open(str(path))
        else:
            raise IngestionError("Document source needs bytes or a path")
    except (RuntimeError, ValueError, OSError) as exc:
        raise IngestionError(f"Could not open document: {exc}") from exc

    with doc:
        if doc.page_count == 0:
            raise IngestionError("Document has no pages")
        pages = [page.get_text("text").strip() for page in doc]
        metadata = dict(doc.metadata or {})
        page_count = doc.page_count

    return "\n\n".join(p for p in pages if p), metadata, page_count


class DocumentAdapter:
    """Normalizes a PDF into a ``ContentPackage``."""

    def __init__(self, max_block_chars: int = DEFAULT_MAX_BLOCK_CHARS) -> None:
        self._max_block_chars = max_block_chars

    async def normalize(
        self,
        *,
        data: bytes | None = None,
        path: Path | None = None,
        file_name: str | None = None,
    ) -> ContentPackage:
        """Extract and segment a PDF's text.

        A PDF whose pages carry no text (e.g. a scan) yields a single
        placeholder block rather than an error.

        Raises:
            IngestionError: If the file is missing, empty, or unparseable.
        """
        if data is None and path is not None:
            try:
                data = await asyncio.to_thread(Path(path).read_bytes)
            except OSError as exc:
                raise IngestionError(f"Could not read {path}: {exc}") from exc
        if not data:
            raise IngestionError("Document is empty")

        name = file_name or (Path(path).name if path else "document.pdf")
        text, raw_meta, page_count = await asyncio.to_thread(extract_pdf_text, data)

        title = raw_meta.get("title") or Path(name).stem
        placeholder = f"Document '{title}' contains no extractable text."
        blocks = ensure_blocks(split_blocks(text, self._max_block_chars), placeholder)

        metadata = ContentMetadata(
            title=title,
            author=raw_meta.get("author"),
            date=raw_meta.get("creationDate"),
            description=raw_meta.get("subject"),
            language=detect_language(text) if text else "unknown",
            extra={
                "file_name": name,
                "file_size": len(data),
                "page_count": page_count,
                "creator": raw_meta.get("creator") or "",
                "producer": raw_meta.get("producer") or "",
            },
        )
        package = ContentPackage(
            content=blocks,
            metadata=metadata,
            citations=[name],
            source_type=SourceType.DOCUMENT,
        )
        logger.info(
            "document_normalized",
            file_name=name,
            package_id=package.id,
            pages=page_count,
            blocks=len(blocks),
            has_text=bool(text),
        )
        return package
