"""Source-type dispatch across the content adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from castwright.exceptions import IngestionError
from castwright.ingestion.document import DocumentAdapter
from castwright.ingestion.text import TextAdapter
from castwright.ingestion.video import VideoAdapter, is_video_url
from castwright.ingestion.web import WebAdapter

if TYPE_CHECKING:
    from pathlib import Path

    from castwright.config import IngestionSettings
    from castwright.ingestion.models import ContentPackage, SourceRequest

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


class IngestionService:
    """Routes a source to the adapter that understands it."""

    def __init__(
        self,
        *,
        web: WebAdapter | None = None,
        video: VideoAdapter | None = None,
        document: DocumentAdapter | None = None,
        text: TextAdapter | None = None,
    ) -> None:
        self.web = web or WebAdapter()
        self.video = video or VideoAdapter()
        self.document = document or DocumentAdapter()
        self.text = text or TextAdapter()

    @classmethod
    def from_settings(cls, settings: IngestionSettings) -> IngestionService:
        """Build adapters configured from ``settings``."""
        return cls(
            web=WebAdapter(
                timeout=settings.timeout,
                user_agent=settings.user_agent,
                max_content_length=settings.max_content_length,
                max_block_chars=settings.max_block_chars,
            ),
            video=VideoAdapter(
                caption_language=settings.caption_language,
                max_block_chars=settings.max_block_chars,
            ),
            document=DocumentAdapter(max_block_chars=settings.max_block_chars),
            text=TextAdapter(max_block_chars=settings.max_block_chars),
        )

    async def ingest_url(self, url: str) -> ContentPackage:
        """Normalize a URL with the video or web adapter."""
        if not url.startswith(("http://", "https://")):
            raise IngestionError(f"Unsupported URL: {url!r}")
        if is_video_url(url):
            logger.debug("source_routed", adapter="video", url=url)
            return await self.video.normalize(url)
        logger.debug("source_routed", adapter="web", url=url)
        return await self.web.normalize(url)

    async def ingest_document(
        self,
        *,
        path: Path | None = None,
        data: bytes | None = None,
        file_name: str | None = None,
    ) -> ContentPackage:
        return await self.document.normalize(data=data, path=path, file_name=file_name)

    async def ingest_text(self, text: str, title: str | None = None) -> ContentPackage:
        return await self.text.normalize(text, title=title)

    async def ingest(self, source: SourceRequest) -> ContentPackage:
        """Normalize any ``SourceRequest``."""
        if source.kind == "url":
            return await self.ingest_url(source.url or "")
        if source.kind == "document":
            return await self.ingest_document(
                path=source.path, data=source.data, file_name=source.file_name
            )
        return await self.ingest_text(source.text or "", title=source.title)
