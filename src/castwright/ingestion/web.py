"""Web page adapter: httpx fetch plus Trafilatura extraction.

Fetches HTML, extracts the main text and page metadata with Trafilatura,
sanitizes against prompt injection, scores quality, and segments the text
into content blocks.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import httpx
import structlog
import trafilatura

from castwright.exceptions import IngestionError
from castwright.ingestion.models import ContentMetadata, ContentPackage, SourceType
from castwright.ingestion.segmentation import DEFAULT_MAX_BLOCK_CHARS, split_blocks
from castwright.ingestion.text import detect_language

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_DEFAULT_TIMEOUT = 30
_DEFAULT_MAX_CONTENT_LENGTH = 500_000
_DEFAULT_USER_AGENT = "castwright/0.1"

# Patterns that indicate prompt injection attempts in extracted content
_INJECTION_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"<\s*script\b", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
    re.compile(r"on\w+\s*=\s*[\"']", re.IGNORECASE),
    re.compile(r"ignore\s+(previous|above|all)\s+instructions", re.IGNORECASE),
    re.compile(r"system\s*:\s*you\s+are", re.IGNORECASE),
    re.compile(r"<\s*iframe\b", re.IGNORECASE),
]


# ---------------------------------------------------------------------------
# Sanitization and scoring
# ---------------------------------------------------------------------------


def sanitize_content(text: str) -> str:
    """Replace prompt-injection patterns with ``[REMOVED]``.

    Extracted page text is fed verbatim into model prompts, so script
    tags, event handlers and instruction-override phrases are neutralized.
    """
    sanitized = text
    for pattern in _INJECTION_PATTERNS:
        sanitized = pattern.sub("[REMOVED]", sanitized)
    return sanitized


def score_content_quality(text: str) -> float:
    """Score extracted content on a 0.0-1.0 scale.

    Weighs word count (half), paragraph count and sentence count (a
    quarter each). Content under 20 words scores 0.1.
    """
    stripped = text.strip()
    if not stripped:
        return 0.0

    word_count = len(stripped.split())
    if word_count < 20:
        return 0.1

    word_score = min(word_count / 500.0, 1.0)
    paragraphs = [p for p in stripped.split("\n\n") if p.strip()]
    para_score = min(len(paragraphs) / 5.0, 1.0)
    sentences = [s for s in re.split(r"[.!?]+", stripped) if s.strip()]
    sentence_score = min(len(sentences) / 10.0, 1.0)

    score = 0.5 * word_score + 0.25 * para_score + 0.25 * sentence_score
    return round(min(score, 1.0), 3)


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------


async def fetch_page(
    url: str,
    timeout: int = _DEFAULT_TIMEOUT,
    user_agent: str = _DEFAULT_USER_AGENT,
) -> str:
    """Fetch a page's HTML.

    Raises:
        IngestionError: On transport failure, an HTTP error status, or an
            empty body.
    """
    try:
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": user_agent},
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise IngestionError(
            f"Fetching {url} returned HTTP {exc.response.status_code}"
        ) from exc
    except httpx.HTTPError as exc:
        raise IngestionError(f"Could not reach {url}: {exc}") from exc

    if not response.text.strip():
        raise IngestionError(f"Page {url} returned an empty body")
    return response.text


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class WebAdapter:
    """Normalizes a web page into a ``ContentPackage``."""

    def __init__(
        self,
        fetch: Callable[[str], Awaitable[str]] | None = None,
        *,
        timeout: int = _DEFAULT_TIMEOUT,
        user_agent: str = _DEFAULT_USER_AGENT,
        max_content_length: int = _DEFAULT_MAX_CONTENT_LENGTH,
        max_block_chars: int = DEFAULT_MAX_BLOCK_CHARS,
    ) -> None:
        self._fetch = fetch
        self._timeout = timeout
        self._user_agent = user_agent
        self._max_content_length = max_content_length
        self._max_block_chars = max_block_chars

    async def _get_html(self, url: str) -> str:
        if self._fetch is not None:
            return await self._fetch(url)
        return await fetch_page(url, timeout=self._timeout, user_agent=self._user_agent)

    async def normalize(self, url: str) -> ContentPackage:
        """Fetch ``url`` and normalize its main content.

        Args:
            url: Page URL.

        Returns:
            The normalized content package.

        Raises:
            IngestionError: If the page is unreachable or has no
                extractable text.
        """
        html = await self._get_html(url)

        text = trafilatura.extract(
            html,
            url=url,
            include_comments=False,
            include_tables=True,
        )
        if not text or not text.strip():
            raise IngestionError(f"No extractable text found at {url}")

        text = sanitize_content(text)[: self._max_content_length]
        blocks = split_blocks(text, self._max_block_chars)
        if not blocks:
            raise IngestionError(f"No extractable text found at {url}")

        page_meta = trafilatura.extract_metadata(html, default_url=url)
        quality = score_content_quality(text)
        metadata = ContentMetadata(
            title=getattr(page_meta, "title", None),
            author=getattr(page_meta, "author", None),
            date=getattr(page_meta, "date", None),
            description=getattr(page_meta, "description", None),
            site_name=getattr(page_meta, "sitename", None),
            url=url,
            language=detect_language(text),
            extra={"quality_score": quality, "character_count": len(text)},
        )
        package = ContentPackage(
            content=blocks,
            metadata=metadata,
            citations=[url],
            source_type=SourceType.WEB,
        )
        logger.info(
            "web_page_normalized",
            url=url,
            package_id=package.id,
            blocks=len(blocks),
            quality_score=quality,
        )
        return package
