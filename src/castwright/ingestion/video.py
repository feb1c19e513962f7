"""Video adapter: yt-dlp metadata plus best-effort captions."""

from __future__ import annotations

import asyncio
import json
import re
import subprocess
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import structlog

from castwright.exceptions import IngestionError
from castwright.ingestion.models import ContentMetadata, ContentPackage, SourceType
from castwright.ingestion.segmentation import DEFAULT_MAX_BLOCK_CHARS, group_sentences

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

VIDEO_HOSTS = frozenset(
    {
        "youtube.com",
        "www.youtube.com",
        "m.youtube.com",
        "music.youtube.com",
        "youtu.be",
        "www.youtu.be",
        "vimeo.com",
        "www.vimeo.com",
    }
)

_CUE_TAG_RE = re.compile(r"<[^>]+>")
_CUE_ID_RE = re.compile(r"^\d+$")
_LONG_SENTENCE_CHARS = 150


def is_video_url(url: str) -> bool:
    """Return True if ``url``'s host is a known video platform."""
    host = (urlparse(url).hostname or "").lower()
    return host in VIDEO_HOSTS


def _paragraphs(text: str) -> list[str]:
    parts = (re.sub(r"\s+", " ", part).strip() for part in re.split(r"\n\s*\n", text))
    return [p for p in parts if p]


def format_duration(seconds: int) -> str:
    """Format seconds as ``M:SS`` or ``H:MM:SS``."""
    hours, rest = divmod(max(seconds, 0), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


# ---------------------------------------------------------------------------
# Caption parsing
# ---------------------------------------------------------------------------


def vtt_to_lines(vtt: str) -> list[str]:
    """Convert WebVTT to caption lines.

    Timing lines, headers, cue ids and inline tags are dropped, and
    consecutive repeats (common in auto-generated captions) collapse.
    """
    lines: list[str] = []
    for line in vtt.splitlines():
        stripped = _CUE_TAG_RE.sub("", line).strip()
        if (
            not stripped
            or "-->" in stripped
            or stripped.startswith(("WEBVTT", "Kind:", "Language:", "NOTE"))
            or _CUE_ID_RE.match(stripped)
        ):
            continue
        if lines and lines[-1] == stripped:
            continue
        lines.append(stripped)
    return lines


def combine_captions(captions: list[str]) -> list[str]:
    """Join caption fragments into sentences.

    A fragment ending in ``.``, ``!`` or ``?`` closes the sentence. Long
    runs also break at a fragment ending in ``,``, ``;`` or ``:``.
    """
    sentences: list[str] = []
    current = ""
    for caption in captions:
        long_run = len(current) > _LONG_SENTENCE_CHARS
        current = f"{current} {caption}" if current else caption
        if caption.endswith((".", "!", "?")) or (
            long_run and caption.endswith((",", ";", ":"))
        ):
            sentences.append(current)
            current = ""
    if current:
        sentences.append(current)
    return sentences


# ---------------------------------------------------------------------------
# yt-dlp fetchers
# ---------------------------------------------------------------------------


def _run_info(url: str) -> dict[str, Any]:
    command = ["yt-dlp", "--dump-single-json", "--skip-download", url]
    try:
        result = subprocess.run(command, capture_output=True, text=True, check=False)
    except OSError as exc:
        raise IngestionError(f"yt-dlp is not available: {exc}") from exc
    if result.returncode != 0:
        raise IngestionError(
            f"Could not fetch video metadata for {url}: {result.stderr.strip()[:200]}"
        )
    try:
        payload = json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        raise IngestionError(f"yt-dlp returned unreadable metadata for {url}") from exc
    if not isinstance(payload, dict):
        raise IngestionError(f"yt-dlp returned unexpected metadata for {url}")
    return payload


def _run_captions(url: str, language: str) -> str:
    with tempfile.TemporaryDirectory(prefix="castwright-captions-") as tmp:
        work_dir = Path(tmp)
        command = [
            "yt-dlp",
            "--skip-download",
            "--write-subs",
            "--write-auto-subs",
            "--sub-langs",
            language,
            "--sub-format",
            "vtt",
            "-o",
            str(work_dir / "caption.%(ext)s"),
            url,
        ]
        result = subprocess.run(command, capture_output=True, text=True, check=False)
        if result.returncode != 0:
            return ""
        for path in sorted(work_dir.glob("caption*.vtt")):
            return path.read_text(encoding="utf-8", errors="ignore")
    return ""


async def fetch_video_info(url: str) -> dict[str, Any]:
    """Fetch video metadata with ``yt-dlp --dump-single-json``."""
    return await asyncio.to_thread(_run_info, url)


async def fetch_captions(url: str, language: str = "en") -> str:
    """Fetch a WebVTT caption track; returns ``""`` if none is available."""
    return await asyncio.to_thread(_run_captions, url, language)


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class VideoAdapter:
    """Normalizes a video URL into a ``ContentPackage``."""

    def __init__(
        self,
        info_fetcher: Callable[[str], Awaitable[dict[str, Any]]] = fetch_video_info,
        caption_fetcher: Callable[[str], Awaitable[str]] | None = None,
        *,
        caption_language: str = "en",
        max_block_chars: int = DEFAULT_MAX_BLOCK_CHARS,
    ) -> None:
        self._info_fetcher = info_fetcher
        self._caption_fetcher = caption_fetcher
        self._caption_language = caption_language
        self._max_block_chars = max_block_chars

    async def _captions(self, url: str) -> list[str]:
        try:
            if self._caption_fetcher is not None:
                vtt = await self._caption_fetcher(url)
            else:
                vtt = await fetch_captions(url, self._caption_language)
        except (OSError, subprocess.SubprocessError, IngestionError) as exc:
            logger.warning("captions_unavailable", url=url, error=str(exc))
            return []
        sentences = combine_captions(vtt_to_lines(vtt)) if vtt else []
        if not sentences:
            logger.info("captions_empty", url=url)
        return group_sentences(sentences, self._max_block_chars)

    async def normalize(self, url: str) -> ContentPackage:
        """Fetch metadata and captions for ``url``.

        Caption failures degrade to a placeholder description built from
        the title, author and duration.

        Raises:
            IngestionError: If the video's metadata cannot be fetched.
        """
        info = await self._info_fetcher(url)

        title = str(info.get("title") or "").strip()
        author = str(info.get("uploader") or info.get("channel") or "").strip()
        duration = int(info.get("duration") or 0)
        description = str(info.get("description") or "")

        display_title = title or "Untitled video"
        content: list[str] = [f"Title: {display_title}"]
        content.extend(_paragraphs(description))
        content.extend(await self._captions(url))

        if len(content) <= 1:
            content.append(
                f'This is a video titled "{display_title}" '
                f"by {author or 'an unknown creator'}."
            )
            if duration:
                content.append(f"The video is {format_duration(duration)} long.")

        upload_date = str(info.get("upload_date") or "")
        if re.fullmatch(r"\d{8}", upload_date):
            upload_date = f"{upload_date[:4]}-{upload_date[4:6]}-{upload_date[6:]}"

        metadata = ContentMetadata(
            title=title,
            author=author,
            date=upload_date,
            description=description[:500],
            site_name=str(info.get("extractor_key") or ""),
            url=url,
            language=str(info.get("language") or "unknown"),
            extra={
                "video_id": str(info.get("id") or ""),
                "duration_seconds": duration,
                "view_count": int(info.get("view_count") or 0),
                "channel_url": str(info.get("channel_url") or ""),
                "tags": list(info.get("tags") or []),
            },
        )
        package = ContentPackage(
            content=content,
            metadata=metadata,
            citations=[url],
            source_type=SourceType.VIDEO,
        )
        logger.info(
            "video_normalized",
            url=url,
            package_id=package.id,
            blocks=len(content),
            duration_seconds=duration,
        )
        return package
