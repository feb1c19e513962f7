"""Unit tests for source routing in IngestionService."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from castwright.config import IngestionSettings
from castwright.exceptions import IngestionError
from castwright.ingestion import IngestionService, SourceRequest


@pytest.fixture()
def adapters() -> dict[str, MagicMock]:
    mocks = {}
    for name in ("web", "video", "document", "text"):
        adapter = MagicMock()
        adapter.normalize = AsyncMock(return_value=f"{name}-package")
        mocks[name] = adapter
    return mocks


@pytest.fixture()
def service(adapters: dict[str, MagicMock]) -> IngestionService:
    return IngestionService(**adapters)


class TestRouting:
    @pytest.mark.asyncio()
    async def test_web_url(
        self, service: IngestionService, adapters: dict[str, MagicMock]
    ) -> None:
        result = await service.ingest(SourceRequest.from_url("https://example.com/post"))
        assert result == "web-package"
        adapters["web"].normalize.assert_awaited_once_with("https://example.com/post")
        adapters["video"].normalize.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_video_url(
        self, service: IngestionService, adapters: dict[str, MagicMock]
    ) -> None:
        result = await service.ingest(SourceRequest.from_url("https://youtu.be/abc"))
        assert result == "video-package"
        adapters["web"].normalize.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_document(
        self, service: IngestionService, adapters: dict[str, MagicMock]
    ) -> None:
        result = await service.ingest(SourceRequest.from_file(Path("/tmp/report.pdf")))
        assert result == "document-package"
        adapters["document"].normalize.assert_awaited_once_with(
            data=None, path=Path("/tmp/report.pdf"), file_name="report.pdf"
        )

    @pytest.mark.asyncio()
    async def test_text(
        self, service: IngestionService, adapters: dict[str, MagicMock]
    ) -> None:
        result = await service.ingest(SourceRequest.from_text("Hello.", "Greeting"))
        assert result == "text-package"
        adapters["text"].normalize.assert_awaited_once_with("Hello.", title="Greeting")

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("url", ["ftp://example.com/file", "example.com", "file:///etc"])
    async def test_unsupported_scheme(self, service: IngestionService, url: str) -> None:
        with pytest.raises(IngestionError, match="Unsupported URL"):
            await service.ingest_url(url)


class TestSourceRequest:
    def test_url_requires_url(self) -> None:
        with pytest.raises(ValueError, match="url"):
            SourceRequest(kind="url")

    def test_document_requires_payload(self) -> None:
        with pytest.raises(ValueError, match="document"):
            SourceRequest(kind="document")

    def test_describe(self) -> None:
        assert SourceRequest.from_url("https://a.b").describe() == "https://a.b"
        assert SourceRequest.from_text("abc").describe() == "3 characters of text"
        assert SourceRequest.from_file(Path("x/y.pdf")).describe() == "y.pdf"


def test_from_settings_wires_adapters() -> None:
    service = IngestionService.from_settings(IngestionSettings(max_block_chars=200))
    assert service.text._max_block_chars == 200
    assert service.web._max_block_chars == 200
