"""Tests for the HTTP file store."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from impacttrace.config import Settings
from impacttrace.storage.file_store import (
    MAX_FILE_SIZE,
    FileRejectedError,
    FileStoreError,
    HttpFileStore,
    file_name_from_url,
    file_type_from_url,
)

BASE = "https://files.example.com"


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    monkeypatch.setenv("STORAGE_BASE_URL", BASE)
    monkeypatch.setenv("STORAGE_API_KEY", "secret")
    return Settings()


def _store(settings: Settings, handler) -> HttpFileStore:
    return HttpFileStore(settings, transport=httpx.MockTransport(handler))


class TestUpload:
    async def test_upload_posts_object_and_returns_public_url(self, settings):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"Key": "ok"})

        stored = await _store(settings, handler).upload("site photo.jpg", b"abc", "image/jpeg")

        [request] = seen
        assert request.method == "POST"
        assert request.url.path.startswith("/storage/v1/object/evidence/evidence/")
        assert request.url.path.endswith("-site_photo.jpg")
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["Content-Type"] == "image/jpeg"
        assert request.content == b"abc"
        assert stored.size == 3
        assert stored.url.startswith(f"{BASE}/storage/v1/object/public/evidence/evidence/")

    async def test_disallowed_type_is_rejected_before_upload(self, settings):
        def handler(request):
            raise AssertionError("no request expected")

        with pytest.raises(FileRejectedError):
            await _store(settings, handler).upload("run.exe", b"MZ", "application/x-msdownload")

    async def test_oversized_file_is_rejected(self, settings):
        def handler(request):
            raise AssertionError("no request expected")

        with pytest.raises(FileRejectedError):
            await _store(settings, handler).upload(
                "big.pdf", b"0" * (MAX_FILE_SIZE + 1), "application/pdf"
            )

    async def test_http_error_becomes_file_store_error(self, settings):
        store = _store(settings, lambda request: httpx.Response(500))
        with pytest.raises(FileStoreError, match="HTTP 500"):
            await store.upload("a.pdf", b"x", "application/pdf")

    async def test_connection_error_becomes_file_store_error(self, settings):
        with patch("impacttrace.storage.file_store.httpx.AsyncClient") as MockClient:
            instance = AsyncMock()
            instance.post.side_effect = httpx.ConnectError("refused")
            instance.__aenter__ = AsyncMock(return_value=instance)
            instance.__aexit__ = AsyncMock(return_value=False)
            MockClient.return_value = instance

            with pytest.raises(FileStoreError, match="refused"):
                await HttpFileStore(settings).upload("a.pdf", b"x", "application/pdf")


class TestDelete:
    async def test_delete_targets_object_path(self, settings):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        url = f"{BASE}/storage/v1/object/public/evidence/evidence/123-a.pdf"
        assert await _store(settings, handler).delete(url) is True
        assert seen[0].method == "DELETE"
        assert seen[0].url.path == "/storage/v1/object/evidence/evidence/123-a.pdf"

    async def test_missing_object_returns_false(self, settings):
        url = f"{BASE}/storage/v1/object/public/evidence/evidence/gone.pdf"
        store = _store(settings, lambda request: httpx.Response(404))
        assert await store.delete(url) is False

    async def test_foreign_url_is_skipped(self, settings):
        def handler(request):
            raise AssertionError("no request expected")

        assert await _store(settings, handler).delete("https://elsewhere.org/x.pdf") is False

    async def test_server_error_raises(self, settings):
        url = f"{BASE}/storage/v1/object/public/evidence/evidence/a.pdf"
        store = _store(settings, lambda request: httpx.Response(503))
        with pytest.raises(FileStoreError):
            await store.delete(url)


def test_unconfigured_store_raises() -> None:
    with pytest.raises(FileStoreError):
        HttpFileStore(Settings())


def test_file_name_and_type_from_url() -> None:
    assert file_name_from_url("https://x/evidence/my%20report.PDF") == "my report.PDF"
    assert file_name_from_url("https://x/", default="file-2") == "file-2"
    assert file_type_from_url("https://x/evidence/my%20report.PDF") == "pdf"
    assert file_type_from_url("https://x/evidence/noext") == "unknown"
