"""
Unit tests for source document loading.
"""

import json

import httpx
import pytest

from service_relay.app.adapters.source_loader import SourceLoader, SourceLoadError
from service_relay.app.domain.sources import SourceLocation


SOURCE_URL = "https://config.example.com/jin18.json"


def make_loader(handler, **kwargs):
    return SourceLoader(transport=httpx.MockTransport(handler), **kwargs)


class TestRemoteLoading:
    """Test cases for HTTP-backed sources."""

    @pytest.mark.asyncio
    async def test_successful_fetch(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"api_site": {"a": {"api": "https://a.example.com"}}})

        loader = make_loader(handler, user_agent="relay-test")
        result = await loader.load(SourceLocation(url=SOURCE_URL))

        assert result == {"api_site": {"a": {"api": "https://a.example.com"}}}
        assert str(seen[0].url) == SOURCE_URL
        assert seen[0].headers["user-agent"] == "relay-test"
        assert seen[0].headers["accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_non_success_status(self):
        loader = make_loader(lambda request: httpx.Response(404, text="missing"))

        with pytest.raises(SourceLoadError) as exc_info:
            await loader.load(SourceLocation(url=SOURCE_URL))

        assert exc_info.value.status_code == 404
        assert exc_info.value.location == SOURCE_URL
        assert "404" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        loader = make_loader(lambda request: httpx.Response(200, text="<html>not json</html>"))

        with pytest.raises(SourceLoadError) as exc_info:
            await loader.load(SourceLocation(url=SOURCE_URL))

        assert "invalid JSON" in str(exc_info.value)
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        loader = make_loader(handler)

        with pytest.raises(SourceLoadError) as exc_info:
            await loader.load(SourceLocation(url=SOURCE_URL))

        assert "connection refused" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_redirects_followed(self):
        def handler(request):
            if request.url.path == "/jin18.json":
                return httpx.Response(302, headers={"Location": "https://mirror.example.com/jin18.json"})
            return httpx.Response(200, json=[1, 2, 3])

        loader = make_loader(handler)

        assert await loader.load(SourceLocation(url=SOURCE_URL)) == [1, 2, 3]


class TestLocalLoading:
    """Test cases for file-backed sources."""

    @pytest.mark.asyncio
    async def test_reads_utf8_file(self, tmp_path):
        document = {"api_site": {"a": {"name": "影视", "api": "https://a.example.com"}}}
        path = tmp_path / "jin18.json"
        path.write_text(json.dumps(document, ensure_ascii=False), encoding="utf-8")

        result = await SourceLoader().load(SourceLocation(path=path))

        assert result == document

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        with pytest.raises(SourceLoadError) as exc_info:
            await SourceLoader().load(SourceLocation(path=tmp_path / "absent.json"))

        assert "read failed" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_invalid_utf8_file(self, tmp_path):
        path = tmp_path / "full.json"
        path.write_bytes(b'{"a": "\xff\xfe"}')

        with pytest.raises(SourceLoadError) as exc_info:
            await SourceLoader().load(SourceLocation(path=path))

        assert "invalid JSON" in str(exc_info.value)
        assert exc_info.value.location == str(path)

    @pytest.mark.asyncio
    async def test_corrupt_file(self, tmp_path):
        path = tmp_path / "full.json"
        path.write_text("{broken", encoding="utf-8")

        with pytest.raises(SourceLoadError) as exc_info:
            await SourceLoader().load(SourceLocation(path=path))

        assert exc_info.value.location == str(path)
