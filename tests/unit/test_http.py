"""Tests for goldwatch.sources.http (HttpFetcher)."""

from __future__ import annotations

import httpx
import pytest
import respx

from goldwatch.core.config import HttpConfig
from goldwatch.core.exceptions import NetworkError
from goldwatch.sources.http import HttpFetcher

URL = "https://pages.test/quote"


@pytest.fixture
async def http():
    async with HttpFetcher(HttpConfig(rate_limit=100, user_agent="GoldwatchTest/1.0")) as h:
        yield h


class TestGet:
    @respx.mock
    async def test_returns_successful_response(self, http: HttpFetcher):
        respx.get(URL).mock(return_value=httpx.Response(200, text="ok"))

        response = await http.get(URL)
        assert response.text == "ok"

    @respx.mock
    async def test_sends_configured_user_agent(self, http: HttpFetcher):
        route = respx.get(URL).mock(return_value=httpx.Response(200))

        await http.get(URL)
        assert route.calls.last.request.headers["User-Agent"] == "GoldwatchTest/1.0"

    @respx.mock
    async def test_browser_headers_forwarded(self, http: HttpFetcher):
        route = respx.get(URL).mock(return_value=httpx.Response(200))

        await http.get(URL, headers=http.browser_headers)
        request = route.calls.last.request
        assert request.headers["Accept-Language"].startswith("zh-CN")
        assert "text/html" in request.headers["Accept"]

    @respx.mock
    async def test_non_2xx_raises(self, http: HttpFetcher):
        respx.get(URL).mock(return_value=httpx.Response(404))

        with pytest.raises(NetworkError, match="HTTP 404") as excinfo:
            await http.get(URL)
        assert excinfo.value.context["status_code"] == 404
        assert excinfo.value.context["url"] == URL

    @respx.mock
    async def test_transport_error_raises(self, http: HttpFetcher):
        respx.get(URL).mock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(NetworkError, match="ConnectError") as excinfo:
            await http.get(URL)
        assert isinstance(excinfo.value.__cause__, httpx.ConnectError)

    @respx.mock
    async def test_timeout_raises(self, http: HttpFetcher):
        respx.get(URL).mock(side_effect=httpx.ReadTimeout("timed out"))

        with pytest.raises(NetworkError, match="ReadTimeout"):
            await http.get(URL)

    @respx.mock
    async def test_no_retry_on_failure(self, http: HttpFetcher):
        route = respx.get(URL).mock(return_value=httpx.Response(500))

        with pytest.raises(NetworkError):
            await http.get(URL)
        assert route.call_count == 1

    async def test_invalid_url_raises(self, http: HttpFetcher):
        with pytest.raises(NetworkError):
            await http.get("not a url")


class TestLifecycle:
    async def test_does_not_close_injected_client(self):
        client = httpx.AsyncClient()
        fetcher = HttpFetcher(client=client)

        await fetcher.close()
        assert not client.is_closed
        await client.aclose()

    async def test_closes_own_client(self):
        fetcher = HttpFetcher()
        await fetcher.close()
        assert fetcher._client.is_closed

    def test_default_config(self):
        fetcher = HttpFetcher()
        assert fetcher.config.rate_limit == 20
        assert "Mozilla" in fetcher.browser_headers["User-Agent"]
