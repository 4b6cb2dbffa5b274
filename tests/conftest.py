"""Shared pytest fixtures for goldwatch."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
import respx

from goldwatch.core.config import GoldwatchConfig, HttpConfig, SourcesConfig
from goldwatch.core.exceptions import ExtractionMiss
from goldwatch.core.models import Source
from goldwatch.sources.clients import SourceClient
from goldwatch.sources.registry import SourceRegistry

JD_URL = "https://jd.test/latestPrice"
SHUIBEI_URL = "https://pages.test/shuibei.html"
SGE_URL = "https://pages.test/sge.html"
DIRECTORY_URL = "https://brands.test/js/brands.js"
BRAND_PRICE_URL = "https://brands.test/api/price/{brand_id}"


# --- Upstream documents ---


JD_PAYLOAD = {
    "resultCode": 0,
    "resultData": {"status": "SUCCESS", "datas": {"price": "1923.45", "upAndDownRate": "0.12%"}},
}

SHUIBEI_HTML = """
<html><head><title>水贝金价</title></head>
<body>
<div class="header">客服电话 400-1234-5678</div>
<div class="quote"><p>今日水贝金价：<b>612.5</b>元</p></div>
</body></html>
"""

SGE_HTML = """
<html><body>
<table class="quotes">
<tr><th>品种</th><th>最新价</th><th>时间</th></tr>
<tr><td>Au99.99</td><td>1100.00</td><td>2026-10-16 15:30</td></tr>
<tr><td>Au99.95</td><td>1110.00</td><td>2026-10-16 15:30</td></tr>
<tr><td>Au(T+D)</td><td>1120.00</td><td>2026-10-16 15:31</td></tr>
</table>
</body></html>
"""

DIRECTORY_JS = """
var brandList = [
  {"_id": "b-ctf", "brand": "周大福旗舰店", "sort": 1},
  {"_id": "b-lfx", "brand": "老凤祥"},
  {"_id": "b-css", "brand": "\\u5468\\u751f\\u751f"},
  {"_id": "b-bad"},
  {"_id": "b-lf", "brand": "六福珠宝"},
  {"_id": "b-cts", "brand": "周六福"},
  {"_id": "b-cb", "brand": "菜百首饰"}
];
"""

BRAND_PRICES = {
    "b-ctf": "618",
    "b-lfx": "620",
    "b-css": "616",
    "b-lf": "617",
    "b-cts": "598",
    "b-cb": "605",
}


def brand_payload(price: str) -> dict:
    return {"code": 200, "data": {"price": price, "unit": "元/克"}}


# --- Config ---


@pytest.fixture
def config() -> GoldwatchConfig:
    return GoldwatchConfig(
        http=HttpConfig(rate_limit=1000, request_timeout=5),
        sources=SourcesConfig(
            jd_finance_url=JD_URL,
            shuibei_url=SHUIBEI_URL,
            sge_url=SGE_URL,
            directory_url=DIRECTORY_URL,
            brand_price_url=BRAND_PRICE_URL,
        ),
    )


@pytest.fixture
def mock_upstream():
    """Route every upstream endpoint to a healthy canned response."""
    with respx.mock(assert_all_called=False) as router:
        router.get(JD_URL, name="jd").mock(
            return_value=httpx.Response(200, json=JD_PAYLOAD)
        )
        router.get(SHUIBEI_URL, name="shuibei").mock(
            return_value=httpx.Response(
                200, text=SHUIBEI_HTML, headers={"Content-Type": "text/html; charset=utf-8"}
            )
        )
        router.get(SGE_URL, name="sge").mock(
            return_value=httpx.Response(
                200, text=SGE_HTML, headers={"Content-Type": "text/html; charset=utf-8"}
            )
        )
        router.get(DIRECTORY_URL, name="directory").mock(
            return_value=httpx.Response(200, text=DIRECTORY_JS)
        )
        for brand_id, price in BRAND_PRICES.items():
            router.get(BRAND_PRICE_URL.format(brand_id=brand_id), name=brand_id).mock(
                return_value=httpx.Response(200, json=brand_payload(price))
            )
        yield router


# --- Test doubles ---


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubClient(SourceClient):
    """Scripted client: no network, optional gates to hold fetches open.

    ``prices[source]`` is either a float or a list consumed one per call;
    a missing or None price yields an ExtractionMiss.
    """

    def __init__(self, prices: dict | None = None) -> None:
        super().__init__(http=None)
        self.prices: dict = dict(prices or {})
        self.gates: dict[Source, list[asyncio.Event]] = {}
        self.blocker: asyncio.Event | None = None
        self.calls: list[Source] = []
        self.fail_with: Exception | None = None

    def supports(self, source: Source) -> bool:
        return True

    def hold_next(self, source: Source) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates.setdefault(source, []).append(gate)
        return gate

    async def _fetch_price(self, source: Source):
        self.calls.append(source)
        scripted = self.prices.get(source)
        price = scripted.pop(0) if isinstance(scripted, list) else scripted

        pending = self.gates.get(source)
        if pending:
            await pending.pop(0).wait()
        if self.blocker is not None:
            await self.blocker.wait()
        if self.fail_with is not None:
            raise self.fail_with

        if price is None:
            raise ExtractionMiss(f"no price scripted for {source.value}")
        return price, ()

    def count(self, source: Source) -> int:
        return self.calls.count(source)


class FakeHttp:
    """Minimal HttpFetcher stand-in serving fixed bodies by URL."""

    def __init__(self, bodies: dict[str, str | bytes], delay: float = 0.0) -> None:
        self.bodies = bodies
        self.delay = delay
        self.calls: list[str] = []
        self.browser_headers = {"User-Agent": "test"}

    async def get(self, url: str, **kwargs) -> httpx.Response:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        body = self.bodies[url]
        request = httpx.Request("GET", url)
        if isinstance(body, bytes):
            return httpx.Response(200, content=body, request=request)
        return httpx.Response(200, text=body, request=request)

    async def close(self) -> None:
        pass


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def default_prices() -> dict:
    return {
        Source.JD_FINANCE: 1923.45,
        Source.SHUIBEI: 612.0,
        Source.SGE: 1110.0,
        Source.CHOW_TAI_FOOK: 618.0,
        Source.LAO_FENG_XIANG: 620.0,
        Source.CHOW_SANG_SANG: 616.0,
        Source.LUK_FOOK: 617.0,
        Source.CHOW_TAI_SENG: 598.0,
        Source.CAIBAI: 605.0,
    }


@pytest.fixture
def stub_client(default_prices) -> StubClient:
    return StubClient(default_prices)


@pytest.fixture
def stub_registry(stub_client) -> SourceRegistry:
    registry = SourceRegistry()
    for source in Source:
        registry.register(source, stub_client)
    return registry


@pytest.fixture
def make_fake_http():
    """Factory for FakeHttp instances."""
    return FakeHttp


@pytest.fixture
def make_stub():
    """Factory for StubClient instances."""
    return StubClient


@pytest.fixture
def docs() -> dict[str, str]:
    """Canned upstream documents keyed by URL."""
    return {
        JD_URL: json.dumps(JD_PAYLOAD),
        SHUIBEI_URL: SHUIBEI_HTML,
        SGE_URL: SGE_HTML,
        DIRECTORY_URL: DIRECTORY_JS,
        **{
            BRAND_PRICE_URL.format(brand_id=brand_id): json.dumps(brand_payload(price))
            for brand_id, price in BRAND_PRICES.items()
        },
    }
