"""Tests for goldwatch.engine.engine (PriceEngine)."""

from __future__ import annotations

import asyncio

import pytest

from goldwatch.core.config import GoldwatchConfig, SchedulerConfig
from goldwatch.core.exceptions import FetchError, NetworkError
from goldwatch.core.models import Source
from goldwatch.engine.engine import PriceEngine


# --- Fixtures ---


@pytest.fixture
def fake_http(make_fake_http, docs):
    return make_fake_http(docs)


@pytest.fixture
async def engine(config, fake_http, stub_registry, clock):
    config = config.model_copy(update={"scheduler": SchedulerConfig(fast_interval=60)})
    async with PriceEngine(config, http=fake_http, registry=stub_registry, clock=clock) as e:
        yield e


# --- Construction ---


class TestConstruction:
    def test_default_registry_covers_every_source(self, config):
        engine = PriceEngine(config)
        assert engine.registry.sources == list(Source)

    def test_selected_source_from_config(self, config):
        engine = PriceEngine(config.model_copy(update={"selected_source": "sge"}))
        assert engine.store.selected_source is Source.SGE

    def test_reject_out_of_order_passed_to_store(self, config):
        cfg = config.model_copy(
            update={"scheduler": SchedulerConfig(reject_out_of_order=True)}
        )
        engine = PriceEngine(cfg)
        assert engine.store._reject_out_of_order

    def test_defaults_without_config(self):
        engine = PriceEngine()
        assert isinstance(engine.config, GoldwatchConfig)
        assert not engine.running


# --- Lifecycle ---


class TestLifecycle:
    async def test_start_and_stop(self, engine):
        await engine.start()
        assert engine.running

        await engine.stop()
        assert not engine.running

    async def test_start_fetches_directory_and_selected(self, engine, fake_http):
        await engine.start()
        await engine.close()

        assert engine.config.sources.directory_url in fake_http.calls
        snap = engine.snapshot()
        assert snap.selected_source is Source.JD_FINANCE
        assert snap.selected_price == 1923.45
        assert len(engine.resolver.directory) == 6

    async def test_close_drains_in_flight(self, engine, stub_client):
        stub_client.blocker = asyncio.Event()
        await engine.start()
        await asyncio.sleep(0)

        closing = asyncio.create_task(engine.close())
        await asyncio.sleep(0)
        assert not closing.done()

        stub_client.blocker.set()
        await closing
        assert engine.snapshot()[Source.CAIBAI].available


# --- Commands ---


class TestCommands:
    async def test_select_source_accepts_string(self, engine):
        engine.store.initialize()

        task = engine.select_source("sge")
        assert engine.snapshot().selected_source is Source.SGE
        await task

        assert engine.snapshot().selected_price == 1110.0

    async def test_select_unknown_source_raises(self, engine):
        with pytest.raises(ValueError):
            engine.select_source("gold_bar_co")

    async def test_refresh_selected(self, engine, stub_client):
        engine.store.initialize()
        await engine.refresh_selected()
        assert stub_client.calls == [Source.JD_FINANCE]

    async def test_force_refresh_all(self, engine, stub_client):
        engine.store.initialize()
        tasks = engine.force_refresh_all()
        await asyncio.gather(*tasks)

        assert len(tasks) == len(Source)
        assert all(s.available for s in engine.snapshot().sources.values())

    async def test_subscribe(self, engine):
        seen = []
        unsubscribe = engine.subscribe(seen.append)

        engine.store.initialize()
        await engine.refresh_selected()
        unsubscribe()

        assert seen[-1].selected_price == 1923.45


# --- Directory ---


class TestRefreshDirectory:
    async def test_callback_on_success(self, engine):
        received = []

        brands = await engine.refresh_directory(lambda b, err: received.append((b, err)))

        assert len(brands) == 6
        assert received == [(brands, None)]

    async def test_callback_on_failure(self, engine, fake_http):
        fake_http.get = _failing_get
        received = []

        result = await engine.refresh_directory(lambda b, err: received.append((b, err)))

        assert result is None
        assert received[0][0] is None
        assert isinstance(received[0][1], FetchError)

    async def test_without_callback(self, engine):
        assert len(await engine.refresh_directory()) == 6

    async def test_unexpected_error_reaches_callback(self, engine, fake_http, caplog):
        async def broken_get(url, **kwargs):
            raise RuntimeError("socket exploded")

        fake_http.get = broken_get
        received = []

        result = await engine.refresh_directory(lambda b, err: received.append((b, err)))

        assert result is None
        assert received[0][0] is None
        assert isinstance(received[0][1], FetchError)
        assert "socket exploded" in str(received[0][1])
        assert "Unexpected failure refreshing" in caplog.text

    async def test_close_waits_for_refresh(self, config, fake_http, stub_registry, clock):
        release = asyncio.Event()
        real_get = fake_http.get

        async def slow_get(url, **kwargs):
            await release.wait()
            return await real_get(url, **kwargs)

        fake_http.get = slow_get
        engine = PriceEngine(config, http=fake_http, registry=stub_registry, clock=clock)
        received = []
        task = engine.refresh_directory(lambda b, err: received.append((b, err)))
        await asyncio.sleep(0)

        closing = asyncio.create_task(engine.close())
        await asyncio.sleep(0)
        assert not closing.done()

        release.set()
        await closing
        assert task.done()
        assert len(received[0][0]) == 6


async def _failing_get(url, **kwargs):
    raise NetworkError(f"HTTP 503 from {url}", context={"url": url, "status_code": 503})


# --- sweep ---


class TestSweep:
    async def test_sweep_all(self, engine):
        snap = await engine.sweep()

        assert all(state.available for state in snap.sources.values())
        assert snap.in_flight == 0

    async def test_sweep_subset(self, engine, stub_client):
        snap = await engine.sweep([Source.SGE, Source.SHUIBEI])

        assert sorted(stub_client.calls) == [Source.SGE, Source.SHUIBEI]
        assert snap[Source.SGE].available
        assert not snap[Source.JD_FINANCE].available

    async def test_sweep_initializes_store(self, engine):
        assert not engine.store.initialized
        snap = await engine.sweep([Source.JD_FINANCE])
        assert set(snap.sources) == set(Source)
