"""Tests for staged background loading."""

from __future__ import annotations

import datetime as dt
import time
from unittest.mock import MagicMock, Mock

import pytest

from conftest import FakeProvider
from preloader import BackgroundPreloader
from screener import SeasonalScreener
from ttl_cache import CacheKeys, TTLCache
from universe import SECTOR_SYMBOLS, Universe


@pytest.fixture
def cache() -> TTLCache:
    return TTLCache()


@pytest.fixture
def preloader(cache, make_client, settings, small_universe):
    client = make_client(FakeProvider(), cache=cache)
    screener = SeasonalScreener(client, cache, settings, small_universe)
    return BackgroundPreloader(
        client,
        cache,
        screener,
        settings.replace(phase_spacing=2.0),
        scheduler=MagicMock(),
        sleep=lambda seconds: None,
    )


class TestScheduling:
    def test_offsets_follow_priority(self, preloader):
        assert preloader.schedule_offsets() == {
            "essential_data": 0.0,
            "featured_patterns": 2.0,
            "weekly_patterns": 4.0,
            "sector_patterns": 6.0,
            "market_indices": 8.0,
            "seasonal_opportunities": 10.0,
        }

    def test_start_schedules_each_phase_once(self, preloader):
        now = dt.datetime(2024, 1, 1, 12, 0, 0)
        assert preloader.start(now=now) is True
        scheduler = preloader._scheduler
        assert scheduler.add_job.call_count == 6
        run_dates = [call.args[1].run_date.replace(tzinfo=None) for call in scheduler.add_job.call_args_list]
        assert run_dates[0] == now
        assert run_dates[-1] == now + dt.timedelta(seconds=10)
        scheduler.start.assert_called_once()
        assert all(p.state == "scheduled" for p in preloader.phases)

    def test_start_is_fire_once(self, preloader):
        assert preloader.start() is True
        assert preloader.start() is False
        assert preloader._scheduler.add_job.call_count == 6
        assert preloader.started

    def test_shutdown(self, preloader):
        preloader._scheduler.running = True
        preloader.shutdown()
        preloader._scheduler.shutdown.assert_called_once_with(wait=False)


class TestPhases:
    def test_failed_phase_does_not_stop_the_rest(self, preloader):
        preloader.phases[1].task = Mock(side_effect=RuntimeError("boom"))
        preloader.run_all()
        states = {p.name: p.state for p in preloader.phases}
        assert states["featured_patterns"] == "failed"
        assert preloader.phases[1].error == "boom"
        assert [s for n, s in states.items() if n != "featured_patterns"] == ["done"] * 5

    def test_status(self, preloader):
        assert preloader.status()["progress"] == 0
        preloader.run_phase(preloader.phases[0])
        status = preloader.status()
        assert status["phases"][0]["state"] == "done"
        assert status["progress"] == pytest.approx(100 / 6)

    def test_populates_cache(self, preloader, cache):
        preloader.run_all()
        assert cache.get(CacheKeys.FEATURED_PATTERNS) == []
        assert cache.get(CacheKeys.WEEKLY_PATTERNS) == []
        for sector in SECTOR_SYMBOLS:
            assert cache.has(CacheKeys.market_patterns(sector))
        # no benchmark available: every chunk is skipped, the feed is empty
        assert cache.get(CacheKeys.SEASONAL_OPPORTUNITIES) == []

    def test_skips_cached_data(self, preloader, cache):
        cache.set(CacheKeys.FEATURED_PATTERNS, ["cached"])
        cache.set(CacheKeys.SEASONAL_OPPORTUNITIES, ["cached"])
        preloader.screener.screen_universe = Mock()
        preloader.load_featured_patterns()
        preloader.load_seasonal_opportunities()
        assert cache.get(CacheKeys.FEATURED_PATTERNS) == ["cached"]
        preloader.screener.screen_universe.assert_not_called()

    def test_seasonal_chunks(self, preloader, settings):
        universe = Universe([(f"S{i:02d}", f"Stock {i}") for i in range(60)])
        preloader.screener.universe = universe
        preloader.settings = settings.replace(preload_universe_size=60)
        preloader.screener.screen_universe = Mock(return_value=[])
        preloader.load_seasonal_opportunities()
        calls = [c.kwargs for c in preloader.screener.screen_universe.call_args_list]
        assert calls == [
            {"offset": 0, "limit": 25},
            {"offset": 25, "limit": 25},
            {"offset": 50, "limit": 10},
        ]


class TestBackgroundScheduler:
    def test_phases_run_on_their_own_schedule(self, cache, make_client, settings, small_universe):
        client = make_client(FakeProvider(), cache=cache)
        preloader = BackgroundPreloader(
            client,
            cache,
            SeasonalScreener(client, cache, settings, small_universe),
            settings.replace(phase_spacing=0.05),
            sleep=lambda seconds: None,
        )
        preloader.phases[0].task = Mock(side_effect=RuntimeError("boom"))
        try:
            assert preloader.start()
            deadline = time.monotonic() + 10
            while time.monotonic() < deadline:
                if all(p.state in ("done", "failed") for p in preloader.phases):
                    break
                time.sleep(0.05)
        finally:
            preloader.shutdown(wait=True)

        assert [p.state for p in preloader.phases] == ["failed", "done", "done", "done", "done", "done"]
        assert all(p.finished_at is not None for p in preloader.phases)
        assert preloader.status()["progress"] == 100
        assert cache.get(CacheKeys.SEASONAL_OPPORTUNITIES) == []
