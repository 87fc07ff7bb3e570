"""Tests for the JSON API."""

from __future__ import annotations

import json
import threading
import urllib.error
import urllib.request
from unittest.mock import Mock

import numpy as np
import pandas as pd
import pytest

from conftest import FakeProvider, make_price_frame
from server import ScreenerService, make_server
from ttl_cache import CacheKeys


@pytest.fixture
def service(make_client, settings):
    dates = pd.bdate_range("2004-01-01", "2023-12-31")
    rng = np.random.default_rng(2)
    frame = make_price_frame(dates, rng.normal(0, 0.01, len(dates)))
    client = make_client(FakeProvider({"SPY": frame, "AAPL": frame}))
    return ScreenerService(settings, client)


@pytest.fixture
def base_url(service):
    server = make_server(service, "127.0.0.1", 0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


def get_json(url: str):
    try:
        with urllib.request.urlopen(url, timeout=10) as response:
            return response.status, json.loads(response.read())
    except urllib.error.HTTPError as e:
        return e.code, json.loads(e.read())


class TestService:
    def test_shares_client_cache(self, service):
        assert service.cache is service.client.cache
        assert service.screener.cache is service.cache
        assert service.preloader.cache is service.cache

    def test_progress_before_any_screen(self, service):
        assert service.progress()["total"] == 0

    def test_screen_symbols_records_progress(self, service):
        # identical to the benchmark: screened, nothing found
        assert service.opportunities(["AAPL"]) == []
        assert service.progress() == {"processed": 1, "total": 1, "found": 0, "current_symbol": "AAPL"}


class TestEndpoints:
    def test_index(self, base_url):
        status, data = get_json(base_url + "/")
        assert status == 200
        assert "/api/opportunities" in data["endpoints"]

    def test_opportunities(self, base_url):
        status, data = get_json(base_url + "/api/opportunities?symbols=aapl")
        assert status == 200
        assert data == {"count": 0, "opportunities": []}

    def test_too_many_symbols(self, base_url):
        symbols = ",".join(f"S{i}" for i in range(201))
        status, data = get_json(base_url + f"/api/opportunities?symbols={symbols}")
        assert status == 400
        assert "Maximum" in data["error"]

    def test_missing_benchmark(self, base_url, service):
        del service.client.provider.frames["SPY"]
        status, data = get_json(base_url + "/api/opportunities?symbols=AAPL")
        assert status == 503

    def test_cache_stats(self, base_url, service):
        service.cache.set(CacheKeys.market_data("AAPL"), {})
        status, data = get_json(base_url + "/api/cache")
        assert status == 200
        assert data["total"] == 1

    def test_unknown_sector(self, base_url):
        status, data = get_json(base_url + "/api/patterns/sector?sector=Crypto")
        assert status == 400

    def test_sector_patterns(self, base_url):
        status, data = get_json(base_url + "/api/patterns/sector?sector=SP500")
        assert status == 200
        assert [p["symbol"] for p in data] == ["SPY", "AAPL"]

    def test_preload_status(self, base_url):
        status, data = get_json(base_url + "/api/preload")
        assert status == 200
        assert data["started"] is False
        assert len(data["phases"]) == 6

    def test_symbol_search(self, base_url):
        status, data = get_json(base_url + "/api/symbols?q=apple")
        assert data == [{"symbol": "AAPL", "name": "Apple Inc."}]

    def test_not_found(self, base_url):
        status, _ = get_json(base_url + "/api/nope")
        assert status == 404


class TestOpportunityLimit:
    def test_limit_applies_to_explicit_symbols(self, service):
        opportunities = [Mock(to_dict=Mock(return_value={"symbol": s})) for s in ("A", "B", "C")]
        service.screener.screen = Mock(return_value=opportunities)
        assert service.opportunities(["A", "B", "C"], limit=2) == [{"symbol": "A"}, {"symbol": "B"}]

    def test_limit_must_be_positive(self, base_url):
        status, data = get_json(base_url + "/api/opportunities?symbols=AAPL&limit=0")
        assert status == 400
