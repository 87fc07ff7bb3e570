"""
Web server for the seasonal screener.
Simple HTTP server using http.server with JSON API endpoints.
"""
from __future__ import annotations

import json
import logging
import threading
import urllib.parse
from dataclasses import asdict
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from bulk_fetch import BenchmarkUnavailableError, BulkFetchClient
from log_setup import setup_logging
from patterns import all_weekly_patterns, featured_patterns, market_patterns
from preloader import BackgroundPreloader
from screener import ScreenProgress, SeasonalScreener
from settings import Settings, get_settings
from ttl_cache import CacheKeys, TTLCache
from universe import SECTOR_SYMBOLS, parse_symbols

logger = logging.getLogger(__name__)

HOST = "localhost"
PORT = 8000
MAX_SYMBOLS_PER_REQUEST = 200

ENDPOINTS = [
    "/api/opportunities",
    "/api/progress",
    "/api/patterns/featured",
    "/api/patterns/weekly",
    "/api/patterns/sector",
    "/api/symbols",
    "/api/preload",
    "/api/cache",
]


class ScreenerService:
    """Wires the cache, client, screener and preloader shared by every request."""

    def __init__(self, settings: Settings | None = None, client: BulkFetchClient | None = None) -> None:
        self.settings = settings or get_settings()
        if client is not None and client.cache is not None:
            self.cache = client.cache
        else:
            self.cache = TTLCache(self.settings.cache_ttl_seconds)
        self.client = client or BulkFetchClient(cache=self.cache, settings=self.settings)
        self.screener = SeasonalScreener(self.client, self.cache, self.settings)
        self.preloader = BackgroundPreloader(self.client, self.cache, self.screener, self.settings)
        self._progress: ScreenProgress | None = None
        self._lock = threading.Lock()

    def record_progress(self, progress: ScreenProgress) -> None:
        with self._lock:
            self._progress = progress

    def progress(self) -> dict:
        with self._lock:
            progress = self._progress
        if progress is None:
            return {"processed": 0, "total": 0, "found": 0, "current_symbol": None}
        return asdict(progress)

    def opportunities(self, symbols: list[str] | None = None, limit: int | None = None, refresh: bool = False) -> list[dict]:
        if symbols:
            found = self.screener.screen(symbols, progress=self.record_progress)
            if limit is not None:
                found = found[:limit]
        else:
            found = self.screener.cached_opportunities(
                limit=limit, refresh=refresh, progress=self.record_progress
            )
        return [o.to_dict() for o in found]

    def _cached(self, key: str, build) -> list:
        patterns = self.cache.get(key)
        if patterns is None:
            patterns = build()
            self.cache.set(key, patterns)
        return [p.to_dict() for p in patterns]

    def featured(self) -> list[dict]:
        return self._cached(
            CacheKeys.FEATURED_PATTERNS,
            lambda: featured_patterns(self.client, universe=self.screener.universe),
        )

    def weekly(self) -> list[dict]:
        return self._cached(
            CacheKeys.WEEKLY_PATTERNS,
            lambda: all_weekly_patterns(self.client, universe=self.screener.universe),
        )

    def sector(self, sector: str) -> list[dict]:
        return self._cached(
            CacheKeys.market_patterns(sector),
            lambda: market_patterns(self.client, sector, universe=self.screener.universe),
        )


class ScreenerHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the screener API."""

    service: ScreenerService

    def log_message(self, format, *args):
        """Route access logs through logging."""
        logger.debug("%s - %s", self.address_string(), format % args)

    def send_json(self, data, status: int = 200) -> None:
        """Send JSON response."""
        body = json.dumps(data).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", len(body))
        self.end_headers()
        self.wfile.write(body)

    def parse_params(self) -> dict:
        """Parse query parameters from URL."""
        parsed = urllib.parse.urlparse(self.path)
        params = urllib.parse.parse_qs(parsed.query)
        return {k: v[0] if v else "" for k, v in params.items()}

    def do_GET(self) -> None:
        """Handle GET requests."""
        path = urllib.parse.urlparse(self.path).path
        params = self.parse_params()
        service = self.service

        try:
            if path == "/":
                self.send_json({"endpoints": ENDPOINTS})

            elif path == "/api/opportunities":
                symbols = parse_symbols(params.get("symbols", ""), MAX_SYMBOLS_PER_REQUEST)
                limit = int(params["limit"]) if params.get("limit") else None
                if limit is not None and limit < 1:
                    raise ValueError("limit must be a positive integer")
                refresh = params.get("refresh", "0") == "1"
                result = service.opportunities(symbols, limit, refresh)
                self.send_json({"count": len(result), "opportunities": result})

            elif path == "/api/progress":
                self.send_json(service.progress())

            elif path == "/api/patterns/featured":
                self.send_json(service.featured())

            elif path == "/api/patterns/weekly":
                self.send_json(service.weekly())

            elif path == "/api/patterns/sector":
                sector = params.get("sector", "SP500")
                if sector not in SECTOR_SYMBOLS:
                    self.send_json({"error": f"Unknown sector: {sector}"}, 400)
                    return
                self.send_json(service.sector(sector))

            elif path == "/api/symbols":
                self.send_json(service.screener.universe.search(params.get("q", "")))

            elif path == "/api/preload":
                self.send_json(service.preloader.status())

            elif path == "/api/cache":
                self.send_json(service.cache.stats())

            else:
                self.send_json({"error": "Not found"}, 404)

        except ValueError as e:
            self.send_json({"error": str(e)}, 400)
        except BenchmarkUnavailableError as e:
            self.send_json({"error": str(e)}, 503)
        except Exception as e:
            logger.exception("Request failed: %s", self.path)
            self.send_json({"error": str(e)}, 500)


def make_server(service: ScreenerService, host: str = HOST, port: int = PORT) -> ThreadingHTTPServer:
    handler = type("BoundScreenerHandler", (ScreenerHandler,), {"service": service})
    return ThreadingHTTPServer((host, port), handler)


def run_server(host: str = HOST, port: int = PORT) -> None:
    """Start the HTTP server and kick off background loading."""
    settings = get_settings()
    setup_logging(getattr(logging, settings.log_level.upper(), logging.INFO))
    service = ScreenerService(settings)
    server = make_server(service, host, port)
    service.preloader.start()
    logger.info("Seasonal screener running at http://%s:%d", host, port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        service.preloader.shutdown()
        server.server_close()


if __name__ == "__main__":
    run_server()
