"""Screening universe: candidate symbols, company names and fixed symbol groups."""
from __future__ import annotations

import csv
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Largest US companies by market cap, roughly in order
TOP_STOCKS: list[tuple[str, str]] = [
    ("AAPL", "Apple Inc."),
    ("MSFT", "Microsoft Corporation"),
    ("NVDA", "NVIDIA Corporation"),
    ("AMZN", "Amazon.com Inc."),
    ("GOOGL", "Alphabet Inc."),
    ("META", "Meta Platforms Inc."),
    ("BRK-B", "Berkshire Hathaway Inc."),
    ("AVGO", "Broadcom Inc."),
    ("TSLA", "Tesla Inc."),
    ("LLY", "Eli Lilly and Company"),
    ("JPM", "JPMorgan Chase & Co."),
    ("V", "Visa Inc."),
    ("UNH", "UnitedHealth Group Inc."),
    ("XOM", "Exxon Mobil Corporation"),
    ("MA", "Mastercard Inc."),
    ("ORCL", "Oracle Corporation"),
    ("COST", "Costco Wholesale Corporation"),
    ("HD", "The Home Depot Inc."),
    ("PG", "Procter & Gamble Company"),
    ("JNJ", "Johnson & Johnson"),
    ("WMT", "Walmart Inc."),
    ("NFLX", "Netflix Inc."),
    ("BAC", "Bank of America Corporation"),
    ("ABBV", "AbbVie Inc."),
    ("CRM", "Salesforce Inc."),
    ("CVX", "Chevron Corporation"),
    ("KO", "The Coca-Cola Company"),
    ("MRK", "Merck & Co. Inc."),
    ("AMD", "Advanced Micro Devices Inc."),
    ("PEP", "PepsiCo Inc."),
    ("ADBE", "Adobe Inc."),
    ("TMO", "Thermo Fisher Scientific Inc."),
    ("LIN", "Linde plc"),
    ("CSCO", "Cisco Systems Inc."),
    ("ACN", "Accenture plc"),
    ("MCD", "McDonald's Corporation"),
    ("WFC", "Wells Fargo & Company"),
    ("ABT", "Abbott Laboratories"),
    ("IBM", "International Business Machines Corporation"),
    ("GE", "General Electric Company"),
    ("DIS", "The Walt Disney Company"),
    ("QCOM", "QUALCOMM Inc."),
    ("INTU", "Intuit Inc."),
    ("TXN", "Texas Instruments Inc."),
    ("CAT", "Caterpillar Inc."),
    ("VZ", "Verizon Communications Inc."),
    ("DHR", "Danaher Corporation"),
    ("AMGN", "Amgen Inc."),
    ("PFE", "Pfizer Inc."),
    ("NOW", "ServiceNow Inc."),
    ("GS", "The Goldman Sachs Group Inc."),
    ("MS", "Morgan Stanley"),
    ("ISRG", "Intuitive Surgical Inc."),
    ("SPGI", "S&P Global Inc."),
    ("RTX", "RTX Corporation"),
    ("NEE", "NextEra Energy Inc."),
    ("UNP", "Union Pacific Corporation"),
    ("CMCSA", "Comcast Corporation"),
    ("T", "AT&T Inc."),
    ("LOW", "Lowe's Companies Inc."),
    ("HON", "Honeywell International Inc."),
    ("AMAT", "Applied Materials Inc."),
    ("BKNG", "Booking Holdings Inc."),
    ("UBER", "Uber Technologies Inc."),
    ("PGR", "The Progressive Corporation"),
    ("AXP", "American Express Company"),
    ("BLK", "BlackRock Inc."),
    ("SYK", "Stryker Corporation"),
    ("ELV", "Elevance Health Inc."),
    ("COP", "ConocoPhillips"),
    ("TJX", "The TJX Companies Inc."),
    ("LMT", "Lockheed Martin Corporation"),
    ("BSX", "Boston Scientific Corporation"),
    ("VRTX", "Vertex Pharmaceuticals Inc."),
    ("C", "Citigroup Inc."),
    ("MDT", "Medtronic plc"),
    ("ADP", "Automatic Data Processing Inc."),
    ("SCHW", "The Charles Schwab Corporation"),
    ("MU", "Micron Technology Inc."),
    ("REGN", "Regeneron Pharmaceuticals Inc."),
    ("PLD", "Prologis Inc."),
    ("CB", "Chubb Limited"),
    ("LRCX", "Lam Research Corporation"),
    ("ADI", "Analog Devices Inc."),
    ("MMC", "Marsh & McLennan Companies Inc."),
    ("BMY", "Bristol-Myers Squibb Company"),
    ("SBUX", "Starbucks Corporation"),
    ("DE", "Deere & Company"),
    ("GILD", "Gilead Sciences Inc."),
    ("KLAC", "KLA Corporation"),
    ("NKE", "NIKE Inc."),
    ("SO", "The Southern Company"),
    ("MO", "Altria Group Inc."),
    ("CI", "The Cigna Group"),
    ("DUK", "Duke Energy Corporation"),
    ("ICE", "Intercontinental Exchange Inc."),
    ("ZTS", "Zoetis Inc."),
    ("SHW", "The Sherwin-Williams Company"),
    ("CL", "Colgate-Palmolive Company"),
    ("MMM", "3M Company"),
]

ESSENTIAL_SYMBOLS = ["SPY", "QQQ", "DIA"]
MARKET_INDICES = ["XLF", "XLK", "XLE", "XLV", "XLI"]
FEATURED_SYMBOLS = ["AAPL", "TSLA", "NVDA", "SPY", "QQQ"]
WEEKLY_SYMBOLS = ["SPY", "QQQ", "IWM", "AAPL", "TSLA", "NVDA"]

SECTOR_SYMBOLS: dict[str, list[str]] = {
    "SP500": ["SPY", "AAPL", "MSFT", "GOOGL", "AMZN"],
    "Technology": ["AAPL", "MSFT", "GOOGL", "META", "NVDA"],
    "Healthcare": ["JNJ", "UNH", "ABBV", "TMO", "PFE"],
    "Financial": ["JPM", "BAC", "WFC", "GS", "MS"],
}


def sanitize_symbol(symbol: str) -> str:
    """Yahoo-style ticker: upper case, class shares with a dash."""
    return symbol.strip().upper().replace("/", "-").replace(".", "-").replace(" ", "")


def parse_symbols(symbols_text: str, max_symbols: int | None = None) -> list[str]:
    """Parse comma-separated symbols, dropping duplicates. Raises ValueError past max_symbols."""
    symbols: list[str] = []
    for item in symbols_text.split(","):
        if not item.strip():
            continue
        symbol = sanitize_symbol(item)
        if symbol not in symbols:
            symbols.append(symbol)
    if max_symbols is not None and len(symbols) > max_symbols:
        raise ValueError(f"Maximum {max_symbols} symbols allowed, got {len(symbols)}")
    return symbols


def load_stock_list(path: str | Path | None = None) -> list[tuple[str, str]]:
    """
    Load (symbol, name) pairs from a ``symbol,name`` CSV with a header row.
    Falls back to the built-in list when no file is given or it is missing.
    """
    if path is None:
        return list(TOP_STOCKS)
    path = Path(path)
    if not path.exists():
        logger.warning("Universe file %s not found, using built-in list", path)
        return list(TOP_STOCKS)

    stocks = []
    with open(path, "r", encoding="utf-8", newline="") as f:
        reader = csv.reader(f)
        next(reader, None)  # header
        for row in reader:
            if len(row) >= 2 and row[0].strip():
                stocks.append((sanitize_symbol(row[0]), row[1].strip()))
    return stocks


class Universe:
    """Ordered candidate list with a symbol -> company name lookup."""

    def __init__(self, stocks: list[tuple[str, str]] | None = None) -> None:
        self.stocks = stocks if stocks is not None else list(TOP_STOCKS)
        self._names = {symbol: name for symbol, name in self.stocks}

    @classmethod
    def from_file(cls, path: str | Path | None) -> "Universe":
        return cls(load_stock_list(path))

    @property
    def symbols(self) -> list[str]:
        return [symbol for symbol, _ in self.stocks]

    def company_name(self, symbol: str) -> str:
        return self._names.get(symbol, symbol)

    def slice(self, offset: int = 0, limit: int | None = None) -> list[str]:
        symbols = self.symbols[offset:]
        return symbols if limit is None else symbols[:limit]

    def search(self, query: str, max_results: int = 10) -> list[dict[str, str]]:
        """Case-insensitive contains match on symbol or name."""
        query_lower = query.lower().strip()
        if not query_lower:
            return []
        matches = []
        for symbol, name in self.stocks:
            if query_lower in symbol.lower() or query_lower in name.lower():
                matches.append({"symbol": symbol, "name": name})
                if len(matches) >= max_results:
                    break
        return matches

    def __len__(self) -> int:
        return len(self.stocks)
