from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path

import pandas as pd
from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, ScrollableContainer
from textual.widgets import Button, DataTable, Footer, Header, Input, Static

from bulk_fetch import BulkFetchClient, ScreenerError
from log_setup import setup_logging
from screener import ScreenProgress, SeasonalOpportunity, SeasonalScreener, Sentiment
from settings import Settings, get_settings
from ttl_cache import TTLCache
from universe import parse_symbols

logger = logging.getLogger(__name__)

EXPORT_DIR = Path("exports")
DEFAULT_UNIVERSE_LIMIT = 50

FEED_COLUMNS = ["Symbol", "Company", "Signal", "Period", "Return", "Win %", "Years", "Starts"]


def color_return(value: float, width: int = 8) -> Text:
    """Color a return value green (positive) or red (negative), right-aligned."""
    style = "green" if value >= 0 else "red"
    formatted = f"{value:+.2f}%"
    return Text(formatted.rjust(width), style=style)


def color_sentiment(sentiment: Sentiment) -> Text:
    style = "bold green" if sentiment is Sentiment.BULLISH else "bold red"
    return Text(sentiment.value, style=style)


def format_start(days: int) -> Text:
    """'in 5d' for upcoming windows, 'now' or '12d ago' for started ones."""
    if days > 0:
        return Text(f"in {days}d", style="yellow")
    if days == 0:
        return Text("now", style="bold yellow")
    return Text(f"{-days}d ago", style="dim")


def opportunity_row(opportunity: SeasonalOpportunity) -> tuple:
    return (
        Text(opportunity.symbol, style="bold"),
        opportunity.company_name,
        color_sentiment(opportunity.sentiment),
        opportunity.period,
        color_return(opportunity.average_return),
        Text(f"{opportunity.win_rate:.0f}%".rjust(5)),
        Text(f"{opportunity.years_of_data:.1f}".rjust(5)),
        format_start(opportunity.days_until_start),
    )


def opportunities_to_frame(opportunities: list[SeasonalOpportunity]) -> pd.DataFrame:
    """Feed as a flat table for CSV export."""
    frame = pd.DataFrame([o.to_dict() for o in opportunities])
    if not frame.empty:
        frame["average_return"] = frame["average_return"].round(2)
        frame["win_rate"] = frame["win_rate"].round(1)
    return frame


def progress_message(progress: ScreenProgress) -> str:
    pct = progress.processed / progress.total * 100 if progress.total else 100.0
    return (
        f"Screening {progress.current_symbol} ({progress.processed}/{progress.total}, "
        f"{pct:.0f}%) - {progress.found} found"
    )


class ScreenerApp(App):
    CSS = """
    Screen {
        layout: vertical;
    }

    #controls {
        height: auto;
        margin: 1 2;
        padding: 1;
    }

    #controls Horizontal {
        height: auto;
        width: 100%;
    }

    #table_container {
        height: 1fr;
        margin: 0 2 1 2;
    }

    #table {
        height: 1fr;
    }

    #status {
        height: 3;
        margin: 0 2 1 2;
    }

    Input {
        width: 40;
    }

    Button {
        min-width: 6;
        margin-left: 1;
    }
    """

    BINDINGS = [
        ("u", "screen_universe", "Universe"),
        ("r", "reload", "Reload"),
        ("e", "export", "Export"),
    ]

    def __init__(self, settings: Settings | None = None, screener: SeasonalScreener | None = None) -> None:
        super().__init__()
        self.settings = settings or get_settings()
        if screener is None:
            cache = TTLCache(self.settings.cache_ttl_seconds)
            client = BulkFetchClient(cache=cache, settings=self.settings)
            screener = SeasonalScreener(client, cache, self.settings)
        self.screener = screener
        self.symbols: list[str] = []
        self.opportunities: list[SeasonalOpportunity] = []
        self.busy = False

    def compose(self) -> ComposeResult:
        yield Header()
        with Container(id="controls"):
            with Horizontal():
                yield Input(
                    placeholder="AAPL,MSFT,NVDA (empty: top of universe)",
                    id="symbols_input",
                )
                yield Button("Screen", id="screen_button")
                yield Button("Export", id="export_button")
        with ScrollableContainer(id="table_container"):
            yield DataTable(id="table")
        yield Static("Ready", id="status")
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#table", DataTable)
        table.add_columns(*FEED_COLUMNS)
        self.start_screen()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "screen_button":
            self.handle_screen()
        elif event.button.id == "export_button":
            self.export_report()

    def handle_screen(self) -> None:
        symbols_text = self.query_one("#symbols_input", Input).value
        try:
            self.symbols = parse_symbols(symbols_text, max_symbols=200)
        except ValueError as exc:
            self.set_status(str(exc))
            return
        self.start_screen()

    def set_status(self, message: str) -> None:
        self.query_one("#status", Static).update(message)

    def action_screen_universe(self) -> None:
        self.symbols = []
        self.start_screen()

    def action_reload(self) -> None:
        self.start_screen()

    def action_export(self) -> None:
        self.export_report()

    def start_screen(self) -> None:
        if self.busy:
            self.set_status("Screening already in progress...")
            return
        self.busy = True
        self.set_status("Fetching benchmark and price history...")
        self.run_worker(self.run_screen, thread=True, exclusive=True)

    def run_screen(self) -> None:
        """Worker thread body; UI updates go through call_from_thread."""
        def on_progress(progress: ScreenProgress) -> None:
            self.call_from_thread(self.set_status, progress_message(progress))

        try:
            if self.symbols:
                found = self.screener.screen(self.symbols, progress=on_progress)
            else:
                found = self.screener.screen_universe(limit=DEFAULT_UNIVERSE_LIMIT, progress=on_progress)
        except ScreenerError as exc:
            logger.error("Screening failed: %s", exc)
            self.call_from_thread(self.finish_screen, None, f"Error: {exc}")
            return
        except Exception as exc:  # pragma: no cover - UI feedback
            logger.exception("Screening failed")
            self.call_from_thread(self.finish_screen, None, f"Error: {exc}")
            return
        self.call_from_thread(self.finish_screen, found, None)

    def finish_screen(self, found: list[SeasonalOpportunity] | None, error: str | None) -> None:
        self.busy = False
        if error is not None:
            self.set_status(error)
            return
        self.opportunities = found or []
        self.render_table()
        bullish = sum(1 for o in self.opportunities if o.sentiment is Sentiment.BULLISH)
        self.set_status(
            f"{len(self.opportunities)} active seasonal opportunities "
            f"({bullish} bullish, {len(self.opportunities) - bullish} bearish) "
            f"vs {self.settings.benchmark_symbol}, {dt.date.today():%b %d}."
        )

    def render_table(self) -> None:
        table = self.query_one("#table", DataTable)
        table.clear()
        for opportunity in self.opportunities:
            table.add_row(*opportunity_row(opportunity), key=opportunity.symbol)

    def export_report(self) -> None:
        if not self.opportunities:
            self.set_status("Nothing to export.")
            return
        EXPORT_DIR.mkdir(parents=True, exist_ok=True)
        path = EXPORT_DIR / f"seasonal-{dt.date.today():%Y%m%d}.csv"
        opportunities_to_frame(self.opportunities).to_csv(path, index=False)
        self.set_status(f"Exported {path.name}")


if __name__ == "__main__":
    settings = get_settings()
    setup_logging(getattr(logging, settings.log_level.upper(), logging.INFO), log_file="screener.log")
    ScreenerApp(settings).run()
