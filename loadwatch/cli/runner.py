# loadwatch/cli/runner.py

"""Headless runners behind the ``scan``, ``watch`` and ``browse`` commands."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from loadwatch.browser.http_page import HttpPageDriver
from loadwatch.config.settings import Settings
from loadwatch.dom.source import SoupSource, load_conventions
from loadwatch.extraction.extractor import StructuralExtractor
from loadwatch.filters.criteria_filter import CriteriaFilter
from loadwatch.filters.snapshot_differ import SnapshotDiffer
from loadwatch.models.criteria import Criteria
from loadwatch.models.record import Record
from loadwatch.services.engine import MODE_ALERT, MonitorEngine
from loadwatch.services.notifier import ConsoleNotifier
from loadwatch.storage.state_store import JsonFileStore

logger = logging.getLogger("loadwatch.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def criteria_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Collect the criteria flags that were given, in wire format."""
    pairs = {
        "distanceMin": args.distance_min,
        "distanceMax": args.distance_max,
        "priceMin": args.price_min,
        "stopsMax": args.stops_max,
        "deadheadMax": args.deadhead_max,
        "latestDeparture": args.latest_departure,
        "duration": args.duration,
        "priceChangeThresholdPct": args.threshold,
    }
    data = {k: v for k, v in pairs.items() if v is not None}
    if args.show_similar:
        data["hideSimilar"] = False
    if args.exclude or args.only:
        data["textFilter"] = {
            "field": args.text_field,
            "mode": "whitelist" if args.only else "exclude",
            "text": args.only or args.exclude,
        }
    return data


def _print_table(records: list[Record], title: str) -> None:
    """Render matched records as a Rich table on stdout."""
    table = Table(title=title, show_lines=True, title_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Id", style="dim")
    table.add_column("Origin")
    table.add_column("Destination")
    table.add_column("Miles", justify="right")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Stops", justify="center")
    table.add_column("Pickup")
    table.add_column("", justify="center")

    for idx, r in enumerate(records, 1):
        flag = ""
        if r.is_new:
            flag = "[bold cyan]NEW[/bold cyan]"
        elif r.price_changed:
            flag = f"[yellow]was {r.previous_price:,.2f}[/yellow]"
        table.add_row(
            str(idx),
            r.id,
            r.origin or "—",
            r.destination or "—",
            f"{r.distance:,.0f}",
            f"${r.price:,.2f}" if r.price > 0 else "N/A",
            str(r.stop_count),
            r.scheduled_time or "—",
            flag,
        )
    Console().print(table)


def _emit(records: list[Record], output_format: str, title: str) -> None:
    if output_format == "table":
        _print_table(records, title)
        return
    json.dump(
        [r.to_dict() for r in records],
        sys.stdout,
        ensure_ascii=False,
        indent=2,
    )
    sys.stdout.write("\n")


async def _load_source(target: str) -> SoupSource | None:
    """Parse *target* as a local HTML file or fetch it as a URL."""
    conventions = load_conventions()
    path = Path(target)
    if path.is_file():
        return SoupSource.from_html(
            path.read_text(encoding="utf-8"), conventions
        )
    if not target.startswith(("http://", "https://")):
        _err.print(f"[red]No such file: {target}[/red]")
        return None
    driver = HttpPageDriver(target, conventions)
    if not await driver.refresh():
        _err.print(f"[red]Could not fetch {target}[/red]")
        return None
    return await driver.snapshot()


async def run_scan(
    target: str,
    overrides: dict[str, Any],
    output_format: str,
) -> int:
    """Run one extraction and filter pass.

    Exit code 0 when at least one entry matched, 1 when the source is
    missing, holds no entries, or nothing passed the criteria.
    """
    source = await _load_source(target)
    if source is None:
        return 1

    extractor = StructuralExtractor()
    records = extractor.extract(source)
    SnapshotDiffer.diff(records, [])
    criteria = Criteria.from_dict(overrides)
    matched, rejected = CriteriaFilter.filter_records(records, criteria)

    strategy = (
        extractor.last_strategy.value if extractor.last_strategy
        else "none"
    )
    _err.print(
        f"[green]✓ {len(matched)} matches of {len(records)} records"
        f"[/green] [dim](strategy={strategy}, rejected={rejected})[/dim]"
    )
    if not records:
        _err.print("[yellow]No entries found on the page.[/yellow]")
        return 1
    _emit(matched, output_format, "Matching Entries")
    if not matched:
        _err.print("[yellow]No entries match the criteria.[/yellow]")
        return 1
    return 0


def _print_status(engine: MonitorEngine) -> None:
    status = engine.status()
    counters = status["counters"]
    _err.print(
        f"[dim]{status['lastCycleAt'] or '—'}  "
        f"mode={status['mode']}  phase={status['phase']}  "
        f"records={counters['records']}  matches={counters['matches']}  "
        f"queue={status['queueLength']}  "
        f"ok={counters['succeeded']} failed={counters['failed']}[/dim]"
    )


async def run_watch(
    url: str,
    overrides: dict[str, Any],
    ticks: int | None = None,
    interval: float | None = None,
) -> int:
    """Poll *url* over HTTP in alert mode until interrupted."""
    interval = Settings.REFRESH_INTERVAL if interval is None else interval
    driver = HttpPageDriver(url)
    engine = MonitorEngine(
        driver, JsonFileStore(), notifier=ConsoleNotifier(console=_err)
    )
    if not await driver.refresh():
        _err.print(f"[red]Could not fetch {url}[/red]")
        return 1

    reply = await engine.handle_message(
        "start", {"criteria": overrides, "mode": MODE_ALERT}
    )
    if not reply.get("accepted"):
        return 1
    _err.print(
        f"[bold]Watching:[/bold] {url}  "
        f"[dim]every {interval:.0f}s, Ctrl+C to stop[/dim]"
    )

    done = 0
    try:
        while ticks is None or done < ticks:
            await asyncio.sleep(interval)
            await driver.refresh()
            # Let the debounced cycle fire before reporting
            await asyncio.sleep(engine.monitor.debounce + 0.05)
            _print_status(engine)
            done += 1
    finally:
        await engine.handle_message("stop")
    return 0


async def run_browse(
    url: str,
    overrides: dict[str, Any],
    mode: str | None,
    seconds: float | None = None,
    headless: bool | None = None,
) -> int:
    """Monitor a live browser page, booking in autobook mode."""
    from loadwatch.browser.playwright_page import (
        PlaywrightPageDriver,
        open_page,
    )

    async with open_page(url, headless=headless) as page:
        driver = PlaywrightPageDriver(page)
        await driver.install()
        engine = MonitorEngine(
            driver, JsonFileStore(), notifier=ConsoleNotifier(console=_err)
        )
        payload: dict[str, Any] = {"criteria": overrides}
        if mode is not None:
            payload["mode"] = mode
        reply = await engine.handle_message("start", payload)
        if not reply.get("accepted"):
            return 1
        _err.print(
            f"[bold]Monitoring:[/bold] {url}  "
            f"[dim]mode={engine.state.mode}, Ctrl+C to stop[/dim]"
        )

        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            while seconds is None or loop.time() - started < seconds:
                await asyncio.sleep(
                    Settings.REFRESH_INTERVAL if seconds is None
                    else min(Settings.REFRESH_INTERVAL, seconds)
                )
                _print_status(engine)
        finally:
            await engine.handle_message("stop")
            await engine.executor.wait_idle()
    return 0
