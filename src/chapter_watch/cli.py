"""Command-line interface for chapter-watch."""

import asyncio
import re
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from chapter_watch import __version__
from chapter_watch.config import AppConfig
from chapter_watch.extractor import ChapterExtractor, detect_chapter_from_metadata
from chapter_watch.fetcher import FetchOrchestrator, HostStrategyStore, HttpFetcher
from chapter_watch.models import TrackedSeries
from chapter_watch.prober import Prober, build_chapter_url
from chapter_watch.render import PlaywrightRenderer
from chapter_watch.scanner import UpdateScanner, acknowledge
from chapter_watch.storage import JsonStateStore
from chapter_watch.utils import HostThrottle, configure_logging, normalize_url

app = typer.Typer(
    name="chapter-watch",
    help="Watch series pages for new chapters, even behind anti-bot challenges.",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"chapter-watch version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="TOML configuration file",
    ),
    state: Optional[Path] = typer.Option(
        None,
        "--state",
        "-s",
        help="State file (tracked series and host strategies)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
    render: bool = typer.Option(
        True,
        "--render/--no-render",
        help="Allow the browser render tier",
    ),
    solve: bool = typer.Option(
        True,
        "--solve/--no-solve",
        help="Allow opening a browser window for manual challenge solving",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
):
    """Track chapter updates across sites."""
    try:
        config = AppConfig.from_toml(config_path) if config_path else AppConfig()
    except (OSError, ValueError) as e:
        console.print(f"[red]Could not load config {config_path}: {e}[/red]")
        raise typer.Exit(1)

    if state is not None:
        config.state_path = state
    config.verbose = config.verbose or verbose
    config.render.enabled = config.render.enabled and render
    config.render.interactive_solve = config.render.interactive_solve and solve

    configure_logging(config.verbose, config.log_file)
    ctx.obj = config


@dataclass
class Pipeline:
    store: JsonStateStore
    host_store: HostStrategyStore
    orchestrator: FetchOrchestrator
    prober: Prober
    scanner: UpdateScanner


@asynccontextmanager
async def open_pipeline(config: AppConfig) -> AsyncIterator[Pipeline]:
    """Wire up the fetch pipeline against the configured state file."""
    store = JsonStateStore(config.state_path)
    host_store = HostStrategyStore(store)
    host_store.load_from_persisted_list(await store.load_render_required_hosts())
    throttle = HostThrottle(config.throttle)

    async with AsyncExitStack() as stack:
        http = await stack.enter_async_context(HttpFetcher(config.fetcher))
        renderer = None
        if config.render.enabled:
            renderer = await stack.enter_async_context(PlaywrightRenderer(config.render))
        orchestrator = FetchOrchestrator(
            http,
            throttle,
            host_store,
            renderer=renderer,
            fetcher_config=config.fetcher,
            render_config=config.render,
        )
        prober = Prober(http, throttle, config.prober, config.fetcher)
        scanner = UpdateScanner(orchestrator, ChapterExtractor(), prober, config.scanner)
        yield Pipeline(store, host_store, orchestrator, prober, scanner)


def _find(series: list[TrackedSeries], url: str) -> TrackedSeries | None:
    try:
        target = normalize_url(url)
    except ValueError:
        return None
    return next((s for s in series if s.url == target), None)


def _run(coro):
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        raise typer.Exit(130)


@app.command()
def scan(ctx: typer.Context):
    """Check every tracked series for a new chapter."""
    config: AppConfig = ctx.obj

    async def _scan():
        async with open_pipeline(config) as pipeline:
            series = await pipeline.store.load_series()
            if not series:
                console.print("[yellow]No series tracked yet. Use 'add' first.[/yellow]")
                return None, series
            report = await pipeline.scanner.scan(series)
            await pipeline.store.save_series(series)
            return report, series

    report, series = _run(_scan())
    if report is None:
        return

    table = Table(title="Scan Results")
    table.add_column("Series", style="cyan")
    table.add_column("Chapter", justify="right")
    table.add_column("Latest", justify="right")
    table.add_column("New", justify="center")
    table.add_column("Via")
    table.add_column("Error", style="red")
    for entry, result in zip(series, report.results):
        via = result.tier or ("probe" if result.probed and result.advanced else "")
        table.add_row(
            entry.title,
            str(entry.chapter),
            "" if result.latest is None else f"{result.latest:g}",
            "[green]yes[/green]" if entry.has_new_chapter else "",
            via or ("skipped" if result.skipped else ""),
            result.error or "",
        )
    console.print(table)
    console.print(
        f"[green]{len(report.advanced)} with new chapters[/green], "
        f"{len(report.failed)} failed, {report.elapsed:.1f}s"
    )


@app.command()
def add(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Series page URL"),
    title: str = typer.Option("", "--title", "-t", help="Display title (defaults to the host)"),
    chapter: int = typer.Option(0, "--chapter", help="Last chapter read"),
    template: Optional[str] = typer.Option(
        None,
        "--template",
        help="Chapter URL template with one $chapter token, enables cheap probing",
    ),
    selector: Optional[str] = typer.Option(
        None,
        "--selector",
        help="CSS selector (or XPath starting with '/') for chapter links",
    ),
    regex: Optional[str] = typer.Option(
        None,
        "--regex",
        help="Regex whose last capture group is the chapter number",
    ),
):
    """Start tracking a series."""
    config: AppConfig = ctx.obj
    try:
        entry = TrackedSeries(
            url=url,
            title=title,
            chapter=chapter,
            chapter_url_template=template,
            latest_chapter_selector=selector,
            chapter_number_regex=regex,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid series: {e.errors()[0]['msg']}[/red]")
        raise typer.Exit(1)

    async def _add() -> bool:
        store = JsonStateStore(config.state_path)
        series = await store.load_series()
        if _find(series, entry.url):
            return False
        series.append(entry)
        await store.save_series(series)
        return True

    if not _run(_add()):
        console.print(f"[yellow]Already tracking {entry.url}[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]Tracking[/green] {entry.title} at chapter {entry.chapter}")


@app.command()
def remove(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Series page URL"),
):
    """Stop tracking a series."""
    config: AppConfig = ctx.obj

    async def _remove() -> bool:
        store = JsonStateStore(config.state_path)
        series = await store.load_series()
        entry = _find(series, url)
        if entry is None:
            return False
        series.remove(entry)
        await store.save_series(series)
        return True

    if not _run(_remove()):
        console.print(f"[red]Not tracked: {url}[/red]")
        raise typer.Exit(1)
    console.print(f"Removed {url}")


@app.command("list")
def list_series(ctx: typer.Context):
    """List tracked series."""
    config: AppConfig = ctx.obj
    series = _run(JsonStateStore(config.state_path).load_series())

    table = Table(title="Tracked Series")
    table.add_column("Title", style="cyan")
    table.add_column("URL")
    table.add_column("Chapter", justify="right")
    table.add_column("New", justify="center")
    table.add_column("Probe", justify="center")
    for entry in series:
        table.add_row(
            entry.title,
            entry.url,
            str(entry.chapter),
            "[green]yes[/green]" if entry.has_new_chapter else "",
            "yes" if entry.chapter_url_template else "",
        )
    console.print(table)


@app.command()
def ack(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Series page URL"),
    chapter: Optional[int] = typer.Option(None, "--chapter", help="Record this chapter as read"),
):
    """Mark a series' new chapter as seen."""
    config: AppConfig = ctx.obj

    async def _ack() -> TrackedSeries | None:
        store = JsonStateStore(config.state_path)
        series = await store.load_series()
        entry = _find(series, url)
        if entry is None:
            return None
        acknowledge(entry, chapter)
        await store.save_series(series)
        return entry

    entry = _run(_ack())
    if entry is None:
        console.print(f"[red]Not tracked: {url}[/red]")
        raise typer.Exit(1)
    console.print(f"{entry.title}: chapter {entry.chapter}, flag cleared")


@app.command()
def fetch(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Page URL"),
    selector: Optional[str] = typer.Option(None, "--selector", help="Custom chapter selector"),
    regex: Optional[str] = typer.Option(None, "--regex", help="Custom chapter regex"),
):
    """Fetch one page through the tiers and report the chapter found on it."""
    config: AppConfig = ctx.obj
    if regex and regex.strip():
        try:
            re.compile(regex)
        except re.error as e:
            console.print(f"[red]Invalid chapter number regex: {e}[/red]")
            raise typer.Exit(1)

    async def _fetch():
        async with open_pipeline(config) as pipeline:
            return await pipeline.orchestrator.fetch(url)

    try:
        outcome = _run(_fetch())
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not outcome.success:
        console.print(
            f"[red]Failed ({outcome.failure.value if outcome.failure else 'unknown'}): "
            f"{outcome.reason}[/red] [dim]\\[{outcome.cid}][/dim]"
        )
        raise typer.Exit(1)

    latest = ChapterExtractor().extract(outcome.html, outcome.url, selector, regex)
    page_chapter = detect_chapter_from_metadata(outcome.html, outcome.url)
    console.print(
        f"[green]OK[/green] via [cyan]{outcome.tier.value}[/cyan] in {outcome.elapsed:.1f}s, "
        f"{len(outcome.html)} chars [dim]\\[{outcome.cid}][/dim]"
    )
    console.print(f"Latest listed chapter: {latest:g}" if latest is not None else "Latest listed chapter: none found")
    if page_chapter is not None:
        console.print(f"Page is chapter {page_chapter.value:g} ({page_chapter.source})")


@app.command()
def probe(
    ctx: typer.Context,
    template: str = typer.Argument(..., help="Chapter URL template with one $chapter token"),
    number: float = typer.Argument(..., help="Chapter number to check"),
):
    """Check whether a chapter URL exists without fetching the page."""
    config: AppConfig = ctx.obj
    try:
        url = build_chapter_url(template, number)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    async def _probe() -> bool:
        http_config = config.model_copy(deep=True)
        http_config.render.enabled = False
        async with open_pipeline(http_config) as pipeline:
            return await pipeline.prober.exists(template, number)

    if _run(_probe()):
        console.print(f"[green]exists[/green] {url}")
    else:
        console.print(f"[yellow]not found[/yellow] {url}")
        raise typer.Exit(1)


@app.command()
def hosts(
    ctx: typer.Context,
    forget: Optional[str] = typer.Option(
        None,
        "--forget",
        help="Reset a host to direct fetching",
    ),
):
    """List hosts that need the browser render tier."""
    config: AppConfig = ctx.obj

    async def _hosts() -> tuple[list[str], bool]:
        store = JsonStateStore(config.state_path)
        host_store = HostStrategyStore(store)
        host_store.load_from_persisted_list(await store.load_render_required_hosts())
        forgotten = await host_store.forget(forget) if forget else False
        return host_store.hosts(), forgotten

    remaining, forgotten = _run(_hosts())
    if forget:
        if not forgotten:
            console.print(f"[yellow]{forget} was not render-required[/yellow]")
            raise typer.Exit(1)
        console.print(f"Reset {forget} to direct fetching")

    table = Table(title="Render-required Hosts")
    table.add_column("Host", style="cyan")
    for host in remaining:
        table.add_row(host)
    console.print(table)


if __name__ == "__main__":
    app()
