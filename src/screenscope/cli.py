"""Click CLI for screenscope: cached screenshot analysis, comparison and summaries."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from screenscope.config.hierarchy import load_config_hierarchy, mask_secret
from screenscope.errors.exceptions import ScreenscopeError
from screenscope.models.analysis import AppAnalysis
from screenscope.types import AnalysisOutcome, BatchingInfo, CacheStatus, ErrorKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

console = Console()
error_console = Console(stderr=True)


def _setup_logging(verbosity: int, default_level: str = "WARNING") -> None:
    """Configure logging based on verbosity level."""
    level = logging.getLevelName(default_level.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=error_console, show_time=False, show_path=False)],
    )


@click.group()
@click.version_option(package_name="screenscope")
def cli() -> None:
    """screenscope: cached AI analysis of app screenshots."""


@cli.command()
@click.argument("entity_id")
@click.argument("screenshots", nargs=-1, required=True)
@click.option("--app-name", type=str, default=None, help="App name given to the model.")
@click.option("--force-refresh", is_flag=True, default=False, help="Ignore any cached analysis.")
@click.option("--timeout-ms", type=int, default=None, help="Per-attempt AI timeout.")
@click.option("--model", type=str, default=None, help="Override the analysis model.")
@click.option("--no-cache", is_flag=True, default=False, help="Disable caching.")
@click.option("-o", "--output", type=click.Path(), help="Write the analysis JSON to a file.")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug).")
def analyze(
    entity_id: str,
    screenshots: tuple[str, ...],
    app_name: str | None,
    force_refresh: bool,
    timeout_ms: int | None,
    model: str | None,
    no_cache: bool,
    output: str | None,
    verbose: int,
) -> None:
    """Analyze SCREENSHOTS (URLs or paths) of the app ENTITY_ID."""
    settings = load_config_hierarchy(
        model=model,
        timeout_ms=timeout_ms,
        cache_backend="none" if no_cache else None,
    )
    _setup_logging(verbose, str(settings.get("log_level") or "WARNING"))
    if settings.get("cache_backend") == "memory":
        # A memory cache cannot outlive one CLI run
        logger.debug("Using the disk cache for CLI runs")
        settings["cache_backend"] = "disk"

    from screenscope.core import ScreenAnalyzer, as_items

    def _on_status(status: CacheStatus) -> None:
        if verbose:
            error_console.print(f"[dim]cache: {status.value}[/dim]")

    def _on_batching(info: BatchingInfo) -> None:
        if info.was_truncated:
            error_console.print(
                f"[yellow]Analyzing the first {info.analyzing} of {info.total_provided} "
                f"screenshots (limit {info.max_allowed})[/yellow]"
            )

    async def _run() -> AnalysisOutcome:
        async with ScreenAnalyzer.from_config(settings) as analyzer:
            return await analyzer.analyze(
                entity_id,
                app_name,
                as_items(screenshots),
                force_refresh=force_refresh,
                on_cache_status=_on_status,
                on_retry=_report_retry,
                on_batching=_on_batching,
            )

    outcome = _run_or_exit(_run, verbose)
    _write_json(outcome.result, output)

    if verbose >= 1:
        _print_summary(outcome)


def _report_retry(attempt: int, kind: ErrorKind, delay_ms: int) -> None:
    error_console.print(
        f"[yellow]Attempt {attempt} failed ({kind.value}), retrying in {delay_ms}ms[/yellow]"
    )


def _run_or_exit(make_coro: Callable[[], Awaitable[T]], verbose: int) -> T:
    """Run an async command body; structured errors print their user message and exit 1."""
    try:
        return asyncio.run(make_coro())
    except ScreenscopeError as e:
        error_console.print(f"[red]Error:[/red] {e.user_message}")
        if verbose:
            error_console.print(f"[dim]{e.code}: {e.message}[/dim]")
        sys.exit(1)


def _write_json(result: dict, output: str | None) -> None:
    payload = json.dumps(result, indent=2)
    if output:
        Path(output).write_text(payload)
        console.print(f"[green]Written to {output}[/green]")
    else:
        console.print_json(payload)


def _load_analysis_file(path: Path) -> AppAnalysis:
    try:
        return AppAnalysis.model_validate(json.loads(path.read_text()))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise click.ClickException(f"{path} is not a valid analysis file: {e}") from e


@cli.command()
@click.argument(
    "analyses", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False)
)
@click.option("--model", type=str, default=None, help="Override the comparison model.")
@click.option("-o", "--output", type=click.Path(), help="Write the comparison JSON to a file.")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug).")
def compare(
    analyses: tuple[str, ...],
    model: str | None,
    output: str | None,
    verbose: int,
) -> None:
    """Compare 2-3 ANALYSES (JSON files written by `analyze -o`).

    Each file's name (without extension) is used as the app's id and name.
    """
    settings = load_config_hierarchy(model=model, cache_backend="none")
    _setup_logging(verbose, str(settings.get("log_level") or "WARNING"))

    from screenscope.core import ScreenAnalyzer
    from screenscope.models.comparison import ComparedApp

    apps = []
    for p in map(Path, analyses):
        apps.append(ComparedApp(entity_id=p.stem, name=p.stem, analysis=_load_analysis_file(p)))

    async def _run():
        async with ScreenAnalyzer.from_config(settings) as analyzer:
            return await analyzer.compare(apps, on_retry=_report_retry)

    comparison = _run_or_exit(_run, verbose)
    _write_json(comparison.to_result(), output)


@cli.command()
@click.argument("analysis", type=click.Path(exists=True, dir_okay=False))
@click.option("--app-name", type=str, default=None, help="App name given to the model.")
@click.option("--model", type=str, default=None, help="Override the summary model.")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug).")
def summarize(analysis: str, app_name: str | None, model: str | None, verbose: int) -> None:
    """Print a short summary of an ANALYSIS JSON file."""
    settings = load_config_hierarchy(model=model, cache_backend="none")
    _setup_logging(verbose, str(settings.get("log_level") or "WARNING"))

    from screenscope.core import ScreenAnalyzer

    parsed = _load_analysis_file(Path(analysis))

    async def _run():
        async with ScreenAnalyzer.from_config(settings) as analyzer:
            return await analyzer.summarize(parsed, app_name=app_name, on_retry=_report_retry)

    summary = _run_or_exit(_run, verbose)
    console.print(summary.summary, markup=False, highlight=False)


def _print_summary(outcome: AnalysisOutcome) -> None:
    """Print an analysis summary."""
    error_console.print()
    table = Table(title="Analysis Summary", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    if outcome.from_cache:
        table.add_row("Cache", "[green]hit[/green]")
    else:
        reason = outcome.invalidation_reason.value if outcome.invalidation_reason else "-"
        table.add_row("Cache", f"miss ({reason})")
    table.add_row("Entry", outcome.cache_entry_id or "-")
    if outcome.cache_key:
        table.add_row("Items", str(outcome.cache_key.item_count))
        table.add_row("Checksum", outcome.cache_key.combined_checksum[:16])
    if not outcome.from_cache:
        table.add_row("Attempts", str(outcome.attempts))
    if outcome.coalesced:
        table.add_row("Coalesced", "yes")

    error_console.print(table)


@cli.group()
def cache() -> None:
    """Cache management commands (disk cache)."""


def _open_disk_cache():
    from screenscope.cache.disk import SqliteCacheStore
    from screenscope.cache.manager import AnalysisCache

    settings = load_config_hierarchy()
    db_path = settings.get("cache_db_path")
    store = SqliteCacheStore(Path(db_path).expanduser() if db_path else None)
    return AnalysisCache(store=store), store


@cache.command("stats")
def cache_stats() -> None:
    """Show cache statistics."""
    mgr, store = _open_disk_cache()

    table = Table(title="Cache Statistics", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")

    stats = mgr.stats()
    table.add_row("Database", str(store.db_path))
    table.add_row("Entries", str(stats.entries))
    table.add_row("Size (MB)", f"{store.size_mb:.2f}")

    console.print(table)
    mgr.close()


@cache.command("clear")
@click.confirmation_option(prompt="Are you sure you want to clear the cache?")
def cache_clear() -> None:
    """Clear all cached analyses."""
    mgr, _ = _open_disk_cache()
    mgr.clear()
    mgr.close()
    console.print("[green]Cache cleared.[/green]")


@cache.command("invalidate")
@click.argument("entity_id")
def cache_invalidate(entity_id: str) -> None:
    """Remove every cached analysis for ENTITY_ID."""
    mgr, _ = _open_disk_cache()
    count = mgr.invalidate(entity_id)
    mgr.close()
    console.print(f"[green]Removed {count} entries for {entity_id}.[/green]")


@cli.group()
def config() -> None:
    """Configuration commands."""


@config.command("show")
def config_show() -> None:
    """Print the resolved configuration."""
    resolved = load_config_hierarchy()
    resolved["api_key"] = mask_secret(resolved.get("api_key"))

    table = Table(title="Configuration", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key in sorted(resolved):
        value = resolved[key]
        table.add_row(key, "-" if value is None else str(value))

    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    cli()
