"""Click-based CLI for goldwatch.

Thin wrapper around the engine. Every command builds a PriceEngine from
config and prints what lands in its store.
"""

from __future__ import annotations

import asyncio
import json
import logging

import click
from rich.console import Console
from rich.table import Table

from goldwatch.core.models import Source

console = Console(stderr=True)
out = Console()

_SOURCE_CHOICE = click.Choice([s.value for s in Source], case_sensitive=False)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from goldwatch.core import load_config

        ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
    return ctx.obj["config"]


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _format_price(price: float | None, precision: int) -> str:
    if price is None:
        return "-"
    return f"{price:.{precision}f}"


def _snapshot_table(snap, sources=None) -> Table:
    table = Table(title="Gold prices (CNY/g)")
    table.add_column("Source", style="bold")
    table.add_column("Label")
    table.add_column("Price", justify="right")
    table.add_column("Status")
    table.add_column("Updated")

    for source in sources or list(Source):
        state = snap.sources.get(source)
        if state is None:
            continue
        marker = " *" if source == snap.selected_source else ""
        table.add_row(
            source.value + marker,
            source.label,
            _format_price(state.price, source.display_precision),
            "[green]ok[/green]" if state.available else "[red]unavailable[/red]",
            state.updated_at.strftime("%Y-%m-%d %H:%M:%S") if state.updated_at else "-",
        )
    return table


def _snapshot_json(snap, sources=None) -> str:
    rows = []
    for source in sources or list(Source):
        state = snap.sources.get(source)
        if state is None:
            continue
        rows.append(
            {
                "source": source.value,
                "label": source.label,
                "price": state.price,
                "available": state.available,
                "updated_at": state.updated_at.isoformat() if state.updated_at else None,
                "quotes": [q.model_dump() for q in state.quotes],
            }
        )
    return json.dumps(rows, ensure_ascii=False, indent=2)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="GOLDWATCH_CONFIG",
    default=None,
    help="Path to goldwatch.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="goldwatch")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """goldwatch: aggregated gold prices from multiple upstream sources."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console


def _setup(ctx: click.Context):
    from goldwatch.core import ConfigError

    try:
        config = _load_config(ctx)
    except ConfigError as exc:
        console.print(f"[red]Invalid configuration: {exc}[/red]")
        raise SystemExit(1)
    _configure_logging("DEBUG" if ctx.obj["verbose"] else config.logging.level)
    return config


# ---------------------------------------------------------------------------
# sources
# ---------------------------------------------------------------------------


@cli.command()
def sources() -> None:
    """List known sources and their refresh tiers."""
    table = Table(title="Sources")
    table.add_column("Source", style="bold")
    table.add_column("Label")
    table.add_column("Family")
    table.add_column("Tier")
    table.add_column("Brand keyword")
    for s in Source:
        table.add_row(s.value, s.label, s.family.value, s.tier.value, s.brand_keyword or "-")
    out.print(table)


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--source",
    "-s",
    "source_names",
    type=_SOURCE_CHOICE,
    multiple=True,
    help="Fetch only these sources. Default: all.",
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Emit JSON.")
@click.pass_context
def fetch(ctx: click.Context, source_names: tuple[str, ...], as_json: bool) -> None:
    """Fetch every source once and print the results."""
    config = _setup(ctx)

    async def _run():
        from goldwatch.engine import PriceEngine

        selected = [Source(name.lower()) for name in source_names] or None
        async with PriceEngine(config) as engine:
            snap = await engine.sweep(selected)
        return snap, selected

    snap, selected = _run_async(_run())

    if as_json:
        click.echo(_snapshot_json(snap, selected))
    else:
        out.print(_snapshot_table(snap, selected))

    states = [snap.sources[s] for s in (selected or snap.sources)]
    if not any(state.available for state in states):
        console.print("[red]No source returned a price.[/red]")
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# watch
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--source", "-s", "source_name", type=_SOURCE_CHOICE, default=None,
              help="Source to follow. Default: selected_source from config.")
@click.option("--count", "-n", type=int, default=None,
              help="Exit after this many price changes.")
@click.pass_context
def watch(ctx: click.Context, source_name: str | None, count: int | None) -> None:
    """Run the scheduler and print the selected price whenever it changes."""
    config = _setup(ctx)

    async def _run():
        from goldwatch.engine import PriceEngine

        queue: asyncio.Queue = asyncio.Queue()
        async with PriceEngine(config) as engine:
            unsubscribe = engine.subscribe(queue.put_nowait)
            try:
                await engine.start()
                if source_name:
                    engine.select_source(Source(source_name.lower()))

                printed = 0
                last = None
                while count is None or printed < count:
                    snap = await queue.get()
                    key = (snap.selected_source, snap.display_price())
                    if key == last:
                        continue
                    last = key
                    stamp = (
                        snap.last_update.astimezone().strftime("%H:%M:%S")
                        if snap.last_update
                        else "--:--:--"
                    )
                    out.print(f"{stamp}  {snap.selected_source.label}  {snap.display_price()}")
                    printed += 1
            finally:
                unsubscribe()

    try:
        _run_async(_run())
    except KeyboardInterrupt:
        console.print("[yellow]Stopped.[/yellow]")


# ---------------------------------------------------------------------------
# brands
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--keyword", "-k", type=str, default=None, help="Resolve a single keyword.")
@click.pass_context
def brands(ctx: click.Context, keyword: str | None) -> None:
    """Fetch the brand directory and list or resolve brands."""
    config = _setup(ctx)

    async def _run():
        from goldwatch.core import FetchError
        from goldwatch.engine import PriceEngine

        async with PriceEngine(config) as engine:
            try:
                directory = await engine.resolver.refresh()
            except FetchError as exc:
                console.print(f"[red]Directory refresh failed: {exc}[/red]")
                return None, None
            return directory, engine.resolver.resolve(keyword) if keyword else None

    directory, match = _run_async(_run())
    if directory is None:
        raise SystemExit(1)

    if keyword:
        if match is None:
            console.print(f"[yellow]No brand matches {keyword!r}[/yellow]")
            raise SystemExit(1)
        click.echo(f"{match.name}\t{match.id}")
        return

    table = Table(title=f"Brand directory ({len(directory)})")
    table.add_column("Name", style="bold")
    table.add_column("Id")
    for brand in directory:
        table.add_row(brand.name, brand.id)
    out.print(table)


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address.")
@click.option("--port", "-p", type=int, default=None, help="Port number.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the REST API server with the engine running."""
    import uvicorn

    from goldwatch.api import create_app

    config = _setup(ctx)
    host = host or config.api.host
    port = port or config.api.port

    console.print(f"Starting goldwatch API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(create_app(config=config), host=host, port=port)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
