# search_gateway/cli/runner.py

"""Headless CLI commands built on the async query gateway."""

import asyncio
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from search_gateway.models.errors import ExecutorFailure, ValidationError
from search_gateway.models.query import SearchFilters, SearchOptions
from search_gateway.models.result import FacetSet, ResultSource, SearchResult
from search_gateway.services.metrics import MetricsSnapshot
from search_gateway.services.query_gateway import QueryGateway
from search_gateway.storage.catalog_db import CatalogDB

logger = logging.getLogger("search_gateway.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def _result_to_dict(result: SearchResult) -> dict[str, object]:
    """Serialise a search result to plain data for JSON output."""
    data: dict[str, object] = {
        "items": list(result.items),
        "total": result.total,
        "page": result.page,
        "page_size": result.page_size,
        "total_pages": result.total_pages,
        "has_more": result.has_more,
        "source": result.source.value,
        "took_ms": round(result.took_ms, 2),
    }
    if result.facets is not None:
        data["facets"] = _facets_to_dict(result.facets)
    return data


def _facets_to_dict(facets: FacetSet) -> dict[str, object]:
    return {
        "categories": {c.name: c.count for c in facets.categories},
        "price_range": {
            "min": facets.price_range.min,
            "max": facets.price_range.max,
        },
        "conditions": {c.name: c.count for c in facets.conditions},
    }


def _dump_json(data: object) -> None:
    json.dump(data, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")


def _print_table(result: SearchResult, catalog: CatalogDB) -> None:
    """Render a Rich table of the ranked page, titles from the catalog."""
    products = catalog.get_products(list(result.items))
    table = Table(
        title=(
            f"Search Results (page {result.page}/{result.total_pages}, "
            f"{result.total} total, via {result.source.value})"
        ),
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("ID", justify="right")
    table.add_column("Title", max_width=60)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Category", style="magenta")
    table.add_column("Condition")

    offset = (result.page - 1) * result.page_size
    for idx, product_id in enumerate(result.items, offset + 1):
        p = products.get(product_id)
        if p is None:
            table.add_row(str(idx), str(product_id), "?", "", "", "")
            continue
        table.add_row(
            str(idx),
            str(product_id),
            p.title[:60],
            f"{p.price:,.2f}",
            p.category or "-",
            p.condition or "-",
        )

    Console().print(table)


def print_metrics(snapshot: MetricsSnapshot) -> None:
    """Render a metrics snapshot as a two-column table."""
    table = Table(
        title="Gateway Metrics", show_lines=False, title_style="bold cyan",
    )
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Total queries", f"{snapshot.total_queries:,}")
    table.add_row("Cache hits", f"{snapshot.cache_hits:,}")
    table.add_row("Cache misses", f"{snapshot.cache_misses:,}")
    table.add_row("Hit ratio", f"{snapshot.cache_hit_ratio:.1%}")
    table.add_row("Primary calls", f"{snapshot.primary_calls:,}")
    table.add_row("Fallback calls", f"{snapshot.fallback_calls:,}")
    table.add_row("Avg latency", f"{snapshot.average_latency_ms:.2f}ms")
    table.add_row("p95 latency", f"{snapshot.p95_latency_ms:.2f}ms")
    table.add_row("Errors", f"{snapshot.error_count:,}")
    Console(stderr=True).print(table)


async def cli_search(
    query: str,
    filters: SearchFilters,
    options: SearchOptions,
    output_format: str,
    repeat: int = 1,
    show_metrics: bool = False,
) -> int:
    """Run a headless search and return an exit code (0=ok, 1=fail).

    With ``repeat`` > 1 the same search is issued concurrently that
    many times, which exercises coalescing and the cache.
    """
    gateway = QueryGateway.from_settings()
    gateway.start_reporting()
    try:
        _err.print(f"[bold]Searching:[/bold] {query}")
        try:
            results = await asyncio.gather(*[
                gateway.search(query, filters, options)
                for _ in range(max(repeat, 1))
            ])
        except ValidationError as exc:
            _err.print(f"[red]Invalid query: {exc}[/red]")
            return 2

        result = results[0]
        if repeat > 1:
            sources: dict[str, int] = {}
            for r in results:
                sources[r.source.value] = sources.get(r.source.value, 0) + 1
            summary = ", ".join(f"{k}={v}" for k, v in sorted(sources.items()))
            _err.print(f"[dim]{repeat} requests served by: {summary}[/dim]")

        if show_metrics:
            print_metrics(gateway.metrics_snapshot())

        if result.source is ResultSource.ERROR:
            _err.print("[red]Search failed on every executor.[/red]")
            return 1
        if result.is_empty:
            _err.print("[yellow]No products found.[/yellow]")
            return 1

        _err.print(
            f"[green]✓ {len(result.items)} of {result.total} products"
            f" via {result.source.value} in {result.took_ms:.1f}ms[/green]"
        )
        if output_format == "table":
            catalog = CatalogDB()
            try:
                _print_table(result, catalog)
            finally:
                catalog.close()
        else:
            _dump_json(_result_to_dict(result))
        return 0
    finally:
        await gateway.shutdown()


async def run_autocomplete(prefix: str, limit: int) -> int:
    """Print title suggestions for a prefix."""
    gateway = QueryGateway.from_settings()
    try:
        suggestions = await gateway.autocomplete(prefix, limit)
    except ValidationError as exc:
        _err.print(f"[red]Invalid request: {exc}[/red]")
        return 2
    finally:
        gateway.close()
    _dump_json(suggestions)
    return 0 if suggestions else 1


async def run_trending(limit: int) -> int:
    """Print the currently popular search terms."""
    gateway = QueryGateway.from_settings()
    try:
        terms = await gateway.trending(limit)
    except ValidationError as exc:
        _err.print(f"[red]Invalid request: {exc}[/red]")
        return 2
    finally:
        gateway.close()
    _dump_json(terms)
    return 0 if terms else 1


async def run_facets(query: str | None, filters: SearchFilters) -> int:
    """Print facet counts for a query predicate."""
    gateway = QueryGateway.from_settings()
    try:
        facets = await gateway.get_facets(query, filters)
    except ValidationError as exc:
        _err.print(f"[red]Invalid query: {exc}[/red]")
        return 2
    finally:
        gateway.close()
    _dump_json(_facets_to_dict(facets))
    return 0


def run_seed(filepath: str) -> int:
    """Load listings from a JSON file into the catalog database."""
    path = Path(filepath)
    if not path.exists():
        _err.print(f"[red]File not found: {path}[/red]")
        return 1

    catalog = CatalogDB()
    try:
        count = catalog.import_json_file(path)
        total = catalog.count()
    finally:
        catalog.close()
    _err.print(
        f"[green]✓ Imported {count:,} listings ({total:,} in catalog)[/green]"
    )
    return 0 if count else 1


def run_sync_index() -> int:
    """Push every catalog listing into the primary search index."""
    from rich.progress import Progress

    from search_gateway.executors.index_executor import IndexExecutor

    catalog = CatalogDB()
    index = IndexExecutor()
    try:
        products = catalog.all_products()
        if not products:
            _err.print("[yellow]Catalog is empty, nothing to sync.[/yellow]")
            return 0
        with Progress(console=_err) as progress:
            task = progress.add_task("Indexing...", total=len(products))
            submitted = index.index_products(products)
            progress.update(task, completed=submitted)
    except ExecutorFailure as exc:
        logger.error("Index sync failed: %s", exc, exc_info=True)
        _err.print(f"[red]Index sync failed: {exc}[/red]")
        return 1
    finally:
        index.close()
        catalog.close()

    _err.print(f"[green]✓ Submitted {submitted:,} documents[/green]")
    return 0


async def run_health_check() -> int:
    """Run connectivity health check on every backing service."""
    _err.print("[bold]Running gateway health check...[/bold]")
    gateway = QueryGateway.from_settings()
    try:
        report = await gateway.health_check()
    finally:
        gateway.close()

    table = Table(
        title=f"Gateway Health: {report.status.upper()}",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Component", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Latency", justify="right")
    table.add_column("Notes", style="dim")

    for r in report.checks:
        if r.status == "ok":
            status = "[green]✅ OK[/green]"
        elif r.status == "slow":
            status = "[yellow]⚠️  SLOW[/yellow]"
        else:
            status = "[red]❌ DOWN[/red]"

        latency = (
            f"{r.latency_ms:.0f}ms"
            if r.latency_ms > 0
            else "-"
        )
        table.add_row(r.component, status, latency, r.message)

    Console().print(table)
    _err.print(f"[dim]Circuit breaker: {report.breaker_state}[/dim]")
    return 0 if report.status == "healthy" else 1
