# main.py

"""Entry point for the search_gateway headless CLI."""

import argparse
import asyncio
import logging
import sys

from search_gateway.config.logging_config import setup_logging
from search_gateway.config.settings import Settings
from search_gateway.models.query import SearchFilters, SearchOptions, SortMode

logger = logging.getLogger("search_gateway.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    sort_modes = [m.value for m in SortMode]

    parser = argparse.ArgumentParser(
        prog="search_gateway",
        description="Resilient marketplace product search gateway.",
        epilog=f"Sort modes: {', '.join(sort_modes)}",
    )
    parser.add_argument(
        "query",
        nargs="?",
        default=None,
        help="Free-text search query.",
    )

    filters = parser.add_argument_group("filters")
    filters.add_argument("-c", "--category", default=None)
    filters.add_argument(
        "--min-price", type=float, default=None, dest="min_price",
    )
    filters.add_argument(
        "--max-price", type=float, default=None, dest="max_price",
    )
    filters.add_argument("--condition", default=None)
    filters.add_argument(
        "-t",
        "--tag",
        action="append",
        default=None,
        dest="tags",
        help="Tag filter; repeat for several (matches any).",
    )
    filters.add_argument(
        "--owner", type=int, default=None, dest="owner_id",
    )
    filters.add_argument(
        "--in-stock", action="store_true", default=False, dest="in_stock",
    )
    filters.add_argument(
        "--min-rating", type=float, default=None, dest="min_rating",
    )

    paging = parser.add_argument_group("paging and output")
    paging.add_argument(
        "--sort", choices=sort_modes, default=SortMode.RELEVANCE.value,
    )
    paging.add_argument("-p", "--page", type=int, default=1)
    paging.add_argument(
        "-n",
        "--page-size",
        type=int,
        default=Settings.DEFAULT_PAGE_SIZE,
        dest="page_size",
    )
    paging.add_argument(
        "--facets",
        action="store_true",
        default=False,
        help="Include facet counts (or print only facets with no query).",
    )
    paging.add_argument(
        "--no-cache",
        action="store_false",
        default=True,
        dest="cacheable",
        help="Bypass the result cache for this search.",
    )
    paging.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )
    paging.add_argument(
        "--repeat",
        type=int,
        default=1,
        help="Issue the search N times concurrently.",
    )
    paging.add_argument(
        "--metrics",
        action="store_true",
        default=False,
        help="Print gateway metrics after the search.",
    )

    commands = parser.add_argument_group("other commands")
    commands.add_argument(
        "--autocomplete",
        metavar="PREFIX",
        default=None,
        help="Print title suggestions for PREFIX.",
    )
    commands.add_argument(
        "--trending",
        action="store_true",
        default=False,
        help="Print currently popular search terms.",
    )
    commands.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Result count for --autocomplete / --trending.",
    )
    commands.add_argument(
        "--seed",
        metavar="FILE",
        default=None,
        help="Import listings from a JSON file into the catalog.",
    )
    commands.add_argument(
        "--sync-index",
        action="store_true",
        default=False,
        dest="sync_index",
        help="Push the catalog into the primary search index.",
    )
    commands.add_argument(
        "--health",
        action="store_true",
        default=False,
        help="Run a connectivity health check on all backends.",
    )
    return parser


def _filters_from_args(args: argparse.Namespace) -> SearchFilters:
    return SearchFilters(
        category=args.category,
        min_price=args.min_price,
        max_price=args.max_price,
        condition=args.condition,
        tags=args.tags,
        owner_id=args.owner_id,
        in_stock=args.in_stock or None,
        min_rating=args.min_rating,
    )


def _run_search(args: argparse.Namespace) -> None:
    """Run headless search and exit."""
    from search_gateway.cli.runner import cli_search

    options = SearchOptions(
        page=args.page,
        page_size=args.page_size,
        sort_mode=args.sort,
        cacheable=args.cacheable,
        include_facets=args.facets,
    )
    exit_code = asyncio.run(
        cli_search(
            query=args.query,
            filters=_filters_from_args(args),
            options=options,
            output_format=args.output_format,
            repeat=args.repeat,
            show_metrics=args.metrics,
        )
    )
    sys.exit(exit_code)


def main() -> None:
    """Route to the requested command."""
    log_file = setup_logging()
    logger.info("search_gateway starting, log file: %s", log_file)

    parser = _build_parser()
    args = parser.parse_args()

    from search_gateway.cli import runner

    if args.seed is not None:
        sys.exit(runner.run_seed(args.seed))
    elif args.sync_index:
        sys.exit(runner.run_sync_index())
    elif args.health:
        sys.exit(asyncio.run(runner.run_health_check()))
    elif args.autocomplete is not None:
        limit = args.limit or Settings.DEFAULT_SUGGESTIONS
        sys.exit(asyncio.run(runner.run_autocomplete(args.autocomplete, limit)))
    elif args.trending:
        limit = args.limit or Settings.DEFAULT_TRENDING
        sys.exit(asyncio.run(runner.run_trending(limit)))
    elif args.query is None and args.facets:
        sys.exit(asyncio.run(
            runner.run_facets(None, _filters_from_args(args))
        ))
    elif args.query is None:
        parser.print_help()
        sys.exit(2)
    else:
        _run_search(args)


if __name__ == "__main__":
    main()
