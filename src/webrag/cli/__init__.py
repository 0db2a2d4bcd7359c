"""Command-line front end for WebRAG."""

from __future__ import annotations

import argparse
import asyncio
import sys

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from webrag import AggregatedResult, RetrievalPipeline, WebRAGConfig
from webrag.core.exceptions import WebRAGError

WEBRAG_THEME = Theme(
    {
        "info": "bold cyan",
        "success": "bold green",
        "warning": "bold yellow",
        "error": "bold red",
        "highlight": "bold magenta",
        "dim": "grey50",
    }
)

console = Console(theme=WEBRAG_THEME)


def _render_aggregated(aggregated: AggregatedResult) -> None:
    table = Table(
        box=None,
        show_header=True,
        header_style="highlight",
        title=f"Indexed {len(aggregated.succeeded)}/{len(aggregated.results)} URLs",
        title_justify="left",
        title_style="dim",
        pad_edge=False,
    )
    table.add_column("#", style="dim", width=3)
    table.add_column("URL", ratio=4, overflow="fold")
    table.add_column("Chunks", justify="right", ratio=1)
    table.add_column("Status", ratio=3)

    for i, result in enumerate(aggregated.results, 1):
        if result.ok:
            status = "[success]indexed[/]" + (" [dim](cached)[/]" if result.cache_hit else "")
        else:
            status = f"[error]{escape(result.error or '')}[/]"
        table.add_row(str(i), escape(result.url), str(len(result.chunks)), status)

    console.print(table)


async def index_cmd(query: str, as_json: bool) -> None:
    """Search for *query* and index the result pages."""
    async with RetrievalPipeline(WebRAGConfig()) as pipeline:
        with console.status("[info]Searching and indexing...", spinner="dots"):
            aggregated = await pipeline.run(query)

    if as_json:
        print(aggregated.model_dump_json(indent=2))
        return
    _render_aggregated(aggregated)


async def ask_cmd(query: str, k: int | None, as_json: bool) -> None:
    """Index the search results for *query* and show the best matching chunks."""
    async with RetrievalPipeline(WebRAGConfig()) as pipeline:
        with console.status("[info]Searching and indexing...", spinner="dots"):
            result = await pipeline.search_and_retrieve(query, k)

    if as_json:
        print(result.model_dump_json(indent=2))
        return

    _render_aggregated(result.aggregated)
    if not result.sources:
        console.print("[warning]No chunks were indexed for this query.[/]")
        return

    for i, source in enumerate(result.sources, 1):
        console.print(
            Panel(
                escape(source.text),
                title=f"{i}. {escape(source.url)}",
                title_align="left",
                subtitle=f"score {source.score:.3f}",
                subtitle_align="right",
                border_style="success",
                padding=(0, 1),
            )
        )


def main() -> None:
    parser = argparse.ArgumentParser(
        description="WebRAG: per-query retrieval index over web search results",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  webrag index "tokio vs async-std"
  webrag ask "how does trafilatura detect boilerplate" -k 3
  webrag ask "sqlite wal mode" --json

Settings are read from WEBRAG_* environment variables or a .env file.
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    index_parser = subparsers.add_parser("index", help="Search and index the result pages")
    index_parser.add_argument("query", help="Search query")
    index_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    ask_parser = subparsers.add_parser(
        "ask", help="Search, index, then retrieve the top-k chunks for the query"
    )
    ask_parser.add_argument("query", help="Search query, also used as the question")
    ask_parser.add_argument("-k", type=int, default=None, help="Number of chunks to return")
    ask_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    args = parser.parse_args()

    try:
        if args.command == "index":
            asyncio.run(index_cmd(args.query, args.json))
        elif args.command == "ask":
            asyncio.run(ask_cmd(args.query, args.k, args.json))
        else:
            parser.print_help()
    except WebRAGError as e:
        console.print(f"[error]{type(e).__name__}:[/] {escape(str(e))}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[warning]Operation cancelled by user.[/]")
        sys.exit(130)


if __name__ == "__main__":
    main()
