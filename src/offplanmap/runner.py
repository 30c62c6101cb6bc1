"""CLI runner that warms the property cache and prints its status.

Run via: python -m offplanmap.runner
"""

import argparse
import asyncio
import logging
import sys

import httpx
from rich.console import Console
from rich.logging import RichHandler

from .config import Settings
from .reporting import print_cache_status
from .session import CacheSession

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with Rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


async def run(
    pages: int = 1,
    clear: bool = False,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Open a session, load up to ``pages`` map pages and print the status.

    Returns:
        0 on success, 1 if the map slice ended in an error
    """
    async with CacheSession(settings=settings, transport=transport) as session:
        if clear:
            session.clear()
            console.print("[yellow]Cache cleared[/yellow]")

        await session.load_map()
        for _ in range(pages - 1):
            if not session.map_fetcher.status.has_more:
                break
            await session.load_more_map()

        print_cache_status(session, console)
        error = session.map_fetcher.status.error

    if error:
        console.print(f"[red]Map data unavailable: {error}[/red]")
        return 1
    return 0


def main() -> None:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="offplanmap cache runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m offplanmap.runner
  python -m offplanmap.runner --pages 5
  python -m offplanmap.runner --clear -v
        """,
    )
    parser.add_argument(
        "--pages",
        type=int,
        default=1,
        help="Number of map pages to load (default 1)",
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Drop the cached and persisted data before loading",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()
    setup_logging(verbose=args.verbose)

    try:
        sys.exit(asyncio.run(run(pages=max(args.pages, 1), clear=args.clear)))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
