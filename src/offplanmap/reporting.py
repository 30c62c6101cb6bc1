"""Cache status report rendered with Rich."""

import logging
from datetime import datetime
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

from .session import CacheSession

logger = logging.getLogger(__name__)
console = Console()


def _fmt_time(value: Optional[float]) -> str:
    if value is None:
        return "never"
    return datetime.fromtimestamp(value).strftime("%Y-%m-%d %H:%M:%S")


def cache_status(session: CacheSession) -> dict[str, Any]:
    """Collect store, persisted-cache, renderer and monitor figures."""
    return {
        "store": session.store.stats(),
        "persisted": session.persister.describe(),
        "queries": len(session.query_cache),
        "markers": len(session.renderer.markers),
        "fallback_positioned": session.renderer.fallback_positioned,
        "metrics": session.monitor.get_metrics().as_dict(),
        "issues": session.monitor.check_performance_issues().issues,
    }


def print_cache_status(session: CacheSession, out: Optional[Console] = None) -> None:
    """Print the cache status as a table."""
    out = out or console
    status = cache_status(session)
    store = status["store"]
    persisted = status["persisted"]
    metrics = status["metrics"]

    table = Table(show_header=True, header_style="bold", title="Property cache")
    table.add_column("Metric")
    table.add_column("Value", justify="right")

    table.add_row("Map records", f"{store['map_records']} / {store['max_cache_size']}")
    table.add_row("Map page", str(store["map_page"]))
    table.add_row("Map has more", "yes" if store["map_has_more"] else "no")
    table.add_row("Map last fetch", _fmt_time(store["map_last_fetch"]))
    table.add_row("List records", str(store["list_records"]))
    table.add_row("Cache version", str(store["cache_version"]))
    table.add_row("Cached queries", str(status["queries"]))
    table.add_row("Markers", str(status["markers"]))

    fallback = status["fallback_positioned"]
    table.add_row(
        "Default-positioned markers",
        f"[yellow]{fallback}[/yellow]" if fallback else "0",
    )

    if persisted["has_cache"]:
        table.add_row("Persisted records", str(persisted["cache_size"]))
        table.add_row("Persisted expires", f"{persisted['expires_at']:%Y-%m-%d %H:%M}")
    else:
        table.add_row("Persisted records", "[dim]none[/dim]")

    memory = metrics["memory_used_mb"]
    table.add_row(
        "Heap",
        f"{memory}MB ({metrics['memory_percent']}%)" if memory is not None else "[dim]n/a[/dim]",
    )
    table.add_row("API calls", str(metrics["api_call_count"]))

    out.print(table)
    for issue in status["issues"]:
        out.print(f"[red]! {issue}[/red]")
