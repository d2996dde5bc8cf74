"""
Rich renderables and printers for the unit-storage CLI.
"""

import json
from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from unit_storage.models.settings import StorageSettings
from unit_storage.models.stats import StorageStats

console = Console()

SENSITIVE_KEYS = ("github_token",)

HINTS: dict[str, list[str]] = {
    "ConfigurationError": [
        "Create a configuration with `unit-storage init`.",
        "Inspect the current values with `unit-storage --show-config`.",
    ],
    "AuthenticationError": [
        "The drive access token is missing or expired; sign in again.",
        "Omit --google-id to run without the cloud tier.",
    ],
    "TierUnavailableError": [
        "The slowest enabled tier did not answer. Check connectivity.",
    ],
    "TransientNetworkError": [
        "Requests kept failing after every retry.",
        "Tune `remote_retries` and `remote_backoff_ms` in the config file.",
    ],
    "MalformedDataError": [
        "The stored document is not valid JSON; fix it at the source."
    ],
    "DecryptionError": [
        "This private key does not belong to the key the value was sealed for.",
        "Run without --secure to see the raw ciphertext.",
    ],
    "CircuitBreakerError": ["Recent calls failed repeatedly; wait and retry."],
    "TierWriteError": [
        "A fast tier rejected the write. Is the store directory writable?"
    ],
}


def _tick(flag: bool, yes: str = "yes", no: str = "no") -> str:
    return f"[green]✓ {yes}[/green]" if flag else f"[red]✗ {no}[/red]"


def _pairs_table(**column_styles) -> Table:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(**column_styles)
    table.add_column()
    return table


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Wraps an exception and the hints known for its type in a red panel."""
    name = type(error).__name__
    hints = HINTS.get(name, ["Re-run with -vv to see debug logs."])

    parts = [
        Text.assemble((f"{name}: ", "bold red"), str(error)),
        Text(""),
        Text("What to try", style="bold yellow"),
        *(Text(f"• {hint}") for hint in hints),
    ]
    if context:
        parts += [Text(""), Text(f"Context: {context}", style="dim")]

    return Panel(
        Group(*parts),
        title="[bold red]unit-storage failed[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Shows the effective settings; secrets are masked."""
    lines = []
    for key, value in config_data.items():
        if key in SENSITIVE_KEYS and value:
            shown = "[hidden]"
        elif isinstance(value, list):
            shown = ", ".join(map(str, value))
        else:
            shown = str(value)
        lines.append(f"[cyan]{key}[/cyan] = {escape(shown)}")

    console.print(
        Panel(
            "\n".join(lines),
            title=f"Settings from [dim]{config_path}[/dim]",
            border_style="cyan",
        )
    )


def print_validation_table(settings: StorageSettings):
    table = _pairs_table(style="bold cyan")
    rows = [
        (
            "Repository",
            f"[green]{settings.repo_owner}/{settings.repo_name}[/green] "
            f"on {settings.branch}, under {settings.data_path}/",
        ),
        ("Token", _tick(bool(settings.github_token), "configured", "anonymous")),
        (
            "Retries",
            f"{settings.remote_retries} x {settings.remote_backoff_ms} ms backoff",
        ),
        ("Store", f"[dim]{settings.local_storage_dir}[/dim]"),
        (
            "Sweeps",
            " / ".join(
                f"{label} {ms} ms"
                for label, ms in (
                    ("cache", settings.cache_prune_interval_ms),
                    ("session", settings.session_prune_interval_ms),
                    ("local", settings.local_prune_interval_ms),
                )
            ),
        ),
        ("Backfill", "background" if settings.background_backfill else "inline"),
        ("Events", settings.log_dir or "[dim]console only[/dim]"),
    ]
    for label, value in rows:
        table.add_row(label, value)
    console.print(
        Panel(table, title="[bold green]Settings OK[/bold green]", border_style="green")
    )


def format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, ensure_ascii=False)


def print_lookup(key: str, value: Any, source: str | None, backfilled: list[str]):
    if source is None:
        console.print(f"[yellow]○ '{key}' was not found in any enabled tier.[/yellow]")
        return
    origin = f"served by [cyan]{source}[/cyan]"
    if backfilled:
        origin += f" · copied to {', '.join(backfilled)}"
    console.print(
        Panel(
            Text(format_value(value)),
            title=f"[bold]{key}[/bold]",
            subtitle=origin,
            expand=False,
        )
    )


def print_keys_table(keys: dict[str, list[str]]):
    table = Table(title="Keys per tier", box=box.SIMPLE_HEAVY)
    table.add_column("Tier", style="bold cyan")
    table.add_column("#", justify="right", style="green")
    table.add_column("Keys")
    for tier, names in keys.items():
        table.add_row(tier, str(len(names)), "\n".join(names) or "[dim]-[/dim]")
    console.print(table)


def print_listing_table(dir_path: str, listing: list[dict[str, Any]]):
    table = Table(title=f"{dir_path or '/'} (remote)", box=box.SIMPLE_HEAVY)
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="dim")
    table.add_column("Size", justify="right")
    for item in listing:
        table.add_row(*(str(item.get(f, "")) for f in ("name", "type", "size")))
    console.print(table)


def print_exists_table(results: dict[str, bool]):
    table = _pairs_table()
    for name, exists in results.items():
        table.add_row(_tick(exists, "present", "missing"), f"[cyan]{name}[/cyan]")
    console.print(table)


def print_stats_panel(stats: StorageStats):
    """Lookup totals followed by the non-empty per-tier counters."""
    data = stats.as_dict()
    table = _pairs_table(style="bold cyan", justify="right")
    table.add_row("lookups", str(data["lookups"]))
    table.add_row("not found", str(data["not_found"]))
    table.add_row("hit rate", f"{data['hit_rate']:.0%}")
    for field_name in (
        "hits",
        "backfills",
        "backfill_failures",
        "write_failures",
        "tier_errors",
    ):
        counts = data[field_name]
        if counts:
            table.add_row(
                field_name.replace("_", " "),
                ", ".join(f"{tier}={n}" for tier, n in counts.items()),
            )
    console.print(Panel(table, title="Tier statistics", expand=False))
