"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from offline_kit.models.config import OfflineConfig
from offline_kit.models.records import CacheEntry, QueuedOperation, SyncStatus
from offline_kit.utils.formatting import (
    format_duration_ms,
    format_timestamp_ms,
    summarize_payload,
)

console = Console()

STATUS_STYLES = {
    SyncStatus.PENDING: "yellow",
    SyncStatus.SYNCING: "cyan",
    SyncStatus.SYNCED: "green",
    SyncStatus.FAILED: "red",
}


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `offline-kit init` to create a configuration file.",
            "• Check the values reported above with `offline-kit validate`.",
        ],
        "StorageError": [
            "• Check that the storage path exists and is writable.",
            "• A corrupt JSON store can be moved aside; it will be recreated.",
            "• Run `offline-kit diagnose` to test the storage backend.",
        ],
        "InvalidDurationError": [
            "• Durations are milliseconds or values like 30s, 5m, 1h, 7d, 2w.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_file: Path, config_data: dict[str, Any]) -> None:
    """Prints the raw configuration values in a table."""
    table = Table(
        title=f"Configuration ([dim]{config_file}[/dim])",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in sorted(config_data.items()):
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


def print_validation_table(config: OfflineConfig) -> None:
    """Prints the effective, validated configuration."""
    table = Table(title="Configuration is valid", box=box.ROUNDED, show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Storage backend", config.storage_backend)
    table.add_row("Storage path", config.storage_path or "[dim](none)[/dim]")
    table.add_row("Cache prefix", config.cache_prefix)
    table.add_row("Default TTL", format_duration_ms(config.default_ttl))
    table.add_row("Max stale", format_duration_ms(config.max_stale or 0))
    table.add_row("Serve stale", "yes" if config.serve_stale else "no")
    table.add_row("Queue prefix", config.queue_prefix)
    table.add_row("Max retries", str(config.max_retries))
    table.add_row("Concurrency", str(config.concurrency))
    table.add_row("Auto sync", "yes" if config.auto_sync else "no")
    table.add_row(
        "Connectivity URL", config.connectivity_url or "[dim](not monitored)[/dim]"
    )
    console.print(table)


def print_operations_table(operations: list[QueuedOperation]) -> None:
    """Prints queued operations, one row each."""
    if not operations:
        console.print("[dim]The sync queue is empty.[/dim]")
        return

    table = Table(box=box.SIMPLE_HEAVY, header_style="bold cyan")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Type", style="cyan")
    table.add_column("Status")
    table.add_column("Priority", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Created")
    table.add_column("Last error", style="red")
    for op in operations:
        style = STATUS_STYLES.get(op.status, "white")
        table.add_row(
            op.id,
            op.type,
            f"[{style}]{op.status.value}[/{style}]",
            str(op.priority),
            str(op.attempts),
            format_timestamp_ms(op.created_at),
            op.last_error or "",
        )
    console.print(table)

    counts: dict[str, int] = {}
    for op in operations:
        counts[op.status.value] = counts.get(op.status.value, 0) + 1
    summary = ", ".join(f"{count} {status}" for status, count in sorted(counts.items()))
    console.print(f"[bold]{len(operations)}[/bold] operations ({summary})")


def print_operation_detail(operation: QueuedOperation) -> None:
    """Prints every field of a single operation in a panel."""
    style = STATUS_STYLES.get(operation.status, "white")
    grid = Table.grid(padding=(0, 2))
    grid.add_column(style="cyan")
    grid.add_column()
    grid.add_row("Type", operation.type)
    grid.add_row("Status", f"[{style}]{operation.status.value}[/{style}]")
    grid.add_row("Priority", str(operation.priority))
    grid.add_row("Attempts", str(operation.attempts))
    grid.add_row("Created", format_timestamp_ms(operation.created_at))
    grid.add_row("Last attempt", format_timestamp_ms(operation.last_attempt))
    grid.add_row("Last error", operation.last_error or "-")
    grid.add_row("Payload", summarize_payload(operation.payload, max_length=200))
    console.print(Panel(grid, title=f"Operation [bold]{operation.id}[/bold]", expand=False))


def print_cache_table(entries: list[tuple[str, CacheEntry]], now: int) -> None:
    """Prints cache entries with their freshness."""
    if not entries:
        console.print("[dim]The cache is empty.[/dim]")
        return

    table = Table(box=box.SIMPLE_HEAVY, header_style="bold cyan")
    table.add_column("Key", style="cyan")
    table.add_column("State")
    table.add_column("Cached")
    table.add_column("Expires in", justify="right")
    table.add_column("Tags", style="magenta")
    table.add_column("Data", style="dim")
    for key, entry in sorted(entries, key=lambda item: item[0]):
        state = "[yellow]stale[/yellow]" if entry.stale else "[green]fresh[/green]"
        if entry.expires_at is None:
            expires = "never"
        elif entry.stale:
            expires = f"-{format_duration_ms(now - entry.expires_at)}"
        else:
            expires = format_duration_ms(entry.expires_at - now)
        table.add_row(
            key,
            state,
            format_timestamp_ms(entry.cached_at),
            expires,
            ", ".join(entry.tags or []),
            summarize_payload(entry.data),
        )
    console.print(table)
    console.print(f"[bold]{len(entries)}[/bold] cache entries")
