"""
Defines the command-line interface for inspecting and maintaining the offline
cache and sync queue using Typer.
"""

import asyncio
import logging
import os
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from offline_kit import __version__
from offline_kit.cache.manager import CacheManager
from offline_kit.exceptions import OfflineKitError
from offline_kit.models.config import OfflineConfig
from offline_kit.models.records import SyncStatus
from offline_kit.storage.config_manager import ConfigManager
from offline_kit.storage.factory import open_storage
from offline_kit.sync.connectivity import HttpConnectivityMonitor, ManualConnectivity
from offline_kit.sync.queue import SyncQueue
from offline_kit.utils.duration import now_ms, parse_duration
from offline_kit.utils.event_log import EventLog

from .formatters import (
    print_cache_table,
    print_config,
    print_operation_detail,
    print_operations_table,
    print_validation_table,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)

app = typer.Typer(
    name="offline-kit",
    help=(
        "Inspect and maintain an offline cache and durable sync queue. Use"
        " 'offline-kit <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)
cache_app = typer.Typer(help="Inspect and invalidate cached entries.")
queue_app = typer.Typer(help="Inspect and manage queued operations.")
app.add_typer(cache_app, name="cache")
app.add_typer(queue_app, name="queue")


def get_config_dir() -> Path:
    if override := os.getenv("OFFLINE_KIT_CONFIG_DIR"):
        return Path(override).expanduser()
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "offline-kit"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_config() -> OfflineConfig:
    try:
        return ConfigManager(CONFIG_FILE).load_config()
    except OfflineKitError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e


def _open_cache(config: OfflineConfig) -> CacheManager:
    return CacheManager(open_storage(config), prefix=config.cache_prefix)


def _audit(ctx: typer.Context, event: str, **fields) -> None:
    """Records a maintenance action when --log-dir is active."""
    if isinstance(ctx.obj, EventLog):
        ctx.obj.record(logging.INFO, event, **fields)


def _open_queue(config: OfflineConfig) -> SyncQueue:
    """
    Opens the queue detached from the network: the CLI has no handlers, so it
    must never dispatch.
    """
    return SyncQueue(
        open_storage(config),
        config.queue_options().model_copy(update={"auto_sync": False}),
        connectivity=ManualConnectivity(online=False),
        prefix=config.queue_prefix,
    )


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    log_dir: Path | None = typer.Option(
        None,
        "--log-dir",
        envvar="OFFLINE_KIT_LOG_DIR",
        help="Append a JSONL audit record of every change to a file in this"
        " directory.",
    ),
):
    """Offline cache and sync queue console"""
    if version:
        console.print(f"[bold]offline-kit[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "WARNING"
    if verbose == 1:
        log_level = "INFO"
    elif verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("offline_kit").setLevel(log_level)

    if log_dir is not None:
        try:
            event_log = EventLog.in_directory(log_dir, command=ctx.invoked_subcommand)
        except OfflineKitError as e:
            console.print(f"[red]✗ {e}[/red]")
            raise typer.Exit(code=1) from e
        ctx.obj = event_log
        ctx.call_on_close(event_log.close)

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]offline-kit init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        config_manager.load_config()
        print_config(CONFIG_FILE, config_manager._get_config_as_dict())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    backend: str = typer.Option(
        "sqlite", "--backend", "-b", help="Storage backend: memory, file or sqlite."
    ),
    path: Path | None = typer.Option(
        None,
        "--path",
        "-p",
        help="Storage location (default: offline.sqlite or offline.json in the"
        " config directory).",
    ),
    default_ttl: str | None = typer.Option(
        None, "--ttl", help="Default cache TTL, e.g. 30m or 1d."
    ),
    max_retries: int = typer.Option(
        5, "--max-retries", help="Attempts before an operation is marked failed."
    ),
    concurrency: int = typer.Option(
        3, "--concurrency", "-c", help="Operations dispatched at once per sync pass."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration file."
    ),
):
    """Create the configuration file."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    if path is None and backend in ("file", "sqlite"):
        suffix = "sqlite" if backend == "sqlite" else "json"
        path = CONFIG_DIR / f"offline.{suffix}"

    settings = {
        "storage_backend": backend,
        "storage_path": str(path) if path else "",
        "default_ttl": default_ttl,
        "max_retries": max_retries,
        "concurrency": concurrency,
    }
    try:
        OfflineConfig(**settings)
        ConfigManager(CONFIG_FILE).save_new_config(settings)
    except (OfflineKitError, ValueError) as e:
        console.print(f"[red]✗ Invalid settings: {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(f"[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        config = ConfigManager(CONFIG_FILE).load_config()
        print_validation_table(config)
    except OfflineKitError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e


@cache_app.command("list")
def cache_list():
    """List cached entries with their freshness."""
    config = _load_config()

    async def _list():
        cache = _open_cache(config)
        try:
            entries = await cache.list_entries()
        finally:
            await cache.storage.close()
        print_cache_table(entries, now_ms())

    asyncio.run(_list())


@cache_app.command("get")
def cache_get(
    key: str = typer.Argument(..., help="Cache key (without prefix)."),
):
    """Show a single cached entry."""
    config = _load_config()

    async def _get():
        cache = _open_cache(config)
        try:
            entry = await cache.get(key, max_stale=config.max_stale)
        finally:
            await cache.storage.close()
        if entry is None:
            console.print(f"[yellow]No live entry for '{key}'.[/yellow]")
            raise typer.Exit(code=1)
        print_cache_table([(key, entry)], now_ms())

    asyncio.run(_get())


@cache_app.command("invalidate")
def cache_invalidate(
    ctx: typer.Context,
    key_or_tag: str = typer.Argument(..., help="A cache key or a tag."),
):
    """Delete an entry by key and every entry carrying the tag."""
    config = _load_config()

    async def _invalidate():
        cache = _open_cache(config)
        try:
            return await cache.invalidate(key_or_tag)
        finally:
            await cache.storage.close()

    count = asyncio.run(_invalidate())
    _audit(ctx, "cache_invalidated", key_or_tag=key_or_tag, removed=count)
    console.print(f"[green]✓ Invalidated {count} entries for '{key_or_tag}'.[/green]")


@cache_app.command("purge")
def cache_purge(
    ctx: typer.Context,
    max_stale: str | None = typer.Option(
        None, "--max-stale", help="Keep entries expired less than this long ago."
    ),
):
    """Remove entries whose staleness window has closed."""
    config = _load_config()

    async def _purge():
        cache = _open_cache(config)
        try:
            return await cache.purge_expired(
                parse_duration(max_stale) if max_stale else config.max_stale
            )
        finally:
            await cache.storage.close()

    try:
        count = asyncio.run(_purge())
    except OfflineKitError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e
    _audit(ctx, "cache_purged", removed=count)
    console.print(f"[green]✓ Purged {count} expired entries.[/green]")


@cache_app.command("clear")
def cache_clear(
    ctx: typer.Context,
    force: bool = typer.Option(
        False, "--force", "-f", help="Bypass the confirmation prompt."
    ),
):
    """Remove every cached entry."""
    if not force and not typer.confirm("Clear the entire cache?"):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Abort()
    config = _load_config()

    async def _clear():
        cache = _open_cache(config)
        try:
            return await cache.clear()
        finally:
            await cache.storage.close()

    count = asyncio.run(_clear())
    _audit(ctx, "cache_cleared", removed=count)
    console.print(f"[green]✓ Cache cleared ({count} entries removed).[/green]")


@queue_app.command("list")
def queue_list(
    status: SyncStatus | None = typer.Option(
        None, "--status", "-s", help="Only show operations with this status."
    ),
):
    """List queued operations in dispatch order."""
    config = _load_config()

    async def _list():
        queue = _open_queue(config)
        try:
            operations = await queue.list_operations()
        finally:
            await queue.aclose()
            await queue.storage.close()
        operations.sort(key=lambda op: (-op.priority, op.created_at))
        if status is not None:
            operations = [op for op in operations if op.status == status]
        print_operations_table(operations)

    asyncio.run(_list())


@queue_app.command("show")
def queue_show(operation_id: str = typer.Argument(..., help="Operation ID.")):
    """Show every field of a queued operation."""
    config = _load_config()

    async def _show():
        queue = _open_queue(config)
        try:
            return await queue.get(operation_id)
        finally:
            await queue.aclose()
            await queue.storage.close()

    operation = asyncio.run(_show())
    if operation is None:
        console.print(f"[red]✗ No operation with ID '{operation_id}'.[/red]")
        raise typer.Exit(code=1)
    print_operation_detail(operation)


@queue_app.command("requeue")
def queue_requeue(
    ctx: typer.Context,
    operation_id: str | None = typer.Argument(None, help="Failed operation ID."),
    all_failed: bool = typer.Option(
        False, "--all", help="Requeue every failed operation."
    ),
):
    """Reset failed operations to pending so the next sync picks them up."""
    if not operation_id and not all_failed:
        console.print("[red]✗ Give an operation ID or --all.[/red]")
        raise typer.Exit(code=1)
    config = _load_config()

    async def _requeue() -> list[str]:
        queue = _open_queue(config)
        try:
            if all_failed:
                ids = [op.id for op in await queue.get_failed()]
            else:
                ids = [operation_id]
            return [op_id for op_id in ids if await queue.retry(op_id)]
        finally:
            await queue.aclose()
            await queue.storage.close()

    requeued = asyncio.run(_requeue())
    for op_id in requeued:
        _audit(ctx, "queue_requeued", operation_id=op_id)
    if not requeued:
        console.print("[yellow]No failed operations were requeued.[/yellow]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓ Requeued {len(requeued)} operation(s).[/green]")


@queue_app.command("remove")
def queue_remove(
    ctx: typer.Context,
    operation_id: str = typer.Argument(..., help="Operation ID."),
):
    """Permanently delete a queued operation."""
    config = _load_config()

    async def _remove() -> bool:
        queue = _open_queue(config)
        try:
            if await queue.get(operation_id) is None:
                return False
            await queue.remove(operation_id)
            return True
        finally:
            await queue.aclose()
            await queue.storage.close()

    if not asyncio.run(_remove()):
        console.print(f"[red]✗ No operation with ID '{operation_id}'.[/red]")
        raise typer.Exit(code=1)
    _audit(ctx, "queue_removed", operation_id=operation_id)
    console.print(f"[green]✓ Removed operation {operation_id}.[/green]")


@queue_app.command("clear")
def queue_clear(
    ctx: typer.Context,
    force: bool = typer.Option(
        False, "--force", "-f", help="Bypass the confirmation prompt."
    ),
):
    """Delete every queued operation, including failed ones."""
    if not force and not typer.confirm(
        "Are you sure you want to clear the sync queue? "
        "Undelivered operations will be lost."
    ):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Abort()
    config = _load_config()

    async def _clear():
        queue = _open_queue(config)
        try:
            return await queue.clear()
        finally:
            await queue.aclose()
            await queue.storage.close()

    count = asyncio.run(_clear())
    _audit(ctx, "queue_cleared", removed=count)
    console.print(f"[green]✓ Sync queue cleared ({count} operations removed).[/green]")


@app.command()
def diagnose():
    """Diagnose configuration, storage and connectivity issues."""
    console.print("\n[bold cyan]Running diagnostics...[/bold cyan]\n")
    issues_found = False
    if CONFIG_FILE.is_file():
        console.print(f"[green]✓[/] Config file exists at: [dim]{CONFIG_FILE}[/dim]")
    else:
        console.print(
            "[red]✗ Config file not found.[/] Run [cyan]offline-kit init[/cyan]."
        )
        raise typer.Exit(code=1)
    try:
        config = ConfigManager(CONFIG_FILE).load_config()
        console.print("[green]✓[/] Configuration file is valid and can be loaded.")
    except OfflineKitError as e:
        console.print(f"[red]✗ Configuration validation failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    async def test_storage() -> bool:
        check_key = f"{config.cache_prefix}__diagnose__"
        try:
            storage = open_storage(config)
            try:
                await storage.set(check_key, {"ok": True})
                round_trip = await storage.get(check_key)
                await storage.delete(check_key)
            finally:
                await storage.close()
        except OfflineKitError as e:
            console.print(f"[red]✗ Storage check failed: {e}[/red]")
            return False
        if round_trip != {"ok": True}:
            console.print("[red]✗ Storage returned a different value than written.[/red]")
            return False
        console.print(f"[green]✓[/] Storage backend '{config.storage_backend}' works.")
        return True

    if not asyncio.run(test_storage()):
        issues_found = True

    if config.connectivity_url:
        console.print(f"\n[dim]Checking {config.connectivity_url}...[/dim]")
        monitor = HttpConnectivityMonitor(config.connectivity_url, timeout=10)
        if asyncio.run(monitor.check()):
            console.print("[green]✓[/] Remote endpoint is reachable.")
        else:
            console.print("[red]✗ Remote endpoint is unreachable.[/red]")
            issues_found = True
    else:
        console.print("[dim]No connectivity_url configured, skipping reachability check.[/dim]")

    console.print()
    if not issues_found:
        console.print(
            "[bold green]✓ All checks passed! Your setup looks good.[/bold green]\n"
        )
    else:
        console.print(
            "[bold red]✗ Some issues were found. "
            "Please review the messages above.[/bold red]\n"
        )
        raise typer.Exit(code=1)
