"""
Typer application for inspecting and driving the storage tiers.
"""

import asyncio
import json
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import typer
from rich.logging import RichHandler

from unit_storage import __version__, crypto
from unit_storage.api.auth import CloudAuthenticator
from unit_storage.api.cloud import CloudDrive
from unit_storage.api.remote import RemoteRepository
from unit_storage.exceptions import UnitStorageError
from unit_storage.models.settings import StorageSettings
from unit_storage.models.tier_config import TierConfig
from unit_storage.storage.config_manager import ConfigManager
from unit_storage.storage.orchestrator import StorageOrchestrator
from unit_storage.storage.preferences import LocalStore

from .formatters import (
    console,
    format_error_with_suggestions,
    print_config,
    print_exists_table,
    print_keys_table,
    print_listing_table,
    print_lookup,
    print_stats_panel,
    print_validation_table,
)

log = logging.getLogger("unit_storage")

app = typer.Typer(
    name="unit-storage",
    help=(
        "Read and write unit data through the memory cache, session store,"
        " local files, a cloud drive and a read-only GitHub repository."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

VERBOSITY_LEVELS = {0: logging.WARNING, 1: logging.INFO}
CLOUD_TOKEN_ENV = "UNIT_STORAGE_CLOUD_TOKEN"


def _config_home() -> Path:
    if os.name == "nt":
        root = os.getenv("APPDATA", "~\\AppData\\Roaming")
    else:
        root = os.getenv("XDG_CONFIG_HOME", "~/.config")
    return Path(root).expanduser() / "unit-storage"


CONFIG_FILE = _config_home() / "config.ini"


def configure_logging(verbosity: int) -> None:
    logging.basicConfig(
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console,
                markup=True,
                rich_tracebacks=True,
                show_level=False,
                show_path=False,
            )
        ],
    )
    log.setLevel(VERBOSITY_LEVELS.get(verbosity, logging.DEBUG))


@contextmanager
def reported() -> Iterator[None]:
    """Turns storage errors into a suggestion panel and exit status 1."""
    try:
        yield
    except UnitStorageError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


def _settings() -> StorageSettings:
    with reported():
        return ConfigManager(CONFIG_FILE).load_config()


def _run(coro) -> Any:
    with reported():
        return asyncio.run(coro)


def _json_or_text(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


async def _open_storage(
    settings: StorageSettings, cloud_token: str | None
) -> StorageOrchestrator:
    drive = None
    if cloud_token:
        drive = CloudDrive(
            CloudAuthenticator(settings.cloud_client_id, settings.cloud_scopes),
            max_retries=settings.remote_retries,
            backoff_ms=settings.remote_backoff_ms,
        )
        await drive.auth.sign_in(lambda silent: cloud_token, silent=True)
    return StorageOrchestrator.from_settings(settings, cloud=drive)


def _repository(settings: StorageSettings) -> RemoteRepository:
    return RemoteRepository(
        settings.repo_owner,
        settings.repo_name,
        settings.data_path,
        settings.branch,
        default_token=settings.github_token or None,
        max_retries=settings.remote_retries,
        backoff_ms=settings.remote_backoff_ms,
    )


async def _with_repository(settings: StorageSettings, call):
    repo = _repository(settings)
    try:
        return await call(repo)
    finally:
        await repo.close()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0, "--verbose", "-v", count=True, help="-v for info logs, -vv for debug."
    ),
    version: bool = typer.Option(
        False, "--version", is_eager=True, help="Print the version and exit."
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Print the effective settings and exit."
    ),
    clear_cache: bool = typer.Option(
        False, "--clear-cache", help="Empty the local tier and exit."
    ),
):
    """unit-storage"""
    if version:
        console.print(f"unit-storage [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    configure_logging(verbose)

    if clear_cache:
        store_dir = _settings().local_storage_dir

        async def _wipe() -> int:
            store = LocalStore(store_dir)
            removed = await store.load_registry()
            await store.clear()
            return removed

        removed = _run(_wipe())
        console.print(
            f"[green]✓ Local store emptied ({removed} entries removed).[/green]"
        )
        raise typer.Exit()

    if show_config:
        print_config(CONFIG_FILE, _settings().model_dump())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    repo_owner: str = typer.Option(
        None, "--owner", help="Account that owns the data repo."
    ),
    repo_name: str = typer.Option(None, "--repo", help="Data repository name."),
    data_path: str = typer.Option(None, "--data-path", help="Folder holding the data."),
    branch: str = typer.Option(None, "--branch", help="Branch used for API calls."),
    github_token: str = typer.Option(None, "--github-token", help="GitHub API token."),
    storage_dir: Path = typer.Option(  # noqa: B008
        None, "--storage-dir", help="Where the local tier keeps its files."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Replace an existing file."
    ),
):
    """Write a configuration file."""
    if CONFIG_FILE.exists() and not force:
        typer.confirm(f"{CONFIG_FILE} exists. Replace it?", abort=True)

    given = {
        "repo_owner": repo_owner,
        "repo_name": repo_name,
        "data_path": data_path,
        "branch": branch,
        "github_token": github_token,
        "local_storage_dir": str(storage_dir) if storage_dir else None,
    }
    manager = ConfigManager(CONFIG_FILE)
    with reported():
        manager.save_new_config({k: v for k, v in given.items() if v is not None})
        manager.load_config()
    console.print(f"[bold green]✓ Wrote {CONFIG_FILE}[/bold green]")


@app.command()
def get(
    key: str = typer.Argument(..., help="Key to read."),
    cache_ttl: int = typer.Option(
        None, "--cache-ttl", help="Use the cache tier with this TTL (ms)."
    ),
    session_ttl: int = typer.Option(
        None, "--session-ttl", help="Use the session tier (ms)."
    ),
    local_ttl: int = typer.Option(None, "--local-ttl", help="Use the local tier (ms)."),
    google_id: str = typer.Option(
        None, "--google-id", help="Drive file id to consult."
    ),
    github_filename: str = typer.Option(
        None, "--github-filename", "-g", help="Repository file used as the last resort."
    ),
    private_key: str = typer.Option(
        None, "--private-key", help="Base64 X25519 private key."
    ),
    secure: bool = typer.Option(False, "--secure", help="Decrypt the value."),
    cloud_token: str = typer.Option(None, "--cloud-token", envvar=CLOUD_TOKEN_ENV),
    show_stats: bool = typer.Option(False, "--stats", help="Also print tier counters."),
):
    """Look a key up, fastest tier first."""
    settings = _settings()
    config = TierConfig(
        cache_ttl_ms=cache_ttl,
        session_ttl_ms=session_ttl,
        local_ttl_ms=local_ttl,
        google_id=google_id,
        github_filename=github_filename,
        private_key=private_key,
        secure=secure,
    )

    async def _lookup():
        async with await _open_storage(settings, cloud_token) as storage:
            found = await storage.lookup(key, config)
            print_lookup(
                key,
                found.value,
                found.source.value if found.source else None,
                [name.value for name in found.backfilled],
            )
            if show_stats:
                print_stats_panel(storage.stats)

    _run(_lookup())


@app.command(name="set")
def set_command(
    key: str = typer.Argument(..., help="Key to write."),
    value: str = typer.Argument(..., help="JSON value; anything else is kept as text."),
    cache_ttl: int = typer.Option(
        None, "--cache-ttl", help="Also write the cache (ms)."
    ),
    session_ttl: int = typer.Option(
        None, "--session-ttl", help="Also write the session (ms)."
    ),
    local_ttl: int = typer.Option(
        0, "--local-ttl", help="Local TTL in ms; 0 keeps forever."
    ),
    google_id: str = typer.Option(
        None, "--google-id", help="Drive file id to overwrite."
    ),
    public_key: str = typer.Option(
        None, "--public-key", help="Base64 X25519 public key."
    ),
    secure: bool = typer.Option(False, "--secure", help="Encrypt the value first."),
    cloud_token: str = typer.Option(None, "--cloud-token", envvar=CLOUD_TOKEN_ENV),
):
    """Write a value to each enabled writable tier."""
    settings = _settings()
    config = TierConfig(
        cache_ttl_ms=cache_ttl,
        session_ttl_ms=session_ttl,
        local_ttl_ms=local_ttl,
        google_id=google_id,
        public_key=public_key,
        secure=secure,
    )

    async def _write():
        async with await _open_storage(settings, cloud_token) as storage:
            return await storage.set(key, _json_or_text(value), config)

    report = _run(_write())
    targets = ", ".join(name.value for name in report.written) or "no tier"
    console.print(f"[green]✓ Stored '{key}' in {targets}.[/green]")
    for name, error in report.failed.items():
        console.print(f"[yellow]! {name.value}: {error}[/yellow]")


@app.command()
def delete(key: str = typer.Argument(..., help="Key to remove.")):
    """Remove a key from the cache, session and local tiers."""
    settings = _settings()

    async def _remove():
        async with StorageOrchestrator.from_settings(settings) as storage:
            return await storage.delete(key)

    removed = _run(_remove())
    if removed:
        tiers = ", ".join(name.value for name in removed)
        console.print(f"[green]✓ Removed '{key}' from {tiers}.[/green]")
    else:
        console.print(f"[yellow]○ '{key}' was not stored in any fast tier.[/yellow]")


@app.command()
def keys():
    """Show the keys each fast tier knows about."""
    settings = _settings()

    async def _collect():
        async with StorageOrchestrator.from_settings(settings) as storage:
            return await storage.keys()

    print_keys_table(_run(_collect()))


@app.command(name="remote-ls")
def remote_ls(dir_path: str = typer.Argument("", help="Folder below the data path.")):
    """List a folder of the data repository."""
    settings = _settings()
    listing = _run(
        _with_repository(settings, lambda repo: repo.list_directory(dir_path))
    )
    print_listing_table(dir_path, listing)


@app.command(name="remote-exists")
def remote_exists(
    filenames: list[str] = typer.Argument(..., help="Names to look for."),  # noqa: B008
    dir_path: str = typer.Option("", "--dir", help="Folder below the data path."),
):
    """Check many repository files with one listing request."""
    settings = _settings()
    found = _run(
        _with_repository(settings, lambda repo: repo.batch_exists(filenames, dir_path))
    )
    print_exists_table(found)


@app.command()
def keygen():
    """Print a fresh X25519 key pair."""
    private_key, public_key = crypto.generate_key_pair().export()
    console.print(f"Private key: [bold]{private_key}[/bold]")
    console.print(f"Public key:  [bold]{public_key}[/bold]")
    console.print("[dim]Share the public key with writers; keep the private one.[/dim]")


@app.command()
def validate():
    """Load the configuration and summarise it."""
    try:
        settings = ConfigManager(CONFIG_FILE).load_config()
    except UnitStorageError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e
    print_validation_table(settings)


@app.command()
def diagnose():
    """Check the configuration, the local store and the data repository."""
    problems: list[str] = []

    try:
        settings = ConfigManager(CONFIG_FILE).load_config()
    except UnitStorageError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print(f"[green]✓[/green] Loaded [dim]{CONFIG_FILE}[/dim]")

    store_dir = Path(settings.local_storage_dir)
    if store_dir.exists() and not os.access(store_dir, os.W_OK):
        problems.append(f"local store {store_dir} is read-only")
    else:
        console.print(f"[green]✓[/green] Local store [dim]{store_dir}[/dim]")

    async def _probe_repo(repo: RemoteRepository) -> None:
        await repo.list_directory("")

    try:
        asyncio.run(_with_repository(settings, _probe_repo))
        console.print(
            f"[green]✓[/green] Reached {settings.repo_owner}/{settings.repo_name}"
        )
    except UnitStorageError as e:
        problems.append(f"repository unreachable: {e}")

    for problem in problems:
        console.print(f"[red]✗ {problem}[/red]")
    if problems:
        raise typer.Exit(code=1)
    console.print("[bold green]Everything looks fine.[/bold green]")
