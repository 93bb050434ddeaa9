"""
Command-line interface for dashboard_sync.

Provides CLI commands for connecting accounts, managing sync providers
and running synchronization between local collections and Google.

Usage:
    # Show help
    dashboard-sync --help

    # Connect the Google account
    dashboard-sync auth

    # Configure providers
    dashboard-sync providers add google-tasks --auto-sync
    dashboard-sync providers list

    # Run synchronization
    dashboard-sync sync
    dashboard-sync sync --provider google-calendar

    # Keep syncing in the foreground
    dashboard-sync daemon --interval 5m
"""

import sys
from pathlib import Path

import click

from dashboard_sync import __version__
from dashboard_sync.auth.google_auth import (
    GOOGLE,
    OAUTH_PROVIDERS,
    AuthenticationError,
    GoogleAuth,
)
from dashboard_sync.config.loader import ConfigError, ConfigLoader, SyncSettings
from dashboard_sync.config.sync_config import SyncConfig, SyncConfigError
from dashboard_sync.errors import SyncError
from dashboard_sync.manager import SyncManager
from dashboard_sync.providers import PROVIDER_TYPES
from dashboard_sync.storage.collections import CollectionRepository
from dashboard_sync.storage.db import LocalStore, StorageError
from dashboard_sync.sync.engine import SyncResult
from dashboard_sync.utils import resolve_config_dir
from dashboard_sync.utils.logging import cleanup_old_logs, get_logger, setup_logging
from dashboard_sync.utils.paths import resolve_database_path


def get_config_dir(config_dir: str | None) -> Path:
    """Get the configuration directory path."""
    return resolve_config_dir(config_dir)


def fail(message: str) -> None:
    """Print an error message and exit with status 1."""
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    sys.exit(1)


def open_store(ctx: click.Context) -> LocalStore:
    """Open the local store of the configured directory."""
    config_dir: Path = ctx.obj["config_dir"]
    settings: SyncSettings = ctx.obj["settings"]
    config_dir.mkdir(parents=True, exist_ok=True)
    store = LocalStore(str(resolve_database_path(config_dir, settings.database_file)))
    store.initialize()
    return store


def build_manager(ctx: click.Context) -> SyncManager:
    """Create a sync manager with providers loaded from the store."""
    auth = GoogleAuth(
        config_dir=ctx.obj["config_dir"],
        max_refresh_attempts=ctx.obj["settings"].retry_max_attempts,
        refresh_base_delay=ctx.obj["settings"].retry_base_delay,
    )
    manager = SyncManager(open_store(ctx), auth, settings=ctx.obj["settings"])
    manager.load()
    return manager


def echo_result(name: str, result: SyncResult) -> None:
    """Print one provider's sync result."""
    if result.success:
        click.echo(click.style(f"{name}: {result.message}", fg="green"))
    else:
        click.echo(click.style(f"{name}: {result.message}", fg="red"), err=True)
    for warning in result.warnings:
        click.echo(click.style(f"  Warning: {warning}", fg="yellow"))


@click.group()
@click.version_option(version=__version__, prog_name="dashboard-sync")
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output with detailed logging."
)
@click.option(
    "--config-dir",
    "-c",
    type=click.Path(exists=False, file_okay=False, dir_okay=True),
    envvar="DASHBOARD_SYNC_CONFIG_DIR",
    help="Configuration directory path (default: ~/.dashboard-sync).",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_dir: str | None) -> None:
    """
    Dashboard remote sync.

    Synchronizes local todo lists and calendar events with Google Tasks
    and Google Calendar.
    """
    ctx.ensure_object(dict)

    resolved_config_dir = get_config_dir(config_dir)
    ctx.obj["config_dir"] = resolved_config_dir
    ctx.obj["verbose"] = verbose

    # Load settings; a broken config file falls back to defaults
    settings = SyncSettings()
    try:
        settings = ConfigLoader(config_dir=resolved_config_dir).load_settings()
    except ConfigError as e:
        click.echo(
            click.style(f"Warning: Configuration error: {e}", fg="yellow"), err=True
        )
    ctx.obj["settings"] = settings

    log_dir = (
        Path(settings.log_dir).expanduser()
        if settings.log_dir
        else resolved_config_dir / "logs"
    )
    setup_logging(verbose=verbose, log_dir=log_dir, enable_file_logging=True)
    cleanup_old_logs(log_dir=log_dir)


# =============================================================================
# Auth Command
# =============================================================================


@cli.command("auth")
@click.option(
    "--provider",
    "-p",
    default=GOOGLE,
    show_default=True,
    type=click.Choice(OAUTH_PROVIDERS, case_sensitive=False),
    help="OAuth provider to connect.",
)
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Force re-authentication even if already connected.",
)
@click.pass_context
def auth_command(ctx: click.Context, provider: str, force: bool) -> None:
    """
    Connect an OAuth account.

    Opens a browser window to complete the OAuth flow and stores the
    credentials for future syncs.

    Examples:

        dashboard-sync auth

        dashboard-sync auth --force
    """
    logger = get_logger(__name__)
    config_dir = ctx.obj["config_dir"]

    click.echo(f"Connecting {provider}...")

    try:
        auth = GoogleAuth(config_dir=config_dir)

        if not force and auth.is_connected(provider):
            click.echo(click.style(f"{provider} is already connected.", fg="green"))
            click.echo("Use --force to re-authenticate.")
            return

        auth.connect(provider, force=force)
        click.echo(click.style(f"Successfully connected {provider}!", fg="green"))
        logger.info(f"Authentication completed for {provider}")

    except FileNotFoundError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        click.echo("\nTo get started:", err=True)
        click.echo("1. Go to https://console.cloud.google.com/", err=True)
        click.echo("2. Enable the Google Tasks and Google Calendar APIs", err=True)
        click.echo("3. Create OAuth 2.0 credentials (Desktop application)", err=True)
        click.echo(
            f"4. Download and save as: {config_dir / 'credentials.json'}", err=True
        )
        sys.exit(1)

    except AuthenticationError as e:
        logger.error(f"Authentication failed: {e}")
        click.echo(click.style(f"Authentication failed: {e}", fg="red"), err=True)
        sys.exit(1)


# =============================================================================
# Status Command
# =============================================================================


@cli.command("status")
@click.pass_context
def status_command(ctx: click.Context) -> None:
    """
    Show connection and provider status.

    Example:

        dashboard-sync status
    """
    try:
        manager = build_manager(ctx)
    except StorageError as e:
        fail(str(e))
        return

    status = manager.gateway.get_status()  # type: ignore[attr-defined]

    click.echo("=== Dashboard Sync Status ===\n")
    click.echo(f"Configuration directory: {status['config_dir']}")
    creds_status = (
        "Found"
        if status["credentials_exist"]
        else click.style("Not found", fg="red")
    )
    click.echo(f"OAuth credentials: {creds_status}")
    click.echo()

    for oauth_provider in OAUTH_PROVIDERS:
        details = status.get(oauth_provider, {})
        if isinstance(details, dict) and details.get("connected"):
            state = click.style("Connected", fg="green")
        else:
            state = click.style("Not connected", fg="red")
        click.echo(f"{oauth_provider}: {state}")
    click.echo()

    providers = manager.get_all_providers()
    if not providers:
        click.echo("No providers configured.")
        click.echo("Run 'dashboard-sync providers add google-tasks' to add one.")
        return

    click.echo("=== Providers ===\n")
    for provider in providers:
        config = provider.config
        enabled = (
            click.style("enabled", fg="green")
            if config.enabled
            else click.style("disabled", fg="yellow")
        )
        auto = f"every {config.sync_interval}m" if config.auto_sync else "manual"
        click.echo(
            f"{config.provider}: {enabled}, {auto}, "
            f"collection: {config.collection_id or 'not selected'}"
        )


# =============================================================================
# Providers Commands
# =============================================================================


@cli.group("providers")
def providers_group() -> None:
    """Manage sync providers."""


@providers_group.command("list")
@click.pass_context
def providers_list_command(ctx: click.Context) -> None:
    """List available and configured providers."""
    manager = build_manager(ctx)

    for name in sorted(PROVIDER_TYPES):
        provider = manager.get_provider(name)
        if provider is None:
            state = "not configured"
        elif provider.enabled:
            state = click.style("enabled", fg="green")
        else:
            state = click.style("disabled", fg="yellow")
        click.echo(f"{name} ({PROVIDER_TYPES[name].display_name}): {state}")


@providers_group.command("add")
@click.argument("name", type=click.Choice(sorted(PROVIDER_TYPES)))
@click.option("--collection-id", default=None, help="Remote collection to sync with.")
@click.option("--auto-sync", is_flag=True, help="Include in daemon sync cycles.")
@click.option(
    "--interval",
    "sync_interval",
    default=15,
    show_default=True,
    type=int,
    help="Auto-sync interval in minutes.",
)
@click.option("--disabled", is_flag=True, help="Add the provider disabled.")
@click.pass_context
def providers_add_command(
    ctx: click.Context,
    name: str,
    collection_id: str | None,
    auto_sync: bool,
    sync_interval: int,
    disabled: bool,
) -> None:
    """
    Add or replace a provider configuration.

    Examples:

        dashboard-sync providers add google-tasks

        dashboard-sync providers add google-calendar --auto-sync --interval 30
    """
    try:
        config = SyncConfig(
            provider=name,
            enabled=not disabled,
            credentials={"oauthProvider": PROVIDER_TYPES[name].oauth_provider},
            collection_id=collection_id,
            auto_sync=auto_sync,
            sync_interval=sync_interval,
        )
        build_manager(ctx).add_provider(config)
    except SyncConfigError as e:
        fail(str(e))
        return

    click.echo(click.style(f"Provider {name} saved.", fg="green"))


@providers_group.command("remove")
@click.argument("name")
@click.pass_context
def providers_remove_command(ctx: click.Context, name: str) -> None:
    """Remove a provider configuration."""
    if build_manager(ctx).remove_provider(name):
        click.echo(click.style(f"Provider {name} removed.", fg="green"))
    else:
        click.echo(f"Provider {name} is not configured.")


def _set_enabled(ctx: click.Context, name: str, enabled: bool) -> None:
    try:
        build_manager(ctx).set_enabled(name, enabled)
    except KeyError:
        fail(f"Provider {name} is not configured.")
        return
    state = "enabled" if enabled else "disabled"
    click.echo(click.style(f"Provider {name} {state}.", fg="green"))


@providers_group.command("enable")
@click.argument("name")
@click.pass_context
def providers_enable_command(ctx: click.Context, name: str) -> None:
    """Enable a provider."""
    _set_enabled(ctx, name, True)


@providers_group.command("disable")
@click.argument("name")
@click.pass_context
def providers_disable_command(ctx: click.Context, name: str) -> None:
    """Disable a provider."""
    _set_enabled(ctx, name, False)


# =============================================================================
# Sync Command
# =============================================================================


@cli.command("sync")
@click.option(
    "--provider",
    "-p",
    "provider_name",
    default=None,
    help="Sync only this provider (default: every enabled provider).",
)
@click.pass_context
def sync_command(ctx: click.Context, provider_name: str | None) -> None:
    """
    Synchronize local collections with the configured providers.

    Remote changes are pulled first, then local changes are pushed.
    Exits with status 1 if any provider failed.

    Examples:

        dashboard-sync sync

        dashboard-sync -v sync --provider google-tasks
    """
    logger = get_logger(__name__)
    manager = build_manager(ctx)

    if provider_name is not None:
        if manager.get_provider(provider_name) is None:
            fail(f"Provider {provider_name} is not configured.")
            return
        results = {provider_name: manager.sync_provider(provider_name)}
    else:
        if not manager.get_enabled_providers():
            click.echo("No enabled providers to sync.")
            return
        manager.sync_all()
        results = dict(manager.last_results)

    for name, result in results.items():
        echo_result(name, result)

    if not all(result.success for result in results.values()):
        logger.debug("At least one provider failed to sync")
        sys.exit(1)


# =============================================================================
# Daemon Command
# =============================================================================


@cli.command("daemon")
@click.option(
    "--interval",
    "-i",
    default=None,
    help=(
        "How often providers are checked (e.g., '30s', '5m', '1h'). "
        "Defaults to the config value or '5m'."
    ),
)
@click.option(
    "--no-initial-sync",
    is_flag=True,
    help="Skip the sync cycle on startup.",
)
@click.pass_context
def daemon_command(
    ctx: click.Context, interval: str | None, no_initial_sync: bool
) -> None:
    """
    Run auto-sync in the foreground.

    Providers added with --auto-sync are synced whenever their own
    interval has elapsed. Stop with Ctrl+C.

    Examples:

        dashboard-sync daemon

        dashboard-sync -v daemon --interval 1m
    """
    from dashboard_sync.daemon import AutoSyncScheduler, parse_interval

    settings: SyncSettings = ctx.obj["settings"]
    effective_interval = interval or settings.daemon_interval
    try:
        interval_seconds = parse_interval(effective_interval)
    except ValueError as e:
        fail(str(e))
        return

    manager = build_manager(ctx)
    enabled = manager.get_enabled_providers()
    if not any(provider.config.auto_sync for provider in enabled):
        click.echo(
            click.style("No enabled provider has auto-sync turned on.", fg="yellow")
        )

    click.echo(f"Starting auto-sync every {effective_interval} (Ctrl+C to stop)")
    scheduler = AutoSyncScheduler(
        manager, interval=interval_seconds, run_immediately=not no_initial_sync
    )
    scheduler.run()

    stats = scheduler.stats
    click.echo(
        f"Stopped after {stats.cycle_count} cycle(s): "
        f"{stats.cycle_success_count} succeeded, {stats.cycle_error_count} failed"
    )


# =============================================================================
# Delete Command
# =============================================================================


@cli.command("delete")
@click.argument("list_id")
@click.argument("record_id")
@click.option(
    "--provider",
    "-p",
    "provider_name",
    default=None,
    help="Provider owning the list (default: found by list id).",
)
@click.pass_context
def delete_command(
    ctx: click.Context, list_id: str, record_id: str, provider_name: str | None
) -> None:
    """
    Delete a record locally and from its provider.

    The local copy is always deleted; remote failures are reported as
    warnings.

    Example:

        dashboard-sync delete 1f0c2d3e google-abc123
    """
    manager = build_manager(ctx)

    if provider_name is not None:
        provider = manager.get_provider(provider_name)
        if provider is None:
            fail(f"Provider {provider_name} is not configured.")
            return
    else:
        provider = next(
            (
                candidate
                for candidate in manager.get_all_providers()
                if candidate.repository.get_collection(list_id) is not None
            ),
            None,
        )

    if provider is None:
        # No provider owns the list; delete locally in the default namespace
        if not CollectionRepository(manager.store).remove_record(list_id, record_id):
            fail(f"Record {record_id} not found in list {list_id}.")
            return
        click.echo(click.style(f"Deleted {record_id} locally.", fg="green"))
        return

    try:
        warnings = provider.delete_local_record(list_id, record_id)
    except SyncError as e:
        fail(e.message)
        return

    for warning in warnings:
        click.echo(click.style(f"Warning: {warning}", fg="yellow"))
    click.echo(click.style(f"Deleted {record_id}.", fg="green"))
