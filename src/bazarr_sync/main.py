"""Main entry point for bazarr-bulk-sync."""

import asyncio
import logging
import sys
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import click
import uvicorn
from click.core import ParameterSource
from fastapi import FastAPI

from . import __version__
from .api import health_router, status_router
from .bazarr import BazarrClient, CatalogError
from .config import Config, ConfigError, load_config
from .models import CacheKind
from .process import cancel_running_syncs
from .scheduler import ScheduleConfigError, SyncScheduler
from .sync import (
    CacheStore,
    ConsoleReporter,
    OrchestratorContext,
    Selection,
    Supervisor,
    TraversalEngine,
)
from .sync.report import print_catalog

logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130


def setup_logging(level: str = "INFO") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # Silence noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


@dataclass
class AppState:
    """Options collected by the root command, config loaded on demand."""

    config_path: str | None = None
    golden_section: bool | None = None
    no_framerate_fix: bool | None = None
    use_cache: bool | None = None
    verbose: bool = False
    _config: Config | None = None

    def config(self) -> Config:
        """Load the configuration once, applying command line overrides."""
        if self._config is not None:
            return self._config

        try:
            config, path = load_config(self.config_path)
        except ConfigError as e:
            click.echo(f"Configuration Error: {e}", err=True)
            click.echo(
                "Please supply a config.yaml file by using the flag --config "
                "or by placing the file in the current directory",
                err=True,
            )
            raise SystemExit(1) from e

        setup_logging(config.logging.level)
        logger.info("Using config file: %s", path)

        if self.golden_section is not None:
            config.sync_options.golden_section = self.golden_section
        if self.no_framerate_fix is not None:
            config.sync_options.no_framerate_fix = self.no_framerate_fix
        if self.use_cache is not None:
            config.cache.enabled = self.use_cache

        self._config = config
        return config


def _from_command_line(ctx: click.Context, name: str) -> bool:
    return ctx.get_parameter_source(name) is ParameterSource.COMMANDLINE


# ========== Sync ==========


async def _list_catalog(client: BazarrClient, kind: CacheKind) -> int:
    try:
        if kind is CacheKind.MOVIES:
            movies = await client.list_movies()
            print_catalog(((m.title, m.radarr_id) for m in movies), "RadarrId")
        else:
            shows = await client.list_shows()
            print_catalog(((s.title, s.sonarr_series_id) for s in shows), "SonarrSeriesId")
    except CatalogError as e:
        click.echo(f"Query Error: Could not query {kind.value}: {e}", err=True)
        return 1
    return 0


async def run_sync(
    config: Config,
    kind: CacheKind,
    selection: Selection,
    verbose: bool = False,
    to_list: bool = False,
) -> int:
    """Sync movies or shows once under interrupt supervision. Returns an exit code."""
    async with BazarrClient(config) as client:
        version = await client.get_version()
        if version:
            click.echo(f"Bazarr version: {click.style(version, fg='bright_blue')}")

        if to_list:
            return await _list_catalog(client, kind)

        cache = CacheStore(config.cache)
        cache.load_all()

        reporter = ConsoleReporter(verbose=verbose)
        ctx = OrchestratorContext(
            config=config,
            client=client,
            cache=cache,
            selection=selection,
            observer=reporter,
        )
        engine = TraversalEngine(ctx)
        work = engine.sync_movies() if kind is CacheKind.MOVIES else engine.sync_shows()

        supervisor = Supervisor(ctx.progress, argv=sys.argv, on_interrupt=reporter.on_interrupt)
        try:
            result = await supervisor.run(work)
        except CatalogError as e:
            click.echo(f"Query Error: Could not query {kind.value}: {e}", err=True)
            return 1

    return EXIT_INTERRUPTED if result.interrupted else 0


# ========== Scheduler ==========


def create_app(scheduler: SyncScheduler) -> FastAPI:
    """Create the status API served next to the scheduler."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting bazarr-bulk-sync scheduler...")
        scheduler.start()
        app.state.scheduler = scheduler
        app.state.client = scheduler.ctx.client

        yield

        logger.info("Shutting down bazarr-bulk-sync...")
        scheduler.shutdown()
        await scheduler.ctx.client.close()

    app = FastAPI(
        title="bazarr-bulk-sync",
        description="Scheduled bulk subtitle sync for Bazarr",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(health_router)  # /healthz, /readyz
    app.include_router(status_router)  # /api/status, /api/schedule, /api/last-run
    return app


def build_scheduler(config: Config, verbose: bool = False) -> SyncScheduler:
    client = BazarrClient(config)
    cache = CacheStore(config.cache)
    ctx = OrchestratorContext(
        config=config,
        client=client,
        cache=cache,
        observer=ConsoleReporter(verbose=verbose),
    )
    return SyncScheduler(ctx)


async def _run_scheduler_async(scheduler: SyncScheduler) -> None:
    try:
        if scheduler.schedule.enabled:
            await scheduler.serve()
        else:
            await scheduler.run_once()
    finally:
        await scheduler.ctx.client.close()


def run_scheduler(config: Config, verbose: bool = False) -> int:
    """Run the configured jobs once, or forever on the cron schedule."""
    try:
        scheduler = build_scheduler(config, verbose=verbose)
    except ScheduleConfigError as e:
        click.echo(f"Error: {e}", err=True)
        return 1

    if scheduler.schedule.enabled and config.server.enabled:
        uvicorn.run(
            create_app(scheduler),
            host=config.server.host,
            port=config.server.port,
            log_level=config.logging.level.lower(),
        )
        return 0

    asyncio.run(_run_scheduler_async(scheduler))
    return 0


# ========== CLI ==========


class AliasedGroup(click.Group):
    """Group that also resolves short aliases of its commands."""

    def __init__(self, *args: Any, aliases: dict[str, str] | None = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.aliases = aliases or {}

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        return super().get_command(ctx, self.aliases.get(cmd_name, cmd_name))

    def resolve_command(
        self, ctx: click.Context, args: list[str]
    ) -> tuple[str | None, click.Command | None, list[str]]:
        _, cmd, args = super().resolve_command(ctx, args)
        return (cmd.name if cmd else None), cmd, args


def _override_state(ctx: click.Context, param: click.Parameter, value: Any) -> Any:
    # Sync flags given after a subcommand win over the ones given before it
    if param.name and ctx.get_parameter_source(param.name) is ParameterSource.COMMANDLINE:
        setattr(ctx.find_object(AppState), param.name, value)
    return value


SYNC_FLAGS: tuple[tuple[str, dict[str, Any]], ...] = (
    ("--golden-section", {"is_flag": True, "help": "Use Golden-Section Search"}),
    ("--no-framerate-fix", {"is_flag": True, "help": "Don't try to fix framerate"}),
    ("--use-cache/--no-cache", {"default": None, "help": "Use cache to skip already synced subtitles"}),
    ("--verbose", {"is_flag": True, "help": "Show detailed error messages"}),
)


def sync_flags(f: Callable[..., Any]) -> Callable[..., Any]:
    """Accept the global sync flags on subcommands too."""
    for decl, attrs in reversed(SYNC_FLAGS):
        f = click.option(decl, expose_value=False, callback=_override_state, **attrs)(f)
    return f


@click.group(
    cls=AliasedGroup,
    aliases={"s": "sync", "stop": "cancel", "c": "cancel"},
    invoke_without_command=True,
)
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Config file (default is ./config.yaml)")
@click.option("--golden-section", is_flag=True, help="Use Golden-Section Search")
@click.option("--no-framerate-fix", is_flag=True, help="Don't try to fix framerate")
@click.option("--use-cache/--no-cache", default=None, help="Use cache to skip already synced subtitles")
@click.option("--verbose", is_flag=True, help="Show detailed error messages")
@click.option("--schedule", is_flag=True, help="Run on schedule defined in config file")
@click.option("--run-initial", is_flag=True, help="Run initial sync when starting scheduler")
@click.version_option(__version__)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    golden_section: bool,
    no_framerate_fix: bool,
    use_cache: bool | None,
    verbose: bool,
    schedule: bool,
    run_initial: bool,
) -> None:
    """Bulk-sync subtitles downloaded via Bazarr.

    Bazarr downloads subtitles automatically but offers no way to re-sync old
    ones in bulk. This tool walks your library through Bazarr's API and asks
    it to sync every subtitle to the audio track of its media.
    """
    state = AppState(
        config_path=config_path,
        golden_section=golden_section if _from_command_line(ctx, "golden_section") else None,
        no_framerate_fix=no_framerate_fix if _from_command_line(ctx, "no_framerate_fix") else None,
        use_cache=use_cache,
        verbose=verbose,
    )
    ctx.obj = state

    if ctx.invoked_subcommand is not None:
        return

    config = state.config()
    if run_initial:
        config.schedule.run_initial = True
    if schedule or config.schedule.enabled:
        ctx.exit(run_scheduler(config, verbose=verbose))
    click.echo(ctx.get_help())


@cli.group(cls=AliasedGroup, aliases={"show": "shows", "tv": "shows", "series": "shows"})
def sync() -> None:
    """Sync subtitles to the audio track of media files.

    Use 'movies' or 'shows' to choose what to sync.
    """


def _sync_command(state: AppState, kind: CacheKind, ids: tuple[int, ...], continue_from: int, to_list: bool) -> int:
    config = state.config()
    selection = Selection.build(ids, resume_from=continue_from)
    return asyncio.run(run_sync(config, kind, selection, verbose=state.verbose, to_list=to_list))


@sync.command()
@click.option("--radarr-id", "ids", type=int, multiple=True, help="Radarr id to sync (repeatable). See --list.")
@click.option("--continue-from", type=int, default=-1, show_default=True, help="Continue with the given Radarr movie id.")
@click.option("--list", "to_list", is_flag=True, help="List your movies with their Radarr id")
@sync_flags
@click.pass_obj
def movies(state: AppState, ids: tuple[int, ...], continue_from: int, to_list: bool) -> None:
    """Sync subtitles to the audio track of movies.

    By default Bazarr syncs to audio track 0 without golden-section search and
    with framerate fixing; use the global flags to change that.
    """
    sys.exit(_sync_command(state, CacheKind.MOVIES, ids, continue_from, to_list))


@sync.command()
@click.option("--sonarr-id", "ids", type=int, multiple=True, help="Sonarr series id to sync (repeatable). See --list.")
@click.option("--continue-from", type=int, default=-1, show_default=True, help="Continue with the given Sonarr episode id.")
@click.option("--list", "to_list", is_flag=True, help="List your shows with their Sonarr id")
@sync_flags
@click.pass_obj
def shows(state: AppState, ids: tuple[int, ...], continue_from: int, to_list: bool) -> None:
    """Sync subtitles to the audio track of TV show episodes."""
    sys.exit(_sync_command(state, CacheKind.SHOWS, ids, continue_from, to_list))


@cli.command()
@click.option("--run-initial", is_flag=True, help="Run initial sync when starting scheduler")
@sync_flags
@click.pass_obj
def schedule(state: AppState, run_initial: bool) -> None:
    """Run sync jobs on the schedule defined in the config file."""
    config = state.config()
    if run_initial:
        config.schedule.run_initial = True
    sys.exit(run_scheduler(config, verbose=state.verbose))


@cli.command()
def cancel() -> None:
    """Cancel any running sync operations."""
    pids = cancel_running_syncs()
    if not pids:
        click.echo("❌ No sync operations currently running")
        return
    for pid in pids:
        click.echo(f"🛑 Sent cancel signal to sync process (PID: {pid})")
    click.echo("✅ Cancel signal sent. The sync will stop gracefully.")


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
