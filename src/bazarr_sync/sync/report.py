"""Progress observers: how a run reports what it is doing."""

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

import click

from ..models import ResumeDirective, SyncSummary

if TYPE_CHECKING:
    from .processor import TrackResult

logger = logging.getLogger(__name__)

RULE = "-" * 60


class SyncObserver:
    """Receives progress callbacks from the traversal. Does nothing by default."""

    def on_listing(self, noun: str, total: int) -> None:
        pass

    def on_unit(self, index: int, total: int, title: str, count: int, noun: str) -> None:
        pass

    def on_unit_skipped(self, index: int, total: int, title: str, reason: str) -> None:
        pass

    def on_attempt(self, label: str, language: str) -> None:
        pass

    def on_retry(self, label: str, language: str, message: str) -> None:
        pass

    def on_track(self, label: str, language: str, result: "TrackResult") -> None:
        pass

    def on_summary(self, summary: SyncSummary) -> None:
        pass

    def on_interrupt(self, directive: ResumeDirective) -> None:
        pass


class ConsoleReporter(SyncObserver):
    """Prints one line per media unit and subtitle, plus a final summary."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def on_listing(self, noun: str, total: int) -> None:
        click.echo(f"Found {total} {noun} in your Bazarr library.")
        click.echo("Starting sync process...")
        click.echo(RULE)

    def on_unit(self, index: int, total: int, title: str, count: int, noun: str) -> None:
        click.echo(f"[{index}/{total}] PROCESSING: {title} ({count} {noun})")

    def on_unit_skipped(self, index: int, total: int, title: str, reason: str) -> None:
        click.echo(f"[{index}/{total}] {reason}: {title}")

    def on_attempt(self, label: str, language: str) -> None:
        click.echo(f"  └─ SYNCING [{label} - {language}]: ", nl=False)

    def on_retry(self, label: str, language: str, message: str) -> None:
        if self.verbose:
            click.echo(click.style(f"✗ Failed ({message}), retrying...", fg="yellow"))
        else:
            click.echo(click.style("✗ Failed, retrying...", fg="yellow"))
        click.echo(f"  └─ RETRYING [{label} - {language}]: ", nl=False)

    def on_track(self, label: str, language: str, result: "TrackResult") -> None:
        from .processor import TrackState

        if result.state is TrackState.INELIGIBLE:
            click.echo(f"  └─ SKIP [{label} - {language}]: Embedded or missing subtitle")
        elif result.state is TrackState.CACHE_HIT:
            click.echo(f"  └─ CACHED [{label} - {language}]: Already synced")
        elif result.state is TrackState.SYNCED:
            click.echo(click.style("✓ Success", fg="green"))
        elif result.state is TrackState.ALREADY_IN_SYNC:
            click.echo(click.style("✓ Already in sync", fg="green"))
        elif self.verbose:
            click.echo(click.style(f"✗ Failed: {result.message}", fg="red"))
        else:
            click.echo(click.style("✗ Failed", fg="red"))

    def on_summary(self, summary: SyncSummary) -> None:
        click.echo(RULE)
        click.echo("Sync completed:")
        click.echo(f"  ✅ {summary.newly_synced} newly synced")
        click.echo(f"  ✓  {summary.already_in_sync} already in sync")
        click.echo(f"  ⏭️  {summary.skipped} skipped (cached/embedded)")
        click.echo(f"  ❌ {summary.failed} failed")
        if summary.failed and not self.verbose:
            click.echo("\n💡 Tip: Run with --verbose to see detailed error messages")

    def on_interrupt(self, directive: ResumeDirective) -> None:
        if not directive.has_marker:
            click.echo("\nStopping current sync. No subtitles have been processed yet.")
            return
        click.echo("\nStopping current sync. To continue from this point the next time, run:")
        click.echo(f"  {directive.command}")


def print_catalog(rows: Iterable[tuple[str, int]], id_header: str) -> None:
    """Print media titles with their Radarr/Sonarr ids."""
    rows = list(rows)
    click.echo(f"{'Title':<60} {id_header}")
    click.echo("-" * 70)
    for title, external_id in rows:
        click.echo(f"{title:<60} {external_id}")
    click.echo(f"\nTotal: {len(rows)}")
