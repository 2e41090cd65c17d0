"""Project transfer commands for the reelsync CLI.

Commands:
- projects: List projects in the shared root folder
- push: Upload a project and its media
- status: Compare a remote project with a local folder
- pull: Download a project into a local folder
- patch: Repoint media paths in a project document
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from reelsync.client.cli.config import (
    build_drive_config,
    get_concurrency,
    get_sync_folder,
    load_config,
    optional_coordinator_config,
)
from reelsync.client.coordination import CoordinationError
from reelsync.client.drive import DriveError
from reelsync.client.sync.download import ConflictStrategy, PullPlan
from reelsync.client.sync.patcher import patch_project_file
from reelsync.client.sync.types import PatchError, ProgressEvent, SyncError
from reelsync.core.types import TransferStatus

_STATUS_SYMBOLS = {
    TransferStatus.COMPLETE: "↑",
    TransferStatus.SKIPPED: "=",
    TransferStatus.FAILED: "✗",
    TransferStatus.CANCELLED: "-",
}


def read_media_list(path: Path) -> list[Path]:
    """Read media paths from a file, one per line (blank lines and # comments skipped)."""
    media: list[Path] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            media.append(Path(line))
    return media


def echo_done(event: ProgressEvent) -> None:
    """Progress sink printing one line per finished file."""
    if event.phase == "done":
        click.echo(f"  ✓ {event.key} ({event.bytes_done} bytes)")


def _new_session(concurrency: int | None = None, verify_hash: bool = False):  # type: ignore[no-untyped-def]
    from reelsync.client.session import SyncSession

    config = load_config()
    return SyncSession(
        build_drive_config(config),
        optional_coordinator_config(config),
        editor_name=config.get("editor_name", ""),
        concurrency=concurrency or get_concurrency(config),
        verify_hash=verify_hash,
    )


def _run(coro):  # type: ignore[no-untyped-def]
    """Run a coroutine, turning engine errors into CLI errors."""
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        click.echo("\nCancelled.", err=True)
        sys.exit(130)
    except (SyncError, DriveError, CoordinationError) as e:
        raise click.ClickException(str(e)) from e


@click.command()
def projects() -> None:
    """List projects in the shared root folder."""
    session = _new_session()

    async def run() -> None:
        async with session:
            folders = await session.downloads.list_projects()
        if not folders:
            click.echo("No projects")
        for folder in folders:
            click.echo(f"{folder.name}  {folder.modified_time or ''}".rstrip())

    try:
        _run(run())
    except ValueError as e:
        raise click.ClickException(f"{e}. Run 'reelsync configure'.") from e


@click.command()
@click.argument("project", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("media", nargs=-1, type=click.Path(path_type=Path))
@click.option(
    "--media-list",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="File listing media paths, one per line.",
)
@click.option("--concurrency", type=click.IntRange(1, 16), default=None, help="Concurrent uploads.")
def push(project: Path, media: tuple[Path, ...], media_list: Path | None, concurrency: int | None) -> None:
    """Upload PROJECT and its MEDIA files.

    Unchanged files (same MD5 remotely) are skipped. Refuses to run while
    another editor holds the project lock.
    """
    media_paths = [p.expanduser().resolve() for p in media]
    if media_list is not None:
        media_paths.extend(p.expanduser().resolve() for p in read_media_list(media_list))

    session = _new_session(concurrency=concurrency)
    if session.locks is None:
        click.echo("Warning: no API key stored; skipping lock check.", err=True)

    async def run():  # type: ignore[no-untyped-def]
        async with session:
            return await session.push(project.resolve(), media_paths, on_progress=echo_done)

    result = _run(run())
    for entry in result.report:
        symbol = _STATUS_SYMBOLS.get(entry.status, "?")
        reason = f"  ({entry.reason})" if entry.status == TransferStatus.FAILED else ""
        click.echo(f"{symbol} {entry.drive_path}{reason}")

    totals = result.totals
    click.echo(
        f"\n{result.project_name}: {totals.uploaded} uploaded, {totals.skipped} skipped, "
        f"{totals.failed} failed, {totals.cancelled} cancelled"
    )
    if not result.manifest_written and not result.cancelled:
        click.echo("Warning: manifest could not be written", err=True)
    if totals.failed:
        sys.exit(1)


def _echo_duplicates(plan: PullPlan) -> None:
    for duplicate in plan.duplicates:
        click.echo(f"! duplicate remote file ignored: {duplicate.path} ({duplicate.id})", err=True)


def _print_plan(plan: PullPlan) -> None:
    for entry in plan.entries:
        click.echo(f"{entry.state.value:8} {entry.remote.path}")
    _echo_duplicates(plan)
    click.echo(
        f"\n{len(plan.missing)} missing, {len(plan.synced)} synced, {len(plan.conflicts)} conflicts"
    )


@click.command()
@click.argument("project_name")
@click.option("--target", type=click.Path(file_okay=False, path_type=Path), default=None, help="Local folder.")
@click.option("--verify-hash", is_flag=True, help="Confirm matching sizes with MD5.")
def status(project_name: str, target: Path | None, verify_hash: bool) -> None:
    """Compare remote PROJECT_NAME with a local folder."""
    target_folder = target or get_sync_folder() / project_name
    session = _new_session(verify_hash=verify_hash)

    async def run() -> PullPlan:
        async with session:
            return await session.scan(project_name, target_folder)

    _print_plan(_run(run()))


@click.command()
@click.argument("project_name")
@click.option("--target", type=click.Path(file_okay=False, path_type=Path), default=None, help="Local folder.")
@click.option(
    "--on-conflict",
    type=click.Choice(["ask", "drive", "local"]),
    default="ask",
    show_default=True,
    help="Resolution for files that differ locally.",
)
@click.option("--verify-hash", is_flag=True, help="Confirm matching sizes with MD5.")
def pull(project_name: str, target: Path | None, on_conflict: str, verify_hash: bool) -> None:
    """Download PROJECT_NAME into a local folder.

    Missing files are downloaded, the project document last. Files that
    differ locally are only overwritten after confirmation.
    """
    target_folder = target or get_sync_folder() / project_name
    session = _new_session(verify_hash=verify_hash)

    async def run() -> int:
        async with session:
            plan = await session.scan(project_name, target_folder)
            click.echo(
                f"{project_name}: {len(plan.missing)} to download, {len(plan.synced)} up to date, "
                f"{len(plan.conflicts)} conflicts"
            )
            _echo_duplicates(plan)
            for conflict in plan.conflict_records:
                click.echo(
                    f"! {conflict.name}: local {conflict.local_size} bytes, remote {conflict.remote_size} bytes"
                )

            strategy = None if on_conflict == "ask" else ConflictStrategy(on_conflict)
            if strategy is None and plan.conflict_records:
                overwrite = click.confirm(
                    f"Overwrite {len(plan.conflict_records)} local file(s) with the remote copies?",
                    default=False,
                )
                strategy = ConflictStrategy.DRIVE if overwrite else ConflictStrategy.LOCAL

            result = await session.pull(plan, on_progress=echo_done, conflict_strategy=strategy)
            click.echo(
                f"{result.downloaded} downloaded, {result.skipped} skipped, "
                f"{result.failed} failed, {result.cancelled} cancelled"
            )
            if result.patched_paths:
                click.echo(f"Patched {result.patched_paths} media path(s) in the project document")
            if strategy == ConflictStrategy.LOCAL:
                click.echo(f"Kept {len(plan.conflict_records)} local file(s)")
            return result.failed

    failed = _run(run())
    click.echo(f"Project folder: {target_folder}")
    if failed:
        sys.exit(1)


@click.command()
@click.argument("project_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("media_folder", type=click.Path(exists=True, file_okay=False, path_type=Path))
def patch(project_file: Path, media_folder: Path) -> None:
    """Repoint media paths in PROJECT_FILE to files under MEDIA_FOLDER."""
    try:
        count = patch_project_file(project_file, media_folder)
    except PatchError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if count:
        click.echo(f"Patched {count} media path(s) in {project_file.name}")
    else:
        click.echo("No media paths needed patching")
