"""CLI for syncing Azure DevOps work items with local markdown notes."""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from workitem_sync.api import AzureDevOpsApi
from workitem_sync.codec import NoteCodec
from workitem_sync.config import (
    DATABASE_NAME,
    DEFAULT_NOTES_DIR,
    Settings,
    load_settings,
    resolve_data_directory,
)
from workitem_sync.core.database.schema import migrate_schema
from workitem_sync.core.database.store import (
    SqliteKeyValueStore,
    load_work_items,
    save_work_items,
)
from workitem_sync.core.sync.engine import SyncEngine
from workitem_sync.core.tree.markdown import render_tree_as_markdown
from workitem_sync.core.tree.navigation import format_path
from workitem_sync.documents import NoteStore
from workitem_sync.exceptions import WorkItemSyncError
from workitem_sync.logging_config import configure_logging
from workitem_sync.models.work_item import NewWorkItem
from workitem_sync.notify import EchoNotifier
from workitem_sync.protocols import WorkItemClientProtocol

app = typer.Typer(help="Sync Azure DevOps work items with local markdown notes.")

OfflineOption = Annotated[
    bool, typer.Option("--offline", "-o", help="Use the work items cached by the last fetch")
]


@dataclass
class CliOptions:
    data_dir: Path
    notes_dir: Path


def _make_client(settings: Settings) -> WorkItemClientProtocol:
    return AzureDevOpsApi(settings)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", "-d", help="Sync database directory"),
    ] = None,
    notes_dir: Annotated[
        Path | None,
        typer.Option("--notes-dir", "-n", help="Directory with work item notes"),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option("--log-file", help="Also write debug logs to this file"),
    ] = None,
) -> None:
    configure_logging(verbose=verbose, log_file=log_file)
    ctx.obj = CliOptions(
        data_dir=data_dir or resolve_data_directory(),
        notes_dir=notes_dir or DEFAULT_NOTES_DIR,
    )


@contextmanager
def _open_engine(ctx: typer.Context) -> Iterator[SyncEngine]:
    """Yield an engine backed by the sync database; errors become exit code 1."""
    options: CliOptions = ctx.obj
    options.data_dir.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(options.data_dir / DATABASE_NAME))
    try:
        migrate_schema(conn)
        settings = load_settings()
        engine = SyncEngine(
            _make_client(settings),
            NoteStore(options.notes_dir),
            NoteCodec(organization=settings.organization, project=settings.project),
            SqliteKeyValueStore(conn),
            notifier=EchoNotifier(),
            on_fetch=lambda items: save_work_items(conn, items),
            load_cached=lambda: load_work_items(conn),
        )
        yield engine
    except WorkItemSyncError as e:
        logger.error("{}", e)
        raise typer.Exit(1) from None
    finally:
        conn.close()


def _load(engine: SyncEngine, *, offline: bool) -> None:
    if offline:
        engine.rebuild_offline()
    else:
        engine.refresh()


@app.command()
def pull(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite notes with local edits"),
) -> None:
    """Fetch all work items and write their notes."""
    with _open_engine(ctx) as engine:
        stats = engine.pull(force=force)
        typer.echo(
            f"Wrote {stats.notes_written} notes, "
            f"{stats.notes_unchanged} unchanged, skipped {stats.notes_skipped}"
        )


@app.command()
def tree(
    ctx: typer.Context,
    offline: OfflineOption = False,
    max_depth: Annotated[
        int | None,
        typer.Option("--max-depth", "-m", help="Max depth levels to render"),
    ] = None,
) -> None:
    """Show the work item hierarchy with pending changes marked."""
    with _open_engine(ctx) as engine:
        _load(engine, offline=offline)
        if not len(engine.tree):
            typer.echo("No work items.")
            return
        typer.echo(
            render_tree_as_markdown(
                engine.tree, pending_label=engine.pending_label, max_depth=max_depth
            ),
            nl=False,
        )


@app.command()
def status(ctx: typer.Context, offline: OfflineOption = False) -> None:
    """List the changes waiting to be pushed."""
    with _open_engine(ctx) as engine:
        _load(engine, offline=offline)
        if not engine.pending_count:
            typer.echo("No pending changes.")
            return
        typer.echo(f"{engine.pending_count} pending changes:\n")
        tree = engine.tree
        for child_id, parent_id in engine.changes.relationships.items():
            node = tree[child_id]
            old_parent_id = engine.baseline.parent_of(child_id)
            origin = "root" if old_parent_id is None else format_path(tree, tree[old_parent_id])
            target = "root" if parent_id is None else format_path(tree, tree[parent_id])
            typer.echo(f"  move     [{node.id}] {node.title}: {origin}  ->  {target}")
        for node_id in engine.changes.notes:
            typer.echo(f"  content  {format_path(tree, tree[node_id])}")


@app.command()
def move(
    ctx: typer.Context,
    child_id: int = typer.Argument(..., help="Work item to move"),
    parent_id: int = typer.Argument(..., help="New parent work item"),
    offline: OfflineOption = False,
) -> None:
    """Move a work item under another one (locally, until pushed)."""
    with _open_engine(ctx) as engine:
        _load(engine, offline=offline)
        engine.reparent(child_id, parent_id)


@app.command()
def promote(
    ctx: typer.Context,
    node_id: int = typer.Argument(..., help="Work item to make a root item"),
    offline: OfflineOption = False,
) -> None:
    """Remove the parent of a work item (locally, until pushed)."""
    with _open_engine(ctx) as engine:
        _load(engine, offline=offline)
        engine.promote_to_root(node_id)


@app.command()
def create(
    ctx: typer.Context,
    work_item_type: str = typer.Argument(..., help="Work item type, e.g. \"User Story\""),
    title: str = typer.Argument(..., help="Title of the new work item"),
    description: str = typer.Option("", "--description", help="Description"),
    state: str = typer.Option("", "--state", help="Initial state"),
    assigned_to: str = typer.Option("", "--assigned-to", help="Assignee"),
    priority: Annotated[
        int | None, typer.Option("--priority", min=1, max=4, help="Priority 1-4")
    ] = None,
    tags: str = typer.Option("", "--tags", help="Semicolon-separated tags"),
    parent_id: Annotated[
        int | None, typer.Option("--parent", "-p", help="Parent work item")
    ] = None,
    offline: OfflineOption = False,
) -> None:
    """Create a work item and write its note."""
    new = NewWorkItem(
        work_item_type=work_item_type,
        title=title,
        description=description,
        state=state,
        assigned_to=assigned_to,
        priority=priority,
        tags=tags,
    )
    with _open_engine(ctx) as engine:
        _load(engine, offline=offline)
        created = engine.create(new, parent_id=parent_id)
    if created is None:
        raise typer.Exit(1)


@app.command()
def push(ctx: typer.Context) -> None:
    """Push all pending changes."""
    with _open_engine(ctx) as engine:
        engine.refresh()
        result = engine.push()
    if not result.ok:
        raise typer.Exit(1)


@app.command(name="push-item")
def push_item(
    ctx: typer.Context,
    node_id: int = typer.Argument(..., help="Work item to push"),
) -> None:
    """Push the parent and note of a single work item."""
    with _open_engine(ctx) as engine:
        engine.refresh()
        result = engine.push_item(node_id)
    if not result.ok:
        raise typer.Exit(1)


@app.command(name="pull-item")
def pull_item(
    ctx: typer.Context,
    node_id: int = typer.Argument(..., help="Work item to pull"),
    offline: OfflineOption = False,
) -> None:
    """Re-fetch a single work item and rewrite its note."""
    with _open_engine(ctx) as engine:
        _load(engine, offline=offline)
        if not engine.pull_item(node_id):
            raise typer.Exit(1)
