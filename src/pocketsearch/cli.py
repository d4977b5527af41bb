"""Command line interface for PocketSearch."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from pocketsearch.config import AppConfig
from pocketsearch.errors import PocketSearchError
from pocketsearch.service import PocketSearch
from pocketsearch.web.app import app as web_app
from pocketsearch.web.app import configure as configure_web


console = Console()
app = typer.Typer(help="PocketSearch - offline semantic search for your documents")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _build_config(
    db: Optional[Path],
    manifest: Optional[Path] = None,
    **overrides: object,
) -> AppConfig:
    defaults = AppConfig()
    db_path = db if db is not None else defaults.db_path
    return AppConfig(
        db_path=db_path,
        manifest_path=manifest,
        **{key: value for key, value in overrides.items() if value is not None},
    )


def _open(config: AppConfig) -> PocketSearch:
    try:
        return PocketSearch(config, base_dir=Path.cwd())
    except PocketSearchError as exc:
        console.print(f"[red]Cannot open database:[/red] {exc}")
        raise typer.Exit(code=1)


@app.command()
def sync(
    source: Path = typer.Argument(
        ..., help="Folder or .zip archive to index.", exists=True, resolve_path=True
    ),
    ext: Optional[List[str]] = typer.Option(
        None, "--ext", help="Allowed file extension (repeatable)"
    ),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    manifest: Path = typer.Option(None, "--manifest", help="Manifest file path"),
    chunk_chars: int = typer.Option(AppConfig().chunk_chars, help="Chunk size in characters"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index new and changed files, and drop records of deleted ones."""
    _setup_logging(verbose)
    config = _build_config(db, manifest, chunk_chars=chunk_chars)
    if ext:
        config.allowed_extensions = frozenset(e.lower().lstrip(".") for e in ext)

    engine = _open(config)
    console.print(f"Syncing [bold]{source}[/bold] into [bold]{engine.db_path}[/bold]...")
    try:
        result = engine.sync(source)
    except PocketSearchError as exc:
        console.print(f"[red]Sync failed:[/red] {exc}")
        raise typer.Exit(code=1)
    finally:
        engine.close()

    console.print(
        f"Files added: {result.files_added}, updated: {result.files_updated}, "
        f"removed: {result.files_removed}. "
        f"Records added: {result.records_added}, removed: {result.records_removed}"
    )
    if result.files_skipped:
        console.print(f"[yellow]Skipped {len(result.files_skipped)} unreadable files.[/yellow]")


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    top_k: int = typer.Option(AppConfig().top_k, help="Number of results to display"),
    min_similarity: float = typer.Option(
        AppConfig().min_similarity, help="Minimum cosine similarity"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Execute a semantic search."""
    _setup_logging(verbose)
    config = _build_config(db)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")

    engine = _open(config)
    try:
        results = engine.search(query, top_k=top_k, min_similarity=min_similarity)
    finally:
        engine.close()

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Snippet")

    for result in results:
        record = result.record
        table.add_row(f"{result.score:.4f}", str(record.id), record.title, record.snippet())

    console.print(table)


@app.command()
def add(
    title: str = typer.Argument(..., help="Note title"),
    content: str = typer.Argument(..., help="Note text"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Add a note directly to the index."""
    engine = _open(_build_config(db))
    try:
        record = engine.repository.add_note(title, content)
    finally:
        engine.close()
    console.print(f"Added record {record.id}.")


@app.command()
def delete(
    record_id: int = typer.Argument(..., help="Record ID"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Delete a single record."""
    engine = _open(_build_config(db))
    try:
        deleted = engine.repository.delete_note(record_id)
    finally:
        engine.close()
    if not deleted:
        console.print(f"[yellow]Record {record_id} not found.[/yellow]")
        raise typer.Exit(code=1)
    console.print(f"Deleted record {record_id}.")


@app.command(name="list")
def list_records(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """List stored records, most recently updated first."""
    engine = _open(_build_config(db))
    try:
        records = engine.repository.list_records()
    finally:
        engine.close()

    if not records:
        console.print("[yellow]No records stored.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Snippet")
    for record in records:
        table.add_row(str(record.id), record.title, record.snippet(80))
    console.print(table)
    console.print(f"{len(records)} records.")


@app.command()
def clear(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    manifest: Path = typer.Option(None, "--manifest", help="Manifest file path"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete all records and the manifest."""
    if not yes:
        typer.confirm("Delete every record?", abort=True)
    engine = _open(_build_config(db, manifest))
    try:
        removed = engine.clear()
    finally:
        engine.close()
    console.print(f"Removed {removed} records.")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Start the JSON web API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    configure_web(_build_config(db))
    console.print(f"Starting web API on http://{host}:{port}")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
