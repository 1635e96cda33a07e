"""Main CLI entry point using Typer."""
from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from facemarks.settings import Settings, configure_logging

app = typer.Typer(
    name="facemarks",
    help="Face annotations from a faces index: look up, browse and draw them on photos.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()


def _load_settings(db: Optional[Path], unknown_clusters: bool = False, verbose: bool = False) -> Settings:
    from dotenv import load_dotenv
    load_dotenv()

    settings = Settings.from_env()
    if db is not None:
        settings = dataclasses.replace(settings, db_path=db.expanduser())
    if unknown_clusters:
        settings = dataclasses.replace(settings, unknown_clusters=True)
    if verbose:
        settings = dataclasses.replace(settings, debug=True)
    configure_logging(settings)
    return settings


_DB_OPTION = typer.Option(None, "--db", help="Faces database (overrides FACEMARKS_DB_PATH).")
_VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Verbose diagnostic logging")


@app.command()
def settings(
    db: Optional[Path] = _DB_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Show the resolved database path, toggles and scanner configuration."""
    from facemarks.db.connection import get_index
    from facemarks.settings import settings_report

    cfg = _load_settings(db, verbose=verbose)
    console.print(settings_report(cfg, get_index(cfg)), markup=False, highlight=False)


@app.command()
def lookup(
    image: str = typer.Argument(..., help="Image path or file:// URI"),
    db: Optional[Path] = _DB_OPTION,
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """List the face rectangles recorded for one image."""
    from facemarks.db.connection import get_index

    cfg = _load_settings(db, verbose=verbose)
    key = image if "://" in image else str(Path(image).expanduser().resolve())
    annotations = get_index(cfg).lookup_by_path(key)

    if as_json:
        typer.echo(json.dumps([a.to_dict() for a in annotations], indent=2))
        return
    if not annotations:
        console.print(f"[yellow]No faces recorded for {image}[/yellow]")
        return

    table = Table(title=f"Faces in {image}", show_header=True, header_style="bold cyan")
    table.add_column("Label", style="bold")
    table.add_column("Group", justify="right")
    table.add_column("Rectangle")
    table.add_column("Known")
    for a in annotations:
        table.add_row(
            escape(a.label),
            str(a.group_id),
            "{:g},{:g} - {:g},{:g}".format(*a.rect.as_tuple()),
            "[green]yes[/green]" if a.is_known else "[red]no[/red]",
        )
    console.print(table)


@app.command()
def labels(
    db: Optional[Path] = _DB_OPTION,
    clusters: bool = typer.Option(False, "--clusters", help="Also list unlabelled clusters"),
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """List labels with their face counts (counts are faces, not photos)."""
    from facemarks.db.connection import get_index

    cfg = _load_settings(db, unknown_clusters=clusters, verbose=verbose)
    index = get_index(cfg)

    table = Table(title="Labels", show_header=True, header_style="bold cyan")
    table.add_column("Label", style="bold")
    table.add_column("Faces", justify="right")
    for label, count in index.enumerate_labels():
        table.add_row(escape(label), str(count))
    console.print(table)

    if cfg.unknown_clusters:
        ctable = Table(title="Unlabelled clusters", show_header=True, header_style="bold cyan")
        ctable.add_column("Cluster", justify="right")
        ctable.add_column("Faces", justify="right")
        for group_id, count in index.enumerate_unknown_clusters():
            ctable.add_row(str(group_id), str(count))
        console.print(ctable)


@app.command()
def browse(
    uri: str = typer.Argument("face:///", help="Face tree URI (face:///, face:///<label>, ...)"),
    db: Optional[Path] = _DB_OPTION,
    clusters: bool = typer.Option(False, "--clusters", help="Show unlabelled clusters at the root"),
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """List one directory of the face tree."""
    from facemarks.db.connection import get_index
    from facemarks.tree.nodes import FileEntry
    from facemarks.tree.source import FaceFileSource

    cfg = _load_settings(db, unknown_clusters=clusters, verbose=verbose)
    source = FaceFileSource(get_index(cfg))
    try:
        source.resolve(uri)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    try:
        children = source.enumerate_children(uri).result()
    finally:
        source.shutdown()

    if not children:
        console.print(f"[yellow]{uri} is empty.[/yellow]")
        return
    for child in children:
        if isinstance(child, FileEntry):
            console.print(child.path, markup=False, highlight=False, soft_wrap=True)
        else:
            count = f"  [dim]({child.count})[/dim]" if child.count is not None else ""
            console.print(f"[bold]{escape(child.display_name)}[/bold]{count}  [dim]{child.uri}[/dim]")


@app.command()
def render(
    image: Path = typer.Argument(..., help="Image to annotate"),
    output: Path = typer.Option(..., "--output", "-o", help="Where to write the annotated copy"),
    size: Optional[int] = typer.Option(None, "--size", help="Decode at most SIZE pixels on the long edge"),
    db: Optional[Path] = _DB_OPTION,
    verbose: bool = _VERBOSE_OPTION,
) -> None:
    """Write a copy of IMAGE with its face rectangles drawn in."""
    from facemarks.db.connection import get_index
    from facemarks.overlay.viewer import FaceOverlay
    from facemarks.readers.standard import load

    cfg = _load_settings(db, verbose=verbose)
    if not image.exists():
        console.print(f"[red]File not found: {image}[/red]")
        raise typer.Exit(1)

    try:
        loaded = load(image, requested_size=size)
    except Exception as exc:
        console.print(f"[red]Error decoding {image.name}: {exc}[/red]")
        raise typer.Exit(1)

    overlay = FaceOverlay(get_index(cfg))
    drawn = overlay.bake(loaded.surface, str(image.resolve()), loaded.original_size)
    loaded.surface.save(output)
    console.print(f"[green]OK[/green] {drawn} face(s) drawn -> {output}")


@app.command()
def serve() -> None:
    """Run the JSON-RPC stdio server used by a host image browser."""
    from facemarks.server import main
    main()


if __name__ == "__main__":
    app()
