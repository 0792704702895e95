"""
Command-line interface for pdfrebuildx.
"""

import asyncio
import os
import sys

import click
from rich.console import Console
from rich.progress import Progress, TextColumn, BarColumn, TimeRemainingColumn, TaskProgressColumn
from rich.table import Table

from pdfrebuildx import __version__
from pdfrebuildx.browser import BrowserSession
from pdfrebuildx.converter import convert_view, is_snapshot_file
from pdfrebuildx.extraction import extract_pages
from pdfrebuildx.segmentation import segment_pages
from pdfrebuildx.types import ConversionOptions, TextMode
from pdfrebuildx.utils import configure_logging, format_file_size, to_path
from pdfrebuildx.view import SnapshotView, save_snapshot

# Status output goes to stderr so a PDF written to stdout stays intact.
console = Console(stderr=True)


def _load_view(source, snapshot, timeout):
    if snapshot is None:
        snapshot = is_snapshot_file(source)
    if snapshot:
        return SnapshotView.from_json(to_path(source))
    return asyncio.run(_capture_view(source, timeout))


async def _capture_view(source, timeout):
    async with BrowserSession(timeout_ms=timeout) as session:
        return await session.capture(source)


async def _capture_data(source, timeout):
    async with BrowserSession(timeout_ms=timeout) as session:
        return await session.capture_data(source)


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    pdfrebuildx - Rebuild real PDF files from HTML "fake PDF" renditions.
    """
    pass


@cli.command(name="convert")
@click.argument('source')
@click.option(
    '--output', '-o',
    default=None,
    help='Output PDF file (defaults to stdout)',
    type=click.Path()
)
@click.option(
    '--text-mode',
    default=TextMode.VISIBLE.value,
    help='Paint text visibly or as an invisible, selectable layer',
    type=click.Choice([mode.value for mode in TextMode])
)
@click.option(
    '--title',
    default=None,
    help='Title stored in the PDF metadata',
    type=str
)
@click.option(
    '--snapshot/--no-snapshot',
    default=None,
    help='Treat SOURCE as a JSON snapshot (default: by .json extension)'
)
@click.option(
    '--timeout',
    default=30000,
    help='Page load timeout in milliseconds',
    type=int
)
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
def convert(source, output, text_mode, title, snapshot, timeout, verbose):
    """
    Convert an HTML file, URL or JSON snapshot into a PDF.

    Examples:

        pdfrebuildx convert document.html -o document.pdf

        pdfrebuildx convert snapshot.json --text-mode transparent > out.pdf
    """
    if verbose:
        configure_logging(verbose=True)
    try:
        console.print("\n[bold cyan]Analyzing file...[/bold cyan]")
        view = _load_view(source, snapshot, timeout)

        segmentation = segment_pages(view)
        if segmentation is None:
            console.print("[bold yellow]! No pages extracted: the document does not look like a PDF.[/bold yellow]")
            sys.exit(2)
        console.print(
            f"[green]✓ Looks like a PDF:[/green] {segmentation.image_count} page images "
            f"under <{view.tag_name(segmentation.pagination_root)}>"
        )

        options = ConversionOptions(text_mode=TextMode(text_mode), title=title)
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeRemainingColumn(),
            console=console
        ) as progress:
            task = progress.add_task("Converting pages", total=None)

            def update_progress(current, total):
                progress.update(task, completed=current, total=total)

            data = asyncio.run(
                convert_view(view, options, update_progress, page_roots=segmentation.page_roots)
            )

        if data is None:
            console.print("[bold yellow]! No pages extracted.[/bold yellow]")
            sys.exit(2)

        if output:
            destination = to_path(output)
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(data)
            console.print(f"\n[bold green]✓ PDF written to {os.path.abspath(destination)}[/bold green]")
            console.print(f"[dim]Size: {format_file_size(len(data))}[/dim]")
        else:
            stdout = sys.stdout.buffer
            stdout.write(data)
            stdout.flush()

    except Exception as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}")
        sys.exit(1)


@cli.command(name="capture")
@click.argument('source')
@click.option(
    '--output', '-o',
    required=True,
    help='Destination JSON snapshot',
    type=click.Path()
)
@click.option(
    '--timeout',
    default=30000,
    help='Page load timeout in milliseconds',
    type=int
)
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
def capture(source, output, timeout, verbose):
    """
    Render SOURCE in a headless browser and save its layout snapshot.

    Example:

        pdfrebuildx capture document.html -o snapshot.json
    """
    if verbose:
        configure_logging(verbose=True)
    try:
        console.print("\n[bold cyan]Capturing layout...[/bold cyan]")
        data = asyncio.run(_capture_data(source, timeout))
        destination = save_snapshot(data, to_path(output))
        console.print(f"[bold green]✓ Snapshot written to {os.path.abspath(destination)}[/bold green]")
    except Exception as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}")
        sys.exit(1)


@cli.command(name="inspect")
@click.argument('source')
@click.option(
    '--snapshot/--no-snapshot',
    default=None,
    help='Treat SOURCE as a JSON snapshot (default: by .json extension)'
)
@click.option(
    '--timeout',
    default=30000,
    help='Page load timeout in milliseconds',
    type=int
)
def inspect(source, snapshot, timeout):
    """
    Show how SOURCE would be paginated.

    Example:

        pdfrebuildx inspect snapshot.json
    """
    try:
        view = _load_view(source, snapshot, timeout)
        segmentation = segment_pages(view)
        pages = extract_pages(view, segmentation.page_roots) if segmentation else None

        info_table = Table(title="Document Information", show_header=False)
        info_table.add_column("Property", style="cyan")
        info_table.add_column("Value", style="green")

        info_table.add_row("Source", str(source))
        info_table.add_row("Images", str(segmentation.image_count if segmentation else 0))
        info_table.add_row("Looks like a PDF", "yes" if segmentation else "no")
        info_table.add_row("Pages", str(len(pages) if pages else 0))
        info_table.add_row("Font faces", str(len(view.font_face_rules())))
        console.print(info_table)

        if pages:
            pages_table = Table(title="Pages")
            pages_table.add_column("Page", justify="right", style="cyan")
            pages_table.add_column("Size", style="green")
            pages_table.add_column("Images", justify="right")
            pages_table.add_column("Text runs", justify="right")
            for number, page in enumerate(pages, start=1):
                pages_table.add_row(
                    str(number),
                    f"{page.width:g} x {page.height:g}",
                    str(len(page.images)),
                    str(len(page.text)),
                )
            console.print(pages_table)

    except Exception as e:
        console.print(f"\n[bold red]✗ Error:[/bold red] {e}")
        sys.exit(1)


if __name__ == '__main__':
    cli()
