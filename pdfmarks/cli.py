"""
CLI Interface
=============
Command-line interface for the review marks toolkit.

Usage:
    python -m pdfmarks annotations <pdf_path> [--json-output]
    python -m pdfmarks labels <pdf_path> [--json-output]
    python -m pdfmarks map <pdf_path> <project_pages.json> [--json-output]
    python -m pdfmarks embed <pdf_path> <annotations.json> -o <out.pdf>
    python -m pdfmarks info <pdf_path>
"""

from __future__ import annotations

import json
import os
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .errors import PageCountUnavailable, SourceDocumentUnreadable
from .toolkit import Toolkit, ToolkitConfig

console = Console()

LOG_LEVELS = click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"])


def _make_toolkit(ctx: click.Context, json_output: bool = False) -> Toolkit:
    options = ctx.obj or {}
    log_level = options.get("log_level", "WARNING")
    if json_output:
        # Keep stdout clean for programmatic use
        log_level = "ERROR"
    return Toolkit(ToolkitConfig(
        pdfinfo_path=options.get("pdfinfo", "pdfinfo"),
        qpdf_path=options.get("qpdf", "qpdf"),
        tool_timeout=options.get("timeout", 30.0),
        log_level=log_level,
        log_file=options.get("log_file"),
    ))


def _print_json(data):
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _fail(message: str):
    console.print(f"[red]Error:[/] {escape(message)}")
    sys.exit(1)


def _load_json_list(path: str, what: str) -> list:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        _fail(f"Cannot read {what} from {path}: {e}")
    if not isinstance(data, list):
        _fail(f"{what.capitalize()} file must contain a JSON list")
    return data


@click.group()
@click.version_option(version=__version__, prog_name="pdfmarks")
@click.option(
    "--log-level",
    default="WARNING",
    type=LOG_LEVELS,
    help="Logging level",
)
@click.option("--log-file", default=None, help="Path to log file")
@click.option("--pdfinfo", default="pdfinfo", help="pdfinfo executable")
@click.option("--qpdf", default="qpdf", help="qpdf executable")
@click.option(
    "--timeout",
    default=30.0,
    type=float,
    help="Timeout for external tools (seconds)",
)
@click.pass_context
def cli(ctx, log_level, log_file, pdfinfo, qpdf, timeout):
    """PDF Review Marks: annotations and page labels for review workflows."""
    ctx.ensure_object(dict)
    ctx.obj.update(
        log_level=log_level,
        log_file=log_file,
        pdfinfo=pdfinfo,
        qpdf=qpdf,
        timeout=timeout,
    )


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only JSON to stdout (for programmatic use)",
)
@click.pass_context
def annotations(ctx, pdf_path: str, json_output: bool):
    """Extract reviewer annotations from a PDF."""
    toolkit = _make_toolkit(ctx, json_output)
    records = toolkit.extract_annotations(pdf_path)

    if json_output:
        _print_json([r.model_dump(mode="json") for r in records])
        return

    _print_header("Annotation Extraction", pdf_path)
    table = Table(title=f"Annotations ({len(records)})", border_style="cyan")
    table.add_column("#", justify="right")
    table.add_column("Kind", style="bold")
    table.add_column("Subtype")
    table.add_column("Author")
    table.add_column("Rect (x, y, w, h)")
    table.add_column("Content")

    for i, record in enumerate(records, 1):
        r = record.rect
        content = record.content
        table.add_row(
            str(i),
            record.kind.value,
            escape(record.subtype),
            escape(record.author),
            f"{r.x:.0f}, {r.y:.0f}, {r.width:.0f}, {r.height:.0f}",
            escape(content if len(content) <= 60 else content[:57] + "..."),
        )

    console.print(table)
    console.print()


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--json-output", is_flag=True, default=False,
              help="Output only JSON to stdout")
@click.pass_context
def labels(ctx, pdf_path: str, json_output: bool):
    """Show page label ranges and the label of every page."""
    toolkit = _make_toolkit(ctx, json_output)
    try:
        ranges, mappings = toolkit.label_pages(pdf_path)
    except PageCountUnavailable as e:
        _fail(str(e))

    if json_output:
        _print_json({
            "ranges": [r.model_dump(mode="json") for r in ranges],
            "pages": [m.model_dump(mode="json") for m in mappings],
        })
        return

    _print_header("Page Labels", pdf_path)

    range_table = Table(title="Label Ranges", border_style="cyan")
    range_table.add_column("From PDF Page", justify="right")
    range_table.add_column("Start", justify="right")
    range_table.add_column("Prefix")
    range_table.add_column("Style")
    for r in ranges:
        range_table.add_row(
            str(r.pdf_page_index + 1),
            str(r.start_number),
            escape(r.prefix) if r.prefix else "[dim](none)[/]",
            r.style.name.lower(),
        )
    console.print(range_table)
    console.print()

    if not mappings:
        console.print("[yellow]No page labels, standard numbering applies[/]")
        console.print()
        return

    page_table = Table(title="Page Labels", border_style="green")
    page_table.add_column("PDF Page", justify="right")
    page_table.add_column("Label", style="bold")
    page_table.add_column("Page Number", justify="right")
    for m in mappings:
        page_table.add_row(
            str(m.pdf_page),
            escape(m.label),
            str(m.page_number) if m.page_number is not None else "[dim]-[/]",
        )
    console.print(page_table)
    console.print()


@cli.command(name="map")
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("pages_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--json-output", is_flag=True, default=False,
              help="Output only JSON to stdout")
@click.pass_context
def map_command(ctx, pdf_path: str, pages_json: str, json_output: bool):
    """Map PDF pages to project pages ([{"id", "page_number"}, ...])."""
    project_pages = _load_json_list(pages_json, "project pages")
    toolkit = _make_toolkit(ctx, json_output)

    try:
        assignments = toolkit.map_pages(pdf_path, project_pages)
    except PageCountUnavailable as e:
        _fail(str(e))
    except ValueError as e:
        _fail(f"Invalid project pages: {e}")

    if json_output:
        _print_json([a.model_dump(mode="json") for a in assignments])
        return

    _print_header("Page Mapping", pdf_path)
    table = Table(
        title=f"Assignments ({len(assignments)})", border_style="cyan"
    )
    table.add_column("PDF Page", justify="right")
    table.add_column("Label")
    table.add_column("Project Page", justify="right")
    table.add_column("Project Page ID")
    for a in assignments:
        table.add_row(
            str(a.pdf_page),
            escape(a.label),
            str(a.project_page_number),
            escape(str(a.project_page_id)),
        )
    console.print(table)

    if not assignments:
        console.print(
            "[yellow]⚠ No page could be matched; use manual placement[/]"
        )
    console.print()


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("annotations_json", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output", "-o",
    required=True,
    help="Path of the annotated PDF to write",
)
@click.option("--json-output", is_flag=True, default=False,
              help="Output only the JSON report to stdout")
@click.pass_context
def embed(ctx, pdf_path: str, annotations_json: str, output: str,
          json_output: bool):
    """Draw application annotations into a copy of a PDF."""
    items = _load_json_list(annotations_json, "annotations")
    toolkit = _make_toolkit(ctx, json_output)

    try:
        _, report = toolkit.embed(pdf_path, items, output_path=output)
    except SourceDocumentUnreadable as e:
        _fail(str(e))

    if json_output:
        _print_json(report.model_dump(mode="json"))
        return

    _print_header("Annotation Export", pdf_path)
    table = Table(title="Embedding Report", border_style="green")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Status", justify="center")
    table.add_row("Annotations", str(report.total), "")
    table.add_row("Drawn", str(report.drawn), "[green]✓[/]")
    table.add_row(
        "Skipped",
        str(report.skipped_count),
        "[green]✓[/]" if report.skipped_count == 0 else "[yellow]⚠[/]",
    )
    console.print(table)

    if report.skipped:
        skipped_table = Table(title="Skipped", border_style="yellow")
        skipped_table.add_column("#", justify="right")
        skipped_table.add_column("ID")
        skipped_table.add_column("Reason")
        for s in report.skipped:
            skipped_table.add_row(
                str(s.index), escape(str(s.annotation_id or "-")), escape(s.reason)
            )
        console.print(skipped_table)

    console.print(f"[dim]Written: {escape(output)}[/]")
    console.print()


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def info(ctx, pdf_path: str):
    """Display PDF review metadata."""
    toolkit = _make_toolkit(ctx)

    console.print()
    table = Table(title="PDF Information", border_style="cyan")
    table.add_column("Property", style="bold")
    table.add_column("Value")

    table.add_row("File", escape(os.path.basename(pdf_path)))
    table.add_row(
        "File Size",
        f"{os.path.getsize(pdf_path) / 1024 / 1024:.2f} MB",
    )

    try:
        table.add_row("Pages", str(toolkit.count_pages(pdf_path)))
        table.add_row("Label Ranges", str(len(toolkit.extract_labels(pdf_path))))
    except PageCountUnavailable:
        table.add_row("Pages", "[red]unavailable[/]")

    table.add_row(
        "Annotations", str(len(toolkit.extract_annotations(pdf_path)))
    )

    console.print(table)
    console.print()


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _print_header(title: str, pdf_path: str):
    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]{title}[/]\n"
            f"[dim]{escape(os.path.basename(pdf_path))}[/]",
            border_style="cyan",
        )
    )
    console.print()


# ─── Entry point (for python -m pdfmarks.cli) ─────────────────────────────────


if __name__ == "__main__":
    cli()
