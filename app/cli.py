from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from app.config import AppSettings, load_settings
from app.wiring import build_coordinator, build_document_repository, build_layout_exporter
from domain.errors import ParseError
from domain.services.emit_spec_markdown import emit_spec_markdown
from domain.services.format_document import FormatConfig, format_document
from domain.services.lint_document import lint_document
from domain.services.parse_document import validate_document
from domain.services.sync_coordinator import SyncCoordinator

app = typer.Typer(no_args_is_help=True)
console = Console(soft_wrap=True)
err_console = Console(stderr=True, soft_wrap=True)

SEVERITY_STYLES = {"error": "red", "warning": "yellow", "info": "cyan"}


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="YAML settings file."),
) -> None:
    try:
        settings = load_settings(config)
    except FileNotFoundError as exc:
        err_console.print(f"[red]{exc}[/]")
        raise typer.Exit(code=1) from exc
    logging.basicConfig(
        level=settings.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )
    ctx.obj = settings


def _settings(ctx: typer.Context) -> AppSettings:
    return ctx.obj if isinstance(ctx.obj, AppSettings) else load_settings()


def _read(path: Path) -> str:
    if not path.exists():
        err_console.print(f"[red]File not found:[/] {path}")
        raise typer.Exit(code=1)
    return path.read_text(encoding="utf-8")


def _parse_failed(path: Path, error: ParseError | None) -> typer.Exit:
    err_console.print(f"[red]{escape(f'{path}:{error}')}[/]", highlight=False)
    return typer.Exit(code=1)


def _open(ctx: typer.Context, path: Path) -> SyncCoordinator:
    text = _read(path)
    try:
        return build_coordinator(_settings(ctx), text)
    except ParseError as exc:
        raise _parse_failed(path, exc) from exc


@app.command("validate")
def validate(input_path: Path = typer.Argument(..., help="Document to validate.")) -> None:
    result = validate_document(_read(input_path))
    if not result.ok:
        raise _parse_failed(input_path, result.error)
    console.print(f"[green]Valid document:[/] {input_path}")
    for diagnostic in result.diagnostics:
        console.print(f"  [yellow]{diagnostic.rule}[/] {escape(diagnostic.message)}", highlight=False)


@app.command("format")
def format_file(
    ctx: typer.Context,
    input_path: Path = typer.Argument(..., help="Document to re-emit canonically."),
    write: bool = typer.Option(False, "--write", help="Rewrite the file in place."),
    hoist_styles: bool = typer.Option(
        False, "--hoist-styles", help="Move repeated inline styles into shared style blocks."
    ),
) -> None:
    try:
        text = format_document(_read(input_path), FormatConfig(hoist_styles=hoist_styles))
    except ParseError as exc:
        raise _parse_failed(input_path, exc) from exc
    if write:
        build_document_repository(_settings(ctx)).save_text(text, input_path)
        console.print(f"[green]Formatted[/] {input_path}")
        return
    typer.echo(text, nl=False)


@app.command("layout")
def layout(
    ctx: typer.Context,
    input_path: Path = typer.Argument(..., help="Document to lay out."),
    json_path: Path | None = typer.Option(None, "--json", help="Write bounds as JSON here."),
) -> None:
    coordinator = _open(ctx, input_path)
    graph, result = coordinator.graph, coordinator.layout
    if json_path is not None:
        build_layout_exporter(_settings(ctx)).export(graph, result, json_path)
        console.print(f"[green]Wrote[/] {json_path}")
        return
    table = Table("id", "kind", "x", "y", "w", "h", "flag")
    for node_id in graph.walk():
        if node_id not in result:
            continue
        bounds = result[node_id]
        table.add_row(
            "@" + graph.name(node_id),
            graph.nodes[node_id].kind,
            *(f"{value:g}" for value in bounds.as_tuple()),
            result.flagged.get(node_id, ""),
        )
    console.print(table)


@app.command("rename")
def rename(
    ctx: typer.Context,
    input_path: Path = typer.Argument(..., help="Document to edit."),
    old_name: str = typer.Argument(..., help="Current id, with or without '@'."),
    new_name: str = typer.Argument(..., help="New id, with or without '@'."),
    write: bool = typer.Option(False, "--write", help="Rewrite the file in place."),
) -> None:
    coordinator = _open(ctx, input_path)
    outcome = coordinator.rename(old_name, new_name)
    if not outcome.ok:
        err_console.print(f"[red]Rename failed:[/] {escape(str(outcome.error))}", highlight=False)
        raise typer.Exit(code=1)
    if write:
        build_document_repository(_settings(ctx)).save_text(coordinator.text, input_path)
        console.print(f"[green]Renamed[/] @{old_name.lstrip('@')} -> @{new_name.lstrip('@')}")
        return
    typer.echo(coordinator.text, nl=False)


@app.command("lint")
def lint(
    ctx: typer.Context,
    input_path: Path = typer.Argument(..., help="Document to lint."),
    strict: bool = typer.Option(False, "--strict", help="Exit non-zero on warnings."),
) -> None:
    coordinator = _open(ctx, input_path)
    diagnostics = lint_document(coordinator.graph)
    if not diagnostics:
        console.print(f"[green]No findings:[/] {input_path}")
        return
    for diagnostic in diagnostics:
        style = SEVERITY_STYLES[diagnostic.severity]
        where = f"{input_path}:{diagnostic.line}" if diagnostic.line else str(input_path)
        message = escape(diagnostic.message)
        console.print(
            f"{where}: [{style}]{diagnostic.severity}[/] {diagnostic.rule}: {message}",
            highlight=False,
        )
    if strict and any(item.severity != "info" for item in diagnostics):
        raise typer.Exit(code=1)


@app.command("spec")
def spec(
    ctx: typer.Context,
    input_path: Path = typer.Argument(..., help="Document to export."),
    title: str | None = typer.Option(None, "--title", help="Report title; defaults to the file stem."),
) -> None:
    coordinator = _open(ctx, input_path)
    typer.echo(emit_spec_markdown(coordinator.graph, title or input_path.stem), nl=False)


if __name__ == "__main__":
    app()
