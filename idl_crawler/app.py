"""Typer CLI entrypoint for idl-crawler."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .context import RunContext, build_context
from .linked import LinkedRunner
from .orchestrator import (
    HttpImportRunner,
    IdlImportRunner,
    Runner,
    RunOptions,
    RunSummary,
    load_url_list,
    run_fatal,
)

app = typer.Typer(
    help="Scrape WebIDL fragments from specification pages and IDL files.",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()

RUNNERS = {
    "import-http": HttpImportRunner,
    "import-idl": IdlImportRunner,
    "import-linked": LinkedRunner,
}


def build_runner(kind: str, context: RunContext) -> Runner:
    try:
        factory = RUNNERS[kind]
    except KeyError as exc:
        raise typer.BadParameter(f"Unknown runner: {kind}") from exc
    return factory(context)


def _render_summary(title: str, summary: RunSummary, output: Path) -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAD)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("URLs", str(summary.urls))
    table.add_row("Fragments", str(summary.fragments))
    table.add_row("Failed", str(len(summary.failures)))
    if summary.retried:
        table.add_row("Retried", str(len(summary.retried)))
        kept_prior = sum(1 for decision in summary.decisions if decision.kept == "prior")
        if kept_prior:
            table.add_row("Kept previous", str(kept_prior))
    table.add_row("Output", str(output))
    return table


def _execute(kind: str, options: RunOptions, verbose: bool) -> None:
    context = build_context(verbose=verbose)
    runner = build_runner(kind, context)
    try:
        runner.start()
        runner.configure(options)
        run_fatal(runner.run(), context.logger)
    except Exception as exc:
        console.print(f"{kind} failed: {exc}", style="red")
        raise typer.Exit(code=1) from exc
    console.print(_render_summary(f"{kind} result", runner.summary, options.output))
    if runner.summary.failures:
        console.print(
            "Failed: " + ", ".join(sorted(runner.summary.failures)),
            style="yellow",
        )


def _read_urls(path: Path) -> list[str]:
    try:
        return load_url_list(path)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"Cannot read URL list {path}: {exc}") from exc


@app.command("import-http", help="Scrape spec pages in a browser pool and reconcile with OUTPUT.")
def import_http(
    urls: Path = typer.Argument(..., help="File listing spec page URLs (JSON array or one per line)."),
    output: Path = typer.Argument(..., help="Dataset JSON file to read and overwrite."),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    _execute("import-http", RunOptions(output=output, urls=_read_urls(urls)), verbose)


@app.command("import-idl", help="Fetch raw IDL files and write their parses to OUTPUT.")
def import_idl(
    urls: Path = typer.Argument(..., help="File listing raw IDL URLs (JSON array or one per line)."),
    output: Path = typer.Argument(..., help="Dataset JSON file to write."),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    _execute("import-idl", RunOptions(output=output, urls=_read_urls(urls)), verbose)


@app.command("import-linked", help="Follow spec links found in local IDL files under ROOT.")
def import_linked(
    root: Path = typer.Argument(..., help="Directory searched recursively for IDL files."),
    output: Path = typer.Argument(..., help="Dataset JSON file to write."),
    extension: Optional[str] = typer.Option(".idl", "--extension", help="File suffix to collect."),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    if not root.is_dir():
        raise typer.BadParameter(f"Not a directory: {root}")
    _execute(
        "import-linked",
        RunOptions(output=output, root=root, extension=extension or ".idl"),
        verbose,
    )


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
