"""CLI application for modrot."""

import asyncio
from datetime import date
from importlib.metadata import PackageNotFoundError, version

import typer
from rich.console import Console

from modrot.logging import setup_logging
from modrot.output import OutputOptions, Reporter
from modrot.scan import EXIT_ERROR, ScanConfig, run_recursive, run_single

console = Console(stderr=True)


def get_version() -> str:
    try:
        return version("modrot")
    except PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"modrot {get_version()}")
        raise typer.Exit()


def parse_duration_end(value: str | None) -> date:
    """End date for --duration; today when not given."""
    if not value:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"invalid date {value!r}, expected YYYY-MM-DD")


app = typer.Typer(
    name="modrot",
    help="modrot - Detect archived GitHub dependencies in a Go project",
    add_completion=False,
)


@app.command()
def check(
    path: str = typer.Argument(".", help="Path to go.mod or to a directory containing one"),
    json_mode: bool = typer.Option(False, "--json", help="Output as JSON"),
    show_all: bool = typer.Option(False, "--all", help="Show all modules, not just archived ones"),
    direct_only: bool = typer.Option(False, "--direct-only", help="Only check direct dependencies"),
    workers: int = typer.Option(50, "--workers", min=1, help="Number of repos per GitHub GraphQL batch request"),
    tree: bool = typer.Option(False, "--tree", help="Show dependency tree for archived modules (uses go mod graph)"),
    files: bool = typer.Option(False, "--files", help="Show source files that import archived modules"),
    show_time: bool = typer.Option(False, "--time", help="Include time in date output"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Scan every go.mod below the given directory"),
    resolve: bool = typer.Option(False, "--resolve", help="Resolve vanity import paths to GitHub repos"),
    deprecated: bool = typer.Option(False, "--deprecated", help="Report modules marked deprecated in their go.mod"),
    skipped: bool = typer.Option(False, "--skipped", help="List non-GitHub modules with data from the module proxy"),
    duration: bool = typer.Option(False, "--duration", help="Show how long each dependency has been archived"),
    duration_end: str | None = typer.Option(None, "--duration-end", help="End date for --duration (YYYY-MM-DD, default today)"),
    show_version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Print version and exit"
    ),
) -> None:
    """modrot - Detect archived GitHub dependencies in a Go project.

    Exits 0 when nothing is archived, 1 when an archived dependency is found,
    and 2 on error.
    """
    setup_logging()

    options = OutputOptions(
        show_time=show_time,
        duration_end=parse_duration_end(duration_end) if duration or duration_end else None,
    )
    cfg = ScanConfig(
        json_mode=json_mode,
        show_all=show_all,
        direct_only=direct_only,
        workers=workers,
        tree=tree,
        files=files,
        resolve=resolve,
        deprecated=deprecated,
        skipped=skipped,
        output=options,
    )
    reporter = Reporter(options)

    try:
        if recursive:
            code = asyncio.run(run_recursive(path, cfg, reporter))
        else:
            code = asyncio.run(run_single(path, cfg, reporter))
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(EXIT_ERROR)

    raise typer.Exit(code)


if __name__ == "__main__":
    app()
