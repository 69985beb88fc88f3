"""
Command-line interface for diffit
"""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from diffit import __version__

console = Console()

STATUS_STYLES = {
    "unchanged": "green",
    "changed": "yellow",
    "added": "cyan",
    "removed": "magenta",
    "failed": "red",
}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """diffit - visual regression testing for screenshots"""
    from diffit.core.config import get_settings

    configure_logging(get_settings().log_level)


@main.command("compare-dirs")
@click.argument("base", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("feature", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option(
    "--diff-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Where diff images are written (default: <parent of BASE>/diff)",
)
@click.option(
    "--threshold",
    type=click.FloatRange(0.0, 1.0),
    default=None,
    help="Per-pixel tolerance between 0 and 1 (default: from settings)",
)
def compare_dirs(base: Path, feature: Path, diff_dir: Path | None, threshold: float | None) -> None:
    """Compare two screenshot directory trees"""
    from diffit.core.exceptions import DiffitError
    from diffit.visual_testing.tree_diff import TreeDiffRunner

    diff_dir = diff_dir or base.resolve().parent / "diff"

    try:
        report = TreeDiffRunner(diff_dir, threshold=threshold).run(base, feature)
    except DiffitError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(2)

    table = Table(title="Screenshot Comparison", show_header=True, header_style="bold cyan")
    table.add_column("Name", style="white")
    table.add_column("Status")
    table.add_column("Diff %", justify="right")
    table.add_column("Diff Image / Error", style="dim")

    for result in report.results:
        status = result.status.value
        detail = result.error or (str(result.artifact_path) if result.artifact_path else "")
        percentage = f"{result.diff_percentage:.2f}" if status == "changed" else ""
        table.add_row(
            result.name,
            f"[{STATUS_STYLES[status]}]{status}[/{STATUS_STYLES[status]}]",
            percentage,
            detail,
        )

    console.print(table)
    summary = report.summary()
    console.print(", ".join(f"{count} {name}" for name, count in summary.items()))

    if report.has_differences:
        sys.exit(1)


@main.command("init-db")
def init_db() -> None:
    """Create the database tables and storage directory"""
    from diffit.core.config import get_settings
    from diffit.storage.database import Database

    settings = get_settings()
    database = Database(settings.database_path)
    schema_ok = database.verify_schema()
    database.dispose()

    settings.storage_path.mkdir(parents=True, exist_ok=True)

    if not schema_ok:
        console.print("[bold red]❌ Database schema verification failed[/bold red]")
        sys.exit(1)

    console.print(f"✅ Database ready: [green]{settings.database_path}[/green]")
    console.print(f"✅ Storage directory ready: [green]{settings.storage_path}[/green]")


if __name__ == "__main__":
    main()
