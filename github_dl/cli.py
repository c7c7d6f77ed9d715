import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from github_dl.config import Config
from github_dl.metadata import MetadataCorruptError, MetadataStore
from github_dl.mirror import FolderReport, Mirror
from github_dl.refresh import RefreshScanner, find_managed


class ColoredFormatter(logging.Formatter):
    """
    Custom formatter with colors for different log levels
    """

    COLORS = {
        logging.DEBUG: "\033[90m",  # Grey
        logging.INFO: "\033[37m",  # White
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[31m",  # Red
    }
    RESET = "\033[0m"

    ABBREVIATIONS = {
        "DEBUG": "DBG",
        "INFO": "INF",
        "WARNING": "WRN",
        "ERROR": "ERR",
        "CRITICAL": "CRT",
    }

    def format(self, record):
        color = self.COLORS.get(record.levelno, self.RESET)
        levelname_abbr = self.ABBREVIATIONS.get(record.levelname, record.levelname[:3])
        record.levelname = f"{color}{levelname_abbr:>3}{self.RESET}"
        record.msg = f"{color}{record.msg}{self.RESET}"
        return super().format(record)


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(
        ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False
    ),
    default="INFO",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML config file [default: ~/.config/github-dl/config.yaml if present]",
)
@click.pass_context
def main(ctx, log_level: str, config_path: Path | None):
    """
    Download GitHub folders and keep them up to date
    """
    # Configure logging with custom colored formatter
    handler = logging.StreamHandler()
    handler.setFormatter(
        ColoredFormatter("%(asctime)s | %(levelname)s | %(message)s", datefmt="%H:%M")
    )
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        handlers=[handler],
    )
    ctx.obj = Config(config_path)


@main.command()
@click.argument("link")
@click.option(
    "-o",
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    required=True,
    help="Output directory to save the folder",
)
@click.option(
    "-j",
    "--jobs",
    type=click.IntRange(min=1),
    default=None,
    help="Number of parallel downloads",
)
@click.option(
    "--force",
    is_flag=True,
    help=(
        "Download even if the output directory is not empty; files already "
        "there are kept, now and on refresh"
    ),
)
@click.pass_obj
def download(config: Config, link: str, output: Path, jobs: int | None, force: bool):
    """
    Download a GitHub folder (https://github.com/owner/repo/tree/ref/path)
    """
    mirror = _build_mirror(config, jobs)
    try:
        report = mirror.download(link, output, force=force)
    finally:
        mirror.client.close()
    if report.ok:
        click.echo(f"Downloaded to {output} ({report.total_files} files)")
    else:
        _print_failures([report])
        sys.exit(1)


@main.command()
@click.option(
    "-b",
    "--base-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Base directory to search for downloaded folders",
)
@click.option(
    "-j",
    "--jobs",
    type=click.IntRange(min=1),
    default=None,
    help="Number of parallel downloads",
)
@click.pass_obj
def refresh(config: Config, base_dir: Path, jobs: int | None):
    """
    Refresh all downloaded folders in the base directory
    """
    mirror = _build_mirror(config, jobs)
    scanner = RefreshScanner(mirror)
    try:
        reports = scanner.run(base_dir)
    finally:
        mirror.client.close()
    if not reports:
        click.echo(f"No downloaded folders found in {base_dir}")
        return
    for report in reports:
        click.echo(f"{report.directory}: {report.summary()}")
    failed = [report for report in reports if not report.ok]
    if failed:
        _print_failures(failed)
        sys.exit(1)


@main.command()
@click.option(
    "-b",
    "--base-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)
def status(base_dir: Path):
    """
    List the downloaded folders in the base directory
    """
    store = MetadataStore()
    console = Console()
    table = Table()

    table.add_column("Directory", style="cyan")
    table.add_column("Repository", style="green")
    table.add_column("Ref", style="magenta")
    table.add_column("Path")
    table.add_column("Last refreshed", style="yellow")

    for directory in find_managed(base_dir, store):
        try:
            metadata = store.read(directory)
        except MetadataCorruptError:
            table.add_row(escape(str(directory)), "[red]corrupt metadata[/red]", "", "", "")
            continue
        if metadata is None:
            continue
        refreshed = (
            metadata.last_refreshed.strftime("%Y-%m-%d %H:%M:%S")
            if metadata.last_refreshed
            else "[dim]never[/dim]"
        )
        table.add_row(
            escape(str(directory)),
            escape(f"{metadata.owner}/{metadata.repo}"),
            escape(metadata.ref),
            escape(metadata.path) if metadata.path else "[dim]/[/dim]",
            refreshed,
        )

    console.print(table)


def _build_mirror(config: Config, jobs: int | None) -> Mirror:
    return Mirror(
        config.api_client(),
        concurrency=jobs or config.concurrency,
        listing_concurrency=config.listing_concurrency,
    )


def _print_failures(reports: list[FolderReport]):
    """
    Writes the aggregated failure report to stderr
    """
    console = Console(stderr=True, soft_wrap=True)
    for report in reports:
        console.print(
            f"[red]Error:[/red] {escape(str(report.directory))}: "
            f"{escape(report.summary())}"
        )
        for failure in report.failures:
            console.print(f"  {escape(str(failure))}")


if __name__ == "__main__":
    main()
