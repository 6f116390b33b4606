"""CLI entry point for the screenshot recorder."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from recorder.errors import RecorderError
from recorder.models.config import CredentialSource, RecorderConfig
from recorder.orchestrator import Recorder

console = Console()
logger = logging.getLogger(__name__)

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    # httpx logs every request at INFO, including pre-signed URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Process and record screenshots to Screenshotbot."""
    setup_logging(verbose)


@cli.command(context_settings=CONTEXT_SETTINGS)
@click.option("--dir", "-d", "directory", required=True,
              help="Directory with screenshots, can also be a bundle.zip")
@click.option("--channel", "-c", required=True,
              help="Channel name under which the screenshots should go")
@click.option("--metadata", "-m", default=None,
              help="Metadata file, defaults to DIR/metadata.xml")
@click.option("--is-production", "-p", "production", is_flag=True,
              help="Mark this as a production (CI) run. Only production runs on "
                   "master or release branches are promoted.")
@click.option("--branch", "-b", default=None, help="Branch")
@click.option("--repo", "-r", default=None, help="GitHub repository")
@click.option("--api-key", default=None, envvar="SCREENSHOTBOT_API_KEY",
              help="API key, otherwise read from ~/.screenshotbot")
@click.option("--api-secret", default=None, envvar="SCREENSHOTBOT_API_SECRET",
              help="API secret, otherwise read from ~/.screenshotbot")
@click.option("--ios-snapshot-test-case", is_flag=True,
              help="Assume the directory structure generated by iOSSnapshotTestCase "
                   "(ClassName/testName.png)")
@click.option("--config", "config_path", default=None,
              help="Optional recorder config JSON file")
@click.option("--api-url", default=None, help="Override the API server URL")
@click.option("--workers", type=click.IntRange(min=1), default=None,
              help="Screenshots processed in parallel")
@click.option("--hash-algorithm", type=click.Choice(["md5", "sha256"]), default=None,
              help="Content digest sent for deduplication")
@click.option("--retries", type=click.IntRange(min=0), default=None,
              help="Retries per screenshot on network errors")
def record(
    directory: str,
    channel: str,
    metadata: Optional[str],
    production: bool,
    branch: Optional[str],
    repo: Optional[str],
    api_key: Optional[str],
    api_secret: Optional[str],
    ios_snapshot_test_case: bool,
    config_path: Optional[str],
    api_url: Optional[str],
    workers: Optional[int],
    hash_algorithm: Optional[str],
    retries: Optional[int],
) -> None:
    """Upload screenshots and create a run."""
    if not channel.strip():
        console.print("[red]input failed: empty channel[/red]")
        sys.exit(1)
    if not directory.strip():
        console.print("[red]input failed: no directory specified[/red]")
        sys.exit(1)

    overrides = {
        "api_url": api_url,
        "max_workers": workers,
        "hash_algorithm": hash_algorithm,
        "network_retries": retries,
        "production": production or None,
        "branch": branch,
        "github_repo": repo,
        "ios_snapshot_test_case": ios_snapshot_test_case or None,
    }
    try:
        cfg = RecorderConfig.load(config_path) if config_path else RecorderConfig()
        cfg = RecorderConfig.model_validate(
            {**cfg.model_dump(), **{k: v for k, v in overrides.items() if v is not None}}
        )
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {config_path}[/red]")
        sys.exit(1)
    except ValidationError as e:
        console.print(f"[red]config failed: {escape(str(e))}[/red]")
        sys.exit(1)

    recorder = Recorder(cfg, CredentialSource(api_key=api_key, api_secret=api_secret))
    try:
        summary = recorder.record(channel, Path(directory), metadata)
    except RecorderError as e:
        logger.debug("Recording failed", exc_info=True)
        console.print(f"[red]{escape(e.describe())}[/red]")
        sys.exit(1)

    console.print("\n[bold green]Run Recorded[/bold green]")
    table = Table(title="Run Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Run ID", summary.run_id)
    table.add_row("Channel", summary.channel)
    table.add_row("Screenshots", str(summary.total))
    table.add_row("Uploaded", f"[green]{summary.uploaded}[/green]")
    table.add_row("Reused", f"[yellow]{summary.reused}[/yellow]")
    table.add_row("Duration", f"{summary.duration_seconds}s")
    console.print(table)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
