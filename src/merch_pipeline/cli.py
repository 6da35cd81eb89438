"""Command line interface for merch-pipeline."""
from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv

from .config import RunConfig, load_run_config
from .content import ContentGenerator, ContentSettings, DryRunContentGenerator
from .credentials import resolve_store_credentials
from .discovery import units_from_directory, units_from_names
from .errors import PipelineError
from .hosting import build_uploader
from .models import RetryPolicy
from .pipeline import RunSummary, build_sequencer, write_report
from .printful import PrintfulClient
from .retry import retry_call
from .utils import EXPORT_DIR, MOCKUPS_DIR, setup_logging, workspace_root

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(help="Generate listings, host designs and sync print-on-demand products.")


@app.callback()
def _init(ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")) -> None:
    """Initialize logging for all commands."""

    setup_logging(level=10 if verbose else 20)  # 10=DEBUG, 20=INFO
    ctx.obj = {}


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=1)


def _load_config(config_path: Optional[Path], **overrides) -> RunConfig:
    return load_run_config(config_path).with_overrides(**overrides)


def _retry_override(
    config: RunConfig,
    max_attempts: Optional[int],
    initial_delay: Optional[float],
    backoff: Optional[float],
) -> Optional[RetryPolicy]:
    if max_attempts is None and initial_delay is None and backoff is None:
        return None
    return RetryPolicy(
        max_attempts=config.retry.max_attempts if max_attempts is None else max_attempts,
        initial_delay=config.retry.initial_delay if initial_delay is None else initial_delay,
        backoff_multiplier=config.retry.backoff_multiplier if backoff is None else backoff,
    )


def _print_summary(summary: RunSummary) -> None:
    typer.echo("\n" + "=" * 60)
    typer.echo("RUN SUMMARY" + (" (DRY RUN)" if summary.dry_run else ""))
    typer.echo("=" * 60)
    typer.echo(f"Processed: {summary.processed}")
    typer.echo(f"Succeeded: {summary.succeeded}")
    typer.echo(f"Failed: {summary.failed}")
    if summary.known_limitations:
        typer.echo(f"Known store limitations: {summary.known_limitations}")

    for outcome in summary.outcomes:
        if outcome.succeeded:
            typer.echo(f"  [OK] {outcome.name} -> {outcome.record.id}")
        else:
            stage = outcome.failed_stage.value if outcome.failed_stage else "?"
            typer.echo(f"  [FAILED] {outcome.name} ({stage}): {outcome.reason}")
    typer.echo("=" * 60)


@app.command()
def run(
    names: Optional[List[str]] = typer.Argument(None, help="Design names, e.g. TACO MOLE."),
    from_dir: bool = typer.Option(False, "--from-dir", help="Process every PNG in the assets directory."),
    assets_dir: Optional[Path] = typer.Option(None, "--assets-dir", help="Folder with <name>.png exports."),
    mockups_dir: Optional[Path] = typer.Option(None, "--mockups-dir", help="Folder with <name>/*.png mockups."),
    limit: Optional[int] = typer.Option(None, "--limit", help="Process only the first N files (with --from-dir)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Use placeholders instead of network calls."),
    store: Optional[str] = typer.Option(None, "--store", help="Store credentials to use: manual or etsy."),
    host: Optional[str] = typer.Option(None, "--host", help="File host: cloudinary or dropbox."),
    color: Optional[str] = typer.Option(None, "--color", help="Garment colour, e.g. black or navy."),
    all_colors: bool = typer.Option(False, "--all-colors", help="Create variants for every catalog colour."),
    max_attempts: Optional[int] = typer.Option(None, "--max-attempts", help="Attempts per network call."),
    initial_delay: Optional[float] = typer.Option(None, "--initial-delay", help="Seconds before the first retry."),
    backoff: Optional[float] = typer.Option(None, "--backoff", help="Backoff multiplier between retries."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML run configuration."),
    report: Optional[Path] = typer.Option(None, "--report", help="Write a markdown report to this path."),
) -> None:
    """Generate listings, upload designs and sync products for each design.

    Example:
        merch-pipeline run TACO MOLE --dry-run
        merch-pipeline run --from-dir --limit 5 --all-colors
    """
    root = workspace_root()
    assets_dir = assets_dir or root / EXPORT_DIR
    mockups_dir = mockups_dir or root / MOCKUPS_DIR

    try:
        config = load_run_config(config_path)
        config = config.with_overrides(
            dry_run=True if dry_run else None,
            store=store,
            host=host,
            color=color,
            all_colors=True if all_colors else None,
            retry=_retry_override(config, max_attempts, initial_delay, backoff),
        )

        if from_dir:
            units = units_from_directory(assets_dir, mockups_dir, limit=limit)
        elif names:
            units = units_from_names(names, assets_dir, mockups_dir)
        else:
            _fail("Give one or more design names or use --from-dir.")
            return

        sequencer = build_sequencer(config)
        summary = sequencer.run(units)
    except (PipelineError, FileNotFoundError) as e:
        _fail(str(e))
        return

    _print_summary(summary)
    if report is not None:
        write_report(summary, report)
        typer.echo(f"Report: {report}")


@app.command()
def listing(
    word: str = typer.Argument(..., help="Design name to write listing copy for."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print placeholder copy without calling the API."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML run configuration."),
) -> None:
    """Generate listing copy for one design and print it as JSON."""

    try:
        if dry_run:
            generator = DryRunContentGenerator()
        else:
            config = load_run_config(config_path)
            generator = ContentGenerator(ContentSettings.from_env(), config.retry)
        content = generator.generate(word)
    except (PipelineError, FileNotFoundError) as e:
        _fail(str(e))
        return

    typer.echo(json.dumps(content.to_dict(), indent=2, ensure_ascii=False))


@app.command()
def upload(
    file: Path = typer.Argument(..., help="Image file to host."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print a placeholder URL without uploading."),
    host: Optional[str] = typer.Option(None, "--host", help="File host: cloudinary or dropbox."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML run configuration."),
) -> None:
    """Upload one asset to the file host and print its public URL."""

    try:
        config = _load_config(config_path, dry_run=True if dry_run else None, host=host)
        result = build_uploader(config).upload(file)
    except (PipelineError, FileNotFoundError) as e:
        _fail(str(e))
        return

    suffix = " (existing)" if result.reconciled else ""
    typer.echo(f"{result.url}{suffix}")


@app.command(name="check-store")
def check_store(
    store: Optional[str] = typer.Option(None, "--store", help="Store credentials to check: manual or etsy."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML run configuration."),
) -> None:
    """List Printful stores visible to the configured API key."""

    try:
        config = _load_config(config_path, store=store)
        credentials = resolve_store_credentials(config.store)
        client = PrintfulClient(credentials)
        stores = retry_call(client.list_stores, config.retry, description="store listing")
    except (PipelineError, FileNotFoundError) as e:
        _fail(str(e))
        return

    typer.echo(f"Credentials: {credentials}")
    found = False
    for entry in stores:
        marker = ""
        if str(entry.get("id")) == credentials.store_id:
            marker = "  <- configured"
            found = True
        typer.echo(f"  - {entry.get('id')}: {entry.get('name')} ({entry.get('type')}){marker}")

    if not found:
        typer.echo(f"[WARN] Store {credentials.store_id} is not visible to this API key")


if __name__ == "__main__":  # pragma: no cover
    app()
