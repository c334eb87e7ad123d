"""
CLI interface for empolis-sync.

Usage:
    empolis-sync init
    empolis-sync status
    empolis-sync index --source icube
    empolis-sync update --source icube
    empolis-sync search "installation guide"
    empolis-sync record 1234
"""

import asyncio
import json
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import httpx
import typer
from typing_extensions import Annotated

from .auth import TokenManager
from .batch import BatchOrchestrator
from .config import (
    AppConfig,
    create_default_config,
    default_config_path,
    load_config,
    load_credentials,
    save_config,
)
from .errors import EmpolisSyncError, log_exception
from .file_index import create_file_index, index_path, read_index
from .gateway import ApiGateway, ExactQuery, NaturalLanguageQuery
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .types import BatchSummary


# Quiet HTTP libraries by default; EMPOLIS_SYNC_VERBOSE=1 enables debug output
if os.environ.get("EMPOLIS_SYNC_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from . import __version__
        print(f"empolis-sync {__version__}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_config_override: Optional[Path] = None
_json_output = False
_log_dir: Optional[Path] = None


def _config_callback(value: Optional[Path]):
    global _config_override
    if value is not None:
        _config_override = value


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_config_path() -> Path:
    return _config_override or default_config_path()


app = typer.Typer(
    name="empolis-sync",
    help="Synchronize Empolis document metadata with local HTML help files.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    config: Annotated[Optional[Path], typer.Option(
        "--config", "-c",
        help="Path to the TOML config file",
        callback=_config_callback,
        is_eager=True,
    )] = None,
):
    """Synchronize Empolis document metadata with local HTML help files."""


def _load_config() -> AppConfig:
    """Load config and start the operation log, or exit with a message."""
    path = _get_config_path()
    try:
        config = load_config(path)
    except FileNotFoundError:
        typer.echo(f"Error: config not found: {path} (run 'empolis-sync init')", err=True)
        raise typer.Exit(1)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    global _log_dir
    _log_dir = config.log_dir
    try:
        configure_ops_log(config.log_dir, config.log_level)
    except (OSError, ValueError) as e:
        typer.echo(f"Warning: file logging disabled: {e}", err=True)
    return config


@asynccontextmanager
async def _open_gateway(config: AppConfig) -> AsyncIterator[ApiGateway]:
    """HTTP client, token manager and gateway for one command."""
    credentials = load_credentials(scope=config.api.scope)
    async with httpx.AsyncClient(base_url=config.api.base_url, timeout=config.api.timeout) as client:
        tokens = TokenManager(client, credentials)
        yield ApiGateway(client, tokens, config.api)


def _run(coro, context: str):
    """Run a coroutine; report library errors cleanly and exit non-zero."""
    try:
        return asyncio.run(coro)
    except EmpolisSyncError as e:
        log_path = log_exception(e, context, log_dir=_log_dir)
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise typer.Exit(1)


def _format_summary(summary: BatchSummary) -> str:
    if _json_output:
        return json.dumps(summary.to_dict(), indent=2)
    lines = [
        f"Updated: {summary.updated}",
        f"Skipped: {summary.skipped}",
        f"Failed:  {summary.failed}",
    ]
    for filename, error in summary.failures:
        lines.append(f"  {filename}: {error}")
    return "\n".join(lines)


@app.command()
def init(
    force: Annotated[bool, typer.Option(
        "--force", help="Overwrite an existing config file"
    )] = False,
):
    """Write a starter config file."""
    path = _get_config_path()
    if path.exists() and not force:
        typer.echo(f"Config already exists: {path} (use --force to overwrite)", err=True)
        raise typer.Exit(1)
    save_config(create_default_config(path))
    typer.echo(f"Wrote {path}")


@app.command()
def status():
    """Check that the INGEST, IAS and STORE services are operational."""
    config = _load_config()

    async def _status():
        async with _open_gateway(config) as gateway:
            return await gateway.check_service_health()

    health = _run(_status(), "status")
    if _json_output:
        typer.echo(json.dumps(health.statuses))
    else:
        typer.echo("All Empolis services are operational")


@app.command()
def index(
    source: Annotated[str, typer.Option("--source", "-s", help="Data source name from the config")],
):
    """Build the file index for a data source's HTML files."""
    config = _load_config()
    try:
        data_source = config.data_source(source)
        path = create_file_index(data_source.help_dir)
    except (ValueError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Index written to {path}")


@app.command()
def update(
    source: Annotated[str, typer.Option("--source", "-s", help="Data source name from the config")],
    reuse_index: Annotated[bool, typer.Option(
        "--no-index", help="Use the existing index instead of rebuilding it"
    )] = False,
    skip_health: Annotated[bool, typer.Option(
        "--skip-health", help="Don't check service health before the batch"
    )] = False,
):
    """Update Title and Keywords_txt of every indexed file in Empolis."""
    config = _load_config()
    try:
        data_source = config.data_source(source)
        path = index_path(data_source.help_dir) if reuse_index else create_file_index(data_source.help_dir)
        records = read_index(path)
    except (ValueError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    async def _update():
        async with _open_gateway(config) as gateway:
            return await BatchOrchestrator(gateway).run_batch(
                records, data_source, check_health=not skip_health,
            )

    summary = _run(_update(), f"update --source {source}")
    typer.echo(_format_summary(summary))
    if summary.failed:
        raise typer.Exit(1)


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search text, or the value for --exact")],
    exact: Annotated[Optional[str], typer.Option(
        "--exact", "-e", help="Match this attribute exactly instead of a natural language search"
    )] = None,
    max_results: Annotated[int, typer.Option("--max", "-n", help="Maximum results")] = 10,
):
    """Search the Empolis index."""
    config = _load_config()
    q = ExactQuery(exact, query) if exact else NaturalLanguageQuery(query)

    async def _search():
        async with _open_gateway(config) as gateway:
            return await gateway.search(q, max_results=max_results)

    records = _run(_search(), "search")
    if _json_output:
        typer.echo(json.dumps(records, indent=2, ensure_ascii=False))
        return
    if not records:
        typer.echo("No results.")
        return
    for rec in records:
        typer.echo(f"{rec.get('DownloadLink', '')}  {rec.get('Title', '')}")


@app.command()
def record(
    record_id: Annotated[str, typer.Argument(help="Index record ID (_id of a search result)")],
):
    """Print an index record with all its attributes."""
    config = _load_config()

    async def _record():
        async with _open_gateway(config) as gateway:
            return await gateway.get_record(record_id)

    typer.echo(json.dumps(_run(_record(), "record"), indent=2, ensure_ascii=False))


def main():
    app()


if __name__ == "__main__":
    main()
