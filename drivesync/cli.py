"""CLI interface for drivesync."""

import json as jsonlib
import logging
import signal
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .api import DriveClient
from .auth import load_access_token
from .config import Config, load_config, write_default_config
from .exceptions import ConfigurationError, MetadataIOError
from .output import ConsoleStatus, NullStatus, StatusReporter
from .service import SyncService
from .sync import LocalChangeWatcher, SyncEngine
from .sync.state import read_metadata_file

logger = logging.getLogger(__name__)

LOG_FILE_NAME = "drivesync.log"


def setup_logging(console: Console, verbose: bool, log_dir: Optional[str]) -> None:
    """Configure console (and optionally file) logging.

    Args:
        console: Console shared with the status display
        verbose: Show debug output on the console
        log_dir: Directory for a rotating log file, if any
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console_handler = RichHandler(console=console, show_path=False)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.addHandler(console_handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    if log_dir:
        path = Path(log_dir).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path / LOG_FILE_NAME, maxBytes=1024 * 1024, backupCount=3, encoding="utf-8"
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(file_handler)

    # Keep HTTP request chatter out of the console
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_engine(config: Config, status: StatusReporter) -> SyncEngine:
    """Validate configuration, load credentials and create the engine.

    Raises:
        ConfigurationError: If settings or credentials are missing/invalid
    """
    config.validate()
    token = load_access_token(config.token_file)
    client = DriveClient(access_token=token, api_url=config.api_url)
    return SyncEngine(client, config, status=status)


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    envvar="DRIVESYNC_CONFIG",
    type=click.Path(dir_okay=False, path_type=Path),
    default="config.json",
    show_default=True,
    help="Path of the JSON config file",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(version=__version__, prog_name="drivesync")
@click.pass_context
def main(ctx: Any, config_path: Path, verbose: bool) -> None:
    """drivesync - Two-way sync between a local folder and Google Drive."""
    ctx.ensure_object(dict)
    console = Console(stderr=True)
    config = load_config(config_path)
    setup_logging(console, verbose, config.log_dir)

    ctx.obj["console"] = console
    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


@main.command()
@click.pass_context
def run(ctx: Any) -> None:
    """Sync continuously: initial cycle, live watcher, periodic cycles."""
    config: Config = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    status = ConsoleStatus(console)

    try:
        engine = build_engine(config, status)
    except ConfigurationError as e:
        logger.error(str(e))
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    watcher = LocalChangeWatcher(engine, debounce_delay=config.debounce_delay)
    service = SyncService(engine, watcher, interval=config.periodic_interval)

    def handle_signal(signum, frame):  # pragma: no cover - signal path
        service.stop()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    status.start()
    try:
        service.run_forever()
    finally:
        status.stop()


@main.command()
@click.pass_context
def sync(ctx: Any) -> None:
    """Run a single reconciliation cycle and exit."""
    config: Config = ctx.obj["config"]

    try:
        engine = build_engine(config, NullStatus())
    except ConfigurationError as e:
        logger.error(str(e))
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    try:
        stats = engine.run_cycle()
    except Exception as e:
        logger.error(f"Sync cycle failed: {e}")
        click.echo(f"Error: sync cycle failed: {e}", err=True)
        ctx.exit(1)

    click.echo(
        f"Uploaded: {stats['uploads']}  Downloaded: {stats['downloads']}  "
        f"Deleted local: {stats['deletes_local']}  "
        f"Deleted remote: {stats['deletes_remote']}  "
        f"Folders created: {stats['folders_created']}  Failed: {stats['failed']}"
    )
    if stats["failed"]:
        ctx.exit(1)


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format")
@click.pass_context
def status(ctx: Any, as_json: bool) -> None:
    """Show the configured roots and the tracked sync records.

    Reads the local metadata file only; the remote store is not contacted.
    """
    config: Config = ctx.obj["config"]
    metadata_path = config.metadata_path

    try:
        records = read_metadata_file(metadata_path)
        missing = False
    except FileNotFoundError:
        records = {}
        missing = True
    except MetadataIOError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    summary = {
        "local_root": str(config.local_path),
        "remote_root_id": config.remote_root_id,
        "metadata_file": str(metadata_path),
        "metadata_missing": missing,
        "files_tracked": len(records),
        "records": {
            path: record.last_known_remote_hash
            for path, record in sorted(records.items())
        },
    }

    if as_json:
        click.echo(jsonlib.dumps(summary, indent=2, sort_keys=True))
        return

    click.echo(f"Local root:     {summary['local_root']}")
    click.echo(f"Remote root ID: {summary['remote_root_id']}")
    click.echo(f"Metadata file:  {summary['metadata_file']}")
    if missing:
        click.echo("No sync has completed yet.")
        return

    table = Table(title=f"{len(records)} tracked file(s)")
    table.add_column("Path")
    table.add_column("Last known remote MD5")
    for path, remote_hash in summary["records"].items():
        table.add_row(path, remote_hash or "-")
    Console().print(table)


@main.command()
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
@click.pass_context
def init(ctx: Any, force: bool) -> None:
    """Write a config file populated with the defaults."""
    config_path: Path = ctx.obj["config_path"]
    if config_path.exists() and not force:
        click.echo(f"Config file already exists: {config_path}", err=True)
        ctx.exit(1)

    write_default_config(config_path)
    click.echo(f"Wrote default config to {config_path}")


if __name__ == "__main__":
    main()
