#!/usr/bin/env python3
"""
Command-line interface for the couch backup system.

Configuration comes from an optional YAML file plus the DATACOUCH_ROOT and
DATACOUCH_VHOST environment variables.

Examples:
  # Run the poll loop until interrupted
  couch-backup run config.yaml

  # Run a single cycle and print a summary
  couch-backup run config.yaml --once

  # Validate configuration only
  couch-backup validate config.yaml

  # Show datasets and their checkpoints without copying anything
  couch-backup datasets config.yaml
"""

import signal
import sys
import threading
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..audit.logger import BackupLogger
from ..backup.backup_manager import BackupManager
from ..backup.dataset_enumerator import DatasetEnumerator
from ..config.loader import ConfigLoader
from ..config.models import BackupSystemConfig, CycleSummary
from ..couch_operations import CouchOperations
from ..exceptions import BackupError, ConfigurationError

app = typer.Typer(
    add_completion=False,
    help="Incremental backup of document stores into dedicated backup stores.",
)
console = Console(stderr=True)

CONFIG_HELP = "Path to the YAML configuration file (optional when $DATACOUCH_ROOT is set)"


def create_logger(config: BackupSystemConfig, verbose: bool = False) -> BackupLogger:
    """Create logger instance from configuration."""
    logger = BackupLogger("couch_backup")
    logging_config = config.logging
    if verbose:
        logging_config = logging_config.model_copy(update={"level": "DEBUG"})
    logger.setup_logging(logging_config)
    return logger


def load_config(config_file: Optional[Path]) -> BackupSystemConfig:
    """Load configuration, exiting with status 1 when it is invalid."""
    try:
        return ConfigLoader.load(config_file)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=1)


def install_signal_handlers(manager: BackupManager, logger: BackupLogger) -> None:
    """Stop the poll loop between cycles on SIGINT/SIGTERM."""

    def _handler(signum, _frame):
        logger.info(f"Received signal {signum}, stopping after the current cycle")
        manager.stop()

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)


def render_summary(summary: CycleSummary, manager: BackupManager) -> None:
    """Print a cycle summary table."""
    table = Table(title=f"Backup cycle {summary.cycle} ({summary.status})")
    table.add_column("Dataset")
    table.add_column("Status")
    table.add_column("Checkpoint")
    table.add_column("Unresolved", justify="right")
    table.add_column("Failed cycles", justify="right")

    for dataset_id, state in sorted(manager.states.items()):
        table.add_row(
            dataset_id,
            state.last_status or "",
            str(state.checkpoint) if state.checkpoint is not None else "-",
            str(len(state.unresolved)),
            str(state.consecutive_failures),
        )

    console.print(table)
    if summary.summary:
        console.print(summary.summary)
    if summary.error_message:
        console.print(f"[red]{summary.error_message}[/red]")


@app.command()
def run(
    config_file: Optional[Path] = typer.Argument(None, help=CONFIG_HELP),
    once: bool = typer.Option(False, "--once", help="Run a single cycle and exit"),
    max_cycles: Optional[int] = typer.Option(
        None, "--max-cycles", min=1, help="Stop after this many cycles"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Run backup cycles."""
    config = load_config(config_file)
    logger = create_logger(config, verbose)
    logger.info(
        "Loaded configuration",
        extra={"config_file": str(config_file) if config_file else None},
    )

    try:
        manager = BackupManager(config, CouchOperations.from_config(config), logger)
    except BackupError as e:
        logger.critical(f"Backup startup failed: {e}", exc_info=True)
        raise typer.Exit(code=1)

    if once:
        summary = manager.run_cycle()
        render_summary(summary, manager)
        raise typer.Exit(code=0 if summary.status == "completed" else 1)

    install_signal_handlers(manager, logger)
    manager.run_forever(max_cycles=max_cycles)


@app.command()
def validate(config_file: Optional[Path] = typer.Argument(None, help=CONFIG_HELP)) -> None:
    """Only validate configuration."""
    config = load_config(config_file)
    console.print(
        f"Configuration is valid: root {config.couch.root_url.split('@')[-1]}, "
        f"catalog {config.catalog.database}, backup suffix {config.backup.suffix!r}"
    )


@app.command()
def datasets(
    config_file: Optional[Path] = typer.Argument(None, help=CONFIG_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """List datasets with their checkpoints without backing anything up."""
    config = load_config(config_file)
    logger = create_logger(config, verbose)
    couch_ops = CouchOperations.from_config(config)
    enumerator = DatasetEnumerator(
        couch_ops,
        config.catalog,
        logger,
        include_datasets=config.backup.include_datasets,
        exclude_datasets=config.backup.exclude_datasets,
    )
    table = Table(title=f"Datasets in {config.catalog.database}")
    table.add_column("Dataset")
    table.add_column("User")
    table.add_column("Backup store")
    table.add_column("Last backup seq")
    try:
        for dataset in enumerator.list_datasets().values():
            seq = dataset.last_backup_seq
            table.add_row(
                dataset.id,
                dataset.user or "",
                f"{dataset.id}{config.backup.suffix}",
                str(seq) if seq is not None else "-",
            )
    except BackupError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    console.print(table)


def main() -> None:
    """Main entry point for the backup CLI."""
    app()


if __name__ == "__main__":
    sys.exit(main())
