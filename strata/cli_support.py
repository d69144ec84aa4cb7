"""Shared utilities for Strata CLI modules."""
from __future__ import annotations

import os
from typing import Optional

import typer
from rich.console import Console

from strata.core.config import StrataConfig, get_config
from strata.core.errors import ConfigurationError
from strata.core.events import JournalEventRecorder
from strata.core.store import JSONFileStore


def is_mock() -> bool:
    """Return True when the CLI runs in mock mode."""
    return os.environ.get("STRATA_MOCK") == "1"


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    """Set up file logging for long-running CLI commands."""
    from strata.core.logger import setup_file_logging as _setup_file_logging
    _setup_file_logging(log_file=log_file, verbose=verbose)


def load_config(console: Console, require_namespace: bool = True, require_pool: bool = False) -> StrataConfig:
    """Read the environment configuration, exiting non-zero when it is unusable."""
    config = get_config()
    try:
        if require_namespace:
            config.validate(require_pool=require_pool)
        elif require_pool and not config.pool_name_seed:
            raise ConfigurationError("STRATA_POOL_NAME is not set")
    except ConfigurationError as e:
        handle_cli_error(e, console)
    return config


def open_store(config: StrataConfig) -> JSONFileStore:
    return JSONFileStore(config.store_path, namespace=config.namespace or "default")


def open_recorder(config: StrataConfig) -> JournalEventRecorder:
    return JournalEventRecorder(config.events_path)


def print_success(console: Console, message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_info(console: Console, message: str) -> None:
    console.print(f"[cyan]ℹ[/cyan] {message}")


def handle_cli_error(
    e: Exception,
    console: Console,
    verbose: bool = False,
    exit_code: int = 1
) -> None:
    """Print an error and exit.

    Args:
        e: Exception to handle
        console: Rich console for output
        verbose: Show exception traceback if True
        exit_code: Exit code to use
    """
    console.print(f"[red]Error:[/red] {e}")
    if verbose:
        console.print_exception()
    raise typer.Exit(exit_code)
