#!/usr/bin/env python3
"""Strata CLI - replicated block volumes on ZFS pools."""

import typer
from rich.console import Console

from strata.cli_core_commands import register_core_commands
from strata.cli_pool_commands import register_pool_commands
from strata.cli_volume_commands import register_volume_commands
from strata.core.logger import get_logger

app = typer.Typer(
    name="strata",
    help="""Strata - replicated block volumes on ZFS pools

Quick start:
  strata apply -f cluster.yml     # Store pool clusters, nodes, volumes
  strata run clusters --once      # Place pool instances on nodes
  strata pool run                 # Serve this node's pool
  strata run volumes              # Provision and scale volumes
""",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

register_core_commands(app, console)
register_pool_commands(app, console)
register_volume_commands(app, console)

if __name__ == "__main__":
    app()
