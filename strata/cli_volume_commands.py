"""Volume CLI commands - scale replicas, resize capacity."""
import re

import typer
from rich.console import Console

from strata.cli_support import handle_cli_error, load_config, open_store, print_info, print_success
from strata.core.errors import StrataError
from strata.models.volume import ReplicaPoolInfo, VolumeConfig

console: Console = Console()

UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3, "T": 1024 ** 4}


def parse_capacity(value: str) -> int:
    """Bytes for '10G', '512Mi', '1073741824' and the like."""
    match = re.fullmatch(r"\s*(\d+)\s*([KMGT]?)i?B?\s*", value, re.IGNORECASE)
    if not match:
        raise typer.BadParameter(f"invalid capacity '{value}'")
    return int(match.group(1)) * UNITS[match.group(2).upper()]


def parse_pools(value: str):
    pools = [p.strip() for p in value.split(",") if p.strip()]
    if not pools:
        raise typer.BadParameter("at least one pool is required")
    if len(set(pools)) != len(pools):
        raise typer.BadParameter(f"duplicate pool in '{value}'")
    return pools


def register_volume_commands(app: typer.Typer, shared_console: Console):
    """Register the `volume` command group."""
    global console
    console = shared_console

    volume_app = typer.Typer(help="Change replicated volumes")
    app.add_typer(volume_app, name="volume")

    @volume_app.command("scale")
    def scale(
        name: str = typer.Argument(..., help="VolumeConfig name"),
        pools: str = typer.Option(..., "--pools", help="Comma-separated pool instances to hold replicas"),
    ):
        """Set the pools that should hold the volume's replicas."""
        pool_names = parse_pools(pools)
        config = load_config(console, require_namespace=False)
        store = open_store(config)
        try:
            vc = store.get(VolumeConfig, name)
            if vc.spec.desired_pool_names() == pool_names:
                print_info(console, f"Volume {name} already uses pools {', '.join(pool_names)}")
                return
            vc.spec.policy.replica_pool_info = [ReplicaPoolInfo(pool_name=p) for p in pool_names]
            store.update(vc)
        except StrataError as e:
            handle_cli_error(e, console)
        print_success(console, f"Volume {name} scaling to {len(pool_names)} replica(s)")

    @volume_app.command("resize")
    def resize(
        name: str = typer.Argument(..., help="VolumeConfig name"),
        capacity: str = typer.Argument(..., help="New capacity, e.g. 20G"),
    ):
        """Grow a volume to a new capacity."""
        size = parse_capacity(capacity)
        config = load_config(console, require_namespace=False)
        store = open_store(config)
        try:
            vc = store.get(VolumeConfig, name)
            if size < vc.spec.capacity:
                console.print(f"[red]Error:[/red] cannot shrink volume {name} from {vc.spec.capacity} to {size}")
                raise typer.Exit(1)
            if size == vc.spec.capacity:
                print_info(console, f"Volume {name} is already {size} bytes")
                return
            vc.spec.capacity = size
            store.update(vc)
        except StrataError as e:
            handle_cli_error(e, console)
        print_success(console, f"Volume {name} resize to {size} bytes requested")
