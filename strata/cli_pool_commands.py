"""Per-node pool engine CLI commands."""
import time
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from strata.cli_support import (
    is_mock,
    load_config,
    open_recorder,
    open_store,
    print_info,
    print_success,
    setup_file_logging,
)
from strata.controllers.pool_instance import PoolInstanceController
from strata.core.errors import NotFoundError
from strata.core.executor import ShellExecutor
from strata.models.pool import PoolInstance
from strata.pool import PoolEngine

console: Console = Console()


def build_engine(config, mock: bool = False) -> PoolEngine:
    return PoolEngine(
        store=open_store(config),
        executor=ShellExecutor(mock=mock),
        recorder=open_recorder(config),
        pool_name=config.pool_name,
        dev_dir=config.dev_dir,
        cache_file=config.cache_file,
    )


def register_pool_commands(app: typer.Typer, shared_console: Console):
    """Register the `pool` command group."""
    global console
    console = shared_console

    pool_app = typer.Typer(help="Per-node pool engine")
    app.add_typer(pool_app, name="pool")

    @pool_app.command("run")
    def run(
        mock: bool = typer.Option(False, "--mock", help="Log pool commands instead of running them"),
        once: bool = typer.Option(False, "--once", help="Reconcile the pool instance once and exit"),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Write logs to this file"),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    ):
        """Run the pool instance controller for this node's pool."""
        config = load_config(console, require_pool=True)
        engine = build_engine(config, mock=mock or is_mock())
        instance_controller = PoolInstanceController(engine, config.pool_name_seed)
        controller = instance_controller.controller(resync_interval=config.resync_interval)

        if once:
            if controller.run_once():
                console.print(f"[red]✗[/red] Pool instance {config.pool_name_seed} failed to reconcile")
                raise typer.Exit(1)
            print_success(console, f"Reconciled pool instance {config.pool_name_seed}")
            return

        setup_file_logging(log_file or config.log_file, verbose)
        controller.start()
        print_info(console, f"Serving pool {engine.pool_name}, press Ctrl+C to stop")
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Stopping pool engine...[/yellow]")
        finally:
            controller.stop()

    @pool_app.command("status")
    def status():
        """Show the recorded status of this node's pool instance."""
        config = load_config(console, require_namespace=False, require_pool=True)
        try:
            instance = open_store(config).get(PoolInstance, config.pool_name_seed)
        except NotFoundError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)

        capacity = instance.status.capacity
        table = Table(title=f"Pool {config.pool_name}", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Instance", instance.name)
        table.add_row("Host", instance.spec.host_name)
        table.add_row("Phase", instance.status.phase.value)
        table.add_row("Read-only", "yes" if instance.status.read_only else "no")
        table.add_row("Used", f"{capacity.used} ({capacity.used_percent:.1f}%)")
        table.add_row("Free", str(capacity.free))
        table.add_row("Total", str(capacity.total))
        for condition in instance.status.conditions:
            table.add_row(condition.type, f"{condition.status.value} {condition.reason}")
        console.print(table)
