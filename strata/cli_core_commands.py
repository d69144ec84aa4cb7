"""Core Strata CLI commands - apply, get, events, run."""
import time
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from strata.cli_support import (
    handle_cli_error,
    load_config,
    open_recorder,
    open_store,
    print_info,
    print_success,
    setup_file_logging,
)
from strata.config.loader import ManifestError, ManifestLoader
from strata.controllers.pool_cluster import PoolClusterController
from strata.controllers.volume_config import VolumeConfigController
from strata.core.events import WARNING, read_journal
from strata.core.workqueue import Controller
from strata.models import KINDS
from strata.models.meta import Resource

# Module-level console instance (will be set by register function)
console: Console = Console()

CONTROLLER_SETS = ("volumes", "clusters")


def resolve_kind(kind: str):
    """Model class for a kind name, accepting any case and a plural 's'."""
    wanted = kind.lower()
    for name, cls in KINDS.items():
        if wanted in (name.lower(), name.lower() + "s"):
            return cls
    return None


def describe_status(obj: Resource) -> str:
    """One-word status for table output."""
    status = getattr(obj, "status", None)
    if status is None:
        return ""
    for attr in ("phase", "claim_state"):
        value = getattr(status, attr, None)
        if value is not None:
            return getattr(value, "value", str(value))
    if hasattr(status, "healthy_instances"):
        return f"{status.healthy_instances}/{status.desired_instances} healthy"
    return ""


def render_objects(kind: str, objects: List[Resource]) -> None:
    table = Table(title=kind, show_header=True, header_style="bold cyan")
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    table.add_column("Labels", overflow="fold", style="dim")
    table.add_column("Deleting")

    for obj in objects:
        labels = ",".join(f"{k}={v}" for k, v in sorted(obj.labels.items()))
        table.add_row(obj.name, describe_status(obj), labels, "yes" if obj.is_deleting else "")

    console.print(table)


def build_controllers(which: str, config, store, recorder) -> List[Controller]:
    if which == "volumes":
        return [VolumeConfigController(store, recorder).controller(
            workers=config.workers, resync_interval=config.resync_interval)]
    return [PoolClusterController(store, recorder).controller(
        workers=config.workers, resync_interval=config.resync_interval)]


def register_core_commands(app: typer.Typer, shared_console: Console):
    """Register apply, get, events and run with the main Typer app."""
    global console
    console = shared_console

    @app.command()
    def apply(
        manifest: str = typer.Option(..., "--file", "-f", help="YAML manifest of Strata objects"),
    ):
        """Create or update the objects in a manifest."""
        config = load_config(console, require_namespace=False)
        store = open_store(config)

        loader = ManifestLoader(manifest)
        try:
            loader.load()
            results = loader.apply(store)
        except ManifestError as e:
            handle_cli_error(e, console)

        for obj, action in results:
            print_success(console, f"{obj.kind}/{obj.name} {action}")

    @app.command()
    def get(
        kind: str = typer.Argument(..., help="Object kind, e.g. VolumeConfig or poolinstances"),
    ):
        """List stored objects of one kind."""
        cls = resolve_kind(kind)
        if cls is None:
            console.print(f"[red]Error:[/red] unknown kind '{kind}' (expected one of: {', '.join(sorted(KINDS))})")
            raise typer.Exit(1)

        config = load_config(console, require_namespace=False)
        objects = open_store(config).list(cls)
        if not objects:
            print_info(console, f"No {cls.kind} objects found")
            return
        render_objects(cls.kind, objects)

    @app.command()
    def events(
        kind: Optional[str] = typer.Option(None, "--kind", "-k", help="Only events for this kind"),
        name: Optional[str] = typer.Option(None, "--name", "-n", help="Only events for this object"),
        warnings_only: bool = typer.Option(False, "--warnings", help="Only warning events"),
    ):
        """Show events recorded by the controllers."""
        if kind:
            cls = resolve_kind(kind)
            kind = cls.kind if cls else kind

        config = load_config(console, require_namespace=False)
        recorded = read_journal(config.events_path, kind, name)
        if warnings_only:
            recorded = [e for e in recorded if e.type == WARNING]
        if not recorded:
            print_info(console, "No events recorded")
            return

        table = Table(title="Events", show_header=True, header_style="bold")
        table.add_column("Time", style="dim")
        table.add_column("Type")
        table.add_column("Object", style="cyan")
        table.add_column("Reason")
        table.add_column("Message", overflow="fold")
        for event in recorded:
            event_type = f"[yellow]{event.type}[/yellow]" if event.type == WARNING else event.type
            table.add_row(event.timestamp, event_type, f"{event.kind}/{event.name}", event.reason, event.message)
        console.print(table)

    @app.command()
    def run(
        which: str = typer.Argument(..., help="Controllers to run: volumes or clusters"),
        once: bool = typer.Option(False, "--once", help="Reconcile every object once and exit"),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Write logs to this file"),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    ):
        """Run the volume or pool cluster controllers."""
        if which not in CONTROLLER_SETS:
            console.print(f"[red]Error:[/red] expected one of {', '.join(CONTROLLER_SETS)}, got '{which}'")
            raise typer.Exit(1)

        config = load_config(console)
        store = open_store(config)
        recorder = open_recorder(config)
        controllers = build_controllers(which, config, store, recorder)

        if once:
            failures = sum(c.run_once() for c in controllers)
            if failures:
                console.print(f"[red]✗[/red] {failures} object(s) failed to reconcile")
                raise typer.Exit(1)
            print_success(console, f"Reconciled {which}")
            return

        setup_file_logging(log_file or config.log_file, verbose)
        for controller in controllers:
            controller.start()
        print_info(console, f"Running {which} controllers, press Ctrl+C to stop")
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Stopping controllers...[/yellow]")
        finally:
            for controller in controllers:
                controller.stop()
