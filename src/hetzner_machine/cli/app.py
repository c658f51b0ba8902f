"""Main CLI application for the Hetzner machine driver."""

from collections.abc import Callable
from importlib.metadata import PackageNotFoundError, version
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from hetzner_machine.cli.commands.control import (
    load_driver,
    run_power_action,
    run_remove,
    run_state,
)
from hetzner_machine.cli.commands.create import run_create
from hetzner_machine.config.flags import CREATE_FLAGS
from hetzner_machine.core.errors import ConfigurationError, DriverError
from hetzner_machine.core.logging import setup_logging
from hetzner_machine.core.store import MachineStore
from hetzner_machine.core.tracing import tracer_from_env

app = typer.Typer(
    name="hetzner-machine",
    help="Create and control machines on Hetzner Cloud",
    no_args_is_help=True,
)


def _driver_version() -> str:
    try:
        return version("hetzner-machine")
    except PackageNotFoundError:
        return ""


class _State:
    """Options shared by all commands."""

    def __init__(self, verbose: bool = False, trace: bool = False) -> None:
        self.verbose = verbose
        self.tracer = tracer_from_env(force=trace)
        self.store = MachineStore()


def _run(ctx: typer.Context, command: Callable[[_State], Any]) -> Any:
    """Run a command, turning driver failures into an error message and exit code 1."""
    state: _State = ctx.obj or _State()
    try:
        return command(state)
    except ConfigurationError as e:
        typer.echo(f"Error: {e.describe() if state.verbose else e}", err=True)
        raise typer.Exit(code=1) from e
    except (DriverError, FileNotFoundError, FileExistsError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


@app.callback()
def main(
    ctx: typer.Context,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
    trace: Annotated[
        bool, typer.Option("--trace", help="Enable trace logging (most verbose)")
    ] = False,
) -> None:
    """Hetzner machine driver - server provisioning on Hetzner Cloud."""
    setup_logging(verbose=verbose, trace=trace)
    ctx.obj = _State(verbose=verbose, trace=trace)


@app.command()
def flags() -> None:
    """List the flags accepted by create."""
    table = Table(title="Create flags")
    table.add_column("Flag")
    table.add_column("Environment")
    table.add_column("Default")
    table.add_column("Usage")

    for flag in CREATE_FLAGS:
        default = flag.default_value()
        table.add_row(
            f"--{flag.name}",
            flag.env_var,
            "" if default in ("", [], False) else str(default),
            flag.usage,
        )

    Console().print(table)


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def create(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Machine name")],
) -> None:
    """Create a machine; pass driver flags such as --hetzner-api-token."""
    _run(
        ctx,
        lambda state: run_create(name, list(ctx.args), state.store, state.tracer, _driver_version()),
    )


@app.command()
def state(ctx: typer.Context, name: Annotated[str, typer.Argument(help="Machine name")]) -> None:
    """Show the state of a machine."""
    machine_state = _run(ctx, lambda s: run_state(name, s.store, s.tracer))
    typer.echo(machine_state.value or "None")


@app.command()
def ip(ctx: typer.Context, name: Annotated[str, typer.Argument(help="Machine name")]) -> None:
    """Show the address of a machine."""
    typer.echo(_run(ctx, lambda s: load_driver(name, s.store, s.tracer).get_ip()))


@app.command()
def url(ctx: typer.Context, name: Annotated[str, typer.Argument(help="Machine name")]) -> None:
    """Show the Docker URL of a machine."""
    typer.echo(_run(ctx, lambda s: load_driver(name, s.store, s.tracer).get_url()))


@app.command()
def start(ctx: typer.Context, name: Annotated[str, typer.Argument(help="Machine name")]) -> None:
    """Power a machine on."""
    _run(ctx, lambda s: run_power_action(name, "start", s.store, s.tracer))


@app.command()
def stop(ctx: typer.Context, name: Annotated[str, typer.Argument(help="Machine name")]) -> None:
    """Shut a machine down gracefully."""
    _run(ctx, lambda s: run_power_action(name, "stop", s.store, s.tracer))


@app.command()
def restart(ctx: typer.Context, name: Annotated[str, typer.Argument(help="Machine name")]) -> None:
    """Reboot a machine."""
    _run(ctx, lambda s: run_power_action(name, "restart", s.store, s.tracer))


@app.command()
def kill(ctx: typer.Context, name: Annotated[str, typer.Argument(help="Machine name")]) -> None:
    """Power a machine off forcefully."""
    _run(ctx, lambda s: run_power_action(name, "kill", s.store, s.tracer))


@app.command()
def remove(ctx: typer.Context, name: Annotated[str, typer.Argument(help="Machine name")]) -> None:
    """Delete a machine and the resources created for it."""
    _run(ctx, lambda s: run_remove(name, s.store, s.tracer))


if __name__ == "__main__":
    app()
