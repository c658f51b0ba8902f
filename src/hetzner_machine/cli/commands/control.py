"""Commands operating on an existing machine."""

import structlog

from hetzner_machine.core.state import MachineState
from hetzner_machine.core.store import MachineStore
from hetzner_machine.core.tracing import Tracer
from hetzner_machine.driver.driver import Driver

logger = structlog.get_logger()

POWER_ACTIONS = ("start", "stop", "restart", "kill")


def load_driver(name: str, store: MachineStore, tracer: Tracer, version: str = "") -> Driver:
    """Restore the driver of an existing machine.

    Raises:
        FileNotFoundError: If the machine does not exist
    """
    record = store.load(name)
    return Driver.from_record(record, store.machine_dir(name), version=version, tracer=tracer)


def run_power_action(name: str, action: str, store: MachineStore, tracer: Tracer) -> None:
    """Start, stop, restart or kill a machine.

    Args:
        name: Machine name
        action: One of POWER_ACTIONS
        store: Machine store
        tracer: Tracing collaborator

    Raises:
        ValueError: If action is unknown
    """
    if action not in POWER_ACTIONS:
        raise ValueError(f"Unknown action: {action}")

    driver = load_driver(name, store, tracer)
    getattr(driver, action)()

    logger.info("Machine action completed", machine=name, action=action)


def run_state(name: str, store: MachineStore, tracer: Tracer) -> MachineState:
    """Query the current state of a machine."""
    return load_driver(name, store, tracer).get_state()


def run_remove(name: str, store: MachineStore, tracer: Tracer) -> None:
    """Delete a machine remotely and forget it locally."""
    driver = load_driver(name, store, tracer)

    logger.info("Removing machine", machine=name)
    driver.remove()
    store.delete(name)

    logger.info("Machine removed", machine=name)
