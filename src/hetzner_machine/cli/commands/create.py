"""Create command implementation."""

from hetzner_machine.config.flags import options_from_env, parse_flag_args
from hetzner_machine.core.logging import get_logger
from hetzner_machine.core.store import MachineStore
from hetzner_machine.core.tracing import Tracer
from hetzner_machine.driver.driver import Driver

logger = get_logger(__name__)


def run_create(
    name: str, args: list[str], store: MachineStore, tracer: Tracer, version: str = ""
) -> Driver:
    """Execute the create command to provision a new machine.

    Flag values given on the command line take precedence over the
    environment. The machine record is saved as soon as a server exists,
    even if provisioning fails afterwards, so that it can be removed.

    Args:
        name: Machine name
        args: Driver flags, e.g. ["--hetzner-api-token", "..."]
        store: Machine store the record is saved in
        tracer: Tracing collaborator
        version: Driver version reported to the API

    Returns:
        The driver of the created machine

    Raises:
        FileExistsError: If a machine with that name already exists
    """
    if store.exists(name):
        raise FileExistsError(f"machine {name} already exists")

    options = options_from_env()
    options.update(parse_flag_args(args))

    driver = Driver(name, store.machine_dir(name), version=version, tracer=tracer)
    driver.set_config_from_flags(options)

    logger.info("Running pre-create checks", machine=name)
    driver.pre_create_check()

    logger.info("Creating machine", machine=name)
    try:
        driver.create()
    finally:
        if driver.resources.server_id:
            store.save(driver.to_record())

    logger.info("Machine created", machine=name, ip=driver.get_ip())
    return driver
