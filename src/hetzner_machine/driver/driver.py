"""The Hetzner Cloud machine driver."""

import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from hcloud import Client, HCloudException

from hetzner_machine.cloud.actions import ActionWaiter
from hetzner_machine.cloud.client import build_client, get_or_none
from hetzner_machine.cloud.lookup import ResourceLookup
from hetzner_machine.config.flags import CREATE_FLAGS, DEFAULT_SSH_PORT, DEFAULT_SSH_USER, DriverOptions, Flag
from hetzner_machine.config.loader import bind_options
from hetzner_machine.config.models import DriverConfig
from hetzner_machine.core.dangling import DanglingResources
from hetzner_machine.core.errors import (
    ConfigurationError,
    DriverError,
    NotFoundError,
    ResolutionError,
    error_context,
)
from hetzner_machine.core.logging import get_logger
from hetzner_machine.core.state import MachineState, machine_state_for
from hetzner_machine.core.store import MachineRecord
from hetzner_machine.core.tracing import NoopTracer, Tracer
from hetzner_machine.driver.base import DRIVER_NAME
from hetzner_machine.driver.cleanup import destroy_server, remove_additional_keys, remove_primary_key
from hetzner_machine.driver.provisioning import MachineResources, Provisioner
from hetzner_machine.system.ssh import PublicKey, public_key_path

logger = get_logger(__name__)

DOCKER_PORT = 2376
SSH_KEY_FILE = "id_rsa"


class Driver:
    """Creates and controls one machine on Hetzner Cloud.

    Attributes:
        machine_name: Name of the machine, also used as server name
        store_path: Directory holding the machine's files
        config: Validated configuration, None until options were bound
        resources: Remote resources owned by the machine
    """

    def __init__(
        self,
        machine_name: str,
        store_path: Path | str,
        *,
        version: str = "",
        client: Client | None = None,
        tracer: Tracer | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the driver.

        Args:
            machine_name: Name of the machine
            store_path: Directory holding the machine's files
            version: Driver version reported to the API
            client: API client; built from the configuration if not given
            tracer: Tracing collaborator
            sleep: Blocks for the given number of seconds
        """
        self.machine_name = machine_name
        self.store_path = Path(store_path)
        self.version = version
        self.tracer = tracer or NoopTracer()
        self.sleep = sleep

        self.config: DriverConfig | None = None
        self.resources = MachineResources()
        self.dangling = DanglingResources()

        self._client = client
        self._lookup: ResourceLookup | None = None

    def _require_config(self) -> DriverConfig:
        if self.config is None:
            raise ConfigurationError("driver is not configured")
        return self.config

    @property
    def client(self) -> Client:
        """Get the API client, building it on first use."""
        if self._client is None:
            self._client = build_client(self._require_config(), self.version)
        return self._client

    @property
    def lookup(self) -> ResourceLookup:
        """Get the resolution layer, creating it on first use."""
        if self._lookup is None:
            self._lookup = ResourceLookup(
                self.client, self._require_config(), self.dangling, self.tracer
            )
        return self._lookup

    def _waiter(self) -> ActionWaiter:
        return ActionWaiter(self.client, self._require_config().wait_on_polling)

    def driver_name(self) -> str:
        return DRIVER_NAME

    def get_create_flags(self) -> list[Flag]:
        return list(CREATE_FLAGS)

    def set_config_from_flags(self, options: DriverOptions | dict[str, Any]) -> None:
        """Bind and validate the option values.

        Args:
            options: Raw option values keyed by flag name

        Raises:
            ConfigurationError: If the options are invalid
        """
        config = bind_options(options)

        self.config = self.tracer.trace("config", config)
        self.resources.key_id = config.existing_key_id
        self.resources.is_existing_key = config.existing_key_id != 0
        self._lookup = None

    def pre_create_check(self) -> None:
        """Verify the configured references before anything is created.

        A placement group created by this check is deleted again if the
        check fails, and by create() if provisioning fails later.

        Raises:
            ConfigurationError: If an existing key ID is given without its path
            DriverError: If a reference does not resolve or contradicts another
        """
        config = self._require_config()

        with self.dangling.rollback_on_error():
            self._check_existing_key()

            with error_context("could not get type"):
                server_type = self.lookup.server_type()
            if config.image_arch is not None and server_type.architecture != config.image_arch.value:
                logger.warning(
                    f"supplied architecture {config.image_arch.value} differs from "
                    f"server architecture {server_type.architecture}"
                )

            with error_context("could not get image"):
                self.lookup.image()
            with error_context("could not get location"):
                self.lookup.location()
            with error_context("could not create placement group"):
                self.lookup.placement_group()
            with error_context("could not resolve primary IPv4"):
                self.lookup.primary_ipv4()
            with error_context("could not resolve primary IPv6"):
                self.lookup.primary_ipv6()

            if config.use_private_network and not config.networks:
                raise DriverError("No private network attached.")

    def _check_existing_key(self) -> None:
        """Verify that an existing remote key matches the local key file."""
        if not self.resources.is_existing_key:
            return

        config = self._require_config()
        if not config.existing_key_path:
            raise ConfigurationError(
                "specifying an existing key ID requires the existing key path to be set as well"
            )

        with error_context("could not get key"):
            key = self.lookup.ssh_key(self.resources.key_id)

        local_path = Path(config.existing_key_path)
        with error_context("could not read public key"):
            data = public_key_path(local_path).read_bytes()
        try:
            local_key = PublicKey.parse(data)
        except ValueError as e:
            raise DriverError(f"could not parse authorized key: {e}") from e

        if not local_key.matches(key.fingerprint):
            raise DriverError(
                f"remote key {self.resources.key_id} does not match local key {config.existing_key_path}"
            )

    def create(self) -> None:
        """Create the server with everything it needs.

        Raises:
            ProvisioningError: If provisioning fails; created resources are rolled back
        """
        provisioner = Provisioner(
            self.machine_name,
            self._require_config(),
            self.client,
            self.lookup,
            self.dangling,
            self.resources,
            Path(self.get_ssh_key_path()),
            self.get_state,
            self.tracer,
            self.sleep,
        )
        provisioner.run()

    def get_state(self) -> MachineState:
        """Get the current state of the machine.

        The server is always fetched anew, so repeated calls observe changes.

        Raises:
            NotFoundError: If the server does not exist
            ResolutionError: If the server cannot be fetched
        """
        if not self.resources.server_id:
            raise ResolutionError("server ID was 0")

        try:
            server = get_or_none(self.client.servers.get_by_id, self.resources.server_id)
        except HCloudException as e:
            raise ResolutionError(f"could not get server by ID: {e}") from e

        if server is None:
            raise NotFoundError("server not found")
        return machine_state_for(server.status)

    def _server_action(self, verb: str, call: Callable[[Any], Any]) -> None:
        with error_context("could not get server handle"):
            server = self.lookup.server(self.resources.server_id)

        with error_context(f"could not {verb} server"):
            action = call(server)

        logger.info(
            f"{verb.capitalize()} server",
            server=f"{server.name}[{server.id}]",
            action=f"{action.command}[{action.id}]",
        )
        self._waiter().wait(action)

    def start(self) -> None:
        """Power the server on and wait until the action finished."""
        self._server_action("power on", self.client.servers.power_on)

    def stop(self) -> None:
        """Shut the server down gracefully and wait until the action finished."""
        self._server_action("shutdown", self.client.servers.shutdown)

    def restart(self) -> None:
        """Reboot the server and wait until the action finished."""
        self._server_action("reboot", self.client.servers.reboot)

    def kill(self) -> None:
        """Power the server off and wait until the action finished."""
        self._server_action("power off", self.client.servers.power_off)

    def remove(self) -> None:
        """Delete the server and every key created for it.

        Failing to delete additional keys or the placement group is only
        logged; failing to delete the machine's own key is an error.

        Raises:
            DriverError: If the server or the machine's own key cannot be deleted
        """
        destroy_server(self.client, self.lookup, self._waiter(), self.resources.server_id)
        remove_additional_keys(self.client, self.resources.additional_key_ids)
        remove_primary_key(self.client, self.lookup, self.resources)

    def get_ip(self) -> str:
        """Get the recorded address of the machine.

        Raises:
            DriverError: If no address has been recorded
        """
        if not self.resources.ip_address:
            raise DriverError("IP address is not set")
        return self.resources.ip_address

    def get_ssh_hostname(self) -> str:
        return self.get_ip()

    def get_url(self) -> str:
        """Get the URL of the Docker daemon on the machine.

        Raises:
            DriverError: If the machine is not running or has no address
        """
        state = self.get_state()
        if state != MachineState.RUNNING:
            raise DriverError(f"host is not running, state is {state.value or 'unknown'}")

        ip = self.get_ip()
        host = f"[{ip}]" if ":" in ip else ip
        return f"tcp://{host}:{DOCKER_PORT}"

    def get_ssh_username(self) -> str:
        return self.config.ssh_user if self.config else DEFAULT_SSH_USER

    def get_ssh_port(self) -> int:
        return self.config.ssh_port if self.config else DEFAULT_SSH_PORT

    def get_ssh_key_path(self) -> str:
        return str(self.store_path / SSH_KEY_FILE)

    def to_record(self) -> MachineRecord:
        """Capture the driver's state for persisting it."""
        return MachineRecord(
            name=self.machine_name,
            driver_name=DRIVER_NAME,
            config=self._require_config(),
            server_id=self.resources.server_id,
            key_id=self.resources.key_id,
            is_existing_key=self.resources.is_existing_key,
            additional_key_ids=list(self.resources.additional_key_ids),
            ip_address=self.resources.ip_address,
        )

    @classmethod
    def from_record(cls, record: MachineRecord, store_path: Path | str, **kwargs: Any) -> "Driver":
        """Restore a driver from a persisted record.

        Args:
            record: Persisted machine record
            store_path: Directory holding the machine's files
            **kwargs: Passed on to the constructor

        Returns:
            Driver ready for lifecycle operations
        """
        driver = cls(record.name, store_path, **kwargs)
        driver.config = record.config
        driver.resources = MachineResources(
            server_id=record.server_id,
            key_id=record.key_id,
            is_existing_key=record.is_existing_key,
            additional_key_ids=list(record.additional_key_ids),
            ip_address=record.ip_address,
        )
        return driver
