"""Server provisioning: keys, create request, action waits and network setup."""

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from hcloud import Client, HCloudException

from hetzner_machine.cloud.actions import ActionWaiter
from hetzner_machine.cloud.lookup import ResourceLookup
from hetzner_machine.cloud.networking import configure_network_access, public_network_options
from hetzner_machine.config.models import DriverConfig
from hetzner_machine.core.dangling import DanglingResources, ResourceKind
from hetzner_machine.core.errors import DriverError, ProvisioningError, WaitTimeoutError
from hetzner_machine.core.logging import get_logger
from hetzner_machine.core.polling import poll_until
from hetzner_machine.core.state import MachineState, ProvisioningState
from hetzner_machine.core.tracing import Tracer
from hetzner_machine.system.ssh import copy_key_pair, generate_key_pair, read_public_key

logger = get_logger(__name__)

# What was being attempted when a failure happens in a given state
STEP_CONTEXT = {
    ProvisioningState.IDLE: "could not prepare local key",
    ProvisioningState.KEY_PREPARED: "could not register ssh keys",
    ProvisioningState.KEYS_REGISTERED: "could not create server",
    ProvisioningState.SERVER_REQUESTED: "could not wait for action",
    ProvisioningState.ACTION_PENDING: "could not wait for running server",
    ProvisioningState.SERVER_BOOTING: "could not configure network access",
    ProvisioningState.NETWORK_CONFIGURING: "could not finalize server",
}


@dataclass
class MachineResources:
    """Remote resources owned by a machine, as persisted between invocations.

    Attributes:
        server_id: ID of the server, 0 until creation was accepted
        key_id: ID of the primary SSH key
        is_existing_key: Whether the primary key existed before and must be kept on removal
        additional_key_ids: IDs of additional keys uploaded for this machine
        ip_address: Address the machine is reached at
    """

    server_id: int = 0
    key_id: int = 0
    is_existing_key: bool = False
    additional_key_ids: list[int] = field(default_factory=list)
    ip_address: str = ""


class Provisioner:
    """Runs the create sequence for one machine.

    Every remote resource created along the way is tracked as dangling and
    deleted again unless the whole sequence succeeds.
    """

    def __init__(
        self,
        machine_name: str,
        config: DriverConfig,
        client: Client,
        lookup: ResourceLookup,
        dangling: DanglingResources,
        resources: MachineResources,
        key_path: Path,
        state_query: Callable[[], MachineState],
        tracer: Tracer,
        sleep: Callable[[float], None],
    ) -> None:
        """Initialize the provisioner.

        Args:
            machine_name: Name of the machine, used for the server and its key
            config: Driver configuration
            client: API client
            lookup: Resolution layer for configured references
            dangling: Tracker for resources created during this attempt
            resources: Machine state that is updated as resources come into existence
            key_path: Path of the machine's private key
            state_query: Reads the current machine state
            tracer: Tracing collaborator
            sleep: Blocks for the given number of seconds
        """
        self.machine_name = machine_name
        self.config = config
        self.client = client
        self.lookup = lookup
        self.dangling = dangling
        self.resources = resources
        self.key_path = key_path
        self.state_query = state_query
        self.tracer = tracer
        self.sleep = sleep

        self.waiter = ActionWaiter(client, config.wait_on_polling)
        self.state = ProvisioningState.IDLE
        self.additional_keys: list[Any] = []

    def _advance(self, state: ProvisioningState) -> None:
        logger.debug("Provisioning step done", machine=self.machine_name, state=state.value)
        self.state = state

    def run(self) -> None:
        """Provision the server.

        Raises:
            ProvisioningError: If any step fails; the original error is the cause
        """
        try:
            # Deletions left pending by the pre-create check are covered too
            with self.dangling.rollback_on_exit():
                self.prepare_local_key()
                self._advance(ProvisioningState.KEY_PREPARED)

                self.register_keys()
                self._advance(ProvisioningState.KEYS_REGISTERED)

                response = self.submit(self.build_request())
                self._advance(ProvisioningState.SERVER_REQUESTED)

                self.wait_for_actions(response)
                self._advance(ProvisioningState.ACTION_PENDING)

                logger.info("Waiting for server to come up", server=response.server.name)
                self.wait_for_running()
                self._advance(ProvisioningState.SERVER_BOOTING)

                self.resources.ip_address = configure_network_access(
                    self.client, self.config, response.server, self.config.wait_on_polling
                )
                self._advance(ProvisioningState.NETWORK_CONFIGURING)

                # Nothing can fail anymore; keep everything that was created
                self.dangling.commit()
        except Exception as e:
            failed_in = self.state
            self.state = ProvisioningState.FAILED
            raise ProvisioningError(failed_in.value, f"{STEP_CONTEXT[failed_in]}: {e}") from e

        self._advance(ProvisioningState.READY)
        logger.info(
            "Server ready",
            server=self.machine_name,
            id=self.resources.server_id,
            ip=self.resources.ip_address,
        )

    def prepare_local_key(self) -> None:
        """Copy the configured key pair into place, or generate a new one."""
        if self.config.existing_key_path:
            logger.debug("Copying SSH key", source=self.config.existing_key_path)
            copy_key_pair(Path(self.config.existing_key_path), self.key_path)
        else:
            logger.debug("Generating SSH key", path=str(self.key_path))
            generate_key_pair(self.key_path)

    def register_keys(self) -> None:
        """Make the primary and all additional keys known to the API.

        Keys already uploaded are found by fingerprint and reused; new
        uploads are tracked as dangling.
        """
        if not self.resources.key_id:
            logger.info("Creating SSH key", machine=self.machine_name)
            public_key = read_public_key(self.key_path)

            key = self.lookup.ssh_key_by_fingerprint(public_key)
            if key is None:
                logger.info("SSH key not found remotely, uploading")
                key = self._upload_key(self.machine_name, public_key)
            else:
                self.resources.is_existing_key = True
                logger.debug("SSH key found remotely", id=key.id)

            self.resources.key_id = key.id
            self.lookup.remember_ssh_key(key)

        for i, public_key in enumerate(self.config.additional_keys):
            key = self.lookup.ssh_key_by_fingerprint(public_key)
            if key is None:
                key = self._upload_key(f"{self.machine_name}-additional-{i}", public_key)
                self.resources.additional_key_ids.append(key.id)
                logger.info("Created additional key", id=key.id, name=key.name)
            else:
                logger.info("Using existing key", id=key.id, name=key.name)
            self.additional_keys.append(key)

    def _upload_key(self, name: str, public_key: str) -> Any:
        try:
            key = self.client.ssh_keys.create(
                name=name,
                public_key=public_key,
                labels=self.tracer.trace("ssh_key.labels", dict(self.config.key_labels)),
            )
        except HCloudException as e:
            raise DriverError(f"could not create ssh key {name}: {e}") from e

        self.dangling.register(
            ResourceKind.SSH_KEY, key.id, key.name, lambda: self.client.ssh_keys.delete(key)
        )
        return key

    def build_request(self) -> dict[str, Any]:
        """Assemble the keyword arguments of the server create call.

        Returns:
            Arguments for servers.create
        """
        placement_group = self.lookup.placement_group()
        user_data = self.config.read_user_data()
        public_net = public_network_options(
            self.config, self.lookup.primary_ipv4(), self.lookup.primary_ipv6()
        )

        request: dict[str, Any] = {
            "name": self.machine_name,
            "server_type": self.lookup.server_type(),
            "image": self.lookup.image(),
            "location": self.lookup.location(),
            "ssh_keys": [*self.additional_keys, self.lookup.ssh_key(self.resources.key_id)],
            "networks": self.lookup.networks(),
            "firewalls": self.lookup.firewalls(),
            "volumes": self.lookup.volumes(),
            "user_data": user_data or None,
            "labels": dict(self.config.server_labels),
            "placement_group": placement_group,
        }
        if public_net is not None:
            request["public_net"] = public_net

        return self.tracer.trace("server.create", request)

    def submit(self, request: dict[str, Any]) -> Any:
        """Send the create request and record the new server's ID.

        On failure the configured error delay is waited out first, so that
        a server the API created despite the error can settle.
        """
        logger.info("Creating Hetzner server", name=request["name"])
        try:
            response = self.client.servers.create(**request)
        except HCloudException as e:
            if self.config.wait_on_error:
                logger.debug("Waiting after failed create", seconds=self.config.wait_on_error)
                self.sleep(self.config.wait_on_error)
            raise DriverError(f"could not create server: {e}") from e

        self.resources.server_id = response.server.id
        logger.info(
            "Creating server",
            server=f"{response.server.name}[{response.server.id}]",
            action=f"{response.action.command}[{response.action.id}]",
        )
        return response

    def wait_for_actions(self, response: Any) -> None:
        """Wait for the create action and any follow-up actions."""
        self.waiter.wait(response.action)
        if response.next_actions:
            self.waiter.wait_all("server.next_actions", response.next_actions)

    def wait_for_running(self) -> None:
        """Poll the machine state until it is running.

        Raises:
            WaitTimeoutError: If the configured running timeout elapsed first
        """
        try:
            poll_until(
                self.state_query,
                lambda state: state == MachineState.RUNNING,
                self.config.wait_on_polling,
                timeout=self.config.wait_for_running_timeout,
                description="running state",
            )
        except WaitTimeoutError as e:
            raise WaitTimeoutError("server exceeded wait-for-running-timeout") from e
