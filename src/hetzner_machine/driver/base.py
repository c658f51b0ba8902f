"""Protocol for machine drivers as seen by the host."""

from typing import Any, Protocol, runtime_checkable

from hetzner_machine.config.flags import Flag
from hetzner_machine.core.state import MachineState

DRIVER_NAME = "hetzner"


@runtime_checkable
class MachineDriver(Protocol):
    """Protocol for drivers the host can create and control machines with.

    The host calls get_create_flags, set_config_from_flags, pre_create_check
    and create in that order, and the remaining operations at any time
    while the machine exists.
    """

    def driver_name(self) -> str:
        """Get the name the driver is registered under."""
        ...

    def get_create_flags(self) -> list[Flag]:
        """Get the flags accepted on machine creation."""
        ...

    def set_config_from_flags(self, options: Any) -> None:
        """Bind and validate the option values.

        Raises:
            ConfigurationError: If the options are invalid
        """
        ...

    def pre_create_check(self) -> None:
        """Verify that the machine can be created."""
        ...

    def create(self) -> None:
        """Create the machine."""
        ...

    def get_state(self) -> MachineState:
        """Get the current state of the machine."""
        ...

    def start(self) -> None:
        """Power the machine on."""
        ...

    def stop(self) -> None:
        """Shut the machine down gracefully."""
        ...

    def restart(self) -> None:
        """Reboot the machine."""
        ...

    def kill(self) -> None:
        """Power the machine off forcefully."""
        ...

    def remove(self) -> None:
        """Delete the machine and the resources created for it."""
        ...

    def get_ip(self) -> str:
        """Get the address the machine is reached at."""
        ...

    def get_url(self) -> str:
        """Get the URL of the Docker daemon on the machine."""
        ...

    def get_ssh_hostname(self) -> str:
        """Get the host to connect to via SSH."""
        ...

    def get_ssh_username(self) -> str:
        """Get the SSH user."""
        ...

    def get_ssh_port(self) -> int:
        """Get the SSH port."""
        ...

    def get_ssh_key_path(self) -> str:
        """Get the path of the machine's private key."""
        ...
