"""Configuration models for the Hetzner machine driver using Pydantic."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from hetzner_machine.config.flags import (
    DEFAULT_SERVER_TYPE,
    DEFAULT_SSH_PORT,
    DEFAULT_SSH_USER,
    DEFAULT_WAIT_FOR_RUNNING_TIMEOUT,
    DEFAULT_WAIT_ON_ERROR,
    DEFAULT_WAIT_ON_POLLING,
)


class Architecture(str, Enum):
    """CPU architectures images can be looked up for."""

    X86 = "x86"
    ARM = "arm"


class DriverConfig(BaseModel):
    """Validated driver configuration.

    Built once by the option loader; immutable afterwards.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str = ""
    image: str = ""
    image_id: int = 0
    image_arch: Architecture | None = None
    server_type: str = DEFAULT_SERVER_TYPE
    location: str = ""

    existing_key_id: int = 0
    existing_key_path: str = ""
    additional_keys: list[str] = Field(default_factory=list)
    key_labels: dict[str, str] = Field(default_factory=dict)

    user_data: str = ""
    user_data_file: str = ""

    volumes: list[str] = Field(default_factory=list)
    networks: list[str] = Field(default_factory=list)
    firewalls: list[str] = Field(default_factory=list)
    use_private_network: bool = False
    disable_public_ipv4: bool = False
    disable_public_ipv6: bool = False
    primary_ipv4: str = ""
    primary_ipv6: str = ""

    server_labels: dict[str, str] = Field(default_factory=dict)
    placement_group: str = ""

    ssh_user: str = DEFAULT_SSH_USER
    ssh_port: int = DEFAULT_SSH_PORT

    wait_on_error: int = DEFAULT_WAIT_ON_ERROR
    wait_on_polling: int = DEFAULT_WAIT_ON_POLLING
    wait_for_running_timeout: int = DEFAULT_WAIT_FOR_RUNNING_TIMEOUT

    uses_deprecated_flags: bool = False

    def read_user_data(self) -> str:
        """Get the effective user data.

        File contents are returned verbatim.

        Raises:
            OSError: If the user data file cannot be read
        """
        if not self.user_data_file:
            return self.user_data

        with open(self.user_data_file, encoding="utf-8", newline="") as f:
            return f.read()
