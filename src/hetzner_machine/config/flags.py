"""Declarations of the driver's create flags and access to raw option values."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from hetzner_machine.core.errors import ConfigurationError

DEFAULT_IMAGE = "ubuntu-24.04"
DEFAULT_SERVER_TYPE = "cx22"
DEFAULT_SSH_USER = "root"
DEFAULT_SSH_PORT = 22
DEFAULT_WAIT_ON_ERROR = 0
DEFAULT_WAIT_ON_POLLING = 1
DEFAULT_WAIT_FOR_RUNNING_TIMEOUT = 0

FLAG_API_TOKEN = "hetzner-api-token"
FLAG_IMAGE = "hetzner-image"
FLAG_IMAGE_ID = "hetzner-image-id"
FLAG_IMAGE_ARCH = "hetzner-image-arch"
FLAG_TYPE = "hetzner-server-type"
FLAG_LOCATION = "hetzner-server-location"
FLAG_EXISTING_KEY_ID = "hetzner-existing-key-id"
FLAG_EXISTING_KEY_PATH = "hetzner-existing-key-path"
FLAG_USER_DATA = "hetzner-user-data"
FLAG_USER_DATA_FILE = "hetzner-user-data-file"
FLAG_VOLUMES = "hetzner-volumes"
FLAG_NETWORKS = "hetzner-networks"
FLAG_USE_PRIVATE_NETWORK = "hetzner-use-private-network"
FLAG_DISABLE_PUBLIC_4 = "hetzner-disable-public-ipv4"
FLAG_DISABLE_PUBLIC_6 = "hetzner-disable-public-ipv6"
FLAG_PRIMARY_4 = "hetzner-primary-ipv4"
FLAG_PRIMARY_6 = "hetzner-primary-ipv6"
FLAG_DISABLE_PUBLIC = "hetzner-disable-public"
FLAG_FIREWALLS = "hetzner-firewalls"
FLAG_ADDITIONAL_KEYS = "hetzner-additional-key"
FLAG_SERVER_LABEL = "hetzner-server-label"
FLAG_KEY_LABEL = "hetzner-key-label"
FLAG_PLACEMENT_GROUP = "hetzner-placement-group"
FLAG_AUTO_SPREAD = "hetzner-auto-spread"
FLAG_SSH_USER = "hetzner-ssh-user"
FLAG_SSH_PORT = "hetzner-ssh-port"
FLAG_WAIT_ON_ERROR = "hetzner-wait-on-error"
FLAG_WAIT_ON_POLLING = "hetzner-wait-on-polling"
FLAG_WAIT_FOR_RUNNING_TIMEOUT = "hetzner-wait-for-running-timeout"

LEGACY_FLAG_USER_DATA_FROM_FILE = "hetzner-user-data-from-file"
LEGACY_FLAG_DISABLE_PUBLIC_4 = "hetzner-disable-public-4"
LEGACY_FLAG_DISABLE_PUBLIC_6 = "hetzner-disable-public-6"

# Options that must never show up in logs or error output
SECRET_FLAGS = {FLAG_API_TOKEN}


class FlagKind(str, Enum):
    """Value kinds a flag can hold."""

    STRING = "string"
    INT = "int"
    BOOL = "bool"
    STRING_SLICE = "string-slice"


@dataclass(frozen=True)
class Flag:
    """A single create flag.

    Attributes:
        name: Flag name without leading dashes
        env_var: Environment variable the flag can be bound from
        usage: Help text
        kind: Kind of value the flag holds
        default: Value used when the flag is not given
        deprecated: Whether the flag is a legacy alias
    """

    name: str
    env_var: str
    usage: str
    kind: FlagKind = FlagKind.STRING
    default: Any = None
    deprecated: bool = False

    def default_value(self) -> Any:
        """Get the effective default for this flag's kind."""
        if self.default is not None:
            return list(self.default) if self.kind == FlagKind.STRING_SLICE else self.default
        return {
            FlagKind.STRING: "",
            FlagKind.INT: 0,
            FlagKind.BOOL: False,
            FlagKind.STRING_SLICE: [],
        }[self.kind]


CREATE_FLAGS: list[Flag] = [
    Flag(FLAG_API_TOKEN, "HETZNER_API_TOKEN", "Project-specific Hetzner API token"),
    Flag(FLAG_IMAGE, "HETZNER_IMAGE", "Image to use for server creation"),
    Flag(FLAG_IMAGE_ID, "HETZNER_IMAGE_ID", "Image to use for server creation", FlagKind.INT),
    Flag(
        FLAG_IMAGE_ARCH,
        "HETZNER_IMAGE_ARCH",
        "Image architecture for lookup to use for server creation",
    ),
    Flag(FLAG_TYPE, "HETZNER_TYPE", "Server type to create", default=DEFAULT_SERVER_TYPE),
    Flag(FLAG_LOCATION, "HETZNER_LOCATION", "Location to create machine at"),
    Flag(
        FLAG_EXISTING_KEY_ID,
        "HETZNER_EXISTING_KEY_ID",
        f"Existing key ID to use for server; requires --{FLAG_EXISTING_KEY_PATH}",
        FlagKind.INT,
    ),
    Flag(
        FLAG_EXISTING_KEY_PATH,
        "HETZNER_EXISTING_KEY_PATH",
        "Path to existing key (new public key will be created unless "
        f"--{FLAG_EXISTING_KEY_ID} is specified)",
    ),
    Flag(FLAG_USER_DATA, "HETZNER_USER_DATA", "Cloud-init based user data (inline)."),
    Flag(
        LEGACY_FLAG_USER_DATA_FROM_FILE,
        "HETZNER_USER_DATA_FROM_FILE",
        "DEPRECATED, legacy.",
        FlagKind.BOOL,
        deprecated=True,
    ),
    Flag(FLAG_USER_DATA_FILE, "HETZNER_USER_DATA_FILE", "Cloud-init based user data (read from file)"),
    Flag(
        FLAG_VOLUMES,
        "HETZNER_VOLUMES",
        "Volume IDs or names which should be attached to the server",
        FlagKind.STRING_SLICE,
    ),
    Flag(
        FLAG_NETWORKS,
        "HETZNER_NETWORKS",
        "Network IDs or names which should be attached to the server private network interface",
        FlagKind.STRING_SLICE,
    ),
    Flag(FLAG_USE_PRIVATE_NETWORK, "HETZNER_USE_PRIVATE_NETWORK", "Use private network", FlagKind.BOOL),
    Flag(FLAG_DISABLE_PUBLIC_4, "HETZNER_DISABLE_PUBLIC_IPV4", "Disable public ipv4", FlagKind.BOOL),
    Flag(
        LEGACY_FLAG_DISABLE_PUBLIC_4,
        "HETZNER_DISABLE_PUBLIC_4",
        "DEPRECATED, legacy",
        FlagKind.BOOL,
        deprecated=True,
    ),
    Flag(FLAG_DISABLE_PUBLIC_6, "HETZNER_DISABLE_PUBLIC_IPV6", "Disable public ipv6", FlagKind.BOOL),
    Flag(
        LEGACY_FLAG_DISABLE_PUBLIC_6,
        "HETZNER_DISABLE_PUBLIC_6",
        "DEPRECATED, legacy",
        FlagKind.BOOL,
        deprecated=True,
    ),
    Flag(FLAG_DISABLE_PUBLIC, "HETZNER_DISABLE_PUBLIC", "Disable public ip (v4 & v6)", FlagKind.BOOL),
    Flag(FLAG_PRIMARY_4, "HETZNER_PRIMARY_IPV4", "Existing primary IPv4 address"),
    Flag(FLAG_PRIMARY_6, "HETZNER_PRIMARY_IPV6", "Existing primary IPv6 address"),
    Flag(
        FLAG_FIREWALLS,
        "HETZNER_FIREWALLS",
        "Firewall IDs or names which should be applied on the server",
        FlagKind.STRING_SLICE,
    ),
    Flag(
        FLAG_ADDITIONAL_KEYS,
        "HETZNER_ADDITIONAL_KEYS",
        "Additional public keys to be attached to the server",
        FlagKind.STRING_SLICE,
    ),
    Flag(
        FLAG_SERVER_LABEL,
        "HETZNER_SERVER_LABELS",
        "Key value pairs of additional labels to assign to the server",
        FlagKind.STRING_SLICE,
    ),
    Flag(
        FLAG_KEY_LABEL,
        "HETZNER_KEY_LABELS",
        "Key value pairs of additional labels to assign to the SSH key",
        FlagKind.STRING_SLICE,
    ),
    Flag(
        FLAG_PLACEMENT_GROUP,
        "HETZNER_PLACEMENT_GROUP",
        "Placement group ID or name to add the server to; will be created if it does not exist",
    ),
    Flag(
        FLAG_AUTO_SPREAD,
        "HETZNER_AUTO_SPREAD",
        "Auto-spread on a driver-specific default placement group",
        FlagKind.BOOL,
    ),
    Flag(FLAG_SSH_USER, "HETZNER_SSH_USER", "SSH username", default=DEFAULT_SSH_USER),
    Flag(FLAG_SSH_PORT, "HETZNER_SSH_PORT", "SSH port", FlagKind.INT, DEFAULT_SSH_PORT),
    Flag(
        FLAG_WAIT_ON_ERROR,
        "HETZNER_WAIT_ON_ERROR",
        "Wait if an error happens while creating the server",
        FlagKind.INT,
        DEFAULT_WAIT_ON_ERROR,
    ),
    Flag(
        FLAG_WAIT_ON_POLLING,
        "HETZNER_WAIT_ON_POLLING",
        "Period for waiting between requests when waiting for some state to change",
        FlagKind.INT,
        DEFAULT_WAIT_ON_POLLING,
    ),
    Flag(
        FLAG_WAIT_FOR_RUNNING_TIMEOUT,
        "HETZNER_WAIT_FOR_RUNNING_TIMEOUT",
        "Period for waiting for a machine to be running before failing",
        FlagKind.INT,
        DEFAULT_WAIT_FOR_RUNNING_TIMEOUT,
    ),
]

FLAGS_BY_NAME: dict[str, Flag] = {flag.name: flag for flag in CREATE_FLAGS}


@dataclass
class DriverOptions:
    """Raw option values as bound by the host, with typed accessors.

    Values may be given in their final type or as strings (as they arrive
    from environment variables and command lines). Missing values fall
    back to the flag's declared default.

    Attributes:
        values: Raw values keyed by flag name
    """

    values: dict[str, Any] = field(default_factory=dict)

    def _raw(self, name: str) -> Any:
        if name in self.values and self.values[name] is not None:
            return self.values[name]
        flag = FLAGS_BY_NAME.get(name)
        return flag.default_value() if flag else None

    def string(self, name: str) -> str:
        """Get a string option."""
        value = self._raw(name)
        return "" if value is None else str(value)

    def int(self, name: str) -> int:
        """Get an integer option.

        Raises:
            ConfigurationError: If the value is not an integer
        """
        value = self._raw(name)
        if value is None or value == "":
            return 0
        if isinstance(value, bool):
            raise ConfigurationError(f"--{name} expects an integer, got {value!r}", self.snapshot())
        if isinstance(value, int):
            return value
        try:
            return int(str(value).strip(), 10)
        except ValueError:
            raise ConfigurationError(
                f"--{name} expects an integer, got {value!r}", self.snapshot()
            ) from None

    def bool(self, name: str) -> bool:
        """Get a boolean option."""
        value = self._raw(name)
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)

    def string_slice(self, name: str) -> list[str]:
        """Get a list option; strings are split on commas."""
        value = self._raw(name)
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return [str(item) for item in value]

    def snapshot(self) -> dict[str, Any]:
        """Get the raw values with secrets redacted."""
        return {
            name: ("<redacted>" if name in SECRET_FLAGS and value else value)
            for name, value in self.values.items()
        }


def options_from_env(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Collect option values from environment variables.

    Args:
        environ: Environment to read (defaults to os.environ)

    Returns:
        Raw values keyed by flag name, for every variable that is set
    """
    env = os.environ if environ is None else environ

    values: dict[str, Any] = {}
    for flag in CREATE_FLAGS:
        if flag.env_var in env:
            values[flag.name] = env[flag.env_var]
    return values


def parse_flag_args(args: list[str]) -> dict[str, Any]:
    """Parse command-line style flag arguments.

    Supports "--flag value", "--flag=value" and bare boolean flags. List
    flags may be repeated and also accept comma-separated values.

    Args:
        args: Arguments, e.g. ["--hetzner-api-token", "abc", "--hetzner-auto-spread"]

    Returns:
        Raw values keyed by flag name

    Raises:
        ConfigurationError: If an unknown flag is given or a value is missing
    """
    values: dict[str, Any] = {}
    remaining = list(args)

    while remaining:
        arg = remaining.pop(0)
        if not arg.startswith("--"):
            raise ConfigurationError(f"unexpected argument {arg!r}")

        name, has_value, value = arg[2:].partition("=")
        flag = FLAGS_BY_NAME.get(name)
        if flag is None:
            raise ConfigurationError(f"unknown flag --{name}")

        if not has_value:
            if flag.kind == FlagKind.BOOL:
                value = "true"
            elif remaining:
                value = remaining.pop(0)
            else:
                raise ConfigurationError(f"flag --{name} requires a value")

        if flag.kind == FlagKind.STRING_SLICE:
            values.setdefault(name, []).extend(
                item.strip() for item in value.split(",") if item.strip()
            )
        else:
            values[name] = value

    return values
