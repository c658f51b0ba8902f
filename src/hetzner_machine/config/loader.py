"""Binding of raw driver options into a validated configuration."""

from typing import Any

from pydantic import ValidationError

from hetzner_machine.config.flags import (
    DEFAULT_IMAGE,
    FLAG_ADDITIONAL_KEYS,
    FLAG_API_TOKEN,
    FLAG_AUTO_SPREAD,
    FLAG_DISABLE_PUBLIC,
    FLAG_DISABLE_PUBLIC_4,
    FLAG_DISABLE_PUBLIC_6,
    FLAG_EXISTING_KEY_ID,
    FLAG_EXISTING_KEY_PATH,
    FLAG_FIREWALLS,
    FLAG_IMAGE,
    FLAG_IMAGE_ARCH,
    FLAG_IMAGE_ID,
    FLAG_KEY_LABEL,
    FLAG_LOCATION,
    FLAG_NETWORKS,
    FLAG_PLACEMENT_GROUP,
    FLAG_PRIMARY_4,
    FLAG_PRIMARY_6,
    FLAG_SERVER_LABEL,
    FLAG_SSH_PORT,
    FLAG_SSH_USER,
    FLAG_TYPE,
    FLAG_USE_PRIVATE_NETWORK,
    FLAG_USER_DATA,
    FLAG_USER_DATA_FILE,
    FLAG_VOLUMES,
    FLAG_WAIT_FOR_RUNNING_TIMEOUT,
    FLAG_WAIT_ON_ERROR,
    FLAG_WAIT_ON_POLLING,
    LEGACY_FLAG_DISABLE_PUBLIC_4,
    LEGACY_FLAG_DISABLE_PUBLIC_6,
    LEGACY_FLAG_USER_DATA_FROM_FILE,
    DriverOptions,
)
from hetzner_machine.config.models import Architecture, DriverConfig
from hetzner_machine.core.errors import ConfigurationError
from hetzner_machine.core.logging import get_logger

logger = get_logger(__name__)

# Sentinel placement group name requesting the shared auto-spread group
AUTO_SPREAD_PLACEMENT_GROUP = "__auto_spread"

# Image names that used to be flag defaults; tolerated next to an explicit image ID
LEGACY_DEFAULT_IMAGES = (
    DEFAULT_IMAGE,
    "ubuntu-20.04",
    "ubuntu-18.04",
    "ubuntu-16.04",
    "debian-9",
)


def is_default_image_name(image: str) -> bool:
    """Check whether an image name is one of the legacy default images."""
    return image in LEGACY_DEFAULT_IMAGES


class _Binder:
    """Collects values from options and raises with the options attached."""

    def __init__(self, options: DriverOptions) -> None:
        self.options = options
        self.uses_deprecated_flags = False

    def fail(self, message: str) -> ConfigurationError:
        return ConfigurationError(message, self.options.snapshot())

    def deprecated_bool(self, flag: str, deprecated_flag: str) -> bool:
        """Read a boolean flag that also has a deprecated alias."""
        if self.options.bool(deprecated_flag):
            logger.warning(f"--{deprecated_flag} is DEPRECATED FOR REMOVAL, use --{flag} instead")
            self.uses_deprecated_flags = True
            return True
        return self.options.bool(flag)

    def image_arch(self) -> Architecture | None:
        arch = self.options.string(FLAG_IMAGE_ARCH)
        if not arch:
            return None
        try:
            return Architecture(arch)
        except ValueError:
            raise self.fail(f"unknown architecture {arch}") from None

    def user_data(self) -> tuple[str, str]:
        """Get the (inline user data, user data file) pair."""
        user_data = self.options.string(FLAG_USER_DATA)
        user_data_file = self.options.string(FLAG_USER_DATA_FILE)

        if self.options.bool(LEGACY_FLAG_USER_DATA_FROM_FILE):
            if user_data_file:
                raise self.fail(
                    f"--{FLAG_USER_DATA_FILE} and --{LEGACY_FLAG_USER_DATA_FROM_FILE} "
                    "are mutually exclusive"
                )
            logger.warning(
                f"--{LEGACY_FLAG_USER_DATA_FROM_FILE} is DEPRECATED FOR REMOVAL, "
                f"pass '--{FLAG_USER_DATA_FILE} \"{user_data}\"'"
            )
            self.uses_deprecated_flags = True
            return "", user_data

        if user_data and user_data_file:
            raise self.fail(f"--{FLAG_USER_DATA} and --{FLAG_USER_DATA_FILE} are mutually exclusive")

        return user_data, user_data_file

    def labels(self, flag: str, what: str) -> dict[str, str]:
        labels: dict[str, str] = {}
        for label in self.options.string_slice(flag):
            key, sep, value = label.partition("=")
            if not sep:
                raise self.fail(f"{what} label {label} is not in key=value format")
            labels[key] = value
        return labels

    def placement_group(self) -> str:
        placement_group = self.options.string(FLAG_PLACEMENT_GROUP)
        if self.options.bool(FLAG_AUTO_SPREAD):
            if placement_group:
                raise self.fail(
                    f"--{FLAG_AUTO_SPREAD} and --{FLAG_PLACEMENT_GROUP} are mutually exclusive"
                )
            return AUTO_SPREAD_PLACEMENT_GROUP
        return placement_group


def bind_options(options: DriverOptions | dict[str, Any]) -> DriverConfig:
    """Validate raw options and build the driver configuration.

    Either the whole configuration is accepted or nothing is: the first
    violated rule raises and no partial configuration is returned.

    Args:
        options: Raw options keyed by flag name

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If any option is missing, malformed or contradicts another
    """
    if not isinstance(options, DriverOptions):
        options = DriverOptions(dict(options))

    binder = _Binder(options)

    image = options.string(FLAG_IMAGE)
    image_id = options.int(FLAG_IMAGE_ID)
    image_arch = binder.image_arch()
    user_data, user_data_file = binder.user_data()

    disable_public = options.bool(FLAG_DISABLE_PUBLIC)
    use_private_network = options.bool(FLAG_USE_PRIVATE_NETWORK) or disable_public
    disable_public_ipv4 = (
        binder.deprecated_bool(FLAG_DISABLE_PUBLIC_4, LEGACY_FLAG_DISABLE_PUBLIC_4) or disable_public
    )
    disable_public_ipv6 = (
        binder.deprecated_bool(FLAG_DISABLE_PUBLIC_6, LEGACY_FLAG_DISABLE_PUBLIC_6) or disable_public
    )
    primary_ipv4 = options.string(FLAG_PRIMARY_4)
    primary_ipv6 = options.string(FLAG_PRIMARY_6)

    placement_group = binder.placement_group()
    server_labels = binder.labels(FLAG_SERVER_LABEL, "server")
    key_labels = binder.labels(FLAG_KEY_LABEL, "key")

    access_token = options.string(FLAG_API_TOKEN)
    if not access_token:
        raise binder.fail(f"hetzner requires --{FLAG_API_TOKEN} to be set")

    image = _verify_image_flags(binder, image, image_id, image_arch)
    _verify_network_flags(
        binder,
        disable_public_ipv4,
        disable_public_ipv6,
        use_private_network,
        primary_ipv4,
        primary_ipv6,
    )

    try:
        config = DriverConfig(
            access_token=access_token,
            image=image,
            image_id=image_id,
            image_arch=image_arch,
            server_type=options.string(FLAG_TYPE),
            location=options.string(FLAG_LOCATION),
            existing_key_id=options.int(FLAG_EXISTING_KEY_ID),
            existing_key_path=options.string(FLAG_EXISTING_KEY_PATH),
            additional_keys=options.string_slice(FLAG_ADDITIONAL_KEYS),
            key_labels=key_labels,
            user_data=user_data,
            user_data_file=user_data_file,
            volumes=options.string_slice(FLAG_VOLUMES),
            networks=options.string_slice(FLAG_NETWORKS),
            firewalls=options.string_slice(FLAG_FIREWALLS),
            use_private_network=use_private_network,
            disable_public_ipv4=disable_public_ipv4,
            disable_public_ipv6=disable_public_ipv6,
            primary_ipv4=primary_ipv4,
            primary_ipv6=primary_ipv6,
            server_labels=server_labels,
            placement_group=placement_group,
            ssh_user=options.string(FLAG_SSH_USER),
            ssh_port=options.int(FLAG_SSH_PORT),
            wait_on_error=options.int(FLAG_WAIT_ON_ERROR),
            wait_on_polling=options.int(FLAG_WAIT_ON_POLLING),
            wait_for_running_timeout=options.int(FLAG_WAIT_FOR_RUNNING_TIMEOUT),
            uses_deprecated_flags=binder.uses_deprecated_flags,
        )
    except ValidationError as e:
        raise binder.fail(f"invalid configuration: {e}") from e

    if config.uses_deprecated_flags:
        logger.warning("!!!! BREAKING-V5 !!!!")
        logger.warning("your configuration uses deprecated flags and will stop working as-is from v5 onwards")
        logger.warning("check preceding output for 'DEPRECATED' log statements")
        logger.warning("!!!! /BREAKING-V5 !!!!")

    return config


def _verify_image_flags(
    binder: _Binder, image: str, image_id: int, image_arch: Architecture | None
) -> str:
    """Check image selectors and apply the default image.

    Returns:
        The effective image name
    """
    if image_id and image and not is_default_image_name(image):
        raise binder.fail(f"--{FLAG_IMAGE} and --{FLAG_IMAGE_ID} are mutually exclusive")
    if image_id and image_arch is not None:
        raise binder.fail(f"--{FLAG_IMAGE_ARCH} and --{FLAG_IMAGE_ID} are mutually exclusive")
    if not image_id and not image:
        return DEFAULT_IMAGE
    return image


def _verify_network_flags(
    binder: _Binder,
    disable_public_ipv4: bool,
    disable_public_ipv6: bool,
    use_private_network: bool,
    primary_ipv4: str,
    primary_ipv6: str,
) -> None:
    if disable_public_ipv4 and disable_public_ipv6 and not use_private_network:
        raise binder.fail(
            f"--{FLAG_USE_PRIVATE_NETWORK} must be used if public networking is disabled "
            f"(hint: implicitly set by --{FLAG_DISABLE_PUBLIC})"
        )

    if disable_public_ipv4 and primary_ipv4:
        raise binder.fail(f"--{FLAG_PRIMARY_4} and --{FLAG_DISABLE_PUBLIC_4} are mutually exclusive")

    if disable_public_ipv6 and primary_ipv6:
        raise binder.fail(f"--{FLAG_PRIMARY_6} and --{FLAG_DISABLE_PUBLIC_6} are mutually exclusive")
