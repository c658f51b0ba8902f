"""Construction of the Hetzner Cloud API client."""

from collections.abc import Callable
from typing import TypeVar

from hcloud import APIException, Client

from hetzner_machine.config.models import DriverConfig

T = TypeVar("T")

APPLICATION_NAME = "hetzner-machine-driver"


def build_client(config: DriverConfig, version: str = "") -> Client:
    """Create an API client for a driver configuration.

    Args:
        config: Driver configuration providing token and polling interval
        version: Driver version reported to the API

    Returns:
        Configured hcloud client
    """
    return Client(
        token=config.access_token,
        application_name=APPLICATION_NAME,
        application_version=version or None,
        poll_interval=config.wait_on_polling,
    )


def is_not_found(error: APIException) -> bool:
    """Check whether an API error reports a missing resource."""
    return error.code == "not_found"


def get_or_none(getter: Callable[..., T | None], *args: object) -> T | None:
    """Call an SDK getter, mapping "not found" API errors to None.

    The by-ID getters of the SDK raise instead of returning None when the
    resource does not exist.

    Raises:
        APIException: For every error other than "not found"
    """
    try:
        return getter(*args)
    except APIException as e:
        if is_not_found(e):
            return None
        raise


def get_by_id_or_name(resource_client: object, reference: str) -> object | None:
    """Resolve a reference by ID if it is numeric, by name otherwise.

    Args:
        resource_client: SDK resource client offering get_by_id and get_by_name
        reference: ID or name

    Returns:
        The bound resource, or None if it does not exist
    """
    if reference.isdecimal():
        return get_or_none(resource_client.get_by_id, int(reference))
    return resource_client.get_by_name(reference)
