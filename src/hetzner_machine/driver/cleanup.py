"""Removal of a machine's server and the resources created for it."""

from hcloud import Client, HCloudException

from hetzner_machine.cloud.actions import ActionWaiter
from hetzner_machine.cloud.client import get_or_none
from hetzner_machine.cloud.lookup import ResourceLookup
from hetzner_machine.cloud.placement_groups import remove_empty_server_placement_group
from hetzner_machine.core.errors import error_context
from hetzner_machine.core.logging import get_logger
from hetzner_machine.driver.provisioning import MachineResources

logger = get_logger(__name__)


def destroy_server(
    client: Client, lookup: ResourceLookup, waiter: ActionWaiter, server_id: int
) -> None:
    """Delete the server, if there is one, and its auto-created placement group.

    A server that no longer exists counts as removed. Failing to remove the
    placement group is logged and ignored.

    Args:
        client: API client
        lookup: Resolution layer providing the server handle
        waiter: Waits for the deletion to finish
        server_id: Recorded server ID; 0 if no server was ever created
    """
    if not server_id:
        return

    with error_context("could not get server handle"):
        server = lookup.server_or_none(server_id)

    if server is None:
        logger.info("Server does not exist anymore", id=server_id)
        return

    logger.info("Destroying server", server=f"{server.name}[{server.id}]")
    with error_context("could not delete server"):
        action = client.servers.delete(server)
    with error_context("could not wait for deletion"):
        waiter.wait(action)

    # The group can only be deleted once it has no members left
    try:
        remove_empty_server_placement_group(client, server)
    except HCloudException as e:
        logger.error("Could not remove placement group", error=str(e))


def remove_additional_keys(client: Client, key_ids: list[int]) -> None:
    """Delete the additional keys uploaded for the machine.

    Every failure is logged and skipped; the remaining keys are still removed.
    """
    for i, key_id in enumerate(key_ids):
        logger.info("Destroying additional key", index=i, id=key_id)
        try:
            key = get_or_none(client.ssh_keys.get_by_id, key_id)
            if key is None:
                logger.warning("Additional key no longer exists", id=key_id)
                continue
            client.ssh_keys.delete(key)
        except HCloudException as e:
            logger.warning("Could not remove additional key", id=key_id, error=str(e))


def remove_primary_key(client: Client, lookup: ResourceLookup, resources: MachineResources) -> None:
    """Delete the machine's own SSH key.

    Keys that existed before the machine was created are kept.

    Raises:
        DriverError: If the key cannot be looked up or deleted
    """
    if resources.is_existing_key or not resources.key_id:
        return

    with error_context("could not get ssh key"):
        key = lookup.ssh_key_or_none(resources.key_id)

    if key is None:
        logger.info("SSH key does not exist anymore", id=resources.key_id)
        return

    logger.info("Destroying SSH key", key=f"{key.name}[{key.id}]")
    with error_context("could not delete ssh key"):
        client.ssh_keys.delete(key)
