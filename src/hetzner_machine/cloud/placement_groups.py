"""Placement group resolution, creation and cleanup."""

from typing import Any

from hcloud import Client
from hcloud.placement_groups import BoundPlacementGroup, PlacementGroup

from hetzner_machine.core.dangling import DanglingResources, ResourceKind
from hetzner_machine.core.logging import get_logger
from hetzner_machine.core.tracing import Tracer

logger = get_logger(__name__)

LABEL_NAMESPACE = "docker-machine"
LABEL_AUTO_SPREAD = "auto-spread"
LABEL_AUTO_CREATED = "auto-created"

AUTO_SPREAD_GROUP_NAME = "Docker-Machine auto spread"


def label_name(name: str) -> str:
    """Get the namespaced label key for a driver label."""
    return f"{LABEL_NAMESPACE}/{name}"


def create_placement_group(
    client: Client,
    name: str,
    labels: dict[str, str],
    dangling: DanglingResources,
    tracer: Tracer,
) -> BoundPlacementGroup:
    """Create a spread placement group and track it as dangling.

    Args:
        client: API client
        name: Name of the new group
        labels: Labels of the new group
        dangling: Tracker the compensating deletion is registered with
        tracer: Tracing collaborator

    Returns:
        The created placement group
    """
    response = client.placement_groups.create(
        name=name,
        type=PlacementGroup.TYPE_SPREAD,
        labels=tracer.trace("placement_group.labels", labels),
    )
    group = response.placement_group

    dangling.register(
        ResourceKind.PLACEMENT_GROUP,
        group.id,
        group.name,
        lambda: client.placement_groups.delete(group),
    )
    logger.info("Created placement group", name=group.name, id=group.id)

    return tracer.trace("placement_group", group)


def auto_spread_placement_group(
    client: Client, dangling: DanglingResources, tracer: Tracer
) -> BoundPlacementGroup:
    """Find the shared auto-spread group, creating it if necessary."""
    existing = client.placement_groups.get_all(label_selector=label_name(LABEL_AUTO_SPREAD))
    if existing:
        logger.debug("Using existing auto-spread placement group", id=existing[0].id)
        return tracer.trace("placement_group", existing[0])

    return create_placement_group(
        client,
        AUTO_SPREAD_GROUP_NAME,
        {
            label_name(LABEL_AUTO_SPREAD): "true",
            label_name(LABEL_AUTO_CREATED): "true",
        },
        dangling,
        tracer,
    )


def remove_empty_server_placement_group(client: Client, server: Any) -> None:
    """Delete the server's placement group if the driver created it and the server was its only member.

    Args:
        client: API client
        server: Server whose placement group is inspected
    """
    group = server.placement_group
    if group is None:
        return

    if len(group.servers or []) > 1:
        logger.debug("More than one server in placement group, ignoring", group=group.name)
        return

    if (group.labels or {}).get(label_name(LABEL_AUTO_CREATED)) != "true":
        logger.debug("Placement group not auto-created, ignoring", group=group.name)
        return

    client.placement_groups.delete(group)
    logger.info("Deleted placement group", name=group.name, id=group.id)
