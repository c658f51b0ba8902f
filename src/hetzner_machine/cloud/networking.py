"""Public network settings and discovery of the machine's reachable address."""

import ipaddress
from typing import Any

from hcloud import Client
from hcloud.servers import ServerCreatePublicNetwork

from hetzner_machine.config.models import DriverConfig
from hetzner_machine.core.logging import get_logger
from hetzner_machine.core.polling import poll_until

logger = get_logger(__name__)


def public_network_options(
    config: DriverConfig, primary_ipv4: Any | None, primary_ipv6: Any | None
) -> ServerCreatePublicNetwork | None:
    """Build the public network block of a create request.

    The block is only sent if a family is disabled or a primary IP is
    given; otherwise the API defaults apply. A given primary IP always
    enables its family.

    Args:
        config: Driver configuration
        primary_ipv4: Resolved primary IPv4, if any
        primary_ipv6: Resolved primary IPv6, if any

    Returns:
        Public network settings, or None to use the defaults
    """
    if not (
        config.disable_public_ipv4
        or config.disable_public_ipv6
        or primary_ipv4 is not None
        or primary_ipv6 is not None
    ):
        return None

    return ServerCreatePublicNetwork(
        ipv4=primary_ipv4,
        ipv6=primary_ipv6,
        enable_ipv4=not config.disable_public_ipv4 or primary_ipv4 is not None,
        enable_ipv6=not config.disable_public_ipv6 or primary_ipv6 is not None,
    )


def ipv6_host_address(raw: str) -> str:
    """Derive a host address from a server's public IPv6.

    The API reports the assigned block, e.g. "2001:db8::/64". If no host
    bits are set, the lowest bit is set to get a usable address. Values
    without a prefix length are used as they are.

    Args:
        raw: IPv6 address or network in CIDR notation

    Returns:
        Host address in compressed notation
    """
    if "/" not in raw:
        return str(ipaddress.IPv6Address(raw))

    interface = ipaddress.IPv6Interface(raw)
    address = interface.ip
    if address == interface.network.network_address:
        # TODO: make the host part configurable instead of always using ::1
        address = ipaddress.IPv6Address(int(address) | 0x01)
    return str(address)


def configure_network_access(
    client: Client, config: DriverConfig, server: Any, interval: float
) -> str:
    """Determine the address the machine is reached at.

    Args:
        client: API client used to refresh the server record
        config: Driver configuration
        server: Newly created server
        interval: Seconds between polls while waiting for the private network

    Returns:
        The machine's address
    """
    if config.use_private_network:
        logger.info("Waiting until private network is attached", server=server.name)
        current = poll_until(
            lambda: client.servers.get_by_id(server.id),
            lambda srv: bool(srv.private_net),
            interval,
            description="private network attachment",
        )
        return current.private_net[0].ip

    if config.disable_public_ipv4:
        logger.info("Using public IPv6 network", server=server.name)
        address = ipv6_host_address(server.public_net.ipv6.ip)
        logger.info("Resolved IPv6 host address", address=address)
        return address

    logger.info("Using public network", server=server.name)
    return server.public_net.ipv4.ip
