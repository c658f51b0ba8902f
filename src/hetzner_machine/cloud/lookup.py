"""Memoized resolution of configured references against the Cloud API."""

import ipaddress
from collections.abc import Callable
from typing import Any, TypeVar

from hcloud import Client, HCloudException

from hetzner_machine.cloud.client import get_by_id_or_name, get_or_none
from hetzner_machine.cloud.placement_groups import (
    LABEL_AUTO_CREATED,
    auto_spread_placement_group,
    create_placement_group,
    label_name,
)
from hetzner_machine.config.loader import AUTO_SPREAD_PLACEMENT_GROUP
from hetzner_machine.config.models import DriverConfig
from hetzner_machine.core.dangling import DanglingResources
from hetzner_machine.core.errors import DriverError, NotFoundError, ResolutionError
from hetzner_machine.core.logging import get_logger
from hetzner_machine.core.tracing import NoopTracer, Tracer
from hetzner_machine.system.ssh import PublicKey

logger = get_logger(__name__)

T = TypeVar("T")


def _remote(what: str, call: Callable[[], T]) -> T:
    """Run an API call, wrapping transport and API failures with context."""
    try:
        return call()
    except HCloudException as e:
        raise ResolutionError(f"could not get {what}: {e}") from e


class ResourceLookup:
    """Resolves names and IDs to remote entities, at most once per instance.

    Every successful resolution is cached for the lifetime of the object;
    "not found" results raise NotFoundError and are not cached.
    """

    def __init__(
        self,
        client: Client,
        config: DriverConfig,
        dangling: DanglingResources,
        tracer: Tracer | None = None,
    ) -> None:
        """Initialize the lookup layer.

        Args:
            client: API client
            config: Driver configuration holding the references
            dangling: Tracker for resources created while resolving
            tracer: Tracing collaborator
        """
        self.client = client
        self.config = config
        self.dangling = dangling
        self.tracer = tracer or NoopTracer()

        self._server_type: Any = None
        self._image: Any = None
        self._location: Any = None
        self._ssh_key: Any = None
        self._placement_group: Any = None
        self._primary_ipv4: Any = None
        self._primary_ipv6: Any = None
        self._server: Any = None

    def server_type(self) -> Any:
        """Resolve the configured server type."""
        if self._server_type is None:
            name = self.config.server_type
            server_type = _remote(
                "type by name", lambda: self.client.server_types.get_by_name(name)
            )
            if server_type is None:
                raise NotFoundError(f"unknown server type: {name}")
            self._server_type = self.tracer.trace("server_type", server_type)
        return self._server_type

    def image_architecture(self) -> str:
        """Get the architecture to look images up for.

        An explicitly configured architecture wins; otherwise the server
        type's architecture is used.
        """
        if self.config.image_arch is not None:
            return self.config.image_arch.value
        return self.server_type().architecture

    def image(self) -> Any:
        """Resolve the configured image, by ID or by name and architecture."""
        if self._image is not None:
            return self._image

        if self.config.image_id:
            image_id = self.config.image_id
            image = _remote(
                f"image by id {image_id}",
                lambda: get_or_none(self.client.images.get_by_id, image_id),
            )
            if image is None:
                raise NotFoundError(f"image id not found: {image_id}")
        else:
            try:
                arch = self.image_architecture()
            except DriverError as e:
                raise ResolutionError(f"could not determine image architecture: {e}") from e

            name = self.config.image
            image = _remote(
                f"image by name {name}",
                lambda: self.client.images.get_by_name_and_architecture(name, arch),
            )
            if image is None:
                raise NotFoundError(f"image not found: {name}[{arch}]")

        self._image = self.tracer.trace("image", image)
        return self._image

    def location(self) -> Any | None:
        """Resolve the configured location; None if no location is configured."""
        if self._location is None and self.config.location:
            name = self.config.location
            location = _remote(
                "location by name", lambda: self.client.locations.get_by_name(name)
            )
            if location is None:
                raise NotFoundError(f"unknown location: {name}")
            self._location = self.tracer.trace("location", location)
        return self._location

    def ssh_key_or_none(self, key_id: int) -> Any | None:
        """Resolve an SSH key by ID; None if it does not exist."""
        if self._ssh_key is None:
            key = _remote(
                "sshkey by ID", lambda: get_or_none(self.client.ssh_keys.get_by_id, key_id)
            )
            if key is None:
                return None
            self._ssh_key = self.tracer.trace("ssh_key", key)
        return self._ssh_key

    def ssh_key(self, key_id: int) -> Any:
        """Resolve an SSH key by ID.

        Raises:
            NotFoundError: If the key does not exist
        """
        key = self.ssh_key_or_none(key_id)
        if key is None:
            raise NotFoundError(f"key not found: {key_id}")
        return key

    def remember_ssh_key(self, key: Any) -> None:
        """Cache an SSH key obtained without a lookup, e.g. right after upload."""
        if self._ssh_key is None:
            self._ssh_key = key

    def ssh_key_by_fingerprint(self, public_key: str | bytes) -> Any | None:
        """Find a remote key with the same fingerprint as a public key.

        Args:
            public_key: Public key in authorized_keys format

        Returns:
            The matching remote key, or None if there is none

        Raises:
            ResolutionError: If the key cannot be parsed or the lookup fails
        """
        try:
            parsed = PublicKey.parse(public_key)
        except ValueError as e:
            raise ResolutionError(f"could not parse ssh public key: {e}") from e

        fingerprint = parsed.fingerprint_md5()
        key = _remote(
            "sshkey by fingerprint",
            lambda: self.client.ssh_keys.get_by_fingerprint(fingerprint),
        )
        return self.tracer.trace("ssh_key", key)

    def primary_ipv4(self) -> Any | None:
        """Resolve the configured primary IPv4; None if none is configured."""
        if self._primary_ipv4 is None and self.config.primary_ipv4:
            self._primary_ipv4 = self._resolve_primary_ip(self.config.primary_ipv4)
        return self._primary_ipv4

    def primary_ipv6(self) -> Any | None:
        """Resolve the configured primary IPv6; None if none is configured."""
        if self._primary_ipv6 is None and self.config.primary_ipv6:
            self._primary_ipv6 = self._resolve_primary_ip(self.config.primary_ipv6)
        return self._primary_ipv6

    def _resolve_primary_ip(self, raw: str) -> Any:
        """Resolve a primary IP by address if raw is an IP literal, by ID or name otherwise.

        The address family is not checked against the slot it is used for.
        """
        try:
            ipaddress.ip_address(raw)
        except ValueError:
            ip = _remote(
                "primary IP", lambda: get_by_id_or_name(self.client.primary_ips, raw)
            )
        else:
            page = _remote("primary IP", lambda: self.client.primary_ips.get_list(ip=raw))
            ip = page.primary_ips[0] if page.primary_ips else None

        if ip is None:
            raise NotFoundError(f"primary IP not found: {raw}")
        return self.tracer.trace("primary_ip", ip)

    def placement_group(self) -> Any | None:
        """Resolve the configured placement group, creating it if it does not exist.

        Returns:
            The placement group, or None if none is configured
        """
        if self._placement_group is not None or not self.config.placement_group:
            return self._placement_group

        name = self.config.placement_group
        try:
            if name == AUTO_SPREAD_PLACEMENT_GROUP:
                group = auto_spread_placement_group(self.client, self.dangling, self.tracer)
            else:
                group = get_by_id_or_name(self.client.placement_groups, name)
                if group is None:
                    group = create_placement_group(
                        self.client,
                        name,
                        {label_name(LABEL_AUTO_CREATED): "true"},
                        self.dangling,
                        self.tracer,
                    )
        except HCloudException as e:
            raise ResolutionError(f"could not get placement group: {e}") from e

        self._placement_group = group
        return group

    def server_or_none(self, server_id: int) -> Any | None:
        """Resolve the server handle; None if the server no longer exists.

        Raises:
            ResolutionError: If no server ID is recorded or the lookup fails
        """
        if self._server is not None:
            return self._server

        if not server_id:
            raise ResolutionError("server ID was 0")

        server = _remote(
            "server by ID", lambda: get_or_none(self.client.servers.get_by_id, server_id)
        )
        self._server = server
        return server

    def server(self, server_id: int) -> Any:
        """Resolve the server handle.

        Raises:
            NotFoundError: If the server does not exist
        """
        server = self.server_or_none(server_id)
        if server is None:
            raise NotFoundError(f"server does not exist: {server_id}")
        return server

    def networks(self) -> list[Any]:
        """Resolve every configured network."""
        return [self._by_id_or_name("network", self.client.networks, ref) for ref in self.config.networks]

    def firewalls(self) -> list[Any]:
        """Resolve every configured firewall."""
        return [
            self._by_id_or_name("firewall", self.client.firewalls, ref) for ref in self.config.firewalls
        ]

    def volumes(self) -> list[Any]:
        """Resolve every configured volume."""
        return [self._by_id_or_name("volume", self.client.volumes, ref) for ref in self.config.volumes]

    def _by_id_or_name(self, kind: str, resource_client: Any, reference: str) -> Any:
        entity = _remote(
            f"{kind} by ID or name", lambda: get_by_id_or_name(resource_client, reference)
        )
        if entity is None:
            raise NotFoundError(f"{kind} '{reference}' not found")
        return self.tracer.trace(kind, entity)
