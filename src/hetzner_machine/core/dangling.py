"""Tracking of resources created mid-provisioning that must not outlive a failure."""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any

from hetzner_machine.core.logging import get_logger

logger = get_logger(__name__)


class ResourceKind(str, Enum):
    """Kinds of remote resources the driver may create."""

    SSH_KEY = "ssh_key"
    PLACEMENT_GROUP = "placement_group"


@dataclass(frozen=True)
class PendingDeletion:
    """A compensating deletion for one freshly created remote resource.

    Attributes:
        kind: Kind of the created resource
        resource_id: Remote ID of the resource
        name: Remote name of the resource
        delete: Performs the remote deletion
    """

    kind: ResourceKind
    resource_id: int
    name: str
    delete: Callable[[], Any]


class DanglingResources:
    """Ordered list of pending deletions for the current provisioning attempt.

    Deletions are run in registration order. Each one is attempted even if
    an earlier one fails; failures are logged and never raised.
    """

    def __init__(self) -> None:
        self._pending: list[PendingDeletion] = []

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def pending(self) -> list[PendingDeletion]:
        """Get a copy of the pending deletions."""
        return list(self._pending)

    def register(
        self, kind: ResourceKind, resource_id: int, name: str, delete: Callable[[], Any]
    ) -> None:
        """Register a compensating deletion for a newly created resource.

        Args:
            kind: Kind of the created resource
            resource_id: Remote ID of the resource
            name: Remote name of the resource
            delete: Performs the remote deletion
        """
        self._pending.append(PendingDeletion(kind, resource_id, name, delete))
        logger.debug("Tracking dangling resource", kind=kind.value, id=resource_id)

    def commit(self) -> None:
        """Forget all pending deletions; the created resources are kept."""
        self._pending = []

    def rollback(self) -> None:
        """Delete every tracked resource, best effort."""
        pending, self._pending = self._pending, []

        for item in pending:
            try:
                item.delete()
            except Exception as e:
                logger.error(
                    "Could not delete dangling resource",
                    kind=item.kind.value,
                    id=item.resource_id,
                    name=item.name,
                    error=str(e),
                )
            else:
                logger.info(
                    "Deleted dangling resource",
                    kind=item.kind.value,
                    id=item.resource_id,
                    name=item.name,
                )

    @contextmanager
    def rollback_on_exit(self) -> Iterator["DanglingResources"]:
        """Roll back on every exit that was not preceded by commit()."""
        try:
            yield self
        finally:
            self.rollback()

    @contextmanager
    def rollback_on_error(self) -> Iterator["DanglingResources"]:
        """Roll back only if the block raises; keep pending deletions otherwise."""
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
