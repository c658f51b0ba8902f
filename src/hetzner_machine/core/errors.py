"""Error types raised by the Hetzner machine driver."""

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from hcloud import HCloudException


class DriverError(Exception):
    """Base class for all driver failures."""


class ConfigurationError(DriverError):
    """Raised when the supplied options are missing or contradictory.

    Attributes:
        options: Snapshot of the raw options that were being bound, with
            secrets redacted
    """

    def __init__(self, message: str, options: Mapping[str, Any] | None = None) -> None:
        """Initialize ConfigurationError.

        Args:
            message: Description of the violated rule
            options: Raw options at the point of failure
        """
        self.options = dict(options or {})
        super().__init__(message)

    def describe(self) -> str:
        """Render the error together with the options snapshot.

        Returns:
            Multi-line description suitable for debug output
        """
        lines = [str(self), " -> options:"]
        for name, value in sorted(self.options.items()):
            lines.append(f"    {name} = {value!r}")
        return "\n".join(lines)


class ResolutionError(DriverError):
    """Raised when a remote lookup fails for a reason other than absence."""


class NotFoundError(ResolutionError):
    """Raised when a referenced remote entity does not exist."""


class ActionFailedError(DriverError):
    """Raised when an asynchronous remote action finishes with an error.

    Attributes:
        action_id: ID of the failed action
        command: Command the action was executing
        code: Provider-supplied error code
        detail: Provider-supplied error message
    """

    def __init__(self, action_id: int, command: str, code: str, detail: str) -> None:
        self.action_id = action_id
        self.command = command
        self.code = code
        self.detail = detail
        super().__init__(f"action {command}[{action_id}] failed: {code}: {detail}")


class ActionsFailedError(DriverError):
    """Raised when one or more of a batch of actions failed.

    Attributes:
        errors: Every individual action failure
    """

    def __init__(self, step: str, errors: list[ActionFailedError]) -> None:
        self.step = step
        self.errors = errors
        details = "; ".join(str(e) for e in errors)
        super().__init__(f"{len(errors)} action(s) failed during {step}: {details}")


class WaitTimeoutError(DriverError):
    """Raised when a bounded wait did not reach its goal in time."""


class ProvisioningError(DriverError):
    """Raised when server provisioning fails.

    Attributes:
        state: Provisioning state in which the failure happened
    """

    def __init__(self, state: str, message: str) -> None:
        self.state = state
        super().__init__(message)


@contextmanager
def error_context(message: str) -> Iterator[None]:
    """Prefix failures raised inside the block with the step they belong to.

    Configuration errors pass through unchanged, everything else the driver
    or the API client raises becomes a DriverError chained to the original.

    Args:
        message: Step description, e.g. "could not get image"
    """
    try:
        yield
    except ConfigurationError:
        raise
    except (DriverError, HCloudException, OSError) as e:
        raise DriverError(f"{message}: {e}") from e
