"""Tracing collaborator for inspecting requests and resolved entities."""

import json
import os
import traceback
from typing import Any, Protocol, TypeVar, runtime_checkable

from hetzner_machine.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

TRACE_ENV_VAR = "HETZNER_DRIVER_TRACE"

# Nested SDK objects load lazily; stop before walking into them too far
MAX_DEPTH = 3


@runtime_checkable
class Tracer(Protocol):
    """Protocol for observing values flowing through the driver.

    Implementations must return the traced value unchanged.
    """

    def trace(self, label: str, value: T) -> T:
        """Observe a value.

        Args:
            label: What the value is (e.g. "server.create")
            value: The value to observe

        Returns:
            The value, unchanged
        """
        ...


class NoopTracer:
    """Tracer that does nothing."""

    def trace(self, label: str, value: T) -> T:
        return value


class LoggingTracer:
    """Tracer that logs a JSON rendering of every value at debug level."""

    def __init__(self, with_stack: bool = False) -> None:
        """Initialize the tracer.

        Args:
            with_stack: Also log the call stack leading to each traced value
        """
        self.with_stack = with_stack

    def trace(self, label: str, value: T) -> T:
        rendered = json.dumps(_to_plain(value), indent=2, sort_keys=True, default=repr)
        if self.with_stack:
            stack = "".join(traceback.format_stack(limit=8)[:-1])
            logger.debug("Trace %s\n%s\n%s", label, stack, rendered)
        else:
            logger.debug("Trace %s\n%s", label, rendered)
        return value


def _to_plain(value: Any, depth: int = 0) -> Any:
    """Convert SDK domain objects into JSON-friendly structures."""
    if depth > MAX_DEPTH:
        return repr(value)
    if isinstance(value, dict):
        return {str(k): _to_plain(v, depth + 1) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v, depth + 1) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value

    # hcloud domain objects keep their attribute names in __api_properties__
    properties = getattr(value, "__api_properties__", None)
    if properties:
        return {name: _to_plain(getattr(value, name, None), depth + 1) for name in properties}

    return repr(value)


def tracer_from_env(force: bool = False) -> Tracer:
    """Select a tracer based on configuration.

    Args:
        force: Always use the logging tracer

    Returns:
        LoggingTracer if tracing is requested, NoopTracer otherwise
    """
    if force or os.getenv(TRACE_ENV_VAR):
        return LoggingTracer(with_stack=os.getenv(TRACE_ENV_VAR) == "stack")
    return NoopTracer()
