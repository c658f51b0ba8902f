"""Fixed-interval polling built on tenacity."""

from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    RetryError,
    Retrying,
    retry_if_result,
    stop_after_delay,
    stop_never,
    wait_fixed,
)

from hetzner_machine.core.errors import WaitTimeoutError

T = TypeVar("T")


def poll_until(
    fetch: Callable[[], T],
    done: Callable[[T], bool],
    interval: float,
    timeout: float = 0,
    description: str = "condition",
) -> T:
    """Call fetch until done() accepts its result.

    The check is cooperative: the timeout is evaluated between attempts and
    never interrupts a running fetch. Exceptions raised by fetch propagate
    immediately without further attempts.

    Args:
        fetch: Produces the current value
        done: Decides whether the value is final
        interval: Seconds to sleep between attempts
        timeout: Maximum seconds to keep polling; 0 polls forever
        description: What is being waited for, used in the timeout message

    Returns:
        The first value accepted by done

    Raises:
        WaitTimeoutError: If the timeout elapsed first
    """
    retrying = Retrying(
        retry=retry_if_result(lambda value: not done(value)),
        wait=wait_fixed(interval),
        stop=stop_after_delay(timeout) if timeout > 0 else stop_never,
    )

    try:
        return retrying(fetch)
    except RetryError as e:
        raise WaitTimeoutError(
            f"{description} not reached within {timeout} seconds"
        ) from e
