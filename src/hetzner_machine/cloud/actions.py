"""Waiting for asynchronous Cloud API actions."""

from collections.abc import Sequence
from typing import Any

from hcloud import Client
from hcloud.actions import BoundAction

from hetzner_machine.core.errors import ActionFailedError, ActionsFailedError
from hetzner_machine.core.logging import get_logger
from hetzner_machine.core.polling import poll_until

logger = get_logger(__name__)

ACTION_STATUS_SUCCESS = "success"
ACTION_STATUS_ERROR = "error"
TERMINAL_STATUSES = (ACTION_STATUS_SUCCESS, ACTION_STATUS_ERROR)


def _is_finished(action: Any) -> bool:
    return action.status in TERMINAL_STATUSES


def _failure(action: Any) -> ActionFailedError:
    error = action.error or {}
    return ActionFailedError(
        action.id,
        action.command,
        error.get("code", "unknown"),
        error.get("message", "no error details"),
    )


class ActionWaiter:
    """Blocks until actions reach a terminal status by polling their state."""

    def __init__(self, client: Client, interval: float) -> None:
        """Initialize the waiter.

        Args:
            client: API client used to refresh action state
            interval: Seconds between polls
        """
        self.client = client
        self.interval = interval

    def _refresh(self, action: Any) -> BoundAction:
        current = self.client.actions.get_by_id(action.id)
        logger.debug(
            "Action progress",
            action=current.command,
            id=current.id,
            progress=f"{current.progress}%",
        )
        return current

    def wait(self, action: Any) -> Any:
        """Wait for a single action.

        Args:
            action: Action as returned by the API

        Returns:
            The finished action

        Raises:
            ActionFailedError: If the action finished with an error
        """
        if not _is_finished(action):
            action = poll_until(
                lambda: self._refresh(action),
                _is_finished,
                self.interval,
                description=f"completion of {action.command}",
            )

        if action.status == ACTION_STATUS_ERROR:
            raise _failure(action)

        logger.debug("Finished action", action=action.command, id=action.id)
        return action

    def wait_all(self, step: str, actions: Sequence[Any]) -> None:
        """Wait for a batch of actions running concurrently.

        Every action is waited for, even after one of them failed.

        Args:
            step: Name of the step the actions belong to
            actions: Actions as returned by the API

        Raises:
            ActionsFailedError: If any action finished with an error
        """
        pending = {action.id: action for action in actions}
        failures: list[ActionFailedError] = []

        def collect() -> dict[int, Any]:
            for action_id, action in list(pending.items()):
                if not _is_finished(action):
                    action = self._refresh(action)
                    pending[action_id] = action
                if _is_finished(action):
                    del pending[action_id]
                    if action.status == ACTION_STATUS_ERROR:
                        failures.append(_failure(action))
            if pending:
                logger.debug(step, waiting_for=len(pending), of=len(actions))
            return pending

        poll_until(collect, lambda remaining: not remaining, self.interval, description=step)

        if failures:
            raise ActionsFailedError(step, failures)

        logger.debug("Finished actions", step=step, count=len(actions))
