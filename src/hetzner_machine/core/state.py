"""Machine and provisioning states."""

from enum import Enum


class MachineState(str, Enum):
    """State of a machine as reported to the host."""

    NONE = ""
    RUNNING = "Running"
    PAUSED = "Paused"
    SAVED = "Saved"
    STOPPED = "Stopped"
    STOPPING = "Stopping"
    STARTING = "Starting"
    ERROR = "Error"
    TIMEOUT = "Timeout"


# Server status values reported by the Cloud API
SERVER_STATUS_MAP = {
    "initializing": MachineState.STARTING,
    "running": MachineState.RUNNING,
    "off": MachineState.STOPPED,
}


def machine_state_for(server_status: str) -> MachineState:
    """Map a server status to a machine state.

    Unknown statuses map to MachineState.NONE rather than failing.
    """
    return SERVER_STATUS_MAP.get(server_status, MachineState.NONE)


class ProvisioningState(str, Enum):
    """Steps of the server provisioning sequence."""

    IDLE = "idle"
    KEY_PREPARED = "key-prepared"
    KEYS_REGISTERED = "keys-registered"
    SERVER_REQUESTED = "server-requested"
    ACTION_PENDING = "action-pending"
    SERVER_BOOTING = "server-booting"
    NETWORK_CONFIGURING = "network-configuring"
    READY = "ready"
    FAILED = "failed"
