"""On-disk records of the machines managed by the driver."""

import os
import shutil
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from hetzner_machine.config.models import DriverConfig
from hetzner_machine.core.logging import get_logger

logger = get_logger(__name__)

STORAGE_ENV_VAR = "MACHINE_STORAGE_PATH"
RECORD_FILE = "config.yaml"


def default_storage_path() -> Path:
    """Get the storage root from the environment, or the default location."""
    configured = os.getenv(STORAGE_ENV_VAR)
    if configured:
        return Path(configured)
    return Path.home() / ".docker" / "machine"


class MachineRecord(BaseModel):
    """Everything needed to control a machine again in a later invocation."""

    name: str
    driver_name: str = "hetzner"
    config: DriverConfig = Field(default_factory=DriverConfig)

    server_id: int = 0
    key_id: int = 0
    is_existing_key: bool = False
    additional_key_ids: list[int] = Field(default_factory=list)
    ip_address: str = ""


class MachineStore:
    """Stores one YAML record per machine under <root>/machines/<name>/."""

    def __init__(self, root: Path | None = None) -> None:
        """Initialize the store.

        Args:
            root: Storage root; defaults to default_storage_path()
        """
        self.root = root or default_storage_path()

    def machine_dir(self, name: str) -> Path:
        """Get the directory holding a machine's record and keys."""
        return self.root / "machines" / name

    def record_path(self, name: str) -> Path:
        return self.machine_dir(name) / RECORD_FILE

    def exists(self, name: str) -> bool:
        return self.record_path(name).is_file()

    def save(self, record: MachineRecord) -> None:
        """Write a machine record, replacing any previous one."""
        path = self.record_path(record.name)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = record.model_dump(mode="json")
        path.write_text(yaml.safe_dump(data, default_flow_style=False), encoding="utf-8")
        os.chmod(path, 0o600)

        logger.debug("Machine record saved", path=str(path))

    def load(self, name: str) -> MachineRecord:
        """Read a machine record.

        Raises:
            FileNotFoundError: If the machine does not exist
        """
        path = self.record_path(name)
        try:
            contents = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise FileNotFoundError(f"machine {name} does not exist") from None

        record = MachineRecord.model_validate(yaml.safe_load(contents))
        logger.debug("Loaded machine record", path=str(path))
        return record

    def delete(self, name: str) -> None:
        """Delete a machine's directory including its keys."""
        shutil.rmtree(self.machine_dir(name), ignore_errors=True)
        logger.debug("Machine record deleted", name=name)
