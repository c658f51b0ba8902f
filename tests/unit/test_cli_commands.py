"""Unit tests for the CLI commands."""

from pathlib import Path
from typing import Any
from unittest.mock import Mock

import pytest
from hcloud import APIException
from typer.testing import CliRunner

from hetzner_machine.cli import app as app_module
from hetzner_machine.cli.commands import create as create_module
from hetzner_machine.cli.commands.control import run_power_action, run_remove, run_state
from hetzner_machine.cli.commands.create import run_create
from hetzner_machine.config.models import DriverConfig
from hetzner_machine.core.errors import ProvisioningError
from hetzner_machine.core.state import MachineState
from hetzner_machine.core.store import MachineRecord, MachineStore
from hetzner_machine.core.tracing import NoopTracer
from hetzner_machine.driver import driver as driver_module

runner = CliRunner()


def server(status: str = "running") -> Mock:
    entity = Mock(status=status, placement_group=None)
    entity.id = 42
    entity.name = "web-1"
    entity.public_net.ipv4.ip = "1.2.3.4"
    return entity


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> Mock:
    """Patch client construction to return a mock client."""
    client = Mock()
    key = Mock(id=7)
    key.name = "web-1"
    client.ssh_keys.get_by_fingerprint.return_value = None
    client.ssh_keys.create.return_value = key
    client.ssh_keys.get_by_id.return_value = key
    client.servers.create.return_value = Mock(
        server=server(),
        action=Mock(id=1, status="success", command="create_server"),
        next_actions=[],
    )
    client.servers.get_by_id.return_value = server()
    client.servers.delete.return_value = Mock(id=2, status="success", command="delete_server")

    monkeypatch.setattr(driver_module, "build_client", lambda config, version="": client)
    monkeypatch.setattr(create_module, "options_from_env", dict)
    return client


@pytest.fixture
def store(tmp_path: Path) -> MachineStore:
    return MachineStore(tmp_path)


def save_machine(store: MachineStore, **fields: Any) -> None:
    store.save(
        MachineRecord(
            name="web-1",
            config=DriverConfig(access_token="t", wait_on_polling=0),
            **{"server_id": 42, "key_id": 7, "ip_address": "1.2.3.4", **fields},
        )
    )


ARGS = ["--hetzner-api-token", "t", "--hetzner-wait-on-polling", "0"]


class TestRunCreate:
    """Tests for run_create function."""

    def test_creates_and_saves(self, client: Mock, store: MachineStore) -> None:
        """Test that a created machine is saved with its resources."""
        driver = run_create("web-1", ARGS, store, NoopTracer())

        record = store.load("web-1")
        assert record.server_id == 42
        assert record.key_id == 7
        assert record.ip_address == "1.2.3.4"
        assert record.config.access_token == "t"
        assert driver.get_ip() == "1.2.3.4"
        assert Path(driver.get_ssh_key_path()).parent == store.machine_dir("web-1")

    def test_existing_machine(self, client: Mock, store: MachineStore) -> None:
        """Test that an existing machine is not created again."""
        save_machine(store)

        with pytest.raises(FileExistsError, match="machine web-1 already exists"):
            run_create("web-1", ARGS, store, NoopTracer())

        client.servers.create.assert_not_called()

    def test_failed_create_without_server(self, client: Mock, store: MachineStore) -> None:
        """Test that nothing is saved when no server was created."""
        client.servers.create.side_effect = APIException("invalid_input", "bad", None)

        with pytest.raises(ProvisioningError):
            run_create("web-1", ARGS, store, NoopTracer())

        assert not store.exists("web-1")

    def test_failed_create_with_server(self, client: Mock, store: MachineStore) -> None:
        """Test that a server created before the failure is saved for removal."""
        failed = Mock(id=1, status="error", command="create_server")
        failed.error = {"code": "server_error", "message": "host failure"}
        client.servers.create.return_value.action = failed

        with pytest.raises(ProvisioningError):
            run_create("web-1", ARGS, store, NoopTracer())

        assert store.load("web-1").server_id == 42


class TestControlCommands:
    """Tests for commands on existing machines."""

    def test_state(self, client: Mock, store: MachineStore) -> None:
        """Test querying the state."""
        save_machine(store)

        assert run_state("web-1", store, NoopTracer()) == MachineState.RUNNING

    def test_power_action(self, client: Mock, store: MachineStore) -> None:
        """Test that power actions reach the driver."""
        save_machine(store)
        client.servers.reboot.return_value = Mock(id=3, status="success", command="reboot_server")

        run_power_action("web-1", "restart", store, NoopTracer())

        client.servers.reboot.assert_called_once()

    def test_unknown_action(self, store: MachineStore) -> None:
        """Test that unknown actions are rejected."""
        with pytest.raises(ValueError, match="Unknown action: pause"):
            run_power_action("web-1", "pause", store, NoopTracer())

    def test_remove(self, client: Mock, store: MachineStore) -> None:
        """Test that removal deletes remotely and forgets the machine."""
        save_machine(store)

        run_remove("web-1", store, NoopTracer())

        client.servers.delete.assert_called_once()
        client.ssh_keys.delete.assert_called_once()
        assert not store.exists("web-1")

    def test_missing_machine(self, store: MachineStore) -> None:
        """Test that unknown machines raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            run_state("nope", store, NoopTracer())


class TestApp:
    """Tests for the typer application."""

    @pytest.fixture(autouse=True)
    def storage(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("MACHINE_STORAGE_PATH", str(tmp_path))

    def test_flags(self) -> None:
        """Test that the flag table lists the create flags."""
        result = runner.invoke(app_module.app, ["flags"])

        assert result.exit_code == 0
        assert "--hetzner-api-token" in result.output

    def test_ip(self, client: Mock, tmp_path: Path) -> None:
        """Test printing the address of a machine."""
        save_machine(MachineStore(tmp_path))

        result = runner.invoke(app_module.app, ["ip", "web-1"])

        assert result.exit_code == 0
        assert result.output.strip() == "1.2.3.4"

    def test_missing_machine(self) -> None:
        """Test that failures exit with code 1 and a message."""
        result = runner.invoke(app_module.app, ["state", "nope"])

        assert result.exit_code == 1
        assert "Error: machine nope does not exist" in result.output

    def test_create_without_token(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that configuration errors are reported."""
        monkeypatch.delenv("HETZNER_API_TOKEN", raising=False)

        result = runner.invoke(app_module.app, ["create", "web-1"])

        assert result.exit_code == 1
        assert "hetzner requires --hetzner-api-token to be set" in result.output
