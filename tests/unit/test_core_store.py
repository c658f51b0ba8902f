"""Unit tests for the machine store."""

from pathlib import Path

import pytest
import yaml

from hetzner_machine.config.models import Architecture, DriverConfig
from hetzner_machine.core.store import MachineRecord, MachineStore, default_storage_path


class TestDefaultStoragePath:
    """Tests for default_storage_path function."""

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test that the environment overrides the default."""
        monkeypatch.setenv("MACHINE_STORAGE_PATH", str(tmp_path))
        assert default_storage_path() == tmp_path

    def test_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the default location."""
        monkeypatch.delenv("MACHINE_STORAGE_PATH", raising=False)
        assert default_storage_path() == Path.home() / ".docker" / "machine"


class TestMachineStore:
    """Tests for MachineStore class."""

    def test_save_and_load(self, tmp_path: Path) -> None:
        """Test that a saved record loads back unchanged."""
        store = MachineStore(tmp_path)
        record = MachineRecord(
            name="web-1",
            config=DriverConfig(access_token="t", image="debian-12", image_arch=Architecture.ARM),
            server_id=42,
            key_id=7,
            additional_key_ids=[8, 9],
            ip_address="1.2.3.4",
        )

        store.save(record)

        assert store.exists("web-1")
        assert store.record_path("web-1") == tmp_path / "machines" / "web-1" / "config.yaml"
        assert store.load("web-1") == record

    def test_record_is_plain_yaml(self, tmp_path: Path) -> None:
        """Test that the record is stored as plain YAML."""
        store = MachineStore(tmp_path)
        store.save(MachineRecord(name="web-1", config=DriverConfig(image_arch=Architecture.X86)))

        data = yaml.safe_load(store.record_path("web-1").read_text())

        assert data["name"] == "web-1"
        assert data["driver_name"] == "hetzner"
        assert data["config"]["image_arch"] == "x86"

    def test_load_missing(self, tmp_path: Path) -> None:
        """Test that loading an unknown machine raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="machine nope does not exist"):
            MachineStore(tmp_path).load("nope")

    def test_delete(self, tmp_path: Path) -> None:
        """Test that deleting removes the machine directory."""
        store = MachineStore(tmp_path)
        store.save(MachineRecord(name="web-1"))
        (store.machine_dir("web-1") / "id_rsa").write_text("key")

        store.delete("web-1")

        assert not store.machine_dir("web-1").exists()
        assert not store.exists("web-1")
