"""Unit tests for option binding and validation."""

from pathlib import Path

import pytest

from hetzner_machine.config.flags import (
    DEFAULT_IMAGE,
    DEFAULT_SERVER_TYPE,
    FLAG_API_TOKEN,
    FLAG_AUTO_SPREAD,
    FLAG_DISABLE_PUBLIC,
    FLAG_DISABLE_PUBLIC_4,
    FLAG_DISABLE_PUBLIC_6,
    FLAG_IMAGE,
    FLAG_IMAGE_ARCH,
    FLAG_IMAGE_ID,
    FLAG_KEY_LABEL,
    FLAG_PLACEMENT_GROUP,
    FLAG_PRIMARY_4,
    FLAG_PRIMARY_6,
    FLAG_SERVER_LABEL,
    FLAG_USE_PRIVATE_NETWORK,
    FLAG_USER_DATA,
    FLAG_USER_DATA_FILE,
    LEGACY_FLAG_DISABLE_PUBLIC_4,
    LEGACY_FLAG_DISABLE_PUBLIC_6,
    LEGACY_FLAG_USER_DATA_FROM_FILE,
)
from hetzner_machine.config.loader import (
    AUTO_SPREAD_PLACEMENT_GROUP,
    bind_options,
    is_default_image_name,
)
from hetzner_machine.config.models import Architecture, DriverConfig
from hetzner_machine.core.errors import ConfigurationError


def bind_flags(values: dict) -> DriverConfig:
    """Bind options with a valid token plus the given flag values."""
    return bind_options({FLAG_API_TOKEN: "foo", **values})


def assert_mutual_exclusion(error: ConfigurationError, flag1: str, flag2: str) -> None:
    message = str(error)
    assert flag1 in message
    assert flag2 in message
    assert "mutually exclusive" in message


class TestDefaults:
    """Tests for values applied when only the token is given."""

    def test_token_only(self) -> None:
        """Test that defaults apply with only the access token."""
        config = bind_flags({})

        assert config.access_token == "foo"
        assert config.image == DEFAULT_IMAGE
        assert config.image_id == 0
        assert config.server_type == DEFAULT_SERVER_TYPE
        assert config.location == ""
        assert config.ssh_user == "root"
        assert config.ssh_port == 22
        assert config.wait_on_polling == 1
        assert config.wait_on_error == 0
        assert config.wait_for_running_timeout == 0
        assert config.uses_deprecated_flags is False

    def test_missing_token(self) -> None:
        """Test that a missing token is rejected."""
        with pytest.raises(ConfigurationError, match=f"requires --{FLAG_API_TOKEN}"):
            bind_options({})

    def test_string_values_are_converted(self) -> None:
        """Test that values arriving as strings are typed correctly."""
        config = bind_flags({"hetzner-ssh-port": "2222", FLAG_USE_PRIVATE_NETWORK: "true"})

        assert config.ssh_port == 2222
        assert config.use_private_network is True


class TestUserData:
    """Tests for inline and file based user data."""

    def test_inline_and_file_are_exclusive(self, tmp_path: Path) -> None:
        """Test that inline user data and a user data file cannot be combined."""
        file = tmp_path / "userdata"
        file.write_text("#cloud-config\n")

        with pytest.raises(ConfigurationError) as exc_info:
            bind_flags({FLAG_USER_DATA: "inline", FLAG_USER_DATA_FILE: str(file)})

        assert_mutual_exclusion(exc_info.value, FLAG_USER_DATA, FLAG_USER_DATA_FILE)

    def test_legacy_flag_and_file_are_exclusive(self, tmp_path: Path) -> None:
        """Test that the legacy from-file flag cannot be combined with the file flag."""
        file = tmp_path / "userdata"
        file.write_text("#cloud-config\n")

        with pytest.raises(ConfigurationError) as exc_info:
            bind_flags({LEGACY_FLAG_USER_DATA_FROM_FILE: True, FLAG_USER_DATA_FILE: str(file)})

        assert_mutual_exclusion(exc_info.value, LEGACY_FLAG_USER_DATA_FROM_FILE, FLAG_USER_DATA_FILE)

    def test_inline(self) -> None:
        """Test that inline user data is used as is."""
        config = bind_flags({FLAG_USER_DATA: "#cloud-config\nruncmd: []\n"})

        assert config.read_user_data() == "#cloud-config\nruncmd: []\n"

    def test_file_is_read_verbatim(self, tmp_path: Path) -> None:
        """Test that file contents including trailing whitespace are kept."""
        contents = "#cloud-config\r\npackages: [git]\n  \n"
        file = tmp_path / "userdata"
        file.write_bytes(contents.encode())

        config = bind_flags({FLAG_USER_DATA_FILE: str(file)})

        assert config.read_user_data() == contents

    def test_legacy_flag_redirects_inline_value(self, tmp_path: Path) -> None:
        """Test that the legacy flag treats the inline value as a file path."""
        file = tmp_path / "userdata"
        file.write_text("#cloud-config\nlegacy: true\n")

        config = bind_flags({FLAG_USER_DATA: str(file), LEGACY_FLAG_USER_DATA_FROM_FILE: True})

        assert config.user_data == ""
        assert config.user_data_file == str(file)
        assert config.read_user_data() == "#cloud-config\nlegacy: true\n"
        assert config.uses_deprecated_flags is True


class TestPublicNetwork:
    """Tests for the public network flags."""

    def test_disable_public(self) -> None:
        """Test that disabling public networking implies everything else."""
        config = bind_flags({FLAG_DISABLE_PUBLIC: True})

        assert config.disable_public_ipv4 is True
        assert config.disable_public_ipv6 is True
        assert config.use_private_network is True

    def test_disable_public_ipv4(self) -> None:
        """Test disabling only IPv4."""
        config = bind_flags({FLAG_DISABLE_PUBLIC_4: True})

        assert config.disable_public_ipv4 is True
        assert config.disable_public_ipv6 is False
        assert config.use_private_network is False

    def test_disable_public_ipv6(self) -> None:
        """Test disabling only IPv6."""
        config = bind_flags({FLAG_DISABLE_PUBLIC_6: True})

        assert config.disable_public_ipv4 is False
        assert config.disable_public_ipv6 is True
        assert config.use_private_network is False

    def test_legacy_ipv4_flag_wins(self) -> None:
        """Test that a truthy legacy IPv4 flag takes precedence."""
        config = bind_flags({LEGACY_FLAG_DISABLE_PUBLIC_4: True, FLAG_DISABLE_PUBLIC_4: False})

        assert config.disable_public_ipv4 is True
        assert config.disable_public_ipv6 is False
        assert config.use_private_network is False
        assert config.uses_deprecated_flags is True

    def test_legacy_ipv6_flag_wins(self) -> None:
        """Test that a truthy legacy IPv6 flag takes precedence."""
        config = bind_flags({LEGACY_FLAG_DISABLE_PUBLIC_6: True, FLAG_DISABLE_PUBLIC_6: False})

        assert config.disable_public_ipv4 is False
        assert config.disable_public_ipv6 is True
        assert config.uses_deprecated_flags is True

    def test_both_disabled_requires_private_network(self) -> None:
        """Test that disabling both families without a private network fails."""
        with pytest.raises(ConfigurationError) as exc_info:
            bind_flags({FLAG_DISABLE_PUBLIC_4: True, FLAG_DISABLE_PUBLIC_6: True})

        message = str(exc_info.value)
        assert FLAG_USE_PRIVATE_NETWORK in message
        assert FLAG_DISABLE_PUBLIC in message

    def test_both_disabled_with_private_network(self) -> None:
        """Test that disabling both families is fine with a private network."""
        config = bind_flags(
            {FLAG_DISABLE_PUBLIC_4: True, FLAG_DISABLE_PUBLIC_6: True, FLAG_USE_PRIVATE_NETWORK: True}
        )

        assert config.use_private_network is True

    def test_primary_ipv4_with_disabled_ipv4(self) -> None:
        """Test that a primary IPv4 contradicts disabling IPv4."""
        with pytest.raises(ConfigurationError) as exc_info:
            bind_flags({FLAG_DISABLE_PUBLIC_4: True, FLAG_PRIMARY_4: "1.2.3.4"})

        assert_mutual_exclusion(exc_info.value, FLAG_PRIMARY_4, FLAG_DISABLE_PUBLIC_4)

    def test_primary_ipv6_with_disabled_ipv6(self) -> None:
        """Test that a primary IPv6 contradicts disabling IPv6."""
        with pytest.raises(ConfigurationError) as exc_info:
            bind_flags({FLAG_DISABLE_PUBLIC_6: True, FLAG_PRIMARY_6: "my-ipv6"})

        assert_mutual_exclusion(exc_info.value, FLAG_PRIMARY_6, FLAG_DISABLE_PUBLIC_6)


class TestImage:
    """Tests for the image selection flags."""

    def test_id_and_name_are_exclusive(self) -> None:
        """Test that image ID and image name cannot be combined."""
        with pytest.raises(ConfigurationError) as exc_info:
            bind_flags({FLAG_IMAGE_ID: "42", FLAG_IMAGE: "answer"})

        assert_mutual_exclusion(exc_info.value, FLAG_IMAGE_ID, FLAG_IMAGE)

    @pytest.mark.parametrize("image", ["ubuntu-24.04", "ubuntu-20.04", "debian-9"])
    def test_id_with_legacy_default_name(self, image: str) -> None:
        """Test that legacy default image names are tolerated next to an ID."""
        config = bind_flags({FLAG_IMAGE_ID: "42", FLAG_IMAGE: image})

        assert config.image_id == 42

    def test_id_and_arch_are_exclusive(self) -> None:
        """Test that image ID and architecture cannot be combined."""
        with pytest.raises(ConfigurationError) as exc_info:
            bind_flags({FLAG_IMAGE_ID: "42", FLAG_IMAGE_ARCH: "x86"})

        assert_mutual_exclusion(exc_info.value, FLAG_IMAGE_ID, FLAG_IMAGE_ARCH)

    def test_name_without_arch(self) -> None:
        """Test that the architecture stays unset when not given."""
        config = bind_flags({FLAG_IMAGE: "answer"})

        assert config.image == "answer"
        assert config.image_arch is None

    @pytest.mark.parametrize("arch", [Architecture.X86, Architecture.ARM])
    def test_valid_arch(self, arch: Architecture) -> None:
        """Test that valid architectures are kept exactly."""
        config = bind_flags({FLAG_IMAGE: "answer", FLAG_IMAGE_ARCH: arch.value})

        assert config.image_arch is arch

    def test_invalid_arch(self) -> None:
        """Test that unknown architectures are rejected."""
        with pytest.raises(ConfigurationError, match="unknown architecture hal9000"):
            bind_flags({FLAG_IMAGE: "answer", FLAG_IMAGE_ARCH: "hal9000"})

    def test_bogus_id(self) -> None:
        """Test that a non-numeric image ID is rejected."""
        with pytest.raises(ConfigurationError, match=FLAG_IMAGE_ID):
            bind_flags({FLAG_IMAGE_ID: "answer"})

    def test_long_id(self) -> None:
        """Test that very large image IDs are kept exactly."""
        config = bind_flags({FLAG_IMAGE_ID: "79871865169581"})

        assert config.image_id == 79871865169581

    def test_is_default_image_name(self) -> None:
        """Test recognition of legacy default image names."""
        assert is_default_image_name(DEFAULT_IMAGE) is True
        assert is_default_image_name("ubuntu-16.04") is True
        assert is_default_image_name("answer") is False


class TestLabelsAndPlacement:
    """Tests for labels and placement group flags."""

    def test_labels(self) -> None:
        """Test that labels are split on the first equals sign."""
        config = bind_flags(
            {FLAG_SERVER_LABEL: ["env=prod", "expr=a=b"], FLAG_KEY_LABEL: ["owner=ci"]}
        )

        assert config.server_labels == {"env": "prod", "expr": "a=b"}
        assert config.key_labels == {"owner": "ci"}

    def test_malformed_server_label(self) -> None:
        """Test that labels without a value separator are rejected."""
        with pytest.raises(ConfigurationError, match="server label broken is not in key=value format"):
            bind_flags({FLAG_SERVER_LABEL: ["broken"]})

    def test_malformed_key_label(self) -> None:
        """Test that key labels follow the same rule."""
        with pytest.raises(ConfigurationError, match="key label broken is not in key=value format"):
            bind_flags({FLAG_KEY_LABEL: "broken"})

    def test_auto_spread(self) -> None:
        """Test that auto-spread selects the reserved group name."""
        config = bind_flags({FLAG_AUTO_SPREAD: True})

        assert config.placement_group == AUTO_SPREAD_PLACEMENT_GROUP

    def test_auto_spread_and_group_are_exclusive(self) -> None:
        """Test that auto-spread and a named placement group cannot be combined."""
        with pytest.raises(ConfigurationError) as exc_info:
            bind_flags({FLAG_AUTO_SPREAD: True, FLAG_PLACEMENT_GROUP: "mine"})

        assert_mutual_exclusion(exc_info.value, FLAG_AUTO_SPREAD, FLAG_PLACEMENT_GROUP)


class TestErrorContext:
    """Tests for the options attached to configuration errors."""

    def test_snapshot_redacts_token(self) -> None:
        """Test that the token never shows up in the attached options."""
        with pytest.raises(ConfigurationError) as exc_info:
            bind_flags({FLAG_SERVER_LABEL: ["broken"]})

        error = exc_info.value
        assert error.options[FLAG_API_TOKEN] == "<redacted>"
        assert error.options[FLAG_SERVER_LABEL] == ["broken"]
        assert "foo" not in error.describe()
        assert FLAG_SERVER_LABEL in error.describe()
