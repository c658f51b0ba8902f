"""Local SSH key pair handling."""

import base64
import hashlib
import os
import shutil
from pathlib import Path

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from hetzner_machine.core.logging import get_logger

logger = get_logger(__name__)

RSA_KEY_SIZE = 2048


class PublicKey:
    """An SSH public key in authorized_keys format.

    Attributes:
        key_type: Key algorithm, e.g. "ssh-rsa"
        blob: Decoded key material
        comment: Trailing comment, if any
    """

    def __init__(self, key_type: str, blob: bytes, comment: str = "") -> None:
        self.key_type = key_type
        self.blob = blob
        self.comment = comment

    @classmethod
    def parse(cls, data: str | bytes) -> "PublicKey":
        """Parse a single authorized_keys line.

        Args:
            data: Key line, e.g. "ssh-ed25519 AAAA... user@host"

        Returns:
            Parsed public key

        Raises:
            ValueError: If the data is not an OpenSSH public key
        """
        if isinstance(data, bytes):
            data = data.decode("utf-8", errors="replace")

        line = next((line for line in data.splitlines() if line.strip()), "")
        parts = line.split(maxsplit=2)
        if len(parts) < 2:
            raise ValueError("no key material found")

        # Validate the material; raises ValueError for anything that isn't a key
        try:
            key = serialization.load_ssh_public_key(f"{parts[0]} {parts[1]}".encode())
        except UnsupportedAlgorithm as e:
            raise ValueError(f"unsupported key type {parts[0]}") from e
        blob_b64 = key.public_bytes(
            encoding=serialization.Encoding.OpenSSH,
            format=serialization.PublicFormat.OpenSSH,
        ).split()[1]

        comment = parts[2] if len(parts) > 2 else ""
        return cls(parts[0], base64.b64decode(blob_b64), comment)

    def fingerprint_md5(self) -> str:
        """Get the legacy MD5 fingerprint, e.g. "aa:bb:cc:..."."""
        digest = hashlib.md5(self.blob).hexdigest()
        return ":".join(digest[i : i + 2] for i in range(0, len(digest), 2))

    def fingerprint_sha256(self) -> str:
        """Get the SHA256 fingerprint, e.g. "SHA256:abc..."."""
        digest = hashlib.sha256(self.blob).digest()
        return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")

    def matches(self, fingerprint: str) -> bool:
        """Check whether a fingerprint in either format belongs to this key."""
        return fingerprint in (self.fingerprint_md5(), self.fingerprint_sha256())


def public_key_path(private_key_path: Path) -> Path:
    """Get the conventional public key path next to a private key."""
    return private_key_path.with_name(private_key_path.name + ".pub")


def generate_key_pair(private_key_path: Path) -> None:
    """Generate a new RSA key pair.

    The private key is written in PEM format with mode 0600, the public
    key next to it in authorized_keys format.

    Args:
        private_key_path: Destination of the private key
    """
    private_key_path.parent.mkdir(parents=True, exist_ok=True)

    private_key = rsa.generate_private_key(public_exponent=65537, key_size=RSA_KEY_SIZE)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_ssh = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    )

    private_key_path.write_bytes(private_pem)
    os.chmod(private_key_path, 0o600)
    public_key_path(private_key_path).write_bytes(public_ssh + b"\n")

    logger.debug("Generated SSH key pair", path=str(private_key_path))


def copy_key_pair(source: Path, private_key_path: Path) -> None:
    """Copy an existing key pair into place.

    Args:
        source: Path of the existing private key; the public key is expected at "<source>.pub"
        private_key_path: Destination of the private key

    Raises:
        OSError: If either key cannot be copied
    """
    private_key_path.parent.mkdir(parents=True, exist_ok=True)

    shutil.copyfile(source, private_key_path)
    shutil.copyfile(public_key_path(source), public_key_path(private_key_path))
    os.chmod(private_key_path, 0o600)

    logger.debug("Copied SSH key pair", source=str(source), path=str(private_key_path))


def read_public_key(private_key_path: Path) -> str:
    """Read the public key belonging to a private key.

    Raises:
        OSError: If the public key cannot be read
    """
    return public_key_path(private_key_path).read_text(encoding="utf-8")
