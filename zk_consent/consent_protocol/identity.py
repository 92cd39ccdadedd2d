"""
Client-side identity secret storage.

One 32-byte random secret per browser profile (here: per identity file).
It is created on first use, never regenerated while it exists, and never
leaves the client. All commitments and nullifiers are derived from it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from .config import IDENTITY_SECRET_BYTES
from .exceptions import ConfigurationError
from .security import RandomnessSource, bytes_to_field

logger = logging.getLogger(__name__)

DEFAULT_IDENTITY_FILE = Path.home() / ".zk_consent" / "identity_secret"
IDENTITY_FILE_ENV = "ZK_CONSENT_IDENTITY_FILE"


def default_identity_path() -> Path:
    env_value = os.getenv(IDENTITY_FILE_ENV)
    if env_value:
        return Path(env_value)
    return DEFAULT_IDENTITY_FILE


class IdentityStore:
    """
    File-backed identity secret.

    The file holds the secret hex-encoded and is created with mode 0600.
    A file that exists but does not decode to exactly 32 bytes raises
    ConfigurationError and is never overwritten; ``forget`` removes it.
    """

    def __init__(
        self,
        path: Optional[str | Path] = None,
        rng: Optional[RandomnessSource] = None,
    ) -> None:
        self._path = Path(path) if path is not None else default_identity_path()
        self._rng = rng or RandomnessSource()
        self._cached: Optional[bytes] = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[bytes]:
        """
        Return the stored secret, or None if no identity file exists.

        Raises:
            ConfigurationError: If the file exists but is not a valid secret
        """
        if self._cached is not None:
            return self._cached
        try:
            raw = self._path.read_text(encoding="ascii").strip()
            secret = bytes.fromhex(raw)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            raise ConfigurationError(
                f"unreadable identity file {self._path}: {exc}"
            ) from exc
        if len(secret) != IDENTITY_SECRET_BYTES:
            raise ConfigurationError(
                f"identity file {self._path} holds {len(secret)} bytes, "
                f"expected {IDENTITY_SECRET_BYTES}"
            )
        self._cached = secret
        return secret

    def exists(self) -> bool:
        return self.load() is not None

    def _save(self, secret: bytes) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="ascii") as fp:
            fp.write(secret.hex())
        self._cached = secret

    def get_or_create(self) -> bytes:
        """Return the existing secret or generate and persist a new one."""
        secret = self.load()
        if secret is not None:
            return secret
        secret = self._rng.get_random_bytes(IDENTITY_SECRET_BYTES)
        self._save(secret)
        logger.info("Created new identity secret at %s", self._path)
        return secret

    def secret_field(self) -> int:
        """The secret as a field element (created if needed)."""
        return bytes_to_field(self.get_or_create())

    def forget(self) -> None:
        """
        Erase the local secret.

        The next ``get_or_create`` yields an unrelated secret, and with it an
        unrelated, unlinkable nullifier.
        """
        self._cached = None
        try:
            self._path.unlink()
        except FileNotFoundError:
            return
        logger.info("Erased identity secret at %s", self._path)
