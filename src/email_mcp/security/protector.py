"""At-rest encryption capability for the secret store.

The store only needs "protect" and "unprotect"; where the key lives is the
host's business.  ``FernetProtector`` is the default: Fernet (AES-128-CBC +
HMAC) with a random master key kept in a 0600 file next to the tokens.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol

from cryptography.fernet import Fernet

MASTER_KEY_FILENAME: str = "master.key"


class Protector(Protocol):
    """Symmetric protect/unprotect capability.

    ``unprotect`` must raise when handed ciphertext it cannot authenticate
    (corrupted, truncated, or produced under a different key).
    """

    def protect(self, plaintext: str) -> str: ...

    def unprotect(self, ciphertext: str) -> str: ...


class FernetProtector:
    """Fernet-backed ``Protector`` with a lazily created master key file.

    Args:
        keys_dir: Directory for the master key.  Created on first use.
        key: Explicit key bytes; skips the key file entirely when given.
    """

    def __init__(self, keys_dir: Path | None = None, key: bytes | None = None) -> None:
        if keys_dir is None and key is None:
            raise ValueError("FernetProtector needs either keys_dir or key")
        self._keys_dir = keys_dir
        self._fernet: Fernet | None = Fernet(key) if key is not None else None

    @property
    def key_path(self) -> Path | None:
        if self._keys_dir is None:
            return None
        return self._keys_dir / MASTER_KEY_FILENAME

    def protect(self, plaintext: str) -> str:
        return self._get_fernet().encrypt(plaintext.encode("utf-8")).decode("ascii")

    def unprotect(self, ciphertext: str) -> str:
        """Decrypt *ciphertext*.

        Raises:
            cryptography.fernet.InvalidToken: If the token is malformed or was
                not produced with this key.
        """
        return self._get_fernet().decrypt(ciphertext.strip().encode("ascii")).decode("utf-8")

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._get_or_create_master_key())
        return self._fernet

    def _get_or_create_master_key(self) -> bytes:
        path = self.key_path
        if path is None:
            raise ValueError("FernetProtector has no keys_dir to hold a master key")
        if path.exists():
            key = path.read_bytes().strip()
            if key:
                return key

        path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        try:
            os.write(fd, key + b"\n")
        finally:
            os.close(fd)
        return key
