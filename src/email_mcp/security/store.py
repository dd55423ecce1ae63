"""Encrypted on-disk secret store.

One file per key, named ``<sanitized-key>.enc``, holding the protected text
blob.  The store knows nothing about what the blobs mean; the credential
lifecycle decides that.

Writes are atomic: the blob is encrypted fully in memory, written to a
temporary sibling, and moved into place with a single rename.  Same-key
writers are not coordinated (last write wins).
"""

from __future__ import annotations

import re
import uuid
from pathlib import Path

import anyio
import structlog

from email_mcp.domain.errors import InvalidArgumentError
from email_mcp.security.protector import Protector

logger = structlog.get_logger()

SECRET_FILE_SUFFIX: str = ".enc"

# Characters rejected in file names on at least one supported platform
_INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def sanitize_key(key: str) -> str:
    """Replace every character that is invalid in a file name with ``_``."""
    return _INVALID_FILENAME_CHARS.sub("_", key)


def _require(value: str | None, name: str) -> str:
    if value is None or not value.strip():
        raise InvalidArgumentError(f"{name} must not be empty or whitespace")
    return value


class SecretStore:
    """Persist protected string blobs under string keys.

    Args:
        directory: Backing directory.  Created on first use.
        protector: The encryption capability applied to every blob.
    """

    def __init__(self, directory: Path, protector: Protector) -> None:
        self._directory = anyio.Path(directory)
        self._protector = protector
        self._directory_ready = False

    @property
    def directory(self) -> Path:
        return Path(self._directory)

    def path_for(self, key: str) -> Path:
        """Return the file that holds (or would hold) the blob for *key*."""
        _require(key, "key")
        return Path(self._directory / f"{sanitize_key(key)}{SECRET_FILE_SUFFIX}")

    async def save(self, key: str, plaintext: str) -> None:
        """Encrypt *plaintext* and store it under *key*, replacing any previous value.

        Raises:
            InvalidArgumentError: If *key* or *plaintext* is empty or whitespace.
        """
        _require(key, "key")
        _require(plaintext, "plaintext")

        ciphertext = self._protector.protect(plaintext)
        await self._ensure_directory()

        target = anyio.Path(self.path_for(key))
        tmp = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
        try:
            await tmp.write_text(ciphertext, encoding="utf-8")
            await tmp.replace(target)
        except BaseException:
            with anyio.CancelScope(shield=True):
                await tmp.unlink(missing_ok=True)
            raise
        logger.debug("secret_saved", key=key)

    async def load(self, key: str) -> str | None:
        """Return the plaintext stored under *key*, or ``None``.

        A record that cannot be read back or decrypted is treated exactly
        like a missing one: a ``secret_corrupted`` warning is logged and
        ``None`` is returned.
        """
        path = anyio.Path(self.path_for(key))
        if not await path.exists():
            logger.debug("secret_not_found", key=key)
            return None

        try:
            ciphertext = await path.read_text(encoding="utf-8")
            return self._protector.unprotect(ciphertext)
        except Exception as exc:
            logger.warning(
                "secret_corrupted",
                key=key,
                error_type=type(exc).__name__,
            )
            return None

    async def delete(self, key: str) -> None:
        """Remove the record for *key*.  Missing records are not an error."""
        path = anyio.Path(self.path_for(key))
        if await path.exists():
            await path.unlink(missing_ok=True)
            logger.debug("secret_deleted", key=key)

    async def exists(self, key: str) -> bool:
        return await anyio.Path(self.path_for(key)).exists()

    async def _ensure_directory(self) -> None:
        if not self._directory_ready:
            await self._directory.mkdir(parents=True, exist_ok=True)
            self._directory_ready = True
