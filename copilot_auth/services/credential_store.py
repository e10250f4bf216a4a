"""
Persisted primary credential.

The credential is stored as the sole content of one plaintext file, readable
and writable by the owner only. Disk access runs in the default executor so
callers on the event loop never block on the filesystem.
"""
from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)

FILE_MODE = 0o600
DIR_MODE = 0o700


class CredentialStore(ABC):
    """Storage contract for the primary credential."""

    @abstractmethod
    async def load(self) -> str | None:
        """Return the stored credential, or None when nothing usable is stored."""

    @abstractmethod
    async def save(self, credential: str) -> None:
        """Replace the stored credential."""

    @abstractmethod
    async def clear(self) -> None:
        """Forget the stored credential."""


class FileCredentialStore(CredentialStore):
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def load(self) -> str | None:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read)

    async def save(self, credential: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, credential.strip())
        logger.info("Stored credential written to %s", self.path)

    async def clear(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, "")
        logger.info("Stored credential cleared at %s", self.path)

    def _ensure_file(self) -> None:
        if not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True, mode=DIR_MODE)
        if not self.path.exists():
            # O_CREAT with the final mode so the file is never world-readable
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT, FILE_MODE)
            os.close(fd)
            os.chmod(self.path, FILE_MODE)

    def _read(self) -> str | None:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Stored credential at %s is unreadable: %s", self.path, exc)
            return None
        credential = raw.strip()
        return credential or None

    def _write(self, content: str) -> None:
        self._ensure_file()
        self.path.write_text(content, encoding="utf-8")
        # some platforms reset permissions on write
        os.chmod(self.path, FILE_MODE)
