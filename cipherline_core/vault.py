"""
cipherline_core.vault
---------------------
Device-local, single-slot storage for the signed-in user's private key.

The slot is never sent anywhere. Losing it means losing the ability to
decrypt every message addressed to this identity; there is no recovery path.
"""

from __future__ import annotations
from typing import Optional
import os

from .constants import TAG_PRIVATE
from .crypto import decode_pem
from .logger import get_logger

log = get_logger("cipherline.vault")


class LocalKeyVault:
    def set(self, private_key_pem: str) -> None:
        raise NotImplementedError

    def get(self) -> Optional[str]:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    @staticmethod
    def _check(private_key_pem: str) -> None:
        # refuses public keys and anything else that is not a PRIVATE KEY envelope
        decode_pem(private_key_pem, expected=TAG_PRIVATE)


class MemoryKeyVault(LocalKeyVault):
    def __init__(self):
        self._slot: Optional[str] = None

    def set(self, private_key_pem: str) -> None:
        self._check(private_key_pem)
        self._slot = private_key_pem

    def get(self) -> Optional[str]:
        return self._slot

    def clear(self) -> None:
        self._slot = None


class FileKeyVault(LocalKeyVault):
    """Single file, owner read/write only; clear() scrubs before unlinking."""

    def __init__(self, path: str):
        self.path = path

    def set(self, private_key_pem: str) -> None:
        self._check(private_key_pem)
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp = f"{self.path}.tmp"
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(private_key_pem)
        os.replace(tmp, self.path)
        os.chmod(self.path, 0o600)

    def get(self) -> Optional[str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                value = f.read()
        except FileNotFoundError:
            return None
        return value or None

    def clear(self) -> None:
        try:
            size = os.path.getsize(self.path)
        except FileNotFoundError:
            return
        with open(self.path, "r+b") as f:
            f.write(b"\0" * size)
            f.flush()
            os.fsync(f.fileno())
        os.remove(self.path)
        log.info("[VAULT] private key cleared")


def load_vault(path: Optional[str] = None) -> LocalKeyVault:
    return FileKeyVault(path) if path else MemoryKeyVault()
