"""Scoped secret persistence for auth credentials.

Secrets are opaque bytes addressed by a slot name inside a service namespace.
A missing slot reads as ``None``; only unexpected storage failures raise
`SecretStoreError`.
"""

import base64
import binascii
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)

# Slot names
APPLE_USER_IDENTIFIER = "appleUserIdentifier"
APPLE_USER_EMAIL = "appleUserEmail"
APPLE_USER_FULL_NAME = "appleUserFullName"
ACCESS_TOKEN = "accessToken"
REFRESH_TOKEN = "refreshToken"
EXPIRES_AT = "expiresAt"

ALL_SLOTS = (
    APPLE_USER_IDENTIFIER,
    APPLE_USER_EMAIL,
    APPLE_USER_FULL_NAME,
    ACCESS_TOKEN,
    REFRESH_TOKEN,
    EXPIRES_AT,
)


class SecretStoreError(Exception):
    """Raised when the backing storage fails unexpectedly."""
    pass


class SecretStore(ABC):
    """Base class: subclasses implement the three byte-level operations."""

    def __init__(self, service: str):
        self.service = service

    @abstractmethod
    def put(self, slot: str, data: bytes) -> None:
        """Store *data* in *slot*, overwriting any previous value."""

    @abstractmethod
    def get(self, slot: str) -> bytes | None:
        """Return the bytes in *slot*, or None when it is empty."""

    @abstractmethod
    def delete(self, slot: str) -> None:
        """Empty *slot*. Deleting an empty slot is not an error."""

    def clear_all(self) -> None:
        for slot in ALL_SLOTS:
            self.delete(slot)

    # Convenience helpers used by the auth manager

    def put_string(self, slot: str, value: str) -> None:
        self.put(slot, value.encode("utf-8"))

    def get_string(self, slot: str) -> str | None:
        data = self.get(slot)
        if data is None:
            return None
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Secret slot is not valid UTF-8", extra={"slot": slot})
            return None

    def get_int(self, slot: str) -> int | None:
        value = self.get_string(slot)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None


class InMemorySecretStore(SecretStore):
    """Process-local store. Nothing survives a restart."""

    def __init__(self, service: str = "com.whatEat.auth"):
        super().__init__(service)
        self._slots: dict[str, bytes] = {}

    def put(self, slot: str, data: bytes) -> None:
        self._slots[slot] = bytes(data)

    def get(self, slot: str) -> bytes | None:
        return self._slots.get(slot)

    def delete(self, slot: str) -> None:
        self._slots.pop(slot, None)

    def clear_all(self) -> None:
        self._slots.clear()


class FileSecretStore(SecretStore):
    """One JSON file per service namespace, owner read/write only.

    Every write replaces the file atomically so a crash never leaves a
    half-written credential set behind.
    """

    def __init__(self, directory: Path | str, service: str = "com.whatEat.auth"):
        super().__init__(service)
        self.directory = Path(directory)
        self.file_path = self.directory / f"{service}.json"

    def _load(self) -> dict[str, str]:
        if not self.file_path.exists():
            return {}
        try:
            with open(self.file_path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise SecretStoreError(f"Corrupt secret file {self.file_path}: {e}") from e
        except OSError as e:
            raise SecretStoreError(f"Failed to read secrets from {self.file_path}: {e}") from e

        if not isinstance(data, dict):
            raise SecretStoreError(f"Secret file {self.file_path} must contain a JSON object")
        return data

    def _write(self, slots: dict[str, str]) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True, mode=0o700)

            # Atomic write: same directory keeps the rename on one filesystem
            temp_fd, temp_path = tempfile.mkstemp(
                dir=self.directory,
                prefix=".secrets_tmp_",
                suffix=".json"
            )

            try:
                os.chmod(temp_path, 0o600)
                with os.fdopen(temp_fd, "w") as f:
                    json.dump(slots, f)
                os.replace(temp_path, self.file_path)
            except Exception:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise

        except OSError as e:
            raise SecretStoreError(f"Failed to write secrets to {self.file_path}: {e}") from e

    def put(self, slot: str, data: bytes) -> None:
        slots = self._load()
        slots[slot] = base64.b64encode(data).decode("ascii")
        self._write(slots)

    def get(self, slot: str) -> bytes | None:
        encoded = self._load().get(slot)
        if encoded is None:
            return None
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise SecretStoreError(f"Secret slot {slot!r} is not valid base64") from e

    def delete(self, slot: str) -> None:
        slots = self._load()
        if slot in slots:
            del slots[slot]
            self._write(slots)

    def clear_all(self) -> None:
        if not self.file_path.exists():
            return
        try:
            self.file_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise SecretStoreError(f"Failed to clear secrets at {self.file_path}: {e}") from e
