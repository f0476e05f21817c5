"""File-backed store for the single long-lived backend token."""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path

from pydantic import ValidationError

from taskgate.auth.models import TokenRecord

logger = logging.getLogger(__name__)

_FILE_MODE = 0o600
_DIR_MODE = 0o700


class CredentialStoreError(Exception):
    """Raised when the token file cannot be read or written."""


class CredentialStore:
    """Persists at most one :class:`TokenRecord` as a JSON file.

    Writes go to a temporary file in the same directory which is then
    renamed over the target, so a reader sees either the old record or the
    new one. A lock serializes reads against writes within the process.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        with self._lock:
            return self._path.is_file()

    def load(self) -> TokenRecord | None:
        """Return the stored record, or None when nothing is stored."""
        with self._lock:
            try:
                raw = self._path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None
            except OSError as exc:
                raise CredentialStoreError(f"Cannot read token file {self._path}") from exc

        try:
            return TokenRecord.model_validate_json(raw)
        except ValidationError as exc:
            raise CredentialStoreError(f"Token file {self._path} is corrupt") from exc

    def save(self, record: TokenRecord) -> None:
        payload = record.model_dump_json(indent=2)
        with self._lock:
            try:
                self._path.parent.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=self._path.parent, prefix=".token-", suffix=".tmp"
                )
                try:
                    os.fchmod(fd, _FILE_MODE)
                    with os.fdopen(fd, "w", encoding="utf-8") as fh:
                        fh.write(payload)
                        fh.flush()
                        os.fsync(fh.fileno())
                    os.replace(tmp_name, self._path)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise
            except OSError as exc:
                raise CredentialStoreError(f"Cannot write token file {self._path}") from exc
        logger.info("Saved token for user %s to %s", record.username or "?", self._path)

    def delete(self) -> bool:
        """Remove the stored record. Returns True if a file was removed."""
        with self._lock:
            try:
                self._path.unlink()
            except FileNotFoundError:
                return False
            except OSError as exc:
                raise CredentialStoreError(f"Cannot delete token file {self._path}") from exc
        logger.info("Deleted token file %s", self._path)
        return True

    def inspect(self) -> dict[str, object]:
        """Describe the stored record without exposing the token itself."""
        record = self.load()
        if record is None:
            return {"path": str(self._path), "present": False}
        return {
            "path": str(self._path),
            "present": True,
            "username": record.username,
            "user_id": record.user_id,
            "created_at": record.created_at.isoformat(),
            "updated_at": record.updated_at.isoformat(),
        }
