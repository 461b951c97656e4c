"""
Session persistence interface and the local encrypted-file backend.

Stores never hold a plaintext session at rest: every save encrypts the
session into a fresh EncryptedEnvelope. A missing record is reported as None;
any backend failure raises a SessionStoreError subclass.
"""

import base64
import binascii
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from paratransit_client.auth.encryption import KEY_LENGTH, decrypt, encrypt, generate_key
from paratransit_client.database.exceptions import SessionStoreError, StorePermissionError
from paratransit_client.domain.errors import DecryptionError
from paratransit_client.domain.session import EncryptedEnvelope, Session
from paratransit_client.utils.logger import get_logger, mask_identifier

logger = get_logger(__name__)

FILE_MODE = 0o600
FORMAT_VERSION = 1


class SessionStore(ABC):
    """
    Persists one encrypted session per owner.

    Implementations must be safe to call concurrently for different owners.
    For the same owner the last write wins.
    """

    def __init__(self, key: bytes):
        if len(key) != KEY_LENGTH:
            raise ValueError(f"Session store key must be {KEY_LENGTH} bytes")
        self._key = key

    @abstractmethod
    def save(self, owner_id: str, session: Session) -> None:
        """Encrypt and persist `session`, replacing any previous one."""

    @abstractmethod
    def load(self, owner_id: str) -> Optional[Session]:
        """
        Return the stored session, or None if the owner has none.

        Raises:
            SessionStoreError: Backend failure (never reported as None)
            DecryptionError: Stored envelope failed authentication
        """

    @abstractmethod
    def delete(self, owner_id: str) -> None:
        """Remove the owner's session; deleting a missing session is not an error."""

    def seal(self, session: Session) -> EncryptedEnvelope:
        return encrypt(session.to_plaintext(), self._key)

    def unseal(self, envelope: EncryptedEnvelope, owner_id: str) -> Session:
        plaintext = decrypt(envelope, self._key)
        try:
            session = Session.from_plaintext(plaintext)
        except ValueError as e:
            raise DecryptionError("Stored session payload is malformed") from e
        if session.owner_id != owner_id:
            raise DecryptionError("Stored session does not belong to the requested owner")
        return session


class LocalFileSessionStore(SessionStore):
    """
    Single encrypted JSON file per installation.

    File layout:
        {"version": 1, "owner_id": "...", "saved_at": "...", "envelope": {...}}

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so readers never see a partial file.
    """

    def __init__(self, path: Union[str, Path], key: bytes):
        super().__init__(key)
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def save(self, owner_id: str, session: Session) -> None:
        context = {"owner_masked": mask_identifier(owner_id)}
        record = {
            "version": FORMAT_VERSION,
            "owner_id": owner_id,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "envelope": self.seal(session).to_dict(),
        }

        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".session-", suffix=".tmp")
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as handle:
                        json.dump(record, handle)
                        handle.flush()
                        os.fsync(handle.fileno())
                    os.chmod(tmp_path, FILE_MODE)
                    os.replace(tmp_path, self.path)
                except BaseException:
                    if os.path.exists(tmp_path):
                        os.unlink(tmp_path)
                    raise
            except PermissionError as e:
                logger.error("Permission denied", operation="save_session", context=context, error=str(e))
                raise StorePermissionError(f"Cannot write session file: {e}") from e
            except OSError as e:
                logger.error("Session file write failed", operation="save_session", context=context, error=str(e))
                raise SessionStoreError(f"Cannot write session file: {e}") from e

        logger.info("Session saved", operation="save_session", context=context)

    def load(self, owner_id: str) -> Optional[Session]:
        context = {"owner_masked": mask_identifier(owner_id)}

        with self._lock:
            record = self._read_record(context)

        if record is None:
            logger.debug("Session not found", operation="load_session", context=context)
            return None

        if record.get("owner_id") != owner_id:
            logger.debug("Session file belongs to another owner", operation="load_session", context=context)
            return None

        try:
            envelope = EncryptedEnvelope.from_dict(record.get("envelope") or {})
        except ValueError as e:
            raise SessionStoreError(f"Session file is corrupt: {e}") from e

        session = self.unseal(envelope, owner_id)
        logger.debug("Session loaded", operation="load_session", context=context)
        return session

    def delete(self, owner_id: str) -> None:
        context = {"owner_masked": mask_identifier(owner_id)}

        with self._lock:
            record = self._read_record(context)
            if record is None or record.get("owner_id") != owner_id:
                return
            try:
                self.path.unlink()
            except FileNotFoundError:
                return
            except PermissionError as e:
                raise StorePermissionError(f"Cannot delete session file: {e}") from e
            except OSError as e:
                raise SessionStoreError(f"Cannot delete session file: {e}") from e

        logger.info("Session deleted", operation="delete_session", context=context)

    def _read_record(self, context: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                record = json.load(handle)
        except FileNotFoundError:
            return None
        except PermissionError as e:
            logger.error("Permission denied", operation="read_session", context=context, error=str(e))
            raise StorePermissionError(f"Cannot read session file: {e}") from e
        except json.JSONDecodeError as e:
            logger.error("Session file is corrupt", operation="read_session", context=context, error=str(e))
            raise SessionStoreError(f"Session file is corrupt: {e}") from e
        except OSError as e:
            logger.error("Session file read failed", operation="read_session", context=context, error=str(e))
            raise SessionStoreError(f"Cannot read session file: {e}") from e

        if not isinstance(record, dict):
            logger.error("Session file is not a JSON object", operation="read_session", context=context)
            raise SessionStoreError("Session file is corrupt: expected a JSON object")
        return record


def load_or_create_key(key_path: Union[str, Path]) -> bytes:
    """
    Read the installation key file, generating it on first run.

    The key is stored base64-encoded with owner-only permissions.

    Raises:
        SessionStoreError: Key file unreadable or malformed
    """
    path = Path(key_path).expanduser()
    try:
        raw = path.read_text(encoding="ascii").strip()
    except FileNotFoundError:
        key = generate_key()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, FILE_MODE)
            with os.fdopen(fd, "w", encoding="ascii") as handle:
                handle.write(base64.b64encode(key).decode("ascii"))
        except FileExistsError:
            # Another process bootstrapped the key first
            return load_or_create_key(path)
        except OSError as e:
            raise SessionStoreError(f"Cannot create key file: {e}") from e
        logger.info("Generated new session encryption key", operation="bootstrap_key")
        return key
    except OSError as e:
        raise SessionStoreError(f"Cannot read key file: {e}") from e

    try:
        key = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise SessionStoreError("Key file is not valid base64") from e
    if len(key) != KEY_LENGTH:
        raise SessionStoreError(f"Key file must contain a {KEY_LENGTH}-byte key")
    return key
