"""
Session domain model.

A Session holds the accumulated cookie header that authenticates the end
user against the remote scheduling service. It is only ever persisted inside
an EncryptedEnvelope.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

DEFAULT_SESSION_TTL = timedelta(hours=24)


@dataclass
class Session:
    """
    Authenticated session for one end user.

    Attributes:
        session_token: Cookie header accumulated during login (secret)
        owner_id: Caller-side identifier of the end user
        client_id: Remote service client id confirmed at login
        created_at: UTC creation time
        expires_at: UTC expiry time

    The token is excluded from repr() so that accidental logging of the
    object never leaks it.
    """

    session_token: str = field(repr=False)
    owner_id: str
    client_id: str
    created_at: datetime
    expires_at: datetime

    @classmethod
    def create(
        cls,
        session_token: str,
        owner_id: str,
        client_id: str,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        now: Optional[datetime] = None,
    ) -> "Session":
        created = now or datetime.now(timezone.utc)
        return cls(
            session_token=session_token,
            owner_id=owner_id,
            client_id=client_id,
            created_at=created,
            expires_at=created + ttl,
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        current = now or datetime.now(timezone.utc)
        return current >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict used only as encryption input."""
        return {
            "session_token": self.session_token,
            "owner_id": self.owner_id,
            "client_id": self.client_id,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            session_token=data["session_token"],
            owner_id=data["owner_id"],
            client_id=data.get("client_id", ""),
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )

    def to_plaintext(self) -> bytes:
        return json.dumps(self.to_dict()).encode("utf-8")

    @classmethod
    def from_plaintext(cls, payload: bytes) -> "Session":
        try:
            return cls.from_dict(json.loads(payload.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, ValueError) as e:
            raise ValueError(f"Malformed session payload: {type(e).__name__}") from e


@dataclass(frozen=True)
class EncryptedEnvelope:
    """
    Authenticated ciphertext with its IV and tag.

    All three parts are raw bytes; to_dict()/from_dict() expose them as
    base64 text for storage.
    """

    ciphertext: bytes
    iv: bytes
    tag: bytes

    def to_dict(self) -> Dict[str, str]:
        return {
            "ciphertext": base64.b64encode(self.ciphertext).decode("ascii"),
            "iv": base64.b64encode(self.iv).decode("ascii"),
            "tag": base64.b64encode(self.tag).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedEnvelope":
        try:
            return cls(
                ciphertext=base64.b64decode(data["ciphertext"], validate=True),
                iv=base64.b64decode(data["iv"], validate=True),
                tag=base64.b64decode(data["tag"], validate=True),
            )
        except (KeyError, TypeError, binascii.Error) as e:
            raise ValueError(f"Malformed encrypted envelope: {type(e).__name__}") from e
