"""Auth module - session encryption, storage and lifecycle"""

from .encryption import decrypt, derive_key, encrypt, generate_key
from .session_store import LocalFileSessionStore, SessionStore

__all__ = [
    "decrypt",
    "derive_key",
    "encrypt",
    "generate_key",
    "LocalFileSessionStore",
    "SessionStore",
]
