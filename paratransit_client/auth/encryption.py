"""
Authenticated encryption for session payloads (AES-256-GCM).

Each call to encrypt() uses a fresh 16-byte random IV and produces a 16-byte
tag. Any change to ciphertext, IV or tag makes decrypt() raise
DecryptionError; corrupted plaintext is never returned.
"""

from Crypto.Cipher import AES
from Crypto.Protocol.KDF import scrypt
from Crypto.Random import get_random_bytes

from paratransit_client.domain.errors import DecryptionError
from paratransit_client.domain.session import EncryptedEnvelope

KEY_LENGTH = 32
IV_LENGTH = 16
TAG_LENGTH = 16
DEFAULT_SALT = b"paratransit-session-salt"

# scrypt cost parameters (interactive-login strength)
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1


def _check_key(key: bytes) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
        raise ValueError(f"Encryption key must be {KEY_LENGTH} bytes")


def generate_key() -> bytes:
    """Generate a random 32-byte key for first-run bootstrap."""
    return get_random_bytes(KEY_LENGTH)


def derive_key(secret: str, salt: bytes = DEFAULT_SALT) -> bytes:
    """
    Derive a 32-byte key from an operator secret with scrypt.

    Deterministic: the same secret and salt always yield the same key.

    Args:
        secret: Operator-supplied secret (must be non-empty)
        salt: KDF salt

    Returns:
        32-byte key
    """
    if not secret:
        raise ValueError("Secret for key derivation must not be empty")
    if isinstance(salt, str):
        salt = salt.encode("utf-8")
    return scrypt(secret.encode("utf-8"), salt, KEY_LENGTH, N=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)


def encrypt(plaintext: bytes, key: bytes) -> EncryptedEnvelope:
    """
    Encrypt `plaintext` under `key`.

    Args:
        plaintext: Arbitrary bytes (may be empty)
        key: 32-byte key

    Returns:
        EncryptedEnvelope with ciphertext, 16-byte IV and 16-byte tag
    """
    _check_key(key)
    iv = get_random_bytes(IV_LENGTH)
    cipher = AES.new(bytes(key), AES.MODE_GCM, nonce=iv, mac_len=TAG_LENGTH)
    ciphertext, tag = cipher.encrypt_and_digest(plaintext)
    return EncryptedEnvelope(ciphertext=ciphertext, iv=iv, tag=tag)


def decrypt(envelope: EncryptedEnvelope, key: bytes) -> bytes:
    """
    Decrypt and authenticate an envelope.

    Raises:
        DecryptionError: If the key is wrong or any component was tampered with
    """
    _check_key(key)
    if len(envelope.iv) != IV_LENGTH or len(envelope.tag) != TAG_LENGTH:
        raise DecryptionError("Encrypted envelope has invalid IV or tag length")

    cipher = AES.new(bytes(key), AES.MODE_GCM, nonce=envelope.iv, mac_len=TAG_LENGTH)
    try:
        return cipher.decrypt_and_verify(envelope.ciphertext, envelope.tag)
    except ValueError as e:
        raise DecryptionError("Session envelope failed authentication") from e
