"""
Public-key encryption of stored values.

Values are serialised to JSON and sealed with an ephemeral X25519 key
agreement, HKDF-SHA256 key derivation and AES-256-GCM. The result is a single
base64 token that any tier can store as a plain string.
"""

import base64
import binascii
import json
import os
from dataclasses import dataclass
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import x25519
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .exceptions import ConfigurationError, DecryptionError
from .models.entry import Err, ErrorKind, Ok

TOKEN_VERSION = 1
_HKDF_SALT = b"unit-storage-hkdf-v1"
_HKDF_INFO = b"UNIT-STORAGE-VALUE-V1"
_KEY_LEN = 32
_NONCE_LEN = 12


@dataclass
class KeyPair:
    private_key: x25519.X25519PrivateKey
    public_key: x25519.X25519PublicKey

    def export(self) -> tuple[str, str]:
        """Returns (private, public) as base64 strings."""
        return export_private_key(self.private_key), export_public_key(self.public_key)


def generate_key_pair() -> KeyPair:
    private_key = x25519.X25519PrivateKey.generate()
    return KeyPair(private_key=private_key, public_key=private_key.public_key())


def export_public_key(key: x25519.X25519PublicKey) -> str:
    raw = key.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)
    return _b64(raw)


def export_private_key(key: x25519.X25519PrivateKey) -> str:
    raw = key.private_bytes(
        serialization.Encoding.Raw,
        serialization.PrivateFormat.Raw,
        serialization.NoEncryption(),
    )
    return _b64(raw)


def load_public_key(key: Any) -> x25519.X25519PublicKey:
    """Accepts a key object, 32 raw bytes or a base64 string."""
    if isinstance(key, x25519.X25519PublicKey):
        return key
    if isinstance(key, x25519.X25519PrivateKey):
        return key.public_key()
    try:
        return x25519.X25519PublicKey.from_public_bytes(_key_bytes(key))
    except ValueError as e:
        raise ConfigurationError(f"Invalid public key: {e}") from e


def load_private_key(key: Any) -> x25519.X25519PrivateKey:
    """Accepts a key object, 32 raw bytes or a base64 string."""
    if isinstance(key, x25519.X25519PrivateKey):
        return key
    try:
        return x25519.X25519PrivateKey.from_private_bytes(_key_bytes(key))
    except ValueError as e:
        raise ConfigurationError(f"Invalid private key: {e}") from e


def encrypt(public_key: Any, value: Any) -> str:
    """Encrypts any JSON-serialisable value into a base64 token."""
    recipient = load_public_key(public_key)
    plaintext = json.dumps(value).encode("utf-8")

    ephemeral = x25519.X25519PrivateKey.generate()
    ephemeral_pub = ephemeral.public_key().public_bytes(
        serialization.Encoding.Raw, serialization.PublicFormat.Raw
    )
    key = _derive_key(ephemeral.exchange(recipient))
    nonce = os.urandom(_NONCE_LEN)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, ephemeral_pub)

    return _b64(bytes([TOKEN_VERSION]) + ephemeral_pub + nonce + ciphertext)


def decrypt(private_key: Any, token: Any) -> Any:
    """
    Reverses :func:`encrypt`.

    Raises:
        DecryptionError: If the token is malformed, was sealed for another key
            or does not contain JSON.
    """
    try:
        recipient = load_private_key(private_key)
    except ConfigurationError as e:
        raise DecryptionError(str(e)) from e
    if not isinstance(token, str):
        raise DecryptionError("Encrypted values must be base64 strings.")
    try:
        raw = base64.b64decode(token.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise DecryptionError(f"Invalid encrypted token: {e}") from e

    header = 1 + _KEY_LEN + _NONCE_LEN
    if len(raw) <= header or raw[0] != TOKEN_VERSION:
        raise DecryptionError("Unsupported or truncated encrypted token.")
    ephemeral_pub = raw[1 : 1 + _KEY_LEN]
    nonce = raw[1 + _KEY_LEN : header]
    ciphertext = raw[header:]

    try:
        shared = recipient.exchange(x25519.X25519PublicKey.from_public_bytes(ephemeral_pub))
        plaintext = AESGCM(_derive_key(shared)).decrypt(nonce, ciphertext, ephemeral_pub)
    except (InvalidTag, ValueError) as e:
        raise DecryptionError("Value could not be decrypted with this key.") from e

    try:
        return json.loads(plaintext.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecryptionError(f"Decrypted payload is not JSON: {e}") from e


def try_decrypt(private_key: Any, token: Any) -> Ok | Err:
    """Tagged variant of :func:`decrypt` for callers that decide the policy."""
    try:
        return Ok(decrypt(private_key, token))
    except DecryptionError as e:
        return Err(ErrorKind.DECRYPTION, e)


def _derive_key(shared_secret: bytes) -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_HKDF_SALT,
        info=_HKDF_INFO,
    )
    return hkdf.derive(shared_secret)


def _key_bytes(key: Any) -> bytes:
    if isinstance(key, (bytes, bytearray)):
        return bytes(key)
    if isinstance(key, str):
        try:
            return base64.b64decode(key.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise ValueError(f"not valid base64 ({e})") from e
    raise ValueError(f"unsupported key type {type(key).__name__}")


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")
