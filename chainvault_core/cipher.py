"""
Passphrase-based authenticated encryption for ChainVault.

CipherBox seals an opaque UTF-8 payload under a passphrase:

  - PBKDF2-HMAC-SHA256 key derivation with a random 16-byte salt
  - AES-256-GCM with a random 96-bit nonce and a 128-bit tag
  - A versioned, self-describing envelope string:
        cvb1$<iterations>$<base64url(salt || nonce || tag || ciphertext)>

Decryption never "succeeds by accident": a wrong passphrase or any tampering
fails tag verification and raises ``DecryptionError``.

Structured keys are turned into passphrases by ``canonical_passphrase``,
which emits a versioned canonical JSON form so that two equal keys always
yield the same passphrase regardless of dict ordering.
"""

from __future__ import annotations

import base64
import hashlib
import json
import os
from typing import Any

from Crypto.Cipher import AES

from chainvault_core.errors import DecryptionError, EnterCredsError

ENVELOPE_PREFIX = "cvb1"
PASSPHRASE_VERSION = "v1"
DEFAULT_KDF_ITERATIONS = 600_000

_SALT_BYTES = 16
_NONCE_BYTES = 12
_TAG_BYTES = 16
_KEY_BYTES = 32


def zero_fill(buf: bytearray) -> None:
    """Overwrite a mutable buffer in place."""
    for i in range(len(buf)):
        buf[i] = 0


def canonical_json(value: Any) -> str:
    """Stable JSON: sorted keys, compact separators, no ASCII escaping."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def canonical_passphrase(value: Any) -> str:
    """
    Encode a structured encryption key (or a PIN) as a passphrase.

    ``{"b": 1, "a": 2}`` and ``{"a": 2, "b": 1}`` produce the same string.
    ``bytes`` keys are hex-encoded first.
    """
    if value is None or value == "" or value == b"" or value == {} or value == []:
        raise EnterCredsError()
    if isinstance(value, (bytes, bytearray)):
        value = {"hex": bytes(value).hex()}
    try:
        body = canonical_json(value)
    except (TypeError, ValueError) as exc:
        raise EnterCredsError("Encryption key must be JSON-serialisable") from exc
    return f"{PASSPHRASE_VERSION}:{body}"


class CipherBox:
    """AES-256-GCM sealing of text payloads under a passphrase."""

    def __init__(self, kdf_iterations: int = DEFAULT_KDF_ITERATIONS):
        if kdf_iterations < 1:
            raise ValueError("kdf_iterations must be positive")
        self.kdf_iterations = kdf_iterations

    @staticmethod
    def _derive_key(passphrase: str, salt: bytes, iterations: int) -> bytearray:
        if not passphrase:
            raise EnterCredsError("Passphrase is required")
        return bytearray(hashlib.pbkdf2_hmac(
            "sha256", passphrase.encode("utf-8"), salt, iterations, dklen=_KEY_BYTES,
        ))

    def encrypt(self, plaintext: str, passphrase: str) -> str:
        """Seal *plaintext* and return the envelope string."""
        salt = os.urandom(_SALT_BYTES)
        nonce = os.urandom(_NONCE_BYTES)
        key = self._derive_key(passphrase, salt, self.kdf_iterations)
        data = bytearray(plaintext.encode("utf-8"))
        try:
            cipher = AES.new(bytes(key), AES.MODE_GCM, nonce=nonce, mac_len=_TAG_BYTES)
            ciphertext, tag = cipher.encrypt_and_digest(bytes(data))
        finally:
            zero_fill(key)
            zero_fill(data)
        body = base64.urlsafe_b64encode(salt + nonce + tag + ciphertext).decode("ascii")
        return f"{ENVELOPE_PREFIX}${self.kdf_iterations}${body}"

    def decrypt(self, envelope: str, passphrase: str) -> str:
        """
        Open an envelope produced by ``encrypt``.

        The iteration count is read from the envelope, so blobs sealed with
        a different work factor still open.  Raises ``DecryptionError`` on
        any malformed input or authentication failure.
        """
        salt, nonce, tag, ciphertext, iterations = self._split(envelope)
        key = self._derive_key(passphrase, salt, iterations)
        plain = bytearray()
        try:
            cipher = AES.new(bytes(key), AES.MODE_GCM, nonce=nonce, mac_len=_TAG_BYTES)
            plain = bytearray(cipher.decrypt_and_verify(ciphertext, tag))
            return plain.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            raise DecryptionError("Authentication failed") from exc
        finally:
            zero_fill(key)
            zero_fill(plain)

    @staticmethod
    def _split(envelope: str) -> tuple[bytes, bytes, bytes, bytes, int]:
        if not isinstance(envelope, str):
            raise DecryptionError("Envelope must be a string")
        parts = envelope.split("$")
        if len(parts) != 3 or parts[0] != ENVELOPE_PREFIX:
            raise DecryptionError("Unrecognised envelope format")
        try:
            iterations = int(parts[1])
            payload = base64.urlsafe_b64decode(parts[2].encode("ascii"))
        except (ValueError, UnicodeEncodeError) as exc:
            raise DecryptionError("Envelope is not decodable") from exc
        if iterations < 1:
            raise DecryptionError("Invalid iteration count")
        header = _SALT_BYTES + _NONCE_BYTES + _TAG_BYTES
        if len(payload) < header:
            raise DecryptionError("Envelope is truncated")
        salt = payload[:_SALT_BYTES]
        nonce = payload[_SALT_BYTES:_SALT_BYTES + _NONCE_BYTES]
        tag = payload[_SALT_BYTES + _NONCE_BYTES:header]
        return salt, nonce, tag, payload[header:], iterations
