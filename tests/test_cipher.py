"""
Tests for chainvault_core.cipher: AES-256-GCM envelopes and canonical passphrases.

Covers:
  - encrypt / decrypt round trip (ASCII, unicode, empty payload)
  - Envelope format and per-call randomness
  - Wrong passphrase, tampered body, truncated and foreign envelopes
  - Iteration count carried in the envelope
  - canonical_passphrase ordering, bytes keys, missing / unserialisable keys
"""

import base64

import pytest

from chainvault_core.cipher import (
    ENVELOPE_PREFIX,
    CipherBox,
    canonical_json,
    canonical_passphrase,
    zero_fill,
)
from chainvault_core.errors import DecryptionError, EnterCredsError


class TestRoundTrip:

    def test_roundtrip(self, cipher):
        env = cipher.encrypt("hello vault", "pass")
        assert cipher.decrypt(env, "pass") == "hello vault"

    def test_unicode_payload(self, cipher):
        text = "Überweisung 日本語 🚀"
        assert cipher.decrypt(cipher.encrypt(text, "pw"), "pw") == text

    def test_empty_payload(self, cipher):
        env = cipher.encrypt("", "pw")
        assert cipher.decrypt(env, "pw") == ""

    def test_envelope_format(self, cipher):
        env = cipher.encrypt("data", "pw")
        prefix, iterations, body = env.split("$")
        assert prefix == ENVELOPE_PREFIX
        assert int(iterations) == cipher.kdf_iterations
        raw = base64.urlsafe_b64decode(body)
        # salt(16) + nonce(12) + tag(16) + ciphertext(4)
        assert len(raw) == 16 + 12 + 16 + 4

    def test_fresh_salt_and_nonce_each_call(self, cipher):
        assert cipher.encrypt("same", "pw") != cipher.encrypt("same", "pw")

    def test_iterations_read_from_envelope(self):
        sealed = CipherBox(kdf_iterations=1_500).encrypt("payload", "pw")
        opened = CipherBox(kdf_iterations=2_000).decrypt(sealed, "pw")
        assert opened == "payload"

    def test_invalid_iterations_rejected(self):
        with pytest.raises(ValueError):
            CipherBox(kdf_iterations=0)


class TestAuthentication:

    def test_wrong_passphrase(self, cipher):
        env = cipher.encrypt("secret", "right")
        with pytest.raises(DecryptionError):
            cipher.decrypt(env, "wrong")

    def test_tampered_ciphertext(self, cipher):
        env = cipher.encrypt("secret payload", "pw")
        prefix, iterations, body = env.split("$")
        raw = bytearray(base64.urlsafe_b64decode(body))
        raw[-1] ^= 0x01
        forged = f"{prefix}${iterations}${base64.urlsafe_b64encode(bytes(raw)).decode()}"
        with pytest.raises(DecryptionError):
            cipher.decrypt(forged, "pw")

    def test_tampered_iterations(self, cipher):
        env = cipher.encrypt("secret", "pw")
        prefix, iterations, body = env.split("$")
        with pytest.raises(DecryptionError):
            cipher.decrypt(f"{prefix}${int(iterations) + 1}${body}", "pw")

    def test_truncated_envelope(self, cipher):
        short = base64.urlsafe_b64encode(b"\x00" * 10).decode()
        with pytest.raises(DecryptionError):
            cipher.decrypt(f"{ENVELOPE_PREFIX}$1000${short}", "pw")

    @pytest.mark.parametrize("envelope", [
        "",
        "not-an-envelope",
        "U2FsdGVkX1+legacyCryptoJsBlob",
        "cvb2$1000$AAAA",
        "cvb1$abc$AAAA",
        "cvb1$0$AAAA",
    ])
    def test_foreign_envelopes(self, cipher, envelope):
        with pytest.raises(DecryptionError):
            cipher.decrypt(envelope, "pw")

    def test_non_string_envelope(self, cipher):
        with pytest.raises(DecryptionError):
            cipher.decrypt(None, "pw")

    def test_empty_passphrase(self, cipher):
        with pytest.raises(EnterCredsError):
            cipher.encrypt("x", "")


class TestCanonicalPassphrase:

    def test_key_order_irrelevant(self):
        a = canonical_passphrase({"b": 1, "a": {"y": 2, "x": 3}})
        b = canonical_passphrase({"a": {"x": 3, "y": 2}, "b": 1})
        assert a == b

    def test_versioned(self):
        assert canonical_passphrase("k").startswith("v1:")

    def test_pin_encoding(self):
        assert canonical_passphrase(1234) == "v1:1234"
        assert canonical_passphrase(0) == "v1:0"

    def test_string_and_int_differ(self):
        assert canonical_passphrase("1234") != canonical_passphrase(1234)

    def test_bytes_key(self):
        assert canonical_passphrase(b"\x01\x02") == canonical_passphrase(bytearray(b"\x01\x02"))
        assert "0102" in canonical_passphrase(b"\x01\x02")

    @pytest.mark.parametrize("missing", [None, "", b"", {}, []])
    def test_missing_key(self, missing):
        with pytest.raises(EnterCredsError):
            canonical_passphrase(missing)

    def test_unserialisable_key(self):
        with pytest.raises(EnterCredsError):
            canonical_passphrase({"k": object()})

    def test_canonical_json_compact(self):
        assert canonical_json({"b": [1, 2], "a": "é"}) == '{"a":"é","b":[1,2]}'


def test_zero_fill():
    buf = bytearray(b"secret")
    zero_fill(buf)
    assert buf == bytearray(6)
