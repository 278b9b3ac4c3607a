"""
PIN gate for ChainVault.

The mnemonic inside an unlocked vault is sealed a second time under the
PIN.  A PIN is valid exactly when that inner envelope opens to a non-empty
string; nothing about PIN validity is cached between calls.
"""

from __future__ import annotations

from typing import Any

from chainvault_core.cipher import CipherBox, canonical_passphrase
from chainvault_core.errors import (
    DecryptionError,
    IncorrectPinError,
    IncorrectPinTypeError,
)


def is_valid_pin_type(pin: Any) -> bool:
    return isinstance(pin, int) and not isinstance(pin, bool) and pin >= 0


def check_pin_type(pin: Any) -> None:
    """Raise ``IncorrectPinTypeError`` unless *pin* is a non-negative int."""
    if not is_valid_pin_type(pin):
        raise IncorrectPinTypeError()


class PinGate:
    """Seals and opens the PIN-protected mnemonic record."""

    def __init__(self, cipher: CipherBox):
        self.cipher = cipher

    def encrypt_mnemonic(self, mnemonic: str, pin: int) -> str:
        check_pin_type(pin)
        return self.cipher.encrypt(mnemonic, canonical_passphrase(pin))

    def _open(self, pin: Any, encrypted_mnemonic: str) -> str:
        if not is_valid_pin_type(pin):
            return ""
        try:
            return self.cipher.decrypt(encrypted_mnemonic, canonical_passphrase(pin))
        except DecryptionError:
            return ""

    def validate_pin(self, pin: Any, encrypted_mnemonic: str) -> bool:
        return self._open(pin, encrypted_mnemonic) != ""

    def require_pin(self, pin: Any, encrypted_mnemonic: str) -> None:
        """Type-check then validate *pin*; raise on either failure."""
        check_pin_type(pin)
        if not self.validate_pin(pin, encrypted_mnemonic):
            raise IncorrectPinError()

    def export_mnemonic(self, pin: Any, encrypted_mnemonic: str) -> str:
        """Return the plaintext mnemonic, or raise ``IncorrectPinError``."""
        check_pin_type(pin)
        mnemonic = self._open(pin, encrypted_mnemonic)
        if mnemonic == "":
            raise IncorrectPinError()
        return mnemonic
